from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterator, List

SIMPLIFICATION_UNAVAILABLE = "Simplification unavailable."
TRANSLATION_UNAVAILABLE = "Translation unavailable."


@dataclass(frozen=True)
class TranscriptSegment:
    text: str
    is_final: bool
    sequence: int = 0


@dataclass(frozen=True)
class ProcessingRequest:
    raw_text: str
    target_language: str = "Hindi"


@dataclass(frozen=True)
class TransformResult:
    simplified_text: str
    translated_text: str

    @classmethod
    def from_payload(cls, payload: dict) -> "TransformResult":
        # A missing field is a partial success, not a failure.
        simplified = payload.get("simplified_english_text") or SIMPLIFICATION_UNAVAILABLE
        translated = payload.get("translated_text") or TRANSLATION_UNAVAILABLE
        return cls(simplified_text=str(simplified), translated_text=str(translated))


@dataclass(frozen=True)
class CaptionRecord:
    translated_text: str
    simplified_text: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Severity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class CaptionHistory:
    """
    Delivered captions, newest first.
    Append-only; eviction is left to whatever renders it.
    """

    def __init__(self) -> None:
        self._records: List[CaptionRecord] = []

    def push(self, record: CaptionRecord) -> None:
        self._records.insert(0, record)

    @property
    def latest(self) -> CaptionRecord | None:
        return self._records[0] if self._records else None

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[CaptionRecord]:
        return iter(list(self._records))
