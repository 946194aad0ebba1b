from __future__ import annotations

import sys
from datetime import datetime
from typing import Any, List, Protocol, TextIO, Tuple

from saralcap.contracts import CaptionRecord, Severity


class CaptionSink(Protocol):
    def interim_caption(self, text: str) -> None: ...

    def final_caption(self, record: CaptionRecord) -> None: ...

    def error_caption(self, text: str) -> None: ...

    def status_message(self, text: str, severity: Severity) -> None: ...


class ConsoleCaptionSink:
    """
    Prints captions to a terminal.
    Interim text is redrawn in place on a tty; final captions get their own lines.
    """

    def __init__(self, stream: TextIO | None = None, *, show_status: bool = True) -> None:
        self.stream = stream or sys.stdout
        self.show_status = show_status
        self._interim_open = False

    def _tty(self) -> bool:
        isatty = getattr(self.stream, "isatty", None)
        return bool(isatty and isatty())

    def _close_interim(self) -> None:
        if self._interim_open:
            self.stream.write("\n")
            self._interim_open = False

    def interim_caption(self, text: str) -> None:
        if self._tty():
            self.stream.write(f"\r\033[K  ... {text}")
            self._interim_open = True
        else:
            self.stream.write(f"  ... {text}\n")
        self.stream.flush()

    def final_caption(self, record: CaptionRecord) -> None:
        self._close_interim()
        self.stream.write(f">> {record.translated_text}\n")
        self.stream.write(f"   Simplified English: {record.simplified_text}\n")
        self.stream.flush()

    def error_caption(self, text: str) -> None:
        self._close_interim()
        self.stream.write(f"!! {text}\n")
        self.stream.flush()

    def status_message(self, text: str, severity: Severity) -> None:
        if not self.show_status:
            return
        self._close_interim()
        stamp = datetime.now().strftime("%H:%M:%S")
        self.stream.write(f"[{stamp}] {severity.value.upper():7} {text}\n")
        self.stream.flush()


class RecordingSink:
    """Keeps every event in arrival order as (kind, payload) tuples."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Any]] = []

    def interim_caption(self, text: str) -> None:
        self.events.append(("interim", text))

    def final_caption(self, record: CaptionRecord) -> None:
        self.events.append(("final", record))

    def error_caption(self, text: str) -> None:
        self.events.append(("error", text))

    def status_message(self, text: str, severity: Severity) -> None:
        self.events.append(("status", (text, severity)))

    def of_kind(self, kind: str) -> List[Any]:
        return [payload for k, payload in self.events if k == kind]
