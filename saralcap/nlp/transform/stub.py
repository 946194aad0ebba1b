from __future__ import annotations

import json
from typing import Optional

from .base import TransformService
from saralcap.contracts import ProcessingRequest

_FILLERS = {"um", "uh", "er", "ah", "so", "basically", "like", "actually"}


class StubTransformService(TransformService):
    def __init__(self) -> None:
        self.calls: list[ProcessingRequest] = []

    @property
    def name(self) -> str:
        return "stub"

    async def fetch(self, req: ProcessingRequest) -> Optional[str]:
        self.calls.append(req)
        # Deterministic, test-friendly
        words = [w for w in req.raw_text.split() if w.lower().strip(",.") not in _FILLERS]
        simplified = " ".join(words).strip()
        if simplified:
            simplified = simplified[0].upper() + simplified[1:]
            if simplified[-1] not in ".!?":
                simplified += "."
        translated = f"[{req.target_language}] {simplified}"
        return json.dumps(
            {"simplified_english_text": simplified, "translated_text": translated},
            ensure_ascii=False,
        )
