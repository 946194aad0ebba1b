from __future__ import annotations

import contextlib
from enum import Enum
from typing import AsyncIterator

from saralcap.contracts import ProcessingRequest


class Admission(str, Enum):
    ADMITTED = "admitted"
    REJECTED = "rejected"


class ProcessingGate:
    """
    Single-flight admission for transform calls.
    While one request is in flight every other request is rejected, not queued.
    """

    def __init__(self) -> None:
        self._busy = False
        self.current: ProcessingRequest | None = None
        self.admitted_count = 0
        self.rejected_count = 0

    @property
    def busy(self) -> bool:
        return self._busy

    def try_admit(self, req: ProcessingRequest) -> Admission:
        if self._busy:
            self.rejected_count += 1
            return Admission.REJECTED
        self._busy = True
        self.current = req
        self.admitted_count += 1
        return Admission.ADMITTED

    def release(self) -> None:
        self._busy = False
        self.current = None

    @contextlib.asynccontextmanager
    async def admitted(self, req: ProcessingRequest) -> AsyncIterator[Admission]:
        admission = self.try_admit(req)
        try:
            yield admission
        finally:
            if admission is Admission.ADMITTED:
                self.release()
