from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from saralcap.contracts import ProcessingRequest


class TransformError(RuntimeError):
    pass


class TransientTransformError(TransformError):
    """Timeouts, dropped connections, 5xx and 429 responses. Worth retrying."""


class MalformedResponse(TransformError):
    """The service answered, but the text payload is missing or not a JSON object."""


class TransformRejected(TransformError):
    """The service refused the request (4xx). Retrying the same input will not help."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransformExhausted(TransformError):
    def __init__(self, last_error: BaseException, attempts: int) -> None:
        super().__init__(f"gave up after {attempts} attempt(s): {last_error}")
        self.last_error = last_error
        self.attempts = attempts


class TransformService(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    async def fetch(self, req: ProcessingRequest) -> Optional[str]:
        """
        Run one simplification + translation call.
        Returns the structured text payload (a JSON document as text), or None
        when the response carried no payload.
        """

    async def aclose(self) -> None:
        return None
