from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Protocol, Sequence

from saralcap.contracts import TranscriptSegment


class SpeechError(RuntimeError):
    pass


class SpeechUnsupportedError(SpeechError):
    """No speech capability in this environment (missing packages, no such engine)."""


class SpeechUnavailable(SpeechError):
    """The engine refused to start."""


class SpeechListener(Protocol):
    def on_start(self) -> None: ...

    def on_result(self, segments: Sequence[TranscriptSegment]) -> None: ...

    def on_end(self) -> None: ...

    def on_error(self, code: str) -> None: ...


class SpeechSource(ABC):
    """
    A continuous recognition engine.
    start()/stop() return immediately; the engine reports back through the bound
    listener, on the event loop thread. on_end fires once per successful start(),
    whether the engine was stopped or ended on its own.
    """

    def __init__(self) -> None:
        self.listener: Optional[SpeechListener] = None

    def bind(self, listener: SpeechListener) -> None:
        self.listener = listener

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def running(self) -> bool: ...

    @abstractmethod
    def start(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        raise NotImplementedError

    async def wait_closed(self, timeout: float | None = None) -> None:
        """Wait until the engine has delivered its last callback."""
        return None
