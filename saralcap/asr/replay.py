from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterable, List, Optional

from saralcap.asr.source_base import SpeechSource, SpeechUnavailable
from saralcap.contracts import TranscriptSegment

logger = logging.getLogger(__name__)

ERROR_DIRECTIVE = "!error"


def load_script(path: str | Path) -> List[str]:
    # Accept UTF-8 with or without BOM, same as config files.
    with Path(path).open("r", encoding="utf-8-sig") as f:
        return [line.rstrip("\n") for line in f]


class ReplaySpeechSource(SpeechSource):
    """
    Plays a transcript script as if it were being spoken.

    Each non-blank line is one utterance: progressively longer interim segments,
    then one final segment. A blank line is `pause_sec` of silence; once the
    silence in a row reaches `silence_timeout_sec` the engine ends on its own,
    like browser engines do after a quiet spell. A line `!error <code>` makes
    the engine report that error code.

    Restarting continues with the next unplayed line. Once the script is used
    up the engine ends and refuses to start again.
    """

    def __init__(
        self,
        lines: Iterable[str],
        *,
        pause_sec: float = 0.8,
        word_delay_sec: float = 0.15,
        interim_every: int = 2,
        silence_timeout_sec: float | None = None,
    ) -> None:
        super().__init__()
        if pause_sec < 0 or word_delay_sec < 0:
            raise ValueError("delays must be >= 0")
        if interim_every <= 0:
            raise ValueError("interim_every must be > 0")
        if silence_timeout_sec is not None and silence_timeout_sec <= 0:
            raise ValueError("silence_timeout_sec must be > 0 when set")
        self.lines = list(lines)
        self.pause_sec = float(pause_sec)
        self.word_delay_sec = float(word_delay_sec)
        self.interim_every = int(interim_every)
        self.silence_timeout_sec = silence_timeout_sec
        self.start_calls = 0
        self._cursor = 0
        self._sequence = 0
        self._active = False
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    @classmethod
    def from_file(cls, path: str | Path, **kwargs) -> "ReplaySpeechSource":
        return cls(load_script(path), **kwargs)

    @property
    def name(self) -> str:
        return "replay"

    @property
    def running(self) -> bool:
        return self._active

    @property
    def exhausted(self) -> bool:
        return self._cursor >= len(self.lines)

    def start(self) -> None:
        if self.running:
            raise SpeechUnavailable("recognition has already started")
        if self.exhausted:
            raise SpeechUnavailable("replay script finished")
        self.start_calls += 1
        self._active = True
        self._stop = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._play())

    def stop(self) -> None:
        self._stop.set()

    async def wait_closed(self, timeout: float | None = None) -> None:
        if self._task is not None:
            await asyncio.wait({self._task}, timeout=timeout)

    async def _pause(self, seconds: float) -> bool:
        """Sleep unless stopped first. Returns True when stopped."""
        if self._stop.is_set():
            return True
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    def _emit(self, text: str, is_final: bool) -> None:
        self._sequence += 1
        if self.listener is not None:
            self.listener.on_result([TranscriptSegment(text=text, is_final=is_final, sequence=self._sequence)])

    async def _speak(self, line: str) -> bool:
        words = line.split()
        for n in range(self.interim_every, len(words), self.interim_every):
            self._emit(" ".join(words[:n]), is_final=False)
            if await self._pause(self.word_delay_sec * self.interim_every):
                return True
        self._emit(line.strip(), is_final=True)
        return False

    async def _play(self) -> None:
        if self.listener is not None:
            self.listener.on_start()
        silence = 0.0
        try:
            while not self.exhausted:
                line = self.lines[self._cursor]
                self._cursor += 1
                stripped = line.strip()

                if not stripped:
                    silence += self.pause_sec
                    if await self._pause(self.pause_sec):
                        return
                    if self.silence_timeout_sec is not None and silence >= self.silence_timeout_sec:
                        logger.info("replay_silence_timeout", extra={"cursor": self._cursor})
                        return
                    continue

                silence = 0.0
                if stripped.startswith(ERROR_DIRECTIVE):
                    code = stripped[len(ERROR_DIRECTIVE):].strip() or "aborted"
                    if self.listener is not None:
                        self.listener.on_error(code)
                    if await self._pause(0):
                        return
                    continue

                if await self._speak(stripped):
                    return
                if await self._pause(self.pause_sec):
                    return
        finally:
            # Ended before on_end so the listener may start() again from the callback.
            self._active = False
            if self.listener is not None:
                self.listener.on_end()
