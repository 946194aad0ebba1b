from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

from saralcap.asr.source_base import SpeechSource
from saralcap.contracts import Severity

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str, Severity], None]


class EngineAlreadyRunning(RuntimeError):
    pass


class ListeningState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    STOPPING_REQUESTED = "stopping_requested"


class ListeningStateMachine:
    """
    Owns the listening lifecycle of one speech engine.

    IDLE is only reached through an explicit stop (the user, or an engine error
    that stops the engine on the user's behalf). Any other engine end while
    LISTENING restarts the engine immediately.
    """

    def __init__(
        self,
        engine: SpeechSource,
        *,
        on_status: Optional[StatusCallback] = None,
        max_auto_restarts: int | None = None,
    ) -> None:
        if max_auto_restarts is not None and max_auto_restarts < 0:
            raise ValueError("max_auto_restarts must be >= 0 when set")
        self.engine = engine
        self.on_status = on_status
        self.max_auto_restarts = max_auto_restarts
        self.state = ListeningState.IDLE
        self.auto_restarts = 0
        self.last_error: str | None = None

    @property
    def is_listening(self) -> bool:
        return self.state == ListeningState.LISTENING

    def _status(self, text: str, severity: Severity) -> None:
        if self.on_status is not None:
            self.on_status(text, severity)

    def start(self) -> None:
        if self.state != ListeningState.IDLE:
            raise EngineAlreadyRunning(f"cannot start while {self.state.value}")
        self.engine.start()
        self.state = ListeningState.LISTENING
        self.auto_restarts = 0
        self.last_error = None
        logger.info("listening_started", extra={"engine": self.engine.name})
        self._status("Microphone is ON. Listening for speech.", Severity.SUCCESS)

    def request_stop(self) -> bool:
        if self.state != ListeningState.LISTENING:
            return False
        self.state = ListeningState.STOPPING_REQUESTED
        logger.info("listening_stop_requested")
        self.engine.stop()
        return True

    def toggle(self) -> ListeningState:
        if self.state == ListeningState.LISTENING:
            self.request_stop()
        elif self.state == ListeningState.IDLE:
            self.start()
        return self.state

    def on_engine_started(self) -> None:
        logger.info("engine_started", extra={"state": self.state.value})

    def on_engine_terminated(self) -> None:
        if self.state == ListeningState.STOPPING_REQUESTED:
            self.state = ListeningState.IDLE
            logger.info("listening_stopped")
            self._status("Microphone is OFF. Click to restart.", Severity.WARNING)
            return
        if self.state != ListeningState.LISTENING:
            return

        if self.max_auto_restarts is not None and self.auto_restarts >= self.max_auto_restarts:
            self.state = ListeningState.IDLE
            logger.error("engine_restart_limit", extra={"auto_restarts": self.auto_restarts})
            self._status(
                f"Speech engine keeps stopping; gave up after {self.auto_restarts} restart(s).",
                Severity.ERROR,
            )
            return

        self.auto_restarts += 1
        logger.info("engine_auto_restart", extra={"auto_restarts": self.auto_restarts})
        try:
            self.engine.start()
        except Exception as e:
            self.state = ListeningState.IDLE
            self.last_error = str(e)
            logger.warning("engine_auto_restart_failed", extra={"error": str(e)})
            self._status(f"Could not resume listening. ({e})", Severity.ERROR)

    def on_engine_error(self, code: str) -> None:
        self.last_error = code
        logger.error("engine_error", extra={"code": code, "state": self.state.value})
        self._status(f"ERROR: Speech Recognition failed. ({code})", Severity.ERROR)
        if self.state == ListeningState.LISTENING:
            self.state = ListeningState.STOPPING_REQUESTED
        self.engine.stop()
