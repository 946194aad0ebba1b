from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Sequence

from saralcap.app.bootstrap import IdentityBootstrap
from saralcap.app.state import ListeningState, ListeningStateMachine
from saralcap.asr.source_base import SpeechError, SpeechSource, SpeechUnsupportedError
from saralcap.contracts import Severity, TranscriptSegment
from saralcap.live.pipeline import CaptionPipeline
from saralcap.nlp.transform.retrying import RetryingTransformClient
from saralcap.ui.sink import CaptionSink

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNSUPPORTED = 2


def _log_event(level: int, event: str, **fields: Any) -> None:
    logger.log(level, event, extra=fields)


class CaptionSession:
    """
    Wires one speech source to the listening state machine and the caption
    pipeline, and owns their shutdown. Acts as the source's listener.
    """

    def __init__(
        self,
        *,
        source: SpeechSource,
        pipeline: CaptionPipeline,
        sink: CaptionSink,
        bootstrap: Optional[IdentityBootstrap] = None,
        max_auto_restarts: int | None = None,
    ) -> None:
        self.source = source
        self.pipeline = pipeline
        self.sink = sink
        self.bootstrap = bootstrap
        self.state = ListeningStateMachine(
            source,
            on_status=sink.status_message,
            max_auto_restarts=max_auto_restarts,
        )
        self._idle = asyncio.Event()
        self._idle.set()
        source.bind(self)

    # -- speech listener -------------------------------------------------

    def on_start(self) -> None:
        self.state.on_engine_started()

    def on_result(self, segments: Sequence[TranscriptSegment]) -> None:
        if self.state.state == ListeningState.IDLE:
            return
        self.pipeline.on_result(segments)

    def on_end(self) -> None:
        self.state.on_engine_terminated()
        self._sync_idle()

    def on_error(self, code: str) -> None:
        self.state.on_engine_error(code)
        self._sync_idle()

    # -- control ---------------------------------------------------------

    def _sync_idle(self) -> None:
        if self.state.state == ListeningState.IDLE:
            self._idle.set()
        else:
            self._idle.clear()

    def start(self) -> bool:
        if self.bootstrap is not None:
            self.bootstrap.launch()
        try:
            self.state.start()
        except SpeechError as e:
            _log_event(logging.ERROR, "listening_start_failed", error=str(e))
            self.sink.status_message(f"ERROR: Could not start listening. ({e})", Severity.ERROR)
            return False
        self._sync_idle()
        return True

    def stop(self) -> bool:
        return self.state.request_stop()

    def toggle(self) -> ListeningState:
        try:
            return self.state.toggle()
        finally:
            self._sync_idle()

    def set_target_language(self, language: str) -> None:
        self.pipeline.set_target_language(language)

    async def wait_idle(self) -> None:
        await self._idle.wait()

    async def close(self, *, timeout: float = 5.0, engine_timeout: float = 30.0) -> None:
        """
        Stop listening and flush. `timeout` bounds the wait for the engine to
        report its end; `engine_timeout` bounds the wait for an engine that is
        still finishing its last utterance.
        """
        if self.state.request_stop():
            try:
                await asyncio.wait_for(self.wait_idle(), timeout=timeout)
            except asyncio.TimeoutError:
                _log_event(logging.WARNING, "engine_stop_timeout", timeout=timeout)
        await self.source.wait_closed(timeout=engine_timeout)
        if self.source.running:
            _log_event(logging.WARNING, "engine_close_timeout", timeout=engine_timeout)
        await self.pipeline.drain()
        await self.pipeline.client.service.aclose()
        if self.bootstrap is not None:
            await self.bootstrap.aclose()


def build_session(args: Any, sink: CaptionSink) -> CaptionSession:
    from saralcap.app.services import build_caption_services

    services = build_caption_services(args)

    def _on_retry(attempt: int, delay_ms: float, error: BaseException) -> None:
        sink.status_message(
            f"API call failed. Retrying in {int(delay_ms / 1000 + 0.5)}s...",
            Severity.WARNING,
        )

    client = RetryingTransformClient(
        services.transform,
        max_retries=int(args.max_retries),
        base_delay_ms=float(args.retry_base_ms),
        jitter_ms=float(args.retry_jitter_ms),
        on_retry=_on_retry,
    )
    pipeline = CaptionPipeline(
        client=client,
        sink=sink,
        target_language=str(args.target_language),
        error_preview_chars=int(args.error_preview_chars),
    )
    return CaptionSession(
        source=services.source,
        pipeline=pipeline,
        sink=sink,
        bootstrap=services.bootstrap,
        max_auto_restarts=args.max_auto_restarts,
    )


async def run_session(args: Any, sink: CaptionSink) -> int:
    """Caption until listening returns to IDLE, then shut down cleanly."""
    try:
        session = build_session(args, sink)
    except SpeechUnsupportedError as e:
        _log_event(logging.ERROR, "speech_unsupported", error=str(e))
        sink.status_message(f"ERROR: Speech recognition is not available here. {e}", Severity.ERROR)
        return EXIT_UNSUPPORTED
    except ValueError as e:
        _log_event(logging.ERROR, "transform_config_invalid", error=str(e))
        sink.status_message(f"ERROR: {e}", Severity.ERROR)
        return EXIT_UNSUPPORTED

    _log_event(
        logging.INFO,
        "session_start",
        speech=session.source.name,
        transform=session.pipeline.client.service.name,
        target_language=session.pipeline.target_language,
    )
    try:
        if session.start():
            await session.wait_idle()
    finally:
        await session.close()
        _log_event(logging.INFO, "session_stop", captions=len(session.pipeline.history))
    return EXIT_OK
