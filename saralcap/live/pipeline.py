# saralcap/live/pipeline.py
from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence, Set

from saralcap.app.diagnostics import error_caption_text, error_message
from saralcap.contracts import (
    CaptionHistory,
    CaptionRecord,
    ProcessingRequest,
    Severity,
    TranscriptSegment,
)
from saralcap.live.gate import Admission, ProcessingGate
from saralcap.nlp.transform.retrying import RetryingTransformClient
from saralcap.ui.sink import CaptionSink

logger = logging.getLogger(__name__)


def coalesce_result(segments: Sequence[TranscriptSegment]) -> list[TranscriptSegment]:
    """
    Fold one engine result batch into at most one interim and one final segment.
    Texts are concatenated in order; each keeps the sequence of its last part.
    """
    interim: list[TranscriptSegment] = []
    final: list[TranscriptSegment] = []
    for seg in segments:
        (final if seg.is_final else interim).append(seg)

    out: list[TranscriptSegment] = []
    if interim:
        out.append(
            TranscriptSegment(
                text="".join(s.text for s in interim),
                is_final=False,
                sequence=interim[-1].sequence,
            )
        )
    if final:
        out.append(
            TranscriptSegment(
                text="".join(s.text for s in final),
                is_final=True,
                sequence=final[-1].sequence,
            )
        )
    return out


class CaptionPipeline:
    """
    Routes transcript segments to the sink.

    Interim segments go straight out as low-confidence captions. Final segments
    go through the single-flight gate to the transform client; a final segment
    that arrives while another is in flight is dropped.
    """

    def __init__(
        self,
        *,
        client: RetryingTransformClient,
        sink: CaptionSink,
        gate: Optional[ProcessingGate] = None,
        target_language: str = "Hindi",
        error_preview_chars: int = 50,
    ) -> None:
        self.client = client
        self.sink = sink
        self.gate = gate or ProcessingGate()
        self.target_language = target_language
        self.error_preview_chars = int(error_preview_chars)
        self.history = CaptionHistory()
        self._tasks: Set[asyncio.Task] = set()

    def set_target_language(self, language: str) -> None:
        language = (language or "").strip()
        if not language or language == self.target_language:
            return
        self.target_language = language
        logger.info("target_language_changed", extra={"target_language": language})
        self.sink.status_message(f"Target language changed to {language}.", Severity.INFO)

    async def on_segment(self, segment: TranscriptSegment) -> None:
        if not segment.is_final:
            self.sink.interim_caption(segment.text)
            return

        raw = (segment.text or "").strip()
        if not raw:
            return

        req = ProcessingRequest(raw_text=raw, target_language=self.target_language)
        async with self.gate.admitted(req) as admission:
            if admission is Admission.REJECTED:
                logger.debug(
                    "segment_rejected_busy",
                    extra={"sequence": segment.sequence, "chars": len(raw)},
                )
                return
            await self._process(req, segment.sequence)

    async def _process(self, req: ProcessingRequest, sequence: int) -> None:
        lang = req.target_language
        self.sink.status_message(
            f"Processing: Simplification & Translation to {lang}...",
            Severity.INFO,
        )
        try:
            result = await self.client.invoke(req)
        except Exception as e:
            logger.error(
                "transform_failed",
                extra={"sequence": sequence, "error_type": type(e).__name__, "error": str(e)},
            )
            self.sink.error_caption(error_caption_text(e, max_len=self.error_preview_chars))
            self.sink.status_message(f"Error in ML pipeline: {error_message(e)}", Severity.ERROR)
            return

        record = CaptionRecord(
            translated_text=result.translated_text,
            simplified_text=result.simplified_text,
        )
        self.history.push(record)
        logger.info(
            "caption_delivered",
            extra={"sequence": sequence, "target_language": lang, "history_size": len(self.history)},
        )
        self.sink.final_caption(record)
        self.sink.status_message(f"Caption delivered in {lang}.", Severity.SUCCESS)

    def dispatch(self, segment: TranscriptSegment) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self.on_segment(segment))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def on_result(self, segments: Sequence[TranscriptSegment]) -> None:
        for seg in coalesce_result(segments):
            if seg.is_final and seg.text.strip():
                self.sink.status_message(f'Raw Transcript Captured: "{seg.text}"', Severity.INFO)
            self.dispatch(seg)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
