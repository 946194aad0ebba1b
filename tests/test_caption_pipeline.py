from __future__ import annotations

import asyncio
import json

import pytest

from saralcap.contracts import Severity, TranscriptSegment
from saralcap.live.pipeline import CaptionPipeline, coalesce_result
from saralcap.nlp.transform.base import TransformService, TransientTransformError
from saralcap.nlp.transform.retrying import RetryingTransformClient
from saralcap.ui.sink import RecordingSink

HINDI = json.dumps({"simplified_english_text": "Meeting at 3.", "translated_text": "बैठक 3 बजे है।"})


class ScriptedService(TransformService):
    def __init__(self, outcomes) -> None:
        self.outcomes = list(outcomes)
        self.requests = []

    @property
    def name(self) -> str:
        return "scripted"

    async def fetch(self, req):
        self.requests.append(req)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class BlockingService(TransformService):
    """Holds every call until released, so the gate stays busy."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.requests = []

    @property
    def name(self) -> str:
        return "blocking"

    async def fetch(self, req):
        self.requests.append(req)
        await self.release.wait()
        return json.dumps({"simplified_english_text": req.raw_text, "translated_text": f"T({req.raw_text})"})


class FakeSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _pipeline(service, sink, sleep=None, **kwargs) -> CaptionPipeline:
    client = RetryingTransformClient(service, sleep=sleep or FakeSleep(), rng=lambda: 0.5)
    return CaptionPipeline(client=client, sink=sink, **kwargs)


@pytest.mark.asyncio
async def test_final_segment_retries_then_delivers_hindi_caption() -> None:
    sink = RecordingSink()
    sleep = FakeSleep()
    service = ScriptedService([TransientTransformError("503"), TransientTransformError("503"), HINDI])
    pipeline = _pipeline(service, sink, sleep=sleep, target_language="Hindi")

    await pipeline.on_segment(
        TranscriptSegment(text="um so basically the meeting is at three", is_final=True, sequence=1)
    )

    assert [r.raw_text for r in service.requests] == ["um so basically the meeting is at three"] * 3
    assert service.requests[0].target_language == "Hindi"
    assert 1.0 <= sleep.delays[0] < 2.0
    assert 2.0 <= sleep.delays[1] < 3.0
    finals = sink.of_kind("final")
    assert len(finals) == 1
    assert finals[0].translated_text == "बैठक 3 बजे है।"
    assert finals[0].simplified_text == "Meeting at 3."
    assert len(pipeline.history) == 1
    assert pipeline.history.latest is finals[0]
    assert sink.of_kind("status")[-1] == ("Caption delivered in Hindi.", Severity.SUCCESS)
    assert not pipeline.gate.busy


@pytest.mark.asyncio
async def test_interim_segment_only_reaches_sink() -> None:
    sink = RecordingSink()
    service = ScriptedService([])
    pipeline = _pipeline(service, sink)

    await pipeline.on_segment(TranscriptSegment(text="the meet", is_final=False, sequence=1))

    assert sink.events == [("interim", "the meet")]
    assert service.requests == []
    assert pipeline.gate.admitted_count == 0
    assert pipeline.gate.rejected_count == 0
    assert len(pipeline.history) == 0


@pytest.mark.asyncio
async def test_blank_final_segment_is_ignored() -> None:
    sink = RecordingSink()
    service = ScriptedService([])
    pipeline = _pipeline(service, sink)

    await pipeline.on_segment(TranscriptSegment(text="   ", is_final=True, sequence=1))

    assert sink.events == []
    assert pipeline.gate.admitted_count == 0


@pytest.mark.asyncio
async def test_final_segments_while_busy_are_dropped_not_queued() -> None:
    sink = RecordingSink()
    service = BlockingService()
    pipeline = _pipeline(service, sink)

    pipeline.dispatch(TranscriptSegment(text="first", is_final=True, sequence=1))
    pipeline.dispatch(TranscriptSegment(text="second", is_final=True, sequence=2))
    pipeline.dispatch(TranscriptSegment(text="still talking", is_final=False, sequence=3))
    pipeline.dispatch(TranscriptSegment(text="third", is_final=True, sequence=4))
    for _ in range(5):
        await asyncio.sleep(0)

    assert [r.raw_text for r in service.requests] == ["first"]
    assert ("interim", "still talking") in sink.events
    assert pipeline.gate.rejected_count == 2

    service.release.set()
    await pipeline.drain()

    assert [r.translated_text for r in pipeline.history] == ["T(first)"]
    assert not pipeline.gate.busy

    await pipeline.on_segment(TranscriptSegment(text="fourth", is_final=True, sequence=5))
    assert [r.translated_text for r in pipeline.history] == ["T(fourth)", "T(first)"]


@pytest.mark.asyncio
async def test_exhausted_retries_emit_error_caption_and_pipeline_recovers() -> None:
    sink = RecordingSink()
    service = ScriptedService([TransientTransformError("upstream timed out after 15 seconds of waiting")] * 3 + [HINDI])
    pipeline = _pipeline(service, sink)

    await pipeline.on_segment(TranscriptSegment(text="hello there", is_final=True, sequence=1))

    errors = sink.of_kind("error")
    assert errors == ["Error: Could not process or translate. (upstream timed out after 15 seconds of waiting...)"]
    status_text, severity = sink.of_kind("status")[-1]
    assert severity == Severity.ERROR
    assert status_text.startswith("Error in ML pipeline: upstream timed out")
    assert len(pipeline.history) == 0
    assert not pipeline.gate.busy

    await pipeline.on_segment(TranscriptSegment(text="try again", is_final=True, sequence=2))
    assert len(pipeline.history) == 1


@pytest.mark.asyncio
async def test_malformed_response_error_caption_is_truncated() -> None:
    sink = RecordingSink()
    service = ScriptedService(["not json at all"])
    pipeline = _pipeline(service, sink, error_preview_chars=10)

    await pipeline.on_segment(TranscriptSegment(text="hello", is_final=True, sequence=1))

    assert len(service.requests) == 1
    [caption] = sink.of_kind("error")
    assert caption == "Error: Could not process or translate. (API respon...)"


@pytest.mark.asyncio
async def test_target_language_change_applies_to_next_request() -> None:
    sink = RecordingSink()
    service = ScriptedService([HINDI])
    pipeline = _pipeline(service, sink)

    pipeline.set_target_language("Tamil")
    await pipeline.on_segment(TranscriptSegment(text="hello", is_final=True, sequence=1))

    assert service.requests[0].target_language == "Tamil"
    assert sink.events[0] == ("status", ("Target language changed to Tamil.", Severity.INFO))


def test_coalesce_result_joins_like_the_engine_batches() -> None:
    batch = [
        TranscriptSegment(text="the meeting", is_final=True, sequence=1),
        TranscriptSegment(text=" is at three", is_final=True, sequence=2),
        TranscriptSegment(text=" and", is_final=False, sequence=3),
    ]
    assert coalesce_result(batch) == [
        TranscriptSegment(text=" and", is_final=False, sequence=3),
        TranscriptSegment(text="the meeting is at three", is_final=True, sequence=2),
    ]
    assert coalesce_result([]) == []


@pytest.mark.asyncio
async def test_on_result_reports_capture_and_processes_batch() -> None:
    sink = RecordingSink()
    service = ScriptedService([HINDI])
    pipeline = _pipeline(service, sink)

    pipeline.on_result(
        [
            TranscriptSegment(text="meeting at", is_final=True, sequence=1),
            TranscriptSegment(text=" three", is_final=True, sequence=2),
        ]
    )
    await pipeline.drain()

    assert sink.events[0] == ("status", ('Raw Transcript Captured: "meeting at three"', Severity.INFO))
    assert [r.raw_text for r in service.requests] == ["meeting at three"]
    assert len(pipeline.history) == 1


class BrokenDisplaySink(RecordingSink):
    def final_caption(self, record) -> None:
        raise RuntimeError("display detached")


@pytest.mark.asyncio
async def test_gate_is_released_when_delivery_raises() -> None:
    sink = BrokenDisplaySink()
    service = ScriptedService([HINDI, HINDI])
    pipeline = _pipeline(service, sink)

    with pytest.raises(RuntimeError, match="display detached"):
        await pipeline.on_segment(TranscriptSegment(text="first", is_final=True, sequence=1))

    assert not pipeline.gate.busy
    assert pipeline.gate.current is None
    with pytest.raises(RuntimeError):
        await pipeline.on_segment(TranscriptSegment(text="second", is_final=True, sequence=2))
    assert pipeline.gate.admitted_count == 2
    assert pipeline.gate.rejected_count == 0
