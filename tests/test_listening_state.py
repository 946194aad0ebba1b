from __future__ import annotations

import pytest

from saralcap.app.state import EngineAlreadyRunning, ListeningState, ListeningStateMachine
from saralcap.asr.source_base import SpeechSource, SpeechUnavailable
from saralcap.contracts import Severity


class FakeEngine(SpeechSource):
    def __init__(self, fail_starts_after: int | None = None) -> None:
        super().__init__()
        self.start_calls = 0
        self.stop_calls = 0
        self.fail_starts_after = fail_starts_after
        self._running = False

    @property
    def name(self) -> str:
        return "fake"

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self.fail_starts_after is not None and self.start_calls >= self.fail_starts_after:
            raise SpeechUnavailable("not allowed")
        self.start_calls += 1
        self._running = True

    def stop(self) -> None:
        self.stop_calls += 1
        self._running = False


def _machine(engine: FakeEngine, **kwargs):
    statuses: list[tuple[str, Severity]] = []
    machine = ListeningStateMachine(engine, on_status=lambda t, s: statuses.append((t, s)), **kwargs)
    return machine, statuses


def test_start_moves_to_listening_and_reports() -> None:
    engine = FakeEngine()
    machine, statuses = _machine(engine)

    machine.start()

    assert machine.state == ListeningState.LISTENING
    assert engine.start_calls == 1
    assert statuses == [("Microphone is ON. Listening for speech.", Severity.SUCCESS)]


def test_duplicate_start_raises() -> None:
    machine, _ = _machine(FakeEngine())
    machine.start()
    with pytest.raises(EngineAlreadyRunning):
        machine.start()


def test_failed_engine_start_stays_idle() -> None:
    engine = FakeEngine(fail_starts_after=0)
    machine, statuses = _machine(engine)
    with pytest.raises(SpeechUnavailable):
        machine.start()
    assert machine.state == ListeningState.IDLE
    assert statuses == []


def test_unsolicited_termination_restarts_exactly_once() -> None:
    engine = FakeEngine()
    machine, _ = _machine(engine)
    machine.start()

    machine.on_engine_terminated()

    assert engine.start_calls == 2
    assert machine.state == ListeningState.LISTENING
    assert machine.auto_restarts == 1


def test_explicit_stop_then_termination_goes_idle_without_restart() -> None:
    engine = FakeEngine()
    machine, statuses = _machine(engine)
    machine.start()

    assert machine.request_stop() is True
    assert machine.state == ListeningState.STOPPING_REQUESTED
    assert engine.stop_calls == 1

    machine.on_engine_terminated()

    assert machine.state == ListeningState.IDLE
    assert engine.start_calls == 1
    assert statuses[-1] == ("Microphone is OFF. Click to restart.", Severity.WARNING)


def test_request_stop_when_idle_is_noop() -> None:
    engine = FakeEngine()
    machine, _ = _machine(engine)
    assert machine.request_stop() is False
    assert engine.stop_calls == 0


def test_engine_error_stops_without_retry() -> None:
    engine = FakeEngine()
    machine, statuses = _machine(engine)
    machine.start()

    machine.on_engine_error("network")
    assert engine.stop_calls == 1
    assert statuses[-1] == ("ERROR: Speech Recognition failed. (network)", Severity.ERROR)

    machine.on_engine_terminated()
    assert machine.state == ListeningState.IDLE
    assert engine.start_calls == 1
    assert machine.last_error == "network"


def test_restart_failure_goes_idle_with_error() -> None:
    engine = FakeEngine(fail_starts_after=1)
    machine, statuses = _machine(engine)
    machine.start()

    machine.on_engine_terminated()

    assert machine.state == ListeningState.IDLE
    assert statuses[-1][1] == Severity.ERROR
    assert "not allowed" in statuses[-1][0]


def test_restart_cap_gives_up() -> None:
    engine = FakeEngine()
    machine, statuses = _machine(engine, max_auto_restarts=2)
    machine.start()

    for _ in range(3):
        machine.on_engine_terminated()

    assert engine.start_calls == 3
    assert machine.state == ListeningState.IDLE
    assert statuses[-1][1] == Severity.ERROR


def test_toggle_starts_and_stops() -> None:
    engine = FakeEngine()
    machine, _ = _machine(engine)
    assert machine.toggle() == ListeningState.LISTENING
    assert machine.toggle() == ListeningState.STOPPING_REQUESTED
    machine.on_engine_terminated()
    assert machine.state == ListeningState.IDLE


def test_termination_while_idle_is_ignored() -> None:
    engine = FakeEngine()
    machine, statuses = _machine(engine)
    machine.on_engine_terminated()
    assert engine.start_calls == 0
    assert statuses == []
