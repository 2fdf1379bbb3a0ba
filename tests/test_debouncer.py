import asyncio

import pytest

from core.config import Settings
from core.exceptions import NetworkError, ValidationError
from core.performance import PerformanceMonitor, Stage
from pipeline.debouncer import DEBOUNCE_SECONDS, InputDebouncer

DELAY = 0.02


class FakeOrchestrator:
    """Records requests; each call can be held open on a per-text gate."""

    def __init__(self, gates=None, errors=None):
        self.requests = []
        self.gates = gates or {}
        self.errors = errors or {}
        self.monitor = PerformanceMonitor()

    async def generate_words(self, request):
        self.requests.append(request)
        gate = self.gates.get(request.characters)
        if gate is not None:
            await gate.wait()
        if request.characters in self.errors:
            raise self.errors[request.characters]
        return [request.characters]


async def settle(debouncer):
    await asyncio.sleep(DELAY * 3)
    await debouncer.wait_idle()


@pytest.mark.asyncio
async def test_burst_of_keystrokes_sends_only_last_value():
    orchestrator = FakeOrchestrator()
    results = []
    debouncer = InputDebouncer(orchestrator, delay=DELAY, on_result=results.append)

    for text in ("c", "ca", "cat"):
        debouncer.on_change(text)
    assert debouncer.pending

    await settle(debouncer)

    assert [r.characters for r in orchestrator.requests] == ["cat"]
    assert results == [["cat"]]
    assert not debouncer.pending


@pytest.mark.asyncio
async def test_request_carries_debouncer_options():
    orchestrator = FakeOrchestrator()
    debouncer = InputDebouncer(
        orchestrator, language="es", min_length=3, max_length=5, include_definitions=True, delay=DELAY
    )

    debouncer.on_change(" NIÑO ")
    await settle(debouncer)

    request = orchestrator.requests[0]
    assert request.characters == "niño"
    assert request.language == "es"
    assert (request.min_length, request.max_length, request.include_definitions) == (3, 5, True)


@pytest.mark.asyncio
async def test_invalid_keystroke_raises_and_keeps_pending_timer():
    orchestrator = FakeOrchestrator()
    results = []
    debouncer = InputDebouncer(orchestrator, delay=DELAY, on_result=results.append)

    debouncer.on_change("cat")
    generation = debouncer.generation
    with pytest.raises(ValidationError):
        debouncer.on_change("ca7")

    assert debouncer.generation == generation
    await settle(debouncer)
    assert results == [["cat"]]


@pytest.mark.asyncio
async def test_invalid_input_schedules_nothing():
    orchestrator = FakeOrchestrator()
    debouncer = InputDebouncer(orchestrator, delay=DELAY)

    with pytest.raises(ValidationError):
        debouncer.on_change("")

    assert not debouncer.pending
    await settle(debouncer)
    assert orchestrator.requests == []


@pytest.mark.asyncio
async def test_stale_response_is_discarded():
    slow_gate = asyncio.Event()
    orchestrator = FakeOrchestrator(gates={"ca": slow_gate})
    results = []
    debouncer = InputDebouncer(orchestrator, delay=DELAY, on_result=results.append)

    debouncer.on_change("ca")
    await asyncio.sleep(DELAY * 2)
    assert len(orchestrator.requests) == 1

    # A newer keystroke arrives while "ca" is still in flight
    debouncer.on_change("cat")
    await asyncio.sleep(DELAY * 2)
    slow_gate.set()
    await debouncer.wait_idle()

    assert [r.characters for r in orchestrator.requests] == ["ca", "cat"]
    assert results == [["cat"]]


@pytest.mark.asyncio
async def test_errors_go_to_on_error():
    failure = NetworkError("down")
    orchestrator = FakeOrchestrator(errors={"cat": failure})
    errors = []
    debouncer = InputDebouncer(orchestrator, delay=DELAY, on_error=errors.append)

    debouncer.on_change("cat")
    await settle(debouncer)

    assert errors == [failure]


@pytest.mark.asyncio
async def test_errors_without_handler_are_logged(caplog):
    orchestrator = FakeOrchestrator(errors={"cat": NetworkError("down")})
    debouncer = InputDebouncer(orchestrator, delay=DELAY)

    debouncer.on_change("cat")
    await settle(debouncer)

    assert "Debounced generation failed" in caplog.text


@pytest.mark.asyncio
async def test_close_cancels_timer_and_drops_inflight_results():
    gate = asyncio.Event()
    orchestrator = FakeOrchestrator(gates={"ca": gate})
    results = []
    debouncer = InputDebouncer(orchestrator, delay=DELAY, on_result=results.append)

    debouncer.on_change("ca")
    await asyncio.sleep(DELAY * 2)
    debouncer.close()
    gate.set()
    await debouncer.wait_idle()

    assert results == []
    with pytest.raises(RuntimeError):
        debouncer.on_change("cat")


@pytest.mark.asyncio
async def test_close_before_fire_sends_nothing():
    orchestrator = FakeOrchestrator()
    debouncer = InputDebouncer(orchestrator, delay=DELAY)

    debouncer.on_change("cat")
    debouncer.close()
    await settle(debouncer)

    assert orchestrator.requests == []


@pytest.mark.asyncio
async def test_keystrokes_are_timed_on_the_orchestrator_monitor():
    orchestrator = FakeOrchestrator()
    debouncer = InputDebouncer(orchestrator, delay=DELAY)

    debouncer.on_change("cat")
    debouncer.close()

    assert orchestrator.monitor.latest(Stage.INPUT_VALIDATION) is not None


@pytest.mark.asyncio
async def test_defaults_come_from_orchestrator_settings():
    orchestrator = FakeOrchestrator()
    orchestrator.settings = Settings(default_language="de", debounce_delay=DELAY)
    debouncer = InputDebouncer(orchestrator)

    assert debouncer.language == "de"
    assert debouncer.delay == DELAY

    debouncer.on_change("straße")
    await settle(debouncer)
    assert orchestrator.requests[0].language == "de"


def test_defaults_without_settings():
    debouncer = InputDebouncer(FakeOrchestrator())
    assert debouncer.language == "en"
    assert debouncer.delay == DEBOUNCE_SECONDS
