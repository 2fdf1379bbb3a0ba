# tests/conftest.py
import pytest

from core.config import Settings
from core.performance import PerformanceMonitor
from core.retry import RetryConfig
from pipeline.orchestrator import RequestOrchestrator
from tests.helpers import FakeClock, SleepRecorder


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeper(clock):
    return SleepRecorder(clock)


@pytest.fixture
def make_orchestrator(clock, sleeper):
    """Factory for an isolated pipeline on a fake clock with recorded backoff."""

    def _make(transport, **overrides):
        settings = Settings(**overrides)
        return RequestOrchestrator(
            transport,
            settings=settings,
            retry_config=RetryConfig(
                max_attempts=settings.retry_max_attempts,
                base_delay=settings.retry_base_delay,
                max_backoff=settings.retry_max_backoff,
                sleep=sleeper,
            ),
            monitor=PerformanceMonitor(),
            clock=clock,
        )

    return _make
