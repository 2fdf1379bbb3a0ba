"""
Per-stage latency monitoring against SLA thresholds.

The monitor is purely observational: measuring a stage never changes the
outcome of the code it wraps, and recording problems are logged, not raised.

Samples feed two views. Rolling history (`average`, `latest`) covers every
measurement. `snapshot()` only covers the stages timed inside the most
recent `call()` scope, so a cache hit never reports the timings of an
earlier request.
"""

import logging
import time
from collections import deque
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Callable, Deque, Dict, Iterator, Optional

from core import metrics

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    INPUT_VALIDATION = "input_validation"
    NETWORK = "network"
    SECONDARY_VALIDATION = "secondary_validation"


# Milliseconds
DEFAULT_THRESHOLDS: Dict[Stage, float] = {
    Stage.INPUT_VALIDATION: 100.0,
    Stage.NETWORK: 2000.0,
    Stage.SECONDARY_VALIDATION: 500.0,
}


@dataclass(frozen=True)
class PerformanceSample:
    stage: Stage
    duration_ms: float
    threshold_ms: float
    compliant: bool


@dataclass(frozen=True)
class PerformanceMetrics:
    """
    Stage timings of one pipeline call, in milliseconds.
    Stages the call never reached are 0. `total_time` is generation plus
    validation; input processing is reported but not part of the total.
    """
    input_processing_time: float = 0.0
    generation_time: float = 0.0
    validation_time: float = 0.0
    total_time: float = 0.0
    sla_compliant: bool = True

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_samples(cls, samples: Dict[Stage, PerformanceSample]) -> "PerformanceMetrics":
        durations = {stage: s.duration_ms for stage, s in samples.items()}
        generation = durations.get(Stage.NETWORK, 0.0)
        validation = durations.get(Stage.SECONDARY_VALIDATION, 0.0)
        return cls(
            input_processing_time=durations.get(Stage.INPUT_VALIDATION, 0.0),
            generation_time=generation,
            validation_time=validation,
            total_time=generation + validation,
            sla_compliant=all(s.compliant for s in samples.values()),
        )


class PerformanceMonitor:
    def __init__(
        self,
        thresholds: Optional[Dict[Stage, float]] = None,
        window: int = 50,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.thresholds = dict(DEFAULT_THRESHOLDS)
        if thresholds:
            self.thresholds.update(thresholds)
        self._clock = clock
        self._history: Dict[Stage, Deque[float]] = {s: deque(maxlen=window) for s in Stage}
        self._latest: Dict[Stage, PerformanceSample] = {}
        self._last_call = PerformanceMetrics()
        # Samples of the call scope active in the current task; child tasks share it
        self._call_samples: ContextVar[Optional[Dict[Stage, PerformanceSample]]] = ContextVar(
            "performance_call_samples", default=None
        )

    def record(self, stage: Stage, duration_ms: float) -> Optional[PerformanceSample]:
        """Store one measurement. Returns the sample, or None if it could not be recorded."""
        try:
            threshold = self.thresholds[stage]
            sample = PerformanceSample(
                stage=stage,
                duration_ms=duration_ms,
                threshold_ms=threshold,
                compliant=duration_ms <= threshold,
            )
            self._history[stage].append(duration_ms)
            self._latest[stage] = sample
            current = self._call_samples.get()
            if current is not None:
                current[stage] = sample
            metrics.record_stage(stage.value, duration_ms, sample.compliant)
            if not sample.compliant:
                logger.info(
                    "SLA threshold exceeded",
                    extra={
                        "event": "sla_violation",
                        "stage": stage.value,
                        "duration_ms": round(duration_ms, 2),
                        "threshold_ms": threshold,
                    },
                )
            return sample
        except Exception:
            logger.debug("Performance sample dropped", exc_info=True)
            return None

    @contextmanager
    def measure(self, stage: Stage) -> Iterator[None]:
        """
        Time the wrapped block as one sample of `stage`.
        The sample is recorded whether the block succeeds or raises;
        exceptions from the block propagate untouched.
        """
        start = self._clock()
        try:
            yield
        finally:
            self.record(stage, (self._clock() - start) * 1000.0)

    @contextmanager
    def call(self) -> Iterator[None]:
        """
        Scope one pipeline call. On exit the stages measured inside it become
        the new `snapshot()`, even if the call raised. Nested scopes join the
        outer one.
        """
        if self._call_samples.get() is not None:
            yield
            return

        samples: Dict[Stage, PerformanceSample] = {}
        token = self._call_samples.set(samples)
        try:
            yield
        finally:
            self._call_samples.reset(token)
            self._last_call = PerformanceMetrics.from_samples(samples)

    def average(self, stage: Stage) -> Optional[float]:
        """Rolling average duration (ms) of the last samples of `stage`."""
        history = self._history[stage]
        if not history:
            return None
        return sum(history) / len(history)

    def averages(self) -> Dict[str, Optional[float]]:
        return {stage.value: self.average(stage) for stage in Stage}

    def latest(self, stage: Stage) -> Optional[PerformanceSample]:
        return self._latest.get(stage)

    def snapshot(self) -> PerformanceMetrics:
        """Timings of the most recently finished call."""
        return self._last_call

    def reset(self) -> None:
        for history in self._history.values():
            history.clear()
        self._latest.clear()
        self._last_call = PerformanceMetrics()
