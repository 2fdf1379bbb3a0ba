"""
Async circuit breaker for the word service.

CLOSED lets every call through and counts consecutive failures. Reaching
the threshold opens the circuit: calls are refused with CircuitOpenError
without touching the backend. Once the cooldown has passed the breaker goes
HALF_OPEN and admits a single probe; its outcome decides between CLOSED
and another full cooldown.

State changes happen under an asyncio lock; the protected call itself runs
outside it. Each orchestrator owns its breaker, so independent pipelines
never share failure state.
"""

import asyncio
import time
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Awaitable, TypeVar, Optional

from core.exceptions import CircuitOpenError

T = TypeVar("T")


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerState:
    """Point-in-time view of the breaker, for diagnostics."""
    status: BreakerState
    consecutive_failures: int
    opened_at: Optional[float]


class AsyncCircuitBreaker:
    """
    Usage:
        breaker = AsyncCircuitBreaker(failure_threshold=5, recovery_timeout=30)
        words = await breaker.call(lambda: transport.generate(payload))
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        half_open_max_calls: int = 1,
        logger: Optional[logging.Logger] = None,
        metrics_callback: Optional[Callable[[str, Optional[dict]], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        :param failure_threshold: Consecutive failures that open a closed circuit.
        :param recovery_timeout: Cooldown in seconds before a probe is admitted.
        :param half_open_max_calls: Probes allowed in flight while HALF_OPEN.
        :param logger: Logger for state transitions; the module logger by default.
        :param metrics_callback: Receives event names such as "circuit.open",
                                 with or without a metadata dict.
        :param clock: Monotonic time source in seconds.
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max_calls = half_open_max_calls

        self._status = BreakerState.CLOSED
        self._consecutive_failures = 0
        self._opened_at: Optional[float] = None
        self._probes_in_flight = 0
        self._clock = clock
        self._lock = asyncio.Lock()

        self._logger = logger or logging.getLogger(__name__)
        self._metrics_callback = metrics_callback

    @property
    def state(self) -> str:
        return self._status.value

    @property
    def failure_count(self) -> int:
        return self._consecutive_failures

    @property
    def opened_at(self) -> Optional[float]:
        return self._opened_at

    def snapshot(self) -> CircuitBreakerState:
        return CircuitBreakerState(
            status=self._status,
            consecutive_failures=self._consecutive_failures,
            opened_at=self._opened_at,
        )

    async def is_open(self) -> bool:
        """
        True while calls would be refused outright.
        Moves an expired OPEN circuit to HALF_OPEN as a side effect.
        """
        async with self._lock:
            self._maybe_recover()
            return self._status == BreakerState.OPEN

    async def reset(self) -> None:
        """Force the circuit CLOSED, e.g. after the backend was fixed by hand."""
        async with self._lock:
            self._status = BreakerState.CLOSED
            self._consecutive_failures = 0
            self._opened_at = None
            self._probes_in_flight = 0
            self._logger.info("Word service breaker reset", extra={"event": "breaker_reset"})
            self._emit_metric("circuit.closed")

    async def record_failure(self) -> None:
        """Outcome reported by hand; settles a HALF_OPEN circuit like a probe result."""
        async with self._lock:
            self._on_failure(probe=True)

    async def record_success(self) -> None:
        async with self._lock:
            self._on_success(probe=True)

    # --- transitions (lock held) ---

    def _remaining_cooldown(self) -> float:
        if self._opened_at is None:
            return 0.0
        return max(0.0, self.recovery_timeout - (self._clock() - self._opened_at))

    def _maybe_recover(self) -> None:
        if self._status == BreakerState.OPEN and self._remaining_cooldown() <= 0:
            self._status = BreakerState.HALF_OPEN
            self._probes_in_flight = 0
            self._logger.info(
                "Word service breaker half-open, next call is a probe",
                extra={"event": "breaker_half_open", "cooldown": self.recovery_timeout},
            )
            self._emit_metric("circuit.half_open")

    def _admit(self) -> bool:
        """Raise CircuitOpenError or let the call through. True if the call is the HALF_OPEN probe."""
        self._maybe_recover()

        if self._status == BreakerState.OPEN:
            self._emit_metric("circuit.rejected")
            raise CircuitOpenError(reopens_in=self._remaining_cooldown())

        if self._status == BreakerState.HALF_OPEN:
            if self._probes_in_flight >= self.half_open_max_calls:
                self._emit_metric("circuit.rejected")
                raise CircuitOpenError("Circuit breaker HALF_OPEN probe already in flight", reopens_in=0.0)
            self._probes_in_flight += 1
            return True
        return False

    def _on_failure(self, probe: bool = False) -> None:
        self._consecutive_failures += 1
        self._emit_metric("circuit.failure")
        self._logger.debug(
            "Word service call failed",
            extra={"event": "breaker_failure", "consecutive_failures": self._consecutive_failures},
        )

        if self._status == BreakerState.HALF_OPEN:
            # Only the probe decides; a call admitted before the trip just counts
            if probe:
                self._trip()
        elif self._status == BreakerState.CLOSED and self._consecutive_failures >= self.failure_threshold:
            self._trip()

    def _trip(self) -> None:
        self._status = BreakerState.OPEN
        self._opened_at = self._clock()
        self._probes_in_flight = 0
        self._logger.warning(
            "Word service breaker opened",
            extra={
                "event": "breaker_open",
                "threshold": self.failure_threshold,
                "consecutive_failures": self._consecutive_failures,
                "cooldown": self.recovery_timeout,
            },
        )
        self._emit_metric("circuit.open")

    def _on_success(self, probe: bool = False) -> None:
        self._emit_metric("circuit.success")

        if self._status == BreakerState.OPEN:
            # Late result of a call admitted before the circuit opened
            return

        if self._status == BreakerState.HALF_OPEN:
            if not probe:
                return
            self._status = BreakerState.CLOSED
            self._opened_at = None
            self._logger.info("Word service breaker closed after probe", extra={"event": "breaker_closed"})
            self._emit_metric("circuit.closed")

        self._consecutive_failures = 0
        self._probes_in_flight = 0

    def _emit_metric(self, name: str, metadata: Optional[dict] = None) -> None:
        """Call the metrics callback; it must never affect the breaker."""
        if not self._metrics_callback:
            return
        try:
            try:
                self._metrics_callback(name, metadata or {})
            except TypeError:
                # One-argument callback
                self._metrics_callback(name)
        except Exception:
            self._logger.debug("Breaker metrics callback failed", exc_info=True)

    async def call(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        Run `func` under the breaker.

        :raises CircuitOpenError: the circuit is OPEN or the probe slot is taken;
                                  `func` was not called.
        Anything `func` raises is counted as a failure and re-raised.
        """
        async with self._lock:
            probe = self._admit()

        try:
            result = await func()
        except asyncio.CancelledError:
            # Cancellation says nothing about the backend; free the probe slot
            async with self._lock:
                if probe and self._status == BreakerState.HALF_OPEN and self._probes_in_flight > 0:
                    self._probes_in_flight -= 1
            raise
        except Exception:
            async with self._lock:
                self._on_failure(probe)
            raise
        async with self._lock:
            self._on_success(probe)
        return result
