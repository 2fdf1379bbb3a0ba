"""Local sliding-window admission control for calls to the word service."""

import threading
import time
from collections import deque
from typing import Callable, Deque


class SlidingWindowRateLimiter:
    """
    Admits at most `limit` calls in any trailing `window_seconds` interval.

    Rejection is immediate: there is no queueing. A False from `try_acquire`
    must be surfaced as a RateLimitError, never retried.
    """

    def __init__(
        self,
        limit: int = 100,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if limit <= 0:
            raise ValueError("limit must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._events: Deque[float] = deque()
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._events and self._events[0] <= cutoff:
            self._events.popleft()

    def try_acquire(self) -> bool:
        now = self._clock()
        with self._lock:
            self._prune(now)
            if len(self._events) >= self.limit:
                return False
            self._events.append(now)
            return True

    def retry_after(self) -> float:
        """Seconds until the oldest admitted call leaves the window."""
        now = self._clock()
        with self._lock:
            self._prune(now)
            if len(self._events) < self.limit:
                return 0.0
            return max(self.window_seconds - (now - self._events[0]), 0.0)

    @property
    def remaining(self) -> int:
        with self._lock:
            self._prune(self._clock())
            return self.limit - len(self._events)

    def reset(self) -> None:
        with self._lock:
            self._events.clear()
