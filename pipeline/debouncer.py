# pipeline/debouncer.py
"""
Trailing-edge debounce between keystrokes and the orchestrator.

Each valid keystroke restarts a quiet-period timer; only the last value of a
burst reaches the orchestrator. A generation counter tags every call, so a
response that arrives after a newer keystroke (or after `close()`) is
dropped instead of being delivered out of order.
"""

import asyncio
import logging
from typing import Any, Callable, List, Optional, Set

from core.exceptions import ValidationError
from core.performance import PerformanceMonitor, Stage
from pipeline.models import GenerationRequest, WordResult
from pipeline.validation import validate_characters

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.3


class InputDebouncer:
    def __init__(
        self,
        orchestrator: Any,
        *,
        language: Optional[str] = None,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None,
        include_definitions: bool = False,
        delay: Optional[float] = None,
        on_result: Optional[Callable[[List[WordResult]], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        monitor: Optional[PerformanceMonitor] = None,
    ):
        self.orchestrator = orchestrator
        settings = getattr(orchestrator, "settings", None)
        self.language = language or getattr(settings, "default_language", "en")
        self.min_length = min_length
        self.max_length = max_length
        self.include_definitions = include_definitions
        if delay is None:
            delay = getattr(settings, "debounce_delay", DEBOUNCE_SECONDS)
        self.delay = delay
        self.on_result = on_result
        self.on_error = on_error
        self.monitor = monitor or getattr(orchestrator, "monitor", None) or PerformanceMonitor()

        self._generation = 0
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pending(self) -> bool:
        """True while a quiet-period timer is armed."""
        return self._handle is not None

    def on_change(self, raw_text: str) -> None:
        """
        Feed one keystroke's worth of input.

        Invalid input raises ValidationError right away and schedules nothing.
        Must be called from inside the running event loop.
        """
        if self._closed:
            raise RuntimeError("InputDebouncer is closed")

        with self.monitor.measure(Stage.INPUT_VALIDATION):
            try:
                text = validate_characters(raw_text, self.language)
            except ValidationError:
                logger.debug("Keystroke rejected", extra={"event": "input_rejected"})
                raise

        self._cancel_timer()
        self._generation += 1
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire, text, self._generation)

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, text: str, generation: int) -> None:
        self._handle = None
        request = GenerationRequest(
            characters=text,
            language=self.language,
            min_length=self.min_length,
            max_length=self.max_length,
            include_definitions=self.include_definitions,
        )
        task = asyncio.get_running_loop().create_task(self._run(request, generation))
        # Keep a strong reference until the task finishes
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    async def _run(self, request: GenerationRequest, generation: int) -> None:
        try:
            words = await self.orchestrator.generate_words(request)
        except Exception as e:
            if not self._is_current(generation):
                logger.debug("Discarding stale error", extra={"event": "stale_error", "generation": generation})
                return
            if self.on_error is None:
                logger.warning(
                    "Debounced generation failed",
                    extra={"event": "debounced_error", "error_type": type(e).__name__, "error_message": str(e)},
                )
                return
            self.on_error(e)
            return

        if not self._is_current(generation):
            logger.debug("Discarding stale result", extra={"event": "stale_result", "generation": generation})
            return
        if self.on_result is not None:
            self.on_result(words)

    async def wait_idle(self) -> None:
        """Wait for calls already fired to finish (does not fire a pending timer)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        """Cancel any pending timer and drop results still in flight."""
        self._cancel_timer()
        self._closed = True
        self._generation += 1
