# pipeline/orchestrator.py
"""
Request orchestrator: the single entry point for word generation and
dictionary validation.

Every upward call goes through the same chain:

    validate -> cache -> rate limiter -> retry(breaker(transport))

A cache hit returns before the rate limiter and the breaker are consulted.
Only successful results are ever written to the cache.

All collaborators (cache, limiter, breaker, monitor) are owned by the
instance, so tests and independent sessions never share state.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from core import metrics
from core.cache import RequestCache
from core.circuit_breaker import AsyncCircuitBreaker
from core.config import Settings
from core.exceptions import RateLimitError, WordPipelineError
from core.performance import PerformanceMetrics, PerformanceMonitor, Stage
from core.rate_limiter import SlidingWindowRateLimiter
from core.request_context import get_request_id, new_request_id
from core.retry import RetryConfig, retry_async
from pipeline.models import GenerationRequest, WordResult, validation_cache_key
from pipeline.validation import validate_generation_request, validate_language, validate_word_input
from tools.word_api import WordServiceClient, WordTransport

logger = logging.getLogger(__name__)


class RequestOrchestrator:
    def __init__(
        self,
        transport: WordTransport,
        *,
        settings: Optional[Settings] = None,
        cache: Optional[RequestCache] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        breaker: Optional[AsyncCircuitBreaker] = None,
        retry_config: Optional[RetryConfig] = None,
        monitor: Optional[PerformanceMonitor] = None,
        clock: Callable[[], float] = time.monotonic,
        owns_transport: bool = False,
    ):
        settings = settings or Settings()
        self.settings = settings
        self.transport = transport
        self._owns_transport = owns_transport

        self.cache = cache or RequestCache(
            max_entries=settings.cache_max_entries,
            max_age=settings.cache_max_age,
            clock=clock,
        )
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            limit=settings.rate_limit,
            window_seconds=settings.rate_window,
            clock=clock,
        )
        self.breaker = breaker or AsyncCircuitBreaker(
            failure_threshold=settings.breaker_failure_threshold,
            recovery_timeout=settings.breaker_cooldown,
            metrics_callback=metrics.breaker_metrics,
            clock=clock,
        )
        self.retry_config = retry_config or RetryConfig(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            max_backoff=settings.retry_max_backoff,
            on_retry=lambda attempt, delay, exc: metrics.record_retry(exc),
        )
        self.monitor = monitor or PerformanceMonitor()

    @classmethod
    def from_settings(cls, settings: Settings) -> "RequestOrchestrator":
        """Build a pipeline talking to the configured word service over HTTP."""
        transport = WordServiceClient(settings.word_api_base_url, timeout=settings.word_api_timeout)
        return cls(transport, settings=settings, owns_transport=True)

    # ------------------------------------------------------------------
    # Upward interface
    # ------------------------------------------------------------------

    async def generate_words(self, request: GenerationRequest) -> List[WordResult]:
        """
        Generate words for `request`.

        Raises ValidationError, RateLimitError, CircuitOpenError or the last
        TransportError seen once retries are exhausted.
        """
        with self.monitor.call():
            return await self._generate(request)

    async def _generate(self, request: GenerationRequest) -> List[WordResult]:
        request_id = get_request_id() or new_request_id()

        with self.monitor.measure(Stage.INPUT_VALIDATION):
            validate_generation_request(request)

        key = request.cache_key()
        cached = self._cache_lookup(key, "generate")
        if cached is not None:
            metrics.record_request("generate", "cache_hit")
            return cached

        self._acquire("generate")
        payload = request.to_payload()
        logger.info(
            "Word generation request started",
            extra={"event": "generate_start", "language": payload["language"], "chars": len(payload["characters"])},
        )

        try:
            with self.monitor.measure(Stage.NETWORK):
                combinations = await self._call(lambda: self.transport.generate(payload), request_id)
        except WordPipelineError as e:
            metrics.record_request("generate", type(e).__name__)
            raise

        results = [r for r in (WordResult.from_combination(c) for c in combinations) if r is not None]
        self._store(key, results)
        metrics.record_request("generate", "success")
        logger.info(
            "Word generation request completed",
            extra={"event": "generate_done", "words": len(results)},
        )
        return list(results)

    async def validate_word(self, word: str, language: str) -> bool:
        """
        Secondary dictionary check for one candidate word.
        Positive answers are cached; negative ones are asked again next time.
        """
        with self.monitor.call():
            with self.monitor.measure(Stage.SECONDARY_VALIDATION):
                return await self._lookup(word, language)

    async def _lookup(self, word: str, language: str) -> bool:
        request_id = get_request_id() or new_request_id()

        normalized = validate_word_input(word, language)
        language = validate_language(language)

        key = validation_cache_key(normalized, language)
        cached = self._cache_lookup(key, "validate")
        if cached is not None:
            metrics.record_request("validate", "cache_hit")
            return cached

        self._acquire("validate")
        try:
            valid = await self._call(lambda: self.transport.lookup(normalized, language), request_id)
        except WordPipelineError as e:
            metrics.record_request("validate", type(e).__name__)
            raise

        if valid:
            self._store(key, True)
        metrics.record_request("validate", "success")
        return bool(valid)

    async def generate_validated_words(self, request: GenerationRequest) -> List[WordResult]:
        """
        Generate candidates, then keep only those the dictionary confirms.
        A candidate whose lookup fails is dropped instead of failing the batch.
        """
        with self.monitor.call():
            words = await self._generate(request)
            if not words:
                return words

            # One secondary validation sample for the whole batch
            language = request.normalized().language
            with self.monitor.measure(Stage.SECONDARY_VALIDATION):
                outcomes = await asyncio.gather(
                    *(self._lookup(w.word, language) for w in words),
                    return_exceptions=True,
                )

        kept = []
        for word, outcome in zip(words, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, WordPipelineError):
                    raise outcome
                logger.warning(
                    "Dropping candidate after failed validation",
                    extra={"event": "validate_failed", "word": word.word, "error_type": type(outcome).__name__},
                )
                continue
            if outcome:
                kept.append(word)
        return kept

    async def check_health(self) -> Dict[str, Any]:
        """Ask the backend for its health, through the circuit breaker."""
        return await self.breaker.call(self.transport.health)

    @property
    def performance_metrics(self) -> PerformanceMetrics:
        return self.monitor.snapshot()

    def stats(self) -> Dict[str, Any]:
        cache_stats = self.cache.stats
        breaker = self.breaker.snapshot()
        return {
            "cache": {
                "size": cache_stats.size,
                "hits": cache_stats.hits,
                "misses": cache_stats.misses,
                "hit_rate": round(cache_stats.hit_rate, 4),
            },
            "rate_limiter": {
                "limit": self.rate_limiter.limit,
                "remaining": self.rate_limiter.remaining,
            },
            "circuit_breaker": {
                "status": breaker.status.value,
                "consecutive_failures": breaker.consecutive_failures,
                "opened_at": breaker.opened_at,
            },
        }

    async def aclose(self) -> None:
        if self._owns_transport and hasattr(self.transport, "aclose"):
            await self.transport.aclose()

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    def _cache_lookup(self, key: str, namespace: str) -> Optional[Any]:
        value = self.cache.get(key)
        metrics.record_cache_lookup(namespace, value is not None)
        if value is not None:
            logger.debug("Cache hit", extra={"event": "cache_hit", "namespace": namespace})
        return value

    def _store(self, key: str, value: Any) -> None:
        if key not in self.cache and len(self.cache) >= self.cache.max_entries:
            self.cache.purge_expired()
        self.cache.set(key, value)

    def _acquire(self, operation: str) -> None:
        if not self.rate_limiter.try_acquire():
            retry_after = self.rate_limiter.retry_after()
            metrics.RATE_LIMIT_REJECTIONS.labels(operation=operation).inc()
            metrics.record_request(operation, "RateLimitError")
            logger.warning(
                "Local rate limit reached",
                extra={"event": "rate_limited", "operation": operation, "retry_after": round(retry_after, 3)},
            )
            raise RateLimitError(retry_after=retry_after)

    async def _call(self, operation, request_id: str):
        # Each attempt passes through the breaker, so every failed try counts
        return await retry_async(
            lambda: self.breaker.call(operation),
            config=self.retry_config,
            request_id=request_id,
            breaker=self.breaker,
        )
