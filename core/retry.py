# core/retry.py

import httpx
import asyncio
import random
import logging
import email.utils
import time
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Callable, Optional, Any, Awaitable

from core.circuit_breaker import AsyncCircuitBreaker
from core.exceptions import CircuitOpenError, RequestTimeoutError, WordPipelineError

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Configuration for retry behaviour.

    Attributes:
        max_attempts: Total number of tries, the first call included.
        base_delay: Delay before the first retry (seconds). The n-th retry waits
                    base_delay * 2**(n-1).
        max_backoff: Maximum delay between retries (seconds).
        jitter: If True, picks the delay uniformly from [0, exponential value]
                instead of using it as is.
        max_total_timeout: Optional global timeout for all attempts (seconds).
        per_attempt_timeout: Optional timeout for each individual attempt (seconds).
                             A timed out attempt surfaces as RequestTimeoutError.
        retry_filter: Optional custom callable to decide if an exception is retryable.
                      If None, the default filter is used.
        on_retry: Optional hook called before each retry sleep. Receives attempt (1-indexed),
                  delay (seconds), and the exception that triggered the retry.
        sleep: Coroutine used to wait between attempts.
    """
    max_attempts: int = 3
    base_delay: float = 1.0
    max_backoff: float = 30.0
    jitter: bool = False
    max_total_timeout: Optional[float] = None
    per_attempt_timeout: Optional[float] = None
    retry_filter: Optional[Callable[[Exception], bool]] = None
    on_retry: Optional[Callable[[int, float, Exception], None]] = None
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep


def default_retry_filter(exc: Exception) -> bool:
    """
    Default decision logic for retryable errors.

    Retries on:
        - Pipeline errors flagged `retryable` (network, timeout, 5xx, 429)
        - Raw httpx timeouts and connection errors
        - Exceptions with a 'status_code' attribute that indicates 429 or 5xx (except 501)
    Never retries ValidationError, RateLimitError, CircuitOpenError or ClientError.
    """
    if isinstance(exc, WordPipelineError):
        return exc.retryable

    # Network / connection problems
    if isinstance(exc, (httpx.TimeoutException, httpx.ConnectError, httpx.NetworkError)):
        return True

    # httpx HTTPStatusError
    if isinstance(exc, httpx.HTTPStatusError) and exc.response is not None:
        return is_retryable_status(exc.response.status_code)

    # Exceptions that directly expose a status_code (e.g., custom API errors)
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return is_retryable_status(status)

    return False


def is_retryable_status(status: int) -> bool:
    if status == 429:
        return True
    return 500 <= status < 600 and status != 501


def parse_retry_after(raw: Optional[str]) -> Optional[float]:
    """
    Parse a Retry-After header value: either delay seconds or an HTTP-date.
    Returns None when the value is missing or unparseable.
    """
    if raw is None:
        return None
    s = str(raw).strip()
    # Numeric seconds?
    if s.isdigit():
        return float(s)
    # Try parsing as HTTP-date (RFC 1123)
    try:
        parsed = email.utils.parsedate_to_datetime(s)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return max(0.0, (parsed - datetime.now(timezone.utc)).total_seconds())


def backoff_delay(attempt: int, config: RetryConfig, exc: Optional[Exception] = None) -> float:
    """
    Delay before retry number `attempt + 1` (attempt is 0-indexed).
    A server supplied Retry-After wins over the exponential schedule.
    """
    retry_after = getattr(exc, "retry_after", None) if exc is not None else None
    if isinstance(retry_after, (int, float)):
        return min(float(retry_after), config.max_backoff)

    exponential_cap = min(config.max_backoff, config.base_delay * (2 ** attempt))
    if config.jitter:
        # FULL jitter: pick uniformly from [0, exponential_cap]
        return random.uniform(0, exponential_cap)
    return exponential_cap


async def retry_async(
    func: Callable[[], Awaitable[Any]],
    *,
    config: Optional[RetryConfig] = None,
    request_id: Optional[str] = None,
    breaker: Optional[AsyncCircuitBreaker] = None,
) -> Any:
    """
    Execute an async function with retries.

    Important: This function should only be used on idempotent operations.
    Generation and dictionary lookups are read-only on the service side.

    Args:
        func: Async callable that takes no arguments and returns an awaitable.
        config: RetryConfig instance; if None, a default config is used.
        request_id: Optional identifier for logging correlation.
        breaker: Optional circuit breaker consulted before every retry. If it has
                 opened in the meantime the remaining retries are abandoned and
                 CircuitOpenError is raised.

    Returns:
        Result of the function call.

    Raises:
        The last exception encountered if all attempts fail or if a non‑retryable error occurs.
    """
    config = config or RetryConfig()
    retry_filter = config.retry_filter or default_retry_filter
    attempt = 0
    start_time = time.monotonic()

    while True:
        # Determine timeout for this attempt, clamped to the global deadline
        attempt_timeout = config.per_attempt_timeout
        if config.max_total_timeout is not None:
            remaining = config.max_total_timeout - (time.monotonic() - start_time)
            if remaining <= 0:
                raise RequestTimeoutError("retry_async: global max_total_timeout exceeded")
            attempt_timeout = remaining if attempt_timeout is None else min(attempt_timeout, remaining)

        try:
            if attempt_timeout is not None:
                return await asyncio.wait_for(func(), timeout=attempt_timeout)
            return await func()

        except asyncio.TimeoutError as te:
            exc = RequestTimeoutError("per-attempt timeout exceeded")
            exc.__cause__ = te

        except Exception as e:
            exc = e

        # ----- Unified retry handling -----
        should_retry = retry_filter(exc)
        elapsed = time.monotonic() - start_time
        timeout_exceeded = (
            config.max_total_timeout is not None and
            elapsed > config.max_total_timeout
        )

        if not should_retry or attempt >= config.max_attempts - 1 or timeout_exceeded:
            log = logger.error if should_retry else logger.warning
            log(
                "Retry exhausted or non‑retryable error",
                extra={
                    "event": "retry_failed",
                    "attempt": attempt + 1,
                    "max_attempts": config.max_attempts,
                    "error_type": type(exc).__name__,
                    "error_message": str(exc),
                    "status": getattr(exc, "status_code", None),
                    "retryable": should_retry,
                    "timeout_exceeded": timeout_exceeded,
                    "request_id": request_id,
                    "elapsed_seconds": round(elapsed, 3),
                },
            )
            raise exc

        # Re-check the breaker before committing to another attempt
        if breaker is not None and await breaker.is_open():
            logger.warning(
                "Circuit opened during retry sequence, aborting",
                extra={
                    "event": "retry_aborted",
                    "attempt": attempt + 1,
                    "request_id": request_id,
                },
            )
            raise CircuitOpenError("Circuit breaker opened during retries") from exc

        delay = backoff_delay(attempt, config, exc)

        # Optional hook for metrics
        if config.on_retry:
            try:
                config.on_retry(attempt + 1, delay, exc)
            except Exception:
                logger.debug("on_retry hook failed", exc_info=True)

        logger.warning(
            "Retrying after failure",
            extra={
                "event": "retry_attempt",
                "attempt": attempt + 1,
                "delay": round(delay, 3),
                "error_type": type(exc).__name__,
                "request_id": request_id,
                "elapsed_seconds": round(elapsed, 3),
            },
        )

        # If the global deadline would be exceeded by sleeping the full delay, clamp sleep
        sleep_for = delay
        if config.max_total_timeout is not None:
            remaining = config.max_total_timeout - (time.monotonic() - start_time)
            if remaining <= 0:
                raise RequestTimeoutError("retry_async: global max_total_timeout exceeded before sleep") from exc
            sleep_for = min(delay, remaining)

        await config.sleep(sleep_for)
        attempt += 1
