# core/exceptions.py
"""
Centralized exception definitions for the word generation pipeline.

Why this exists:
- Avoid circular imports between the breaker, retry and orchestrator layers
- Provide a common base exception (WordPipelineError)
- Allow structured catching at higher layers (API, debouncer)
- Make retry logic cleaner: every class declares whether it is retryable
"""

from typing import Optional


# ============================================================
# Base Exceptions
# ============================================================

class WordPipelineError(Exception):
    """
    Root base exception for the entire pipeline.
    All custom exceptions should inherit from this.
    """
    retryable = False


# ============================================================
# Local short-circuit errors (never reach the network)
# ============================================================

class ValidationError(WordPipelineError):
    """
    Raised when user input or a request is malformed.
    Never sent to the network, never retried.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class RateLimitError(WordPipelineError):
    """
    Raised when local admission control rejects a call.
    The caller may wait `retry_after` seconds and resubmit.
    """

    def __init__(self, message: str = "Rate limit exceeded", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class CircuitOpenError(WordPipelineError):
    """
    Raised when the circuit breaker refuses a call.
    The protected operation was never executed.
    """

    def __init__(self, message: str = "Circuit breaker is OPEN", reopens_in: Optional[float] = None):
        super().__init__(message)
        self.reopens_in = reopens_in


# ============================================================
# Transport errors (remote word service)
# ============================================================

class TransportError(WordPipelineError):
    """
    Base exception for failures talking to the word service.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NetworkError(TransportError):
    """Connection-level failure (DNS, refused, reset). Retryable."""
    retryable = True


class RequestTimeoutError(NetworkError):
    """The transport timed out before a response arrived. Retryable."""
    retryable = True


class ServerError(TransportError):
    """
    The service answered 5xx or 429. Retryable.
    `retry_after` holds the parsed Retry-After header in seconds, if any.
    """
    retryable = True

    def __init__(self, message: str, status_code: Optional[int] = None, retry_after: Optional[float] = None):
        super().__init__(message, status_code=status_code)
        self.retry_after = retry_after


class ClientError(TransportError):
    """
    The service rejected the request (4xx other than 429).
    Surfaced immediately, but still counted by the circuit breaker.
    """


class ResponseFormatError(TransportError):
    """
    Raised when the service returns a malformed or unexpected body.
    """
