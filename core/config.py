# core/config.py
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

from pipeline.validation import SUPPORTED_LANGUAGES

load_dotenv()


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


@dataclass(frozen=True)
class Settings:
    """Pipeline settings loaded from environment variables."""

    # Word service
    word_api_base_url: str = "http://localhost:3000/api/v1"
    word_api_timeout: float = 5.0

    # Request cache
    cache_max_entries: int = 100
    cache_max_age: float = 300.0  # 5 minutes

    # Local rate limiter
    rate_limit: int = 100
    rate_window: float = 60.0

    # Circuit breaker
    breaker_failure_threshold: int = 5
    breaker_cooldown: float = 30.0

    # Retry policy
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_backoff: float = 30.0

    # Input
    debounce_delay: float = 0.3
    default_language: str = "en"

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current environment (and any .env file)."""
        return cls(
            word_api_base_url=os.getenv("WORD_API_BASE_URL", cls.word_api_base_url),
            word_api_timeout=_env_float("WORD_API_TIMEOUT", cls.word_api_timeout),
            cache_max_entries=_env_int("CACHE_MAX_ENTRIES", cls.cache_max_entries),
            cache_max_age=_env_float("CACHE_MAX_AGE", cls.cache_max_age),
            rate_limit=_env_int("RATE_LIMIT", cls.rate_limit),
            rate_window=_env_float("RATE_WINDOW", cls.rate_window),
            breaker_failure_threshold=_env_int("BREAKER_FAILURE_THRESHOLD", cls.breaker_failure_threshold),
            breaker_cooldown=_env_float("BREAKER_COOLDOWN", cls.breaker_cooldown),
            retry_max_attempts=_env_int("RETRY_MAX_ATTEMPTS", cls.retry_max_attempts),
            retry_base_delay=_env_float("RETRY_BASE_DELAY", cls.retry_base_delay),
            retry_max_backoff=_env_float("RETRY_MAX_BACKOFF", cls.retry_max_backoff),
            debounce_delay=_env_float("DEBOUNCE_DELAY", cls.debounce_delay),
            default_language=os.getenv("DEFAULT_LANGUAGE", cls.default_language).lower(),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
        )

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        positive = {
            "CACHE_MAX_ENTRIES": self.cache_max_entries,
            "CACHE_MAX_AGE": self.cache_max_age,
            "RATE_LIMIT": self.rate_limit,
            "RATE_WINDOW": self.rate_window,
            "BREAKER_FAILURE_THRESHOLD": self.breaker_failure_threshold,
            "RETRY_MAX_ATTEMPTS": self.retry_max_attempts,
            "WORD_API_TIMEOUT": self.word_api_timeout,
        }
        for name, value in positive.items():
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")

        if self.breaker_cooldown < 0 or self.retry_base_delay < 0 or self.debounce_delay < 0:
            raise ValueError("BREAKER_COOLDOWN, RETRY_BASE_DELAY and DEBOUNCE_DELAY must not be negative")

        if self.default_language not in SUPPORTED_LANGUAGES:
            raise ValueError(
                f"DEFAULT_LANGUAGE must be one of {sorted(SUPPORTED_LANGUAGES)}, "
                f"got {self.default_language!r}"
            )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
