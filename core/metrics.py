# core/metrics.py

import logging
from typing import Dict, Optional

from prometheus_client import Counter, Histogram, Gauge

logger = logging.getLogger(__name__)

# ----------------------------
# Request Counters
# ----------------------------

WORD_REQUESTS = Counter(
    "word_requests_total",
    "Total upward pipeline calls",
    ["operation", "status"]  # status: success, cache_hit, error kind
)

CACHE_LOOKUPS = Counter(
    "word_cache_lookups_total",
    "Request cache lookups",
    ["namespace", "result"]  # result: hit, miss
)

RATE_LIMIT_REJECTIONS = Counter(
    "word_rate_limit_rejections_total",
    "Calls rejected by the local rate limiter",
    ["operation"]
)

# ----------------------------
# Retry / Circuit Breaker
# ----------------------------

RETRIES = Counter(
    "word_retries_total",
    "Total retries issued by the retry policy",
    ["reason"]  # timeout, network, http_429, http_5xx
)

CIRCUIT_STATE = Gauge(
    "word_circuit_breaker_state",
    "Circuit breaker state (0=closed,1=open,2=half_open)"
)

CIRCUIT_EVENTS = Counter(
    "word_circuit_breaker_events_total",
    "Circuit breaker events",
    ["event"]  # open, half_open, closed, failure, success, rejected
)

# ----------------------------
# Latency / SLA
# ----------------------------

STAGE_LATENCY = Histogram(
    "word_stage_latency_seconds",
    "Pipeline stage latency",
    ["stage"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0)
)

SLA_VIOLATIONS = Counter(
    "word_sla_violations_total",
    "Stage samples that exceeded their SLA threshold",
    ["stage"]
)

_STATE_VALUES = {"closed": 0, "open": 1, "half_open": 2}


# ----------------------------
# Helper Functions
# ----------------------------

def record_request(operation: str, status: str) -> None:
    """Increment the request counter for an upward call outcome."""
    WORD_REQUESTS.labels(operation=operation, status=status).inc()


def record_cache_lookup(namespace: str, hit: bool) -> None:
    CACHE_LOOKUPS.labels(namespace=namespace, result="hit" if hit else "miss").inc()


def record_retry(exc: Exception) -> None:
    """Count a retry, labelled by the failure that caused it."""
    RETRIES.labels(reason=retry_reason(exc)).inc()


def retry_reason(exc: Exception) -> str:
    status = getattr(exc, "status_code", None)
    if status == 429:
        return "http_429"
    if status is not None and status >= 500:
        return "http_5xx"
    if "timeout" in type(exc).__name__.lower():
        return "timeout"
    return "network"


def record_stage(stage: str, duration_ms: float, compliant: bool) -> None:
    STAGE_LATENCY.labels(stage=stage).observe(duration_ms / 1000.0)
    if not compliant:
        SLA_VIOLATIONS.labels(stage=stage).inc()


def breaker_metrics(name: str, metadata: Optional[Dict] = None) -> None:
    """
    Metrics callback for AsyncCircuitBreaker.
    Names look like "circuit.open"; state changes also update the gauge.
    Never raises.
    """
    try:
        event = name.split(".", 1)[-1]
        CIRCUIT_EVENTS.labels(event=event).inc()
        if event in _STATE_VALUES:
            CIRCUIT_STATE.set(_STATE_VALUES[event])
    except Exception as e:
        logger.warning("breaker metric update failed: name=%s error=%s", name, e)
