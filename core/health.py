# core/health.py

import logging
from typing import Dict, TYPE_CHECKING

from core.exceptions import WordPipelineError

if TYPE_CHECKING:
    from pipeline.orchestrator import RequestOrchestrator

logger = logging.getLogger(__name__)


async def check_word_service(orchestrator: "RequestOrchestrator") -> str:
    try:
        body = await orchestrator.check_health()
    except WordPipelineError as e:
        logger.warning("Word service health check failed", extra={"error_type": type(e).__name__})
        return "fail"
    return "ok" if str(body.get("status", "")).lower() in ("ok", "healthy", "up") else "degraded"


async def full_health_check(orchestrator: "RequestOrchestrator") -> Dict:
    results = {
        "word_service": await check_word_service(orchestrator),
        "circuit_breaker": "ok" if orchestrator.breaker.state == "closed" else orchestrator.breaker.state,
    }

    overall = "ok" if all(v == "ok" for v in results.values()) else "degraded"

    return {
        "status": overall,
        "dependencies": results
    }
