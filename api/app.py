# api/app.py
# NOTE:
# Pipeline errors are mapped to HTTP statuses explicitly in each route.
# Anything that is not a WordPipelineError propagates as a 500.

import math
import uuid
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request, Response
from pydantic import BaseModel, ConfigDict, Field
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from core.config import get_settings
from core.exceptions import (
    CircuitOpenError,
    RateLimitError,
    RequestTimeoutError,
    TransportError,
    ValidationError,
    WordPipelineError,
)
from core.health import full_health_check
from core.http_client import close_client
from core.logging_config import setup_logging
from core.request_context import set_request_id
from pipeline.models import GenerationRequest
from pipeline.orchestrator import RequestOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


class GenerateBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    characters: str
    language: Optional[str] = None
    min_length: Optional[int] = Field(None, alias="minLength")
    max_length: Optional[int] = Field(None, alias="maxLength")
    include_definitions: bool = Field(False, alias="includeDefinitions")


class ValidateBody(BaseModel):
    word: str
    language: Optional[str] = None


def _http_error(e: WordPipelineError) -> HTTPException:
    """Translate a pipeline error into the HTTP status the UI expects."""
    if isinstance(e, ValidationError):
        return HTTPException(status_code=422, detail={"message": str(e), "field": e.field})
    if isinstance(e, RateLimitError):
        headers = {"Retry-After": str(math.ceil(e.retry_after))} if e.retry_after is not None else None
        return HTTPException(status_code=429, detail=str(e), headers=headers)
    if isinstance(e, CircuitOpenError):
        return HTTPException(status_code=503, detail="Word service temporarily unavailable")
    if isinstance(e, RequestTimeoutError):
        return HTTPException(status_code=504, detail=str(e))
    if isinstance(e, TransportError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def _orchestrator(request: Request) -> RequestOrchestrator:
    return request.app.state.orchestrator


@router.post("/words/generate")
async def generate(body: GenerateBody, request: Request, validate: bool = False):
    """
    Generate words from the given characters.
    With `validate=true` every candidate is also checked against the dictionary.
    """
    orchestrator = _orchestrator(request)
    gen_request = GenerationRequest(
        characters=body.characters,
        language=body.language or orchestrator.settings.default_language,
        min_length=body.min_length,
        max_length=body.max_length,
        include_definitions=body.include_definitions,
    )
    try:
        if validate:
            words = await orchestrator.generate_validated_words(gen_request)
        else:
            words = await orchestrator.generate_words(gen_request)
    except WordPipelineError as e:
        logger.info("Generation request failed", extra={"error_type": type(e).__name__})
        raise _http_error(e) from e

    return {
        "words": [w.to_dict() for w in words],
        "performance": orchestrator.performance_metrics.to_dict(),
    }


@router.post("/dictionary/validate")
async def validate_word(body: ValidateBody, request: Request):
    """Check one word against the dictionary."""
    orchestrator = _orchestrator(request)
    language = body.language or orchestrator.settings.default_language
    try:
        valid = await orchestrator.validate_word(body.word, language)
    except WordPipelineError as e:
        raise _http_error(e) from e
    return {"word": body.word, "language": language, "valid": valid}


@router.get("/performance")
async def performance(request: Request):
    """Latest per-stage timings, rolling averages and pipeline counters."""
    orchestrator = _orchestrator(request)
    return {
        "latest": orchestrator.performance_metrics.to_dict(),
        "averages_ms": orchestrator.monitor.averages(),
        "pipeline": orchestrator.stats(),
    }


@router.get("/health/live")
async def liveness():
    """Kubernetes liveness probe."""
    return {"status": "alive"}


@router.get("/health")
async def health(request: Request):
    """Word service health combined with the local breaker state."""
    return await full_health_check(_orchestrator(request))


@router.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def create_app(orchestrator: Optional[RequestOrchestrator] = None) -> FastAPI:
    """
    Build the HTTP app. Without an explicit orchestrator one is created
    from the environment at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()
        # Startup: configure structured JSON logging
        setup_logging(settings.log_level)
        app.state.orchestrator = orchestrator or RequestOrchestrator.from_settings(settings)

        yield

        # Shutdown: clean up clients
        await app.state.orchestrator.aclose()
        await close_client()

    app = FastAPI(title="Word Generation Gateway", lifespan=lifespan)

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        """Generate a unique request ID and store it in the context."""
        request_id = str(uuid.uuid4())
        set_request_id(request_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    app.include_router(router)
    return app


app = create_app()
