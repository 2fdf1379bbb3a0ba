# NOTE:
# request_id is NOT manually injected into logger extra fields here.
# It is automatically added by the global JSON logging formatter
# via core.request_context.get_request_id().
"""
Word service client.

Thin async HTTP layer over the remote generation/dictionary backend. It makes
exactly one HTTP call per method and translates every failure into the
pipeline's error taxonomy; retries, breaking and caching live in the
orchestrator.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Protocol

import httpx

from core.exceptions import (
    ClientError,
    NetworkError,
    RequestTimeoutError,
    ResponseFormatError,
    ServerError,
)
from core.http_client import get_client
from core.retry import parse_retry_after

logger = logging.getLogger(__name__)

GENERATE_PATH = "/words/generate"
LOOKUP_PATH = "/dictionary/lookup"
HEALTH_PATH = "/health"


class WordTransport(Protocol):
    """What the orchestrator needs from the backend."""

    async def generate(self, payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        ...

    async def lookup(self, word: str, language: str) -> bool:
        ...

    async def health(self) -> Dict[str, Any]:
        ...


class WordServiceClient:
    """
    httpx implementation of WordTransport.

    Uses the shared per-loop AsyncClient unless one is injected
    (tests pass a client built on httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    def _http(self) -> httpx.AsyncClient:
        return self._client if self._client is not None else get_client(self.timeout)

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> Any:
        url = f"{self.base_url}{path}"
        start = time.monotonic()
        try:
            response = await self._http().request(method, url, json=json)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {path} failed: {type(e).__name__}") from e

        elapsed_ms = round((time.monotonic() - start) * 1000, 1)
        status = response.status_code
        if status >= 400:
            logger.warning(
                "Word service returned error status",
                extra={"event": "word_api_error", "path": path, "status": status, "elapsed_ms": elapsed_ms},
            )
            message = f"{method} {path} returned HTTP {status}"
            if status == 429 or status >= 500:
                raise ServerError(
                    message,
                    status_code=status,
                    retry_after=parse_retry_after(response.headers.get("Retry-After")),
                )
            raise ClientError(message, status_code=status)

        logger.debug(
            "Word service call completed",
            extra={"event": "word_api_ok", "path": path, "status": status, "elapsed_ms": elapsed_ms},
        )
        try:
            return response.json()
        except ValueError as e:
            raise ResponseFormatError(f"{method} {path} returned a non-JSON body", status_code=status) from e

    async def generate(self, payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        """POST /words/generate; returns the `combinations` list."""
        data = await self._request("POST", GENERATE_PATH, json=payload)
        # Accept the bare body as well as the {"data": {...}} envelope
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]
        combinations = data.get("combinations") if isinstance(data, dict) else None
        if not isinstance(combinations, list):
            raise ResponseFormatError("generate response has no 'combinations' list")
        return combinations

    async def lookup(self, word: str, language: str) -> bool:
        """POST /dictionary/lookup; returns whether the word exists."""
        data = await self._request("POST", LOOKUP_PATH, json={"word": word, "language": language})
        if isinstance(data, bool):
            return data
        if isinstance(data, dict):
            for key in ("data", "valid"):
                if isinstance(data.get(key), bool):
                    return data[key]
        raise ResponseFormatError("lookup response is not a boolean")

    async def health(self) -> Dict[str, Any]:
        """GET /health; returns {"status": ..., "services": {...}}."""
        data = await self._request("GET", HEALTH_PATH)
        if not isinstance(data, dict) or "status" not in data:
            raise ResponseFormatError("health response has no 'status'")
        return data

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
