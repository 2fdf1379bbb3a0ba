# core/http_client.py
import asyncio
import logging
import httpx
from weakref import WeakKeyDictionary

logger = logging.getLogger(__name__)

# Check if HTTP/2 is supported (requires 'h2' package)
try:
    import h2  # noqa: F401
    HTTP2_ENABLED = True
except ImportError:
    HTTP2_ENABLED = False

# One client per event loop
_clients: WeakKeyDictionary = WeakKeyDictionary()


def get_client(timeout: float = 5.0) -> httpx.AsyncClient:
    """
    Returns a shared AsyncClient bound to the current running event loop.
    The timeout only applies when the client is first created for the loop.
    """
    loop = asyncio.get_running_loop()

    client = _clients.get(loop)
    if client is not None and not client.is_closed:
        return client

    client = httpx.AsyncClient(
        timeout=httpx.Timeout(timeout, connect=min(timeout, 3.0)),
        limits=httpx.Limits(
            max_connections=20,
            max_keepalive_connections=10
        ),
        headers={"Content-Type": "application/json"},
        http2=HTTP2_ENABLED,  # Auto‑enable if h2 is installed
    )

    _clients[loop] = client
    return client


async def close_client():
    """
    Gracefully close all AsyncClient instances.
    Call this during application shutdown.
    """
    for client in list(_clients.values()):
        try:
            await client.aclose()
        except Exception:
            logger.debug("AsyncClient close failed", exc_info=True)

    _clients.clear()
