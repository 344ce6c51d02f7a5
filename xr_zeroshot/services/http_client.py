"""
Shared HTTP client for NVCF communication.

All stages talk to a handful of hosts (asset service, storage bucket, invoke
endpoint, status endpoint), so one pooled ``httpx.AsyncClient`` is reused
across requests and orchestrators. Stages hold no per-request state on it.
"""

import asyncio

import httpx

from ..core.logging import ZeroShotLogger
from ..core.settings import settings

logger = ZeroShotLogger(__name__)

_http_client: httpx.AsyncClient | None = None
_client_lock = asyncio.Lock()


def build_timeout(read_seconds: float) -> httpx.Timeout:
    return httpx.Timeout(
        connect=10.0,
        read=read_seconds,
        write=60.0,
        pool=10.0,
    )


async def get_http_client() -> httpx.AsyncClient:
    """Get or create the persistent HTTP client.

    Returns:
        Shared httpx.AsyncClient instance with connection pooling enabled.
    """
    global _http_client

    if _http_client is not None and not _http_client.is_closed:
        return _http_client

    async with _client_lock:
        # Double-check after acquiring lock
        if _http_client is not None and not _http_client.is_closed:
            return _http_client

        logger.info("Creating persistent HTTP client for NVCF")

        limits = httpx.Limits(
            max_connections=20,
            max_keepalive_connections=10,
            keepalive_expiry=30.0,
        )

        _http_client = httpx.AsyncClient(
            limits=limits,
            timeout=build_timeout(settings.request_timeout_seconds),
        )
        return _http_client


async def close_http_client() -> None:
    """Close the persistent HTTP client.

    Should be called during application shutdown to cleanly close connections.
    """
    global _http_client

    async with _client_lock:
        if _http_client is not None:
            logger.info("Closing persistent HTTP client")
            await _http_client.aclose()
            _http_client = None


def bearer_headers(api_key: str, accept: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Accept": accept,
    }
