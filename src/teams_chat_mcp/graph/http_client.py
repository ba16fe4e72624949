"""Shared HTTP client with connection pooling for Graph requests."""

import logging
from typing import Optional

import httpx

from ..config import get_settings

logger = logging.getLogger(__name__)

_http_client: Optional[httpx.AsyncClient] = None


def get_http_client() -> httpx.AsyncClient:
    """Return the process-wide AsyncClient, creating it on first use."""
    global _http_client
    if _http_client is None or _http_client.is_closed:
        settings = get_settings()
        _http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.http_timeout),
            limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
            headers={"Accept": "application/json"},
        )
        logger.debug("Created shared HTTP client (timeout=%.1fs)", settings.http_timeout)
    return _http_client


async def close_http_client():
    """Close the shared client and release pooled connections."""
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None
