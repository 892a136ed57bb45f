"""
HTTP Client Module

Provides a globally shared httpx.AsyncClient with:
- Connection pooling for efficient reuse
- An explicit timeout; a timed-out call is a failed call

Email delivery never retries here. The only second attempt is the
provider-specific fallback URL handled by the email gateway.
"""

from typing import Optional

import httpx


# ============== Configuration ==============

# Connection pool limits
MAX_CONNECTIONS = 100
MAX_KEEPALIVE_CONNECTIONS = 20
KEEPALIVE_EXPIRY = 30  # seconds

# Timeout configuration
DEFAULT_TIMEOUT = 10.0  # seconds


# ============== Global Client Instance ==============

_http_client: Optional[httpx.AsyncClient] = None


def get_http_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
    """
    Get or create the global async HTTP client.

    ``timeout`` only applies when the client is first created.

    Returns:
        httpx.AsyncClient: Shared client instance.
    """
    global _http_client
    if _http_client is None:
        limits = httpx.Limits(
            max_connections=MAX_CONNECTIONS,
            max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
            keepalive_expiry=KEEPALIVE_EXPIRY,
        )

        _http_client = httpx.AsyncClient(
            limits=limits,
            timeout=httpx.Timeout(timeout),
            http2=True,
        )
    return _http_client


async def close_http_client() -> None:
    """
    Close the global HTTP client.

    Should be called during application shutdown.
    """
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None
