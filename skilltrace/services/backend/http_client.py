"""
Shared HTTP client for analysis backend calls.

The dashboard follows one repository at a time, so at most one analysis
stream is open. That stream pins a connection for the whole job; status
polls, snapshot loads and the commit/history listings share the rest of the
pool.
"""

import logging

import httpx

from skilltrace.config import settings

logger = logging.getLogger(__name__)

# Connections beyond the stream: poll + snapshot + commits + history
SIDE_CALL_CONNECTIONS = 4

_client: httpx.AsyncClient | None = None


def backend_pool_limits() -> httpx.Limits:
    """Pool limits for one open stream plus the concurrent REST calls."""
    return httpx.Limits(
        max_connections=1 + SIDE_CALL_CONNECTIONS,
        max_keepalive_connections=SIDE_CALL_CONNECTIONS,
        keepalive_expiry=settings.poll_interval_seconds * 2,
    )


def get_backend_client() -> httpx.AsyncClient:
    """Get the process-wide backend client, creating it on first use or after close."""
    global _client
    if _client is None or _client.is_closed:
        _client = httpx.AsyncClient(
            base_url=settings.backend_url,
            timeout=httpx.Timeout(
                settings.request_timeout_seconds,
                connect=settings.connect_timeout_seconds,
            ),
            limits=backend_pool_limits(),
        )
        logger.debug(f"Opened backend HTTP client for {settings.backend_url}")
    return _client


async def close_backend_client() -> None:
    """Close the shared client. Called from the app lifespan on shutdown."""
    global _client
    if _client is None:
        return
    client, _client = _client, None
    if not client.is_closed:
        await client.aclose()
        logger.debug("Closed backend HTTP client")
