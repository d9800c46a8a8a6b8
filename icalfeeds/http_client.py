"""httpx client construction for feed retrieval."""

import logging
from typing import Optional

import httpx

from . import __version__

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0

# Concurrency is bounded by the number of selected sources, never by the pool
DEFAULT_LIMITS = httpx.Limits(
    max_connections=None,
    max_keepalive_connections=20,
)

# Some providers (Office365) reject clients that do not look like a calendar app
DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": f"icalfeeds/{__version__}",
    "Accept": "text/calendar, text/plain, application/octet-stream, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}


def build_timeout(request_timeout: float = DEFAULT_REQUEST_TIMEOUT) -> httpx.Timeout:
    """Timeout with ``request_timeout`` for reads and fixed connect/write/pool limits."""
    return httpx.Timeout(connect=10.0, read=request_timeout, write=10.0, pool=30.0)


def create_client(
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create an AsyncClient configured for ICS downloads.

    Args:
        request_timeout: Read timeout in seconds
        transport: Optional transport (``httpx.MockTransport`` in tests)

    Returns:
        New client; the caller owns it and must close it
    """
    logger.debug("Creating HTTP client (read timeout=%.1fs, unbounded pool)", request_timeout)
    return httpx.AsyncClient(
        transport=transport,
        limits=DEFAULT_LIMITS,
        timeout=build_timeout(request_timeout),
        follow_redirects=True,
        verify=True,
        headers=DEFAULT_HEADERS,
    )
