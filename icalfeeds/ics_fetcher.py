"""Cache-aware retrieval of calendar feeds."""

import logging
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from .exceptions import ICSFetchError, ICSNetworkError, ICSTimeoutError
from .http_client import DEFAULT_REQUEST_TIMEOUT, create_client
from .ics_cache import ICSDocumentCache
from .ics_parser import parse_ics
from .ics_sanitizer import sanitize_ics
from .models import CalendarSource, Document

logger = logging.getLogger(__name__)


def validate_feed_url(url: str) -> None:
    """Reject anything that is not an absolute http(s) URL.

    Raises:
        ICSFetchError: If the scheme is not http/https or the host is missing
    """
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise ICSFetchError(f"Unsupported URL scheme: {parsed.scheme or '(none)'}")
    if not parsed.hostname:
        raise ICSFetchError("URL missing hostname")


class ICSFetcher:
    """Resolves calendar sources to parsed documents, going through the cache.

    Used as an async context manager; owns its httpx client unless one is
    passed in as ``shared_client``.
    """

    def __init__(
        self,
        settings: Any,
        cache: ICSDocumentCache,
        shared_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            settings: Object providing ``request_timeout`` (seconds)
            cache: Document cache shared by every fetch in the process
            shared_client: Optional client owned by the caller
        """
        self.settings = settings
        self.cache = cache
        self.client: Optional[httpx.AsyncClient] = shared_client
        self._owns_client = shared_client is None

        logger.debug("ICS fetcher initialized (shared_client: %s)", not self._owns_client)

    async def __aenter__(self) -> "ICSFetcher":
        self._ensure_client()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self.client is None or self.client.is_closed:
            request_timeout = getattr(self.settings, "request_timeout", DEFAULT_REQUEST_TIMEOUT)
            self.client = create_client(request_timeout)
            self._owns_client = True
        return self.client

    async def aclose(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self.client is not None and self._owns_client and not self.client.is_closed:
            await self.client.aclose()
            logger.debug("Closed HTTP client")
        if self._owns_client:
            self.client = None

    async def fetch_text(self, url: str) -> str:
        """GET a feed and return its body. No retries.

        Raises:
            ICSFetchError: Non-2xx status (with ``status_code``) or invalid URL
            ICSTimeoutError: The request timed out
            ICSNetworkError: Any other transport failure
        """
        validate_feed_url(url)
        client = self._ensure_client()

        logger.debug("Fetching ICS from %s", url)
        try:
            response = await client.get(url)
        except httpx.TimeoutException as e:
            raise ICSTimeoutError(f"Timed out fetching calendar: {e}") from e
        except httpx.TransportError as e:
            raise ICSNetworkError(f"Network error: {e}") from e
        except httpx.HTTPError as e:
            raise ICSFetchError(f"Request failed: {e}") from e

        if not response.is_success:
            raise ICSFetchError(
                f"{response.status_code} {response.reason_phrase}", response.status_code
            )

        logger.debug("Fetched %d bytes from %s", len(response.content), url)
        return response.text

    async def resolve(self, source: CalendarSource) -> Document:
        """Return the parsed document for ``source``, fetching on a cache miss.

        The cache is written only after fetch, sanitize and parse all succeed.

        Args:
            source: Calendar source to resolve

        Returns:
            Parsed document

        Raises:
            ICSFetchError: Retrieval failed
            ICSParseError: The feed could not be parsed
        """
        cached = self.cache.get(source.url)
        if cached is not None:
            logger.debug("Cache hit for %s", source.name)
            return cached.document

        text = await self.fetch_text(source.url)
        document = parse_ics(sanitize_ics(text))
        self.cache.put(source.url, document)

        logger.info("Loaded %d component(s) for calendar %s", len(document), source.name)
        return document

    async def refresh(self, source: CalendarSource) -> Document:
        """Drop the cached entry for ``source`` and resolve it again."""
        self.cache.invalidate(source.url)
        return await self.resolve(source)
