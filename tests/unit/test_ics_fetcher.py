"""Unit tests for icalfeeds.ics_fetcher."""

import httpx
import pytest

from icalfeeds.exceptions import ICSFetchError, ICSNetworkError, ICSParseError, ICSTimeoutError
from icalfeeds.ics_fetcher import ICSFetcher, validate_feed_url
from icalfeeds.models import CalendarSource

pytestmark = [pytest.mark.unit, pytest.mark.fast]

URL = "https://calendars.example.com/work.ics"
SOURCE = CalendarSource(name="Work", url=URL)


class TestValidateFeedUrl:
    @pytest.mark.parametrize("url", ["http://example.com/a.ics", "https://example.com/a.ics"])
    def test_validate_when_http_or_https_then_accepted(self, url: str) -> None:
        validate_feed_url(url)

    @pytest.mark.parametrize("url", ["ftp://example.com/a.ics", "file:///etc/passwd", "webcal://x/a.ics", "a.ics"])
    def test_validate_when_other_scheme_then_fetch_error(self, url: str) -> None:
        with pytest.raises(ICSFetchError):
            validate_feed_url(url)

    def test_validate_when_hostname_missing_then_fetch_error(self) -> None:
        with pytest.raises(ICSFetchError, match="hostname"):
            validate_feed_url("http:///calendar.ics")


class TestICSFetcherResolve:
    async def test_resolve_when_cache_miss_then_fetches_parses_and_caches(
        self, simple_settings, cache, make_transport, sample_ics_single
    ) -> None:
        transport = make_transport({URL: (200, sample_ics_single)})
        async with httpx.AsyncClient(transport=transport) as client:
            fetcher = ICSFetcher(simple_settings, cache, shared_client=client)
            document = await fetcher.resolve(SOURCE)

        assert list(document) == ["single-1@example.com"]
        assert transport.requests == [URL]
        cached = cache.get(URL)
        assert cached is not None
        assert cached.document == document

    async def test_resolve_when_cache_fresh_then_no_network(
        self, simple_settings, cache, make_transport, sample_ics_single
    ) -> None:
        transport = make_transport({URL: (200, sample_ics_single)})
        async with httpx.AsyncClient(transport=transport) as client:
            fetcher = ICSFetcher(simple_settings, cache, shared_client=client)
            first = await fetcher.resolve(SOURCE)
            second = await fetcher.resolve(SOURCE)

        assert first == second
        assert len(transport.requests) == 1

    async def test_resolve_when_cache_expired_then_refetches(
        self, simple_settings, cache, fake_clock, make_transport, sample_ics_single
    ) -> None:
        transport = make_transport({URL: (200, sample_ics_single)})
        async with httpx.AsyncClient(transport=transport) as client:
            fetcher = ICSFetcher(simple_settings, cache, shared_client=client)
            await fetcher.resolve(SOURCE)
            fake_clock.advance(300_001)
            await fetcher.resolve(SOURCE)

        assert len(transport.requests) == 2

    async def test_resolve_when_non_2xx_then_fetch_error_with_status(
        self, simple_settings, cache, make_transport
    ) -> None:
        transport = make_transport({URL: (404, "missing")})
        async with httpx.AsyncClient(transport=transport) as client:
            fetcher = ICSFetcher(simple_settings, cache, shared_client=client)
            with pytest.raises(ICSFetchError) as exc_info:
                await fetcher.resolve(SOURCE)

        assert exc_info.value.status_code == 404
        assert str(exc_info.value) == "404 Not Found"
        assert cache.get(URL) is None

    async def test_resolve_when_connection_fails_then_network_error(
        self, simple_settings, cache, make_transport
    ) -> None:
        transport = make_transport({URL: httpx.ConnectError("connection refused")})
        async with httpx.AsyncClient(transport=transport) as client:
            fetcher = ICSFetcher(simple_settings, cache, shared_client=client)
            with pytest.raises(ICSNetworkError):
                await fetcher.resolve(SOURCE)

    async def test_resolve_when_timeout_then_timeout_error(self, simple_settings, cache, make_transport) -> None:
        transport = make_transport({URL: httpx.ReadTimeout("too slow")})
        async with httpx.AsyncClient(transport=transport) as client:
            fetcher = ICSFetcher(simple_settings, cache, shared_client=client)
            with pytest.raises(ICSTimeoutError) as exc_info:
                await fetcher.resolve(SOURCE)

        assert isinstance(exc_info.value, ICSFetchError)

    async def test_resolve_when_body_not_calendar_then_parse_error_and_not_cached(
        self, simple_settings, cache, make_transport
    ) -> None:
        transport = make_transport({URL: (200, "<html>login required</html>")})
        async with httpx.AsyncClient(transport=transport) as client:
            fetcher = ICSFetcher(simple_settings, cache, shared_client=client)
            with pytest.raises(ICSParseError):
                await fetcher.resolve(SOURCE)

        assert cache.get(URL) is None

    async def test_resolve_when_scheme_unsupported_then_no_request(
        self, simple_settings, cache, make_transport
    ) -> None:
        transport = make_transport({})
        async with httpx.AsyncClient(transport=transport) as client:
            fetcher = ICSFetcher(simple_settings, cache, shared_client=client)
            with pytest.raises(ICSFetchError):
                await fetcher.resolve(CalendarSource(name="Local", url="file:///tmp/cal.ics"))

        assert transport.requests == []

    async def test_refresh_when_cached_then_refetched(
        self, simple_settings, cache, make_transport, sample_ics_single
    ) -> None:
        transport = make_transport({URL: (200, sample_ics_single)})
        async with httpx.AsyncClient(transport=transport) as client:
            fetcher = ICSFetcher(simple_settings, cache, shared_client=client)
            await fetcher.resolve(SOURCE)
            await fetcher.refresh(SOURCE)

        assert len(transport.requests) == 2


class TestICSFetcherClientLifecycle:
    async def test_context_manager_when_no_shared_client_then_creates_and_closes(
        self, simple_settings, cache
    ) -> None:
        async with ICSFetcher(simple_settings, cache) as fetcher:
            client = fetcher.client
            assert client is not None
            assert not client.is_closed

        assert client.is_closed
        assert fetcher.client is None

    async def test_context_manager_when_shared_client_then_left_open(self, simple_settings, cache) -> None:
        async with httpx.AsyncClient() as shared:
            async with ICSFetcher(simple_settings, cache, shared_client=shared) as fetcher:
                assert fetcher.client is shared
            assert not shared.is_closed
