"""Unit tests for icalfeeds.http_client."""

import httpx
import pytest

from icalfeeds import __version__
from icalfeeds.http_client import DEFAULT_HEADERS, DEFAULT_LIMITS, build_timeout, create_client

pytestmark = [pytest.mark.unit, pytest.mark.fast]


def test_build_timeout_when_request_timeout_given_then_used_for_reads() -> None:
    timeout = build_timeout(12.5)
    assert timeout.read == 12.5
    assert timeout.connect == 10.0


def test_default_limits_when_built_then_no_connection_cap() -> None:
    assert DEFAULT_LIMITS.max_connections is None


def test_default_headers_when_built_then_identify_client() -> None:
    assert DEFAULT_HEADERS["User-Agent"] == f"icalfeeds/{__version__}"
    assert DEFAULT_HEADERS["Accept"].startswith("text/calendar")


async def test_create_client_when_transport_given_then_headers_sent_and_redirects_followed() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/old.ics":
            return httpx.Response(301, headers={"Location": "https://example.com/new.ics"})
        return httpx.Response(200, text="BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n")

    async with create_client(5.0, transport=httpx.MockTransport(handler)) as client:
        response = await client.get("https://example.com/old.ics")

    assert response.status_code == 200
    assert [str(r.url) for r in seen] == ["https://example.com/old.ics", "https://example.com/new.ics"]
    assert seen[0].headers["User-Agent"] == f"icalfeeds/{__version__}"
