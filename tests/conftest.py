"""Shared fixtures for icalfeeds tests."""

from collections.abc import Callable
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import httpx
import pytest

from icalfeeds.ics_cache import ICSDocumentCache
from icalfeeds.models import CalendarSource

# 2024-01-01T00:00:00Z
T0_MS = 1_704_067_200_000


class FakeClock:
    """Settable epoch-millisecond clock for cache tests."""

    def __init__(self, now_ms: int = T0_MS) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


def make_ics(*events: str) -> str:
    """Wrap VEVENT bodies into a minimal VCALENDAR document."""
    blocks = "".join(f"BEGIN:VEVENT\r\n{body.strip()}\r\nEND:VEVENT\r\n" for body in events)
    return (
        "BEGIN:VCALENDAR\r\n"
        "VERSION:2.0\r\n"
        "PRODID:-//icalfeeds//tests//EN\r\n"
        f"{blocks}"
        "END:VCALENDAR\r\n"
    )


@pytest.fixture
def ics_builder() -> Callable[..., str]:
    return make_ics


@pytest.fixture
def simple_settings() -> SimpleNamespace:
    """Minimal settings object accepted by the fetcher and expander.

    Fields:
      - request_timeout: HTTP read timeout in seconds
      - timezone: default zone for floating and date-only values
      - max_occurrences_per_rule: cap on generated occurrences
    """
    return SimpleNamespace(request_timeout=5, timezone="UTC", max_occurrences_per_rule=1000)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(tmp_path: Path, fake_clock: FakeClock) -> ICSDocumentCache:
    return ICSDocumentCache(tmp_path / "cache", ttl_seconds=300, time_provider=fake_clock)


@pytest.fixture
def sample_ics_single() -> str:
    return make_ics(
        """
UID:single-1@example.com
DTSTART:20240110T090000Z
DTEND:20240110T100000Z
SUMMARY:Design review
LOCATION:Room 4
DESCRIPTION:Quarterly architecture review
STATUS:CONFIRMED
ORGANIZER;CN=Alice Example:mailto:alice@example.com
ATTENDEE;CN=Bob;PARTSTAT=ACCEPTED:mailto:bob@example.com
ATTENDEE;PARTSTAT=TENTATIVE:MAILTO:carol@example.com
"""
    )


@pytest.fixture
def sample_ics_recurring() -> str:
    """Weekly standup with one exception and one moved instance."""
    return make_ics(
        """
UID:standup@example.com
DTSTART;TZID=Europe/Berlin:20240101T093000
DTEND;TZID=Europe/Berlin:20240101T094500
RRULE:FREQ=WEEKLY;BYDAY=MO;UNTIL=20240205
EXDATE;TZID=Europe/Berlin:20240115T093000
SUMMARY:Standup
""",
        """
UID:standup@example.com
RECURRENCE-ID;TZID=Europe/Berlin:20240122T093000
DTSTART;TZID=Europe/Berlin:20240123T110000
DTEND;TZID=Europe/Berlin:20240123T111500
SUMMARY:Standup (moved)
""",
    )


@pytest.fixture
def make_sources() -> Callable[..., list[CalendarSource]]:
    def _make(*names: str) -> list[CalendarSource]:
        return [
            CalendarSource(name=name, url=f"https://calendars.example.com/{name.lower()}.ics")
            for name in names
        ]

    return _make


@pytest.fixture
def make_transport() -> Callable[..., httpx.MockTransport]:
    """Build an httpx.MockTransport answering from a url -> (status, body) map.

    The returned transport records requested URLs in ``transport.requests``.
    """

    def _make(routes: dict[str, Any]) -> httpx.MockTransport:
        requests: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            requests.append(url)
            route = routes.get(url)
            if route is None:
                return httpx.Response(404, text="not found")
            if isinstance(route, Exception):
                raise route
            status, body = route
            return httpx.Response(status, text=body)

        transport = httpx.MockTransport(handler)
        transport.requests = requests  # type: ignore[attr-defined]
        return transport

    return _make


def pytest_configure(config: Any) -> None:
    """Register the markers used across the suite."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "fast: Tests that finish well under a second")
    config.addinivalue_line("markers", "integration: Tests that wire several modules together")
