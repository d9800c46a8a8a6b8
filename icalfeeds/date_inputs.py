"""Time zone resolution and user date input parsing."""

import logging
import re
from datetime import UTC, datetime, time, timedelta, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

from .models import QueryWindow

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 30

_RELATIVE_KEYWORDS = frozenset({"today", "tomorrow", "yesterday", "this week", "week", "next week"})
_DATE_ONLY_RE = re.compile(r"^\d{4}-?\d{2}-?\d{2}$")


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """Load an IANA time zone, falling back to UTC.

    Args:
        name: IANA zone name such as ``"Europe/Berlin"``

    Returns:
        The zone, or UTC if ``name`` is empty or unknown
    """
    if not name:
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Invalid timezone %r, falling back to UTC", name)
        return UTC


def ensure_aware(dt: datetime, tz: tzinfo) -> datetime:
    """Interpret a naive datetime in ``tz``; aware values pass through."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt


def start_of_day(dt: datetime, tz: tzinfo) -> datetime:
    local = dt.astimezone(tz)
    return datetime.combine(local.date(), time.min, tzinfo=tz)


def end_of_day(dt: datetime, tz: tzinfo) -> datetime:
    local = dt.astimezone(tz)
    return datetime.combine(local.date(), time.max, tzinfo=tz)


def parse_relative_date(text: str, tz: tzinfo, now: Optional[datetime] = None) -> Optional[datetime]:
    """Resolve ``today``, ``tomorrow``, ``yesterday``, ``this week`` and ``next week``.

    Week keywords resolve to a Monday. All results are local midnight in ``tz``.

    Args:
        text: User input
        tz: Zone whose calendar day is meant
        now: Reference time (defaults to the current time)

    Returns:
        Aware datetime, or None if ``text`` is not a relative keyword
    """
    keyword = text.strip().lower()
    today = start_of_day(now or datetime.now(UTC), tz)

    if keyword == "today":
        offset = 0
    elif keyword == "tomorrow":
        offset = 1
    elif keyword == "yesterday":
        offset = -1
    elif keyword in ("this week", "week"):
        offset = -today.weekday()
    elif keyword == "next week":
        offset = 7 - today.weekday()
    else:
        return None

    day = today.date() + timedelta(days=offset)
    return datetime.combine(day, time.min, tzinfo=tz)


def _is_date_only(text: str) -> bool:
    value = text.strip().lower()
    return value in _RELATIVE_KEYWORDS or bool(_DATE_ONLY_RE.match(value))


def parse_date_input(
    text: Optional[str],
    tz: tzinfo,
    default: datetime,
    now: Optional[datetime] = None,
) -> datetime:
    """Parse a relative keyword or an ISO 8601 date/date-time.

    Naive ISO values are read in ``tz``. Empty or unparseable input yields
    ``default``.
    """
    if not text:
        return default

    relative = parse_relative_date(text, tz, now)
    if relative is not None:
        return relative

    try:
        return ensure_aware(date_parser.isoparse(text.strip()), tz)
    except ValueError:
        logger.debug("Unparseable date input %r, using default %s", text, default)
        return default


def build_window(
    from_text: Optional[str],
    to_text: Optional[str],
    tz: tzinfo,
    now: Optional[datetime] = None,
) -> QueryWindow:
    """Build a query window from user input.

    Defaults to ``now .. now + 30 days``. A ``to`` given without a time part
    extends to the end of that day.

    Raises:
        ValueError: If the resolved start lies after the resolved end
    """
    current = now or datetime.now(UTC)
    start = parse_date_input(from_text, tz, current, current)
    end = parse_date_input(to_text, tz, current + timedelta(days=DEFAULT_WINDOW_DAYS), current)

    if to_text and _is_date_only(to_text):
        end = end_of_day(end, tz)

    return QueryWindow(start=start, end=end)
