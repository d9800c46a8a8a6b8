"""Structural parsing of sanitized ICS text into serializable components.

icalendar does the grammar work; this module converts its property values
into the closed set of tagged values in ``models`` so that nothing downstream
has to inspect whether a value is a date, an aware datetime or a naive one.
"""

import logging
from datetime import UTC, date, datetime, timedelta
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from icalendar import Calendar, Event as ICalEvent

from .exceptions import ICSParseError
from .ics_sanitizer import unfold_lines
from .models import (
    CalendarValue,
    DateOnly,
    DateTimeLocal,
    DateTimeUtc,
    Document,
    RawAttendee,
    RawComponent,
    RawOrganizer,
)

logger = logging.getLogger(__name__)

_UTC_NAMES = frozenset({"UTC", "Etc/UTC", "Etc/Universal", "Universal", "Zulu", "Z"})


def _zone_name(tz: Any) -> Optional[str]:
    """Best-effort name for a tzinfo from zoneinfo, pytz or icalendar."""
    for attr in ("key", "zone"):
        name = getattr(tz, attr, None)
        if isinstance(name, str) and name:
            return name
    name = str(tz)
    return name or None


def _is_known_zone(tzid: str) -> bool:
    try:
        ZoneInfo(tzid)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def to_calendar_value(value: Any, tzid_param: Optional[str] = None) -> Optional[CalendarValue]:
    """Convert a decoded icalendar value into a tagged calendar value.

    Args:
        value: ``date`` or ``datetime`` as produced by icalendar (``.dt``)
        tzid_param: TZID parameter of the property, if any

    Returns:
        DateOnly, DateTimeUtc or DateTimeLocal; None for unsupported values
        (periods, durations)
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            if tzid_param and _is_known_zone(tzid_param):
                return DateTimeLocal(value=value, tzid=tzid_param)
            return DateTimeLocal(value=value)

        name = _zone_name(value.tzinfo)
        if name in _UTC_NAMES or value.tzinfo is UTC:
            return DateTimeUtc(value=value.astimezone(UTC))

        for candidate in (name, tzid_param):
            if candidate and _is_known_zone(candidate):
                return DateTimeLocal(value=value.replace(tzinfo=None), tzid=candidate)

        # Zone only described by an in-document VTIMEZONE: pin the instant
        logger.debug("Unknown time zone %r, storing %s as UTC", name or tzid_param, value)
        return DateTimeUtc(value=value.astimezone(UTC))

    if isinstance(value, date):
        return DateOnly(value=value)

    return None


def _decode_value(prop: Any) -> Optional[CalendarValue]:
    if prop is None:
        return None
    params = getattr(prop, "params", {}) or {}
    return to_calendar_value(getattr(prop, "dt", prop), params.get("TZID"))


def _decode_value_list(prop: Any) -> list[CalendarValue]:
    """Flatten EXDATE/RDATE properties (single, repeated or comma-separated)."""
    if prop is None:
        return []
    props = prop if isinstance(prop, list) else [prop]
    values: list[CalendarValue] = []
    for item in props:
        params = getattr(item, "params", {}) or {}
        entries = getattr(item, "dts", None) or [item]
        for entry in entries:
            value = to_calendar_value(getattr(entry, "dt", entry), params.get("TZID"))
            if value is not None:
                values.append(value)
    return values


def _text(component: ICalEvent, name: str) -> Optional[str]:
    value = component.get(name)
    if value is None:
        return None
    text = str(value)
    return text if text else None


def _parse_organizer(prop: Any) -> Optional[RawOrganizer]:
    if prop is None:
        return None
    params = getattr(prop, "params", {}) or {}
    return RawOrganizer(address=str(prop), name=params.get("CN"))


def _parse_attendees(prop: Any) -> list[RawAttendee]:
    if prop is None:
        return []
    props = prop if isinstance(prop, list) else [prop]
    attendees = []
    for att in props:
        params = getattr(att, "params", {}) or {}
        attendees.append(
            RawAttendee(address=str(att), name=params.get("CN"), partstat=params.get("PARTSTAT"))
        )
    return attendees


def _raw_rrules_by_event(text: str) -> list[Optional[str]]:
    """First RRULE value of every VEVENT block, in document order.

    icalendar drops RRULE values it cannot parse; the raw text keeps them so
    that the expander can fall back per event instead of silently treating a
    recurring event as a single one.
    """
    rules: list[Optional[str]] = []
    in_event = False
    for line in unfold_lines(text):
        upper = line.upper()
        if upper.startswith("BEGIN:VEVENT"):
            in_event = True
            rules.append(None)
        elif upper.startswith("END:VEVENT"):
            in_event = False
        elif in_event and upper.startswith("RRULE") and rules[-1] is None:
            _, _, value = line.partition(":")
            rules[-1] = value.strip() or None
    return rules


def _parse_component(component: ICalEvent, raw_rrule: Optional[str]) -> Optional[RawComponent]:
    start = _decode_value(component.get("DTSTART"))
    uid = _text(component, "UID") or ""
    if start is None:
        logger.debug("Skipping VEVENT %r without a usable DTSTART", uid)
        return None

    duration_prop = component.get("DURATION")
    duration = getattr(duration_prop, "dt", None)
    if not isinstance(duration, timedelta):
        duration = None

    rrule = raw_rrule
    if rrule is None and component.get("RRULE") is not None:
        rrule_prop = component.get("RRULE")
        rrule = rrule_prop.to_ical().decode("utf-8") if hasattr(rrule_prop, "to_ical") else str(rrule_prop)

    status = _text(component, "STATUS")

    return RawComponent(
        uid=uid,
        start=start,
        end=_decode_value(component.get("DTEND")),
        duration=duration,
        rrule=rrule,
        rdates=_decode_value_list(component.get("RDATE")),
        exdates=_decode_value_list(component.get("EXDATE")),
        recurrence_id=_decode_value(component.get("RECURRENCE-ID")),
        summary=_text(component, "SUMMARY"),
        description=_text(component, "DESCRIPTION"),
        location=_text(component, "LOCATION"),
        status=status,
        organizer=_parse_organizer(component.get("ORGANIZER")),
        attendees=_parse_attendees(component.get("ATTENDEE")),
    )


def _recurrence_key(component: ICalEvent) -> str:
    prop = component.get("RECURRENCE-ID")
    if hasattr(prop, "to_ical"):
        return prop.to_ical().decode("utf-8")
    return str(prop)


def _warn_feed_only_zones(calendar: Calendar) -> None:
    """Warn about VTIMEZONE definitions that have no IANA equivalent.

    Values in such zones are pinned to UTC instants, so recurring events using
    them expand on the UTC clock and drift by the DST offset.
    """
    for timezone in calendar.walk("VTIMEZONE"):
        tzid = _text(timezone, "TZID")
        if tzid and not _is_known_zone(tzid):
            logger.warning(
                "Time zone %r is only defined inside the feed; its times are stored as UTC "
                "and recurring events in it may shift across DST changes",
                tzid,
            )


def parse_ics(text: str) -> Document:
    """Parse sanitized ICS text into a document.

    Args:
        text: Sanitized ICS document

    Returns:
        Mapping of component key to component. Override instances
        (RECURRENCE-ID) are attached to their master; orphans get their own
        ``"{uid}::{recurrence-id}"`` key.

    Raises:
        ICSParseError: If icalendar rejects the document or it has no VCALENDAR
    """
    try:
        calendar = Calendar.from_ical(text)
    except Exception as e:
        raise ICSParseError(f"Invalid calendar data: {e}") from e

    if getattr(calendar, "name", None) != "VCALENDAR":
        raise ICSParseError("Invalid calendar data: missing VCALENDAR")

    _warn_feed_only_zones(calendar)

    events = list(calendar.walk("VEVENT"))
    raw_rrules = _raw_rrules_by_event(text)
    if len(raw_rrules) != len(events):
        logger.debug(
            "VEVENT count mismatch (%d parsed, %d in text); using parsed RRULE values",
            len(events),
            len(raw_rrules),
        )
        raw_rrules = [None] * len(events)

    document: Document = {}
    overrides: list[tuple[str, RawComponent]] = []
    generated = 0

    for component, raw_rrule in zip(events, raw_rrules):
        for name, message in getattr(component, "errors", []) or []:
            logger.debug("icalendar reported %s error in VEVENT: %s", name, message)

        parsed = _parse_component(component, raw_rrule)
        if parsed is None:
            continue

        if not parsed.uid:
            generated += 1
            parsed = parsed.model_copy(update={"uid": f"generated-{generated}"})

        if parsed.recurrence_id is not None:
            overrides.append((_recurrence_key(component), parsed))
            continue

        key = parsed.uid
        if key in document:
            key = f"{parsed.uid}::{len(document)}"
        document[key] = parsed

    for rid_key, override in overrides:
        master = document.get(override.uid)
        if master is not None and master.is_recurring:
            document[override.uid] = master.model_copy(
                update={"overrides": {**master.overrides, rid_key: override}}
            )
        else:
            document[f"{override.uid}::{rid_key}"] = override

    logger.debug(
        "Parsed %d VEVENT(s) into %d component(s) (%d override(s))",
        len(events),
        len(document),
        len(overrides),
    )
    return document
