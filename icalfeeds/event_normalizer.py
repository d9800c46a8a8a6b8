"""Normalization of raw VEVENT fields into occurrence display values."""

import re
from datetime import datetime
from typing import Optional

from .models import NO_TITLE_PLACEHOLDER, Occurrence, RawAttendee, RawComponent, RawOrganizer

_MAILTO_RE = re.compile(r"^mailto:", re.IGNORECASE)


def strip_mailto(address: str) -> str:
    return _MAILTO_RE.sub("", address or "")


def format_attendee(attendee: RawAttendee) -> str:
    """Render an attendee as ``"Name (partstat)"``, falling back to the address.

    Args:
        attendee: Attendee as parsed from the feed

    Returns:
        Display string; the participation status is lower-cased
    """
    label = attendee.name or strip_mailto(attendee.address)
    if attendee.partstat:
        return f"{label} ({attendee.partstat.lower()})"
    return label


def format_organizer(organizer: Optional[RawOrganizer]) -> Optional[str]:
    if organizer is None:
        return None
    return organizer.name or strip_mailto(organizer.address) or None


def build_occurrence(
    component: RawComponent,
    start: datetime,
    end: datetime,
    source_name: str,
    recurring: bool,
) -> Occurrence:
    """Create an occurrence from a component and its concrete interval.

    Args:
        component: Master, override or single component supplying the fields
        start: Occurrence start (aware UTC)
        end: Occurrence end (aware UTC)
        source_name: Calendar the component came from
        recurring: Whether the occurrence derives from a recurrence rule

    Returns:
        Normalized occurrence
    """
    attendees = [format_attendee(a) for a in component.attendees] or None
    return Occurrence(
        uid=component.uid,
        summary=component.summary or NO_TITLE_PLACEHOLDER,
        description=component.description,
        location=component.location,
        start=start,
        end=end,
        all_day=component.is_all_day,
        recurring=recurring,
        status=component.status.lower() if component.status else None,
        organizer=format_organizer(component.organizer),
        attendees=attendees,
        source_name=source_name,
    )
