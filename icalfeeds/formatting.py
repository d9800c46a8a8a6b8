"""Plain-text rendering of query results for the command line."""

from datetime import UTC, date, datetime, timedelta, tzinfo
from typing import Optional

from .models import CalendarSource, Occurrence, QueryResult


def format_time(dt: datetime, tz: tzinfo) -> str:
    """``9:05 AM`` style local time."""
    return dt.astimezone(tz).strftime("%I:%M %p").lstrip("0")


def format_event_date(dt: datetime, all_day: bool, tz: tzinfo) -> str:
    local = dt.astimezone(tz)
    label = f"{local:%a}, {local:%b} {local.day}"
    if all_day:
        return label
    return f"{label}, {format_time(local, tz)}"


def format_event_line(occurrence: Occurrence, tz: tzinfo) -> str:
    if occurrence.all_day:
        when = "All day"
    else:
        when = f"{format_time(occurrence.start, tz)}-{format_time(occurrence.end, tz)}"
    line = f"  * {when}: {occurrence.summary}"
    if occurrence.location:
        line += f" @ {occurrence.location}"
    if occurrence.status and occurrence.status != "confirmed":
        line += f" [{occurrence.status}]"
    if occurrence.recurring:
        line += " (recurring)"
    return line


def group_by_date(occurrences: list[Occurrence], tz: tzinfo) -> dict[date, list[Occurrence]]:
    """Group occurrences by local start date, keeping their order."""
    grouped: dict[date, list[Occurrence]] = {}
    for occurrence in occurrences:
        grouped.setdefault(occurrence.start.astimezone(tz).date(), []).append(occurrence)
    return grouped


def format_date_header(day: date, today: date) -> str:
    label = f"{day:%A}, {day:%B} {day.day}"
    if day == today:
        label += " (Today)"
    elif day == today + timedelta(days=1):
        label += " (Tomorrow)"
    return label


def format_query_result(result: QueryResult, tz: tzinfo, now: Optional[datetime] = None) -> str:
    """Render a query result grouped by day, with truncation and warning notes.

    Args:
        result: Query result to render
        tz: Zone used for dates and times
        now: Reference time for the Today/Tomorrow labels

    Returns:
        Multi-line text
    """
    if not result.occurrences:
        if result.warnings:
            return f"No events found. Errors: {'; '.join(result.warnings)}"
        return "No events found."

    today = (now or datetime.now(UTC)).astimezone(tz).date()
    lines: list[str] = []
    for day, occurrences in group_by_date(result.occurrences, tz).items():
        if lines:
            lines.append("")
        lines.append(format_date_header(day, today))
        lines.extend(format_event_line(occ, tz) for occ in occurrences)

    if result.total_count > result.returned_count:
        lines.append("")
        lines.append(f"(Showing {result.returned_count} of {result.total_count} events)")
    if result.warnings:
        lines.append("")
        lines.append(f"Warnings: {'; '.join(result.warnings)}")
    return "\n".join(lines)


def format_event_details(occurrence: Occurrence, tz: tzinfo) -> str:
    lines = [
        occurrence.summary,
        f"Calendar: {occurrence.source_name}",
        f"Start: {format_event_date(occurrence.start, occurrence.all_day, tz)}",
        f"End: {format_event_date(occurrence.end, occurrence.all_day, tz)}",
    ]
    if occurrence.location:
        lines.append(f"Location: {occurrence.location}")
    if occurrence.status and occurrence.status != "confirmed":
        lines.append(f"Status: {occurrence.status}")
    if occurrence.organizer:
        lines.append(f"Organizer: {occurrence.organizer}")
    if occurrence.attendees:
        lines.append(f"Attendees: {', '.join(occurrence.attendees)}")
    if occurrence.description:
        lines.append("")
        lines.append("Description:")
        lines.append(occurrence.description)
    if occurrence.recurring:
        lines.append("Recurring event")
    lines.append(f"UID: {occurrence.uid}")
    return "\n".join(lines)


def format_calendars(sources: list[CalendarSource]) -> str:
    if not sources:
        return "No calendars configured."
    lines = []
    for source in sources:
        line = f"{source.name}: {source.url}"
        if source.color:
            line += f" ({source.color})"
        lines.append(line)
    return "\n".join(lines)
