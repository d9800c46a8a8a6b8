"""Data models for calendar feed aggregation."""

from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import Annotated, Literal, Optional, Union
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

# Shown when an event has no SUMMARY
NO_TITLE_PLACEHOLDER = "(No title)"


class CalendarSource(BaseModel):
    """A named calendar feed."""

    name: str = Field(..., description="Unique, case-sensitive calendar name")
    url: str = Field(..., description="ICS feed URL")
    color: Optional[str] = Field(default=None, description="Display hint")

    model_config = ConfigDict(frozen=True)


# Tagged calendar values
#
# Every DTSTART/DTEND/EXDATE/RDATE/RECURRENCE-ID value is converted into one of
# these three shapes at the parse boundary. Expansion then works on a naive
# wall-clock datetime plus the zone that wall clock belongs to.


class DateOnly(BaseModel):
    """A VALUE=DATE value (all-day)."""

    kind: Literal["date"] = "date"
    value: date

    model_config = ConfigDict(frozen=True)

    def zone(self, default_tz: tzinfo) -> tzinfo:
        return default_tz

    def wall_time(self) -> datetime:
        return datetime.combine(self.value, time.min)

    def to_instant(self, default_tz: tzinfo) -> datetime:
        return self.wall_time().replace(tzinfo=default_tz).astimezone(UTC)


class DateTimeUtc(BaseModel):
    """A date-time carrying the UTC ``Z`` marker."""

    kind: Literal["utc"] = "utc"
    value: datetime

    model_config = ConfigDict(frozen=True)

    def zone(self, default_tz: tzinfo) -> tzinfo:
        return UTC

    def wall_time(self) -> datetime:
        if self.value.tzinfo is None:
            return self.value
        return self.value.astimezone(UTC).replace(tzinfo=None)

    def to_instant(self, default_tz: tzinfo) -> datetime:
        return self.wall_time().replace(tzinfo=UTC)


class DateTimeLocal(BaseModel):
    """A wall-clock date-time, either in a named zone or floating (``tzid`` None).

    Floating values are read in the caller's default time zone.
    """

    kind: Literal["local"] = "local"
    value: datetime
    tzid: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    def zone(self, default_tz: tzinfo) -> tzinfo:
        if self.tzid:
            return ZoneInfo(self.tzid)
        return default_tz

    def wall_time(self) -> datetime:
        return self.value.replace(tzinfo=None)

    def to_instant(self, default_tz: tzinfo) -> datetime:
        return self.wall_time().replace(tzinfo=self.zone(default_tz)).astimezone(UTC)


CalendarValue = Annotated[
    Union[DateOnly, DateTimeUtc, DateTimeLocal], Field(discriminator="kind")
]


class RawAttendee(BaseModel):
    """ATTENDEE property as found in the feed."""

    address: str = ""
    name: Optional[str] = None
    partstat: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class RawOrganizer(BaseModel):
    """ORGANIZER property as found in the feed."""

    address: str = ""
    name: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class RawComponent(BaseModel):
    """One VEVENT from a parsed document, prior to recurrence expansion."""

    uid: str
    start: CalendarValue
    end: Optional[CalendarValue] = None
    duration: Optional[timedelta] = None

    rrule: Optional[str] = None
    rdates: list[CalendarValue] = Field(default_factory=list)
    exdates: list[CalendarValue] = Field(default_factory=list)
    recurrence_id: Optional[CalendarValue] = None
    overrides: dict[str, "RawComponent"] = Field(
        default_factory=dict, description="Modified instances keyed by RECURRENCE-ID text"
    )

    summary: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    status: Optional[str] = None
    organizer: Optional[RawOrganizer] = None
    attendees: list[RawAttendee] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @property
    def is_recurring(self) -> bool:
        return bool(self.rrule)

    @property
    def is_all_day(self) -> bool:
        return isinstance(self.start, DateOnly)


RawComponent.model_rebuild()

# component key -> component
Document = dict[str, RawComponent]


class CachedDocument(BaseModel):
    """A parsed document as stored by the cache layer."""

    url: str
    fetched_at: int = Field(..., description="Fetch time in epoch milliseconds")
    document: dict[str, RawComponent] = Field(default_factory=dict)


class Occurrence(BaseModel):
    """One concrete, dated instance of an event."""

    uid: str
    summary: str = NO_TITLE_PLACEHOLDER
    description: Optional[str] = None
    location: Optional[str] = None
    start: datetime
    end: datetime
    all_day: bool = False
    recurring: bool = False
    status: Optional[str] = None
    organizer: Optional[str] = None
    attendees: Optional[list[str]] = None
    source_name: str

    @field_serializer("start", "end")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize instants to ISO format."""
        return dt.isoformat()


class QueryWindow(BaseModel):
    """Inclusive time window for overlap tests."""

    start: datetime
    end: datetime

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_order(self) -> "QueryWindow":
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("QueryWindow bounds must be timezone-aware")
        if self.start > self.end:
            raise ValueError("QueryWindow start must not be after end")
        return self

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Boundary-inclusive overlap test."""
        return end >= self.start and start <= self.end


class QueryResult(BaseModel):
    """Merged, filtered, sorted and truncated occurrences across sources."""

    occurrences: list[Occurrence] = Field(default_factory=list)
    total_count: int = 0
    returned_count: int = 0
    warnings: list[str] = Field(default_factory=list)


class RefreshResult(BaseModel):
    """Outcome of an explicit cache refresh."""

    refreshed: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
