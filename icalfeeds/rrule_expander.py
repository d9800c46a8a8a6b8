"""RRULE expansion of parsed documents into windowed occurrences."""

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, tzinfo
from typing import Any, Optional

from dateutil.rrule import rrule, rrulestr

from .date_inputs import resolve_timezone
from .event_normalizer import build_occurrence
from .exceptions import RRuleExpansionError
from .models import (
    CalendarValue,
    DateOnly,
    DateTimeLocal,
    DateTimeUtc,
    Document,
    Occurrence,
    QueryWindow,
    RawComponent,
)

logger = logging.getLogger(__name__)

# Slack added around the window when generating candidates in wall-clock
# space; exact inclusion is decided afterwards on UTC instants.
_CANDIDATE_MARGIN = timedelta(days=1)

_UNTIL_FORMATS = ("%Y%m%dT%H%M%S", "%Y%m%dT%H%M", "%Y%m%d")


@dataclass
class RRuleExpanderConfig:
    """Configuration for RRULE expansion."""

    default_timezone: str = "UTC"
    max_occurrences_per_rule: int = 1000

    @classmethod
    def from_settings(cls, settings: Any) -> "RRuleExpanderConfig":
        """Extract expansion configuration from a settings object.

        Args:
            settings: Object with ``timezone`` / ``max_occurrences_per_rule``

        Returns:
            RRuleExpanderConfig with values from settings or defaults
        """
        return cls(
            default_timezone=getattr(settings, "timezone", None) or "UTC",
            max_occurrences_per_rule=getattr(settings, "max_occurrences_per_rule", 1000),
        )


def split_until(rule_text: str) -> tuple[str, Optional[str]]:
    """Separate the UNTIL part from an RRULE value.

    Args:
        rule_text: RRULE value, with or without the ``RRULE:`` prefix

    Returns:
        (rule without UNTIL, UNTIL value or None)
    """
    text = rule_text.strip()
    if text.upper().startswith("RRULE:"):
        text = text[len("RRULE:") :]

    parts = []
    until = None
    for part in text.split(";"):
        if not part:
            continue
        if part.upper().startswith("UNTIL="):
            until = part[len("UNTIL=") :].strip()
        else:
            parts.append(part)
    return ";".join(parts), until


def _parse_until(value: str) -> tuple[datetime, bool]:
    """Parse an UNTIL value into (naive datetime, is_utc)."""
    is_utc = value.upper().endswith("Z")
    raw = value[:-1] if is_utc else value
    for fmt in _UNTIL_FORMATS:
        try:
            return datetime.strptime(raw, fmt), is_utc
        except ValueError:
            continue
    raise ValueError(f"Unrecognized UNTIL value: {value!r}")


def _same_zone(a: CalendarValue, b: CalendarValue) -> bool:
    if isinstance(a, DateOnly) and isinstance(b, DateOnly):
        return True
    if isinstance(a, DateTimeUtc) and isinstance(b, DateTimeUtc):
        return True
    if isinstance(a, DateTimeLocal) and isinstance(b, DateTimeLocal):
        return a.tzid == b.tzid
    return False


def _localize(wall: datetime, zone: tzinfo) -> datetime:
    return wall.replace(tzinfo=zone).astimezone(UTC)


def _to_wall(instant: datetime, zone: tzinfo) -> datetime:
    return instant.astimezone(zone).replace(tzinfo=None)


class RRuleExpander:
    """Turns a document into the occurrences overlapping a query window.

    Recurring masters are expanded with dateutil in the wall-clock space of
    their DTSTART (UTC, the TZID zone, or the default zone for floating and
    date-only values) and converted to UTC instants afterwards. A master whose
    rule cannot be expanded degrades to its single base occurrence.
    """

    def __init__(self, default_timezone: str = "UTC", max_occurrences_per_rule: int = 1000):
        self.default_tz = resolve_timezone(default_timezone)
        self.max_occurrences_per_rule = max_occurrences_per_rule

        logger.debug(
            "RRuleExpander initialized: tz=%s, max_occurrences_per_rule=%d",
            self.default_tz,
            max_occurrences_per_rule,
        )

    @classmethod
    def from_settings(cls, settings: Any) -> "RRuleExpander":
        config = RRuleExpanderConfig.from_settings(settings)
        return cls(config.default_timezone, config.max_occurrences_per_rule)

    def expand(self, document: Document, window: QueryWindow, source_name: str) -> list[Occurrence]:
        """Produce the occurrences of every component that overlap ``window``.

        Args:
            document: Parsed document (component key -> component)
            window: Inclusive query window
            source_name: Calendar name stamped on every occurrence

        Returns:
            Occurrences in no particular order
        """
        occurrences: list[Occurrence] = []
        for component in document.values():
            if component.is_recurring:
                occurrences.extend(self._expand_recurring(component, window, source_name))
                continue

            start = component.start.to_instant(self.default_tz)
            end = self._end_instant(component, start)
            if window.overlaps(start, end):
                occurrences.append(
                    build_occurrence(
                        component,
                        start,
                        end,
                        source_name,
                        recurring=component.recurrence_id is not None,
                    )
                )

        logger.debug(
            "Expanded %d component(s) from %s into %d occurrence(s)",
            len(document),
            source_name,
            len(occurrences),
        )
        return occurrences

    def _expand_recurring(
        self, component: RawComponent, window: QueryWindow, source_name: str
    ) -> list[Occurrence]:
        try:
            return self.expand_rule(component, window, source_name)
        except RRuleExpansionError as e:
            logger.warning("Using base occurrence for %r: %s", component.uid, e)
            start = component.start.to_instant(self.default_tz)
            end = self._end_instant(component, start)
            return [build_occurrence(component, start, end, source_name, recurring=True)]

    def _end_instant(
        self,
        component: RawComponent,
        start: datetime,
        fallback_duration: Optional[timedelta] = None,
    ) -> datetime:
        """End of a non-generated occurrence; ``start`` when nothing says otherwise."""
        if component.end is not None:
            return component.end.to_instant(self.default_tz)
        if component.duration is not None:
            return start + component.duration
        if fallback_duration is not None:
            return start + fallback_duration
        return start

    def _wall_duration(self, component: RawComponent) -> timedelta:
        """Length of each generated occurrence, measured on the start's wall clock."""
        if component.duration is not None:
            return component.duration
        if component.end is None:
            return timedelta(0)
        if _same_zone(component.start, component.end):
            return component.end.wall_time() - component.start.wall_time()
        return component.end.to_instant(self.default_tz) - component.start.to_instant(self.default_tz)

    def _value_wall(self, value: CalendarValue, zone: tzinfo) -> datetime:
        if isinstance(value, DateOnly):
            return value.wall_time()
        return _to_wall(value.to_instant(self.default_tz), zone)

    def _until_wall(self, until: str, component: RawComponent, zone: tzinfo) -> datetime:
        """Express an UNTIL value on the wall clock the rule is generated in."""
        parsed, is_utc = _parse_until(until)
        if isinstance(component.start, DateOnly):
            return datetime.combine(parsed.date(), datetime.min.time())
        if is_utc:
            return _to_wall(parsed.replace(tzinfo=UTC), zone)
        return parsed

    def build_rule(self, component: RawComponent, zone: tzinfo) -> rrule:
        """Build the dateutil rule for a master in its wall-clock space.

        Raises:
            RRuleExpansionError: If the rule text or its UNTIL cannot be used
        """
        if not component.rrule:
            raise RRuleExpansionError(f"Event {component.uid!r} has no RRULE")
        try:
            rule_text, until = split_until(component.rrule)
            rule = rrulestr(rule_text, dtstart=component.start.wall_time())
            if until is not None:
                rule = rule.replace(until=self._until_wall(until, component, zone))
        except (ValueError, TypeError, KeyError) as e:
            raise RRuleExpansionError(f"Invalid RRULE {component.rrule!r}: {e}") from e
        if not isinstance(rule, rrule):
            raise RRuleExpansionError(f"Unsupported RRULE {component.rrule!r}")
        return rule

    def expand_rule(
        self, component: RawComponent, window: QueryWindow, source_name: str
    ) -> list[Occurrence]:
        """Expand one recurring master, honouring RDATE, EXDATE and overrides.

        Args:
            component: Recurring master
            window: Inclusive query window
            source_name: Calendar name stamped on every occurrence

        Returns:
            Overlapping occurrences, overrides included

        Raises:
            RRuleExpansionError: On any failure expanding this master
        """
        try:
            return self._expand_rule(component, window, source_name)
        except RRuleExpansionError:
            raise
        except Exception as e:
            raise RRuleExpansionError(f"Expansion failed for {component.uid!r}: {e}") from e

    def _expand_rule(
        self, component: RawComponent, window: QueryWindow, source_name: str
    ) -> list[Occurrence]:
        zone = component.start.zone(self.default_tz)
        rule = self.build_rule(component, zone)
        duration = self._wall_duration(component)

        # An occurrence starting up to one duration before the window still overlaps it
        lower = _to_wall(window.start, zone) - max(duration, timedelta(0)) - _CANDIDATE_MARGIN
        upper = _to_wall(window.end, zone) + _CANDIDATE_MARGIN

        candidates: set[datetime] = set()
        for count, wall in enumerate(rule.xafter(lower, inc=True)):
            if wall > upper:
                break
            if count >= self.max_occurrences_per_rule:
                logger.warning(
                    "RRULE for %r hit the %d occurrence cap; later occurrences dropped",
                    component.uid,
                    self.max_occurrences_per_rule,
                )
                break
            candidates.add(wall)

        for rdate in component.rdates:
            wall = self._value_wall(rdate, zone)
            if lower <= wall <= upper:
                candidates.add(wall)

        excluded_instants = set()
        excluded_dates: set[date] = set()
        for exdate in component.exdates:
            if isinstance(exdate, DateOnly):
                excluded_dates.add(exdate.value)
            else:
                excluded_instants.add(exdate.to_instant(self.default_tz))

        overridden_instants = set()
        overridden_dates: set[date] = set()
        for override in component.overrides.values():
            rid = override.recurrence_id
            if rid is None:
                continue
            if isinstance(rid, DateOnly):
                overridden_dates.add(rid.value)
            else:
                overridden_instants.add(rid.to_instant(self.default_tz))

        occurrences: list[Occurrence] = []
        for wall in sorted(candidates):
            start = _localize(wall, zone)
            if start in excluded_instants or wall.date() in excluded_dates:
                continue
            if start in overridden_instants or wall.date() in overridden_dates:
                continue
            end = _localize(wall + duration, zone)
            if window.overlaps(start, end):
                occurrences.append(build_occurrence(component, start, end, source_name, recurring=True))

        # Overrides without their own end inherit the master's length
        master_start = component.start.to_instant(self.default_tz)
        master_duration = self._end_instant(component, master_start) - master_start
        for override in component.overrides.values():
            start = override.start.to_instant(self.default_tz)
            end = self._end_instant(override, start, master_duration)
            if window.overlaps(start, end):
                occurrences.append(build_occurrence(override, start, end, source_name, recurring=True))

        return occurrences
