"""Pre-parse repair of raw ICS text.

Feed producers frequently emit an RRULE whose UNTIL value does not share the
value type of the event's DTSTART (date vs date-time, UTC vs local). RFC 5545
requires them to match, and strict consumers either reject the event or
expand it incorrectly. This module rewrites UNTIL to the DTSTART shape before
the document reaches the structural parser. Nothing else is changed.
"""

import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

_LINE_SPLIT_RE = re.compile(r"\r?\n")
_UNTIL_RE = re.compile(r"UNTIL=([^;]+)", re.IGNORECASE)
_BARE_DATE_RE = re.compile(r"^\d{8}$")

_BEGIN_EVENT = "BEGIN:VEVENT"
_END_EVENT = "END:VEVENT"


def unfold_lines(text: str) -> list[str]:
    """Join RFC 5545 folded lines into logical lines.

    A physical line starting with a single space or tab continues the previous
    logical line: exactly one leading whitespace character is dropped and the
    remainder is appended without a separator.

    Args:
        text: Raw ICS document

    Returns:
        Logical lines in document order
    """
    lines: list[str] = []
    for raw_line in _LINE_SPLIT_RE.split(text):
        if raw_line[:1] in (" ", "\t") and lines:
            lines[-1] += raw_line[1:]
        else:
            lines.append(raw_line)
    return lines


def _split_property(line: str) -> tuple[str, str]:
    """Split a content line into (name-and-params, value) at the first colon."""
    head, _, value = line.partition(":")
    return head, value.strip()


def _has_date_value_param(head: str) -> bool:
    """True if the property parameters declare VALUE=DATE (not DATE-TIME)."""
    for param in head.split(";")[1:]:
        name, _, value = param.partition("=")
        if name.strip().upper() == "VALUE" and value.strip().strip('"').upper() == "DATE":
            return True
    return False


def _detect_start_shape(event_lines: list[str]) -> Optional[tuple[bool, bool]]:
    """Return (is_date_only, has_utc_marker) for the first DTSTART, or None."""
    for line in event_lines:
        if not line.upper().startswith("DTSTART"):
            continue
        if ":" not in line:
            continue
        head, value = _split_property(line)
        is_date_only = _has_date_value_param(head) or bool(_BARE_DATE_RE.match(value))
        return is_date_only, value.upper().endswith("Z")
    return None


def normalize_until(until_value: str, start_is_date_only: bool, start_has_utc: bool) -> str:
    """Coerce an UNTIL value to the value type of the event start.

    Args:
        until_value: The UNTIL value as written in the feed
        start_is_date_only: Whether DTSTART is a DATE value
        start_has_utc: Whether DTSTART ends with the ``Z`` marker

    Returns:
        The repaired UNTIL value (unchanged when the types already agree)
    """
    until_has_time = "T" in until_value.upper()
    if start_is_date_only and until_has_time:
        return until_value[:8]
    if not start_is_date_only and not until_has_time:
        return until_value + ("T000000Z" if start_has_utc else "T000000")
    return until_value


def _repair_event(event_lines: list[str]) -> tuple[list[str], int]:
    """Repair the RRULE lines of one VEVENT block.

    Returns:
        (lines, number of repaired RRULE lines)
    """
    shape = _detect_start_shape(event_lines)
    if shape is None:
        return event_lines, 0

    is_date_only, has_utc = shape
    repaired = 0
    output: list[str] = []
    for line in event_lines:
        if not line.upper().startswith("RRULE"):
            output.append(line)
            continue
        match = _UNTIL_RE.search(line)
        if not match:
            output.append(line)
            continue
        until_value = match.group(1)
        normalized = normalize_until(until_value, is_date_only, has_utc)
        if normalized == until_value:
            output.append(line)
            continue
        output.append(line[: match.start(1)] + normalized + line[match.end(1) :])
        repaired += 1
    return output, repaired


def sanitize_ics(text: str) -> str:
    """Unfold lines and repair UNTIL/DTSTART value-type mismatches.

    Lines outside VEVENT blocks, and malformed lines inside them, pass through
    verbatim. A trailing VEVENT without END:VEVENT is still repaired.

    Args:
        text: Raw ICS document

    Returns:
        Sanitized ICS document, lines joined with ``\\n``
    """
    output: list[str] = []
    buffer: list[str] = []
    in_event = False
    repaired_total = 0

    for line in unfold_lines(text):
        if line.startswith(_BEGIN_EVENT):
            if in_event:
                # Nested BEGIN without END: flush what we have unchanged
                output.extend(buffer)
            in_event = True
            buffer = [line]
            continue

        if in_event:
            buffer.append(line)
            if line.startswith(_END_EVENT):
                event_lines, repaired = _repair_event(buffer)
                output.extend(event_lines)
                repaired_total += repaired
                buffer = []
                in_event = False
            continue

        output.append(line)

    if buffer:
        event_lines, repaired = _repair_event(buffer)
        output.extend(event_lines)
        repaired_total += repaired

    if repaired_total:
        logger.debug("Repaired UNTIL value type on %d RRULE line(s)", repaired_total)

    return "\n".join(output)
