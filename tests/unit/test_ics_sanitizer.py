"""Unit tests for icalfeeds.ics_sanitizer."""

import logging

import pytest

from icalfeeds.ics_sanitizer import normalize_until, sanitize_ics, unfold_lines

pytestmark = [pytest.mark.unit, pytest.mark.fast]


def _event(dtstart: str, rrule: str) -> str:
    return "\n".join(
        [
            "BEGIN:VCALENDAR",
            "BEGIN:VEVENT",
            "UID:x@example.com",
            dtstart,
            rrule,
            "END:VEVENT",
            "END:VCALENDAR",
        ]
    )


def _rrule_line(text: str) -> str:
    return next(line for line in text.split("\n") if line.startswith("RRULE"))


class TestUnfoldLines:
    def test_unfold_when_space_continuation_then_joined_without_separator(self) -> None:
        text = "DESCRIPTION:Hello\r\n  world\r\nSUMMARY:x"
        assert unfold_lines(text) == ["DESCRIPTION:Hello world", "SUMMARY:x"]

    def test_unfold_when_tab_continuation_then_exactly_one_char_stripped(self) -> None:
        text = "DESCRIPTION:a\n\t\tb"
        assert unfold_lines(text) == ["DESCRIPTION:a\tb"]

    def test_unfold_when_continuations_present_then_count_equals_logical_lines(self) -> None:
        physical = [
            "BEGIN:VEVENT",
            "DESCRIPTION:one",
            " two",
            " three",
            "SUMMARY:s",
            "\tmore",
            "END:VEVENT",
        ]
        lines = unfold_lines("\r\n".join(physical))
        logical = [line for line in physical if not line.startswith((" ", "\t"))]
        assert len(lines) == len(logical)
        assert not any(line.startswith((" ", "\t")) for line in lines)

    def test_unfold_when_rrule_folded_then_until_visible_for_repair(self) -> None:
        text = _event("DTSTART;VALUE=DATE:20240101", "RRULE:FREQ=DAILY;UN\n TIL=20240610T000000Z")
        assert _rrule_line(sanitize_ics(text)) == "RRULE:FREQ=DAILY;UNTIL=20240610"


class TestNormalizeUntil:
    @pytest.mark.parametrize(
        ("until", "date_only", "utc", "expected"),
        [
            ("20240610T000000Z", True, False, "20240610"),
            ("20240610", False, True, "20240610T000000Z"),
            ("20240610", False, False, "20240610T000000"),
            ("20240610", True, False, "20240610"),
            ("20240610T120000Z", False, True, "20240610T120000Z"),
        ],
    )
    def test_normalize_until_when_shapes_given_then_matches_start(
        self, until: str, date_only: bool, utc: bool, expected: str
    ) -> None:
        assert normalize_until(until, date_only, utc) == expected


class TestSanitizeIcs:
    def test_sanitize_when_date_start_and_timed_until_then_truncated(self) -> None:
        text = _event("DTSTART;VALUE=DATE:20240101", "RRULE:FREQ=WEEKLY;UNTIL=20240610T000000Z")
        assert _rrule_line(sanitize_ics(text)) == "RRULE:FREQ=WEEKLY;UNTIL=20240610"

    def test_sanitize_when_utc_start_and_date_until_then_utc_time_appended(self) -> None:
        text = _event("DTSTART:20240101T090000Z", "RRULE:FREQ=WEEKLY;UNTIL=20240610")
        assert _rrule_line(sanitize_ics(text)) == "RRULE:FREQ=WEEKLY;UNTIL=20240610T000000Z"

    def test_sanitize_when_local_start_and_date_until_then_time_appended_without_z(self) -> None:
        text = _event("DTSTART;TZID=Europe/Berlin:20240101T090000", "RRULE:FREQ=WEEKLY;UNTIL=20240610")
        assert _rrule_line(sanitize_ics(text)) == "RRULE:FREQ=WEEKLY;UNTIL=20240610T000000"

    def test_sanitize_when_bare_eight_digit_start_then_treated_as_date(self) -> None:
        text = _event("DTSTART:20240101", "RRULE:FREQ=DAILY;UNTIL=20240105T235959Z;COUNT=3")
        assert _rrule_line(sanitize_ics(text)) == "RRULE:FREQ=DAILY;UNTIL=20240105;COUNT=3"

    def test_sanitize_when_value_date_time_param_then_not_date_only(self) -> None:
        text = _event("DTSTART;VALUE=DATE-TIME:20240101T090000Z", "RRULE:FREQ=DAILY;UNTIL=20240105")
        assert _rrule_line(sanitize_ics(text)) == "RRULE:FREQ=DAILY;UNTIL=20240105T000000Z"

    def test_sanitize_when_applied_twice_then_idempotent(self, sample_ics_recurring: str) -> None:
        text = sample_ics_recurring + _event("DTSTART;VALUE=DATE:20240101", "RRULE:FREQ=DAILY;UNTIL=20240110T000000Z")
        once = sanitize_ics(text)
        assert sanitize_ics(once) == once

    def test_sanitize_when_no_dtstart_then_event_unchanged(self) -> None:
        text = "\n".join(["BEGIN:VEVENT", "RRULE:FREQ=DAILY;UNTIL=20240110", "END:VEVENT"])
        assert sanitize_ics(text) == text

    def test_sanitize_when_lines_outside_events_then_passed_through(self) -> None:
        text = "\n".join(["BEGIN:VCALENDAR", "X-WR-CALNAME:Team", "RRULE:UNTIL=20240101", "END:VCALENDAR"])
        assert sanitize_ics(text) == text

    def test_sanitize_when_event_block_unterminated_then_still_repaired(self) -> None:
        text = "\n".join(["BEGIN:VEVENT", "DTSTART:20240101T090000Z", "RRULE:FREQ=DAILY;UNTIL=20240110"])
        assert sanitize_ics(text).endswith("RRULE:FREQ=DAILY;UNTIL=20240110T000000Z")

    def test_sanitize_when_malformed_lines_then_passed_through_verbatim(self) -> None:
        text = "\n".join(["BEGIN:VEVENT", "garbage without colon", "DTSTART", "END:VEVENT"])
        assert sanitize_ics(text) == text

    def test_sanitize_when_repairs_made_then_logs_count_at_debug(self, caplog: pytest.LogCaptureFixture) -> None:
        text = _event("DTSTART:20240101T090000Z", "RRULE:FREQ=WEEKLY;UNTIL=20240610")
        with caplog.at_level(logging.DEBUG, logger="icalfeeds.ics_sanitizer"):
            sanitize_ics(text)
        assert "1 RRULE line" in caplog.text

    def test_sanitize_when_crlf_input_then_output_joined_with_lf(self) -> None:
        assert sanitize_ics("A:1\r\nB:2\r\n") == "A:1\nB:2\n"
