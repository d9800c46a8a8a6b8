"""Exception hierarchy for icalfeeds.

Per-source failures (fetch and parse errors) are downgraded to warnings by the
query engine, per-event expansion failures are recovered inside the expander,
and only a source-name filter that matches nothing is surfaced to the caller.
"""

from typing import Optional


class ICalFeedsError(Exception):
    """Base exception for all icalfeeds errors."""


class ICSFetchError(ICalFeedsError):
    """Retrieving a calendar feed failed.

    Raised when:
    - The server answered with a non-2xx status (``status_code`` is set)
    - The URL is not an http(s) URL
    - The transport failed (see subclasses)
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ICSNetworkError(ICSFetchError):
    """Connection-level failure (DNS, refused connection, TLS)."""


class ICSTimeoutError(ICSFetchError):
    """The feed did not answer within the configured timeout."""


class ICSParseError(ICalFeedsError):
    """A sanitized document could not be parsed into calendar components."""


class RRuleExpansionError(ICalFeedsError):
    """A single event's recurrence rule could not be expanded.

    Never leaves the expander: the event falls back to its base occurrence.
    """


class SourceNotFoundError(ICalFeedsError):
    """An explicit calendar name matched no configured source."""

    def __init__(self, name: str):
        super().__init__(f"Calendar '{name}' not found")
        self.name = name


class SourceConfigError(ICalFeedsError):
    """The calendar source configuration rejected a change."""
