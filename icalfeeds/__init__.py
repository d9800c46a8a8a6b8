"""icalfeeds - aggregation and recurrence expansion for iCalendar feeds.

Fetches ICS feeds over HTTP, repairs the UNTIL/DTSTART value-type mismatch
common in the wild, caches parsed documents on disk, expands recurring events
into a query window and merges the result across calendars.
"""

__version__ = "0.1.0"

from .exceptions import (
    ICalFeedsError,
    ICSFetchError,
    ICSNetworkError,
    ICSParseError,
    ICSTimeoutError,
    RRuleExpansionError,
    SourceConfigError,
    SourceNotFoundError,
)
from .ics_cache import ICSDocumentCache
from .ics_fetcher import ICSFetcher
from .models import CalendarSource, Occurrence, QueryResult, QueryWindow, RefreshResult
from .query_engine import QueryEngine, select_sources
from .rrule_expander import RRuleExpander

__all__ = [
    "CalendarSource",
    "ICSDocumentCache",
    "ICSFetchError",
    "ICSFetcher",
    "ICSNetworkError",
    "ICSParseError",
    "ICSTimeoutError",
    "ICalFeedsError",
    "Occurrence",
    "QueryEngine",
    "QueryResult",
    "QueryWindow",
    "RRuleExpander",
    "RRuleExpansionError",
    "RefreshResult",
    "SourceConfigError",
    "SourceNotFoundError",
    "__version__",
    "select_sources",
]
