"""Concurrent multi-source query over calendar feeds."""

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import Optional

from .exceptions import SourceNotFoundError
from .ics_fetcher import ICSFetcher
from .models import CalendarSource, Occurrence, QueryResult, QueryWindow, RefreshResult
from .rrule_expander import RRuleExpander

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
FIND_EVENT_HORIZON = timedelta(days=365)


def select_sources(
    configured: list[CalendarSource], name: Optional[str] = None
) -> list[CalendarSource]:
    """Pick the sources a query runs against.

    Args:
        configured: Sources from configuration, in configured order
        name: Optional calendar name (case-insensitive exact match)

    Returns:
        The matching source, or every configured source when ``name`` is None

    Raises:
        SourceNotFoundError: If ``name`` is given and matches nothing
    """
    if name is None:
        return list(configured)
    wanted = name.lower()
    matches = [source for source in configured if source.name.lower() == wanted]
    if not matches:
        raise SourceNotFoundError(name)
    return matches


def matches_search(occurrence: Occurrence, search: str) -> bool:
    """Case-insensitive substring match on summary, description or location."""
    needle = search.lower()
    return any(
        field is not None and needle in field.lower()
        for field in (occurrence.summary, occurrence.description, occurrence.location)
    )


class QueryEngine:
    """Fans fetch-then-expand work out over sources and merges the results.

    Every source runs as its own task; a failing source becomes a warning and
    never affects its siblings.
    """

    def __init__(self, fetcher: ICSFetcher, expander: RRuleExpander):
        self.fetcher = fetcher
        self.expander = expander

    select_sources = staticmethod(select_sources)

    async def _occurrences_for(self, source: CalendarSource, window: QueryWindow) -> list[Occurrence]:
        document = await self.fetcher.resolve(source)
        return self.expander.expand(document, window, source.name)

    async def _gather(self, sources: list[CalendarSource], window: QueryWindow) -> tuple[list[Occurrence], list[str]]:
        tasks = [asyncio.create_task(self._occurrences_for(source, window)) for source in sources]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        merged: list[Occurrence] = []
        warnings: list[str] = []
        for source, result in zip(sources, results):
            if isinstance(result, Exception):
                logger.warning("Calendar %s failed: %s", source.name, result)
                warnings.append(f"{source.name}: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            logger.debug("Calendar %s returned %d occurrence(s)", source.name, len(result))
            merged.extend(result)
        return merged, warnings

    async def query(
        self,
        sources: list[CalendarSource],
        window: QueryWindow,
        search: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
        timeout: Optional[float] = None,
    ) -> QueryResult:
        """Query every source concurrently and merge the occurrences.

        Args:
            sources: Sources to query (already selected)
            window: Inclusive query window
            search: Optional case-insensitive text filter
            limit: Maximum number of occurrences returned
            timeout: Optional deadline in seconds for the whole fan-out

        Returns:
            Occurrences sorted by start (stable), truncated to ``limit``,
            with the pre-truncation total and per-source warnings

        Raises:
            ValueError: If ``limit`` is negative
            asyncio.TimeoutError: If ``timeout`` elapses; no partial result
        """
        if limit < 0:
            raise ValueError("limit must be >= 0")

        if timeout is None:
            merged, warnings = await self._gather(sources, window)
        else:
            merged, warnings = await asyncio.wait_for(self._gather(sources, window), timeout)

        if search:
            merged = [occ for occ in merged if matches_search(occ, search)]

        merged.sort(key=lambda occ: occ.start)
        total = len(merged)
        returned = merged[:limit]

        logger.debug(
            "Query over %d source(s): %d occurrence(s), %d returned, %d warning(s)",
            len(sources),
            total,
            len(returned),
            len(warnings),
        )
        return QueryResult(
            occurrences=returned,
            total_count=total,
            returned_count=len(returned),
            warnings=warnings,
        )

    async def refresh(self, sources: list[CalendarSource], repopulate: bool = True) -> RefreshResult:
        """Invalidate cached documents, then optionally refetch them concurrently."""
        for source in sources:
            self.fetcher.cache.invalidate(source.url)

        if not repopulate:
            return RefreshResult(refreshed=[source.name for source in sources])

        results = await asyncio.gather(
            *(self.fetcher.resolve(source) for source in sources), return_exceptions=True
        )
        refreshed: list[str] = []
        warnings: list[str] = []
        for source, result in zip(sources, results):
            if isinstance(result, Exception):
                logger.warning("Refresh of %s failed: %s", source.name, result)
                warnings.append(f"{source.name}: {result}")
            elif isinstance(result, BaseException):
                raise result
            else:
                refreshed.append(source.name)
        return RefreshResult(refreshed=refreshed, warnings=warnings)

    async def find_event(
        self,
        sources: list[CalendarSource],
        uid: Optional[str] = None,
        summary: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Occurrence]:
        """Find the next occurrence of an event within a year.

        Sources are searched in order. Within a source an exact UID match wins
        over a summary match; failing sources are skipped.

        Args:
            sources: Sources to search
            uid: Exact event UID
            summary: Case-insensitive substring of the summary
            now: Start of the search horizon (defaults to the current time)

        Returns:
            The first matching occurrence, or None

        Raises:
            ValueError: If neither ``uid`` nor ``summary`` is given
        """
        if not uid and not summary:
            raise ValueError("find_event requires uid or summary")

        start = now or datetime.now(UTC)
        window = QueryWindow(start=start, end=start + FIND_EVENT_HORIZON)

        for source in sources:
            try:
                occurrences = await self._occurrences_for(source, window)
            except Exception as e:
                logger.warning("Skipping calendar %s while searching: %s", source.name, e)
                continue

            occurrences.sort(key=lambda occ: occ.start)
            found = None
            if uid:
                found = next((occ for occ in occurrences if occ.uid == uid), None)
            if found is None and summary:
                needle = summary.lower()
                found = next((occ for occ in occurrences if needle in occ.summary.lower()), None)
            if found is not None:
                return found
        return None
