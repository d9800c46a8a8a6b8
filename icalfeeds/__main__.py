"""Command-line entry for icalfeeds.

Examples:
  python -m icalfeeds calendars add Work https://example.com/work.ics
  python -m icalfeeds events --from today --to "next week" --search standup
  python -m icalfeeds event --summary "1:1"
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

from . import __version__
from .config_loader import Config, add_source, load_config, remove_source, save_config
from .date_inputs import build_window, end_of_day, resolve_timezone, start_of_day
from .exceptions import SourceConfigError, SourceNotFoundError
from .formatting import format_calendars, format_event_details, format_query_result
from .ics_cache import ICSDocumentCache
from .ics_fetcher import ICSFetcher
from .logging_config import configure_logging
from .models import QueryWindow
from .query_engine import QueryEngine, select_sources
from .rrule_expander import RRuleExpander

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the icalfeeds CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="icalfeeds",
        description="Query iCalendar feeds across calendars",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", metavar="PATH", help="Config file (default: $ICALFEEDS_CONFIG)")
    parser.add_argument("--log-level", metavar="LEVEL", help="Logging level (default: from config)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    commands = parser.add_subparsers(dest="command", required=True)

    calendars = commands.add_parser("calendars", help="Manage configured calendars")
    calendar_actions = calendars.add_subparsers(dest="action", required=True)
    calendar_actions.add_parser("list", help="List calendars")
    add = calendar_actions.add_parser("add", help="Add a calendar")
    add.add_argument("name")
    add.add_argument("url")
    add.add_argument("--color")
    remove = calendar_actions.add_parser("remove", help="Remove a calendar and its cached data")
    remove.add_argument("name")

    events = commands.add_parser("events", help="List events in a date range")
    events.add_argument("--calendar", help="Calendar name (default: all)")
    events.add_argument("--from", dest="from_date", help="Start: ISO date/time or today, tomorrow, ...")
    events.add_argument("--to", dest="to_date", help="End: ISO date/time or relative keyword")
    events.add_argument("--search", help="Case-insensitive text in summary, description or location")
    events.add_argument("--limit", type=int, help="Maximum events (default: from config)")
    events.add_argument("--timeout", type=float, help="Overall deadline in seconds")
    events.add_argument("--json", action="store_true", help="Print JSON instead of text")

    event = commands.add_parser("event", help="Show the next occurrence of one event")
    event.add_argument("--calendar", help="Calendar name (default: all)")
    event.add_argument("--uid", help="Exact event UID")
    event.add_argument("--summary", help="Text contained in the event title")
    event.add_argument("--json", action="store_true", help="Print JSON instead of text")

    today = commands.add_parser("today", help="List today's events")
    today.add_argument("--calendar", help="Calendar name (default: all)")
    today.add_argument("--json", action="store_true", help="Print JSON instead of text")

    refresh = commands.add_parser("refresh", help="Drop cached feeds and fetch them again")
    refresh.add_argument("--calendar", help="Calendar name (default: all)")

    return parser


async def _with_engine(cfg: Config, action: Callable[[QueryEngine], Awaitable[T]]) -> T:
    cache = ICSDocumentCache(cfg.cache_dir, cfg.cache_ttl_seconds)
    async with ICSFetcher(cfg, cache) as fetcher:
        engine = QueryEngine(fetcher, RRuleExpander.from_settings(cfg))
        return await action(engine)


def _cmd_calendars(args: argparse.Namespace, cfg: Config) -> int:
    if args.action == "list":
        print(format_calendars(cfg.sources))
        return 0

    if args.action == "add":
        updated = add_source(cfg, args.name, args.url, args.color)
        save_config(updated, args.config)
        print(f"Added calendar '{args.name}'")
        return 0

    updated, removed = remove_source(cfg, args.name)
    save_config(updated, args.config)
    ICSDocumentCache(cfg.cache_dir, cfg.cache_ttl_seconds).invalidate(removed.url)
    print(f"Removed calendar '{removed.name}'")
    return 0


def _query(args: argparse.Namespace, cfg: Config, window: QueryWindow, **kwargs: Any) -> int:
    sources = select_sources(cfg.sources, args.calendar)
    tz = resolve_timezone(cfg.timezone)
    limit = kwargs.pop("limit", None)
    result = asyncio.run(
        _with_engine(
            cfg,
            lambda engine: engine.query(
                sources,
                window,
                limit=cfg.default_limit if limit is None else limit,
                **kwargs,
            ),
        )
    )
    if args.json:
        print(result.model_dump_json(indent=2))
    else:
        print(format_query_result(result, tz))
    return 0


def _cmd_events(args: argparse.Namespace, cfg: Config) -> int:
    tz = resolve_timezone(cfg.timezone)
    window = build_window(args.from_date, args.to_date, tz)
    return _query(args, cfg, window, search=args.search, limit=args.limit, timeout=args.timeout)


def _cmd_today(args: argparse.Namespace, cfg: Config) -> int:
    tz = resolve_timezone(cfg.timezone)
    now = datetime.now(UTC)
    window = QueryWindow(start=start_of_day(now, tz), end=end_of_day(now, tz))
    return _query(args, cfg, window)


def _cmd_event(args: argparse.Namespace, cfg: Config) -> int:
    if not args.uid and not args.summary:
        print("Error: provide --uid or --summary", file=sys.stderr)
        return 2
    sources = select_sources(cfg.sources, args.calendar)
    found = asyncio.run(
        _with_engine(cfg, lambda engine: engine.find_event(sources, uid=args.uid, summary=args.summary))
    )
    if found is None:
        print("Event not found", file=sys.stderr)
        return 1
    if args.json:
        print(found.model_dump_json(indent=2))
    else:
        print(format_event_details(found, resolve_timezone(cfg.timezone)))
    return 0


def _cmd_refresh(args: argparse.Namespace, cfg: Config) -> int:
    sources = select_sources(cfg.sources, args.calendar)
    if args.calendar is None:
        cleared = ICSDocumentCache(cfg.cache_dir, cfg.cache_ttl_seconds).clear()
        logger.debug("Cleared %d cache entr(ies)", cleared)
    result = asyncio.run(_with_engine(cfg, lambda engine: engine.refresh(sources)))
    print(f"Refreshed: {', '.join(result.refreshed) if result.refreshed else '(none)'}")
    if result.warnings:
        print(f"Warnings: {'; '.join(result.warnings)}")
    return 0


_COMMANDS: dict[str, Callable[[argparse.Namespace, Config], int]] = {
    "calendars": _cmd_calendars,
    "events": _cmd_events,
    "event": _cmd_event,
    "today": _cmd_today,
    "refresh": _cmd_refresh,
}


def main(argv: list[str] | None = None) -> int:
    """Run the icalfeeds CLI.

    Returns:
        Process exit code: 0 on success, 1 on an unknown calendar, a rejected
        configuration change or a timeout
    """
    parser = _create_parser()
    args = parser.parse_args(argv)

    cfg = load_config(args.config)
    configure_logging(args.log_level or cfg.log_level, debug=True if args.debug else None)

    try:
        return _COMMANDS[args.command](args, cfg)
    except (SourceNotFoundError, SourceConfigError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except asyncio.TimeoutError:
        print("Error: query timed out", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
