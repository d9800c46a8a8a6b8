"""icalfeeds.config_loader

Configuration of calendar sources and runtime settings.

- YAML file (JSON is accepted too, being a YAML subset) parsed with PyYAML.
- Environment variables override file values.
- Exposes a typed dataclass `Config`, `load_config()`/`save_config()` and the
  `add_source()`/`remove_source()` helpers used by the CLI.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import ValidationError

from .exceptions import ICSFetchError, SourceConfigError
from .ics_cache import DEFAULT_CACHE_TTL_SECONDS
from .ics_fetcher import validate_feed_url
from .models import CalendarSource

logger = logging.getLogger(__name__)

ENV_CONFIG_PATH = "ICALFEEDS_CONFIG"
ENV_CACHE_DIR = "ICALFEEDS_CACHE_DIR"
ENV_DEFAULT_TIMEZONE = "ICALFEEDS_DEFAULT_TIMEZONE"
ENV_LOG_LEVEL = "ICALFEEDS_LOG_LEVEL"

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "icalfeeds" / "config.yaml"
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "icalfeeds"


def validate_timezone(name: Any, fallback: str = "UTC") -> str:
    """Return ``name`` if it is a loadable IANA zone, else ``fallback``."""
    if not name:
        return fallback
    try:
        ZoneInfo(str(name))
        return str(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Invalid timezone %r, falling back to %r", name, fallback)
        return fallback


@dataclass
class Config:
    """Typed configuration for icalfeeds.

    Fields:
        sources: configured calendars, in display order
        timezone: IANA zone for floating/all-day values and date input
        cache_dir: directory of the document cache
        cache_ttl_seconds: freshness bound of cached documents
        request_timeout: HTTP read timeout in seconds
        default_limit: maximum occurrences returned by a query
        max_occurrences_per_rule: cap on generated occurrences per RRULE
        log_level: logging level name
    """

    sources: list[CalendarSource] = field(default_factory=list)
    timezone: str = "UTC"
    cache_dir: str = str(DEFAULT_CACHE_DIR)
    cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS
    request_timeout: float = 30.0
    default_limit: int = 50
    max_occurrences_per_rule: int = 1000
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Config:
        """Create Config from a plain mapping, applying defaults and validation.

        Malformed source entries and duplicate names are dropped with a warning;
        non-numeric values fall back to their defaults.
        """
        if data is None:
            data = {}

        sources: list[CalendarSource] = []
        seen: set[str] = set()
        for entry in data.get("sources") or []:
            if not isinstance(entry, dict):
                logger.warning("Ignoring calendar entry %r: expected a mapping", entry)
                continue
            try:
                source = CalendarSource.model_validate(entry)
            except ValidationError as e:
                logger.warning("Ignoring invalid calendar entry %r: %s", entry, e)
                continue
            if source.name.lower() in seen:
                logger.warning("Ignoring duplicate calendar name %r", source.name)
                continue
            seen.add(source.name.lower())
            sources.append(source)

        def _coerce(key: str, default: Any, kind: type) -> Any:
            raw = data.get(key, default)
            try:
                return kind(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not a %s; using default %r", key, raw, kind.__name__, default)
                return default

        default_limit = _coerce("default_limit", 50, int)
        if default_limit < 0:
            logger.warning("default_limit %d below zero; coercing to 0", default_limit)
            default_limit = 0

        log_level = data.get("log_level") or "INFO"

        return cls(
            sources=sources,
            timezone=validate_timezone(data.get("timezone")),
            cache_dir=str(data.get("cache_dir") or DEFAULT_CACHE_DIR),
            cache_ttl_seconds=_coerce("cache_ttl_seconds", DEFAULT_CACHE_TTL_SECONDS, int),
            request_timeout=_coerce("request_timeout", 30.0, float),
            default_limit=default_limit,
            max_occurrences_per_rule=_coerce("max_occurrences_per_rule", 1000, int),
            log_level=str(log_level).upper(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "sources": [source.model_dump(exclude_none=True) for source in self.sources],
            "timezone": self.timezone,
            "cache_dir": self.cache_dir,
            "cache_ttl_seconds": self.cache_ttl_seconds,
            "request_timeout": self.request_timeout,
            "default_limit": self.default_limit,
            "max_occurrences_per_rule": self.max_occurrences_per_rule,
            "log_level": self.log_level,
        }

    def find_source(self, name: str) -> CalendarSource | None:
        wanted = name.lower()
        return next((s for s in self.sources if s.name.lower() == wanted), None)


def config_path(path: str | Path | None = None) -> Path:
    """Resolve the config file location: argument, then $ICALFEEDS_CONFIG, then default."""
    if path:
        return Path(path)
    env_path = os.environ.get(ENV_CONFIG_PATH)
    return Path(env_path) if env_path else DEFAULT_CONFIG_PATH


def _apply_env_overrides(cfg: Config) -> Config:
    overrides: dict[str, Any] = {}
    if os.environ.get(ENV_CACHE_DIR):
        overrides["cache_dir"] = os.environ[ENV_CACHE_DIR]
    if os.environ.get(ENV_DEFAULT_TIMEZONE):
        overrides["timezone"] = validate_timezone(os.environ[ENV_DEFAULT_TIMEZONE], cfg.timezone)
    if os.environ.get(ENV_LOG_LEVEL):
        overrides["log_level"] = os.environ[ENV_LOG_LEVEL].upper()
    if overrides:
        logger.debug("Environment overrides: %s", sorted(overrides))
        return replace(cfg, **overrides)
    return cfg


def load_config(path: str | Path | None = None) -> Config:
    """Load configuration from a YAML/JSON file and return a Config instance.

    Args:
        path: Optional path to the config file

    Returns:
        Config with file values (or defaults) and environment overrides applied

    Raises:
        ValueError: If the file parses but its top level is not a mapping
        yaml.YAMLError: If the file is not valid YAML
    """
    p = config_path(path)
    logger.debug("Attempting to load config from %s", p)
    if not p.exists():
        logger.info("Config file %s not found; using defaults", p)
        return _apply_env_overrides(Config())

    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError("Config file must contain a mapping at top level")  # noqa: TRY004

    cfg = Config.from_dict(raw)
    logger.debug("Loaded configuration from %s (%d calendar(s))", p, len(cfg.sources))
    return _apply_env_overrides(cfg)


def save_config(cfg: Config, path: str | Path | None = None) -> Path:
    """Write ``cfg`` as YAML, creating parent directories."""
    p = config_path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(yaml.safe_dump(cfg.to_dict(), sort_keys=False), encoding="utf-8")
    logger.debug("Saved configuration to %s", p)
    return p


def add_source(cfg: Config, name: str, url: str, color: str | None = None) -> Config:
    """Return a copy of ``cfg`` with a new calendar appended.

    Raises:
        SourceConfigError: Empty or duplicate name (case-insensitive) or a
            non-http(s) URL
    """
    name = name.strip()
    if not name:
        raise SourceConfigError("Calendar name must not be empty")
    if cfg.find_source(name) is not None:
        raise SourceConfigError(f"Calendar '{name}' already exists")
    try:
        validate_feed_url(url)
    except ICSFetchError as e:
        raise SourceConfigError(f"Invalid calendar URL {url!r}: {e}") from e

    source = CalendarSource(name=name, url=url, color=color)
    return replace(cfg, sources=[*cfg.sources, source])


def remove_source(cfg: Config, name: str) -> tuple[Config, CalendarSource]:
    """Return a copy of ``cfg`` without the named calendar, and the removed source.

    Raises:
        SourceConfigError: If no calendar has that name
    """
    source = cfg.find_source(name)
    if source is None:
        raise SourceConfigError(f"Calendar '{name}' not found")
    remaining = [s for s in cfg.sources if s is not source]
    return replace(cfg, sources=remaining), source
