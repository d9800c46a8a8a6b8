"""
Central logging configuration for icalfeeds.

Console logging with colorized level names, plus quieter levels for the
chatty third-party libraries used during fetching.
"""

import logging
import os
import sys
from typing import Optional

from colorlog import ColoredFormatter

LOG_FORMAT = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

# Third-party loggers that are noisy at DEBUG/INFO
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")

_TRUTHY = ("1", "true", "yes", "on")


def _env_debug() -> bool:
    return os.environ.get("ICALFEEDS_DEBUG", "").strip().lower() in _TRUTHY


def configure_logging(level_name: Optional[str] = "INFO", debug: Optional[bool] = None) -> None:
    """Configure root logging to stream to stderr.

    A handler is only installed when the root logger has none, so embedding
    applications keep their own setup. ICALFEEDS_DEBUG (``1``/``true``/``yes``)
    forces DEBUG verbosity.

    Args:
        level_name: Logging level name (DEBUG, INFO, WARNING, ERROR)
        debug: Force DEBUG on or off (None to use the environment)
    """
    if debug is None:
        debug = _env_debug()
    if debug:
        level_name = "DEBUG"

    level = getattr(logging, (level_name or "INFO").upper(), logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt="%H:%M:%S", log_colors=LOG_COLORS))
        root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
