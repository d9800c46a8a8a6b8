"""File-backed, TTL-bounded cache of parsed calendar documents.

One JSON file per feed URL, named by a URL-safe hash of the URL. Entries are
only ever written whole (temp file + ``os.replace``), so a reader sees either
the previous entry or the new one. Anything unreadable is a cache miss.
"""

import base64
import contextlib
import hashlib
import logging
import os
import tempfile
import time
from collections.abc import Callable
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .models import CachedDocument, Document

logger = logging.getLogger(__name__)

# 5 minutes
DEFAULT_CACHE_TTL_SECONDS = 300
CACHE_KEY_LENGTH = 32


def epoch_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def cache_key(url: str) -> str:
    """Stable, fixed-length, URL-safe key for a feed URL.

    Not a security boundary: collisions are detected on read by comparing the
    stored URL and treated as a miss.
    """
    digest = hashlib.sha256(url.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")[:CACHE_KEY_LENGTH]


class ICSDocumentCache:
    """Cache handle for parsed documents keyed by feed URL."""

    def __init__(
        self,
        cache_dir: Path | str,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        time_provider: Optional[Callable[[], int]] = None,
    ) -> None:
        """Initialize the cache.

        Args:
            cache_dir: Directory holding one JSON file per URL (created lazily)
            ttl_seconds: Maximum age at which an entry is still returned
            time_provider: Returns the current time in epoch milliseconds
        """
        self.cache_dir = Path(cache_dir)
        self.ttl_ms = int(ttl_seconds * 1000)
        self._now = time_provider or epoch_ms

        logger.debug("ICS document cache at %s (ttl=%dms)", self.cache_dir, self.ttl_ms)

    def path_for(self, url: str) -> Path:
        return self.cache_dir / f"{cache_key(url)}.json"

    def is_fresh(self, entry: CachedDocument) -> bool:
        """An entry is valid while ``now - fetched_at < ttl``."""
        return self._now() - entry.fetched_at < self.ttl_ms

    def get(self, url: str) -> Optional[CachedDocument]:
        """Return the cached entry for ``url`` if present and fresh.

        Missing, expired, corrupt and colliding entries all return None.
        """
        path = self.path_for(url)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Unreadable cache entry %s: %s", path, e)
            return None

        try:
            entry = CachedDocument.model_validate_json(raw)
        except ValidationError as e:
            logger.debug("Corrupt cache entry %s treated as miss: %s", path, e)
            return None

        if entry.url != url:
            logger.debug("Cache key collision for %s (entry belongs to %s)", url, entry.url)
            return None

        if not self.is_fresh(entry):
            logger.debug("Cache entry for %s expired", url)
            return None

        return entry

    def put(self, url: str, document: Document) -> CachedDocument:
        """Replace the entry for ``url``, stamping the current time.

        Args:
            url: Feed URL
            document: Parsed document to store

        Returns:
            The entry that was written
        """
        entry = CachedDocument(url=url, fetched_at=self._now(), document=document)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(url)

        fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(entry.model_dump_json())
            os.replace(tmp_name, path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise

        logger.debug("Cached %d component(s) for %s", len(document), url)
        return entry

    def invalidate(self, url: str) -> None:
        """Remove the entry for ``url`` if present."""
        with contextlib.suppress(FileNotFoundError):
            self.path_for(url).unlink()
            logger.debug("Invalidated cache entry for %s", url)

    def clear(self) -> int:
        """Remove every entry; returns the number of files deleted."""
        if not self.cache_dir.exists():
            return 0
        removed = 0
        for path in self.cache_dir.glob("*.json"):
            with contextlib.suppress(FileNotFoundError):
                path.unlink()
                removed += 1
        return removed
