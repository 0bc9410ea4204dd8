"""In-memory cache of per-file analysis results."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from preflight.scheduler.scheduler import FileAnalysis


@dataclass
class CacheEntry:
    """Cached analysis for one file, keyed by its content hash and rule set version."""

    analysis: FileAnalysis
    content_hash: str
    version: str
    created_at: float


class FileResultCache:
    """Thread-safe cache holding at most one entry per file path.

    An entry is reused only while both the file's content hash and the
    rule registry version match; a mismatch evicts it.
    """

    def __init__(self) -> None:
        self._store: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, path: str, content_hash: str, version: str) -> FileAnalysis | None:
        """Return the cached analysis, or None if missing or stale."""
        with self._lock:
            entry = self._store.get(path)
            if entry is None:
                self._misses += 1
                return None
            if entry.content_hash != content_hash or entry.version != version:
                del self._store[path]
                self._misses += 1
                return None
            self._hits += 1
            return entry.analysis

    def put(self, path: str, content_hash: str, version: str, analysis: FileAnalysis) -> None:
        """Store *analysis*, replacing any previous entry for *path*."""
        with self._lock:
            self._store[path] = CacheEntry(
                analysis=analysis,
                content_hash=content_hash,
                version=version,
                created_at=time.monotonic(),
            )

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def clear_path(self, path: str) -> None:
        """Remove the entry for *path* (e.g. after the file was deleted)."""
        with self._lock:
            self._store.pop(path, None)

    def stats(self) -> dict[str, int]:
        """Return cache statistics."""
        with self._lock:
            return {"entries": len(self._store), "hits": self._hits, "misses": self._misses}
