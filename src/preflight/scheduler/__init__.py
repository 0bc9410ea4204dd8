"""Analysis scheduling: discovery, result cache, worker pool and watch batching.

``preflight.scheduler.watcher`` is not re-exported; it pulls in
``watchfiles`` and ``rich`` and is imported directly by the CLI.
"""

from preflight.scheduler.cache import CacheEntry, FileResultCache
from preflight.scheduler.discovery import (
    EXCLUDED_DIRS,
    SOURCE_EXTENSIONS,
    SourceFile,
    discover_files,
    source_file,
)
from preflight.scheduler.scheduler import (
    FILE_READ_ERROR,
    AnalysisScheduler,
    FileAnalysis,
    FileOutcome,
    SchedulerOutcome,
    WatchQueue,
)

__all__ = [
    "EXCLUDED_DIRS",
    "FILE_READ_ERROR",
    "SOURCE_EXTENSIONS",
    "AnalysisScheduler",
    "CacheEntry",
    "FileAnalysis",
    "FileOutcome",
    "FileResultCache",
    "SchedulerOutcome",
    "SourceFile",
    "WatchQueue",
    "discover_files",
    "source_file",
]
