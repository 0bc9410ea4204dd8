"""Analysis scheduler: bounded worker pool, result cache, cancellation and watch batching."""

from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from preflight.models import AnalysisResult

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from preflight.models import PredictedError
    from preflight.rules.registry import RuleRegistry
    from preflight.scheduler.cache import FileResultCache
    from preflight.scheduler.discovery import SourceFile

logger = logging.getLogger(__name__)

FILE_READ_ERROR = "file-read-error"

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileAnalysis:
    """Everything produced for one file's content."""

    results: tuple[AnalysisResult, ...] = ()
    predictions: tuple[PredictedError, ...] = ()
    frameworks: frozenset[str] = frozenset()
    imports: tuple[tuple[str, int], ...] = ()  # (specifier, line) for dependency analysis


@dataclass(frozen=True)
class FileOutcome:
    """Analysis of one scheduled file."""

    path: str
    analysis: FileAnalysis
    read_failed: bool = False
    cached: bool = False


@dataclass(frozen=True)
class SchedulerOutcome:
    """Outcomes in input order plus the files never started."""

    files: tuple[FileOutcome, ...] = ()
    not_started: tuple[str, ...] = ()
    elapsed_ms: float = 0.0

    @property
    def partial(self) -> bool:
        return bool(self.not_started)

    @property
    def results(self) -> list[AnalysisResult]:
        return [r for outcome in self.files for r in outcome.analysis.results]

    @property
    def predictions(self) -> list[PredictedError]:
        return [p for outcome in self.files for p in outcome.analysis.predictions]

    @property
    def files_analyzed(self) -> int:
        return sum(1 for outcome in self.files if not outcome.read_failed)

    @property
    def files_skipped(self) -> int:
        return len(self.not_started) + sum(1 for outcome in self.files if outcome.read_failed)

    @property
    def frameworks(self) -> frozenset[str]:
        found: set[str] = set()
        for outcome in self.files:
            found |= outcome.analysis.frameworks
        return frozenset(found)


def read_error_result(path: str, exc: Exception) -> AnalysisResult:
    return AnalysisResult(
        rule_id=FILE_READ_ERROR,
        severity="warning",
        message=f"Could not read file: {exc}",
        file=path,
        category="internal",
    )


# ---------------------------------------------------------------------------
# Watch queue
# ---------------------------------------------------------------------------


@dataclass
class WatchQueue:
    """Debounced, coalescing queue of changed paths.

    A path submitted again before its debounce window elapsed replaces the
    pending request, so rapid edits produce one analysis.
    """

    debounce_ms: int
    _pending: dict[str, float] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def submit(self, path: str, now: float | None = None) -> None:
        stamp = time.monotonic() if now is None else now
        with self._lock:
            self._pending.pop(path, None)
            self._pending[path] = stamp

    def drain_ready(self, now: float | None = None) -> list[str]:
        """Remove and return paths whose debounce window has elapsed, oldest first."""
        current = time.monotonic() if now is None else now
        window = self.debounce_ms / 1000
        with self._lock:
            ready = [path for path, stamp in self._pending.items() if current - stamp >= window]
            for path in ready:
                del self._pending[path]
        return ready

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class AnalysisScheduler:
    """Run per-file analysis over a bounded thread pool.

    Results are collected per file and returned in input order regardless
    of completion order.  Cancellation is checked before each file starts;
    a file already running finishes.
    """

    def __init__(
        self,
        registry: RuleRegistry,
        cache: FileResultCache | None = None,
        *,
        concurrency: int | None = None,
        settings_key: str = "",
    ) -> None:
        self.cache = cache
        self.version = f"{registry.version}:{settings_key}"
        self.max_workers = max(1, concurrency or os.cpu_count() or 1)
        self._executor: ThreadPoolExecutor | None = None
        self._lock = threading.Lock()

    def _pool(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="preflight"
                )
            return self._executor

    def close(self) -> None:
        with self._lock:
            if self._executor is not None:
                self._executor.shutdown(wait=True)
                self._executor = None

    def __enter__(self) -> AnalysisScheduler:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _process(
        self,
        source: SourceFile,
        analyze_file: Callable[[SourceFile, str], FileAnalysis],
        cancel_event: threading.Event | None,
    ) -> FileOutcome | None:
        if cancel_event is not None and cancel_event.is_set():
            return None

        try:
            content = source.read()
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Cannot read %s: %s", source.rel_path, exc)
            return FileOutcome(
                path=source.rel_path,
                analysis=FileAnalysis(results=(read_error_result(source.rel_path, exc),)),
                read_failed=True,
            )

        content_hash = source.content_hash(content)
        if self.cache is not None:
            cached = self.cache.get(source.rel_path, content_hash, self.version)
            if cached is not None:
                return FileOutcome(path=source.rel_path, analysis=cached, cached=True)

        analysis = analyze_file(source, content)
        if self.cache is not None:
            self.cache.put(source.rel_path, content_hash, self.version, analysis)
        return FileOutcome(path=source.rel_path, analysis=analysis)

    def run(
        self,
        files: Sequence[SourceFile],
        analyze_file: Callable[[SourceFile, str], FileAnalysis],
        *,
        cancel_event: threading.Event | None = None,
    ) -> SchedulerOutcome:
        """Analyze *files*; files not started before cancellation are reported back."""
        started = time.perf_counter()
        pool = self._pool()
        futures = [pool.submit(self._process, source, analyze_file, cancel_event) for source in files]

        outcomes: list[FileOutcome] = []
        not_started: list[str] = []
        for source, future in zip(files, futures, strict=True):
            outcome = future.result()
            if outcome is None:
                not_started.append(source.rel_path)
            else:
                outcomes.append(outcome)

        if not_started:
            logger.info("Analysis cancelled: %d of %d files not started", len(not_started), len(files))
        return SchedulerOutcome(
            files=tuple(outcomes),
            not_started=tuple(not_started),
            elapsed_ms=(time.perf_counter() - started) * 1000,
        )

    def process_watch_batch(
        self,
        files: Sequence[SourceFile],
        analyze_file: Callable[[SourceFile, str], FileAnalysis],
        *,
        cancel_event: threading.Event | None = None,
    ) -> SchedulerOutcome:
        """Re-analyze a settled batch of changed files on the shared pool.

        Deleted files are evicted from the cache and left out of the batch.
        """
        present: list[SourceFile] = []
        for source in files:
            if source.path.is_file():
                present.append(source)
            elif self.cache is not None:
                self.cache.clear_path(source.rel_path)
        return self.run(present, analyze_file, cancel_event=cancel_event)
