"""File watcher: re-analyze changed files after they settle."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from preflight.scheduler.discovery import EXCLUDED_DIRS, SOURCE_EXTENSIONS
from preflight.scheduler.scheduler import WatchQueue

if TYPE_CHECKING:
    import threading
    from collections.abc import Callable, Iterable

    from preflight.models import AnalysisReport

DEFAULT_DEBOUNCE_MS = 300

MANIFEST_FILES: frozenset[str] = frozenset({"package.json", "package-lock.json"})


def _filter_relevant(
    changes: Iterable[tuple[object, str]],
    project_root: Path,
    exclude_dirs: frozenset[str] = EXCLUDED_DIRS,
) -> list[str]:
    """Keep source files and manifests, ignoring temp files and excluded or hidden dirs."""
    result: list[str] = []

    for _change_type, path_str in changes:
        p = Path(path_str)

        # Editor temp files.
        if p.name.startswith("~") or p.name.endswith(".tmp"):
            continue

        if p.suffix not in SOURCE_EXTENSIONS and p.name not in MANIFEST_FILES:
            continue

        try:
            rel = p.relative_to(project_root)
        except ValueError:
            continue

        if any(part in exclude_dirs or part.startswith(".") for part in rel.parts[:-1]):
            continue

        result.append(rel.as_posix())

    return result


def _format_time() -> str:
    """Return current time as ``HH:MM:SS`` string."""
    return datetime.now(tz=timezone.utc).strftime("%H:%M:%S")


@dataclass(frozen=True)
class WatchEvent:
    """One settled batch and the report produced for it."""

    paths: tuple[str, ...]
    manifest_changed: bool
    report: AnalysisReport


def watch(
    project_root: Path,
    analyze_batch: Callable[[list[str]], AnalysisReport],
    *,
    debounce_ms: int = DEFAULT_DEBOUNCE_MS,
    callback: Callable[[WatchEvent], None] | None = None,
    stop_event: threading.Event | None = None,
    exclude_dirs: frozenset[str] = EXCLUDED_DIRS,
) -> None:
    """Watch *project_root* and analyze each settled batch of changed files.

    Changes go through a :class:`WatchQueue` so a file edited repeatedly
    within *debounce_ms* is analyzed once, with its latest content.
    """
    from rich.console import Console
    from watchfiles import watch as fs_watch

    console = Console()
    queue = WatchQueue(debounce_ms)

    console.print(f"[bold blue]Watching:[/bold blue] {project_root}")
    console.print(f"[dim]Debounce: {debounce_ms}ms  |  Press Ctrl+C to stop[/dim]")
    console.print()

    try:
        for batch in fs_watch(
            project_root,
            debounce=debounce_ms,
            rust_timeout=debounce_ms,
            yield_on_timeout=True,
            stop_event=stop_event,
        ):
            for rel_path in _filter_relevant(batch, project_root, exclude_dirs):
                queue.submit(rel_path)

            ready = queue.drain_ready()
            if not ready:
                continue

            report = analyze_batch(ready)
            manifest_changed = any(Path(p).name in MANIFEST_FILES for p in ready)

            summary = report.summary
            timestamp = _format_time()
            console.print(
                f"[dim]{timestamp}[/dim] "
                f"[green]analyzed {len(ready)} file{'s' if len(ready) != 1 else ''}[/green] "
                f"[red]{summary.errors} errors[/red], "
                f"[yellow]{summary.warnings} warnings[/yellow]"
            )

            if callback is not None:
                callback(WatchEvent(tuple(ready), manifest_changed, report))

    except KeyboardInterrupt:
        console.print("\n[yellow]Watch stopped.[/yellow]")
