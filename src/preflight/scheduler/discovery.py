"""Source file discovery."""

from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from preflight.models import LANGUAGE_BY_EXTENSION

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

SOURCE_EXTENSIONS: frozenset[str] = frozenset({".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".vue"})

EXCLUDED_DIRS: frozenset[str] = frozenset(
    {
        "node_modules",
        "dist",
        "build",
        ".next",
        ".nuxt",
        ".svelte-kit",
        ".turbo",
        "coverage",
        "out",
        "vendor",
        ".git",
    }
)


@dataclass(frozen=True)
class SourceFile:
    """A file scheduled for analysis."""

    path: Path  # absolute
    rel_path: str  # relative to the project root, POSIX separators

    @property
    def language(self) -> str:
        return LANGUAGE_BY_EXTENSION.get(self.path.suffix.lower(), "ts")

    def read(self) -> str:
        return self.path.read_text(encoding="utf-8")

    @staticmethod
    def content_hash(content: str) -> str:
        return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _skip_dir(name: str, exclude_dirs: frozenset[str]) -> bool:
    return name in exclude_dirs or name.startswith(".")


def _relative(project_root: Path, path: Path) -> str:
    try:
        return path.relative_to(project_root).as_posix()
    except ValueError:
        return path.as_posix()


def source_file(project_root: Path, path: str | Path) -> SourceFile:
    """Build a :class:`SourceFile` from an absolute or root-relative *path*."""
    candidate = Path(path)
    if not candidate.is_absolute():
        candidate = project_root / candidate
    return SourceFile(candidate, _relative(project_root, candidate))


def discover_files(
    project_root: Path,
    target_files: Iterable[str | Path] | None = None,
    *,
    extensions: frozenset[str] = SOURCE_EXTENSIONS,
    exclude_dirs: frozenset[str] = EXCLUDED_DIRS,
) -> list[SourceFile]:
    """Collect the files to analyze, sorted by relative path.

    With *target_files* only those are returned (missing ones included, so
    the read failure is reported); otherwise the tree under *project_root*
    is walked, skipping *exclude_dirs* and hidden directories.
    """
    if target_files is not None:
        targets = {source_file(project_root, path) for path in target_files}
        return sorted(targets, key=lambda f: f.rel_path)

    files: list[SourceFile] = []
    for dirpath, dirnames, filenames in os.walk(project_root):
        dirnames[:] = sorted(d for d in dirnames if not _skip_dir(d, exclude_dirs))
        for filename in sorted(filenames):
            if Path(filename).suffix.lower() not in extensions:
                continue
            if filename.endswith(".d.ts"):
                continue
            path = Path(dirpath) / filename
            files.append(SourceFile(path, _relative(project_root, path)))

    files.sort(key=lambda f: f.rel_path)
    logger.debug("Discovered %d source files under %s", len(files), project_root)
    return files
