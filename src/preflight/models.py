"""Value objects shared by rules, predictions, dependency checks and reports."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from functools import cached_property
from typing import Any

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SEVERITIES: tuple[str, ...] = ("error", "warning", "info")
VALID_SEVERITIES: frozenset[str] = frozenset(SEVERITIES)
SEVERITY_RANK: dict[str, int] = {name: rank for rank, name in enumerate(SEVERITIES)}

VALID_PHASES: frozenset[str] = frozenset({"build", "runtime"})
VALID_ISSUE_KINDS: frozenset[str] = frozenset(
    {"missing", "version-conflict", "peer-mismatch", "circular", "duplicate", "vulnerable"}
)

# Extension -> language name used throughout the rule packs.
LANGUAGE_BY_EXTENSION: dict[str, str] = {
    ".ts": "ts",
    ".tsx": "tsx",
    ".js": "js",
    ".jsx": "jsx",
    ".mjs": "js",
    ".cjs": "js",
    ".vue": "vue",
    ".svelte": "svelte",
}


def severity_rank(severity: str) -> int:
    """Rank used for ordering (``error`` first); unknown severities sort last."""
    return SEVERITY_RANK.get(severity, len(SEVERITIES))


# ---------------------------------------------------------------------------
# Per-file input
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileContext:
    """Immutable view of one source file handed to rules and prediction patterns."""

    path: str
    content: str
    language: str = "ts"
    frameworks: frozenset[str] = frozenset()
    project_root: str | None = None
    # Package names declared by the project manifest; ``None`` when unknown
    # (snippets, or dependency analysis disabled).
    declared_packages: frozenset[str] | None = None

    @cached_property
    def lines(self) -> list[str]:
        return self.content.split("\n")

    @cached_property
    def _line_starts(self) -> list[int]:
        starts = [0]
        for idx, char in enumerate(self.content):
            if char == "\n":
                starts.append(idx + 1)
        return starts

    def line_of(self, offset: int) -> int:
        """Return the 1-based line number for a character *offset*."""
        starts = self._line_starts
        lo, hi = 0, len(starts) - 1
        while lo < hi:
            mid = (lo + hi + 1) // 2
            if starts[mid] <= offset:
                lo = mid
            else:
                hi = mid - 1
        return lo + 1

    def column_of(self, offset: int) -> int:
        """Return the 1-based column for a character *offset*."""
        return offset - self._line_starts[self.line_of(offset) - 1] + 1

    def with_frameworks(self, frameworks: frozenset[str]) -> FileContext:
        """Return a copy of this context tagged with *frameworks*."""
        return FileContext(
            path=self.path,
            content=self.content,
            language=self.language,
            frameworks=frameworks,
            project_root=self.project_root,
            declared_packages=self.declared_packages,
        )


# ---------------------------------------------------------------------------
# Findings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AnalysisResult:
    """A single rule finding."""

    rule_id: str
    severity: str  # "error" | "warning" | "info"
    message: str
    file: str
    line: int | None = None
    column: int | None = None
    suggestion: str | None = None
    auto_fix: str | None = None
    category: str | None = None
    framework: str | None = None
    confidence: float = 1.0

    @property
    def dedup_key(self) -> tuple[str, str, int | None, str]:
        return (self.rule_id, self.file, self.line, self.message)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PredictedError:
    """A probability-scored prediction of an error that has not happened yet."""

    pattern_id: str
    error_type: str
    phase: str  # "build" | "runtime"
    probability: float
    file: str
    message: str
    prevention_suggestion: str
    expected_error_text: str | None = None
    line: int | None = None
    signals: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["signals"] = list(self.signals)
        return data


@dataclass(frozen=True)
class DependencyIssue:
    """A structural problem in the project's declared/resolved package graph."""

    kind: str  # one of VALID_ISSUE_KINDS
    package: str
    required_range: str
    severity: str
    detail: str
    installed_version: str | None = None
    file: str | None = None
    line: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReportSummary:
    """Counts over the full (pre-truncation) set of findings."""

    errors: int = 0
    warnings: int = 0
    infos: int = 0
    total: int = 0
    predictions: int = 0
    dependency_issues: int = 0
    files_analyzed: int = 0
    files_skipped: int = 0
    truncated: bool = False
    partial: bool = False
    degraded: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["degraded"] = list(self.degraded)
        return data


@dataclass(frozen=True)
class AnalysisReport:
    """Final, ordered, capped collection of all findings for one invocation."""

    summary: ReportSummary
    results: tuple[AnalysisResult, ...] = ()
    predictions: tuple[PredictedError, ...] = ()
    dependency_issues: tuple[DependencyIssue, ...] = ()
    frameworks: tuple[str, ...] = ()
    elapsed_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "results": [r.to_dict() for r in self.results],
            "predictions": [p.to_dict() for p in self.predictions],
            "dependency_issues": [d.to_dict() for d in self.dependency_issues],
            "frameworks": list(self.frameworks),
            "elapsed_ms": self.elapsed_ms,
        }
