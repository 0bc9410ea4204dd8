"""Report aggregation and formatting."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from preflight.models import AnalysisReport, ReportSummary, severity_rank

if TYPE_CHECKING:
    from collections.abc import Iterable

    from preflight.models import AnalysisResult, DependencyIssue, PredictedError

# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


def _result_key(result: AnalysisResult) -> tuple[object, ...]:
    # Missing line/column sort before located findings.
    return (
        severity_rank(result.severity),
        result.file,
        result.line is not None,
        result.line or 0,
        result.column is not None,
        result.column or 0,
        result.rule_id,
        result.message,
    )


def _prediction_key(prediction: PredictedError) -> tuple[object, ...]:
    return (
        -prediction.probability,
        prediction.file,
        prediction.line or 0,
        prediction.pattern_id,
        prediction.message,
    )


def _issue_key(issue: DependencyIssue) -> tuple[object, ...]:
    return (severity_rank(issue.severity), issue.kind, issue.package, issue.file or "", issue.detail)


def dedupe(results: Iterable[AnalysisResult]) -> list[AnalysisResult]:
    """Drop exact duplicates on (rule_id, file, line, message), keeping the first."""
    seen: set[tuple[str, str, int | None, str]] = set()
    unique: list[AnalysisResult] = []
    for result in results:
        if result.dedup_key in seen:
            continue
        seen.add(result.dedup_key)
        unique.append(result)
    return unique


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def aggregate(
    rule_results: Iterable[AnalysisResult],
    predictions: Iterable[PredictedError],
    dependency_issues: Iterable[DependencyIssue],
    max_issues: int,
    *,
    max_predictions: int | None = None,
    max_dependency_issues: int | None = None,
    files_analyzed: int = 0,
    files_skipped: int = 0,
    partial: bool = False,
    degraded: Iterable[str] = (),
    frameworks: Iterable[str] = (),
    elapsed_ms: float = 0.0,
) -> AnalysisReport:
    """Merge all findings into one ordered, capped report.

    Results are deduplicated, sorted by severity, file, line and truncated
    to *max_issues*.  Predictions (most probable first) and dependency
    issues are kept in full unless capped.  Summary counts cover the
    deduplicated set before truncation.
    """
    results = sorted(dedupe(rule_results), key=_result_key)
    ordered_predictions = sorted(predictions, key=_prediction_key)
    ordered_issues = sorted(dependency_issues, key=_issue_key)

    counts = {"error": 0, "warning": 0, "info": 0}
    for result in results:
        counts[result.severity] = counts.get(result.severity, 0) + 1

    limit = max(0, max_issues)
    summary = ReportSummary(
        errors=counts["error"],
        warnings=counts["warning"],
        infos=counts["info"],
        total=len(results),
        predictions=len(ordered_predictions),
        dependency_issues=len(ordered_issues),
        files_analyzed=files_analyzed,
        files_skipped=files_skipped,
        truncated=len(results) > limit,
        partial=partial,
        degraded=tuple(degraded),
    )

    if max_predictions is not None:
        ordered_predictions = ordered_predictions[: max(0, max_predictions)]
    if max_dependency_issues is not None:
        ordered_issues = ordered_issues[: max(0, max_dependency_issues)]

    return AnalysisReport(
        summary=summary,
        results=tuple(results[:limit]),
        predictions=tuple(ordered_predictions),
        dependency_issues=tuple(ordered_issues),
        frameworks=tuple(sorted(set(frameworks))),
        elapsed_ms=elapsed_ms,
    )


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------

_SEVERITY_MARK = {"error": "✗", "warning": "!", "info": "i"}


def _location(file: str | None, line: int | None, column: int | None = None) -> str:
    loc = file or "package.json"
    if line is not None:
        loc += f":{line}"
        if column is not None:
            loc += f":{column}"
    return loc


def format_rich(report: AnalysisReport) -> str:
    """Format a report as human-readable text.

    Example output::

        Files: 12 analyzed, 0 skipped  |  Frameworks: nextjs, react

        ✗ src/app/page.tsx:3:1 [nextjs-server-components]
          Using client-side hook 'useState' in a Server Component
          → Add a 'use client' directive at the top of the file

        Predictions:
          87% hydration-mismatch  src/app/page.tsx:9

        1 errors, 0 warnings, 0 info (1 predictions, 0 dependency issues, 0.2s)
    """
    summary = report.summary
    lines: list[str] = []

    header = f"Files: {summary.files_analyzed} analyzed, {summary.files_skipped} skipped"
    if report.frameworks:
        header += f"  |  Frameworks: {', '.join(report.frameworks)}"
    lines.append(header)
    lines.append("")

    for r in report.results:
        mark = _SEVERITY_MARK.get(r.severity, "?")
        lines.append(f"{mark} {_location(r.file, r.line, r.column)} [{r.rule_id}]")
        lines.append(f"  {r.message}")
        if r.suggestion:
            lines.append(f"  → {r.suggestion}")
        lines.append("")

    if report.dependency_issues:
        lines.append("Dependencies:")
        for d in report.dependency_issues:
            lines.append(f"  {_SEVERITY_MARK.get(d.severity, '?')} {d.kind} {d.package}: {d.detail}")
        lines.append("")

    if report.predictions:
        lines.append("Predictions:")
        for p in report.predictions:
            lines.append(f"  {round(p.probability * 100):>3}% {p.error_type}  {_location(p.file, p.line)}")
            lines.append(f"       {p.message}")
        lines.append("")

    if summary.truncated:
        lines.append(f"Showing {len(report.results)} of {summary.total} results (max_issues reached)")
    if summary.partial:
        lines.append("Analysis was cancelled: results are partial")
    for label in summary.degraded:
        lines.append(f"Degraded: {label}")

    elapsed_str = f"{report.elapsed_ms / 1000:.1f}s"
    if summary.total or summary.predictions or summary.dependency_issues:
        lines.append(
            f"{summary.errors} errors, {summary.warnings} warnings, {summary.infos} info "
            f"({summary.predictions} predictions, {summary.dependency_issues} dependency issues, "
            f"{elapsed_str})"
        )
    else:
        lines.append(f"✓ No issues found ({elapsed_str})")

    return "\n".join(lines)


def format_json(report: AnalysisReport) -> str:
    """Format a report as structured JSON."""
    return json.dumps(report.to_dict(), indent=2)


def format_porcelain(report: AnalysisReport) -> str:
    """Format findings one per line for scripts.

    Format: ``severity:rule_id:file:line:column:message`` for results,
    ``prediction:pattern_id:file:line:probability:message`` for predictions
    and ``dependency:kind:file:line:package:detail`` for dependency issues.
    Missing values are empty strings.  Returns an empty string when there
    is nothing to report.
    """

    def opt(value: object) -> str:
        return "" if value is None else str(value)

    lines: list[str] = []
    for r in report.results:
        lines.append(f"{r.severity}:{r.rule_id}:{r.file}:{opt(r.line)}:{opt(r.column)}:{r.message}")
    for d in report.dependency_issues:
        lines.append(f"dependency:{d.kind}:{opt(d.file)}:{opt(d.line)}:{d.package}:{d.detail}")
    for p in report.predictions:
        lines.append(f"prediction:{p.pattern_id}:{p.file}:{opt(p.line)}:{p.probability:.2f}:{p.message}")
    return "\n".join(lines)
