"""Tests for preflight.report — aggregation and formatters."""

from __future__ import annotations

import json

from preflight.models import AnalysisResult, DependencyIssue, PredictedError
from preflight.report import aggregate, dedupe, format_json, format_porcelain, format_rich

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _result(
    severity: str = "warning",
    file: str = "src/a.ts",
    line: int | None = 1,
    rule_id: str = "console-log-detection",
    message: str = "console.log statement found",
    column: int | None = None,
) -> AnalysisResult:
    return AnalysisResult(
        rule_id=rule_id, severity=severity, message=message, file=file, line=line, column=column
    )


def _prediction(probability: float, file: str = "src/a.ts", line: int | None = 3) -> PredictedError:
    return PredictedError(
        pattern_id="hydration-mismatch",
        error_type="HydrationError",
        phase="runtime",
        probability=probability,
        file=file,
        message="Server and client render differ",
        prevention_suggestion="Move the value into useEffect",
        line=line,
    )


def _issue(kind: str = "missing", severity: str = "error", package: str = "left-pad") -> DependencyIssue:
    return DependencyIssue(
        kind=kind,
        package=package,
        required_range="*",
        severity=severity,
        detail=f"'{package}' is imported but not declared in package.json",
        file="src/a.ts",
        line=2,
    )


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


class TestDedupe:
    def test_keeps_first(self) -> None:
        first = _result(column=1)
        second = _result(column=5)
        other_line = _result(line=2)
        assert dedupe([first, second, other_line]) == [first, other_line]


class TestAggregate:
    def test_ordering(self) -> None:
        results = [
            _result("info", "src/b.ts", 1),
            _result("warning", "src/b.ts", 9),
            _result("error", "src/b.ts", 2),
            _result("warning", "src/a.ts", 4),
            _result("warning", "src/b.ts", None, rule_id="file-level"),
            _result("warning", "src/b.ts", 3),
        ]
        report = aggregate(results, [], [], max_issues=100)
        assert [(r.severity, r.file, r.line) for r in report.results] == [
            ("error", "src/b.ts", 2),
            ("warning", "src/a.ts", 4),
            ("warning", "src/b.ts", None),
            ("warning", "src/b.ts", 3),
            ("warning", "src/b.ts", 9),
            ("info", "src/b.ts", 1),
        ]

    def test_ties_broken_by_column_then_rule(self) -> None:
        results = [
            _result(column=9, rule_id="b-rule"),
            _result(column=2, rule_id="z-rule"),
            _result(column=2, rule_id="a-rule"),
        ]
        report = aggregate(results, [], [], max_issues=10)
        assert [(r.column, r.rule_id) for r in report.results] == [(2, "a-rule"), (2, "z-rule"), (9, "b-rule")]

    def test_cap_and_counts(self) -> None:
        errors = [_result("error", line=i) for i in range(1, 4)]
        infos = [_result("info", line=i, rule_id="typescript-any-usage", message="any") for i in range(1, 5)]
        results = errors + infos
        report = aggregate(results, [], [], max_issues=2)
        assert len(report.results) == 2
        summary = report.summary
        assert summary.truncated
        assert (summary.errors, summary.warnings, summary.infos, summary.total) == (3, 0, 4, 7)

    def test_exact_cap_is_not_truncated(self) -> None:
        report = aggregate([_result(line=1), _result(line=2)], [], [], max_issues=2)
        assert not report.summary.truncated

    def test_duplicates_not_counted(self) -> None:
        report = aggregate([_result(), _result()], [], [], max_issues=10)
        assert report.summary.total == 1

    def test_predictions_most_probable_first(self) -> None:
        predictions = [_prediction(0.55), _prediction(0.9, file="src/z.ts"), _prediction(0.7)]
        report = aggregate([], predictions, [], max_issues=10, max_predictions=2)
        assert [p.probability for p in report.predictions] == [0.9, 0.7]
        assert report.summary.predictions == 3

    def test_dependency_issues_ordered(self) -> None:
        issues = [_issue("duplicate", "info"), _issue("missing", "error", "zod"), _issue("missing", "error")]
        report = aggregate([], [], issues, max_issues=10)
        assert [(i.kind, i.package) for i in report.dependency_issues] == [
            ("missing", "left-pad"),
            ("missing", "zod"),
            ("duplicate", "left-pad"),
        ]

    def test_metadata(self) -> None:
        report = aggregate(
            [],
            [],
            [],
            max_issues=10,
            files_analyzed=4,
            files_skipped=1,
            partial=True,
            degraded=["dependency-analysis"],
            frameworks=["react", "nextjs", "react"],
            elapsed_ms=12.5,
        )
        assert report.summary.files_analyzed == 4
        assert report.summary.files_skipped == 1
        assert report.summary.partial
        assert report.summary.degraded == ("dependency-analysis",)
        assert report.frameworks == ("nextjs", "react")
        assert report.elapsed_ms == 12.5

    def test_deterministic_regardless_of_input_order(self) -> None:
        results = [_result("error", "src/c.ts", 5), _result("info", "src/a.ts", 1), _result("warning", "src/b.ts", 2)]
        forward = aggregate(results, [], [], max_issues=10)
        backward = aggregate(list(reversed(results)), [], [], max_issues=10)
        assert forward == backward


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class TestFormatters:
    def test_rich(self) -> None:
        result = AnalysisResult(
            rule_id="nextjs-server-components",
            severity="error",
            message="Using client-side hook 'useState' in a Server Component",
            file="app/page.tsx",
            line=3,
            column=1,
            suggestion="Add a 'use client' directive at the top of the file",
        )
        report = aggregate([result], [_prediction(0.87)], [_issue()], max_issues=10, files_analyzed=2)
        text = format_rich(report)
        assert text.startswith("Files: 2 analyzed, 0 skipped")
        assert "✗ app/page.tsx:3:1 [nextjs-server-components]" in text
        assert "  → Add a 'use client' directive at the top of the file" in text
        assert "Dependencies:" in text
        assert " 87% HydrationError  src/a.ts:3" in text
        assert "1 errors, 0 warnings, 0 info (1 predictions, 1 dependency issues" in text

    def test_rich_empty(self) -> None:
        text = format_rich(aggregate([], [], [], max_issues=10))
        assert "✓ No issues found" in text

    def test_rich_truncated_and_partial(self) -> None:
        report = aggregate([_result(line=1), _result(line=2)], [], [], max_issues=1, partial=True)
        text = format_rich(report)
        assert "Showing 1 of 2 results (max_issues reached)" in text
        assert "Analysis was cancelled: results are partial" in text

    def test_json(self) -> None:
        report = aggregate([_result()], [_prediction(0.6)], [], max_issues=10, degraded=["x"])
        data = json.loads(format_json(report))
        assert data["summary"]["warnings"] == 1
        assert data["summary"]["degraded"] == ["x"]
        assert data["results"][0]["rule_id"] == "console-log-detection"
        assert data["predictions"][0]["probability"] == 0.6
        assert data["dependency_issues"] == []

    def test_porcelain(self) -> None:
        report = aggregate([_result(line=None)], [_prediction(0.75)], [_issue()], max_issues=10)
        assert format_porcelain(report).splitlines() == [
            "warning:console-log-detection:src/a.ts:::console.log statement found",
            "dependency:missing:src/a.ts:2:left-pad:'left-pad' is imported but not declared in package.json",
            "prediction:hydration-mismatch:src/a.ts:3:0.75:Server and client render differ",
        ]

    def test_porcelain_empty(self) -> None:
        assert format_porcelain(aggregate([], [], [], max_issues=10)) == ""
