"""Tests for preflight.api — project, snippet and single-file analysis."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import pytest

from preflight.api import (
    CUSTOM_RULES_ERROR,
    MANIFEST_PARSE_ERROR,
    REALTIME_MAX_ISSUES,
    AnalysisError,
    analyze_project,
    analyze_snippet,
    validate_file,
)
from preflight.config import AnalyzerConfig
from preflight.rules import RuleRegistry, ValidationRule
from preflight.rules.engine import RULE_FAILURE_MESSAGE
from preflight.scheduler import FILE_READ_ERROR, FileResultCache

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path

    from preflight.models import AnalysisResult, FileContext


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _explode(ctx: FileContext) -> Iterator[AnalysisResult]:
    msg = f"cannot parse {ctx.path}"
    raise RuntimeError(msg)


def _located(results: tuple[AnalysisResult, ...]) -> list[tuple[str, str, int | None]]:
    return [(r.rule_id, r.file, r.line) for r in results]


_SNIPPET = (
    "'use client';\n"
    "import { useState } from 'x';\n"
    "export default function C(){ const [c,s]=useState(0); console.log('r'); return null; }"
)


# ---------------------------------------------------------------------------
# analyze_project
# ---------------------------------------------------------------------------


class TestAnalyzeProject:
    def test_nextjs_project(self, nextjs_project: Path) -> None:
        report = analyze_project(nextjs_project)
        located = _located(report.results)

        assert ("nextjs-server-components", "app/page.tsx", 4) in located
        assert ("nextjs-server-components", "app/page.tsx", 5) in located
        assert ("console-log-detection", "app/counter.tsx", 6) in located
        assert not any(r.rule_id == "nextjs-server-components" for r in report.results if r.file == "app/counter.tsx")
        assert report.summary.files_analyzed == 3
        assert report.summary.files_skipped == 0
        assert {"nextjs", "react"} <= set(report.frameworks)
        assert report.dependency_issues == ()
        assert report.results[0].severity == "error"

    def test_deterministic(self, nextjs_project: Path) -> None:
        first = analyze_project(nextjs_project, concurrency=4)
        second = analyze_project(nextjs_project, concurrency=1)
        assert first.results == second.results
        assert first.predictions == second.predictions
        assert first.summary == second.summary

    def test_non_strict_skips_best_practice(self, nextjs_project: Path) -> None:
        report = analyze_project(nextjs_project, strict_mode=False)
        assert "console-log-detection" not in {r.rule_id for r in report.results}

    def test_disabled_rules(self, nextjs_project: Path) -> None:
        report = analyze_project(nextjs_project, disabled_rules=["nextjs-server-components"])
        assert "nextjs-server-components" not in {r.rule_id for r in report.results}

    def test_enabled_rules_from_config(self, nextjs_project: Path) -> None:
        config = AnalyzerConfig(enabled_rules=("console-log-detection",))
        report = analyze_project(nextjs_project, config=config, predict_errors=False)
        assert {r.rule_id for r in report.results} == {"console-log-detection"}
        assert report.predictions == ()

    def test_max_issues_cap(self, nextjs_project: Path) -> None:
        report = analyze_project(nextjs_project, max_issues=1)
        assert len(report.results) == 1
        assert report.summary.truncated
        assert report.summary.total > 1

    def test_target_files(self, nextjs_project: Path) -> None:
        report = analyze_project(nextjs_project, target_files=["lib/format.ts"])
        assert report.summary.files_analyzed == 1
        assert all(r.file == "lib/format.ts" for r in report.results)

    def test_missing_dependency(self, nextjs_project: Path) -> None:
        (nextjs_project / "lib" / "pad.ts").write_text(
            "import leftPad from 'left-pad';\nexport const pad = (s: string) => leftPad(s, 4);\n",
            encoding="utf-8",
        )
        report = analyze_project(nextjs_project)
        assert [(i.kind, i.package, i.file, i.line) for i in report.dependency_issues] == [
            ("missing", "left-pad", "lib/pad.ts", 1)
        ]

    def test_dependency_analysis_can_be_disabled(self, nextjs_project: Path) -> None:
        (nextjs_project / "lib" / "pad.ts").write_text("import leftPad from 'left-pad';\n", encoding="utf-8")
        report = analyze_project(nextjs_project, analyze_dependencies=False)
        assert report.dependency_issues == ()

    def test_manifest_parse_error_is_reported(self, make_project: Callable[..., Path]) -> None:
        root = make_project({"src/a.ts": "export const a = 1;\n", "package.json": '{"name": '})
        report = analyze_project(root)
        notices = [r for r in report.results if r.rule_id == MANIFEST_PARSE_ERROR]
        assert len(notices) == 1
        assert notices[0].severity == "warning"
        assert notices[0].file == "package.json"
        assert notices[0].message.startswith("Dependency analysis skipped:")
        assert "dependency-analysis-skipped" in report.summary.degraded
        assert report.summary.files_analyzed == 1

    def test_failing_rule_does_not_abort(self, make_project: Callable[..., Path]) -> None:
        root = make_project({"src/a.ts": "debugger;\n"})
        registry = RuleRegistry(
            [
                ValidationRule(
                    id="exploding-rule",
                    name="Exploding",
                    description="Always raises",
                    category="test",
                    severity="error",
                    check=_explode,
                ),
            ]
        ).freeze()
        report = analyze_project(root, registry=registry)
        (result,) = report.results
        assert result.rule_id == "exploding-rule"
        assert result.severity == "warning"
        assert result.message == f"{RULE_FAILURE_MESSAGE}: exploding-rule"
        assert result.suggestion == "RuntimeError: cannot parse src/a.ts"

    def test_unreadable_file_reported(self, make_project: Callable[..., Path]) -> None:
        root = make_project({"src/a.ts": "debugger;\n"})
        (root / "src" / "b.ts").write_bytes(b"\xff\xfe\xfa")
        report = analyze_project(root)
        assert (FILE_READ_ERROR, "src/b.ts", None) in _located(report.results)
        assert ("debugger-statement", "src/a.ts", 1) in _located(report.results)
        assert report.summary.files_skipped == 1

    def test_custom_rules_layered(self, make_project: Callable[..., Path]) -> None:
        root = make_project(
            {
                "src/a.ts": "import moment from 'moment';\n",
                ".preflight/rules.yml": (
                    "version: 1\n"
                    "rules:\n"
                    "  - id: no-moment\n"
                    "    severity: error\n"
                    "    forbid_pattern: \"from 'moment'\"\n"
                ),
            },
            package={"name": "app", "dependencies": {"moment": "^2.29.0"}},
        )
        report = analyze_project(root)
        assert ("no-moment", "src/a.ts", 1) in _located(report.results)

    def test_invalid_custom_rules_reported(self, make_project: Callable[..., Path]) -> None:
        root = make_project({"src/a.ts": "export {};\n", ".preflight/rules.yml": "rules: []\n"})
        report = analyze_project(root)
        notices = [r for r in report.results if r.rule_id == CUSTOM_RULES_ERROR]
        assert len(notices) == 1
        assert "missing required 'version'" in notices[0].message
        assert "custom-rules-skipped" in report.summary.degraded

    def test_cancelled_before_start(self, nextjs_project: Path) -> None:
        cancel = threading.Event()
        cancel.set()
        report = analyze_project(nextjs_project, cancel_event=cancel)
        assert report.summary.partial
        assert "cancelled" in report.summary.degraded
        assert report.summary.files_analyzed == 0
        assert report.summary.files_skipped == 3

    def test_shared_cache(self, nextjs_project: Path) -> None:
        cache = FileResultCache()
        first = analyze_project(nextjs_project, cache=cache)
        second = analyze_project(nextjs_project, cache=cache)
        assert first.results == second.results
        assert cache.stats()["hits"] == 3


class TestAnalyzeProjectErrors:
    def test_not_a_directory(self, tmp_path: Path) -> None:
        with pytest.raises(AnalysisError, match="not a directory"):
            analyze_project(tmp_path / "missing")

    def test_no_files(self, tmp_path: Path) -> None:
        (tmp_path / "README.md").write_text("# hi\n", encoding="utf-8")
        with pytest.raises(AnalysisError, match="No analyzable files"):
            analyze_project(tmp_path)

    def test_nothing_readable(self, tmp_path: Path) -> None:
        (tmp_path / "a.ts").write_bytes(b"\xff\xfe\xfa")
        with pytest.raises(AnalysisError, match="could be read"):
            analyze_project(tmp_path)


# ---------------------------------------------------------------------------
# analyze_snippet / validate_file
# ---------------------------------------------------------------------------


class TestAnalyzeSnippet:
    def test_client_component_snippet(self) -> None:
        result = analyze_snippet(_SNIPPET, language="tsx", framework="nextjs")
        rule_ids = [r.rule_id for r in result.results]
        assert "console-log-detection" in rule_ids
        assert "nextjs-server-components" not in rule_ids
        console = next(r for r in result.results if r.rule_id == "console-log-detection")
        assert console.severity == "warning"
        assert console.line == 3
        assert console.file == "snippet.tsx"
        assert "nextjs" in result.frameworks

    def test_server_component_snippet(self) -> None:
        code = "import { useState } from 'react';\nexport default function P() { useState(0); return null; }\n"
        result = analyze_snippet(code, language="tsx", framework="nextjs", file_name="app/page.tsx")
        assert "nextjs-server-components" in {r.rule_id for r in result.results}
        assert not result.valid
        assert result.error_count >= 1

    def test_errors_sorted_first(self) -> None:
        result = analyze_snippet("console.log('a');\ndebugger;\n", language="js")
        assert [r.rule_id for r in result.results[:2]] == ["debugger-statement", "console-log-detection"]

    def test_to_dict(self) -> None:
        data = analyze_snippet("debugger;\n", language="js").to_dict()
        assert data["results"][0]["rule_id"] == "debugger-statement"
        assert set(data) == {"results", "predictions", "frameworks", "elapsed_ms"}


class TestValidateFile:
    def test_non_strict_with_content(self) -> None:
        result = validate_file("src/a.ts", content="console.log('x');\ndebugger;\n")
        assert [r.rule_id for r in result.results] == ["debugger-statement"]
        assert result.predictions == ()

    def test_reads_file(self, tmp_path: Path) -> None:
        path = tmp_path / "a.js"
        path.write_text("debugger;\n", encoding="utf-8")
        assert [r.rule_id for r in validate_file(path).results] == ["debugger-statement"]

    def test_capped(self) -> None:
        result = validate_file("a.js", content="debugger;\n" * (REALTIME_MAX_ISSUES + 5))
        assert len(result.results) == REALTIME_MAX_ISSUES

    def test_unreadable(self, tmp_path: Path) -> None:
        with pytest.raises(AnalysisError, match="Cannot read"):
            validate_file(tmp_path / "missing.ts")
