"""Tests for preflight.rules.engine — rule selection and fail-soft execution."""

from __future__ import annotations

from typing import TYPE_CHECKING

from preflight.models import FileContext
from preflight.rules import ValidationRule, applicable_rules, execute, finding, select_rules
from preflight.rules.engine import RULE_FAILURE_MESSAGE

if TYPE_CHECKING:
    from collections.abc import Iterator

    from preflight.models import AnalysisResult


def _emit(rule_id: str, *lines: int) -> ValidationRule:
    def _check(ctx: FileContext) -> Iterator[AnalysisResult]:
        for line in lines:
            yield finding(ctx, rule_id, "warning", f"{rule_id} at {line}", line=line)

    return ValidationRule(
        id=rule_id,
        name=rule_id,
        description="",
        category="test",
        severity="warning",
        check=_check,
    )


def _raising(rule_id: str) -> ValidationRule:
    def _check(ctx: FileContext) -> Iterator[AnalysisResult]:
        msg = "boom"
        raise RuntimeError(msg)

    return ValidationRule(
        id=rule_id,
        name=rule_id,
        description="",
        category="test",
        severity="error",
        check=_check,
    )


def _ctx(content: str = "const a = 1;\n", path: str = "src/a.ts") -> FileContext:
    return FileContext(path=path, content=content)


class TestFinding:
    def test_offset_resolves_line_and_column(self) -> None:
        ctx = _ctx("const a = 1;\n  debugger;\n")
        result = finding(ctx, "r", "error", "msg", offset=ctx.content.index("debugger"))
        assert result.line == 2
        assert result.column == 3
        assert result.file == "src/a.ts"

    def test_explicit_line_without_column(self) -> None:
        result = finding(_ctx(), "r", "info", "msg", line=1, suggestion="fix it")
        assert result.line == 1
        assert result.column is None
        assert result.suggestion == "fix it"


class TestSelectRules:
    def test_enabled_restricts(self) -> None:
        rules = [_emit("a"), _emit("b"), _emit("c")]
        selected = select_rules(rules, enabled_rules=["b"])
        assert [rule.id for rule in selected] == ["b"]

    def test_disabled_removes(self) -> None:
        rules = [_emit("a"), _emit("b"), _emit("c")]
        selected = select_rules(rules, disabled_rules=["b"])
        assert [rule.id for rule in selected] == ["a", "c"]

    def test_disabled_wins_over_enabled(self) -> None:
        rules = [_emit("a"), _emit("b")]
        selected = select_rules(rules, enabled_rules=["a", "b"], disabled_rules=["a"])
        assert [rule.id for rule in selected] == ["b"]

    def test_non_strict_drops_best_practice(self) -> None:
        from dataclasses import replace

        rules = [_emit("correct"), replace(_emit("style"), kind="best-practice")]
        assert [rule.id for rule in select_rules(rules, strict_mode=False)] == ["correct"]
        assert [rule.id for rule in select_rules(rules, strict_mode=True)] == ["correct", "style"]


class TestApplicableRules:
    def test_framework_filter(self) -> None:
        from dataclasses import replace

        vue_rule = replace(_emit("vue-rule"), applies_to=frozenset({"vue"}))
        universal = _emit("universal")
        selected = applicable_rules([vue_rule, universal], frozenset({"react"}), "src/App.tsx")
        assert [rule.id for rule in selected] == ["universal"]

    def test_file_pattern_filter(self) -> None:
        from dataclasses import replace

        sfc_rule = replace(_emit("sfc"), file_patterns=("*.vue",))
        assert applicable_rules([sfc_rule], frozenset(), "src/main.ts") == []
        assert applicable_rules([sfc_rule], frozenset(), "src/App.vue") == [sfc_rule]


class TestExecute:
    def test_preserves_rule_then_emission_order(self) -> None:
        results = execute(_ctx(), [_emit("b", 3, 1), _emit("a", 2)])
        assert [(r.rule_id, r.line) for r in results] == [("b", 3), ("b", 1), ("a", 2)]

    def test_failing_rule_yields_one_synthetic_warning(self) -> None:
        results = execute(_ctx(), [_emit("before", 1), _raising("broken"), _emit("after", 2)])

        failures = [r for r in results if r.rule_id == "broken"]
        assert len(failures) == 1
        failure = failures[0]
        assert failure.severity == "warning"
        assert failure.message.startswith(RULE_FAILURE_MESSAGE)
        assert failure.line is None
        assert "RuntimeError" in (failure.suggestion or "")

        assert [r.rule_id for r in results] == ["before", "broken", "after"]

    def test_no_rules_no_results(self) -> None:
        assert execute(_ctx(), []) == []
