"""Rule execution engine: select applicable rules and run them fail-soft."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from preflight.models import AnalysisResult

if TYPE_CHECKING:
    from collections.abc import Iterable

    from preflight.models import FileContext
    from preflight.rules.registry import ValidationRule

logger = logging.getLogger(__name__)

RULE_FAILURE_MESSAGE = "Rule execution failed"


# ---------------------------------------------------------------------------
# Result construction
# ---------------------------------------------------------------------------


def finding(
    ctx: FileContext,
    rule_id: str,
    severity: str,
    message: str,
    *,
    offset: int | None = None,
    line: int | None = None,
    **fields: Any,
) -> AnalysisResult:
    """Build an :class:`AnalysisResult` located at *offset* (or *line*) in *ctx*."""
    column: int | None = None
    if offset is not None:
        line = ctx.line_of(offset)
        column = ctx.column_of(offset)
    return AnalysisResult(
        rule_id=rule_id,
        severity=severity,
        message=message,
        file=ctx.path,
        line=line,
        column=column,
        **fields,
    )


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


def select_rules(
    rules: Iterable[ValidationRule],
    *,
    enabled_rules: Iterable[str] | None = None,
    disabled_rules: Iterable[str] | None = None,
    strict_mode: bool = True,
) -> list[ValidationRule]:
    """Apply the enabled/disabled/strict filters, preserving rule order.

    If *enabled_rules* is non-empty only those ids run; *disabled_rules* are
    removed regardless.  Outside strict mode ``best-practice`` rules are
    dropped; ``correctness`` rules always run.
    """
    enabled = frozenset(enabled_rules or ())
    disabled = frozenset(disabled_rules or ())

    selected: list[ValidationRule] = []
    for rule in rules:
        if enabled and rule.id not in enabled:
            continue
        if rule.id in disabled:
            continue
        if not strict_mode and rule.kind == "best-practice":
            continue
        selected.append(rule)
    return selected


def applicable_rules(
    rules: Iterable[ValidationRule],
    frameworks: frozenset[str],
    path: str,
) -> list[ValidationRule]:
    """Rules whose framework tags and file patterns match this file."""
    return [rule for rule in rules if rule.applies(frameworks) and rule.matches_file(path)]


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def _failure_result(ctx: FileContext, rule: ValidationRule, exc: Exception) -> AnalysisResult:
    return AnalysisResult(
        rule_id=rule.id,
        severity="warning",
        message=f"{RULE_FAILURE_MESSAGE}: {rule.id}",
        file=ctx.path,
        category="internal",
        suggestion=f"{type(exc).__name__}: {exc}",
    )


def execute(ctx: FileContext, rules: Iterable[ValidationRule]) -> list[AnalysisResult]:
    """Run *rules* against one file.

    Output preserves rule order, then each rule's emission order.  A rule
    that raises contributes exactly one synthetic ``warning`` result and
    the remaining rules still run.  Overlapping findings from different
    rules are kept as-is.
    """
    results: list[AnalysisResult] = []
    for rule in rules:
        try:
            emitted = list(rule.check(ctx))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Rule %s failed on %s: %s", rule.id, ctx.path, exc)
            results.append(_failure_result(ctx, rule, exc))
            continue
        results.extend(emitted)
    return results
