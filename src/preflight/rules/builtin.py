"""Universal rules that apply to every JS/TS source file."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from preflight.rules.engine import finding
from preflight.rules.registry import ValidationRule
from preflight.rules.source import file_imports, iter_functions, mask_comments

if TYPE_CHECKING:
    from collections.abc import Iterator

    from preflight.models import AnalysisResult, FileContext

SCRIPT_FILES: tuple[str, ...] = ("*.ts", "*.tsx", "*.js", "*.jsx", "*.mjs", "*.cjs", "*.vue", "*.svelte")
TYPESCRIPT_FILES: tuple[str, ...] = ("*.ts", "*.tsx")

_CONSOLE_RE = re.compile(r"(?<![\w$.])console\.(log|error|warn|info|debug|trace)\s*\(")
_DEBUGGER_RE = re.compile(r"(?<![\w$.])debugger\s*(?:;|\n|$)")
_ANY_RE = re.compile(r":\s*any\b(?!\w)|\bas\s+any\b|<any>")
_IMPORT_STMT_RE = re.compile(r"""\bimport\s[^;]*?\bfrom\s*['"][^'"]+['"]\s*;?""", re.DOTALL)


def _check_console_log(ctx: FileContext) -> Iterator[AnalysisResult]:
    text = mask_comments(ctx.content)
    for match in _CONSOLE_RE.finditer(text):
        call = match.group(0).replace(" ", "")
        yield finding(
            ctx,
            "console-log-detection",
            "warning",
            f"Console statement found: {call}",
            offset=match.start(),
            category="code-quality",
            suggestion="Remove console statements or use a proper logging library",
        )


def _check_unused_imports(ctx: FileContext) -> Iterator[AnalysisResult]:
    text = _IMPORT_STMT_RE.sub(lambda m: " " * len(m.group(0)), mask_comments(ctx.content))
    for spec in file_imports(ctx):
        if spec.kind != "import":
            continue
        for name in spec.names:
            usage = re.compile(rf"(?<![\w$]){re.escape(name)}(?![\w$])")
            if usage.search(text):
                continue
            yield finding(
                ctx,
                "unused-imports",
                "warning",
                f"Import '{name}' from '{spec.specifier}' is never used",
                line=spec.line,
                category="code-quality",
                suggestion=f"Remove unused import '{name}'",
                confidence=0.9,
            )


def _check_async_error_handling(ctx: FileContext) -> Iterator[AnalysisResult]:
    text = mask_comments(ctx.content)
    for span in iter_functions(text):
        if not span.is_async:
            continue
        body = text[span.body_start : span.body_end + 1]
        if not re.search(r"\bawait\b", body):
            continue
        if re.search(r"\btry\s*\{", body) or ".catch(" in body:
            continue
        name = span.name or "anonymous"
        yield finding(
            ctx,
            "async-await-error-handling",
            "error",
            f"Async function '{name}' lacks error handling",
            offset=span.start,
            category="error-handling",
            suggestion="Wrap await calls in try/catch blocks or use .catch() for proper error handling",
            confidence=0.85,
        )


def _check_debugger(ctx: FileContext) -> Iterator[AnalysisResult]:
    text = mask_comments(ctx.content)
    for match in _DEBUGGER_RE.finditer(text):
        yield finding(
            ctx,
            "debugger-statement",
            "error",
            "'debugger' statement left in source",
            offset=match.start(),
            category="code-quality",
            suggestion="Remove the debugger statement before shipping",
            auto_fix="Delete the 'debugger' statement",
        )


def _check_any_usage(ctx: FileContext) -> Iterator[AnalysisResult]:
    text = mask_comments(ctx.content)
    for match in _ANY_RE.finditer(text):
        yield finding(
            ctx,
            "typescript-any-usage",
            "info",
            "Explicit 'any' disables type checking here",
            offset=match.start(),
            category="type-safety",
            suggestion="Use a precise type or 'unknown' instead of 'any'",
            confidence=0.8,
        )


RULES: list[ValidationRule] = [
    ValidationRule(
        id="console-log-detection",
        name="Console Log Detection",
        description="Detects console statements in production code",
        category="code-quality",
        severity="warning",
        kind="best-practice",
        file_patterns=SCRIPT_FILES,
        check=_check_console_log,
    ),
    ValidationRule(
        id="unused-imports",
        name="Unused Imports Detection",
        description="Detects import bindings that are never referenced",
        category="code-quality",
        severity="warning",
        kind="best-practice",
        file_patterns=SCRIPT_FILES,
        check=_check_unused_imports,
    ),
    ValidationRule(
        id="async-await-error-handling",
        name="Async/Await Error Handling",
        description="Ensures async functions handle rejected awaits",
        category="error-handling",
        severity="error",
        file_patterns=SCRIPT_FILES,
        check=_check_async_error_handling,
    ),
    ValidationRule(
        id="debugger-statement",
        name="Debugger Statement",
        description="Detects leftover debugger statements",
        category="code-quality",
        severity="error",
        file_patterns=SCRIPT_FILES,
        check=_check_debugger,
    ),
    ValidationRule(
        id="typescript-any-usage",
        name="TypeScript Any Usage",
        description="Flags explicit any annotations and assertions",
        category="type-safety",
        severity="info",
        kind="best-practice",
        file_patterns=TYPESCRIPT_FILES,
        check=_check_any_usage,
    ),
]
