"""React rule pack: rules of hooks, effect dependencies, state, list keys, XSS sinks."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from preflight.rules.engine import finding
from preflight.rules.registry import ValidationRule
from preflight.rules.source import (
    call_spans,
    iter_functions,
    mask_comments,
    match_delimiter,
    split_arguments,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    from preflight.models import AnalysisResult, FileContext

REACT: frozenset[str] = frozenset({"react"})
SCRIPT_FILES: tuple[str, ...] = ("*.ts", "*.tsx", "*.js", "*.jsx")
COMPONENT_FILES: tuple[str, ...] = ("*.tsx", "*.jsx", "*.js")

EFFECT_HOOKS: tuple[str, ...] = ("useEffect", "useLayoutEffect")
MUTATING_METHODS: tuple[str, ...] = ("push", "pop", "shift", "unshift", "splice", "sort", "reverse", "fill")
SUBSCRIPTION_CALLS: tuple[str, ...] = ("setInterval", "setTimeout", "addEventListener", "subscribe")
SENSITIVE_WORDS: tuple[str, ...] = ("password", "token", "secret", "apikey", "api_key", "credential")
MAX_STATE_HOOKS = 7

_HOOK_CALL_RE = re.compile(r"(?<![\w$.])(use[A-Z]\w*)\s*\(")
_CONTROL_RE = re.compile(r"(?<![\w$.])(if|for|while)\s*\(")
_STATE_RE = re.compile(
    r"const\s*\[\s*([A-Za-z_$][\w$]*)\s*,\s*(set[A-Za-z_$][\w$]*)\s*\]\s*=\s*(?:React\.)?useState\b"
)
_MAP_RE = re.compile(r"\.map\s*\(")
_JSX_OPEN_RE = re.compile(r"<(?:[A-Za-z][\w.]*[\s>/]|>)")
_INDEX_PARAM_RE = re.compile(r"^\(?\s*[A-Za-z_$][\w$]*\s*,\s*([A-Za-z_$][\w$]*)")
_IDENT_RE = re.compile(r"(?<![\w$.])([A-Za-z_$][\w$]*)")
_LOCAL_STORAGE_RE = re.compile(r"(?:localStorage|sessionStorage)\.setItem\s*\(")
_BLANK_TARGET_RE = re.compile(r"<a\b[^>]*target\s*=\s*[\"'{]*_blank[^>]*>", re.DOTALL)
_JS_URL_RE = re.compile(r"\bhref\s*=\s*\{?\s*[\"'`]javascript:", re.IGNORECASE)


def _block_after(text: str, paren_idx: int) -> tuple[int, int] | None:
    """Offsets of the ``{...}`` block following the ``(...)`` at *paren_idx*."""
    close = match_delimiter(text, paren_idx)
    j = close + 1
    while j < len(text) and text[j].isspace():
        j += 1
    if j >= len(text) or text[j] != "{":
        return None
    return j, match_delimiter(text, j)


def _state_pairs(text: str) -> list[tuple[str, str, int]]:
    return [(m.group(1), m.group(2), m.start()) for m in _STATE_RE.finditer(text)]


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def _check_hooks_rules(ctx: FileContext) -> Iterator[AnalysisResult]:
    text = mask_comments(ctx.content)
    reported: set[int] = set()

    for control in _CONTROL_RE.finditer(text):
        block = _block_after(text, control.end() - 1)
        if block is None:
            continue
        start, end = block
        where = "conditionally" if control.group(1) == "if" else "in a loop"
        for hook in _HOOK_CALL_RE.finditer(text, start, end):
            if hook.start() in reported:
                continue
            reported.add(hook.start())
            yield finding(
                ctx,
                "react-hooks-rules",
                "error",
                f"React Hook '{hook.group(1)}' is called {where}",
                offset=hook.start(),
                category="react-hooks",
                framework="react",
                suggestion="Hooks must be called at the top level, in the same order on every render",
                confidence=0.95,
            )

    for span in iter_functions(text):
        name = span.name
        if name is None or span.is_component or name.startswith("use"):
            continue
        for hook in _HOOK_CALL_RE.finditer(text, span.body_start, span.body_end):
            if hook.start() in reported:
                continue
            reported.add(hook.start())
            yield finding(
                ctx,
                "react-hooks-rules",
                "error",
                f"React Hook '{hook.group(1)}' is called in function '{name}', "
                "which is neither a component nor a custom hook",
                offset=hook.start(),
                category="react-hooks",
                framework="react",
                suggestion="Call hooks from components (PascalCase) or custom hooks (use* prefix)",
                confidence=0.9,
            )


def _check_effect_deps(ctx: FileContext) -> Iterator[AnalysisResult]:
    text = mask_comments(ctx.content)
    state_names = {name for name, _setter, _ in _state_pairs(text)}

    for hook in EFFECT_HOOKS:
        for start, _end in call_spans(text, hook):
            paren = text.index("(", start)
            args = split_arguments(text, paren)
            if not args:
                continue
            cb_start, cb_end = args[0]
            callback = text[cb_start:cb_end]

            if callback.startswith("async"):
                yield finding(
                    ctx,
                    "react-effect-deps",
                    "error",
                    f"{hook} callback cannot be async",
                    offset=start,
                    category="react-hooks",
                    framework="react",
                    suggestion=f"Declare an async function inside the {hook} callback and call it",
                )

            if len(args) == 1:
                yield finding(
                    ctx,
                    "react-effect-deps",
                    "warning",
                    f"{hook} without dependencies array",
                    offset=start,
                    category="react-hooks",
                    framework="react",
                    suggestion="Add a dependencies array so the effect does not run after every render",
                    confidence=0.9,
                )
            else:
                dep_start, dep_end = args[1]
                deps = text[dep_start:dep_end]
                if deps.startswith("["):
                    listed = set(_IDENT_RE.findall(deps))
                    used = set(_IDENT_RE.findall(callback)) & state_names
                    for name in sorted(used - listed):
                        yield finding(
                            ctx,
                            "react-effect-deps",
                            "warning",
                            f"{hook} has a missing dependency: '{name}'",
                            offset=dep_start,
                            category="react-hooks",
                            framework="react",
                            suggestion=f"Include '{name}' in the dependencies array or remove the reference",
                            confidence=0.8,
                        )

            if any(f"{call}(" in callback for call in SUBSCRIPTION_CALLS) and not re.search(
                r"\breturn\b", callback
            ):
                yield finding(
                    ctx,
                    "react-effect-deps",
                    "warning",
                    f"{hook} sets up a timer or listener but returns no cleanup function",
                    offset=start,
                    category="react-hooks",
                    framework="react",
                    suggestion="Return a cleanup function that clears timers and removes listeners",
                    confidence=0.8,
                )


def _check_state(ctx: FileContext) -> Iterator[AnalysisResult]:
    text = mask_comments(ctx.content)
    pairs = _state_pairs(text)

    for name, setter, declared_at in pairs:
        escaped = re.escape(name)
        mutation = re.compile(
            rf"(?<![\w$.]){escaped}\s*\.\s*(?:{'|'.join(MUTATING_METHODS)})\s*\("
            rf"|(?<![\w$.]){escaped}(?:\.[A-Za-z_$][\w$]*|\[[^\]]+\])+\s*=(?!=)"
        )
        for match in mutation.finditer(text, declared_at + 1):
            yield finding(
                ctx,
                "react-state",
                "error",
                f"Direct mutation of state '{name}'",
                offset=match.start(),
                category="react-state",
                framework="react",
                suggestion=f"Create a new array or object and pass it to {setter}",
                confidence=0.95,
            )

        stale = re.compile(rf"(?<![\w$.]){re.escape(setter)}\s*\(\s*{escaped}\b(?!\s*=>)")
        for match in stale.finditer(text):
            yield finding(
                ctx,
                "react-state",
                "warning",
                f"Potential stale closure in {setter}",
                offset=match.start(),
                category="react-state",
                framework="react",
                suggestion=f"Use the functional update form: {setter}(prev => ...)",
                confidence=0.7,
            )

    if len(pairs) > MAX_STATE_HOOKS:
        yield finding(
            ctx,
            "react-state",
            "warning",
            f"Too many useState calls ({len(pairs)})",
            offset=pairs[MAX_STATE_HOOKS][2],
            category="react-state",
            framework="react",
            suggestion="Consider useReducer or extracting logic into a custom hook",
            confidence=0.6,
        )


def _check_key_prop(ctx: FileContext) -> Iterator[AnalysisResult]:
    text = mask_comments(ctx.content)
    for match in _MAP_RE.finditer(text):
        args = split_arguments(text, match.end() - 1)
        if not args:
            continue
        cb_start, cb_end = args[0]
        callback = text[cb_start:cb_end]
        if "=>" not in callback and not callback.startswith("function"):
            continue
        element = _JSX_OPEN_RE.search(callback)
        if element is None:
            continue
        if not re.search(r"\bkey\s*=", callback):
            yield finding(
                ctx,
                "react-key-prop",
                "warning",
                "Missing 'key' prop for element in list",
                offset=cb_start + element.start(),
                category="react-components",
                framework="react",
                suggestion="Give each element rendered from .map() a stable, unique key",
                confidence=0.9,
            )
            continue
        index_param = _INDEX_PARAM_RE.match(callback)
        if index_param is not None:
            index = re.escape(index_param.group(1))
            key_use = re.search(rf"\bkey\s*=\s*\{{\s*{index}\s*\}}", callback)
            if key_use is not None:
                yield finding(
                    ctx,
                    "react-key-prop",
                    "warning",
                    "Array index used as 'key' prop",
                    offset=cb_start + key_use.start(),
                    category="react-components",
                    framework="react",
                    suggestion="Use an id from the item instead of its position",
                    confidence=0.7,
                )


def _check_security(ctx: FileContext) -> Iterator[AnalysisResult]:
    text = mask_comments(ctx.content)

    for match in re.finditer(r"\bdangerouslySetInnerHTML\b", text):
        yield finding(
            ctx,
            "react-security",
            "error",
            "dangerouslySetInnerHTML can lead to XSS vulnerabilities",
            offset=match.start(),
            category="react-security",
            framework="react",
            suggestion="Sanitize HTML (e.g. with DOMPurify) or render text content instead",
            confidence=0.9,
        )

    for start, _end in call_spans(text, "eval"):
        yield finding(
            ctx,
            "react-security",
            "error",
            "eval() usage detected - security risk",
            offset=start,
            category="react-security",
            framework="react",
            suggestion="Never use eval(); parse data explicitly instead",
        )

    for match in _LOCAL_STORAGE_RE.finditer(text):
        call = text[match.start() : match_delimiter(text, match.end() - 1) + 1].lower()
        if any(word in call for word in SENSITIVE_WORDS):
            yield finding(
                ctx,
                "react-security",
                "error",
                "Storing sensitive data in web storage",
                offset=match.start(),
                category="react-security",
                framework="react",
                suggestion="Keep tokens in httpOnly cookies or in memory",
                confidence=0.9,
            )

    for match in _JS_URL_RE.finditer(text):
        yield finding(
            ctx,
            "react-security",
            "error",
            "javascript: URL in href",
            offset=match.start(),
            category="react-security",
            framework="react",
            suggestion="Use an onClick handler instead of a javascript: URL",
        )

    for match in _BLANK_TARGET_RE.finditer(text):
        if "noopener" in match.group(0) or "noreferrer" in match.group(0):
            continue
        yield finding(
            ctx,
            "react-security",
            "warning",
            'target="_blank" without rel="noopener noreferrer"',
            offset=match.start(),
            category="react-security",
            framework="react",
            suggestion='Add rel="noopener noreferrer" to links that open a new tab',
            confidence=0.8,
        )


RULES: list[ValidationRule] = [
    ValidationRule(
        id="react-hooks-rules",
        name="React Hooks Rules of Hooks",
        description="Enforces that hooks run unconditionally from components or custom hooks",
        category="react-hooks",
        severity="error",
        applies_to=REACT,
        file_patterns=SCRIPT_FILES,
        check=_check_hooks_rules,
    ),
    ValidationRule(
        id="react-effect-deps",
        name="React useEffect Dependencies",
        description="Validates effect callbacks, dependency arrays and cleanup",
        category="react-hooks",
        severity="warning",
        applies_to=REACT,
        file_patterns=SCRIPT_FILES,
        check=_check_effect_deps,
    ),
    ValidationRule(
        id="react-state",
        name="React State Management",
        description="Detects state mutation and stale state updates",
        category="react-state",
        severity="error",
        applies_to=REACT,
        file_patterns=SCRIPT_FILES,
        check=_check_state,
    ),
    ValidationRule(
        id="react-key-prop",
        name="React List Keys",
        description="Ensures elements rendered from arrays carry stable keys",
        category="react-components",
        severity="warning",
        applies_to=REACT,
        file_patterns=COMPONENT_FILES,
        check=_check_key_prop,
    ),
    ValidationRule(
        id="react-security",
        name="React Security Best Practices",
        description="Flags XSS sinks and unsafe storage of secrets",
        category="react-security",
        severity="error",
        applies_to=REACT,
        file_patterns=SCRIPT_FILES,
        check=_check_security,
    ),
]
