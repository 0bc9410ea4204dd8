"""Prediction patterns: a trigger locator plus explicitly weighted corroborating signals.

A pattern's probability for one trigger instance is::

    clamp(base + sum(weight for each fired signal), 0, cap)

Bases, weights and caps are fixed constants chosen so that every canonical
trigger lands inside the pattern's documented probability range.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import TYPE_CHECKING

from preflight.rules.source import (
    call_spans,
    directives,
    enclosing,
    file_imports,
    is_builtin_module,
    iter_functions,
    match_delimiter,
    mask_comments,
    package_name,
    split_arguments,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from preflight.models import FileContext
    from preflight.rules.source import FunctionSpan

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Scan:
    """One file prepared for pattern evaluation (comments masked, spans memoised)."""

    ctx: FileContext
    frameworks: frozenset[str]

    @cached_property
    def text(self) -> str:
        return mask_comments(self.ctx.content)

    @cached_property
    def functions(self) -> list[FunctionSpan]:
        return iter_functions(self.text)

    @cached_property
    def effect_spans(self) -> list[tuple[int, int]]:
        spans: list[tuple[int, int]] = []
        for hook in ("useEffect", "useLayoutEffect", "onMounted", "onBeforeMount", "watchEffect"):
            spans.extend(call_spans(self.text, hook))
        return sorted(spans)

    @cached_property
    def handler_spans(self) -> list[tuple[int, int]]:
        """JSX ``onX={...}`` expression spans."""
        spans: list[tuple[int, int]] = []
        for match in _HANDLER_ATTR_RE.finditer(self.text):
            brace = match.end() - 1
            spans.append((brace, match_delimiter(self.text, brace)))
        return spans

    @cached_property
    def directives(self) -> set[str]:
        return directives(self.ctx.content)

    def innermost_function(self, offset: int) -> FunctionSpan | None:
        best: FunctionSpan | None = None
        for span in self.functions:
            if not span.body_start <= offset <= span.body_end:
                continue
            if best is None or span.body_start > best.body_start:
                best = span
        return best

    def line_text(self, offset: int) -> str:
        return self.ctx.lines[self.ctx.line_of(offset) - 1]


@dataclass(frozen=True)
class Trigger:
    """One located trigger instance."""

    offset: int
    values: dict[str, str] = field(default_factory=dict)  # message template fields
    region: tuple[int, int] | None = None  # text the signals inspect, if narrower than the file


@dataclass(frozen=True)
class Signal:
    name: str
    weight: float
    probe: Callable[[Scan, Trigger], bool]


@dataclass(frozen=True)
class PredictionPattern:
    """A heuristic predicting one class of build/runtime error."""

    id: str
    error_type: str
    phase: str  # "build" | "runtime"
    base: float
    cap: float
    trigger_name: str
    locate: Callable[[Scan], list[Trigger]]
    signals: tuple[Signal, ...]
    message: str
    prevention: str
    expected_error_text: str | None = None
    frameworks: frozenset[str] = frozenset()  # empty = any

    def applies(self, frameworks: frozenset[str]) -> bool:
        return not self.frameworks or bool(self.frameworks & frameworks)

    def score(self, fired: tuple[str, ...] | list[str] | set[str]) -> float:
        """Weighted sum of the fired signals, clamped to ``[0, cap]``."""
        names = set(fired)
        total = self.base + sum(signal.weight for signal in self.signals if signal.name in names)
        return round(min(max(total, 0.0), self.cap), 4)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

_HANDLER_ATTR_RE = re.compile(r"\son[A-Z]\w*\s*=\s*\{")
_SETTER_CALL_RE = re.compile(r"(?<![\w$.])(set[A-Z][\w$]*)\s*\(")
_STATE_RE = re.compile(r"const\s*\[\s*([A-Za-z_$][\w$]*)\s*,\s*(set[A-Za-z_$][\w$]*)\s*\]")
_IDENT_RE = re.compile(r"(?<![\w$.])([A-Za-z_$][\w$]*)")


def _region(scan: Scan, trigger: Trigger) -> str:
    if trigger.region is None:
        return scan.text
    return scan.text[trigger.region[0] : trigger.region[1] + 1]


def _in_component_render(scan: Scan, offset: int) -> bool:
    """True if *offset* runs during render: directly inside a component body."""
    owner = scan.innermost_function(offset)
    if owner is None or not owner.is_component:
        return False
    return not enclosing(scan.effect_spans, offset) and not enclosing(scan.handler_spans, offset)


def _effect_callbacks(scan: Scan) -> list[tuple[int, tuple[int, int], tuple[int, int] | None]]:
    """``(call_start, callback_span, deps_span)`` for each useEffect-style call."""
    found: list[tuple[int, tuple[int, int], tuple[int, int] | None]] = []
    for hook in ("useEffect", "useLayoutEffect"):
        for start, _end in call_spans(scan.text, hook):
            args = split_arguments(scan.text, scan.text.index("(", start))
            if not args:
                continue
            found.append((start, args[0], args[1] if len(args) > 1 else None))
    found.sort()
    return found


# ---------------------------------------------------------------------------
# hydration-mismatch
# ---------------------------------------------------------------------------

_NONDETERMINISTIC_RE = re.compile(
    r"(?<![\w$.])(?:Date\.now\(\)|new Date\(\s*\)|Math\.random\(\)|crypto\.randomUUID\(\)"
    r"|window\.|document\.|localStorage\.|sessionStorage\.|navigator\.)"
)


def _locate_hydration(scan: Scan) -> list[Trigger]:
    triggers: list[Trigger] = []
    for match in _NONDETERMINISTIC_RE.finditer(scan.text):
        if not _in_component_render(scan, match.start()):
            continue
        owner = scan.innermost_function(match.start())
        body = scan.text[owner.body_start : owner.body_end + 1] if owner else ""
        if "typeof window" in body:
            continue
        triggers.append(Trigger(match.start(), {"expr": match.group(0).rstrip(".(")}))
    return triggers


def _rendered_in_jsx(scan: Scan, trigger: Trigger) -> bool:
    before = scan.line_text(trigger.offset)[: scan.ctx.column_of(trigger.offset)]
    return bool(re.search(r"<[A-Za-z]|\{[^{}]*$", before))


def _nextjs_route_file(scan: Scan, _trigger: Trigger) -> bool:
    name = scan.ctx.path.replace("\\", "/").rsplit("/", 1)[-1]
    return "nextjs" in scan.frameworks and name.split(".", 1)[0] in ("page", "layout")


def _no_suppression(scan: Scan, _trigger: Trigger) -> bool:
    return "suppressHydrationWarning" not in scan.text


HYDRATION_MISMATCH = PredictionPattern(
    id="hydration-mismatch",
    error_type="hydration-mismatch",
    phase="runtime",
    base=0.70,
    cap=0.90,
    trigger_name="client-only-value-in-render",
    locate=_locate_hydration,
    signals=(
        Signal("rendered-in-jsx", 0.10, _rendered_in_jsx),
        Signal("nextjs-route-file", 0.05, _nextjs_route_file),
        Signal("no-hydration-suppression", 0.05, _no_suppression),
    ),
    message="'{expr}' is evaluated during render and will differ between server and client",
    prevention="Read client-only or time-dependent values inside useEffect, or render them only after mount",
    expected_error_text="Error: Text content does not match server-rendered HTML.",
    frameworks=frozenset({"nextjs", "react"}),
)

# ---------------------------------------------------------------------------
# undefined-access
# ---------------------------------------------------------------------------

_MAYBE_UNDEFINED_CALLS: tuple[str, ...] = (
    "find",
    "querySelector",
    "getElementById",
    "match",
    "get",
    "closest",
)
_MAYBE_UNDEFINED_CALL_RE = re.compile(rf"\.({'|'.join(_MAYBE_UNDEFINED_CALLS)})\s*\(")
_BOUND_RESULT_RE = re.compile(
    rf"\b(?:const|let|var)\s+([A-Za-z_$][\w$]*)\s*(?::[^=;]+)?=\s*(?!await\b)[^;\n]*?"
    rf"\.({'|'.join(_MAYBE_UNDEFINED_CALLS)})\s*\("
)
_PROMISE_MEMBERS = frozenset({"then", "catch", "finally"})


def _guarded(text: str, name: str) -> bool:
    ident = re.escape(name)
    return bool(
        re.search(
            rf"\bif\s*\(\s*!?\s*{ident}\b|!\s*{ident}\b|\btypeof\s+{ident}\b"
            rf"|(?<![\w$.]){ident}\s*(?:&&|\?\?|\|\||[!=]==?|\?(?!\.))",
            text,
        )
    )


def _locate_bound_access(scan: Scan) -> list[Trigger]:
    """Unguarded ``name.prop`` reads of a variable bound from a maybe-undefined call."""
    triggers: list[Trigger] = []
    text = scan.text
    for match in _BOUND_RESULT_RE.finditer(text):
        name = match.group(1)
        close = match_delimiter(text, match.end() - 1)
        if re.match(r"\s*(?:[.\[!]|\?\?|\|\|)", text[close + 1 :]):
            continue
        owner = scan.innermost_function(match.start())
        scope_end = owner.body_end if owner else len(text)
        usage = re.compile(rf"(?<![\w$.?]){re.escape(name)}\s*(?:\.\s*([A-Za-z_$][\w$]*)|\[)")
        for access in usage.finditer(text, close + 1, scope_end):
            if _guarded(text[close + 1 : access.start()], name):
                break
            prop = access.group(1) or "[index]"
            triggers.append(Trigger(access.start(), {"call": match.group(2), "prop": prop}))
            break
    return triggers


def _locate_undefined_access(scan: Scan) -> list[Trigger]:
    triggers: list[Trigger] = []
    for match in _MAYBE_UNDEFINED_CALL_RE.finditer(scan.text):
        close = match_delimiter(scan.text, match.end() - 1)
        after = scan.text[close + 1 : close + 64]
        access = re.match(r"\s*(\.\s*([A-Za-z_$][\w$]*)|\[)", after)
        if access is None or access.group(2) in _PROMISE_MEMBERS:
            continue
        prop = access.group(2) or "[index]"
        triggers.append(Trigger(match.start() + 1, {"call": match.group(1), "prop": prop}))
    triggers.extend(_locate_bound_access(scan))
    triggers.sort(key=lambda trigger: trigger.offset)
    return triggers


def _no_optional_chaining(scan: Scan, trigger: Trigger) -> bool:
    """No ``?.`` in the enclosing function, or on the statement line at module level."""
    owner = scan.innermost_function(trigger.offset)
    if owner is not None:
        return "?." not in scan.text[owner.body_start : owner.body_end + 1]
    start = scan.text.rfind("\n", 0, trigger.offset) + 1
    end = scan.text.find("\n", trigger.offset)
    return "?." not in scan.text[start : end if end != -1 else len(scan.text)]


def _trigger_in_render(scan: Scan, trigger: Trigger) -> bool:
    return _in_component_render(scan, trigger.offset)


def _not_null_checked(scan: Scan, trigger: Trigger) -> bool:
    owner = scan.innermost_function(trigger.offset)
    start = owner.body_start if owner else 0
    before = scan.text[start : trigger.offset]
    return not re.search(r"\bif\s*\(\s*!?\s*[\w$.]+\s*(?:===?|!==?)?\s*(?:null|undefined)?\s*\)", before)


UNDEFINED_ACCESS = PredictionPattern(
    id="undefined-access",
    error_type="undefined-access",
    phase="runtime",
    base=0.55,
    cap=0.75,
    trigger_name="property-read-on-optional-result",
    locate=_locate_undefined_access,
    signals=(
        Signal("no-optional-chaining", 0.10, _no_optional_chaining),
        Signal("not-null-checked", 0.05, _not_null_checked),
        Signal("in-render", 0.05, _trigger_in_render),
    ),
    message="Result of .{call}() may be undefined before reading '{prop}'",
    prevention="Guard the result or use optional chaining (?.)",
    expected_error_text="TypeError: Cannot read properties of undefined (reading '{prop}')",
)

# ---------------------------------------------------------------------------
# async-component
# ---------------------------------------------------------------------------


def _locate_async_component(scan: Scan) -> list[Trigger]:
    # Async Server Components are valid under Next.js without a client directive.
    if "nextjs" in scan.frameworks and "client" not in scan.directives:
        return []
    triggers: list[Trigger] = []
    for span in scan.functions:
        if not (span.is_async and span.is_component):
            continue
        body = scan.text[span.body_start : span.body_end + 1]
        if not re.search(r"\breturn\s*\(?\s*<", body):
            continue
        region = (span.body_start, span.body_end)
        triggers.append(Trigger(span.start, {"name": span.name or "component"}, region))
    return triggers


def _client_directive(scan: Scan, _trigger: Trigger) -> bool:
    return "client" in scan.directives


def _uses_client_hooks(scan: Scan, trigger: Trigger) -> bool:
    return bool(re.search(r"(?<![\w$.])use(?:State|Effect|Reducer|Ref|Context)\s*\(", _region(scan, trigger)))


ASYNC_COMPONENT = PredictionPattern(
    id="async-component",
    error_type="async-component",
    phase="runtime",
    base=0.80,
    cap=0.95,
    trigger_name="async-client-component",
    locate=_locate_async_component,
    signals=(
        Signal("client-directive", 0.10, _client_directive),
        Signal("uses-client-hooks", 0.05, _uses_client_hooks),
    ),
    message="Component '{name}' is async but renders on the client",
    prevention="Make it a Server Component or move data fetching into an effect or a parent Server Component",
    expected_error_text="Error: Objects are not valid as a React child (found: [object Promise])",
    frameworks=frozenset({"nextjs", "react"}),
)

# ---------------------------------------------------------------------------
# memory-leak
# ---------------------------------------------------------------------------

_LEAK_PAIRS: tuple[tuple[str, str], ...] = (
    ("setInterval", "clearInterval"),
    ("addEventListener", "removeEventListener"),
    ("subscribe", "unsubscribe"),
    ("new WebSocket", ".close"),
    ("new EventSource", ".close"),
)


def _locate_memory_leak(scan: Scan) -> list[Trigger]:
    triggers: list[Trigger] = []
    for acquire, release in _LEAK_PAIRS:
        if release in scan.text:
            continue
        pattern = re.compile(rf"(?<![\w$]){re.escape(acquire)}\s*\(")
        for match in pattern.finditer(scan.text):
            region = next(
                ((start, end) for start, end in scan.effect_spans if start <= match.start() <= end),
                None,
            )
            triggers.append(Trigger(match.start(), {"call": acquire, "release": release.lstrip(".")}, region))
    triggers.sort(key=lambda trigger: trigger.offset)
    return triggers


def _inside_effect(_scan: Scan, trigger: Trigger) -> bool:
    return trigger.region is not None


def _no_cleanup_return(scan: Scan, trigger: Trigger) -> bool:
    return trigger.region is not None and not re.search(r"\breturn\b", _region(scan, trigger))


def _is_interval(_scan: Scan, trigger: Trigger) -> bool:
    return trigger.values.get("call") == "setInterval"


MEMORY_LEAK = PredictionPattern(
    id="memory-leak",
    error_type="memory-leak",
    phase="runtime",
    base=0.60,
    cap=0.85,
    trigger_name="resource-without-release",
    locate=_locate_memory_leak,
    signals=(
        Signal("inside-effect", 0.10, _inside_effect),
        Signal("no-cleanup-return", 0.10, _no_cleanup_return),
        Signal("repeating-timer", 0.05, _is_interval),
    ),
    message="{call}() is never released with {release}()",
    prevention="Release timers, listeners and subscriptions in the effect cleanup or unmount hook",
    expected_error_text="Warning: Can't perform a React state update on an unmounted component.",
)

# ---------------------------------------------------------------------------
# race-condition
# ---------------------------------------------------------------------------

_CANCEL_GUARD_RE = re.compile(
    r"AbortController|\bsignal\b|\bignore\b|\bcancel+ed\b|\bisMounted\b|\bactive\b|\bstale\b"
)
_ASYNC_STEP_RE = re.compile(r"\bawait\b|\.then\s*\(")
_SETTER_REF_RE = re.compile(r"\.then\s*\(\s*(set[A-Z][\w$]*)\s*[,)]")
_IN_FLIGHT_GUARD_RE = re.compile(
    r"\bdisabled\s*=\s*\{|\bif\s*\(\s*(?:is)?(?:[Ll]oading|[Pp]ending|[Bb]usy|[Ss]ubmitting)\b"
)


def _setters_after_async(text: str, start: int, end: int) -> set[str]:
    """Setters called, or passed to ``.then``, after the first async step in ``text[start:end]``."""
    step = _ASYNC_STEP_RE.search(text, start, end)
    if step is None:
        return set()
    names = {m.group(1) for m in _SETTER_CALL_RE.finditer(text, step.end(), end)}
    names.update(m.group(1) for m in _SETTER_REF_RE.finditer(text, step.start(), end))
    return names


def _async_bodies(scan: Scan, component: FunctionSpan) -> list[tuple[int, int]]:
    """Async functions and ``onX={...}`` handlers rendered by *component*, outside effects."""
    nested = [
        (span.body_start, span.body_end)
        for span in scan.functions
        if span.is_async
        and component.body_start < span.start < component.body_end
        and scan.innermost_function(span.start) is component
        and not enclosing(scan.effect_spans, span.start)
    ]
    bodies = list(nested)
    for brace, close in scan.handler_spans:
        if not component.body_start < brace < component.body_end:
            continue
        if enclosing(nested, brace) or any(brace < s < close for s, _e in nested):
            continue
        if re.search(r"\bawait\b", scan.text[brace:close]):
            bodies.append((brace, close))
    bodies.sort()
    return bodies


def _locate_concurrent_handlers(scan: Scan) -> list[Trigger]:
    triggers: list[Trigger] = []
    for component in scan.functions:
        if not component.is_component:
            continue
        writers: dict[str, list[int]] = {}
        for start, end in _async_bodies(scan, component):
            if _CANCEL_GUARD_RE.search(scan.text, start, end):
                continue
            for setter in _setters_after_async(scan.text, start, end):
                writers.setdefault(setter, []).append(start)
        for setter, starts in sorted(writers.items(), key=lambda item: item[1][0]):
            if len(starts) < 2:
                continue
            triggers.append(
                Trigger(
                    starts[0],
                    {"what": f"{len(starts)} async handlers call {setter}()", "writers": str(len(starts))},
                    (component.body_start, component.body_end),
                )
            )
    return triggers


def _locate_race_condition(scan: Scan) -> list[Trigger]:
    triggers: list[Trigger] = []
    for start, (cb_start, cb_end), deps in _effect_callbacks(scan):
        if not _setters_after_async(scan.text, cb_start, cb_end):
            continue
        if _CANCEL_GUARD_RE.search(scan.text, cb_start, cb_end):
            continue
        deps_text = scan.text[deps[0] : deps[1]] if deps else ""
        values = {"what": "Effect sets state", "deps": deps_text}
        triggers.append(Trigger(start, values, (cb_start, cb_end - 1)))
    triggers.extend(_locate_concurrent_handlers(scan))
    triggers.sort(key=lambda trigger: trigger.offset)
    return triggers


def _network_call(scan: Scan, trigger: Trigger) -> bool:
    return bool(re.search(r"(?<![\w$.])fetch\s*\(|\baxios\b|\.get\s*\(|\.post\s*\(", _region(scan, trigger)))


def _reruns_on_change(_scan: Scan, trigger: Trigger) -> bool:
    deps = trigger.values.get("deps", "")
    return deps.startswith("[") and bool(_IDENT_RE.search(deps))


def _overlapping_writers(_scan: Scan, trigger: Trigger) -> bool:
    return int(trigger.values.get("writers", "0")) >= 2


def _no_in_flight_guard(scan: Scan, trigger: Trigger) -> bool:
    return "writers" in trigger.values and not _IN_FLIGHT_GUARD_RE.search(_region(scan, trigger))


RACE_CONDITION = PredictionPattern(
    id="race-condition",
    error_type="race-condition",
    phase="runtime",
    base=0.55,
    cap=0.75,
    trigger_name="async-state-write-unguarded",
    locate=_locate_race_condition,
    signals=(
        Signal("network-call", 0.10, _network_call),
        Signal("reruns-on-dependency-change", 0.10, _reruns_on_change),
        Signal("overlapping-writers", 0.10, _overlapping_writers),
        Signal("no-in-flight-guard", 0.05, _no_in_flight_guard),
    ),
    message="{what} after an async step without discarding stale responses",
    prevention=(
        "Track a cancelled flag or AbortController and ignore stale results, "
        "or use functional updates and block re-entry while a request is in flight"
    ),
    expected_error_text="Stale data rendered: a slower earlier request overwrote a newer one",
)

# ---------------------------------------------------------------------------
# infinite-loop
# ---------------------------------------------------------------------------


def _locate_infinite_loop(scan: Scan) -> list[Trigger]:
    triggers: list[Trigger] = []
    setters = {setter: state for state, setter in _STATE_RE.findall(scan.text)}
    for start, (cb_start, cb_end), deps in _effect_callbacks(scan):
        callback = scan.text[cb_start:cb_end]
        called = [m.group(1) for m in _SETTER_CALL_RE.finditer(callback)]
        if not called:
            continue
        listed = set(_IDENT_RE.findall(scan.text[deps[0] : deps[1]])) if deps else set()
        own = [name for name in called if setters.get(name) in listed]
        if deps is not None and not own:
            continue
        values = {"setter": own[0] if own else called[0], "deps": "" if deps is None else "listed"}
        triggers.append(Trigger(start, values, (cb_start, cb_end - 1)))

    # Vue: a watcher that writes the source it watches.
    for start, _end in call_spans(scan.text, "watch"):
        args = split_arguments(scan.text, scan.text.index("(", start))
        if len(args) < 2:
            continue
        source = scan.text[args[0][0] : args[0][1]].strip()
        if not re.fullmatch(r"[A-Za-z_$][\w$]*", source):
            continue
        callback = scan.text[args[1][0] : args[1][1]]
        if re.search(rf"(?<![\w$.]){re.escape(source)}\.value\s*(?:=(?!=)|\+\+|--|\+=|-=)", callback):
            values = {"setter": f"{source}.value", "deps": "listed"}
            triggers.append(Trigger(start, values, (args[1][0], args[1][1] - 1)))
    triggers.sort(key=lambda trigger: trigger.offset)
    return triggers


def _no_dependency_array(_scan: Scan, trigger: Trigger) -> bool:
    return trigger.values.get("deps") == ""


def _sets_own_dependency(_scan: Scan, trigger: Trigger) -> bool:
    return trigger.values.get("deps") == "listed"


def _unconditional(scan: Scan, trigger: Trigger) -> bool:
    return not re.search(r"\bif\s*\(|\?\s*[^:]+:", _region(scan, trigger))


INFINITE_LOOP = PredictionPattern(
    id="infinite-loop",
    error_type="infinite-loop",
    phase="runtime",
    base=0.70,
    cap=0.90,
    trigger_name="effect-updates-its-own-trigger",
    locate=_locate_infinite_loop,
    signals=(
        Signal("no-dependency-array", 0.15, _no_dependency_array),
        Signal("sets-own-dependency", 0.15, _sets_own_dependency),
        Signal("unconditional-update", 0.05, _unconditional),
    ),
    message="'{setter}' runs on every update of the effect that calls it",
    prevention="Give the effect a dependency array that excludes the state it sets, or guard the update",
    expected_error_text="Error: Maximum update depth exceeded.",
    frameworks=frozenset({"react", "nextjs", "vue"}),
)

# ---------------------------------------------------------------------------
# import-error
# ---------------------------------------------------------------------------

RESOLVE_EXTENSIONS: tuple[str, ...] = (
    ".ts", ".tsx", ".d.ts", ".js", ".jsx", ".mjs", ".cjs", ".vue", ".svelte", ".json",
)
DEEP_RELATIVE_DEPTH = 4


def _resolves(base: Path) -> bool:
    if base.is_file():
        return True
    if any(base.with_name(base.name + ext).is_file() for ext in RESOLVE_EXTENSIONS):
        return True
    return base.is_dir() and any((base / f"index{ext}").is_file() for ext in RESOLVE_EXTENSIONS)


def _relative_missing(scan: Scan, specifier: str) -> bool:
    if scan.ctx.project_root is None or not specifier.startswith("."):
        return False
    file_dir = (Path(scan.ctx.project_root) / scan.ctx.path).parent
    # ESM-style ".js" specifiers that point at TypeScript sources.
    target = file_dir / re.sub(r"\.(?:js|jsx|mjs)$", "", specifier)
    return not _resolves(target) and not _resolves(file_dir / specifier)


def _locate_import_error(scan: Scan) -> list[Trigger]:
    triggers: list[Trigger] = []
    declared = scan.ctx.declared_packages
    for spec in file_imports(scan.ctx):
        reasons: dict[str, str] = {}
        if spec.is_relative:
            if spec.specifier.count("../") >= DEEP_RELATIVE_DEPTH:
                reasons["deep"] = "1"
            if _relative_missing(scan, spec.specifier):
                reasons["missing-file"] = "1"
        elif (
            declared is not None
            and not spec.is_local
            and not spec.type_only
            and ":" not in spec.specifier
            and not is_builtin_module(spec.specifier)
            and package_name(spec.specifier) not in declared
        ):
            reasons["undeclared"] = package_name(spec.specifier)
        if not reasons:
            continue
        offset = scan.ctx.content.find(spec.specifier)
        if offset < 0 or scan.ctx.line_of(offset) != spec.line:
            offset = sum(len(line) + 1 for line in scan.ctx.lines[: spec.line - 1])
        triggers.append(Trigger(offset, {"specifier": spec.specifier, **reasons}))
    return triggers


IMPORT_ERROR = PredictionPattern(
    id="import-error",
    error_type="import-error",
    phase="build",
    base=0.70,
    cap=0.95,
    trigger_name="unresolvable-import",
    locate=_locate_import_error,
    signals=(
        Signal("undeclared-package", 0.20, lambda _scan, trigger: "undeclared" in trigger.values),
        Signal("missing-on-disk", 0.25, lambda _scan, trigger: "missing-file" in trigger.values),
    ),
    message="Import '{specifier}' may not resolve at build time",
    prevention="Declare the package in package.json, fix the relative path, or use a path alias",
    expected_error_text="Module not found: Can't resolve '{specifier}'",
)

# ---------------------------------------------------------------------------
# env-var-error
# ---------------------------------------------------------------------------

PUBLIC_ENV_PREFIXES: tuple[str, ...] = ("NEXT_PUBLIC_", "VITE_", "VUE_APP_", "PUBLIC_", "REACT_APP_")
_ENV_ACCESS_RE = re.compile(r"(?:process\.env|import\.meta\.env)\.([A-Za-z_][\w]*)")


def _client_side(scan: Scan) -> bool:
    return "client" in scan.directives or scan.ctx.language in ("vue", "svelte")


def _locate_env_var(scan: Scan) -> list[Trigger]:
    triggers: list[Trigger] = []
    client = _client_side(scan)
    for match in _ENV_ACCESS_RE.finditer(scan.text):
        name = match.group(1)
        if name in ("NODE_ENV", "MODE", "DEV", "PROD", "SSR", "BASE_URL"):
            continue
        after = scan.text[match.end() : match.end() + 8]
        has_fallback = bool(re.match(r"\s*(?:\|\||\?\?)", after))
        unprefixed = client and not name.startswith(PUBLIC_ENV_PREFIXES)
        if has_fallback and not unprefixed:
            continue
        values = {"name": name}
        if unprefixed:
            values["unprefixed"] = "1"
        if not has_fallback:
            values["no-fallback"] = "1"
        triggers.append(Trigger(match.start(), values))
    return triggers


ENV_VAR_ERROR = PredictionPattern(
    id="env-var-error",
    error_type="env-var-error",
    phase="runtime",
    base=0.55,
    cap=0.85,
    trigger_name="env-var-may-be-undefined",
    locate=_locate_env_var,
    signals=(
        Signal("client-exposed-unprefixed", 0.25, lambda _scan, trigger: "unprefixed" in trigger.values),
        Signal("no-fallback", 0.05, lambda _scan, trigger: "no-fallback" in trigger.values),
    ),
    message="Environment variable '{name}' may be undefined at runtime",
    prevention="Use a client-exposed prefix for browser code and provide a fallback or validate at startup",
    expected_error_text="TypeError: Cannot read properties of undefined",
)

# ---------------------------------------------------------------------------
# missing-error-boundary
# ---------------------------------------------------------------------------


def _locate_missing_boundary(scan: Scan) -> list[Trigger]:
    if "ErrorBoundary" in scan.text or "componentDidCatch" in scan.text:
        return []
    triggers: list[Trigger] = []
    for match in re.finditer(r"(?<![\w$.])throw\s", scan.text):
        owner = scan.innermost_function(match.start())
        if owner is None or not owner.is_component:
            continue
        triggers.append(Trigger(match.start(), {"name": owner.name or "component"}))
    return triggers


def _render_path_throw(scan: Scan, trigger: Trigger) -> bool:
    return _in_component_render(scan, trigger.offset) and not re.search(
        r"\btry\s*\{", scan.text[: trigger.offset][-400:]
    )


def _no_error_route(scan: Scan, _trigger: Trigger) -> bool:
    if "nextjs" not in scan.frameworks or scan.ctx.project_root is None:
        return False
    folder = (Path(scan.ctx.project_root) / scan.ctx.path).parent
    return not any((folder / f"error{ext}").is_file() for ext in (".tsx", ".jsx", ".js", ".ts"))


MISSING_ERROR_BOUNDARY = PredictionPattern(
    id="missing-error-boundary",
    error_type="missing-error-boundary",
    phase="runtime",
    base=0.45,
    cap=0.60,
    trigger_name="component-throws",
    locate=_locate_missing_boundary,
    signals=(
        Signal("throws-during-render", 0.10, _render_path_throw),
        Signal("no-error-route", 0.05, _no_error_route),
    ),
    message="Component '{name}' can throw without an error boundary",
    prevention="Wrap the tree in an ErrorBoundary (or add an error.tsx route segment in Next.js)",
    expected_error_text="Error: Uncaught error in component tree",
    frameworks=frozenset({"react", "nextjs"}),
)

# ---------------------------------------------------------------------------
# unsafe-type-assertion
# ---------------------------------------------------------------------------

_ANY_ASSERTION_RE = re.compile(r"\bas\s+any\b|<any>|\bas\s+unknown\s+as\b")


def _locate_unsafe_assertion(scan: Scan) -> list[Trigger]:
    if scan.ctx.language not in ("ts", "tsx", "vue"):
        return []
    return [
        Trigger(m.start(), {"assertion": m.group(0)}, (m.end(), m.end() + 40))
        for m in _ANY_ASSERTION_RE.finditer(scan.text)
    ]


def _member_access_after(scan: Scan, trigger: Trigger) -> bool:
    return bool(re.match(r"[^;\n]*?\)\s*(?:\.|\[)", _region(scan, trigger)))


def _called_after(scan: Scan, trigger: Trigger) -> bool:
    return bool(re.match(r"[^;\n]*?\)\s*(?:\.\s*[\w$]+\s*)?\(", _region(scan, trigger)))


UNSAFE_TYPE_ASSERTION = PredictionPattern(
    id="unsafe-type-assertion",
    error_type="unsafe-type-assertion",
    phase="runtime",
    base=0.40,
    cap=0.55,
    trigger_name="any-assertion",
    locate=_locate_unsafe_assertion,
    signals=(
        Signal("member-access-after-assertion", 0.10, _member_access_after),
        Signal("call-after-assertion", 0.05, _called_after),
    ),
    message="'{assertion}' hides a type error the compiler would have caught",
    prevention="Narrow with a type guard or give the value a precise type",
    expected_error_text="TypeError: x is not a function",
)


# ---------------------------------------------------------------------------
# api-cors
# ---------------------------------------------------------------------------

_ROUTE_HANDLER_RE = re.compile(r"\bexport\s+(?:async\s+)?function\s+(GET|POST|PUT|PATCH|DELETE)\s*\(")
_CORS_HANDLED_RE = re.compile(r"Access-Control-Allow-Origin|(?<![\w$.])cors\s*\(", re.IGNORECASE)


def _locate_api_cors(scan: Scan) -> list[Trigger]:
    handlers = list(_ROUTE_HANDLER_RE.finditer(scan.text))
    if not handlers or _CORS_HANDLED_RE.search(scan.text):
        return []
    methods = ", ".join(dict.fromkeys(m.group(1) for m in handlers))
    return [Trigger(handlers[0].start(), {"methods": methods})]


def _route_handler_file(scan: Scan, _trigger: Trigger) -> bool:
    name = scan.ctx.path.replace("\\", "/").rsplit("/", 1)[-1]
    return name.split(".", 1)[0] == "route"


def _preflighted_method(_scan: Scan, trigger: Trigger) -> bool:
    return bool(re.search(r"\b(?:POST|PUT|PATCH|DELETE)\b", trigger.values.get("methods", "")))


API_CORS = PredictionPattern(
    id="api-cors",
    error_type="cors-error",
    phase="runtime",
    base=0.50,
    cap=0.65,
    trigger_name="route-handler-without-cors-headers",
    locate=_locate_api_cors,
    signals=(
        Signal("route-handler-file", 0.05, _route_handler_file),
        Signal("preflighted-method", 0.05, _preflighted_method),
    ),
    message="API route ({methods}) sends no CORS headers",
    prevention="Add CORS headers (Access-Control-Allow-Origin) to the API response",
    expected_error_text="CORS policy: No 'Access-Control-Allow-Origin' header is present",
    frameworks=frozenset({"nextjs"}),
)

# ---------------------------------------------------------------------------
# db-connection
# ---------------------------------------------------------------------------

_DB_CONNECT_RE = re.compile(r"(?<![\w$])(connect|createConnection|createPool)\s*\(")
_TRY_RE = re.compile(r"\btry\s*\{")


def _locate_db_connection(scan: Scan) -> list[Trigger]:
    text = scan.text
    try_blocks = [(m.end() - 1, match_delimiter(text, m.end() - 1)) for m in _TRY_RE.finditer(text)]
    triggers: list[Trigger] = []
    for match in _DB_CONNECT_RE.finditer(text):
        if re.search(r"\bfunction\s*$", text[max(0, match.start() - 16) : match.start()]):
            continue
        close = match_delimiter(text, match.end() - 1)
        if re.match(r"\s*[({]", text[close + 1 :]):
            # method declaration or connect(mapState)(Component)
            continue
        statement_end = text.find(";", close)
        statement = text[close + 1 : statement_end if statement_end != -1 else len(text)]
        if enclosing(try_blocks, match.start()) or re.search(r"\.catch\s*\(", statement):
            continue
        triggers.append(Trigger(match.start(), {"call": match.group(1)}))
    return triggers


def _awaited(scan: Scan, trigger: Trigger) -> bool:
    line_start = scan.text.rfind("\n", 0, trigger.offset) + 1
    return bool(re.search(r"\bawait\s+[\w$.]*$", scan.text[line_start : trigger.offset]))


def _module_scope(scan: Scan, trigger: Trigger) -> bool:
    return scan.innermost_function(trigger.offset) is None


def _no_error_listener(scan: Scan, _trigger: Trigger) -> bool:
    return not re.search(r"\.on\s*\(\s*['\"]error['\"]", scan.text)


DB_CONNECTION = PredictionPattern(
    id="db-connection",
    error_type="database-error",
    phase="runtime",
    base=0.60,
    cap=0.80,
    trigger_name="connection-without-error-handling",
    locate=_locate_db_connection,
    signals=(
        Signal("awaited-without-try", 0.10, _awaited),
        Signal("module-scope", 0.05, _module_scope),
        Signal("no-error-listener", 0.05, _no_error_listener),
    ),
    message="Database connection via {call}() has no error handling",
    prevention="Wrap the connection in try/catch or attach .catch() and handle refused connections",
    expected_error_text="Error: connect ECONNREFUSED",
)


DEFAULT_PATTERNS: tuple[PredictionPattern, ...] = (
    HYDRATION_MISMATCH,
    UNDEFINED_ACCESS,
    ASYNC_COMPONENT,
    MEMORY_LEAK,
    RACE_CONDITION,
    INFINITE_LOOP,
    IMPORT_ERROR,
    ENV_VAR_ERROR,
    MISSING_ERROR_BOUNDARY,
    UNSAFE_TYPE_ASSERTION,
    API_CORS,
    DB_CONNECTION,
)
