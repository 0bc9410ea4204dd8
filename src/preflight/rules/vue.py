"""Vue rule pack: Composition API reactivity, templates, props, lifecycle, XSS sinks."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from preflight.rules.engine import finding
from preflight.rules.registry import ValidationRule
from preflight.rules.source import call_spans, mask_comments, match_delimiter, split_arguments

if TYPE_CHECKING:
    from collections.abc import Iterator

    from preflight.models import AnalysisResult, FileContext

VUE: frozenset[str] = frozenset({"vue"})
VUE_FILES: tuple[str, ...] = ("*.vue", "*.ts", "*.js")
SFC_FILES: tuple[str, ...] = ("*.vue",)

TEARDOWN_HOOKS: tuple[str, ...] = (
    "onUnmounted", "onBeforeUnmount", "unmounted", "beforeUnmount", "beforeDestroy", "destroyed",
)
SETUP_HOOKS: tuple[str, ...] = ("onMounted", "mounted", "onBeforeMount", "created")
OPTIONS_HOOKS: tuple[str, ...] = (
    "beforeCreate", "created", "beforeMount", "mounted", "updated", "beforeUnmount", "unmounted",
)
LISTENER_PAIRS: tuple[tuple[str, str], ...] = (
    ("addEventListener", "removeEventListener"),
    ("setInterval", "clearInterval"),
)
SENSITIVE_WORDS: tuple[str, ...] = ("password", "token", "secret", "apikey", "api_key")
LONG_INTERPOLATION = 50

_SCRIPT_RE = re.compile(r"<script\b[^>]*>(.*?)</script>", re.DOTALL | re.IGNORECASE)
_TEMPLATE_RE = re.compile(r"<template\b[^>]*>(.*)</template>", re.DOTALL | re.IGNORECASE)
_HTML_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_TAG_RE = re.compile(r"<[A-Za-z][\w-]*\b(?:[^>\"']|\"[^\"]*\"|'[^']*')*>")
_V_FOR_RE = re.compile(r"\bv-for\s*=\s*\"\s*\(?\s*[\w$]+\s*(?:,\s*([\w$]+))?")
_KEY_ATTR_RE = re.compile(r"(?:\s:key|\sv-bind:key)\s*=\s*\"([^\"]*)\"")
_INTERPOLATION_RE = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_REACTIVE_DECL_RE = re.compile(r"\b(?:let|var|const)\s+([A-Za-z_$][\w$]*)\s*=\s*reactive\s*\(")
_REACTIVE_DESTRUCTURE_RE = re.compile(r"\b(?:let|const)\s*\{[^}]*\}\s*=\s*(reactive\s*\(|props\b(?!\.))")
_REF_DECL_RE = re.compile(
    r"\bconst\s+([A-Za-z_$][\w$]*)\s*=\s*"
    r"(?:ref|shallowRef|computed)\s*(?:<[^>]*>)?\s*\("
)
_DEFINE_PROPS_RE = re.compile(r"\bdefineProps\s*(?:<\s*\{(?P<generic>[^}]*)\}\s*>)?\s*\(")
_PROPS_OPTION_RE = re.compile(r"\bprops\s*:\s*(?P<open>[\[{])")
_PROP_NAME_RE = re.compile(r"^\s*['\"]?([A-Za-z_$][\w$]*)['\"]?\s*\??\s*:", re.MULTILINE)
_LOCAL_STORAGE_RE = re.compile(r"localStorage\.setItem\s*\(")


def _ranges(pattern: re.Pattern[str], text: str) -> list[tuple[int, int]]:
    return [(m.start(1), m.end(1)) for m in pattern.finditer(text)]


def _script_ranges(ctx: FileContext, text: str) -> list[tuple[int, int]]:
    if ctx.language == "vue":
        return _ranges(_SCRIPT_RE, text)
    return [(0, len(text))]


def _template_text(ctx: FileContext) -> tuple[str, int] | None:
    """The SFC ``<template>`` body with HTML comments blanked, and its offset."""
    if ctx.language != "vue":
        return None
    match = _TEMPLATE_RE.search(ctx.content)
    if match is None:
        return None
    body = _HTML_COMMENT_RE.sub(lambda m: re.sub(r"[^\n]", " ", m.group(0)), match.group(1))
    return body, match.start(1)


def _prop_names(text: str) -> set[str]:
    names: set[str] = set()
    for match in _DEFINE_PROPS_RE.finditer(text):
        generic = match.group("generic")
        if generic:
            names.update(_PROP_NAME_RE.findall(generic.replace(";", "\n").replace(",", "\n")))
            continue
        args = split_arguments(text, match.end() - 1)
        if args:
            names.update(_object_or_array_keys(text[args[0][0] : args[0][1]]))
    for match in _PROPS_OPTION_RE.finditer(text):
        open_idx = match.start("open")
        names.update(_object_or_array_keys(text[open_idx : match_delimiter(text, open_idx) + 1]))
    return names


def _object_or_array_keys(literal: str) -> set[str]:
    if literal.startswith("["):
        return set(re.findall(r"['\"]([A-Za-z_$][\w$]*)['\"]", literal))
    if not literal.startswith("{"):
        return set()
    keys: set[str] = set()
    wrapped = f"({literal[1:-1]})"
    for begin, end in split_arguments(wrapped, 0):
        entry = wrapped[begin:end]
        key = re.match(r"['\"]?([A-Za-z_$][\w$]*)['\"]?\s*(?::|$|,)", entry)
        if key is not None:
            keys.add(key.group(1))
    return keys


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def _check_composition_api(ctx: FileContext) -> Iterator[AnalysisResult]:
    text = mask_comments(ctx.content)
    for start, end in _script_ranges(ctx, text):
        for decl in _REACTIVE_DECL_RE.finditer(text, start, end):
            name = re.escape(decl.group(1))
            reassign = re.compile(rf"(?<![\w$.]){name}\s*=(?![=>])")
            for match in reassign.finditer(text, decl.end(), end):
                yield finding(
                    ctx,
                    "vue-composition-api",
                    "error",
                    f"Reassigning reactive object '{decl.group(1)}' loses reactivity",
                    offset=match.start(),
                    category="vue-reactivity",
                    framework="vue",
                    suggestion="Mutate the reactive object's properties or use ref() for replaceable values",
                    confidence=0.9,
                )

        for match in _REACTIVE_DESTRUCTURE_RE.finditer(text, start, end):
            yield finding(
                ctx,
                "vue-composition-api",
                "warning",
                "Destructuring a reactive object loses reactivity",
                offset=match.start(),
                category="vue-reactivity",
                framework="vue",
                suggestion="Use toRefs() or access properties through the reactive object",
                confidence=0.85,
            )

        for decl in _REF_DECL_RE.finditer(text, start, end):
            name = re.escape(decl.group(1))
            bare_use = re.compile(rf"(?<![\w$.]){name}\s*(?:[+\-*/<>]|===?|!==?)(?!=?>)")
            for match in bare_use.finditer(text, decl.end(), end):
                yield finding(
                    ctx,
                    "vue-composition-api",
                    "error",
                    f"Ref '{decl.group(1)}' used without .value",
                    offset=match.start(),
                    category="vue-reactivity",
                    framework="vue",
                    suggestion=f"Read the ref through {decl.group(1)}.value inside <script>",
                    confidence=0.8,
                )


def _check_template(ctx: FileContext) -> Iterator[AnalysisResult]:
    template = _template_text(ctx)
    if template is None:
        return
    body, base = template
    for tag in _TAG_RE.finditer(body):
        element = tag.group(0)
        v_for = _V_FOR_RE.search(element)
        if v_for is None:
            continue
        offset = base + tag.start()
        if re.search(r"\sv-if\s*=", element):
            yield finding(
                ctx,
                "vue-template",
                "error",
                "v-if and v-for used on the same element",
                offset=offset,
                category="vue-template",
                framework="vue",
                suggestion="Move v-if to a wrapper <template> or filter the list in a computed property",
                confidence=0.95,
            )
        key = _KEY_ATTR_RE.search(element)
        if key is None:
            yield finding(
                ctx,
                "vue-template",
                "warning",
                "v-for without :key",
                offset=offset,
                category="vue-template",
                framework="vue",
                suggestion="Bind a unique :key on elements rendered with v-for",
                confidence=0.95,
            )
        elif v_for.group(1) and key.group(1).strip() == v_for.group(1):
            yield finding(
                ctx,
                "vue-template",
                "warning",
                "v-for index used as :key",
                offset=offset,
                category="vue-template",
                framework="vue",
                suggestion="Use a stable id from the item instead of its position",
                confidence=0.7,
            )

    for match in _INTERPOLATION_RE.finditer(body):
        if len(match.group(1).strip()) >= LONG_INTERPOLATION:
            yield finding(
                ctx,
                "vue-template",
                "info",
                "Complex expression in template interpolation",
                offset=base + match.start(),
                category="vue-template",
                framework="vue",
                suggestion="Move complex expressions into a computed property",
                confidence=0.7,
            )


def _check_props(ctx: FileContext) -> Iterator[AnalysisResult]:
    text = mask_comments(ctx.content)
    props = _prop_names(text)
    if not props:
        return
    alternation = "|".join(re.escape(name) for name in sorted(props))
    assignment = re.compile(
        rf"(?<![\w$])(?:props|this)\.({alternation})\b"
        r"(?:\.[\w$]+|\[[^\]]+\])*\s*(?:=(?![=>])|\+\+|--|\+=|-=)"
    )
    for start, end in _script_ranges(ctx, text):
        for match in assignment.finditer(text, start, end):
            yield finding(
                ctx,
                "vue-props",
                "error",
                f"Mutating prop '{match.group(1)}'",
                offset=match.start(),
                category="vue-props",
                framework="vue",
                suggestion="Props are read-only; emit an event or copy the prop into local state",
                confidence=0.9,
            )

    template = _template_text(ctx)
    if template is None:
        return
    body, base = template
    model = re.compile(rf"\sv-model\s*=\s*\"\s*(?:props\.)?({alternation})\s*\"")
    for match in model.finditer(body):
        yield finding(
            ctx,
            "vue-props",
            "error",
            f"v-model bound directly to prop '{match.group(1)}'",
            offset=base + match.start() + 1,
            category="vue-props",
            framework="vue",
            suggestion="Use a computed getter/setter that emits update events",
            confidence=0.85,
        )


def _hook_bodies(text: str, hooks: tuple[str, ...], start: int, end: int) -> list[tuple[str, int, int]]:
    """``(hook, body_start, body_end)`` for hook calls and option methods in range."""
    found: list[tuple[str, int, int]] = []
    for hook in hooks:
        for call_start, call_end in call_spans(text, hook):
            if start <= call_start < end:
                # Options API methods: `mounted() { ... }`.
                body_end = call_end
                j = call_end + 1
                while j < len(text) and text[j] in " \t\n":
                    j += 1
                if j < len(text) and text[j] == "{":
                    body_end = match_delimiter(text, j)
                found.append((hook, call_start, body_end))
    found.sort(key=lambda item: item[1])
    return found


def _check_lifecycle(ctx: FileContext) -> Iterator[AnalysisResult]:
    text = mask_comments(ctx.content)
    for start, end in _script_ranges(ctx, text):
        setups = _hook_bodies(text, SETUP_HOOKS, start, end)
        teardowns = _hook_bodies(text, TEARDOWN_HOOKS, start, end)
        teardown_text = "".join(text[body_start:body_end] for _hook, body_start, body_end in teardowns)
        for hook, body_start, body_end in setups:
            body = text[body_start:body_end]
            for acquire, release in LISTENER_PAIRS:
                if f"{acquire}(" not in body or f"{release}(" in teardown_text:
                    continue
                yield finding(
                    ctx,
                    "vue-lifecycle",
                    "warning",
                    f"{acquire} in {hook} without matching {release} on unmount",
                    offset=body_start,
                    category="vue-lifecycle",
                    framework="vue",
                    suggestion=f"Call {release} in onUnmounted/onBeforeUnmount",
                    confidence=0.85,
                )

        async_hooks = re.compile(rf"\basync\s+({'|'.join(OPTIONS_HOOKS)})\s*\(")
        for match in async_hooks.finditer(text, start, end):
            yield finding(
                ctx,
                "vue-lifecycle",
                "warning",
                f"Async lifecycle hook '{match.group(1)}'",
                offset=match.start(),
                category="vue-lifecycle",
                framework="vue",
                suggestion="Lifecycle hooks are not awaited; call an async function inside the hook",
                confidence=0.95,
            )

        for hook, body_start, body_end in setups:
            if hook != "created":
                continue
            if re.search(r"\bdocument\.|\.querySelector\(|\$refs\.", text[body_start:body_end]):
                yield finding(
                    ctx,
                    "vue-lifecycle",
                    "error",
                    "DOM access in created hook",
                    offset=body_start,
                    category="vue-lifecycle",
                    framework="vue",
                    suggestion="The DOM is not mounted yet in created; use mounted instead",
                    confidence=0.9,
                )


def _check_security(ctx: FileContext) -> Iterator[AnalysisResult]:
    template = _template_text(ctx)
    if template is not None:
        body, base = template
        for match in re.finditer(r"\sv-html\s*=", body):
            yield finding(
                ctx,
                "vue-security",
                "error",
                "v-html directive can lead to XSS vulnerabilities",
                offset=base + match.start() + 1,
                category="vue-security",
                framework="vue",
                suggestion="Sanitize the HTML or use text interpolation instead",
                confidence=0.9,
            )

    text = mask_comments(ctx.content)
    for start, end in _script_ranges(ctx, text):
        for call_start, _call_end in call_spans(text, "eval"):
            if start <= call_start < end:
                yield finding(
                    ctx,
                    "vue-security",
                    "error",
                    "eval() usage detected - security risk",
                    offset=call_start,
                    category="vue-security",
                    framework="vue",
                    suggestion="Avoid eval(); parse data explicitly instead",
                )
        for match in re.finditer(r"\.innerHTML\s*=(?!=)", text[start:end]):
            yield finding(
                ctx,
                "vue-security",
                "warning",
                "Direct innerHTML assignment",
                offset=start + match.start(),
                category="vue-security",
                framework="vue",
                suggestion="Render through the template or sanitize the HTML first",
                confidence=0.85,
            )
        for match in _LOCAL_STORAGE_RE.finditer(text, start, end):
            call = text[match.start() : match_delimiter(text, match.end() - 1) + 1].lower()
            if any(word in call for word in SENSITIVE_WORDS):
                yield finding(
                    ctx,
                    "vue-security",
                    "error",
                    "Storing sensitive data in localStorage without encryption",
                    offset=match.start(),
                    category="vue-security",
                    framework="vue",
                    suggestion="Keep secrets out of web storage or encrypt them first",
                    confidence=0.9,
                )


RULES: list[ValidationRule] = [
    ValidationRule(
        id="vue-composition-api",
        name="Vue Composition API Validation",
        description="Detects reactivity loss in Composition API code",
        category="vue-reactivity",
        severity="error",
        applies_to=VUE,
        file_patterns=VUE_FILES,
        check=_check_composition_api,
    ),
    ValidationRule(
        id="vue-template",
        name="Vue Template Validation",
        description="Validates v-for keys and v-if/v-for placement",
        category="vue-template",
        severity="warning",
        applies_to=VUE,
        file_patterns=SFC_FILES,
        check=_check_template,
    ),
    ValidationRule(
        id="vue-props",
        name="Vue Props Validation",
        description="Detects mutation of component props",
        category="vue-props",
        severity="error",
        applies_to=VUE,
        file_patterns=VUE_FILES,
        check=_check_props,
    ),
    ValidationRule(
        id="vue-lifecycle",
        name="Vue Lifecycle Hooks Validation",
        description="Ensures listeners and timers set up on mount are torn down",
        category="vue-lifecycle",
        severity="warning",
        applies_to=VUE,
        file_patterns=VUE_FILES,
        check=_check_lifecycle,
    ),
    ValidationRule(
        id="vue-security",
        name="Vue Security Best Practices",
        description="Flags v-html and other XSS sinks",
        category="vue-security",
        severity="error",
        applies_to=VUE,
        file_patterns=VUE_FILES,
        check=_check_security,
    ),
]
