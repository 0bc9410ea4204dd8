"""Framework dispatcher: decide which framework rule packs apply to a file."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from preflight.rules.source import directives, file_imports

if TYPE_CHECKING:
    from pathlib import Path

    from preflight.deps.manifest import ProjectManifest
    from preflight.models import FileContext
    from preflight.rules.registry import ValidationRule

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

KNOWN_FRAMEWORKS: frozenset[str] = frozenset({"nextjs", "react", "vue", "angular", "svelte"})

# Frameworks a hint pulls in with it: Next.js files are React files.
IMPLIED_FRAMEWORKS: dict[str, frozenset[str]] = {
    "nextjs": frozenset({"nextjs", "react"}),
}

# Exact import specifiers / specifier prefixes -> framework tag.
IMPORT_FRAMEWORKS: dict[str, str] = {
    "next": "nextjs",
    "react": "react",
    "react-dom": "react",
    "vue": "vue",
    "vue-router": "vue",
    "pinia": "vue",
    "svelte": "svelte",
}
IMPORT_PREFIX_FRAMEWORKS: tuple[tuple[str, str], ...] = (
    ("next/", "nextjs"),
    ("react-dom/", "react"),
    ("react/", "react"),
    ("@angular/", "angular"),
    ("svelte/", "svelte"),
    ("@vue/", "vue"),
    ("nuxt", "vue"),
)

# package.json dependency -> framework tags.
PACKAGE_FRAMEWORKS: dict[str, frozenset[str]] = {
    "next": frozenset({"nextjs", "react"}),
    "react": frozenset({"react"}),
    "react-dom": frozenset({"react"}),
    "vue": frozenset({"vue"}),
    "nuxt": frozenset({"vue"}),
    "@angular/core": frozenset({"angular"}),
    "svelte": frozenset({"svelte"}),
    "@sveltejs/kit": frozenset({"svelte"}),
}

NEXT_CONFIG_FILES: tuple[str, ...] = (
    "next.config.js",
    "next.config.mjs",
    "next.config.ts",
    "next.config.cjs",
)
SCRIPT_LANGUAGES: frozenset[str] = frozenset({"ts", "tsx", "js", "jsx"})

_JSX_TAG_RE = re.compile(r"<(?:[A-Z][\w.]*|[a-z][\w-]*)(?:\s[^<>]*)?/?>|</[A-Za-z][\w.-]*>|<>")
_ROUTE_FILE_RE = re.compile(
    r"(?:^|/)app/(?:.*/)?(?:page|layout|loading|error|not-found|route|template)\.(?:tsx?|jsx?)$"
    r"|(?:^|/)pages/.+\.(?:tsx?|jsx?)$"
    r"|(?:^|/)middleware\.(?:ts|js)$"
)


def _expand(frameworks: frozenset[str] | set[str]) -> frozenset[str]:
    expanded: set[str] = set()
    for name in frameworks:
        expanded |= IMPLIED_FRAMEWORKS.get(name, frozenset({name}))
    return frozenset(expanded)


def _framework_for_specifier(specifier: str) -> str | None:
    exact = IMPORT_FRAMEWORKS.get(specifier)
    if exact is not None:
        return exact
    for prefix, framework in IMPORT_PREFIX_FRAMEWORKS:
        if specifier.startswith(prefix):
            return framework
    return None


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


def detect(ctx: FileContext, explicit_framework: str | None = None) -> frozenset[str]:
    """Return the framework tags for one file.

    An explicit hint is authoritative.  Otherwise the union of independent
    probes: directive markers, routing path conventions, import specifiers,
    file extension and JSX-like syntax.
    """
    if explicit_framework:
        return _expand({explicit_framework})

    found: set[str] = set()
    path = ctx.path.replace("\\", "/")

    if directives(ctx.content):
        found |= {"nextjs", "react"}

    if _ROUTE_FILE_RE.search(path):
        found.add("nextjs")

    for spec in file_imports(ctx):
        framework = _framework_for_specifier(spec.specifier)
        if framework is not None:
            found.add(framework)

    if ctx.language == "vue":
        found.add("vue")
    elif ctx.language == "svelte":
        found.add("svelte")
    elif ctx.language in ("tsx", "jsx") and _JSX_TAG_RE.search(ctx.content):
        found.add("react")

    return _expand(found)


def detect_project_frameworks(
    manifest: ProjectManifest | None,
    project_root: Path | None = None,
) -> frozenset[str]:
    """Project-level framework tags from package.json and framework config files."""
    found: set[str] = set()
    if manifest is not None:
        for package in manifest.all_manifests():
            for name in package.all_declared():
                found |= PACKAGE_FRAMEWORKS.get(name, frozenset())
    if project_root is not None and any((project_root / name).is_file() for name in NEXT_CONFIG_FILES):
        found |= {"nextjs", "react"}
    if found:
        logger.debug("Project frameworks: %s", ", ".join(sorted(found)))
    return _expand(found)


def merge_project_hint(
    ctx: FileContext,
    detected: frozenset[str],
    project_frameworks: frozenset[str],
) -> frozenset[str]:
    """Union project-level tags into a script file's own detection.

    Only JS/TS sources whose own probes already found React are widened
    to Next.js; ``.vue`` files never pick up React tags.
    """
    if not project_frameworks or ctx.language not in SCRIPT_LANGUAGES:
        return detected
    if "nextjs" in project_frameworks and "react" in detected:
        return _expand(detected | {"nextjs"})
    return detected


def is_applicable(rule: ValidationRule, frameworks: frozenset[str]) -> bool:
    """True for universal rules and rules sharing a tag with *frameworks*."""
    return rule.applies(frameworks)
