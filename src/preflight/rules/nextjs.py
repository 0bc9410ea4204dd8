"""Next.js rule pack: server/client boundary, env exposure, routing conventions."""

from __future__ import annotations

import posixpath
import re
from typing import TYPE_CHECKING

from preflight.rules.engine import finding
from preflight.rules.registry import ValidationRule
from preflight.rules.source import (
    directives,
    file_imports,
    is_builtin_module,
    iter_functions,
    mask_comments,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    from preflight.models import AnalysisResult, FileContext

NEXTJS: frozenset[str] = frozenset({"nextjs"})
COMPONENT_FILES: tuple[str, ...] = ("*.tsx", "*.jsx")
SCRIPT_FILES: tuple[str, ...] = ("*.ts", "*.tsx", "*.js", "*.jsx", "*.mjs")

CLIENT_ONLY_HOOKS: tuple[str, ...] = (
    "useState",
    "useEffect",
    "useLayoutEffect",
    "useReducer",
    "useRef",
    "useCallback",
    "useMemo",
    "useImperativeHandle",
    "useSyncExternalStore",
    "useTransition",
)
HTTP_METHODS: tuple[str, ...] = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")
APP_ROUTER_FILES: frozenset[str] = frozenset(
    {
        "page", "layout", "loading", "error", "global-error", "not-found", "route",
        "template", "default", "middleware", "opengraph-image", "twitter-image",
        "icon", "apple-icon", "sitemap", "robots", "manifest", "instrumentation",
    }
)
SERVER_ONLY_MODULES: frozenset[str] = frozenset({"server-only", "next/headers", "next/server"})
PUBLIC_ENV_PREFIX = "NEXT_PUBLIC_"

_EVENT_HANDLER_RE = re.compile(r"\son[A-Z]\w*\s*=\s*\{")
_ENV_RE = re.compile(r"process\.env\.([A-Za-z_]\w*)|process\.env\[\s*['\"]([^'\"]+)['\"]\s*\]")
_IMG_RE = re.compile(r"<img\b[^>]*\bsrc\s*=", re.DOTALL)
_IMAGE_COMPONENT_RE = re.compile(r"<Image\b([^>]*?)/>", re.DOTALL)


def _segments(path: str) -> list[str]:
    return path.replace("\\", "/").split("/")


def _in_app_router(path: str) -> bool:
    return "app" in _segments(path)[:-1]


def _in_pages_router(path: str) -> bool:
    return "pages" in _segments(path)[:-1]


def _stem(path: str) -> str:
    name = posixpath.basename(path.replace("\\", "/"))
    return name.split(".", 1)[0]


def _first_offset(text: str, token: str) -> int | None:
    match = re.search(rf"(?<![\w$.]){re.escape(token)}\s*\(", text)
    return match.start() if match else None


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def _check_server_components(ctx: FileContext) -> Iterator[AnalysisResult]:
    """Server/Client Component boundary violations.

    Without a directive, files under the App Router render as Server
    Components; Pages Router files are always client-rendered and skipped.
    """
    if _in_pages_router(ctx.path):
        return
    marks = directives(ctx.content)
    text = mask_comments(ctx.content)

    if not marks:
        for hook in CLIENT_ONLY_HOOKS:
            offset = _first_offset(text, hook)
            if offset is None:
                continue
            yield finding(
                ctx,
                "nextjs-server-components",
                "error",
                f"Using client-side hook '{hook}' in a Server Component",
                offset=offset,
                category="nextjs-components",
                framework="nextjs",
                suggestion="Add a 'use client' directive at the top of the file",
                auto_fix="Insert \"'use client';\" as the first line of the file",
            )
        handler = _EVENT_HANDLER_RE.search(text)
        if handler is not None:
            yield finding(
                ctx,
                "nextjs-server-components",
                "error",
                "Event handlers detected in Server Component",
                offset=handler.start() + 1,
                category="nextjs-components",
                framework="nextjs",
                suggestion="Add a 'use client' directive for components with event handlers",
                confidence=0.9,
            )
        return

    if "client" in marks:
        for spec in file_imports(ctx):
            if spec.specifier in SERVER_ONLY_MODULES or is_builtin_module(spec.specifier):
                yield finding(
                    ctx,
                    "nextjs-server-components",
                    "error",
                    f"Server-only module '{spec.specifier}' imported in a Client Component",
                    line=spec.line,
                    category="nextjs-components",
                    framework="nextjs",
                    suggestion="Move server-only code to Server Components or route handlers",
                    confidence=0.95,
                )
        for span in iter_functions(text):
            if span.is_async and span.exported and span.is_component:
                yield finding(
                    ctx,
                    "nextjs-server-components",
                    "error",
                    f"Client Component '{span.name}' is declared async",
                    offset=span.start,
                    category="nextjs-components",
                    framework="nextjs",
                    suggestion="Only Server Components may be async; fetch data in a parent Server Component",
                )

    if "server" in marks:
        for span in iter_functions(text):
            if span.exported and not span.is_async:
                yield finding(
                    ctx,
                    "nextjs-server-components",
                    "error",
                    f"Server Action '{span.name or 'default'}' must be an async function",
                    offset=span.start,
                    category="nextjs-components",
                    framework="nextjs",
                    suggestion="Mark exported functions in 'use server' files as async",
                )


def _check_env_vars(ctx: FileContext) -> Iterator[AnalysisResult]:
    if "client" not in directives(ctx.content):
        return
    text = mask_comments(ctx.content)
    for match in _ENV_RE.finditer(text):
        name = match.group(1) or match.group(2)
        if name.startswith(PUBLIC_ENV_PREFIX) or name == "NODE_ENV":
            continue
        yield finding(
            ctx,
            "nextjs-env-vars",
            "error",
            f"Non-public environment variable '{name}' accessed in Client Component",
            offset=match.start(),
            category="nextjs-security",
            framework="nextjs",
            suggestion=(
                f"Prefix with {PUBLIC_ENV_PREFIX} to expose it to the client "
                "or move the access to a Server Component"
            ),
        )


def _check_app_router_structure(ctx: FileContext) -> Iterator[AnalysisResult]:
    if not _in_app_router(ctx.path):
        return
    stem = _stem(ctx.path)
    text = mask_comments(ctx.content)
    if stem not in APP_ROUTER_FILES and not stem.startswith("_") and "export default" in text:
        yield finding(
            ctx,
            "nextjs-app-router-structure",
            "warning",
            f"File '{posixpath.basename(ctx.path)}' in app directory "
            "doesn't follow Next.js naming conventions",
            line=1,
            category="nextjs-structure",
            framework="nextjs",
            suggestion=(
                "Use page, layout, loading, error, not-found, route or template, "
                "or move shared components out of routing segments"
            ),
            confidence=0.8,
        )
    if stem in ("page", "layout") and "client" not in directives(ctx.content):
        has_metadata = re.search(
            r"export\s+(?:const\s+metadata\b|(?:async\s+)?function\s+generateMetadata\b)", text
        )
        if not has_metadata:
            yield finding(
                ctx,
                "nextjs-app-router-structure",
                "warning",
                "Missing metadata export for SEO optimization",
                line=1,
                category="nextjs-seo",
                framework="nextjs",
                suggestion="Add a metadata export or a generateMetadata function",
                confidence=0.7,
            )


def _check_image_optimization(ctx: FileContext) -> Iterator[AnalysisResult]:
    text = mask_comments(ctx.content)
    img = _IMG_RE.search(text)
    if img is not None:
        yield finding(
            ctx,
            "nextjs-image-optimization",
            "warning",
            "Using native <img> tag instead of Next.js Image component",
            offset=img.start(),
            category="nextjs-performance",
            framework="nextjs",
            suggestion="Import and use 'next/image' for automatic image optimization",
            confidence=0.85,
        )
    for match in _IMAGE_COMPONENT_RE.finditer(text):
        props = match.group(1)
        if "fill" in props or ("width" in props and "height" in props):
            continue
        yield finding(
            ctx,
            "nextjs-image-optimization",
            "warning",
            "Image component missing width/height props",
            offset=match.start(),
            category="nextjs-performance",
            framework="nextjs",
            suggestion="Add width and height props or use the fill prop for responsive images",
            confidence=0.9,
        )


def _check_api_routes(ctx: FileContext) -> Iterator[AnalysisResult]:
    if _stem(ctx.path) != "route" or not _in_app_router(ctx.path):
        return
    text = mask_comments(ctx.content)
    handlers = {
        span.name: span
        for span in iter_functions(text)
        if span.exported and span.name in HTTP_METHODS
    }
    # `export const GET = ...` style handlers count as well.
    for method in HTTP_METHODS:
        if method not in handlers and re.search(rf"export\s+(?:const|let)\s+{method}\b", text):
            handlers[method] = None  # type: ignore[assignment]

    if not handlers:
        yield finding(
            ctx,
            "nextjs-api-routes",
            "error",
            "Route handler file exports no HTTP method handlers",
            line=1,
            category="nextjs-api",
            framework="nextjs",
            suggestion="Export functions named after HTTP methods (GET, POST, ...)",
        )
        return

    if re.search(r"export\s+default\b", text):
        yield finding(
            ctx,
            "nextjs-api-routes",
            "error",
            "Route handlers must not use a default export",
            line=1,
            category="nextjs-api",
            framework="nextjs",
            suggestion="Replace the default export with named HTTP method exports",
        )

    for method in HTTP_METHODS:
        span = handlers.get(method)
        if span is None:
            continue
        body = text[span.body_start : span.body_end + 1]
        if "Response" not in body:
            yield finding(
                ctx,
                "nextjs-api-routes",
                "error",
                f"Route handler {method} doesn't return a Response object",
                offset=span.start,
                category="nextjs-api",
                framework="nextjs",
                suggestion="Return a Response or NextResponse from route handlers",
                confidence=0.9,
            )
        if not re.search(r"\btry\s*\{", body) and ".catch(" not in body:
            yield finding(
                ctx,
                "nextjs-api-routes",
                "warning",
                f"Route handler {method} lacks error handling",
                offset=span.start,
                category="nextjs-api",
                framework="nextjs",
                suggestion="Wrap the handler body in try/catch and return an error response",
                confidence=0.8,
            )


RULES: list[ValidationRule] = [
    ValidationRule(
        id="nextjs-server-components",
        name="Next.js Server Components Validation",
        description="Validates the boundary between Server and Client Components",
        category="nextjs-components",
        severity="error",
        applies_to=NEXTJS,
        file_patterns=SCRIPT_FILES,
        check=_check_server_components,
    ),
    ValidationRule(
        id="nextjs-env-vars",
        name="Next.js Environment Variables Validation",
        description="Flags non-public environment variables read by Client Components",
        category="nextjs-security",
        severity="error",
        applies_to=NEXTJS,
        file_patterns=SCRIPT_FILES,
        check=_check_env_vars,
    ),
    ValidationRule(
        id="nextjs-app-router-structure",
        name="Next.js App Router Structure Validation",
        description="Validates App Router file conventions and metadata exports",
        category="nextjs-structure",
        severity="warning",
        kind="best-practice",
        applies_to=NEXTJS,
        file_patterns=SCRIPT_FILES,
        check=_check_app_router_structure,
    ),
    ValidationRule(
        id="nextjs-image-optimization",
        name="Next.js Image Optimization",
        description="Ensures proper use of the Next.js Image component",
        category="nextjs-performance",
        severity="warning",
        kind="best-practice",
        applies_to=NEXTJS,
        file_patterns=COMPONENT_FILES,
        check=_check_image_optimization,
    ),
    ValidationRule(
        id="nextjs-api-routes",
        name="Next.js Route Handler Validation",
        description="Validates App Router route handler exports and responses",
        category="nextjs-api",
        severity="warning",
        applies_to=NEXTJS,
        file_patterns=("*route.ts", "*route.js"),
        check=_check_api_routes,
    ),
]
