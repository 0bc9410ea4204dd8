"""Lexical/structural helpers shared by rules and prediction patterns.

Nothing here builds a full AST with semantic resolution.  Import specifiers
are read with tree-sitter (TypeScript/TSX grammars); everything else works
on the raw text: comment masking, directive markers, brace matching for
function and effect bodies.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING

from tree_sitter import Language, Parser

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from tree_sitter import Node as TSNode

    from preflight.models import FileContext

# Node.js core modules; never treated as packages.
NODE_BUILTINS: frozenset[str] = frozenset(
    {
        "assert", "async_hooks", "buffer", "child_process", "cluster", "console",
        "constants", "crypto", "dgram", "diagnostics_channel", "dns", "domain",
        "events", "fs", "http", "http2", "https", "inspector", "module", "net",
        "os", "path", "perf_hooks", "process", "punycode", "querystring",
        "readline", "repl", "stream", "string_decoder", "sys", "timers", "tls",
        "trace_events", "tty", "url", "util", "v8", "vm", "wasi",
        "worker_threads", "zlib",
    }
)

# Path aliases that resolve inside the project rather than to a package.
LOCAL_ALIAS_PREFIXES: tuple[str, ...] = ("@/", "~/", "#/", "$lib/")

_DIRECTIVE_RE = re.compile(r"""^\s*(['"])use (client|server)\1\s*;?""")
_SCRIPT_BLOCK_RE = re.compile(r"<script\b[^>]*>(.*?)</script>", re.DOTALL | re.IGNORECASE)


@dataclass(frozen=True)
class ImportSpec:
    """A single import/require/re-export found in a source file."""

    specifier: str
    line: int  # 1-based
    names: tuple[str, ...] = ()  # local bindings introduced (empty for side-effect imports)
    kind: str = "import"  # "import" | "export" | "require" | "dynamic"
    type_only: bool = False

    @property
    def is_relative(self) -> bool:
        return self.specifier.startswith((".", "/"))

    @property
    def is_local(self) -> bool:
        """True for relative, absolute and project-alias specifiers."""
        return self.is_relative or self.specifier.startswith(LOCAL_ALIAS_PREFIXES)


@dataclass(frozen=True)
class FunctionSpan:
    """A function/arrow function body located by brace matching."""

    name: str | None
    is_async: bool
    start: int  # offset of the declaration
    body_start: int  # offset of the opening brace
    body_end: int  # offset of the closing brace
    exported: bool = False

    @property
    def is_component(self) -> bool:
        return self.name is not None and self.name[:1].isupper()


# ---------------------------------------------------------------------------
# Grammar loading (lazy, cached per language)
# ---------------------------------------------------------------------------


def _load_typescript() -> Language:
    import tree_sitter_typescript as tstypescript

    return Language(tstypescript.language_typescript())


def _load_tsx() -> Language:
    import tree_sitter_typescript as tstypescript

    return Language(tstypescript.language_tsx())


# language -> loader.  Vue/Svelte script blocks are parsed as TypeScript.
_GRAMMAR_LOADERS: dict[str, Callable[[], Language]] = {
    "ts": _load_typescript,
    "js": _load_tsx,
    "tsx": _load_tsx,
    "jsx": _load_tsx,
    "vue": _load_typescript,
    "svelte": _load_typescript,
}

_GRAMMAR_CACHE: dict[str, Language | None] = {}


def get_grammar(language: str) -> Language | None:
    """Return the tree-sitter grammar for *language*, or ``None`` if unavailable."""
    if language in _GRAMMAR_CACHE:
        return _GRAMMAR_CACHE[language]

    loader = _GRAMMAR_LOADERS.get(language)
    if loader is None:
        _GRAMMAR_CACHE[language] = None
        return None

    try:
        grammar = loader()
    except ImportError:
        _GRAMMAR_CACHE[language] = None
        return None

    _GRAMMAR_CACHE[language] = grammar
    return grammar


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def mask_comments(content: str) -> str:
    """Blank out ``//`` and ``/* */`` comments, preserving offsets and newlines.

    String and template literals are skipped so ``"http://x"`` survives.
    """
    out = list(content)
    i = 0
    n = len(content)
    while i < n:
        ch = content[i]
        if ch in "'\"`":
            i = _skip_string(content, i)
            continue
        if ch == "/" and i + 1 < n:
            nxt = content[i + 1]
            if nxt == "/":
                end = content.find("\n", i)
                end = n if end == -1 else end
                for j in range(i, end):
                    out[j] = " "
                i = end
                continue
            if nxt == "*":
                end = content.find("*/", i + 2)
                end = n if end == -1 else end + 2
                for j in range(i, end):
                    if out[j] != "\n":
                        out[j] = " "
                i = end
                continue
        i += 1
    return "".join(out)


def _skip_string(text: str, start: int) -> int:
    """Return the offset just past the string literal opened at *start*."""
    quote = text[start]
    i = start + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        if ch == "\n" and quote != "`":
            return i + 1
        i += 1
    return n


def match_delimiter(text: str, open_idx: int) -> int:
    """Return the offset of the bracket closing the one at *open_idx*.

    Handles ``{}``, ``()`` and ``[]``; skips string and template literals.
    Returns ``len(text) - 1`` when the bracket is never closed.
    """
    pairs = {"{": "}", "(": ")", "[": "]"}
    opener = text[open_idx]
    closer = pairs[opener]
    depth = 0
    i = open_idx
    n = len(text)
    while i < n:
        ch = text[i]
        if ch in "'\"`":
            i = _skip_string(text, i)
            continue
        if ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return n - 1


def directives(content: str) -> set[str]:
    """Return the ``'use client'``/``'use server'`` markers at the top of a file."""
    found: set[str] = set()
    for raw in mask_comments(content).split("\n"):
        line = raw.strip()
        if not line:
            continue
        match = _DIRECTIVE_RE.match(line)
        if match is None:
            break
        found.add(match.group(2))
    return found


def script_blocks(content: str, language: str) -> list[tuple[str, int]]:
    """Return ``(code, line_offset)`` pairs holding the file's script code.

    Single-file components (``.vue``, ``.svelte``) yield one pair per
    ``<script>`` block; everything else yields the whole file.
    """
    if language not in ("vue", "svelte"):
        return [(content, 0)]
    blocks: list[tuple[str, int]] = []
    for match in _SCRIPT_BLOCK_RE.finditer(content):
        offset = content.count("\n", 0, match.start(1))
        blocks.append((match.group(1), offset))
    return blocks


def package_name(specifier: str) -> str:
    """Return the package a bare specifier resolves to (scoped aware).

    ``lodash/fp`` -> ``lodash``; ``@scope/pkg/sub`` -> ``@scope/pkg``;
    ``node:fs`` -> ``node:fs``.
    """
    parts = specifier.split("/")
    if specifier.startswith("@") and len(parts) >= 2:
        return "/".join(parts[:2])
    return parts[0]


def is_builtin_module(specifier: str) -> bool:
    if specifier.startswith("node:"):
        return True
    return package_name(specifier) in NODE_BUILTINS


# ---------------------------------------------------------------------------
# Import extraction (tree-sitter)
# ---------------------------------------------------------------------------


def _node_text(node: TSNode | None) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8")


def _string_value(node: TSNode | None) -> str | None:
    """Return the literal value of a ``string`` node."""
    if node is None or node.type != "string":
        return None
    for sub in node.children:
        if sub.type == "string_fragment":
            return _node_text(sub)
    return ""


def _import_clause_names(clause: TSNode) -> list[str]:
    names: list[str] = []
    for child in clause.children:
        if child.type == "identifier":
            names.append(_node_text(child))
        elif child.type == "namespace_import":
            for sub in child.children:
                if sub.type == "identifier":
                    names.append(_node_text(sub))
        elif child.type == "named_imports":
            for spec in child.children:
                if spec.type != "import_specifier":
                    continue
                alias = spec.child_by_field_name("alias")
                name = spec.child_by_field_name("name")
                local = alias if alias is not None else name
                if local is not None:
                    names.append(_node_text(local))
    return names


def _walk_calls(node: TSNode) -> Iterator[TSNode]:
    stack = [node]
    while stack:
        current = stack.pop()
        if current.type == "call_expression":
            yield current
        stack.extend(reversed(current.children))


def _imports_from_tree(root: TSNode, line_offset: int) -> list[ImportSpec]:
    results: list[ImportSpec] = []

    for child in root.children:
        line = child.start_point[0] + 1 + line_offset
        if child.type == "import_statement":
            source = _string_value(child.child_by_field_name("source"))
            if not source:
                continue
            names: list[str] = []
            type_only = False
            for sub in child.children:
                if sub.type == "import_clause":
                    names = _import_clause_names(sub)
                elif sub.type == "type" or _node_text(sub) == "type":
                    type_only = True
            results.append(
                ImportSpec(
                    specifier=source,
                    line=line,
                    names=tuple(names),
                    kind="import",
                    type_only=type_only,
                )
            )
        elif child.type == "export_statement":
            source = _string_value(child.child_by_field_name("source"))
            if source:
                results.append(ImportSpec(specifier=source, line=line, kind="export"))

    for call in _walk_calls(root):
        func = call.child_by_field_name("function")
        args = call.child_by_field_name("arguments")
        if func is None or args is None:
            continue
        if func.type == "import":
            kind = "dynamic"
        elif func.type == "identifier" and _node_text(func) == "require":
            kind = "require"
        else:
            continue
        first = next((a for a in args.named_children), None)
        source = _string_value(first)
        if source:
            results.append(
                ImportSpec(
                    specifier=source,
                    line=call.start_point[0] + 1 + line_offset,
                    kind=kind,
                )
            )

    return results


def extract_imports(content: str, language: str) -> list[ImportSpec]:
    """Extract import specifiers from *content* in source order.

    Returns an empty list when no grammar is available for *language*.
    """
    grammar = get_grammar(language)
    if grammar is None:
        return []

    parser = Parser(grammar)
    results: list[ImportSpec] = []
    for code, line_offset in script_blocks(content, language):
        if not code.strip():
            continue
        tree = parser.parse(code.encode("utf-8"))
        results.extend(_imports_from_tree(tree.root_node, line_offset))

    results.sort(key=lambda spec: spec.line)
    return results


def file_imports(ctx: FileContext) -> tuple[ImportSpec, ...]:
    """Imports of a :class:`FileContext`, memoised per content."""
    return _cached_imports(ctx.content, ctx.language)


@lru_cache(maxsize=256)
def _cached_imports(content: str, language: str) -> tuple[ImportSpec, ...]:
    return tuple(extract_imports(content, language))


# ---------------------------------------------------------------------------
# Function and call spans
# ---------------------------------------------------------------------------

_FUNCTION_DECL_RE = re.compile(
    r"(?P<export>export\s+(?:default\s+)?)?(?P<async>async\s+)?"
    r"function\s*\*?\s*(?P<name>[A-Za-z_$][\w$]*)?\s*\("
)
_ARROW_DECL_RE = re.compile(
    r"(?P<export>export\s+)?(?:const|let|var)\s+(?P<name>[A-Za-z_$][\w$]*)\s*(?::[^=]+)?=\s*"
    r"(?P<async>async\s+)?(?:\([^()]*(?:\([^()]*\)[^()]*)*\)|[A-Za-z_$][\w$]*)\s*(?::[^={]+?)?=>\s*"
)


def iter_functions(text: str) -> list[FunctionSpan]:
    """Locate named function declarations and arrow functions with block bodies.

    *text* should already have comments masked.
    """
    spans: list[FunctionSpan] = []

    for match in _FUNCTION_DECL_RE.finditer(text):
        paren = match.end() - 1
        close_paren = match_delimiter(text, paren)
        brace = text.find("{", close_paren)
        if brace == -1:
            continue
        # Return type annotations may sit between ")" and "{"; reject "=>" or ";".
        between = text[close_paren + 1 : brace]
        if ";" in between or "=>" in between:
            continue
        spans.append(
            FunctionSpan(
                name=match.group("name"),
                is_async=match.group("async") is not None,
                start=match.start(),
                body_start=brace,
                body_end=match_delimiter(text, brace),
                exported=match.group("export") is not None,
            )
        )

    for match in _ARROW_DECL_RE.finditer(text):
        pos = match.end()
        if pos >= len(text) or text[pos] != "{":
            continue
        spans.append(
            FunctionSpan(
                name=match.group("name"),
                is_async=match.group("async") is not None,
                start=match.start(),
                body_start=pos,
                body_end=match_delimiter(text, pos),
                exported=match.group("export") is not None,
            )
        )

    spans.sort(key=lambda span: span.start)
    return spans


def call_spans(text: str, callee: str) -> list[tuple[int, int]]:
    """Return ``(start, end)`` offsets of every ``callee(...)`` call in *text*.

    *end* is the offset of the closing parenthesis.
    """
    pattern = re.compile(rf"(?<![\w$.]){re.escape(callee)}\s*\(")
    spans: list[tuple[int, int]] = []
    for match in pattern.finditer(text):
        paren = match.end() - 1
        spans.append((match.start(), match_delimiter(text, paren)))
    return spans


def enclosing(spans: list[tuple[int, int]], offset: int) -> bool:
    """True when *offset* falls inside any of *spans*."""
    return any(start <= offset <= end for start, end in spans)


def split_arguments(text: str, open_idx: int) -> list[tuple[int, int]]:
    """Split the call arguments opened by the ``(`` at *open_idx*.

    Returns ``(start, end)`` offsets (end exclusive) of each top-level
    argument, whitespace-trimmed.  Nested brackets and string literals are
    skipped as a unit.
    """
    close = match_delimiter(text, open_idx)
    args: list[tuple[int, int]] = []
    start = open_idx + 1
    i = start
    while i < close:
        ch = text[i]
        if ch in "'\"`":
            i = _skip_string(text, i)
            continue
        if ch in "({[":
            i = match_delimiter(text, i) + 1
            continue
        if ch == ",":
            args.append((start, i))
            start = i + 1
        i += 1
    args.append((start, close))

    trimmed: list[tuple[int, int]] = []
    for begin, end in args:
        while begin < end and text[begin].isspace():
            begin += 1
        while end > begin and text[end - 1].isspace():
            end -= 1
        if begin < end:
            trimmed.append((begin, end))
    return trimmed
