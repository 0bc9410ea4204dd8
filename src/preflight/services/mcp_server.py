"""MCP server: stdio-based analysis tools for AI agents."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import mcp
from mcp.server import Server
from mcp.types import TextContent

from preflight import __version__
from preflight.api import AnalysisError, analyze_project, analyze_snippet, validate_file
from preflight.config import ConfigError
from preflight.prediction import to_analysis_results
from preflight.rules import default_registry
from preflight.scheduler import FileResultCache

HIGH_RISK_PROBABILITY = 0.7

# Tool-level language names accepted alongside the short forms.
_LANGUAGE_ALIASES: dict[str, str] = {"typescript": "ts", "javascript": "js"}


# --- Tool handler functions (sync, testable without transport) ---


def handle_static_analysis(
    project_root: Path,
    *,
    project_path: str | None = None,
    target_files: list[str] | None = None,
    framework: str | None = None,
    enabled_rules: list[str] | None = None,
    disabled_rules: list[str] | None = None,
    strict_mode: bool | None = None,
    predict_errors: bool = True,
    analyze_dependencies: bool = True,
    max_issues: int | None = None,
    cache: FileResultCache | None = None,
) -> dict[str, Any]:
    """Full project analysis; relative paths resolve against *project_root*."""
    root = project_root / project_path if project_path else project_root
    report = analyze_project(
        root,
        framework=framework,
        enabled_rules=enabled_rules,
        disabled_rules=disabled_rules,
        strict_mode=strict_mode,
        predict_errors=predict_errors,
        analyze_dependencies=analyze_dependencies,
        max_issues=max_issues,
        target_files=target_files,
        cache=cache,
    )
    return report.to_dict()


def handle_quick_validate(
    *,
    code: str,
    language: str = "ts",
    framework: str | None = None,
    file_name: str | None = None,
) -> dict[str, Any]:
    """Validate a snippet; high-risk predictions are also listed as findings."""
    result = analyze_snippet(
        code,
        language=_LANGUAGE_ALIASES.get(language, language),
        framework=framework,
        file_name=file_name,
    )
    high_risk = [p for p in result.predictions if p.probability > HIGH_RISK_PROBABILITY]
    return {
        "valid": result.valid,
        "error_count": result.error_count,
        "warning_count": result.warning_count,
        "high_risk_predictions": len(high_risk),
        "results": [r.to_dict() for r in result.results],
        "predictions": [r.to_dict() for r in to_analysis_results(high_risk)],
        "frameworks": list(result.frameworks),
    }


def handle_realtime_validate(
    project_root: Path,
    *,
    file: str,
    content: str | None = None,
    framework: str | None = None,
) -> dict[str, Any]:
    """Fast single-file diagnostics for editors."""
    path = Path(file)
    if not path.is_absolute():
        path = project_root / path
    result = validate_file(path, content=content, framework=framework)
    return {
        "file": file,
        "status": "pass" if result.valid else "fail",
        "duration_ms": round(result.elapsed_ms, 2),
        "diagnostics": [
            {
                "line": r.line or 0,
                "column": r.column or 0,
                "severity": r.severity,
                "rule_id": r.rule_id,
                "message": r.message,
                "suggestion": r.suggestion,
            }
            for r in result.results
        ],
    }


def handle_list_rules(framework: str | None = None) -> list[dict[str, Any]]:
    """List registered rules, optionally those applicable to *framework*."""
    rules = default_registry().list_rules([framework] if framework else None)
    return [
        {
            "id": rule.id,
            "name": rule.name,
            "description": rule.description,
            "severity": rule.severity,
            "category": rule.category,
            "kind": rule.kind,
            "frameworks": sorted(rule.applies_to) or ["all"],
        }
        for rule in rules
    ]


# --- MCP Server creation ---

_FRAMEWORK_PROPERTY = {
    "type": "string",
    "enum": ["nextjs", "react", "vue"],
    "description": "Framework hint; detected per file when omitted",
}

_TOOLS = [
    mcp.Tool(
        name="static_analysis",
        description=(
            "Analyze a JavaScript/TypeScript project: framework-specific rules, "
            "error prediction and dependency checks. Returns a JSON report."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "project_path": {
                    "type": "string",
                    "description": "Project directory, relative to the server root. Omit for the root.",
                },
                "target_files": {"type": "array", "items": {"type": "string"}},
                "framework": _FRAMEWORK_PROPERTY,
                "enabled_rules": {"type": "array", "items": {"type": "string"}},
                "disabled_rules": {"type": "array", "items": {"type": "string"}},
                "strict_mode": {"type": "boolean", "default": True},
                "predict_errors": {"type": "boolean", "default": True},
                "analyze_dependencies": {"type": "boolean", "default": True},
                "max_issues": {"type": "integer", "default": 1000},
            },
        },
    ),
    mcp.Tool(
        name="quick_validate",
        description="Validate a code snippet without touching the file system.",
        inputSchema={
            "type": "object",
            "properties": {
                "code": {"type": "string"},
                "language": {
                    "type": "string",
                    "enum": ["ts", "tsx", "js", "jsx", "vue", "typescript", "javascript"],
                    "default": "ts",
                },
                "framework": _FRAMEWORK_PROPERTY,
                "file_name": {"type": "string"},
            },
            "required": ["code"],
        },
    ),
    mcp.Tool(
        name="realtime_validate",
        description=(
            "Fast validation of one file for editor integrations. "
            "Skips best-practice rules and prediction; at most 20 diagnostics."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "file": {"type": "string"},
                "content": {
                    "type": "string",
                    "description": "Unsaved buffer content. Omit to read the file.",
                },
                "framework": _FRAMEWORK_PROPERTY,
            },
            "required": ["file"],
        },
    ),
    mcp.Tool(
        name="list_rules",
        description="List the available validation rules with severity and frameworks.",
        inputSchema={
            "type": "object",
            "properties": {"framework": _FRAMEWORK_PROPERTY},
        },
    ),
]


def create_server(project_root: Path) -> Server:
    """Create and configure the MCP server for a project."""
    server = Server(
        name="preflight",
        version=__version__,
        instructions="Preflight: static analysis and error prediction for JS/TS projects.",
    )
    cache = FileResultCache()

    @server.list_tools()  # type: ignore[no-untyped-call,untyped-decorator]
    async def _list_tools() -> list[mcp.Tool]:
        return _TOOLS

    @server.call_tool()  # type: ignore[untyped-decorator]
    async def _call_tool(
        name: str,
        arguments: dict[str, Any] | None,
    ) -> list[TextContent]:
        args = arguments or {}
        try:
            result = _dispatch_tool(name, args, project_root=project_root, cache=cache)
        except (AnalysisError, ConfigError, KeyError) as exc:
            return [TextContent(type="text", text=f"Error: {exc}")]
        return [
            TextContent(
                type="text",
                text=json.dumps(result, ensure_ascii=False, indent=2),
            )
        ]

    return server


def _dispatch_tool(
    name: str,
    args: dict[str, Any],
    project_root: Path,
    cache: FileResultCache | None = None,
) -> Any:
    """Route tool call to the appropriate handler."""
    if name == "static_analysis":
        return handle_static_analysis(
            project_root,
            project_path=args.get("project_path"),
            target_files=args.get("target_files"),
            framework=args.get("framework"),
            enabled_rules=args.get("enabled_rules"),
            disabled_rules=args.get("disabled_rules"),
            strict_mode=args.get("strict_mode"),
            predict_errors=args.get("predict_errors", True),
            analyze_dependencies=args.get("analyze_dependencies", True),
            max_issues=args.get("max_issues"),
            cache=cache,
        )
    if name == "quick_validate":
        return handle_quick_validate(
            code=args["code"],
            language=args.get("language", "ts"),
            framework=args.get("framework"),
            file_name=args.get("file_name"),
        )
    if name == "realtime_validate":
        return handle_realtime_validate(
            project_root,
            file=args["file"],
            content=args.get("content"),
            framework=args.get("framework"),
        )
    if name == "list_rules":
        return handle_list_rules(args.get("framework"))

    msg = f"Unknown tool: {name}"
    raise ValueError(msg)
