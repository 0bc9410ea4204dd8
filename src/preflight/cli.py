"""Preflight CLI entry point."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from preflight import __version__

if TYPE_CHECKING:
    from typing import TextIO

    from preflight.models import AnalysisReport
    from preflight.scheduler.watcher import WatchEvent

_FRAMEWORK_CHOICE = click.Choice(["nextjs", "react", "vue"])
_FORMAT_CHOICE = click.Choice(["rich", "json", "porcelain"])


@click.group()
@click.version_option(version=__version__, prog_name="preflight")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """Preflight - static analysis and error prediction for JS/TS projects."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _format_report(report: AnalysisReport, fmt: str | None) -> str:
    from preflight.report import format_json, format_porcelain, format_rich

    # Resolve output format: explicit flag > TTY detection.
    if fmt is None:
        fmt = "rich" if sys.stdout.isatty() else "porcelain"

    formatters = {
        "rich": format_rich,
        "json": format_json,
        "porcelain": format_porcelain,
    }
    return formatters[fmt](report)


def _should_fail(report: AnalysisReport, fail_on: str) -> bool:
    summary = report.summary
    if fail_on == "error":
        return summary.errors > 0
    if fail_on == "warning":
        return summary.errors + summary.warnings > 0
    return False


@main.command()
@click.option("--framework", type=_FRAMEWORK_CHOICE, default=None, help="Force a framework.")
@click.option("--enable", "enabled", multiple=True, help="Rule id to run (repeatable).")
@click.option("--disable", "disabled", multiple=True, help="Rule id to skip (repeatable).")
@click.option("--no-strict", is_flag=True, default=False, help="Skip best-practice rules.")
@click.option("--no-predict", is_flag=True, default=False, help="Skip error prediction.")
@click.option("--no-deps", is_flag=True, default=False, help="Skip dependency analysis.")
@click.option("--max-issues", type=click.IntRange(min=1), default=None, help="Result cap.")
@click.option("--file", "files", multiple=True, help="Analyze only this file (repeatable).")
@click.option("--concurrency", type=click.IntRange(min=1), default=None, help="Worker threads.")
@click.option(
    "--format",
    "fmt",
    type=_FORMAT_CHOICE,
    default=None,
    help="Output format (default: rich if TTY, porcelain if piped).",
)
@click.option(
    "--fail-on",
    type=click.Choice(["error", "warning", "never"]),
    default="error",
    show_default=True,
    help="Exit 1 when findings of this severity (or worse) exist.",
)
@click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: current directory).",
)
def analyze(
    *,
    framework: str | None,
    enabled: tuple[str, ...],
    disabled: tuple[str, ...],
    no_strict: bool,
    no_predict: bool,
    no_deps: bool,
    max_issues: int | None,
    files: tuple[str, ...],
    concurrency: int | None,
    fmt: str | None,
    fail_on: str,
    project: Path | None,
) -> None:
    """Analyze a project: rules, error prediction and dependencies.

    Exit codes: 0 = clean (or below --fail-on), 1 = findings at the
    --fail-on level, 2 = configuration or analysis error.
    """
    from preflight.api import AnalysisError, analyze_project
    from preflight.config import ConfigError

    project_root = project or Path.cwd()

    try:
        report = analyze_project(
            project_root,
            framework=framework,
            enabled_rules=enabled or None,
            disabled_rules=disabled or None,
            strict_mode=False if no_strict else None,
            predict_errors=not no_predict,
            analyze_dependencies=not no_deps,
            max_issues=max_issues,
            target_files=files or None,
            concurrency=concurrency,
        )
    except (AnalysisError, ConfigError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    output = _format_report(report, fmt)
    if output:
        click.echo(output)

    if _should_fail(report, fail_on):
        sys.exit(1)


@main.command()
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@click.option(
    "--language",
    type=click.Choice(["ts", "tsx", "js", "jsx", "vue"]),
    default=None,
    help="Source language (default: from the file extension, else ts).",
)
@click.option("--framework", type=_FRAMEWORK_CHOICE, default=None, help="Force a framework.")
@click.option("--file-name", default=None, help="Path to report findings against.")
@click.option(
    "--format",
    "fmt",
    type=_FORMAT_CHOICE,
    default=None,
    help="Output format (default: rich if TTY, porcelain if piped).",
)
def check(
    *,
    source: TextIO,
    language: str | None,
    framework: str | None,
    file_name: str | None,
    fmt: str | None,
) -> None:
    """Check a single snippet read from SOURCE (or stdin).

    Nothing else on disk is consulted.  Exit 1 when errors are found.
    """
    from preflight.api import analyze_snippet
    from preflight.models import LANGUAGE_BY_EXTENSION
    from preflight.report import aggregate

    code = source.read()
    name = getattr(source, "name", "<stdin>")
    from_file = name not in ("-", "<stdin>")
    if language is None:
        language = LANGUAGE_BY_EXTENSION.get(Path(name).suffix.lower(), "ts") if from_file else "ts"
    if file_name is None and from_file:
        file_name = Path(name).name

    result = analyze_snippet(code, language=language, framework=framework, file_name=file_name)
    report = aggregate(
        result.results,
        result.predictions,
        (),
        max(len(result.results), 1),
        files_analyzed=1,
        frameworks=result.frameworks,
        elapsed_ms=result.elapsed_ms,
    )

    output = _format_report(report, fmt)
    if output:
        click.echo(output)

    if not result.valid:
        sys.exit(1)


@main.command("rules")
@click.option("--framework", type=_FRAMEWORK_CHOICE, default=None, help="Only rules for this framework.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def rules_cmd(*, framework: str | None, as_json: bool) -> None:
    """List the registered validation rules."""
    from preflight.services.mcp_server import handle_list_rules

    rules = handle_list_rules(framework)

    if as_json:
        click.echo(json.dumps(rules, indent=2))
        return

    if not rules:
        click.echo("No rules registered.")
        return

    for rule in rules:
        frameworks = ", ".join(rule["frameworks"])
        click.echo(f"{rule['id']:<32} {rule['severity']:<8} {rule['kind']:<14} [{frameworks}]")
        click.echo(f"  {rule['description']}")


@main.command("watch")
@click.option("--framework", type=_FRAMEWORK_CHOICE, default=None, help="Force a framework.")
@click.option("--debounce", default=None, type=click.IntRange(min=0), help="Debounce delay in ms.")
@click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: current directory).",
)
@click.pass_context
def watch_cmd(
    ctx: click.Context,
    *,
    framework: str | None,
    debounce: int | None,
    project: Path | None,
) -> None:
    """Watch files and re-analyze them on change.

    Repeated edits to a file within the debounce window are analyzed
    once.  Changes to package.json re-run dependency analysis.
    """
    from preflight.api import AnalysisError, watch_project
    from preflight.config import ConfigError, load_config
    from preflight.report import format_porcelain

    project_root = project or Path.cwd()
    quiet = bool(ctx.obj and ctx.obj.get("quiet"))

    def _print_findings(event: WatchEvent) -> None:
        output = format_porcelain(event.report)
        if output and not quiet:
            click.echo(output)

    try:
        config = load_config(project_root).with_overrides(debounce_ms=debounce)
        watch_project(project_root, _print_findings, framework=framework, config=config)
    except (AnalysisError, ConfigError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)


@main.command("mcp-serve")
@click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: current directory).",
)
def mcp_serve(*, project: Path | None) -> None:
    """Run the preflight MCP server (stdio transport)."""
    import anyio

    from preflight.services.mcp_server import create_server

    project_root = (project or Path.cwd()).resolve()
    server = create_server(project_root)

    async def _run() -> None:
        from mcp import stdio_server

        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )

    anyio.run(_run)
