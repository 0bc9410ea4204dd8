"""Public entry points: project analysis, snippet analysis, single-file validation and watch."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from preflight.config import CONFIG_DIR, RULES_FILE, AnalyzerConfig, load_config
from preflight.deps import ImportUse, ManifestError, load_manifest
from preflight.deps import analyze as analyze_dependencies_of
from preflight.frameworks import detect, detect_project_frameworks, merge_project_hint
from preflight.models import LANGUAGE_BY_EXTENSION, AnalysisResult, FileContext, severity_rank
from preflight.prediction import predict
from preflight.report import aggregate
from preflight.rules import applicable_rules, default_registry, execute, select_rules
from preflight.rules.custom import load_custom_rules
from preflight.rules.source import file_imports
from preflight.scheduler import (
    SOURCE_EXTENSIONS,
    AnalysisScheduler,
    FileAnalysis,
    FileResultCache,
    discover_files,
    source_file,
)

if TYPE_CHECKING:
    import threading
    from collections.abc import Callable, Iterable

    from preflight.deps import ProjectManifest
    from preflight.models import AnalysisReport, DependencyIssue, PredictedError
    from preflight.rules import RuleRegistry, ValidationRule
    from preflight.scheduler import SchedulerOutcome, SourceFile
    from preflight.scheduler.watcher import WatchEvent

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MANIFEST_PARSE_ERROR = "manifest-parse-error"
CUSTOM_RULES_ERROR = "custom-rules-error"
REALTIME_MAX_ISSUES = 20

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class AnalysisError(Exception):
    """Raised when analysis cannot begin (bad project path, nothing readable)."""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SnippetResult:
    """Findings for a single in-memory source."""

    results: tuple[AnalysisResult, ...] = ()
    predictions: tuple[PredictedError, ...] = ()
    frameworks: tuple[str, ...] = ()
    elapsed_ms: float = 0.0

    @property
    def error_count(self) -> int:
        return sum(1 for r in self.results if r.severity == "error")

    @property
    def warning_count(self) -> int:
        return sum(1 for r in self.results if r.severity == "warning")

    @property
    def valid(self) -> bool:
        return self.error_count == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "predictions": [p.to_dict() for p in self.predictions],
            "frameworks": list(self.frameworks),
            "elapsed_ms": self.elapsed_ms,
        }


# ---------------------------------------------------------------------------
# Per-file analysis
# ---------------------------------------------------------------------------


def analyze_source(
    ctx: FileContext,
    rules: Iterable[ValidationRule],
    *,
    framework: str | None = None,
    project_frameworks: frozenset[str] = frozenset(),
    predict_errors: bool = True,
) -> FileAnalysis:
    """Tag one file with frameworks, run the applicable rules and the predictor."""
    frameworks = detect(ctx, framework)
    if not framework:
        frameworks = merge_project_hint(ctx, frameworks, project_frameworks)
    tagged = ctx.with_frameworks(frameworks)

    results = execute(tagged, applicable_rules(rules, frameworks, ctx.path))
    predictions = predict(tagged, frameworks) if predict_errors else []
    imports = tuple((spec.specifier, spec.line) for spec in file_imports(tagged) if not spec.type_only)
    return FileAnalysis(
        results=tuple(results),
        predictions=tuple(predictions),
        frameworks=frameworks,
        imports=imports,
    )


# ---------------------------------------------------------------------------
# Project session
# ---------------------------------------------------------------------------


class ProjectSession:
    """Resolved settings, rules and manifest for one project.

    Shared by a one-shot :func:`analyze_project` and by every batch of a
    :func:`watch_project` loop.
    """

    def __init__(
        self,
        root: Path,
        *,
        framework: str | None = None,
        enabled_rules: Iterable[str] | None = None,
        disabled_rules: Iterable[str] | None = None,
        strict_mode: bool | None = None,
        predict_errors: bool = True,
        analyze_dependencies: bool = True,
        max_issues: int | None = None,
        concurrency: int | None = None,
        registry: RuleRegistry | None = None,
        config: AnalyzerConfig | None = None,
    ) -> None:
        self.root = root
        self.config = (config or load_config(root)).with_overrides(
            max_issues=max_issues,
            concurrency=concurrency,
            strict_mode=strict_mode,
        )
        self.framework = framework
        self.predict_errors = predict_errors
        self.analyze_dependencies = analyze_dependencies
        self.degraded: list[str] = []
        self.notices: list[AnalysisResult] = []

        self.registry = self._layer_custom_rules(registry or default_registry())
        self.rules = select_rules(
            self.registry.list_rules(),
            enabled_rules=(*self.config.enabled_rules, *(enabled_rules or ())),
            disabled_rules=(*self.config.disabled_rules, *(disabled_rules or ())),
            strict_mode=self.config.strict_mode,
        )

        self.manifest: ProjectManifest | None = None
        self.project_frameworks: frozenset[str] = frozenset()
        self.load_manifest()

    # -- setup --------------------------------------------------------------

    def _notice(self, rule_id: str, message: str, file: str, label: str) -> None:
        self.notices.append(
            AnalysisResult(
                rule_id=rule_id,
                severity="warning",
                message=message,
                file=file,
                category="internal",
            )
        )
        self.degraded.append(label)

    def _layer_custom_rules(self, base: RuleRegistry) -> RuleRegistry:
        rules_path = self.root / CONFIG_DIR / RULES_FILE
        if not rules_path.is_file():
            return base
        try:
            custom = load_custom_rules(rules_path)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring custom rules: %s", exc)
            rel = f"{CONFIG_DIR}/{RULES_FILE}"
            self._notice(CUSTOM_RULES_ERROR, f"Custom rules not loaded: {exc}", rel, "custom-rules-skipped")
            return base
        layered = base.copy()
        layered.register_all(custom)
        return layered.freeze()

    def load_manifest(self) -> None:
        """(Re)load package.json; a parse failure disables dependency analysis."""
        self.degraded = [label for label in self.degraded if label != "dependency-analysis-skipped"]
        self.notices = [n for n in self.notices if n.rule_id != MANIFEST_PARSE_ERROR]
        try:
            self.manifest = load_manifest(self.root)
        except ManifestError as exc:
            logger.warning("Skipping dependency analysis: %s", exc)
            self.manifest = None
            if self.analyze_dependencies:
                self._notice(
                    MANIFEST_PARSE_ERROR,
                    f"Dependency analysis skipped: {exc}",
                    "package.json",
                    "dependency-analysis-skipped",
                )
        self.project_frameworks = detect_project_frameworks(self.manifest, self.root)

    @property
    def declared_packages(self) -> frozenset[str] | None:
        return self.manifest.declared_packages() if self.manifest is not None else None

    @property
    def settings_key(self) -> str:
        """Digest of every setting that changes per-file output."""
        payload = {
            "framework": self.framework,
            "rules": [rule.id for rule in self.rules],
            "predict": self.predict_errors,
            "declared": sorted(self.declared_packages or ()),
            "project_frameworks": sorted(self.project_frameworks),
        }
        return hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()[:16]

    def scheduler(self, cache: FileResultCache | None = None) -> AnalysisScheduler:
        return AnalysisScheduler(
            self.registry,
            cache,
            concurrency=self.config.concurrency,
            settings_key=self.settings_key,
        )

    # -- analysis -----------------------------------------------------------

    def analyze_file(self, source: SourceFile, content: str) -> FileAnalysis:
        ctx = FileContext(
            path=source.rel_path,
            content=content,
            language=source.language,
            project_root=str(self.root),
            declared_packages=self.declared_packages,
        )
        return analyze_source(
            ctx,
            self.rules,
            framework=self.framework,
            project_frameworks=self.project_frameworks,
            predict_errors=self.predict_errors,
        )

    def dependency_issues(self, outcome: SchedulerOutcome) -> list[DependencyIssue]:
        if not self.analyze_dependencies or self.manifest is None:
            return []
        used = [
            ImportUse(specifier, file_outcome.path, line)
            for file_outcome in outcome.files
            for specifier, line in file_outcome.analysis.imports
        ]
        return analyze_dependencies_of(self.manifest, used_imports=used, vulnerable=self.config.vulnerable)

    def report(
        self,
        outcome: SchedulerOutcome,
        dependency_issues: list[DependencyIssue],
        started: float,
    ) -> AnalysisReport:
        frameworks = set(outcome.frameworks)
        if self.framework is None:
            frameworks |= self.project_frameworks
        degraded = list(self.degraded)
        if outcome.partial:
            degraded.append("cancelled")
        return aggregate(
            [*self.notices, *outcome.results],
            outcome.predictions,
            dependency_issues,
            self.config.max_issues,
            files_analyzed=outcome.files_analyzed,
            files_skipped=outcome.files_skipped,
            partial=outcome.partial,
            degraded=degraded,
            frameworks=frameworks,
            elapsed_ms=(time.perf_counter() - started) * 1000,
        )


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def _project_root(project_path: str | Path) -> Path:
    root = Path(project_path).resolve()
    if not root.is_dir():
        msg = f"Project path is not a directory: {project_path}"
        raise AnalysisError(msg)
    return root


def analyze_project(
    project_path: str | Path,
    *,
    framework: str | None = None,
    enabled_rules: Iterable[str] | None = None,
    disabled_rules: Iterable[str] | None = None,
    strict_mode: bool | None = None,
    predict_errors: bool = True,
    analyze_dependencies: bool = True,
    max_issues: int | None = None,
    target_files: Iterable[str | Path] | None = None,
    concurrency: int | None = None,
    cancel_event: threading.Event | None = None,
    cache: FileResultCache | None = None,
    registry: RuleRegistry | None = None,
    config: AnalyzerConfig | None = None,
) -> AnalysisReport:
    """Analyze a project and return one aggregated report.

    A best-effort report is always returned once analysis has begun: rule,
    file-read and manifest failures are reported inside it.  Raises
    ``AnalysisError`` only when *project_path* is not a directory or no
    file could be read.  ``strict_mode`` and ``max_issues`` default to the
    project's ``.preflight/config.yml`` (strict, 1000).
    """
    started = time.perf_counter()
    root = _project_root(project_path)
    session = ProjectSession(
        root,
        framework=framework,
        enabled_rules=enabled_rules,
        disabled_rules=disabled_rules,
        strict_mode=strict_mode,
        predict_errors=predict_errors,
        analyze_dependencies=analyze_dependencies,
        max_issues=max_issues,
        concurrency=concurrency,
        registry=registry,
        config=config,
    )

    files = discover_files(root, target_files, exclude_dirs=session.config.exclude_dirs)
    if not files:
        msg = f"No analyzable files found in {root}"
        raise AnalysisError(msg)

    logger.info("Analyzing %d files in %s", len(files), root)
    with session.scheduler(cache) as scheduler:
        outcome = scheduler.run(files, session.analyze_file, cancel_event=cancel_event)

    if outcome.files_analyzed == 0 and not outcome.partial:
        msg = f"None of the {len(files)} files in {root} could be read"
        raise AnalysisError(msg)

    report = session.report(outcome, session.dependency_issues(outcome), started)
    logger.info(
        "Analysis finished: %d results, %d predictions, %d dependency issues",
        report.summary.total,
        report.summary.predictions,
        report.summary.dependency_issues,
    )
    return report


def analyze_snippet(
    code: str,
    *,
    language: str = "ts",
    framework: str | None = None,
    file_name: str | None = None,
    registry: RuleRegistry | None = None,
) -> SnippetResult:
    """Analyze an in-memory snippet: no file system, no dependency analysis."""
    started = time.perf_counter()
    ctx = FileContext(path=file_name or f"snippet.{language}", content=code, language=language)
    rules = (registry or default_registry()).list_rules()
    analysis = analyze_source(ctx, rules, framework=framework)
    results = sorted(analysis.results, key=lambda r: (severity_rank(r.severity), r.line or 0, r.column or 0))
    return SnippetResult(
        results=tuple(results),
        predictions=tuple(sorted(analysis.predictions, key=lambda p: -p.probability)),
        frameworks=tuple(sorted(analysis.frameworks)),
        elapsed_ms=(time.perf_counter() - started) * 1000,
    )


def validate_file(
    path: str | Path,
    *,
    content: str | None = None,
    framework: str | None = None,
    registry: RuleRegistry | None = None,
) -> SnippetResult:
    """Fast single-file validation for editor integrations.

    Non-strict (``best-practice`` rules skipped), no prediction, at most
    ``REALTIME_MAX_ISSUES`` results.  Raises ``AnalysisError`` when the file
    cannot be read and no *content* was given.
    """
    started = time.perf_counter()
    file_path = Path(path)
    if content is None:
        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            msg = f"Cannot read {file_path}: {exc}"
            raise AnalysisError(msg) from exc

    language = LANGUAGE_BY_EXTENSION.get(file_path.suffix.lower(), "ts")
    ctx = FileContext(path=file_path.as_posix(), content=content, language=language)
    rules = select_rules((registry or default_registry()).list_rules(), strict_mode=False)
    analysis = analyze_source(ctx, rules, framework=framework, predict_errors=False)
    results = sorted(analysis.results, key=lambda r: (severity_rank(r.severity), r.line or 0, r.column or 0))
    return SnippetResult(
        results=tuple(results[:REALTIME_MAX_ISSUES]),
        frameworks=tuple(sorted(analysis.frameworks)),
        elapsed_ms=(time.perf_counter() - started) * 1000,
    )


def watch_project(
    project_path: str | Path,
    callback: Callable[[WatchEvent], None] | None = None,
    *,
    stop_event: threading.Event | None = None,
    cache: FileResultCache | None = None,
    **options: Any,
) -> None:
    """Re-analyze changed files until interrupted (or *stop_event* is set).

    *options* are the :func:`analyze_project` settings.  Every settled
    batch goes through the same worker pool and result cache.
    """
    from preflight.scheduler.watcher import MANIFEST_FILES, watch

    root = _project_root(project_path)
    session = ProjectSession(root, **options)
    shared_cache = cache or FileResultCache()

    with session.scheduler(shared_cache) as scheduler:

        def analyze_batch(paths: list[str]) -> AnalysisReport:
            started = time.perf_counter()
            manifest_changed = any(Path(p).name in MANIFEST_FILES for p in paths)
            if manifest_changed:
                session.load_manifest()
                shared_cache.clear()
            sources = [source_file(root, p) for p in paths if Path(p).suffix in SOURCE_EXTENSIONS]
            outcome = scheduler.process_watch_batch(sources, session.analyze_file)
            issues = session.dependency_issues(outcome) if manifest_changed else []
            return session.report(outcome, issues, started)

        watch(
            root,
            analyze_batch,
            debounce_ms=session.config.debounce_ms,
            callback=callback,
            stop_event=stop_event,
            exclude_dirs=session.config.exclude_dirs,
        )
