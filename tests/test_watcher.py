"""Tests for preflight.scheduler.watcher (unit tests for helpers)."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import pytest

from preflight.models import AnalysisReport, ReportSummary
from preflight.scheduler.watcher import (
    DEFAULT_DEBOUNCE_MS,
    WatchEvent,
    _filter_relevant,
    _format_time,
)

if TYPE_CHECKING:
    from pathlib import Path


class TestFilterRelevant:
    def test_source_files_pass(self, tmp_path: Path) -> None:
        changes = [
            (1, str(tmp_path / "src" / "App.tsx")),
            (1, str(tmp_path / "components" / "Card.vue")),
        ]
        assert _filter_relevant(changes, tmp_path) == ["src/App.tsx", "components/Card.vue"]

    def test_manifests_pass(self, tmp_path: Path) -> None:
        changes = [(2, str(tmp_path / "package.json")), (2, str(tmp_path / "package-lock.json"))]
        assert _filter_relevant(changes, tmp_path) == ["package.json", "package-lock.json"]

    def test_ignores_excluded_and_hidden_dirs(self, tmp_path: Path) -> None:
        changes = [
            (1, str(tmp_path / "node_modules" / "react" / "index.js")),
            (1, str(tmp_path / ".next" / "server" / "page.js")),
            (1, str(tmp_path / ".git" / "hooks" / "pre-commit.js")),
        ]
        assert _filter_relevant(changes, tmp_path) == []

    def test_custom_exclude_dirs(self, tmp_path: Path) -> None:
        changes = [(1, str(tmp_path / "generated" / "api.ts"))]
        assert _filter_relevant(changes, tmp_path) == ["generated/api.ts"]
        assert _filter_relevant(changes, tmp_path, frozenset({"generated"})) == []

    def test_ignores_temp_files(self, tmp_path: Path) -> None:
        changes = [(1, str(tmp_path / "~App.tsx")), (1, str(tmp_path / "App.tsx.tmp"))]
        assert _filter_relevant(changes, tmp_path) == []

    def test_ignores_unknown_extensions(self, tmp_path: Path) -> None:
        changes = [(1, str(tmp_path / "logo.png")), (1, str(tmp_path / "README.md"))]
        assert _filter_relevant(changes, tmp_path) == []

    def test_ignores_paths_outside_root(self, tmp_path: Path) -> None:
        changes = [(1, str(tmp_path.parent / "elsewhere.ts"))]
        assert _filter_relevant(changes, tmp_path / "project") == []


class TestFormatTime:
    def test_format_time(self) -> None:
        assert re.match(r"^\d{2}:\d{2}:\d{2}$", _format_time())


class TestWatchEvent:
    def test_fields(self) -> None:
        report = AnalysisReport(summary=ReportSummary())
        event = WatchEvent(paths=("src/a.ts",), manifest_changed=False, report=report)
        assert event.paths == ("src/a.ts",)
        assert event.report.summary.total == 0

    def test_frozen(self) -> None:
        event = WatchEvent(paths=(), manifest_changed=True, report=AnalysisReport(summary=ReportSummary()))
        with pytest.raises(AttributeError):
            event.manifest_changed = False  # type: ignore[misc]


class TestDefaultDebounceMs:
    def test_default_debounce_ms(self) -> None:
        assert DEFAULT_DEBOUNCE_MS == 300
