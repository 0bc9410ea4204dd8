"""Tests for preflight.config — .preflight/config.yml loading."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from preflight.config import (
    DEFAULT_DEBOUNCE_MS,
    DEFAULT_MAX_ISSUES,
    AnalyzerConfig,
    ConfigError,
    load_config,
    parse_config,
)
from preflight.scheduler.discovery import EXCLUDED_DIRS

if TYPE_CHECKING:
    from pathlib import Path


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_config(root: Path, text: str) -> None:
    config_dir = root / ".preflight"
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "config.yml").write_text(text, encoding="utf-8")


class TestDefaults:
    def test_values(self) -> None:
        config = AnalyzerConfig()
        assert config.max_issues == DEFAULT_MAX_ISSUES == 1000
        assert config.debounce_ms == DEFAULT_DEBOUNCE_MS == 300
        assert config.concurrency is None
        assert config.strict_mode is True
        assert config.enabled_rules == ()
        assert config.exclude_dirs == EXCLUDED_DIRS
        assert config.vulnerable == {}

    def test_with_overrides_skips_none(self) -> None:
        config = AnalyzerConfig(max_issues=50).with_overrides(max_issues=None, strict_mode=False)
        assert config.max_issues == 50
        assert config.strict_mode is False


class TestParseConfig:
    def test_all_fields(self) -> None:
        config = parse_config(
            {
                "max_issues": 20,
                "concurrency": 2,
                "strict_mode": False,
                "enabled_rules": ["console-log-detection"],
                "disabled_rules": ["typescript-any-usage"],
                "exclude_dirs": ["generated"],
                "debounce_ms": 150,
                "vulnerable": {"left-pad": "<2.0.0"},
            }
        )
        assert config.max_issues == 20
        assert config.concurrency == 2
        assert config.strict_mode is False
        assert config.enabled_rules == ("console-log-detection",)
        assert config.disabled_rules == ("typescript-any-usage",)
        assert "generated" in config.exclude_dirs
        assert "node_modules" in config.exclude_dirs
        assert config.debounce_ms == 150
        assert config.vulnerable == {"left-pad": "<2.0.0"}

    def test_unknown_keys_ignored(self, caplog: pytest.LogCaptureFixture) -> None:
        config = parse_config({"colour": "blue", "max_issues": 5})
        assert config.max_issues == 5
        assert "ignoring unknown key 'colour'" in caplog.text

    def test_null_concurrency_keeps_default(self) -> None:
        assert parse_config({"concurrency": None}).concurrency is None

    @pytest.mark.parametrize(
        ("data", "message"),
        [
            ({"max_issues": 0}, "'max_issues' must be a positive integer, got 0"),
            ({"concurrency": True}, "'concurrency' must be a positive integer"),
            ({"debounce_ms": "300"}, "'debounce_ms' must be a positive integer"),
            ({"strict_mode": "yes"}, "'strict_mode' must be a boolean"),
            ({"enabled_rules": "console-log-detection"}, "'enabled_rules' must be a list of strings"),
            ({"disabled_rules": [1, 2]}, "'disabled_rules' must be a list of strings"),
            ({"vulnerable": ["lodash"]}, "'vulnerable' must be a mapping"),
        ],
    )
    def test_wrong_types(self, data: dict[str, object], message: str) -> None:
        with pytest.raises(ConfigError, match=message):
            parse_config(data)

    def test_config_error_is_value_error(self) -> None:
        assert issubclass(ConfigError, ValueError)


class TestLoadConfig:
    def test_missing_file(self, tmp_path: Path) -> None:
        assert load_config(tmp_path) == AnalyzerConfig()

    def test_reads_yaml(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "max_issues: 10\nstrict_mode: false\ndisabled_rules:\n  - react-key-prop\n")
        config = load_config(tmp_path)
        assert config.max_issues == 10
        assert config.strict_mode is False
        assert config.disabled_rules == ("react-key-prop",)

    def test_invalid_yaml_falls_back(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "max_issues: [1, 2\n")
        assert load_config(tmp_path) == AnalyzerConfig()

    def test_non_mapping_falls_back(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "- one\n- two\n")
        assert load_config(tmp_path) == AnalyzerConfig()

    def test_empty_file_falls_back(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "")
        assert load_config(tmp_path) == AnalyzerConfig()

    def test_wrong_type_propagates(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "max_issues: -3\n")
        with pytest.raises(ConfigError):
            load_config(tmp_path)
