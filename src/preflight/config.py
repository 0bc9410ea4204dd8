"""Project configuration: ``.preflight/config.yml``."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from typing import TYPE_CHECKING, Any

import yaml

from preflight.scheduler.discovery import EXCLUDED_DIRS

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CONFIG_DIR = ".preflight"
CONFIG_FILE = "config.yml"
RULES_FILE = "rules.yml"

DEFAULT_MAX_ISSUES = 1000
DEFAULT_DEBOUNCE_MS = 300

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when ``config.yml`` holds a value of the wrong type."""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AnalyzerConfig:
    """Analysis settings; every field has a default."""

    max_issues: int = DEFAULT_MAX_ISSUES
    concurrency: int | None = None  # None = os.cpu_count()
    strict_mode: bool = True
    enabled_rules: tuple[str, ...] = ()
    disabled_rules: tuple[str, ...] = ()
    exclude_dirs: frozenset[str] = EXCLUDED_DIRS
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    vulnerable: dict[str, str] = field(default_factory=dict)  # package -> affected range

    def with_overrides(self, **overrides: Any) -> AnalyzerConfig:
        """Copy with the non-None *overrides* applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _positive_int(data: dict[str, Any], key: str) -> int:
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        msg = f"{CONFIG_FILE}: '{key}' must be a positive integer, got {value!r}"
        raise ConfigError(msg)
    return value


def _string_list(data: dict[str, Any], key: str) -> tuple[str, ...]:
    value = data[key]
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        msg = f"{CONFIG_FILE}: '{key}' must be a list of strings"
        raise ConfigError(msg)
    return tuple(value)


def parse_config(data: dict[str, Any]) -> AnalyzerConfig:
    """Build an :class:`AnalyzerConfig` from a parsed mapping.

    Unknown keys are ignored with a warning.  Raises ``ConfigError`` on
    wrongly typed values.
    """
    known = {f.name for f in fields(AnalyzerConfig)}
    for key in sorted(set(data) - known):
        logger.warning("%s: ignoring unknown key '%s'", CONFIG_FILE, key)

    kwargs: dict[str, Any] = {}
    for key in ("max_issues", "concurrency", "debounce_ms"):
        if data.get(key) is not None:
            kwargs[key] = _positive_int(data, key)

    if "strict_mode" in data:
        if not isinstance(data["strict_mode"], bool):
            msg = f"{CONFIG_FILE}: 'strict_mode' must be a boolean"
            raise ConfigError(msg)
        kwargs["strict_mode"] = data["strict_mode"]

    for key in ("enabled_rules", "disabled_rules"):
        if key in data:
            kwargs[key] = _string_list(data, key)

    if "exclude_dirs" in data:
        kwargs["exclude_dirs"] = EXCLUDED_DIRS | frozenset(_string_list(data, "exclude_dirs"))

    if "vulnerable" in data:
        table = data["vulnerable"]
        if not isinstance(table, dict):
            msg = f"{CONFIG_FILE}: 'vulnerable' must be a mapping of package to version range"
            raise ConfigError(msg)
        kwargs["vulnerable"] = {str(name): str(spec) for name, spec in table.items()}

    return AnalyzerConfig(**kwargs)


def load_config(project_root: Path) -> AnalyzerConfig:
    """Load ``.preflight/config.yml``.

    Falls back to defaults when the file is missing, unreadable or not a
    mapping.  Raises ``ConfigError`` when a value has the wrong type.
    """
    config_path = project_root / CONFIG_DIR / CONFIG_FILE
    if not config_path.is_file():
        return AnalyzerConfig()

    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError):
        logger.warning("Failed to read %s, using default settings", config_path)
        return AnalyzerConfig()

    if not isinstance(data, dict):
        return AnalyzerConfig()

    return parse_config(data)
