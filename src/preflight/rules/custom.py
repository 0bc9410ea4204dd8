"""Project-defined pattern rules: parse ``.preflight/rules.yml`` into ValidationRules."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

import yaml

from preflight.frameworks import KNOWN_FRAMEWORKS
from preflight.models import VALID_SEVERITIES
from preflight.rules.engine import finding
from preflight.rules.registry import ValidationRule
from preflight.rules.source import mask_comments

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path

    from preflight.models import AnalysisResult, FileContext

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SUPPORTED_SCHEMA_VERSIONS: frozenset[int] = frozenset({1})
_RULE_ID_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")
_ALLOWED_KEYS: frozenset[str] = frozenset(
    {
        "id",
        "description",
        "severity",
        "category",
        "frameworks",
        "files",
        "forbid_pattern",
        "message",
        "suggestion",
    }
)


def _make_check(
    rule_id: str,
    severity: str,
    pattern: re.Pattern[str],
    message: str,
    category: str,
    suggestion: str | None,
) -> Callable[[FileContext], Iterator[AnalysisResult]]:
    def _check(ctx: FileContext) -> Iterator[AnalysisResult]:
        text = mask_comments(ctx.content)
        for match in pattern.finditer(text):
            yield finding(
                ctx,
                rule_id,
                severity,
                message.replace("{match}", match.group(0)),
                offset=match.start(),
                category=category,
                suggestion=suggestion,
            )

    return _check


def _string_list(rule_id: str, key: str, value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        msg = f"Rule '{rule_id}': '{key}' must be a string or a list of strings"
        raise ValueError(msg)
    return tuple(value)


def _parse_rule(idx: int, data: Any) -> ValidationRule:
    if not isinstance(data, dict):
        msg = f"rules.yml: rule at index {idx} must be a mapping"
        raise ValueError(msg)

    rule_id = data.get("id")
    if not isinstance(rule_id, str) or not _RULE_ID_RE.match(rule_id):
        msg = f"rules.yml: rule at index {idx} needs an 'id' of lowercase letters, digits and dashes"
        raise ValueError(msg)

    unknown = sorted(set(data) - _ALLOWED_KEYS)
    if unknown:
        msg = f"Rule '{rule_id}': unknown keys {unknown}"
        raise ValueError(msg)

    severity = str(data.get("severity", "warning"))
    if severity not in VALID_SEVERITIES:
        msg = (
            f"Rule '{rule_id}': invalid severity '{severity}', "
            f"must be one of {sorted(VALID_SEVERITIES)}"
        )
        raise ValueError(msg)

    raw_pattern = data.get("forbid_pattern")
    if not isinstance(raw_pattern, str) or not raw_pattern:
        msg = f"Rule '{rule_id}': 'forbid_pattern' must be a non-empty string"
        raise ValueError(msg)
    try:
        pattern = re.compile(raw_pattern, re.MULTILINE)
    except re.error as exc:
        msg = f"Rule '{rule_id}': invalid forbid_pattern: {exc}"
        raise ValueError(msg) from exc

    frameworks = _string_list(rule_id, "frameworks", data.get("frameworks"))
    bad = sorted(set(frameworks) - KNOWN_FRAMEWORKS)
    if bad:
        msg = f"Rule '{rule_id}': unknown frameworks {bad}, must be among {sorted(KNOWN_FRAMEWORKS)}"
        raise ValueError(msg)

    files = _string_list(rule_id, "files", data.get("files"))
    description = str(data.get("description", ""))
    category = str(data.get("category", "custom"))
    message = str(data.get("message") or description or "Forbidden pattern matched: {match}")
    suggestion = data.get("suggestion")

    return ValidationRule(
        id=rule_id,
        name=rule_id,
        description=description,
        category=category,
        severity=severity,
        check=_make_check(
            rule_id,
            severity,
            pattern,
            message,
            category,
            str(suggestion) if suggestion is not None else None,
        ),
        applies_to=frozenset(frameworks),
        file_patterns=files,
        fingerprint=f"{raw_pattern}|{message}",
    )


def load_custom_rules(rules_path: Path) -> list[ValidationRule]:
    """Parse a ``rules.yml`` of forbidden-pattern rules.

    Example::

        version: 1
        rules:
          - id: no-moment
            description: moment.js is deprecated here
            severity: warning
            files: ["*.ts", "*.tsx"]
            forbid_pattern: "from ['\\"]moment['\\"]"
            suggestion: Use date-fns

    Raises ``ValueError`` on schema errors.
    """
    with rules_path.open("r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            msg = f"rules.yml: invalid YAML: {exc}"
            raise ValueError(msg) from exc

    if not isinstance(data, dict):
        msg = "rules.yml must be a YAML mapping"
        raise ValueError(msg)

    version = data.get("version")
    if version is None:
        msg = "rules.yml: missing required 'version' field"
        raise ValueError(msg)
    if version not in SUPPORTED_SCHEMA_VERSIONS:
        expected = sorted(SUPPORTED_SCHEMA_VERSIONS)
        msg = f"rules.yml: unsupported version {version}, expected one of {expected}"
        raise ValueError(msg)

    rules_data = data.get("rules", [])
    if not isinstance(rules_data, list):
        msg = "rules.yml: 'rules' must be a list"
        raise ValueError(msg)

    seen: set[str] = set()
    rules: list[ValidationRule] = []
    for idx, rule_data in enumerate(rules_data):
        rule = _parse_rule(idx, rule_data)
        if rule.id in seen:
            msg = f"rules.yml: Duplicate rule id '{rule.id}'"
            raise ValueError(msg)
        seen.add(rule.id)
        rules.append(rule)

    logger.debug("Loaded %d custom rules from %s", len(rules), rules_path)
    return rules
