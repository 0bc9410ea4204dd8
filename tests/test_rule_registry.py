"""Tests for preflight.rules.registry — rule descriptors and the registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from preflight.rules import RegistryFrozenError, RuleRegistry, ValidationRule, default_registry

if TYPE_CHECKING:
    from collections.abc import Iterator

    from preflight.models import AnalysisResult, FileContext


def _noop(ctx: FileContext) -> Iterator[AnalysisResult]:
    return iter(())


def _rule(rule_id: str, **overrides: object) -> ValidationRule:
    fields: dict[str, object] = {
        "id": rule_id,
        "name": rule_id,
        "description": f"{rule_id} rule",
        "category": "test",
        "severity": "warning",
        "check": _noop,
    }
    fields.update(overrides)
    return ValidationRule(**fields)  # type: ignore[arg-type]


class TestValidationRule:
    def test_invalid_severity_rejected(self) -> None:
        with pytest.raises(ValueError, match="invalid severity"):
            _rule("bad", severity="fatal")

    def test_invalid_kind_rejected(self) -> None:
        with pytest.raises(ValueError, match="invalid kind"):
            _rule("bad", kind="style")

    def test_universal_rule_applies_everywhere(self) -> None:
        rule = _rule("any")
        assert rule.is_universal
        assert rule.applies(frozenset())
        assert rule.applies(frozenset({"vue"}))

    def test_framework_rule_needs_shared_tag(self) -> None:
        rule = _rule("vue-only", applies_to=frozenset({"vue"}))
        assert rule.applies(frozenset({"vue", "react"}))
        assert not rule.applies(frozenset({"react"}))
        assert not rule.applies(frozenset())

    def test_file_patterns(self) -> None:
        rule = _rule("sfc", file_patterns=("*.vue",))
        assert rule.matches_file("src/components/App.vue")
        assert not rule.matches_file("src/main.ts")
        assert _rule("all").matches_file("anything.txt")


class TestRuleRegistry:
    def test_register_and_get(self) -> None:
        registry = RuleRegistry()
        rule = _rule("a")
        registry.register(rule)
        assert registry.get("a") is rule
        assert "a" in registry
        assert len(registry) == 1

    def test_get_unknown(self) -> None:
        assert RuleRegistry().get("missing") is None

    def test_replace_keeps_position(self) -> None:
        registry = RuleRegistry([_rule("a"), _rule("b")])
        replacement = _rule("a", severity="error")
        registry.register(replacement)

        ids = [rule.id for rule in registry.list_rules()]
        assert ids == ["a", "b"]
        assert registry.get("a") is replacement

    def test_frozen_registry_rejects_registration(self) -> None:
        registry = RuleRegistry([_rule("a")]).freeze()
        assert registry.frozen
        with pytest.raises(RegistryFrozenError):
            registry.register(_rule("b"))

    def test_copy_is_unfrozen(self) -> None:
        registry = RuleRegistry([_rule("a")]).freeze()
        layered = registry.copy()
        layered.register(_rule("b"))
        assert len(layered) == 2
        assert len(registry) == 1

    def test_list_rules_framework_filter(self) -> None:
        registry = RuleRegistry(
            [
                _rule("universal"),
                _rule("react-rule", applies_to=frozenset({"react"})),
                _rule("vue-rule", applies_to=frozenset({"vue"})),
            ]
        )
        ids = [rule.id for rule in registry.list_rules(["react"])]
        assert ids == ["universal", "react-rule"]

    def test_version_is_stable(self) -> None:
        first = RuleRegistry([_rule("a"), _rule("b")])
        second = RuleRegistry([_rule("a"), _rule("b")])
        assert first.version == second.version

    def test_version_changes_with_rule_set(self) -> None:
        registry = RuleRegistry([_rule("a")])
        before = registry.version
        registry.register(_rule("b"))
        assert registry.version != before

    def test_version_changes_when_rule_replaced(self) -> None:
        registry = RuleRegistry([_rule("a")])
        before = registry.version
        registry.register(_rule("a", severity="error"))
        assert registry.version != before


class TestDefaultRegistry:
    def test_is_frozen_singleton(self) -> None:
        registry = default_registry()
        assert registry is default_registry()
        assert registry.frozen

    def test_contains_builtin_packs(self) -> None:
        registry = default_registry()
        for rule_id in (
            "console-log-detection",
            "async-await-error-handling",
            "nextjs-server-components",
            "react-hooks-rules",
            "vue-template",
        ):
            assert rule_id in registry

    def test_rule_ids_unique(self) -> None:
        ids = [rule.id for rule in default_registry().list_rules()]
        assert len(ids) == len(set(ids))
