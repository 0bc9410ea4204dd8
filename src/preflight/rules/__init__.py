"""Rule registry, execution engine and the built-in rule packs."""

from preflight.rules.engine import applicable_rules, execute, finding, select_rules
from preflight.rules.registry import (
    RegistryFrozenError,
    RuleRegistry,
    ValidationRule,
    default_registry,
)

__all__ = [
    "RegistryFrozenError",
    "RuleRegistry",
    "ValidationRule",
    "applicable_rules",
    "default_registry",
    "execute",
    "finding",
    "select_rules",
]
