"""Rule registry: tagged rule descriptors and the process-wide rule set."""

from __future__ import annotations

import fnmatch
import hashlib
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

from preflight.models import VALID_SEVERITIES

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from preflight.models import AnalysisResult, FileContext

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

VALID_RULE_KINDS: frozenset[str] = frozenset({"correctness", "best-practice"})

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class RegistryFrozenError(RuntimeError):
    """Raised when a frozen registry is asked to register a rule."""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidationRule:
    """A named, severity-tagged check that scans one file.

    ``check`` must be a pure predicate over a :class:`FileContext`: it may
    read the file system (e.g. to resolve a relative import) but never
    mutates shared state.
    """

    id: str
    name: str
    description: str
    category: str
    severity: str  # "error" | "warning" | "info"
    check: Callable[[FileContext], Iterable[AnalysisResult]]
    applies_to: frozenset[str] = frozenset()  # empty = universal
    kind: str = "correctness"  # "correctness" | "best-practice"
    file_patterns: tuple[str, ...] = ()  # fnmatch globs on the file path; empty = all
    fingerprint: str = ""  # extra data folded into the registry version (custom rule patterns)

    def __post_init__(self) -> None:
        if self.severity not in VALID_SEVERITIES:
            msg = (
                f"Rule '{self.id}': invalid severity '{self.severity}', "
                f"must be one of {sorted(VALID_SEVERITIES)}"
            )
            raise ValueError(msg)
        if self.kind not in VALID_RULE_KINDS:
            msg = (
                f"Rule '{self.id}': invalid kind '{self.kind}', "
                f"must be one of {sorted(VALID_RULE_KINDS)}"
            )
            raise ValueError(msg)

    @property
    def is_universal(self) -> bool:
        return not self.applies_to

    def matches_file(self, path: str) -> bool:
        """Return True if *path* matches the rule's file patterns (or it has none)."""
        if not self.file_patterns:
            return True
        normalized = path.replace("\\", "/")
        return any(
            fnmatch.fnmatch(normalized, pattern) or fnmatch.fnmatch(normalized, f"*/{pattern}")
            for pattern in self.file_patterns
        )

    def applies(self, frameworks: frozenset[str] | set[str]) -> bool:
        """Framework applicability: universal, or sharing at least one tag."""
        return self.is_universal or bool(self.applies_to & frameworks)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class RuleRegistry:
    """Ordered set of rules keyed by id.

    Populated at startup, then frozen and shared read-only between
    concurrent analysis runs.
    """

    def __init__(self, rules: Iterable[ValidationRule] = ()) -> None:
        self._rules: dict[str, ValidationRule] = {}
        self._frozen = False
        self._lock = threading.Lock()
        for rule in rules:
            self.register(rule)

    def register(self, rule: ValidationRule) -> None:
        """Add *rule*, replacing any rule with the same id (last write wins).

        A replaced rule keeps its original position in the execution order.
        """
        with self._lock:
            if self._frozen:
                msg = f"Cannot register rule '{rule.id}': registry is frozen"
                raise RegistryFrozenError(msg)
            if rule.id in self._rules:
                logger.debug("Replacing rule %s", rule.id)
            self._rules[rule.id] = rule

    def register_all(self, rules: Iterable[ValidationRule]) -> None:
        for rule in rules:
            self.register(rule)

    def freeze(self) -> RuleRegistry:
        """Make the registry read-only.  Returns ``self`` for chaining."""
        with self._lock:
            self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def copy(self) -> RuleRegistry:
        """Return an unfrozen copy (used to layer project-specific rules)."""
        return RuleRegistry(self._rules.values())

    def get(self, rule_id: str) -> ValidationRule | None:
        return self._rules.get(rule_id)

    def list_rules(self, framework_filter: Iterable[str] | None = None) -> list[ValidationRule]:
        """Return rules in registration order.

        With *framework_filter*, only universal rules and rules applicable to
        at least one of the given frameworks are returned.
        """
        rules = list(self._rules.values())
        if framework_filter is None:
            return rules
        wanted = frozenset(framework_filter)
        return [rule for rule in rules if rule.applies(wanted)]

    @property
    def version(self) -> str:
        """Deterministic digest of the registered rule set.

        Changes whenever a rule is added, replaced with different metadata,
        or removed; used to key cached per-file results.
        """
        digest = hashlib.sha256()
        for rule in self._rules.values():
            digest.update(
                "|".join(
                    (
                        rule.id,
                        rule.severity,
                        rule.kind,
                        ",".join(sorted(rule.applies_to)),
                        ",".join(rule.file_patterns),
                        getattr(rule.check, "__qualname__", type(rule.check).__name__),
                        rule.fingerprint,
                    )
                ).encode("utf-8")
            )
            digest.update(b"\n")
        return digest.hexdigest()[:16]

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules


_DEFAULT_REGISTRY: RuleRegistry | None = None
_DEFAULT_LOCK = threading.Lock()


def default_registry() -> RuleRegistry:
    """Return the process-wide registry of built-in rules (created once, frozen)."""
    global _DEFAULT_REGISTRY
    with _DEFAULT_LOCK:
        if _DEFAULT_REGISTRY is None:
            from preflight.rules import builtin, nextjs, react, vue

            registry = RuleRegistry()
            registry.register_all(builtin.RULES)
            registry.register_all(nextjs.RULES)
            registry.register_all(react.RULES)
            registry.register_all(vue.RULES)
            _DEFAULT_REGISTRY = registry.freeze()
            logger.debug("Default registry built with %d rules", len(registry))
        return _DEFAULT_REGISTRY
