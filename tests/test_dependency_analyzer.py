"""Tests for preflight.deps.analyzer — dependency graph checks."""

from __future__ import annotations

from preflight.deps import ImportUse, LockedPackage, PackageManifest, ProjectManifest, analyze
from preflight.deps.analyzer import (
    dependency_graph,
    find_cycles,
    find_duplicates,
    find_missing,
    find_peer_mismatches,
    find_version_conflicts,
    find_vulnerable,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _manifest(
    dependencies: dict[str, str] | None = None,
    *,
    name: str = "app",
    locked: tuple[LockedPackage, ...] = (),
    workspaces: tuple[PackageManifest, ...] = (),
    **sections: dict[str, str],
) -> ProjectManifest:
    root = PackageManifest(path="package.json", name=name, dependencies=dependencies or {}, **sections)
    return ProjectManifest(
        root=root,
        workspaces=workspaces,
        locked=locked,
        lock_file="package-lock.json" if locked else None,
    )


def _locked(name: str, version: str, deps: dict[str, str] | None = None, path: str | None = None) -> LockedPackage:
    return LockedPackage(name=name, version=version, path=path or f"node_modules/{name}", dependencies=deps or {})


# ---------------------------------------------------------------------------
# Missing
# ---------------------------------------------------------------------------


class TestMissing:
    def test_undeclared_import(self) -> None:
        uses = [
            ImportUse("react", "src/a.ts", 1),
            ImportUse("left-pad/lib/index", "src/a.ts", 3),
            ImportUse("left-pad", "src/b.ts", 1),
            ImportUse("./local", "src/a.ts", 4),
            ImportUse("@/components/x", "src/a.ts", 5),
            ImportUse("node:fs", "src/a.ts", 6),
            ImportUse("path", "src/a.ts", 7),
            ImportUse("virtual:pwa-register", "src/a.ts", 8),
        ]
        issues = find_missing(_manifest({"react": "^18.2.0"}), uses)
        assert len(issues) == 1
        issue = issues[0]
        assert issue.kind == "missing"
        assert issue.package == "left-pad"
        assert (issue.file, issue.line) == ("src/a.ts", 3)
        assert issue.detail == "'left-pad' is imported but not declared in package.json"

    def test_workspace_member_counts_as_declared(self) -> None:
        ui = PackageManifest(path="packages/ui/package.json", name="@mono/ui")
        issues = find_missing(_manifest(workspaces=(ui,)), [ImportUse("@mono/ui/button", "src/a.ts", 1)])
        assert issues == []


# ---------------------------------------------------------------------------
# Version conflicts
# ---------------------------------------------------------------------------


class TestVersionConflicts:
    def test_across_workspaces(self) -> None:
        web = PackageManifest(path="web/package.json", name="web", dependencies={"react": "^17.0.0"})
        issues = find_version_conflicts(_manifest({"react": "^18.2.0"}, workspaces=(web,)))
        assert len(issues) == 1
        assert issues[0].kind == "version-conflict"
        assert issues[0].detail == (
            "package.json dependencies requires '^18.2.0' but web/package.json dependencies requires '^17.0.0'"
        )
        assert issues[0].file == "web/package.json"

    def test_dependency_against_peer(self) -> None:
        issues = find_version_conflicts(
            _manifest({"react": "^18.2.0"}, peer_dependencies={"react": "^17.0.0"})
        )
        assert [i.package for i in issues] == ["react"]

    def test_dev_and_regular_in_same_manifest_ignored(self) -> None:
        issues = find_version_conflicts(_manifest({"react": "^18.2.0"}, dev_dependencies={"react": "^17.0.0"}))
        assert issues == []

    def test_compatible_ranges(self) -> None:
        web = PackageManifest(path="web/package.json", dependencies={"react": ">=18.0.0"})
        assert find_version_conflicts(_manifest({"react": "^18.2.0"}, workspaces=(web,))) == []


# ---------------------------------------------------------------------------
# Peers
# ---------------------------------------------------------------------------


class TestPeerMismatches:
    def test_next_requires_react_18(self) -> None:
        manifest = _manifest({"next": "14.0.0", "react": "17.0.2"})
        issues = find_peer_mismatches(manifest, {})
        assert [(i.kind, i.package) for i in issues] == [
            ("peer-mismatch", "react"),
            ("peer-mismatch", "react-dom"),
        ]
        assert issues[0].detail == "'next' requires peer 'react@>=18.2.0' but 17.0.2 is installed"
        assert issues[0].installed_version == "17.0.2"
        assert issues[1].detail == "'next' requires peer 'react-dom@>=18.2.0', which is not installed"

    def test_satisfied_peers(self) -> None:
        manifest = _manifest({"next": "^14.1.0", "react": "^18.2.0", "react-dom": "^18.2.0"})
        assert find_peer_mismatches(manifest, {}) == []

    def test_installed_version_wins_over_declared_floor(self) -> None:
        manifest = _manifest({"react-dom": "^18.2.0", "react": "^18.0.0"})
        issues = find_peer_mismatches(manifest, {"react": "17.0.2"}, {"react-dom": {"react": "^18.0.0"}})
        assert [i.detail for i in issues] == ["'react-dom' requires peer 'react@^18.0.0' but 17.0.2 is installed"]

    def test_lock_file_peer_requirements(self) -> None:
        lib = LockedPackage(
            name="react-query",
            version="3.39.0",
            path="node_modules/react-query",
            peer_dependencies={"react": "^16.8.0 || ^17.0.0"},
        )
        manifest = _manifest({"react-query": "^3.39.0", "react": "^18.2.0"}, locked=(lib,))
        issues = find_peer_mismatches(manifest, manifest.installed_versions())
        assert [i.package for i in issues] == ["react"]


# ---------------------------------------------------------------------------
# Cycles
# ---------------------------------------------------------------------------


class TestCycles:
    def test_three_node_cycle(self) -> None:
        manifest = _manifest(
            locked=(
                _locked("a", "1.0.0", {"b": "^1.0.0"}),
                _locked("b", "1.0.0", {"c": "^1.0.0"}),
                _locked("c", "1.0.0", {"a": "^1.0.0"}),
            )
        )
        issues = find_cycles(manifest)
        assert len(issues) == 1
        assert issues[0].kind == "circular"
        assert issues[0].detail == "Circular dependency detected: a -> b -> c -> a"
        assert issues[0].file == "package-lock.json"

    def test_rotation_is_normalized(self) -> None:
        manifest = _manifest(
            locked=(
                _locked("m", "1.0.0", {"k": "*"}),
                _locked("k", "1.0.0", {"z": "*"}),
                _locked("z", "1.0.0", {"m": "*"}),
            )
        )
        assert [i.detail for i in find_cycles(manifest)] == ["Circular dependency detected: k -> z -> m -> k"]

    def test_shortest_cycle_in_component(self) -> None:
        manifest = _manifest(
            locked=(
                _locked("a", "1.0.0", {"b": "*"}),
                _locked("b", "1.0.0", {"a": "*", "c": "*"}),
                _locked("c", "1.0.0", {"a": "*"}),
            )
        )
        assert [i.detail for i in find_cycles(manifest)] == ["Circular dependency detected: a -> b -> a"]

    def test_acyclic(self) -> None:
        manifest = _manifest(locked=(_locked("a", "1.0.0", {"b": "*"}), _locked("b", "1.0.0")))
        assert find_cycles(manifest) == []

    def test_workspace_cycle_without_lock(self) -> None:
        ui = PackageManifest(path="ui/package.json", name="ui", dependencies={"web": "workspace:*"})
        web = PackageManifest(path="web/package.json", name="web", dependencies={"ui": "workspace:*"})
        manifest = _manifest(workspaces=(ui, web))
        graph = dependency_graph(manifest)
        assert graph["ui"] == ["web"]
        assert [i.detail for i in find_cycles(manifest)] == ["Circular dependency detected: ui -> web -> ui"]


# ---------------------------------------------------------------------------
# Duplicates / vulnerabilities
# ---------------------------------------------------------------------------


class TestDuplicates:
    def test_multiple_locked_versions(self) -> None:
        manifest = _manifest(
            locked=(
                _locked("lodash", "4.17.21"),
                _locked("lodash", "3.10.1", path="node_modules/old/node_modules/lodash"),
            )
        )
        issues = find_duplicates(manifest)
        assert [i.detail for i in issues] == ["'lodash' is installed at 2 versions: 3.10.1, 4.17.21"]
        assert issues[0].severity == "info"

    def test_dependency_and_dev_dependency(self) -> None:
        manifest = _manifest({"typescript": "^5.0.0"}, dev_dependencies={"typescript": "^5.0.0"})
        assert [i.detail for i in find_duplicates(manifest)] == [
            "'typescript' is listed in both dependencies and devDependencies"
        ]


class TestVulnerable:
    def test_default_table(self) -> None:
        issues = find_vulnerable(_manifest({"lodash": "4.17.15"}), {})
        assert len(issues) == 1
        issue = issues[0]
        assert issue.kind == "vulnerable"
        assert issue.severity == "error"
        assert issue.installed_version == "4.17.15"
        assert issue.detail.startswith("lodash@4.17.15 is in vulnerable range '<4.17.21'")

    def test_patched_version(self) -> None:
        assert find_vulnerable(_manifest({"lodash": "^4.17.21"}), {}) == []

    def test_installed_version_is_checked(self) -> None:
        issues = find_vulnerable(_manifest({"lodash": "^4.17.0"}), {"lodash": "4.17.21"})
        assert issues == []

    def test_configured_range(self) -> None:
        issues = find_vulnerable(_manifest({"left-pad": "^1.3.0"}), {}, {"left-pad": "<2.0.0"})
        assert [i.package for i in issues] == ["left-pad"]
        assert issues[0].detail.endswith("Configured vulnerable range")


# ---------------------------------------------------------------------------
# analyze
# ---------------------------------------------------------------------------


class TestAnalyze:
    def test_combines_checks_in_order(self) -> None:
        manifest = _manifest(
            {"next": "14.0.0", "react": "17.0.2", "lodash": "4.17.15"},
            locked=(
                _locked("a", "1.0.0", {"b": "*"}),
                _locked("b", "1.0.0", {"a": "*"}),
            ),
        )
        issues = analyze(manifest, used_imports=[ImportUse("left-pad", "src/a.ts", 1)])
        assert [i.kind for i in issues] == [
            "missing",
            "peer-mismatch",
            "peer-mismatch",
            "circular",
            "vulnerable",
        ]

    def test_pure(self) -> None:
        manifest = _manifest({"next": "14.0.0", "react": "17.0.2"})
        assert analyze(manifest) == analyze(manifest)
