"""Dependency analyzer: missing, conflicting, peer, circular, duplicate and vulnerable packages."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING

from preflight.deps.semver import min_version, parse_version, ranges_overlap, satisfies
from preflight.deps.vulnerabilities import build_table, match_vulnerability
from preflight.models import DependencyIssue
from preflight.rules.source import is_builtin_module, package_name

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from preflight.deps.manifest import PackageManifest, ProjectManifest

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# package -> ((minimum major of that package, {peer: required range}), ...)
BUILTIN_PEERS: dict[str, tuple[tuple[int, dict[str, str]], ...]] = {
    "next": ((13, {"react": ">=18.2.0", "react-dom": ">=18.2.0"}), (0, {"react": "*", "react-dom": "*"})),
    "react-dom": ((0, {"react": "*"}),),
    "@types/react-dom": ((0, {"@types/react": "*"}),),
    "@testing-library/react": ((0, {"react": "*", "react-dom": "*"}),),
}


@dataclass(frozen=True)
class ImportUse:
    """One import specifier seen in a source file."""

    specifier: str
    file: str
    line: int | None = None


# ---------------------------------------------------------------------------
# Missing packages
# ---------------------------------------------------------------------------


def _is_external(specifier: str) -> bool:
    if specifier.startswith((".", "/", "@/", "~/", "#", "$lib/")):
        return False
    if is_builtin_module(specifier):
        return False
    # Bundler virtual modules ("virtual:pwa", "astro:content", ...).
    return ":" not in specifier


def find_missing(manifest: ProjectManifest, used_imports: Iterable[ImportUse]) -> list[DependencyIssue]:
    declared = manifest.declared_packages()
    reported: set[str] = set()
    issues: list[DependencyIssue] = []
    for use in used_imports:
        if not _is_external(use.specifier):
            continue
        package = package_name(use.specifier)
        if package in declared or package in reported:
            continue
        reported.add(package)
        issues.append(
            DependencyIssue(
                kind="missing",
                package=package,
                required_range="*",
                severity="warning",
                detail=f"'{package}' is imported but not declared in package.json",
                file=use.file,
                line=use.line,
            )
        )
    return issues


# ---------------------------------------------------------------------------
# Version conflicts
# ---------------------------------------------------------------------------


def find_version_conflicts(manifest: ProjectManifest) -> list[DependencyIssue]:
    """Declared ranges for one package that no single version can satisfy.

    Compared pairs: the same package across different manifests, and
    ``dependencies``/``devDependencies`` against ``peerDependencies`` within
    one manifest.
    """
    declarations: dict[str, list[tuple[PackageManifest, str, str]]] = {}
    for pkg_manifest in manifest.all_manifests():
        for section, ranges in pkg_manifest.sections():
            for name, spec in ranges.items():
                declarations.setdefault(name, []).append((pkg_manifest, section, spec))

    issues: list[DependencyIssue] = []
    for name in sorted(declarations):
        entries = declarations[name]
        conflict = _first_conflict(entries)
        if conflict is None:
            continue
        (first_manifest, first_section, first_spec), (second_manifest, second_section, second_spec) = conflict
        issues.append(
            DependencyIssue(
                kind="version-conflict",
                package=name,
                required_range=first_spec,
                severity="warning",
                detail=(
                    f"{first_manifest.path} {first_section} requires '{first_spec}' but "
                    f"{second_manifest.path} {second_section} requires '{second_spec}'"
                ),
                file=second_manifest.path,
                line=second_manifest.line_of(name),
            )
        )
    return issues


def _first_conflict(
    entries: list[tuple[PackageManifest, str, str]],
) -> tuple[tuple[PackageManifest, str, str], tuple[PackageManifest, str, str]] | None:
    for i, first in enumerate(entries):
        for second in entries[i + 1 :]:
            same_manifest = first[0].path == second[0].path
            if same_manifest and "peerDependencies" not in (first[1], second[1]):
                continue
            if not ranges_overlap(first[2], second[2]):
                return first, second
    return None


# ---------------------------------------------------------------------------
# Peer requirements
# ---------------------------------------------------------------------------


def _builtin_peers(package: str, spec: str) -> dict[str, str]:
    options = BUILTIN_PEERS.get(package)
    if not options:
        return {}
    floor = min_version(spec)
    major = floor.major if floor is not None else 0
    for min_major, peers in options:
        if major >= min_major:
            return peers
    return {}


def find_peer_mismatches(
    manifest: ProjectManifest,
    installed: Mapping[str, str],
    peer_requirements: Mapping[str, Mapping[str, str]] | None = None,
) -> list[DependencyIssue]:
    declared = manifest.root.all_declared()
    for workspace in manifest.workspaces:
        for name, spec in workspace.all_declared().items():
            declared.setdefault(name, spec)

    requirements = {name: dict(_builtin_peers(name, spec)) for name, spec in declared.items()}
    for pkg in manifest.locked:
        if pkg.is_top_level and pkg.name in declared and pkg.peer_dependencies:
            requirements.setdefault(pkg.name, {}).update(pkg.peer_dependencies)
    for name, peers in (peer_requirements or {}).items():
        if name in declared:
            requirements.setdefault(name, {}).update(peers)

    issues: list[DependencyIssue] = []
    for package in sorted(requirements):
        for peer, wanted in sorted(requirements[package].items()):
            version = installed.get(peer)
            if version is None and peer in declared:
                floor = min_version(declared[peer])
                version = str(floor) if floor is not None else None
            if peer not in declared and version is None:
                detail = f"'{package}' requires peer '{peer}@{wanted}', which is not installed"
            elif version is not None and not satisfies(version, wanted):
                detail = f"'{package}' requires peer '{peer}@{wanted}' but {version} is installed"
            else:
                continue
            issues.append(
                DependencyIssue(
                    kind="peer-mismatch",
                    package=peer,
                    required_range=wanted,
                    severity="warning",
                    detail=detail,
                    installed_version=version,
                    file=manifest.root.path,
                    line=manifest.root.line_of(package),
                )
            )
    return issues


# ---------------------------------------------------------------------------
# Circular dependencies
# ---------------------------------------------------------------------------


def _normalize_cycle(path: list[str]) -> tuple[str, ...]:
    """Rotate a cycle so its smallest element comes first (A->B->C == B->C->A)."""
    if not path:
        return ()
    min_idx = path.index(min(path))
    return tuple(path[min_idx:] + path[:min_idx])


def dependency_graph(manifest: ProjectManifest) -> dict[str, list[str]]:
    """Package-level adjacency from the lock file and workspace manifests."""
    adj: dict[str, set[str]] = {}
    for pkg in manifest.locked:
        adj.setdefault(pkg.name, set()).update(pkg.dependencies)
    local_names = {m.name for m in manifest.all_manifests() if m.name}
    for pkg_manifest in manifest.all_manifests():
        if not pkg_manifest.name:
            continue
        deps = set(pkg_manifest.dependencies) | set(pkg_manifest.dev_dependencies)
        if not manifest.locked:
            adj.setdefault(pkg_manifest.name, set()).update(deps)
        else:
            adj.setdefault(pkg_manifest.name, set()).update(deps & local_names)
    return {node: sorted(neighbors) for node, neighbors in sorted(adj.items())}


def _strongly_connected(adj: dict[str, list[str]]) -> list[list[str]]:
    """Tarjan's algorithm, iterative; components with a cycle only."""
    index: dict[str, int] = {}
    low: dict[str, int] = {}
    on_stack: set[str] = set()
    stack: list[str] = []
    components: list[list[str]] = []
    counter = 0

    for root in adj:
        if root in index:
            continue
        work: list[tuple[str, int]] = [(root, 0)]
        while work:
            node, child_idx = work.pop()
            if child_idx == 0:
                index[node] = low[node] = counter
                counter += 1
                stack.append(node)
                on_stack.add(node)
            neighbors = adj.get(node, [])
            if child_idx < len(neighbors):
                work.append((node, child_idx + 1))
                child = neighbors[child_idx]
                if child not in index:
                    work.append((child, 0))
                elif child in on_stack:
                    low[node] = min(low[node], index[child])
                continue
            if low[node] == index[node]:
                component: list[str] = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                if len(component) > 1 or node in adj.get(node, []):
                    components.append(sorted(component))
            if work:
                parent = work[-1][0]
                low[parent] = min(low[parent], low[node])
    return components


def _shortest_cycle(adj: dict[str, list[str]], members: list[str]) -> list[str]:
    allowed = set(members)
    best: list[str] | None = None
    for start in members:
        parents: dict[str, str | None] = {start: None}
        queue: deque[str] = deque([start])
        found: list[str] | None = None
        while queue and found is None:
            node = queue.popleft()
            for child in adj.get(node, []):
                if child not in allowed:
                    continue
                if child == start:
                    path = [node]
                    while parents[path[-1]] is not None:
                        path.append(parents[path[-1]])  # type: ignore[arg-type]
                    found = list(reversed(path))
                    break
                if child not in parents:
                    parents[child] = node
                    queue.append(child)
        if found is None:
            continue
        normalized = list(_normalize_cycle(found))
        if best is None or (len(normalized), normalized) < (len(best), best):
            best = normalized
    return best or []


def find_cycles(manifest: ProjectManifest) -> list[DependencyIssue]:
    """One issue per strongly connected group, reporting its shortest cycle."""
    adj = dependency_graph(manifest)
    issues: list[DependencyIssue] = []
    seen: set[tuple[str, ...]] = set()
    for component in _strongly_connected(adj):
        cycle = _shortest_cycle(adj, component)
        normalized = _normalize_cycle(cycle)
        if not cycle or normalized in seen:
            continue
        seen.add(normalized)
        display = " -> ".join([*cycle, cycle[0]])
        issues.append(
            DependencyIssue(
                kind="circular",
                package=cycle[0],
                required_range="*",
                severity="warning",
                detail=f"Circular dependency detected: {display}",
                file=manifest.lock_file or manifest.root.path,
            )
        )
    issues.sort(key=lambda issue: issue.detail)
    return issues


# ---------------------------------------------------------------------------
# Duplicates and vulnerabilities
# ---------------------------------------------------------------------------


def find_duplicates(manifest: ProjectManifest) -> list[DependencyIssue]:
    issues: list[DependencyIssue] = []
    for name, entries in sorted(manifest.locked_versions_by_name().items()):
        versions = sorted({pkg.version for pkg in entries}, key=_version_sort_key)
        if len(versions) < 2:
            continue
        issues.append(
            DependencyIssue(
                kind="duplicate",
                package=name,
                required_range="*",
                severity="info",
                detail=f"'{name}' is installed at {len(versions)} versions: {', '.join(versions)}",
                file=manifest.lock_file,
            )
        )
    for pkg_manifest in manifest.all_manifests():
        for name in sorted(set(pkg_manifest.dependencies) & set(pkg_manifest.dev_dependencies)):
            issues.append(
                DependencyIssue(
                    kind="duplicate",
                    package=name,
                    required_range=pkg_manifest.dependencies[name],
                    severity="info",
                    detail=f"'{name}' is listed in both dependencies and devDependencies",
                    file=pkg_manifest.path,
                    line=pkg_manifest.line_of(name),
                )
            )
    return issues


def _version_sort_key(version: str) -> tuple[int, tuple[object, ...]]:
    parsed = parse_version(version)
    return (0, parsed.sort_key) if parsed is not None else (1, (version,))


def find_vulnerable(
    manifest: ProjectManifest,
    installed: Mapping[str, str],
    vulnerable: Mapping[str, str] | None = None,
) -> list[DependencyIssue]:
    table = build_table(vulnerable)
    issues: list[DependencyIssue] = []
    reported: set[str] = set()
    for pkg_manifest in manifest.all_manifests():
        for name, spec in sorted(pkg_manifest.all_declared().items()):
            if name in reported or name not in table:
                continue
            version = installed.get(name)
            if version is None:
                floor = min_version(spec)
                version = str(floor) if floor is not None else None
            if version is None:
                continue
            entry = match_vulnerability(name, version, table)
            if entry is None:
                continue
            reported.add(name)
            issues.append(
                DependencyIssue(
                    kind="vulnerable",
                    package=name,
                    required_range=spec,
                    severity="error",
                    detail=f"{name}@{version} is in vulnerable range '{entry.range}': {entry.advisory}",
                    installed_version=version,
                    file=pkg_manifest.path,
                    line=pkg_manifest.line_of(name),
                )
            )
    return issues


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def analyze(
    manifest: ProjectManifest,
    locked_versions: Mapping[str, str] | None = None,
    used_imports: Iterable[ImportUse] = (),
    *,
    vulnerable: Mapping[str, str] | None = None,
    peer_requirements: Mapping[str, Mapping[str, str]] | None = None,
) -> list[DependencyIssue]:
    """Run every dependency check; pure over its inputs."""
    installed = dict(manifest.installed_versions())
    installed.update(locked_versions or {})

    issues: list[DependencyIssue] = []
    issues.extend(find_missing(manifest, used_imports))
    issues.extend(find_version_conflicts(manifest))
    issues.extend(find_peer_mismatches(manifest, installed, peer_requirements))
    issues.extend(find_cycles(manifest))
    issues.extend(find_duplicates(manifest))
    issues.extend(find_vulnerable(manifest, installed, vulnerable))
    logger.debug("Dependency analysis found %d issues", len(issues))
    return issues
