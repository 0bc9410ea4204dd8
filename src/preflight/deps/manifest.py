"""Read package.json, workspace manifests and package-lock.json."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MANIFEST_FILE = "package.json"
LOCK_FILE = "package-lock.json"
DEPENDENCY_FIELDS: tuple[str, ...] = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)
_KEY_LINE_RE = re.compile(r'^\s*"(?P<key>[^"]+)"\s*:')

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ManifestError(Exception):
    """Raised when a package manifest or lock file cannot be parsed."""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PackageManifest:
    """One ``package.json`` (the root or a workspace member)."""

    path: str  # relative to the project root, POSIX separators
    name: str | None = None
    version: str | None = None
    dependencies: dict[str, str] = field(default_factory=dict)
    dev_dependencies: dict[str, str] = field(default_factory=dict)
    peer_dependencies: dict[str, str] = field(default_factory=dict)
    optional_dependencies: dict[str, str] = field(default_factory=dict)
    key_lines: dict[str, int] = field(default_factory=dict)  # first line of each JSON key

    def all_declared(self) -> dict[str, str]:
        """Every declared package with its effective range (``dependencies`` wins)."""
        merged: dict[str, str] = {}
        for section in (
            self.peer_dependencies,
            self.optional_dependencies,
            self.dev_dependencies,
            self.dependencies,
        ):
            merged.update(section)
        return merged

    def sections(self) -> tuple[tuple[str, dict[str, str]], ...]:
        """``(field, ranges)`` pairs in package.json field order."""
        return tuple(
            zip(
                DEPENDENCY_FIELDS,
                (
                    self.dependencies,
                    self.dev_dependencies,
                    self.peer_dependencies,
                    self.optional_dependencies,
                ),
                strict=True,
            )
        )

    def line_of(self, package: str) -> int | None:
        return self.key_lines.get(package)


@dataclass(frozen=True)
class LockedPackage:
    """A resolved package entry from package-lock.json."""

    name: str
    version: str
    path: str  # e.g. "node_modules/a/node_modules/b"
    dependencies: dict[str, str] = field(default_factory=dict)
    peer_dependencies: dict[str, str] = field(default_factory=dict)

    @property
    def is_top_level(self) -> bool:
        return self.path == f"node_modules/{self.name}"


@dataclass(frozen=True)
class ProjectManifest:
    """Root manifest, workspace members and the lock file of one project."""

    root: PackageManifest
    workspaces: tuple[PackageManifest, ...] = ()
    locked: tuple[LockedPackage, ...] = ()
    lock_file: str | None = None

    def all_manifests(self) -> tuple[PackageManifest, ...]:
        return (self.root, *self.workspaces)

    def declared_packages(self) -> frozenset[str]:
        """Names declared anywhere, plus the workspace members themselves."""
        names: set[str] = set()
        for manifest in self.all_manifests():
            names.update(manifest.all_declared())
            if manifest.name:
                names.add(manifest.name)
        return frozenset(names)

    def installed_versions(self) -> dict[str, str]:
        """Top-level resolved version of each locked package."""
        return {pkg.name: pkg.version for pkg in self.locked if pkg.is_top_level}

    def locked_versions_by_name(self) -> dict[str, list[LockedPackage]]:
        grouped: dict[str, list[LockedPackage]] = {}
        for pkg in self.locked:
            grouped.setdefault(pkg.name, []).append(pkg)
        return grouped


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _read_json(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read {path}: {exc}"
        raise ManifestError(msg) from exc
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        msg = f"{path.name}: invalid JSON at line {exc.lineno}: {exc.msg}"
        raise ManifestError(msg) from exc
    if not isinstance(data, dict):
        msg = f"{path.name}: top level must be a JSON object"
        raise ManifestError(msg)
    return data


def _key_lines(path: Path) -> dict[str, int]:
    lines: dict[str, int] = {}
    for lineno, line in enumerate(path.read_text(encoding="utf-8").split("\n"), start=1):
        match = _KEY_LINE_RE.match(line)
        if match is not None:
            lines.setdefault(match.group("key"), lineno)
    return lines


def _string_map(data: dict[str, Any], key: str, source: str) -> dict[str, str]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        msg = f"{source}: '{key}' must be an object"
        raise ManifestError(msg)
    return {str(name): str(spec) for name, spec in value.items()}


def parse_package_json(path: Path, project_root: Path) -> PackageManifest:
    """Parse one ``package.json``.  Raises ``ManifestError`` on malformed input."""
    data = _read_json(path)
    rel = path.relative_to(project_root).as_posix()
    name = data.get("name")
    version = data.get("version")
    return PackageManifest(
        path=rel,
        name=name if isinstance(name, str) else None,
        version=version if isinstance(version, str) else None,
        dependencies=_string_map(data, "dependencies", rel),
        dev_dependencies=_string_map(data, "devDependencies", rel),
        peer_dependencies=_string_map(data, "peerDependencies", rel),
        optional_dependencies=_string_map(data, "optionalDependencies", rel),
        key_lines=_key_lines(path),
    )


def _workspace_patterns(data: dict[str, Any]) -> list[str]:
    raw = data.get("workspaces")
    if isinstance(raw, dict):
        raw = raw.get("packages")
    if not isinstance(raw, list):
        return []
    return [str(item) for item in raw if isinstance(item, str) and not item.startswith("!")]


def _workspace_manifests(project_root: Path, patterns: list[str]) -> list[Path]:
    found: dict[str, Path] = {}
    for pattern in patterns:
        for directory in sorted(project_root.glob(pattern.rstrip("/"))):
            candidate = directory / MANIFEST_FILE
            if "node_modules" in directory.parts or not candidate.is_file():
                continue
            found.setdefault(candidate.as_posix(), candidate)
    return list(found.values())


def _required_peers(entry: dict[str, Any], source: str) -> dict[str, str]:
    """Peer ranges minus those marked optional in ``peerDependenciesMeta``."""
    peers = _string_map(entry, "peerDependencies", source)
    meta = entry.get("peerDependenciesMeta")
    if isinstance(meta, dict):
        for name, flags in meta.items():
            if isinstance(flags, dict) and flags.get("optional"):
                peers.pop(name, None)
    return peers


def _name_from_lock_path(key: str) -> str:
    return key.rsplit("node_modules/", 1)[-1]


def _parse_lock_v2(packages: dict[str, Any]) -> list[LockedPackage]:
    locked: list[LockedPackage] = []
    for key, entry in packages.items():
        if not key or "node_modules/" not in key or not isinstance(entry, dict):
            continue
        if entry.get("link"):
            continue
        version = entry.get("version")
        if not isinstance(version, str):
            continue
        locked.append(
            LockedPackage(
                name=str(entry.get("name") or _name_from_lock_path(key)),
                version=version,
                path=key,
                dependencies={
                    **_string_map(entry, "optionalDependencies", key),
                    **_string_map(entry, "dependencies", key),
                },
                peer_dependencies=_required_peers(entry, key),
            )
        )
    return locked


def _parse_lock_v1(dependencies: dict[str, Any], prefix: str = "") -> list[LockedPackage]:
    locked: list[LockedPackage] = []
    for name, entry in dependencies.items():
        if not isinstance(entry, dict):
            continue
        path = f"{prefix}node_modules/{name}"
        version = entry.get("version")
        if isinstance(version, str):
            locked.append(
                LockedPackage(
                    name=name,
                    version=version,
                    path=path,
                    dependencies=_string_map(entry, "requires", path),
                )
            )
        nested = entry.get("dependencies")
        if isinstance(nested, dict):
            locked.extend(_parse_lock_v1(nested, f"{path}/"))
    return locked


def parse_lock_file(path: Path) -> list[LockedPackage]:
    """Parse package-lock.json (lockfileVersion 1, 2 or 3)."""
    data = _read_json(path)
    packages = data.get("packages")
    if isinstance(packages, dict):
        locked = _parse_lock_v2(packages)
    else:
        dependencies = data.get("dependencies")
        locked = _parse_lock_v1(dependencies) if isinstance(dependencies, dict) else []
    locked.sort(key=lambda pkg: pkg.path)
    return locked


def load_manifest(project_root: Path) -> ProjectManifest | None:
    """Load the project's manifests; ``None`` when there is no package.json.

    Raises ``ManifestError`` when any manifest or the lock file is malformed.
    """
    root_path = project_root / MANIFEST_FILE
    if not root_path.is_file():
        logger.debug("No %s in %s", MANIFEST_FILE, project_root)
        return None

    root = parse_package_json(root_path, project_root)
    workspaces = tuple(
        parse_package_json(path, project_root)
        for path in _workspace_manifests(project_root, _workspace_patterns(_read_json(root_path)))
    )

    lock_path = project_root / LOCK_FILE
    locked: tuple[LockedPackage, ...] = ()
    lock_file: str | None = None
    if lock_path.is_file():
        locked = tuple(parse_lock_file(lock_path))
        lock_file = LOCK_FILE

    logger.debug(
        "Loaded manifest: %d workspaces, %d locked packages",
        len(workspaces),
        len(locked),
    )
    return ProjectManifest(root=root, workspaces=workspaces, locked=locked, lock_file=lock_file)
