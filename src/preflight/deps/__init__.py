"""Dependency analysis over package.json, workspaces and package-lock.json."""

from preflight.deps.analyzer import ImportUse, analyze
from preflight.deps.manifest import (
    LockedPackage,
    ManifestError,
    PackageManifest,
    ProjectManifest,
    load_manifest,
)

__all__ = [
    "ImportUse",
    "LockedPackage",
    "ManifestError",
    "PackageManifest",
    "ProjectManifest",
    "analyze",
    "load_manifest",
]
