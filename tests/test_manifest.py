"""Tests for preflight.deps.manifest — package.json, workspaces and lock files."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from preflight.deps.manifest import ManifestError, load_manifest, parse_lock_file

if TYPE_CHECKING:
    from pathlib import Path


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_json(path: Path, data: object) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


class TestLoadManifest:
    def test_no_package_json(self, tmp_path: Path) -> None:
        assert load_manifest(tmp_path) is None

    def test_root_manifest(self, tmp_path: Path) -> None:
        _write_json(
            tmp_path / "package.json",
            {
                "name": "web",
                "version": "1.0.0",
                "dependencies": {"react": "^18.2.0"},
                "devDependencies": {"typescript": "^5.3.0", "react": "^18.0.0"},
                "peerDependencies": {"react-dom": "*"},
            },
        )
        manifest = load_manifest(tmp_path)
        assert manifest is not None
        root = manifest.root
        assert root.path == "package.json"
        assert root.name == "web"
        assert root.dependencies == {"react": "^18.2.0"}
        assert root.all_declared() == {"react": "^18.2.0", "typescript": "^5.3.0", "react-dom": "*"}
        assert manifest.declared_packages() == frozenset({"web", "react", "typescript", "react-dom"})
        assert manifest.lock_file is None

    def test_key_lines(self, tmp_path: Path) -> None:
        _write_json(tmp_path / "package.json", {"name": "web", "dependencies": {"next": "14.1.0"}})
        manifest = load_manifest(tmp_path)
        assert manifest is not None
        # {, "name", "dependencies", "next"
        assert manifest.root.line_of("next") == 4
        assert manifest.root.line_of("missing") is None

    def test_workspaces(self, tmp_path: Path) -> None:
        _write_json(tmp_path / "package.json", {"name": "mono", "workspaces": ["packages/*"]})
        _write_json(tmp_path / "packages" / "ui" / "package.json", {"name": "@mono/ui"})
        _write_json(
            tmp_path / "packages" / "web" / "package.json",
            {"name": "@mono/web", "dependencies": {"@mono/ui": "workspace:*"}},
        )
        (tmp_path / "packages" / "docs").mkdir()

        manifest = load_manifest(tmp_path)
        assert manifest is not None
        assert [m.path for m in manifest.workspaces] == ["packages/ui/package.json", "packages/web/package.json"]
        assert "@mono/ui" in manifest.declared_packages()

    def test_workspaces_object_form(self, tmp_path: Path) -> None:
        _write_json(tmp_path / "package.json", {"workspaces": {"packages": ["apps/*"]}})
        _write_json(tmp_path / "apps" / "site" / "package.json", {"name": "site"})
        manifest = load_manifest(tmp_path)
        assert manifest is not None
        assert [m.name for m in manifest.workspaces] == ["site"]

    def test_invalid_json(self, tmp_path: Path) -> None:
        (tmp_path / "package.json").write_text('{"name": "web",\n', encoding="utf-8")
        with pytest.raises(ManifestError, match="invalid JSON"):
            load_manifest(tmp_path)

    def test_non_object_section(self, tmp_path: Path) -> None:
        _write_json(tmp_path / "package.json", {"dependencies": ["react"]})
        with pytest.raises(ManifestError, match="'dependencies' must be an object"):
            load_manifest(tmp_path)

    def test_top_level_must_be_object(self, tmp_path: Path) -> None:
        _write_json(tmp_path / "package.json", ["not", "an", "object"])
        with pytest.raises(ManifestError, match="top level must be a JSON object"):
            load_manifest(tmp_path)


class TestParseLockFile:
    def test_lockfile_v3(self, tmp_path: Path) -> None:
        lock = _write_json(
            tmp_path / "package-lock.json",
            {
                "lockfileVersion": 3,
                "packages": {
                    "": {"name": "web", "dependencies": {"react-dom": "^18.2.0"}},
                    "node_modules/react-dom": {
                        "version": "18.2.0",
                        "dependencies": {"scheduler": "^0.23.0"},
                        "peerDependencies": {"react": "^18.2.0", "@types/react": "*"},
                        "peerDependenciesMeta": {"@types/react": {"optional": True}},
                    },
                    "node_modules/react": {"version": "18.2.0"},
                    "node_modules/a/node_modules/b": {"version": "1.0.0"},
                    "node_modules/web-ui": {"resolved": "packages/ui", "link": True},
                },
            },
        )
        locked = parse_lock_file(lock)
        assert [(pkg.name, pkg.path) for pkg in locked] == [
            ("b", "node_modules/a/node_modules/b"),
            ("react", "node_modules/react"),
            ("react-dom", "node_modules/react-dom"),
        ]
        react_dom = locked[2]
        assert react_dom.is_top_level
        assert react_dom.dependencies == {"scheduler": "^0.23.0"}
        assert react_dom.peer_dependencies == {"react": "^18.2.0"}
        assert not locked[0].is_top_level

    def test_lockfile_v1(self, tmp_path: Path) -> None:
        lock = _write_json(
            tmp_path / "package-lock.json",
            {
                "lockfileVersion": 1,
                "dependencies": {
                    "a": {
                        "version": "1.0.0",
                        "requires": {"b": "^2.0.0"},
                        "dependencies": {"b": {"version": "2.1.0"}},
                    },
                    "b": {"version": "1.0.0"},
                },
            },
        )
        locked = parse_lock_file(lock)
        assert [(pkg.name, pkg.version, pkg.path) for pkg in locked] == [
            ("a", "1.0.0", "node_modules/a"),
            ("b", "2.1.0", "node_modules/a/node_modules/b"),
            ("b", "1.0.0", "node_modules/b"),
        ]
        assert locked[0].dependencies == {"b": "^2.0.0"}

    def test_manifest_picks_up_lock(self, tmp_path: Path) -> None:
        _write_json(tmp_path / "package.json", {"name": "web", "dependencies": {"react": "^18.0.0"}})
        _write_json(
            tmp_path / "package-lock.json",
            {"lockfileVersion": 3, "packages": {"node_modules/react": {"version": "18.2.0"}}},
        )
        manifest = load_manifest(tmp_path)
        assert manifest is not None
        assert manifest.lock_file == "package-lock.json"
        assert manifest.installed_versions() == {"react": "18.2.0"}
