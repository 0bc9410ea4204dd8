"""Shared test fixtures for preflight."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


def write_files(root: Path, files: dict[str, str]) -> Path:
    """Write ``{relative path: content}`` under *root* and return *root*."""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture()
def make_project(tmp_path: Path) -> Callable[..., Path]:
    """Factory: create a project directory with files and an optional package.json."""

    def _make(
        files: dict[str, str],
        *,
        package: dict[str, object] | None = None,
        name: str = "proj",
    ) -> Path:
        project = tmp_path / name
        project.mkdir()
        if package is not None:
            (project / "package.json").write_text(json.dumps(package, indent=2), encoding="utf-8")
        return write_files(project, files)

    return _make


@pytest.fixture()
def nextjs_project(make_project: Callable[..., Path]) -> Path:
    """A small Next.js App Router project with one boundary violation."""
    return make_project(
        {
            "app/page.tsx": (
                "import { useState } from 'react';\n"
                "\n"
                "export default function Page() {\n"
                "  const [open, setOpen] = useState(false);\n"
                "  return <button onClick={() => setOpen(!open)}>Toggle</button>;\n"
                "}\n"
            ),
            "app/counter.tsx": (
                "'use client';\n"
                "import { useState } from 'react';\n"
                "\n"
                "export function Counter() {\n"
                "  const [count, setCount] = useState(0);\n"
                "  console.log(count);\n"
                "  return <p onClick={() => setCount((c) => c + 1)}>{count}</p>;\n"
                "}\n"
            ),
            "lib/format.ts": "export function format(value: number): string {\n  return value.toFixed(2);\n}\n",
        },
        package={
            "name": "web",
            "dependencies": {"next": "^14.1.0", "react": "^18.2.0", "react-dom": "^18.2.0"},
        },
    )
