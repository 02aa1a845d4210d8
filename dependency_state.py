"""
dependency_state.py — Snapshot of which dependencies are already documented.

The snapshot maps dependency name → version as it was when its usage
guide was embedded. It is loaded at the start of a dependency build,
compared by *name only* against the workspace package.json, and
overwritten wholesale with the current mapping once the build succeeds.
A dependency whose version changed keeps its old documentation.
"""

from __future__ import annotations
import json
import os
from pathlib import Path
from typing import Mapping


DEPENDENCY_REF_FILE_NAME = "dependencies.json"


def read_workspace_dependencies(workspace: Path) -> dict[str, str]:
    """`dependencies` of the workspace package.json (empty when it has none)."""
    raw = json.loads((workspace / "package.json").read_text(encoding="utf-8"))
    deps = raw.get("dependencies") or {}
    if not isinstance(deps, dict):
        raise ValueError(f"package.json `dependencies` must be an object, got {type(deps).__name__}")
    return {str(name): str(version) for name, version in deps.items()}


def missing_dependencies(embedded: Mapping[str, str], current: Mapping[str, str]) -> list[str]:
    """Dependencies present in `current` but absent from `embedded`, in manifest order."""
    return [name for name in current if name not in embedded]


class DependencyStateStore:
    def __init__(self, state_dir: Path):
        self.state_dir = state_dir

    @property
    def path(self) -> Path:
        return self.state_dir / DEPENDENCY_REF_FILE_NAME

    def load(self) -> dict[str, str]:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return {}
        if not isinstance(raw, dict):
            return {}
        return {str(k): str(v) for k, v in raw.items()}

    def save(self, dependencies: Mapping[str, str]) -> Path:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(dict(dependencies), indent=2), encoding="utf-8")
        os.replace(tmp, self.path)
        return self.path
