"""
type_resolver.py — Recursive resolution of a dependency's exported type surface.

Given an installed npm dependency, produce the full text of its type
definitions with every `export ... from "<target>"` followed:

  1. `types` (or legacy `typings`) in package.json → one resolution for
     the whole package.
  2. Otherwise every `exports` entry carrying a `types` condition → one
     resolution per entry, named `<dependency>/<subpath>`.
  3. Otherwise an installed `@types/<dependency>` companion package,
     resolved with this same algorithm and returned unchanged.
  4. Otherwise a warning and no resolutions.

Relative targets resolve to `<target>.d.ts`, or `<target>/index.d.ts` when
the target is a directory. A relative target that does not exist raises
FileNotFoundError and aborts the whole dependency. Bare targets name
another package and are resolved recursively; their text is appended to
the current resolution.

A single `resolve()` call remembers every file and package it has
expanded; re-entering one contributes nothing, which terminates cyclic
re-export graphs.
"""

from __future__ import annotations
import json
import os
import posixpath
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from parser import find_reexports


_DTS_SUFFIXES = (".d.ts", ".d.mts", ".d.cts")
_JS_TO_DTS = ((".mjs", ".d.mts"), (".cjs", ".d.cts"), (".js", ".d.ts"))
_EXPORT_CONDITIONS = ("import", "require", "default")


@dataclass
class TypeResolution:
    name: str
    types: str


# ---------------------------------------------------------------------------
# Manifest helpers
# ---------------------------------------------------------------------------

def package_name(specifier: str) -> str:
    """`lodash/fp` → `lodash`, `@scope/pkg/sub` → `@scope/pkg`."""
    parts = specifier.split("/")
    if specifier.startswith("@") and len(parts) >= 2:
        return "/".join(parts[:2])
    return parts[0]


def companion_types_package(dependency: str) -> str:
    if dependency.startswith("@"):
        return "@types/" + dependency[1:].replace("/", "__")
    return f"@types/{dependency}"


def _conditional_types(value: Any, nested: bool = False) -> Optional[str]:
    if not isinstance(value, dict):
        return None
    types = value.get("types")
    if isinstance(types, str) and types:
        return types
    if nested:
        return None
    for condition in _EXPORT_CONDITIONS:
        found = _conditional_types(value.get(condition), nested=True)
        if found:
            return found
    return None


def export_type_entries(manifest: dict) -> list[tuple[str, str]]:
    """(subpath key, types path) for every `exports` entry that declares types."""
    exports = manifest.get("exports")
    if not isinstance(exports, dict) or not exports:
        return []
    # A bare condition map is shorthand for the "." entry.
    if not any(key.startswith(".") for key in exports):
        exports = {".": exports}

    entries: list[tuple[str, str]] = []
    for key, value in exports.items():
        types_path = _conditional_types(value)
        if types_path:
            entries.append((key, types_path))
    return entries


def _relative_target(base_dir: Path, target: str) -> Path:
    candidate = Path(os.path.normpath(base_dir / target))
    if candidate.is_dir():
        return candidate / "index.d.ts"

    name = candidate.name
    if name.endswith(_DTS_SUFFIXES):
        return candidate
    for js_suffix, dts_suffix in _JS_TO_DTS:
        if name.endswith(js_suffix):
            return candidate.with_name(name[:-len(js_suffix)] + dts_suffix)
    return candidate.with_name(name + ".d.ts")


def _is_relative(target: str) -> bool:
    return target in (".", "..") or target.startswith(("./", "../"))


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class DependencyTypeResolver:
    def __init__(self, workspace: Path, *, verbose: bool = False):
        self.workspace = workspace
        self.node_modules = workspace / "node_modules"
        self.verbose = verbose

    def _log(self, msg: str):
        if self.verbose:
            print(msg, flush=True)

    def _warn(self, msg: str):
        print(f"WARNING: {msg}", file=sys.stderr, flush=True)

    def package_dir(self, name: str) -> Path:
        return self.node_modules / name

    def read_manifest(self, name: str) -> dict:
        path = self.package_dir(name) / "package.json"
        return json.loads(path.read_text(encoding="utf-8"))

    def is_installed(self, name: str) -> bool:
        return (self.package_dir(name) / "package.json").is_file()

    def read_readme(self, name: str) -> str:
        pkg_dir = self.package_dir(name)
        if not pkg_dir.is_dir():
            return ""
        for p in sorted(pkg_dir.iterdir()):
            if p.is_file() and p.name.lower() == "readme.md":
                try:
                    return p.read_text(encoding="utf-8", errors="replace")
                except OSError:
                    return ""
        return ""

    def resolve(self, dependency: str, manifest: Optional[dict] = None) -> list[TypeResolution]:
        if manifest is None:
            manifest = self.read_manifest(dependency)
        visited: set[str] = set()
        return self._resolve_package(dependency, manifest, visited)

    def _resolve_package(
        self,
        dependency: str,
        manifest: dict,
        visited: set[str],
    ) -> list[TypeResolution]:
        visited.add(f"package:{dependency}")
        pkg_dir = self.package_dir(dependency)

        types_field = manifest.get("types") or manifest.get("typings")
        if isinstance(types_field, str) and types_field:
            self._log(f"  {dependency}: resolving types from the types field")
            return [TypeResolution(
                name=dependency,
                types=self._expand_file(Path(os.path.normpath(pkg_dir / types_field)), visited),
            )]

        entries = export_type_entries(manifest)
        wildcard = [key for key, _ in entries if "*" in key]
        if wildcard:
            self._warn(f"{dependency}: skipping wildcard exports {wildcard}")
        entries = [(key, path) for key, path in entries if "*" not in key]
        if entries:
            self._log(f"  {dependency}: resolving types from exports {[key for key, _ in entries]}")
            return [
                TypeResolution(
                    name=posixpath.normpath(posixpath.join(dependency, key)),
                    types=self._expand_file(Path(os.path.normpath(pkg_dir / types_path)), set(visited)),
                )
                for key, types_path in entries
            ]

        companion = companion_types_package(dependency)
        if not dependency.startswith("@types/") and self.is_installed(companion):
            self._log(f"  {dependency}: resolving types from {companion}")
            return self._resolve_package(companion, self.read_manifest(companion), visited)

        self._warn(f"Dependency has no types: {dependency}")
        return []

    def _expand_file(self, path: Path, visited: set[str]) -> str:
        key = f"file:{path.resolve()}"
        if key in visited:
            return ""
        visited.add(key)

        text = path.read_text(encoding="utf-8")
        blocks = [text]
        for target in find_reexports(text):
            self._log(f"    {path.name}: following re-export {target!r}")
            if _is_relative(target):
                nested = self._expand_file(_relative_target(path.parent, target), visited)
            else:
                nested = self._expand_package(target, visited)
            if nested:
                blocks.append(nested)
        return "\n\n".join(blocks)

    def _expand_package(self, specifier: str, visited: set[str]) -> str:
        if specifier.startswith("node:"):
            return ""
        name = package_name(specifier)
        if f"package:{name}" in visited:
            return ""
        if not self.is_installed(name):
            self._warn(f"Re-exported package is not installed: {name}")
            return ""

        resolutions = self._resolve_package(name, self.read_manifest(name), visited)
        return "\n\n".join(r.types for r in resolutions if r.types)
