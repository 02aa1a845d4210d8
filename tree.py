"""
tree.py — Bottom-up traversal of a flat list of workspace-relative paths.

The paths are folded into a directory hierarchy, then walked post-order:
every file in a directory and every sub-directory is summarized first,
and only then is the directory's own callback invoked with all of its
children's results (files first, then sub-directories, both in sorted
order). Sibling subtrees are visited concurrently; callers that need the
callbacks themselves to run one at a time route them through a
`SerialQueue`, which keeps them in the order they were issued.

The root directory has no path segment of its own and is reported with
the `ROOT` sentinel.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, TypeVar

ROOT = "$ROOT"

T = TypeVar("T")


@dataclass
class SummaryResult(Generic[T]):
    path: str
    kind: str  # "file" | "directory"
    summary: T


@dataclass
class DirectoryNode:
    path: str
    directories: dict[str, "DirectoryNode"] = field(default_factory=dict)
    files: list[str] = field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return self.path == ROOT

    def iter_directories(self) -> Iterable["DirectoryNode"]:
        """Yield this node and every descendant directory, parents first."""
        yield self
        for name in sorted(self.directories):
            yield from self.directories[name].iter_directories()


def _split(path: str) -> list[str]:
    return [part for part in path.replace("\\", "/").split("/") if part and part != "."]


def build_tree(paths: Iterable[str]) -> DirectoryNode:
    root = DirectoryNode(path=ROOT)
    seen: set[str] = set()

    for raw in paths:
        parts = _split(raw)
        if not parts:
            continue
        file_path = "/".join(parts)
        if file_path in seen:
            continue
        seen.add(file_path)

        node = root
        for i, part in enumerate(parts[:-1]):
            child = node.directories.get(part)
            if child is None:
                child = DirectoryNode(path="/".join(parts[:i + 1]))
                node.directories[part] = child
            node = child
        node.files.append(file_path)

    for node in root.iter_directories():
        node.files.sort()
    return root


OnFile = Callable[[str], Awaitable[Any]]
OnDirectory = Callable[[str, list[SummaryResult]], Awaitable[Any]]


async def _visit(node: DirectoryNode, on_file: OnFile, on_directory: OnDirectory) -> Any:
    file_paths = list(node.files)
    children = [node.directories[name] for name in sorted(node.directories)]

    # Issue every file callback before descending so that, behind a serial
    # queue, a directory's own files run ahead of its sub-directories' files.
    results = await asyncio.gather(
        *[on_file(p) for p in file_paths],
        *[_visit(child, on_file, on_directory) for child in children],
    )

    summaries: list[SummaryResult] = [
        SummaryResult(path=p, kind="file", summary=s)
        for p, s in zip(file_paths, results[:len(file_paths)])
    ]
    summaries += [
        SummaryResult(path=child.path, kind="directory", summary=s)
        for child, s in zip(children, results[len(file_paths):])
    ]
    return await on_directory(node.path, summaries)


async def traverse_tree(
    paths: Iterable[str],
    on_file: OnFile,
    on_directory: OnDirectory,
) -> Optional[Any]:
    """
    Run `on_file` for every file and `on_directory` for every directory,
    children strictly before parents, and return the root's result.

    With no paths there is nothing to visit: no callback runs and the
    result is None.
    """
    root = build_tree(paths)
    if not root.files and not root.directories:
        return None
    return await _visit(root, on_file, on_directory)


def count_directories(paths: Iterable[str]) -> int:
    root = build_tree(paths)
    if not root.files and not root.directories:
        return 0
    return sum(1 for _ in root.iter_directories())
