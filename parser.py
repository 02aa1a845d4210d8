"""
parser.py — Workspace file discovery and re-export extraction.

Discovery walks the workspace, skips the usual vendored/build directories
and anything matched by the workspace `.gitignore` or extra gitwildmatch
patterns, and returns POSIX-style workspace-relative paths.

Re-export extraction parses TypeScript declaration text with tree-sitter
and returns the module specifier of every `export ... from "<target>"`
statement, including ones nested in `declare module` blocks. Comments and
string literals that merely look like re-exports are not matched.
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import Iterable, Optional

from pathspec import GitIgnoreSpec
from tree_sitter import Language, Node, Parser
import tree_sitter_typescript as tsts


STATE_DIR_NAME = ".docs_index"

_TYPESCRIPT = Language(tsts.language_typescript())

# Extensions summarized as "code"; everything else is "doc".
CODE_EXTENSIONS: frozenset[str] = frozenset({
    ".ts", ".tsx", ".mts", ".cts",
    ".js", ".jsx", ".mjs", ".cjs",
    ".py", ".rs", ".go", ".c", ".h", ".cpp", ".hpp",
    ".java", ".kt", ".swift", ".rb", ".php", ".cs",
    ".css", ".scss", ".html", ".vue", ".svelte",
})

_DEFAULT_EXCLUDE_DIRS: frozenset[str] = frozenset({
    ".git", ".hg", ".svn", "node_modules", "__pycache__",
    ".venv", "venv", "dist", "build", "target", "coverage",
    ".next", ".nuxt", ".mypy_cache", ".pytest_cache", ".tox",
    STATE_DIR_NAME,
})

_SKIP_FILES: frozenset[str] = frozenset({
    "package-lock.json", "yarn.lock", "pnpm-lock.yaml",
    "poetry.lock", "Cargo.lock", ".DS_Store",
})


def file_category(path: str) -> str:
    return "code" if Path(path).suffix.lower() in CODE_EXTENSIONS else "doc"


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

def load_ignore_spec(root: Path, extra_patterns: Optional[Iterable[str]] = None) -> GitIgnoreSpec:
    """Compile the root `.gitignore` plus `extra_patterns` (gitwildmatch)."""
    lines: list[str] = []
    gitignore = root / ".gitignore"
    if gitignore.is_file():
        try:
            lines.extend(gitignore.read_text(encoding="utf-8", errors="replace").splitlines())
        except OSError:
            pass
    lines.extend(extra_patterns or [])
    return GitIgnoreSpec.from_lines(lines)


def discover_files(
    root: Path,
    extra_patterns: Optional[Iterable[str]] = None,
    max_size_bytes: int = 200_000,
) -> list[str]:
    root = root.resolve()
    spec = load_ignore_spec(root, extra_patterns)
    files: list[str] = []

    for dirpath, dirnames, filenames in os.walk(root, topdown=True):
        base = Path(dirpath)
        rel_base = "" if base == root else base.relative_to(root).as_posix()

        kept = []
        for d in dirnames:
            rel = f"{rel_base}/{d}" if rel_base else d
            if d in _DEFAULT_EXCLUDE_DIRS or spec.match_file(rel + "/"):
                continue
            kept.append(d)
        dirnames[:] = kept

        for name in filenames:
            if name in _SKIP_FILES:
                continue
            rel = f"{rel_base}/{name}" if rel_base else name
            if spec.match_file(rel):
                continue
            try:
                size = (base / name).stat().st_size
            except OSError:
                continue
            if size == 0 or size > max_size_bytes:
                continue
            files.append(rel)

    return sorted(files)


# ---------------------------------------------------------------------------
# Re-export extraction
# ---------------------------------------------------------------------------

def _string_value(node: Node, source_bytes: bytes) -> str:
    raw = source_bytes[node.start_byte:node.end_byte].decode("utf-8", errors="replace")
    return raw[1:-1] if len(raw) >= 2 and raw[0] in "'\"`" and raw[-1] == raw[0] else raw


def _export_source(node: Node) -> Optional[Node]:
    source = node.child_by_field_name("source")
    if source is not None:
        return source
    # `export default "x"` also has a string child; only take one after `from`.
    previous: Optional[Node] = None
    for child in node.children:
        if child.type == "string" and previous is not None and previous.type == "from":
            return child
        previous = child
    return None


def find_reexports(source: str) -> list[str]:
    """Return re-export targets in document order."""
    source_bytes = source.encode("utf-8")
    tree = Parser(_TYPESCRIPT).parse(source_bytes)

    targets: list[tuple[int, str]] = []
    stack: list[Node] = [tree.root_node]
    while stack:
        node = stack.pop()
        if node.type == "export_statement":
            target = _export_source(node)
            if target is not None:
                targets.append((node.start_byte, _string_value(target, source_bytes)))
        stack.extend(node.children)

    return [t for _, t in sorted(targets)]
