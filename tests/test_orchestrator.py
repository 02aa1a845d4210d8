import asyncio
import json
from pathlib import Path
from types import SimpleNamespace

import pytest

from agents import MISSING_SUMMARY, USAGE_CACHED, USAGE_UNAVAILABLE, Completion, Summarizer, UsageReport
from dependency_state import DependencyStateStore
from index_store import DocumentIndex
from orchestrator import CodebasePipeline, DependencyPipeline, build_all
from tree import ROOT


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)


class _RecordingSummarizer:
    """Stands in for Summarizer; records calls and checks they never overlap."""

    def __init__(self, usage: UsageReport | None = None, cached: bool = False):
        self.tracker = SimpleNamespace(report=lambda: "dummy")
        self.calls: list[tuple] = []
        self.usage = usage
        self.cached = cached
        self._active = 0

    async def _enter(self, kind: str):
        self._active += 1
        assert self._active == 1, "summarizer calls overlapped"
        await asyncio.sleep(0.001)
        self._active -= 1

    async def summarize_file(self, path, content):
        await self._enter("code")
        self.calls.append(("file", path, content))
        return f"file:{path}"

    async def summarize_directory(self, dir_path, summaries):
        await self._enter("code")
        self.calls.append(("directory", dir_path, list(summaries)))
        return f"dir:{dir_path}"

    async def write_usage_guide(self, dependency, types, readme=None):
        await self._enter("guide")
        self.calls.append(("guide", dependency, types, readme))
        return Completion(text=f"guide:{dependency}", usage=self.usage, cached=self.cached)


# ---------------------------------------------------------------------------
# Codebase
# ---------------------------------------------------------------------------

def test_codebase_documents_follow_tree_order(tmp_path: Path):
    _write(tmp_path / "a.ts", "const a = 1;")
    _write(tmp_path / "b" / "c.ts", "const c = 2;")
    summarizer = _RecordingSummarizer()
    pipeline = CodebasePipeline(tmp_path, summarizer)

    documents = asyncio.run(pipeline.summarize(["a.ts", "b/c.ts"]))

    assert [c[:2] for c in summarizer.calls] == [
        ("file", "a.ts"),
        ("file", "b/c.ts"),
        ("directory", "b"),
        ("directory", ROOT),
    ]
    assert summarizer.calls[0][2] == "const a = 1;"
    assert summarizer.calls[2][2] == ["file:b/c.ts"]
    assert summarizer.calls[3][2] == ["file:a.ts", "dir:b"]

    assert [d.id for d in documents] == ["a.ts", "b/c.ts", "b", ROOT]
    file_doc, _, dir_doc, _ = documents
    assert file_doc.metadata["type"] == "file"
    assert file_doc.metadata["category"] == "code"
    assert isinstance(file_doc.metadata["mtime"], int)
    assert file_doc.text == '---\npath: "a.ts"\ntype: "file"\n---\nfile:a.ts'
    assert dir_doc.metadata == {"filepath": "b", "type": "directory"}


def test_codebase_build_rebuilds_then_reuses_index(tmp_path: Path):
    workspace = tmp_path / "ws"
    _write(workspace / "src" / "main.ts", "main();")
    _write(workspace / "node_modules" / "x" / "index.js", "ignored")

    first = _RecordingSummarizer()
    result = asyncio.run(CodebasePipeline(workspace, first).build())

    assert result.rebuilt is True
    assert [d.id for d in result.documents] == ["src/main.ts", "src", ROOT]
    assert (workspace / ".docs_index" / "code-embeddings" / "docstore.json").exists()

    second = _RecordingSummarizer()
    again = asyncio.run(CodebasePipeline(workspace, second).build())

    assert again.rebuilt is False
    assert second.calls == []
    assert len(again.index) == 3


def test_codebase_empty_llm_output_yields_placeholder_document(tmp_path: Path):
    class _EmptyClient:
        class messages:
            @staticmethod
            async def create(**kwargs):
                return SimpleNamespace(content=[], usage=SimpleNamespace(input_tokens=1, output_tokens=0))

    _write(tmp_path / "a.ts", "x")
    pipeline = CodebasePipeline(tmp_path, Summarizer(client=_EmptyClient()))

    documents = asyncio.run(pipeline.summarize(["a.ts"]))

    assert documents[0].text.endswith(f"\n---\n{MISSING_SUMMARY}")
    assert documents[0].text != ""


def test_codebase_with_no_files_builds_empty_index(tmp_path: Path):
    summarizer = _RecordingSummarizer()
    result = asyncio.run(CodebasePipeline(tmp_path / "empty", summarizer, state_dir=tmp_path / "state").build())

    assert result.documents == []
    assert summarizer.calls == []
    assert len(DocumentIndex.load(tmp_path / "state" / "code-embeddings")) == 0


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def _dependency_workspace(root: Path) -> Path:
    _write(root / "package.json", json.dumps({
        "dependencies": {"lodash": "4.17.21", "axios": "1.0.0", "multi": "2.0.0"},
    }))
    _write(root / "node_modules" / "axios" / "package.json", json.dumps({"name": "axios", "types": "index.d.ts"}))
    _write(root / "node_modules" / "axios" / "index.d.ts", "export declare function get(): void;")
    _write(root / "node_modules" / "axios" / "README.md", "# axios")
    _write(root / "node_modules" / "multi" / "package.json", json.dumps({
        "name": "multi",
        "exports": {".": {"types": "./index.d.ts"}, "./sub": {"types": "./sub.d.ts"}},
    }))
    _write(root / "node_modules" / "multi" / "index.d.ts", "export const m: 1;")
    _write(root / "node_modules" / "multi" / "sub.d.ts", "export const s: 2;")
    _write(root / "node_modules" / "multi" / "README.md", "# multi")
    DependencyStateStore(root / ".docs_index").save({"lodash": "4.17.20"})
    return root


def test_dependency_build_learns_only_missing_names(tmp_path: Path):
    workspace = _dependency_workspace(tmp_path)
    usage = UsageReport("m", 10, 5, 0.5)
    summarizer = _RecordingSummarizer(usage=usage)

    result = asyncio.run(DependencyPipeline(workspace, summarizer).build())

    assert [c[1] for c in summarizer.calls] == ["axios", "multi", "multi"]
    assert summarizer.calls[0] == ("guide", "axios", "export declare function get(): void;", "# axios")
    assert summarizer.calls[1][3] == "# multi"
    assert summarizer.calls[2][3] is None

    assert [d.id for d in result.documents] == ["axios", "multi", "multi/sub"]
    assert result.documents[2].metadata == {"name": "multi/sub", "type": "multi/sub", "usage": usage.as_dict()}
    assert result.rebuilt is True

    state = DependencyStateStore(workspace / ".docs_index").load()
    assert state == {"lodash": "4.17.21", "axios": "1.0.0", "multi": "2.0.0"}


def test_dependency_second_run_inserts_into_existing_index(tmp_path: Path):
    workspace = _dependency_workspace(tmp_path)
    asyncio.run(DependencyPipeline(workspace, _RecordingSummarizer()).build())

    data = json.loads((workspace / "package.json").read_text())
    data["dependencies"]["newdep"] = "1.0.0"
    (workspace / "package.json").write_text(json.dumps(data))
    _write(workspace / "node_modules" / "newdep" / "package.json", json.dumps({"name": "newdep"}))

    summarizer = _RecordingSummarizer()
    result = asyncio.run(DependencyPipeline(workspace, summarizer).build())

    # newdep has no types anywhere: skipped, not an error
    assert summarizer.calls == []
    assert result.rebuilt is False
    assert len(result.index) == 3
    assert "newdep" in DependencyStateStore(workspace / ".docs_index").load()


def test_dependency_usage_absent_is_marked_unavailable(tmp_path: Path):
    workspace = _dependency_workspace(tmp_path)
    result = asyncio.run(DependencyPipeline(workspace, _RecordingSummarizer(usage=None)).build())

    assert all(d.metadata["usage"] == USAGE_UNAVAILABLE for d in result.documents)


def test_dependency_structural_failure_aborts_without_saving_state(tmp_path: Path):
    workspace = _dependency_workspace(tmp_path)
    _write(workspace / "node_modules" / "axios" / "index.d.ts", 'export * from "./missing";')

    with pytest.raises(FileNotFoundError):
        asyncio.run(DependencyPipeline(workspace, _RecordingSummarizer()).build())

    assert DependencyStateStore(workspace / ".docs_index").load() == {"lodash": "4.17.20"}




def test_dependency_cached_answer_is_marked_cached(tmp_path: Path):
    workspace = _dependency_workspace(tmp_path)
    summarizer = _RecordingSummarizer(usage=None, cached=True)

    result = asyncio.run(DependencyPipeline(workspace, summarizer).build())

    assert [d.metadata["usage"] for d in result.documents] == [USAGE_CACHED] * 3


# ---------------------------------------------------------------------------
# Both pipelines
# ---------------------------------------------------------------------------

class _InFlightSummarizer(_RecordingSummarizer):
    """Lets calls of different kinds overlap and records how many were in flight."""

    def __init__(self, delay: float = 0.02):
        super().__init__()
        self.delay = delay
        self.in_flight = {"code": 0, "guide": 0}
        self.peak = {"code": 0, "guide": 0}
        self.peak_together = 0

    async def _enter(self, kind: str):
        self.in_flight[kind] += 1
        self.peak[kind] = max(self.peak[kind], self.in_flight[kind])
        self.peak_together = max(self.peak_together, sum(self.in_flight.values()))
        await asyncio.sleep(self.delay)
        self.in_flight[kind] -= 1


def _add_sources(workspace: Path, count: int = 4) -> None:
    for i in range(count):
        _write(workspace / "src" / f"m{i}.ts", f"export const m{i} = {i};")


def test_build_all_runs_pipelines_concurrently_with_serial_queues(tmp_path: Path):
    workspace = _dependency_workspace(tmp_path)
    _add_sources(workspace)
    summarizer = _InFlightSummarizer()

    results = asyncio.run(build_all(workspace, summarizer))

    assert [r.name for r in results] == ["code", "dependencies"]
    assert all(r.ok for r in results)
    # each queue is serial, yet a code call and a guide call were in flight together
    assert summarizer.peak == {"code": 1, "guide": 1}
    assert summarizer.peak_together == 2


def test_build_all_failure_in_one_pipeline_leaves_the_other_intact(tmp_path: Path):
    workspace = tmp_path
    _add_sources(workspace, count=3)
    _write(workspace / "package.json", json.dumps({"dependencies": {"broken": "1.0.0"}}))
    _write(workspace / "node_modules" / "broken" / "package.json", json.dumps({"name": "broken", "types": "index.d.ts"}))
    _write(workspace / "node_modules" / "broken" / "index.d.ts", 'export * from "./gone";')
    summarizer = _InFlightSummarizer()

    code, deps = asyncio.run(build_all(workspace, summarizer))

    assert not deps.ok
    assert isinstance(deps.error, FileNotFoundError)
    assert deps.index is None
    assert DependencyStateStore(workspace / ".docs_index").load() == {}

    assert code.ok and code.rebuilt
    assert [d.id for d in code.documents][-1] == ROOT
    persisted = DocumentIndex.load(workspace / ".docs_index" / "code-embeddings")
    assert len(persisted) == len(code.documents)
