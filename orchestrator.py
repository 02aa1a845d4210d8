"""
orchestrator.py — Builds the codebase and dependency document indexes.

Codebase pipeline:
  1. Discover workspace files (ignore patterns honored)
  2. Load the persisted index; if there is none, rebuild:
  3. Summarize every file, then every directory bottom-up (tree.py),
     one LLM call at a time through the pipeline's SerialQueue
  4. Persist the documents as a fresh index

Dependency pipeline:
  1. Diff package.json dependencies against the embedded snapshot (by name)
  2. Resolve type definitions for each missing dependency (fan-out)
  3. Write one usage guide per type resolution, serially
  4. Insert into the persisted index, or build it if there is none
  5. Overwrite the snapshot with the current dependency mapping

Each pipeline owns its queue, so the two can run side by side.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from agents import Summarizer, USAGE_CACHED, USAGE_UNAVAILABLE
from dependency_state import DependencyStateStore, missing_dependencies, read_workspace_dependencies
from index_store import Document, DocumentIndex, IndexNotFoundError
from parser import STATE_DIR_NAME, discover_files, file_category
from prompts import front_matter
from task_queue import SerialQueue
from tree import SummaryResult, count_directories, traverse_tree
from type_resolver import DependencyTypeResolver, TypeResolution


CODE_EMBEDDINGS_FOLDER_NAME = "code-embeddings"
DEPENDENCY_EMBEDDINGS_FOLDER_NAME = "dependency-embeddings"


@dataclass
class BuildResult:
    name: str
    index: Optional[DocumentIndex] = None
    documents: list[Document] = field(default_factory=list)
    rebuilt: bool = False
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class GuideRequest:
    dependency: str
    resolution: TypeResolution
    readme: Optional[str] = None


class _Pipeline:
    name = ""

    def __init__(self, workspace: Path, summarizer: Summarizer, *, state_dir: Optional[Path], verbose: bool):
        self.workspace = workspace.resolve()
        self.summarizer = summarizer
        self.state_dir = state_dir if state_dir is not None else self.workspace / STATE_DIR_NAME
        self.queue = SerialQueue()
        self.verbose = verbose

    def _log(self, msg: str):
        if self.verbose:
            print(msg, flush=True)


# ---------------------------------------------------------------------------
# Codebase
# ---------------------------------------------------------------------------

class CodebasePipeline(_Pipeline):
    name = "code"

    def __init__(
        self,
        workspace: Path,
        summarizer: Summarizer,
        *,
        state_dir: Optional[Path] = None,
        exclude_patterns: Optional[Iterable[str]] = None,
        verbose: bool = False,
    ):
        super().__init__(workspace, summarizer, state_dir=state_dir, verbose=verbose)
        self.exclude_patterns = list(exclude_patterns or [])
        self.persist_dir = self.state_dir / CODE_EMBEDDINGS_FOLDER_NAME
        self.file_paths: list[str] = []

    async def build(self) -> BuildResult:
        self._log("\n[Code] Verifying code index...")
        self.file_paths = discover_files(self.workspace, self.exclude_patterns)
        self._log(f"  Found {len(self.file_paths)} files")

        try:
            index = DocumentIndex.load(self.persist_dir)
            self._log(f"  Loaded existing index ({len(index)} documents)")
            return BuildResult(name=self.name, index=index)
        except IndexNotFoundError as e:
            self._log(f"  {e}; rebuilding")

        documents = await self.summarize(self.file_paths)
        index = DocumentIndex.from_documents(documents, self.persist_dir)
        self._log(f"  Persisted {len(documents)} documents to {self.persist_dir}")
        return BuildResult(name=self.name, index=index, documents=documents, rebuilt=True)

    async def summarize(self, file_paths: list[str]) -> list[Document]:
        """One document per file and per directory, in the order they were produced."""
        self._log(
            f"  Summarizing {len(file_paths)} files across "
            f"{count_directories(file_paths)} directories"
        )
        documents: list[Document] = []

        async def on_file(filepath: str) -> str:
            return await self._file_document(filepath, documents)

        async def on_directory(dir_path: str, results: list[SummaryResult]) -> str:
            return await self._directory_document(dir_path, results, documents)

        await traverse_tree(file_paths, on_file, on_directory)
        return documents

    def _file_document(self, filepath: str, documents: list[Document]) -> asyncio.Future:
        absolute = self.workspace / filepath
        mtime = int(absolute.stat().st_mtime * 1000)

        async def task() -> str:
            content = absolute.read_text(encoding="utf-8", errors="replace")
            summary = await self.summarizer.summarize_file(filepath, content)
            documents.append(Document(
                id=filepath,
                text=front_matter(path=filepath, kind="file", body=summary),
                metadata={
                    "filepath": filepath,
                    "type": "file",
                    "category": file_category(filepath),
                    "mtime": mtime,
                },
            ))
            self._log(f"## RESOLVED FILE {filepath}")
            return summary

        return self.queue.add(task)

    def _directory_document(
        self,
        dir_path: str,
        results: list[SummaryResult],
        documents: list[Document],
    ) -> asyncio.Future:
        summaries = [r.summary for r in results]

        async def task() -> str:
            summary = await self.summarizer.summarize_directory(dir_path, summaries)
            documents.append(Document(
                id=dir_path,
                text=front_matter(path=dir_path, kind="directory", body=summary),
                metadata={"filepath": dir_path, "type": "directory"},
            ))
            self._log(f"## RESOLVED DIRECTORY {dir_path}")
            return summary

        return self.queue.add(task)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

class DependencyPipeline(_Pipeline):
    name = "dependencies"

    def __init__(
        self,
        workspace: Path,
        summarizer: Summarizer,
        *,
        state_dir: Optional[Path] = None,
        resolver: Optional[DependencyTypeResolver] = None,
        verbose: bool = False,
    ):
        super().__init__(workspace, summarizer, state_dir=state_dir, verbose=verbose)
        self.resolver = resolver or DependencyTypeResolver(self.workspace, verbose=verbose)
        self.persist_dir = self.state_dir / DEPENDENCY_EMBEDDINGS_FOLDER_NAME
        self.state = DependencyStateStore(self.state_dir)

    async def build(self) -> BuildResult:
        self._log("\n[Deps] Verifying dependency index...")
        embedded = self.state.load()
        current = read_workspace_dependencies(self.workspace)
        missing = missing_dependencies(embedded, current)

        documents: list[Document] = []
        if missing:
            self._log(f"  Found the following missing dependencies: {missing}")
            documents = await self.learn(missing)
        else:
            self._log("  No new dependencies")

        try:
            index = DocumentIndex.load(self.persist_dir)
            for document in documents:
                index.insert(document)
            rebuilt = False
        except IndexNotFoundError:
            index = DocumentIndex.from_documents(documents, self.persist_dir)
            rebuilt = True

        self.state.save(current)
        return BuildResult(name=self.name, index=index, documents=documents, rebuilt=rebuilt)

    def prepare(self, dependency: str) -> list[GuideRequest]:
        self._log(f"  Finding types for {dependency}")
        resolutions = self.resolver.resolve(dependency)
        if not resolutions:
            return []
        readme = self.resolver.read_readme(dependency) or None
        return [
            GuideRequest(
                dependency=dependency,
                resolution=resolution,
                readme=readme if resolution.name == dependency else None,
            )
            for resolution in resolutions
        ]

    async def learn(self, dependencies: list[str]) -> list[Document]:
        # Resolution is plain file I/O; fan it out, then queue the LLM calls.
        prepared = await asyncio.gather(
            *[asyncio.to_thread(self.prepare, dependency) for dependency in dependencies]
        )
        requests = [request for batch in prepared for request in batch]
        documents = await asyncio.gather(*[self._usage_guide_document(r) for r in requests])
        return list(documents)

    def _usage_guide_document(self, request: GuideRequest) -> asyncio.Future:
        name = request.resolution.name

        async def task() -> Document:
            completion = await self.summarizer.write_usage_guide(
                request.dependency,
                request.resolution.types,
                request.readme,
            )
            if completion.usage is not None:
                usage = completion.usage.as_dict()
            elif completion.cached:
                usage = USAGE_CACHED
            else:
                usage = USAGE_UNAVAILABLE
            self._log(f"  Usage examples created for {name} ({usage})")
            return Document(
                id=name,
                text=completion.text or "",
                metadata={"name": name, "type": name, "usage": usage},
            )

        return self.queue.add(task)


# ---------------------------------------------------------------------------
# Both
# ---------------------------------------------------------------------------

async def build_all(
    workspace: Path,
    summarizer: Summarizer,
    *,
    state_dir: Optional[Path] = None,
    exclude_patterns: Optional[Iterable[str]] = None,
    code: bool = True,
    dependencies: bool = True,
    verbose: bool = False,
) -> list[BuildResult]:
    """
    Run the selected pipelines side by side and return one result each.

    A pipeline that raises does not cancel the other: its result carries
    the exception in `error` and no index, while the sibling still
    finishes and persists.
    """
    pipelines: list[_Pipeline] = []
    if code:
        pipelines.append(CodebasePipeline(
            workspace, summarizer,
            state_dir=state_dir, exclude_patterns=exclude_patterns, verbose=verbose,
        ))
    if dependencies:
        pipelines.append(DependencyPipeline(
            workspace, summarizer, state_dir=state_dir, verbose=verbose,
        ))
    outcomes = await asyncio.gather(*[p.build() for p in pipelines], return_exceptions=True)

    results: list[BuildResult] = []
    for pipeline, outcome in zip(pipelines, outcomes):
        if isinstance(outcome, BuildResult):
            results.append(outcome)
        elif isinstance(outcome, Exception):
            pipeline._log(f"  [{pipeline.name}] failed: {type(outcome).__name__}: {outcome}")
            results.append(BuildResult(name=pipeline.name, error=outcome))
        else:
            raise outcome
    return results
