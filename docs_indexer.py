#!/usr/bin/env python3
"""
docs_indexer.py — CLI entry point.

Usage:
    # Build (or verify) both indexes for a workspace
    python docs_indexer.py /path/to/workspace

    # Only the codebase index, ignoring generated files
    python docs_indexer.py /path/to/workspace --code-only --exclude "*.generated.ts"

    # Only the dependency usage guides
    python docs_indexer.py /path/to/workspace --deps-only

Environment:
    ANTHROPIC_API_KEY  — required (or pass --api-key)

Indexes and state are written under <workspace>/.docs_index/ unless
--state-dir is given.
"""

from __future__ import annotations
import argparse
import asyncio
import json
import os
import sys
import time
from pathlib import Path

from agents import HAIKU, SONNET, Summarizer
from orchestrator import build_all
from parser import STATE_DIR_NAME


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate LLM documentation for a codebase and its npm dependencies.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("workspace", type=Path, help="Workspace root (where package.json lives)")
    parser.add_argument("--api-key", default=None,
                        help="Anthropic API key (default: ANTHROPIC_API_KEY env var)")
    parser.add_argument("--state-dir", type=Path, default=None,
                        help=f"Index/state directory (default: <workspace>/{STATE_DIR_NAME})")
    scope = parser.add_mutually_exclusive_group()
    scope.add_argument("--code-only", action="store_true", help="Only build the codebase index")
    scope.add_argument("--deps-only", action="store_true", help="Only build the dependency index")
    parser.add_argument("--exclude", action="append", dest="exclude_patterns", default=[],
                        metavar="PATTERN",
                        help="Extra gitignore-style pattern to skip (repeatable)")
    parser.add_argument("--file-model", default=HAIKU,
                        help=f"Model for file summaries (default: {HAIKU})")
    parser.add_argument("--directory-model", default=HAIKU,
                        help=f"Model for directory summaries (default: {HAIKU})")
    parser.add_argument("--dependency-model", default=SONNET,
                        help=f"Model for dependency usage guides (default: {SONNET})")
    parser.add_argument("--temperature", type=float, default=0.2,
                        help="Sampling temperature (default: 0.2)")
    parser.add_argument("--max-retries", type=int, default=3,
                        help="Retries per call when rate limited (default: 3)")
    parser.add_argument("--retry-delay", type=float, default=30.0,
                        help="Seconds to wait before a rate-limit retry (default: 30)")
    parser.add_argument("--no-cache", action="store_true",
                        help="Disable caching (always call the model)")
    parser.add_argument("--json-output", type=Path, default=None,
                        help="Write a JSON build report to this file")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Print progress for every call")
    return parser


async def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    api_key = args.api_key or os.environ.get("ANTHROPIC_API_KEY")
    if not api_key:
        print("Error: ANTHROPIC_API_KEY environment variable not set.", file=sys.stderr)
        return 1

    workspace: Path = args.workspace
    if not workspace.is_dir():
        print(f"Error: Workspace does not exist: {workspace}", file=sys.stderr)
        return 1

    state_dir = args.state_dir or workspace.resolve() / STATE_DIR_NAME
    cache_dir = None if args.no_cache else state_dir / "cache"

    summarizer = Summarizer(
        api_key=api_key,
        cache_dir=cache_dir,
        file_model=args.file_model,
        directory_model=args.directory_model,
        dependency_model=args.dependency_model,
        temperature=args.temperature,
        max_retries=args.max_retries,
        retry_delay=args.retry_delay,
        verbose=args.verbose,
    )

    print(f"\n🔍 Indexing `{workspace.resolve().name}`", flush=True)
    start = time.time()
    results = await build_all(
        workspace,
        summarizer,
        state_dir=state_dir,
        exclude_patterns=args.exclude_patterns,
        code=not args.deps_only,
        dependencies=not args.code_only,
        verbose=args.verbose,
    )

    elapsed = time.time() - start
    failed = [r for r in results if not r.ok]
    marker = "⚠️  Finished with errors" if failed else "✅ Complete"
    print(f"\n{marker} in {elapsed:.1f}s\n", flush=True)
    for result in results:
        if not result.ok:
            print(f"Error: {result.name} index failed: {result.error}", file=sys.stderr)
            continue
        action = "rebuilt" if result.rebuilt else "updated"
        print(f"  {result.name}: {action}, {len(result.documents)} new / {len(result.index)} total documents")

    if args.json_output:
        report = {
            "workspace": str(workspace.resolve()),
            "elapsed_secs": round(elapsed, 2),
            "indexes": [
                {
                    "name": r.name,
                    "rebuilt": r.rebuilt,
                    "new_documents": [d.id for d in r.documents],
                    "total_documents": len(r.index),
                    "persist_dir": str(r.index.persist_dir),
                }
                if r.ok else
                {"name": r.name, "error": f"{type(r.error).__name__}: {r.error}"}
                for r in results
            ],
            "stats": vars(summarizer.tracker),
        }
        args.json_output.write_text(json.dumps(report, indent=2))
        print(f"📊 JSON report written to: {args.json_output}")

    print(f"\n💰 {summarizer.tracker.report()}")
    return 1 if failed else 0


def run_cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run_cli()
