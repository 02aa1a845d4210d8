"""
agents.py — LLM caller for every documentation call.

Design:
- File and directory summaries: claude-haiku-4-5 — cheap, many calls
- Dependency usage guides: claude-sonnet-4-6 — long type surfaces, needs more synthesis

The Summarizer itself does not limit concurrency; pipelines route each
call through their own SerialQueue. Rate-limit errors are retried a
bounded number of times with a fixed delay; any other API error is
logged and treated as "no content", which callers replace with a
placeholder.
"""

from __future__ import annotations
import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional
import anthropic

from cache import SummaryCache
from prompts import directory_prompt, file_prompt, usage_guide_prompt


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

HAIKU  = "claude-haiku-4-5-20251001"
SONNET = "claude-sonnet-4-6"

# USD per million tokens: (input, output)
PRICING: dict[str, tuple[float, float]] = {
    HAIKU:  (0.80, 4.00),
    SONNET: (3.00, 15.00),
}

MISSING_SUMMARY = "Missing summary"
USAGE_UNAVAILABLE = "unavailable"
USAGE_CACHED = "cached"


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    in_rate, out_rate = PRICING.get(model, PRICING[SONNET])
    return input_tokens * in_rate / 1_000_000 + output_tokens * out_rate / 1_000_000


# ---------------------------------------------------------------------------
# Cost tracking
# ---------------------------------------------------------------------------

@dataclass
class UsageReport:
    model: str
    input_tokens: int
    output_tokens: int
    cost_usd: float

    def as_dict(self) -> dict:
        return {
            "model": self.model,
            "input": self.input_tokens,
            "output": self.output_tokens,
            "price": round(self.cost_usd, 6),
        }


@dataclass
class Completion:
    text: Optional[str]
    usage: Optional[UsageReport] = None
    cached: bool = False


@dataclass
class CostTracker:
    input_tokens: int = 0
    output_tokens: int = 0
    api_calls: int = 0
    cache_hits: int = 0
    unreported_usage: int = 0
    cost_usd: float = 0.0

    def add(self, usage: Optional[UsageReport]):
        self.api_calls += 1
        if usage is None:
            self.unreported_usage += 1
            return
        self.input_tokens += usage.input_tokens
        self.output_tokens += usage.output_tokens
        self.cost_usd += usage.cost_usd

    def report(self) -> str:
        return (
            f"API calls: {self.api_calls} | Cache hits: {self.cache_hits} | "
            f"Tokens in: {self.input_tokens:,} | Tokens out: {self.output_tokens:,} | "
            f"Est. cost: ~${self.cost_usd:.3f}"
            + (f" | Calls without usage: {self.unreported_usage}" if self.unreported_usage else "")
        )


def _response_text(response: Any) -> Optional[str]:
    chunks: list[str] = []
    for block in getattr(response, "content", None) or []:
        if getattr(block, "type", "text") != "text":
            continue
        txt = getattr(block, "text", "") or ""
        if txt.strip():
            chunks.append(txt.strip())
    return "\n\n".join(chunks) if chunks else None


def _response_usage(response: Any, model: str) -> Optional[UsageReport]:
    usage = getattr(response, "usage", None)
    if usage is None:
        return None
    input_tokens = getattr(usage, "input_tokens", None)
    output_tokens = getattr(usage, "output_tokens", None)
    if input_tokens is None or output_tokens is None:
        return None
    return UsageReport(
        model=model,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cost_usd=estimate_cost(model, input_tokens, output_tokens),
    )


# ---------------------------------------------------------------------------
# Core LLM caller
# ---------------------------------------------------------------------------

class Summarizer:
    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        client: Optional[Any] = None,
        cache_dir: Optional[Path] = None,
        file_model: str = HAIKU,
        directory_model: str = HAIKU,
        dependency_model: str = SONNET,
        temperature: float = 0.2,
        max_retries: int = 3,
        retry_delay: float = 30.0,
        verbose: bool = False,
    ):
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key)
        self.cache = SummaryCache(cache_dir) if cache_dir is not None else None
        self.file_model = file_model
        self.directory_model = directory_model
        self.dependency_model = dependency_model
        self.temperature = temperature
        self.max_retries = max(0, max_retries)
        self.retry_delay = retry_delay
        self.tracker = CostTracker()
        self.verbose = verbose

    def _log(self, msg: str):
        if self.verbose:
            print(msg, flush=True)

    def _warn(self, msg: str):
        print(f"WARNING: {msg}", file=sys.stderr, flush=True)

    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        layer: str,
        max_tokens: int = 1024,
    ) -> Completion:
        if self.cache is not None:
            cached = self.cache.get(prompt, layer, model)
            if cached is not None:
                self.tracker.cache_hits += 1
                return Completion(text=cached, cached=True)

        request = dict(
            model=model,
            max_tokens=max_tokens,
            temperature=self.temperature,
            messages=[{"role": "user", "content": prompt}],
        )

        attempt = 0
        while True:
            try:
                response = await self.client.messages.create(**request)
                break
            except anthropic.RateLimitError:
                attempt += 1
                if attempt > self.max_retries:
                    self._warn(f"[{layer}] still rate limited on {model} after {self.max_retries} retries")
                    return Completion(text=None)
                self._log(f"  [{layer}] rate limited on {model}; retrying in {self.retry_delay:g}s")
                await asyncio.sleep(self.retry_delay)
            except anthropic.APIError as e:
                self._warn(f"[{layer}] API error on {model}: {e}")
                return Completion(text=None)

        text = _response_text(response)
        usage = _response_usage(response, model)
        self.tracker.add(usage)
        if text is not None and self.cache is not None:
            self.cache.set(prompt, layer, model, text)
        return Completion(text=text, usage=usage)

    # -----------------------------------------------------------------------
    # Codebase
    # -----------------------------------------------------------------------

    async def summarize_file(self, path: str, content: str) -> str:
        prompt = file_prompt(content=content)
        self._log(f"  FILE {path}")
        completion = await self.complete(prompt, model=self.file_model, layer="file", max_tokens=600)
        if not completion.text:
            self._warn(f"No summary for file {path}")
            return MISSING_SUMMARY
        return completion.text

    async def summarize_directory(self, dir_path: str, summaries: list[str]) -> str:
        prompt = directory_prompt(summaries=summaries)
        self._log(f"  DIRECTORY {dir_path}")
        completion = await self.complete(prompt, model=self.directory_model, layer="directory", max_tokens=600)
        if not completion.text:
            self._warn(f"No summary for directory {dir_path}")
            return MISSING_SUMMARY
        return completion.text

    # -----------------------------------------------------------------------
    # Dependencies
    # -----------------------------------------------------------------------

    async def write_usage_guide(
        self,
        dependency: str,
        types: str,
        readme: Optional[str] = None,
    ) -> Completion:
        prompt = usage_guide_prompt(dependency=dependency, types=types, readme=readme)
        self._log(f"  Learning {dependency}...")
        completion = await self.complete(
            prompt,
            model=self.dependency_model,
            layer="usage_guide",
            max_tokens=4096,
        )
        if not completion.text:
            self._warn(f"No usage guide for dependency {dependency}")
            completion.text = MISSING_SUMMARY
        return completion
