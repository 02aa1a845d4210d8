"""
cache.py — Prompt-addressed store of LLM outputs, one JSON file per layer.

Entries are keyed by the SHA-256 of the prompt and remember the model that
produced them; asking for the same prompt under a different model is a
miss. Layers are loaded lazily, so a dependency-only build never reads the
file-summary store.
"""

from __future__ import annotations
import hashlib
import json
import os
from pathlib import Path
from typing import Optional


def prompt_key(prompt: str) -> str:
    return hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:32]


class SummaryCache:
    def __init__(self, cache_dir: Path):
        self.cache_dir = cache_dir
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._layers: dict[str, dict[str, dict]] = {}

    def _layer_file(self, layer: str) -> Path:
        return self.cache_dir / f"{layer}.json"

    def _layer(self, layer: str) -> dict[str, dict]:
        entries = self._layers.get(layer)
        if entries is None:
            entries = {}
            path = self._layer_file(layer)
            if path.exists():
                try:
                    loaded = json.loads(path.read_text(encoding="utf-8"))
                    if isinstance(loaded, dict):
                        entries = loaded
                except (json.JSONDecodeError, OSError):
                    pass
            self._layers[layer] = entries
        return entries

    def get(self, prompt: str, layer: str, model: str) -> Optional[str]:
        entry = self._layer(layer).get(prompt_key(prompt))
        if not isinstance(entry, dict) or entry.get("model") != model:
            return None
        return entry.get("text")

    def set(self, prompt: str, layer: str, model: str, text: str):
        entries = self._layer(layer)
        entries[prompt_key(prompt)] = {"model": model, "text": text}

        path = self._layer_file(layer)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(entries, indent=2), encoding="utf-8")
        os.replace(tmp, path)

    def __len__(self) -> int:
        for path in self.cache_dir.glob("*.json"):
            self._layer(path.stem)
        return sum(len(entries) for entries in self._layers.values())
