"""
index_store.py — Persisted document store handed to the retrieval index.

Documents are the unit the retrieval layer ingests: an id, the text to
embed, and metadata (always with a `type` discriminator). The store is a
single JSON file per index directory. `load()` raising IndexNotFoundError
is the signal for callers to rebuild from scratch.
"""

from __future__ import annotations
from dataclasses import asdict, dataclass, field
import json
import os
from pathlib import Path
from typing import Iterable, Optional


class IndexNotFoundError(Exception):
    pass


@dataclass
class Document:
    id: str
    text: str
    metadata: dict = field(default_factory=dict)


class DocumentIndex:
    STORE_FILE = "docstore.json"

    def __init__(self, persist_dir: Path, documents: Optional[Iterable[Document]] = None):
        self.persist_dir = persist_dir
        self._docs: dict[str, Document] = {}
        for doc in documents or []:
            self._docs[doc.id] = doc

    @property
    def store_path(self) -> Path:
        return self.persist_dir / self.STORE_FILE

    @classmethod
    def load(cls, persist_dir: Path) -> "DocumentIndex":
        path = persist_dir / cls.STORE_FILE
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise IndexNotFoundError(f"No index persisted in {persist_dir}") from e
        except (OSError, json.JSONDecodeError) as e:
            raise IndexNotFoundError(f"Unreadable index in {persist_dir}: {e}") from e

        try:
            documents = [
                Document(id=d["id"], text=d["text"], metadata=d.get("metadata", {}))
                for d in raw["documents"]
            ]
        except (KeyError, TypeError) as e:
            raise IndexNotFoundError(f"Malformed index in {persist_dir}: {e}") from e
        return cls(persist_dir, documents)

    @classmethod
    def from_documents(cls, documents: Iterable[Document], persist_dir: Path) -> "DocumentIndex":
        index = cls(persist_dir, documents)
        index.persist()
        return index

    def insert(self, document: Document) -> None:
        self._docs[document.id] = document
        self.persist()

    def get(self, doc_id: str) -> Optional[Document]:
        return self._docs.get(doc_id)

    def documents(self) -> list[Document]:
        return list(self._docs.values())

    def __len__(self) -> int:
        return len(self._docs)

    def persist(self) -> Path:
        self.persist_dir.mkdir(parents=True, exist_ok=True)
        path = self.store_path
        tmp = path.with_suffix(".tmp")
        payload = {"documents": [asdict(d) for d in self._docs.values()]}
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp, path)
        return path
