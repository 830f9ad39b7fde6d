"""
vector_store.py

Vector store port and its backends for Persona Hub.
One store instance serves one index folder (one persona, one index kind).

Backends
--------
  1. ChromaVectorStore    — ChromaDB PersistentClient, file-backed, default
  2. InMemoryVectorStore  — numpy cosine search, nothing persisted

Port API
--------
    initialize()                              # Open or create the index
    add_chunks(chunks)                        # Persist embedded chunks
    query(vector, top_k, filters, min_score)  # Similarity search
    delete_by_source(uri)                     # Cascade-delete an origin
    list_sources()                            # Distinct sourceUri values
    count()                                   # Number of chunks
    list_chunks(filters, limit)               # Full text for keyword search
    dispose()                                 # Release handles

Filters use store field names (sourceUri, characterId, category,
sourceType) with either a literal value or {"$eq": value}.

Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import numpy as np

import config
from rag.types import ChunkMetadata, DocumentChunk, SearchResult, StoredChunk

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

_log = logging.getLogger("persona.vector_store")
_handler = logging.FileHandler(config.LOGS_DIR / "vector_store.log")
_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

DEFAULT_MIN_SCORE = 0.3
COLLECTION_NAME = "chunks"


# ===========================================================================
# Port
# ===========================================================================

class VectorStorePort(ABC):
    """Interface that every vector store backend must implement."""

    @abstractmethod
    def initialize(self) -> None: ...

    @abstractmethod
    def add_chunks(self, chunks: list[DocumentChunk]) -> None: ...

    @abstractmethod
    def query(
        self,
        vector: list[float],
        top_k: int = 5,
        filters: Optional[dict] = None,
        min_score: float = DEFAULT_MIN_SCORE,
    ) -> list[SearchResult]: ...

    @abstractmethod
    def delete_by_source(self, source_uri: str) -> None: ...

    @abstractmethod
    def list_sources(self) -> list[str]: ...

    @abstractmethod
    def count(self) -> int: ...

    @abstractmethod
    def list_chunks(self, filters: Optional[dict] = None, limit: Optional[int] = None) -> list[StoredChunk]: ...

    def dispose(self) -> None:
        """Release any open handles. Default: nothing to release."""


# ===========================================================================
# Filter helpers
# ===========================================================================

def _filter_value(condition: Any) -> Any:
    if isinstance(condition, dict):
        if set(condition) != {"$eq"}:
            raise ValueError(f"Unsupported filter operator: {sorted(condition)}")
        return condition["$eq"]
    return condition


def _matches_filter(metadata: dict[str, Any], filters: Optional[dict]) -> bool:
    """
    Check a flat metadata mapping against an equality filter.

    Args:
        metadata: Store-side metadata.
        filters: {field: value} or {field: {"$eq": value}}, ANDed.

    Returns:
        True if every condition holds.
    """
    if not filters:
        return True
    return all(metadata.get(key) == _filter_value(cond) for key, cond in filters.items())


def _to_chroma_where(filters: Optional[dict]) -> Optional[dict]:
    """Convert an equality filter to a Chroma ``where`` clause."""
    if not filters:
        return None
    clauses = [{key: {"$eq": _filter_value(cond)}} for key, cond in filters.items()]
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _sanitize_metadata(meta: dict) -> dict:
    """
    Flatten metadata values to types Chroma accepts (str, int, float, bool).
    Nested dicts / lists are JSON-serialised to strings.

    Args:
        meta: Raw metadata dict.

    Returns:
        A new dict with Chroma-compatible values.
    """
    clean: dict[str, str | int | float | bool] = {}
    for key, value in meta.items():
        if isinstance(value, (str, int, float, bool)):
            clean[key] = value
        elif value is None:
            clean[key] = ""
        else:
            clean[key] = json.dumps(value, default=str)
    return clean


# ===========================================================================
# Backend 1: Chroma (file-backed)
# ===========================================================================

class ChromaVectorStore(VectorStorePort):
    """
    File-backed vector store using ChromaDB.
    Persists to the given folder, one cosine collection per folder.

    Example:
        store = ChromaVectorStore(Path("data/rag/pig/static"))
        store.initialize()
        store.add_chunks(chunks)
        hits = store.query(vector, top_k=5, filters={"category": {"$eq": "excel"}})
    """

    def __init__(self, folder: str | Path) -> None:
        self._folder = Path(folder)
        self._client = None
        self._collection = None
        self._lock = threading.Lock()

    def initialize(self) -> None:
        """Open (or create) the Chroma collection in the folder."""
        if self._collection is not None:
            return
        import chromadb

        self._folder.mkdir(parents=True, exist_ok=True)
        self._client = chromadb.PersistentClient(path=str(self._folder))
        self._collection = self._client.get_or_create_collection(
            name=COLLECTION_NAME,
            metadata={"hnsw:space": "cosine"},
        )
        _log.info("Chroma store initialised (persist=%s)", self._folder)

    def _coll(self):
        if self._collection is None:
            self.initialize()
        return self._collection

    def add_chunks(self, chunks: list[DocumentChunk]) -> None:
        """
        Persist embedded chunks.

        Args:
            chunks: Chunks with vectors and positional metadata.
        """
        if not chunks:
            return
        with self._lock:
            self._coll().upsert(
                ids=[c.id for c in chunks],
                embeddings=[list(c.vector) for c in chunks],
                metadatas=[_sanitize_metadata(c.metadata.to_store()) for c in chunks],
                documents=[c.content for c in chunks],
            )
        _log.debug("Chroma add %d chunks (%s)", len(chunks), self._folder)

    def query(
        self,
        vector: list[float],
        top_k: int = 5,
        filters: Optional[dict] = None,
        min_score: float = DEFAULT_MIN_SCORE,
    ) -> list[SearchResult]:
        """
        Similarity search.

        Args:
            vector: Query embedding.
            top_k: Max results.
            filters: Optional equality filter.
            min_score: Results below this cosine similarity are dropped.

        Returns:
            Results, most similar first.
        """
        collection = self._coll()
        total = collection.count()
        if total == 0:
            return []

        query_kwargs: dict[str, Any] = {
            "query_embeddings": [list(vector)],
            "n_results": min(top_k, total),
            "include": ["documents", "metadatas", "distances"],
        }
        where = _to_chroma_where(filters)
        if where:
            query_kwargs["where"] = where

        result = collection.query(**query_kwargs)

        ids = (result.get("ids") or [[]])[0]
        distances = (result.get("distances") or [[]])[0]
        metadatas = (result.get("metadatas") or [[]])[0]
        documents = (result.get("documents") or [[]])[0]

        items: list[SearchResult] = []
        for doc_id, dist, meta, doc in zip(ids, distances, metadatas, documents):
            # Chroma returns cosine *distance* (0 = identical).
            score = 1.0 - min(dist, 1.0)
            if score >= min_score:
                items.append(SearchResult(doc_id, doc or "", score, ChunkMetadata.from_store(meta or {})))

        _log.debug("Chroma query returned %d results", len(items))
        return items

    def delete_by_source(self, source_uri: str) -> None:
        """Delete every chunk whose sourceUri matches."""
        with self._lock:
            self._coll().delete(where={"sourceUri": {"$eq": source_uri}})
        _log.info("Chroma deleted source %s (%s)", source_uri, self._folder)

    def list_sources(self) -> list[str]:
        """Return distinct sourceUri values, sorted."""
        result = self._coll().get(include=["metadatas"])
        return sorted({str(m.get("sourceUri", "")) for m in result.get("metadatas") or [] if m})

    def count(self) -> int:
        return self._coll().count()

    def list_chunks(self, filters: Optional[dict] = None, limit: Optional[int] = None) -> list[StoredChunk]:
        """
        Materialize chunk text and metadata, for keyword search.

        Args:
            filters: Optional equality filter.
            limit: Optional maximum number of chunks.

        Returns:
            Stored chunks.
        """
        get_kwargs: dict[str, Any] = {"include": ["documents", "metadatas"]}
        where = _to_chroma_where(filters)
        if where:
            get_kwargs["where"] = where
        if limit is not None:
            get_kwargs["limit"] = limit

        result = self._coll().get(**get_kwargs)
        return [
            StoredChunk(doc_id, doc or "", ChunkMetadata.from_store(meta or {}))
            for doc_id, doc, meta in zip(
                result.get("ids") or [], result.get("documents") or [], result.get("metadatas") or []
            )
        ]

    def dispose(self) -> None:
        """Drop the collection and client handles."""
        self._collection = None
        self._client = None


# ===========================================================================
# Backend 2: in-memory (numpy)
# ===========================================================================

class InMemoryVectorStore(VectorStorePort):
    """
    Vector store kept entirely in memory, searched with numpy cosine similarity.
    Used for ephemeral engines and tests.

    Example:
        store = InMemoryVectorStore()
        store.add_chunks(chunks)
        store.query(vector, top_k=3, min_score=0.0)
    """

    def __init__(self, folder: str | Path | None = None) -> None:
        self._folder = Path(folder) if folder else None
        self._chunks: dict[str, DocumentChunk] = {}
        self._lock = threading.Lock()

    def initialize(self) -> None:
        if self._folder is not None:
            self._folder.mkdir(parents=True, exist_ok=True)

    def add_chunks(self, chunks: list[DocumentChunk]) -> None:
        with self._lock:
            for chunk in chunks:
                self._chunks[chunk.id] = chunk

    def query(
        self,
        vector: list[float],
        top_k: int = 5,
        filters: Optional[dict] = None,
        min_score: float = DEFAULT_MIN_SCORE,
    ) -> list[SearchResult]:
        with self._lock:
            candidates = [
                c for c in self._chunks.values() if _matches_filter(c.metadata.to_store(), filters)
            ]
        if not candidates:
            return []

        query_vec = np.asarray(vector, dtype=float)
        matrix = np.asarray([c.vector for c in candidates], dtype=float)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_vec)
        norms[norms == 0] = 1.0
        scores = matrix @ query_vec / norms

        # Stable sort keeps insertion order for equal scores
        order = np.argsort(-scores, kind="stable")
        results: list[SearchResult] = []
        for idx in order[:top_k]:
            score = float(scores[idx])
            if score < min_score:
                continue
            chunk = candidates[idx]
            results.append(SearchResult(chunk.id, chunk.content, score, chunk.metadata))
        return results

    def delete_by_source(self, source_uri: str) -> None:
        with self._lock:
            doomed = [cid for cid, c in self._chunks.items() if c.metadata.source_uri == source_uri]
            for cid in doomed:
                del self._chunks[cid]

    def list_sources(self) -> list[str]:
        with self._lock:
            return sorted({c.metadata.source_uri for c in self._chunks.values()})

    def count(self) -> int:
        return len(self._chunks)

    def list_chunks(self, filters: Optional[dict] = None, limit: Optional[int] = None) -> list[StoredChunk]:
        with self._lock:
            chunks = [
                StoredChunk(c.id, c.content, c.metadata)
                for c in self._chunks.values()
                if _matches_filter(c.metadata.to_store(), filters)
            ]
        return chunks if limit is None else chunks[:limit]

    def dispose(self) -> None:
        with self._lock:
            self._chunks.clear()
