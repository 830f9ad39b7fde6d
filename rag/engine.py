"""
engine.py

Retrieval engine for Persona Hub.
Indexing and hybrid search over two indices per persona:
  • static  — bundled knowledge, loaded once at startup
  • learned — grows from feedback, uploads and conversations

Search pipeline: embed query → vector search on both indices (concurrent)
→ keyword search over cached chunk text → reciprocal rank fusion →
optional LLM rerank.

Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import logging
import shutil
import threading
import uuid
from collections import Counter, defaultdict
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional

import config
from database.vector_store import ChromaVectorStore, VectorStorePort
from rag.cache import LexicalCache
from rag.embeddings import EmbeddingPort
from rag.keyword_search import keyword_search, merge_with_rrf
from rag.reranker import QuickCall, rerank_with_llm
from rag.types import (
    ChunkMetadata,
    DocumentChunk,
    IndexKind,
    RawChunk,
    SearchResult,
    StoredChunk,
    category_filter,
)

_log = logging.getLogger("persona.rag")
_handler = logging.FileHandler(config.LOGS_DIR / "rag.log")
_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

StoreFactory = Callable[[Path], VectorStorePort]

INDEX_KINDS: tuple[IndexKind, IndexKind] = (IndexKind.STATIC, IndexKind.LEARNED)


def _kind(value: IndexKind | str) -> IndexKind:
    return value if isinstance(value, IndexKind) else IndexKind(value)


class RAGEngine:
    """
    Two-index hybrid retrieval engine.

    Stores are created lazily, one per folder data_dir/<persona>/<kind>.
    The keyword-search cache is owned by the engine and invalidated for
    a persona on every write or delete.

    Example:
        engine = RAGEngine(get_embedder(), config.DATA_DIR, quick_call=router.quick_call)
        engine.ensure_embedding_consistency()
        engine.index_chunks("pig", raw_chunks, "static")
        hits = engine.search("VLOOKUP vs INDEX/MATCH", "pig", top_k=5)
    """

    def __init__(
        self,
        embedding: EmbeddingPort,
        data_dir: str | Path | None = None,
        quick_call: Optional[QuickCall] = None,
        store_factory: StoreFactory = ChromaVectorStore,
        min_score: float | None = None,
        rrf_k: int | None = None,
        cache: Optional[LexicalCache] = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            embedding: Embedding backend.
            data_dir: Root folder for the indices; defaults to config.DATA_DIR.
            quick_call: Prompt-to-text function used for reranking.
            store_factory: Builds a VectorStorePort for a folder.
            min_score: Vector similarity floor for search.
            rrf_k: Reciprocal rank fusion constant.
            cache: Keyword-search cache; defaults to the configured bounds.
        """
        self.embedding = embedding
        self.data_dir = Path(data_dir or config.DATA_DIR)
        self.quick_call = quick_call
        self._store_factory = store_factory
        self.min_score = config.RAG_MIN_SCORE if min_score is None else min_score
        self.rrf_k = config.RRF_K if rrf_k is None else rrf_k
        self.cache = cache or LexicalCache(config.LEXICAL_CACHE_ENTRIES, config.LEXICAL_CACHE_MAX_CHUNKS)
        self._stores: dict[str, VectorStorePort] = {}
        self._stores_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="rag")

    # ------------------------------------------------------------------
    # Embedding-model consistency
    # ------------------------------------------------------------------

    @property
    def marker_path(self) -> Path:
        return self.data_dir / config.EMBEDDING_MARKER_FILE

    def ensure_embedding_consistency(self) -> bool:
        """
        Wipe every index if the embedding model changed since the last run.

        Compares data_dir/.embedding-model with "{model}:{dims}" of the
        current backend. On mismatch all stores are disposed, caches
        cleared and every sub-directory of data_dir deleted.

        Returns:
            True if the marker was (re)written (first run or rebuild),
            False if the model is unchanged.
        """
        self.data_dir.mkdir(parents=True, exist_ok=True)
        current = f"{self.embedding.model_name}:{self.embedding.dimensions}"

        if self.marker_path.is_file():
            stored = self.marker_path.read_text(encoding="utf-8").strip()
            if stored == current:
                return False
            _log.warning("Embedding model changed: %s -> %s, rebuilding indices", stored, current)
            self._clear_all_indices()

        self.marker_path.write_text(current, encoding="utf-8")
        return True

    def _clear_all_indices(self) -> None:
        self._dispose_stores()
        self.cache.clear()
        for entry in self.data_dir.iterdir():
            if entry.is_dir():
                shutil.rmtree(entry, ignore_errors=True)

    # ------------------------------------------------------------------
    # Stores
    # ------------------------------------------------------------------

    def get_store(self, persona: str, kind: IndexKind | str) -> VectorStorePort:
        """
        Return the store for a persona and index kind, creating it if needed.

        Args:
            persona: Persona id.
            kind: "static" or "learned".

        Returns:
            The initialized VectorStorePort.
        """
        kind = _kind(kind)
        key = f"{persona}:{kind.value}"
        with self._stores_lock:
            store = self._stores.get(key)
            if store is None:
                store = self._store_factory(self.data_dir / persona / kind.value)
                store.initialize()
                self._stores[key] = store
            return store

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    def index_chunks(self, persona: str, raw_chunks: list[RawChunk], kind: IndexKind | str = IndexKind.STATIC) -> int:
        """
        Embed raw chunks and write them to one index.

        Positional metadata is assigned per source: chunk_index counts
        from 0 within each source_uri and total_chunks is that source's
        chunk count in this batch.

        Args:
            persona: Persona id.
            raw_chunks: Chunks from the chunker or a loader.
            kind: Target index.

        Returns:
            Number of chunks written (0 for empty input).
        """
        if not raw_chunks:
            return 0

        kind = _kind(kind)
        store = self.get_store(persona, kind)
        vectors = self.embedding.embed_batch([c.content for c in raw_chunks])
        if len(vectors) != len(raw_chunks):
            raise RuntimeError(
                f"Embedding backend returned {len(vectors)} vectors for {len(raw_chunks)} chunks"
            )

        totals = Counter(c.metadata.source_uri for c in raw_chunks)
        positions: dict[str, int] = defaultdict(int)
        chunks: list[DocumentChunk] = []
        for raw, vector in zip(raw_chunks, vectors):
            uri = raw.metadata.source_uri
            meta = ChunkMetadata(
                source_uri=uri,
                character_id=raw.metadata.character_id,
                category=raw.metadata.category,
                source_type=raw.metadata.source_type,
                chunk_index=positions[uri],
                total_chunks=totals[uri],
                extra=dict(raw.extra),
            )
            positions[uri] += 1
            chunks.append(DocumentChunk(str(uuid.uuid4()), raw.content, list(vector), meta))

        store.add_chunks(chunks)
        self.cache.invalidate(persona)
        _log.info("Indexed %d chunks for %s:%s", len(chunks), persona, kind.value)
        return len(chunks)

    def delete_source(self, persona: str, source_uri: str, kind: IndexKind | str = IndexKind.STATIC) -> None:
        """
        Remove every chunk from one origin.

        Args:
            persona: Persona id.
            source_uri: Origin to delete.
            kind: Index holding the origin.
        """
        kind = _kind(kind)
        self.get_store(persona, kind).delete_by_source(source_uri)
        self.cache.invalidate(persona)
        _log.info("Deleted source %s from %s:%s", source_uri, persona, kind.value)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(
        self,
        query: str,
        persona: str,
        category: Optional[str] = None,
        top_k: int = 5,
        rerank: bool = True,
    ) -> list[SearchResult]:
        """
        Hybrid search over both indices of a persona.

        Args:
            query: Search text.
            persona: Persona id.
            category: Optional category scope.
            top_k: Results to return.
            rerank: Allow the LLM rerank step.

        Returns:
            Ordered results, at most top_k.

        Raises:
            Exception: If embedding the query fails. Per-store failures
                degrade to empty results instead.

        Example:
            hits = engine.search("How do I use VLOOKUP?", "pig", category="excel")
        """
        candidates = top_k * 2
        query_vector = self.embedding.embed(query)
        filters = category_filter(category)

        futures = [
            self._executor.submit(self._query_store, persona, kind, query_vector, filters, candidates)
            for kind in INDEX_KINDS
        ]
        vector_hits = [hit for future in futures for hit in future.result()]
        # Stable sort: static hits precede learned hits on equal scores
        vector_hits.sort(key=lambda r: r.score, reverse=True)
        vector_hits = vector_hits[:candidates]

        lexical_pool = self._lexical_chunks(persona, category)
        keyword_hits = keyword_search(query, lexical_pool, candidates)

        fused = merge_with_rrf([vector_hits, keyword_hits], candidates, k=self.rrf_k)
        _log.debug(
            "search %s | vector=%d keyword=%d fused=%d", persona, len(vector_hits), len(keyword_hits), len(fused)
        )

        if rerank and self.quick_call is not None and len(fused) > top_k:
            return rerank_with_llm(query, fused, top_k, self.quick_call)
        return fused[:top_k]

    def _query_store(
        self,
        persona: str,
        kind: IndexKind,
        vector: list[float],
        filters: Optional[dict],
        top_k: int,
    ) -> list[SearchResult]:
        try:
            store = self.get_store(persona, kind)
            return store.query(vector, top_k=top_k, filters=filters, min_score=self.min_score)
        except Exception as exc:
            _log.warning("Vector query failed for %s:%s: %s", persona, kind.value, exc)
            return []

    def _lexical_chunks(self, persona: str, category: Optional[str]) -> list[StoredChunk]:
        chunks = self.cache.get_or_load(persona, lambda limit: self._load_chunks(persona, limit))
        if not category:
            return chunks
        return [c for c in chunks if c.metadata.category == category]

    def _load_chunks(self, persona: str, limit: int) -> list[StoredChunk]:
        loaded: list[StoredChunk] = []
        for kind in INDEX_KINDS:
            remaining = limit - len(loaded)
            if remaining <= 0:
                break
            try:
                loaded.extend(self.get_store(persona, kind).list_chunks(limit=remaining))
            except Exception as exc:
                _log.warning("Chunk load failed for %s:%s: %s", persona, kind.value, exc)
        return loaded

    # ------------------------------------------------------------------
    # Stats and lifecycle
    # ------------------------------------------------------------------

    def get_stats(self, persona: str) -> dict[str, dict]:
        """
        Chunk counts and distinct origins per index.

        Returns:
            {"static": {"count": int, "sources": [...]}, "learned": {...}}
        """
        stats: dict[str, dict] = {}
        for kind in INDEX_KINDS:
            store = self.get_store(persona, kind)
            stats[kind.value] = {"count": store.count(), "sources": store.list_sources()}
        return stats

    def _dispose_stores(self) -> None:
        with self._stores_lock:
            for store in self._stores.values():
                store.dispose()
            self._stores.clear()

    def dispose(self) -> None:
        """Release every store and clear caches."""
        self._dispose_stores()
        self.cache.clear()
        self._executor.shutdown(wait=False)
