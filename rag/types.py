"""
types.py

Shared data types for the retrieval pipeline: chunk metadata, embedded
and raw chunks, search results, parsed documents and chunker settings.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional


class IndexKind(str, Enum):
    """The two logical indices every persona owns."""

    STATIC = "static"
    LEARNED = "learned"


SOURCE_TYPES: tuple[str, ...] = ("static", "user-upload", "learned")


@dataclass(frozen=True)
class RawMetadata:
    """
    Chunk metadata before positional fields are assigned.

    Attributes:
        source_uri: Origin identifier, e.g. "knowledge://pig/excel/vlookup.md".
        character_id: Owning persona id.
        category: Topical tag used for filtering.
        source_type: "static", "user-upload" or "learned".
    """

    source_uri: str
    character_id: str
    category: str = "general"
    source_type: str = "static"

    def __post_init__(self) -> None:
        if self.source_type not in SOURCE_TYPES:
            raise ValueError(f"Unknown source_type: {self.source_type}")


@dataclass(frozen=True)
class ChunkMetadata(RawMetadata):
    """
    Persisted chunk metadata, including position within its origin.

    Attributes:
        chunk_index: Position of the chunk within its origin.
        total_chunks: Number of chunks the origin produced.
        extra: Loader and learning details such as sheet, page or quality.
            Persisted alongside the fixed fields; never overrides them.
    """

    chunk_index: int = 0
    total_chunks: int = 1
    extra: dict[str, Any] = field(default_factory=dict, hash=False)

    def to_store(self) -> dict[str, Any]:
        """Flatten into the scalar mapping a vector store persists."""
        data: dict[str, Any] = {
            "sourceUri": self.source_uri,
            "characterId": self.character_id,
            "category": self.category,
            "sourceType": self.source_type,
            "chunkIndex": self.chunk_index,
            "totalChunks": self.total_chunks,
        }
        for key, value in self.extra.items():
            data.setdefault(key, value)
        return data

    @classmethod
    def from_store(cls, data: dict[str, Any]) -> "ChunkMetadata":
        """Rebuild metadata from a vector store mapping."""
        return cls(
            source_uri=str(data.get("sourceUri", "")),
            character_id=str(data.get("characterId", "")),
            category=str(data.get("category", "general")),
            source_type=str(data.get("sourceType", "static")),
            chunk_index=int(data.get("chunkIndex", 0)),
            total_chunks=int(data.get("totalChunks", 1)),
            extra={k: v for k, v in data.items() if k not in _STORE_FIELDS},
        )


_STORE_FIELDS = frozenset({"sourceUri", "characterId", "category", "sourceType", "chunkIndex", "totalChunks"})


@dataclass
class RawChunk:
    """Chunk text plus metadata, before embedding. Never persisted directly."""

    content: str
    metadata: RawMetadata
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class DocumentChunk:
    """An embedded chunk as stored in a vector index."""

    id: str
    content: str
    vector: list[float]
    metadata: ChunkMetadata


@dataclass
class SearchResult:
    """
    One search hit.

    Scores are only comparable within a single search stage: cosine
    similarity, lexical score or fused rank score.
    """

    id: str
    content: str
    score: float
    metadata: ChunkMetadata

    def with_score(self, score: float) -> "SearchResult":
        """Return a copy carrying a different score."""
        return replace(self, score=score)


@dataclass
class StoredChunk:
    """Chunk text and metadata materialized for lexical search."""

    id: str
    content: str
    metadata: ChunkMetadata


@dataclass
class DocumentSection:
    """A logical section of a document: a heading, a sheet, a page."""

    title: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ParsedDocument:
    """Output of a document loader."""

    source_path: str
    content: str
    sections: list[DocumentSection] = field(default_factory=list)


@dataclass(frozen=True)
class ChunkerConfig:
    """Token budget and overlap for the chunker."""

    max_tokens: int = 500
    overlap_tokens: int = 50


def category_filter(category: Optional[str]) -> Optional[dict[str, Any]]:
    """
    Build the metadata filter for an optional category.

    Args:
        category: Category to scope to, or None.

    Returns:
        {"category": {"$eq": category}} or None.
    """
    if not category:
        return None
    return {"category": {"$eq": category}}
