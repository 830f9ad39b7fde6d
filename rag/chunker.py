"""
chunker.py

Structure-aware chunker.
Document sections (headings, sheets, pages) are the first split boundary;
sections over the token budget are split on paragraphs, and paragraphs
still over budget are split on sentences, then words. The tail of each chunk is
carried into the head of the next so context survives the boundary.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import math
import re
from collections import deque
from typing import Optional

from rag.types import ChunkerConfig, DocumentSection, RawChunk, RawMetadata

DEFAULT_CONFIG = ChunkerConfig(max_tokens=500, overlap_tokens=50)

_PARAGRAPH_SPLIT = re.compile(r"\n\n+")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?。！？])\s+")
_HEADING = re.compile(r"^#{1,3}\s+")
# Hangul, CJK ideographs and kana: scripts without word-boundary spaces
_DENSE_SCRIPT = re.compile(r"[\uac00-\ud7af\u3040-\u30ff\u4e00-\u9fff]")


def estimate_tokens(text: str) -> int:
    """
    Estimate the token count of a text from its length.

    Uses ~2 chars/token when more than 30% of the characters belong to a
    dense script (Korean, Chinese, Japanese), else ~3 chars/token.

    Args:
        text: Any text.

    Returns:
        Estimated token count (0 for empty text).

    Example:
        estimate_tokens("hello world")  # 4
    """
    if not text:
        return 0
    dense = len(_DENSE_SCRIPT.findall(text))
    ratio = 2 if dense > len(text) * 0.3 else 3
    return math.ceil(len(text) / ratio)


def chunk_sections(
    sections: list[DocumentSection],
    base_metadata: RawMetadata,
    chunker_config: Optional[ChunkerConfig] = None,
) -> list[RawChunk]:
    """
    Split document sections into raw chunks.

    A section within the budget becomes exactly one chunk. Larger
    sections are split with overlap. Each section's own metadata is
    copied into the extra mapping of every chunk it produces.

    Args:
        sections: Parsed document sections.
        base_metadata: Metadata shared by every produced chunk.
        chunker_config: Token budget and overlap; defaults to 500/50.

    Returns:
        Raw chunks in document order.

    Example:
        chunks = chunk_sections(doc.sections, RawMetadata("upload://a.md", "pig"))
    """
    cfg = chunker_config or DEFAULT_CONFIG
    chunks: list[RawChunk] = []

    for section in sections:
        content = section.content.strip()
        if not content:
            continue

        if estimate_tokens(content) <= cfg.max_tokens:
            pieces = [content]
        else:
            pieces = split_with_overlap(content, cfg.max_tokens, cfg.overlap_tokens)

        for piece in pieces:
            chunks.append(RawChunk(content=piece, metadata=base_metadata, extra=dict(section.metadata)))

    return chunks


def split_markdown_into_sections(content: str, default_title: str = "untitled") -> list[DocumentSection]:
    """
    Split Markdown text at level 1-3 headings.

    The heading line stays at the top of its section. Text before the
    first heading forms a section titled default_title. Empty sections
    are dropped.

    Args:
        content: Markdown text.
        default_title: Title for leading text without a heading.

    Returns:
        List of DocumentSection.
    """
    sections: list[DocumentSection] = []
    title = default_title
    lines: list[str] = []

    for line in content.split("\n"):
        if _HEADING.match(line):
            if lines:
                sections.append(DocumentSection(title=title, content="\n".join(lines).strip()))
            title = _HEADING.sub("", line).strip()
            lines = [line]
        else:
            lines.append(line)

    if lines:
        sections.append(DocumentSection(title=title, content="\n".join(lines).strip()))

    return [s for s in sections if s.content]


def _split_unit(unit: str) -> list[tuple[str, str]]:
    """Break a unit into sentences, or into words when it is one sentence."""
    sentences = [s.strip() for s in _SENTENCE_SPLIT.split(unit) if s.strip()]
    if len(sentences) > 1:
        return [(s, " ") for s in sentences]
    return [(w, " ") for w in unit.split()]


def split_with_overlap(text: str, max_tokens: int, overlap_tokens: int) -> list[str]:
    """
    Split text on paragraph boundaries, carrying an overlap tail forward.

    Paragraphs are packed greedily up to max_tokens. A paragraph that is
    itself over budget is broken into sentences, which are packed the same
    way. Every new chunk starts with the trailing words of the previous
    chunk (about overlap_tokens). When the next unit does not fit after
    that tail, it is broken into sentences, then words, so the tail is
    kept at full size. Only a single word longer than the budget can
    produce an over-budget chunk.

    Args:
        text: Section text.
        max_tokens: Token budget per chunk.
        overlap_tokens: Target overlap between adjacent chunks.

    Returns:
        Chunk texts in order.
    """
    units: deque[tuple[str, str]] = deque()
    for para in _PARAGRAPH_SPLIT.split(text):
        para = para.strip()
        if not para:
            continue
        if estimate_tokens(para) <= max_tokens:
            units.append((para, "\n\n"))
            continue
        for sentence in _SENTENCE_SPLIT.split(para):
            sentence = sentence.strip()
            if sentence:
                units.append((sentence, " "))

    chunks: list[str] = []
    current = ""
    # True while current holds only the tail carried from the previous chunk
    carried = False
    while units:
        unit, joiner = units.popleft()
        if not current:
            pieces = _split_unit(unit) if estimate_tokens(unit) > max_tokens else []
            if len(pieces) > 1:
                units.extendleft(reversed(pieces))
                continue
            current = unit
            continue

        candidate = current + (" " if carried else joiner) + unit
        if estimate_tokens(candidate) <= max_tokens:
            current = candidate
            carried = False
            continue

        if not carried:
            chunks.append(current)
            current = extract_overlap(current, overlap_tokens)
            carried = bool(current)
            units.appendleft((unit, joiner))
            continue

        pieces = _split_unit(unit)
        if len(pieces) > 1:
            units.extendleft(reversed(pieces))
            continue
        # A single word that cannot follow the tail within budget
        current = candidate
        carried = False

    if current and not carried:
        chunks.append(current)
    return chunks


def extract_overlap(text: str, overlap_tokens: int) -> str:
    """
    Take the trailing words of a chunk as overlap text.

    Starts from ceil(overlap_tokens * 0.75) words and drops leading words
    until the estimate fits within overlap_tokens.

    Args:
        text: The previous chunk.
        overlap_tokens: Token allowance for the overlap.

    Returns:
        The overlap text, or "" when there is no room.
    """
    if overlap_tokens <= 0:
        return ""
    words = text.split()
    tail = words[-math.ceil(overlap_tokens * 0.75):]
    while tail and estimate_tokens(" ".join(tail)) > overlap_tokens:
        tail = tail[1:]
    return " ".join(tail)
