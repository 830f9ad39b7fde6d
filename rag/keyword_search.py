"""
keyword_search.py

BM25-like keyword ranking and reciprocal rank fusion.
Keyword matching catches exact terms that vector search can miss
(function names such as VLOOKUP, INDEX/MATCH or useState).
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import Sequence

from rag.types import SearchResult, StoredChunk

K1 = 1.2
B = 0.75
# Assumed average chunk length in tokens
AVG_DOC_LEN = 200
DEFAULT_RRF_K = 60

_NON_WORD = re.compile(r"[^\w\s가-힣]")


def tokenize(text: str) -> list[str]:
    """
    Lower-case a text and split it into terms longer than one character.

    Args:
        text: Any text.

    Returns:
        List of terms, in order, duplicates kept.

    Example:
        tokenize("VLOOKUP vs INDEX/MATCH")  # ["vlookup", "vs", "index", "match"]
    """
    cleaned = _NON_WORD.sub(" ", text.lower())
    return [t for t in cleaned.split() if len(t) > 1]


def bm25_score(query_terms: list[str], document: str, total_docs: int) -> float:
    """
    Score one document against query terms.

    IDF uses a fixed document-frequency approximation, log(1 + (N - 1) / 2),
    instead of real per-term document frequencies.

    Args:
        query_terms: Tokenized query.
        document: Document text.
        total_docs: Number of documents in the candidate set.

    Returns:
        Non-negative score; 0 when no query term occurs.
    """
    doc_terms = tokenize(document)
    doc_len = len(doc_terms)
    term_freq = Counter(doc_terms)
    idf = math.log(1 + (total_docs - 1) / 2)

    score = 0.0
    for term in query_terms:
        tf = term_freq.get(term, 0)
        if tf == 0:
            continue
        tf_norm = (tf * (K1 + 1)) / (tf + K1 * (1 - B + B * (doc_len / AVG_DOC_LEN)))
        score += idf * tf_norm
    return score


def keyword_search(query: str, chunks: Sequence[StoredChunk], top_k: int = 5) -> list[SearchResult]:
    """
    Rank chunks by keyword score.

    Args:
        query: Search query.
        chunks: Candidate chunks with full text.
        top_k: Maximum results.

    Returns:
        Results with score > 0, highest first. Ties keep input order.

    Example:
        hits = keyword_search("VLOOKUP", cached_chunks, top_k=10)
    """
    query_terms = tokenize(query)
    if not query_terms:
        return []

    scored = []
    for chunk in chunks:
        score = bm25_score(query_terms, chunk.content, len(chunks))
        if score > 0:
            scored.append(SearchResult(chunk.id, chunk.content, score, chunk.metadata))

    scored.sort(key=lambda r: r.score, reverse=True)
    return scored[:top_k]


def merge_with_rrf(
    result_lists: Sequence[Sequence[SearchResult]],
    top_k: int,
    k: int = DEFAULT_RRF_K,
) -> list[SearchResult]:
    """
    Merge ranked lists with reciprocal rank fusion.

    Each result scores the sum of 1 / (k + rank + 1) over the lists it
    appears in, with rank counted from 0. The first occurrence of an id
    supplies the returned content and metadata.

    Args:
        result_lists: Ranked lists, e.g. [vector_results, keyword_results].
        top_k: Maximum results.
        k: Fusion constant.

    Returns:
        Fused results carrying their fused score, highest first. Ties keep
        first-appearance order.
    """
    scores: dict[str, float] = {}
    first_seen: dict[str, SearchResult] = {}

    for results in result_lists:
        for rank, result in enumerate(results):
            if result.id not in first_seen:
                first_seen[result.id] = result
                scores[result.id] = 0.0
            scores[result.id] += 1.0 / (k + rank + 1)

    ordered = sorted(first_seen, key=lambda rid: scores[rid], reverse=True)
    return [first_seen[rid].with_score(scores[rid]) for rid in ordered[:top_k]]
