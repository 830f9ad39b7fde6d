"""
reranker.py

Lightweight LLM reranker.
Asks a fast model to pick the most relevant candidates from the fused
search list. Any failure leaves the fused order untouched.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Callable

import config
from rag.types import SearchResult

_log = logging.getLogger("persona.rag.reranker")
_handler = logging.FileHandler(config.LOGS_DIR / "rag.log")
_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

QuickCall = Callable[[str], str]

SNIPPET_CHARS = 150
_INDEX_ARRAY = re.compile(r"\[[\d\s,]+\]")


def build_rerank_prompt(query: str, results: list[SearchResult], top_k: int) -> str:
    """
    Build the rerank prompt listing numbered snippets.

    Args:
        query: The user's query.
        results: Fused candidates.
        top_k: Number of indices to ask for.

    Returns:
        The prompt text.
    """
    snippets = "\n".join(
        f"[{i}] {r.content[:SNIPPET_CHARS].replace(chr(10), ' ')}" for i, r in enumerate(results)
    )
    return "\n".join(
        [
            "Pick the search results most relevant to the question.",
            "",
            f'Question: "{query}"',
            "",
            "Search results:",
            snippets,
            "",
            f"Return only the {top_k} most relevant indices as a JSON array. Example: [0, 3, 1]",
        ]
    )


def parse_indices(response: str, max_index: int) -> list[int]:
    """
    Extract the first JSON index array from a model reply.

    Args:
        response: Raw model text.
        max_index: Exclusive upper bound for valid indices.

    Returns:
        Valid, de-duplicated indices in reply order; [] if none parse.

    Example:
        parse_indices("Sure: [2, 0, 9]", 5)  # [2, 0]
    """
    match = _INDEX_ARRAY.search(response or "")
    if not match:
        return []
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return []

    indices: list[int] = []
    for n in parsed:
        if isinstance(n, int) and 0 <= n < max_index and n not in indices:
            indices.append(n)
    return indices


def rerank_with_llm(
    query: str,
    results: list[SearchResult],
    top_k: int,
    quick_call: QuickCall,
) -> list[SearchResult]:
    """
    Rerank fused results with a quick model call.

    Returns the input unchanged when it already fits in top_k. When the
    model names fewer than top_k valid indices the rest are filled from
    fused order, so exactly top_k results come back.

    Args:
        query: The user's query.
        results: Fused candidates, best first.
        top_k: Number of results to return.
        quick_call: Function sending one prompt and returning the reply text.

    Returns:
        Up to top_k results.

    Example:
        final = rerank_with_llm("VLOOKUP", fused, 5, router.quick_call)
    """
    if len(results) <= top_k:
        return results

    prompt = build_rerank_prompt(query, results, top_k)
    try:
        response = quick_call(prompt)
    except Exception as exc:
        _log.warning("Rerank call failed, keeping fused order: %s", exc)
        return results[:top_k]

    indices = parse_indices(response, len(results))
    if not indices:
        _log.warning("Rerank reply had no index array, keeping fused order")
        return results[:top_k]

    chosen = indices[:top_k]
    for i in range(len(results)):
        if len(chosen) >= top_k:
            break
        if i not in chosen:
            chosen.append(i)
    return [results[i] for i in chosen]
