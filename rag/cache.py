"""
cache.py

Bounded LRU cache of materialized chunk text, keyed per persona.
Feeds keyword search without re-reading the vector stores on every query.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Callable, Optional

from rag.types import StoredChunk


class LexicalCache:
    """
    LRU map from persona id to that persona's chunks.

    Holds at most max_entries personas and max_chunks chunks per persona.
    Hits move the entry to the most-recent end; inserts evict the least
    recently used entry once the cache is full.

    Example:
        cache = LexicalCache(max_entries=20, max_chunks=500)
        chunks = cache.get_or_load("pig", lambda limit: load_chunks("pig", limit))
        cache.invalidate("pig")
    """

    def __init__(self, max_entries: int = 20, max_chunks: int = 500) -> None:
        self.max_entries = max_entries
        self.max_chunks = max_chunks
        self._entries: "OrderedDict[str, list[StoredChunk]]" = OrderedDict()
        # Bumped by invalidate() and clear(); a load is cached only if it did not change meanwhile
        self._generation = 0
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[list[StoredChunk]]:
        """Return the cached chunks for key, marking it recently used."""
        with self._lock:
            if key not in self._entries:
                return None
            self._entries.move_to_end(key)
            return self._entries[key]

    def put(self, key: str, chunks: list[StoredChunk]) -> None:
        """Store chunks for key, truncated to max_chunks, evicting if full."""
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            elif len(self._entries) >= self.max_entries:
                self._entries.popitem(last=False)
            self._entries[key] = list(chunks[: self.max_chunks])

    def get_or_load(self, key: str, loader: Callable[[int], list[StoredChunk]]) -> list[StoredChunk]:
        """
        Return cached chunks, calling loader(max_chunks) on a miss.

        The loader runs without the lock held, so a slow load for one
        persona does not block lookups for the others. A load that raced
        with invalidate() or clear() is returned to its caller but not cached.

        Args:
            key: Persona id.
            loader: Called with the chunk allowance; returns the chunks.

        Returns:
            The chunks for key.
        """
        with self._lock:
            cached = self.get(key)
            if cached is not None:
                return cached
            generation = self._generation

        chunks = list(loader(self.max_chunks)[: self.max_chunks])

        with self._lock:
            if self._generation == generation:
                self.put(key, chunks)
        return chunks

    def invalidate(self, key: str) -> None:
        """Drop the entry for key, if any."""
        with self._lock:
            self._entries.pop(key, None)
            self._generation += 1

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generation += 1

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
