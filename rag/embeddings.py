"""
embeddings.py

Embedding port and its adapters for Persona Hub.
Converts text to fixed-length vectors for the vector store.

Adapters
--------
  1. OpenAIEmbeddingAdapter  — text-embedding-3-small, 1536 dims (langchain-openai)
  2. GeminiEmbeddingAdapter  — gemini-embedding-001, 768 dims (REST via requests)
  3. OllamaEmbeddingAdapter  — nomic-embed-text, 768 dims (langchain-ollama), local and free

get_embedder() picks one from config.EMBEDDING_BACKEND; "auto" tries
them in the order above.

Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

import requests

import config

_log = logging.getLogger("persona.embeddings")
_handler = logging.FileHandler(config.LOGS_DIR / "vector_store.log")
_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

MAX_BATCH_SIZE = 100
MAX_INPUT_CHARS = 8000
GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"

_NEWLINES = re.compile(r"\n+")


def sanitize(text: str) -> str:
    """Collapse newlines, trim, and cap the input length."""
    return _NEWLINES.sub(" ", text).strip()[:MAX_INPUT_CHARS]


def _batches(texts: list[str]):
    for i in range(0, len(texts), MAX_BATCH_SIZE):
        yield [sanitize(t) for t in texts[i:i + MAX_BATCH_SIZE]]


class EmbeddingPort(ABC):
    """
    Interface every embedding backend implements.

    Example:
        vec = embedder.embed("VLOOKUP syntax")
        len(vec) == embedder.dimensions
    """

    dimensions: int = 0
    model_name: str = ""

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """Embed one text."""
        ...

    @abstractmethod
    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed many texts, preserving order."""
        ...

    @property
    def marker(self) -> str:
        """Identity written to the index marker file: "{model}:{dims}"."""
        return f"{self.model_name}:{self.dimensions}"


class OpenAIEmbeddingAdapter(EmbeddingPort):
    """OpenAI text-embedding-3-small through langchain-openai."""

    dimensions = 1536
    model_name = "text-embedding-3-small"

    def __init__(self, api_key: str) -> None:
        from langchain_openai import OpenAIEmbeddings

        self._client = OpenAIEmbeddings(model=self.model_name, openai_api_key=api_key)

    def embed(self, text: str) -> list[float]:
        return self._client.embed_query(sanitize(text))

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for batch in _batches(texts):
            vectors.extend(self._client.embed_documents(batch))
        return vectors


class OllamaEmbeddingAdapter(EmbeddingPort):
    """Local nomic-embed-text through langchain-ollama."""

    dimensions = 768
    model_name = "nomic-embed-text"

    def __init__(self, base_url: str) -> None:
        from langchain_ollama import OllamaEmbeddings

        self._client = OllamaEmbeddings(model=self.model_name, base_url=base_url)

    def embed(self, text: str) -> list[float]:
        return self._client.embed_query(sanitize(text))

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for batch in _batches(texts):
            vectors.extend(self._client.embed_documents(batch))
        return vectors


class GeminiEmbeddingAdapter(EmbeddingPort):
    """
    Gemini gemini-embedding-001 via the REST API, reduced to 768 dimensions.

    Example:
        embedder = GeminiEmbeddingAdapter(config.GEMINI_API_KEY)
        vectors = embedder.embed_batch(["a", "b"])
    """

    dimensions = 768
    model_name = "gemini-embedding-001"

    def __init__(self, api_key: str, timeout: int = 60) -> None:
        self._api_key = api_key
        self._timeout = timeout

    def _post(self, method: str, payload: dict) -> dict:
        response = requests.post(
            f"{GEMINI_API_BASE}/models/{self.model_name}:{method}",
            headers={"x-goog-api-key": self._api_key, "Content-Type": "application/json"},
            json=payload,
            timeout=self._timeout,
        )
        response.raise_for_status()
        return response.json()

    def _request(self, text: str) -> dict:
        return {
            "model": f"models/{self.model_name}",
            "content": {"parts": [{"text": text}]},
            "outputDimensionality": self.dimensions,
        }

    def embed(self, text: str) -> list[float]:
        payload = self._post("embedContent", self._request(sanitize(text)))
        return payload.get("embedding", {}).get("values", [])

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for batch in _batches(texts):
            payload = self._post("batchEmbedContents", {"requests": [self._request(t) for t in batch]})
            vectors.extend(item.get("values", []) for item in payload.get("embeddings", []))
        return vectors


_embedder: Optional[EmbeddingPort] = None


def get_embedder() -> EmbeddingPort:
    """
    Lazily create the configured embedding backend.

    Tries (for EMBEDDING_BACKEND="auto", in order):
      1. OpenAI embeddings if OPENAI_API_KEY is set
      2. Gemini embeddings if GEMINI_API_KEY is set
      3. Ollama local embeddings (always free, no key needed)

    Returns:
        An EmbeddingPort instance.

    Raises:
        RuntimeError: If no embedding backend can be initialised.
    """
    global _embedder
    if _embedder is not None:
        return _embedder

    backend = config.EMBEDDING_BACKEND.lower()
    attempts = ["openai", "gemini", "ollama"] if backend == "auto" else [backend]

    for name in attempts:
        try:
            if name == "openai" and config.OPENAI_API_KEY:
                _embedder = OpenAIEmbeddingAdapter(config.OPENAI_API_KEY)
            elif name == "gemini" and config.GEMINI_API_KEY:
                _embedder = GeminiEmbeddingAdapter(config.GEMINI_API_KEY)
            elif name == "ollama":
                _embedder = OllamaEmbeddingAdapter(config.OLLAMA_BASE_URL)
        except Exception as exc:  # noqa: BLE001
            _log.warning("%s embeddings unavailable: %s", name, exc)
            continue
        if _embedder is not None:
            _log.info("Embedding backend: %s", _embedder.marker)
            return _embedder

    raise RuntimeError(
        "No embedding backend available. "
        "Set OPENAI_API_KEY or GEMINI_API_KEY, or ensure Ollama is running."
    )
