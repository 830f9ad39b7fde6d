"""
Tests for embedding adapters and backend selection.
"""

from unittest.mock import MagicMock, patch

import pytest

import config
from rag import embeddings
from rag.embeddings import GeminiEmbeddingAdapter, get_embedder, sanitize


@pytest.fixture(autouse=True)
def fresh_embedder(monkeypatch):
    monkeypatch.setattr(embeddings, "_embedder", None)


def _json_response(body):
    response = MagicMock()
    response.json.return_value = body
    return response


def test_sanitize_collapses_newlines_and_caps_length():
    assert sanitize("  a\n\nb\nc  ") == "a b c"
    assert len(sanitize("x" * 10_000)) == embeddings.MAX_INPUT_CHARS


def test_gemini_adapter_embed():
    adapter = GeminiEmbeddingAdapter("g-test")

    with patch.object(embeddings.requests, "post", return_value=_json_response({"embedding": {"values": [0.1, 0.2]}})) as post:
        vector = adapter.embed("line one\nline two")

    assert vector == [0.1, 0.2]
    assert post.call_args.args[0].endswith("gemini-embedding-001:embedContent")
    body = post.call_args.kwargs["json"]
    assert body["content"]["parts"][0]["text"] == "line one line two"
    assert body["outputDimensionality"] == 768
    assert adapter.marker == "gemini-embedding-001:768"


def test_gemini_adapter_batches(monkeypatch):
    monkeypatch.setattr(embeddings, "MAX_BATCH_SIZE", 2)
    adapter = GeminiEmbeddingAdapter("g-test")
    replies = [
        _json_response({"embeddings": [{"values": [1.0]}, {"values": [2.0]}]}),
        _json_response({"embeddings": [{"values": [3.0]}]}),
    ]

    with patch.object(embeddings.requests, "post", side_effect=replies) as post:
        vectors = adapter.embed_batch(["a", "b", "c"])

    assert vectors == [[1.0], [2.0], [3.0]]
    assert post.call_count == 2


def test_get_embedder_picks_gemini_when_only_gemini_key(monkeypatch):
    monkeypatch.setattr(config, "EMBEDDING_BACKEND", "auto")
    monkeypatch.setattr(config, "OPENAI_API_KEY", "")
    monkeypatch.setattr(config, "GEMINI_API_KEY", "g-test")

    embedder = get_embedder()

    assert isinstance(embedder, GeminiEmbeddingAdapter)
    assert get_embedder() is embedder


def test_get_embedder_explicit_backend_without_key(monkeypatch):
    monkeypatch.setattr(config, "EMBEDDING_BACKEND", "openai")
    monkeypatch.setattr(config, "OPENAI_API_KEY", "")

    with pytest.raises(RuntimeError, match="No embedding backend"):
        get_embedder()
