"""
Shared fixtures for the Persona Hub test suite.

Provides a deterministic embedder, an in-memory retrieval engine, a
scripted LLM engine and permissive guardrails rooted in tmp_path.
"""

import hashlib
import re

import pytest

from core.personas import load_default_registry
from database.vector_store import InMemoryVectorStore
from engines.base import BaseEngine, StreamChunk, TokenUsage
from engines.router import LLMRouter
from permissions.config_loader import GuardrailConfig
from permissions.guardrails import ToolGuardrails
from rag.embeddings import EmbeddingPort
from rag.engine import RAGEngine
from rag.types import RawChunk, RawMetadata

_WORD = re.compile(r"\w+")


class HashEmbedder(EmbeddingPort):
    """Bag-of-words embedder: each word bumps one hashed dimension."""

    dimensions = 64
    model_name = "hash-test"

    def __init__(self, model_name="hash-test"):
        self.model_name = model_name
        self.embed_calls = 0

    def embed(self, text):
        self.embed_calls += 1
        vector = [0.0] * self.dimensions
        for word in _WORD.findall(text.lower()):
            digest = hashlib.md5(word.encode("utf-8")).digest()
            vector[digest[0] % self.dimensions] += 1.0
        return vector

    def embed_batch(self, texts):
        return [self.embed(t) for t in texts]


class ScriptedEngine(BaseEngine):
    """
    Engine that replays one script per stream() call.

    A script is a list of StreamChunk (an Exception inside the list is
    raised at that point) or an Exception raised before any output.
    """

    def __init__(self, name, scripts=None, models=("model-a",), quick_reply=None):
        self.name = name
        self.models = tuple(models)
        self.scripts = list(scripts or [])
        self.calls = []
        self.quick_reply = quick_reply
        self.supports_quick_call = quick_reply is not None

    def stream(self, model, messages, tools=None, cancel=None):
        self.calls.append({"model": model, "messages": [dict(m) for m in messages], "tools": tools})
        if self.scripts:
            script = self.scripts.pop(0)
        else:
            script = [StreamChunk(done=True, usage=TokenUsage(provider=self.name, model=model))]
        if isinstance(script, Exception):
            raise script
        for item in script:
            if isinstance(item, Exception):
                raise item
            yield item

    def quick_call(self, prompt, model=None):
        return self.quick_reply

    def is_available(self):
        return True


def text_round(text, provider="gemini", model="model-a", input_tokens=3, output_tokens=2):
    """A script answering with one text fragment and a done fragment."""
    return [
        StreamChunk(text=text),
        StreamChunk(done=True, usage=TokenUsage(input_tokens, output_tokens, provider, model)),
    ]


def raw_chunk(content, persona="pig", source_uri="knowledge://pig/test.md", category="general", source_type="static"):
    return RawChunk(content=content, metadata=RawMetadata(source_uri, persona, category, source_type))


@pytest.fixture
def embedder():
    return HashEmbedder()


@pytest.fixture
def rag_engine(tmp_path, embedder):
    engine = RAGEngine(
        embedder,
        data_dir=tmp_path / "rag",
        store_factory=InMemoryVectorStore,
        min_score=0.0,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def personas():
    return load_default_registry()


@pytest.fixture
def guardrails(tmp_path):
    blocked = tmp_path / "blocked"
    blocked.mkdir()
    return ToolGuardrails(
        GuardrailConfig(
            max_tool_calls_per_session=5,
            max_write_bytes=1024,
            blocked_paths=[str(blocked)],
            require_confirmation=["deleteFile", "writeFile"],
        )
    )


@pytest.fixture
def make_router():
    def _make(*engines):
        router = LLMRouter()
        for engine in engines:
            router.register(engine)
        return router

    return _make
