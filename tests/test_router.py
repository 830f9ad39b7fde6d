"""
Tests for the LLM router.
"""

import pytest

import config
from engines.base import ProviderError
from engines.router import build_default_router

from conftest import ScriptedEngine, text_round


def test_registered_providers_and_models(make_router):
    router = make_router(ScriptedEngine("gemini", models=("flash", "pro")), ScriptedEngine("openai"))

    assert router.available_providers() == ["gemini", "openai"]
    assert router.available_models() == [("gemini", "flash"), ("gemini", "pro"), ("openai", "model-a")]


def test_chat_with_unconfigured_provider(make_router):
    router = make_router(ScriptedEngine("gemini"))

    with pytest.raises(ProviderError, match="not configured"):
        list(router.chat_with("openai", "gpt-4o", []))


def test_chat_with_streams_the_named_model(make_router):
    engine = ScriptedEngine("gemini", [text_round("hi")], models=("flash", "pro"))
    router = make_router(engine)

    chunks = list(router.chat_with("gemini", "pro", [{"role": "user", "content": "hello"}]))

    assert chunks[0].text == "hi"
    assert engine.calls[0]["model"] == "pro"


def test_quick_call_prefers_gemini(make_router):
    router = make_router(ScriptedEngine("openai", quick_reply="from openai"),
                         ScriptedEngine("gemini", quick_reply="from gemini"))

    assert router.has_quick_call
    assert router.quick_call("rank") == "from gemini"


def test_quick_call_without_support(make_router):
    router = make_router(ScriptedEngine("gemini"))

    assert not router.has_quick_call
    with pytest.raises(ProviderError):
        router.quick_call("rank")


def test_default_router_follows_configured_keys(monkeypatch):
    monkeypatch.setattr(config, "GEMINI_API_KEY", "")
    monkeypatch.setattr(config, "OPENAI_API_KEY", "sk-test")

    router = build_default_router()

    assert router.available_providers() == ["openai"]
    assert router.status() == {"openai": True}
