"""
Tests for the per-turn orchestrator: streaming, the tool-call loop,
provider fallback and cancellation.
"""

from unittest.mock import MagicMock

import pytest

from core.context import RAG_SECTION_START
from core.orchestrator import Orchestrator
from engines.base import CancelToken, ProviderError, StreamChunk, TokenUsage
from engines.openai_engine import OPENAI_MINI
from tools.base import Tool, ToolCall, require_str
from tools.registry import ToolRegistry

from conftest import ScriptedEngine, raw_chunk, text_round

EXCEL_REQUEST = "Make an excel sheet of the sales numbers"


class EchoTool(Tool):
    name = "echo"
    description = "Echo the text back."
    parameters = {"type": "object", "properties": {"text": {"type": "string"}}, "required": ["text"]}

    def execute(self, args):
        return require_str(args, "text")


def _tool_round(call_id="c1", text="hi", provider="gemini"):
    return [
        StreamChunk(tool_call=ToolCall(call_id, "echo", {"text": text})),
        StreamChunk(done=True, usage=TokenUsage(1, 1, provider, "model-a")),
    ]


@pytest.fixture
def registry(guardrails):
    reg = ToolRegistry(guardrails)
    reg.register(EchoTool())
    yield reg
    reg.shutdown()


@pytest.fixture
def build(make_router, registry, personas):
    def _build(*engines, rag_engine=None, **kwargs):
        return Orchestrator(make_router(*engines), rag_engine, registry, personas, **kwargs)

    return _build


def test_plain_turn_streams_text_then_done(build):
    gemini = ScriptedEngine("gemini", [text_round("Hello!")])

    chunks = list(build(gemini).process("hi there", "owl", history=[]))

    assert [c.text for c in chunks if c.text] == ["Hello!"]
    assert chunks[-1].done
    assert chunks[-1].usage.input_tokens == 3
    assert sum(c.done for c in chunks) == 1
    assert gemini.calls[0]["tools"] is None


def test_history_and_system_prompt_are_sent(build, personas):
    gemini = ScriptedEngine("gemini", [text_round("ok")])
    history = [{"role": "user", "content": "earlier"}, {"role": "assistant", "content": "reply"}]

    list(build(gemini).process("hi there", "owl", history=history))

    sent = gemini.calls[0]["messages"]
    assert sent[0] == {"role": "system", "content": personas.get("owl").system_prompt}
    assert [m["content"] for m in sent[1:]] == ["earlier", "reply", "hi there"]


def test_tool_loop_executes_and_feeds_results_back(build):
    gemini = ScriptedEngine("gemini", [_tool_round(), text_round("All done")])

    chunks = list(build(gemini).process(EXCEL_REQUEST, "pig", history=[]))

    assert chunks[0].tool_call.name == "echo"
    assert [c.text for c in chunks if c.text] == ["All done"]
    assert chunks[-1].usage.input_tokens == 4
    assert chunks[-1].usage.output_tokens == 3

    second = gemini.calls[1]["messages"]
    assert second[-2]["role"] == "assistant"
    assert second[-2]["tool_calls"][0].id == "c1"
    assert second[-1] == {"role": "tool", "tool_call_id": "c1", "name": "echo", "content": "hi"}
    assert any(d["name"] == "echo" for d in gemini.calls[0]["tools"])


def test_tool_failure_is_fed_back_as_error_text(build):
    bad = [
        StreamChunk(tool_call=ToolCall("c9", "teleport", {})),
        StreamChunk(done=True, usage=TokenUsage(1, 1, "gemini", "model-a")),
    ]
    gemini = ScriptedEngine("gemini", [bad, text_round("Sorry")])

    list(build(gemini).process(EXCEL_REQUEST, "pig", history=[]))

    assert gemini.calls[1]["messages"][-1]["content"].startswith("Error:")


def test_round_limit_forces_final_answer_without_tools(build):
    gemini = ScriptedEngine(
        "gemini", [_tool_round("c1"), _tool_round("c2"), text_round("Here is what I have")]
    )

    chunks = list(build(gemini, max_tool_rounds=2).process(EXCEL_REQUEST, "pig", history=[]))

    assert len(gemini.calls) == 3
    assert gemini.calls[1]["tools"] is not None
    assert gemini.calls[2]["tools"] is None
    assert [c.text for c in chunks if c.text] == ["Here is what I have"]
    assert chunks[-1].done


def test_quota_error_falls_back_to_openai(build):
    gemini = ScriptedEngine("gemini", [ProviderError("quota exceeded", provider="gemini", status_code=429)])
    openai = ScriptedEngine("openai", [text_round("from openai", provider="openai", model=OPENAI_MINI)])

    chunks = list(build(gemini, openai).process("hi there", "owl", history=[]))

    assert openai.calls[0]["model"] == OPENAI_MINI
    assert [c.text for c in chunks if c.text] == ["from openai"]
    assert chunks[-1].usage.provider == "openai"
    assert chunks[-1].usage.model == OPENAI_MINI


def test_no_fallback_once_text_was_emitted(build):
    gemini = ScriptedEngine(
        "gemini", [[StreamChunk(text="partial"), ProviderError("quota", provider="gemini", status_code=429)]]
    )
    openai = ScriptedEngine("openai")
    stream = build(gemini, openai).process("hi there", "owl", history=[])

    assert next(stream).text == "partial"
    with pytest.raises(ProviderError):
        next(stream)
    assert openai.calls == []


def test_no_fallback_after_a_tool_already_ran(build, registry):
    """A quota error after a tool round must not replay the turn and rerun the tool."""
    counting = MagicMock(wraps=registry.execute)
    registry.execute = counting
    gemini = ScriptedEngine(
        "gemini", [_tool_round(), ProviderError("quota exceeded", provider="gemini", status_code=429)]
    )
    openai = ScriptedEngine("openai", [text_round("from openai", provider="openai", model=OPENAI_MINI)])
    chunks = []

    with pytest.raises(ProviderError):
        for chunk in build(gemini, openai).process(EXCEL_REQUEST, "pig", history=[]):
            chunks.append(chunk)

    assert counting.call_count == 1
    assert registry.current_call_count == 1
    assert openai.calls == []
    assert [c.tool_call.name for c in chunks if c.tool_call] == ["echo"]


def test_other_errors_propagate_without_fallback(build):
    gemini = ScriptedEngine("gemini", [ProviderError("internal failure", provider="gemini", status_code=500)])
    openai = ScriptedEngine("openai")

    with pytest.raises(ProviderError, match="HTTP 500"):
        list(build(gemini, openai).process("hi there", "owl", history=[]))
    assert openai.calls == []


def test_quota_error_without_configured_fallback_propagates(build):
    gemini = ScriptedEngine("gemini", [ProviderError("quota", provider="gemini", status_code=429)])

    with pytest.raises(ProviderError):
        list(build(gemini).process("hi there", "owl", history=[]))


def test_cancellation_stops_the_stream(build):
    gemini = ScriptedEngine("gemini", [[StreamChunk(text="a"), StreamChunk(text="b"), StreamChunk(done=True)]])
    token = CancelToken()
    stream = build(gemini).process("hi there", "owl", history=[], cancel=token)

    assert next(stream).text == "a"
    token.cancel()

    assert list(stream) == []


def test_retrieval_failure_degrades_to_no_context(build, personas):
    rag = MagicMock()
    rag.search.side_effect = RuntimeError("embedding backend down")
    gemini = ScriptedEngine("gemini", [text_round("answer")])

    chunks = list(build(gemini, rag_engine=rag).process("VLOOKUP 사용법", "pig", history=[]))

    assert chunks[-1].done
    assert gemini.calls[0]["messages"][0]["content"] == personas.get("pig").system_prompt


def test_retrieved_knowledge_lands_in_system_prompt(build, rag_engine):
    rag_engine.index_chunks(
        "pig", [raw_chunk("VLOOKUP searches the first column of a range.", category="excel")]
    )
    gemini = ScriptedEngine("gemini", [text_round("answer")])

    list(build(gemini, rag_engine=rag_engine).process("엑셀 VLOOKUP 사용법", "pig", history=[]))

    system = gemini.calls[0]["messages"][0]["content"]
    assert RAG_SECTION_START in system
    assert "[1] VLOOKUP searches the first column" in system


def test_each_turn_resets_tool_call_budget(build, registry):
    gemini = ScriptedEngine("gemini", [_tool_round(), text_round("one"), _tool_round(), text_round("two")])
    orchestrator = build(gemini)

    list(orchestrator.process(EXCEL_REQUEST, "pig", history=[]))
    list(orchestrator.process(EXCEL_REQUEST, "pig", history=[]))

    assert registry.current_call_count == 1
