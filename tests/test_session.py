"""
Tests for ChatSession: history, error wording, cancellation and learning hooks.
"""

import pytest

from core.learning import LearningManager
from core.orchestrator import Orchestrator
from core.session import ChatSession
from engines.base import ProviderError, StreamChunk, TokenUsage
from tools.base import ToolCall
from tools.registry import ToolRegistry

from conftest import ScriptedEngine, text_round

LONG_ANSWER = "Use INDEX with MATCH when the lookup column is not the first one. " * 3


@pytest.fixture
def registry(guardrails):
    reg = ToolRegistry(guardrails)
    yield reg
    reg.shutdown()


@pytest.fixture
def make_session(make_router, registry, personas, rag_engine):
    def _make(*scripts, **kwargs):
        engine = ScriptedEngine("gemini", list(scripts))
        orchestrator = Orchestrator(make_router(engine), rag_engine, registry, personas)
        session = ChatSession(orchestrator, rag_engine, LearningManager(rag_engine), personas, **kwargs)
        return session, engine

    return _make


def test_turn_records_history_and_usage(make_session):
    session, _ = make_session(text_round("Hello!"))

    fragments = list(session.send_message("hi there", "owl"))

    done = fragments[-1]
    assert done.done and done.error is None
    history = session.history("owl")
    assert [(m["role"], m["content"]) for m in history] == [("user", "hi there"), ("assistant", "Hello!")]
    assert history[-1]["id"] == done.message_id
    assert history[-1]["model"] == "gemini/model-a"
    assert session.usage_log == [done.usage]
    assert session.current_persona == "owl"


def test_history_sent_to_model_excludes_current_message(make_session):
    session, engine = make_session(text_round("first answer"), text_round("second answer"))

    list(session.send_message("first question", "owl"))
    list(session.send_message("second question"))

    contents = [m["content"] for m in engine.calls[1]["messages"][1:]]
    assert contents == ["first question", "first answer", "second question"]


def test_quota_error_uses_persona_wording(make_session, personas):
    session, _ = make_session(ProviderError("quota exceeded", provider="gemini", status_code=429))

    fragments = list(session.send_message("hi there", "pig"))

    assert len(fragments) == 1
    assert fragments[0].done
    assert fragments[0].error == "quota"
    assert fragments[0].text == personas.get("pig").error_message("quota")


def test_network_error_category(make_session, personas):
    session, _ = make_session(ProviderError("connection refused", provider="gemini"))

    fragment = list(session.send_message("hi there", "fox"))[-1]

    assert fragment.error == "network"
    assert fragment.text == personas.get("fox").error_message("network")


def test_tool_call_carries_progress_message(make_session, personas):
    tool_round = [
        StreamChunk(tool_call=ToolCall("c1", "readExcel", {"path": "/tmp/none.xlsx"})),
        StreamChunk(done=True, usage=TokenUsage(1, 1, "gemini", "model-a")),
    ]
    session, _ = make_session(tool_round, text_round("Read it"))

    fragments = list(session.send_message("Summarise this excel file for me", "pig"))

    progress = [f for f in fragments if f.tool_call is not None]
    assert len(progress) == 1
    assert progress[0].progress_message in personas.get("pig").tool_progress_messages["readExcel"]


def test_new_message_cancels_previous_stream(make_session):
    slow = [StreamChunk(text="a"), StreamChunk(text="b"), StreamChunk(done=True)]
    session, _ = make_session(slow, text_round("second answer"))

    first = session.send_message("first", "owl")
    assert next(first).text == "a"

    second = list(session.send_message("second", "owl"))

    assert list(first) == []
    assert second[-1].done
    assert [m["content"] for m in session.history("owl")] == ["first", "second", "second answer"]


def test_least_recently_used_persona_history_is_evicted(make_session):
    session, _ = make_session(max_personas=2)

    for persona in ("fox", "rabbit", "owl"):
        list(session.send_message("hi there", persona))

    assert session.history("fox") == []
    assert len(session.history("owl")) == 2


def test_history_is_capped_per_persona(make_session):
    session, _ = make_session(text_round("one"), text_round("two"), max_history=3)

    list(session.send_message("first", "owl"))
    list(session.send_message("second", "owl"))

    assert [m["content"] for m in session.history("owl")] == ["one", "second", "two"]


def test_clear_history(make_session):
    session, _ = make_session(text_round("ok"))
    list(session.send_message("hi there", "owl"))

    session.clear_history("owl")

    assert session.history("owl") == []


def test_correction_feedback_is_learned(make_session, rag_engine):
    session, _ = make_session()

    added = session.submit_feedback("m1", "pig", "correction", "XLOOKUP defaults to exact match.")

    assert added == 1
    assert session.feedback_log[0].type == "correction"
    assert rag_engine.get_stats("pig")["learned"]["count"] == 1


def test_unknown_feedback_type_is_rejected(make_session):
    session, _ = make_session()

    with pytest.raises(ValueError):
        session.submit_feedback("m1", "pig", "meh")


def test_learn_from_history(make_session, rag_engine):
    session, _ = make_session(text_round(LONG_ANSWER))
    list(session.send_message("When should I use INDEX/MATCH?", "pig"))

    assert session.learn_from_history("pig") == 1
    assert rag_engine.get_stats("pig")["learned"]["sources"][0].startswith("conversation://pig/")


def test_upload_reports_errors(make_session, tmp_path):
    session, _ = make_session()

    unsupported = session.upload_knowledge("pig", tmp_path / "notes.xyz")
    missing = session.upload_knowledge("pig", tmp_path / "missing.md")

    assert "Unsupported" in unsupported.error
    assert missing.chunks_added == 0 and missing.error


def test_upload_and_stats(make_session, tmp_path):
    doc = tmp_path / "pivot.md"
    doc.write_text("# Pivot\n\nDrag fields into Rows and Values.", encoding="utf-8")
    session, _ = make_session()

    result = session.upload_knowledge("pig", doc, category="excel")

    assert result.error is None and result.chunks_added == 1
    assert session.rag_stats("pig")["learned"]["sources"] == [f"upload://{doc}"]
