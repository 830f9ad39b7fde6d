"""
Tests for context assembly and compaction.
"""

import base64

import config
from core.context import (
    RAG_SECTION_END,
    RAG_SECTION_START,
    TRUNCATION_MARKER,
    build_messages,
    build_system_prompt,
    build_user_message,
    compact_messages,
    format_rag_context,
)
from core.types import Attachment
from rag.types import ChunkMetadata, SearchResult

META = ChunkMetadata(source_uri="s", character_id="pig")


def test_format_rag_context_numbers_results():
    results = [SearchResult("a", "first", 1.0, META), SearchResult("b", "second", 0.5, META)]

    assert format_rag_context(results) == "[1] first\n\n[2] second"
    assert format_rag_context([]) == ""


def test_system_prompt_sections_and_truncation():
    assert build_system_prompt("You are Pig.", "") == "You are Pig."

    prompt = build_system_prompt("You are Pig.", "[1] VLOOKUP")
    assert prompt.startswith("You are Pig.")
    assert RAG_SECTION_START in prompt and RAG_SECTION_END in prompt
    assert "[1] VLOOKUP" in prompt

    truncated = build_system_prompt("base", "0123456789", max_chars=4)
    assert "0123" + TRUNCATION_MARKER in truncated
    assert "4567" not in truncated


def test_build_messages_orders_and_filters_history(monkeypatch):
    monkeypatch.setattr(config, "MAX_HISTORY_TURNS", 2)
    history = [
        {"role": "user", "content": "old question"},
        {"role": "assistant", "content": "old answer"},
        {"role": "user", "content": "recent question"},
        {"role": "assistant", "content": "recent answer"},
    ]

    messages = build_messages("You are Fox.", history, "", "new question")

    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[1]["content"] == "recent question"
    assert messages[-1] == {"role": "user", "content": "new question"}


def test_build_messages_skips_tool_and_empty_history():
    history = [
        {"role": "tool", "content": "raw output"},
        {"role": "assistant", "content": ""},
        {"role": "assistant", "content": "kept"},
    ]

    messages = build_messages("sys", history, "", "q")

    assert [m["content"] for m in messages[1:]] == ["kept", "q"]


def test_user_message_with_image_attachments(tmp_path):
    image_file = tmp_path / "shot.png"
    image_file.write_bytes(b"\x89PNG")
    attachments = [
        Attachment("inline.png", "image/png", "aGVsbG8="),
        Attachment("shot.png", "image/png", str(image_file), encoding="filepath"),
        Attachment("missing.png", "image/png", str(tmp_path / "missing.png"), encoding="filepath"),
        Attachment("notes.pdf", "application/pdf", "cGRm"),
    ]

    message = build_user_message("What is wrong here?", attachments)

    parts = message["content"]
    assert parts[0] == {"type": "text", "text": "What is wrong here?"}
    assert [p["data"] for p in parts[1:]] == ["aGVsbG8=", base64.b64encode(b"\x89PNG").decode("ascii")]
    assert build_user_message("plain") == {"role": "user", "content": "plain"}


def test_compact_keeps_system_and_recent_messages():
    messages = [{"role": "system", "content": "sys"}] + [
        {"role": "user" if i % 2 == 0 else "assistant", "content": str(i)} for i in range(10)
    ]

    compacted = compact_messages(messages, ceiling=4)

    assert compacted[0]["role"] == "system"
    assert [m["content"] for m in compacted[1:]] == ["7", "8", "9"]
    assert compact_messages(messages, ceiling=50) is messages


def test_compact_drops_leading_tool_results():
    messages = [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "q"},
        {"role": "assistant", "content": "", "tool_calls": []},
        {"role": "tool", "tool_call_id": "c1", "name": "readFile", "content": "out"},
        {"role": "assistant", "content": "answer"},
    ]

    compacted = compact_messages(messages, ceiling=3)

    assert [m["role"] for m in compacted] == ["system", "assistant"]
