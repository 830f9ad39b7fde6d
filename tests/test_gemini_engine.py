"""
Tests for the Gemini REST engine, driven by a mocked requests session.
"""

import json
from unittest.mock import MagicMock

import pytest
import requests

from engines.base import ProviderError
from engines.gemini_engine import GEMINI_FLASH, GeminiEngine, build_gemini_payload
from tools.base import ToolCall


def _sse(*payloads):
    lines = []
    for payload in payloads:
        lines.append("data: " + json.dumps(payload))
        lines.append("")
    return lines


def _response(status=200, lines=None, body=None):
    response = MagicMock()
    response.ok = status < 400
    response.status_code = status
    response.iter_lines.return_value = iter(lines or [])
    response.json.return_value = body or {}
    response.text = json.dumps(body or {})
    return response


def _engine(response=None, side_effect=None):
    session = MagicMock()
    if side_effect is not None:
        session.post.side_effect = side_effect
    else:
        session.post.return_value = response
    return GeminiEngine(api_key="g-test", session=session), session


def _text_part(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def test_stream_parses_sse_text_calls_and_usage():
    lines = _sse(
        _text_part("안녕"),
        {"candidates": [{"content": {"parts": [{"functionCall": {"name": "readFile", "args": {"path": "/a"}}}]}}]},
        {"usageMetadata": {"promptTokenCount": 20, "candidatesTokenCount": 7}},
    )
    engine, session = _engine(_response(lines=[": keep-alive", "data: {broken"] + lines))

    chunks = list(engine.stream(GEMINI_FLASH, [{"role": "user", "content": "hi"}]))

    assert chunks[0].text == "안녕"
    assert chunks[1].tool_call == ToolCall("gemini-call-1", "readFile", {"path": "/a"})
    assert chunks[-1].done
    assert (chunks[-1].usage.input_tokens, chunks[-1].usage.output_tokens) == (20, 7)

    url = session.post.call_args.args[0]
    assert url.endswith(f"/models/{GEMINI_FLASH}:streamGenerateContent?alt=sse")
    assert session.post.call_args.kwargs["headers"]["x-goog-api-key"] == "g-test"


def test_http_error_becomes_provider_error():
    body = {"error": {"message": "Resource has been exhausted (e.g. check quota)."}}
    engine, _ = _engine(_response(status=429, body=body))

    with pytest.raises(ProviderError) as info:
        list(engine.stream(GEMINI_FLASH, [{"role": "user", "content": "hi"}]))

    assert info.value.status_code == 429
    assert str(info.value).startswith("[gemini] HTTP 429 Resource has been exhausted")


def test_connection_error_becomes_provider_error():
    engine, _ = _engine(side_effect=requests.ConnectionError("connection refused"))

    with pytest.raises(ProviderError, match="network error"):
        list(engine.stream(GEMINI_FLASH, [{"role": "user", "content": "hi"}]))


def test_missing_key():
    engine = GeminiEngine(api_key="", session=MagicMock())

    assert not engine.is_available()
    with pytest.raises(ProviderError, match="GEMINI_API_KEY"):
        engine.quick_call("hi")


def test_quick_call_joins_text_parts():
    body = {"candidates": [{"content": {"parts": [{"text": "0, "}, {"text": "2"}]}}]}
    engine, session = _engine(_response(body=body))

    assert engine.quick_call("rank") == "0, 2"
    assert session.post.call_args.args[0].endswith(f"{GEMINI_FLASH}:generateContent")


def test_payload_building():
    messages = [
        {"role": "system", "content": "persona"},
        {"role": "system", "content": "more"},
        {"role": "user", "content": "read two files"},
        {"role": "assistant", "content": "", "tool_calls": [ToolCall("a", "readFile", {"path": "/1"}),
                                                            ToolCall("b", "readFile", {"path": "/2"})]},
        {"role": "tool", "tool_call_id": "a", "name": "readFile", "content": "one"},
        {"role": "tool", "tool_call_id": "b", "name": "readFile", "content": "two"},
    ]
    tools = [{"name": "readFile", "description": "Read", "parameters": {"type": "object"}}]

    payload = build_gemini_payload(messages, tools)

    assert payload["systemInstruction"] == {"parts": [{"text": "persona\n\nmore"}]}
    assert [c["role"] for c in payload["contents"]] == ["user", "model", "user"]
    assert len(payload["contents"][1]["parts"]) == 2
    assert [p["functionResponse"]["response"]["content"] for p in payload["contents"][2]["parts"]] == ["one", "two"]
    assert payload["tools"][0]["functionDeclarations"][0]["name"] == "readFile"


def test_payload_image_parts():
    messages = [{"role": "user", "content": [{"type": "text", "text": "what is this"},
                                             {"type": "image", "mime_type": "image/png", "data": "QUJD"}]}]

    parts = build_gemini_payload(messages)["contents"][0]["parts"]

    assert parts == [{"text": "what is this"}, {"inlineData": {"mimeType": "image/png", "data": "QUJD"}}]
