"""
openai_engine.py

OpenAI engine implementation for Persona Hub.
Streams chat completions through the openai SDK with tool calling,
image content parts and per-round usage reporting.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterator, Optional

import config
from engines.base import BaseEngine, CancelToken, ProviderError, StreamChunk, TokenUsage
from tools.base import ToolCall

_log = logging.getLogger("persona.engines.openai")
_handler = logging.FileHandler(config.LOGS_DIR / "engines.log")
_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

OPENAI_DEFAULT = "gpt-4o"
OPENAI_MINI = "gpt-4o-mini"


def to_openai_messages(messages: list[dict]) -> list[dict]:
    """
    Convert provider-neutral messages to the Chat Completions format.

    Args:
        messages: Provider-neutral message list.

    Returns:
        Messages accepted by client.chat.completions.create.
    """
    converted: list[dict] = []
    for msg in messages:
        role = msg.get("role", "user")
        content = msg.get("content", "")

        if role == "tool":
            converted.append(
                {"role": "tool", "tool_call_id": msg.get("tool_call_id", ""), "content": str(content)}
            )
        elif role == "assistant" and msg.get("tool_calls"):
            converted.append(
                {
                    "role": "assistant",
                    "content": content or None,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.name, "arguments": json.dumps(call.args, ensure_ascii=False)},
                        }
                        for call in msg["tool_calls"]
                    ],
                }
            )
        elif isinstance(content, list):
            parts: list[dict] = []
            for part in content:
                if part.get("type") == "image":
                    url = f"data:{part.get('mime_type', 'image/png')};base64,{part.get('data', '')}"
                    parts.append({"type": "image_url", "image_url": {"url": url}})
                else:
                    parts.append({"type": "text", "text": part.get("text", "")})
            converted.append({"role": role, "content": parts})
        else:
            converted.append({"role": role, "content": content})
    return converted


def to_openai_tools(tools: Optional[list[dict]]) -> Optional[list[dict]]:
    """Wrap tool definitions as OpenAI function tools."""
    if not tools:
        return None
    return [
        {
            "type": "function",
            "function": {
                "name": t["name"],
                "description": t.get("description", ""),
                "parameters": t.get("parameters", {"type": "object", "properties": {}}),
            },
        }
        for t in tools
    ]


def _parse_arguments(raw: str, name: str) -> dict[str, Any]:
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        _log.warning("Unparseable arguments for tool %s: %r", name, raw[:200])
        return {}
    return parsed if isinstance(parsed, dict) else {}


class OpenAIEngine(BaseEngine):
    """
    LLM engine for OpenAI chat models.

    Tool-call arguments arrive as deltas spread over many events; they are
    accumulated per call index and emitted once the stream ends, followed
    by the done fragment with usage.

    Example:
        engine = OpenAIEngine(config.OPENAI_API_KEY)
        for chunk in engine.stream("gpt-4o-mini", [{"role": "user", "content": "hi"}]):
            print(chunk.text, end="")
    """

    name = "openai"
    models = (OPENAI_DEFAULT, OPENAI_MINI)
    mini_model = OPENAI_MINI
    supports_quick_call = True

    def __init__(self, api_key: Optional[str] = None, client: Any = None) -> None:
        """
        Initialize the OpenAI engine.

        Args:
            api_key: OpenAI API key; defaults to config.OPENAI_API_KEY.
            client: Optional pre-built OpenAI client.
        """
        self.api_key = api_key if api_key is not None else config.OPENAI_API_KEY
        self._client = client

    def _get_client(self):
        if self._client is not None:
            return self._client
        if not self.api_key:
            raise ProviderError("OpenAI is not configured. Set OPENAI_API_KEY.", provider=self.name)

        from openai import OpenAI

        self._client = OpenAI(api_key=self.api_key)
        return self._client

    def _wrap_error(self, exc: Exception) -> ProviderError:
        if isinstance(exc, ProviderError):
            return exc
        status = getattr(exc, "status_code", None)
        _log.error("OpenAI error (status=%s): %s", status, exc)
        return ProviderError(str(exc), provider=self.name, status_code=status)

    def stream(
        self,
        model: str,
        messages: list[dict],
        tools: Optional[list[dict]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> Iterator[StreamChunk]:
        """
        Stream a chat completion from OpenAI.

        Args:
            model: "gpt-4o" or "gpt-4o-mini".
            messages: Provider-neutral message list.
            tools: Optional tool definitions.
            cancel: Optional cancellation token.

        Yields:
            Text fragments, then tool calls, then a done fragment with usage.

        Raises:
            ProviderError: On API, auth or network failure.
        """
        request: dict[str, Any] = {
            "model": model,
            "messages": to_openai_messages(messages),
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        openai_tools = to_openai_tools(tools)
        if openai_tools:
            request["tools"] = openai_tools

        try:
            events = self._get_client().chat.completions.create(**request)
        except Exception as exc:
            raise self._wrap_error(exc) from exc

        usage = TokenUsage(provider=self.name, model=model)
        pending: dict[int, dict[str, str]] = {}

        try:
            for event in events:
                if cancel is not None and cancel.is_cancelled():
                    _log.info("OpenAI stream cancelled")
                    return

                if getattr(event, "usage", None):
                    usage.input_tokens = event.usage.prompt_tokens or 0
                    usage.output_tokens = event.usage.completion_tokens or 0

                if not event.choices:
                    continue
                delta = event.choices[0].delta

                for tc in getattr(delta, "tool_calls", None) or []:
                    slot = pending.setdefault(tc.index, {"id": "", "name": "", "arguments": ""})
                    if tc.id:
                        slot["id"] = tc.id
                    if tc.function is not None:
                        if tc.function.name:
                            slot["name"] += tc.function.name
                        if tc.function.arguments:
                            slot["arguments"] += tc.function.arguments

                if delta.content:
                    yield StreamChunk(text=delta.content)
        except Exception as exc:
            raise self._wrap_error(exc) from exc

        for index in sorted(pending):
            slot = pending[index]
            call = ToolCall(
                id=slot["id"] or f"call_{index}",
                name=slot["name"],
                args=_parse_arguments(slot["arguments"], slot["name"]),
            )
            yield StreamChunk(tool_call=call)

        _log.info("OpenAI %s: in=%d out=%d tokens", model, usage.input_tokens, usage.output_tokens)
        yield StreamChunk(done=True, usage=usage)

    def quick_call(self, prompt: str, model: Optional[str] = None) -> str:
        """
        Run one non-streaming completion.

        Args:
            prompt: Prompt text.
            model: Model override; defaults to gpt-4o-mini.

        Returns:
            The response text.
        """
        try:
            response = self._get_client().chat.completions.create(
                model=model or self.mini_model,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as exc:
            raise self._wrap_error(exc) from exc
        return response.choices[0].message.content or ""

    def is_available(self) -> bool:
        """Return True if an API key or client is configured."""
        return bool(self.api_key) or self._client is not None
