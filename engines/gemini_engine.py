"""
gemini_engine.py

Google Gemini engine implementation for Persona Hub.
Talks to the Gemini REST API with requests: streamGenerateContent over
server-sent events for chat, generateContent for quick calls.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterator, Optional

import requests

import config
from engines.base import BaseEngine, CancelToken, ProviderError, StreamChunk, TokenUsage
from tools.base import ToolCall

_log = logging.getLogger("persona.engines.gemini")
_handler = logging.FileHandler(config.LOGS_DIR / "engines.log")
_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
GEMINI_FLASH = "gemini-2.0-flash"
GEMINI_PRO = "gemini-2.0-pro"
REQUEST_TIMEOUT = 120


def build_gemini_payload(messages: list[dict], tools: Optional[list[dict]] = None) -> dict:
    """
    Build a Gemini REST payload from provider-neutral messages.

    System messages are joined into systemInstruction. Assistant turns
    become "model" contents; tool results become functionResponse parts,
    with consecutive results merged into one user turn.

    Args:
        messages: Provider-neutral message list.
        tools: Optional tool definitions.

    Returns:
        Request payload for generateContent / streamGenerateContent.
    """
    system_texts: list[str] = []
    contents: list[dict] = []

    for msg in messages:
        role = msg.get("role", "user")
        content = msg.get("content", "")

        if role == "system":
            if content:
                system_texts.append(str(content))
            continue

        if role == "tool":
            part = {
                "functionResponse": {
                    "name": msg.get("name", ""),
                    "response": {"content": str(content)},
                }
            }
            last = contents[-1] if contents else None
            if last and last["role"] == "user" and all("functionResponse" in p for p in last["parts"]):
                last["parts"].append(part)
            else:
                contents.append({"role": "user", "parts": [part]})
            continue

        parts: list[dict] = []
        if isinstance(content, list):
            for item in content:
                if item.get("type") == "image":
                    parts.append({"inlineData": {"mimeType": item.get("mime_type", "image/png"), "data": item.get("data", "")}})
                elif item.get("text"):
                    parts.append({"text": item["text"]})
        elif content:
            parts.append({"text": str(content)})

        if role == "assistant":
            for call in msg.get("tool_calls") or []:
                parts.append({"functionCall": {"name": call.name, "args": call.args}})

        if parts:
            contents.append({"role": "model" if role == "assistant" else "user", "parts": parts})

    payload: dict[str, Any] = {"contents": contents}
    if system_texts:
        payload["systemInstruction"] = {"parts": [{"text": "\n\n".join(system_texts)}]}
    if tools:
        payload["tools"] = [
            {
                "functionDeclarations": [
                    {
                        "name": t["name"],
                        "description": t.get("description", ""),
                        "parameters": t.get("parameters", {"type": "object", "properties": {}}),
                    }
                    for t in tools
                ]
            }
        ]
    return payload


def _candidate_parts(payload: dict) -> list[dict]:
    candidates = payload.get("candidates") or []
    if not candidates:
        return []
    return (candidates[0].get("content") or {}).get("parts") or []


def _error_message(response: requests.Response) -> str:
    try:
        return response.json().get("error", {}).get("message") or response.text
    except ValueError:
        return response.text


class GeminiEngine(BaseEngine):
    """
    LLM engine for Google Gemini via the REST API.

    Example:
        engine = GeminiEngine(config.GEMINI_API_KEY)
        engine.quick_call("Say hi")
    """

    name = "gemini"
    models = (GEMINI_FLASH, GEMINI_PRO)
    mini_model = GEMINI_FLASH
    supports_quick_call = True

    def __init__(self, api_key: Optional[str] = None, session: Optional[requests.Session] = None) -> None:
        """
        Initialize the Gemini engine.

        Args:
            api_key: Gemini API key; defaults to config.GEMINI_API_KEY.
            session: Optional requests session.
        """
        self.api_key = api_key if api_key is not None else config.GEMINI_API_KEY
        self._session = session or requests.Session()

    def _post(self, model: str, method: str, payload: dict, stream: bool = False) -> requests.Response:
        if not self.api_key:
            raise ProviderError("Gemini is not configured. Set GEMINI_API_KEY.", provider=self.name)

        url = f"{GEMINI_API_BASE}/models/{model}:{method}"
        if stream:
            url += "?alt=sse"
        try:
            response = self._session.post(
                url,
                headers={"x-goog-api-key": self.api_key, "Content-Type": "application/json"},
                json=payload,
                timeout=REQUEST_TIMEOUT,
                stream=stream,
            )
        except requests.RequestException as exc:
            _log.error("Gemini network error: %s", exc)
            raise ProviderError(f"network error: {exc}", provider=self.name) from exc

        if not response.ok:
            message = _error_message(response)
            _log.error("Gemini HTTP %s: %s", response.status_code, message)
            raise ProviderError(message, provider=self.name, status_code=response.status_code)
        return response

    def stream(
        self,
        model: str,
        messages: list[dict],
        tools: Optional[list[dict]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> Iterator[StreamChunk]:
        """
        Stream a response from Gemini.

        Args:
            model: "gemini-2.0-flash" or "gemini-2.0-pro".
            messages: Provider-neutral message list.
            tools: Optional tool definitions.
            cancel: Optional cancellation token.

        Yields:
            Text and tool-call fragments as they arrive, then a done
            fragment with usage.

        Raises:
            ProviderError: On API, auth or network failure.
        """
        response = self._post(model, "streamGenerateContent", build_gemini_payload(messages, tools), stream=True)
        usage = TokenUsage(provider=self.name, model=model)
        call_count = 0

        try:
            for raw_line in response.iter_lines(decode_unicode=True):
                if cancel is not None and cancel.is_cancelled():
                    _log.info("Gemini stream cancelled")
                    return
                if not raw_line:
                    continue

                line = raw_line.strip()
                if not line.startswith("data:"):
                    continue
                chunk_payload = line[len("data:"):].strip()
                if not chunk_payload:
                    continue

                try:
                    chunk_json = json.loads(chunk_payload)
                except json.JSONDecodeError:
                    continue

                meta = chunk_json.get("usageMetadata")
                if meta:
                    usage.input_tokens = meta.get("promptTokenCount", 0) or 0
                    usage.output_tokens = meta.get("candidatesTokenCount", 0) or 0

                for part in _candidate_parts(chunk_json):
                    if "functionCall" in part:
                        fn = part["functionCall"]
                        call_count += 1
                        yield StreamChunk(
                            tool_call=ToolCall(
                                id=fn.get("id") or f"gemini-call-{call_count}",
                                name=fn.get("name", ""),
                                args=fn.get("args") or {},
                            )
                        )
                    elif part.get("text"):
                        yield StreamChunk(text=part["text"])
        except requests.RequestException as exc:
            _log.error("Gemini stream error: %s", exc)
            raise ProviderError(f"network error: {exc}", provider=self.name) from exc
        finally:
            response.close()

        _log.info("Gemini %s: in=%d out=%d tokens", model, usage.input_tokens, usage.output_tokens)
        yield StreamChunk(done=True, usage=usage)

    def quick_call(self, prompt: str, model: Optional[str] = None) -> str:
        """
        Run one non-streaming generateContent call.

        Args:
            prompt: Prompt text.
            model: Model override; defaults to gemini-2.0-flash.

        Returns:
            The response text.
        """
        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        response = self._post(model or self.mini_model, "generateContent", payload)
        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderError("invalid JSON response", provider=self.name) from exc
        return "".join(p.get("text", "") for p in _candidate_parts(body))

    def is_available(self) -> bool:
        """Return True if an API key is configured."""
        return bool(self.api_key)
