"""
base.py

Abstract base class that all LLM engines must implement.
Defines the streaming chat interface, the fragment and usage types the
engines emit, and the provider error raised on API failures.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator, Optional

from tools.base import ToolCall


@dataclass
class TokenUsage:
    """
    Token usage reported by a provider for one round.

    Attributes:
        input_tokens: Prompt tokens consumed.
        output_tokens: Completion tokens produced.
        provider: Provider that produced the tokens.
        model: Model that produced the tokens.
    """

    input_tokens: int = 0
    output_tokens: int = 0
    provider: str = ""
    model: str = ""

    def add(self, other: "TokenUsage") -> None:
        """Accumulate another usage record into this one."""
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens


@dataclass
class StreamChunk:
    """
    One fragment of a streamed response.

    A fragment carries text, a tool call, or the final usage record.
    Exactly one fragment per turn has done=True.
    """

    text: str = ""
    done: bool = False
    tool_call: Optional[ToolCall] = None
    usage: Optional[TokenUsage] = None


class ProviderError(RuntimeError):
    """
    Raised when an LLM provider call fails.

    The message always contains the provider name and, for HTTP failures,
    the status code, so callers can classify quota and auth problems
    from the text alone.

    Example:
        raise ProviderError("quota exceeded", provider="openai", status_code=429)
    """

    def __init__(self, message: str, provider: str = "", status_code: Optional[int] = None) -> None:
        self.provider = provider
        self.status_code = status_code
        prefix = f"[{provider}]" if provider else "[provider]"
        if status_code is not None:
            prefix = f"{prefix} HTTP {status_code}"
        super().__init__(f"{prefix} {message}")


class CancelToken:
    """
    Cooperative cancellation flag shared by a turn and its consumer.

    Example:
        token = CancelToken()
        token.cancel()
        token.is_cancelled()  # True
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()


class BaseEngine(ABC):
    """
    Abstract base class for all LLM engines in Persona Hub.

    Every engine (OpenAI, Gemini) must subclass this and implement the
    abstract methods so the orchestrator can drive any provider through
    the same streaming loop.

    Messages use a provider-neutral shape:
        {"role": "system", "content": str}
        {"role": "user", "content": str | list[part]}
        {"role": "assistant", "content": str, "tool_calls": list[ToolCall]}
        {"role": "tool", "tool_call_id": str, "name": str, "content": str}
    where a part is {"type": "text", "text": ...} or
    {"type": "image", "mime_type": ..., "data": <base64>}.

    Example:
        class MyEngine(BaseEngine):
            name = "mine"
            def stream(self, model, messages, tools=None, cancel=None):
                yield StreamChunk(text="hi")
                yield StreamChunk(done=True, usage=TokenUsage())
            def is_available(self):
                return True
    """

    name: str = ""
    models: tuple[str, ...] = ()
    mini_model: str = ""
    supports_quick_call: bool = False

    @abstractmethod
    def stream(
        self,
        model: str,
        messages: list[dict],
        tools: Optional[list[dict]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> Iterator[StreamChunk]:
        """
        Stream a chat completion.

        Args:
            model: Model identifier for this provider.
            messages: Provider-neutral message list.
            tools: Optional tool definitions (name, description, parameters).
            cancel: Optional token; the stream stops early once it is set.

        Yields:
            StreamChunk fragments. Text and tool calls arrive as they are
            produced; the last fragment has done=True and carries usage.

        Raises:
            ProviderError: On any API, auth or network failure.

        Example:
            for chunk in engine.stream("gpt-4o", messages):
                print(chunk.text, end="")
        """
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """
        Check whether this engine has credentials configured.

        Returns:
            True if the engine can accept requests, False otherwise.
        """
        ...

    def quick_call(self, prompt: str, model: Optional[str] = None) -> str:
        """
        Run a single non-streaming prompt and return the whole text.

        Used for short auxiliary prompts such as reranking.

        Args:
            prompt: The prompt text.
            model: Optional model override.

        Returns:
            The response text.

        Raises:
            NotImplementedError: If the engine does not support quick calls.
        """
        raise NotImplementedError(f"{self.name} does not support quick calls")
