"""
router.py

Registry of configured LLM engines and the entry point for provider calls.
Streams a chat through a named provider/model and runs quick auxiliary
prompts.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterator, Optional

import config
from engines.base import BaseEngine, CancelToken, ProviderError, StreamChunk
from engines.gemini_engine import GeminiEngine
from engines.openai_engine import OpenAIEngine

_log = logging.getLogger("persona.engines.router")
_handler = logging.FileHandler(config.LOGS_DIR / "engines.log")
_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

# Preferred engines for quick auxiliary prompts, cheapest first
_QUICK_CALL_PRIORITY: tuple[str, ...] = ("gemini", "openai")


class LLMRouter:
    """
    Routes chat requests to registered engines.

    Example:
        router = LLMRouter()
        router.register(GeminiEngine(config.GEMINI_API_KEY))
        for chunk in router.chat_with("gemini", "gemini-2.0-flash", messages):
            print(chunk.text, end="")
    """

    def __init__(self) -> None:
        self._engines: dict[str, BaseEngine] = {}
        self._lock = threading.Lock()

    def register(self, engine: BaseEngine) -> None:
        """
        Register an engine under its name, replacing any previous one.

        Args:
            engine: The engine to register.
        """
        with self._lock:
            self._engines[engine.name] = engine
        _log.info("Registered engine %s (%s)", engine.name, ", ".join(engine.models))

    def available_providers(self) -> list[str]:
        """Names of registered engines, in registration order."""
        return list(self._engines)

    def available_models(self) -> list[tuple[str, str]]:
        """(provider, model) pairs across all engines."""
        return [(name, model) for name, engine in self._engines.items() for model in engine.models]

    def chat_with(
        self,
        provider: str,
        model: str,
        messages: list[dict],
        tools: Optional[list[dict]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> Iterator[StreamChunk]:
        """
        Stream a chat through one provider.

        Args:
            provider: Provider name, e.g. "gemini".
            model: Model id for that provider.
            messages: Provider-neutral message list.
            tools: Optional tool definitions.
            cancel: Optional cancellation token.

        Yields:
            StreamChunk fragments from the engine.

        Raises:
            ProviderError: If the provider is not configured or the call fails.
        """
        engine = self._engines.get(provider)
        if engine is None:
            raise ProviderError("provider not configured. Check the API key.", provider=provider)
        _log.debug("chat_with %s/%s (%d messages, tools=%d)", provider, model, len(messages), len(tools or []))
        yield from engine.stream(model, messages, tools, cancel)

    def quick_call(self, prompt: str) -> str:
        """
        Run a short prompt on the cheapest engine that supports quick calls.

        Args:
            prompt: Prompt text.

        Returns:
            Response text.

        Raises:
            ProviderError: If no registered engine supports quick calls.
        """
        ordered = [n for n in _QUICK_CALL_PRIORITY if n in self._engines]
        ordered += [n for n in self._engines if n not in ordered]
        for name in ordered:
            engine = self._engines[name]
            if engine.supports_quick_call:
                return engine.quick_call(prompt)
        raise ProviderError("no engine supports quick calls", provider="router")

    @property
    def has_quick_call(self) -> bool:
        return any(e.supports_quick_call for e in self._engines.values())

    def status(self) -> dict[str, bool]:
        """Availability of each registered engine."""
        return {name: engine.is_available() for name, engine in self._engines.items()}


def build_default_router() -> LLMRouter:
    """
    Create a router with an engine for every configured API key.

    Registers Gemini first when both keys are set.

    Returns:
        The router (possibly with no engines).
    """
    router = LLMRouter()
    if config.GEMINI_API_KEY:
        router.register(GeminiEngine(config.GEMINI_API_KEY))
    if config.OPENAI_API_KEY:
        router.register(OpenAIEngine(config.OPENAI_API_KEY))
    if not router.available_providers():
        _log.warning("No LLM provider configured. Set GEMINI_API_KEY or OPENAI_API_KEY.")
    return router
