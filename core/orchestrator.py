"""
orchestrator.py

Central hub for every chat turn in Persona Hub.

    User message
      ↓
    Intent classifier → Retrieval engine → Model selector → Context builder
      ↓
    LLM stream ⇄ Tool registry   (bounded tool-call loop)
      ↓
    StreamChunk fragments → session

A quota or auth failure on the selected provider is retried once on the
fallback provider, provided neither text nor a tool call has reached the
consumer yet, so no tool ever runs twice.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import logging
from typing import Iterator, Optional, Sequence

import config
from core.context import build_messages, compact_messages, format_rag_context
from core.errors import is_quota_or_auth_error
from core.intent import classify_intent
from core.model_selector import get_fallback, select_model
from core.personas import PersonaRegistry
from core.types import Attachment, Intent
from engines.base import CancelToken, StreamChunk, TokenUsage
from engines.router import LLMRouter
from rag.engine import RAGEngine
from tools.base import ToolCall
from tools.registry import ToolRegistry

_log = logging.getLogger("persona.orchestrator")
_handler = logging.FileHandler(config.LOGS_DIR / "orchestrator.log")
_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))


class Orchestrator:
    """
    Runs one turn: classify, retrieve, select a model, build context,
    then stream the model with a bounded tool-call loop.

    Example:
        orchestrator = Orchestrator(router, rag_engine, registry, personas)
        for chunk in orchestrator.process("VLOOKUP vs INDEX/MATCH?", "pig", history=[]):
            print(chunk.text, end="")
    """

    def __init__(
        self,
        router: LLMRouter,
        rag_engine: Optional[RAGEngine],
        tool_registry: ToolRegistry,
        personas: PersonaRegistry,
        max_tool_rounds: Optional[int] = None,
        max_context_messages: Optional[int] = None,
        rag_top_k: Optional[int] = None,
    ) -> None:
        self.router = router
        self.rag_engine = rag_engine
        self.tool_registry = tool_registry
        self.personas = personas
        self.max_tool_rounds = config.MAX_TOOL_ROUNDS if max_tool_rounds is None else max_tool_rounds
        self.max_context_messages = (
            config.MAX_CONTEXT_MESSAGES if max_context_messages is None else max_context_messages
        )
        self.rag_top_k = config.RAG_TOP_K if rag_top_k is None else rag_top_k

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    def process(
        self,
        message: str,
        persona_id: str,
        history: Sequence[dict],
        attachments: Optional[Sequence[Attachment]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> Iterator[StreamChunk]:
        """
        Process a user message and stream the response.

        Args:
            message: User message text.
            persona_id: Active persona.
            history: Prior {"role", "content"} messages, oldest first.
            attachments: Optional attachments.
            cancel: Optional token; once set, the stream stops.

        Yields:
            Text fragments, tool-call fragments, and exactly one final
            fragment with done=True carrying usage (unless cancelled).

        Raises:
            ProviderError: Provider failures that survive the fallback attempt.
        """
        self.tool_registry.reset_session()

        persona = self.personas.get(persona_id)
        has_image = any(a.is_image for a in attachments or [])
        intent = classify_intent(message, persona_id, has_image, persona.specialties)
        _log.info(
            "Turn %s | intent=%s category=%s knowledge=%s tools=%s conf=%.2f",
            persona_id, intent.type.value, intent.category, intent.needs_knowledge,
            intent.needs_tool, intent.confidence,
        )

        rag_context = self._retrieve(message, persona_id, intent)

        providers = self.router.available_providers()
        selection = select_model(intent, providers)
        _log.info("Model %s/%s: %s", selection.provider, selection.model, selection.reason)

        messages = build_messages(persona.system_prompt, history, rag_context, message, attachments)
        tools = self.tool_registry.definitions() if intent.needs_tool else None

        # Set once text or a tool call reached the consumer; tools may have run
        started = False
        try:
            for chunk in self._tool_loop(selection.provider, selection.model, messages, tools, cancel):
                if chunk.text or chunk.tool_call is not None:
                    started = True
                yield chunk
        except Exception as exc:
            if started or not is_quota_or_auth_error(exc):
                raise
            fallback = get_fallback(selection.provider, providers)
            if fallback is None:
                raise
            _log.warning(
                "%s failed (%s), falling back to %s/%s", selection.provider, exc, fallback.provider, fallback.model
            )
            yield from self._tool_loop(fallback.provider, fallback.model, messages, tools, cancel)

    def _retrieve(self, message: str, persona_id: str, intent: Intent) -> str:
        if not intent.needs_knowledge or self.rag_engine is None:
            return ""
        try:
            results = self.rag_engine.search(
                message, persona_id, category=intent.category, top_k=self.rag_top_k, rerank=config.RAG_RERANK
            )
        except Exception as exc:
            _log.warning("Retrieval failed for %s, continuing without context: %s", persona_id, exc)
            return ""
        _log.debug("Retrieved %d results for %s", len(results), persona_id)
        return format_rag_context(results)

    # ------------------------------------------------------------------
    # Tool-call loop
    # ------------------------------------------------------------------

    def _tool_loop(
        self,
        provider: str,
        model: str,
        messages: list[dict],
        tools: Optional[list[dict]],
        cancel: Optional[CancelToken],
    ) -> Iterator[StreamChunk]:
        current = list(messages)
        usage = TokenUsage(provider=provider, model=model)
        round_no = 0

        while round_no < self.max_tool_rounds:
            text_parts: list[str] = []
            pending: list[ToolCall] = []

            for chunk in self.router.chat_with(provider, model, current, tools, cancel):
                if _cancelled(cancel):
                    return
                if chunk.tool_call is not None:
                    pending.append(chunk.tool_call)
                    yield StreamChunk(tool_call=chunk.tool_call)
                    continue
                if chunk.usage is not None:
                    usage.add(chunk.usage)
                if chunk.text:
                    text_parts.append(chunk.text)
                    if not pending:
                        yield StreamChunk(text=chunk.text)

            if _cancelled(cancel):
                return

            if not pending:
                yield StreamChunk(done=True, usage=usage)
                return

            current.append({"role": "assistant", "content": "".join(text_parts), "tool_calls": pending})
            for call in pending:
                if _cancelled(cancel):
                    return
                result = self.tool_registry.execute(call)
                current.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.id,
                        "name": call.name,
                        "content": result.as_message_content(),
                    }
                )
            if _cancelled(cancel):
                return

            round_no += 1
            current = compact_messages(current, self.max_context_messages)

        _log.warning("Tool loop reached %d rounds, forcing a final answer", self.max_tool_rounds)
        for chunk in self.router.chat_with(provider, model, current, None, cancel):
            if _cancelled(cancel):
                return
            if chunk.usage is not None:
                usage.add(chunk.usage)
            if chunk.text:
                yield StreamChunk(text=chunk.text)
        if _cancelled(cancel):
            return
        yield StreamChunk(done=True, usage=usage)


def _cancelled(cancel: Optional[CancelToken]) -> bool:
    return cancel is not None and cancel.is_cancelled()
