"""
session.py

Chat session boundary for Persona Hub.
Owns per-persona conversation history, cancels a prior in-flight turn
when a new message arrives, turns orchestrator chunks into fragments for
the presentation layer, and replaces raw provider errors with the
persona's own wording.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Sequence

import config
from core.errors import classify_error
from core.learning import FeedbackRecord, LearningManager, UploadResult
from core.orchestrator import Orchestrator
from core.personas import PersonaRegistry
from core.types import Attachment
from engines.base import CancelToken, TokenUsage
from rag.engine import RAGEngine
from rag.knowledge_loader import load_static_knowledge
from tools.base import ToolCall

_log = logging.getLogger("persona.session")
_handler = logging.FileHandler(config.LOGS_DIR / "session.log")
_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))


@dataclass
class StreamFragment:
    """
    One fragment sent to the presentation layer.

    Attributes:
        text: Text to append to the answer.
        done: True on the last fragment of a turn.
        tool_call: Tool the model is running, if any.
        progress_message: Persona line shown while the tool runs.
        usage: Token usage, on the done fragment.
        message_id: Id of the stored assistant message, on the done fragment.
        error: Error category when the turn failed.
    """

    text: str = ""
    done: bool = False
    tool_call: Optional[ToolCall] = None
    progress_message: Optional[str] = None
    usage: Optional[TokenUsage] = None
    message_id: Optional[str] = None
    error: Optional[str] = None


class ChatSession:
    """
    One user's chat across personas.

    History is kept per persona, at most max_history messages each, for
    the max_personas most recently used personas.

    Example:
        session = ChatSession(orchestrator, rag_engine, learning, personas)
        for fragment in session.send_message("Make a sales summary sheet", "pig"):
            print(fragment.text, end="")
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        rag_engine: RAGEngine,
        learning: LearningManager,
        personas: PersonaRegistry,
        max_history: Optional[int] = None,
        max_personas: Optional[int] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.rag_engine = rag_engine
        self.learning = learning
        self.personas = personas
        self.max_history = config.MAX_SESSION_HISTORY if max_history is None else max_history
        self.max_personas = config.MAX_PERSONAS if max_personas is None else max_personas
        self.current_persona = config.DEFAULT_PERSONA
        self.usage_log: list[TokenUsage] = []
        self.feedback_log: list[FeedbackRecord] = []
        self._histories: "OrderedDict[str, list[dict]]" = OrderedDict()
        self._active: Optional[CancelToken] = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def history(self, persona_id: str) -> list[dict]:
        """Return a copy of the persona's history."""
        with self._lock:
            return [dict(m) for m in self._histories.get(persona_id, [])]

    def _touch_history(self, persona_id: str) -> list[dict]:
        with self._lock:
            if persona_id in self._histories:
                self._histories.move_to_end(persona_id)
            else:
                self._histories[persona_id] = []
                while len(self._histories) > self.max_personas:
                    evicted, _ = self._histories.popitem(last=False)
                    _log.debug("Evicted history for %s", evicted)
            return self._histories[persona_id]

    def _append(self, persona_id: str, message: dict) -> None:
        with self._lock:
            history = self._touch_history(persona_id)
            history.append(message)
            if len(history) > self.max_history:
                del history[: len(history) - self.max_history]

    def clear_history(self, persona_id: str) -> None:
        with self._lock:
            self._histories.pop(persona_id, None)

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    def cancel_active(self) -> None:
        """Cancel the in-flight turn, if any."""
        with self._lock:
            if self._active is not None:
                self._active.cancel()
                self._active = None

    def send_message(
        self,
        text: str,
        persona_id: Optional[str] = None,
        attachments: Optional[Sequence[Attachment]] = None,
    ) -> Iterator[StreamFragment]:
        """
        Send a message and stream the answer.

        Starting a new message cancels the previous one still streaming.

        Args:
            text: User message.
            persona_id: Persona to talk to; defaults to the current persona.
            attachments: Optional attachments.

        Yields:
            StreamFragment items; the last one has done=True. Provider
            failures yield the persona's error message instead of raising.
        """
        with self._lock:
            if persona_id:
                self.current_persona = persona_id
            persona_id = self.current_persona
            if self._active is not None:
                self._active.cancel()
            token = CancelToken()
            self._active = token
            prior = [{"role": m["role"], "content": m["content"]} for m in self._touch_history(persona_id)]
            self._append(persona_id, self._message("user", text))

        persona = self.personas.get(persona_id)
        answer: list[str] = []
        try:
            for chunk in self.orchestrator.process(text, persona_id, prior, attachments, token):
                if token.is_cancelled():
                    return
                if chunk.tool_call is not None:
                    yield StreamFragment(
                        tool_call=chunk.tool_call,
                        progress_message=persona.progress_message(chunk.tool_call.name),
                    )
                if chunk.text:
                    answer.append(chunk.text)
                    yield StreamFragment(text=chunk.text)
                if chunk.done:
                    if token.is_cancelled():
                        return
                    message = self._message("assistant", "".join(answer))
                    if chunk.usage is not None:
                        self.usage_log.append(chunk.usage)
                        message["model"] = f"{chunk.usage.provider}/{chunk.usage.model}"
                    self._append(persona_id, message)
                    yield StreamFragment(done=True, usage=chunk.usage, message_id=message["id"])
                    return
        except Exception as exc:
            if token.is_cancelled():
                return
            category = classify_error(exc)
            _log.error("Chat error for %s (%s): %s", persona_id, category, exc)
            yield StreamFragment(text=persona.error_message(category), done=True, error=category)
        finally:
            with self._lock:
                if self._active is token:
                    self._active = None

    @staticmethod
    def _message(role: str, content: str) -> dict:
        return {"id": str(uuid.uuid4()), "role": role, "content": content, "timestamp": time.time()}

    # ------------------------------------------------------------------
    # Learning and knowledge
    # ------------------------------------------------------------------

    def submit_feedback(
        self,
        message_id: str,
        persona_id: str,
        feedback_type: str,
        corrected_content: Optional[str] = None,
    ) -> int:
        """
        Record feedback on a message; corrections are learned immediately.

        Returns:
            Chunks indexed.
        """
        record = FeedbackRecord(message_id, persona_id, feedback_type, corrected_content)
        self.feedback_log.append(record)
        return self.learning.learn_from_feedback(record)

    def learn_from_history(self, persona_id: str) -> int:
        """Index good Q/A pairs from the persona's current history."""
        feedbacks = [f for f in self.feedback_log if f.persona_id == persona_id]
        return self.learning.learn_from_conversation(persona_id, self.history(persona_id), feedbacks)

    def upload_knowledge(self, persona_id: str, file_path: str | Path, category: Optional[str] = None) -> UploadResult:
        return self.learning.learn_from_upload(persona_id, file_path, category)

    def rag_stats(self, persona_id: str) -> dict[str, dict]:
        return self.rag_engine.get_stats(persona_id)

    def bootstrap_knowledge(self, root: Optional[str | Path] = None) -> dict[str, int]:
        """Load bundled knowledge into every configured persona's static index."""
        return load_static_knowledge(self.rag_engine, root, self.personas.ids())
