"""
learning.py

Continuous learning for Persona Hub.
Writes new knowledge into a persona's learned index from three sources:
  1. Corrections the user submits as feedback
  2. Documents the user uploads
  3. Good question/answer pairs from past conversations
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional, Sequence

import config
from rag.chunker import chunk_sections, estimate_tokens, split_markdown_into_sections
from rag.document_loader import is_supported_document, load_document
from rag.engine import RAGEngine
from rag.types import ChunkerConfig, IndexKind, RawChunk, RawMetadata

_log = logging.getLogger("persona.learning")
_handler = logging.FileHandler(config.LOGS_DIR / "learning.log")
_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

MIN_ANSWER_TOKENS = 30
MIN_QUESTION_LENGTH = 10

FeedbackType = Literal["positive", "negative", "correction"]
FEEDBACK_TYPES: tuple[str, ...] = ("positive", "negative", "correction")


@dataclass
class FeedbackRecord:
    """
    User feedback on one assistant message.

    Attributes:
        message_id: Id of the message the feedback is about.
        persona_id: Persona that produced it.
        type: "positive", "negative" or "correction".
        corrected_content: Replacement answer, for corrections.
        timestamp: Seconds since the epoch.
    """

    message_id: str
    persona_id: str
    type: str
    corrected_content: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if self.type not in FEEDBACK_TYPES:
            raise ValueError(f"Unknown feedback type: {self.type}")


@dataclass
class QAPair:
    question: str
    answer: str
    quality: str = "medium"


@dataclass
class UploadResult:
    chunks_added: int = 0
    error: Optional[str] = None


def extract_qa_pairs(messages: Sequence[dict], feedbacks: Optional[Sequence[FeedbackRecord]] = None) -> list[QAPair]:
    """
    Pick question/answer pairs worth remembering from a conversation.

    A pair is an adjacent user → assistant exchange whose question has at
    least MIN_QUESTION_LENGTH characters and whose answer has at least
    MIN_ANSWER_TOKENS estimated tokens.

    Args:
        messages: {"role", "content"} messages, oldest first.
        feedbacks: Feedback for the conversation; any positive feedback
            marks the pairs as high quality.

    Returns:
        Extracted pairs in conversation order.
    """
    has_positive = any(f.type == "positive" for f in feedbacks or [])
    pairs: list[QAPair] = []
    for question, answer in zip(messages, messages[1:]):
        if question.get("role") != "user" or answer.get("role") != "assistant":
            continue
        q_text = str(question.get("content", ""))
        a_text = str(answer.get("content", ""))
        if len(q_text) < MIN_QUESTION_LENGTH or estimate_tokens(a_text) < MIN_ANSWER_TOKENS:
            continue
        pairs.append(QAPair(q_text, a_text, "high" if has_positive else "medium"))
    return pairs


class LearningManager:
    """
    Feeds feedback, uploads and conversations into the learned index.

    Example:
        learning = LearningManager(rag_engine)
        learning.learn_from_upload("pig", "~/Docs/pivot-guide.docx", category="excel")
    """

    def __init__(self, rag_engine: RAGEngine, chunker_config: Optional[ChunkerConfig] = None) -> None:
        self.rag_engine = rag_engine
        self.chunker_config = chunker_config or ChunkerConfig(config.CHUNK_MAX_TOKENS, config.CHUNK_OVERLAP_TOKENS)

    def learn_from_feedback(self, feedback: FeedbackRecord) -> int:
        """
        Index a correction as one learned chunk.

        Args:
            feedback: The feedback record.

        Returns:
            Chunks indexed: 1 for a correction with content, else 0.
        """
        if feedback.type != "correction" or not (feedback.corrected_content or "").strip():
            return 0

        chunk = RawChunk(
            content=feedback.corrected_content.strip(),
            metadata=RawMetadata(
                source_uri=f"feedback://{feedback.persona_id}/{feedback.message_id}",
                character_id=feedback.persona_id,
                category="feedback",
                source_type="learned",
            ),
        )
        count = self.rag_engine.index_chunks(feedback.persona_id, [chunk], IndexKind.LEARNED)
        _log.info("Learned correction for %s (message %s)", feedback.persona_id, feedback.message_id)
        return count

    def learn_from_upload(self, persona_id: str, file_path: str | Path, category: Optional[str] = None) -> UploadResult:
        """
        Parse, chunk and index an uploaded document into the learned index.

        Never raises: unsupported types and loader failures are reported
        in the result.

        Args:
            persona_id: Persona to teach.
            file_path: Document path.
            category: Optional category; defaults to "user-upload".

        Returns:
            UploadResult with the chunk count or an error.
        """
        path = Path(file_path).expanduser()
        if not is_supported_document(path):
            return UploadResult(error=f"Unsupported file type: {path.suffix or path.name}")

        try:
            doc = load_document(path)
            chunks = chunk_sections(
                doc.sections,
                RawMetadata(
                    source_uri=f"upload://{path}",
                    character_id=persona_id,
                    category=category or "user-upload",
                    source_type="user-upload",
                ),
                self.chunker_config,
            )
            count = self.rag_engine.index_chunks(persona_id, chunks, IndexKind.LEARNED)
        except Exception as exc:
            _log.warning("Upload %s for %s failed: %s", path, persona_id, exc)
            return UploadResult(error=str(exc))

        _log.info("Learned %d chunks from upload %s for %s", count, path.name, persona_id)
        return UploadResult(chunks_added=count)

    def learn_from_conversation(
        self,
        persona_id: str,
        messages: Sequence[dict],
        feedbacks: Optional[Sequence[FeedbackRecord]] = None,
    ) -> int:
        """
        Index good question/answer pairs from a conversation.

        Args:
            persona_id: Persona the conversation was with.
            messages: {"role", "content"} messages, oldest first.
            feedbacks: Optional feedback for the conversation.

        Returns:
            Chunks indexed.
        """
        pairs = extract_qa_pairs(messages, feedbacks)
        if not pairs:
            return 0

        stamp = int(time.time() * 1000)
        chunks = [
            RawChunk(
                content=f"Q: {qa.question}\nA: {qa.answer}",
                metadata=RawMetadata(
                    source_uri=f"conversation://{persona_id}/{stamp}-{i}",
                    character_id=persona_id,
                    category="conversation",
                    source_type="learned",
                ),
                extra={"quality": qa.quality},
            )
            for i, qa in enumerate(pairs)
        ]
        count = self.rag_engine.index_chunks(persona_id, chunks, IndexKind.LEARNED)
        _log.info("Learned %d Q/A pairs for %s", count, persona_id)
        return count

    def index_markdown(
        self,
        persona_id: str,
        markdown: str,
        source_uri: str,
        category: str,
        kind: IndexKind | str = IndexKind.STATIC,
    ) -> int:
        """
        Split Markdown by heading, chunk it and index it.

        Args:
            persona_id: Persona id.
            markdown: Markdown text.
            source_uri: Origin identifier.
            category: Category tag.
            kind: Target index.

        Returns:
            Chunks indexed.
        """
        kind = kind if isinstance(kind, IndexKind) else IndexKind(kind)
        sections = split_markdown_into_sections(markdown)
        chunks = chunk_sections(
            sections,
            RawMetadata(source_uri=source_uri, character_id=persona_id, category=category, source_type=kind.value),
            self.chunker_config,
        )
        return self.rag_engine.index_chunks(persona_id, chunks, kind)
