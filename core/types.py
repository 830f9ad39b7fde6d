"""
types.py

Shared orchestration types: intents, model selections and attachments.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class IntentType(str, Enum):
    GENERAL_CHAT = "general_chat"
    KNOWLEDGE_QUERY = "knowledge_query"
    FILE_OPERATION = "file_operation"
    CODE_REVIEW = "code_review"
    DESIGN_QA = "design_qa"
    FUNCTIONAL_QA = "functional_qa"
    TRANSLATION = "translation"
    DOCUMENT_GENERATION = "document_generation"
    CODE_GENERATION = "code_generation"
    HELP_REQUEST = "help_request"


@dataclass(frozen=True)
class Intent:
    """
    Classified user intent.

    Attributes:
        type: Intent category.
        category: Knowledge category used to scope retrieval, if any.
        needs_knowledge: Whether retrieval should run.
        needs_tool: Whether tool definitions are offered to the model.
        has_image: Whether an image attachment came with the message.
        confidence: Classifier confidence in [0, 1].
    """

    type: IntentType
    category: Optional[str] = None
    needs_knowledge: bool = False
    needs_tool: bool = False
    has_image: bool = False
    confidence: float = 0.0


@dataclass(frozen=True)
class ModelSelection:
    provider: str
    model: str
    reason: str


ATTACHMENT_ENCODINGS: tuple[str, ...] = ("base64", "filepath")


@dataclass(frozen=True)
class Attachment:
    """
    A file sent along with a message.

    Attributes:
        name: File name.
        mime_type: MIME type, e.g. "image/png".
        data: Base64 payload or a file path, per encoding.
        encoding: "base64" or "filepath".
    """

    name: str
    mime_type: str
    data: str
    encoding: str = "base64"

    def __post_init__(self) -> None:
        if self.encoding not in ATTACHMENT_ENCODINGS:
            raise ValueError(f"Unknown attachment encoding: {self.encoding}")

    @property
    def is_image(self) -> bool:
        return self.mime_type.lower().startswith("image/")
