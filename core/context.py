"""
context.py

Builds the message list before each LLM call.
Combines the persona's system prompt, retrieved knowledge, recent chat
history and the user's message (with image attachments) into the
provider-neutral format every engine accepts.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import Optional, Sequence

import config
from core.types import Attachment
from rag.types import SearchResult

_log = logging.getLogger("persona.context")
_handler = logging.FileHandler(config.LOGS_DIR / "context.log")
_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

RAG_SECTION_START = "--- Reference knowledge ---"
RAG_SECTION_END = "--- End of reference knowledge ---"
RAG_INSTRUCTIONS = (
    "The following is relevant reference knowledge. Use it actively when answering; "
    "if something is not covered, say honestly that you do not know."
)
TRUNCATION_MARKER = "\n...(truncated)"


def format_rag_context(results: Sequence[SearchResult]) -> str:
    """
    Render search results as numbered blocks.

    Args:
        results: Search results, best first.

    Returns:
        "[1] ...\\n\\n[2] ..." or "" for no results.
    """
    return "\n\n".join(f"[{i}] {r.content}" for i, r in enumerate(results, start=1))


def build_system_prompt(base_prompt: str, rag_context: str, max_chars: Optional[int] = None) -> str:
    """
    Append retrieved knowledge to the persona prompt in a delimited section.

    Args:
        base_prompt: Persona system prompt.
        rag_context: Formatted retrieval context; may be empty.
        max_chars: Context ceiling; defaults to config.MAX_RAG_CONTEXT_CHARS.

    Returns:
        The full system prompt.
    """
    if not rag_context:
        return base_prompt

    limit = config.MAX_RAG_CONTEXT_CHARS if max_chars is None else max_chars
    trimmed = rag_context if len(rag_context) <= limit else rag_context[:limit] + TRUNCATION_MARKER

    return "\n".join([base_prompt, "", RAG_SECTION_START, RAG_INSTRUCTIONS, "", trimmed, RAG_SECTION_END])


def _image_payload(attachment: Attachment) -> Optional[str]:
    if attachment.encoding == "base64":
        return attachment.data
    try:
        return base64.b64encode(Path(attachment.data).expanduser().read_bytes()).decode("ascii")
    except OSError as exc:
        _log.warning("Could not read image attachment %s: %s", attachment.name, exc)
        return None


def build_user_message(text: str, attachments: Optional[Sequence[Attachment]] = None) -> dict:
    """
    Build the user message, multi-part when attachments are present.

    Non-image attachments are ignored here; documents go through the
    knowledge upload path instead.

    Args:
        text: User message text.
        attachments: Optional attachments.

    Returns:
        A user message dict.
    """
    if not attachments:
        return {"role": "user", "content": text}

    parts: list[dict] = [{"type": "text", "text": text}]
    for attachment in attachments:
        if not attachment.is_image:
            continue
        data = _image_payload(attachment)
        if data:
            parts.append({"type": "image", "mime_type": attachment.mime_type, "data": data})
    return {"role": "user", "content": parts}


def build_messages(
    system_prompt: str,
    history: Sequence[dict],
    rag_context: str,
    user_message: str,
    attachments: Optional[Sequence[Attachment]] = None,
) -> list[dict]:
    """
    Build the message list for a model call.

    Order: one system message, the last MAX_HISTORY_TURNS history
    messages, then the user message.

    Args:
        system_prompt: Persona system prompt.
        history: Prior {"role", "content"} messages, oldest first.
        rag_context: Formatted retrieval context; may be empty.
        user_message: Current user text.
        attachments: Optional attachments.

    Returns:
        Provider-neutral message list.

    Example:
        messages = build_messages(persona.system_prompt, history, ctx, "VLOOKUP?")
    """
    messages: list[dict] = [{"role": "system", "content": build_system_prompt(system_prompt, rag_context)}]

    recent = list(history)[-config.MAX_HISTORY_TURNS:] if config.MAX_HISTORY_TURNS > 0 else []
    for msg in recent:
        role = msg.get("role")
        content = msg.get("content", "")
        if role in ("user", "assistant") and content:
            messages.append({"role": role, "content": content})

    messages.append(build_user_message(user_message, attachments))
    _log.debug("Built context: %d messages, rag=%d chars", len(messages), len(rag_context))
    return messages


def compact_messages(messages: list[dict], ceiling: Optional[int] = None) -> list[dict]:
    """
    Keep every system message plus the most recent others, up to the ceiling.

    Args:
        messages: Full message list.
        ceiling: Maximum message count; defaults to config.MAX_CONTEXT_MESSAGES.

    Returns:
        The original list if within the ceiling, else a compacted copy.
    """
    limit = config.MAX_CONTEXT_MESSAGES if ceiling is None else ceiling
    if len(messages) <= limit:
        return messages

    system_messages = [m for m in messages if m.get("role") == "system"]
    others = [m for m in messages if m.get("role") != "system"]
    keep = max(limit - len(system_messages), 0)
    recent = others[-keep:] if keep else []

    # A tool result must not lead without the assistant turn that requested it
    while recent and recent[0].get("role") == "tool":
        recent = recent[1:]

    _log.info("Compacted context: %d -> %d messages", len(messages), len(system_messages) + len(recent))
    return system_messages + recent
