"""
model_selector.py

Picks the provider and model for a turn.
Gemini Flash serves every intent when Gemini is configured; otherwise
OpenAI is used, with GPT-4o for code and QA work and GPT-4o Mini for the
rest. Also holds the one-shot fallback table used on quota/auth errors.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

from typing import Iterable, Optional

from core.types import Intent, IntentType, ModelSelection
from engines.gemini_engine import GEMINI_FLASH
from engines.openai_engine import OPENAI_DEFAULT, OPENAI_MINI

_CODE_INTENTS = frozenset({
    IntentType.CODE_REVIEW,
    IntentType.CODE_GENERATION,
    IntentType.DESIGN_QA,
    IntentType.FUNCTIONAL_QA,
})

_GEMINI_REASONS: dict[IntentType, str] = {
    IntentType.CODE_REVIEW: "Gemini Flash handles code/QA tasks efficiently",
    IntentType.CODE_GENERATION: "Gemini Flash handles code/QA tasks efficiently",
    IntentType.DESIGN_QA: "Gemini Flash handles code/QA tasks efficiently",
    IntentType.FUNCTIONAL_QA: "Gemini Flash handles code/QA tasks efficiently",
    IntentType.TRANSLATION: "Gemini Flash excels at multilingual translation",
    IntentType.DOCUMENT_GENERATION: "Gemini Flash handles document generation well",
    IntentType.FILE_OPERATION: "Simple file ops only need a fast model for tool orchestration",
    IntentType.KNOWLEDGE_QUERY: "Retrieval-backed knowledge queries work well with Gemini Flash",
}

# Provider -> (fallback provider, fallback model)
FALLBACK_MODELS: dict[str, tuple[str, str]] = {
    "openai": ("gemini", GEMINI_FLASH),
    "gemini": ("openai", OPENAI_MINI),
}


def select_model(intent: Intent, available_providers: Iterable[str] = ("gemini", "openai")) -> ModelSelection:
    """
    Choose provider and model for an intent.

    Args:
        intent: Classified intent.
        available_providers: Names of configured providers.

    Returns:
        The selection. With no providers configured, a Gemini Flash
        placeholder is returned so the failure surfaces downstream.

    Example:
        select_model(intent, ["openai"])  # ModelSelection("openai", "gpt-4o-mini", ...)
    """
    providers = set(available_providers)

    if "gemini" in providers:
        reason = _GEMINI_REASONS.get(intent.type, "General chat optimized for speed and cost with Gemini Flash")
        return ModelSelection("gemini", GEMINI_FLASH, reason)

    if "openai" in providers:
        if intent.type in _CODE_INTENTS:
            return ModelSelection("openai", OPENAI_DEFAULT, "Fallback to GPT-4o for code/QA (Gemini unavailable)")
        return ModelSelection("openai", OPENAI_MINI, "Fallback to GPT-4o Mini (Gemini unavailable)")

    return ModelSelection("gemini", GEMINI_FLASH, "No providers available, will fail downstream")


def get_fallback(provider: str, available_providers: Iterable[str]) -> Optional[ModelSelection]:
    """
    Return the fallback selection for a provider, if that fallback is configured.

    Args:
        provider: Provider that failed.
        available_providers: Names of configured providers.

    Returns:
        The fallback ModelSelection, or None.
    """
    fallback = FALLBACK_MODELS.get(provider)
    if fallback is None or fallback[0] not in set(available_providers):
        return None
    return ModelSelection(fallback[0], fallback[1], f"Fallback from {provider} after quota/auth error")
