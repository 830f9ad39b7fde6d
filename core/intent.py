"""
intent.py

Rule-based intent classification for Persona Hub.
Maps a user message to an Intent: what kind of request it is, which
knowledge category to search, and whether retrieval and tools apply.
Rules are ordered; the first match wins. English and Korean phrasings
are both recognised.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

import config
from core.types import Intent, IntentType

_log = logging.getLogger("persona.intent")
_handler = logging.FileHandler(config.LOGS_DIR / "orchestrator.log")
_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

# Built-in specialties, used when the caller does not pass a persona's own
DEFAULT_SPECIALTIES: dict[str, tuple[IntentType, ...]] = {
    "fox": (IntentType.CODE_REVIEW, IntentType.CODE_GENERATION, IntentType.DESIGN_QA, IntentType.FUNCTIONAL_QA),
    "pig": (IntentType.DOCUMENT_GENERATION, IntentType.KNOWLEDGE_QUERY, IntentType.FILE_OPERATION),
    "rabbit": (IntentType.TRANSLATION, IntentType.KNOWLEDGE_QUERY),
}

# (pattern, intent type, needs_knowledge, needs_tool)
# English keywords sit inside \b...\b; Korean ones do not, since particles attach to the word
_RULES: list[tuple[re.Pattern, IntentType, bool, bool]] = [
    # File operations
    (re.compile(r"파일\s*(읽|쓰|생성|삭제|이동|복사|목록|열어|만들어)", re.I), IntentType.FILE_OPERATION, False, True),
    (re.compile(r"\b(read|write|create|delete|move|copy|rename|list)\s+(the\s+|a\s+|this\s+)?(file|folder|directory)", re.I),
     IntentType.FILE_OPERATION, False, True),
    (re.compile(r"폴더|디렉토리", re.I), IntentType.FILE_OPERATION, False, True),
    # Code review / QA
    (re.compile(r"코드\s*리뷰|리팩|\b(code\s*review|review|refactor)", re.I), IntentType.CODE_REVIEW, True, False),
    (re.compile(r"디자인\s*QA|디자인\s*검수|UI\s*확인|\b(design\s*qa|ui\s*check)\b", re.I),
     IntentType.DESIGN_QA, True, False),
    (re.compile(r"기능\s*QA|기능\s*테스트|QA\s*체크|\b(functional\s*(qa|test)|test\s*cases?)\b", re.I),
     IntentType.FUNCTIONAL_QA, True, False),
    # Code generation
    (re.compile(r"코드\s*(작성|생성|만들어)|구현해|개발해|\b(write|generate)\s+(some\s+|the\s+|a\s+)?code\b|\bimplement\b", re.I),
     IntentType.CODE_GENERATION, True, True),
    # Translation
    (re.compile(r"번역|翻訳|통역|\btranslat", re.I), IntentType.TRANSLATION, True, False),
    (re.compile(r"한국어로|영어로|일본어로|중국어로|\b(in|into)\s+(english|korean|japanese|chinese)\b", re.I),
     IntentType.TRANSLATION, True, False),
    # Document generation
    (re.compile(r"엑셀|스프레드시트|\b(excel|spreadsheets?|xlsx)\b", re.I), IntentType.DOCUMENT_GENERATION, True, True),
    (re.compile(r"파워포인트|슬라이드|프레젠테이션|\b(powerpoint|pptx?|slides?|presentations?)\b", re.I),
     IntentType.DOCUMENT_GENERATION, True, True),
    (re.compile(r"워드|문서\s*(작성|생성|만들어)|\bword\s+(document|file)|\bdocx?\b", re.I),
     IntentType.DOCUMENT_GENERATION, True, True),
    (re.compile(r"한글\s*(문서|파일)|\bhwp\b", re.I), IntentType.DOCUMENT_GENERATION, True, True),
    (re.compile(r"보고서|리포트|\breports?\b", re.I), IntentType.DOCUMENT_GENERATION, True, True),
    # Knowledge queries
    (re.compile(r"어떻게|방법|사용법|문법|함수|\b(APIs?|how\s+(do|to|can|does|should)|syntax|usage|what\s+is)\b", re.I),
     IntentType.KNOWLEDGE_QUERY, True, False),
    # Help
    (re.compile(r"도와\s*줘|도움|\bhelp\b", re.I), IntentType.HELP_REQUEST, False, False),
]

_EXCEL = re.compile(r"엑셀|스프레드시트|피벗|\b(excel|xlsx|spreadsheets?|vlookup|pivot)", re.I)
_POWERPOINT = re.compile(r"파워포인트|슬라이드|\b(powerpoint|pptx?|slides?|presentations?)\b", re.I)
_WORD = re.compile(r"워드|\b(word|docx)\b", re.I)
_HWP = re.compile(r"한글\s*(문서|파일)|\bhwp\b", re.I)
_REACT = re.compile(r"\b(react|next\.?js|next)\b", re.I)
_TYPESCRIPT = re.compile(r"\b(typescript|ts|tsx)\b", re.I)
_TO_ENGLISH = re.compile(r"영어로|\b(in|into|to)\s+english\b", re.I)
_TO_KOREAN = re.compile(r"한국어로|한글로|\b(in|into|to)\s+korean\b", re.I)
_JAPANESE = re.compile(r"일본어|日本語|\bjapanese\b", re.I)


def infer_category(intent_type: IntentType, message: str, persona_id: str) -> Optional[str]:
    """
    Infer the knowledge category to scope retrieval.

    Args:
        intent_type: Classified intent type.
        message: User message.
        persona_id: Persona id.

    Returns:
        A category name, or None for personas without categorised knowledge.

    Example:
        infer_category(IntentType.DOCUMENT_GENERATION, "VLOOKUP in Excel", "pig")  # "excel"
    """
    if persona_id == "pig":
        if _EXCEL.search(message):
            return "excel"
        if _POWERPOINT.search(message):
            return "powerpoint"
        if _WORD.search(message):
            return "word"
        if _HWP.search(message):
            return "hwp"
        return "general"

    if persona_id == "fox":
        if intent_type == IntentType.CODE_REVIEW:
            return "code-review"
        if intent_type == IntentType.DESIGN_QA:
            return "design-qa"
        if intent_type == IntentType.FUNCTIONAL_QA:
            return "functional-qa"
        if _REACT.search(message):
            return "react-nextjs"
        if _TYPESCRIPT.search(message):
            return "typescript"
        return "general"

    if persona_id == "rabbit":
        if _JAPANESE.search(message):
            return "ja-ko"
        if _TO_KOREAN.search(message):
            return "en-ko"
        if _TO_ENGLISH.search(message):
            return "ko-en"
        return "ko-en"

    return None


def classify_intent(
    message: str,
    persona_id: str,
    has_image: bool = False,
    specialties: Optional[Iterable[IntentType | str]] = None,
) -> Intent:
    """
    Classify a user message.

    Args:
        message: User message text.
        persona_id: Active persona id.
        has_image: True if an image attachment came with the message.
        specialties: The persona's specialty intents; defaults to the
            built-in table for known personas.

    Returns:
        The Intent. Never raises.

    Example:
        intent = classify_intent("엑셀 VLOOKUP 사용법 알려줘", "pig")
        intent.type  # IntentType.DOCUMENT_GENERATION
    """
    if specialties is None:
        persona_specialties = set(DEFAULT_SPECIALTIES.get(persona_id, ()))
    else:
        persona_specialties = {IntentType(s) for s in specialties}

    for pattern, intent_type, needs_knowledge, needs_tool in _RULES:
        if pattern.search(message):
            return Intent(
                type=intent_type,
                category=infer_category(intent_type, message, persona_id),
                needs_knowledge=needs_knowledge,
                needs_tool=needs_tool,
                has_image=has_image,
                confidence=0.9 if intent_type in persona_specialties else 0.7,
            )

    if persona_specialties:
        _log.debug("No intent rule matched for %s, defaulting to knowledge query", persona_id)
        return Intent(
            type=IntentType.KNOWLEDGE_QUERY,
            category=infer_category(IntentType.KNOWLEDGE_QUERY, message, persona_id),
            needs_knowledge=True,
            needs_tool=False,
            has_image=has_image,
            confidence=0.5,
        )

    _log.debug("No intent rule matched for %s, defaulting to general chat", persona_id)
    return Intent(
        type=IntentType.GENERAL_CHAT,
        needs_knowledge=False,
        needs_tool=False,
        has_image=has_image,
        confidence=0.8,
    )
