"""
config.py

Loads all environment variables from .env using python-dotenv.
Exposes them as typed constants grouped by section.
Provider keys are optional at import time — engines check them when built.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

import os
import sys
from pathlib import Path
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Load .env file from project root
# ---------------------------------------------------------------------------
_ENV_PATH = Path(__file__).resolve().parent / ".env"
load_dotenv(_ENV_PATH)


def _get_optional(key: str, default: str = "") -> str:
    """
    Retrieve an optional environment variable with a default.

    Args:
        key: The environment variable name.
        default: Fallback value if not set.

    Returns:
        The value string or default.
    """
    return os.getenv(key, default).strip() or default


def _get_bool(key: str, default: bool = False) -> bool:
    """
    Retrieve an environment variable as a boolean.

    Args:
        key: The environment variable name.
        default: Fallback if not set.

    Returns:
        True if the value is "true"/"1"/"yes" (case-insensitive), else False.
    """
    raw = os.getenv(key, "").strip().lower()
    if not raw:
        return default
    return raw in ("true", "1", "yes")


def _get_int(key: str, default: int = 0) -> int:
    """
    Retrieve an environment variable as an integer.

    Args:
        key: The environment variable name.
        default: Fallback if not set or not a valid int.

    Returns:
        The integer value.
    """
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float(key: str, default: float = 0.0) -> float:
    """
    Retrieve an environment variable as a float.

    Args:
        key: The environment variable name.
        default: Fallback if not set or not a valid float.

    Returns:
        The float value.
    """
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# ===========================================================================
# Section 1 — LLM Keys
# ===========================================================================

OPENAI_API_KEY: str = _get_optional("OPENAI_API_KEY")
GEMINI_API_KEY: str = _get_optional("GEMINI_API_KEY")

# Ollama — local embeddings only
OLLAMA_BASE_URL: str = _get_optional("OLLAMA_BASE_URL", "http://localhost:11434")

# ===========================================================================
# Section 2 — Embeddings
# ===========================================================================

EMBEDDING_BACKEND: str = _get_optional("EMBEDDING_BACKEND", "auto")  # auto | openai | gemini | ollama

# ===========================================================================
# Section 3 — Storage
# ===========================================================================

PROJECT_ROOT: Path = Path(__file__).resolve().parent
DATA_DIR: Path = Path(
    _get_optional("DATA_DIR", str(PROJECT_ROOT / "data" / "rag"))
).expanduser()
KNOWLEDGE_DIR: Path = Path(
    _get_optional("KNOWLEDGE_DIR", str(PROJECT_ROOT / "knowledge"))
).expanduser()
EMBEDDING_MARKER_FILE: str = ".embedding-model"

# ===========================================================================
# Section 4 — Retrieval tuning
# ===========================================================================

RAG_TOP_K: int = _get_int("RAG_TOP_K", 5)
RAG_MIN_SCORE: float = _get_float("RAG_MIN_SCORE", 0.25)
RAG_RERANK: bool = _get_bool("RAG_RERANK", default=True)
RRF_K: int = _get_int("RRF_K", 60)
CHUNK_MAX_TOKENS: int = _get_int("CHUNK_MAX_TOKENS", 500)
CHUNK_OVERLAP_TOKENS: int = _get_int("CHUNK_OVERLAP_TOKENS", 50)
LEXICAL_CACHE_ENTRIES: int = _get_int("LEXICAL_CACHE_ENTRIES", 20)
LEXICAL_CACHE_MAX_CHUNKS: int = _get_int("LEXICAL_CACHE_MAX_CHUNKS", 500)
MAX_RAG_CONTEXT_CHARS: int = _get_int("MAX_RAG_CONTEXT_CHARS", 8000)

# ===========================================================================
# Section 5 — Orchestration
# ===========================================================================

MAX_TOOL_ROUNDS: int = _get_int("MAX_TOOL_ROUNDS", 5)
MAX_CONTEXT_MESSAGES: int = _get_int("MAX_CONTEXT_MESSAGES", 30)
MAX_HISTORY_TURNS: int = _get_int("MAX_HISTORY_TURNS", 20)
MAX_SESSION_HISTORY: int = _get_int("MAX_SESSION_HISTORY", 50)
MAX_PERSONAS: int = _get_int("MAX_PERSONAS", 10)

# ===========================================================================
# Section 6 — Tools
# ===========================================================================

TOOL_TIMEOUT_SECONDS: float = _get_float("TOOL_TIMEOUT_SECONDS", 30.0)
SPREADSHEET_TOOL_TIMEOUT_SECONDS: float = _get_float("SPREADSHEET_TOOL_TIMEOUT_SECONDS", 60.0)
GUARDRAILS_CONFIG: str = _get_optional(
    "GUARDRAILS_CONFIG", "permissions/guardrails.yaml"
)

# ===========================================================================
# Section 7 — General Config
# ===========================================================================

DEFAULT_PERSONA: str = _get_optional("DEFAULT_PERSONA", "pig")
PERSONAS_CONFIG: str = _get_optional("PERSONAS_CONFIG", "core/personas.yaml")
LOG_LEVEL: str = _get_optional("LOG_LEVEL", "INFO")

# ===========================================================================
# Project paths (derived, not from .env)
# ===========================================================================

LOGS_DIR: Path = PROJECT_ROOT / "logs"
GUARDRAILS_YAML_PATH: Path = PROJECT_ROOT / GUARDRAILS_CONFIG
PERSONAS_YAML_PATH: Path = PROJECT_ROOT / PERSONAS_CONFIG

# Ensure logs directory exists
LOGS_DIR.mkdir(exist_ok=True)


# ===========================================================================
# Validation helpers
# ===========================================================================

def validate_required_for_engine(engine: str) -> None:
    """
    Validate that the required credentials exist for a given engine.
    Call this before using a specific engine — not at import time,
    because users may only configure one provider.

    Args:
        engine: Engine name — "openai" or "gemini".

    Raises:
        SystemExit: If required credentials are missing.

    Example:
        validate_required_for_engine("gemini")
    """
    checks: dict[str, list[tuple[str, str]]] = {
        "openai": [
            (OPENAI_API_KEY, "OPENAI_API_KEY"),
        ],
        "gemini": [
            (GEMINI_API_KEY, "GEMINI_API_KEY"),
        ],
    }

    required = checks.get(engine, [])
    for value, name in required:
        if not value:
            print(
                f"[Persona Hub Config Error] Engine '{engine}' requires '{name}' but it is missing.\n"
                f"  → Add it to your .env file.",
                file=sys.stderr,
            )
            raise SystemExit(1)


def as_dict() -> dict[str, str | int | float | bool]:
    """
    Return all configuration values as a flat dictionary.
    Useful for debugging — does NOT include sensitive keys.

    Returns:
        A dict of all config keys and their current values.

    Example:
        cfg = as_dict()
    """
    return {
        # LLM Keys (presence only — not the actual value)
        "OPENAI_API_KEY": "***set***" if OPENAI_API_KEY else "",
        "GEMINI_API_KEY": "***set***" if GEMINI_API_KEY else "",
        "OLLAMA_BASE_URL": OLLAMA_BASE_URL,
        # Embeddings
        "EMBEDDING_BACKEND": EMBEDDING_BACKEND,
        # Storage
        "DATA_DIR": str(DATA_DIR),
        "KNOWLEDGE_DIR": str(KNOWLEDGE_DIR),
        # Retrieval
        "RAG_TOP_K": RAG_TOP_K,
        "RAG_MIN_SCORE": RAG_MIN_SCORE,
        "RAG_RERANK": RAG_RERANK,
        "RRF_K": RRF_K,
        "CHUNK_MAX_TOKENS": CHUNK_MAX_TOKENS,
        "CHUNK_OVERLAP_TOKENS": CHUNK_OVERLAP_TOKENS,
        "LEXICAL_CACHE_ENTRIES": LEXICAL_CACHE_ENTRIES,
        "LEXICAL_CACHE_MAX_CHUNKS": LEXICAL_CACHE_MAX_CHUNKS,
        "MAX_RAG_CONTEXT_CHARS": MAX_RAG_CONTEXT_CHARS,
        # Orchestration
        "MAX_TOOL_ROUNDS": MAX_TOOL_ROUNDS,
        "MAX_CONTEXT_MESSAGES": MAX_CONTEXT_MESSAGES,
        "MAX_HISTORY_TURNS": MAX_HISTORY_TURNS,
        "MAX_SESSION_HISTORY": MAX_SESSION_HISTORY,
        "MAX_PERSONAS": MAX_PERSONAS,
        # Tools
        "TOOL_TIMEOUT_SECONDS": TOOL_TIMEOUT_SECONDS,
        "SPREADSHEET_TOOL_TIMEOUT_SECONDS": SPREADSHEET_TOOL_TIMEOUT_SECONDS,
        "GUARDRAILS_CONFIG": GUARDRAILS_CONFIG,
        # General
        "DEFAULT_PERSONA": DEFAULT_PERSONA,
        "PERSONAS_CONFIG": PERSONAS_CONFIG,
        "LOG_LEVEL": LOG_LEVEL,
    }
