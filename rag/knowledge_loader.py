"""
knowledge_loader.py

Loads the bundled per-persona knowledge into each persona's static index.

Layout:
    <root>/<persona>/<category>/<file>.md|.json
    <root>/<persona>/<file>.md            -> category "general"

Loading is idempotent: a persona whose static index already holds
chunks is skipped. A failing file is logged and skipped.

Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

import config
from rag.chunker import chunk_sections, split_markdown_into_sections
from rag.document_loader import load_document
from rag.engine import RAGEngine
from rag.types import ChunkerConfig, IndexKind, RawMetadata

_log = logging.getLogger("persona.rag.knowledge")
_handler = logging.FileHandler(config.LOGS_DIR / "rag.log")
_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

KNOWLEDGE_EXTENSIONS: tuple[str, ...] = (".md", ".json")


def _chunker_config() -> ChunkerConfig:
    return ChunkerConfig(config.CHUNK_MAX_TOKENS, config.CHUNK_OVERLAP_TOKENS)


def collect_knowledge_files(directory: Path) -> list[Path]:
    """Return every .md / .json file under directory, sorted."""
    return sorted(
        p for p in directory.rglob("*")
        if p.is_file() and p.suffix.lower() in KNOWLEDGE_EXTENSIONS
    )


def load_knowledge_file(engine: RAGEngine, persona: str, root: Path, file_path: Path) -> int:
    """
    Chunk one knowledge file and index it into the persona's static index.

    Args:
        engine: Retrieval engine.
        persona: Persona id.
        root: The persona's knowledge directory.
        file_path: File under root.

    Returns:
        Number of chunks indexed.
    """
    relative = file_path.relative_to(root)
    category = relative.parts[0] if len(relative.parts) > 1 else "general"
    metadata = RawMetadata(
        source_uri=f"knowledge://{persona}/{relative.as_posix()}",
        character_id=persona,
        category=category,
        source_type="static",
    )

    if file_path.suffix.lower() == ".md":
        content = file_path.read_text(encoding="utf-8")
        sections = split_markdown_into_sections(content, default_title=file_path.name)
    else:
        sections = load_document(file_path).sections

    raw_chunks = chunk_sections(sections, metadata, _chunker_config())
    return engine.index_chunks(persona, raw_chunks, IndexKind.STATIC)


def load_static_knowledge(
    engine: RAGEngine,
    root: Optional[str | Path] = None,
    personas: Optional[Iterable[str]] = None,
) -> dict[str, int]:
    """
    Load bundled knowledge for every persona.

    Args:
        engine: Retrieval engine.
        root: Knowledge root; defaults to config.KNOWLEDGE_DIR.
        personas: Persona ids to load; defaults to every sub-directory of root.

    Returns:
        Mapping of persona id to chunks indexed in this call
        (0 for skipped personas).

    Example:
        counts = load_static_knowledge(engine, "knowledge", ["pig", "fox"])
    """
    knowledge_root = Path(root or config.KNOWLEDGE_DIR)
    if personas is None:
        personas = sorted(p.name for p in knowledge_root.iterdir() if p.is_dir()) if knowledge_root.is_dir() else []

    loaded: dict[str, int] = {}
    for persona in personas:
        loaded[persona] = 0
        persona_dir = knowledge_root / persona

        existing = engine.get_stats(persona)["static"]["count"]
        if existing > 0:
            _log.info("%s: %d static chunks already loaded, skipping", persona, existing)
            continue
        if not persona_dir.is_dir():
            _log.info("%s: no knowledge directory (%s), skipping", persona, persona_dir)
            continue

        for file_path in collect_knowledge_files(persona_dir):
            try:
                loaded[persona] += load_knowledge_file(engine, persona, persona_dir, file_path)
            except Exception as exc:
                _log.warning("%s: failed to load %s: %s", persona, file_path, exc)

        _log.info("%s: %d chunks loaded", persona, loaded[persona])

    return loaded
