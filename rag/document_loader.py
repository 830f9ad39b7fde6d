"""
document_loader.py

Parses uploaded and bundled documents into sections for the chunker.

Supported formats:
    .md / .txt  -> single section (Markdown is later split by heading)
    .json       -> one section per array item or top-level key
    .xlsx       -> one section per sheet, rendered as a Markdown table (openpyxl)
    .docx       -> one section per heading (python-docx)
    .pdf        -> one section per page (langchain-community PyPDFLoader)

Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import config
from rag.chunker import split_markdown_into_sections
from rag.types import DocumentSection, ParsedDocument

_log = logging.getLogger("persona.rag.loader")
_handler = logging.FileHandler(config.LOGS_DIR / "rag.log")
_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

SUPPORTED_EXTENSIONS: tuple[str, ...] = (".md", ".txt", ".json", ".xlsx", ".docx", ".pdf")


def is_supported_document(path: str | Path) -> bool:
    """Return True if load_document can parse this file type."""
    return Path(path).suffix.lower() in SUPPORTED_EXTENSIONS


def load_document(path: str | Path) -> ParsedDocument:
    """
    Parse a document into sections.

    Args:
        path: File to parse.

    Returns:
        ParsedDocument with the full text and its sections.

    Raises:
        ValueError: If the file type is not supported.
        FileNotFoundError: If the file does not exist.

    Example:
        doc = load_document("~/reports/q3.xlsx")
        doc.sections[0].metadata["sheet"]  # "Summary"
    """
    file_path = Path(path).expanduser()
    suffix = file_path.suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        raise ValueError(f"Unsupported document type: {suffix or file_path.name}")
    if not file_path.is_file():
        raise FileNotFoundError(f"File not found: {file_path}")

    if suffix == ".xlsx":
        sections = _load_xlsx(file_path)
    elif suffix == ".docx":
        sections = _load_docx(file_path)
    elif suffix == ".pdf":
        sections = _load_pdf(file_path)
    elif suffix == ".json":
        sections = _load_json(file_path)
    else:
        sections = _load_text(file_path)

    content = "\n\n".join(s.content for s in sections)
    _log.info("Loaded %s (%d sections)", file_path.name, len(sections))
    return ParsedDocument(source_path=str(file_path), content=content, sections=sections)


def _load_text(file_path: Path) -> list[DocumentSection]:
    text = file_path.read_text(encoding="utf-8", errors="replace").strip()
    if not text:
        return []
    return [DocumentSection(title=file_path.stem, content=text)]


def _load_json(file_path: Path) -> list[DocumentSection]:
    data: Any = json.loads(file_path.read_text(encoding="utf-8"))

    def render(value: Any) -> str:
        return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False, indent=2)

    if isinstance(data, list):
        items = [(f"{file_path.stem}[{i}]", item) for i, item in enumerate(data)]
    elif isinstance(data, dict):
        items = [(str(key), value) for key, value in data.items()]
    else:
        items = [(file_path.stem, data)]

    return [
        DocumentSection(title=title, content=render(value))
        for title, value in items
        if render(value).strip()
    ]


def _load_xlsx(file_path: Path) -> list[DocumentSection]:
    from openpyxl import load_workbook

    from system.excel_ops import markdown_table, read_sheet_rows

    workbook = load_workbook(file_path, read_only=True, data_only=True)
    sections: list[DocumentSection] = []
    try:
        for sheet in workbook.worksheets:
            rows = read_sheet_rows(sheet)
            if not rows:
                continue
            header, body = rows[0], rows[1:]
            sections.append(
                DocumentSection(
                    title=sheet.title,
                    content=f"## {sheet.title}\n\n{markdown_table(header, body)}",
                    metadata={"sheet": sheet.title, "rows": len(body), "columns": len(header)},
                )
            )
    finally:
        workbook.close()
    return sections


def _load_docx(file_path: Path) -> list[DocumentSection]:
    from docx import Document

    document = Document(str(file_path))
    lines: list[str] = []
    for paragraph in document.paragraphs:
        text = paragraph.text.strip()
        if not text:
            continue
        style = (paragraph.style.name or "").lower() if paragraph.style is not None else ""
        if style.startswith("heading"):
            level = style.replace("heading", "").strip()
            depth = int(level) if level.isdigit() else 1
            lines.append(f"{'#' * min(depth, 3)} {text}")
        else:
            lines.append(text)
        lines.append("")

    return split_markdown_into_sections("\n".join(lines), default_title=file_path.stem)


def _load_pdf(file_path: Path) -> list[DocumentSection]:
    from langchain_community.document_loaders import PyPDFLoader

    pages = PyPDFLoader(str(file_path)).load()
    sections: list[DocumentSection] = []
    for i, page in enumerate(pages, start=1):
        text = (page.page_content or "").strip()
        if text:
            sections.append(DocumentSection(title=f"Page {i}", content=text, metadata={"page": i}))
    return sections
