"""
Tests for document parsing into sections.
"""

import json

import pytest
from docx import Document
from openpyxl import Workbook

from rag.document_loader import is_supported_document, load_document


def test_supported_extensions():
    assert is_supported_document("report.XLSX")
    assert is_supported_document("notes.md")
    assert not is_supported_document("deck.pptx")
    assert not is_supported_document("README")


def test_markdown_is_one_section(tmp_path):
    path = tmp_path / "guide.md"
    path.write_text("# Guide\n\nUse VLOOKUP.", encoding="utf-8")

    doc = load_document(path)

    assert len(doc.sections) == 1
    assert doc.sections[0].title == "guide"
    assert "VLOOKUP" in doc.content


def test_json_list_and_mapping(tmp_path):
    items = tmp_path / "tips.json"
    items.write_text(json.dumps(["first tip", {"q": "What is XLOOKUP?"}]), encoding="utf-8")
    mapping = tmp_path / "glossary.json"
    mapping.write_text(json.dumps({"VLOOKUP": "vertical lookup", "empty": ""}), encoding="utf-8")

    listed = load_document(items)
    keyed = load_document(mapping)

    assert [s.title for s in listed.sections] == ["tips[0]", "tips[1]"]
    assert listed.sections[0].content == "first tip"
    assert "XLOOKUP" in listed.sections[1].content
    assert [s.title for s in keyed.sections] == ["VLOOKUP"]


def test_xlsx_sheets_become_markdown_tables(tmp_path):
    path = tmp_path / "sales.xlsx"
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Sales"
    sheet.append(["Region", "Amount"])
    sheet.append(["Seoul", 120])
    sheet.append(["Busan", 80.0])
    workbook.create_sheet("Empty")
    workbook.save(path)

    doc = load_document(path)

    assert len(doc.sections) == 1
    section = doc.sections[0]
    assert section.title == "Sales"
    assert section.content.startswith("## Sales")
    assert "| Region | Amount |" in section.content
    assert "| Busan | 80 |" in section.content
    assert section.metadata == {"sheet": "Sales", "rows": 2, "columns": 2}


def test_docx_headings_split_sections(tmp_path):
    path = tmp_path / "manual.docx"
    document = Document()
    document.add_heading("Setup", level=1)
    document.add_paragraph("Install the add-in.")
    document.add_heading("Usage", level=2)
    document.add_paragraph("Open the ribbon tab.")
    document.save(path)

    doc = load_document(path)

    assert [s.title for s in doc.sections] == ["Setup", "Usage"]
    assert doc.sections[0].content.startswith("# Setup")
    assert doc.sections[1].content.startswith("## Usage")
    assert "Open the ribbon tab." in doc.sections[1].content


def test_unsupported_and_missing_files(tmp_path):
    with pytest.raises(ValueError):
        load_document(tmp_path / "deck.pptx")
    with pytest.raises(FileNotFoundError):
        load_document(tmp_path / "missing.md")
