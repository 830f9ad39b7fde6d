"""
Tests for the spreadsheet tools and helpers.
"""

from datetime import date, datetime

import pytest
from openpyxl import load_workbook

from system.excel_ops import (
    QueryExcelTool,
    ReadExcelTool,
    WriteExcelTool,
    cell_to_string,
    evaluate_condition,
    markdown_table,
)


@pytest.fixture
def workbook_path(tmp_path):
    path = tmp_path / "sales.xlsx"
    WriteExcelTool().execute(
        {
            "path": str(path),
            "sheets": [
                {
                    "name": "Sales",
                    "headers": ["Region", "Amount"],
                    "rows": [["Seoul", "120"], ["Busan", "80"], ["Daegu", "45"]],
                },
                {"name": "Notes", "headers": ["Memo"], "rows": []},
            ],
        }
    )
    return path


def test_write_creates_sheets_with_header(workbook_path):
    workbook = load_workbook(workbook_path)

    assert workbook.sheetnames == ["Sales", "Notes"]
    assert workbook["Sales"]["A1"].font.bold
    assert workbook["Sales"].max_row == 4


def test_read_renders_markdown(workbook_path):
    output = ReadExcelTool().execute({"path": str(workbook_path)})

    assert "Sheets: Sales, Notes" in output
    assert "### Sales (3 rows x 2 columns)" in output
    assert "| Seoul | 120 |" in output


def test_read_unknown_sheet(workbook_path):
    with pytest.raises(ValueError, match="not found"):
        ReadExcelTool().execute({"path": str(workbook_path), "sheetName": "Missing"})


def test_query_filters_numeric_rows(workbook_path):
    output = QueryExcelTool().execute(
        {"path": str(workbook_path), "column": "amount", "operator": "gt", "value": "50"}
    )

    assert "2 matched / 1 not matched" in output
    assert "| Seoul | 120 |" in output
    assert "Daegu" not in output


def test_query_saves_matches(workbook_path, tmp_path):
    out = tmp_path / "filtered.xlsx"

    output = QueryExcelTool().execute(
        {"path": str(workbook_path), "column": "Region", "operator": "contains", "value": "an",
         "outputPath": str(out)}
    )

    assert f"Saved: {out}" in output
    rows = list(load_workbook(out)["Sales"].iter_rows(values_only=True))
    assert rows == [("Region", "Amount"), ("Busan", "80")]


def test_query_rejects_bad_column_and_operator(workbook_path):
    with pytest.raises(ValueError, match="Column"):
        QueryExcelTool().execute({"path": str(workbook_path), "column": "Price", "operator": "eq"})
    with pytest.raises(ValueError, match="operator"):
        QueryExcelTool().execute({"path": str(workbook_path), "column": "Region", "operator": "like"})


def test_write_requires_sheets(tmp_path):
    with pytest.raises(ValueError):
        WriteExcelTool().execute({"path": str(tmp_path / "x.xlsx"), "sheets": []})


@pytest.mark.parametrize(
    "cell, operator, value, expected",
    [
        ("Seoul", "eq", "seoul", True),
        ("Seoul", "neq", "Busan", True),
        ("12", "gte", "12", True),
        ("abc", "gt", "1", False),
        ("", "empty", None, True),
        ("x", "notEmpty", None, True),
        ("x", "unknown", "x", False),
    ],
)
def test_evaluate_condition(cell, operator, value, expected):
    assert evaluate_condition(cell, operator, value) is expected


def test_cell_to_string_and_markdown_table():
    assert cell_to_string(None) == ""
    assert cell_to_string(3.0) == "3"
    assert cell_to_string(datetime(2024, 3, 5, 10, 30)) == "2024-03-05"
    assert cell_to_string(date(2024, 3, 5)) == "2024-03-05"
    assert markdown_table(["a", "b"], [["1", "x\ny"]]) == "| a | b |\n| --- | --- |\n| 1 | x y |"
