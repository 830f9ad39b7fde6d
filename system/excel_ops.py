"""
excel_ops.py

Spreadsheet tools for Persona Hub, built on openpyxl.
Lets the model read .xlsx workbooks as Markdown tables, create new
workbooks from JSON sheet data, and filter rows by a column condition.
These tools run under the longer spreadsheet timeout.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

import config
from tools.base import Tool, require_str

_log = logging.getLogger("persona.system.excel")
_log_file = config.LOGS_DIR / "system.log"
_handler = logging.FileHandler(_log_file)
_handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)-8s | %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

MAX_PREVIEW_ROWS = 200
MAX_QUERY_PREVIEW_ROWS = 50

QUERY_OPERATORS: tuple[str, ...] = (
    "eq", "neq", "contains", "gt", "gte", "lt", "lte", "empty", "notEmpty",
)

_HEADER_FILL = PatternFill(fill_type="solid", fgColor="FFE2E8F0")


# ===========================================================================
# Shared helpers
# ===========================================================================


def cell_to_string(value: Any) -> str:
    """
    Render a cell value as display text.

    Args:
        value: Raw cell value from openpyxl (values_only mode).

    Returns:
        The text, with dates rendered as YYYY-MM-DD and None as "".
    """
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def read_sheet_rows(sheet) -> list[list[str]]:
    """
    Read every row of a worksheet as padded string lists.

    Fully empty rows are skipped. All rows are padded to the widest row.

    Args:
        sheet: An openpyxl worksheet.

    Returns:
        List of rows; the first row is treated as the header by callers.
    """
    rows: list[list[str]] = []
    width = 0
    for raw in sheet.iter_rows(values_only=True):
        cells = [cell_to_string(v) for v in raw]
        while cells and cells[-1] == "":
            cells.pop()
        if not cells:
            continue
        width = max(width, len(cells))
        rows.append(cells)
    for row in rows:
        row.extend([""] * (width - len(row)))
    return rows


def markdown_table(header: list[str], rows: list[list[str]]) -> str:
    """
    Render a header and rows as a Markdown table.

    Args:
        header: Column names.
        rows: Data rows, already padded to the header width.

    Returns:
        The table text.
    """
    lines = [
        "| " + " | ".join(header) + " |",
        "| " + " | ".join("---" for _ in header) + " |",
    ]
    for row in rows:
        lines.append("| " + " | ".join(cell.replace("\n", " ") for cell in row) + " |")
    return "\n".join(lines)


def _write_header(sheet, headers: list[str], widths: Optional[list[float]] = None) -> None:
    sheet.append(headers)
    for cell in sheet[1]:
        cell.font = Font(bold=True)
        cell.fill = _HEADER_FILL
    for i, name in enumerate(headers, start=1):
        width = widths[i - 1] if widths and i - 1 < len(widths) else max(len(str(name)) * 2, 12)
        sheet.column_dimensions[get_column_letter(i)].width = width
    sheet.auto_filter.ref = f"A1:{get_column_letter(max(len(headers), 1))}1"


def evaluate_condition(cell_value: str, operator: str, compare_value: Optional[str]) -> bool:
    """
    Evaluate a queryExcel condition against one cell.

    Text comparisons are case-insensitive; numeric operators parse both
    sides as floats and never match a non-numeric cell.

    Args:
        cell_value: The cell text.
        operator: One of QUERY_OPERATORS.
        compare_value: The value to compare with.

    Returns:
        True if the cell satisfies the condition.
    """
    v = cell_value.strip()
    c = (compare_value or "").strip()

    if operator == "eq":
        return v.lower() == c.lower()
    if operator == "neq":
        return v.lower() != c.lower()
    if operator == "contains":
        return c.lower() in v.lower()
    if operator == "empty":
        return v == ""
    if operator == "notEmpty":
        return v != ""
    if operator in ("gt", "gte", "lt", "lte"):
        try:
            left, right = float(v), float(c)
        except ValueError:
            return False
        return {
            "gt": left > right,
            "gte": left >= right,
            "lt": left < right,
            "lte": left <= right,
        }[operator]
    return False


# ===========================================================================
# Tools
# ===========================================================================


class ReadExcelTool(Tool):
    """Read a workbook and render each sheet as a Markdown table preview."""

    name = "readExcel"
    description = (
        "Read an Excel (.xlsx) file and return each sheet's structure (name, columns, row count) "
        f"and data as a Markdown table. Previews up to {MAX_PREVIEW_ROWS} rows."
    )
    parameters = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Absolute path of the .xlsx file"},
            "sheetName": {"type": "string", "description": "Only read this sheet (default: all sheets)"},
        },
        "required": ["path"],
    }
    timeout_kind = "spreadsheet"

    def execute(self, args: dict[str, Any]) -> str:
        path = Path(require_str(args, "path")).expanduser().resolve()
        target = args.get("sheetName")

        workbook = load_workbook(filename=str(path), read_only=True, data_only=True)
        try:
            names = list(workbook.sheetnames)
            if target and target not in names:
                raise ValueError(f'Sheet "{target}" not found. Available: {", ".join(names)}')

            out = [f"File: {path.name}", f"Sheets: {', '.join(names)}", ""]
            for name in [target] if target else names:
                rows = read_sheet_rows(workbook[name])
                if not rows:
                    out.append(f"### {name}\n(empty sheet)\n")
                    continue

                header, data = rows[0], rows[1:]
                out.append(f"### {name} ({len(data)} rows x {len(header)} columns)")
                out.append(f"Columns: {', '.join(header)}")
                out.append("")
                out.append(markdown_table(header, data[:MAX_PREVIEW_ROWS]))
                if len(data) > MAX_PREVIEW_ROWS:
                    out.append(f"\n... (showing {MAX_PREVIEW_ROWS} of {len(data)} rows)")
                out.append("")
        finally:
            workbook.close()

        _log.info("EXCEL READ | path=%s | sheets=%s", path, target or "all")
        return "\n".join(out)


class WriteExcelTool(Tool):
    """Create a workbook from JSON sheet descriptions."""

    name = "writeExcel"
    description = (
        "Create an Excel (.xlsx) file from JSON sheet data: sheet name, column headers "
        "and row values. Multiple sheets are supported."
    )
    parameters = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Absolute path of the .xlsx file to create"},
            "sheets": {
                "type": "array",
                "description": 'Sheets, each {"name", "headers", "rows", "columnWidths"?}',
                "items": {
                    "type": "object",
                    "properties": {
                        "name": {"type": "string", "description": "Sheet name"},
                        "headers": {"type": "array", "items": {"type": "string"}},
                        "rows": {
                            "type": "array",
                            "items": {"type": "array", "items": {"type": "string"}},
                        },
                        "columnWidths": {"type": "array", "items": {"type": "number"}},
                    },
                },
            },
        },
        "required": ["path", "sheets"],
    }
    timeout_kind = "spreadsheet"

    def execute(self, args: dict[str, Any]) -> str:
        path = Path(require_str(args, "path")).expanduser().resolve()
        sheets = args.get("sheets") or []
        if not isinstance(sheets, list) or not sheets:
            raise ValueError("The sheets array is empty.")

        workbook = Workbook()
        workbook.remove(workbook.active)
        total_rows = 0
        summary = []

        for i, sheet_data in enumerate(sheets):
            name = str(sheet_data.get("name") or f"Sheet{i + 1}")
            headers = [str(h) for h in sheet_data.get("headers") or []]
            rows = sheet_data.get("rows") or []
            sheet = workbook.create_sheet(title=name)
            if headers:
                _write_header(sheet, headers, sheet_data.get("columnWidths"))
            for row in rows:
                sheet.append(list(row))
            total_rows += len(rows)
            summary.append(f'"{name}" ({len(rows)} rows)')

        path.parent.mkdir(parents=True, exist_ok=True)
        workbook.save(str(path))
        _log.info("EXCEL WRITE | path=%s | sheets=%d | rows=%d", path, len(sheets), total_rows)
        return f"Excel file created: {path}\nSheets: {', '.join(summary)}\nTotal rows written: {total_rows}"


class QueryExcelTool(Tool):
    """Filter a sheet's rows by a condition on one column."""

    name = "queryExcel"
    description = (
        "Filter rows of an Excel (.xlsx) sheet by a column condition. Returns the matches as text "
        "or saves them to a new .xlsx file. Operators: eq, neq, contains, gt, gte, lt, lte, empty, notEmpty."
    )
    parameters = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Absolute path of the .xlsx file"},
            "sheetName": {"type": "string", "description": "Sheet to filter (default: first sheet)"},
            "column": {"type": "string", "description": "Header name of the column to test"},
            "operator": {
                "type": "string",
                "description": "Comparison operator",
                "enum": list(QUERY_OPERATORS),
            },
            "value": {"type": "string", "description": "Value to compare (unused for empty/notEmpty)"},
            "outputPath": {"type": "string", "description": "Save matches to this .xlsx path"},
        },
        "required": ["path", "column", "operator"],
    }
    timeout_kind = "spreadsheet"

    def execute(self, args: dict[str, Any]) -> str:
        path = Path(require_str(args, "path")).expanduser().resolve()
        column = require_str(args, "column")
        operator = require_str(args, "operator")
        if operator not in QUERY_OPERATORS:
            raise ValueError(f"Unsupported operator: {operator}")
        compare_value = args.get("value")
        output_path = args.get("outputPath")
        target = args.get("sheetName")

        workbook = load_workbook(filename=str(path), read_only=True, data_only=True)
        try:
            if target and target not in workbook.sheetnames:
                raise ValueError(f'Sheet "{target}" not found.')
            sheet_name = target or workbook.sheetnames[0]
            rows = read_sheet_rows(workbook[sheet_name])
        finally:
            workbook.close()

        if not rows:
            raise ValueError(f'Sheet "{sheet_name}" is empty.')

        headers, data = rows[0], rows[1:]
        lowered = [h.strip().lower() for h in headers]
        if column.strip().lower() not in lowered:
            raise ValueError(f'Column "{column}" not found. Available: {", ".join(headers)}')
        col_index = lowered.index(column.strip().lower())

        matched = [r for r in data if evaluate_condition(r[col_index], operator, compare_value)]
        unmatched = len(data) - len(matched)
        condition = f'"{column}" {operator} {compare_value or ""}'.rstrip()

        _log.info("EXCEL QUERY | path=%s | %s | matched=%d", path, condition, len(matched))

        if output_path:
            out_path = Path(output_path).expanduser().resolve()
            out_book = Workbook()
            out_sheet = out_book.active
            out_sheet.title = sheet_name
            _write_header(out_sheet, headers)
            for row in matched:
                out_sheet.append(row)
            out_path.parent.mkdir(parents=True, exist_ok=True)
            out_book.save(str(out_path))
            return "\n".join(
                [
                    f"Filter result: {len(matched)} matched / {unmatched} not matched (total {len(data)})",
                    f"Condition: {condition}",
                    f"Saved: {out_path}",
                ]
            )

        lines = [
            f"Filter result: {len(matched)} matched / {unmatched} not matched",
            f"Condition: {condition}",
            "",
            markdown_table(headers, matched[:MAX_QUERY_PREVIEW_ROWS]),
        ]
        if len(matched) > MAX_QUERY_PREVIEW_ROWS:
            lines.append(f"\n... (showing {MAX_QUERY_PREVIEW_ROWS} of {len(matched)} rows)")
        return "\n".join(lines)


def build_excel_tools() -> list[Tool]:
    """Create one instance of every spreadsheet tool."""
    return [ReadExcelTool(), WriteExcelTool(), QueryExcelTool()]
