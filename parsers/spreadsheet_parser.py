"""
Spreadsheet parser for shipment imports.

Decodes an uploaded .xlsx/.xls/.csv file into a header row and raw rows.
Every cell is read as text; no type inference and no layout detection.
The first non-blank row is the header row.
"""

from io import BytesIO, StringIO
from pathlib import PurePath
from typing import Any, Optional
import structlog

import pandas as pd

from config import settings
from exceptions import SpreadsheetParseError
from models.import_mapping import RawRow
from models.spreadsheet import ParsedSpreadsheet

logger = structlog.get_logger(__name__)

SUPPORTED_EXTENSIONS = ("xlsx", "xls", "csv")
CSV_SHEET_NAME = "Sheet1"
CSV_SNIFF_LINES = 5

# Engine per extension: xlrd for legacy .xls, openpyxl for .xlsx
EXCEL_ENGINES = {"xlsx": "openpyxl", "xls": "xlrd"}


def detect_csv_separator(text: str) -> str:
    """";" when it outnumbers "," in the first lines, else ","."""
    head = "\n".join(text.splitlines()[:CSV_SNIFF_LINES])
    return ";" if head.count(";") > head.count(",") else ","


def parse_spreadsheet(
    content: bytes,
    filename: str,
    sheet_name: Optional[str] = None,
) -> ParsedSpreadsheet:
    """
    Parse an uploaded spreadsheet.

    Args:
        content: Raw file bytes
        filename: Original file name (extension decides the format)
        sheet_name: Sheet to read; first sheet when omitted

    Returns:
        ParsedSpreadsheet with headers and all data rows

    Raises:
        SpreadsheetParseError: FILE_TOO_LARGE, INVALID_FILE, EMPTY_FILE
                               or SHEET_NOT_FOUND
    """
    if len(content) > settings.max_upload_size_bytes:
        raise SpreadsheetParseError(
            f"File exceeds {settings.max_upload_size_mb} MB",
            code="FILE_TOO_LARGE",
            details={"size_bytes": len(content)}
        )

    extension = PurePath(filename or "").suffix.lower().lstrip(".")
    if extension not in SUPPORTED_EXTENSIONS:
        raise SpreadsheetParseError(
            f"Unsupported file type: .{extension or '(none)'}. Use .xlsx, .xls or .csv",
            details={"filename": filename}
        )

    logger.info("parsing_spreadsheet", filename=filename, size_bytes=len(content))

    if extension == "csv":
        sheet_names, selected, frame = _read_csv(content)
    else:
        sheet_names, selected, frame = _read_excel(content, extension, sheet_name)

    headers, rows = _frame_to_rows(frame, selected)

    logger.info(
        "spreadsheet_parsed",
        filename=filename,
        sheet=selected,
        columns=len(headers),
        rows=len(rows)
    )

    return ParsedSpreadsheet(
        sheet_names=sheet_names,
        selected_sheet=selected,
        headers=headers,
        rows=rows,
        total_rows=len(rows),
    )


# ===================
# HELPER FUNCTIONS
# ===================

def _decode(content: bytes) -> str:
    """UTF-8 (with or without BOM), falling back to latin-1."""
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("latin-1")


def _read_csv(content: bytes) -> tuple[list[str], str, pd.DataFrame]:
    text = _decode(content)
    if not text.strip():
        raise SpreadsheetParseError("The file is empty", code="EMPTY_FILE")

    separator = detect_csv_separator(text)
    try:
        frame = pd.read_csv(
            StringIO(text),
            sep=separator,
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except Exception as e:
        logger.error("csv_read_failed", error=str(e))
        raise SpreadsheetParseError(
            "Could not read the file. Check that it is a valid CSV",
            details={"original_error": str(e)}
        )

    logger.debug("csv_loaded", separator=separator, columns=len(frame.columns))
    return [CSV_SHEET_NAME], CSV_SHEET_NAME, frame


def _read_excel(
    content: bytes,
    extension: str,
    sheet_name: Optional[str],
) -> tuple[list[str], str, pd.DataFrame]:
    try:
        excel = pd.ExcelFile(BytesIO(content), engine=EXCEL_ENGINES[extension])
    except Exception as e:
        logger.error("excel_read_failed", error=str(e))
        raise SpreadsheetParseError(
            "Could not read the file. Check that it is a valid xlsx/xls",
            details={"original_error": str(e)}
        )

    sheet_names = [str(name) for name in excel.sheet_names]
    if not sheet_names:
        raise SpreadsheetParseError("The file has no sheets", code="EMPTY_FILE")

    if sheet_name is None:
        selected = sheet_names[0]
    elif sheet_name in sheet_names:
        selected = sheet_name
    else:
        raise SpreadsheetParseError(
            f'Sheet "{sheet_name}" not found. Available sheets: {", ".join(sheet_names)}',
            code="SHEET_NOT_FOUND",
            details={"sheet_names": sheet_names}
        )

    frame = excel.parse(selected, header=None, dtype=str, keep_default_na=False)
    return sheet_names, selected, frame


def _cell_text(value: Any) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value).strip()


def _unique_headers(raw_headers: list[str]) -> list[str]:
    """Name blank headers "Column N" and suffix repeated ones " (2)", " (3)"..."""
    headers: list[str] = []
    seen: dict[str, int] = {}
    for position, header in enumerate(raw_headers, start=1):
        name = header or f"Column {position}"
        count = seen.get(name, 0) + 1
        seen[name] = count
        headers.append(name if count == 1 else f"{name} ({count})")
    return headers


def _frame_to_rows(frame: pd.DataFrame, sheet: str) -> tuple[list[str], list[RawRow]]:
    """First non-blank row becomes the header; blank rows are dropped."""
    matrix = [
        [_cell_text(v) for v in record]
        for record in frame.itertuples(index=False, name=None)
    ]
    matrix = [cells for cells in matrix if any(cells)]

    if not matrix:
        raise SpreadsheetParseError(f'Sheet "{sheet}" is empty', code="EMPTY_FILE")

    headers = _unique_headers(matrix[0])
    rows: list[RawRow] = []
    for cells in matrix[1:]:
        rows.append({
            header: (cells[i] or None) if i < len(cells) else None
            for i, header in enumerate(headers)
        })

    return headers, rows
