"""
Spreadsheet parsers module.
"""

from parsers.spreadsheet_parser import (
    parse_spreadsheet,
    detect_csv_separator,
)

__all__ = [
    "parse_spreadsheet",
    "detect_csv_separator",
]
