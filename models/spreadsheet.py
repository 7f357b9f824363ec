"""
Schemas for the upload step: decoded spreadsheet and suggested mapping.
"""

from typing import Optional

from pydantic import Field

from models.base import ImportSchema
from models.import_mapping import ColumnMapping, RawRow


class ParsedSpreadsheet(ImportSchema):
    """Headers and rows decoded from an uploaded file."""
    sheet_names: list[str] = Field(default_factory=list)
    selected_sheet: Optional[str] = None
    headers: list[str] = Field(default_factory=list)
    rows: list[RawRow] = Field(default_factory=list)
    total_rows: int = Field(default=0, ge=0)


class MappingSuggestionRequest(ImportSchema):
    headers: list[str] = Field(..., min_length=1)
    sample_rows: list[RawRow] = Field(default_factory=list)


class MappingSuggestion(ImportSchema):
    mappings: list[ColumnMapping]
    defaults_suggested: dict[str, str] = Field(default_factory=dict)
    notes: list[str] = Field(default_factory=list)
