"""
Import template schemas.

A template remembers the mapping and defaults a sender used for a given
header layout so the next upload with the same layout can reuse them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import Field

from models.base import ImportSchema
from models.import_mapping import ColumnMapping


class TemplateMatchType(str, Enum):
    EXACT = "exact"                      # Same headers, same order
    SORTED_FALLBACK = "sorted_fallback"  # Same headers, different order
    NONE = "none"


class ImportTemplate(ImportSchema):
    id: str
    org_id: str
    name: str
    header_signature: str
    header_signature_sorted: str
    normalized_headers: list[str] = Field(default_factory=list)
    mapping: list[ColumnMapping] = Field(default_factory=list)
    defaults: dict[str, Optional[str]] = Field(default_factory=dict)
    entity_resolutions: Optional[dict[str, Any]] = None
    updated_at: Optional[datetime] = None


class TemplateSaveRequest(ImportSchema):
    org_id: str = Field(..., min_length=1)
    name: str = Field(default="Default", min_length=1, max_length=100)
    headers: list[str] = Field(..., min_length=1)
    mapping: list[ColumnMapping] = Field(..., min_length=1)
    defaults: dict[str, Optional[str]] = Field(default_factory=dict)
    entity_resolutions: Optional[dict[str, Any]] = None


class TemplateUpdateRequest(ImportSchema):
    """All fields optional - only provided fields are updated."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    headers: Optional[list[str]] = None
    mapping: Optional[list[ColumnMapping]] = None
    defaults: Optional[dict[str, Optional[str]]] = None


class TemplateMatchRequest(ImportSchema):
    org_id: str = Field(..., min_length=1)
    headers: list[str] = Field(..., min_length=1)


class TemplateSuggestion(ImportSchema):
    template: ImportTemplate
    score: float = Field(ge=0.0, le=1.0)


class TemplateMatchResult(ImportSchema):
    """
    Match outcome for a header set.

    template is set for exact and sorted_fallback matches. Suggestions
    are only offered when there is no such match and are never applied
    automatically.
    """
    match_type: TemplateMatchType
    template: Optional[ImportTemplate] = None
    suggestions: list[TemplateSuggestion] = Field(default_factory=list)
    header_signature: str
    header_signature_sorted: str
