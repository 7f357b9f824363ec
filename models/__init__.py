"""
Pydantic models and dataclasses for validation and serialization.
"""

from models.base import BaseSchema, ImportSchema
from models.import_mapping import (
    RawRow,
    TargetField,
    DeliveryType,
    ColumnMapping,
    NormalizedRow,
)
from models.lookup import (
    Department,
    Locality,
    Agency,
    ServiceType,
    LookupIndex,
    OrganizationOption,
    OrganizationList,
)
from models.import_result import (
    RowStatus,
    RowWarning,
    EntityResolutions,
    PreviewRequest,
    CommitRequest,
    PreviewRow,
    PreviewSummary,
    PreviewResponse,
    RowOutcome,
    ImportSummary,
    CommitResponse,
)
from models.resolution import (
    InferenceResult,
    ResolvedLocation,
    ResolvedReferences,
    DuplicateCheckResult,
)
from models.template import (
    TemplateMatchType,
    ImportTemplate,
    TemplateSaveRequest,
    TemplateUpdateRequest,
    TemplateMatchRequest,
    TemplateSuggestion,
    TemplateMatchResult,
)
from models.spreadsheet import (
    ParsedSpreadsheet,
    MappingSuggestionRequest,
    MappingSuggestion,
)

__all__ = [
    # Base
    "BaseSchema",
    "ImportSchema",

    # Mapping
    "RawRow",
    "TargetField",
    "DeliveryType",
    "ColumnMapping",
    "NormalizedRow",

    # Lookup
    "Department",
    "Locality",
    "Agency",
    "ServiceType",
    "LookupIndex",
    "OrganizationOption",
    "OrganizationList",

    # Import results
    "RowStatus",
    "RowWarning",
    "EntityResolutions",
    "PreviewRequest",
    "CommitRequest",
    "PreviewRow",
    "PreviewSummary",
    "PreviewResponse",
    "RowOutcome",
    "ImportSummary",
    "CommitResponse",

    # Resolution
    "InferenceResult",
    "ResolvedLocation",
    "ResolvedReferences",
    "DuplicateCheckResult",

    # Templates
    "TemplateMatchType",
    "ImportTemplate",
    "TemplateSaveRequest",
    "TemplateUpdateRequest",
    "TemplateMatchRequest",
    "TemplateSuggestion",
    "TemplateMatchResult",

    # Spreadsheet
    "ParsedSpreadsheet",
    "MappingSuggestionRequest",
    "MappingSuggestion",
]
