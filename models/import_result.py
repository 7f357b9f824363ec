"""
Import request and result schemas.

Covers the preview and commit operations, per-row outcomes and the
summaries derived from them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import Field

from models.base import ImportSchema
from models.import_mapping import ColumnMapping, RawRow


# Keys of defaults_chosen that scope the whole import and are never
# copied into individual rows
SENDER_ORG_KEY = "remitente_org_id"
COURIER_ORG_KEY = "cadeteria_org_id"
AGENCY_ORG_KEY = "agencia_org_id"
IMPORT_SCOPE_KEYS = frozenset({SENDER_ORG_KEY, COURIER_ORG_KEY, AGENCY_ORG_KEY})

# Canonical defaults applied during resolution instead of normalization
DELIVERY_TYPE_KEY = "delivery_type"
LATE_DEFAULT_KEYS = frozenset({DELIVERY_TYPE_KEY})


class RowStatus(str, Enum):
    """Outcome of one row in a commit attempt."""
    INSERTED = "INSERTED"
    FAILED = "FAILED"
    SKIPPED_DUPLICATE = "SKIPPED_DUPLICATE"


class RowWarning(ImportSchema):
    """Advisory message attached to a field; never blocks a write."""
    field: str
    message: str


# ===================
# REQUESTS
# ===================

class EntityResolutions(ImportSchema):
    """
    Manual resolutions chosen by a reviewer.

    agencies maps a raw agency-name string to an agency id, or to None
    for "explicitly no agency".
    """
    agencies: dict[str, Optional[str]] = Field(default_factory=dict)


class PreviewRequest(ImportSchema):
    """Dry run over a set of rows. Never writes."""
    mappings: list[ColumnMapping] = Field(default_factory=list)
    defaults_chosen: dict[str, Optional[str]] = Field(default_factory=dict)
    rows: list[RawRow] = Field(default_factory=list)


class CommitRequest(ImportSchema):
    """Create shipments for a set of rows."""
    rows: list[RawRow] = Field(default_factory=list)
    mapping_final: list[ColumnMapping] = Field(default_factory=list)
    defaults_chosen: dict[str, Optional[str]] = Field(default_factory=dict)
    entity_resolutions: EntityResolutions = Field(default_factory=EntityResolutions)
    dedupe_check: bool = True
    force: bool = False


# ===================
# PREVIEW RESULTS
# ===================

class PreviewRow(ImportSchema):
    row_index: int
    normalized: dict[str, Any]
    errors: dict[str, str] = Field(default_factory=dict)
    warnings: list[RowWarning] = Field(default_factory=list)


class PreviewSummary(ImportSchema):
    total: int
    ok: int
    with_warnings: int
    with_errors: int

    @classmethod
    def from_rows(cls, rows: list[PreviewRow]) -> "PreviewSummary":
        """Rows with errors count as errors even if they also have warnings."""
        with_errors = sum(1 for r in rows if r.errors)
        with_warnings = sum(1 for r in rows if not r.errors and r.warnings)
        return cls(
            total=len(rows),
            ok=len(rows) - with_errors - with_warnings,
            with_warnings=with_warnings,
            with_errors=with_errors,
        )


class PreviewResponse(ImportSchema):
    preview_rows: list[PreviewRow]
    summary: PreviewSummary


# ===================
# COMMIT RESULTS
# ===================

class RowOutcome(ImportSchema):
    """
    Result of one row in one commit attempt.

    A retry produces a new RowOutcome; outcomes are never mutated.
    """
    row_index: int
    status: RowStatus
    shipment_id: Optional[str] = None
    tracking_code: Optional[str] = None
    reason: Optional[str] = None
    warnings: list[RowWarning] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)


class ImportSummary(ImportSchema):
    """
    Aggregate counts for a commit.

    Always derived from the outcome list, never tracked incrementally.
    """
    total: int
    inserted: int
    with_warnings: int
    failed: int
    skipped: int

    @classmethod
    def from_outcomes(cls, outcomes: list[RowOutcome]) -> "ImportSummary":
        return cls(
            total=len(outcomes),
            inserted=sum(1 for o in outcomes if o.status == RowStatus.INSERTED),
            with_warnings=sum(
                1 for o in outcomes
                if o.status == RowStatus.INSERTED and o.warnings
            ),
            failed=sum(1 for o in outcomes if o.status == RowStatus.FAILED),
            skipped=sum(1 for o in outcomes if o.status == RowStatus.SKIPPED_DUPLICATE),
        )


class CommitResponse(ImportSchema):
    run_id: str
    parent_run_id: Optional[str] = None
    created_at: datetime
    cancelled: bool = False
    summary: ImportSummary
    results: list[RowOutcome]
