"""
Import template service.

Saves the mapping and defaults used for a header layout and finds them
again for the next upload with the same (or a similar) layout.

Signatures:
    header_signature         SHA-256 of normalized headers, in order
    header_signature_sorted  SHA-256 of non-empty normalized headers, sorted
"""

import hashlib
from datetime import datetime, timezone
from typing import Any, Optional
import structlog
from pydantic import ValidationError as PydanticValidationError

from config import get_supabase_client, settings
from exceptions import ConflictError, DatabaseError, ImportTemplateNotFoundError
from models.import_mapping import ColumnMapping
from models.template import (
    ImportTemplate,
    TemplateMatchResult,
    TemplateMatchType,
    TemplateSaveRequest,
    TemplateSuggestion,
    TemplateUpdateRequest,
)
from utils.text_utils import normalize_header

logger = structlog.get_logger(__name__)

SIGNATURE_SEPARATOR = "|"
UNIQUE_VIOLATION = "23505"


# ===================
# SIGNATURES
# ===================

def normalize_headers(headers: list[str]) -> list[str]:
    return [normalize_header(h) for h in headers]


def compute_header_signature(headers: list[str]) -> str:
    """Order-sensitive signature of a header row."""
    joined = SIGNATURE_SEPARATOR.join(normalize_headers(headers))
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


def compute_header_signature_sorted(headers: list[str]) -> str:
    """Order-insensitive signature; empty headers are ignored."""
    normalized = sorted(h for h in normalize_headers(headers) if h)
    joined = SIGNATURE_SEPARATOR.join(normalized)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


def score_template_match(template_headers: list[str], headers: list[str]) -> float:
    """
    Jaccard similarity between a template's normalized headers and a
    header row (normalized here).

    Returns:
        0.0 to 1.0
    """
    template_set = set(template_headers)
    current_set = set(normalize_headers(headers))
    union = template_set | current_set
    if not union:
        return 0.0
    return len(template_set & current_set) / len(union)


class TemplateService:
    """
    Import template persistence and matching.

    Templates are scoped to an organization and only deleted on explicit
    request.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "import_templates"

    # ===================
    # MATCHING
    # ===================

    def match(self, org_id: str, headers: list[str]) -> TemplateMatchResult:
        """
        Find the template for a header row.

        exact: same headers in the same order.
        sorted_fallback: same headers, different order.
        Otherwise up to template_suggestion_limit suggestions scoring above
        template_suggestion_threshold, best first. Nothing is applied.

        Args:
            org_id: Owning organization
            headers: Header row of the uploaded sheet

        Returns:
            TemplateMatchResult

        Raises:
            DatabaseError: If the query fails
        """
        signature = compute_header_signature(headers)
        signature_sorted = compute_header_signature_sorted(headers)

        templates = self.list_for_org(org_id)

        exact = next((t for t in templates if t.header_signature == signature), None)
        if exact is not None:
            logger.info("template_match_exact", org_id=org_id, template_id=exact.id)
            return TemplateMatchResult(
                match_type=TemplateMatchType.EXACT,
                template=exact,
                header_signature=signature,
                header_signature_sorted=signature_sorted,
            )

        reordered = next((t for t in templates if t.header_signature_sorted == signature_sorted), None)
        if reordered is not None:
            logger.info("template_match_sorted_fallback", org_id=org_id, template_id=reordered.id)
            return TemplateMatchResult(
                match_type=TemplateMatchType.SORTED_FALLBACK,
                template=reordered,
                header_signature=signature,
                header_signature_sorted=signature_sorted,
            )

        scored = [
            TemplateSuggestion(template=t, score=score_template_match(t.normalized_headers, headers))
            for t in templates
        ]
        suggestions = sorted(
            (s for s in scored if s.score > settings.template_suggestion_threshold),
            key=lambda s: s.score,
            reverse=True
        )[:settings.template_suggestion_limit]

        logger.info("template_match_none", org_id=org_id, suggestions=len(suggestions))

        return TemplateMatchResult(
            match_type=TemplateMatchType.NONE,
            suggestions=suggestions,
            header_signature=signature,
            header_signature_sorted=signature_sorted,
        )

    # ===================
    # READ
    # ===================

    def list_for_org(self, org_id: str) -> list[ImportTemplate]:
        """All templates of an organization, most recently updated first."""
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("org_id", org_id)
                .order("updated_at", desc=True)
                .execute()
            )
        except Exception as e:
            logger.error("list_templates_failed", org_id=org_id, error=str(e))
            raise DatabaseError("select", str(e))

        return [self._row_to_template(row) for row in result.data or []]

    def get(self, template_id: str) -> ImportTemplate:
        """
        Raises:
            ImportTemplateNotFoundError: If no template has this id
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", template_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("get_template_failed", template_id=template_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise ImportTemplateNotFoundError(template_id)

        return self._row_to_template(result.data[0])

    # ===================
    # WRITE
    # ===================

    def save(self, data: TemplateSaveRequest) -> ImportTemplate:
        """
        Create or replace the template for org + header layout + name.

        Raises:
            DatabaseError: If the upsert fails
        """
        row = {
            "org_id": data.org_id,
            "name": data.name,
            "header_signature": compute_header_signature(data.headers),
            "header_signature_sorted": compute_header_signature_sorted(data.headers),
            "normalized_headers": normalize_headers(data.headers),
            "mapping_json": [m.model_dump(mode="json", by_alias=True) for m in data.mapping],
            "defaults_json": data.defaults,
            "entity_resolutions_json": data.entity_resolutions,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

        logger.info("saving_template", org_id=data.org_id, name=data.name)

        try:
            result = (
                self.db.table(self.table)
                .upsert(row, on_conflict="org_id,header_signature,name")
                .execute()
            )
        except Exception as e:
            logger.error("save_template_failed", org_id=data.org_id, error=str(e))
            raise DatabaseError("upsert", str(e))

        if not result.data:
            raise DatabaseError("upsert", "no template returned")

        template = self._row_to_template(result.data[0])
        logger.info("template_saved", template_id=template.id, org_id=data.org_id)
        return template

    def update(self, template_id: str, data: TemplateUpdateRequest) -> ImportTemplate:
        """
        Update only the provided fields. New headers recompute signatures.

        Raises:
            ImportTemplateNotFoundError: If no template has this id
            ConflictError: If the new layout collides with another template
        """
        updates: dict[str, Any] = {"updated_at": datetime.now(timezone.utc).isoformat()}

        if data.name is not None:
            updates["name"] = data.name
        if data.headers is not None:
            updates["header_signature"] = compute_header_signature(data.headers)
            updates["header_signature_sorted"] = compute_header_signature_sorted(data.headers)
            updates["normalized_headers"] = normalize_headers(data.headers)
        if data.mapping is not None:
            updates["mapping_json"] = [m.model_dump(mode="json", by_alias=True) for m in data.mapping]
        if data.defaults is not None:
            updates["defaults_json"] = data.defaults

        try:
            result = (
                self.db.table(self.table)
                .update(updates)
                .eq("id", template_id)
                .execute()
            )
        except Exception as e:
            if UNIQUE_VIOLATION in str(e):
                raise ConflictError(
                    "Another template with this header structure already exists",
                    code="TEMPLATE_CONFLICT",
                    details={"template_id": template_id}
                )
            logger.error("update_template_failed", template_id=template_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            raise ImportTemplateNotFoundError(template_id)

        logger.info("template_updated", template_id=template_id, fields=sorted(updates))
        return self._row_to_template(result.data[0])

    def delete(self, template_id: str) -> None:
        """
        Raises:
            ImportTemplateNotFoundError: If no template has this id
        """
        try:
            result = self.db.table(self.table).delete().eq("id", template_id).execute()
        except Exception as e:
            logger.error("delete_template_failed", template_id=template_id, error=str(e))
            raise DatabaseError("delete", str(e))

        if not result.data:
            raise ImportTemplateNotFoundError(template_id)

        logger.info("template_deleted", template_id=template_id)

    def _row_to_template(self, row: dict) -> ImportTemplate:
        """Convert database row to ImportTemplate. Unreadable mappings are dropped."""
        mapping: list[ColumnMapping] = []
        for item in row.get("mapping_json") or []:
            try:
                mapping.append(ColumnMapping.model_validate(item))
            except PydanticValidationError:
                logger.warning("template_mapping_skipped", template_id=row.get("id"), item=item)

        return ImportTemplate(
            id=row["id"],
            org_id=row["org_id"],
            name=row.get("name") or "Default",
            header_signature=row["header_signature"],
            header_signature_sorted=row.get("header_signature_sorted") or "",
            normalized_headers=row.get("normalized_headers") or [],
            mapping=mapping,
            defaults=row.get("defaults_json") or {},
            entity_resolutions=row.get("entity_resolutions_json"),
            updated_at=row.get("updated_at"),
        )


# Singleton instance
_template_service: Optional[TemplateService] = None


def get_template_service() -> TemplateService:
    """Get or create TemplateService instance."""
    global _template_service
    if _template_service is None:
        _template_service = TemplateService()
    return _template_service
