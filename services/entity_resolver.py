"""
Entity resolver for agencies and service types.

Resolution is exact (case-insensitive) only. Fuzzy agency candidates are
offered separately through suggest_agencies() and are never applied
automatically.
"""

from typing import Optional
import structlog
from rapidfuzz.distance import Levenshtein

from config import settings
from models.import_mapping import NormalizedRow
from models.import_result import AGENCY_ORG_KEY, EntityResolutions, RowWarning
from models.lookup import Agency, LookupIndex
from models.resolution import ResolvedReferences

logger = structlog.get_logger(__name__)

SERVICE_TYPE_KEY = "service_type"


def resolve_agency(
    agency_name: Optional[str],
    lookup: LookupIndex,
    resolutions: Optional[EntityResolutions] = None,
    default_agency_id: Optional[str] = None,
) -> tuple[Optional[str], Optional[RowWarning]]:
    """
    Resolve a raw agency name to an agency id.

    A manual resolution for the exact raw string wins unconditionally,
    including an explicit None ("no agency").

    Returns:
        (agency_id, warning). The warning names the unmatched text.
    """
    if not agency_name:
        return default_agency_id, None

    if resolutions is not None and agency_name in resolutions.agencies:
        return resolutions.agencies[agency_name], None

    agency = lookup.agencies_by_name.get(agency_name.upper())
    if agency is not None:
        return agency.id, None

    return default_agency_id, RowWarning(
        field="agency_name",
        message=f'Agency "{agency_name}" not found'
    )


def resolve_service_type(code: Optional[str], lookup: LookupIndex) -> Optional[str]:
    """Exact code, then case-insensitive. Unknown codes resolve to None."""
    if not code:
        return None

    exact = lookup.service_types_by_code.get(code)
    if exact is not None:
        return exact.id

    lowered = code.lower()
    for service_type in lookup.service_types:
        if service_type.code.lower() == lowered:
            return service_type.id

    return None


def resolve_references(
    row: NormalizedRow,
    lookup: LookupIndex,
    defaults: Optional[dict[str, str]] = None,
    resolutions: Optional[EntityResolutions] = None,
) -> ResolvedReferences:
    """
    Resolve the agency and service type of a row.

    Args:
        row: Normalized row
        lookup: Catalog snapshot for the run
        defaults: defaults_chosen; agencia_org_id and service_type are used
        resolutions: Manual agency resolutions chosen by a reviewer

    Returns:
        ResolvedReferences with optional ids and agency warnings
    """
    defaults = defaults or {}
    result = ResolvedReferences()

    agency_id, warning = resolve_agency(
        row.agency_name,
        lookup,
        resolutions,
        default_agency_id=defaults.get(AGENCY_ORG_KEY) or None,
    )
    result.agency_id = agency_id
    if warning is not None:
        result.warnings.append(warning)

    result.service_type_id = resolve_service_type(
        row.service_type or defaults.get(SERVICE_TYPE_KEY),
        lookup
    )

    return result


def suggest_agencies(
    name: str,
    lookup: LookupIndex,
    limit: Optional[int] = None,
    max_distance: Optional[int] = None,
) -> list[Agency]:
    """
    Propose agencies a reviewer might mean by name.

    A candidate either contains the text (or is contained in it) or is
    within max_distance edits of it. Containment hits come first, then
    closer edit distances.

    Args:
        name: Raw agency text from the spreadsheet
        lookup: Catalog snapshot
        limit: Max candidates (default from settings)
        max_distance: Levenshtein ceiling (default from settings)

    Returns:
        Up to limit agencies, best first
    """
    limit = limit if limit is not None else settings.agency_suggestion_limit
    max_distance = max_distance if max_distance is not None else settings.agency_max_edit_distance

    needle = (name or "").strip().lower()
    if not needle:
        return []

    scored: list[tuple[int, int, Agency]] = []
    for position, agency in enumerate(lookup.agencies):
        candidate = agency.name.lower()
        if needle in candidate or candidate in needle:
            scored.append((0, position, agency))
            continue
        distance = Levenshtein.distance(needle, candidate, score_cutoff=max_distance)
        if distance <= max_distance:
            scored.append((distance, position, agency))

    scored.sort(key=lambda item: (item[0], item[1]))
    suggestions = [agency for _, _, agency in scored[:limit]]

    logger.debug("agency_suggestions", name=name, count=len(suggestions))
    return suggestions
