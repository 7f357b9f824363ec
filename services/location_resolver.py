"""
Location resolver.

Turns the department/locality/address values of a normalized row into
catalog ids, in a fixed priority order:

1. Inference from the free-text address (only when neither department
   nor locality was given).
2. Explicit department value (always overrides step 1).
3. Explicit locality value (always overrides step 1).
4. Locality invariant: exactly one of locality_id / locality_manual.
5. Informational "no department" warning.

Unresolvable values become warnings; only a missing locality is an error.
"""

from typing import Callable, Optional
import structlog

from models.import_mapping import DeliveryType, NormalizedRow
from models.import_result import RowWarning
from models.lookup import Department, Locality, LookupIndex
from models.resolution import InferenceResult, ResolvedLocation
from services.location_inference import infer_location
from services.row_normalizer import parse_delivery_type
from utils.text_utils import normalize_name

logger = structlog.get_logger(__name__)

InferFn = Callable[[str, LookupIndex], InferenceResult]

LOCALITY_REQUIRED_ERROR = "locality_required"


def _partial_department(raw: str, lookup: LookupIndex) -> Optional[Department]:
    """First department whose name contains, or is contained in, raw."""
    needle = normalize_name(raw)
    if not needle:
        return None
    for dept in lookup.departments:
        name = normalize_name(dept.name)
        if name and (needle in name or name in needle):
            return dept
    return None


def _partial_locality(raw: str, lookup: LookupIndex) -> Optional[Locality]:
    """First locality whose name contains, or is contained in, raw."""
    needle = normalize_name(raw)
    if not needle:
        return None
    for loc in lookup.localities:
        name = normalize_name(loc.name)
        if name and (needle in name or name in needle):
            return loc
    return None


class LocationResolver:
    """
    Resolves department and locality references for one row at a time.

    Stateless apart from the injected inference function, so one instance
    can serve a whole run.
    """

    def __init__(self, infer: Optional[InferFn] = None):
        self.infer = infer or infer_location

    def resolve(
        self,
        row: NormalizedRow,
        lookup: LookupIndex,
        default_delivery_type: Optional[str] = None,
    ) -> ResolvedLocation:
        """
        Resolve a row's location.

        Args:
            row: Normalized row
            lookup: Catalog snapshot for the run
            default_delivery_type: defaults_chosen["delivery_type"], if any

        Returns:
            ResolvedLocation. When no locality could be determined,
            errors["locality_required"] is set and the row must not be
            written.
        """
        result = ResolvedLocation()
        inferred_delivery: Optional[DeliveryType] = None

        department_raw = row.department_name
        locality_raw = row.locality_name

        # 1. Inference from address when no explicit location was given
        if not department_raw and not locality_raw and row.recipient_address:
            inferred = self._safe_infer(row.recipient_address, lookup)
            if inferred is not None:
                result.department_id = inferred.department_id
                result.locality_id = inferred.locality_id
                result.locality_manual = inferred.locality_manual
                inferred_delivery = inferred.delivery_type
                for warning in inferred.warnings:
                    result.warnings.append(RowWarning(
                        field="recipient_address",
                        message=f"Inference: {warning}"
                    ))

        # 2. Explicit department
        if department_raw:
            self._resolve_department(department_raw, lookup, result)

        # 3. Explicit locality
        if locality_raw:
            self._resolve_locality(locality_raw, lookup, result)

        # 4. Invariant: exactly one of locality_id / locality_manual
        if result.locality_id is None and not result.locality_manual:
            result.locality_manual = None
            result.errors[LOCALITY_REQUIRED_ERROR] = "A valid or manual locality is required"
        elif result.locality_id is not None and result.locality_manual:
            result.locality_manual = None

        # 5. Backfill department from the resolved locality
        if result.department_id is None and result.locality_id is not None:
            locality = lookup.localities_by_id.get(result.locality_id)
            if locality is not None:
                result.department_id = locality.department_id

        if result.department_id is None and result.locality_id is None:
            result.warnings.append(RowWarning(field="department_name", message="No department"))

        result.delivery_type = (
            row.delivery_type
            or inferred_delivery
            or parse_delivery_type(default_delivery_type)
            or DeliveryType.DOMICILIO
        )

        return result

    # ===================
    # STEPS
    # ===================

    def _safe_infer(self, address: str, lookup: LookupIndex) -> Optional[InferenceResult]:
        """Inference is best effort: failures mean "no information"."""
        try:
            return self.infer(address, lookup)
        except Exception as e:
            logger.warning(
                "location_inference_failed",
                error=str(e),
                error_type=type(e).__name__
            )
            return None

    def _resolve_department(self, raw: str, lookup: LookupIndex, result: ResolvedLocation) -> None:
        exact = lookup.departments_by_name.get(raw.upper())
        if exact is not None:
            result.department_id = exact.id
            return

        partial = _partial_department(raw, lookup)
        if partial is not None:
            result.department_id = partial.id
            result.warnings.append(RowWarning(
                field="department_name",
                message=f'"{raw}" → "{partial.name}" (partial match)'
            ))
            return

        # Explicit but unknown: drop anything inferred rather than keep a guess
        result.department_id = None
        result.warnings.append(RowWarning(
            field="department_name",
            message=f'Department "{raw}" not found'
        ))

    def _resolve_locality(self, raw: str, lookup: LookupIndex, result: ResolvedLocation) -> None:
        # Explicit column overrides whatever inference produced
        result.locality_id = None
        result.locality_manual = None

        matches = lookup.localities_by_name.get(raw.upper(), ())

        if len(matches) == 1:
            locality = matches[0]
            result.locality_id = locality.id
            if result.department_id is None:
                result.department_id = locality.department_id
            elif result.department_id != locality.department_id:
                result.warnings.append(RowWarning(
                    field="locality_name",
                    message=f'Locality "{raw}" does not belong to the given department'
                ))
            return

        if len(matches) > 1:
            if result.department_id is not None:
                in_department = [l for l in matches if l.department_id == result.department_id]
                if len(in_department) == 1:
                    result.locality_id = in_department[0].id
                    return
                result.locality_manual = raw
                result.warnings.append(RowWarning(
                    field="locality_name",
                    message=f'Locality "{raw}" is ambiguous ({len(matches)} matches). Using it as manual locality.'
                ))
            else:
                result.locality_manual = raw
                result.warnings.append(RowWarning(
                    field="locality_name",
                    message=f'Locality "{raw}" is ambiguous without a department. Using it as manual locality.'
                ))
            return

        partial = _partial_locality(raw, lookup)
        if partial is not None:
            result.locality_id = partial.id
            if result.department_id is None:
                result.department_id = partial.department_id
            result.warnings.append(RowWarning(
                field="locality_name",
                message=f'"{raw}" → "{partial.name}" (partial match)'
            ))
            return

        result.locality_manual = raw
        result.warnings.append(RowWarning(
            field="locality_name",
            message=f'Locality "{raw}" not found. Using it as manual locality.'
        ))
