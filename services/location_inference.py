"""
Location inference from free-text addresses.

Senders often put everything into a single address cell:
"Maldonado - La Capuera - Agencia". This module extracts the department,
locality and delivery type from that text. Pure function, no I/O.
"""

import re

from models.import_mapping import DeliveryType
from models.lookup import LookupIndex
from models.resolution import InferenceResult
from utils.text_utils import normalize_name, to_title_case

SEGMENT_SEPARATORS = re.compile(r'\s*[-–—,]\s*')
PICKUP_KEYWORDS = re.compile(r'^(agencia|sucursal|retiro|pickup|pick up)$', re.IGNORECASE)

WARNING_LOCALITY_MANUAL = "locality_inferred_manual"
WARNING_DEPARTMENT_NOT_FOUND = "department_not_found"


def infer_location(address: str, lookup: LookupIndex) -> InferenceResult:
    """
    Infer department, locality and delivery type from an address.

    Expected shape is "Department - Locality - ...". Comparison ignores
    case and accents.

    Rules:
    - A trailing "Agencia"/"Sucursal"/"Retiro"/"Pickup" segment means
      pickup delivery (sucursal) and is dropped before matching.
    - The first segment must be a department name.
    - The second segment is looked up among that department's
      localities; if unknown it becomes a manual locality.
    - With only a department, its same-named capital is used, or the
      department name as manual locality.

    Args:
        address: Free-text address cell
        lookup: Catalog snapshot for the run

    Returns:
        InferenceResult (empty when nothing could be inferred)
    """
    result = InferenceResult()
    if not address or not address.strip():
        return result

    parts = [p for p in SEGMENT_SEPARATORS.split(normalize_name(address)) if p]
    if not parts:
        return result

    if PICKUP_KEYWORDS.match(parts[-1]):
        result.delivery_type = DeliveryType.SUCURSAL
        parts.pop()

    if not parts:
        return result  # Address was just "Agencia"

    candidate_department = parts[0]
    department = next(
        (d for d in lookup.departments if normalize_name(d.name) == candidate_department),
        None
    )

    if department is None:
        result.warnings.append(WARNING_DEPARTMENT_NOT_FOUND)
        return result

    result.department_id = department.id
    result.confidence = 0.5
    department_localities = lookup.localities_by_department.get(department.id, ())

    if len(parts) >= 2:
        candidate_locality = parts[1]
        locality = next(
            (l for l in department_localities if normalize_name(l.name) == candidate_locality),
            None
        )
        if locality is not None:
            result.locality_id = locality.id
            result.confidence = 1.0
        elif not PICKUP_KEYWORDS.match(candidate_locality):
            result.locality_manual = to_title_case(candidate_locality)
            result.warnings.append(WARNING_LOCALITY_MANUAL)
    else:
        capital = next(
            (l for l in department_localities if normalize_name(l.name) == normalize_name(department.name)),
            None
        )
        if capital is not None:
            result.locality_id = capital.id
            result.confidence = 0.8
        else:
            result.locality_manual = department.name
            result.warnings.append(WARNING_LOCALITY_MANUAL)

    return result
