"""
Intermediate results produced while resolving a normalized row.
"""

from dataclasses import dataclass, field
from typing import Optional

from models.import_mapping import DeliveryType
from models.import_result import RowWarning


@dataclass
class InferenceResult:
    """What free-text address inference could determine."""
    department_id: Optional[int] = None
    locality_id: Optional[int] = None
    locality_manual: Optional[str] = None
    delivery_type: Optional[DeliveryType] = None
    confidence: float = 0.0
    warnings: list[str] = field(default_factory=list)


@dataclass
class ResolvedLocation:
    """
    Department/locality resolution for one row.

    Valid when exactly one of locality_id / locality_manual is set.
    Violations are reported in errors, never raised.
    """
    department_id: Optional[int] = None
    locality_id: Optional[int] = None
    locality_manual: Optional[str] = None
    delivery_type: DeliveryType = DeliveryType.DOMICILIO
    warnings: list[RowWarning] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return (self.locality_id is None) != (self.locality_manual is None)


@dataclass
class ResolvedReferences:
    """Agency and service type ids, each independently optional."""
    agency_id: Optional[str] = None
    service_type_id: Optional[str] = None
    warnings: list[RowWarning] = field(default_factory=list)


@dataclass
class DuplicateCheckResult:
    """Answer from the duplicate-detection collaborator."""
    is_duplicate: bool
    shipment_id: Optional[str] = None
    reason: Optional[str] = None
