"""
Column mapping schemas and the canonical normalized row.

A ColumnMapping says which spreadsheet header feeds which canonical
shipment field. Applying a set of mappings to a raw row yields a
NormalizedRow.
"""

from dataclasses import dataclass, asdict, fields
from enum import Enum
from typing import Optional

from pydantic import Field

from models.base import ImportSchema


# A raw spreadsheet row: header -> cell text (None when absent)
RawRow = dict[str, Optional[str]]


class TargetField(str, Enum):
    """Canonical fields a source column can be mapped onto."""
    RECIPIENT_NAME = "recipient_name"
    RECIPIENT_PHONE = "recipient_phone"
    RECIPIENT_EMAIL = "recipient_email"
    RECIPIENT_ADDRESS = "recipient_address"
    DEPARTMENT_NAME = "department_name"
    LOCALITY_NAME = "locality_name"
    OBSERVATIONS = "observations"
    IS_FREIGHT_PAID = "is_freight_paid"
    FREIGHT_AMOUNT = "freight_amount"
    AGENCY_NAME = "agency_name"
    SERVICE_TYPE = "service_type"
    PACKAGE_SIZE = "package_size"
    DELIVERY_TYPE = "delivery_type"
    WEIGHT_KG = "weight_kg"
    SHIPPING_COST = "shipping_cost"
    CONTENT_DESCRIPTION = "content_description"
    NOTES = "notes"
    IGNORE = "_ignore"


class DeliveryType(str, Enum):
    """How the shipment reaches the recipient."""
    DOMICILIO = "domicilio"  # Door delivery
    SUCURSAL = "sucursal"    # Pickup at agency/branch


# Fields whose values are numbers
NUMERIC_FIELDS = frozenset({
    TargetField.FREIGHT_AMOUNT,
    TargetField.WEIGHT_KG,
    TargetField.SHIPPING_COST,
})


class ColumnMapping(ImportSchema):
    """One spreadsheet header mapped to one canonical field."""

    source_header: str = Field(
        ...,
        min_length=1,
        description="Header exactly as it appears in the spreadsheet"
    )
    target_field: TargetField = Field(
        ...,
        description="Canonical field, or _ignore"
    )
    transform: Optional[str] = Field(
        None,
        description="Optional transform name (trim, upper, lower, title, phone, number, boolean, none)"
    )
    confidence: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Confidence of the suggestion that produced this mapping"
    )


@dataclass
class NormalizedRow:
    """
    A raw row after mapping, transforms and defaults.

    One attribute per canonical field. Created fresh per row per run and
    never persisted as-is.
    """
    recipient_name: Optional[str] = None
    recipient_phone: Optional[str] = None
    recipient_email: Optional[str] = None
    recipient_address: Optional[str] = None
    department_name: Optional[str] = None
    locality_name: Optional[str] = None
    observations: Optional[str] = None
    is_freight_paid: Optional[bool] = None
    freight_amount: Optional[float] = None
    agency_name: Optional[str] = None
    service_type: Optional[str] = None
    package_size: Optional[str] = None
    delivery_type: Optional[DeliveryType] = None
    weight_kg: Optional[float] = None
    shipping_cost: Optional[float] = None
    content_description: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls))

    def to_dict(self) -> dict:
        data = asdict(self)
        if self.delivery_type is not None:
            data["delivery_type"] = self.delivery_type.value
        return data
