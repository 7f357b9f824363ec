"""
Shipment creation service.

Builds the insert payload for an imported row and creates the shipment
together with its packages through the create_shipment_with_packages
RPC, which writes both in one transaction.
"""

import secrets
import string
from typing import Any, Optional
import structlog

from config import get_supabase_client, settings
from exceptions import DatabaseError
from models.import_mapping import NormalizedRow
from models.import_result import COURIER_ORG_KEY
from models.lookup import LookupIndex
from models.resolution import ResolvedLocation, ResolvedReferences

logger = structlog.get_logger(__name__)

TRACKING_CODE_ALPHABET = string.ascii_uppercase + string.digits
TRACKING_CODE_LENGTH = 8
INITIAL_STATUS = "pendiente"


def generate_tracking_code() -> str:
    """Prefix plus 8 random uppercase letters/digits, e.g. DUY-7K2M9QXA."""
    suffix = "".join(secrets.choice(TRACKING_CODE_ALPHABET) for _ in range(TRACKING_CODE_LENGTH))
    return f"{settings.tracking_code_prefix}{suffix}"


def build_shipment_payload(
    sender_org_id: str,
    row: NormalizedRow,
    location: ResolvedLocation,
    references: ResolvedReferences,
    lookup: LookupIndex,
    defaults: Optional[dict[str, str]] = None,
) -> tuple[dict[str, Any], list[dict[str, Any]]]:
    """
    Build the shipment and package rows for one resolved import row.

    Returns:
        (shipment_data, packages). Always one package per row.
    """
    defaults = defaults or {}
    package_size = row.package_size or defaults.get("package_size") or settings.default_package_size

    if location.department_id is not None:
        recipient_department = lookup.department_name(location.department_id)
    else:
        recipient_department = row.department_name

    if location.locality_id is not None:
        recipient_city = lookup.locality_name(location.locality_id)
    else:
        recipient_city = location.locality_manual or row.locality_name

    shipment = {
        "tracking_code": generate_tracking_code(),
        "remitente_org_id": sender_org_id,
        "cadeteria_org_id": defaults.get(COURIER_ORG_KEY) or None,
        "agencia_org_id": references.agency_id,
        "service_type_id": references.service_type_id,
        "status": INITIAL_STATUS,
        "recipient_name": row.recipient_name,
        "recipient_phone": row.recipient_phone,
        "recipient_email": row.recipient_email,
        "recipient_address": row.recipient_address,
        "department_id": location.department_id,
        "locality_id": location.locality_id,
        "locality_manual": None if location.locality_id is not None else location.locality_manual,
        "recipient_department": recipient_department,
        "recipient_city": recipient_city,
        "delivery_type": location.delivery_type.value,
        "package_size": package_size,
        "package_count": 1,
        "weight_kg": row.weight_kg,
        "description": row.content_description,
        "notes": row.notes,
        "shipping_cost": row.shipping_cost,
        "is_freight_paid": row.is_freight_paid is True,
        "freight_amount": row.freight_amount,
        "recipient_observations": row.observations,
    }

    packages = [{
        "index": 1,
        "size": package_size,
        "weight_kg": row.weight_kg,
        "shipping_cost": row.shipping_cost,
        "content_description": row.content_description,
    }]

    return shipment, packages


class ShipmentCreateService:
    """Atomic shipment + packages writer."""

    def __init__(self):
        self.db = get_supabase_client()
        self.rpc_name = "create_shipment_with_packages"

    def create_shipment(
        self,
        shipment_data: dict[str, Any],
        packages: list[dict[str, Any]],
    ) -> dict[str, str]:
        """
        Create one shipment and its packages.

        Args:
            shipment_data: Shipment columns
            packages: Package rows (at least one)

        Returns:
            {"id": ..., "tracking_code": ...} as returned by the RPC

        Raises:
            DatabaseError: If the RPC fails or returns nothing
        """
        shipment_data = {**shipment_data, "package_count": len(packages)}

        try:
            result = self.db.rpc(
                self.rpc_name,
                {
                    "p_shipment_data": shipment_data,
                    "p_packages_data": packages,
                }
            ).execute()
        except Exception as e:
            logger.error(
                "create_shipment_failed",
                tracking_code=shipment_data.get("tracking_code"),
                error=str(e)
            )
            raise DatabaseError("insert", str(e))

        data = result.data
        if isinstance(data, list):
            data = data[0] if data else None

        if not data or not data.get("id"):
            raise DatabaseError("insert", "create_shipment_with_packages returned no shipment")

        logger.debug("shipment_created", shipment_id=data["id"], tracking_code=data.get("tracking_code"))

        return {"id": data["id"], "tracking_code": data.get("tracking_code")}


# Singleton instance
_shipment_create_service: Optional[ShipmentCreateService] = None


def get_shipment_create_service() -> ShipmentCreateService:
    """Get or create ShipmentCreateService instance."""
    global _shipment_create_service
    if _shipment_create_service is None:
        _shipment_create_service = ShipmentCreateService()
    return _shipment_create_service
