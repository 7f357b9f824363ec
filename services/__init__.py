"""
Business logic services.

Each service handles one step of the shipment import.
"""

from services.row_normalizer import normalize_row, apply_mapping, apply_transform
from services.location_inference import infer_location
from services.location_resolver import LocationResolver
from services.entity_resolver import resolve_references, suggest_agencies
from services.lookup_service import LookupService, get_lookup_service
from services.dedup_service import DedupService, DedupGate, get_dedup_service
from services.shipment_create_service import (
    ShipmentCreateService,
    get_shipment_create_service,
    build_shipment_payload,
    generate_tracking_code,
)
from services.import_service import ImportService, get_import_service
from services.template_service import TemplateService, get_template_service
from services.mapping_suggestion_service import suggest_mapping

__all__ = [
    "normalize_row",
    "apply_mapping",
    "apply_transform",
    "infer_location",
    "LocationResolver",
    "resolve_references",
    "suggest_agencies",
    "LookupService",
    "get_lookup_service",
    "DedupService",
    "DedupGate",
    "get_dedup_service",
    "ShipmentCreateService",
    "get_shipment_create_service",
    "build_shipment_payload",
    "generate_tracking_code",
    "ImportService",
    "get_import_service",
    "TemplateService",
    "get_template_service",
    "suggest_mapping",
]
