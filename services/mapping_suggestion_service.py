"""
Column mapping suggestions from header text.

Pattern matching over header names (Spanish and English). Every header
gets exactly one suggestion, _ignore when nothing matches. Suggestions
are only a starting point for the reviewer.
"""

import re
from typing import Optional
import structlog

from models.import_mapping import ColumnMapping, RawRow, TargetField
from models.spreadsheet import MappingSuggestion
from utils.text_utils import strip_accents

logger = structlog.get_logger(__name__)

# (pattern, target, confidence). First match wins.
HEADER_PATTERNS: list[tuple[re.Pattern, TargetField, float]] = [
    (re.compile(r'nombre|destinatario|cliente|receptor|recipient'), TargetField.RECIPIENT_NAME, 0.8),
    (re.compile(r'direccion|calle|domicilio|address'), TargetField.RECIPIENT_ADDRESS, 0.8),
    (re.compile(r'telef|tel\b|cel|movil|phone|mobile'), TargetField.RECIPIENT_PHONE, 0.8),
    (re.compile(r'email|correo|mail'), TargetField.RECIPIENT_EMAIL, 0.8),
    (re.compile(r'departamento|depto|provincia|department'), TargetField.DEPARTMENT_NAME, 0.8),
    (re.compile(r'localidad|ciudad|city|pueblo'), TargetField.LOCALITY_NAME, 0.8),
    (re.compile(r'obs|observaciones'), TargetField.OBSERVATIONS, 0.6),
    (re.compile(r'notas|nota\b|comentario|notes'), TargetField.NOTES, 0.6),
    (re.compile(r'flete|pago|pagar|freight'), TargetField.IS_FREIGHT_PAID, 0.7),
    (re.compile(r'monto|precio|costo|cost|price'), TargetField.SHIPPING_COST, 0.6),
    (re.compile(r'valor|importe'), TargetField.FREIGHT_AMOUNT, 0.6),
    (re.compile(r'medidas|tamano|dimensiones|size'), TargetField.PACKAGE_SIZE, 0.6),
    (re.compile(r'peso|kilo|kg|weight'), TargetField.WEIGHT_KG, 0.6),
    (re.compile(r'contenido|descri'), TargetField.CONTENT_DESCRIPTION, 0.6),
    (re.compile(r'agencia|transporte|courier'), TargetField.AGENCY_NAME, 0.6),
    (re.compile(r'entrega|retiro|delivery'), TargetField.DELIVERY_TYPE, 0.5),
    (re.compile(r'servicio|tipo|service'), TargetField.SERVICE_TYPE, 0.6),
]

IGNORE_CONFIDENCE = 0.1

AGENCY_HEADER = re.compile(r'agencia|transporte|courier')
FREIGHT_PAID_HEADER = re.compile(r'flete|freight')
ADDRESS_HEADER = re.compile(r'direccion|address')
AGENCIA_KEYWORD = re.compile(r'agencia', re.IGNORECASE)

AGENCY_SERVICE_CODE = "despacho_agencia"
SIGNAL_THRESHOLD = 0.5


def _normalize(header: str) -> str:
    return strip_accents(header.lower().strip())


def suggest_target(header: str) -> tuple[TargetField, float]:
    """Best target field for one header, with confidence."""
    normalized = _normalize(header)
    for pattern, target, confidence in HEADER_PATTERNS:
        if pattern.search(normalized):
            return target, confidence
    return TargetField.IGNORE, IGNORE_CONFIDENCE


def detect_agency_service(headers: list[str], sample_rows: list[RawRow]) -> tuple[float, list[str]]:
    """
    Score how likely the sheet is an agency dispatch import.

    Signals: an agency column (+0.5), addresses mentioning "Agencia" in
    more than half of the sample (+0.3), a freight-paid column (+0.2, or
    +0.3 when it is the only signal).

    Returns:
        (confidence capped at 1.0, human-readable reasons)
    """
    normalized = [_normalize(h) for h in headers]
    confidence = 0.0
    reasons: list[str] = []

    if any(AGENCY_HEADER.search(h) for h in normalized):
        confidence += 0.5
        reasons.append("Agency/transport column detected")

    address_headers = [h for h, n in zip(headers, normalized) if ADDRESS_HEADER.search(n)]
    if address_headers and sample_rows:
        column = address_headers[0]
        values = [str(r.get(column) or "").strip() for r in sample_rows]
        values = [v for v in values if v]
        if values:
            with_keyword = sum(1 for v in values if AGENCIA_KEYWORD.search(v))
            if with_keyword / len(values) > 0.5:
                confidence += 0.3
                reasons.append('More than 50% of addresses mention "Agencia"')

    if any(FREIGHT_PAID_HEADER.search(h) for h in normalized):
        confidence += 0.2 if confidence > 0 else 0.3
        reasons.append("Freight-paid column detected")

    return min(confidence, 1.0), reasons


def suggest_mapping(headers: list[str], sample_rows: Optional[list[RawRow]] = None) -> MappingSuggestion:
    """
    Suggest a mapping for every header.

    Args:
        headers: Header row exactly as parsed
        sample_rows: A few data rows, used for service-type signals

    Returns:
        MappingSuggestion with one ColumnMapping per header
    """
    sample_rows = sample_rows or []

    mappings = []
    for header in headers:
        if not header:
            continue
        target, confidence = suggest_target(header)
        mappings.append(ColumnMapping(
            source_header=header,
            target_field=target,
            confidence=confidence,
        ))

    notes = ["Generated using header pattern matching"]
    defaults_suggested: dict[str, str] = {}

    confidence, reasons = detect_agency_service(headers, sample_rows)
    if confidence >= SIGNAL_THRESHOLD:
        defaults_suggested["service_type"] = AGENCY_SERVICE_CODE
        notes.extend(reasons)

    logger.info(
        "mapping_suggested",
        headers=len(headers),
        mapped=sum(1 for m in mappings if m.target_field != TargetField.IGNORE),
        agency_signal=confidence
    )

    return MappingSuggestion(
        mappings=mappings,
        defaults_suggested=defaults_suggested,
        notes=notes,
    )
