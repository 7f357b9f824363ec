"""
Row normalizer.

Applies a column mapping to a raw spreadsheet row and back-fills empty
fields from the import defaults. Pure: no I/O, never raises. Malformed
cells become None and are dealt with during resolution.
"""

import math
import re
from typing import Callable, Optional, Union

from models.import_mapping import (
    ColumnMapping,
    DeliveryType,
    NormalizedRow,
    NUMERIC_FIELDS,
    RawRow,
    TargetField,
)
from models.import_result import IMPORT_SCOPE_KEYS, LATE_DEFAULT_KEYS

Value = Union[str, float, bool, DeliveryType, None]

FREIGHT_PAID_TRUE = re.compile(r'^(flete\s*pago|pago|si|sí|1|true|yes)$', re.IGNORECASE)
FREIGHT_PAID_FALSE = re.compile(r'^(no|0|false|flete\s*no\s*pago)$', re.IGNORECASE)

DELIVERY_SUCURSAL = re.compile(r'^(sucursal|agencia|retiro|pickup|pick\s*up|retira\s+en\s+agencia)$', re.IGNORECASE)
DELIVERY_DOMICILIO = re.compile(r'^(domicilio|a\s+domicilio|puerta|entrega|env[ií]o\s+a\s+domicilio)$', re.IGNORECASE)

_PHONE_NOISE = re.compile(r'[\s\-.()+]')
_NUMBER_TOKEN = re.compile(r'^[+-]?\d[\d.,]*')


# ===================
# VALUE PARSERS
# ===================

def trim_value(value: Optional[str]) -> Optional[str]:
    """Strip whitespace; empty becomes None."""
    if value is None:
        return None
    trimmed = str(value).strip()
    return trimmed or None


def parse_freight_paid(value: Optional[str]) -> Optional[bool]:
    """
    Parse a freight-paid cell.

    "Flete pago", "si", "1" → True; "no", "0" → False; anything else → None.
    """
    trimmed = trim_value(value)
    if trimmed is None:
        return None
    if FREIGHT_PAID_TRUE.match(trimmed):
        return True
    if FREIGHT_PAID_FALSE.match(trimmed):
        return False
    return None


def parse_number(value: Optional[str]) -> Optional[float]:
    """
    Parse the leading number of a cell.

    - "12,5" → 12.5 (decimal comma)
    - "2 kg" → 2.0 (trailing unit ignored)
    - "1.234,56" / "1,234.56" → 1234.56 (last separator is the decimal one)
    - "NaN", "inf", "n/a" → None
    """
    trimmed = trim_value(value)
    if trimmed is None:
        return None

    match = _NUMBER_TOKEN.match(trimmed)
    if not match:
        return None
    token = match.group(0).rstrip('.,')

    if ',' in token and '.' in token:
        decimal = ',' if token.rfind(',') > token.rfind('.') else '.'
        thousands = '.' if decimal == ',' else ','
        token = token.replace(thousands, '').replace(decimal, '.')
    elif token.count(',') > 1 or token.count('.') > 1:
        token = token.replace(',', '').replace('.', '')
    else:
        token = token.replace(',', '.')

    try:
        number = float(token)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def normalize_phone(value: Optional[str]) -> Optional[str]:
    """Remove spaces, dashes, dots, parentheses and plus signs."""
    trimmed = trim_value(value)
    if trimmed is None:
        return None
    return _PHONE_NOISE.sub('', trimmed) or None


def parse_delivery_type(value: Optional[str]) -> Optional[DeliveryType]:
    trimmed = trim_value(value)
    if trimmed is None:
        return None
    if DELIVERY_SUCURSAL.match(trimmed):
        return DeliveryType.SUCURSAL
    if DELIVERY_DOMICILIO.match(trimmed):
        return DeliveryType.DOMICILIO
    return None


def _title(value: Optional[str]) -> Optional[str]:
    trimmed = trim_value(value)
    return trimmed.title() if trimmed else None


def _upper(value: Optional[str]) -> Optional[str]:
    trimmed = trim_value(value)
    return trimmed.upper() if trimmed else None


def _lower(value: Optional[str]) -> Optional[str]:
    trimmed = trim_value(value)
    return trimmed.lower() if trimmed else None


# Explicit transforms a mapping can request
TRANSFORMS: dict[str, Callable[[Optional[str]], Value]] = {
    "trim": trim_value,
    "upper": _upper,
    "lower": _lower,
    "title": _title,
    "phone": normalize_phone,
    "number": parse_number,
    "parse-number": parse_number,
    "boolean": parse_freight_paid,
    "parse-boolean": parse_freight_paid,
}


def _default_transform(target: TargetField) -> Callable[[Optional[str]], Value]:
    if target == TargetField.IS_FREIGHT_PAID:
        return parse_freight_paid
    if target == TargetField.RECIPIENT_PHONE:
        return normalize_phone
    if target == TargetField.DELIVERY_TYPE:
        return parse_delivery_type
    if target in NUMERIC_FIELDS:
        return parse_number
    return trim_value


def apply_transform(value: Optional[str], target: TargetField, transform: Optional[str] = None) -> Value:
    """
    Convert a raw cell into the target field's type.

    An explicit transform wins when it is known and yields a value of the
    right kind for the field; otherwise the field's own transform is used.
    """
    if transform and transform.lower() != "none":
        fn = TRANSFORMS.get(transform.lower())
        if fn is not None:
            result = fn(value)
            if _fits(result, target):
                return result
    return _default_transform(target)(value)


def _fits(value: Value, target: TargetField) -> bool:
    """Whether a transformed value has the type the target field holds."""
    if value is None:
        return True
    if target == TargetField.IS_FREIGHT_PAID:
        return isinstance(value, bool)
    if target in NUMERIC_FIELDS:
        return isinstance(value, float)
    if target == TargetField.DELIVERY_TYPE:
        return False  # always parsed to the enum
    return isinstance(value, str)


def _is_empty(value: Value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# ===================
# NORMALIZATION
# ===================

def apply_mapping(row: RawRow, mappings: list[ColumnMapping]) -> dict[str, Value]:
    """
    Apply each mapping to the row. Later mappings to the same target win.

    _ignore mappings are skipped; headers missing from the row read as
    empty.
    """
    values: dict[str, Value] = {}
    for mapping in mappings:
        if mapping.target_field == TargetField.IGNORE:
            continue
        raw_value = row.get(mapping.source_header)
        values[mapping.target_field.value] = apply_transform(
            raw_value, mapping.target_field, mapping.transform
        )
    return values


def normalize_row(
    row: RawRow,
    mappings: list[ColumnMapping],
    defaults: Optional[dict[str, str]] = None,
) -> NormalizedRow:
    """
    Build the canonical NormalizedRow for one raw row.

    Args:
        row: Raw spreadsheet row (header -> cell)
        mappings: Column mappings to apply
        defaults: Per-import fallback values; only canonical field names
                  are used. Import-scope keys (sender, courier, agency
                  ids) are never copied into the row, and delivery_type
                  is applied later by the location resolver so that an
                  inferred pickup can outrank it

    Returns:
        NormalizedRow with typed values
    """
    values = apply_mapping(row, mappings)

    canonical = NormalizedRow.field_names()
    for key, default in (defaults or {}).items():
        if key in IMPORT_SCOPE_KEYS or key in LATE_DEFAULT_KEYS or key not in canonical:
            continue
        if not _is_empty(values.get(key)) or _is_empty(default):
            continue
        values[key] = apply_transform(default, TargetField(key))

    return NormalizedRow(**values)
