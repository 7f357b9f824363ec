"""
Text utilities for handling Spanish text with accents.

Used for matching department, locality and agency names and for
normalizing spreadsheet headers.
"""

import re
import unicodedata
from typing import Optional


def strip_accents(text: str) -> str:
    """
    Remove accent marks, keeping the base characters.

    - "Shangrilá" → "Shangrila"
    - "San José" → "San Jose"
    """
    # NFD decomposition separates base chars from accents
    normalized = unicodedata.normalize('NFD', text)
    return ''.join(
        c for c in normalized
        if unicodedata.category(c) != 'Mn'
    )


def normalize_name(name: Optional[str]) -> str:
    """
    Normalize a place or organization name for loose comparison.

    Handles Spanish accents, case and repeated whitespace:
    - "  Shangrilá " → "SHANGRILA"
    - "Río   Negro" → "RIO NEGRO"

    Args:
        name: Original name (may have accents, mixed case)

    Returns:
        Uppercase ASCII string, empty string for empty input
    """
    if not name:
        return ""

    ascii_name = strip_accents(name.strip())
    return re.sub(r'\s+', ' ', ascii_name).upper()


def normalize_header(header: Optional[str]) -> str:
    """
    Normalize a spreadsheet header for signature comparison.

    - lowercase, accents removed
    - punctuation (.,:;()_/-) replaced with spaces
    - whitespace collapsed

    Example: "Dirección_Entrega (calle)" → "direccion entrega calle"
    """
    if not header:
        return ""

    lowered = strip_accents(header.lower())
    spaced = re.sub(r'[.,:;()_/\-]', ' ', lowered)
    return re.sub(r'\s+', ' ', spaced).strip()


def to_title_case(text: str) -> str:
    """Title-case each word: "la capuera" → "La Capuera"."""
    return re.sub(
        r'\w\S*',
        lambda m: m.group(0)[0].upper() + m.group(0)[1:].lower(),
        text
    )
