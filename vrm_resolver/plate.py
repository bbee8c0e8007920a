"""
Plate normalizer - canonical lookup key for a registration mark.

Usage:
    from vrm_resolver.plate import normalize_plate
    normalize_plate(" ab12 cde ")  # -> "AB12CDE"
"""

import re

from .errors import InvalidFormatError

MIN_PLATE_LENGTH = 2
MAX_PLATE_LENGTH = 10

_WHITESPACE = re.compile(r"\s+")

# UK registration layouts, checked against the canonical (spaceless) form.
_UK_PATTERNS = [
    re.compile(r"^[A-Z]{2}\d{2}[A-Z]{3}$"),     # Current (2001-):   AB12CDE
    re.compile(r"^[A-Z]\d{1,3}[A-Z]{3}$"),      # Prefix (1983-2001): A123BCD
    re.compile(r"^[A-Z]{3}\d{1,3}[A-Z]$"),      # Suffix (1963-1983): ABC123D
    re.compile(r"^[A-Z]{1,3}\d{1,4}$"),         # Dateless:          ABC123
    re.compile(r"^\d{1,4}[A-Z]{1,3}$"),         # Reverse dateless:  123ABC
]


def normalize_plate(raw: str) -> str:
    """
    Canonicalise a raw plate into the cache/lookup key.

    Removes all whitespace and upper-cases. Normalizing an already
    canonical plate returns it unchanged.

    Raises:
        InvalidFormatError: input is not a string, or is shorter than 2
            or longer than 10 characters once whitespace is removed.
    """
    if not isinstance(raw, str):
        raise InvalidFormatError(raw, "must be a string")
    plate = _WHITESPACE.sub("", raw).upper()
    if len(plate) < MIN_PLATE_LENGTH or len(plate) > MAX_PLATE_LENGTH:
        raise InvalidFormatError(raw)
    return plate


def is_uk_format(plate: str) -> bool:
    """True if the canonical plate matches one of the UK registration layouts."""
    return any(p.match(plate or "") for p in _UK_PATTERNS)
