"""
Input normalization for VAT lookups.

Turns a raw (countryCode, vatNumber) pair as typed by a caller into the
canonical form VIES expects:
1. Country code trimmed and upper-cased, or split off a "DE123..." identifier
2. ISO codes mapped to VIES member-state codes where they differ
3. Whitespace, dots and hyphens removed from the VAT number
"""

from __future__ import annotations

import re
from typing import Dict, Optional

from ..exceptions import InvalidInputError
from ..models import NormalizedQuery

# ISO 3166 alpha-2 -> VIES member state code, where they differ
VIES_COUNTRY_ALIASES: Dict[str, str] = {
    "GR": "EL",  # Greece
}

_PREFIXED_IDENTIFIER = re.compile(r"^([A-Za-z]{2})(.+)$")
_IDENTIFIER_SEPARATORS = re.compile(r"[\s.\-]")


def strip_separators(identifier: Optional[str]) -> str:
    """Remove whitespace, dots and hyphens from a VAT number."""
    return _IDENTIFIER_SEPARATORS.sub("", identifier or "")


def normalize_query(
    country_code: Optional[str],
    identifier: Optional[str],
) -> NormalizedQuery:
    """
    Canonicalize a raw lookup query.

    Args:
        country_code: Raw country code, may be empty
        identifier: Raw VAT number, optionally prefixed with the country code

    Returns:
        NormalizedQuery with both fields non-empty

    Raises:
        InvalidInputError: If either field is empty after normalization

    Example:
        >>> normalize_query("", "DE 123.456-789")
        NormalizedQuery(countryCode='DE', identifier='123456789')
    """
    cc = str(country_code or "").strip().upper()
    vn = str(identifier or "").strip()

    match = _PREFIXED_IDENTIFIER.match(vn)
    if not cc and match:
        cc = match.group(1).upper()
        vn = match.group(2)

    cc = VIES_COUNTRY_ALIASES.get(cc, cc)
    vn = strip_separators(vn)

    if not cc:
        raise InvalidInputError(field="countryCode")
    if not vn:
        raise InvalidInputError(field="vatNumber")

    return NormalizedQuery(countryCode=cc, identifier=vn)
