"""Security utilities for building store keys from caller-supplied values.

Caller keys and VAT numbers end up inside store keys, so they are reduced
to a safe alphabet before use.
"""
from __future__ import annotations

import re
from typing import Optional

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_NON_ALPHANUMERIC = re.compile(r"[^A-Za-z0-9]")

MAX_KEY_PART_LENGTH = 128


def safe_key_part(value: Optional[str], max_length: int = MAX_KEY_PART_LENGTH) -> str:
    """
    Sanitize a value for use as one segment of a store key.

    Characters outside ``[A-Za-z0-9._-]`` are replaced with ``_`` and the
    result is truncated to ``max_length``.

    Args:
        value: Raw value (API key, VAT number, ...)
        max_length: Maximum allowed length

    Returns:
        Sanitized segment, empty string for empty input

    Example:
        >>> safe_key_part("sk/../live key")
        'sk_.._live_key'
    """
    return _UNSAFE_KEY_CHARS.sub("_", str(value or ""))[:max_length]


def cache_identifier(identifier: str) -> str:
    """Reduce a VAT number to upper-case alphanumerics for cache keys."""
    return _NON_ALPHANUMERIC.sub("", identifier or "").upper()
