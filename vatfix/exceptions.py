"""Custom exception hierarchy for vatfix.

Every failure the resolution core can raise is one of the classes below, so
callers match on types instead of parsing messages.

Exception Hierarchy:
    VatFixError (base)
    ├── ConfigurationError
    ├── InvalidInputError
    ├── LookupFailure
    │   ├── LookupTimeoutError
    │   ├── LookupHttpError
    │   ├── ProtocolFaultError
    │   └── ServiceUnavailableError
    └── StoreError
"""
from __future__ import annotations

from typing import Optional, Dict, Any


class VatFixError(Exception):
    """Base exception for all vatfix errors.

    Attributes:
        message: Human-readable error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(VatFixError):
    """Raised when there's a configuration problem.

    Examples:
        - REDIS_URL missing in production
        - Invalid configuration value
    """
    pass


class InvalidInputError(VatFixError):
    """Raised when a query cannot be normalized into country code + VAT number."""

    def __init__(
        self,
        message: str = "countryCode and vatNumber are required",
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.field = field
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, "invalid_input", details)


# Lookup failures (raised by the VIES client)
class LookupFailure(VatFixError):
    """Base class for failures of a single lookup against the authoritative service.

    Subclasses define ``reason``, the short token surfaced to callers when no
    cached fallback exists.
    """

    reason = "unavailable"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, self.reason, details)


class LookupTimeoutError(LookupFailure):
    """Raised when the per-attempt deadline is exceeded."""

    reason = "timeout"


class LookupHttpError(LookupFailure):
    """Raised when the service answers with a non-success HTTP status.

    Attributes:
        status: HTTP status code
        body_snippet: First 512 characters of the response body
    """

    BODY_SNIPPET_LIMIT = 512

    def __init__(
        self,
        status: int,
        body_snippet: str = "",
        message: Optional[str] = None,
    ):
        self.status = status
        self.body_snippet = (body_snippet or "")[: self.BODY_SNIPPET_LIMIT]
        super().__init__(
            message or f"VIES HTTP {status}",
            {"status": status, "body": self.body_snippet},
        )

    @property
    def reason(self) -> str:  # type: ignore[override]
        return f"http_{self.status}"


class ProtocolFaultError(LookupFailure):
    """Raised when the response carries a SOAP fault."""

    reason = "fault"


class ServiceUnavailableError(LookupFailure):
    """Raised when the service cannot be reached at all (connection refused, reset)."""

    reason = "unavailable"


class StoreError(VatFixError):
    """Raised by key-value store backends when a round trip fails.

    Attributes:
        operation: get / put / delete
        key: Store key involved
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        key: Optional[str] = None,
    ):
        self.operation = operation
        self.key = key
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if key:
            details["key"] = key
        super().__init__(message, "store_error", details)


def failure_reason(error: BaseException) -> str:
    """Map a lookup failure to the error token returned to callers.

    Args:
        error: The exception that ended the live lookup

    Returns:
        ``timeout``, ``http_<status>``, ``fault`` or ``unavailable``
    """
    if isinstance(error, LookupFailure):
        return error.reason
    return "unavailable"
