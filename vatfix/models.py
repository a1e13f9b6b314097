"""Pydantic models shared by the resolution core and the HTTP surface."""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

_DASH_PLACEHOLDER = re.compile(r"^-+$")


def blank_placeholder(value: Optional[str]) -> str:
    """Return ``value`` stripped, with dash-only placeholders ("---") as empty."""
    text = (value or "").strip()
    if _DASH_PLACEHOLDER.match(text):
        return ""
    return text


class NormalizedQuery(BaseModel):
    countryCode: str
    identifier: str


class Payload(BaseModel):
    """Lookup result as returned to callers and stored in the cache."""

    countryCode: str
    identifier: str = Field(validation_alias=AliasChoices("identifier", "vatNumber"))
    valid: bool = False
    name: str = ""
    address: str = ""
    requestDate: Optional[str] = None

    @field_validator("name", "address", mode="before")
    @classmethod
    def _blank_placeholders(cls, v):
        return blank_placeholder(v)

    @property
    def meaningful(self) -> bool:
        """A payload is worth caching when it is valid or names a trader."""
        return bool(self.valid or self.name.strip() or self.address.strip())


class CacheRecord(BaseModel):
    cachedAt: datetime
    payload: Payload


class RateWindowDoc(BaseModel):
    window: int
    count: int = 0
    limit: int
    apiKey: str = ""


class AuditRecord(BaseModel):
    t: str
    apiKey: str
    email: str = ""
    countryCode: Optional[str] = None
    vatNumber: Optional[str] = None


class ResolutionResult(Payload):
    """Successful answer of ``ResolutionOrchestrator.resolve``."""

    source: Literal["cache", "live"]
    cachedAt: Optional[datetime] = None
    cacheAgeSeconds: Optional[int] = None
    stale: bool = False


class ResolutionError(BaseModel):
    """Structured failure of ``ResolutionOrchestrator.resolve``."""

    error: str
    message: str
    details: Optional[Dict[str, Any]] = None


class RateLimitVerdict(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    remaining: Optional[int] = None


class VatRequest(BaseModel):
    """Body of ``POST /vat/lookup``."""

    countryCode: Optional[str] = None
    vatNumber: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("vatNumber", "identifier"),
    )

    @field_validator("countryCode", "vatNumber", mode="before")
    @classmethod
    def _numbers_as_text(cls, v):
        # All-digit VAT numbers often arrive as JSON numbers
        if isinstance(v, bool):
            return v
        if isinstance(v, int):
            return str(v)
        if isinstance(v, float):
            return str(int(v)) if v.is_integer() else str(v)
        return v


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    environment: str
    store: str
    storeReachable: bool
    rateLimiting: bool
