"""
Resolution orchestrator: answers "is this VAT number valid?".

Decision procedure, in order of preference:
    fresh cache > live VIES result > stale cache > structured error

Cache records are only ever written for meaningful payloads (valid, or with a
trader name/address). A stored record that is not meaningful, or whose
payload no longer validates, is deleted on sight.
"""

from __future__ import annotations

import logging
import math
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Union

from ..exceptions import InvalidInputError, failure_reason
from ..models import CacheRecord, NormalizedQuery, Payload, ResolutionError, ResolutionResult
from ..providers.base import BaseProvider
from ..utils.retry import RetryPolicy
from .cache import CacheService
from .normalizer import normalize_query, strip_separators

logger = logging.getLogger(__name__)

Resolution = Union[ResolutionResult, ResolutionError]


class ResolutionOrchestrator:
    """Composes normalizer, cache, retry policy and lookup client.

    Args:
        provider: Lookup client for the authoritative service
        cache: Cache over the shared key-value store
        retry_policy: Bounded retry around each live lookup
        ttl_seconds: Age below which a cached record is served without a live call
        namespace_version: Default cache namespace (CACHE_NS)
        clock: Returns the current UNIX time in seconds
    """

    def __init__(
        self,
        provider: BaseProvider,
        cache: CacheService,
        retry_policy: Optional[RetryPolicy] = None,
        ttl_seconds: float = 12 * 3600,
        namespace_version: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy()
        self.ttl_seconds = ttl_seconds
        self.namespace_version = namespace_version or cache.namespace
        self.clock = clock

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc)

    def _age_seconds(self, record: CacheRecord, now: datetime) -> int:
        cached_at = record.cachedAt
        if cached_at.tzinfo is None:
            cached_at = cached_at.replace(tzinfo=timezone.utc)
        return max(0, math.floor((now - cached_at).total_seconds()))

    def _from_cache(self, record: CacheRecord, age: int, stale: bool) -> ResolutionResult:
        return ResolutionResult(
            **record.payload.model_dump(),
            source="cache",
            cachedAt=record.cachedAt,
            cacheAgeSeconds=age,
            stale=stale,
        )

    @staticmethod
    def _build_payload(live: Dict[str, Any], query: NormalizedQuery, now: datetime) -> Payload:
        return Payload(
            countryCode=live.get("countryCode") or query.countryCode,
            identifier=strip_separators(live.get("vatNumber") or query.identifier),
            valid=bool(live.get("valid")),
            name=live.get("name") or "",
            address=live.get("address") or "",
            requestDate=live.get("requestDate") or now.date().isoformat(),
        )

    async def resolve(
        self,
        country_code: Optional[str],
        identifier: Optional[str],
        namespace_version: Optional[str] = None,
        ttl_seconds: Optional[float] = None,
    ) -> Resolution:
        """
        Resolve one VAT number.

        Args:
            country_code: Raw country code (may be empty if embedded in identifier)
            identifier: Raw VAT number
            namespace_version: Cache namespace override
            ttl_seconds: Freshness window override

        Returns:
            ResolutionResult on success (live, fresh cache or stale cache),
            ResolutionError otherwise. Never raises for lookup or store failures.
        """
        try:
            query = normalize_query(country_code, identifier)
        except InvalidInputError as e:
            return ResolutionError(**e.to_dict())

        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        key = self.cache.key_for(
            query.countryCode,
            query.identifier,
            namespace_version or self.namespace_version,
        )

        cached, present = await self.cache.read(key)
        if present and (cached is None or not cached.payload.meaningful):
            logger.info(f"Dropping unusable cache entry {key}")
            await self.cache.delete(key)
            cached = None

        now = self._now()
        if cached is not None:
            age = self._age_seconds(cached, now)
            if age < ttl:
                logger.debug(f"Cache hit for {key} (age {age}s)")
                return self._from_cache(cached, age, stale=False)

        try:
            live = await self.retry_policy.run(
                lambda: self.provider.lookup(query.countryCode, query.identifier)
            )
        except Exception as e:
            if cached is not None:
                now = self._now()
                age = self._age_seconds(cached, now)
                logger.warning(
                    f"{self.provider.provider_name} lookup failed for {key} ({e}); "
                    f"serving stale cache (age {age}s)"
                )
                return self._from_cache(cached, age, stale=True)

            reason = failure_reason(e)
            logger.error(f"{self.provider.provider_name} lookup failed for {key}: {reason}: {e}")
            return ResolutionError(
                error=reason,
                message=str(e) or f"{self.provider.provider_name} unavailable",
            )

        now = self._now()
        payload = self._build_payload(live, query, now)

        if not payload.meaningful:
            # Don't poison the cache with empty payloads
            logger.info(f"Live lookup for {key} returned an empty payload; not caching")
            return ResolutionResult(**payload.model_dump(), source="live", stale=False)

        await self.cache.put(key, CacheRecord(cachedAt=now, payload=payload))
        return ResolutionResult(
            **payload.model_dump(),
            source="live",
            cachedAt=now,
            cacheAgeSeconds=0,
            stale=False,
        )
