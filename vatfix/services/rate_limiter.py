"""Per-caller rate limiter over the shared key-value store.

Counts requests per caller key in fixed time windows. The store is not
transactional, so the read-increment-write below races: concurrent requests
in the same window can under-count. This is a coarse throttle for bursts, not
an exact limiter. Every failure path allows the request.
"""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Set

from ..models import AuditRecord, RateLimitVerdict, RateWindowDoc
from ..utils.logging_security import SecureLogger
from ..utils.security import safe_key_part
from .cache import JsonDocumentStore
from .store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MS = 60_000
DEFAULT_LIMIT = 120


class RateLimiterConfig:
    """Window size and request budget per caller key."""

    def __init__(self, window_ms: int = DEFAULT_WINDOW_MS, limit: int = DEFAULT_LIMIT):
        """
        Args:
            window_ms: Window size in milliseconds (60000 = per minute)
            limit: Max requests allowed per caller key in one window
        """
        self.window_ms = window_ms
        self.limit = limit


def window_start(now_ms: int, window_ms: int) -> int:
    """Floor ``now_ms`` to the start of its window."""
    return (now_ms // window_ms) * window_ms


def utc_day(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


class RateLimiter:
    """Windowed request counter with a best-effort audit trail.

    Args:
        store: Shared key-value store, or None to disable limiting
        config: Window size and limit
        clock: Returns the current UNIX time in seconds
    """

    def __init__(
        self,
        store: Optional[KeyValueStore],
        config: Optional[RateLimiterConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or RateLimiterConfig()
        self.documents = JsonDocumentStore(store) if store is not None else None
        self.clock = clock
        self._background_tasks: Set[asyncio.Task] = set()

        if self.documents is None:
            logger.warning("No shared store configured; rate limiting disabled")
        else:
            logger.info(
                f"RateLimiter initialized: {self.config.limit} requests / {self.config.window_ms}ms per key"
            )

    @property
    def enabled(self) -> bool:
        return self.documents is not None

    @property
    def pending_writes(self) -> int:
        return len(self._background_tasks)

    async def check_and_increment(
        self,
        caller_key: Optional[str],
        email: Optional[str] = None,
        country_code: Optional[str] = None,
        identifier: Optional[str] = None,
    ) -> RateLimitVerdict:
        """
        Count one request for ``caller_key`` and decide whether it may proceed.

        Args:
            caller_key: Caller API key; empty disables limiting for this call
            email: Customer e-mail, recorded in the audit line only
            country_code: Queried country, audit only
            identifier: Queried VAT number, audit only

        Returns:
            RateLimitVerdict; ``remaining`` is None when limiting is disabled
            or degraded
        """
        if self.documents is None or not caller_key:
            return RateLimitVerdict(allowed=True, remaining=None)

        try:
            now_ms = int(self.clock() * 1000)
            window = window_start(now_ms, self.config.window_ms)
            day = utc_day(window)
            key_part = safe_key_part(caller_key)
            meter_key = f"meter/{day}/{key_part}/{window}.json"

            existing = await self.documents.get_json(meter_key, strict=True)
            doc = (
                RateWindowDoc.model_validate(existing)
                if existing
                else RateWindowDoc(window=window, count=0, limit=self.config.limit, apiKey=key_part)
            )
            doc.count += 1

            # best-effort: a failed write is logged inside put_json
            await self.documents.put_json(meter_key, doc.model_dump(mode="json"))

            if doc.count > self.config.limit:
                logger.info(
                    f"Rate limit exceeded for {SecureLogger.mask_secret(caller_key)}: "
                    f"{doc.count}/{self.config.limit} in window {window}"
                )
                return RateLimitVerdict(allowed=False, reason="rate_limit_exceeded", remaining=0)

            self._schedule_audit(day, key_part, email, country_code, identifier)
            return RateLimitVerdict(allowed=True, remaining=max(0, self.config.limit - doc.count))

        except Exception as e:
            logger.error(f"Rate limiter degraded (allowing request): {e}")
            return RateLimitVerdict(allowed=True, remaining=None)

    def _schedule_audit(
        self,
        day: str,
        key_part: str,
        email: Optional[str],
        country_code: Optional[str],
        identifier: Optional[str],
    ) -> None:
        stamp = datetime.fromtimestamp(self.clock(), tz=timezone.utc).isoformat(
            timespec="milliseconds"
        ).replace("+00:00", "Z").replace(":", "-")
        record = AuditRecord(
            t=stamp,
            apiKey=key_part,
            email=str(email or "").lower(),
            countryCode=country_code,
            vatNumber=identifier,
        )
        audit_key = f"logs/{day}/{stamp}_{safe_key_part(identifier) or 'unknown'}.json"

        task = asyncio.create_task(self._write_audit(audit_key, record))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _write_audit(self, key: str, record: AuditRecord) -> None:
        try:
            await self.documents.put_json(key, record.model_dump(mode="json"), strict=True)
        except Exception as e:
            logger.warning(f"Audit write failed for {key}: {e}")

    async def drain(self) -> None:
        """Wait for in-flight audit writes (shutdown and tests)."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)
