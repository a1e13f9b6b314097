"""Factory wiring the resolution core from configuration.

Everything is built once at startup and passed by reference; there are no
lazily created module-level clients.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx

from ..config import Settings, get_settings
from ..exceptions import ConfigurationError
from ..providers.vies import VIESProvider
from ..utils.retry import RetryPolicy
from .cache import CacheService
from .http_pool import create_http_client
from .rate_limiter import RateLimiter, RateLimiterConfig
from .resolver import ResolutionOrchestrator
from .store import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Long-lived collaborators shared by all requests."""

    settings: Settings
    store: KeyValueStore
    http_client: Optional[httpx.AsyncClient]
    resolver: ResolutionOrchestrator
    rate_limiter: RateLimiter
    closed: bool = field(default=False)

    async def close(self) -> None:
        """Flush audit writes and release network resources. Idempotent."""
        if self.closed:
            return
        self.closed = True
        try:
            await self.rate_limiter.drain()
            if self.http_client is not None:
                await self.http_client.aclose()
        finally:
            await self.store.close()


def get_store(settings: Settings) -> KeyValueStore:
    """Get the key-value store selected by configuration.

    Returns:
        - RedisKeyValueStore if REDIS_URL is set
        - InMemoryKeyValueStore otherwise (development/test only)

    Raises:
        ConfigurationError: If running in production without REDIS_URL
    """
    if settings.store_enabled:
        logger.info("Using Redis key-value store")
        return RedisKeyValueStore(settings.redis_url, prefix=settings.store_prefix)

    # Fail closed in production: a process-local cache is not a shared store
    if settings.environment == "production":
        raise ConfigurationError(
            "REDIS_URL must be configured in production, "
            "or set NODE_ENV=development for local testing."
        )
    logger.warning("Using in-memory key-value store (development mode only)")
    return InMemoryKeyValueStore()


def build_services(
    settings: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    clock: Callable[[], float] = time.time,
) -> Services:
    """Build the resolution core.

    Args:
        settings: Configuration (defaults to get_settings())
        store: Pre-built store, e.g. a shared InMemoryKeyValueStore in tests
        http_client: Pre-built httpx client
        clock: Time source shared by resolver and rate limiter

    When ``store`` is not supplied and no REDIS_URL is configured, the cache
    runs on a process-local store and the rate limiter is disabled.
    """
    settings = settings or get_settings()
    shared_store = store is not None or settings.store_enabled
    store = store or get_store(settings)
    http_client = http_client or create_http_client(
        timeout_seconds=settings.vies_timeout_seconds,
        user_agent=settings.user_agent,
    )

    provider = VIESProvider(
        http_client,
        url=settings.vies_url,
        timeout=settings.vies_timeout_seconds,
        user_agent=settings.user_agent,
    )
    resolver = ResolutionOrchestrator(
        provider=provider,
        cache=CacheService(store, namespace=settings.cache_namespace),
        retry_policy=RetryPolicy(
            max_attempts=settings.vies_max_attempts,
            base_delay=settings.vies_backoff_seconds,
        ),
        ttl_seconds=settings.cache_ttl_seconds,
        clock=clock,
    )
    rate_limiter = RateLimiter(
        store if shared_store else None,
        RateLimiterConfig(window_ms=settings.rate_window_ms, limit=settings.rate_limit),
        clock=clock,
    )

    return Services(
        settings=settings,
        store=store,
        http_client=http_client,
        resolver=resolver,
        rate_limiter=rate_limiter,
    )
