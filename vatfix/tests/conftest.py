"""
Shared pytest fixtures for vatfix tests.

Import fixtures from here instead of defining them in individual test files.
"""
from __future__ import annotations

import os

import pytest

# Set test environment before importing application modules
os.environ.setdefault("NODE_ENV", "test")
os.environ.pop("REDIS_URL", None)

from vatfix.config import Settings, get_settings  # noqa: E402
from vatfix.services.cache import CacheService  # noqa: E402
from vatfix.services.rate_limiter import RateLimiter, RateLimiterConfig  # noqa: E402
from vatfix.services.store import InMemoryKeyValueStore  # noqa: E402
from vatfix.tests.utils import FakeClock  # noqa: E402


# ============================================================================
# Environment Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def test_environment():
    """Ensure test environment is set for all tests."""
    old_env = os.environ.copy()
    os.environ["NODE_ENV"] = "test"
    os.environ.pop("REDIS_URL", None)
    get_settings.cache_clear()
    yield
    os.environ.clear()
    os.environ.update(old_env)
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        vies_url="https://vies.test/checkVatService",
        vies_timeout_ms=500,
        vies_max_attempts=3,
        vies_backoff_ms=0,
        cache_ttl_hours=12,
        cache_namespace="v2",
        rate_window_ms=60000,
        rate_limit=3,
    )


# ============================================================================
# Core Fixtures
# ============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def cache(store) -> CacheService:
    return CacheService(store, namespace="v2")


@pytest.fixture
def rate_limiter(store, clock) -> RateLimiter:
    return RateLimiter(store, RateLimiterConfig(window_ms=60000, limit=3), clock=clock)
