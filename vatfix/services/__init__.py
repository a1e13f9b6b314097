"""
Resolution core services

Components:
- normalize_query: Canonical (countryCode, vatNumber) pairs
- CacheService: Lookup cache over the shared key-value store
- ResolutionOrchestrator: Fresh/live/stale decision procedure
- RateLimiter: Windowed per-caller request counter
- build_services: Startup wiring from configuration
"""

from .cache import CacheService, JsonDocumentStore
from .factory import Services, build_services
from .normalizer import normalize_query
from .rate_limiter import RateLimiter, RateLimiterConfig
from .resolver import ResolutionOrchestrator
from .store import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore

__all__ = [
    "CacheService",
    "JsonDocumentStore",
    "Services",
    "build_services",
    "normalize_query",
    "RateLimiter",
    "RateLimiterConfig",
    "ResolutionOrchestrator",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "RedisKeyValueStore",
]
