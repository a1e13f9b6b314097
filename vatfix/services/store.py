"""
Key-value store backends for the resolution core.

The core only needs independent get/put/delete of byte documents: no
compare-and-swap, no multi-key transactions. Two backends:
- RedisKeyValueStore: shared store across backend instances (production)
- InMemoryKeyValueStore: process-local dict (development and tests)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff

from ..exceptions import StoreError

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Minimal async byte store scoped to one namespace root."""

    name = "abstract"

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Return the stored bytes, or None if the key is absent."""

    @abstractmethod
    async def put(self, key: str, value: bytes) -> None:
        """Store ``value`` under ``key``, overwriting any previous value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``; deleting an absent key is not an error."""

    async def ping(self) -> bool:
        """Report whether the backend answers."""
        return True

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store. Shares nothing across processes."""

    name = "memory"

    def __init__(self) -> None:
        self._data: Dict[str, bytes] = {}

    async def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    async def put(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class RedisKeyValueStore(KeyValueStore):
    """
    Redis-backed store.

    Features:
    - Keys namespaced under ``<prefix>:``
    - Connection retry with exponential backoff
    - Client-level socket timeouts (the core adds none of its own)
    - Backend exceptions surfaced as StoreError
    """

    name = "redis"

    def __init__(
        self,
        redis_url: str,
        prefix: str = "vatfix",
        client: Optional[redis.Redis] = None,
        socket_timeout: float = 5.0,
    ) -> None:
        self.prefix = prefix
        self.redis_url = redis_url
        if client is None:
            retry = Retry(ExponentialBackoff(), 3)
            client = redis.from_url(
                redis_url,
                retry=retry,
                retry_on_timeout=True,
                socket_keepalive=True,
                socket_connect_timeout=socket_timeout,
                socket_timeout=socket_timeout,
            )
        self.redis_client = client

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}" if self.prefix else key

    async def get(self, key: str) -> Optional[bytes]:
        try:
            data = await self.redis_client.get(self._key(key))
        except Exception as e:
            raise StoreError(f"Redis get failed: {e}", operation="get", key=key) from e
        if data is None:
            return None
        return data.encode("utf-8") if isinstance(data, str) else bytes(data)

    async def put(self, key: str, value: bytes) -> None:
        try:
            await self.redis_client.set(self._key(key), value)
        except Exception as e:
            raise StoreError(f"Redis set failed: {e}", operation="put", key=key) from e

    async def delete(self, key: str) -> None:
        try:
            await self.redis_client.delete(self._key(key))
        except Exception as e:
            raise StoreError(f"Redis delete failed: {e}", operation="delete", key=key) from e

    async def ping(self) -> bool:
        try:
            return bool(await self.redis_client.ping())
        except Exception as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        """Disconnect from Redis gracefully."""
        try:
            await self.redis_client.aclose()
            logger.info("Disconnected from Redis")
        except Exception as e:
            logger.error(f"Error disconnecting from Redis: {e}")
