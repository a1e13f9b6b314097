from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from ..models import CacheRecord
from ..utils.security import cache_identifier
from .store import KeyValueStore

logger = logging.getLogger(__name__)


def cache_key(namespace: str, country_code: str, identifier: str) -> str:
    """Build ``cache/<namespace>/<CC>/<IDENTIFIER>.json``."""
    return f"cache/{namespace}/{country_code}/{cache_identifier(identifier)}.json"


class JsonDocumentStore:
    """
    JSON documents on top of a byte store.

    Store failures never escape: reads degrade to "absent" and writes or
    deletes are logged and dropped, unless ``strict=True`` is passed by a
    caller that wants to see the failure. Undecodable documents always read
    as absent.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    async def get_json(self, key: str, strict: bool = False) -> Optional[Dict[str, Any]]:
        try:
            raw = await self.store.get(key)
        except Exception as e:
            if strict:
                raise
            logger.warning(f"Store read failed for {key}: {e}. Treating as miss.")
            return None
        if raw is None:
            return None
        try:
            doc = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Discarding undecodable document at {key}: {e}")
            return None
        return doc if isinstance(doc, dict) else None

    async def put_json(self, key: str, data: Dict[str, Any], strict: bool = False) -> bool:
        body = json.dumps(data, separators=(",", ":"), default=str).encode("utf-8")
        try:
            await self.store.put(key, body)
            return True
        except Exception as e:
            if strict:
                raise
            logger.warning(f"Store write failed for {key}: {e}")
            return False

    async def delete(self, key: str) -> None:
        try:
            await self.store.delete(key)
        except Exception as e:
            logger.warning(f"Store delete failed for {key}: {e}")


class CacheService:
    """
    Lookup cache over the shared key-value store.

    Keys embed a namespace version so that bumping CACHE_NS invalidates
    every previous entry without touching the store.
    """

    def __init__(self, store: KeyValueStore, namespace: str = "v2") -> None:
        self.documents = JsonDocumentStore(store)
        self.namespace = namespace

    def key_for(self, country_code: str, identifier: str, namespace: Optional[str] = None) -> str:
        return cache_key(namespace or self.namespace, country_code, identifier)

    async def read(self, key: str) -> Tuple[Optional[CacheRecord], bool]:
        """
        Fetch a cache record.

        Returns:
            (record, present): ``present`` is True whenever a JSON object is
            stored under ``key``, even if it does not validate as a
            CacheRecord (``record`` is then None)
        """
        doc = await self.documents.get_json(key)
        if doc is None:
            return None, False
        try:
            return CacheRecord.model_validate(doc), True
        except ValidationError as e:
            logger.warning(f"Malformed cache record at {key}: {e.error_count()} error(s)")
            return None, True

    async def get(self, key: str) -> Optional[CacheRecord]:
        record, _ = await self.read(key)
        return record

    async def put(self, key: str, record: CacheRecord) -> bool:
        stored = await self.documents.put_json(key, record.model_dump(mode="json"))
        if stored:
            logger.debug(f"Cached lookup at {key}")
        return stored

    async def delete(self, key: str) -> None:
        await self.documents.delete(key)
        logger.info(f"Deleted cache entry {key}")
