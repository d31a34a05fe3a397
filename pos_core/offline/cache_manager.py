# =============================================================================
# pos_core/offline/cache_manager.py
# Collection Snapshot Cache
# =============================================================================
"""
CacheManager - last-known snapshot of each remote collection.

The cache is advisory: every method logs and swallows storage failures, and
a snapshot older than the staleness window is deleted on the next read.

Storage layout (per collection):
    cache_<collection>      JSON list of records
    timestamp_<collection>  epoch milliseconds of the write
"""

from __future__ import annotations
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from pos_core.config import CACHE_MAX_AGE
from pos_core.errors import error_boundary
from pos_core.storage import KeyValueStorage
from pos_core.utils import Clock, now_ms

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cache_"
TIMESTAMP_PREFIX = "timestamp_"


class CacheManager:
    """
    Stores collection snapshots in key-value storage.

    Usage:
        cache = CacheManager(storage)
        await cache.cache_collection("menu", records)
        records = await cache.get_cached_collection("menu")  # None if absent/stale
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        max_age: timedelta = CACHE_MAX_AGE,
        clock: Optional[Clock] = None,
    ):
        self._storage = storage
        self._max_age_ms = int(max_age.total_seconds() * 1000)
        self._clock = clock or now_ms

    @staticmethod
    def _keys(name: str):
        return f"{CACHE_PREFIX}{name}", f"{TIMESTAMP_PREFIX}{name}"

    @error_boundary(default_return=False, error_message="Error caching collection")
    async def cache_collection(self, name: str, records: List[Dict[str, Any]]) -> bool:
        """Overwrite the snapshot and timestamp for a collection."""
        cache_key, timestamp_key = self._keys(name)
        await self._storage.set_json(cache_key, records)
        await self._storage.set_item(timestamp_key, str(self._clock()))
        logger.debug(f"Cached {len(records)} records for '{name}'")
        return True

    @error_boundary(default_return=None, error_message="Error reading cached collection")
    async def get_cached_collection(self, name: str) -> Optional[List[Dict[str, Any]]]:
        """
        Return the snapshot if present and fresh.

        A stale snapshot is removed and reported as absent.
        """
        cache_key, timestamp_key = self._keys(name)
        raw = await self._storage.get_item(cache_key)
        timestamp = await self._storage.get_item(timestamp_key)
        if raw is None or timestamp is None:
            return None

        age = self._clock() - int(timestamp)
        if age > self._max_age_ms:
            logger.debug(f"Cache for '{name}' expired ({age} ms old)")
            await self.clear_cache(name)
            return None

        return await self._storage.get_json(cache_key)

    @error_boundary(default_return=None, error_message="Error clearing cache")
    async def clear_cache(self, name: str) -> None:
        await self._storage.multi_remove(self._keys(name))

    @error_boundary(default_return=None, error_message="Error clearing all caches")
    async def clear_all_caches(self) -> None:
        """Remove every cached snapshot and timestamp; other keys are untouched."""
        keys = await self._storage.get_all_keys()
        cache_keys = [k for k in keys if k.startswith((CACHE_PREFIX, TIMESTAMP_PREFIX))]
        await self._storage.multi_remove(cache_keys)
        logger.info(f"Cleared {len(cache_keys)} cache entries")

    @error_boundary(default_return={}, error_message="Error reading cache stats")
    async def get_cache_stats(self) -> Dict[str, Any]:
        """Cached collection names and their ages in milliseconds."""
        keys = await self._storage.get_all_keys()
        now = self._clock()
        ages: Dict[str, int] = {}
        for key in keys:
            if not key.startswith(TIMESTAMP_PREFIX):
                continue
            raw = await self._storage.get_item(key)
            if raw is not None:
                ages[key[len(TIMESTAMP_PREFIX):]] = now - int(raw)
        return {
            "collections": sorted(ages),
            "ages_ms": ages,
            "max_age_ms": self._max_age_ms,
        }
