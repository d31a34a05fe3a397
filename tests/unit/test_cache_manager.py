# =============================================================================
# tests/unit/test_cache_manager.py
# Unit Tests for CacheManager
# =============================================================================

from datetime import timedelta

import pytest

from pos_core.errors import StorageError
from pos_core.offline import CacheManager
from pos_core.storage import MemoryStorage
from tests.conftest import run

pytestmark = pytest.mark.unit

DAY_MS = 24 * 60 * 60 * 1000
MENU = [{"id": "tapsilog_001", "name": "Tapsilog", "price": 75}]


class BrokenStorage(MemoryStorage):
    async def get_item(self, key):
        raise StorageError("disk gone", key=key)

    async def set_item(self, key, value):
        raise StorageError("disk gone", key=key)


class TestCacheFreshness:
    """Test the 24h staleness window"""

    def test_fresh_cache_is_returned(self, cache, clock):
        async def scenario():
            await cache.cache_collection("menu", MENU)
            clock.advance(DAY_MS)
            return await cache.get_cached_collection("menu")

        assert run(scenario()) == MENU

    def test_stale_cache_is_absent_and_removed(self, cache, storage, clock):
        """Written at T, read at T+24h+1ms: absent and deleted"""
        async def scenario():
            await cache.cache_collection("menu", MENU)
            clock.advance(DAY_MS + 1)
            result = await cache.get_cached_collection("menu")
            return result, await storage.get_all_keys()

        result, keys = run(scenario())
        assert result is None
        assert "cache_menu" not in keys
        assert "timestamp_menu" not in keys

    def test_never_cached_is_absent(self, cache):
        assert run(cache.get_cached_collection("orders")) is None

    def test_rewrite_refreshes_timestamp(self, cache, clock):
        async def scenario():
            await cache.cache_collection("menu", MENU)
            clock.advance(DAY_MS)
            await cache.cache_collection("menu", MENU)
            clock.advance(DAY_MS)
            return await cache.get_cached_collection("menu")

        assert run(scenario()) == MENU

    def test_custom_max_age(self, storage, clock):
        cache = CacheManager(storage, max_age=timedelta(minutes=1), clock=clock)

        async def scenario():
            await cache.cache_collection("menu", MENU)
            clock.advance(60_001)
            return await cache.get_cached_collection("menu")

        assert run(scenario()) is None


class TestCacheMaintenance:
    def test_clear_cache(self, cache):
        async def scenario():
            await cache.cache_collection("menu", MENU)
            await cache.clear_cache("menu")
            return await cache.get_cached_collection("menu")

        assert run(scenario()) is None

    def test_clear_all_caches_keeps_other_keys(self, cache, storage):
        async def scenario():
            await cache.cache_collection("menu", MENU)
            await cache.cache_collection("tables", [{"id": "table_1"}])
            await storage.set_item("pin_hash", "abc")
            await cache.clear_all_caches()
            return await storage.get_all_keys()

        assert run(scenario()) == ["pin_hash"]

    def test_cache_stats(self, cache, clock):
        async def scenario():
            await cache.cache_collection("menu", MENU)
            clock.advance(500)
            return await cache.get_cache_stats()

        stats = run(scenario())
        assert stats["collections"] == ["menu"]
        assert stats["ages_ms"]["menu"] == 500
        assert stats["max_age_ms"] == DAY_MS


class TestCacheStorageFailures:
    """Storage errors are logged and swallowed"""

    def test_write_failure_returns_false(self, clock):
        cache = CacheManager(BrokenStorage(), clock=clock)
        assert run(cache.cache_collection("menu", MENU)) is False

    def test_read_failure_returns_none(self, clock):
        cache = CacheManager(BrokenStorage(), clock=clock)
        assert run(cache.get_cached_collection("menu")) is None

    def test_corrupt_snapshot_returns_none(self, cache, storage, clock):
        async def scenario():
            await storage.set_item("cache_menu", "{not json")
            await storage.set_item("timestamp_menu", str(clock()))
            return await cache.get_cached_collection("menu")

        assert run(scenario()) is None
