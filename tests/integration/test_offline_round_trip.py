# =============================================================================
# tests/integration/test_offline_round_trip.py
# Integration Tests for Offline Writes (Write → Queue → Reconnect → Replay)
# =============================================================================

import pytest

from pos_core.context import AppContext
from pos_core.errors import RemoteStoreError
from pos_core.events import BackendErrorReported, SyncCompleted
from pos_core.storage import MemoryStorage
from tests.conftest import FakeClock, FakeScheduler, FlakyDocumentStore, run

pytestmark = pytest.mark.integration

CART = [{"id": "menu_1", "name": "Tapsilog", "price": 120, "qty": 1}]


async def create_context(config, storage, remote, clock):
    return await AppContext.create(
        config=config,
        storage=storage,
        remote=remote,
        scheduler=FakeScheduler(clock),
        clock=clock,
        configure_logging=False,
    )


class TestOfflineRoundTrip:
    """
    Tests the flow:
    1. Order placed while online
    2. Connection drops, writes land in the queue
    3. Reads come from the cache
    4. Connection returns, the queue replays in order
    """

    def test_queued_writes_replay_in_order(self, supabase_config):
        clock = FakeClock()
        remote = FlakyDocumentStore()

        async def scenario():
            ctx = await create_context(supabase_config, MemoryStorage(), remote, clock)

            placed = await ctx.orders.place_order({"items": CART, "subtotal": 120, "tableNumber": 4})
            assert placed.success and not placed.queued
            assert [o["id"] for o in await ctx.data_service.get_collection_once("orders")] == ["0305001"]

            remote.go_offline()
            clock.advance(1000)
            status = await ctx.orders.update_status("0305001", "preparing")
            clock.advance(1000)
            table = await ctx.data_service.upsert_document("tables", "table_4", {"number": 4, "status": "occupied"})
            clock.advance(1000)
            addon = await ctx.data_service.add_document("addons", {"name": "Extra Rice", "price": 20})

            assert status.queued and table.queued and addon.queued
            assert ctx.connection.is_offline
            assert await ctx.data_service.pending_sync_count() == 3

            cached = await ctx.data_service.get_collection_once("orders")
            assert [o["id"] for o in cached] == ["0305001"]

            writes_before = len(remote.writes)
            remote.go_online()
            ctx.connection.set_network_status(True)
            await ctx.sync_engine.wait_for_sync()

            replayed = [(kind, collection) for kind, collection, _ in remote.writes[writes_before:]]
            order = await remote.get("orders", "0305001")
            remaining = await ctx.sync_engine.get_queue_size()
            events = ctx.bus.history(SyncCompleted)
            await ctx.close()
            return replayed, order, remaining, events

        replayed, order, remaining, events = run(scenario())

        assert replayed == [("update", "orders"), ("set", "tables"), ("add", "addons")]
        assert order["status"] == "preparing"
        assert "preparationStartTime" in order
        assert remaining == 0
        assert events[-1] == SyncCompleted(synced=3, dropped=0, retained=0)

    def test_permanent_failure_dropped_and_reported(self, supabase_config):
        clock = FakeClock()
        remote = FlakyDocumentStore()

        async def scenario():
            ctx = await create_context(supabase_config, MemoryStorage(), remote, clock)
            await remote.set("tables", "table_1", {"number": 1, "status": "available"})

            remote.go_offline()
            await ctx.data_service.update_document("tables", "table_1", {"status": "occupied"})
            clock.advance(1000)
            await ctx.data_service.upsert_document("tables", "table_2", {"number": 2, "status": "available"})

            remote.go_online()
            remote.fail_with = RemoteStoreError("permission denied for table", code="permission-denied")
            remote.fail_on = {"update"}
            ctx.connection.set_network_status(True)
            await ctx.sync_engine.wait_for_sync()

            result = (
                await ctx.sync_engine.get_queue_size(),
                await remote.get("tables", "table_1"),
                await remote.get("tables", "table_2"),
                ctx.bus.history(BackendErrorReported),
            )
            await ctx.close()
            return result

        remaining, table_1, table_2, reported = run(scenario())

        assert remaining == 0
        assert table_1["status"] == "available"
        assert table_2["status"] == "available"
        assert reported[0].error.details["cause_code"] == "permission-denied"

    def test_queue_survives_restart(self, supabase_config):
        clock = FakeClock()
        storage = MemoryStorage()

        async def scenario():
            offline_remote = FlakyDocumentStore()
            offline_remote.go_offline()
            first = await create_context(supabase_config, storage, offline_remote, clock)
            queued = await first.data_service.upsert_document("tables", "table_3", {"number": 3})
            await first.close()

            fresh_remote = FlakyDocumentStore()
            second = await create_context(supabase_config, storage, fresh_remote, clock)
            pending_after_restart = await second.data_service.pending_sync_count()
            results = await second.data_service.sync_now()
            table = await fresh_remote.get("tables", "table_3")
            await second.close()
            return queued, pending_after_restart, results, table

        queued, pending_after_restart, results, table = run(scenario())

        assert queued.queued
        assert pending_after_restart == 1
        assert [r.success for r in results] == [True]
        assert table == {"id": "table_3", "number": 3}


class TestDemoMode:
    def test_writes_stay_in_memory(self, mock_config):
        clock = FakeClock()

        async def scenario():
            ctx = await create_context(mock_config, MemoryStorage(), None, clock)
            placed = await ctx.orders.place_order({"items": CART, "subtotal": 120})
            orders = await ctx.data_service.get_collection_once("orders")
            pending = await ctx.data_service.pending_sync_count()
            await ctx.close()
            return placed, orders, pending

        placed, orders, pending = run(scenario())

        assert placed.success and not placed.queued
        assert "0305001" in [o["id"] for o in orders]
        assert pending == 0
