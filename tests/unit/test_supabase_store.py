# =============================================================================
# tests/unit/test_supabase_store.py
# Unit Tests for the Supabase document store (mocked client)
# =============================================================================

import asyncio
from unittest.mock import MagicMock

import httpx
import pytest
from postgrest.exceptions import APIError

from pos_core.errors import RemoteStoreError, is_connectivity_error
from pos_core.remote import BatchOperation, Query
from pos_core.remote.supabase_store import SupabaseDocumentStore
from tests.conftest import run

pytestmark = pytest.mark.unit


@pytest.fixture
def mock_supabase():
    """Mock Supabase client"""
    mock_client = MagicMock()
    mock_client.table.return_value.select.return_value.range.return_value.execute.return_value.data = []
    return mock_client


@pytest.fixture
def store(mock_supabase):
    return SupabaseDocumentStore(mock_supabase, table_mapping={"menu": "menu_items"}, poll_interval=0)


class TestErrorTranslation:
    """Client errors become RemoteStoreError with store codes"""

    def test_transport_error_is_unavailable(self, store, mock_supabase):
        mock_supabase.table.return_value.insert.return_value.execute.side_effect = httpx.ConnectError("refused")

        with pytest.raises(RemoteStoreError) as exc_info:
            run(store.add("orders", {"status": "pending"}))

        assert exc_info.value.code == "unavailable"
        assert is_connectivity_error(exc_info.value)

    def test_timeout_is_deadline_exceeded(self, store, mock_supabase):
        mock_supabase.table.return_value.delete.return_value.eq.return_value.execute.side_effect = (
            httpx.ReadTimeout("slow")
        )

        with pytest.raises(RemoteStoreError) as exc_info:
            run(store.delete("orders", "o1"))

        assert exc_info.value.code == "deadline-exceeded"

    def test_missing_table_is_failed_precondition(self, store, mock_supabase):
        error = APIError({"message": "relation \"orders\" does not exist", "code": "42P01"})
        mock_supabase.table.return_value.select.return_value.range.return_value.execute.side_effect = error

        with pytest.raises(RemoteStoreError) as exc_info:
            run(store.query(Query("orders")))

        assert exc_info.value.code == "failed-precondition"

    def test_unknown_api_error(self, store, mock_supabase):
        error = APIError({"message": "boom", "code": "XX000"})
        mock_supabase.table.return_value.upsert.return_value.execute.side_effect = error

        with pytest.raises(RemoteStoreError) as exc_info:
            run(store.set("orders", "o1", {"status": "pending"}))

        assert exc_info.value.code == "unknown"
        assert not is_connectivity_error(exc_info.value)


class TestCrud:
    def test_add_generates_id(self, store, mock_supabase):
        doc_id = run(store.add("orders", {"status": "pending"}))
        row = mock_supabase.table.return_value.insert.call_args[0][0]
        assert row == {"status": "pending", "id": doc_id}

    def test_table_mapping(self, store, mock_supabase):
        run(store.query(Query("menu")))
        mock_supabase.table.assert_called_with("menu_items")

    def test_get(self, store, mock_supabase):
        chain = mock_supabase.table.return_value.select.return_value.eq.return_value.limit.return_value
        chain.execute.return_value.data = [{"id": "o1", "status": "pending"}]

        assert run(store.get("orders", "o1")) == {"id": "o1", "status": "pending"}
        mock_supabase.table.return_value.select.return_value.eq.assert_called_with("id", "o1")

    def test_update_reports_missing_row(self, store, mock_supabase):
        mock_supabase.table.return_value.update.return_value.eq.return_value.execute.return_value.data = []
        assert run(store.update("orders", "o1", {"status": "ready"})) is False

    def test_query_filters_and_order(self, store, mock_supabase):
        select = mock_supabase.table.return_value.select.return_value
        ordered = select.eq.return_value.order.return_value
        ordered.range.return_value.execute.return_value.data = [{"id": "o1"}]

        query = Query.build("orders", [("status", "==", "pending")], ("timestamp", "desc"))
        assert run(store.query(query)) == [{"id": "o1"}]
        select.eq.assert_called_with("status", "pending")
        select.eq.return_value.order.assert_called_with("timestamp", desc=True)
        ordered.range.assert_called_with(0, store.PAGE_SIZE - 1)

    def test_query_pages(self, store, mock_supabase):
        store.PAGE_SIZE = 2
        ranged = mock_supabase.table.return_value.select.return_value.range.return_value
        pages = [MagicMock(data=[{"id": "1"}, {"id": "2"}]), MagicMock(data=[{"id": "3"}])]
        ranged.execute.side_effect = pages

        assert [r["id"] for r in run(store.query(Query("orders")))] == ["1", "2", "3"]

    def test_batch_groups_consecutive_sets(self, store, mock_supabase):
        run(store.commit_batch([
            BatchOperation("set", "orders", "o1", {"status": "pending"}),
            BatchOperation("set", "orders", "o2", {"status": "ready"}),
            BatchOperation("delete", "orders", "o3"),
            BatchOperation("set", "orders", "o4", {"status": "pending"}),
        ]))
        table = mock_supabase.table.return_value
        assert [c[0] for c in table.method_calls] == ["upsert", "delete", "upsert"]
        assert table.upsert.call_args_list[0].args[0] == [
            {"status": "pending", "id": "o1"},
            {"status": "ready", "id": "o2"},
        ]
        assert table.upsert.call_args_list[1].args[0] == [{"status": "pending", "id": "o4"}]
        table.delete.return_value.eq.assert_called_with("id", "o3")

    def test_batch_keeps_caller_order(self, store, mock_supabase):
        run(store.commit_batch([
            BatchOperation("delete", "orders", "o1"),
            BatchOperation("set", "orders", "o1", {"status": "pending"}),
            BatchOperation("update", "orders", "o1", {"status": "ready"}),
        ]))
        table = mock_supabase.table.return_value
        assert [c[0] for c in table.method_calls] == ["delete", "upsert", "update"]


class TestPollingSubscription:
    def test_delivers_snapshot_then_stops_on_error(self, store, mock_supabase):
        ranged = mock_supabase.table.return_value.select.return_value.range.return_value
        ranged.execute.side_effect = [
            MagicMock(data=[{"id": "o1"}]),
            MagicMock(data=[{"id": "o1"}]),
            httpx.ConnectError("refused"),
        ]
        received, errors = [], []

        async def scenario():
            store.subscribe(Query("orders"), received.append, errors.append)
            while not errors:
                await asyncio.sleep(0.01)
            await store.close()

        run(scenario())
        # Unchanged second poll is not re-delivered
        assert received == [[{"id": "o1"}]]
        assert errors[0].code == "unavailable"

    def test_unexpected_client_error_reaches_error_handler(self, store, mock_supabase):
        ranged = mock_supabase.table.return_value.select.return_value.range.return_value
        ranged.execute.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
        received, errors = [], []

        async def scenario():
            store.subscribe(Query("orders"), received.append, errors.append)
            for _ in range(100):
                if errors:
                    break
                await asyncio.sleep(0.01)
            await store.close()

        run(scenario())
        assert received == []
        assert isinstance(errors[0], RemoteStoreError)
        assert errors[0].code == "unknown"
        assert not is_connectivity_error(errors[0])
