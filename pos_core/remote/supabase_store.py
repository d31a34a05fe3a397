# =============================================================================
# pos_core/remote/supabase_store.py
# Supabase-backed document store
# Maps collections to tables and translates client errors to store codes
# =============================================================================

from __future__ import annotations
import asyncio
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from pos_core.errors import RemoteStoreError
from .base import (
    BatchOperation,
    DocumentStore,
    ErrorCallback,
    Query,
    Record,
    RecordsCallback,
    Subscription,
)

logger = logging.getLogger(__name__)

# PostgREST / Postgres error codes -> document store codes
_API_ERROR_CODES = {
    "PGRST116": "not-found",
    "PGRST301": "permission-denied",
    "42501": "permission-denied",
    "42P01": "failed-precondition",
    "57014": "deadline-exceeded",
}

_FILTERS = {
    "==": "eq",
    ">": "gt",
    ">=": "gte",
    "<": "lt",
    "<=": "lte",
}


class SupabaseDocumentStore(DocumentStore):
    """
    Document store over Supabase tables.

    Each collection is a table with a text primary key ``id``. The
    supabase-py client is synchronous, so calls run in a worker thread.
    Live subscriptions poll the query and deliver a snapshot whenever it
    changes.

    Usage:
        store = SupabaseDocumentStore.from_settings(config.supabase)
        doc_id = await store.add("orders", {"status": "pending"})
    """

    PAGE_SIZE = 1000

    def __init__(
        self,
        client: Client,
        table_mapping: Optional[Dict[str, str]] = None,
        poll_interval: float = 5.0,
    ):
        self.client = client
        self.table_mapping = dict(table_mapping or {})
        self.poll_interval = poll_interval
        self._poll_tasks: set = set()

    @classmethod
    def from_settings(cls, settings) -> SupabaseDocumentStore:
        """Create a store from SupabaseSettings."""
        client: Client = create_client(settings.url, settings.key)
        logger.info("Supabase client created")
        return cls(client, table_mapping=settings.table_mapping, poll_interval=settings.poll_interval)

    def _table_name(self, collection: str) -> str:
        return self.table_mapping.get(collection, collection)

    def _table(self, collection: str):
        return self.client.table(self._table_name(collection))

    @staticmethod
    def _translate(error: Exception, collection: str) -> RemoteStoreError:
        if isinstance(error, APIError):
            code = _API_ERROR_CODES.get(error.code or "", "unknown")
            return RemoteStoreError(error.message or str(error), code=code, collection=collection)
        if isinstance(error, httpx.TimeoutException):
            return RemoteStoreError(f"Request timed out: {error}", code="deadline-exceeded", collection=collection)
        if isinstance(error, (httpx.TransportError, OSError)):
            return RemoteStoreError(f"Network error: {error}", code="unavailable", collection=collection)
        return RemoteStoreError(str(error), code="unknown", collection=collection)

    async def _execute(self, collection: str, build: Callable[[], Any]) -> Any:
        """Run a query builder's ``execute()`` off the event loop."""
        try:
            return await asyncio.to_thread(lambda: build().execute())
        except (APIError, httpx.HTTPError, OSError) as e:
            raise self._translate(e, collection) from e

    async def add(self, collection: str, data: Record) -> str:
        doc_id = str(data.get("id") or uuid.uuid4().hex)
        row = {**data, "id": doc_id}
        await self._execute(collection, lambda: self._table(collection).insert(row))
        return doc_id

    async def get(self, collection: str, doc_id: str) -> Optional[Record]:
        response = await self._execute(
            collection, lambda: self._table(collection).select("*").eq("id", doc_id).limit(1)
        )
        return response.data[0] if response.data else None

    async def set(self, collection: str, doc_id: str, data: Record, merge: bool = False) -> None:
        # Upsert only writes the given columns, so unspecified ones survive
        # an update either way; merge=False is treated the same.
        row = {**data, "id": doc_id}
        await self._execute(collection, lambda: self._table(collection).upsert(row))

    async def update(self, collection: str, doc_id: str, data: Record) -> bool:
        fields = {k: v for k, v in data.items() if k != "id"}
        response = await self._execute(
            collection, lambda: self._table(collection).update(fields).eq("id", doc_id)
        )
        return bool(response.data)

    async def delete(self, collection: str, doc_id: str) -> None:
        await self._execute(collection, lambda: self._table(collection).delete().eq("id", doc_id))

    def _build_select(self, query: Query, offset: int):
        builder = self._table(query.collection).select("*")
        for condition in query.conditions:
            builder = getattr(builder, _FILTERS[condition.op])(condition.field, condition.value)
        if query.order is not None:
            builder = builder.order(query.order.field, desc=query.order.descending)
        return builder.range(offset, offset + self.PAGE_SIZE - 1)

    async def query(self, query: Query) -> List[Record]:
        """Fetch every matching row (pages past the 1000 row limit)."""
        all_data: List[Record] = []
        offset = 0

        while True:
            response = await self._execute(
                query.collection, lambda o=offset: self._build_select(query, o)
            )
            if not response.data:
                break
            all_data.extend(response.data)
            if len(response.data) < self.PAGE_SIZE:
                break
            offset += self.PAGE_SIZE

        return all_data

    def subscribe(self, query: Query, on_next: RecordsCallback, on_error: ErrorCallback) -> Subscription:
        task = asyncio.get_running_loop().create_task(self._poll(query, on_next, on_error))
        self._poll_tasks.add(task)
        task.add_done_callback(self._poll_tasks.discard)
        return Subscription(task.cancel)

    async def _poll(self, query: Query, on_next: RecordsCallback, on_error: ErrorCallback) -> None:
        last: Optional[List[Record]] = None
        while True:
            try:
                records = await self.query(query)
            except Exception as e:
                error = e if isinstance(e, RemoteStoreError) else self._translate(e, query.collection)
                logger.warning(f"Subscription to {query.collection} stopped: {error.message}")
                on_error(error)
                return
            if records != last:
                last = records
                on_next(records)
            await asyncio.sleep(self.poll_interval)

    async def commit_batch(self, operations: Sequence[BatchOperation]) -> None:
        """
        Apply a batch in the order given.

        Consecutive sets on the same table go out as one upsert request;
        every other operation is its own request. PostgREST has no
        cross-request transaction, so a failure part-way leaves earlier
        requests applied.
        """
        pending_collection: Optional[str] = None
        pending_rows: List[Record] = []

        async def flush_upserts() -> None:
            nonlocal pending_collection, pending_rows
            if pending_rows:
                collection, rows = pending_collection, pending_rows
                await self._execute(collection, lambda: self._table(collection).upsert(rows))
            pending_collection, pending_rows = None, []

        for op in operations:
            if op.kind == "set":
                if op.collection != pending_collection:
                    await flush_upserts()
                    pending_collection = op.collection
                pending_rows.append({**op.data, "id": op.doc_id})
                continue

            await flush_upserts()
            if op.kind == "update":
                await self.update(op.collection, op.doc_id, op.data)
            elif op.kind == "delete":
                await self.delete(op.collection, op.doc_id)

        await flush_upserts()

    async def close(self) -> None:
        for task in list(self._poll_tasks):
            task.cancel()
        if self._poll_tasks:
            await asyncio.gather(*self._poll_tasks, return_exceptions=True)
