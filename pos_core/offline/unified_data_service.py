# =============================================================================
# pos_core/offline/unified_data_service.py
# Unified Data Service - Single API for Online/Offline Operations
# =============================================================================
"""
UnifiedDataService - the primary API for all document reads and writes.

This service hides the backend choice and every offline fallback:
- Writes: remote first; connectivity errors are queued and reported as
  ``queued``; other errors become a BackendError on the event bus
- Reads: remote first, then the cached snapshot, then sample data when the
  store is missing an index
- Replay: the sync engine re-issues queued writes through ``apply_operation``

Usage:
------
service = ctx.data_service

result = await service.add_document("orders", {"status": "pending"})
if result.queued:
    print("Saved offline")

menu = await service.get_collection_once("menu", order=("name", "asc"))
subscription = service.subscribe_collection("orders", on_next=render)
subscription.close()
"""

from __future__ import annotations
import asyncio
import logging
import secrets
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Set, Union

from pos_core.config import AppConfig, BackendMode
from pos_core.errors import (
    ConfigurationError,
    InvalidOperationError,
    RemoteStoreError,
    is_connectivity_error,
    is_missing_index_error,
    is_not_found_error,
    report_backend_error,
)
from pos_core.events import EventBus
from pos_core.remote import (
    BatchOperation,
    DocumentStore,
    MemoryDocumentStore,
    Query,
    Record,
    Subscription,
    sample_collection,
)
from pos_core.services.base_service import ServiceResult
from pos_core.utils import Clock, now_ms
from .cache_manager import CacheManager
from .connection_manager import ConnectionManager
from .sync_engine import OperationKind, QueuedOperation, SyncEngine, SyncResult

logger = logging.getLogger(__name__)

INDEX_REMEDIATION = (
    "Remote store needs a composite index for this query. "
    "Deploy the project's index definitions, or create the index by hand "
    "from the link in the error details."
)

# Batch entry kind -> queued operation kind
_BATCH_KINDS = {
    "set": OperationKind.UPSERT,
    "update": OperationKind.UPDATE,
    "delete": OperationKind.DELETE,
}


class UnifiedDataService:
    """
    Unified data service providing a single API for online/offline operations.

    It automatically handles:
    - Backend selection (decided once, from AppConfig.backend_mode)
    - Connection state updates after every remote call
    - Snapshot caching for offline reads
    - Queueing and replay of writes made while offline
    """

    def __init__(
        self,
        config: AppConfig,
        connection: ConnectionManager,
        cache: CacheManager,
        sync_engine: SyncEngine,
        mock_store: MemoryDocumentStore,
        remote: Optional[DocumentStore] = None,
        bus: Optional[EventBus] = None,
        clock: Optional[Clock] = None,
    ):
        self._mode = config.backend_mode
        if self._mode is BackendMode.SUPABASE and remote is None:
            raise ConfigurationError("Supabase mode needs a remote document store", config_key="backend_mode")

        self._demo_fallback = config.demo_fallback
        self._connection = connection
        self._cache = cache
        self._sync_engine = sync_engine
        self._mock = mock_store
        self._remote = remote
        self._bus = bus
        self._clock = clock or now_ms
        self._background: Set[asyncio.Task] = set()

        sync_engine.attach_executor(self)

    # =========================================================================
    # STATUS
    # =========================================================================

    @property
    def backend_mode(self) -> BackendMode:
        return self._mode

    @property
    def is_online(self) -> bool:
        return self._connection.is_online

    @property
    def is_offline(self) -> bool:
        return self._connection.is_offline

    async def pending_sync_count(self) -> int:
        return await self._sync_engine.get_queue_size()

    async def get_status(self) -> Dict[str, Any]:
        """
        Get comprehensive status information.

        Returns:
            Dict with status information for UI display
        """
        return {
            "backend": self._mode.value,
            "connection": self._connection.get_status_display(),
            "sync": await self._sync_engine.get_status_display(),
            "cache": await self._cache.get_cache_stats(),
            "is_online": self.is_online,
        }

    async def sync_now(self) -> List[SyncResult]:
        """Replay the offline queue now."""
        if not self.is_online:
            logger.warning("Cannot sync: offline")
            return []
        return await self._sync_engine.sync_pending_operations()

    # =========================================================================
    # BACKGROUND WORK
    # =========================================================================

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for background cache writes and subscription recovery."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        if self._remote is not None:
            await self._remote.close()

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def dedupe_collection(name: str, records: Iterable[Record]) -> List[Record]:
        """
        Drop duplicate records, keeping the first occurrence.

        Menu items are matched on trimmed lower-case name plus price (the
        same dish can exist under two ids); everything else on ``id``.
        """
        records = list(records or [])
        seen = set()
        deduped = []
        for record in records:
            if name == "menu":
                key = f"{(record.get('name') or '').strip().lower()}:{record.get('price') or ''}"
            else:
                key = record.get("id") or f"{record.get('name')}-{record.get('price')}"
            if key in seen:
                continue
            seen.add(key)
            deduped.append(record)

        if len(deduped) != len(records):
            logger.warning(f"Deduped {name} ({len(records)} -> {len(deduped)})")
        return deduped

    def _temp_id(self) -> str:
        return f"temp_{self._clock()}_{secrets.token_hex(5)}"

    def _sample_records(self, query: Query) -> List[Record]:
        return self.dedupe_collection(query.collection, query.apply(sample_collection(query.collection)))

    def _mock_records(self, query: Query) -> List[Record]:
        return self.dedupe_collection(query.collection, query.apply(self._mock.snapshot(query.collection)))

    async def _cached_records(self, query: Query) -> Optional[List[Record]]:
        cached = await self._cache.get_cached_collection(query.collection)
        if cached is None:
            return None
        return self.dedupe_collection(query.collection, query.apply(cached))

    # =========================================================================
    # WRITES
    # =========================================================================

    async def _apply_to_store(self, store: DocumentStore, op: QueuedOperation) -> Dict[str, Any]:
        """Run one write against a store; raises the store's errors."""
        if op.kind is OperationKind.ADD:
            return {"id": await store.add(op.collection, op.data)}

        if op.kind is OperationKind.UPDATE:
            if not await store.update(op.collection, op.doc_id, op.data):
                raise RemoteStoreError(
                    f"Document {op.collection}/{op.doc_id} does not exist",
                    code="not-found",
                    collection=op.collection,
                )
        elif op.kind is OperationKind.UPSERT:
            await store.set(op.collection, op.doc_id, op.data, merge=True)
        elif op.kind is OperationKind.DELETE:
            await self._delete_from(store, op.collection, op.doc_id)
        return {"id": op.doc_id}

    async def _delete_from(self, store: DocumentStore, collection: str, doc_id: str) -> None:
        if store is self._mock:
            await store.delete(collection, doc_id)
            return

        if await store.get(collection, doc_id) is None:
            logger.debug(f"Document doesn't exist, nothing to delete: {collection}/{doc_id}")
            return
        await store.delete(collection, doc_id)
        if await store.get(collection, doc_id) is not None:
            raise RemoteStoreError(
                f"Document {collection}/{doc_id} still exists after delete",
                code="aborted",
                collection=collection,
            )

    async def _execute_write(
        self,
        kind: OperationKind,
        collection: str,
        doc_id: Optional[str] = None,
        data: Optional[Record] = None,
    ) -> ServiceResult:
        try:
            op = QueuedOperation(kind, collection, doc_id=doc_id, data=data)
        except InvalidOperationError as e:
            return ServiceResult.from_exception(e)

        if self._mode is BackendMode.MOCK:
            try:
                return ServiceResult.ok(await self._apply_to_store(self._mock, op))
            except RemoteStoreError as e:
                return ServiceResult.fail(e.message, "NOT_FOUND")

        try:
            result = await self._apply_to_store(self._remote, op)
        except Exception as e:
            return await self._handle_write_error(op, e)

        self._connection.set_network_status(True)
        return ServiceResult.ok(result)

    async def _handle_write_error(self, op: QueuedOperation, error: Exception) -> ServiceResult:
        if is_not_found_error(error):
            if op.kind is OperationKind.DELETE:
                return ServiceResult.ok({"id": op.doc_id})
            return ServiceResult.fail(getattr(error, "message", str(error)), "NOT_FOUND")

        if is_connectivity_error(error):
            logger.warning(f"Network error, queueing {op.kind.value} on '{op.collection}': {error}")
            self._connection.set_network_status(False)
            queued = await self._sync_engine.queue_operation(op)
            return ServiceResult.pending(
                {"id": op.doc_id or self._temp_id()},
                metadata={"operation_id": queued.id if queued else None},
            )

        backend_error = report_backend_error(self._bus, op.kind.value, op.collection, error)
        if self._demo_fallback:
            logger.warning(f"Demo fallback: applying {op.kind.value} on '{op.collection}' to memory store")
            try:
                result = await self._apply_to_store(self._mock, op)
            except RemoteStoreError:
                return ServiceResult.from_exception(backend_error)
            return ServiceResult.ok(result, metadata={"fallback": "demo"})
        return ServiceResult.from_exception(backend_error)

    async def add_document(self, collection: str, data: Record) -> ServiceResult:
        """Create a document; ``result.data["id"]`` is its id (temporary if queued)."""
        return await self._execute_write(OperationKind.ADD, collection, data=data)

    async def update_document(self, collection: str, doc_id: str, data: Record) -> ServiceResult:
        """Merge fields into an existing document."""
        return await self._execute_write(OperationKind.UPDATE, collection, doc_id, data)

    async def upsert_document(self, collection: str, doc_id: str, data: Record) -> ServiceResult:
        """Create the document or merge fields into it."""
        return await self._execute_write(OperationKind.UPSERT, collection, doc_id, data)

    async def delete_document(self, collection: str, doc_id: str) -> ServiceResult:
        """Delete a document; a document that is already gone counts as success."""
        return await self._execute_write(OperationKind.DELETE, collection, doc_id)

    async def batch_write(self, operations: Sequence[Union[BatchOperation, Dict[str, Any]]]) -> ServiceResult:
        """
        Apply several set/update/delete operations together.

        Dict entries use the keys ``type``, ``collection``, ``id``, ``data``
        and ``merge``.
        """
        try:
            batch = [self._to_batch_operation(op) for op in operations]
        except Exception as e:
            return ServiceResult.from_exception(
                InvalidOperationError(f"Invalid batch operation: {e}")
            )

        if self._mode is BackendMode.MOCK:
            await self._mock.commit_batch(batch)
            return ServiceResult.ok({"count": len(batch)})

        try:
            await self._remote.commit_batch(batch)
        except Exception as e:
            if is_connectivity_error(e):
                logger.warning(f"Network error, queueing batch of {len(batch)} operations: {e}")
                self._connection.set_network_status(False)
                for entry in batch:
                    await self._sync_engine.queue_operation(
                        QueuedOperation(
                            _BATCH_KINDS[entry.kind],
                            entry.collection,
                            doc_id=entry.doc_id,
                            data=None if entry.kind == "delete" else entry.data,
                        )
                    )
                return ServiceResult.pending({"count": len(batch)})

            backend_error = report_backend_error(self._bus, "batch_write", None, e)
            if self._demo_fallback:
                await self._mock.commit_batch(batch)
                return ServiceResult.ok({"count": len(batch)}, metadata={"fallback": "demo"})
            return ServiceResult.from_exception(backend_error)

        self._connection.set_network_status(True)
        return ServiceResult.ok({"count": len(batch)})

    @staticmethod
    def _to_batch_operation(op: Union[BatchOperation, Dict[str, Any]]) -> BatchOperation:
        if isinstance(op, BatchOperation):
            return op
        return BatchOperation(
            kind=op["type"],
            collection=op["collection"],
            doc_id=op["id"],
            data=op.get("data") or {},
            merge=bool(op.get("merge", False)),
        )

    async def apply_operation(self, operation: QueuedOperation) -> Dict[str, Any]:
        """
        Replay one queued write (used by the sync engine).

        Unlike the public write methods this raises, so the sync engine can
        tell transient failures from permanent ones.
        """
        if self._mode is BackendMode.MOCK:
            return await self._apply_to_store(self._mock, operation)

        try:
            result = await self._apply_to_store(self._remote, operation)
        except Exception as e:
            if is_not_found_error(e) and operation.kind is OperationKind.DELETE:
                return {"id": operation.doc_id}
            if is_connectivity_error(e):
                self._connection.set_network_status(False)
            else:
                report_backend_error(self._bus, f"replay {operation.kind.value}", operation.collection, e)
            raise

        self._connection.set_network_status(True)
        return result

    # =========================================================================
    # READS
    # =========================================================================

    async def get_collection_once(
        self,
        collection: str,
        conditions: Iterable[Any] = (),
        order: Optional[Sequence[str]] = None,
    ) -> List[Record]:
        """
        One-shot query.

        Falls back to the cached snapshot, then to sample data when the store
        lacks an index. Never raises for remote failures.
        """
        query = Query.build(collection, conditions, order)

        if self._mode is BackendMode.MOCK:
            return self._mock_records(query)

        try:
            records = await self._remote.query(query)
        except Exception as e:
            return await self._read_fallback(query, e)

        data = self.dedupe_collection(collection, records)
        self._connection.set_network_status(True)
        await self._cache.cache_collection(collection, data)
        return data

    async def _read_fallback(self, query: Query, error: BaseException) -> List[Record]:
        logger.error(f"Error reading '{query.collection}': {error}")

        cached = await self._cached_records(query)
        if cached is not None:
            logger.warning(f"Using cached '{query.collection}' due to error")
            self._connection.set_network_status(False)
            return cached

        if is_missing_index_error(error):
            logger.warning(INDEX_REMEDIATION)
            logger.warning(f"Index error details: {getattr(error, 'message', error)}")
            return self._sample_records(query)

        if is_connectivity_error(error):
            self._connection.set_network_status(False)
            return []

        report_backend_error(self._bus, "get_collection_once", query.collection, error)
        if self._demo_fallback:
            return self._mock_records(query)
        return []

    async def get_document(self, collection: str, doc_id: str) -> Optional[Record]:
        """Fetch a single document, falling back to the cached snapshot."""
        if self._mode is BackendMode.MOCK:
            return await self._mock.get(collection, doc_id)

        try:
            record = await self._remote.get(collection, doc_id)
        except Exception as e:
            logger.error(f"Error getting document {collection}/{doc_id}: {e}")
            cached = await self._cache.get_cached_collection(collection) or []
            match = next((r for r in cached if r.get("id") == doc_id), None)
            if is_connectivity_error(e):
                self._connection.set_network_status(False)
                return match
            if match is not None:
                return match
            report_backend_error(self._bus, "get_document", collection, e)
            if self._demo_fallback:
                return await self._mock.get(collection, doc_id)
            return None

        self._connection.set_network_status(True)
        return record

    def subscribe_collection(
        self,
        collection: str,
        on_next: Callable[[List[Record]], None],
        on_error: Optional[Callable[[BaseException], None]] = None,
        conditions: Iterable[Any] = (),
        order: Optional[Sequence[str]] = None,
    ) -> Subscription:
        """
        Live query.

        ``on_next`` receives the deduplicated records on every change; each
        delivery is cached. In mock mode one snapshot is delivered on the
        next loop iteration.
        """
        query = Query.build(collection, conditions, order)

        def handle_next(records: List[Record]) -> None:
            data = self.dedupe_collection(collection, records)
            self._spawn(self._cache.cache_collection(collection, data))
            on_next(data)

        if self._mode is BackendMode.MOCK:
            return self._mock.subscribe(query, handle_next, lambda e: None)

        def handle_error(error: BaseException) -> None:
            self._spawn(self._recover_subscription(query, error, on_next, on_error))

        try:
            return self._remote.subscribe(query, handle_next, handle_error)
        except Exception as e:
            logger.error(f"Subscription to '{collection}' failed to start: {e}")
            handle_error(e)
            return Subscription()

    async def _recover_subscription(
        self,
        query: Query,
        error: BaseException,
        on_next: Callable[[List[Record]], None],
        on_error: Optional[Callable[[BaseException], None]],
    ) -> None:
        cached = await self._cached_records(query)
        if cached is not None:
            logger.warning(f"Using cached '{query.collection}' due to subscription error: {error}")
            on_next(cached)
            self._connection.set_network_status(False)
            return

        if is_missing_index_error(error):
            logger.warning(INDEX_REMEDIATION)
            logger.warning(f"Index error details: {getattr(error, 'message', error)}")
            if on_error is not None:
                on_error(error)
            on_next(self._sample_records(query))
            return

        if is_connectivity_error(error):
            self._connection.set_network_status(False)

        if on_error is not None:
            on_error(error)
            return

        if not is_connectivity_error(error):
            report_backend_error(self._bus, "subscribe_collection", query.collection, error)
            if self._demo_fallback:
                on_next(self._mock_records(query))
