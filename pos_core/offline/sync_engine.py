# =============================================================================
# pos_core/offline/sync_engine.py
# Offline Mutation Queue and Replay
# =============================================================================
"""
SyncEngine - durable queue of writes made while offline.

Features:
- FIFO queue persisted under a single storage key
- Automatic replay when the connection comes back
- Single-flight replay (overlapping triggers collapse into a no-op)
- Transient failures stay queued, anything else is dropped after logging
- Sync status tracking and event callbacks
"""

from __future__ import annotations
import asyncio
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Set

from pos_core.errors import InvalidOperationError, StorageError, is_connectivity_error
from pos_core.events import EventBus, SyncCompleted
from pos_core.logging import LogContext
from pos_core.storage import KeyValueStorage
from pos_core.utils import Clock, now_ms
from .connection_manager import ConnectionManager

logger = logging.getLogger(__name__)

QUEUE_KEY = "queue_operations"


class OperationKind(str, Enum):
    """Kinds of deferred mutation."""
    ADD = "add"
    UPDATE = "update"
    UPSERT = "upsert"
    DELETE = "delete"


def generate_operation_id(timestamp: int) -> str:
    return f"op_{timestamp}_{secrets.token_hex(5)}"


@dataclass
class QueuedOperation:
    """One deferred mutation."""
    kind: OperationKind
    collection: str
    doc_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    id: Optional[str] = None
    timestamp: Optional[int] = None

    def __post_init__(self):
        try:
            self.kind = OperationKind(self.kind)
        except ValueError:
            raise InvalidOperationError(f"Unknown operation kind '{self.kind}'", kind=str(self.kind))
        if self.kind is OperationKind.ADD:
            if self.data is None:
                raise InvalidOperationError("add needs a payload", kind=self.kind.value)
        elif not self.doc_id:
            raise InvalidOperationError(f"{self.kind.value} needs a document id", kind=self.kind.value)
        elif self.kind is not OperationKind.DELETE and self.data is None:
            raise InvalidOperationError(f"{self.kind.value} needs a payload", kind=self.kind.value)

    def to_dict(self) -> Dict[str, Any]:
        entry = {
            "id": self.id,
            "type": self.kind.value,
            "collection": self.collection,
            "timestamp": self.timestamp,
        }
        if self.doc_id is not None:
            entry["docId"] = self.doc_id
        if self.data is not None:
            entry["data"] = self.data
        return entry

    @classmethod
    def from_dict(cls, entry: Dict[str, Any]) -> QueuedOperation:
        return cls(
            kind=entry["type"],
            collection=entry["collection"],
            doc_id=entry.get("docId"),
            data=entry.get("data"),
            id=entry.get("id"),
            timestamp=entry.get("timestamp"),
        )


@dataclass
class SyncResult:
    """Outcome of replaying one queued operation."""
    operation: QueuedOperation
    success: bool
    result: Any = None
    error: Optional[BaseException] = None
    retained: bool = False


@dataclass
class SyncState:
    """Current sync state."""
    is_syncing: bool = False
    last_sync: Optional[datetime] = None
    last_sync_success: Optional[datetime] = None
    pending_count: int = 0
    failed_count: int = 0
    total_synced: int = 0


class OperationExecutor(Protocol):
    """Whatever re-issues queued writes against the remote store."""

    async def apply_operation(self, operation: QueuedOperation) -> Any:
        ...


class SyncEngine:
    """
    Offline queue and replay engine.

    Usage:
        engine = SyncEngine(storage, connection, bus=bus)
        engine.attach_executor(data_service)
        engine.initialize()   # replay on reconnect
        await engine.queue_operation(QueuedOperation("add", "orders", data={...}))
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        connection: ConnectionManager,
        clock: Optional[Clock] = None,
        bus: Optional[EventBus] = None,
    ):
        self._storage = storage
        self._connection = connection
        self._clock = clock or now_ms
        self._bus = bus
        self._executor: Optional[OperationExecutor] = None
        self._state = SyncState()
        self._callbacks: List[Callable[[SyncState], None]] = []
        self._tasks: Set[asyncio.Task] = set()
        self._queue_lock = asyncio.Lock()
        self._initialized = False

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_syncing(self) -> bool:
        return self._state.is_syncing

    def attach_executor(self, executor: OperationExecutor) -> None:
        self._executor = executor

    def initialize(self) -> None:
        """Register for connection changes."""
        if self._initialized:
            return
        self._connection.register_callback(self._on_connection_change)
        self._initialized = True
        logger.info("SyncEngine initialized")

    def shutdown(self) -> None:
        self._connection.unregister_callback(self._on_connection_change)
        self._initialized = False

    def _on_connection_change(self, is_online: bool) -> None:
        if is_online:
            logger.info("Connection restored, triggering sync")
            self.trigger_sync()

    # =========================================================================
    # QUEUE
    # =========================================================================

    async def _load_raw(self) -> List[Dict[str, Any]]:
        queue = await self._storage.get_json(QUEUE_KEY, default=[])
        if not isinstance(queue, list):
            raise StorageError("Queue is not a list", key=QUEUE_KEY)
        return queue

    async def queue_operation(self, operation: QueuedOperation) -> Optional[QueuedOperation]:
        """
        Append an operation to the durable queue.

        Assigns an id and timestamp. If the connection is up, a replay is
        started in the background. Storage failures are logged, never raised.

        Returns:
            The queued operation, or None if it could not be persisted
        """
        operation.timestamp = self._clock()
        if not operation.id:
            operation.id = generate_operation_id(operation.timestamp)

        try:
            async with self._queue_lock:
                queue = await self._load_raw()
                queue.append(operation.to_dict())
                await self._storage.set_json(QUEUE_KEY, queue)
        except Exception as e:
            logger.error(f"Error queueing operation {operation.id}: {e}")
            return None

        self._state.pending_count = len(queue)
        logger.info(f"Queued {operation.kind.value} on '{operation.collection}' ({operation.id})")

        if self._connection.is_online:
            self.trigger_sync()
        return operation

    async def get_pending_operations(self) -> List[QueuedOperation]:
        """Queued operations in enqueue order; unreadable entries are dropped."""
        try:
            raw = await self._load_raw()
        except Exception as e:
            logger.error(f"Error getting pending operations: {e}")
            return []

        operations = []
        unreadable = []
        for entry in raw:
            try:
                operations.append(QueuedOperation.from_dict(entry))
            except (InvalidOperationError, KeyError, TypeError, AttributeError) as e:
                logger.warning(f"Dropping unreadable queue entry {entry!r}: {e}")
                unreadable.append(entry)

        if unreadable:
            await self._drop_entries(unreadable)
        operations.sort(key=lambda op: op.timestamp or 0)
        return operations

    async def _drop_entries(self, entries: List[Any]) -> None:
        try:
            async with self._queue_lock:
                queue = await self._load_raw()
                remaining = [entry for entry in queue if entry not in entries]
                await self._storage.set_json(QUEUE_KEY, remaining)
            self._state.pending_count = len(remaining)
        except Exception as e:
            logger.error(f"Error dropping unreadable queue entries: {e}")

    async def get_queue_size(self) -> int:
        return len(await self.get_pending_operations())

    async def remove_operation(self, operation_id: str) -> None:
        try:
            async with self._queue_lock:
                queue = await self._load_raw()
                remaining = [entry for entry in queue if entry.get("id") != operation_id]
                await self._storage.set_json(QUEUE_KEY, remaining)
            self._state.pending_count = len(remaining)
        except Exception as e:
            logger.error(f"Error removing operation {operation_id}: {e}")

    async def clear_queue(self) -> None:
        try:
            async with self._queue_lock:
                await self._storage.remove_item(QUEUE_KEY)
            self._state.pending_count = 0
        except Exception as e:
            logger.error(f"Error clearing queue: {e}")

    # =========================================================================
    # REPLAY
    # =========================================================================

    def trigger_sync(self) -> Optional[asyncio.Task]:
        """Start a replay in the background without waiting for it."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, sync not triggered")
            return None

        task = loop.create_task(self.sync_pending_operations())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_for_sync(self) -> None:
        """Wait for background replays started so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def sync_pending_operations(self) -> List[SyncResult]:
        """
        Replay the queue in order.

        Returns:
            One SyncResult per attempted operation; empty when another replay
            is running, when offline, or when there is nothing to do
        """
        if self._state.is_syncing or not self._connection.is_online:
            return []

        # Set before the first await so overlapping calls bail out above
        self._state.is_syncing = True
        self._state.last_sync = datetime.now()
        self._notify_callbacks()

        results: List[SyncResult] = []
        try:
            queue = await self.get_pending_operations()
            if not queue:
                return results
            if self._executor is None:
                logger.warning("No executor attached, leaving queue untouched")
                return results

            with LogContext(logger, f"Replaying {len(queue)} queued operations"):
                for operation in queue:
                    results.append(await self._replay(operation))

            synced = sum(1 for r in results if r.success)
            retained = sum(1 for r in results if r.retained)
            dropped = len(results) - synced - retained

            self._state.total_synced += synced
            self._state.failed_count = dropped + retained
            self._state.pending_count = await self.get_queue_size()
            if synced == len(results):
                self._state.last_sync_success = datetime.now()

            logger.info(f"Sync complete: {synced} synced, {dropped} dropped, {retained} kept for retry")
            if self._bus is not None:
                self._bus.publish(SyncCompleted(synced=synced, dropped=dropped, retained=retained))
            return results

        except Exception as e:
            logger.error(f"Sync failed: {e}")
            return results

        finally:
            self._state.is_syncing = False
            self._notify_callbacks()

    async def _replay(self, operation: QueuedOperation) -> SyncResult:
        try:
            result = await self._executor.apply_operation(operation)
        except Exception as e:
            if is_connectivity_error(e):
                logger.warning(f"Operation {operation.id} kept for retry: {e}")
                return SyncResult(operation, success=False, error=e, retained=True)
            logger.error(f"Dropping operation {operation.id} after permanent error: {e}")
            await self.remove_operation(operation.id)
            return SyncResult(operation, success=False, error=e)

        await self.remove_operation(operation.id)
        return SyncResult(operation, success=True, result=result)

    # =========================================================================
    # CALLBACKS
    # =========================================================================

    def register_callback(self, callback: Callable[[SyncState], None]) -> None:
        """Register a callback for sync state changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[SyncState], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in sync callback: {e}")

    async def get_status_display(self) -> Dict[str, Any]:
        """Get sync status for UI display."""
        return {
            "is_syncing": self._state.is_syncing,
            "last_sync": self._state.last_sync.isoformat() if self._state.last_sync else None,
            "last_success": self._state.last_sync_success.isoformat() if self._state.last_sync_success else None,
            "pending_count": await self.get_queue_size(),
            "failed_count": self._state.failed_count,
            "total_synced": self._state.total_synced,
        }
