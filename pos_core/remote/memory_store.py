# =============================================================================
# pos_core/remote/memory_store.py
# In-memory document store (demo mode)
# =============================================================================
"""
MemoryDocumentStore - the demo backend.

Every mutation is a plain read-modify-write on Python lists with no ``await``
in between, so interleaved coroutines on the event loop can never observe a
half-applied change.
"""

from __future__ import annotations
import asyncio
import copy
import itertools
import logging
from typing import Dict, List, Optional, Sequence

from pos_core.utils import Clock, now_ms
from .base import (
    BatchOperation,
    DocumentStore,
    ErrorCallback,
    Query,
    Record,
    RecordsCallback,
    Subscription,
)
from .sample_data import seed_collections

logger = logging.getLogger(__name__)


class MemoryDocumentStore(DocumentStore):
    """
    Document store living in process memory.

    Seeded lazily with the sample menu the first time anything reads it.
    """

    def __init__(self, seed: bool = True, clock: Optional[Clock] = None):
        self._collections: Dict[str, List[Record]] = {}
        self._seed = seed
        self._clock = clock or now_ms
        self._counter = itertools.count(1)

    def ensure_seeded(self) -> None:
        if self._seed and not self._collections.get("menu"):
            for name, records in seed_collections().items():
                existing = self._collections.get(name, [])
                self._collections[name] = records + existing
            logger.debug("Memory store seeded with sample data")

    def snapshot(self, collection: str) -> List[Record]:
        """Deep copy of a collection's records."""
        self.ensure_seeded()
        return copy.deepcopy(self._collections.get(collection, []))

    def _find(self, collection: str, doc_id: str) -> int:
        for idx, record in enumerate(self._collections.get(collection, [])):
            if record.get("id") == doc_id:
                return idx
        return -1

    def new_id(self) -> str:
        return f"mock-{self._clock()}-{next(self._counter)}"

    # ------------------------------------------------------------------
    # Synchronous mutations (shared by the async API and batches)
    # ------------------------------------------------------------------

    def _apply_set(self, collection: str, doc_id: str, data: Record, merge: bool) -> None:
        records = self._collections.setdefault(collection, [])
        idx = self._find(collection, doc_id)
        if idx >= 0:
            base = records[idx] if merge else {}
            records[idx] = {**base, **copy.deepcopy(data), "id": doc_id}
        else:
            records.append({"id": doc_id, **copy.deepcopy(data)})

    def _apply_update(self, collection: str, doc_id: str, data: Record) -> bool:
        idx = self._find(collection, doc_id)
        if idx < 0:
            return False
        records = self._collections[collection]
        records[idx] = {**records[idx], **copy.deepcopy(data), "id": doc_id}
        return True

    def _apply_delete(self, collection: str, doc_id: str) -> None:
        self._collections[collection] = [
            r for r in self._collections.get(collection, []) if r.get("id") != doc_id
        ]

    # ------------------------------------------------------------------
    # DocumentStore API
    # ------------------------------------------------------------------

    async def add(self, collection: str, data: Record) -> str:
        self.ensure_seeded()
        doc_id = self.new_id()
        self._collections.setdefault(collection, []).append({"id": doc_id, **copy.deepcopy(data)})
        return doc_id

    async def get(self, collection: str, doc_id: str) -> Optional[Record]:
        self.ensure_seeded()
        idx = self._find(collection, doc_id)
        return copy.deepcopy(self._collections[collection][idx]) if idx >= 0 else None

    async def set(self, collection: str, doc_id: str, data: Record, merge: bool = False) -> None:
        self.ensure_seeded()
        self._apply_set(collection, doc_id, data, merge)

    async def update(self, collection: str, doc_id: str, data: Record) -> bool:
        self.ensure_seeded()
        return self._apply_update(collection, doc_id, data)

    async def delete(self, collection: str, doc_id: str) -> None:
        self.ensure_seeded()
        self._apply_delete(collection, doc_id)
        logger.debug(f"[MOCK] Deleted {collection}/{doc_id}")

    async def query(self, query: Query) -> List[Record]:
        return query.apply(self.snapshot(query.collection))

    def subscribe(self, query: Query, on_next: RecordsCallback, on_error: ErrorCallback) -> Subscription:
        """Deliver one snapshot on the next loop iteration; no live updates."""
        subscription = Subscription()
        data = query.apply(self.snapshot(query.collection))

        def deliver() -> None:
            if not subscription.closed:
                on_next(data)

        asyncio.get_running_loop().call_soon(deliver)
        return subscription

    async def commit_batch(self, operations: Sequence[BatchOperation]) -> None:
        self.ensure_seeded()
        for op in operations:
            if op.kind == "set":
                self._apply_set(op.collection, op.doc_id, op.data, merge=True)
            elif op.kind == "update":
                self._apply_update(op.collection, op.doc_id, op.data)
            elif op.kind == "delete":
                self._apply_delete(op.collection, op.doc_id)
