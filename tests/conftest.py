# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import asyncio
import heapq
import itertools
from typing import Callable, List, Optional, Tuple

import pytest

from pos_core.config import AppConfig, BackendMode, PinLockSettings, SupabaseSettings
from pos_core.errors import RemoteStoreError
from pos_core.events import EventBus
from pos_core.offline import CacheManager, ConnectionManager, SyncEngine, UnifiedDataService
from pos_core.remote import MemoryDocumentStore, Subscription
from pos_core.session import PinLockManager
from pos_core.storage import MemoryStorage

# 2024-03-05 09:30:00 UTC
START_MS = 1709631000000


def run(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


# =============================================================================
# FAKE TIME
# =============================================================================

class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = START_MS):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class _FakeHandle:
    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Deterministic call_later driven by a FakeClock."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self._timers: List[Tuple[int, int, Callable[[], None], _FakeHandle]] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> _FakeHandle:
        handle = _FakeHandle()
        due = self.clock.now + int(delay * 1000)
        heapq.heappush(self._timers, (due, next(self._seq), callback, handle))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for *_, handle in self._timers if not handle.cancelled)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every timer that comes due on the way."""
        target = self.clock.now + int(seconds * 1000)
        while self._timers and self._timers[0][0] <= target:
            due, _, callback, handle = heapq.heappop(self._timers)
            if handle.cancelled:
                continue
            self.clock.now = max(self.clock.now, due)
            callback()
        self.clock.now = target


# =============================================================================
# FAILURE-INJECTING REMOTE STORE
# =============================================================================

class FlakyDocumentStore(MemoryDocumentStore):
    """
    In-memory remote that raises a chosen error while ``fail_with`` is set.

    ``fail_on`` limits the failure to some methods. Every successful
    mutation is recorded in ``writes`` as ``(method, collection, doc_id)``.
    """

    def __init__(self):
        super().__init__(seed=False)
        self.fail_with: Optional[BaseException] = None
        self.fail_on: Optional[set] = None
        self.writes: List[Tuple[str, str, Optional[str]]] = []

    def go_offline(self) -> None:
        self.fail_with = RemoteStoreError("The client is offline", code="unavailable")

    def go_online(self) -> None:
        self.fail_with = None
        self.fail_on = None

    def _check(self, method: str) -> None:
        if self.fail_with is not None and (self.fail_on is None or method in self.fail_on):
            raise self.fail_with

    async def add(self, collection, data):
        self._check("add")
        doc_id = await super().add(collection, data)
        self.writes.append(("add", collection, doc_id))
        return doc_id

    async def get(self, collection, doc_id):
        self._check("get")
        return await super().get(collection, doc_id)

    async def set(self, collection, doc_id, data, merge=False):
        self._check("set")
        await super().set(collection, doc_id, data, merge)
        self.writes.append(("set", collection, doc_id))

    async def update(self, collection, doc_id, data):
        self._check("update")
        updated = await super().update(collection, doc_id, data)
        if updated:
            self.writes.append(("update", collection, doc_id))
        return updated

    async def delete(self, collection, doc_id):
        self._check("delete")
        await super().delete(collection, doc_id)
        self.writes.append(("delete", collection, doc_id))

    async def query(self, query):
        self._check("query")
        return await super().query(query)

    def subscribe(self, query, on_next, on_error):
        if self.fail_with is not None and (self.fail_on is None or "subscribe" in self.fail_on):
            error = self.fail_with
            subscription = Subscription()

            def deliver():
                if not subscription.closed:
                    on_error(error)

            asyncio.get_running_loop().call_soon(deliver)
            return subscription
        return super().subscribe(query, on_next, on_error)

    async def commit_batch(self, operations):
        self._check("commit_batch")
        await super().commit_batch(operations)
        self.writes.extend((op.kind, op.collection, op.doc_id) for op in operations)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return FakeScheduler(clock)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def remote():
    return FlakyDocumentStore()


@pytest.fixture
def supabase_config():
    """Config resolved to the remote backend (the remote itself is injected)."""
    return AppConfig(
        backend_mode=BackendMode.SUPABASE,
        supabase=SupabaseSettings(url="https://example.supabase.co", key="test-key"),
    )


@pytest.fixture
def mock_config():
    return AppConfig(backend_mode=BackendMode.MOCK)


@pytest.fixture
def connection(bus):
    return ConnectionManager(bus=bus)


@pytest.fixture
def cache(storage, clock):
    return CacheManager(storage, clock=clock)


@pytest.fixture
def sync_engine(storage, connection, clock, bus):
    engine = SyncEngine(storage, connection, clock=clock, bus=bus)
    engine.initialize()
    return engine


def build_data_service(config, connection, cache, sync_engine, remote=None, bus=None, clock=None):
    return UnifiedDataService(
        config,
        connection,
        cache,
        sync_engine,
        MemoryDocumentStore(clock=clock),
        remote=remote,
        bus=bus,
        clock=clock,
    )


@pytest.fixture
def data_service(supabase_config, connection, cache, sync_engine, remote, bus, clock):
    """Façade over the flaky remote."""
    return build_data_service(supabase_config, connection, cache, sync_engine, remote, bus, clock)


@pytest.fixture
def mock_data_service(mock_config, connection, cache, sync_engine, bus, clock):
    """Façade in demo mode (memory store only)."""
    return build_data_service(mock_config, connection, cache, sync_engine, bus=bus, clock=clock)


@pytest.fixture
def pin_settings():
    return PinLockSettings()


@pytest.fixture
def pin_lock(storage, pin_settings, scheduler, clock, bus):
    """Uninitialized PIN lock on fake time; call ``await pin_lock.initialize()``."""
    return PinLockManager(storage, pin_settings, scheduler=scheduler, clock=clock, bus=bus)
