# =============================================================================
# pos_core/context.py
# Application context - explicit wiring of every POS core component
# =============================================================================
"""
AppContext owns one instance of each component and their teardown.

Screens receive the context (or the pieces they need) instead of reaching
for module-level singletons.

Usage:
    ctx = await AppContext.create()
    await ctx.pin_lock.set_pin("1234")
    menu = await ctx.data_service.get_collection_once("menu")
    ...
    await ctx.close()
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from pos_core.config import AppConfig, BackendMode, load_config
from pos_core.events import EventBus
from pos_core.logging import setup_logging
from pos_core.offline import CacheManager, ConnectionManager, SyncEngine, UnifiedDataService
from pos_core.remote import DocumentStore, MemoryDocumentStore
from pos_core.services import OrderService
from pos_core.session import PinLockManager, Scheduler
from pos_core.storage import KeyValueStorage, SQLiteStorage
from pos_core.utils import Clock, now_ms

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    config: AppConfig
    storage: KeyValueStorage
    bus: EventBus
    connection: ConnectionManager
    cache: CacheManager
    sync_engine: SyncEngine
    data_service: UnifiedDataService
    pin_lock: PinLockManager
    orders: OrderService

    @classmethod
    async def create(
        cls,
        config: Optional[AppConfig] = None,
        storage: Optional[KeyValueStorage] = None,
        remote: Optional[DocumentStore] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Optional[Clock] = None,
        configure_logging: bool = True,
        monitor_connection: bool = False,
    ) -> AppContext:
        """
        Build and initialize every component.

        Args:
            config: Resolved configuration (default: load_config())
            storage: Key-value storage (default: SQLite at config.storage_path)
            remote: Remote document store; built from the Supabase settings
                when omitted in SUPABASE mode
            scheduler: Timer scheduler for the PIN lock (tests pass a fake)
            clock: Epoch-millisecond clock shared by all components
            configure_logging: Call setup_logging with the configured level
            monitor_connection: Start the background connectivity probe
        """
        config = config or load_config()
        config.validate()
        clock = clock or now_ms

        if configure_logging:
            setup_logging(config.log_level, log_to_file=config.log_to_file)

        if storage is None:
            storage = SQLiteStorage(config.storage_path)

        if config.backend_mode is BackendMode.SUPABASE and remote is None:
            from pos_core.remote.supabase_store import SupabaseDocumentStore
            remote = SupabaseDocumentStore.from_settings(config.supabase)

        bus = EventBus()
        connection = ConnectionManager(bus=bus)
        cache = CacheManager(storage, max_age=config.cache_max_age, clock=clock)
        sync_engine = SyncEngine(storage, connection, clock=clock, bus=bus)
        sync_engine.initialize()

        data_service = UnifiedDataService(
            config,
            connection,
            cache,
            sync_engine,
            MemoryDocumentStore(clock=clock),
            remote=remote,
            bus=bus,
            clock=clock,
        )

        pin_lock = PinLockManager(storage, config.pin_lock, scheduler=scheduler, clock=clock, bus=bus)
        await pin_lock.initialize()

        if monitor_connection:
            connection.start_monitoring()

        logger.info(f"POS core ready ({config.backend_mode.value} backend)")
        return cls(
            config=config,
            storage=storage,
            bus=bus,
            connection=connection,
            cache=cache,
            sync_engine=sync_engine,
            data_service=data_service,
            pin_lock=pin_lock,
            orders=OrderService(data_service, clock=clock),
        )

    async def close(self) -> None:
        """Stop timers and background tasks, then release storage."""
        await self.pin_lock.close()
        await self.connection.stop_monitoring()
        await self.sync_engine.wait_for_sync()
        self.sync_engine.shutdown()
        await self.data_service.close()
        await self.storage.close()
        logger.info("POS core closed")
