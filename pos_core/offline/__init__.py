# =============================================================================
# pos_core/offline/__init__.py
# Offline-first data access
# =============================================================================
"""
Offline-first data layer.

Components:
- ConnectionManager: online/offline flag and change listeners
- CacheManager: last-known collection snapshots
- SyncEngine: durable queue of offline writes and their replay
- UnifiedDataService: the façade the UI talks to
"""

from .connection_manager import ConnectionManager, ConnectionState, ConnectionStatus
from .cache_manager import CacheManager
from .sync_engine import (
    OperationKind,
    QueuedOperation,
    SyncEngine,
    SyncResult,
    SyncState,
)
from .unified_data_service import UnifiedDataService

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStatus",
    "CacheManager",
    "OperationKind",
    "QueuedOperation",
    "SyncEngine",
    "SyncResult",
    "SyncState",
    "UnifiedDataService",
]
