# =============================================================================
# pos_core/events/__init__.py
# Typed event bus
# =============================================================================

from .bus import (
    Event,
    NetworkStatusChanged,
    LockStateChanged,
    BackendErrorReported,
    SyncCompleted,
    AlertRaised,
    EventBus,
)

__all__ = [
    "Event",
    "NetworkStatusChanged",
    "LockStateChanged",
    "BackendErrorReported",
    "SyncCompleted",
    "AlertRaised",
    "EventBus",
]
