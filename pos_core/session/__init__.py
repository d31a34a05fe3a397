# =============================================================================
# pos_core/session/__init__.py
# PIN-gated session auto-lock
# =============================================================================

from .pin_lock import AppState, LockPhase, PinLockManager, PinLockState
from .scheduler import AsyncioScheduler, IdleTimer, Scheduler

__all__ = [
    "AppState",
    "LockPhase",
    "PinLockManager",
    "PinLockState",
    "AsyncioScheduler",
    "IdleTimer",
    "Scheduler",
]
