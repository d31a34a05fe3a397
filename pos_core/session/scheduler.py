# =============================================================================
# pos_core/session/scheduler.py
# Cancellable one-shot timers
# =============================================================================

from __future__ import annotations
import asyncio
import logging
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Anything that can run a callback after a delay in seconds."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class AsyncioScheduler:
    """Schedules on the running asyncio loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


class IdleTimer:
    """
    A single countdown that is always cancelled before being rescheduled,
    so it can never fire twice.
    """

    def __init__(self, scheduler: Scheduler, on_expire: Callable[[], None]):
        self._scheduler = scheduler
        self._on_expire = on_expire
        self._handle: Optional[TimerHandle] = None

    @property
    def is_running(self) -> bool:
        return self._handle is not None

    def start(self, seconds: float) -> None:
        self.cancel()
        self._handle = self._scheduler.call_later(seconds, self._fire)
        logger.debug(f"Idle timer started ({seconds:.0f}s)")

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._on_expire()
