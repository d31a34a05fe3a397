# =============================================================================
# pos_core/events/bus.py
# Bounded publish/subscribe channel with typed payloads
# =============================================================================
"""
EventBus - in-process message passing between the core and the UI.

Subscribers register for an event class and receive every published event
that is an instance of it, so subscribing to ``Event`` sees everything.
The bus keeps a bounded history of recent events for late subscribers
(status screens, diagnostics).
"""

from __future__ import annotations
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Deque, Dict, List, Optional, Type

if TYPE_CHECKING:
    from pos_core.errors import BackendError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    """Base class for all bus events."""
    timestamp: float = field(default_factory=time.time, compare=False, kw_only=True)


@dataclass(frozen=True)
class NetworkStatusChanged(Event):
    is_online: bool


@dataclass(frozen=True)
class LockStateChanged(Event):
    is_locked: bool
    reason: str = ""


@dataclass(frozen=True)
class BackendErrorReported(Event):
    error: BackendError


@dataclass(frozen=True)
class SyncCompleted(Event):
    synced: int
    dropped: int
    retained: int


@dataclass(frozen=True)
class AlertRaised(Event):
    """User-facing notice (toast/banner) raised from non-UI code."""
    title: str
    message: str = ""
    level: str = "info"


EventCallback = Callable[[Any], None]


class EventBus:
    """
    Typed event bus.

    Usage:
        bus = EventBus()
        unsubscribe = bus.subscribe(NetworkStatusChanged, lambda e: print(e.is_online))
        bus.publish(NetworkStatusChanged(is_online=False))
        unsubscribe()
    """

    DEFAULT_HISTORY_SIZE = 100

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE):
        self._subscribers: Dict[Type[Event], List[EventCallback]] = {}
        self._history: Deque[Event] = deque(maxlen=history_size)

    def subscribe(self, event_type: Type[Event], callback: EventCallback) -> Callable[[], None]:
        """Register a callback; returns a function that removes it again."""
        callbacks = self._subscribers.setdefault(event_type, [])
        if callback not in callbacks:
            callbacks.append(callback)

        def unsubscribe() -> None:
            self.unsubscribe(event_type, callback)

        return unsubscribe

    def unsubscribe(self, event_type: Type[Event], callback: EventCallback) -> None:
        callbacks = self._subscribers.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def publish(self, event: Event) -> None:
        """Record the event and deliver it to matching subscribers."""
        self._history.append(event)

        for event_type, callbacks in list(self._subscribers.items()):
            if not isinstance(event, event_type):
                continue
            for callback in list(callbacks):
                try:
                    callback(event)
                except Exception as e:
                    logger.error(f"Error in {type(event).__name__} subscriber: {e}")

    def history(self, event_type: Optional[Type[Event]] = None) -> List[Event]:
        """Recent events, oldest first, optionally filtered by type."""
        if event_type is None:
            return list(self._history)
        return [event for event in self._history if isinstance(event, event_type)]

    def alert(self, title: str, message: str = "", level: str = "info") -> None:
        self.publish(AlertRaised(title=title, message=message, level=level))

