# =============================================================================
# pos_core/offline/connection_manager.py
# Network Status Tracking
# =============================================================================
"""
ConnectionManager - the process-wide online/offline flag.

The façade flips it whenever a remote call succeeds or fails with a
connectivity error; the UI observes it (offline banner) and the sync engine
replays the queue when it goes from offline to online.

Features:
- Change-only notifications (setting the same value twice is silent)
- Listener registration returning an unsubscribe callable
- Optional socket probe and background monitoring task
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from pos_core.events import EventBus, NetworkStatusChanged

logger = logging.getLogger(__name__)

NetworkCallback = Callable[[bool], None]


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass
class ConnectionState:
    """Current connection state with metadata."""
    status: ConnectionStatus = ConnectionStatus.ONLINE
    last_change: Optional[datetime] = None
    last_online: Optional[datetime] = None
    last_check: Optional[datetime] = None
    consecutive_failures: int = 0


class ConnectionManager:
    """
    Online/offline state holder.

    Assumes online until told otherwise.

    Usage:
        connection = ConnectionManager(bus)
        unsubscribe = connection.on_network_change(lambda online: print(online))
        connection.set_network_status(False)
    """

    CHECK_INTERVAL_ONLINE = 30      # Seconds between probes when online
    CHECK_INTERVAL_OFFLINE = 10     # Seconds between probes when offline
    CONNECTION_TIMEOUT = 5          # Timeout for a single probe
    PROBE_HOSTS: Tuple[Tuple[str, int], ...] = (
        ("8.8.8.8", 53),            # Google DNS
        ("1.1.1.1", 53),            # Cloudflare DNS
        ("208.67.222.222", 53),     # OpenDNS
    )

    def __init__(
        self,
        bus: Optional[EventBus] = None,
        initially_online: bool = True,
        probe_hosts: Optional[Sequence[Tuple[str, int]]] = None,
    ):
        self._bus = bus
        status = ConnectionStatus.ONLINE if initially_online else ConnectionStatus.OFFLINE
        self._state = ConnectionState(status=status)
        self._callbacks: List[NetworkCallback] = []
        self._probe_hosts = tuple(probe_hosts or self.PROBE_HOSTS)
        self._monitor_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_online(self) -> bool:
        return self._state.status == ConnectionStatus.ONLINE

    @property
    def is_offline(self) -> bool:
        return not self.is_online

    def set_network_status(self, is_online: bool) -> None:
        """Record the network state; listeners only hear about changes."""
        was_online = self.is_online
        now = datetime.now()
        if is_online:
            self._state.last_online = now
            self._state.consecutive_failures = 0
        else:
            self._state.consecutive_failures += 1

        if was_online == is_online:
            return

        self._state.status = ConnectionStatus.ONLINE if is_online else ConnectionStatus.OFFLINE
        self._state.last_change = now
        logger.info(
            f"Connection status changed: {'offline' if was_online else 'online'} -> "
            f"{self._state.status.value}"
        )

        self._notify_callbacks(is_online)
        if self._bus is not None:
            self._bus.publish(NetworkStatusChanged(is_online=is_online))

    def register_callback(self, callback: NetworkCallback) -> None:
        """Register a callback for connection status changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: NetworkCallback) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def on_network_change(self, callback: NetworkCallback) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        self.register_callback(callback)
        return lambda: self.unregister_callback(callback)

    def _notify_callbacks(self, is_online: bool) -> None:
        for callback in list(self._callbacks):
            try:
                callback(is_online)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}")

    # =========================================================================
    # PROBING
    # =========================================================================

    async def _probe(self, host: str, port: int) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=self.CONNECTION_TIMEOUT
            )
        except (OSError, asyncio.TimeoutError):
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    async def check_connection(self) -> bool:
        """
        Probe well-known hosts and update the state.

        Returns:
            True if any host was reachable
        """
        self._state.last_check = datetime.now()
        online = False
        for host, port in self._probe_hosts:
            if await self._probe(host, port):
                online = True
                break
        self.set_network_status(online)
        return online

    def start_monitoring(self) -> None:
        """Start periodic probing on the running event loop."""
        if self._monitor_task is not None and not self._monitor_task.done():
            return
        self._monitor_task = asyncio.get_running_loop().create_task(self._monitoring_loop())
        logger.debug("Connection monitoring started")

    async def stop_monitoring(self) -> None:
        if self._monitor_task is None:
            return
        self._monitor_task.cancel()
        try:
            await self._monitor_task
        except asyncio.CancelledError:
            pass
        self._monitor_task = None
        logger.debug("Connection monitoring stopped")

    async def _monitoring_loop(self) -> None:
        while True:
            try:
                await self.check_connection()
            except Exception as e:
                logger.error(f"Error in connection check: {e}")
            interval = self.CHECK_INTERVAL_ONLINE if self.is_online else self.CHECK_INTERVAL_OFFLINE
            await asyncio.sleep(interval)

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        return {
            "status": self._state.status.value,
            "is_online": self.is_online,
            "last_change": self._state.last_change.isoformat() if self._state.last_change else None,
            "last_online": self._state.last_online.isoformat() if self._state.last_online else None,
            "last_check": self._state.last_check.isoformat() if self._state.last_check else None,
            "failures": self._state.consecutive_failures,
        }
