# =============================================================================
# pos_core/session/pin_lock.py
# Session Auto-Lock Timer
# =============================================================================
"""
PinLockManager - app-wide inactivity lock behind a PIN.

Lifecycle:
    UNINITIALIZED -> DISABLED -> UNLOCKED <-> LOCKED

- ``set_pin`` stores a hashed PIN, enables the lock and starts the idle timer
- every user interaction calls ``register_activity`` to restart the countdown
- the countdown expiring, or returning from background after the timeout,
  locks the session until ``unlock`` gets the right PIN
- ``reset_pin`` wipes the PIN and disables the lock (admin recovery)

All operations return ServiceResult objects; nothing here raises into UI
code. The idle timer never runs while the session is locked or disabled.

Note: there is no lockout or backoff after repeated wrong PINs.
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Optional, Set

from pos_core.auth import hash_credential, verify_password
from pos_core.config import PinLockSettings
from pos_core.errors import CredentialMismatchError, PinNotSetError, PinValidationError
from pos_core.events import EventBus, LockStateChanged
from pos_core.services.base_service import BaseService, ServiceResult
from pos_core.storage import KeyValueStorage
from pos_core.utils import MS_PER_MINUTE, Clock, now_ms
from .scheduler import AsyncioScheduler, IdleTimer, Scheduler

logger = logging.getLogger(__name__)

PIN_HASH_KEY = "pin_hash"
PIN_ENABLED_KEY = "pin_enabled"
PIN_TIMEOUT_KEY = "pin_timeout_minutes"
LAST_ACTIVITY_KEY = "last_activity_time"
LOCK_STATE_KEY = "lock_state"

LOCKED = "locked"
UNLOCKED = "unlocked"


class AppState(str, Enum):
    """Foreground state reported by the UI shell."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    BACKGROUND = "background"


class LockPhase(Enum):
    UNINITIALIZED = "uninitialized"
    DISABLED = "disabled"
    UNLOCKED = "unlocked"
    LOCKED = "locked"


@dataclass(frozen=True)
class PinLockState:
    """Snapshot of the lock for UI rendering."""
    is_locked: bool
    pin_enabled: bool
    timeout_minutes: int
    last_activity: Optional[int]
    phase: LockPhase


class PinLockManager(BaseService):
    """
    Session auto-lock.

    Usage:
        lock = PinLockManager(storage, config.pin_lock, bus=bus)
        await lock.initialize()
        result = await lock.set_pin("1234")
        lock.register_activity()        # from every tap/keypress handler
        result = await lock.unlock("1234")
        if not result:
            show_error(result.error)
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        settings: Optional[PinLockSettings] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Optional[Clock] = None,
        bus: Optional[EventBus] = None,
    ):
        super().__init__()
        self._storage = storage
        self._settings = settings or PinLockSettings()
        self._clock = clock or now_ms
        self._bus = bus
        self._timer = IdleTimer(scheduler or AsyncioScheduler(), self._on_timeout)
        self._writes: Set[asyncio.Task] = set()

        self._initialized = False
        self._is_locked = False
        self._pin_enabled = False
        self._timeout_minutes = self._settings.default_timeout_minutes
        self._last_activity: Optional[int] = None

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def is_locked(self) -> bool:
        return self._is_locked

    @property
    def pin_enabled(self) -> bool:
        return self._pin_enabled

    @property
    def timeout_minutes(self) -> int:
        return self._timeout_minutes

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def timer_running(self) -> bool:
        return self._timer.is_running

    @property
    def phase(self) -> LockPhase:
        if not self._initialized:
            return LockPhase.UNINITIALIZED
        if not self._pin_enabled:
            return LockPhase.DISABLED
        return LockPhase.LOCKED if self._is_locked else LockPhase.UNLOCKED

    @property
    def state(self) -> PinLockState:
        return PinLockState(
            is_locked=self._is_locked,
            pin_enabled=self._pin_enabled,
            timeout_minutes=self._timeout_minutes,
            last_activity=self._last_activity,
            phase=self.phase,
        )

    @property
    def _timeout_ms(self) -> int:
        return self._timeout_minutes * MS_PER_MINUTE

    def _valid_timeout(self, minutes: Any) -> bool:
        return (
            isinstance(minutes, int)
            and not isinstance(minutes, bool)
            and self._settings.min_timeout_minutes <= minutes <= self._settings.max_timeout_minutes
        )

    # =========================================================================
    # INTERNAL TRANSITIONS
    # =========================================================================

    def _restart_timer(self) -> None:
        self._timer.cancel()
        if not self._pin_enabled or self._is_locked:
            return
        self._timer.start(self._timeout_ms / 1000)

    def _set_locked(self, locked: bool, reason: str) -> None:
        changed = locked != self._is_locked
        self._is_locked = locked
        if locked:
            self._timer.cancel()
        if changed:
            logger.info(f"Session {'locked' if locked else 'unlocked'} ({reason})")
            if self._bus is not None:
                self._bus.publish(LockStateChanged(is_locked=locked, reason=reason))

    async def _persist_activity(self) -> None:
        self._last_activity = self._clock()
        await self._storage.set_item(LAST_ACTIVITY_KEY, str(self._last_activity))

    def _spawn_write(self, coro: Awaitable[Any], what: str) -> None:
        """Persist in the background; failures are logged only."""
        async def guarded() -> None:
            try:
                await coro
            except Exception as e:
                logger.warning(f"Failed to persist {what}: {e}")

        try:
            task = asyncio.get_running_loop().create_task(guarded())
        except RuntimeError:
            coro.close()
            logger.debug(f"No running event loop, {what} not persisted")
            return
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)

    def _on_timeout(self) -> None:
        if not self._pin_enabled or self._is_locked:
            return
        self._set_locked(True, "idle timeout")
        self._spawn_write(self._storage.set_item(LOCK_STATE_KEY, LOCKED), "lock state")

    async def flush(self) -> None:
        """Wait for background writes to finish."""
        while self._writes:
            await asyncio.gather(*list(self._writes), return_exceptions=True)

    async def close(self) -> None:
        self._timer.cancel()
        await self.flush()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def initialize(self) -> None:
        """
        Restore the lock from storage.

        Starts locked if the last session was locked or the idle timeout has
        passed since the last recorded activity; otherwise starts unlocked
        with a fresh countdown.
        """
        if self._initialized:
            return

        try:
            enabled = await self._storage.get_item(PIN_ENABLED_KEY)
            timeout = await self._storage.get_item(PIN_TIMEOUT_KEY)
            lock_state = await self._storage.get_item(LOCK_STATE_KEY)
            last_activity = await self._storage.get_item(LAST_ACTIVITY_KEY)

            self._pin_enabled = enabled == "true"
            if self._pin_enabled and not await self._storage.get_item(PIN_HASH_KEY):
                logger.warning("PIN lock was enabled without a stored PIN, disabling it")
                self._pin_enabled = False
                await self._storage.set_item(PIN_ENABLED_KEY, "false")
                await self._storage.set_item(LOCK_STATE_KEY, UNLOCKED)
            if timeout is not None:
                try:
                    minutes = int(timeout)
                except ValueError:
                    minutes = None
                if self._valid_timeout(minutes):
                    self._timeout_minutes = minutes
                else:
                    logger.warning(f"Ignoring stored timeout {timeout!r}")
            self._last_activity = int(last_activity) if last_activity else None

            if self._pin_enabled:
                if lock_state == LOCKED:
                    self._set_locked(True, "restored")
                elif self._last_activity is not None and self._clock() - self._last_activity > self._timeout_ms:
                    self._set_locked(True, "timeout since last session")
                    await self._storage.set_item(LOCK_STATE_KEY, LOCKED)
                else:
                    await self._persist_activity()
        except Exception as e:
            logger.error(f"Failed to initialize PIN lock: {e}")
        finally:
            self._initialized = True

        self._restart_timer()
        logger.info(f"PIN lock initialized: {self.phase.value}")

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    async def _stored_hash(self) -> str:
        stored = await self._storage.get_item(PIN_HASH_KEY)
        if not stored:
            raise PinNotSetError()
        return stored

    def _validate_pin(self, pin: Optional[str]) -> None:
        if not pin or len(pin) < self._settings.min_pin_length:
            raise PinValidationError(
                f"PIN must be at least {self._settings.min_pin_length} digits", field="pin"
            )

    def _hash(self, pin: str) -> str:
        return hash_credential(pin, self._settings.hash_scheme, self._settings.bcrypt_rounds)

    async def unlock(self, pin: str) -> ServiceResult:
        """Unlock with the PIN; a wrong PIN leaves the lock untouched."""
        async def _unlock() -> None:
            stored = await self._stored_hash()
            if not verify_password(pin, stored):
                raise CredentialMismatchError("Incorrect PIN")
            self._set_locked(False, "unlocked with PIN")
            await self._storage.set_item(LOCK_STATE_KEY, UNLOCKED)
            await self._persist_activity()
            self._restart_timer()

        return await self.run_guarded("unlock", _unlock)

    async def set_pin(self, pin: str) -> ServiceResult:
        """Store a new PIN, enable the lock and start unlocked."""
        async def _set() -> None:
            self._validate_pin(pin)
            await self._storage.set_item(PIN_HASH_KEY, self._hash(pin))
            await self._storage.set_item(PIN_ENABLED_KEY, "true")
            self._pin_enabled = True
            self._set_locked(False, "PIN set")
            await self._storage.set_item(LOCK_STATE_KEY, UNLOCKED)
            await self._persist_activity()
            self._restart_timer()

        return await self.run_guarded("set PIN", _set)

    async def change_pin(self, current_pin: str, new_pin: str) -> ServiceResult:
        """Replace the PIN after verifying the current one; lock state is unchanged."""
        async def _change() -> None:
            stored = await self._stored_hash()
            if not verify_password(current_pin, stored):
                raise CredentialMismatchError("Current PIN is incorrect")
            self._validate_pin(new_pin)
            await self._storage.set_item(PIN_HASH_KEY, self._hash(new_pin))
            await self._persist_activity()

        return await self.run_guarded("change PIN", _change)

    async def reset_pin(self) -> ServiceResult:
        """
        Remove the PIN and disable the lock.

        No current-PIN check here; callers gate access (admin screens).
        """
        async def _reset() -> None:
            self._pin_enabled = False
            self._set_locked(False, "PIN reset")
            self._timer.cancel()
            # Disable before dropping the hash so a failed write never leaves
            # an enabled lock without a PIN
            await self._storage.set_item(PIN_ENABLED_KEY, "false")
            await self._storage.set_item(LOCK_STATE_KEY, UNLOCKED)
            await self._storage.remove_item(PIN_HASH_KEY)

        return await self.run_guarded("reset PIN", _reset)

    async def set_pin_enabled(self, enabled: bool) -> ServiceResult:
        """Turn the lock on (needs a stored PIN) or off."""
        async def _toggle() -> None:
            if enabled:
                if not await self.check_pin_exists():
                    raise PinNotSetError("Please set a PIN first")
                await self._storage.set_item(PIN_ENABLED_KEY, "true")
                self._pin_enabled = True
                await self._persist_activity()
                self._restart_timer()
            else:
                await self._storage.set_item(PIN_ENABLED_KEY, "false")
                self._pin_enabled = False
                self._set_locked(False, "lock disabled")
                self._timer.cancel()
                await self._storage.set_item(LOCK_STATE_KEY, UNLOCKED)

        return await self.run_guarded(
            "update PIN lock state", _toggle, failure_message="Failed to update PIN lock state"
        )

    async def set_timeout_minutes(self, minutes: int) -> ServiceResult:
        """Change the idle timeout; a running countdown restarts with it."""
        async def _set_timeout() -> None:
            if not self._valid_timeout(minutes):
                raise PinValidationError(
                    f"Timeout must be between {self._settings.min_timeout_minutes} "
                    f"and {self._settings.max_timeout_minutes} minutes",
                    field="timeout_minutes",
                )
            await self._storage.set_item(PIN_TIMEOUT_KEY, str(minutes))
            self._timeout_minutes = minutes
            if self._pin_enabled and not self._is_locked:
                self._restart_timer()

        return await self.run_guarded("update timeout", _set_timeout)

    async def check_pin_exists(self) -> bool:
        try:
            return bool(await self._storage.get_item(PIN_HASH_KEY))
        except Exception as e:
            logger.warning(f"Could not read PIN hash: {e}")
            return False

    async def lock(self) -> ServiceResult:
        """Lock immediately (e.g. a "lock now" button)."""
        if not self._pin_enabled:
            return ServiceResult.fail("Please set a PIN first", "PIN_003")

        async def _lock() -> None:
            self._set_locked(True, "manual")
            await self._storage.set_item(LOCK_STATE_KEY, LOCKED)

        return await self.run_guarded("lock", _lock)

    def register_activity(self) -> bool:
        """
        Record a user interaction and restart the countdown.

        Does nothing before initialization, while disabled or while locked.

        Returns:
            True if the activity was registered
        """
        if not self._initialized or not self._pin_enabled or self._is_locked:
            return False
        self._last_activity = self._clock()
        self._spawn_write(
            self._storage.set_item(LAST_ACTIVITY_KEY, str(self._last_activity)),
            "last activity",
        )
        self._restart_timer()
        return True

    async def handle_app_state_change(self, state: AppState) -> None:
        """
        React to the app moving between foreground and background.

        Going to background stops the countdown and records the time;
        coming back locks if the timeout has passed meanwhile, otherwise
        restarts the countdown with the full timeout.
        """
        if not self._initialized or not self._pin_enabled:
            return
        try:
            state = AppState(state)
        except ValueError:
            logger.debug(f"Ignoring unknown app state {state!r}")
            return

        if state in (AppState.BACKGROUND, AppState.INACTIVE):
            self._timer.cancel()
            try:
                await self._persist_activity()
            except Exception as e:
                logger.warning(f"Failed to update last activity: {e}")
            return

        if self._is_locked:
            return

        last_activity = self._last_activity
        try:
            stored = await self._storage.get_item(LAST_ACTIVITY_KEY)
            if stored:
                last_activity = int(stored)
        except Exception as e:
            logger.warning(f"Could not read last activity: {e}")

        if last_activity is not None and self._clock() - last_activity > self._timeout_ms:
            self._set_locked(True, "timeout while in background")
            self._spawn_write(self._storage.set_item(LOCK_STATE_KEY, LOCKED), "lock state")
        else:
            self._restart_timer()
