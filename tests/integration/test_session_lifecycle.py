# =============================================================================
# tests/integration/test_session_lifecycle.py
# Integration Tests for the Session Lock (Set PIN → Idle → Lock → Restart)
# =============================================================================

import pytest

from pos_core.context import AppContext
from pos_core.events import LockStateChanged
from pos_core.session import AppState, LockPhase
from pos_core.session.pin_lock import LOCK_STATE_KEY
from pos_core.storage import MemoryStorage
from pos_core.utils import MS_PER_MINUTE
from tests.conftest import FakeClock, FakeScheduler, run

pytestmark = pytest.mark.integration


class TestSessionLifecycle:
    """
    Tests the flow:
    1. PIN set, session unlocked
    2. Activity keeps the session open
    3. Idle timeout locks it, the PIN unlocks it
    4. Time spent in background locks on return
    5. A restart keeps the lock
    """

    def test_full_lifecycle(self, mock_config):
        clock = FakeClock()
        scheduler = FakeScheduler(clock)
        storage = MemoryStorage()

        async def create():
            return await AppContext.create(
                config=mock_config,
                storage=storage,
                scheduler=scheduler,
                clock=clock,
                configure_logging=False,
            )

        async def scenario():
            ctx = await create()
            lock = ctx.pin_lock
            assert lock.phase is LockPhase.DISABLED

            assert (await lock.set_pin("2468")).success
            assert lock.phase is LockPhase.UNLOCKED

            scheduler.advance(4 * 60)
            assert lock.register_activity()
            scheduler.advance(4 * 60)
            assert not lock.is_locked

            scheduler.advance(60)
            await lock.flush()
            assert lock.is_locked
            assert await storage.get_item(LOCK_STATE_KEY) == "locked"
            assert not lock.register_activity()

            wrong = await lock.unlock("1357")
            assert wrong.error == "Incorrect PIN"
            assert (await lock.unlock("2468")).success

            await lock.handle_app_state_change(AppState.BACKGROUND)
            clock.advance(6 * MS_PER_MINUTE)
            await lock.handle_app_state_change(AppState.ACTIVE)
            await lock.flush()
            assert lock.is_locked

            reasons = [event.reason for event in ctx.bus.history(LockStateChanged) if event.is_locked]
            await ctx.close()

            restarted = await create()
            still_locked = restarted.pin_lock.is_locked
            unlocked = await restarted.pin_lock.unlock("2468")
            await restarted.close()
            return reasons, still_locked, unlocked

        reasons, still_locked, unlocked = run(scenario())

        assert reasons == ["idle timeout", "timeout while in background"]
        assert still_locked
        assert unlocked.success

    def test_restart_after_long_idle_locks(self, mock_config):
        clock = FakeClock()
        storage = MemoryStorage()

        async def create():
            return await AppContext.create(
                config=mock_config,
                storage=storage,
                scheduler=FakeScheduler(clock),
                clock=clock,
                configure_logging=False,
            )

        async def scenario():
            ctx = await create()
            await ctx.pin_lock.set_timeout_minutes(10)
            await ctx.pin_lock.set_pin("2468")
            await ctx.close()

            clock.advance(11 * MS_PER_MINUTE)
            restarted = await create()
            state = restarted.pin_lock.state
            await restarted.close()
            return state

        state = run(scenario())

        assert state.is_locked
        assert state.timeout_minutes == 10
