# =============================================================================
# tests/unit/test_storage.py
# Unit Tests for key-value storage backends
# =============================================================================

import pytest

from pos_core.errors import StorageError
from pos_core.storage import MemoryStorage, SQLiteStorage
from tests.conftest import run

pytestmark = pytest.mark.unit


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path):
    if request.param == "memory":
        return MemoryStorage()
    return SQLiteStorage(tmp_path / "kv" / "pos_core.db")


class TestKeyValueContract:
    """Both backends honour the same contract"""

    def test_get_set_remove(self, backend):
        async def scenario():
            missing = await backend.get_item("pin_hash")
            await backend.set_item("pin_hash", "abc")
            stored = await backend.get_item("pin_hash")
            await backend.remove_item("pin_hash")
            await backend.remove_item("pin_hash")
            return missing, stored, await backend.get_item("pin_hash")

        assert run(scenario()) == (None, "abc", None)

    def test_overwrite(self, backend):
        async def scenario():
            await backend.set_item("lock_state", "locked")
            await backend.set_item("lock_state", "unlocked")
            return await backend.get_item("lock_state")

        assert run(scenario()) == "unlocked"

    def test_multi_remove_and_keys(self, backend):
        async def scenario():
            for key in ("cache_menu", "timestamp_menu", "pin_enabled"):
                await backend.set_item(key, "1")
            await backend.multi_remove(["cache_menu", "timestamp_menu", "never_set"])
            await backend.multi_remove([])
            return await backend.get_all_keys()

        assert run(scenario()) == ["pin_enabled"]

    def test_json_helpers(self, backend):
        async def scenario():
            await backend.set_json("queue_operations", [{"id": "op_1", "data": {"total": 75}}])
            return await backend.get_json("queue_operations"), await backend.get_json("absent", default=[])

        assert run(scenario()) == ([{"id": "op_1", "data": {"total": 75}}], [])

    def test_corrupt_json_raises_storage_error(self, backend):
        async def scenario():
            await backend.set_item("queue_operations", "[{broken")
            await backend.get_json("queue_operations")

        with pytest.raises(StorageError):
            run(scenario())

    def test_non_string_rejected(self, backend):
        with pytest.raises(StorageError):
            run(backend.set_item("pin_enabled", True))


class TestSQLiteStorage:
    def test_survives_reopen(self, tmp_path):
        path = tmp_path / "pos_core.db"

        async def scenario():
            first = SQLiteStorage(path)
            await first.set_item("pin_hash", "abc")
            await first.close()
            second = SQLiteStorage(path)
            value = await second.get_item("pin_hash")
            await second.close()
            return value

        assert run(scenario()) == "abc"

    def test_unopenable_path_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        storage = SQLiteStorage(blocker / "pos_core.db")

        with pytest.raises((StorageError, OSError)):
            run(storage.get_item("pin_hash"))
