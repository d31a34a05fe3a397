# =============================================================================
# tests/unit/test_migration.py
# Unit Tests for the plaintext password migration
# =============================================================================

import pytest

from pos_core.auth import hash_password, hash_password_bcrypt, migrate_plaintext_passwords, verify_password
from pos_core.remote import MemoryDocumentStore
from tests.conftest import run

pytestmark = pytest.mark.unit


@pytest.fixture
def users_store():
    store = MemoryDocumentStore(seed=False)
    run(store.set("users", "admin", {"username": "admin", "password": "admin123"}))
    run(store.set("users", "cashier", {"username": "cashier", "password": hash_password_bcrypt("cashier-pass-2024", rounds=4)}))
    run(store.set("users", "kitchen", {"username": "kitchen"}))
    return store


class TestMigration:
    def test_dry_run_changes_nothing(self, users_store):
        migrated = run(migrate_plaintext_passwords(users_store, dry_run=True))
        assert migrated == ["admin"]
        assert run(users_store.get("users", "admin"))["password"] == "admin123"

    def test_plaintext_passwords_hashed(self, users_store):
        migrated = run(migrate_plaintext_passwords(users_store))
        stored = run(users_store.get("users", "admin"))["password"]
        assert migrated == ["admin"]
        assert stored == hash_password("admin123")
        assert verify_password("admin123", stored)

    def test_bcrypt_scheme(self, users_store):
        run(migrate_plaintext_passwords(users_store, scheme="bcrypt"))
        assert run(users_store.get("users", "admin"))["password"].startswith("$2")
