# =============================================================================
# pos_core/auth/migration.py
# One-off migration of plaintext user passwords
# =============================================================================

from __future__ import annotations
import logging
from typing import List

from pos_core.remote import DocumentStore, Query
from .password_hash import hash_credential, looks_hashed

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"


async def migrate_plaintext_passwords(
    store: DocumentStore,
    scheme: str = "legacy",
    dry_run: bool = False,
) -> List[str]:
    """
    Hash every ``password`` field in the users collection that is still
    plaintext.

    Args:
        store: Document store holding the users collection
        scheme: Hash scheme for the new values ("legacy" or "bcrypt")
        dry_run: Only report which users would change

    Returns:
        Ids of the users that were (or would be) migrated
    """
    users = await store.query(Query(USERS_COLLECTION))
    migrated = []
    for user in users:
        password = user.get("password")
        if not password or looks_hashed(password):
            continue
        migrated.append(user["id"])
        if dry_run:
            logger.info(f"Would hash password for user {user['id']}")
            continue
        await store.update(USERS_COLLECTION, user["id"], {"password": hash_credential(password, scheme)})
        logger.info(f"Hashed password for user {user['id']}")

    logger.info(f"{len(migrated)} of {len(users)} users {'need' if dry_run else 'got'} hashed passwords")
    return migrated
