# =============================================================================
# pos_core/auth/__init__.py
# Credential hashing
# =============================================================================

from .password_hash import (
    hash_password,
    hash_password_bcrypt,
    hash_credential,
    verify_password,
    looks_hashed,
    parse_credential,
    StoredCredential,
    PlaintextCredential,
    LegacyHashCredential,
    BcryptCredential,
)
from .migration import migrate_plaintext_passwords, USERS_COLLECTION

__all__ = [
    "hash_password",
    "hash_password_bcrypt",
    "hash_credential",
    "verify_password",
    "looks_hashed",
    "parse_credential",
    "StoredCredential",
    "PlaintextCredential",
    "LegacyHashCredential",
    "BcryptCredential",
    "migrate_plaintext_passwords",
    "USERS_COLLECTION",
]
