"""
Password and PIN hashing for the POS app.

⚠️ THE LEGACY HASH IS NOT CRYPTOGRAPHICALLY SECURE
``hash_password`` is a salted 32-bit rolling hash kept for compatibility
with credentials already stored by the mobile clients. It only avoids
keeping plaintext in the document store. New credentials can be stored
with bcrypt (``hash_credential(pin, scheme="bcrypt")``).

Stored values come in three shapes, resolved once by ``parse_credential``:
- PlaintextCredential: legacy rows that were never migrated
- LegacyHashCredential: output of ``hash_password``
- BcryptCredential: "$2b$..." strings
"""

from __future__ import annotations
import hmac
import re
from dataclasses import dataclass
from typing import Union

import bcrypt

LEGACY_SALT = "clicksilog_salt_2024"

# Shape of a legacy hash: base36 digits followed by a base36 length suffix
_LEGACY_HASH_PATTERN = re.compile(r"^[0-9a-z]+[0-9a-z]$")
_LOOKS_HASHED_PATTERN = re.compile(r"^[0-9a-z]{8,}[0-9a-z]$", re.IGNORECASE)
_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _utf16_units(text: str):
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        yield data[i] | (data[i + 1] << 8)


def _rolling_hash(text: str) -> int:
    h = 0
    for unit in _utf16_units(text):
        h = _to_int32(h * 31 + unit)
    return h


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def _utf16_length(text: str) -> int:
    return len(text.encode("utf-16-le")) // 2


def hash_password(password: str) -> str:
    """
    Legacy salted hash of a password or PIN.

    Two 32-bit rolling hashes (over the password, then over password + salt),
    absolute values summed, rendered in base 36, with the input length in
    base 36 appended as a checksum.

    Example:
        >>> hash_password("")
        ''
    """
    if not password:
        return ""

    combined = abs(_rolling_hash(password)) + abs(_rolling_hash(password + LEGACY_SALT))
    return _base36(combined) + _base36(_utf16_length(password))


def hash_password_bcrypt(password: str, rounds: int = 12) -> str:
    """
    Hash a password using bcrypt.

    Example:
        >>> hash_password_bcrypt("1234")
        '$2b$12$...'
    """
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def hash_credential(password: str, scheme: str = "legacy", rounds: int = 12) -> str:
    """Hash a new credential with the configured scheme."""
    if scheme == "bcrypt":
        return hash_password_bcrypt(password, rounds=rounds)
    return hash_password(password)


# ==================== STORED CREDENTIALS ====================

@dataclass(frozen=True)
class PlaintextCredential:
    value: str

    def matches(self, password: str) -> bool:
        return hmac.compare_digest(password.encode(), self.value.encode())


@dataclass(frozen=True)
class LegacyHashCredential:
    """
    A value shaped like ``hash_password`` output.

    Short alphanumeric plaintext (e.g. "admin123") has the same shape, so an
    exact match is accepted as well.
    """
    value: str

    def matches(self, password: str) -> bool:
        if hmac.compare_digest(password.encode(), self.value.encode()):
            return True
        return hmac.compare_digest(hash_password(password).encode(), self.value.encode())


@dataclass(frozen=True)
class BcryptCredential:
    value: str

    def matches(self, password: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode(), self.value.encode())
        except ValueError:
            return False


StoredCredential = Union[PlaintextCredential, LegacyHashCredential, BcryptCredential]


def parse_credential(stored: str) -> StoredCredential:
    """Classify a stored credential string."""
    if stored.startswith(_BCRYPT_PREFIXES):
        return BcryptCredential(stored)
    if len(stored) >= 3 and _LEGACY_HASH_PATTERN.match(stored):
        return LegacyHashCredential(stored)
    return PlaintextCredential(stored)


def verify_password(password: str, stored: Union[str, StoredCredential, None]) -> bool:
    """
    Check a password against a stored credential.

    Empty input on either side never matches.
    """
    if not password or not stored:
        return False
    credential = parse_credential(stored) if isinstance(stored, str) else stored
    return credential.matches(password)


def looks_hashed(value: str) -> bool:
    """
    Heuristic used by migration tooling: does this look already hashed?

    Not used when verifying; see ``parse_credential``.
    """
    if not value:
        return False
    return value.startswith(_BCRYPT_PREFIXES) or bool(_LOOKS_HASHED_PATTERN.match(value))
