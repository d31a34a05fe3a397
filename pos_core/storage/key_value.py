# =============================================================================
# pos_core/storage/key_value.py
# Async key-value storage backends
# =============================================================================
"""
KeyValueStorage - the device-local persistence the cache, the offline queue
and the PIN lock sit on.

The contract is deliberately small: string keys, string values, no
transactions. Values that are not strings go through ``get_json`` /
``set_json``.

Backends:
- MemoryStorage: process memory only (tests, demo mode)
- SQLiteStorage: a single ``kv_store`` table in a local SQLite file
"""

from __future__ import annotations
import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pos_core.errors import StorageError

logger = logging.getLogger(__name__)


class KeyValueStorage(ABC):
    """Abstract async key-value store."""

    @abstractmethod
    async def get_item(self, key: str) -> Optional[str]:
        """Return the stored string, or None when the key is absent."""

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        """Store a string under key, replacing any previous value."""

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        """Delete key; missing keys are ignored."""

    @abstractmethod
    async def multi_remove(self, keys: Iterable[str]) -> None:
        """Delete several keys at once."""

    @abstractmethod
    async def get_all_keys(self) -> List[str]:
        """List every stored key."""

    async def get_json(self, key: str, default: Any = None) -> Any:
        raw = await self.get_item(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt JSON value: {e}", key=key)

    async def set_json(self, key: str, value: Any) -> None:
        await self.set_item(key, json.dumps(value, default=str))

    async def close(self) -> None:
        """Release backend resources."""


class MemoryStorage(KeyValueStorage):
    """In-memory storage backend."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"Value must be a string, got {type(value).__name__}", key=key)
        self._data[key] = value

    async def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    async def multi_remove(self, keys: Iterable[str]) -> None:
        for key in list(keys):
            self._data.pop(key, None)

    async def get_all_keys(self) -> List[str]:
        return list(self._data.keys())

    def snapshot(self) -> Dict[str, str]:
        """Copy of the raw contents, for diagnostics."""
        return dict(self._data)


class SQLiteStorage(KeyValueStorage):
    """
    SQLite-backed storage.

    Each call is a short local statement executed on the event loop thread;
    sqlite3 errors are re-raised as StorageError.

    Usage:
        storage = SQLiteStorage(Path("data/pos_core.db"))
        storage.initialize()
        await storage.set_item("pin_enabled", "true")
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._connection: Optional[sqlite3.Connection] = None
        self._initialized = False

    def _get_connection(self) -> sqlite3.Connection:
        if self._connection is None:
            if str(self.db_path) != ":memory:":
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(str(self.db_path))
        return self._connection

    @contextmanager
    def transaction(self, key: Optional[str] = None):
        """Commit on success, roll back and raise StorageError on failure."""
        try:
            conn = self._get_connection()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open {self.db_path}: {e}", key=key)
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"SQLite error: {e}", key=key)

    def initialize(self) -> None:
        """Create the schema if needed."""
        if self._initialized:
            return
        with self.transaction() as conn:
            conn.execute(self.SCHEMA)
        self._initialized = True
        logger.info(f"Key-value storage initialized at: {self.db_path}")

    async def get_item(self, key: str) -> Optional[str]:
        self.initialize()
        with self.transaction(key) as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    async def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"Value must be a string, got {type(value).__name__}", key=key)
        self.initialize()
        with self.transaction(key) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)",
                (key, value, datetime.now().isoformat()),
            )

    async def remove_item(self, key: str) -> None:
        self.initialize()
        with self.transaction(key) as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))

    async def multi_remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        self.initialize()
        with self.transaction() as conn:
            conn.executemany("DELETE FROM kv_store WHERE key = ?", [(k,) for k in keys])

    async def get_all_keys(self) -> List[str]:
        self.initialize()
        with self.transaction() as conn:
            rows = conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        return [row[0] for row in rows]

    async def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
            self._initialized = False
