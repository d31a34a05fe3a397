# =============================================================================
# pos_core/storage/__init__.py
# Persisted key-value storage
# =============================================================================

from .key_value import KeyValueStorage, MemoryStorage, SQLiteStorage

__all__ = ["KeyValueStorage", "MemoryStorage", "SQLiteStorage"]
