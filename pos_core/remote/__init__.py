# =============================================================================
# pos_core/remote/__init__.py
# Remote document stores
# =============================================================================

from .base import (
    BatchOperation,
    Condition,
    DocumentStore,
    OrderBy,
    Query,
    Record,
    Subscription,
)
from .memory_store import MemoryDocumentStore
from .sample_data import sample_collection, seed_collections

__all__ = [
    "BatchOperation",
    "Condition",
    "DocumentStore",
    "OrderBy",
    "Query",
    "Record",
    "Subscription",
    "MemoryDocumentStore",
    "sample_collection",
    "seed_collections",
]
