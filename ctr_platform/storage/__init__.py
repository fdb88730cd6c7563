"""Counter store contract and backends."""

from .base import BaseCounterStore, DurabilityMode, METRICS, namespace_for
from .sqlite_storage import SqliteCounterStore
from .storage import MemoryCounterStore
from .storage_factory import get_store

__all__ = [
    "BaseCounterStore",
    "DurabilityMode",
    "METRICS",
    "MemoryCounterStore",
    "SqliteCounterStore",
    "get_store",
    "namespace_for",
]
