"""
Base counter store interface for CTR Platform.

Purpose:
    Define a small, stable contract that multiple storage backends
    (in-memory, SQLite, PostgreSQL) implement without requiring changes to the
    aggregator or the gateway.

Data model:
    (namespace: str, key: bytes) -> counter (non-negative int)

    A namespace is "{metric}{referer}" with metric in {"view", "click"}.
    Namespaces are created implicitly by the first increment and never deleted.

Testing & Coverage:
    Abstract methods are not executed directly in tests and are annotated
    with `# pragma: no cover`.
"""

import enum
from abc import ABC, abstractmethod
from typing import List, Optional, Union

METRICS = ("view", "click")

KeyLike = Union[bytes, bytearray, str]


class DurabilityMode(str, enum.Enum):
    """Flush granularity of a durable store.

    SYNC:  every increment is committed and fsynced in its own transaction.
    BATCH: group commit. Concurrent increments share one transaction and each
           caller waits until that transaction is committed.

    In both modes an increment that returned is durable; a crash loses only
    increments whose callers are still waiting.
    """

    SYNC = "sync"
    BATCH = "batch"


def namespace_for(metric: str, referer: str) -> str:
    """Return the counter namespace for a metric scoped by referer."""
    if metric not in METRICS:
        raise ValueError(f"Unknown metric: {metric!r}")
    return f"{metric}{referer}"


def to_key(key: KeyLike) -> bytes:
    """Normalize a key to bytes (str keys are UTF-8 encoded)."""
    if isinstance(key, str):
        return key.encode("utf-8")
    if isinstance(key, (bytes, bytearray)):
        return bytes(key)
    raise TypeError(f"Counter key must be bytes or str, got {type(key).__name__}")


def check_namespace(namespace: str) -> str:
    if not isinstance(namespace, str) or not namespace:
        raise ValueError("Namespace must be a non-empty string")
    return namespace


class BaseCounterStore(ABC):
    """Abstract base class for counter store backends."""

    @abstractmethod  # pragma: no cover
    def increment(self, namespace: str, key: KeyLike) -> int:
        """
        Add exactly 1 to the counter for (namespace, key).

        Returns:
            int: The new counter value.

        Raises:
            StoreWriteError: The increment did not apply.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def get(self, namespace: str, key: KeyLike) -> Optional[int]:
        """
        Return the counter for (namespace, key), or None if never incremented.

        Raises:
            StoreReadError: The read failed (distinct from absence).
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def list_keys(self, namespace: str) -> List[bytes]:
        """
        Return every key with at least one increment, byte-wise ascending.

        An unknown namespace yields an empty list.
        """
        raise NotImplementedError

    def flush(self) -> int:
        """
        Make pending increments durable. Returns how many were flushed.

        Backends that commit on every increment have nothing pending.
        """
        return 0

    @abstractmethod  # pragma: no cover
    def close(self) -> None:
        """
        Flush and release resources. A second call is a no-op.

        Raises:
            ShutdownError: Pending state could not be flushed or the handle
                could not be released.
        """
        raise NotImplementedError

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
