"""
Counter store module for CTR Platform (in-memory implementation).

Responsibilities:
    - Atomic per-(namespace, key) increments
    - Point lookups with "absent" (None) distinct from zero
    - Sorted key listing per namespace

Design:
    - In-memory reference implementation of the BaseCounterStore contract.
    - Keeps unit/integration tests fast and deterministic; nothing survives a restart.
    - One lock per namespace, so increments in unrelated namespaces never contend.
      The registry lock is held only while a namespace is looked up or created.
"""

import threading
from typing import Dict, List, Optional

from ..errors import StoreClosedError
from .base import BaseCounterStore, KeyLike, check_namespace, to_key


class _Namespace:
    __slots__ = ("lock", "counters")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.counters: Dict[bytes, int] = {}


class MemoryCounterStore(BaseCounterStore):
    def __init__(self) -> None:
        """
        Initialize empty storage.

        Internal schema:
            self._namespaces = {
                namespace: _Namespace(lock, counters={key: int})
            }
        """
        self._namespaces: Dict[str, _Namespace] = {}
        self._registry_lock = threading.Lock()
        self._closed = False

    def _namespace(self, namespace: str, create: bool) -> Optional[_Namespace]:
        if self._closed:
            raise StoreClosedError("Counter store is closed")
        check_namespace(namespace)
        ns = self._namespaces.get(namespace)
        if ns is None and create:
            with self._registry_lock:
                ns = self._namespaces.setdefault(namespace, _Namespace())
        return ns

    def increment(self, namespace: str, key: KeyLike) -> int:
        k = to_key(key)
        ns = self._namespace(namespace, create=True)
        with ns.lock:
            value = ns.counters.get(k, 0) + 1
            ns.counters[k] = value
        return value

    def get(self, namespace: str, key: KeyLike) -> Optional[int]:
        k = to_key(key)
        ns = self._namespace(namespace, create=False)
        if ns is None:
            return None
        with ns.lock:
            return ns.counters.get(k)

    def list_keys(self, namespace: str) -> List[bytes]:
        ns = self._namespace(namespace, create=False)
        if ns is None:
            return []
        with ns.lock:
            keys = list(ns.counters)
        # bytes compare byte-wise, which is the ordering contract
        return sorted(keys)

    def close(self) -> None:
        self._closed = True
