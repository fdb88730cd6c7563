"""
Counter store factory – switch storage backend from config
==========================================================

Centralizes selection of the storage backend so the rest of the app stays
ignorant of where counters live.

- Reads environment **at call time** to avoid stale values in tests.
- Imports the postgres backend **only if** it is selected.

Environment variables
---------------------
- CTR_STORAGE_BACKEND: "sqlite" (default), "memory" or "postgres"
- CTR_DB_PATH:         sqlite file if backend=="sqlite"
- CTR_DB_DSN:          DSN string if backend=="postgres"
- CTR_DURABILITY:      "sync" (default) or "batch" (sqlite only)
- CTR_BATCH_SIZE:      increments per commit in batch mode
- CTR_FLUSH_INTERVAL_MS: longest wait for a batch to fill, in milliseconds
"""

import logging
from typing import Optional

from ctr_platform.config import load_settings
from ctr_platform.storage.base import BaseCounterStore, DurabilityMode
from ctr_platform.storage.sqlite_storage import SqliteCounterStore
from ctr_platform.storage.storage import MemoryCounterStore

log = logging.getLogger("ctr.storage")


def get_store(backend: Optional[str] = None, **kwargs) -> BaseCounterStore:
    """
    Return a counter store based on configuration.

    Parameters
    ----------
    backend : str, optional
        "sqlite", "memory" or "postgres". If omitted, reads CTR_STORAGE_BACKEND.
    kwargs : dict
        Overrides passed to the backend: path=, durability=, batch_size=,
        flush_interval= (seconds) for sqlite; dsn= for postgres.

    Returns
    -------
    BaseCounterStore
    """
    cfg = load_settings()
    be = (backend or cfg.STORAGE_BACKEND).lower()
    log.info("Selected storage backend: %r", be)

    if be == "memory":
        return MemoryCounterStore()

    if be == "sqlite":
        durability = kwargs.get("durability") or cfg.DURABILITY
        try:
            mode = DurabilityMode(durability)
        except ValueError:
            raise ValueError(f"Unknown durability mode: {durability!r}") from None
        return SqliteCounterStore(
            path=kwargs.get("path") or cfg.DB_PATH,
            durability=mode,
            batch_size=kwargs.get("batch_size") or cfg.BATCH_SIZE,
            flush_interval=kwargs.get("flush_interval", cfg.FLUSH_INTERVAL_MS / 1000.0),
        )

    if be == "postgres":
        dsn = kwargs.get("dsn") or cfg.DB_DSN
        if not dsn:
            raise ValueError("DB_DSN is required for postgres backend (env CTR_DB_DSN)")
        # Local import to avoid hard dependency when not using postgres
        from ctr_platform.storage.db_storage import PostgresCounterStore
        return PostgresCounterStore(dsn=dsn)

    raise ValueError(f"Unknown storage backend: {be!r}")
