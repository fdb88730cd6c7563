"""
SqliteCounterStore – durable on-disk counter store for CTR Platform
===================================================================

Default production backend. Persists counters in a single SQLite file and
implements the `BaseCounterStore` contract, so it is interchangeable with the
in-memory and PostgreSQL backends.

Key Design Points
-----------------
- **Composite key**: `PRIMARY KEY(namespace, key)` on a `WITHOUT ROWID` table, so a
  namespace is one contiguous B-tree range and `list_keys` is a range scan.
  BLOB comparison is memcmp, which gives byte-wise lexicographic key order.
- **Atomic increment**: a single `INSERT ... ON CONFLICT DO UPDATE ... RETURNING`
  statement performs the read-modify-write on the one writer connection, which
  is guarded by a lock. Each increment runs inside its own SAVEPOINT, so a failed
  increment never undoes the others sharing its transaction.
- **Readers**: every thread reads through its own connection. In WAL mode those
  see only committed data and never wait for the writer lock.
- **Durability**: WAL journal with `synchronous=FULL`. No increment returns before
  the transaction holding it is committed.
  - `DurabilityMode.SYNC`: every increment commits its own transaction.
  - `DurabilityMode.BATCH` (group commit): increments from concurrent callers
    share one transaction. It is committed once `batch_size` increments joined,
    or when the oldest waiter has waited `flush_interval` seconds, or on
    `flush()` / `close()`. Callers block until then. If that commit fails,
    every caller in the batch gets `StoreWriteError`.
- **Overflow**: a `CHECK (typeof(value) = 'integer')` constraint rejects the REAL
  that SQLite produces when `value + 1` passes 2**63 - 1.
- **Errors**: `sqlite3.Error` is translated to `StoreWriteError` / `StoreReadError`
  / `ShutdownError` with the engine exception chained.

":memory:" databases cannot be shared between connections, so there reads go
through the writer connection under its lock. Use them in tests only.

Schema
------
    CREATE TABLE counters (
        namespace TEXT    NOT NULL,
        key       BLOB    NOT NULL,
        value     INTEGER NOT NULL CHECK (typeof(value) = 'integer'),
        PRIMARY KEY (namespace, key)
    ) WITHOUT ROWID;

Example
-------
>>> store = SqliteCounterStore(":memory:")
>>> store.increment("viewhotpop", b"url1")
1
>>> store.get("viewhotpop", b"url1")
1
>>> store.list_keys("viewhotpop")
[b'url1']
"""

import logging
import os
import sqlite3
import threading
import time
from typing import List, Optional, Union

from ..errors import ShutdownError, StoreClosedError, StoreReadError, StoreWriteError
from .base import BaseCounterStore, DurabilityMode, KeyLike, check_namespace, to_key

log = logging.getLogger("ctr.storage.sqlite")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS counters (
    namespace TEXT    NOT NULL,
    key       BLOB    NOT NULL,
    value     INTEGER NOT NULL CHECK (typeof(value) = 'integer'),
    PRIMARY KEY (namespace, key)
) WITHOUT ROWID
"""

_INCREMENT = """
INSERT INTO counters (namespace, key, value) VALUES (?, ?, 1)
ON CONFLICT (namespace, key) DO UPDATE SET value = value + 1
RETURNING value
"""

_GET = "SELECT value FROM counters WHERE namespace = ? AND key = ?"
_LIST = "SELECT key FROM counters WHERE namespace = ? ORDER BY key"


class SqliteCounterStore(BaseCounterStore):
    """SQLite implementation of the counter store contract.

    Parameters
    ----------
    path : str
        Database file. Parent directories are created. ":memory:" gives a
        throwaway database (useful in tests, not durable).
    durability : DurabilityMode or str
        "sync" (default) or "batch".
    batch_size : int
        Increments per group commit in batch mode. Ignored in sync mode.
    flush_interval : float
        Longest time, in seconds, a batch-mode increment waits for its batch
        to fill before it commits the batch itself.
    """

    def __init__(
        self,
        path: str,
        durability: Union[DurabilityMode, str] = DurabilityMode.SYNC,
        batch_size: int = 64,
        flush_interval: float = 0.01,
    ) -> None:
        self.path = path
        self.durability = DurabilityMode(durability)
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if flush_interval < 0:
            raise ValueError("flush_interval must be >= 0")
        self.batch_size = batch_size if self.durability is DurabilityMode.BATCH else 1
        self.flush_interval = flush_interval

        self._cond = threading.Condition(threading.Lock())
        self._pending = 0
        # batch bookkeeping: the open transaction is batch `_batch`
        self._batch = 0
        self._committed = -1
        self._failed_batches = set()
        self._closed = False

        self._shared_reads = path == ":memory:"
        self._local = threading.local()
        self._readers: List[sqlite3.Connection] = []
        self._readers_lock = threading.Lock()

        if not self._shared_reads:
            parent = os.path.dirname(os.path.abspath(path))
            os.makedirs(parent, exist_ok=True)
        try:
            # isolation_level=None: transactions are opened explicitly below
            self._conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=FULL")
            self._conn.execute(_SCHEMA)
        except sqlite3.Error as exc:
            raise StoreWriteError(f"Cannot open counter store at {path!r}: {exc}") from exc
        log.info(
            "Opened sqlite counter store path=%s durability=%s batch_size=%d",
            path, self.durability.value, self.batch_size,
        )

    # ---- Internal helpers -------------------------------------------------

    def _check_open(self) -> None:
        if self._closed:
            raise StoreClosedError("Counter store is closed")

    def _reader(self) -> sqlite3.Connection:
        """Per-thread read-only connection."""
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(self.path, check_same_thread=False, isolation_level=None)
            conn.execute("PRAGMA query_only=ON")
            self._local.conn = conn
            with self._readers_lock:
                self._readers.append(conn)
        return conn

    def _read(self, sql: str, params: tuple) -> list:
        if self._shared_reads:
            with self._cond:
                self._check_open()
                return self._conn.execute(sql, params).fetchall()
        self._check_open()
        return self._reader().execute(sql, params).fetchall()

    def _commit_batch(self) -> int:
        """Commit the open batch and wake its waiters. Caller holds the lock."""
        batch, flushed = self._batch, self._pending
        self._batch += 1
        self._pending = 0
        try:
            if self._conn.in_transaction:
                self._conn.execute("COMMIT")
        except sqlite3.Error as exc:
            self._fail_batch(batch, flushed)
            raise StoreWriteError(f"Commit failed on {self.path!r}: {exc}") from exc
        self._committed = batch
        self._cond.notify_all()
        return flushed

    def _fail_batch(self, batch: int, lost: int) -> None:
        if self._conn.in_transaction:
            try:
                self._conn.execute("ROLLBACK")
            except sqlite3.Error:
                log.exception("Rollback failed on %s", self.path)
        if lost:
            self._failed_batches.add(batch)
            log.warning("Batch of %d increments failed to commit on %s", lost, self.path)
        self._cond.notify_all()

    def _wait_for_commit(self, batch: int) -> None:
        """Block until `batch` is committed; commit it ourselves after flush_interval."""
        deadline = time.monotonic() + self.flush_interval
        while True:
            # a later batch may commit after this one failed
            if batch in self._failed_batches:
                raise StoreWriteError(f"Batch commit failed on {self.path!r}")
            if self._committed >= batch:
                return
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._commit_batch()
                return
            self._cond.wait(remaining)

    # ---- Contract methods -------------------------------------------------

    def increment(self, namespace: str, key: KeyLike) -> int:
        check_namespace(namespace)
        k = to_key(key)
        with self._cond:
            self._check_open()
            try:
                if not self._conn.in_transaction:
                    self._conn.execute("BEGIN IMMEDIATE")
                self._conn.execute("SAVEPOINT incr")
                rows = self._conn.execute(_INCREMENT, (namespace, k)).fetchall()
                self._conn.execute("RELEASE incr")
            except sqlite3.Error as exc:
                self._undo_increment()
                raise StoreWriteError(f"Increment failed for {namespace!r}/{k!r}: {exc}") from exc

            self._pending += 1
            batch = self._batch
            if self._pending >= self.batch_size:
                self._commit_batch()
            else:
                self._wait_for_commit(batch)
        return int(rows[0][0])

    def _undo_increment(self) -> None:
        """Roll back the failed increment only. Caller holds the lock."""
        if self._conn.in_transaction:
            try:
                self._conn.execute("ROLLBACK TO incr")
                self._conn.execute("RELEASE incr")
                if not self._pending:
                    # nothing else in the transaction; give the write lock back
                    self._conn.execute("ROLLBACK")
                return
            except sqlite3.Error:
                log.exception("Savepoint rollback failed on %s", self.path)
        # The engine dropped the whole transaction; nobody in it was acknowledged.
        batch, lost = self._batch, self._pending
        self._batch += 1
        self._pending = 0
        self._fail_batch(batch, lost)

    def get(self, namespace: str, key: KeyLike) -> Optional[int]:
        check_namespace(namespace)
        k = to_key(key)
        try:
            rows = self._read(_GET, (namespace, k))
        except sqlite3.Error as exc:
            raise StoreReadError(f"Read failed for {namespace!r}/{k!r}: {exc}") from exc
        return int(rows[0][0]) if rows else None

    def list_keys(self, namespace: str) -> List[bytes]:
        check_namespace(namespace)
        try:
            rows = self._read(_LIST, (namespace,))
        except sqlite3.Error as exc:
            raise StoreReadError(f"Key listing failed for {namespace!r}: {exc}") from exc
        return [bytes(r[0]) for r in rows]

    def flush(self) -> int:
        with self._cond:
            self._check_open()
            return self._commit_batch()

    @property
    def pending(self) -> int:
        """Increments waiting for their group commit (always 0 in sync mode)."""
        return self._pending

    def close(self) -> None:
        with self._cond:
            if self._closed:
                return
            self._closed = True
            flushed = 0
            try:
                flushed = self._commit_batch()
            except StoreWriteError as exc:
                raise ShutdownError(f"Failed to flush counter store {self.path!r}: {exc}") from exc
            finally:
                self._release_connections()
        log.info("Closed sqlite counter store path=%s (flushed %d)", self.path, flushed)

    def _release_connections(self) -> None:
        errors = []
        with self._readers_lock:
            readers, self._readers = self._readers, []
        for conn in readers + [self._conn]:
            try:
                conn.close()
            except sqlite3.Error as exc:
                errors.append(exc)
        if errors:
            raise ShutdownError(f"Failed to close counter store {self.path!r}: {errors[0]}") from errors[0]
