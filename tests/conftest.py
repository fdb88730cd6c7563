"""
Global pytest fixtures for the CTR Platform test suite.

Responsibilities:
    - Provide isolated counter stores (in-memory and on-disk SQLite under tmp_path)
    - Provide a HitManager / StatAggregator wired to the in-memory store
    - Provide a FastAPI TestClient built by the app factory with an injected store

Why inject the store?
    The app only closes stores it created itself, so tests can keep inspecting
    the injected store after requests and close it on their own terms.
"""

import pytest
from fastapi.testclient import TestClient

from main import create_app
from ctr_platform.analytics.analytics import StatAggregator
from ctr_platform.manager.hit_manager import HitManager
from ctr_platform.storage.sqlite_storage import SqliteCounterStore
from ctr_platform.storage.storage import MemoryCounterStore


@pytest.fixture
def memory_store() -> MemoryCounterStore:
    """Fresh in-memory store (nothing persists)."""
    store = MemoryCounterStore()
    yield store
    store.close()


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "counters" / "counters.db")


@pytest.fixture
def sqlite_store(db_path) -> SqliteCounterStore:
    """Fresh durable store in sync mode, closed after the test."""
    store = SqliteCounterStore(db_path)
    yield store
    store.close()


@pytest.fixture
def manager(memory_store) -> HitManager:
    return HitManager(memory_store)


@pytest.fixture
def aggregator(memory_store) -> StatAggregator:
    return StatAggregator(memory_store)


@pytest.fixture
def client(memory_store) -> TestClient:
    """
    Provide a TestClient over a fresh app instance sharing `memory_store`.

    Notes:
        - Entering the client runs the app lifespan; the injected store is
          not closed by the app.
    """
    with TestClient(create_app(store=memory_store)) as c:
        yield c
