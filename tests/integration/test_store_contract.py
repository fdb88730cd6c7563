"""
Contract tests shared by every counter store backend.

Runs against the in-memory and SQLite stores, and against PostgreSQL when
CTR_DB_DSN points at a reachable database.
"""

import os
import uuid

import pytest

from ctr_platform.storage.storage_factory import get_store


@pytest.fixture(params=["memory", "sqlite"] + (["postgres"] if os.getenv("CTR_DB_DSN") else []))
def store(request, tmp_path):
    backend = request.param
    if backend == "sqlite":
        s = get_store("sqlite", path=str(tmp_path / "contract.db"), durability="sync")
    else:
        s = get_store(backend)
    yield s
    s.close()


@pytest.fixture
def referer():
    # unique per test so a shared postgres database starts clean
    return "r" + uuid.uuid4().hex


def test_absent_key_defaults(store, referer):
    assert store.get(f"view{referer}", b"never") is None
    assert store.list_keys(f"view{referer}") == []


def test_increment_sequence(store, referer):
    ns = f"view{referer}"
    assert [store.increment(ns, b"url1") for _ in range(4)] == [1, 2, 3, 4]
    assert store.get(ns, b"url1") == 4


def test_listing_exact_set_sorted(store, referer):
    ns = f"view{referer}"
    urls = [b"url3", b"url1", b"url2", b"url1", b"url3"]
    for url in urls:
        store.increment(ns, url)
    assert store.list_keys(ns) == [b"url1", b"url2", b"url3"]


def test_isolation_across_referers(store, referer):
    other = referer + "x"
    store.increment(f"view{referer}", b"same")
    store.increment(f"view{referer}", b"same")
    store.increment(f"view{other}", b"same")
    assert store.get(f"view{referer}", b"same") == 2
    assert store.get(f"view{other}", b"same") == 1
    assert store.get(f"click{referer}", b"same") is None
