"""
Unit tests for HitManager.

Covers:
    - referer validation (alphanumeric, 1..250 chars)
    - URL list validation (non-empty list of strings)
    - fan-out: one increment per URL, duplicates counted twice
    - best-effort: a failing URL does not stop the others
    - a closed store fails every URL instead of raising
"""

import pytest

from ctr_platform.errors import StoreWriteError, ValidationError
from ctr_platform.manager.hit_manager import HitManager, validate_referer
from ctr_platform.storage.base import to_key
from ctr_platform.storage.storage import MemoryCounterStore


class FailingWrites(MemoryCounterStore):
    """In-memory store that refuses to count the given URLs."""

    def __init__(self, bad_urls):
        super().__init__()
        self.bad_urls = set(bad_urls)

    def increment(self, namespace, key):
        if to_key(key) in self.bad_urls:
            raise StoreWriteError("simulated write failure")
        return super().increment(namespace, key)


@pytest.mark.parametrize("referer", ["hotpop", "A", "abc123XYZ", "9" * 250])
def test_valid_referers(referer):
    assert validate_referer(referer) == referer


@pytest.mark.parametrize(
    "referer,message",
    [
        ("", "required"),
        (None, "required"),
        ("9" * 251, "too long"),
        ("hot-pop", "0-9a-zA-Z"),
        ("hot pop", "0-9a-zA-Z"),
        ("hötpop", "0-9a-zA-Z"),
    ],
)
def test_invalid_referers(referer, message):
    with pytest.raises(ValidationError, match=message):
        validate_referer(referer)


def test_validation_error_is_value_error():
    assert issubclass(ValidationError, ValueError)


def test_register_view_counts_each_url(manager, memory_store):
    result = manager.register_view("hotpop", ["url1", "url2"])
    assert result.ok
    assert result.counted == ["url1", "url2"]
    assert memory_store.get("viewhotpop", "url1") == 1
    assert memory_store.get("viewhotpop", "url2") == 1
    assert memory_store.get("clickhotpop", "url1") is None


def test_register_click_uses_click_namespace(manager, memory_store):
    manager.register_click("hotpop", ["url1"])
    assert memory_store.get("clickhotpop", "url1") == 1
    assert memory_store.list_keys("viewhotpop") == []


def test_duplicate_urls_count_twice(manager, memory_store):
    manager.register("view", "hotpop", ["url1", "url1"])
    assert memory_store.get("viewhotpop", "url1") == 2


@pytest.mark.parametrize("urls", [[], None, "url1", [1, 2], ["ok", None]])
def test_invalid_url_lists(manager, memory_store, urls):
    with pytest.raises(ValidationError):
        manager.register("view", "hotpop", urls)
    assert memory_store.list_keys("viewhotpop") == []


def test_unknown_metric(manager):
    with pytest.raises(ValidationError, match="Unknown metric"):
        manager.register("impression", "hotpop", ["url1"])


def test_partial_failure_continues():
    store = FailingWrites(bad_urls=[b"bad"])
    result = HitManager(store).register("view", "hotpop", ["url1", "bad", "url2"])
    assert not result.ok
    assert result.counted == ["url1", "url2"]
    assert result.failed == ["bad"]
    assert store.list_keys("viewhotpop") == [b"url1", b"url2"]


def test_closed_store_fails_every_url():
    store = MemoryCounterStore()
    store.close()
    result = HitManager(store).register("click", "hotpop", ["url1", "url2"])
    assert result.counted == []
    assert result.failed == ["url1", "url2"]
