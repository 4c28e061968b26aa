# tests/test_bounded_cache.py

from __future__ import annotations

import pytest

from secretary_sync.cache.bounded import BoundedCache


def test_set_never_evicts_until_asked() -> None:
    cache: BoundedCache[str, int] = BoundedCache("t", 2)
    for i, k in enumerate("abcd"):
        cache.set(k, i)

    assert len(cache) == 4
    evicted = cache.evict_overflow()
    assert evicted == ["a", "b"]
    assert len(cache) == 2


def test_eviction_follows_access_order_not_insertion_order() -> None:
    cache: BoundedCache[str, int] = BoundedCache("t", 3)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)

    # Touch "a" so it becomes the most recently used.
    assert cache.get("a") == 1

    cache.set("d", 4)
    cache.set("e", 5)
    evicted = cache.evict_overflow()

    assert sorted(evicted) == ["b", "c"]
    assert set(cache.keys()) == {"a", "d", "e"}


def test_has_does_not_count_as_access() -> None:
    cache: BoundedCache[str, int] = BoundedCache("t", 2)
    cache.set("a", 1)
    cache.set("b", 2)

    assert cache.has("a")
    cache.set("c", 3)

    assert cache.evict_overflow() == ["a"]


def test_update_refreshes_recency() -> None:
    cache: BoundedCache[str, int] = BoundedCache("t", 2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 10)
    cache.set("c", 3)

    assert cache.evict_overflow() == ["b"]
    assert cache.get("a") == 10


def test_evict_with_explicit_limit() -> None:
    cache: BoundedCache[str, int] = BoundedCache("t", 10)
    for i in range(5):
        cache.set(f"k{i}", i)

    assert cache.evict_overflow(limit=2) == ["k0", "k1", "k2"]
    assert cache.evict_overflow(limit=5) == []


def test_instances_do_not_share_state() -> None:
    a: BoundedCache[str, int] = BoundedCache("a", 1)
    b: BoundedCache[str, int] = BoundedCache("b", 1)
    a.set("x", 1)
    b.set("y", 1)
    b.set("z", 2)

    assert a.evict_overflow() == []
    assert b.evict_overflow() == ["y"]
    assert "x" in a and "x" not in b


def test_stats_and_size_estimate() -> None:
    cache: BoundedCache[str, dict] = BoundedCache("docs", 5)
    assert cache.estimated_bytes() == 0

    cache.set("a", {"text": "hello"})
    cache.get("a")
    cache.get("missing")

    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["size"] == 1
    assert stats["estimated_bytes"] > 0


def test_remove_and_clear() -> None:
    cache: BoundedCache[str, int] = BoundedCache("t", 3)
    cache.set("a", 1)
    assert cache.remove("a") is True
    assert cache.remove("a") is False

    cache.set("b", 2)
    cache.clear()
    assert len(cache) == 0


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        BoundedCache("t", 0)
