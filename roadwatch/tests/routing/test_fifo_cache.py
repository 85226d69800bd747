"""Tests for FifoTtlCache ordering and expiry."""
from __future__ import annotations

import pytest

from roadwatch.domains.routing.cache import FifoTtlCache


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_entry_valid_strictly_before_ttl() -> None:
    clock = _FakeClock()
    cache: FifoTtlCache[str] = FifoTtlCache(10, 5, clock=clock)
    cache.set("a", "value")

    clock.now = 9.999
    assert cache.get("a") == "value"

    clock.now = 10
    assert cache.get("a") is None
    # 过期条目读取时不删除
    assert "a" in cache


def test_overwrite_moves_key_to_tail_and_refreshes_age() -> None:
    """Rewriting a key re-inserts it at the back of the eviction queue."""

    clock = _FakeClock()
    cache: FifoTtlCache[int] = FifoTtlCache(10, 3, clock=clock)
    for i, key in enumerate("abc"):
        cache.set(key, i)

    clock.now = 8
    cache.set("a", 99)
    cache.set("d", 3)

    assert cache.keys() == ["c", "a", "d"]
    clock.now = 12
    assert cache.get("a") == 99
    assert cache.get("c") is None


def test_reads_do_not_change_eviction_order() -> None:
    cache: FifoTtlCache[int] = FifoTtlCache(100, 2, clock=_FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)

    cache.get("a")
    cache.set("c", 3)

    assert cache.keys() == ["b", "c"]
    assert len(cache) == 2


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        FifoTtlCache(10, 0)
