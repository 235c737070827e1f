"""In-memory tier: TTL, sweep, eviction and the background sweeper."""

from __future__ import annotations

import datetime as dt
import time

from placecache.infrastructure.cache import MemoryCache, MemoryCacheEntry


class _Tick:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _entry(key: str) -> MemoryCacheEntry:
    return MemoryCacheEntry(key=key, places=[], timestamp=dt.datetime.now(dt.timezone.utc))


def test_entry_expires_after_ttl():
    clock = _Tick()
    cache = MemoryCache(default_ttl=3600, clock=clock)
    cache.set("k", _entry("k"))

    clock.now += 3599
    assert cache.get("k") is not None
    clock.now += 2
    assert cache.get("k") is None
    assert len(cache) == 0


def test_ttl_is_absolute_not_sliding():
    clock = _Tick()
    cache = MemoryCache(default_ttl=10, clock=clock)
    cache.set("k", _entry("k"))
    for _ in range(3):
        clock.now += 4
        cache.get("k")
    assert cache.get("k") is None


def test_sweep_removes_only_expired_entries():
    clock = _Tick()
    cache = MemoryCache(default_ttl=10, clock=clock)
    cache.set("old", _entry("old"))
    clock.now += 8
    cache.set("new", _entry("new"))
    clock.now += 5

    assert cache.sweep() == 1
    assert cache.get("new") is not None
    assert len(cache) == 1


def test_size_cap_evicts_soonest_expiring():
    clock = _Tick()
    cache = MemoryCache(default_ttl=100, max_size=10, clock=clock)
    for i in range(10):
        clock.now += 1
        cache.set(f"k{i}", _entry(f"k{i}"))

    cache.set("k10", _entry("k10"))
    assert len(cache) <= 10
    assert cache.get("k0") is None
    assert cache.get("k10") is not None

    # overwriting an existing key never evicts
    before = len(cache)
    cache.set("k10", _entry("k10"))
    assert len(cache) == before


def test_delete_clear_and_stats():
    cache = MemoryCache()
    cache.set("a", _entry("a"))
    assert cache.get("a") is not None
    assert cache.get("missing") is None
    stats = cache.stats
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["size"] == 1

    assert cache.delete("a") is True
    assert cache.delete("a") is False
    cache.set("b", _entry("b"))
    cache.clear()
    assert len(cache) == 0
    assert cache.stats["hits"] == 0


def test_background_sweeper_runs_and_stops():
    clock = _Tick()
    cache = MemoryCache(default_ttl=1, sweep_interval=0.01, clock=clock)
    cache.set("k", _entry("k"))
    clock.now += 5
    cache.start_sweeper()
    try:
        deadline = time.time() + 2
        while len(cache) and time.time() < deadline:
            time.sleep(0.01)
        assert len(cache) == 0
    finally:
        cache.close()
    cache.close()
