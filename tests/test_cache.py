"""Tests for the bounded TTL lookup cache."""

import pytest

from app.services.cache import TTLCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestTTLCache:
    def test_get_returns_stored_value(self):
        cache = TTLCache()
        cache.set("location:lisbon:portugal", {"name": "Lisbon"})
        assert cache.get("location:lisbon:portugal") == {"name": "Lisbon"}
        assert cache.has("location:lisbon:portugal")

    def test_missing_key_is_none(self):
        assert TTLCache().get("nope") is None

    def test_entries_expire(self):
        clock = FakeClock()
        cache = TTLCache(clock=clock)
        cache.set("k", "v", ttl_seconds=10)
        clock.now += 9.9
        assert cache.get("k") == "v"
        clock.now += 0.2
        assert cache.get("k") is None
        assert not cache.has("k")

    def test_evicts_oldest_when_full(self):
        cache = TTLCache(max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        assert cache.get("a") is None
        assert cache.get("b") == 2
        assert cache.get("c") == 3
        assert cache.stats()["evictions"] == 1

    def test_expired_entries_are_purged_before_eviction(self):
        clock = FakeClock()
        cache = TTLCache(max_entries=2, clock=clock)
        cache.set("short", 1, ttl_seconds=1)
        cache.set("long", 2, ttl_seconds=100)
        clock.now += 5
        cache.set("new", 3)
        assert cache.get("long") == 2
        assert cache.stats()["evictions"] == 0

    def test_delete_and_clear(self):
        cache = TTLCache()
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.delete("a") is True
        assert cache.delete("a") is False
        cache.clear()
        assert len(cache) == 0

    def test_stats_track_hits_and_misses(self):
        cache = TTLCache()
        cache.set("a", 1)
        cache.get("a")
        cache.get("missing")
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["size"] == 1

    def test_rejects_non_positive_capacity(self):
        with pytest.raises(ValueError):
            TTLCache(max_entries=0)
