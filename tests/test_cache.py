"""Tests for the TTL cache."""

from datetime import datetime, timedelta

from sqlconduit.cache import CacheEntry, TTLCache


class TestCacheEntry:

    def test_expiry_boundary(self):
        created = datetime(2024, 1, 1)
        entry = CacheEntry(value=1, created_at=created, expires_at=created + timedelta(seconds=10))

        assert not entry.is_expired(created + timedelta(seconds=9))
        assert entry.is_expired(created + timedelta(seconds=10))


class TestTTLCache:
    """Test TTLCache expiry, eviction and statistics."""

    def test_get_within_ttl(self, fake_clock):
        cache = TTLCache(ttl_seconds=60, clock=fake_clock)
        cache.put("a", [1, 2])

        fake_clock.advance(seconds=59)

        assert cache.get("a") == [1, 2]
        assert "a" in cache

    def test_expired_entry_is_absent(self, fake_clock):
        cache = TTLCache(ttl_seconds=60, clock=fake_clock)
        cache.put("a", "value")

        fake_clock.advance(seconds=61)

        assert cache.get("a") is None
        assert len(cache) == 0
        assert cache.get_statistics()['expirations'] == 1

    def test_lru_eviction(self, fake_clock):
        cache = TTLCache(ttl_seconds=60, max_entries=2, clock=fake_clock)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.get("a")  # b becomes least recently used

        cache.put("c", 3)

        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3
        assert cache.get_statistics()['evictions'] == 1

    def test_replacing_key_does_not_evict(self, fake_clock):
        cache = TTLCache(ttl_seconds=60, max_entries=2, clock=fake_clock)
        cache.put("a", 1)
        cache.put("b", 2)

        cache.put("a", 10)

        assert len(cache) == 2
        assert cache.get("a") == 10
        assert cache.get("b") == 2

    def test_sweep_removes_only_expired(self, fake_clock):
        cache = TTLCache(ttl_seconds=60, clock=fake_clock)
        cache.put("old", 1)
        fake_clock.advance(seconds=30)
        cache.put("new", 2)
        fake_clock.advance(seconds=40)

        removed = cache.sweep()

        assert removed == 1
        assert cache.get("new") == 2

    def test_invalidate_and_clear(self, fake_clock):
        cache = TTLCache(ttl_seconds=60, clock=fake_clock)
        cache.put("a", 1)
        cache.put("b", 2)

        assert cache.invalidate("a") is True
        assert cache.invalidate("a") is False

        cache.clear()
        assert len(cache) == 0

    def test_statistics(self, fake_clock):
        cache = TTLCache(ttl_seconds=60, max_entries=10, clock=fake_clock, name="test cache")
        cache.put("a", 1)
        cache.get("a")
        cache.get("missing")

        stats = cache.get_statistics()

        assert stats['name'] == "test cache"
        assert stats['hits'] == 1
        assert stats['misses'] == 1
        assert stats['hit_rate'] == 0.5
        assert stats['ttl_seconds'] == 60
