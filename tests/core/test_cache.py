#!/usr/bin/env python3
"""Tests for the cache module."""

import threading
import time
from unittest.mock import patch

import pytest

from sitehost.core.cache import CacheConfig, CacheEntry, CacheManager, CacheRegion, LRUCache


class TestCacheEntry:
    """Tests for CacheEntry dataclass."""

    def test_no_ttl_never_expires(self):
        """Test entries without a TTL live forever."""
        entry = CacheEntry(key="a", value=1, timestamp=0)
        assert not entry.is_expired(None)

    def test_expiry(self):
        """Test TTL expiry."""
        entry = CacheEntry(key="a", value=1)
        assert not entry.is_expired(60)
        with patch("time.time", return_value=entry.timestamp + 61):
            assert entry.is_expired(60)

    def test_touch(self):
        """Test access tracking."""
        entry = CacheEntry(key="a", value=1)
        entry.touch()
        entry.touch()
        assert entry.access_count == 2


class TestCacheConfig:
    """Tests for CacheConfig."""

    def test_invalid_max_entries(self):
        """Test max_entries must be positive."""
        with pytest.raises(ValueError):
            CacheConfig(max_entries=0).validate()

    def test_invalid_ttl(self):
        """Test ttl must be positive when set."""
        with pytest.raises(ValueError):
            CacheConfig(max_entries=1, ttl_seconds=0).validate()


class TestLRUCache:
    """Tests for LRUCache."""

    def test_get_set(self):
        """Test basic storage."""
        cache = LRUCache(CacheConfig(max_entries=3))
        cache.set("a", 1)
        assert cache.get("a") == 1
        assert cache.get("b") is None
        assert "a" in cache
        assert len(cache) == 1

    def test_lru_eviction(self):
        """Test the least recently used entry is evicted."""
        cache = LRUCache(CacheConfig(max_entries=2))
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert cache.keys() == ["a", "c"]
        assert cache.get_stats()["evictions"] == 1

    def test_ttl_expiration(self):
        """Test expired entries are dropped on lookup."""
        cache = LRUCache(CacheConfig(max_entries=2, ttl_seconds=10))
        cache.set("a", 1)
        with patch("time.time", return_value=time.time() + 11):
            assert cache.get("a") is None
        assert cache.get_stats()["expirations"] == 1

    def test_invalidate_and_clear(self):
        """Test removal."""
        cache = LRUCache(CacheConfig(max_entries=5))
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.invalidate("a")
        assert not cache.invalidate("a")
        cache.clear()
        assert len(cache) == 0

    def test_disabled(self):
        """Test a disabled cache stores nothing but still builds values."""
        cache = LRUCache(CacheConfig(max_entries=5, enabled=False))
        cache.set("a", 1)
        assert cache.get("a") is None
        assert cache.get_or_create("a", lambda: 2) == 2
        assert len(cache) == 0

    def test_disabled_stats_concurrent(self):
        """Test a disabled cache counts every miss and load across threads."""
        cache = LRUCache(CacheConfig(max_entries=5, enabled=False))

        def worker():
            for _ in range(1000):
                cache.get("a")
                cache.get_or_create("a", lambda: 1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        stats = cache.get_stats()
        assert stats["misses"] == 8000
        assert stats["loads"] == 8000

    def test_get_or_create(self):
        """Test factories run once per key."""
        cache = LRUCache(CacheConfig(max_entries=5))
        calls = []

        def factory():
            calls.append(1)
            return "value"

        assert cache.get_or_create("k", factory) == "value"
        assert cache.get_or_create("k", factory) == "value"
        assert len(calls) == 1
        stats = cache.get_stats()
        assert stats["loads"] == 1
        assert stats["hits"] == 1
        assert stats["misses"] == 1

    def test_get_or_create_failure_not_cached(self):
        """Test factory errors propagate and are retried."""
        cache = LRUCache(CacheConfig(max_entries=5))

        def broken():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            cache.get_or_create("k", broken)
        assert "k" not in cache
        assert cache.get_or_create("k", lambda: 1) == 1
        assert cache.get_stats()["load_failures"] == 1

    def test_single_flight(self):
        """Test concurrent misses for one key run the factory once."""
        cache = LRUCache(CacheConfig(max_entries=5))
        calls = []
        started = threading.Event()

        def slow():
            calls.append(1)
            started.set()
            time.sleep(0.1)
            return object()

        results = []
        threads = [threading.Thread(target=lambda: results.append(cache.get_or_create("k", slow))) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert started.is_set()
        assert len(calls) == 1
        assert len(results) == 8
        assert all(r is results[0] for r in results)

    def test_different_keys_independent(self):
        """Test a slow factory does not block other keys."""
        cache = LRUCache(CacheConfig(max_entries=5))
        release = threading.Event()

        def blocked():
            release.wait(5)
            return "slow"

        thread = threading.Thread(target=lambda: cache.get_or_create("slow", blocked))
        thread.start()
        try:
            assert cache.get_or_create("fast", lambda: "fast") == "fast"
        finally:
            release.set()
            thread.join()
        assert cache.get("slow") == "slow"

    def test_hit_rate(self):
        """Test hit rate statistics."""
        cache = LRUCache(CacheConfig(max_entries=5))
        assert cache.get_stats()["hit_rate"] == 0
        cache.set("a", 1)
        cache.get("a")
        cache.get("b")
        assert cache.get_stats()["hit_rate"] == 0.5


class TestCacheManager:
    """Tests for CacheManager."""

    def test_default_regions(self):
        """Test both regions exist by default."""
        caches = CacheManager()
        assert set(caches.caches) == {CacheRegion.PATTERNS, CacheRegion.SITES}

    def test_override_region(self):
        """Test per-region configuration."""
        caches = CacheManager({CacheRegion.SITES: CacheConfig(max_entries=1)})
        caches.set(CacheRegion.SITES, "a", 1)
        caches.set(CacheRegion.SITES, "b", 2)
        assert caches.get(CacheRegion.SITES, "a") is None
        assert caches.get(CacheRegion.SITES, "b") == 2

    def test_regions_isolated(self):
        """Test regions do not share keys."""
        caches = CacheManager()
        caches.set(CacheRegion.SITES, "k", "site")
        caches.set(CacheRegion.PATTERNS, "k", "pattern")
        assert caches.get(CacheRegion.SITES, "k") == "site"
        assert caches.invalidate(CacheRegion.SITES, "k")
        assert caches.get(CacheRegion.PATTERNS, "k") == "pattern"

    def test_clear(self):
        """Test clearing one region or all."""
        caches = CacheManager()
        caches.set(CacheRegion.SITES, "a", 1)
        caches.set(CacheRegion.PATTERNS, "b", 2)
        caches.clear(CacheRegion.SITES)
        assert caches.get(CacheRegion.PATTERNS, "b") == 2
        caches.clear()
        assert caches.get(CacheRegion.PATTERNS, "b") is None

    def test_get_or_create(self):
        """Test region single-flight lookup."""
        caches = CacheManager()
        assert caches.get_or_create(CacheRegion.PATTERNS, "p", lambda: 1) == 1
        assert caches.get_or_create(CacheRegion.PATTERNS, "p", lambda: 2) == 1

    def test_stats(self):
        """Test aggregated statistics."""
        caches = CacheManager()
        caches.get_or_create(CacheRegion.SITES, "a", lambda: 1)
        stats = caches.get_stats()
        assert stats["sites"]["entries"] == 1
        assert stats["totals"]["total_entries"] == 1
        assert stats["totals"]["total_loads"] == 1
        assert caches.get_stats(CacheRegion.PATTERNS)["entries"] == 0
