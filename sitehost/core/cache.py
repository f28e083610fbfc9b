#!/usr/bin/env python3
"""Populate-once LRU caches for SiteHost.

This module provides the caches the request path depends on:
- Named cache regions (compiled patterns, per-host site configs)
- LRU eviction bounded by entry count
- Optional TTL-based expiration (None keeps entries for the process lifetime)
- Thread-safe operations
- Single-flight get_or_create: concurrent misses for one key run the
  factory once, misses for different keys proceed independently
- Cache statistics

Example:
    >>> caches = CacheManager()
    >>> pattern = caches.get_or_create(CacheRegion.PATTERNS, "glob:/a/*", build)
    >>> caches.get_stats()["patterns"]["loads"]
    1
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from sitehost.core.constants import Limits

T = TypeVar("T")


class CacheRegion(Enum):
    """Cache regions with different contents."""

    PATTERNS = "patterns"  # Compiled rule patterns, keyed by type and source
    SITES = "sites"  # SiteConfig per hostname


@dataclass
class CacheEntry:
    """Single cache entry with metadata."""

    key: str
    value: Any
    timestamp: float = field(default_factory=time.time)
    access_count: int = 0
    last_access: float = field(default_factory=time.time)

    def is_expired(self, ttl: Optional[float]) -> bool:
        """Check if entry has expired.

        Args:
            ttl: Time-to-live in seconds, None for no expiry

        Returns:
            True if expired
        """
        if ttl is None:
            return False
        return time.time() - self.timestamp > ttl

    def touch(self) -> None:
        """Update access time and count."""
        self.last_access = time.time()
        self.access_count += 1


@dataclass
class CacheConfig:
    """Configuration for a cache region."""

    max_entries: int
    ttl_seconds: Optional[float] = None
    enabled: bool = True

    def validate(self) -> None:
        """Validate cache configuration."""
        if self.max_entries <= 0:
            raise ValueError(f"max_entries must be positive: {self.max_entries}")
        if self.ttl_seconds is not None and self.ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive: {self.ttl_seconds}")


class LRUCache:
    """Thread-safe LRU cache with single-flight loading."""

    def __init__(self, config: CacheConfig):
        """Initialize LRU cache.

        Args:
            config: Cache configuration
        """
        self.config = config
        self.config.validate()
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._inflight: Dict[str, threading.Lock] = {}

        # Statistics
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0
        self._loads = 0
        self._load_failures = 0

    def _lookup(self, key: str) -> Tuple[bool, Any]:
        """Find a live entry. Caller holds the lock."""
        entry = self._cache.get(key)
        if entry is None:
            return False, None

        if entry.is_expired(self.config.ttl_seconds):
            del self._cache[key]
            self._expirations += 1
            return False, None

        self._cache.move_to_end(key)
        entry.touch()
        return True, entry.value

    def _store(self, key: str, value: Any) -> None:
        """Insert an entry, evicting LRU entries as needed. Caller holds the lock."""
        self._cache.pop(key, None)
        while len(self._cache) >= self.config.max_entries:
            self._evict_lru()
        self._cache[key] = CacheEntry(key=key, value=value)

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found/expired
        """
        if not self.config.enabled:
            with self._lock:
                self._misses += 1
            return None

        with self._lock:
            found, value = self._lookup(key)
            if found:
                self._hits += 1
            else:
                self._misses += 1
            return value

    def set(self, key: str, value: Any) -> None:
        """Set value in cache.

        Args:
            key: Cache key
            value: Value to cache
        """
        if not self.config.enabled:
            return

        with self._lock:
            self._store(key, value)

    def get_or_create(self, key: str, factory: Callable[[], T]) -> T:
        """Return the cached value for key, building it with factory on a miss.

        Only one thread runs the factory for a given key; the others wait on
        a per-key lock and then read the stored value. Exceptions from the
        factory are not cached and propagate to the caller that ran it.

        Args:
            key: Cache key
            factory: Zero-argument callable producing the value

        Returns:
            Cached or freshly built value
        """
        if not self.config.enabled:
            with self._lock:
                self._loads += 1
            return factory()

        with self._lock:
            found, value = self._lookup(key)
            if found:
                self._hits += 1
                return value
            self._misses += 1
            key_lock = self._inflight.setdefault(key, threading.Lock())

        with key_lock:
            with self._lock:
                found, value = self._lookup(key)
                if found:
                    return value

            with self._lock:
                self._loads += 1
            try:
                value = factory()
            except Exception:
                with self._lock:
                    self._load_failures += 1
                    if self._inflight.get(key) is key_lock:
                        del self._inflight[key]
                raise

            with self._lock:
                self._store(key, value)
                if self._inflight.get(key) is key_lock:
                    del self._inflight[key]
            return value

    def invalidate(self, key: str) -> bool:
        """Remove entry from cache.

        Args:
            key: Cache key

        Returns:
            True if entry was removed
        """
        with self._lock:
            return self._cache.pop(key, None) is not None

    def clear(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            self._cache.clear()

    def _evict_lru(self) -> None:
        """Evict least recently used entry."""
        if self._cache:
            self._cache.popitem(last=False)
            self._evictions += 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._cache

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics.

        Returns:
            Cache statistics
        """
        with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = self._hits / total_requests if total_requests > 0 else 0

            return {
                "entries": len(self._cache),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": hit_rate,
                "evictions": self._evictions,
                "expirations": self._expirations,
                "loads": self._loads,
                "load_failures": self._load_failures,
            }

    def keys(self) -> List[str]:
        """Get cached keys, least recently used first."""
        with self._lock:
            return list(self._cache.keys())


class CacheManager:
    """Owns one LRUCache per region.

    The request router creates a single CacheManager and hands it to the
    pattern compiler and the site registry; there is no module-level cache.
    """

    DEFAULT_CONFIGS = {
        CacheRegion.PATTERNS: CacheConfig(max_entries=Limits.PATTERN_CACHE_ENTRIES),
        CacheRegion.SITES: CacheConfig(max_entries=Limits.SITE_CACHE_ENTRIES),
    }

    def __init__(self, configs: Optional[Dict[CacheRegion, CacheConfig]] = None):
        """Initialize cache manager.

        Args:
            configs: Cache configurations per region (defaults fill any gaps)
        """
        self.configs = dict(self.DEFAULT_CONFIGS)
        if configs:
            self.configs.update(configs)
        self.caches: Dict[CacheRegion, LRUCache] = {
            region: LRUCache(config) for region, config in self.configs.items()
        }

    def region(self, region: CacheRegion) -> LRUCache:
        """Get the cache backing a region."""
        return self.caches[region]

    def get(self, region: CacheRegion, key: str) -> Optional[Any]:
        """Get value from a region."""
        return self.caches[region].get(key)

    def set(self, region: CacheRegion, key: str, value: Any) -> None:
        """Set value in a region."""
        self.caches[region].set(key, value)

    def get_or_create(self, region: CacheRegion, key: str, factory: Callable[[], T]) -> T:
        """Single-flight lookup in a region. See LRUCache.get_or_create."""
        return self.caches[region].get_or_create(key, factory)

    def invalidate(self, region: CacheRegion, key: str) -> bool:
        """Invalidate one entry in a region."""
        return self.caches[region].invalidate(key)

    def clear(self, region: Optional[CacheRegion] = None) -> None:
        """Clear cache.

        Args:
            region: Specific region or None for all regions
        """
        if region:
            self.caches[region].clear()
        else:
            for cache in self.caches.values():
                cache.clear()

    def get_stats(self, region: Optional[CacheRegion] = None) -> Dict[str, Any]:
        """Get cache statistics.

        Args:
            region: Specific region or None for all regions

        Returns:
            Cache statistics keyed by region value when region is None
        """
        if region:
            return self.caches[region].get_stats()

        stats: Dict[str, Any] = {
            cache_region.value: cache.get_stats() for cache_region, cache in self.caches.items()
        }
        stats["totals"] = {
            "total_entries": sum(s["entries"] for s in stats.values()),
            "total_loads": sum(s["loads"] for s in stats.values()),
        }
        return stats
