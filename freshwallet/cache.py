"""
TTL CACHE

In-memory cache used to memoize expensive lookups (token resolution).
Implements per-entry TTL, lazy eviction on read, a periodic sweeper and an
optional size limit with LRU eviction.

API SAVINGS: the token screener is queried once per hour per watch-list,
not once per scan.
"""

import asyncio
import inspect
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class TTLCache:
    """
    Thread-safe in-memory cache with per-entry TTL.

    Features:
    - TTL-based expiration (lazy on access + periodic sweep)
    - compute-once-on-miss via get_or_set()
    - Optional size limit with LRU eviction
    """

    def __init__(self, config: Dict = None, clock: Callable[[], float] = time.monotonic):
        """
        Initialize cache.

        Args:
            config: Cache configuration dict
                    (ttl_seconds, max_size, sweep_interval_seconds)
            clock: Monotonic clock in seconds (injectable for tests)
        """
        self.config = config or {}

        self.ttl_seconds = self.config.get('ttl_seconds', 3600)  # 1 hour default
        self.max_size = self.config.get('max_size')  # None = unbounded
        self.sweep_interval = self.config.get('sweep_interval_seconds', 120)

        self._clock = clock
        self._cache: Dict[str, Dict] = {}
        self._lock = threading.Lock()

        # Stats
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.expirations = 0

    def _is_expired(self, entry: Dict, now: float) -> bool:
        return now >= entry['expires_at']

    def _lookup(self, key: str) -> Optional[Dict]:
        """Live entry for key, evicting it if expired. Caller holds the lock."""
        entry = self._cache.get(key)
        if entry is None:
            return None
        now = self._clock()
        if self._is_expired(entry, now):
            del self._cache[key]
            self.expirations += 1
            logger.debug(f"[CACHE] EXPIRED: {key}")
            return None
        entry['last_accessed'] = now
        return entry

    def get(self, key: str) -> Optional[Any]:
        """
        Get cached value if exists and not expired.

        Returns:
            Cached value or None
        """
        with self._lock:
            entry = self._lookup(key)
            if entry is None:
                self.misses += 1
                logger.debug(f"[CACHE] miss: {key}")
                return None
            self.hits += 1
            logger.debug(f"[CACHE] hit: {key}")
            return entry['value']

    def has(self, key: str) -> bool:
        with self._lock:
            return self._lookup(key) is not None

    def set(self, key: str, value: Any, ttl: Optional[float] = None):
        """
        Set cache value.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Seconds to live (defaults to the cache TTL)
        """
        ttl = self.ttl_seconds if ttl is None else ttl
        with self._lock:
            if self.max_size and key not in self._cache and len(self._cache) >= self.max_size:
                self._evict_lru()

            now = self._clock()
            self._cache[key] = {
                'value': value,
                'created_at': now,
                'last_accessed': now,
                'expires_at': now + ttl,
            }
        logger.debug(f"[CACHE] SET: {key} (TTL: {ttl}s)")

    def delete(self, key: str) -> bool:
        """
        Delete cache entry.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                logger.debug(f"[CACHE] DEL: {key}")
                return True
            return False

    async def get_or_set(self, key: str, factory: Callable[[], Any], ttl: Optional[float] = None) -> Any:
        """
        Return the cached value, or compute it once and store it.

        The factory runs at most once per miss and its result is stored before
        being returned. Concurrent misses on the same key may both compute; the
        last write wins. A None result is returned but not stored; a factory
        exception propagates and stores nothing.

        Args:
            key: Cache key
            factory: Zero-arg callable, sync or async
            ttl: Seconds to live (defaults to the cache TTL)
        """
        value = self.get(key)
        if value is not None:
            return value

        logger.debug(f"[CACHE] miss for {key}, computing")
        value = factory()
        if inspect.isawaitable(value):
            value = await value

        if value is not None:
            self.set(key, value, ttl)
        return value

    def clear(self):
        """Clear all cache entries."""
        with self._lock:
            self._cache.clear()
            self.hits = 0
            self.misses = 0
            self.evictions = 0
            self.expirations = 0
        logger.info("[CACHE] Cleared")

    def keys(self) -> List[str]:
        """Keys of live entries."""
        with self._lock:
            now = self._clock()
            return [key for key, entry in self._cache.items() if not self._is_expired(entry, now)]

    def get_ttl(self, key: str) -> Optional[float]:
        """Seconds left for key, None if absent or expired."""
        with self._lock:
            entry = self._lookup(key)
            if entry is None:
                return None
            return entry['expires_at'] - self._clock()

    def _evict_lru(self):
        """Evict least recently used entry."""
        if not self._cache:
            return

        lru_key = min(
            self._cache.keys(),
            key=lambda k: self._cache[k]['last_accessed']
        )

        del self._cache[lru_key]
        self.evictions += 1

    def cleanup_expired(self) -> int:
        """Remove all expired entries."""
        with self._lock:
            now = self._clock()
            expired_keys = [
                key for key, entry in self._cache.items()
                if self._is_expired(entry, now)
            ]

            for key in expired_keys:
                del self._cache[key]
            self.expirations += len(expired_keys)

            return len(expired_keys)

    async def run_sweeper(self):
        """Periodic expired-entry sweep (runs as background task)."""
        logger.debug(f"[CACHE] Sweeper started (every {self.sweep_interval}s)")
        while True:
            await asyncio.sleep(self.sweep_interval)
            removed = self.cleanup_expired()
            if removed:
                logger.debug(f"[CACHE] Swept {removed} expired entries")

    @staticmethod
    def create_key(prefix: str, *parts) -> str:
        """Build 'prefix:part1:part2...'."""
        return ':'.join([prefix] + [str(part) for part in parts])

    def get_stats(self) -> Dict:
        """
        Get cache statistics.

        Returns:
            Dict with cache stats
        """
        with self._lock:
            total_requests = self.hits + self.misses
            hit_rate = (self.hits / total_requests * 100) if total_requests > 0 else 0

            return {
                'size': len(self._cache),
                'max_size': self.max_size,
                'hits': self.hits,
                'misses': self.misses,
                'hit_rate_pct': hit_rate,
                'evictions': self.evictions,
                'expirations': self.expirations,
                'ttl_seconds': self.ttl_seconds,
            }
