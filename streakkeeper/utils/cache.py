"""
Result cache for streak and progress computations

TTL-based in-memory cache with user-scoped keys. The cache is advisory:
a miss or any internal failure falls back to direct computation, so it can
only ever make results stale (bounded by TTL), never wrong.

One ResultCache instance is created at startup and handed to the services;
there is no module-level cache state.
"""
import asyncio
import inspect
import logging
import time
from urllib.parse import quote
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

from streakkeeper.config import settings
from streakkeeper.exceptions import CacheError
from streakkeeper.observability.metrics import cache_operations_total

logger = logging.getLogger(__name__)

KEY_SEPARATOR = ":"


class CacheConfig:
    """Cache TTLs in seconds"""
    DEFAULT_TTL = 300
    HABITS_TTL = settings.cache_habits_ttl  # habit listings
    STATS_TTL = settings.cache_stats_ttl  # per-habit stats
    PROGRESS_TTL = settings.cache_progress_ttl  # progress overview


def user_segment(user_id: Any) -> str:
    """User id as it appears in a key; the separator is percent-escaped"""
    return quote(str(user_id), safe="")


def make_key(prefix: str, user_id: str, *parts: Any) -> str:
    """
    Build a cache key whose second segment is the owning user

    >>> make_key("stats", "user_1", 42, "UTC")
    'stats:user_1:42:UTC'
    >>> make_key("stats", "org:alice", 42, "UTC")
    'stats:org%3Aalice:42:UTC'
    """
    return KEY_SEPARATOR.join([prefix, user_segment(user_id), *(str(part) for part in parts)])


class ResultCache:
    """
    Process-local TTL cache.

    Not coordinated across processes: each instance may hold its own stale
    copy until the entry's TTL runs out.
    """

    def __init__(
        self,
        enabled: bool = True,
        default_ttl: int = CacheConfig.DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic
    ):
        self.enabled = enabled
        self.default_ttl = default_ttl
        self._clock = clock
        # {cache_key: (value, expiry_timestamp)}
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._stats = {
            "hits": 0,
            "misses": 0,
            "errors": 0,
            "invalidations": 0,
            "total_queries": 0
        }

    def __len__(self) -> int:
        return len(self._entries)

    def _lookup(self, key: str) -> Tuple[bool, Any]:
        if not isinstance(key, str) or not key:
            raise CacheError(f"Invalid cache key: {key!r}", key=str(key))

        try:
            entry = self._entries.get(key)
            if entry is None:
                return False, None

            value, expiry = entry
            if self._clock() >= expiry:
                del self._entries[key]
                cache_operations_total.labels(operation="expired").inc()
                logger.debug(f"Cache EXPIRED: {key}")
                return False, None
            return True, value
        except Exception as e:
            raise CacheError(f"Cache lookup failed: {e}", key=key, cause=e)

    def _store(self, key: str, value: Any, ttl: Optional[int]) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        if not isinstance(key, str) or not key:
            raise CacheError(f"Invalid cache key: {key!r}", key=str(key))
        if ttl <= 0:
            raise CacheError(f"Invalid TTL {ttl} for cache key", key=key)

        try:
            self._entries[key] = (value, self._clock() + ttl)
        except Exception as e:
            raise CacheError(f"Cache store failed: {e}", key=key, cause=e)
        logger.debug(f"Cache STORED: {key} (TTL: {ttl}s)")

    async def get_or_compute(
        self,
        key: str,
        ttl: Optional[int],
        factory: Callable[[], Union[Any, Awaitable[Any]]]
    ) -> Any:
        """
        Return the cached value for key, or compute, store and return it.

        Args:
            key: Cache key (see make_key)
            ttl: Time to live in seconds (None = default TTL)
            factory: Zero-argument callable (sync or async) computing the value

        Errors raised by factory propagate unchanged; cache errors never do.
        """
        self._stats["total_queries"] += 1

        if not self.enabled:
            return await _resolve(factory())

        try:
            hit, value = self._lookup(key)
        except CacheError:
            self._stats["errors"] += 1
            cache_operations_total.labels(operation="error").inc()
            hit, value = False, None

        if hit:
            self._stats["hits"] += 1
            cache_operations_total.labels(operation="hit").inc()
            logger.debug(f"Cache HIT: {key}")
            return value

        self._stats["misses"] += 1
        cache_operations_total.labels(operation="miss").inc()
        logger.debug(f"Cache MISS: {key}")

        value = await _resolve(factory())

        try:
            self._store(key, value, ttl)
        except CacheError:
            self._stats["errors"] += 1
            cache_operations_total.labels(operation="error").inc()

        return value

    def invalidate_all_for_user(self, user_id: str) -> int:
        """
        Drop every entry owned by user_id.

        Called after any habit or tracker mutation of the user. Only the user
        segment of a key is compared, so user "12" never invalidates user
        "123", and a habit id or date equal to "12" is not mistaken for it.

        Returns:
            Number of cache entries invalidated
        """
        segment = user_segment(user_id)
        keys_to_delete = [
            key for key in self._entries
            if key.split(KEY_SEPARATOR, 2)[1:2] == [segment]
        ]
        for key in keys_to_delete:
            del self._entries[key]

        count = len(keys_to_delete)
        self._stats["invalidations"] += count
        if count > 0:
            cache_operations_total.labels(operation="invalidation").inc(count)
            logger.info(f"Invalidated {count} cache entries for user {user_id}")
        return count

    def clear_expired_entries(self) -> int:
        """
        Remove expired entries.

        Reads already skip expired entries; this only reclaims memory.

        Returns:
            Number of expired entries removed
        """
        now = self._clock()
        expired_keys = [
            key for key, (_, expiry) in self._entries.items()
            if now >= expiry
        ]
        for key in expired_keys:
            del self._entries[key]

        if expired_keys:
            logger.info(f"Cleared {len(expired_keys)} expired cache entries")
        return len(expired_keys)

    async def run_expiry_sweep(self, interval_seconds: float) -> None:
        """Periodically clear expired entries until cancelled"""
        logger.info(f"Cache expiry sweep started (every {interval_seconds}s)")
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                self.clear_expired_entries()
            except Exception as e:
                logger.warning(f"Cache expiry sweep failed: {e}")

    def get_stats(self) -> dict:
        """
        Get cache performance statistics.

        Returns:
            dict with hits, misses, errors, hit_rate_percent, invalidations,
            total_queries, cache_size
        """
        hits = self._stats["hits"]
        total = self._stats["total_queries"]
        hit_rate = (hits / total * 100) if total > 0 else 0

        return {
            "hits": hits,
            "misses": self._stats["misses"],
            "errors": self._stats["errors"],
            "hit_rate_percent": round(hit_rate, 2),
            "invalidations": self._stats["invalidations"],
            "total_queries": total,
            "cache_size": len(self._entries)
        }

    def reset_stats(self) -> None:
        """Reset cache statistics (useful for testing)"""
        for name in self._stats:
            self._stats[name] = 0


async def _resolve(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result
