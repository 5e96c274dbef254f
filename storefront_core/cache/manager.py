"""
Read-Through Cache Manager

Cache manager with:
- Single-flight fetches: concurrent misses on one key share a single fetch
- TTL on every write
- Hit/miss/error statistics, also exported as Prometheus counters
- Graceful degradation: backend failures are logged and counted, never raised

A manager is constructed once at startup and passed to its callers. The
in-flight map is the only mutual exclusion used; its entry for a key is
removed whenever the fetch settles.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import structlog
from prometheus_client import Counter, Histogram

from storefront_core.cache.store import CacheStore
from storefront_core.config.settings import CacheSettings
from storefront_core.exceptions import FetchTimeoutError

logger = structlog.get_logger(__name__)

FetchFn = Callable[[], Awaitable[Any]]


# =============================================================================
# METRICS
# =============================================================================

CACHE_LOOKUPS = Counter(
    "storefront_cache_lookups_total",
    "Cache lookups by result",
    ["result"],
)

CACHE_ERRORS = Counter(
    "storefront_cache_errors_total",
    "Cache backend failures absorbed by the manager",
    ["operation"],
)

FETCH_TIMEOUTS = Counter(
    "storefront_cache_fetch_timeouts_total",
    "Source fetches abandoned after the fetch timeout",
)

FETCH_TIME = Histogram(
    "storefront_cache_fetch_seconds",
    "Time spent in source fetches on a cache miss",
)


@dataclass
class CacheStats:
    """Cumulative cache statistics."""
    hits: int = 0
    misses: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


def _consume_result(task: "asyncio.Task[Any]") -> None:
    # Every waiter may have been cancelled; mark the outcome as retrieved.
    if not task.cancelled():
        task.exception()


class CacheManager:
    """
    Read-through cache over a CacheStore.

    Example:
        manager = CacheManager(store, default_ttl=300)
        data = await manager.get_or_fetch(
            keys.analytics(store_id, "last7days", "summary"),
            lambda: service.compute_summary(store_id),
            ttl_seconds=300,
        )
    """

    def __init__(
        self,
        store: CacheStore,
        default_ttl: int = 300,
        fetch_timeout: Optional[float] = 10.0,
        enabled: bool = True,
    ):
        self.store = store
        self.default_ttl = default_ttl
        self.fetch_timeout = fetch_timeout
        self.enabled = enabled
        self._in_flight: Dict[str, "asyncio.Task[Any]"] = {}
        self._stats = CacheStats()

    @classmethod
    def from_settings(cls, store: CacheStore, settings: CacheSettings) -> "CacheManager":
        return cls(
            store,
            default_ttl=settings.default_ttl_seconds,
            fetch_timeout=settings.fetch_timeout_seconds,
            enabled=settings.enabled,
        )

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def get_or_fetch(
        self,
        key: str,
        fetch_fn: FetchFn,
        ttl_seconds: Optional[int] = None,
        should_cache: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        """
        Get from cache or fetch, cache and return.

        Args:
            key: Cache key built with storefront_core.cache.keys
            fetch_fn: Async callable producing the value on a miss
            ttl_seconds: Time-to-live; defaults to the manager's default TTL
            should_cache: Optional predicate; values it rejects are returned
                to every waiter but not written to the store

        Returns:
            Cached or fetched value

        Raises:
            ValueError for a TTL that is not positive, whatever fetch_fn
            raises, or FetchTimeoutError when it exceeds the fetch timeout.
            Cache backend failures are never raised.
        """
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl}")

        if self.enabled:
            try:
                cached = await self.store.get(key)
            except Exception as e:
                self._stats.errors += 1
                CACHE_ERRORS.labels(operation="get").inc()
                logger.warning("Cache get failed, fetching from source", key=key, error=str(e))
            else:
                if cached is not None:
                    self._stats.hits += 1
                    CACHE_LOOKUPS.labels(result="hit").inc()
                    logger.debug("Cache hit", key=key)
                    return cached

        self._stats.misses += 1
        CACHE_LOOKUPS.labels(result="miss").inc()

        task = self._in_flight.get(key)
        if task is None:
            logger.debug("Cache miss, fetching", key=key)
            task = asyncio.ensure_future(self._fetch(key, fetch_fn, ttl, should_cache))
            task.add_done_callback(_consume_result)
            self._in_flight[key] = task
        else:
            logger.debug("Cache miss, joining in-flight fetch", key=key)

        return await asyncio.shield(task)

    async def _fetch(
        self,
        key: str,
        fetch_fn: FetchFn,
        ttl_seconds: int,
        should_cache: Optional[Callable[[Any], bool]],
    ) -> Any:
        try:
            try:
                with FETCH_TIME.time():
                    async with asyncio.timeout(self.fetch_timeout) as scope:
                        value = await fetch_fn()
            except TimeoutError as e:
                if scope.expired():
                    FETCH_TIMEOUTS.inc()
                    logger.error("Fetch timed out", key=key, timeout=self.fetch_timeout)
                    raise FetchTimeoutError(key, self.fetch_timeout) from e
                raise

            if self.enabled and value is not None and (should_cache is None or should_cache(value)):
                try:
                    await self.store.setex(key, ttl_seconds, value)
                except Exception as e:
                    self._stats.errors += 1
                    CACHE_ERRORS.labels(operation="set").inc()
                    logger.warning("Cache set failed, returning fetched value", key=key, error=str(e))

            return value
        finally:
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]

    async def delete(self, *keys: str) -> int:
        """Delete keys from the backing store. Backend errors propagate."""
        if not keys:
            return 0
        return await self.store.delete(*keys)

    async def scan(self, cursor: int, match: str, count: int) -> Tuple[int, List[str]]:
        """One page of a cursor based key scan. Backend errors propagate."""
        return await self.store.scan(cursor, match, count)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return {
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "errors": self._stats.errors,
            "hit_rate": round(self._stats.hit_rate, 4),
        }

    def reset_stats(self) -> None:
        self._stats = CacheStats()
