"""
Cache Store Backends

Key-value stores consumed by the cache manager:
- RedisCacheStore: redis.asyncio with a connection pool and JSON serialization
- MemoryCacheStore: process-local store with an injectable clock

Both expose the same four primitives: get, setex, delete and a cursor based
scan. Backend failures surface as CacheBackendError.
"""

import fnmatch
import json
import time
from itertools import count as counter
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

import structlog
from redis.asyncio import Redis, ConnectionPool
from redis.exceptions import RedisError

from storefront_core.config.settings import RedisSettings
from storefront_core.exceptions import CacheBackendError

logger = structlog.get_logger(__name__)


class CacheStore(Protocol):
    """Primitives every cache backend provides."""

    async def get(self, key: str) -> Optional[Any]:
        ...

    async def setex(self, key: str, ttl_seconds: int, value: Any) -> None:
        ...

    async def delete(self, *keys: str) -> int:
        ...

    async def scan(self, cursor: int, match: str, count: int) -> Tuple[int, List[str]]:
        ...


def serialize(value: Any) -> str:
    """Serialize a value for storage"""
    return json.dumps(value, default=str)


def deserialize(raw: Any) -> Any:
    """Deserialize a stored value, returning raw text if it is not JSON"""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


class RedisCacheStore:
    """
    Redis backed cache store.

    Example:
        store = RedisCacheStore(settings.redis)
        await store.connect()
        await store.setex("storefront:acme", 600, payload)
    """

    def __init__(self, settings: RedisSettings, client: Optional[Redis] = None):
        self.settings = settings
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = client

    async def connect(self) -> Redis:
        """Initialize Redis connection pool"""
        if self._client is not None:
            return self._client

        self._pool = ConnectionPool.from_url(
            self.settings.get_url(),
            max_connections=self.settings.max_connections,
            socket_timeout=self.settings.socket_timeout,
            decode_responses=self.settings.decode_responses,
        )
        self._client = Redis(connection_pool=self._pool)

        try:
            await self._client.ping()
            logger.info("Redis connection established")
        except RedisError as e:
            logger.error("Redis connection failed", error=str(e))
            raise CacheBackendError("Redis connection failed", details={"error": str(e)}) from e

        return self._client

    async def close(self) -> None:
        """Close Redis connection pool"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None

        logger.info("Redis connection closed")

    @property
    def client(self) -> Redis:
        """Get Redis client instance"""
        if self._client is None:
            raise CacheBackendError("Redis not initialized. Call connect() first.")
        return self._client

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            raise CacheBackendError("Redis ping failed", details={"error": str(e)}) from e

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.client.get(key)
        except RedisError as e:
            raise CacheBackendError(f"GET {key} failed", details={"error": str(e)}) from e

        if raw is None:
            return None
        return deserialize(raw)

    async def setex(self, key: str, ttl_seconds: int, value: Any) -> None:
        try:
            serialized = serialize(value)
        except (TypeError, ValueError) as e:
            raise CacheBackendError(f"Value for {key} is not serializable", details={"error": str(e)}) from e

        try:
            await self.client.setex(key, ttl_seconds, serialized)
        except RedisError as e:
            raise CacheBackendError(f"SETEX {key} failed", details={"error": str(e)}) from e

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return await self.client.delete(*keys)
        except RedisError as e:
            raise CacheBackendError("DEL failed", details={"keys": list(keys), "error": str(e)}) from e

    async def scan(self, cursor: int, match: str, count: int) -> Tuple[int, List[str]]:
        try:
            next_cursor, keys = await self.client.scan(cursor=cursor, match=match, count=count)
        except RedisError as e:
            raise CacheBackendError(f"SCAN {match} failed", details={"error": str(e)}) from e

        return int(next_cursor), [k.decode("utf-8") if isinstance(k, bytes) else k for k in keys]


class MemoryCacheStore:
    """
    In-process cache store.

    Entries carry an absolute expiry computed from ``clock``; expired entries
    are dropped lazily. Every key is assigned a slot number on first insert so
    that scan cursors stay valid while keys are deleted between pages.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[int, str, float]] = {}
        self._slots = counter(1)

    def __len__(self) -> int:
        self._purge_expired()
        return len(self._entries)

    def keys(self) -> List[str]:
        self._purge_expired()
        return list(self._entries)

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [k for k, (_, _, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        _, raw, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return deserialize(raw)

    async def setex(self, key: str, ttl_seconds: int, value: Any) -> None:
        if ttl_seconds <= 0:
            raise CacheBackendError(f"Invalid TTL {ttl_seconds} for {key}")

        serialized = serialize(value)
        slot = self._entries[key][0] if key in self._entries else next(self._slots)
        self._entries[key] = (slot, serialized, self._clock() + ttl_seconds)

    async def delete(self, *keys: str) -> int:
        self._purge_expired()
        deleted = 0
        for key in keys:
            if self._entries.pop(key, None) is not None:
                deleted += 1
        return deleted

    async def scan(self, cursor: int, match: str, count: int) -> Tuple[int, List[str]]:
        self._purge_expired()
        ordered = sorted(
            (slot, key) for key, (slot, _, _) in self._entries.items() if slot >= cursor
        )

        page = ordered[:max(count, 1)]
        matched = [key for _, key in page if fnmatch.fnmatchcase(key, match)]

        if len(ordered) > len(page):
            return ordered[len(page)][0], matched
        return 0, matched
