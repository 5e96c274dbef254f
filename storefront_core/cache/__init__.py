"""
Storefront Caching Layer

Read-through cache with single-flight fetches, deterministic key registry and
write-driven dependency invalidation.

Usage:
    store = RedisCacheStore(settings.redis)
    await store.connect()
    cache = CacheManager.from_settings(store, settings.cache)

    data = await cache.get_or_fetch(keys.storefront(slug), load_storefront, ttl_seconds=600)

    invalidator = DependencyInvalidator(cache, revalidator)
    await invalidator.invalidate_product_cache(store_id, slug)
"""

from storefront_core.cache import keys
from storefront_core.cache.store import CacheStore, RedisCacheStore, MemoryCacheStore
from storefront_core.cache.manager import CacheManager, CacheStats
from storefront_core.cache.revalidation import Revalidator, HttpRevalidator, RecordingRevalidator
from storefront_core.cache.invalidation import (
    DependencyInvalidator,
    InvalidationPlan,
    InvalidationResult,
    WriteKind,
    plan_invalidation,
)

__all__ = [
    "keys",
    "CacheStore",
    "RedisCacheStore",
    "MemoryCacheStore",
    "CacheManager",
    "CacheStats",
    "Revalidator",
    "HttpRevalidator",
    "RecordingRevalidator",
    "DependencyInvalidator",
    "InvalidationPlan",
    "InvalidationResult",
    "WriteKind",
    "plan_invalidation",
]
