"""
Cache Invalidation Service

Write-driven cache invalidation. Each write kind maps to a fixed set of cache
keys and rendering-layer paths/tags:

- STORE_PROFILE_CHANGED: storefront + product list, public page, dashboard, storefront tag
- PRODUCTS_CHANGED: storefront + product list, dashboard, public page
- PRODUCT_EDITED: single product + storefront + product list, public page
- ANALYTICS_CHANGED: every analytics key of the store (paginated SCAN)

Invalidation runs on the write path after the commit. It never raises: every
failure is logged and reported in the InvalidationResult, and the worst case
is stale data for one cache TTL.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, List, Optional, Tuple

import structlog

from storefront_core.cache import keys
from storefront_core.cache.manager import CacheManager
from storefront_core.cache.revalidation import Revalidator

logger = structlog.get_logger(__name__)

DASHBOARD_PRODUCTS_PATH = "/store/products"


class WriteKind(str, Enum):
    """Writes that trigger cache invalidation."""
    STORE_PROFILE_CHANGED = "store_profile_changed"
    PRODUCTS_CHANGED = "products_changed"
    PRODUCT_EDITED = "product_edited"
    ANALYTICS_CHANGED = "analytics_changed"


@dataclass
class InvalidationPlan:
    """Keys, paths and tags affected by one write."""
    keys: List[str] = field(default_factory=list)
    paths: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)


@dataclass
class InvalidationResult:
    """Result of a cache invalidation operation."""
    write_kind: WriteKind
    success: bool
    keys_deleted: int
    paths_revalidated: List[str]
    tags_revalidated: List[str]
    errors: List[str]
    duration_ms: float


def plan_invalidation(
    kind: WriteKind,
    store_id: str,
    slug: Optional[str] = None,
    product_id: Optional[str] = None,
) -> InvalidationPlan:
    """
    Build the invalidation plan for a write.

    ANALYTICS_CHANGED has no fixed keys; its keys are discovered by scanning.
    """
    if kind == WriteKind.ANALYTICS_CHANGED:
        return InvalidationPlan()

    if not slug:
        raise ValueError(f"{kind.value} requires a store slug")

    store_keys = [keys.storefront(slug), keys.store_products(store_id)]

    if kind == WriteKind.STORE_PROFILE_CHANGED:
        return InvalidationPlan(
            keys=store_keys,
            paths=[f"/{slug}", DASHBOARD_PRODUCTS_PATH],
            tags=[f"storefront-{slug}"],
        )

    if kind == WriteKind.PRODUCTS_CHANGED:
        return InvalidationPlan(
            keys=store_keys,
            paths=[DASHBOARD_PRODUCTS_PATH, f"/{slug}"],
        )

    if kind == WriteKind.PRODUCT_EDITED:
        if not product_id:
            raise ValueError("product_edited requires a product id")
        return InvalidationPlan(
            keys=[keys.product(product_id)] + store_keys,
            paths=[f"/{slug}"],
        )

    raise ValueError(f"Unknown write kind: {kind}")


class DependencyInvalidator:
    """
    Executes invalidation plans against the cache and the rendering layer.

    Holds no state of its own besides its collaborators.
    """

    def __init__(
        self,
        cache: CacheManager,
        revalidator: Optional[Revalidator] = None,
        scan_page_size: int = 100,
    ):
        self._cache = cache
        self._revalidator = revalidator
        self.scan_page_size = scan_page_size

    async def invalidate_store_cache(self, store_id: str, slug: str) -> InvalidationResult:
        """Invalidate everything derived from a store profile."""
        return await self.handle_write(WriteKind.STORE_PROFILE_CHANGED, store_id, slug=slug)

    async def invalidate_product_cache(self, store_id: str, slug: str) -> InvalidationResult:
        """Invalidate product list caches after create/update/reorder/delete."""
        return await self.handle_write(WriteKind.PRODUCTS_CHANGED, store_id, slug=slug)

    async def invalidate_single_product(
        self,
        product_id: str,
        store_id: str,
        slug: str,
    ) -> InvalidationResult:
        """Invalidate one product plus the store caches that embed it."""
        return await self.handle_write(
            WriteKind.PRODUCT_EDITED, store_id, slug=slug, product_id=product_id
        )

    async def invalidate_analytics_cache(
        self,
        store_id: str,
        pattern: Optional[str] = None,
    ) -> InvalidationResult:
        """Delete every analytics key of a store, optionally narrowed to a range prefix."""
        return await self.handle_write(WriteKind.ANALYTICS_CHANGED, store_id, pattern=pattern)

    async def handle_write(
        self,
        kind: WriteKind,
        store_id: str,
        slug: Optional[str] = None,
        product_id: Optional[str] = None,
        pattern: Optional[str] = None,
    ) -> InvalidationResult:
        """
        Handle cache invalidation for a committed write.

        Never raises; failures are logged and returned in the result.
        """
        start = time.perf_counter()
        errors: List[str] = []
        keys_deleted = 0
        paths: List[str] = []
        tags: List[str] = []

        logger.info(
            "Cache invalidation started",
            write_kind=kind.value,
            store_id=store_id,
            slug=slug,
            product_id=product_id,
        )

        try:
            if kind == WriteKind.ANALYTICS_CHANGED:
                keys_deleted = await self._delete_matching(
                    keys.analytics_pattern(store_id, pattern), errors
                )
            else:
                plan = plan_invalidation(kind, store_id, slug=slug, product_id=product_id)
                keys_deleted, paths, tags = await self._execute(plan, errors)
        except Exception as e:
            errors.append(str(e))
            logger.error("Cache invalidation error", write_kind=kind.value, store_id=store_id, error=str(e))

        duration_ms = (time.perf_counter() - start) * 1000

        result = InvalidationResult(
            write_kind=kind,
            success=not errors,
            keys_deleted=keys_deleted,
            paths_revalidated=paths,
            tags_revalidated=tags,
            errors=errors,
            duration_ms=round(duration_ms, 2),
        )

        if errors:
            logger.error(
                "Cache invalidation incomplete",
                write_kind=kind.value,
                store_id=store_id,
                keys_deleted=keys_deleted,
                errors=errors,
            )
        else:
            logger.info(
                "Cache invalidation complete",
                write_kind=kind.value,
                store_id=store_id,
                keys_deleted=keys_deleted,
                duration_ms=result.duration_ms,
            )

        return result

    async def _execute(
        self,
        plan: InvalidationPlan,
        errors: List[str],
    ) -> Tuple[int, List[str], List[str]]:
        steps: List[Tuple[str, str, Awaitable[Any]]] = [
            ("key", key, self._cache.delete(key)) for key in plan.keys
        ]
        if self._revalidator is not None:
            steps += [("path", path, self._revalidator.revalidate_path(path)) for path in plan.paths]
            steps += [("tag", tag, self._revalidator.revalidate_tag(tag)) for tag in plan.tags]

        outcomes = await asyncio.gather(*(step for _, _, step in steps), return_exceptions=True)

        keys_deleted = 0
        paths: List[str] = []
        tags: List[str] = []

        for (kind, target, _), outcome in zip(steps, outcomes):
            if isinstance(outcome, BaseException):
                errors.append(f"{kind} {target}: {outcome}")
                logger.warning("Invalidation step failed", step=kind, target=target, error=str(outcome))
            elif kind == "key":
                keys_deleted += outcome or 0
            elif kind == "path":
                paths.append(target)
            else:
                tags.append(target)

        return keys_deleted, paths, tags

    async def _delete_matching(self, match: str, errors: List[str]) -> int:
        """SCAN pages until the cursor returns to 0, deleting each page's keys."""
        cursor = 0
        deleted = 0
        pages = 0

        while True:
            try:
                cursor, found = await self._cache.scan(cursor, match, self.scan_page_size)
            except Exception as e:
                errors.append(f"scan {match}: {e}")
                logger.warning("Invalidation scan failed", match=match, error=str(e))
                break

            pages += 1
            if found:
                try:
                    deleted += await self._cache.delete(*found)
                except Exception as e:
                    errors.append(f"delete {len(found)} keys: {e}")
                    logger.warning("Invalidation batch delete failed", match=match, error=str(e))

            if cursor == 0:
                break

        logger.debug("Pattern invalidation scanned", match=match, pages=pages, deleted=deleted)
        return deleted
