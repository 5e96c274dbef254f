"""
Cache Management Endpoints

Statistics and write-driven invalidation. The write paths (store profile,
product editor) call the invalidate endpoints after committing.
"""

from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from storefront_core.cache.invalidation import DependencyInvalidator, InvalidationResult
from storefront_core.cache.manager import CacheManager
from storefront_core.serving.api.dependencies import get_cache_manager, get_invalidator

router = APIRouter()


class CacheStatsResponse(BaseModel):
    hits: int
    misses: int
    errors: int
    hit_rate: float
    in_flight: int


class StoreInvalidationRequest(BaseModel):
    store_id: str
    slug: str


class ProductInvalidationRequest(BaseModel):
    product_id: str
    store_id: str
    slug: str


class AnalyticsInvalidationRequest(BaseModel):
    store_id: str
    pattern: Optional[str] = None


class InvalidationResponse(BaseModel):
    write_kind: str
    success: bool
    keys_deleted: int
    paths_revalidated: List[str]
    tags_revalidated: List[str]
    errors: List[str]
    duration_ms: float


def _to_response(result: InvalidationResult) -> InvalidationResponse:
    data: Dict[str, Any] = asdict(result)
    data["write_kind"] = result.write_kind.value
    return InvalidationResponse(**data)


@router.get("/stats", response_model=CacheStatsResponse)
async def get_cache_stats(cache: CacheManager = Depends(get_cache_manager)) -> CacheStatsResponse:
    return CacheStatsResponse(**cache.get_stats(), in_flight=cache.in_flight_count)


@router.post("/stats/reset")
async def reset_cache_stats(cache: CacheManager = Depends(get_cache_manager)) -> Dict[str, str]:
    cache.reset_stats()
    return {"status": "reset"}


@router.post("/invalidate/store", response_model=InvalidationResponse)
async def invalidate_store(
    request: StoreInvalidationRequest,
    invalidator: DependencyInvalidator = Depends(get_invalidator),
) -> InvalidationResponse:
    """Store profile changed."""
    result = await invalidator.invalidate_store_cache(request.store_id, request.slug)
    return _to_response(result)


@router.post("/invalidate/products", response_model=InvalidationResponse)
async def invalidate_products(
    request: StoreInvalidationRequest,
    invalidator: DependencyInvalidator = Depends(get_invalidator),
) -> InvalidationResponse:
    """Product created, reordered or deleted."""
    result = await invalidator.invalidate_product_cache(request.store_id, request.slug)
    return _to_response(result)


@router.post("/invalidate/product", response_model=InvalidationResponse)
async def invalidate_product(
    request: ProductInvalidationRequest,
    invalidator: DependencyInvalidator = Depends(get_invalidator),
) -> InvalidationResponse:
    """One product edited."""
    result = await invalidator.invalidate_single_product(
        request.product_id, request.store_id, request.slug
    )
    return _to_response(result)


@router.post("/invalidate/analytics", response_model=InvalidationResponse)
async def invalidate_analytics(
    request: AnalyticsInvalidationRequest,
    invalidator: DependencyInvalidator = Depends(get_invalidator),
) -> InvalidationResponse:
    result = await invalidator.invalidate_analytics_cache(request.store_id, request.pattern)
    return _to_response(result)
