"""
Request Dependencies

Services are built once in the application lifespan and stored on
``app.state.services``; route handlers receive them through these
dependency functions.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront_core.analytics.service import AnalyticsService
from storefront_core.analytics.tracking import TrackingService
from storefront_core.cache.invalidation import DependencyInvalidator
from storefront_core.cache.manager import CacheManager
from storefront_core.cache.store import CacheStore


@dataclass
class ServiceContainer:
    """Everything the routes need, wired at startup"""
    cache_store: CacheStore
    cache: CacheManager
    invalidator: DependencyInvalidator
    analytics: AnalyticsService
    tracking: TrackingService
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def get_services(request: Request) -> ServiceContainer:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return services


def get_analytics_service(request: Request) -> AnalyticsService:
    return get_services(request).analytics


def get_tracking_service(request: Request) -> TrackingService:
    return get_services(request).tracking


def get_cache_manager(request: Request) -> CacheManager:
    return get_services(request).cache


def get_invalidator(request: Request) -> DependencyInvalidator:
    return get_services(request).invalidator
