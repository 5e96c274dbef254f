"""
FastAPI Production Application

Main entry point for the Storefront Core API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
import structlog

from storefront_core.analytics.service import AnalyticsService
from storefront_core.analytics.source import MemoryEventSource, SqlEventSource
from storefront_core.analytics.tracking import TrackingService
from storefront_core.cache.invalidation import DependencyInvalidator
from storefront_core.cache.manager import CacheManager
from storefront_core.cache.revalidation import HttpRevalidator
from storefront_core.cache.store import MemoryCacheStore, RedisCacheStore
from storefront_core.config import Settings, get_settings
from storefront_core.config.logging import configure_logging
from storefront_core.database.connection import close_database, get_session_factory, init_database
from storefront_core.exceptions import CacheBackendError
from storefront_core.serving.api import ServiceContainer, create_api_app

logger = structlog.get_logger(__name__)


async def build_services(settings: Settings) -> ServiceContainer:
    """Connect backends and wire the services the routes depend on."""
    if settings.cache.backend == "memory":
        cache_store = MemoryCacheStore()
    else:
        cache_store = RedisCacheStore(settings.redis)
        try:
            await cache_store.connect()
        except CacheBackendError as e:
            # Reads fall through to the event store until Redis is back
            logger.warning("Redis init failed, cache degraded", error=str(e))

    cache = CacheManager.from_settings(cache_store, settings.cache)
    invalidator = DependencyInvalidator(
        cache,
        HttpRevalidator.from_settings(settings.revalidation),
        scan_page_size=settings.cache.scan_page_size,
    )

    session_factory = None
    try:
        await init_database(create_schema=settings.is_development)
        session_factory = get_session_factory()
        source = SqlEventSource(session_factory)
        logger.info("Database initialized")
    except Exception as e:
        if settings.is_production:
            raise
        logger.warning("Database init failed, using in-memory event log", error=str(e))
        source = MemoryEventSource()

    return ServiceContainer(
        cache_store=cache_store,
        cache=cache,
        invalidator=invalidator,
        analytics=AnalyticsService.from_settings(source, cache, settings),
        tracking=TrackingService(source, default_currency=settings.analytics.default_currency),
        session_factory=session_factory,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    configure_logging()

    logger.info("Starting Storefront Core API", environment=settings.app_env)

    services = await build_services(settings)
    app.state.services = services

    yield

    logger.info("Shutting down...")
    if isinstance(services.cache_store, RedisCacheStore):
        await services.cache_store.close()
    await close_database()


app = create_api_app(lifespan=lifespan)


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
