"""
Test Suite Configuration
"""
import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Dict, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from storefront_core.analytics.events import Event, EventType
from storefront_core.analytics.models import ProductInfo, ProductType
from storefront_core.analytics.service import AnalyticsService
from storefront_core.analytics.source import MemoryEventSource
from storefront_core.cache.invalidation import DependencyInvalidator
from storefront_core.cache.manager import CacheManager
from storefront_core.cache.revalidation import RecordingRevalidator
from storefront_core.cache.store import MemoryCacheStore
from storefront_core.config import Settings
from storefront_core.config.settings import AnalyticsSettings
from storefront_core.database.models import Base

STORE_ID = "11111111-1111-1111-1111-111111111111"
OTHER_STORE_ID = "22222222-2222-2222-2222-222222222222"
PRODUCT_ID = "33333333-3333-3333-3333-333333333333"
SESSION_ID = "44444444-4444-4444-4444-444444444444"
NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic clock advanced by hand"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


_event_ids = itertools.count(1)


def make_event(
    event_type: EventType,
    *,
    store_id: str = STORE_ID,
    product_id: Optional[str] = None,
    session_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
    utm_source: Optional[str] = None,
    utm_medium: Optional[str] = None,
    event_data: Optional[Dict[str, Any]] = None,
) -> Event:
    """Build a validated event with sensible defaults"""
    return Event(
        id=f"evt-{next(_event_ids)}",
        store_id=store_id,
        product_id=product_id,
        session_id=session_id,
        event_type=event_type,
        event_data=event_data or {},
        utm_source=utm_source,
        utm_medium=utm_medium,
        created_at=created_at or NOW,
    )


def purchase(amount: float, **kwargs: Any) -> Event:
    return make_event(EventType.PURCHASE, event_data={"revenue": amount, "currency": "MYR"}, **kwargs)


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        APP_ENV="testing",
        DEBUG=True,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_store(clock: FakeClock) -> MemoryCacheStore:
    return MemoryCacheStore(clock=clock)


@pytest.fixture
def cache(cache_store: MemoryCacheStore) -> CacheManager:
    return CacheManager(cache_store, default_ttl=300, fetch_timeout=5.0)


@pytest.fixture
def revalidator() -> RecordingRevalidator:
    return RecordingRevalidator()


@pytest.fixture
def invalidator(cache: CacheManager, revalidator: RecordingRevalidator) -> DependencyInvalidator:
    return DependencyInvalidator(cache, revalidator, scan_page_size=100)


@pytest.fixture
def products() -> Dict[str, ProductInfo]:
    return {
        "prod-a": ProductInfo(id="prod-a", name="Link A", type=ProductType.LINK),
        "prod-b": ProductInfo(id="prod-b", name="Guide B", type=ProductType.LEAD_MAGNET),
        "prod-c": ProductInfo(id="prod-c", name="Course C", type=ProductType.DIGITAL_PRODUCT),
    }


@pytest.fixture
def event_source(products: Dict[str, ProductInfo]) -> MemoryEventSource:
    return MemoryEventSource(products=products.values())


@pytest.fixture
def analytics_service(event_source: MemoryEventSource, cache: CacheManager) -> AnalyticsService:
    return AnalyticsService(event_source, cache, AnalyticsSettings(), cache_ttl=300)


@pytest.fixture
def window():
    """Seven day window ending at NOW"""
    return NOW - timedelta(days=6), NOW


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """SQLite-backed session factory with the schema created"""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()
