"""
Unit Tests - Analytics Service
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import pytest

from storefront_core.analytics.dates import get_previous_period
from storefront_core.analytics.events import Event, EventType
from storefront_core.analytics.models import DateRange, MetricType, ProductInfo
from storefront_core.analytics.service import AnalyticsService
from storefront_core.analytics.source import EventQuery, MemoryEventSource
from storefront_core.cache import keys
from storefront_core.cache.manager import CacheManager
from storefront_core.cache.store import MemoryCacheStore
from storefront_core.config.settings import AnalyticsSettings
from storefront_core.exceptions import CacheBackendError, EventSourceError

from conftest import NOW, OTHER_STORE_ID, STORE_ID, make_event, purchase


class CountingSource(MemoryEventSource):
    """Memory source that counts queries"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.queries: List[EventQuery] = []

    async def fetch_events(self, query: EventQuery) -> List[Event]:
        self.queries.append(query)
        return await super().fetch_events(query)


class BrokenSource:
    """Event store that is down"""

    async def fetch_events(self, query: EventQuery) -> List[Event]:
        raise EventSourceError("Event query failed")

    async def count_events(self, query: EventQuery) -> int:
        raise EventSourceError("Event count failed")

    async def get_products(self, product_ids: Sequence[str]) -> Dict[str, ProductInfo]:
        return {}

    async def get_product(self, product_id: str) -> Optional[ProductInfo]:
        return None


class TestTimeSeriesRange:
    """Range validation"""

    async def test_91_days_rejected(self, analytics_service: AnalyticsService):
        result = await analytics_service.get_time_series_data(
            STORE_ID, NOW - timedelta(days=91), NOW, MetricType.VIEWS
        )

        assert not result.success
        assert result.error == "Date range cannot exceed 90 days"
        assert result.data is None

    async def test_90_days_accepted(self, analytics_service: AnalyticsService, event_source: MemoryEventSource):
        await event_source.record_event(make_event(EventType.PAGE_VIEW, created_at=NOW - timedelta(days=80)))

        result = await analytics_service.get_time_series_data(
            STORE_ID, NOW - timedelta(days=90), NOW, MetricType.VIEWS
        )

        assert result.success
        assert len(result.data) == 1

    async def test_inverted_range_rejected(self, analytics_service: AnalyticsService):
        result = await analytics_service.get_time_series_data(
            STORE_ID, NOW, NOW - timedelta(days=1), MetricType.VIEWS
        )

        assert not result.success


class TestCaching:
    """Reads go through the cache manager"""

    async def test_second_read_is_served_from_cache(self, products, cache: CacheManager, window):
        source = CountingSource(products=products.values())
        service = AnalyticsService(source, cache, AnalyticsSettings())
        start, end = window
        await source.record_event(make_event(EventType.PAGE_VIEW))

        first = await service.get_time_series_data(STORE_ID, start, end, MetricType.VIEWS)
        await source.record_event(make_event(EventType.PAGE_VIEW))
        second = await service.get_time_series_data(STORE_ID, start, end, MetricType.VIEWS)

        assert first == second
        assert len(source.queries) == 1
        assert cache.get_stats()["hits"] == 1

    async def test_invalidation_forces_recompute(
        self,
        analytics_service: AnalyticsService,
        event_source: MemoryEventSource,
        invalidator,
        window,
    ):
        """Test that bulk analytics invalidation drops cached reads"""
        start, end = window
        await event_source.record_event(make_event(EventType.PAGE_VIEW))
        await analytics_service.get_time_series_data(STORE_ID, start, end, MetricType.VIEWS)

        await event_source.record_event(make_event(EventType.PAGE_VIEW))
        await invalidator.invalidate_analytics_cache(STORE_ID)
        result = await analytics_service.get_time_series_data(STORE_ID, start, end, MetricType.VIEWS)

        assert result.data[0].value == 2.0

    async def test_results_stored_under_analytics_key(
        self,
        analytics_service: AnalyticsService,
        cache_store: MemoryCacheStore,
    ):
        await analytics_service.get_store_analytics(STORE_ID)

        assert cache_store.keys() == [keys.analytics(STORE_ID, "all", "summary")]

    async def test_works_without_cache(self, event_source: MemoryEventSource):
        service = AnalyticsService(event_source)
        await event_source.record_event(make_event(EventType.PAGE_VIEW))

        result = await service.get_store_analytics(STORE_ID)

        assert result.success
        assert result.data.total_page_views == 1


class TestDegradedResults:
    """Query failures yield zeroed, flagged, uncached payloads"""

    async def test_query_failure_is_degraded(self, cache: CacheManager, cache_store: MemoryCacheStore, window):
        service = AnalyticsService(BrokenSource(), cache)
        start, end = window

        result = await service.get_time_series_data(STORE_ID, start, end, MetricType.VIEWS)

        assert result.success
        assert result.degraded
        assert result.data == []
        assert result.error == "Failed to fetch time series data"
        assert len(cache_store) == 0

    async def test_degraded_comparison_is_zeroed(self, cache: CacheManager, window):
        service = AnalyticsService(BrokenSource(), cache)
        start, end = window

        result = await service.get_comparison_metrics(
            STORE_ID, start, end, start - timedelta(days=7), end - timedelta(days=7)
        )

        assert result.degraded
        assert result.data.visits.current == 0
        assert result.data.visits.percentage_change == 0.0

    async def test_degraded_product_analytics(self, cache: CacheManager):
        service = AnalyticsService(BrokenSource(), cache)

        result = await service.get_product_analytics(STORE_ID, "prod-a")

        assert result.degraded
        assert result.data.product_id == "prod-a"
        assert result.data.total_clicks == 0

    async def test_empty_store_is_not_degraded(self, analytics_service: AnalyticsService):
        result = await analytics_service.get_store_analytics(STORE_ID)

        assert result.success
        assert not result.degraded
        assert result.data.total_page_views == 0


class TestOperations:
    """End to end through the memory source"""

    async def test_comparison_metrics(self, analytics_service: AnalyticsService, event_source: MemoryEventSource, window):
        start, end = window
        previous = get_previous_period(start, end)
        for _ in range(4):
            await event_source.record_event(make_event(EventType.PAGE_VIEW))
        for _ in range(2):
            await event_source.record_event(make_event(EventType.PAGE_VIEW, created_at=previous.start + timedelta(hours=1)))

        result = await analytics_service.get_comparison_metrics(STORE_ID, start, end, previous.start, previous.end)

        assert result.success
        assert result.data.visits.current == 4
        assert result.data.visits.previous == 2
        assert result.data.visits.percentage_change == 100.0

    async def test_top_products_by_clicks_clamps_limit(
        self,
        analytics_service: AnalyticsService,
        event_source: MemoryEventSource,
        window,
    ):
        start, end = window
        await event_source.record_event(make_event(EventType.PRODUCT_CLICK, product_id="prod-a"))
        for _ in range(2):
            await event_source.record_event(make_event(EventType.LEAD_SUBMIT, product_id="prod-b"))

        result = await analytics_service.get_top_products_by_clicks(STORE_ID, start, end, limit=500)

        assert result.success
        assert [p.product_name for p in result.data] == ["Guide B", "Link A"]

    async def test_traffic_sources_scoped_to_store(
        self,
        analytics_service: AnalyticsService,
        event_source: MemoryEventSource,
    ):
        await event_source.record_event(make_event(EventType.PRODUCT_CLICK, utm_source="tiktok"))
        await event_source.record_event(
            make_event(EventType.PRODUCT_CLICK, utm_source="google", store_id=OTHER_STORE_ID)
        )

        result = await analytics_service.get_traffic_sources(STORE_ID)

        assert [s.source for s in result.data] == ["tiktok"]

    async def test_product_analytics(self, analytics_service: AnalyticsService, event_source: MemoryEventSource):
        for _ in range(4):
            await event_source.record_event(make_event(EventType.PAGE_VIEW))
        await event_source.record_event(make_event(EventType.PRODUCT_CLICK, product_id="prod-c"))
        await event_source.record_event(purchase(59.0, product_id="prod-c"))

        result = await analytics_service.get_product_analytics(STORE_ID, "prod-c")

        assert result.data.product_name == "Course C"
        assert result.data.click_through_rate == 25.0
        assert result.data.conversion_rate == 100.0
        assert result.data.total_revenue == 59.0

    async def test_top_products_legacy(self, analytics_service: AnalyticsService, event_source: MemoryEventSource):
        await event_source.record_event(make_event(EventType.PRODUCT_CLICK, product_id="prod-a"))
        await event_source.record_event(purchase(5.0, product_id="prod-a"))

        result = await analytics_service.get_top_products(STORE_ID)

        assert result.data[0].conversions == 1

    async def test_dashboard(self, analytics_service: AnalyticsService, event_source: MemoryEventSource, window):
        start, end = window
        await event_source.record_event(make_event(EventType.PAGE_VIEW, utm_source="instagram"))
        await event_source.record_event(make_event(EventType.PRODUCT_CLICK, product_id="prod-a"))

        previous = get_previous_period(start, end)

        result = await analytics_service.get_dashboard(STORE_ID, start, end, previous.start, previous.end)

        assert result.success
        assert not result.degraded
        assert result.data.time_series[0].value == 1.0
        assert result.data.comparison.visits.current == 1
        assert result.data.top_products[0].product_id == "prod-a"
        assert result.data.traffic_sources[0].source == "instagram"

    async def test_dashboard_rejects_long_range(self, analytics_service: AnalyticsService):
        result = await analytics_service.get_dashboard(
            STORE_ID, NOW - timedelta(days=120), NOW, NOW - timedelta(days=240), NOW - timedelta(days=121)
        )

        assert not result.success

    @pytest.mark.parametrize("metric", list(MetricType))
    async def test_every_metric_is_cached_separately(
        self,
        analytics_service: AnalyticsService,
        cache_store: MemoryCacheStore,
        window,
        metric,
    ):
        start, end = window
        await analytics_service.get_time_series_data(STORE_ID, start, end, metric)

        assert cache_store.keys()[0].endswith(f"timeseries-{metric.value}")


class TestMixedTimezones:
    """Naive bounds are UTC and may be mixed with offset-aware ones"""

    async def test_time_series_with_naive_start(
        self,
        analytics_service: AnalyticsService,
        event_source: MemoryEventSource,
    ):
        await event_source.record_event(make_event(EventType.PAGE_VIEW))
        naive_start = (NOW - timedelta(days=6)).replace(tzinfo=None)

        result = await analytics_service.get_time_series_data(STORE_ID, naive_start, NOW, MetricType.VIEWS)

        assert result.success
        assert [p.value for p in result.data] == [1.0]

    async def test_inverted_mixed_range_rejected(self, analytics_service: AnalyticsService):
        naive_end = (NOW - timedelta(days=1)).replace(tzinfo=None)

        result = await analytics_service.get_time_series_data(STORE_ID, NOW, naive_end, MetricType.VIEWS)

        assert not result.success
        assert result.error == "Start date must be before end date"

    async def test_comparison_with_naive_previous_window(
        self,
        analytics_service: AnalyticsService,
        event_source: MemoryEventSource,
        window,
    ):
        start, end = window
        previous = get_previous_period(start, end)
        await event_source.record_event(make_event(EventType.PAGE_VIEW))
        await event_source.record_event(make_event(EventType.PAGE_VIEW, created_at=previous.start + timedelta(hours=1)))

        result = await analytics_service.get_comparison_metrics(
            STORE_ID,
            start,
            end,
            previous.start.replace(tzinfo=None),
            previous.end.replace(tzinfo=None),
        )

        assert result.success
        assert result.data.visits.current == 1
        assert result.data.visits.previous == 1

    async def test_top_products_by_clicks_with_naive_end(
        self,
        analytics_service: AnalyticsService,
        event_source: MemoryEventSource,
        window,
    ):
        start, end = window
        await event_source.record_event(make_event(EventType.PRODUCT_CLICK, product_id="prod-a"))

        result = await analytics_service.get_top_products_by_clicks(STORE_ID, start, end.replace(tzinfo=None))

        assert result.success
        assert result.data[0].product_id == "prod-a"

    async def test_dashboard_with_naive_start(
        self,
        analytics_service: AnalyticsService,
        event_source: MemoryEventSource,
        window,
    ):
        start, end = window
        previous = get_previous_period(start, end)
        await event_source.record_event(make_event(EventType.PAGE_VIEW))

        result = await analytics_service.get_dashboard(
            STORE_ID, start.replace(tzinfo=None), end, previous.start, previous.end
        )

        assert result.success
        assert result.data.comparison.visits.current == 1

    async def test_same_instant_in_any_offset_shares_one_cache_entry(
        self,
        cache: CacheManager,
        cache_store: MemoryCacheStore,
        products,
        window,
    ):
        source = CountingSource(products=products.values())
        service = AnalyticsService(source, cache)
        start, end = window
        kuala_lumpur = timezone(timedelta(hours=8))

        for bounds in (
            (start, end),
            (start.astimezone(kuala_lumpur), end.astimezone(kuala_lumpur)),
            (start.replace(tzinfo=None), end.replace(tzinfo=None)),
        ):
            result = await service.get_time_series_data(STORE_ID, *bounds, MetricType.VIEWS)
            assert result.success

        assert len(source.queries) == 1
        assert cache_store.keys() == [
            keys.analytics(STORE_ID, DateRange(start=start, end=end).cache_token, "timeseries-views")
        ]

    def test_cache_token_is_offset_independent(self):
        utc = DateRange(start=datetime(2025, 3, 9, 4, 0, tzinfo=timezone.utc), end=NOW)
        offset = DateRange(
            start=datetime(2025, 3, 9, 12, 0, tzinfo=timezone(timedelta(hours=8))),
            end=NOW.astimezone(timezone(timedelta(hours=8))),
        )
        naive = DateRange(start=datetime(2025, 3, 9, 4, 0), end=NOW.replace(tzinfo=None))

        assert utc.cache_token == offset.cache_token == naive.cache_token
        assert utc.cache_token == "2025-03-09T04:00:00+00:00_2025-03-15T12:00:00+00:00"


class TestComparisonWindows:
    """The previous window must precede the current one and match its length"""

    @pytest.mark.parametrize(
        "previous_offsets,message",
        [
            ((timedelta(days=3), timedelta(days=3)), "Comparison period must end before the current period starts"),
            ((timedelta(0), timedelta(0)), "Comparison period must end before the current period starts"),
            ((timedelta(days=7), timedelta(days=6)), "Comparison period must end before the current period starts"),
            ((timedelta(days=30), timedelta(days=10)), "Comparison period must span the same number of days"),
        ],
        ids=["overlapping", "identical", "touching", "longer"],
    )
    async def test_invalid_previous_window_rejected(
        self,
        cache: CacheManager,
        products,
        window,
        previous_offsets,
        message,
    ):
        source = CountingSource(products=products.values())
        service = AnalyticsService(source, cache)
        start, end = window
        back_start, back_end = previous_offsets

        result = await service.get_comparison_metrics(STORE_ID, start, end, start - back_start, end - back_end)

        assert not result.success
        assert result.error == message
        assert source.queries == []

    async def test_dashboard_fails_on_invalid_previous_window(self, analytics_service: AnalyticsService, window):
        start, end = window

        result = await analytics_service.get_dashboard(STORE_ID, start, end, start, end)

        assert not result.success
        assert result.error == "Comparison period must end before the current period starts"

    async def test_previous_period_helper_is_always_accepted(self, analytics_service: AnalyticsService):
        kuala_lumpur = timezone(timedelta(hours=8))
        start = datetime(2025, 3, 9, 0, 0, tzinfo=kuala_lumpur)
        end = datetime(2025, 3, 15, 23, 59, tzinfo=kuala_lumpur)
        previous = get_previous_period(start, end)

        result = await analytics_service.get_comparison_metrics(STORE_ID, start, end, previous.start, previous.end)

        assert result.success


class StaleDeleteStore(MemoryCacheStore):
    """Memory store that cannot delete"""

    async def delete(self, *keys: str) -> int:
        raise CacheBackendError("READONLY replica")


class TestUnreadableCachedPayload:
    """Payloads cached under an older result shape are replaced, not raised"""

    STALE = {"success": True, "data": {"total_page_views": "lots"}, "error": None, "degraded": False}

    async def test_stale_payload_is_recomputed_and_rewritten(
        self,
        analytics_service: AnalyticsService,
        cache_store: MemoryCacheStore,
        event_source: MemoryEventSource,
    ):
        key = keys.analytics(STORE_ID, "all", "summary")
        await cache_store.setex(key, 300, self.STALE)
        await event_source.record_event(make_event(EventType.PAGE_VIEW))

        result = await analytics_service.get_store_analytics(STORE_ID)

        assert result.success
        assert result.data.total_page_views == 1
        assert (await cache_store.get(key))["data"]["total_page_views"] == 1

    async def test_stale_payload_with_failing_delete(self, event_source: MemoryEventSource, clock):
        store = StaleDeleteStore(clock=clock)
        service = AnalyticsService(event_source, CacheManager(store))
        key = keys.analytics(STORE_ID, "all", "summary")
        await store.setex(key, 300, self.STALE)
        await event_source.record_event(make_event(EventType.PAGE_VIEW))

        result = await service.get_store_analytics(STORE_ID)

        assert result.success
        assert result.data.total_page_views == 1

    async def test_wrong_container_shape(
        self,
        analytics_service: AnalyticsService,
        cache_store: MemoryCacheStore,
        window,
    ):
        start, end = window
        key = keys.analytics(STORE_ID, DateRange(start=start, end=end).cache_token, "timeseries-views")
        await cache_store.setex(key, 300, {"success": True, "data": {"2025-03-15": 1}})

        result = await analytics_service.get_time_series_data(STORE_ID, start, end, MetricType.VIEWS)

        assert result.success
        assert result.data == []
        assert (await cache_store.get(key))["data"] == []
