"""
Analytics Service

Read operations for the store analytics dashboard. Each operation:
1. Validates its inputs (ranges are rejected, limits are clamped)
2. Reads through the cache manager under an analytics key
3. Queries the event source and aggregates on a miss
4. Returns an AnalyticsResult envelope

A failed event store query yields a zeroed payload flagged ``degraded`` so
callers can tell it apart from a store that simply has no activity.
Degraded payloads are never cached.
"""

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

import structlog
from pydantic import ValidationError

from storefront_core.analytics import aggregator
from storefront_core.analytics.dates import ensure_comparable, ensure_max_range, get_timezone
from storefront_core.analytics.events import EventType
from storefront_core.analytics.models import (
    AnalyticsDashboard,
    AnalyticsResult,
    ComparisonMetrics,
    DateRange,
    MetricType,
    ProductAnalytics,
    ProductRanking,
    StoreAnalytics,
    TimeSeriesPoint,
    TopProduct,
    TrafficSource,
)
from storefront_core.analytics.source import EventQuery, EventSource
from storefront_core.cache import keys
from storefront_core.cache.manager import CacheManager
from storefront_core.config.settings import AnalyticsSettings, Settings
from storefront_core.exceptions import CacheBackendError, DateRangeError, FetchTimeoutError

logger = structlog.get_logger(__name__)

ALL_TIME = "all"


def _is_cacheable(payload: Dict[str, Any]) -> bool:
    return bool(payload.get("success")) and not payload.get("degraded")


def _range_token(date_range: Optional[DateRange]) -> str:
    return date_range.cache_token if date_range is not None else ALL_TIME


def _bounds(date_range: Optional[DateRange]) -> Dict[str, Optional[datetime]]:
    if date_range is None:
        return {"start": None, "end": None}
    return {"start": date_range.start, "end": date_range.end}


class AnalyticsService:
    """
    Store analytics reads.

    Example:
        service = AnalyticsService(source, cache, settings.analytics, cache_ttl=300)
        result = await service.get_time_series_data(store_id, start, end, MetricType.VIEWS)
        if result.success:
            chart(result.data)
    """

    def __init__(
        self,
        source: EventSource,
        cache: Optional[CacheManager] = None,
        settings: Optional[AnalyticsSettings] = None,
        cache_ttl: int = 300,
    ):
        self.source = source
        self.cache = cache
        self.settings = settings or AnalyticsSettings()
        self.cache_ttl = cache_ttl
        self.tz = get_timezone(self.settings.timezone)

    @classmethod
    def from_settings(
        cls,
        source: EventSource,
        cache: Optional[CacheManager],
        settings: Settings,
    ) -> "AnalyticsService":
        return cls(
            source,
            cache,
            settings=settings.analytics,
            cache_ttl=settings.cache.analytics_ttl_seconds,
        )

    async def _read(
        self,
        key: str,
        result_type: Type[AnalyticsResult],
        compute: Callable[[], Awaitable[Any]],
        empty: Callable[[], Any],
        error_message: str,
    ) -> AnalyticsResult:
        """Read-through with degraded fallback on query failure."""

        async def fetch() -> Dict[str, Any]:
            try:
                data = await compute()
            except Exception as e:
                logger.error(error_message, key=key, error=str(e), error_type=type(e).__name__)
                return result_type.fallback(empty(), error_message).model_dump(mode="json")
            return result_type.ok(data).model_dump(mode="json")

        try:
            payload = await self._load(key, fetch)
            try:
                return result_type.model_validate(payload)
            except ValidationError as e:
                # Written by an older release with a different result shape
                logger.warning("Discarding unreadable cached payload", key=key, errors=e.error_count())
            if await self._discard(key):
                payload = await self._load(key, fetch)
            else:
                payload = await fetch()
        except FetchTimeoutError as e:
            logger.error(error_message, key=key, error=str(e))
            return result_type.fallback(empty(), error_message)

        return result_type.model_validate(payload)

    async def _load(self, key: str, fetch: Callable[[], Awaitable[Dict[str, Any]]]) -> Any:
        if self.cache is None:
            return await fetch()
        return await self.cache.get_or_fetch(
            key, fetch, ttl_seconds=self.cache_ttl, should_cache=_is_cacheable
        )

    async def _discard(self, key: str) -> bool:
        if self.cache is None:
            return False
        try:
            await self.cache.delete(key)
        except CacheBackendError as e:
            logger.warning("Could not discard cached payload", key=key, error=str(e))
            return False
        return True

    async def get_store_analytics(
        self,
        store_id: str,
        date_range: Optional[DateRange] = None,
    ) -> AnalyticsResult[StoreAnalytics]:
        """Whole-store totals, rates and top traffic source."""

        async def compute() -> StoreAnalytics:
            events = await self.source.fetch_events(EventQuery(store_id, **_bounds(date_range)))
            return aggregator.summarize_store(events)

        return await self._read(
            keys.analytics(store_id, _range_token(date_range), "summary"),
            AnalyticsResult[StoreAnalytics],
            compute,
            StoreAnalytics,
            "Failed to fetch analytics",
        )

    async def get_product_analytics(
        self,
        store_id: str,
        product_id: str,
        date_range: Optional[DateRange] = None,
    ) -> AnalyticsResult[ProductAnalytics]:
        """Rollup for one product; CTR is measured against store page views."""

        async def compute() -> ProductAnalytics:
            bounds = _bounds(date_range)
            events, page_views, product = await asyncio.gather(
                self.source.fetch_events(EventQuery(store_id, product_id=product_id, **bounds)),
                self.source.count_events(
                    EventQuery(store_id, event_type=EventType.PAGE_VIEW, **bounds)
                ),
                self.source.get_product(product_id),
            )
            return aggregator.summarize_product(
                product_id,
                events,
                page_views,
                product_name=product.name if product else None,
            )

        return await self._read(
            keys.analytics(store_id, _range_token(date_range), f"product-{product_id}"),
            AnalyticsResult[ProductAnalytics],
            compute,
            lambda: ProductAnalytics(product_id=product_id),
            "Failed to fetch product analytics",
        )

    async def get_traffic_sources(
        self,
        store_id: str,
        date_range: Optional[DateRange] = None,
        limit: int = 10,
    ) -> AnalyticsResult[List[TrafficSource]]:
        """Activity grouped by UTM source and medium, most clicks first."""
        limit = aggregator.clamp_limit(limit, self.settings.traffic_sources_max)

        async def compute() -> List[TrafficSource]:
            events = await self.source.fetch_events(
                EventQuery(store_id, require_utm_source=True, **_bounds(date_range))
            )
            return aggregator.group_traffic_sources(events, limit)

        return await self._read(
            keys.analytics(store_id, _range_token(date_range), f"traffic-{limit}"),
            AnalyticsResult[List[TrafficSource]],
            compute,
            list,
            "Failed to fetch traffic sources",
        )

    async def get_top_products(
        self,
        store_id: str,
        date_range: Optional[DateRange] = None,
        limit: int = 10,
    ) -> AnalyticsResult[List[ProductRanking]]:
        """Products ranked by product clicks, with purchases and revenue."""
        limit = aggregator.clamp_limit(limit, self.settings.top_products_max)

        async def compute() -> List[ProductRanking]:
            events = await self.source.fetch_events(
                EventQuery(store_id, require_product=True, **_bounds(date_range))
            )
            products = await self.source.get_products(aggregator.product_ids(events))
            return aggregator.rank_products(events, products, limit)

        return await self._read(
            keys.analytics(store_id, _range_token(date_range), f"products-{limit}"),
            AnalyticsResult[List[ProductRanking]],
            compute,
            list,
            "Failed to fetch top products",
        )

    async def get_time_series_data(
        self,
        store_id: str,
        start: datetime,
        end: datetime,
        metric: MetricType,
    ) -> AnalyticsResult[List[TimeSeriesPoint]]:
        """Daily series of views, leads or revenue; sparse, ascending."""
        try:
            ensure_max_range(start, end, self.settings.max_range_days)
        except DateRangeError as e:
            logger.info("Rejected time series range", store_id=store_id, error=e.message)
            return AnalyticsResult[List[TimeSeriesPoint]].fail(e.message)

        date_range = DateRange(start=start, end=end)

        async def compute() -> List[TimeSeriesPoint]:
            events = await self.source.fetch_events(
                EventQuery(store_id, event_type=metric.event_type, **_bounds(date_range))
            )
            return aggregator.build_time_series(events, metric, self.tz)

        return await self._read(
            keys.analytics(store_id, date_range.cache_token, f"timeseries-{metric.value}"),
            AnalyticsResult[List[TimeSeriesPoint]],
            compute,
            list,
            "Failed to fetch time series data",
        )

    async def get_comparison_metrics(
        self,
        store_id: str,
        current_start: datetime,
        current_end: datetime,
        previous_start: datetime,
        previous_end: datetime,
    ) -> AnalyticsResult[ComparisonMetrics]:
        """Current window against a previous window, both queried independently."""
        try:
            current = DateRange(start=current_start, end=current_end)
            previous = DateRange(start=previous_start, end=previous_end)
        except ValueError:
            return AnalyticsResult[ComparisonMetrics].fail("Start date must be before end date")
        try:
            ensure_comparable(current, previous)
        except DateRangeError as e:
            logger.info("Rejected comparison windows", store_id=store_id, error=e.message)
            return AnalyticsResult[ComparisonMetrics].fail(e.message)

        async def compute() -> ComparisonMetrics:
            current_events, previous_events = await asyncio.gather(
                self.source.fetch_events(EventQuery(store_id, start=current.start, end=current.end)),
                self.source.fetch_events(EventQuery(store_id, start=previous.start, end=previous.end)),
            )
            return aggregator.build_comparison(current_events, previous_events)

        return await self._read(
            keys.analytics(
                store_id, current.cache_token, f"comparison-{previous.cache_token}"
            ),
            AnalyticsResult[ComparisonMetrics],
            compute,
            aggregator.zero_comparison,
            "Failed to fetch comparison metrics",
        )

    async def get_top_products_by_clicks(
        self,
        store_id: str,
        start: datetime,
        end: datetime,
        limit: int = 5,
    ) -> AnalyticsResult[List[TopProduct]]:
        """Products ranked by clicks, where lead submissions count as clicks."""
        limit = aggregator.clamp_limit(limit, self.settings.top_products_max)
        try:
            date_range = DateRange(start=start, end=end)
        except ValueError:
            return AnalyticsResult[List[TopProduct]].fail("Start date must be before end date")

        async def compute() -> List[TopProduct]:
            events = await self.source.fetch_events(
                EventQuery(store_id, require_product=True, **_bounds(date_range))
            )
            products = await self.source.get_products(aggregator.product_ids(events))
            return aggregator.rank_products_by_clicks(events, products, limit)

        return await self._read(
            keys.analytics(store_id, date_range.cache_token, f"topclicks-{limit}"),
            AnalyticsResult[List[TopProduct]],
            compute,
            list,
            "Failed to fetch top products",
        )

    async def get_dashboard(
        self,
        store_id: str,
        start: datetime,
        end: datetime,
        previous_start: datetime,
        previous_end: datetime,
        metric: MetricType = MetricType.VIEWS,
        top_products_limit: int = 5,
        traffic_sources_limit: int = 10,
    ) -> AnalyticsResult[AnalyticsDashboard]:
        """
        Everything the dashboard renders, fetched concurrently.

        Fails if any part fails; degraded if any part is degraded.
        """
        try:
            ensure_max_range(start, end, self.settings.max_range_days)
        except DateRangeError as e:
            return AnalyticsResult[AnalyticsDashboard].fail(e.message)

        series, comparison, top_products, sources = await asyncio.gather(
            self.get_time_series_data(store_id, start, end, metric),
            self.get_comparison_metrics(store_id, start, end, previous_start, previous_end),
            self.get_top_products_by_clicks(store_id, start, end, top_products_limit),
            self.get_traffic_sources(store_id, DateRange(start=start, end=end), traffic_sources_limit),
        )

        parts = (series, comparison, top_products, sources)
        failed = next((part for part in parts if not part.success), None)
        if failed is not None:
            return AnalyticsResult[AnalyticsDashboard].fail(failed.error or "Failed to fetch analytics")

        dashboard = AnalyticsDashboard(
            time_series=series.data or [],
            comparison=comparison.data,
            top_products=top_products.data or [],
            traffic_sources=sources.data or [],
        )

        degraded = [part.error for part in parts if part.degraded]
        if degraded:
            return AnalyticsResult[AnalyticsDashboard].fallback(dashboard, degraded[0] or "Failed to fetch analytics")
        return AnalyticsResult[AnalyticsDashboard].ok(dashboard)
