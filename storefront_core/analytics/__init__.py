"""
Storefront Analytics

Event model, pure aggregation, event sources, the cached analytics service and
event tracking.
"""

from storefront_core.analytics.events import Event, EventType
from storefront_core.analytics.models import (
    AnalyticsDashboard,
    AnalyticsResult,
    ComparisonMetric,
    ComparisonMetrics,
    DateRange,
    MetricType,
    ProductAnalytics,
    ProductInfo,
    ProductRanking,
    ProductType,
    StoreAnalytics,
    TimeSeriesPoint,
    TopProduct,
    TrafficSource,
)
from storefront_core.analytics.source import (
    EventQuery,
    EventSink,
    EventSource,
    MemoryEventSource,
    SqlEventSource,
)
from storefront_core.analytics.service import AnalyticsService
from storefront_core.analytics.tracking import TrackingService, TrackingResponse

__all__ = [
    "Event",
    "EventType",
    "AnalyticsDashboard",
    "AnalyticsResult",
    "ComparisonMetric",
    "ComparisonMetrics",
    "DateRange",
    "MetricType",
    "ProductAnalytics",
    "ProductInfo",
    "ProductRanking",
    "ProductType",
    "StoreAnalytics",
    "TimeSeriesPoint",
    "TopProduct",
    "TrafficSource",
    "EventQuery",
    "EventSink",
    "EventSource",
    "MemoryEventSource",
    "SqlEventSource",
    "AnalyticsService",
    "TrackingService",
    "TrackingResponse",
]
