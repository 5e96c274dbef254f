"""
Analytics Result Models

Response shapes produced by the aggregator and the analytics service, plus the
uniform result envelope.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator

from storefront_core.analytics.events import EventType

T = TypeVar("T")


class MetricType(str, Enum):
    """Time series metrics"""
    VIEWS = "views"
    LEADS = "leads"
    REVENUE = "revenue"

    @property
    def event_type(self) -> EventType:
        return METRIC_EVENT_TYPES[self]


METRIC_EVENT_TYPES = {
    MetricType.VIEWS: EventType.PAGE_VIEW,
    MetricType.LEADS: EventType.LEAD_SUBMIT,
    MetricType.REVENUE: EventType.PURCHASE,
}


class ProductType(str, Enum):
    """Storefront product types"""
    LINK = "link"
    LEAD_MAGNET = "lead_magnet"
    DIGITAL_PRODUCT = "digital_product"


def as_utc(value: datetime) -> datetime:
    """Naive timestamps are taken to be UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DateRange(BaseModel):
    """Inclusive datetime window, held in UTC"""
    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def normalize(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="after")
    def check_order(self) -> "DateRange":
        if self.end < self.start:
            raise ValueError("Start date must be before end date")
        return self

    @property
    def cache_token(self) -> str:
        """Stable range descriptor used inside cache keys"""
        return f"{self.start.isoformat()}_{self.end.isoformat()}"


class ProductInfo(BaseModel):
    """Product metadata joined into rankings"""
    id: str
    name: str
    type: Optional[ProductType] = None


class TimeSeriesPoint(BaseModel):
    """Daily data point"""
    date: date
    value: float


class ComparisonMetric(BaseModel):
    """Period-over-period metric"""
    current: float
    previous: float
    percentage_change: float
    is_increase: bool


class ComparisonMetrics(BaseModel):
    """Current vs previous window"""
    visits: ComparisonMetric
    revenue: ComparisonMetric
    leads: ComparisonMetric
    conversion_rate: ComparisonMetric


class TopProduct(BaseModel):
    """Product ranked by clicks (product clicks and lead submissions)"""
    product_id: str
    product_name: str
    product_type: Optional[ProductType] = None
    clicks: int
    views: int
    ctr: float


class ProductRanking(BaseModel):
    """Product ranked by clicks with conversions and revenue"""
    product_id: str
    product_name: Optional[str] = None
    clicks: int
    conversions: int
    revenue: float


class TrafficSource(BaseModel):
    """Activity attributed to one UTM source/medium pair"""
    source: str
    medium: Optional[str] = None
    views: int = 0
    clicks: int = 0
    leads: int = 0
    purchases: int = 0
    revenue: float = 0.0


class StoreAnalytics(BaseModel):
    """Whole-store rollup"""
    total_page_views: int = 0
    total_clicks: int = 0
    unique_visitors: int = 0
    total_leads: int = 0
    total_purchases: int = 0
    total_revenue: float = 0.0
    top_traffic_source: Optional[str] = None
    conversion_rate: float = 0.0


class ProductAnalytics(BaseModel):
    """Single product rollup"""
    product_id: str
    product_name: Optional[str] = None
    total_views: int = 0
    total_clicks: int = 0
    click_through_rate: float = 0.0
    total_leads: int = 0
    total_purchases: int = 0
    total_revenue: float = 0.0
    conversion_rate: float = 0.0
    top_traffic_source: Optional[str] = None


class AnalyticsDashboard(BaseModel):
    """Everything a dashboard render needs"""
    time_series: List[TimeSeriesPoint] = Field(default_factory=list)
    comparison: ComparisonMetrics
    top_products: List[TopProduct] = Field(default_factory=list)
    traffic_sources: List[TrafficSource] = Field(default_factory=list)


class AnalyticsResult(BaseModel, Generic[T]):
    """
    Uniform result envelope.

    ``degraded`` marks a payload that was zeroed because the event store
    query failed, as opposed to data that is legitimately empty.
    """
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    degraded: bool = False

    @classmethod
    def ok(cls, data: T) -> "AnalyticsResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "AnalyticsResult[T]":
        return cls(success=False, error=error)

    @classmethod
    def fallback(cls, data: T, error: str) -> "AnalyticsResult[T]":
        return cls(success=True, data=data, error=error, degraded=True)
