"""
Analytics API Endpoints

REST API over the analytics service. Every endpoint returns the analytics
envelope ``{success, data, error, degraded}``; rejected inputs answer 400.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
import structlog

from storefront_core.analytics.dates import (
    DateRangePreset,
    fill_missing_days,
    get_date_range,
    get_previous_period,
    is_valid_date_range,
    local_day,
)
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
from storefront_core.analytics.service import AnalyticsService
from storefront_core.serving.api.dependencies import get_analytics_service

router = APIRouter()
logger = structlog.get_logger(__name__)


def _optional_range(start: Optional[datetime], end: Optional[datetime]) -> Optional[DateRange]:
    if start is None and end is None:
        return None
    if start is None or end is None:
        raise HTTPException(status_code=400, detail="Both start and end are required for a date range")
    if not is_valid_date_range(start, end):
        raise HTTPException(status_code=400, detail="Start date must be before end date")
    return DateRange(start=start, end=end)


def _respond(result: AnalyticsResult, response: Response) -> AnalyticsResult:
    if not result.success:
        response.status_code = 400
    return result


@router.get("/{store_id}/summary", response_model=AnalyticsResult[StoreAnalytics])
async def get_store_summary(
    store_id: str,
    response: Response,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    service: AnalyticsService = Depends(get_analytics_service),
) -> AnalyticsResult[StoreAnalytics]:
    """Whole-store totals; all time when no range is given."""
    result = await service.get_store_analytics(store_id, _optional_range(start, end))
    return _respond(result, response)


@router.get("/{store_id}/products/{product_id}", response_model=AnalyticsResult[ProductAnalytics])
async def get_product_summary(
    store_id: str,
    product_id: str,
    response: Response,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    service: AnalyticsService = Depends(get_analytics_service),
) -> AnalyticsResult[ProductAnalytics]:
    result = await service.get_product_analytics(store_id, product_id, _optional_range(start, end))
    return _respond(result, response)


@router.get("/{store_id}/traffic-sources", response_model=AnalyticsResult[List[TrafficSource]])
async def get_traffic_sources(
    store_id: str,
    response: Response,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(10),
    service: AnalyticsService = Depends(get_analytics_service),
) -> AnalyticsResult[List[TrafficSource]]:
    result = await service.get_traffic_sources(store_id, _optional_range(start, end), limit)
    return _respond(result, response)


@router.get("/{store_id}/top-products", response_model=AnalyticsResult[List[ProductRanking]])
async def get_top_products(
    store_id: str,
    response: Response,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(10),
    service: AnalyticsService = Depends(get_analytics_service),
) -> AnalyticsResult[List[ProductRanking]]:
    result = await service.get_top_products(store_id, _optional_range(start, end), limit)
    return _respond(result, response)


@router.get("/{store_id}/time-series", response_model=AnalyticsResult[List[TimeSeriesPoint]])
async def get_time_series(
    store_id: str,
    response: Response,
    start: datetime,
    end: datetime,
    metric: MetricType = MetricType.VIEWS,
    dense: bool = Query(False, description="Fill days without events with zero"),
    service: AnalyticsService = Depends(get_analytics_service),
) -> AnalyticsResult[List[TimeSeriesPoint]]:
    """Daily series; sparse unless ``dense`` is set."""
    result = await service.get_time_series_data(store_id, start, end, metric)
    if dense and result.success and result.data is not None:
        result = result.model_copy(update={
            "data": fill_missing_days(
                result.data, local_day(start, service.tz), local_day(end, service.tz)
            )
        })
    return _respond(result, response)


@router.get("/{store_id}/comparison", response_model=AnalyticsResult[ComparisonMetrics])
async def get_comparison(
    store_id: str,
    response: Response,
    start: datetime,
    end: datetime,
    previous_start: Optional[datetime] = None,
    previous_end: Optional[datetime] = None,
    service: AnalyticsService = Depends(get_analytics_service),
) -> AnalyticsResult[ComparisonMetrics]:
    """Current window against a previous one; defaults to the equal-length window before it."""
    if previous_start is None or previous_end is None:
        if not is_valid_date_range(start, end):
            raise HTTPException(status_code=400, detail="Start date must be before end date")
        previous = get_previous_period(start, end)
        previous_start, previous_end = previous.start, previous.end

    result = await service.get_comparison_metrics(store_id, start, end, previous_start, previous_end)
    return _respond(result, response)


@router.get("/{store_id}/top-products-by-clicks", response_model=AnalyticsResult[List[TopProduct]])
async def get_top_products_by_clicks(
    store_id: str,
    response: Response,
    start: datetime,
    end: datetime,
    limit: int = Query(5),
    service: AnalyticsService = Depends(get_analytics_service),
) -> AnalyticsResult[List[TopProduct]]:
    result = await service.get_top_products_by_clicks(store_id, start, end, limit)
    return _respond(result, response)


@router.get("/{store_id}/dashboard", response_model=AnalyticsResult[AnalyticsDashboard])
async def get_dashboard(
    store_id: str,
    response: Response,
    preset: DateRangePreset = DateRangePreset.LAST_7_DAYS,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    metric: MetricType = MetricType.VIEWS,
    service: AnalyticsService = Depends(get_analytics_service),
) -> AnalyticsResult[AnalyticsDashboard]:
    """
    Dashboard payload for a preset range, or a custom start/end.

    The comparison window is the equal-length period before the range.
    """
    date_range = _optional_range(start, end) or get_date_range(preset)
    previous = get_previous_period(date_range.start, date_range.end)

    logger.debug(
        "Dashboard requested",
        store_id=store_id,
        start=date_range.start.isoformat(),
        end=date_range.end.isoformat(),
    )

    result = await service.get_dashboard(
        store_id,
        date_range.start,
        date_range.end,
        previous.start,
        previous.end,
        metric=metric,
    )
    return _respond(result, response)
