"""
Analytics Aggregation

Pure functions turning a list of validated events into report shapes:
- Daily time series (counts or summed revenue)
- Period-over-period comparison metrics
- Product rankings
- Traffic source breakdown by UTM source/medium
- Store and product rollups

Nothing here performs I/O; the analytics service fetches events and hands
them in.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import date, timezone, tzinfo
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from storefront_core.analytics.dates import local_day
from storefront_core.analytics.events import Event, EventType
from storefront_core.analytics.formatters import is_increase, percentage_change, round_rate
from storefront_core.analytics.models import (
    ComparisonMetric,
    ComparisonMetrics,
    MetricType,
    ProductAnalytics,
    ProductInfo,
    ProductRanking,
    StoreAnalytics,
    TimeSeriesPoint,
    TopProduct,
    TrafficSource,
)

UNKNOWN_PRODUCT = "Unknown Product"

# Both count towards the "clicks" used to rank products.
CLICK_EVENT_TYPES = (EventType.PRODUCT_CLICK, EventType.LEAD_SUBMIT)


def clamp_limit(limit: int, maximum: int) -> int:
    """Out-of-range limits are clamped, never rejected"""
    return max(1, min(limit, maximum))


def build_time_series(
    events: Iterable[Event],
    metric: MetricType,
    tz: tzinfo = timezone.utc,
) -> List[TimeSeriesPoint]:
    """
    Bucket events of the metric's event type by store-local calendar day.

    Revenue sums purchase revenue; other metrics count events. Days without
    events are absent from the result.
    """
    event_type = metric.event_type
    daily: Dict[date, float] = {}

    for event in events:
        if event.event_type != event_type:
            continue
        day = local_day(event.created_at, tz)
        increment = event.revenue if metric == MetricType.REVENUE else 1
        daily[day] = daily.get(day, 0.0) + increment

    return [TimeSeriesPoint(date=day, value=value) for day, value in sorted(daily.items())]


@dataclass
class WindowTotals:
    """Counters for one comparison window"""
    visits: int = 0
    leads: int = 0
    purchases: int = 0
    revenue: float = 0.0

    @property
    def conversion_rate(self) -> float:
        if self.visits == 0:
            return 0.0
        return ((self.leads + self.purchases) / self.visits) * 100


def summarize_window(events: Iterable[Event]) -> WindowTotals:
    totals = WindowTotals()
    for event in events:
        if event.event_type == EventType.PAGE_VIEW:
            totals.visits += 1
        elif event.event_type == EventType.LEAD_SUBMIT:
            totals.leads += 1
        elif event.event_type == EventType.PURCHASE:
            totals.purchases += 1
            totals.revenue += event.revenue
    return totals


def compare(current: float, previous: float) -> ComparisonMetric:
    return ComparisonMetric(
        current=current,
        previous=previous,
        percentage_change=percentage_change(current, previous),
        is_increase=is_increase(current, previous),
    )


def compare_windows(current: WindowTotals, previous: WindowTotals) -> ComparisonMetrics:
    return ComparisonMetrics(
        visits=compare(current.visits, previous.visits),
        revenue=compare(current.revenue, previous.revenue),
        leads=compare(current.leads, previous.leads),
        conversion_rate=compare(current.conversion_rate, previous.conversion_rate),
    )


def build_comparison(
    current_events: Iterable[Event],
    previous_events: Iterable[Event],
) -> ComparisonMetrics:
    return compare_windows(summarize_window(current_events), summarize_window(previous_events))


def zero_comparison() -> ComparisonMetrics:
    return compare_windows(WindowTotals(), WindowTotals())


def product_ids(events: Iterable[Event]) -> List[str]:
    """Distinct product ids in encounter order"""
    seen: Dict[str, None] = {}
    for event in events:
        if event.product_id:
            seen.setdefault(event.product_id, None)
    return list(seen)


def rank_products_by_clicks(
    events: Iterable[Event],
    products: Mapping[str, ProductInfo],
    limit: int,
) -> List[TopProduct]:
    """
    Rank products by clicks, where a lead submission counts as a click.

    Equal click counts keep encounter order.
    """
    counters: Dict[str, List[int]] = {}

    for event in events:
        if not event.product_id:
            continue
        clicks_views = counters.setdefault(event.product_id, [0, 0])
        if event.event_type in CLICK_EVENT_TYPES:
            clicks_views[0] += 1
        elif event.event_type == EventType.PAGE_VIEW:
            clicks_views[1] += 1

    ranked = []
    for product_id, (clicks, views) in counters.items():
        info = products.get(product_id)
        ctr = (clicks / views) * 100 if views > 0 else 0.0
        ranked.append(
            TopProduct(
                product_id=product_id,
                product_name=info.name if info else UNKNOWN_PRODUCT,
                product_type=info.type if info else None,
                clicks=clicks,
                views=views,
                ctr=round_rate(ctr),
            )
        )

    ranked.sort(key=lambda p: p.clicks, reverse=True)
    return ranked[:limit]


def rank_products(
    events: Iterable[Event],
    products: Mapping[str, ProductInfo],
    limit: int,
) -> List[ProductRanking]:
    """Rank products by product clicks, with purchase conversions and revenue"""
    rankings: Dict[str, ProductRanking] = {}

    for event in events:
        if not event.product_id:
            continue
        ranking = rankings.get(event.product_id)
        if ranking is None:
            info = products.get(event.product_id)
            ranking = ProductRanking(
                product_id=event.product_id,
                product_name=info.name if info else None,
                clicks=0,
                conversions=0,
                revenue=0.0,
            )
            rankings[event.product_id] = ranking

        if event.event_type == EventType.PRODUCT_CLICK:
            ranking.clicks += 1
        elif event.event_type == EventType.PURCHASE:
            ranking.conversions += 1
            ranking.revenue += event.revenue

    ranked = sorted(rankings.values(), key=lambda r: r.clicks, reverse=True)
    return ranked[:limit]


def group_traffic_sources(events: Iterable[Event], limit: int) -> List[TrafficSource]:
    """
    Group events by (utm_source, utm_medium).

    A missing medium is its own group, distinct from every named medium of
    the same source. Events without a source are ignored.
    """
    groups: Dict[Tuple[str, Optional[str]], TrafficSource] = {}

    for event in events:
        if not event.utm_source:
            continue

        group_key = (event.utm_source, event.utm_medium)
        group = groups.get(group_key)
        if group is None:
            group = TrafficSource(source=event.utm_source, medium=event.utm_medium)
            groups[group_key] = group

        if event.event_type == EventType.PAGE_VIEW:
            group.views += 1
        elif event.event_type == EventType.PRODUCT_CLICK:
            group.clicks += 1
        elif event.event_type == EventType.LEAD_SUBMIT:
            group.leads += 1
        elif event.event_type == EventType.PURCHASE:
            group.purchases += 1
            group.revenue += event.revenue

    ranked = sorted(groups.values(), key=lambda s: s.clicks, reverse=True)
    return ranked[:limit]


def top_traffic_source(events: Iterable[Event]) -> Optional[str]:
    """UTM source with the most events; ties go to the first seen"""
    counts = Counter(event.utm_source for event in events if event.utm_source)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def summarize_store(events: Sequence[Event]) -> StoreAnalytics:
    counts = Counter(event.event_type for event in events)
    page_views = counts[EventType.PAGE_VIEW]
    purchases = counts[EventType.PURCHASE]

    conversion_rate = (purchases / page_views) * 100 if page_views > 0 else 0.0

    return StoreAnalytics(
        total_page_views=page_views,
        total_clicks=counts[EventType.PRODUCT_CLICK],
        unique_visitors=len({event.session_id for event in events if event.session_id}),
        total_leads=counts[EventType.LEAD_SUBMIT],
        total_purchases=purchases,
        total_revenue=sum(event.revenue for event in events),
        top_traffic_source=top_traffic_source(events),
        conversion_rate=round_rate(conversion_rate),
    )


def summarize_product(
    product_id: str,
    events: Sequence[Event],
    store_page_views: int,
    product_name: Optional[str] = None,
) -> ProductAnalytics:
    """
    Rollup for one product.

    Click-through rate is product clicks over the store's page views;
    conversion rate is purchases over product clicks.
    """
    counts = Counter(event.event_type for event in events)
    clicks = counts[EventType.PRODUCT_CLICK]
    purchases = counts[EventType.PURCHASE]

    click_through_rate = (clicks / store_page_views) * 100 if store_page_views > 0 else 0.0
    conversion_rate = (purchases / clicks) * 100 if clicks > 0 else 0.0

    return ProductAnalytics(
        product_id=product_id,
        product_name=product_name,
        total_views=store_page_views,
        total_clicks=clicks,
        click_through_rate=round_rate(click_through_rate),
        total_leads=counts[EventType.LEAD_SUBMIT],
        total_purchases=purchases,
        total_revenue=sum(event.revenue for event in events),
        conversion_rate=round_rate(conversion_rate),
        top_traffic_source=top_traffic_source(events),
    )
