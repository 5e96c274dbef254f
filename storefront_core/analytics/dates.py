"""
Date Utilities for Analytics

Range presets, comparison windows, day bucketing and display formats.
"""

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from enum import Enum
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo

from storefront_core.analytics.models import DateRange, TimeSeriesPoint, as_utc
from storefront_core.exceptions import DateRangeError


class DateRangePreset(str, Enum):
    """Dashboard range presets"""
    LAST_7_DAYS = "last7days"
    LAST_14_DAYS = "last14days"
    CUSTOM = "custom"


PRESET_DAYS = {
    DateRangePreset.LAST_7_DAYS: 7,
    DateRangePreset.LAST_14_DAYS: 14,
    DateRangePreset.CUSTOM: 14,
}


def get_timezone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def start_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.min, tzinfo=value.tzinfo)


def end_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.max, tzinfo=value.tzinfo)


def local_day(value: datetime, tz: tzinfo = timezone.utc) -> date:
    """Calendar day of a timestamp in the store's timezone; naive values are UTC"""
    return as_utc(value).astimezone(tz).date()


def get_date_range(preset: DateRangePreset, now: Optional[datetime] = None) -> DateRange:
    """
    Get date range based on preset.

    The range ends at the end of today and includes today, so last7days
    starts six days ago. CUSTOM falls back to 14 days.
    """
    end = end_of_day(now or datetime.now(timezone.utc))
    days = PRESET_DAYS.get(preset, 14)
    start = start_of_day(end - timedelta(days=days - 1))
    return DateRange(start=start, end=end)


def get_previous_period(start: datetime, end: datetime) -> DateRange:
    """
    Window of equal length immediately before [start, end].

    For the last 7 days, the previous period is the 7 days before that.
    Days are counted in UTC.
    """
    start, end = as_utc(start), as_utc(end)
    days = calculate_days_difference(start, end)
    previous_end = start_of_day(start - timedelta(days=1))
    previous_start = start_of_day(previous_end - timedelta(days=days - 1))
    return DateRange(start=previous_start, end=end_of_day(previous_end))


def calculate_days_difference(start: datetime, end: datetime) -> int:
    """Number of calendar days between two dates, both included"""
    return (end.date() - start.date()).days + 1


def ensure_max_range(start: datetime, end: datetime, max_days: int) -> None:
    """
    Reject inverted ranges and ranges spanning more than max_days whole days.

    Bounds are compared in UTC, so a naive bound may be paired with an
    offset-aware one.
    """
    start, end = as_utc(start), as_utc(end)
    if end < start:
        raise DateRangeError("Start date must be before end date")
    if (end - start).days > max_days:
        raise DateRangeError(
            f"Date range cannot exceed {max_days} days",
            details={"start": start.isoformat(), "end": end.isoformat()},
        )


def ensure_comparable(current: DateRange, previous: DateRange) -> None:
    """The comparison window must end before the current one and span as many days"""
    if previous.end >= current.start:
        raise DateRangeError(
            "Comparison period must end before the current period starts",
            details={"current_start": current.start.isoformat(), "previous_end": previous.end.isoformat()},
        )
    current_days = calculate_days_difference(current.start, current.end)
    previous_days = calculate_days_difference(previous.start, previous.end)
    if current_days != previous_days:
        raise DateRangeError(
            "Comparison period must span the same number of days",
            details={"current_days": current_days, "previous_days": previous_days},
        )


def is_valid_date_range(start: datetime, end: datetime) -> bool:
    return as_utc(end) >= as_utc(start)


def to_iso_date_string(value: datetime) -> str:
    return value.strftime("%Y-%m-%d")


def format_date_for_chart(value: date, range_days: int) -> str:
    """'Mon 1' for ranges up to a week, 'Jan 1' otherwise"""
    if range_days <= 7:
        return f"{value:%a} {value.day}"
    return f"{value:%b} {value.day}"


def format_date_for_tooltip(value: date) -> str:
    return f"{value:%B} {value.day}, {value.year}"


def format_date_range(start: date, end: date) -> str:
    return f"{start:%b} {start.day} - {end:%b} {end.day}, {end.year}"


def fill_missing_days(
    points: Iterable[TimeSeriesPoint],
    start: date,
    end: date,
) -> List[TimeSeriesPoint]:
    """
    Dense daily series for charting.

    The aggregator returns sparse series; days without events are filled
    with zero here, on the presentation side.
    """
    by_day = {point.date: point.value for point in points}
    filled = []
    day = start
    while day <= end:
        filled.append(TimeSeriesPoint(date=day, value=by_day.get(day, 0.0)))
        day += timedelta(days=1)
    return filled
