"""
Unit Tests - Number and Date Formatting
"""
from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from storefront_core.analytics.dates import (
    DateRangePreset,
    calculate_days_difference,
    ensure_comparable,
    ensure_max_range,
    fill_missing_days,
    format_date_for_chart,
    format_date_for_tooltip,
    format_date_range,
    get_date_range,
    get_previous_period,
    get_timezone,
    is_valid_date_range,
    local_day,
    to_iso_date_string,
)
from storefront_core.analytics.formatters import (
    format_comparison_percentage,
    format_compact_number,
    format_currency,
    format_number,
    format_percentage,
    is_increase,
    percentage_change,
)
from storefront_core.analytics.models import DateRange, TimeSeriesPoint
from storefront_core.exceptions import DateRangeError


class TestPercentageChange:
    """Period-over-period change"""

    @pytest.mark.parametrize(
        "current,previous,expected",
        [
            (0, 0, 0.0),
            (5, 0, 100.0),
            (50, 100, -50.0),
            (150, 100, 50.0),
            (100, 100, 0.0),
        ],
    )
    def test_percentage_change(self, current, previous, expected):
        assert percentage_change(current, previous) == expected

    def test_tie_is_increase(self):
        assert is_increase(7, 7)
        assert is_increase(0, 0)
        assert not is_increase(6, 7)


class TestNumberFormatting:
    """Display helpers"""

    def test_currency_symbols(self):
        assert format_currency(1234.5) == "RM 1,234.50"
        assert format_currency(10, "USD") == "$10.00"
        assert format_currency(10, "SGD") == "S$10.00"
        assert format_currency(10, "JPY") == "JPY 10.00"

    def test_format_number(self):
        assert format_number(1234567) == "1,234,567"
        assert format_number(3.14159, 2) == "3.14"

    def test_format_percentage(self):
        assert format_percentage(0.075) == "7.5%"

    def test_compact_number(self):
        assert format_compact_number(999) == "999"
        assert format_compact_number(1200) == "1.2k"
        assert format_compact_number(3_400_000) == "3.4M"

    def test_comparison_percentage(self):
        assert format_comparison_percentage(12.5) == "+12.5% ↑"
        assert format_comparison_percentage(-3) == "-3.0% ↓"


class TestDateRanges:
    """Presets, comparison windows and validation"""

    NOW = datetime(2025, 3, 15, 12, 30, tzinfo=timezone.utc)

    def test_last_7_days_includes_today(self):
        date_range = get_date_range(DateRangePreset.LAST_7_DAYS, now=self.NOW)

        assert date_range.start == datetime(2025, 3, 9, tzinfo=timezone.utc)
        assert date_range.end.date() == date(2025, 3, 15)
        assert calculate_days_difference(date_range.start, date_range.end) == 7

    def test_custom_falls_back_to_14_days(self):
        date_range = get_date_range(DateRangePreset.CUSTOM, now=self.NOW)
        assert calculate_days_difference(date_range.start, date_range.end) == 14

    def test_previous_period_is_contiguous_and_equal_length(self):
        current = get_date_range(DateRangePreset.LAST_7_DAYS, now=self.NOW)
        previous = get_previous_period(current.start, current.end)

        assert previous.start == datetime(2025, 3, 2, tzinfo=timezone.utc)
        assert previous.end.date() == date(2025, 3, 8)
        assert previous.end < current.start
        assert calculate_days_difference(previous.start, previous.end) == 7

    def test_range_of_90_days_accepted(self):
        start = self.NOW - timedelta(days=90)
        ensure_max_range(start, self.NOW, 90)

    def test_range_of_91_days_rejected(self):
        start = self.NOW - timedelta(days=91)
        with pytest.raises(DateRangeError, match="cannot exceed 90 days"):
            ensure_max_range(start, self.NOW, 90)

    def test_inverted_range_rejected(self):
        with pytest.raises(DateRangeError):
            ensure_max_range(self.NOW, self.NOW - timedelta(days=1), 90)
        assert not is_valid_date_range(self.NOW, self.NOW - timedelta(days=1))

    def test_naive_and_aware_bounds_compared_in_utc(self):
        naive_start = (self.NOW - timedelta(days=90)).replace(tzinfo=None)

        ensure_max_range(naive_start, self.NOW, 90)
        assert is_valid_date_range(naive_start, self.NOW)
        with pytest.raises(DateRangeError, match="Start date must be before end date"):
            ensure_max_range(self.NOW, naive_start, 90)

    def test_date_range_normalizes_to_utc(self):
        plus_eight = timezone(timedelta(hours=8))
        date_range = DateRange(
            start=datetime(2025, 3, 9, 8, 0, tzinfo=plus_eight),
            end=datetime(2025, 3, 9, 1, 0),
        )

        assert date_range.start == datetime(2025, 3, 9, 0, 0, tzinfo=timezone.utc)
        assert date_range.start.tzinfo is timezone.utc
        assert date_range.end.tzinfo is timezone.utc

    def test_mixed_inverted_date_range_rejected(self):
        with pytest.raises(ValidationError, match="Start date must be before end date"):
            DateRange(start=self.NOW, end=datetime(2025, 3, 15, 12, 0))

    def test_previous_period_passes_comparison_check(self):
        current = DateRange(
            start=datetime(2025, 3, 9, tzinfo=timezone(timedelta(hours=8))),
            end=datetime(2025, 3, 15, 23, 59, tzinfo=timezone(timedelta(hours=8))),
        )

        ensure_comparable(current, get_previous_period(current.start, current.end))

    def test_comparison_check_rejects_overlap_and_length(self):
        current = get_date_range(DateRangePreset.LAST_7_DAYS, now=self.NOW)
        overlapping = DateRange(start=current.start - timedelta(days=3), end=current.end - timedelta(days=3))
        longer = DateRange(start=current.start - timedelta(days=10), end=current.start - timedelta(seconds=1))

        with pytest.raises(DateRangeError, match="must end before"):
            ensure_comparable(current, overlapping)
        with pytest.raises(DateRangeError, match="same number of days"):
            ensure_comparable(current, longer)


class TestDayBucketing:
    """Local calendar days"""

    def test_naive_timestamp_is_utc(self):
        assert local_day(datetime(2025, 3, 15, 23, 30)) == date(2025, 3, 15)

    def test_store_timezone_shifts_day(self):
        kuala_lumpur = get_timezone("Asia/Kuala_Lumpur")
        value = datetime(2025, 3, 15, 20, 0, tzinfo=timezone.utc)

        assert local_day(value, kuala_lumpur) == date(2025, 3, 16)

    def test_fill_missing_days(self):
        points = [
            TimeSeriesPoint(date=date(2025, 3, 1), value=2),
            TimeSeriesPoint(date=date(2025, 3, 3), value=5),
        ]

        filled = fill_missing_days(points, date(2025, 3, 1), date(2025, 3, 4))

        assert [(p.date.day, p.value) for p in filled] == [(1, 2.0), (2, 0.0), (3, 5.0), (4, 0.0)]


class TestDateDisplay:
    def test_formats(self):
        value = datetime(2025, 1, 5, tzinfo=timezone.utc)

        assert to_iso_date_string(value) == "2025-01-05"
        assert format_date_for_chart(value.date(), 7) == "Sun 5"
        assert format_date_for_chart(value.date(), 30) == "Jan 5"
        assert format_date_for_tooltip(value.date()) == "January 5, 2025"
        assert format_date_range(date(2025, 1, 1), date(2025, 1, 7)) == "Jan 1 - Jan 7, 2025"
