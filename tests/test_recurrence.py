"""
Tests for recurring service date calculation
"""
import pytest
from datetime import date
from types import SimpleNamespace
from services.recurrence import (
    calculate_next_service_date,
    next_date_for_schedule,
    upcoming_dates,
    sunday_based_weekday
)

# Monday
START = date(2024, 1, 1)


@pytest.mark.unit
class TestNextServiceDate:
    """Tests for calculate_next_service_date"""

    def test_weekly(self):
        assert calculate_next_service_date(START, 'weekly') == date(2024, 1, 8)

    def test_weekly_interval(self):
        assert calculate_next_service_date(START, 'weekly', 3) == date(2024, 1, 22)

    def test_bi_weekly(self):
        assert calculate_next_service_date(START, 'bi_weekly') == date(2024, 1, 15)

    def test_monthly_clamps_to_month_end(self):
        assert calculate_next_service_date(date(2024, 1, 31), 'monthly') == date(2024, 2, 29)

    def test_one_time_has_no_next(self):
        assert calculate_next_service_date(START, 'one_time') is None

    def test_custom_days_use_sunday_zero(self):
        # Wednesday = 3, Friday = 5
        assert calculate_next_service_date(START, 'custom', recurrence_days=[3, 5]) == date(2024, 1, 3)
        assert calculate_next_service_date(date(2024, 1, 3), 'custom', recurrence_days=[3, 5]) == date(2024, 1, 5)

    def test_custom_wraps_to_next_week(self):
        # Sunday only, from a Monday
        assert calculate_next_service_date(START, 'custom', recurrence_days=[0]) == date(2024, 1, 7)

    def test_custom_without_days(self):
        assert calculate_next_service_date(START, 'custom', recurrence_days=[]) is None

    def test_end_date_stops_series(self):
        assert calculate_next_service_date(START, 'weekly', end_date=date(2024, 1, 7)) is None
        assert calculate_next_service_date(START, 'weekly', end_date=date(2024, 1, 8)) == date(2024, 1, 8)

    def test_sunday_based_weekday(self):
        assert sunday_based_weekday(date(2024, 1, 7)) == 0
        assert sunday_based_weekday(START) == 1
        assert sunday_based_weekday(date(2024, 1, 6)) == 6


@pytest.mark.unit
class TestScheduleDates:

    def test_counts_from_last_visit(self):
        schedule = SimpleNamespace(
            last_scheduled_date=date(2024, 1, 15), start_date=START, scheduled_date=START,
            recurrence_type='weekly', recurrence_interval=1, recurrence_days=None, end_date=None
        )
        assert next_date_for_schedule(schedule) == date(2024, 1, 22)

    def test_counts_from_start_without_visits(self):
        schedule = SimpleNamespace(
            last_scheduled_date=None, start_date=None, scheduled_date=START,
            recurrence_type='bi_weekly', recurrence_interval=1, recurrence_days=None, end_date=None
        )
        assert next_date_for_schedule(schedule) == date(2024, 1, 15)

    def test_upcoming_dates_limit(self):
        assert upcoming_dates(START, 'weekly', limit=3) == [date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22)]

    def test_upcoming_dates_end_date(self):
        assert upcoming_dates(START, 'weekly', end_date=date(2024, 1, 20)) == [date(2024, 1, 8), date(2024, 1, 15)]
