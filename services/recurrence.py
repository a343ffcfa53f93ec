"""
Recurring service dates.

Weekdays in recurrence_days use 0 = Sunday .. 6 = Saturday.
"""

from datetime import date, timedelta
from typing import Iterable, List, Optional

from dateutil.relativedelta import relativedelta


def sunday_based_weekday(day: date) -> int:
    """Python counts Monday as 0; recurrence days count Sunday as 0."""
    return (day.weekday() + 1) % 7


def calculate_next_service_date(current_date: date, recurrence_type: str, interval: int = 1,
                                recurrence_days: Iterable[int] = (),
                                end_date: Optional[date] = None) -> Optional[date]:
    """
    Next visit after current_date, or None for one-off services and when the
    next visit would fall after end_date.
    """
    interval = interval or 1

    if recurrence_type == 'weekly':
        next_date = current_date + timedelta(days=7 * interval)
    elif recurrence_type == 'bi_weekly':
        next_date = current_date + timedelta(days=14 * interval)
    elif recurrence_type == 'monthly':
        next_date = current_date + relativedelta(months=interval)
    elif recurrence_type == 'custom':
        days = {d for d in (recurrence_days or []) if 0 <= d <= 6}
        if not days:
            return None
        next_date = current_date + timedelta(days=1)
        while sunday_based_weekday(next_date) not in days:
            next_date += timedelta(days=1)
    else:
        return None

    if end_date is not None and next_date > end_date:
        return None
    return next_date


def next_date_for_schedule(schedule, from_date: Optional[date] = None) -> Optional[date]:
    """Next date for a ServiceSchedule, counting from its last visit (or start)."""
    current = from_date or schedule.last_scheduled_date or schedule.start_date or schedule.scheduled_date
    return calculate_next_service_date(
        current,
        schedule.recurrence_type,
        schedule.recurrence_interval,
        schedule.recurrence_days or [],
        schedule.end_date
    )


def upcoming_dates(start: date, recurrence_type: str, interval: int = 1,
                   recurrence_days: Iterable[int] = (), end_date: Optional[date] = None,
                   limit: int = 10) -> List[date]:
    """Preview up to `limit` visit dates after `start`."""
    dates = []
    current = start
    while len(dates) < limit:
        current = calculate_next_service_date(current, recurrence_type, interval, recurrence_days, end_date)
        if current is None:
            break
        dates.append(current)
    return dates
