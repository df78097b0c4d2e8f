"""
Date Arithmetic

Pure helpers for tranche due dates and calendar-month keys.
Every function that computes a due date accepts an override which, when
present, is returned as-is and the default is never computed.
"""

import calendar
from datetime import date, timedelta

from .models import parse_month_key_parts, validate_month_key

FRIDAY = calendar.FRIDAY


def next_weekly_boundary(value: date, weekday: int = FRIDAY, override: date | None = None) -> date:
    """
    First date strictly after `value` that falls on `weekday`.

    A sale completed on the payroll weekday itself is paid the following week.
    """
    if override is not None:
        return override
    days_ahead = (weekday - value.weekday()) % 7 or 7
    return value + timedelta(days=days_ahead)


def add_months_pin_day(value: date, months: int, day: int, override: date | None = None) -> date:
    """Add whole months, then pin the day of month (clamped to month end)."""
    if override is not None:
        return override
    index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, max(1, min(day, last_day)))


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def month_index(value: date) -> int:
    """Months since year 0; differences give whole calendar months."""
    return value.year * 12 + value.month - 1


def months_between(start: date, end: date) -> int:
    """Whole calendar months from start's month to end's month (may be negative)."""
    return month_index(end) - month_index(start)


def parse_month_key(key: str) -> date:
    """First day of the month named by a 'YYYY-MM' key."""
    validate_month_key(key)
    year, month = parse_month_key_parts(key)
    return date(year, month, 1)


def month_bounds(key: str) -> tuple[date, date]:
    """First and last day of the month named by a 'YYYY-MM' key."""
    start = parse_month_key(key)
    last_day = calendar.monthrange(start.year, start.month)[1]
    return start, start.replace(day=last_day)
