"""Date manipulation utilities"""

import calendar
from datetime import date, timedelta
from typing import List, Sequence


def generate_date_range(start: date, end: date) -> List[date]:
    """Generate list of dates from start to end (inclusive)"""
    days = (end - start).days + 1
    return [start + timedelta(days=i) for i in range(days)]


def day_intervals(dates: Sequence[date]) -> List[int]:
    """Day gaps between consecutive dates (input must be sorted)"""
    return [(dates[i] - dates[i - 1]).days for i in range(1, len(dates))]


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (2.5 -> 3, unlike round())"""
    return int(value + 0.5)


def add_months(day: date, months: int) -> date:
    """Same day-of-month `months` later, clamped to the month's last day"""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))
