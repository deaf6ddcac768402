"""
Date helpers shared by the schedule services.
"""
from datetime import date, timedelta
from typing import Iterator, List


def is_weekend(day: date) -> bool:
    """Saturday or Sunday."""
    return day.weekday() >= 5


def iter_days(start_date: date, end_date: date) -> Iterator[date]:
    """Yield every day from start_date to end_date, inclusive."""
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def days_between(start_date: date, end_date: date, skip_weekends: bool = False) -> List[date]:
    """List the days of an inclusive range, optionally without weekends."""
    return [d for d in iter_days(start_date, end_date) if not (skip_weekends and is_weekend(d))]


def parse_iso_date(value) -> date:
    """Accept a date or an ISO 'YYYY-MM-DD' string."""
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))
