"""Date manipulation utilities"""

import calendar
from datetime import date, datetime, timezone
from typing import Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def month_period(today: date) -> Tuple[date, date]:
    """First and last day of the month containing today"""
    last_day = calendar.monthrange(today.year, today.month)[1]
    return today.replace(day=1), today.replace(day=last_day)


def format_challan_date(value: date) -> str:
    """Treasury challan date format: dd-mm-yyyy"""
    return value.strftime("%d-%m-%Y")


def add_years(from_date: datetime, years: int) -> datetime:
    """Add whole years; 29 February rolls back to 28 February"""
    try:
        return from_date.replace(year=from_date.year + years)
    except ValueError:
        return from_date.replace(year=from_date.year + years, day=28)


def search_window(
    month: Optional[int],
    year: Optional[int],
    from_date: Optional[date],
    to_date: Optional[date],
    today: date,
) -> Tuple[Optional[date], Optional[date]]:
    """
    Inclusive date bounds for a search.

    A from/to range is used as given (either end may be open). Otherwise a
    month means that month of the given year, or of the current year; a year
    alone means the whole year. No filters means no bounds.
    """
    if from_date or to_date:
        return from_date, to_date
    if month:
        first, last = month_period(date(year or today.year, month, 1))
        return first, last
    if year:
        return date(year, 1, 1), date(year, 12, 31)
    return None, None
