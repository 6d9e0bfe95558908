"""
Datetime utilities for consistent timezone handling across the application.

This module provides utilities to ensure all datetime operations use timezone-aware
datetimes consistently. All times are in clinic local time for business logic, and
all reporting periods are half-open windows ``[start, end)``.
"""

import logging
from datetime import datetime, timezone, timedelta, date
from typing import List, Optional, Tuple, Union

from core.config import CLINIC_UTC_OFFSET_HOURS
from core.constants import MONTH_NAMES

logger = logging.getLogger(__name__)

# Clinic timezone constant (Kigali, UTC+2 by default)
CLINIC_TZ = timezone(timedelta(hours=CLINIC_UTC_OFFSET_HOURS))

Window = Tuple[datetime, datetime]


def clinic_now() -> datetime:
    """
    Get current clinic datetime.

    Returns:
        Current datetime with clinic timezone
    """
    return datetime.now(CLINIC_TZ)


def ensure_clinic(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware with clinic timezone.

    Naive datetimes are assumed to already be in clinic time.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=CLINIC_TZ)
    return dt.astimezone(CLINIC_TZ)


def parse_datetime_string_to_clinic(dt_str: str) -> datetime:
    """
    Parse an ISO format datetime string and convert to clinic timezone.

    Handles:
    - ISO format with timezone (e.g., "2024-01-01T09:00:00+02:00")
    - ISO format with Z (UTC) (e.g., "2024-01-01T07:00:00Z")
    - ISO format without timezone (assumes clinic time)

    Raises:
        ValueError: If datetime string cannot be parsed
    """
    try:
        dt = datetime.fromisoformat(dt_str.replace('Z', '+00:00'))
    except ValueError as e:
        raise ValueError(f"Invalid datetime string format: {dt_str}") from e
    result = ensure_clinic(dt)
    assert result is not None
    return result


def to_clinic_datetime(value: Union[str, date, datetime]) -> datetime:
    """
    Normalize a store timestamp (datetime, date or ISO string) to an aware clinic datetime.

    Plain dates map to midnight clinic time, so a date-only expense falls into the
    day (and month) it was recorded for.
    """
    if isinstance(value, str):
        return parse_datetime_string_to_clinic(value)
    if isinstance(value, datetime):
        result = ensure_clinic(value)
        assert result is not None
        return result
    return datetime(value.year, value.month, value.day, tzinfo=CLINIC_TZ)


def day_window(day: date) -> Window:
    """Half-open window covering one clinic-local calendar day."""
    start = datetime(day.year, day.month, day.day, tzinfo=CLINIC_TZ)
    return start, start + timedelta(days=1)


def _first_of_next_month(year: int, month: int) -> Tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


def month_window(year: int, month: int) -> Window:
    """Half-open window covering one clinic-local calendar month."""
    next_year, next_month = _first_of_next_month(year, month)
    return (
        datetime(year, month, 1, tzinfo=CLINIC_TZ),
        datetime(next_year, next_month, 1, tzinfo=CLINIC_TZ),
    )


def month_range_window(from_year: int, from_month: int, to_year: int, to_month: int) -> Window:
    """
    Half-open window from the first instant of the from-month to one instant past the to-month.

    The caller guarantees ``from <= to``.
    """
    start, _ = month_window(from_year, from_month)
    _, end = month_window(to_year, to_month)
    return start, end


def year_window(year: int) -> Window:
    """Half-open window covering one clinic-local calendar year."""
    return month_range_window(year, 1, year, 12)


def in_window(value: Union[date, datetime], window: Window) -> bool:
    """Check whether a timestamp falls in ``[start, end)``."""
    start, end = window
    moment = to_clinic_datetime(value)
    return start <= moment < end


def month_key(value: Union[date, datetime]) -> str:
    """Get month key in format YYYY-MM (clinic time)."""
    moment = to_clinic_datetime(value)
    return f"{moment.year}-{moment.month:02d}"


def month_keys_between(from_year: int, from_month: int, to_year: int, to_month: int) -> List[str]:
    """All YYYY-MM keys from the from-month to the to-month, inclusive."""
    keys: List[str] = []
    year, month = from_year, from_month
    while (year, month) <= (to_year, to_month):
        keys.append(f"{year}-{month:02d}")
        year, month = _first_of_next_month(year, month)
    return keys


def month_display(key: str) -> str:
    """Format a YYYY-MM key for display, e.g. "2024-01" -> "January 2024"."""
    year, month = key.split("-")
    return f"{MONTH_NAMES[int(month) - 1]} {year}"
