"""
Date Handling Utilities

Provides the date conversions shared by the acquisition pipelines:
ISO-8601 request dates, the MODIS subset service's ``AYYYYDDD`` calendar
strings, and date windows used by the filter chain.
"""

import re
from datetime import date, datetime, timedelta
from typing import Optional, Tuple, Union

import pandas as pd

from .logging_utils import InvalidRequest

ISO_DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}($|[T ])')

DateLike = Union[str, date, datetime]


def parse_iso_date(value: DateLike, parameter_name: str = 'date') -> date:
    """
    Parse an ISO-8601 date (``YYYY-MM-DD``, optionally with a time part).

    Args:
        value: String, date or datetime
        parameter_name: Name reported in the error context

    Returns:
        date: Calendar date

    Raises:
        InvalidRequest: If the value is not an ISO-8601 date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    try:
        if not ISO_DATE_PATTERN.match(text):
            raise ValueError(text)
        # Timestamps accept a trailing Z and offsets on every supported Python
        return pd.Timestamp(text).date()
    except (ValueError, TypeError):
        raise InvalidRequest(
            f"{parameter_name} must be an ISO-8601 date (YYYY-MM-DD), got: {value!r}",
            {'parameter': parameter_name, 'value': value}
        )


def validate_date_window(start: date, end: date) -> Tuple[date, date]:
    """Ensure start <= end."""
    if start > end:
        raise InvalidRequest(
            f"Start date {start.isoformat()} is after end date {end.isoformat()}",
            {'start_date': start.isoformat(), 'end_date': end.isoformat()}
        )
    return start, end


def to_modis_date(value: date) -> str:
    """
    Convert a calendar date to the MODIS ``AYYYYDDD`` format.

    Example:
        >>> to_modis_date(date(2018, 2, 1))
        'A2018032'
    """
    return f"A{value.year}{value.timetuple().tm_yday:03d}"


def parse_modis_date(value: str) -> date:
    """Convert a MODIS ``AYYYYDDD`` string to a calendar date."""
    text = str(value).strip()
    if len(text) != 8 or not text.startswith('A') or not text[1:].isdigit():
        raise ValueError(f"Not a MODIS date string: {value!r}")
    year, day_of_year = int(text[1:5]), int(text[5:])
    if not 1 <= day_of_year <= 366:
        raise ValueError(f"Day of year out of range in {value!r}")
    return date(year, 1, 1) + timedelta(days=day_of_year - 1)


def has_time_component(value: DateLike) -> bool:
    """True when the bound carries a time of day (datetime or 'T'/space-separated string)."""
    if isinstance(value, datetime):
        return True
    if isinstance(value, date):
        return False
    text = str(value).strip()
    return 'T' in text or ' ' in text


def to_timestamp_bounds(start: Optional[DateLike],
                        end: Optional[DateLike]) -> Tuple[Optional[pd.Timestamp], Optional[pd.Timestamp]]:
    """
    Convert filter bounds to inclusive pandas timestamps.

    A date-only end bound is extended to the last instant of that day so
    that events timestamped during the end day are kept.
    """
    start_ts = pd.Timestamp(start) if start is not None else None
    end_ts = None
    if end is not None:
        end_ts = pd.Timestamp(end)
        if not has_time_component(end):
            end_ts = end_ts + pd.Timedelta(days=1) - pd.Timedelta(microseconds=1)
    return start_ts, end_ts
