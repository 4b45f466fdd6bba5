"""
Date/time helpers

- Calendar month windows used for package validity and credit accounting
- English day names used by scheduling rules
- Parsing of request values ("2025-11-27", "18:30") and MySQL TIME values,
  which mysql-connector returns as datetime.timedelta
"""

import calendar
from datetime import date, datetime, time, timedelta

DAY_NAMES = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']


def month_window(reference):
    """
    First and last day of the calendar month containing `reference`

    Args:
        reference (date or datetime): any day of the month

    Returns:
        tuple: (first_day: date, last_day: date)

    Example:
        >>> month_window(date(2025, 2, 14))
        (date(2025, 2, 1), date(2025, 2, 28))
    """
    reference = to_date(reference)
    last = calendar.monthrange(reference.year, reference.month)[1]
    return (reference.replace(day=1), reference.replace(day=last))


def next_month_window(reference):
    """
    Month window of the month after `reference`

    Example:
        >>> next_month_window(date(2025, 12, 5))
        (date(2026, 1, 1), date(2026, 1, 31))
    """
    _, last = month_window(reference)
    return month_window(last + timedelta(days=1))


def to_date(value):
    """date for a date or datetime value"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Expected date or datetime, got {type(value).__name__}")


def day_name(value):
    """English day name of a date ("Monday" ... "Sunday")"""
    return DAY_NAMES[to_date(value).weekday()]


def parse_day_name(text):
    """
    Normalize a day name

    Args:
        text (str): "monday", "Mon", "MONDAY"

    Returns:
        str: canonical name ("Monday")

    Raises:
        ValueError: unknown day
    """
    if not text or not str(text).strip():
        raise ValueError("Day of week is required")

    key = str(text).strip().lower()
    for name in DAY_NAMES:
        if name.lower() == key or name[:3].lower() == key:
            return name

    raise ValueError(f"Unknown day of week: {text}")


def parse_time_of_day(value):
    """
    Time of day from a request or database value

    Args:
        value (str, time or timedelta): "18:30", "18:30:00", time(18, 30) or
            timedelta(hours=18, minutes=30) (MySQL TIME column)

    Returns:
        time: time of day

    Raises:
        ValueError: unparseable value or out of range
    """
    if isinstance(value, time):
        return value

    if isinstance(value, timedelta):
        seconds = int(value.total_seconds())
        if not (0 <= seconds < 24 * 3600):
            raise ValueError(f"Time of day out of range: {value}")
        return time(seconds // 3600, (seconds % 3600) // 60, seconds % 60)

    if isinstance(value, str):
        for fmt in ('%H:%M', '%H:%M:%S'):
            try:
                return datetime.strptime(value.strip(), fmt).time()
            except ValueError:
                continue

    raise ValueError(f"Invalid time of day: {value}")


def parse_date(value):
    """
    Date from "YYYY-MM-DD"

    Raises:
        ValueError: missing or malformed date
    """
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if not value:
        raise ValueError("Date is required")
    try:
        return datetime.strptime(str(value).strip(), '%Y-%m-%d').date()
    except ValueError:
        raise ValueError(f"Invalid date (expected YYYY-MM-DD): {value}")


def parse_datetime(value):
    """
    Datetime from ISO 8601 ("2025-11-27T18:30" or "2025-11-27 18:30:00")

    Raises:
        ValueError: missing or malformed value
    """
    if isinstance(value, datetime):
        return value
    if not value:
        raise ValueError("Date and time are required")
    try:
        return datetime.fromisoformat(str(value).strip())
    except ValueError:
        raise ValueError(f"Invalid date/time: {value}")


def format_datetime_short(dt):
    """
    Short display format

    Example:
        >>> format_datetime_short(datetime(2025, 11, 27, 11, 0, 0))
        "Thu 27 Nov, 11:00"
    """
    return f"{DAY_NAMES[dt.weekday()][:3]} {dt.day} {dt.strftime('%b, %H:%M')}"
