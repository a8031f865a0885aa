"""Date parsing utilities."""

import re
from datetime import date, datetime, timedelta, UTC
from typing import Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

_ISO_MONTH = re.compile(r"^(\d{4})-(\d{1,2})$")
_RU_MONTH = re.compile(r"^(\d{1,2})[./](\d{4})$")


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: Optional[datetime]) -> datetime:
    """Return value as an aware UTC datetime, defaulting to now.

    Naive datetimes are taken to already be in UTC.
    """
    if value is None:
        return utc_now()
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_date(date_str: str) -> date:
    """Parse a date string into a date object.

    Supports:
    - ISO dates: "2025-01-15"
    - Russian bank statement dates: "15.01.2025" (day first)
    - Relative dates: "today", "yesterday", "last month", "this month"

    Args:
        date_str: Date string

    Returns:
        Date object

    Raises:
        ValueError: If date string cannot be parsed
    """
    date_str = date_str.strip().lower()
    today = date.today()

    relative_dates = {
        "today": today,
        "yesterday": today - timedelta(days=1),
        "this month": today.replace(day=1),
        "last month": (today - relativedelta(months=1)).replace(day=1),
    }

    if date_str in relative_dates:
        return relative_dates[date_str]

    # ISO input is year first; everything else follows the Russian day-first order
    dayfirst = not re.match(r"^\d{4}-", date_str)
    try:
        dt = date_parser.parse(date_str, dayfirst=dayfirst)
        return dt.date()
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Could not parse date '{date_str}': {e}")


def parse_billing_month(value: str) -> tuple[int, int]:
    """Parse a billing month reference into (year, month).

    Accepts "2025-01", "2025-1", "01.2025" and "1/2025".

    Raises:
        ValueError: If the value is not a month reference
    """
    value = value.strip()
    match = _ISO_MONTH.match(value)
    if match:
        year, month = int(match.group(1)), int(match.group(2))
    else:
        match = _RU_MONTH.match(value)
        if not match:
            raise ValueError(f"Could not parse billing month '{value}', expected YYYY-MM")
        month, year = int(match.group(1)), int(match.group(2))

    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")
    return year, month
