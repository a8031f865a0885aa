"""Tests for date parsing."""

import pytest
from datetime import date, datetime, timedelta, timezone, UTC
from dateutil.relativedelta import relativedelta

from sntbilling.utils.date_parser import ensure_utc, parse_billing_month, parse_date


def test_parse_iso_date():
    """Test parsing ISO dates."""
    assert parse_date("2024-01-15") == date(2024, 1, 15)


def test_parse_russian_date_is_day_first():
    assert parse_date("05.01.2025") == date(2025, 1, 5)


def test_parse_today():
    assert parse_date("today") == date.today()


def test_parse_yesterday():
    assert parse_date("Yesterday") == date.today() - timedelta(days=1)


def test_parse_this_month():
    assert parse_date("this month") == date.today().replace(day=1)


def test_parse_last_month():
    """Test parsing 'last month'."""
    expected = (date.today() - relativedelta(months=1)).replace(day=1)
    assert parse_date("last month") == expected


def test_parse_invalid_date():
    with pytest.raises(ValueError, match="Could not parse date"):
        parse_date("not a date")


@pytest.mark.parametrize(
    "text, expected",
    [
        ("2025-01", (2025, 1)),
        ("2025-1", (2025, 1)),
        ("01.2025", (2025, 1)),
        ("12/2024", (2024, 12)),
    ],
)
def test_parse_billing_month(text, expected):
    assert parse_billing_month(text) == expected


@pytest.mark.parametrize("text", ["2025-13", "2025", "January", "00.2025"])
def test_parse_billing_month_invalid(text):
    with pytest.raises(ValueError):
        parse_billing_month(text)


class TestEnsureUtc:
    """Tests for timestamp normalization."""

    def test_none_is_now(self):
        before = datetime.now(UTC)
        result = ensure_utc(None)
        assert result.tzinfo is not None
        assert result >= before

    def test_naive_taken_as_utc(self):
        assert ensure_utc(datetime(2025, 1, 1, 12)) == datetime(2025, 1, 1, 12, tzinfo=UTC)

    def test_aware_converted(self):
        moscow = timezone(timedelta(hours=3))
        result = ensure_utc(datetime(2025, 1, 1, 12, tzinfo=moscow))
        assert result.utcoffset() == timedelta(0)
        assert result.hour == 9
