"""Tests for date parser with relative dates."""

import pytest
from datetime import date, datetime, timedelta, timezone

from dateutil import tz

from upynab.utils.date_parser import day_bounds, get_date_range, parse_date


def test_parse_absolute_date():
    """Test parsing absolute dates."""
    result = parse_date("2024-01-15")
    assert result == date(2024, 1, 15)


def test_parse_today(today):
    """Test parsing 'today'."""
    assert parse_date("today", today=today) == today
    assert parse_date(" Today ", today=today) == today


def test_parse_yesterday(today):
    """Test parsing 'yesterday'."""
    assert parse_date("yesterday", today=today) == date(2024, 3, 14)


def test_parse_days_ago(today):
    """Test parsing 'N days ago'."""
    assert parse_date("3 days ago", today=today) == date(2024, 3, 12)
    assert parse_date("1 day ago", today=today) == date(2024, 3, 14)


def test_parse_days_ago_requires_number(today):
    with pytest.raises(ValueError):
        parse_date("some days ago", today=today)


def test_parse_this_week(today):
    """Test parsing 'this week' (Monday of the current week)."""
    result = parse_date("this week", today=today)
    assert result == date(2024, 3, 11)
    assert result.weekday() == 0


def test_parse_last_week(today):
    """Test parsing 'last week'."""
    result = parse_date("last week", today=today)
    assert result == date(2024, 3, 4)
    assert result.weekday() == 0


def test_parse_this_month(today):
    assert parse_date("this month", today=today) == date(2024, 3, 1)


def test_parse_last_month():
    """Test parsing 'last month' across a year boundary."""
    assert parse_date("last month", today=date(2024, 1, 20)) == date(2023, 12, 1)


def test_parse_invalid_relative():
    """Test parsing invalid relative date."""
    with pytest.raises(ValueError):
        parse_date("last invalid")


def test_parse_standard_formats():
    """Test parsing various standard date formats."""
    # These should all work via dateutil parser
    assert parse_date("January 15, 2024") == date(2024, 1, 15)
    assert parse_date("15/01/2024") == date(2024, 1, 15)


def test_get_date_range_this_month(today):
    """Test get_date_range for this-month."""
    assert get_date_range("this-month", today=today) == (date(2024, 3, 1), today)


def test_get_date_range_this_week(today):
    """Test get_date_range for this-week."""
    start, end = get_date_range("this-week", today=today)
    assert start == date(2024, 3, 11)
    assert start.weekday() == 0  # Should be Monday
    assert end == today


def test_get_date_range_last_week(today):
    """Test get_date_range for last-week."""
    start, end = get_date_range("last-week", today=today)
    assert start == date(2024, 3, 4)
    assert end == date(2024, 3, 10)
    assert start.weekday() == 0  # Monday
    assert end.weekday() == 6  # Sunday


def test_get_date_range_last_month():
    """Test get_date_range for last-month, including leap February."""
    start, end = get_date_range("last-month", today=date(2024, 3, 15))
    assert start == date(2024, 2, 1)
    assert end == date(2024, 2, 29)


def test_get_date_range_last_month_in_january():
    start, end = get_date_range("last-month", today=date(2024, 1, 5))
    assert start == date(2023, 12, 1)
    assert end == date(2023, 12, 31)


def test_get_date_range_invalid_period():
    """Test get_date_range with invalid period."""
    with pytest.raises(ValueError, match="Unknown period"):
        get_date_range("this-year")


def test_day_bounds_covers_whole_days():
    """Test that day_bounds spans from the start of the first day to the start of the day after the last."""
    aest = timezone(timedelta(hours=10))
    start, end = day_bounds(date(2024, 3, 1), date(2024, 3, 2), tzinfo=aest)
    assert start == datetime(2024, 3, 1, tzinfo=aest)
    assert end == datetime(2024, 3, 3, tzinfo=aest)


def test_day_bounds_defaults_to_local_zone():
    start, _ = day_bounds(date(2024, 3, 1), date(2024, 3, 1))
    assert start.tzinfo == tz.tzlocal()
