"""Date parsing utilities."""

from datetime import date, datetime, time, timedelta
from typing import Optional

from dateutil import parser as date_parser
from dateutil import tz
from dateutil.relativedelta import relativedelta

PERIODS = ("this-week", "this-month", "last-week", "last-month")


def parse_date(date_str: str, today: Optional[date] = None) -> date:
    """Parse a date string into a date object.

    Supports absolute dates ("2024-01-15", "15 Jan 2024") and a few relative
    forms: "today", "yesterday", "N days ago", "this week", "this month",
    "last week" and "last month". Week starts are Mondays and month starts
    the first of the month.

    Args:
        date_str: Date string
        today: Reference date for relative forms (defaults to date.today())

    Returns:
        Date object

    Raises:
        ValueError: If date string cannot be parsed
    """
    date_str = date_str.strip().lower()
    today = today or date.today()

    relative_dates = {
        "today": today,
        "yesterday": today - timedelta(days=1),
        "this week": today - timedelta(days=today.weekday()),
        "last week": today - timedelta(days=today.weekday() + 7),
        "this month": today.replace(day=1),
        "last month": (today - relativedelta(months=1)).replace(day=1),
    }
    if date_str in relative_dates:
        return relative_dates[date_str]

    # "3 days ago"
    parts = date_str.split()
    if len(parts) == 3 and parts[1] in ("day", "days") and parts[2] == "ago":
        try:
            return today - timedelta(days=int(parts[0]))
        except ValueError:
            raise ValueError(f"Could not parse date '{date_str}'")

    try:
        return date_parser.parse(date_str, dayfirst=False).date()
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Could not parse date '{date_str}': {e}")


def get_date_range(period: str, today: Optional[date] = None) -> tuple[date, date]:
    """Get start and end dates (both inclusive) for a named period.

    Args:
        period: One of this-week, this-month, last-week, last-month

    Raises:
        ValueError: If period string is not recognized
    """
    period = period.strip().lower()
    today = today or date.today()

    if period == "this-week":
        return today - timedelta(days=today.weekday()), today

    elif period == "this-month":
        return today.replace(day=1), today

    elif period == "last-week":
        start_date = today - timedelta(days=today.weekday() + 7)
        return start_date, start_date + timedelta(days=6)

    elif period == "last-month":
        start_date = (today - relativedelta(months=1)).replace(day=1)
        # Day before the first of this month
        return start_date, today.replace(day=1) - timedelta(days=1)

    raise ValueError(f"Unknown period: '{period}'. Supported periods: {', '.join(PERIODS)}")


def day_bounds(start: date, end: date, tzinfo=None) -> tuple[datetime, datetime]:
    """Turn inclusive local dates into an aware [start of start, start of day after end) pair."""
    tzinfo = tzinfo or tz.tzlocal()
    return (
        datetime.combine(start, time.min, tzinfo=tzinfo),
        datetime.combine(end + timedelta(days=1), time.min, tzinfo=tzinfo),
    )
