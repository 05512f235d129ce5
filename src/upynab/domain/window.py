"""Resolution of the date window a sync run fetches."""

from datetime import datetime, timedelta, UTC
from typing import Callable, Optional

from upynab.domain.errors import DateRangeError
from upynab.domain.results import DateWindow, SyncOptions

RangeChooser = Callable[[int], DateWindow]


def utcnow() -> datetime:
    return datetime.now(UTC)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def validate_custom_range(window: DateWindow, now: datetime, max_days: int) -> DateWindow:
    """Check a user-chosen window.

    Raises:
        DateRangeError: If start is after end, end lies in the future, or the
            window spans more than ``max_days``
    """
    start, end = _aware(window.start), _aware(window.end)
    if start > end:
        raise DateRangeError("Start date must be before end date")
    if end > now:
        raise DateRangeError("End date cannot be in the future")
    if end - start > timedelta(days=max_days):
        raise DateRangeError(f"Date range cannot exceed {max_days} days")
    return DateWindow(start=start, end=end)


def resolve_window(
    options: SyncOptions,
    now: datetime,
    default_window_hours: int = 24,
    max_custom_range_days: int = 90,
    range_chooser: Optional[RangeChooser] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> DateWindow:
    """Pick the window for a run.

    An explicit ``date_range`` wins, then ``days``, then the custom range
    flow of ``full_sync``. Without any of them the last
    ``default_window_hours`` are synced.

    A chosen range is checked against ``clock()`` as read after the chooser
    returns; without a clock, against ``now``.
    """
    if options.date_range is not None:
        start, end = _aware(options.date_range.start), _aware(options.date_range.end)
        if start > end:
            raise DateRangeError("Start date must be before end date")
        return DateWindow(start=start, end=end)

    if options.days is not None:
        if options.days < 1:
            raise DateRangeError("Number of days must be at least 1")
        return DateWindow(start=now - timedelta(days=options.days), end=now)

    if options.full_sync:
        if range_chooser is None:
            raise DateRangeError("A custom date range was requested but no range was supplied")
        chosen = range_chooser(max_custom_range_days)
        checked_at = clock() if clock is not None else now
        return validate_custom_range(chosen, checked_at, max_custom_range_days)

    return DateWindow(start=now - timedelta(hours=default_window_hours), end=now)
