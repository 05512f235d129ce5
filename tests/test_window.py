"""Tests for sync window resolution."""

from datetime import datetime, timedelta, UTC

import pytest

from upynab.domain.errors import DateRangeError
from upynab.domain.results import DateWindow, SyncOptions
from upynab.domain.window import resolve_window, validate_custom_range

from conftest import NOW


def test_default_window_is_last_24_hours():
    window = resolve_window(SyncOptions(), NOW)
    assert window == DateWindow(start=NOW - timedelta(hours=24), end=NOW)


def test_default_window_hours_is_configurable():
    window = resolve_window(SyncOptions(), NOW, default_window_hours=6)
    assert window.start == NOW - timedelta(hours=6)


def test_days_option():
    window = resolve_window(SyncOptions(days=7), NOW)
    assert window.start == NOW - timedelta(days=7)
    assert window.end == NOW
    assert window.days == 7


def test_days_must_be_positive():
    with pytest.raises(DateRangeError):
        resolve_window(SyncOptions(days=0), NOW)


def test_explicit_range_wins_over_days():
    explicit = DateWindow(start=NOW - timedelta(days=40), end=NOW - timedelta(days=30))
    window = resolve_window(SyncOptions(date_range=explicit, days=3), NOW)
    assert window == explicit


def test_explicit_naive_range_is_taken_as_utc():
    explicit = DateWindow(start=datetime(2024, 3, 1), end=datetime(2024, 3, 2))
    window = resolve_window(SyncOptions(date_range=explicit), NOW)
    assert window.start == datetime(2024, 3, 1, tzinfo=UTC)


def test_explicit_range_must_be_ordered():
    explicit = DateWindow(start=NOW, end=NOW - timedelta(days=1))
    with pytest.raises(DateRangeError):
        resolve_window(SyncOptions(date_range=explicit), NOW)


def test_full_sync_uses_range_chooser():
    chosen = DateWindow(start=NOW - timedelta(days=10), end=NOW - timedelta(days=1))
    requested = []

    def chooser(max_days):
        requested.append(max_days)
        return chosen

    window = resolve_window(SyncOptions(full_sync=True), NOW, range_chooser=chooser)

    assert window == chosen
    assert requested == [90]


def test_chosen_range_is_checked_against_clock_after_choosing():
    """Choosing takes time; a range ending when the chooser returns is not in the future."""
    ticks = []

    def chooser(max_days):
        ticks.append("chosen")
        return DateWindow(start=NOW - timedelta(days=2), end=NOW + timedelta(minutes=1))

    def clock():
        ticks.append("clock")
        return NOW + timedelta(minutes=1)

    window = resolve_window(SyncOptions(full_sync=True), NOW, range_chooser=chooser, clock=clock)

    assert window.end == NOW + timedelta(minutes=1)
    assert ticks == ["chosen", "clock"]


def test_full_sync_without_chooser_fails():
    with pytest.raises(DateRangeError):
        resolve_window(SyncOptions(full_sync=True), NOW)


class TestCustomRangeLimits:
    def test_end_in_future(self):
        window = DateWindow(start=NOW - timedelta(days=1), end=NOW + timedelta(hours=1))
        with pytest.raises(DateRangeError, match="future"):
            validate_custom_range(window, NOW, 90)

    def test_span_over_limit(self):
        window = DateWindow(start=NOW - timedelta(days=91), end=NOW)
        with pytest.raises(DateRangeError, match="90 days"):
            validate_custom_range(window, NOW, 90)

    def test_span_at_limit(self):
        window = DateWindow(start=NOW - timedelta(days=90), end=NOW)
        assert validate_custom_range(window, NOW, 90) == window

    def test_start_after_end(self):
        window = DateWindow(start=NOW, end=NOW - timedelta(days=1))
        with pytest.raises(DateRangeError):
            validate_custom_range(window, NOW, 90)
