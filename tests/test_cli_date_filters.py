"""Tests for CLI date filter helper."""

from datetime import date, datetime, timedelta, UTC

import click
import pytest

from upynab.cli.date_filters import _prompted_date, prompt_range_chooser, resolve_cli_window
from upynab.utils.date_parser import day_bounds, get_date_range


def _ctx() -> click.Context:
    return click.Context(click.Command("test"))


def test_resolve_cli_window_rejects_multiple_periods(capsys):
    period_flags = {"this-month": True, "last-month": True}

    with pytest.raises(click.exceptions.Exit) as excinfo:
        resolve_cli_window(_ctx(), since=None, until=None, period_flags=period_flags)

    assert excinfo.value.exit_code == 1
    err = capsys.readouterr().err
    assert "Only one period option" in err


def test_resolve_cli_window_rejects_period_with_since(capsys):
    period_flags = {"this-month": True}

    with pytest.raises(click.exceptions.Exit) as excinfo:
        resolve_cli_window(_ctx(), since="2024-01-01", until=None, period_flags=period_flags)

    assert excinfo.value.exit_code == 1
    err = capsys.readouterr().err
    assert "cannot be combined" in err


def test_resolve_cli_window_returns_period_window():
    period_flags = {"last-month": True}

    expected_start, expected_end = get_date_range("last-month")
    window = resolve_cli_window(_ctx(), since=None, until=None, period_flags=period_flags)

    assert (window.start, window.end) == day_bounds(expected_start, expected_end)


def test_resolve_cli_window_parses_explicit_dates():
    window = resolve_cli_window(_ctx(), since="2024-01-02", until="2024-01-05", period_flags={})

    start, end = day_bounds(date(2024, 1, 2), date(2024, 1, 5))
    assert window.start == start
    # --until is inclusive
    assert window.end == end
    assert window.end - window.start == timedelta(days=4)


def test_resolve_cli_window_caps_end_at_now():
    now = datetime.now(UTC)

    window = resolve_cli_window(_ctx(), since="yesterday", until=None, period_flags={}, now=now)

    assert window.end == now


def test_resolve_cli_window_nothing_requested():
    assert resolve_cli_window(_ctx(), since=None, until=None, period_flags={"this-week": False}) is None


def test_resolve_cli_window_until_requires_since(capsys):
    with pytest.raises(click.exceptions.Exit) as excinfo:
        resolve_cli_window(_ctx(), since=None, until="2024-01-05", period_flags={})

    assert excinfo.value.exit_code == 1
    assert "--until requires --since" in capsys.readouterr().err


def test_resolve_cli_window_invalid_since(capsys):
    with pytest.raises(click.exceptions.Exit) as excinfo:
        resolve_cli_window(_ctx(), since="not-a-date", until=None, period_flags={})

    assert excinfo.value.exit_code == 1
    err = capsys.readouterr().err
    assert "Invalid --since date" in err


def test_prompt_range_chooser_reads_start_and_end(monkeypatch):
    answers = iter(["2024-01-01", "2024-01-31"])
    monkeypatch.setattr(click, "prompt", lambda *args, **kwargs: kwargs["value_proc"](next(answers)))

    choose = prompt_range_chooser(today=lambda: date(2024, 3, 15))
    window = choose(90)

    assert (window.start, window.end) == day_bounds(date(2024, 1, 1), date(2024, 1, 31))


def test_prompt_range_chooser_rejects_garbage():
    with pytest.raises(click.BadParameter):
        _prompted_date("the day after never")
