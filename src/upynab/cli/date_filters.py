"""CLI helpers for sync window resolution."""

from datetime import date, datetime
from typing import Callable, Optional

import click

from upynab.domain.results import DateWindow
from upynab.utils.date_parser import day_bounds, get_date_range, parse_date


def resolve_cli_window(
    ctx,
    *,
    since: str | None,
    until: str | None,
    period_flags: dict[str, bool],
    now: Optional[datetime] = None,
) -> Optional[DateWindow]:
    """Resolve an explicit window from period flags or --since/--until.

    Dates are local calendar days; --until is inclusive. Returns None when
    nothing was requested so the engine falls back to its default window.
    """
    period_count = sum(1 for is_set in period_flags.values() if is_set)

    if period_count > 1:
        click.echo(
            "Error: Only one period option (--this-week, --this-month, --last-week, --last-month) can be specified at a time.",
            err=True,
        )
        ctx.exit(1)

    if period_count > 0 and (since or until):
        click.echo(
            "Error: Period options (--this-week, --this-month, etc.) cannot be combined with --since or --until.",
            err=True,
        )
        ctx.exit(1)

    start: Optional[date] = None
    end: Optional[date] = None

    if period_count == 1:
        for period, is_set in period_flags.items():
            if is_set:
                start, end = get_date_range(period)
                break
    else:
        if since:
            try:
                start = parse_date(since)
            except ValueError as e:
                click.echo(f"Error: Invalid --since date: {e}", err=True)
                ctx.exit(1)

        if until:
            try:
                end = parse_date(until)
            except ValueError as e:
                click.echo(f"Error: Invalid --until date: {e}", err=True)
                ctx.exit(1)

    if start is None and end is None:
        return None
    if start is None:
        click.echo("Error: --until requires --since.", err=True)
        ctx.exit(1)

    start_at, end_at = day_bounds(start, end or date.today())
    if now is not None and end_at > now:
        end_at = now
    return DateWindow(start=start_at, end=end_at)


def _prompted_date(value: str) -> date:
    try:
        return parse_date(value)
    except ValueError as e:
        raise click.BadParameter(str(e))


def prompt_range_chooser(today: Callable[[], date] = date.today) -> Callable[[int], DateWindow]:
    """Range chooser for --full that asks for the start and end dates."""

    def choose(max_days: int) -> DateWindow:
        click.echo(f"Choose the date range to sync (at most {max_days} days).")
        start = click.prompt("Start date", value_proc=_prompted_date)
        end = click.prompt("End date", default="today", value_proc=_prompted_date)
        start_at, end_at = day_bounds(start, end)
        # The end of today lies in the future; the window stops at now
        if end >= today():
            end_at = datetime.now(start_at.tzinfo)
        return DateWindow(start=start_at, end=end_at)

    return choose
