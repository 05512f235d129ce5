"""Sync commands."""

from datetime import UTC, datetime

import click

from upynab.cli.date_filters import prompt_range_chooser, resolve_cli_window
from upynab.cli.error_handling import handle_api_error, handle_domain_error
from upynab.cli.formatting import render_sync_result
from upynab.cli.services import build_sync_service
from upynab.clients.errors import ApiError
from upynab.domain.errors import DomainError
from upynab.domain.results import SyncOptions


def sync_options(command):
    """Options shared by sync and retry."""
    options = [
        click.option("--profile", help="Budget profile to sync (defaults to the active profile)"),
        click.option("--days", type=int, help="Sync the last N days"),
        click.option("--since", help="Start date (YYYY-MM-DD or relative like 'yesterday', '3 days ago')"),
        click.option("--until", help="End date, inclusive (defaults to today)"),
        click.option("--this-week", is_flag=True, help="Sync the current week"),
        click.option("--this-month", is_flag=True, help="Sync the current month"),
        click.option("--last-week", is_flag=True, help="Sync the previous week"),
        click.option("--last-month", is_flag=True, help="Sync the previous month"),
        click.option("--full", "full_sync", is_flag=True, help="Prompt for a custom date range"),
        click.option("--dry-run", is_flag=True, help="Show what would be synced without changing anything"),
        click.option("--categorize", is_flag=True, help="Apply merchant rules to categorize transactions"),
        click.option(
            "--account",
            "accounts",
            multiple=True,
            help="Only sync this Up account id (repeatable)",
        ),
    ]
    for option in reversed(options):
        command = option(command)
    return command


def _build_options(ctx, verbose: bool, **kwargs) -> SyncOptions:
    window = resolve_cli_window(
        ctx,
        since=kwargs["since"],
        until=kwargs["until"],
        period_flags={
            "this-week": kwargs["this_week"],
            "this-month": kwargs["this_month"],
            "last-week": kwargs["last_week"],
            "last-month": kwargs["last_month"],
        },
        now=datetime.now(UTC),
    )
    explicit = sum(1 for given in (window is not None, kwargs["days"] is not None, kwargs["full_sync"]) if given)
    if explicit > 1:
        click.echo("Error: Use only one of --days, --full, a period option or --since/--until.", err=True)
        ctx.exit(1)

    return SyncOptions(
        full_sync=kwargs["full_sync"],
        date_range=window,
        days=kwargs["days"],
        dry_run=kwargs["dry_run"],
        verbose=verbose,
        enable_categorization=kwargs["categorize"],
        account_filter=tuple(kwargs["accounts"]) or None,
    )


def _run(ctx, retry_failed: bool, **kwargs) -> None:
    verbose = ctx.obj.get("verbose", False)
    options = _build_options(ctx, verbose, **kwargs)
    range_chooser = prompt_range_chooser() if options.full_sync else None

    try:
        service = build_sync_service(ctx, range_chooser=range_chooser)
        if retry_failed:
            result = service.retry_failed_transactions(options, profile_name=kwargs["profile"])
        else:
            result = service.sync_transactions(options, profile_name=kwargs["profile"])
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    except ApiError as e:
        handle_api_error(ctx, e)
        return

    render_sync_result(result, verbose=verbose)
    if result.has_errors:
        ctx.exit(1)


@click.command("sync")
@sync_options
@click.pass_context
def sync(ctx, **kwargs):
    """Sync Up transactions into YNAB.

    Without a window option the last 24 hours are synced. Transactions the
    ledger already records as synced are skipped, so running twice over the
    same window is safe.

    Examples:
        upynab sync
        upynab sync --days 7 --dry-run
        upynab sync --since "2024-01-01" --until "2024-01-31"
        upynab sync --last-month --profile household
    """
    _run(ctx, retry_failed=False, **kwargs)


@click.command("retry")
@sync_options
@click.pass_context
def retry(ctx, **kwargs):
    """Retry transactions that failed in earlier runs.

    Failed ledger records are cleared and synced again. Without a window
    option the window reaches back to the oldest failed transaction.
    """
    _run(ctx, retry_failed=True, **kwargs)


def register_commands(cli):
    """Register sync commands with main CLI."""
    cli.add_command(sync)
    cli.add_command(retry)
