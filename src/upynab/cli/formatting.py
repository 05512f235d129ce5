"""Text rendering of engine results."""

from decimal import Decimal
from typing import Optional

import click

from upynab.domain.results import ResultStatus, SyncError, SyncResult, SyncStatusReport

_STATUS_LABELS = {
    ResultStatus.SYNCED: "synced",
    ResultStatus.FAILED: "FAILED",
    ResultStatus.SKIPPED: "skipped",
    ResultStatus.DUPLICATE: "duplicate",
    ResultStatus.WOULD_SYNC: "would sync",
}


def format_amount(units: Optional[int], exponent: int = 2) -> str:
    """Format integer fixed-point units as a signed currency string."""
    if units is None:
        return "-"
    value = Decimal(units).scaleb(-exponent)
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def format_error(error: SyncError) -> str:
    return error.display_message


def render_sync_result(result: SyncResult, verbose: bool = False) -> None:
    prefix = "[DRY RUN] " if result.dry_run else ""
    click.echo(f"\n{prefix}Sync for profile '{result.profile_name}'")
    click.echo(f"Window: {result.window.describe()}")
    if result.recovered_pending:
        click.echo(f"Recovered {result.recovered_pending} transaction(s) left pending by an interrupted run")
    if result.retried_failed:
        click.echo(f"Retrying {result.retried_failed} previously failed transaction(s)")
    click.echo("-" * 72)

    if not result.account_results:
        click.echo("No accounts processed.")

    for account_result in result.account_results:
        s = account_result.summary
        click.echo(s.account_name)
        if result.dry_run:
            click.echo(
                f"  Fetched: {s.transactions_fetched:4d} | Would sync: {s.transactions_would_sync:4d} | "
                f"Skipped: {s.transactions_skipped:4d} | Failed: {s.transactions_failed:4d}"
            )
        else:
            click.echo(
                f"  Fetched: {s.transactions_fetched:4d} | Synced: {s.transactions_synced:4d} | "
                f"Skipped: {s.transactions_skipped:4d} | Failed: {s.transactions_failed:4d} | "
                f"Duplicate: {s.transactions_duplicate:4d}"
            )
            if s.transactions_synced:
                click.echo(f"  Amount synced: {format_amount(s.amount_synced_minor_units)}")

        for r in account_result.results:
            if r.status is ResultStatus.SKIPPED and not verbose:
                continue
            if r.status is ResultStatus.SYNCED and not verbose:
                continue
            t = r.transaction
            line = (
                f"    {_STATUS_LABELS[r.status]:<10} {t.booking_date.isoformat()} "
                f"{format_amount(t.amount_minor_units):>12}  {t.display_description[:40]}"
            )
            if r.category_name:
                line += f" [{r.category_name}]"
            click.echo(line)

    summary = result.summary
    click.echo("-" * 72)
    click.echo(f"{prefix}{summary.display_summary}")
    if not result.dry_run and summary.total_transactions > summary.skipped_transactions:
        click.echo(f"Success rate: {summary.success_rate:.1f}%")

    if result.errors:
        click.echo(f"\nErrors ({len(result.errors)}):", err=True)
        for error in sorted(result.errors, key=lambda e: not e.is_critical):
            click.echo(f"  {format_error(error)}", err=True)
        if result.critical_errors:
            click.echo(
                "\nCritical errors usually mean the amount exponents in the sync settings are wrong. "
                "Fix them before syncing again.",
                err=True,
            )


def render_status(report: SyncStatusReport) -> None:
    click.echo("\nSync status")
    click.echo("=" * 72)
    click.echo(f"Configured:   {'yes' if report.is_configured else 'no'}")
    click.echo(f"API tokens:   {'present' if report.has_valid_tokens else 'missing'}")
    click.echo(f"Profile:      {report.profile_name or '-'}")

    last = report.last_sync
    if last is None:
        click.echo("Last sync:    never")
    else:
        outcome = "ok" if report.last_sync_succeeded else f"{last.transactions_failed} failed"
        click.echo(
            f"Last sync:    {last.sync_date:%Y-%m-%d %H:%M} UTC ({outcome}, "
            f"{last.transactions_synced} synced, {last.transactions_skipped} skipped)"
        )

    if report.account_statuses:
        click.echo("\nAccounts:")
        click.echo("-" * 72)
    for status in report.account_statuses:
        health = "ok" if status.is_healthy else f"{len(status.recent_errors)} recent failure(s)"
        enabled = "" if status.mapping.enabled else " (disabled)"
        click.echo(f"{status.mapping.display_name}{enabled}")
        click.echo(f"  Ledger records: {status.record_count:4d} | {health}")
        if status.source_balance is not None or status.target_balance is not None:
            click.echo(
                f"  Balance: Up {format_amount(status.source_balance)} | "
                f"YNAB {format_amount(status.target_balance, exponent=3)}"
            )
        for error in status.recent_errors:
            click.echo(f"    {format_error(error)}")

    db = report.database_health
    click.echo("\nLedger:")
    click.echo("-" * 72)
    if not db.is_accessible:
        click.echo("  Not accessible")
        return
    click.echo(
        f"  Records: {db.total_records} | Failed: {db.failed_transactions} | "
        f"Pending: {db.pending_transactions} | Schema: v{db.schema_version} | "
        f"Integrity: {'ok' if db.integrity_check else 'PROBLEMS FOUND'}"
    )
