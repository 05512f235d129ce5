"""Ledger maintenance commands."""

import click

from upynab.cli.error_handling import handle_domain_error
from upynab.cli.formatting import format_amount
from upynab.cli.services import build_sync_service
from upynab.domain.errors import DomainError


@click.group()
def ledger_group():
    """Inspect and repair the local sync ledger."""
    pass


def _profile_budget_id(ctx, profile: str | None) -> str:
    return ctx.obj["config"].resolve_profile(profile).budget_id


@ledger_group.command("failed")
@click.option("--profile", help="Budget profile (defaults to the active profile)")
@click.option("--limit", type=int, default=50, show_default=True, help="Maximum number of records")
@click.pass_context
def list_failed(ctx, profile: str | None, limit: int):
    """List failed transactions, most recent first."""
    try:
        budget_id = _profile_budget_id(ctx, profile)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    records = ctx.obj["ledger"].list_failed(limit=limit, budget_id=budget_id)
    if not records:
        click.echo("No failed transactions.")
        return

    click.echo(f"\nFailed transactions ({len(records)}):")
    click.echo("-" * 100)
    for r in records:
        click.echo(
            f"{r.source_date:%Y-%m-%d} | {format_amount(r.source_amount):>12} | "
            f"{r.source_account_name[:20]:20s} | {r.source_description[:30]}"
        )
        click.echo(f"    ID: {r.id}")
        if r.error_message:
            click.echo(f"    Error: {r.error_message}")


@ledger_group.command("history")
@click.option("--profile", help="Budget profile (defaults to the active profile)")
@click.option("--limit", type=int, default=10, show_default=True, help="Number of runs to show")
@click.pass_context
def history(ctx, profile: str | None, limit: int):
    """Show recent sync runs."""
    try:
        budget_id = _profile_budget_id(ctx, profile)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    logs = ctx.obj["ledger"].list_sync_logs(limit=limit, budget_id=budget_id)
    if not logs:
        click.echo("No sync runs recorded.")
        return

    click.echo("\nRecent sync runs:")
    click.echo("-" * 100)
    for log in logs:
        click.echo(
            f"{log.sync_date:%Y-%m-%d %H:%M} | accounts: {log.accounts_processed:2d} | "
            f"processed: {log.transactions_processed:4d} | synced: {log.transactions_synced:4d} | "
            f"skipped: {log.transactions_skipped:4d} | failed: {log.transactions_failed:4d} | "
            f"{log.sync_duration_seconds:.1f}s"
        )
        if log.errors:
            click.echo(f"    Errors: {log.errors}")


@ledger_group.command("cleanup")
@click.option("--profile", help="Budget profile (defaults to the active profile)")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def cleanup(ctx, profile: str | None, yes: bool):
    """Delete failed records so the transactions are treated as new."""
    if not yes and not click.confirm("Delete all failed ledger records?"):
        click.echo("Cancelled.")
        return
    try:
        count = build_sync_service(ctx).cleanup_failed_transactions(profile_name=profile)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    click.echo(f"Removed {count} failed record(s)")


@ledger_group.command("fix")
@click.option("--profile", help="Budget profile (defaults to the active profile)")
@click.pass_context
def fix(ctx, profile: str | None):
    """Mark records that claim to be synced without a YNAB id as failed."""
    try:
        count = build_sync_service(ctx).fix_incorrectly_marked_transactions(profile_name=profile)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    if count:
        click.echo(f"Marked {count} record(s) as failed; run 'upynab retry' to sync them")
    else:
        click.echo("No incorrectly marked records found")


@ledger_group.command("recover")
@click.option("--profile", help="Budget profile (defaults to the active profile)")
@click.pass_context
def recover(ctx, profile: str | None):
    """Mark records left pending by an interrupted run as failed."""
    try:
        count = build_sync_service(ctx).recover_stuck_pending(profile_name=profile)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    click.echo(f"Recovered {count} pending record(s)")


@ledger_group.command("trim")
@click.option("--days", type=int, help="Keep records newer than this many days (defaults to retention_days)")
@click.pass_context
def trim(ctx, days: int | None):
    """Delete old ledger records and sync runs. Pending records are kept."""
    try:
        counts = build_sync_service(ctx).trim_history(days)
    except ValueError as e:
        handle_domain_error(ctx, e)
        return
    click.echo(
        f"Deleted {counts['transactions']} ledger record(s) and {counts['sync_logs']} sync run(s)"
    )


@ledger_group.command("stats")
@click.option("--profile", help="Budget profile (defaults to all budgets)")
@click.pass_context
def stats(ctx, profile: str | None):
    """Show record counts by status."""
    budget_id = None
    if profile:
        try:
            budget_id = _profile_budget_id(ctx, profile)
        except DomainError as e:
            handle_domain_error(ctx, e)
            return
    ledger = ctx.obj["ledger"]
    try:
        counts = ledger.stats(budget_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    click.echo(f"Schema version:  {ledger.schema_version()}")
    click.echo(f"Transactions:    {counts['total_transactions']}")
    click.echo(f"  synced:        {counts['synced_transactions']}")
    click.echo(f"  pending:       {counts['pending_transactions']}")
    click.echo(f"  failed:        {counts['failed_transactions']}")
    click.echo(f"Sync runs:       {counts['sync_logs']}")
    click.echo(f"Merchant rules:  {counts['merchant_rules']}")
    click.echo(f"Integrity:       {'ok' if ledger.check_integrity() else 'PROBLEMS FOUND'}")


def register_commands(cli):
    """Register ledger commands with main CLI."""
    cli.add_command(ledger_group, name="ledger")
