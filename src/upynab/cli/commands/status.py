"""Status command."""

import click

from upynab.cli.formatting import render_status
from upynab.cli.services import build_sync_service
from upynab.cli.error_handling import handle_domain_error
from upynab.domain.errors import DomainError


@click.command("status")
@click.option("--profile", help="Budget profile (defaults to the active profile)")
@click.option("--balances", is_flag=True, help="Also fetch account balances from Up and YNAB")
@click.pass_context
def status(ctx, profile: str | None, balances: bool):
    """Show configuration, last sync and ledger health."""
    try:
        report = build_sync_service(ctx).get_sync_status(profile_name=profile, include_balances=balances)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    render_status(report)


def register_commands(cli):
    """Register status command with main CLI."""
    cli.add_command(status)
