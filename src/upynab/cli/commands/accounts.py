"""Commands that list accounts and budgets at the providers."""

import click

from upynab.cli.error_handling import handle_api_error, handle_domain_error
from upynab.cli.formatting import format_amount
from upynab.cli.services import get_sink, get_source
from upynab.clients.errors import ApiError
from upynab.domain.errors import DomainError


@click.group()
def accounts_group():
    """Look up account and budget ids at Up and YNAB."""
    pass


@accounts_group.command("up")
@click.option("--all", "show_all", is_flag=True, help="Include account types that cannot be synced")
@click.pass_context
def up_accounts(ctx, show_all: bool):
    """List Up accounts."""
    source = get_source(ctx)
    try:
        accounts = source.list_accounts() if show_all else source.list_active_accounts()
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    except ApiError as e:
        handle_api_error(ctx, e)
        return

    if not accounts:
        click.echo("No accounts found.")
        return
    click.echo("\nUp accounts:")
    click.echo("-" * 90)
    for a in accounts:
        click.echo(
            f"{a.display_name[:25]:25s} | {a.account_type:14s} | "
            f"{format_amount(a.balance_minor_units):>14} | {a.id}"
        )


@accounts_group.command("budgets")
@click.pass_context
def budgets(ctx):
    """List YNAB budgets."""
    try:
        items = get_sink(ctx).list_budgets()
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    except ApiError as e:
        handle_api_error(ctx, e)
        return

    if not items:
        click.echo("No budgets found.")
        return
    click.echo("\nYNAB budgets:")
    click.echo("-" * 90)
    for b in items:
        click.echo(f"{b.name[:40]:40s} | {b.id}")


@accounts_group.command("ynab")
@click.option("--profile", help="Budget profile (defaults to the active profile)")
@click.option("--budget-id", help="Budget id (overrides the profile)")
@click.pass_context
def ynab_accounts(ctx, profile: str | None, budget_id: str | None):
    """List open YNAB accounts of a budget."""
    try:
        budget_id = budget_id or ctx.obj["config"].resolve_profile(profile).budget_id
        accounts = get_sink(ctx).list_accounts(budget_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    except ApiError as e:
        handle_api_error(ctx, e)
        return

    if not accounts:
        click.echo("No open accounts found.")
        return
    click.echo("\nYNAB accounts:")
    click.echo("-" * 90)
    for a in accounts:
        click.echo(
            f"{a.name[:25]:25s} | {a.type:14s} | {format_amount(a.balance, exponent=3):>14} | {a.id}"
        )


@accounts_group.command("test")
@click.pass_context
def test_connections(ctx):
    """Check that both API tokens work."""
    ok = True
    for label, client in (("Up", get_source(ctx)), ("YNAB", get_sink(ctx))):
        try:
            connected = client.test_connection()
        except DomainError as e:
            click.echo(f"{label}: {e}", err=True)
            connected = False
        click.echo(f"{label}: {'connected' if connected else 'FAILED'}")
        ok = ok and connected
    if not ok:
        ctx.exit(1)


def register_commands(cli):
    """Register provider lookup commands with main CLI."""
    cli.add_command(accounts_group, name="accounts")
