"""Merchant rule commands."""

import click

from upynab.cli.error_handling import handle_domain_error
from upynab.domain.errors import DomainError


@click.group()
def rules_group():
    """Manage merchant categorization rules."""
    pass


@rules_group.command("list")
@click.option("--profile", help="Budget profile (defaults to the active profile)")
@click.pass_context
def list_rules(ctx, profile: str | None):
    """List rules, most used first."""
    try:
        budget_id = ctx.obj["config"].resolve_profile(profile).budget_id
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    rules = ctx.obj["ledger"].list_merchant_rules(budget_id)
    if not rules:
        click.echo("No merchant rules.")
        return

    click.echo("\nMerchant rules:")
    click.echo("-" * 90)
    for rule in rules:
        last_used = f"{rule.last_used:%Y-%m-%d}" if rule.last_used else "never"
        click.echo(
            f"{rule.merchant_pattern:25s} | {rule.category_name[:25]:25s} | "
            f"payee: {rule.payee_name[:15]:15s} | used {rule.usage_count:3d}x | last: {last_used}"
        )


@rules_group.command("add")
@click.argument("pattern")
@click.option("--category-id", required=True, help="YNAB category id")
@click.option("--category-name", required=True, help="YNAB category name")
@click.option("--payee", help="Payee name to use (defaults to the pattern)")
@click.option("--confidence", type=click.FloatRange(0.0, 1.0), default=1.0, show_default=True)
@click.option("--profile", help="Budget profile (defaults to the active profile)")
@click.pass_context
def add_rule(
    ctx,
    pattern: str,
    category_id: str,
    category_name: str,
    payee: str | None,
    confidence: float,
    profile: str | None,
):
    """Create or replace the rule for a merchant pattern.

    Examples:
        upynab rules add WOOLWORTHS --category-id abc-123 --category-name Groceries
    """
    try:
        budget_id = ctx.obj["config"].resolve_profile(profile).budget_id
        ctx.obj["ledger"].save_merchant_rule(
            budget_id,
            pattern,
            category_id,
            category_name,
            payee or pattern.strip().title(),
            confidence,
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    click.echo(f"Saved rule {pattern.strip().upper()} -> {category_name}")


@rules_group.command("delete")
@click.argument("pattern")
@click.option("--profile", help="Budget profile (defaults to the active profile)")
@click.pass_context
def delete_rule(ctx, pattern: str, profile: str | None):
    """Delete the rule for a merchant pattern."""
    try:
        budget_id = ctx.obj["config"].resolve_profile(profile).budget_id
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    if not ctx.obj["ledger"].delete_merchant_rule(budget_id, pattern.strip().upper()):
        click.echo(f"Error: No rule for pattern '{pattern}'", err=True)
        ctx.exit(1)
    click.echo(f"Deleted rule {pattern.strip().upper()}")


def register_commands(cli):
    """Register rule commands with main CLI."""
    cli.add_command(rules_group, name="rules")
