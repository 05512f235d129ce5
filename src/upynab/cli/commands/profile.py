"""Budget profile and account mapping commands."""

from dataclasses import replace

import click

from upynab.cli.error_handling import handle_domain_error
from upynab.domain.entities import AccountMapping, BudgetProfile
from upynab.domain.errors import ConflictError, DomainError


@click.group()
def profile_group():
    """Manage budget profiles and their account mappings."""
    pass


@profile_group.command("list")
@click.pass_context
def list_profiles(ctx):
    """List all profiles."""
    store = ctx.obj["config"]
    try:
        profiles = store.list_profiles()
        active = store.get_active_profile_name()
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    if not profiles:
        click.echo("No profiles configured. Create one with 'upynab profile add'.")
        return

    click.echo("\nProfiles:")
    click.echo("-" * 72)
    for p in profiles:
        marker = "*" if p.name == active else " "
        click.echo(
            f"{marker} {p.name:20s} | Budget: {p.budget_name or p.budget_id} | "
            f"Mappings: {len(p.enabled_mappings)}/{len(p.account_mappings)}"
        )


@profile_group.command("show")
@click.argument("name", required=False)
@click.pass_context
def show_profile(ctx, name: str | None):
    """Show a profile (defaults to the active one)."""
    try:
        profile = ctx.obj["config"].resolve_profile(name)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    click.echo(f"\nProfile: {profile.name}")
    click.echo(f"Budget:  {profile.budget_name} ({profile.budget_id})")
    c = profile.categorization
    click.echo(
        f"Categorization: {'enabled' if c.enabled else 'disabled'}, "
        f"auto-apply {'on' if c.auto_apply_during_sync else 'off'}, "
        f"min confidence {c.min_confidence_threshold:.2f}"
    )
    if not profile.account_mappings:
        click.echo("No account mappings.")
        return
    click.echo("\nAccount mappings:")
    click.echo("-" * 72)
    for m in profile.account_mappings:
        state = "" if m.enabled else " (disabled)"
        click.echo(f"{m.display_name}{state}")
        click.echo(f"    Up: {m.source_account_id} | YNAB: {m.target_account_id}")


@profile_group.command("add")
@click.argument("name")
@click.option("--budget-id", required=True, help="YNAB budget id")
@click.option("--budget-name", default="", help="YNAB budget name (for display)")
@click.option("--activate", is_flag=True, help="Make this the active profile")
@click.pass_context
def add_profile(ctx, name: str, budget_id: str, budget_name: str, activate: bool):
    """Create a profile for one YNAB budget.

    Examples:
        upynab profile add household --budget-id 1234-abcd --budget-name "Household"
    """
    store = ctx.obj["config"]
    try:
        if any(p.name == name for p in store.list_profiles()):
            raise ConflictError(f"Profile '{name}' already exists")
        store.save_profile(
            BudgetProfile(name=name, budget_id=budget_id, budget_name=budget_name),
            make_active=activate,
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    click.echo(f"Created profile '{name}'")


@profile_group.command("remove")
@click.argument("name")
@click.pass_context
def remove_profile(ctx, name: str):
    """Delete a profile. Its ledger records are kept."""
    try:
        ctx.obj["config"].delete_profile(name)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    click.echo(f"Deleted profile '{name}'")


@profile_group.command("use")
@click.argument("name")
@click.pass_context
def use_profile(ctx, name: str):
    """Make a profile the active one."""
    try:
        ctx.obj["config"].set_active_profile(name)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    click.echo(f"Active profile is now '{name}'")


@profile_group.command("map")
@click.option("--profile", help="Profile to change (defaults to the active profile)")
@click.option("--up-account-id", required=True, help="Up account id")
@click.option("--up-account-name", required=True, help="Up account name")
@click.option("--up-account-type", default="TRANSACTIONAL", show_default=True, help="Up account type")
@click.option("--ynab-account-id", required=True, help="YNAB account id")
@click.option("--ynab-account-name", required=True, help="YNAB account name")
@click.option("--disabled", is_flag=True, help="Store the mapping but skip it during sync")
@click.pass_context
def map_account(
    ctx,
    profile: str | None,
    up_account_id: str,
    up_account_name: str,
    up_account_type: str,
    ynab_account_id: str,
    ynab_account_name: str,
    disabled: bool,
):
    """Map an Up account to a YNAB account.

    An existing mapping for the same Up account is replaced. Use
    'upynab accounts up' and 'upynab accounts ynab' to look up the ids.
    """
    store = ctx.obj["config"]
    mapping = AccountMapping(
        source_account_id=up_account_id,
        source_account_name=up_account_name,
        source_account_type=up_account_type,
        target_account_id=ynab_account_id,
        target_account_name=ynab_account_name,
        enabled=not disabled,
    )
    try:
        name = store.resolve_profile(profile).name
        store.add_or_update_mapping(name, mapping)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    click.echo(f"Mapped {mapping.display_name} in profile '{name}'")


@profile_group.command("unmap")
@click.argument("up_account_id")
@click.option("--profile", help="Profile to change (defaults to the active profile)")
@click.pass_context
def unmap_account(ctx, up_account_id: str, profile: str | None):
    """Remove the mapping for an Up account."""
    store = ctx.obj["config"]
    try:
        name = store.resolve_profile(profile).name
        removed = store.remove_mapping(name, up_account_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    if not removed:
        click.echo(f"Error: No mapping for Up account '{up_account_id}' in profile '{name}'", err=True)
        ctx.exit(1)
    click.echo(f"Removed mapping for Up account '{up_account_id}'")


@profile_group.command("categorization")
@click.option("--profile", help="Profile to change (defaults to the active profile)")
@click.option("--enable/--disable", default=None, help="Turn merchant categorization on or off")
@click.option("--auto-apply/--no-auto-apply", default=None, help="Apply rules during every sync")
@click.option("--min-confidence", type=float, help="Ignore rules below this confidence (0-1)")
@click.pass_context
def categorization(
    ctx,
    profile: str | None,
    enable: bool | None,
    auto_apply: bool | None,
    min_confidence: float | None,
):
    """Change the categorization settings of a profile."""
    store = ctx.obj["config"]
    try:
        current = store.resolve_profile(profile)
        settings = current.categorization
        if enable is not None:
            settings = replace(settings, enabled=enable)
        if auto_apply is not None:
            settings = replace(settings, auto_apply_during_sync=auto_apply)
        if min_confidence is not None:
            settings = replace(settings, min_confidence_threshold=min_confidence)
        store.update_categorization(current.name, settings)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    click.echo(
        f"Categorization for '{current.name}': {'enabled' if settings.enabled else 'disabled'}, "
        f"auto-apply {'on' if settings.auto_apply_during_sync else 'off'}, "
        f"min confidence {settings.min_confidence_threshold:.2f}"
    )


def register_commands(cli):
    """Register profile commands with main CLI."""
    cli.add_command(profile_group, name="profile")
