"""Main CLI entry point."""

import click

from upynab.cli.error_handling import handle_domain_error
from upynab.config import ConfigStore, default_home
from upynab.credentials import EnvCredentialStore
from upynab.database.factories import create_sqlite_ledger
from upynab.domain.errors import DomainError
from upynab.logging_config import setup_logging

# Import and register all commands at module level
from upynab.cli.commands import (
    accounts,
    ledger,
    profile,
    rules,
    status,
    sync,
)


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to ledger database file (overrides UPYNAB_DB_PATH environment variable)",
    envvar="UPYNAB_DB_PATH",
)
@click.option(
    "--config-path",
    type=click.Path(),
    help="Path to config file (overrides UPYNAB_CONFIG_PATH environment variable)",
    envvar="UPYNAB_CONFIG_PATH",
)
@click.option("--verbose", "-v", is_flag=True, help="Log debug output and list every transaction")
@click.pass_context
def cli(ctx, db_path: str | None, config_path: str | None, verbose: bool):
    """upynab - Sync Up Banking transactions into YNAB.

    API tokens are read from the UP_API_TOKEN and YNAB_API_TOKEN environment
    variables. Profiles, account mappings and sync settings live in
    ~/.up-ynab-sync/config.json unless UPYNAB_HOME says otherwise.
    """
    ctx.ensure_object(dict)
    ctx.obj.setdefault("verbose", verbose)

    # Initialize collaborators only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is None:
        return

    setup_logging(log_dir=ctx.obj.get("log_dir", default_home() / "logs"), verbose=verbose)

    if "config" not in ctx.obj:
        ctx.obj["config"] = ConfigStore(config_path)
    if "credentials" not in ctx.obj:
        ctx.obj["credentials"] = EnvCredentialStore()

    if "ledger" not in ctx.obj:
        try:
            db = create_sqlite_ledger(
                database_path=db_path,
                legacy_budget_id=ctx.obj["config"].legacy_budget_id(),
            )
            db.connect()
            db.initialize_schema()
        except DomainError as e:
            handle_domain_error(ctx, e)
            return
        ctx.call_on_close(db.disconnect)
        ctx.obj["ledger"] = db


# Register all commands
sync.register_commands(cli)
status.register_commands(cli)
ledger.register_commands(cli)
profile.register_commands(cli)
rules.register_commands(cli)
accounts.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
