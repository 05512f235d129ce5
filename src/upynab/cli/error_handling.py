"""CLI error handling helpers."""

import logging

import click

from upynab.clients.errors import ApiError
from upynab.domain.errors import DomainError

logger = logging.getLogger(__name__)


def handle_domain_error(ctx: click.Context, error: DomainError | ValueError) -> None:
    """Render a domain error and exit with failure."""
    click.echo(f"Error: {error}", err=True)
    ctx.exit(1)


def handle_api_error(ctx: click.Context, error: ApiError) -> None:
    """Render a provider API error and exit with failure."""
    logger.debug("API error: %r", error)
    click.echo(f"Error: {error}", err=True)
    ctx.exit(1)
