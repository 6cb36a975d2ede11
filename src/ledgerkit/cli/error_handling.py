"""CLI error handling helpers."""

import click

from ledgerkit.domain.errors import DomainError


def handle_domain_error(ctx: click.Context, error: DomainError | ValueError) -> None:
    """Render a domain error and exit with failure."""
    code = getattr(error, "code", None)
    if code is not None and ctx.obj and ctx.obj.get("verbose"):
        click.echo(f"Error [{code}]: {error}", err=True)
    else:
        click.echo(f"Error: {error}", err=True)
    ctx.exit(1)
