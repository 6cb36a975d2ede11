"""Main CLI entry point."""

import logging

import click

from ledgerkit.config import ReconciliationSettings
from ledgerkit.database.factories import create_sqlite_database

# Import and register all commands at module level
from ledgerkit.cli.commands import (
    account,
    import_cmd,
    reconcile,
    recurring,
    summary,
)


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides LEDGERKIT_DB_PATH environment variable)",
    envvar="LEDGERKIT_DB_PATH",
)
@click.option(
    "--owner",
    type=int,
    default=1,
    show_default=True,
    envvar="LEDGERKIT_OWNER",
    help="Owner whose ledger is used",
)
@click.option(
    "--transfer-window-days",
    type=click.IntRange(min=0),
    envvar="LEDGERKIT_TRANSFER_WINDOW_DAYS",
    help="Days between the two sides of a transfer (default 3)",
)
@click.option(
    "--fee-tolerance-cents",
    type=click.IntRange(min=0),
    envvar="LEDGERKIT_FEE_TOLERANCE_CENTS",
    help="Largest amount difference proposed as a transfer (default 150)",
)
@click.option("--verbose", "-v", is_flag=True, help="Show progress and debug logging")
@click.pass_context
def cli(
    ctx,
    db_path: str | None,
    owner: int,
    transfer_window_days: int | None,
    fee_tolerance_cents: int | None,
    verbose: bool,
):
    """Ledgerkit - Statement import and reconciliation.

    Import bank and credit card statements, link transfers between your own
    accounts and see where the money went.
    """
    ctx.ensure_object(dict)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = ReconciliationSettings.from_env(
            transfer_window_days=transfer_window_days,
            fee_tolerance_cents=fee_tolerance_cents,
        )
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    ctx.obj["owner_id"] = owner
    ctx.obj["settings"] = settings
    ctx.obj["verbose"] = verbose

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        db = create_sqlite_database(database_path=db_path)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db
        ctx.call_on_close(db.disconnect)


# Register all commands
account.register_commands(cli)
import_cmd.register_commands(cli)
reconcile.register_commands(cli)
summary.register_commands(cli)
recurring.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
