"""Recurring charges command."""

import click

from ledgerkit.domain.recurring import RecurringService
from ledgerkit.utils.amount_parser import format_cents
from ledgerkit.utils.date_parser import parse_date


@click.command("recurring")
@click.option("--limit", type=click.IntRange(min=1), help="Show at most this many charges")
@click.option("--months", type=click.IntRange(min=1), default=12, show_default=True, help="Months to look back")
@click.option("--as-of", help="Reference date (defaults to today)")
@click.pass_context
def recurring(ctx, limit: int | None, months: int, as_of: str | None):
    """List charges that repeat every month (subscriptions, bills)."""
    try:
        reference = parse_date(as_of) if as_of else None
    except ValueError as e:
        click.echo(f"Error: Invalid date: {e}", err=True)
        ctx.exit(1)

    service = RecurringService(ctx.obj["db"], ctx.obj["settings"])
    signals = service.detect(ctx.obj["owner_id"], as_of=reference, limit=limit, lookback_months=months)
    if not signals:
        click.echo("No recurring charges found.")
        return

    click.echo(f"\n{'Merchant':<30} | {'Monthly':>12} | {'Seen':>4} | Next")
    click.echo("-" * 64)
    for signal in signals:
        click.echo(
            f"{signal.label[:30]:<30} | {format_cents(signal.estimated_monthly_cost_cents):>12} | "
            f"{signal.occurrences:4d} | {signal.next_expected_date.isoformat()}"
        )
    total = sum(signal.estimated_monthly_cost_cents for signal in signals)
    click.echo(f"\nEstimated monthly total: {format_cents(total)}")


def register_commands(cli):
    """Register recurring command with main CLI."""
    cli.add_command(recurring)
