"""Transfer reconciliation commands."""

import click

from ledgerkit.cli.date_filters import period_options, pop_period_flags, resolve_cli_date_range
from ledgerkit.cli.error_handling import handle_domain_error
from ledgerkit.domain.matcher import TransferMatcher
from ledgerkit.utils.amount_parser import format_cents


@click.command("match")
@period_options
@click.pass_context
def match(ctx, start_date: str | None, end_date: str | None, **period_flags):
    """Link transfers between your own accounts.

    Exact matches are linked right away; near matches (bank fees, IOF) are
    left in the inbox for review.
    """
    start, end = resolve_cli_date_range(
        ctx, start_date=start_date, end_date=end_date, period_flags=pop_period_flags(period_flags)
    )
    matcher = TransferMatcher(ctx.obj["db"], ctx.obj["settings"])
    result = matcher.run(ctx.obj["owner_id"], start=start, end=end)
    click.echo(f"Linked {result.matched} transfers, {result.suggested} waiting for review.")


@click.command("inbox")
@click.pass_context
def inbox(ctx):
    """List transfer suggestions waiting for review."""
    matcher = TransferMatcher(ctx.obj["db"], ctx.obj["settings"])
    suggestions = matcher.reconciliation_inbox(ctx.obj["owner_id"])
    if not suggestions:
        click.echo("Inbox is empty.")
        return

    click.echo(f"\n{'ID':>4} | {'Date':10} | {'Out':>12} | {'In':>12} | {'Fee':>8} | Transfer")
    click.echo("-" * 80)
    for suggestion in suggestions:
        click.echo(
            f"{suggestion.link.id:4d} | {suggestion.out_entry.posted_at.isoformat():10} | "
            f"{format_cents(suggestion.out_entry.amount_cents):>12} | "
            f"{format_cents(suggestion.in_entry.amount_cents):>12} | "
            f"{format_cents(suggestion.fee_delta_cents):>8} | {suggestion.label}"
        )


@click.command("confirm")
@click.argument("link_id", type=int)
@click.pass_context
def confirm(ctx, link_id: int):
    """Accept a transfer suggestion from the inbox."""
    matcher = TransferMatcher(ctx.obj["db"], ctx.obj["settings"])
    try:
        link = matcher.confirm_suggestion(ctx.obj["owner_id"], link_id)
        click.echo(f"Confirmed transfer {link.id}")
    except ValueError as e:
        handle_domain_error(ctx, e)


@click.command("reject")
@click.argument("link_id", type=int)
@click.pass_context
def reject(ctx, link_id: int):
    """Reject a transfer suggestion; the pair is not proposed again."""
    matcher = TransferMatcher(ctx.obj["db"], ctx.obj["settings"])
    try:
        link = matcher.reject_suggestion(ctx.obj["owner_id"], link_id)
        click.echo(f"Rejected transfer suggestion {link.id}")
    except ValueError as e:
        handle_domain_error(ctx, e)


@click.command("unlink")
@click.argument("link_id", type=int)
@click.pass_context
def unlink(ctx, link_id: int):
    """Undo a transfer link; both entries go back to income/expense."""
    matcher = TransferMatcher(ctx.obj["db"], ctx.obj["settings"])
    try:
        matcher.unlink(ctx.obj["owner_id"], link_id)
        click.echo(f"Removed transfer link {link_id}")
    except ValueError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register reconciliation commands with main CLI."""
    cli.add_command(match)
    cli.add_command(inbox)
    cli.add_command(confirm)
    cli.add_command(reject)
    cli.add_command(unlink)
