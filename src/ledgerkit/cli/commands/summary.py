"""Summary, trend and balance commands."""

import click

from ledgerkit.cli.date_filters import period_options, pop_period_flags, resolve_cli_date_range
from ledgerkit.cli.error_handling import handle_domain_error
from ledgerkit.domain.account import AccountService
from ledgerkit.domain.entities import Granularity, MetricsFilters
from ledgerkit.domain.metrics import MetricsService
from ledgerkit.utils.amount_parser import format_cents


def _filters(ctx, account: str | None) -> MetricsFilters:
    if account is None:
        return MetricsFilters()
    account_id = AccountService(ctx.obj["db"]).find_account(ctx.obj["owner_id"], account).id
    return MetricsFilters(account_id=account_id)


@click.command("summary")
@period_options
@click.option("--account", help="Only this account (name or ID)")
@click.option("--categories", is_flag=True, help="Break expenses down by category")
@click.pass_context
def summary(ctx, start_date: str | None, end_date: str | None, account: str | None, categories: bool, **period_flags):
    """Show income, expense and net against the previous period."""
    start, end = resolve_cli_date_range(
        ctx, start_date=start_date, end_date=end_date, period_flags=pop_period_flags(period_flags)
    )
    service = MetricsService(ctx.obj["db"])
    owner_id = ctx.obj["owner_id"]

    try:
        filters = _filters(ctx, account)
        result = service.summary(owner_id, start, end, filters)
    except ValueError as e:
        handle_domain_error(ctx, e)
        return

    previous = result.previous_period_comparison
    click.echo(f"\nSummary {result.start.isoformat()} .. {result.end.isoformat()}")
    click.echo("-" * 50)
    click.echo(f"{'Income':<30} {format_cents(result.total_income):>18}")
    click.echo(f"{'Expense':<30} {format_cents(result.total_expense):>18}")
    click.echo(f"{'Net':<30} {format_cents(result.net):>18}")
    if result.excluded_total:
        click.echo(f"{'Excluded':<30} {format_cents(result.excluded_total):>18}")
    click.echo("-" * 50)
    click.echo(
        f"Previous period {previous.previous_start.isoformat()} .. {previous.previous_end.isoformat()}: "
        f"net {format_cents(previous.previous_net)} ({previous.percent:+.2f}%)"
    )

    if categories:
        click.echo()
        for item in service.category_breakdown(owner_id, start, end, filters):
            click.echo(f"{item.name:<30} {format_cents(item.total):>18} {item.share:6.2f}%")


@click.command("trends")
@period_options
@click.option(
    "--granularity",
    type=click.Choice([g.value for g in Granularity]),
    default=Granularity.DAY.value,
    show_default=True,
    help="Bucket size",
)
@click.option("--account", help="Only this account (name or ID)")
@click.pass_context
def trends(ctx, start_date: str | None, end_date: str | None, granularity: str, account: str | None, **period_flags):
    """Show income and expense per day, week or month."""
    start, end = resolve_cli_date_range(
        ctx, start_date=start_date, end_date=end_date, period_flags=pop_period_flags(period_flags)
    )
    service = MetricsService(ctx.obj["db"])

    try:
        points = service.trends(ctx.obj["owner_id"], start, end, Granularity(granularity), _filters(ctx, account))
    except ValueError as e:
        handle_domain_error(ctx, e)
        return

    click.echo(f"\n{'Bucket':10} | {'Income':>14} | {'Expense':>14} | {'Net':>14}")
    click.echo("-" * 62)
    for point in points:
        click.echo(
            f"{point.bucket_start.isoformat():10} | {format_cents(point.income):>14} | "
            f"{format_cents(point.expense):>14} | {format_cents(point.net):>14}"
        )


@click.command("balances")
@click.pass_context
def balances(ctx):
    """Show the balance of every account, cash on hand and card debt."""
    service = MetricsService(ctx.obj["db"])
    owner_id = ctx.obj["owner_id"]

    items = service.account_balances(owner_id)
    if not items:
        click.echo("No accounts found.")
        return

    for item in items:
        click.echo(f"{item.account.name:<30} {item.account.kind.value:<10} {format_cents(item.balance):>16}")
    click.echo("-" * 58)
    click.echo(f"{'Cash':<41} {format_cents(service.cash_balance(owner_id)):>16}")
    click.echo(f"{'Card debt':<41} {format_cents(service.card_debt(owner_id)):>16}")


def register_commands(cli):
    """Register summary commands with main CLI."""
    cli.add_command(summary)
    cli.add_command(trends)
    cli.add_command(balances)
