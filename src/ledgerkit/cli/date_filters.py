"""CLI helpers for date range resolution."""

from datetime import date

import click

from ledgerkit.utils.date_parser import get_date_range, parse_date

PERIOD_NAMES = ("this-month", "this-year", "this-week", "last-month", "last-year", "last-week")


def period_options(func):
    """Attach --start-date, --end-date and the period flags to a command."""
    for period in reversed(PERIOD_NAMES):
        func = click.option(
            f"--{period}", is_flag=True, help=f"Limit to {period.replace('-', ' ')}"
        )(func)
    func = click.option("--end-date", help="End date (DD/MM/YYYY, YYYY-MM-DD or relative like 'today')")(func)
    func = click.option("--start-date", help="Start date (DD/MM/YYYY, YYYY-MM-DD or relative like 'last month')")(func)
    return func


def pop_period_flags(kwargs: dict) -> dict[str, bool]:
    """Remove the period flags from click kwargs, keyed by period name."""
    return {period: bool(kwargs.pop(period.replace("-", "_"), False)) for period in PERIOD_NAMES}


def _fail(ctx: click.Context, message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    ctx.exit(1)


def _parse_option(ctx: click.Context, value: str | None, label: str) -> date | None:
    if not value:
        return None
    try:
        return parse_date(value)
    except ValueError as e:
        _fail(ctx, f"Invalid {label} date: {e}")


def resolve_cli_date_range(
    ctx,
    *,
    start_date: str | None,
    end_date: str | None,
    period_flags: dict[str, bool],
    default_range: tuple[date, date] | None = None,
) -> tuple[date | None, date | None]:
    """Resolve the requested range from one period flag or explicit dates.

    Returns (None, None) when nothing was asked for and there is no default,
    leaving the choice of range to the service.
    """
    selected = [period for period, is_set in period_flags.items() if is_set]
    flag_list = ", ".join(f"--{period}" for period in PERIOD_NAMES)

    if len(selected) > 1:
        _fail(ctx, f"Only one period option ({flag_list}) can be specified at a time.")
    if selected and (start_date or end_date):
        _fail(ctx, "Period options (--this-month, --last-month, ...) cannot be combined with --start-date or --end-date.")
    if selected:
        return get_date_range(selected[0])

    start = _parse_option(ctx, start_date, "start")
    end = _parse_option(ctx, end_date, "end")
    if start is None and end is None and default_range is not None:
        return default_range
    return start, end
