"""Tests for CLI date filter helpers."""

from datetime import date

import click
import pytest
from click.testing import CliRunner

from ledgerkit.cli.date_filters import (
    PERIOD_NAMES,
    period_options,
    pop_period_flags,
    resolve_cli_date_range,
)
from ledgerkit.utils.date_parser import get_date_range


def _ctx() -> click.Context:
    return click.Context(click.Command("test"))


def test_rejects_multiple_periods(capsys):
    with pytest.raises(click.exceptions.Exit) as excinfo:
        resolve_cli_date_range(
            _ctx(),
            start_date=None,
            end_date=None,
            period_flags={"this-month": True, "last-month": True},
        )

    assert excinfo.value.exit_code == 1
    assert "Only one period option" in capsys.readouterr().err


def test_rejects_period_with_explicit_dates(capsys):
    with pytest.raises(click.exceptions.Exit) as excinfo:
        resolve_cli_date_range(
            _ctx(),
            start_date="01/03/2024",
            end_date=None,
            period_flags={"this-month": True},
        )

    assert excinfo.value.exit_code == 1
    assert "cannot be combined" in capsys.readouterr().err


def test_returns_period_range():
    start, end = resolve_cli_date_range(
        _ctx(), start_date=None, end_date=None, period_flags={"last-month": True}
    )
    assert (start, end) == get_date_range("last-month")


def test_parses_day_first_and_iso_dates():
    start, end = resolve_cli_date_range(
        _ctx(), start_date="02/03/2024", end_date="2024-03-05", period_flags={}
    )
    assert start == date(2024, 3, 2)
    assert end == date(2024, 3, 5)


def test_default_range_applies_only_without_dates():
    default_range = (date(2020, 1, 1), date(2020, 1, 31))

    assert resolve_cli_date_range(
        _ctx(), start_date=None, end_date=None, period_flags={}, default_range=default_range
    ) == default_range
    assert resolve_cli_date_range(_ctx(), start_date=None, end_date=None, period_flags={}) == (None, None)


def test_invalid_end_date(capsys):
    with pytest.raises(click.exceptions.Exit) as excinfo:
        resolve_cli_date_range(_ctx(), start_date=None, end_date="32/01/2024", period_flags={})

    assert excinfo.value.exit_code == 1
    assert "Invalid end date" in capsys.readouterr().err


def test_pop_period_flags_consumes_click_kwargs():
    kwargs = {"this_month": True, "last_week": False, "account": "Checking"}

    flags = pop_period_flags(kwargs)

    assert flags["this-month"] is True
    assert set(flags) == set(PERIOD_NAMES)
    assert not any(value for name, value in flags.items() if name != "this-month")
    assert kwargs == {"account": "Checking"}


def test_period_options_decorates_a_command():
    @click.command()
    @period_options
    def show(start_date, end_date, **period_flags):
        flags = pop_period_flags(period_flags)
        click.echo(f"{start_date} {end_date} {[name for name, value in flags.items() if value]}")

    result = CliRunner().invoke(show, ["--this-week"])

    assert result.exit_code == 0
    assert result.output.strip() == "None None ['this-week']"
