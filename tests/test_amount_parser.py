"""Tests for amount parsing."""

from decimal import Decimal

import pytest

from ledgerkit.utils.amount_parser import format_cents, parse_amount, to_cents


@pytest.mark.parametrize(
    "value, expected",
    [
        ("123.45", Decimal("123.45")),
        ("1.234,56", Decimal("1234.56")),
        ("1,234.56", Decimal("1234.56")),
        ("R$ 1.234,56", Decimal("1234.56")),
        ("R$ -10,00", Decimal("-10.00")),
        ("-39,90", Decimal("-39.90")),
        ("39,90-", Decimal("-39.90")),
        ("(123.45)", Decimal("-123.45")),
        ("+5,00", Decimal("5.00")),
        ("$1,000.00", Decimal("1000.00")),
        ("1,5", Decimal("1.5")),
        ("1.234.567", Decimal("1234567")),
        ("USD 12.00", Decimal("12.00")),
    ],
)
def test_parse_amount(value, expected):
    assert parse_amount(value) == expected


@pytest.mark.parametrize("value", ["", "   ", "abc", "R$", "12a", None])
def test_parse_amount_invalid(value):
    with pytest.raises(ValueError):
        parse_amount(value)


def test_to_cents_rounds_half_up():
    assert to_cents(Decimal("10.005")) == 1001
    assert to_cents(Decimal("-10.005")) == -1001
    assert to_cents(Decimal("0.1")) == 10


def test_format_cents():
    assert format_cents(123456) == "1,234.56"
    assert format_cents(-5) == "-0.05"
    assert format_cents(0) == "0.00"
