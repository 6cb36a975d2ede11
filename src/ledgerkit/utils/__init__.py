"""Utility functions for ledgerkit."""

from ledgerkit.utils.date_parser import parse_date, parse_statement_date
from ledgerkit.utils.amount_parser import parse_amount, to_cents
from ledgerkit.utils.text import normalize_text, build_merchant_key

__all__ = [
    "parse_date",
    "parse_statement_date",
    "parse_amount",
    "to_cents",
    "normalize_text",
    "build_merchant_key",
]
