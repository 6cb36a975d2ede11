"""Amount parsing utilities."""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import re


def parse_amount(amount_str: str) -> Decimal:
    """Parse an amount string into a Decimal.

    Handles various formats:
    - "123.45"
    - "R$ 1.234,56" (comma as decimal separator)
    - "1,234.56" (dot as decimal separator)
    - "-123.45" and "123.45-" (trailing minus)
    - "(123.45)" (negative in parentheses)

    The decimal separator is the last of "," or "." found in the string; the
    other one is treated as a thousands separator.

    Args:
        amount_str: Amount string

    Returns:
        Decimal amount

    Raises:
        ValueError: If amount string cannot be parsed
    """
    if amount_str is None or not str(amount_str).strip():
        raise ValueError("Empty amount string")

    amount_str = str(amount_str).strip()

    is_negative = False
    if amount_str.startswith("(") and amount_str.endswith(")"):
        is_negative = True
        amount_str = amount_str[1:-1].strip()

    if amount_str.endswith("-"):
        is_negative = not is_negative
        amount_str = amount_str[:-1].strip()

    # Remove currency symbols and codes
    amount_str = re.sub(r"(?i)(R\$|US\$|BRL|USD|EUR|[$€£¥])", "", amount_str)
    amount_str = amount_str.replace(" ", "").replace(" ", "")

    if amount_str.startswith("-"):
        is_negative = not is_negative
        amount_str = amount_str[1:]
    elif amount_str.startswith("+"):
        amount_str = amount_str[1:]

    if not re.search(r"\d", amount_str) or not re.fullmatch(r"[\d.,]+", amount_str):
        raise ValueError(f"Could not parse amount '{amount_str}'")

    last_comma = amount_str.rfind(",")
    last_dot = amount_str.rfind(".")
    if last_comma > last_dot:
        amount_str = amount_str.replace(".", "").replace(",", ".")
    elif last_dot > last_comma and amount_str.count(".") > 1:
        # "1.234.567" has no decimal part
        amount_str = amount_str.replace(".", "").replace(",", "")
    else:
        amount_str = amount_str.replace(",", "")

    try:
        amount = Decimal(amount_str)
    except InvalidOperation as e:
        raise ValueError(f"Could not parse amount '{amount_str}': {e}")

    return -amount if is_negative else amount


def to_cents(amount: Decimal) -> int:
    """Convert a Decimal amount to integer cents, rounding half up."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_cents(cents: int) -> str:
    """Format integer cents as a signed amount string (e.g. "-12.34")."""
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100:,}.{cents % 100:02d}"
