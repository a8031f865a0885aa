"""Amount parsing utilities."""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import re

KOPECK = Decimal("0.01")


def to_money(value) -> Decimal:
    """Convert a number to a Decimal rounded to kopecks."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(KOPECK, rounding=ROUND_HALF_UP)


def parse_amount(amount_str: str) -> Decimal:
    """Parse an amount string into a Decimal.

    Handles the formats found in bank statements and office entry:
    - "5000"
    - "5000.50"
    - "5 000,50" (space or non-breaking space as thousands separator)
    - "1,234.56"
    - "3000 руб." / "3000 ₽" / "3000 RUB"
    - "(123.45)" (negative in parentheses)

    Args:
        amount_str: Amount string

    Returns:
        Decimal amount rounded to kopecks

    Raises:
        ValueError: If amount string cannot be parsed
    """
    if not amount_str or not amount_str.strip():
        raise ValueError("Empty amount string")

    amount_str = amount_str.strip()

    # Handle parentheses notation (negative)
    is_negative = False
    if amount_str.startswith("(") and amount_str.endswith(")"):
        is_negative = True
        amount_str = amount_str[1:-1]

    # Remove currency markers
    amount_str = re.sub(r"(?i)(руб\.?|р\.|rub|₽|\$|€)", "", amount_str)

    # Remove thousands separators, including non-breaking spaces
    amount_str = re.sub(r"\s+", "", amount_str)

    # A single comma with no dot is a decimal comma; otherwise commas group thousands
    if "," in amount_str and "." not in amount_str and amount_str.count(",") == 1:
        amount_str = amount_str.replace(",", ".")
    else:
        amount_str = amount_str.replace(",", "")

    try:
        amount = Decimal(amount_str)
    except InvalidOperation as e:
        raise ValueError(f"Could not parse amount '{amount_str}': {e}")
    if not amount.is_finite():
        raise ValueError(f"Could not parse amount '{amount_str}'")
    if is_negative:
        amount = -amount
    return to_money(amount)


def parse_rate(rate_str: str) -> Decimal:
    """Parse an annual rate into a fraction.

    "0.1", "0,1" and "10%" all give Decimal("0.1").

    Raises:
        ValueError: If rate string cannot be parsed
    """
    if not rate_str or not rate_str.strip():
        raise ValueError("Empty rate string")

    text = re.sub(r"\s+", "", rate_str).replace(",", ".")
    percent = text.endswith("%")
    if percent:
        text = text[:-1]
    try:
        rate = Decimal(text)
    except InvalidOperation:
        raise ValueError(f"Could not parse rate '{rate_str}'") from None
    if not rate.is_finite():
        raise ValueError(f"Could not parse rate '{rate_str}'")
    return rate / 100 if percent else rate
