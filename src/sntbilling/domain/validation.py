"""Input checks shared by the domain services."""

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import TypeVar, Union

from sntbilling.domain.errors import ValidationError, non_positive_amount
from sntbilling.utils.amount_parser import to_money

E = TypeVar("E", bound=Enum)


def coerce_enum(enum_cls: type[E], value: Union[E, str], field: str) -> E:
    """Return value as a member of enum_cls.

    Raises:
        ValidationError: If value is not one of the enum's values
    """
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {field} '{value}'. Expected one of: {allowed}") from None


def positive_decimal(value, what: str) -> Decimal:
    """Return value as an unrounded Decimal. It must be a positive finite number."""
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid {what.lower()}: {value}") from None
    if not number.is_finite():
        raise ValidationError(f"Invalid {what.lower()}: {value}")
    if number <= 0:
        raise ValidationError(f"{what} must be positive, got {number}")
    return number


def positive_money(value, what: str) -> Decimal:
    """Return value rounded to kopecks, rejecting zero and negative amounts."""
    try:
        amount = to_money(value)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid {what.lower()} amount: {value}") from None
    if not amount.is_finite():
        raise ValidationError(f"Invalid {what.lower()} amount: {value}")
    if amount <= 0:
        raise ValidationError(non_positive_amount(what, amount))
    return amount
