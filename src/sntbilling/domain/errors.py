"""Shared domain error messages and error types."""

from datetime import date
from decimal import Decimal


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""


class ClosedPeriodError(ConflictError):
    """Change rejected because the billing period is closed."""


class DependencyError(DomainError):
    """Operation blocked due to dependent domain data."""


def period_not_found(period_id: int) -> str:
    """Return message for missing period."""
    return f"Period not found: {period_id}"


def tariff_not_found(tariff_id: int) -> str:
    """Return message for missing tariff."""
    return f"Tariff not found: {tariff_id}"


def accrual_not_found(accrual_id: int) -> str:
    """Return message for missing accrual."""
    return f"Accrual not found: {accrual_id}"


def payment_not_found(payment_id: int) -> str:
    """Return message for missing payment."""
    return f"Payment not found: {payment_id}"


def allocation_not_found(allocation_id: int) -> str:
    """Return message for missing allocation."""
    return f"Allocation not found: {allocation_id}"


def invalid_month(month: int) -> str:
    return f"Month must be between 1 and 12, got {month}"


def non_positive_amount(what: str, amount: Decimal) -> str:
    return f"{what} amount must be positive, got {amount}"


def duplicate_period(year: int, month: int) -> str:
    """Return message for a second period with the same year and month."""
    return f"Period {year:04d}-{month:02d} already exists"


def duplicate_tariff_code(code: str) -> str:
    return f"Tariff with code '{code}' already exists"


def duplicate_accrual(period_id: int, plot_id: str, tariff_id: int) -> str:
    """Return message for a repeated period/plot/tariff charge."""
    return (
        f"Accrual for plot '{plot_id}' with tariff {tariff_id} "
        f"already exists in period {period_id}"
    )


def duplicate_payment(field: str, value: str) -> str:
    return f"Payment with {field} '{value}' already exists"


def period_closed(period_id: int) -> str:
    return f"Period {period_id} is closed"


def inverted_tariff_window(active_from: date, active_to: date) -> str:
    return f"Tariff active_to ({active_to}) is earlier than active_from ({active_from})"


def payment_without_plot(payment_id: int) -> str:
    """Return message when a payment cannot be allocated for lack of a plot."""
    return f"Payment {payment_id} has no plotId, cannot allocate"


def allocation_exceeds_remaining(amount: Decimal) -> str:
    return f"Allocation amount {amount} exceeds the remaining balance"


def accrual_has_allocations(accrual_id: int, count: int) -> str:
    """Return message when an accrual still carries payment allocations."""
    return (
        f"Cannot delete accrual {accrual_id}: it has "
        f"{count} allocation{'s' if count != 1 else ''}. "
        "Please unapply them first."
    )


def penalty_not_found(penalty_id: int) -> str:
    """Return message for missing penalty accrual."""
    return f"Penalty not found: {penalty_id}"


def duplicate_penalty(period_id: int, plot_id: str) -> str:
    return f"Penalty for plot '{plot_id}' already exists in period {period_id}"
