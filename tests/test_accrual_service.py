"""Tests for AccrualService."""

import pytest
from datetime import date
from decimal import Decimal

from sntbilling.domain.entities import AccrualStatus
from sntbilling.domain.errors import (
    ClosedPeriodError,
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
)


def test_create_accrual_uses_tariff_amount(accrual_service, sample_period, sample_tariff):
    """Test that the tariff amount is charged when no amount is given."""
    accrual_id = accrual_service.create_accrual(sample_period.id, "A-12", sample_tariff.id)

    accrual = accrual_service.get_accrual(accrual_id)
    assert accrual.amount == Decimal("1000.00")
    assert accrual.plot_id == "A-12"
    assert accrual.status is AccrualStatus.PENDING


def test_create_accrual_explicit_amount(accrual_service, sample_period, sample_tariff):
    accrual_id = accrual_service.create_accrual(
        sample_period.id, "A-12", sample_tariff.id, amount=Decimal("750.505")
    )
    assert accrual_service.get_accrual(accrual_id).amount == Decimal("750.51")


def test_create_accrual_area_tariff(accrual_service, tariff_service, sample_period):
    tariff_id = tariff_service.create_tariff(
        code="roads", title="Roads", amount="10.50", applies_to="area", active_from=date(2024, 1, 1)
    )

    accrual_id = accrual_service.create_accrual(sample_period.id, "A-12", tariff_id, area=Decimal("6"))

    assert accrual_service.get_accrual(accrual_id).amount == Decimal("63.00")


def test_create_accrual_area_is_not_rounded(accrual_service, tariff_service, sample_period):
    tariff_id = tariff_service.create_tariff(
        code="roads", title="Roads", amount="100", applies_to="area", active_from=date(2024, 1, 1)
    )

    accrual_id = accrual_service.create_accrual(sample_period.id, "A-12", tariff_id, area=Decimal("0.125"))

    assert accrual_service.get_accrual(accrual_id).amount == Decimal("12.50")


@pytest.mark.parametrize("area", ["0", "-1", Decimal("NaN"), "wide"])
def test_create_accrual_invalid_area(accrual_service, tariff_service, sample_period, area):
    tariff_id = tariff_service.create_tariff(
        code="roads", title="Roads", amount="100", applies_to="area", active_from=date(2024, 1, 1)
    )
    with pytest.raises(ValidationError, match="(?i)plot area"):
        accrual_service.create_accrual(sample_period.id, "A-12", tariff_id, area=area)


def test_create_accrual_area_tariff_requires_area(accrual_service, tariff_service, sample_period):
    tariff_id = tariff_service.create_tariff(
        code="roads", title="Roads", amount="10.50", applies_to="area", active_from=date(2024, 1, 1)
    )
    with pytest.raises(ValidationError, match="plot area is required"):
        accrual_service.create_accrual(sample_period.id, "A-12", tariff_id)


def test_create_accrual_missing_period(accrual_service, sample_tariff):
    with pytest.raises(NotFoundError, match="Period not found: 77"):
        accrual_service.create_accrual(77, "A-12", sample_tariff.id)


def test_create_accrual_missing_tariff(accrual_service, sample_period):
    with pytest.raises(NotFoundError, match="Tariff not found: 77"):
        accrual_service.create_accrual(sample_period.id, "A-12", 77)


def test_create_accrual_empty_plot(accrual_service, sample_period, sample_tariff):
    with pytest.raises(ValidationError):
        accrual_service.create_accrual(sample_period.id, " ", sample_tariff.id)


def test_create_accrual_duplicate(accrual_service, sample_period, sample_tariff):
    accrual_service.create_accrual(sample_period.id, "A-12", sample_tariff.id)
    with pytest.raises(ConflictError, match="already exists in period"):
        accrual_service.create_accrual(sample_period.id, "A-12", sample_tariff.id)


def test_create_accrual_in_closed_period(accrual_service, period_service, sample_period, sample_tariff):
    period_service.close_period(sample_period.id)
    with pytest.raises(ClosedPeriodError, match="is closed"):
        accrual_service.create_accrual(sample_period.id, "A-12", sample_tariff.id)


def test_list_accruals(accrual_service, period_service, sample_period, sample_tariff):
    feb = period_service.create_period(year=2025, month=2)
    a1 = accrual_service.create_accrual(sample_period.id, "A-1", sample_tariff.id)
    a2 = accrual_service.create_accrual(sample_period.id, "A-2", sample_tariff.id)
    a3 = accrual_service.create_accrual(feb, "A-1", sample_tariff.id)

    assert {a.id for a in accrual_service.list_accruals(plot_id="A-1")} == {a1, a3}
    assert {a.id for a in accrual_service.list_accruals(period_id=sample_period.id)} == {a1, a2}
    assert accrual_service.list_accruals(status="paid") == []


def test_update_amount_recomputes_status(
    accrual_service, payment_service, allocation_service, sample_period, sample_tariff
):
    accrual_id = accrual_service.create_accrual(sample_period.id, "A-1", sample_tariff.id)
    payment_id = payment_service.create_payment(paid_at=date(2025, 1, 10), amount="600", plot_id="A-1")
    allocation_service.allocate_payment(payment_id)

    accrual = accrual_service.update_amount(accrual_id, "600")

    assert accrual.amount == Decimal("600.00")
    assert accrual.status is AccrualStatus.PAID


def test_update_amount_below_allocated_rejected(
    accrual_service, payment_service, allocation_service, sample_period, sample_tariff
):
    accrual_id = accrual_service.create_accrual(sample_period.id, "A-1", sample_tariff.id)
    payment_id = payment_service.create_payment(paid_at=date(2025, 1, 10), amount="600", plot_id="A-1")
    allocation_service.allocate_payment(payment_id)

    with pytest.raises(ValidationError, match="cannot be lowered"):
        accrual_service.update_amount(accrual_id, "500")


def test_update_amount_in_closed_period(accrual_service, period_service, sample_period, sample_tariff):
    accrual_id = accrual_service.create_accrual(sample_period.id, "A-1", sample_tariff.id)
    period_service.close_period(sample_period.id)

    with pytest.raises(ClosedPeriodError):
        accrual_service.update_amount(accrual_id, "2000")


def test_delete_accrual(accrual_service, sample_period, sample_tariff):
    accrual_id = accrual_service.create_accrual(sample_period.id, "A-1", sample_tariff.id)

    accrual_service.delete_accrual(accrual_id)

    assert accrual_service.get_accrual(accrual_id) is None


def test_delete_accrual_with_allocations_rejected(
    accrual_service, payment_service, allocation_service, sample_period, sample_tariff
):
    accrual_id = accrual_service.create_accrual(sample_period.id, "A-1", sample_tariff.id)
    payment_id = payment_service.create_payment(paid_at=date(2025, 1, 10), amount="100", plot_id="A-1")
    allocation_service.allocate_payment(payment_id)

    with pytest.raises(DependencyError, match="1 allocation\\. Please unapply"):
        accrual_service.delete_accrual(accrual_id)


def test_delete_accrual_in_closed_period(accrual_service, period_service, sample_period, sample_tariff):
    accrual_id = accrual_service.create_accrual(sample_period.id, "A-1", sample_tariff.id)
    period_service.close_period(sample_period.id)

    with pytest.raises(ClosedPeriodError):
        accrual_service.delete_accrual(accrual_id)


def test_require_accrual(accrual_service):
    with pytest.raises(NotFoundError, match="Accrual not found: 42"):
        accrual_service.require_accrual(42)
