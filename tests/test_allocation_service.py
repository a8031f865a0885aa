"""Tests for AllocationService."""

import logging
import threading
import pytest
from datetime import date, datetime, timedelta, UTC
from decimal import Decimal

from sntbilling.domain.allocation import accrual_status_for, payment_status_for
from sntbilling.domain.entities import AccrualStatus, PaymentAllocationStatus
from sntbilling.domain.errors import NotFoundError, ValidationError

T0 = datetime(2025, 1, 1, 9, 0, tzinfo=UTC)


@pytest.fixture
def tariffs(tariff_service):
    """Three flat tariffs so one plot can carry several accruals per period."""
    return [
        tariff_service.create_tariff(code=code, title=code, amount="1", active_from=date(2024, 1, 1))
        for code in ("membership", "target", "water")
    ]


@pytest.fixture
def fifo_accruals(accrual_service, sample_period, tariffs):
    """Accruals of 100, 200 and 50 on plot A-1, created at t1 < t2 < t3."""
    amounts = ["100", "200", "50"]
    return [
        accrual_service.create_accrual(
            sample_period.id, "A-1", tariff_id, amount=amount, created_at=T0 + timedelta(minutes=i)
        )
        for i, (tariff_id, amount) in enumerate(zip(tariffs, amounts))
    ]


def _pay(payment_service, amount, plot_id="A-1", paid_at=date(2025, 1, 20)):
    return payment_service.create_payment(paid_at=paid_at, amount=amount, plot_id=plot_id)


def _allocated(temp_db, accrual_id):
    return temp_db.get_allocated_by_accrual([accrual_id]).get(accrual_id, Decimal("0"))


def _assert_allocation_bounds(temp_db):
    """Allocations never exceed payments or accruals, and statuses match sums."""
    per_payment = {}
    for allocation in temp_db.list_allocations():
        per_payment[allocation.payment_id] = per_payment.get(allocation.payment_id, Decimal("0")) + allocation.amount
    for payment_id, total in per_payment.items():
        assert total <= temp_db.get_payment(payment_id).amount

    allocated = temp_db.get_allocated_by_accrual()
    for accrual in temp_db.list_accruals():
        total = allocated.get(accrual.id, Decimal("0"))
        assert total <= accrual.amount
        assert accrual.status is accrual_status_for(accrual.amount, total)


class TestStatusDerivation:
    """Tests for the status helper functions."""

    @pytest.mark.parametrize(
        "allocated, expected",
        [
            ("0", AccrualStatus.PENDING),
            ("0.01", AccrualStatus.PARTIAL),
            ("99.99", AccrualStatus.PARTIAL),
            ("100", AccrualStatus.PAID),
        ],
    )
    def test_accrual_status(self, allocated, expected):
        assert accrual_status_for(Decimal("100"), Decimal(allocated)) is expected

    def test_payment_status(self):
        assert payment_status_for(Decimal("10"), Decimal("0")) is PaymentAllocationStatus.UNALLOCATED
        assert payment_status_for(Decimal("10"), Decimal("4")) is PaymentAllocationStatus.PARTIALLY_ALLOCATED
        assert payment_status_for(Decimal("10"), Decimal("10")) is PaymentAllocationStatus.ALLOCATED


class TestAllocatePayment:
    """Tests for FIFO allocation."""

    def test_fifo_order(self, temp_db, allocation_service, payment_service, fifo_accruals):
        """Oldest accrual is paid first, the rest spills into the next one."""
        payment_id = _pay(payment_service, "250")

        allocations = allocation_service.allocate_payment(payment_id)

        assert [(a.accrual_id, a.amount) for a in allocations] == [
            (fifo_accruals[0], Decimal("100.00")),
            (fifo_accruals[1], Decimal("150.00")),
        ]
        statuses = [temp_db.get_accrual(a).status for a in fifo_accruals]
        assert statuses == [AccrualStatus.PAID, AccrualStatus.PARTIAL, AccrualStatus.PENDING]
        assert _allocated(temp_db, fifo_accruals[2]) == Decimal("0")
        _assert_allocation_bounds(temp_db)

    def test_fifo_ignores_insertion_order(self, temp_db, accrual_service, allocation_service, payment_service,
                                          sample_period, tariffs):
        """FIFO follows created_at, not the order accruals were stored in."""
        newer = accrual_service.create_accrual(
            sample_period.id, "A-1", tariffs[0], amount="100", created_at=T0 + timedelta(days=1)
        )
        older = accrual_service.create_accrual(sample_period.id, "A-1", tariffs[1], amount="100", created_at=T0)
        payment_id = _pay(payment_service, "100")

        allocations = allocation_service.allocate_payment(payment_id)

        assert [a.accrual_id for a in allocations] == [older]
        assert temp_db.get_accrual(newer).status is AccrualStatus.PENDING

    def test_fifo_across_periods(self, temp_db, accrual_service, period_service, allocation_service,
                                 payment_service, sample_period, tariffs):
        feb = period_service.create_period(year=2025, month=2)
        jan_accrual = accrual_service.create_accrual(sample_period.id, "A-1", tariffs[0], amount="500", created_at=T0)
        feb_accrual = accrual_service.create_accrual(
            feb, "A-1", tariffs[0], amount="500", created_at=T0 + timedelta(days=31)
        )
        payment_id = _pay(payment_service, "700")

        allocation_service.allocate_payment(payment_id)

        assert _allocated(temp_db, jan_accrual) == Decimal("500.00")
        assert _allocated(temp_db, feb_accrual) == Decimal("200.00")

    def test_idempotent(self, temp_db, allocation_service, payment_service, fifo_accruals):
        payment_id = _pay(payment_service, "250")

        first = allocation_service.allocate_payment(payment_id)
        second = allocation_service.allocate_payment(payment_id)

        assert second == first
        assert len(temp_db.list_allocations()) == 2

    def test_second_payment_continues_fifo(self, temp_db, allocation_service, payment_service, fifo_accruals):
        allocation_service.allocate_payment(_pay(payment_service, "250"))

        allocations = allocation_service.allocate_payment(_pay(payment_service, "100"))

        assert [(a.accrual_id, a.amount) for a in allocations] == [
            (fifo_accruals[1], Decimal("50.00")),
            (fifo_accruals[2], Decimal("50.00")),
        ]
        assert all(temp_db.get_accrual(a).status is AccrualStatus.PAID for a in fifo_accruals)
        _assert_allocation_bounds(temp_db)

    def test_only_own_plot(self, temp_db, accrual_service, allocation_service, payment_service,
                           sample_period, tariffs):
        other = accrual_service.create_accrual(sample_period.id, "B-2", tariffs[0], amount="100")
        payment_id = _pay(payment_service, "100")

        assert allocation_service.allocate_payment(payment_id) == []
        assert temp_db.get_accrual(other).status is AccrualStatus.PENDING

    def test_overpayment_kept_as_unallocated(self, temp_db, allocation_service, payment_service,
                                             fifo_accruals, caplog):
        payment_id = _pay(payment_service, "500")

        with caplog.at_level(logging.WARNING, logger="sntbilling.domain.allocation"):
            allocations = allocation_service.allocate_payment(payment_id)

        assert sum(a.amount for a in allocations) == Decimal("350.00")
        summary = allocation_service.get_payment_allocation_summary(payment_id)
        assert summary.unallocated == Decimal("150.00")
        assert summary.status is PaymentAllocationStatus.PARTIALLY_ALLOCATED
        assert "150.00 left unallocated" in caplog.text
        _assert_allocation_bounds(temp_db)

    def test_missing_payment(self, allocation_service):
        with pytest.raises(NotFoundError, match="Payment not found: 404"):
            allocation_service.allocate_payment(404)

    def test_payment_without_plot(self, allocation_service, payment_service):
        payment_id = payment_service.create_payment(paid_at=date(2025, 1, 20), amount="10")
        with pytest.raises(ValidationError, match="has no plotId, cannot allocate"):
            allocation_service.allocate_payment(payment_id)

    def test_closed_period_accruals_still_payable(self, temp_db, period_service, allocation_service,
                                                  payment_service, sample_period, fifo_accruals):
        period_service.close_period(sample_period.id)

        allocation_service.allocate_payment(_pay(payment_service, "100"))

        assert temp_db.get_accrual(fifo_accruals[0]).status is AccrualStatus.PAID

    def test_concurrent_calls_do_not_overallocate(self, temp_db, allocation_service, payment_service,
                                                  fifo_accruals):
        if temp_db.__class__.__name__ != "InMemoryDatabase":
            pytest.skip("a SQLAlchemy session is not shared across threads")
        payments = [_pay(payment_service, "200") for _ in range(4)]
        errors = []

        def worker(payment_id):
            try:
                allocation_service.allocate_payment(payment_id)
            except Exception as exc:  # pragma: no cover - surfaced by the assert below
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(p,)) for p in payments]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        _assert_allocation_bounds(temp_db)
        assert sum(temp_db.get_allocated_by_accrual().values()) == Decimal("350.00")


class TestManualAllocation:
    """Tests for explicit allocations."""

    def test_allocate_manual(self, temp_db, allocation_service, payment_service, fifo_accruals):
        payment_id = _pay(payment_service, "100")

        allocation = allocation_service.allocate_manual(payment_id, fifo_accruals[2], "30")

        assert allocation.amount == Decimal("30.00")
        assert temp_db.get_accrual(fifo_accruals[2]).status is AccrualStatus.PARTIAL
        assert temp_db.get_accrual(fifo_accruals[0]).status is AccrualStatus.PENDING

    def test_exceeds_accrual_remaining(self, allocation_service, payment_service, fifo_accruals):
        payment_id = _pay(payment_service, "100")
        with pytest.raises(ValidationError, match="exceeds the remaining balance"):
            allocation_service.allocate_manual(payment_id, fifo_accruals[2], "60")

    def test_exceeds_payment_remaining(self, allocation_service, payment_service, fifo_accruals):
        payment_id = _pay(payment_service, "40")
        allocation_service.allocate_manual(payment_id, fifo_accruals[0], "30")
        with pytest.raises(ValidationError, match="exceeds the remaining balance"):
            allocation_service.allocate_manual(payment_id, fifo_accruals[1], "20")

    def test_other_plot_rejected(self, allocation_service, payment_service, fifo_accruals):
        payment_id = _pay(payment_service, "40", plot_id="B-2")
        with pytest.raises(ValidationError, match="belongs to plot 'A-1'"):
            allocation_service.allocate_manual(payment_id, fifo_accruals[0], "10")

    def test_non_positive_amount(self, allocation_service, payment_service, fifo_accruals):
        payment_id = _pay(payment_service, "40")
        with pytest.raises(ValidationError, match="must be positive"):
            allocation_service.allocate_manual(payment_id, fifo_accruals[0], "0")

    def test_missing_accrual(self, allocation_service, payment_service):
        payment_id = _pay(payment_service, "40")
        with pytest.raises(NotFoundError, match="Accrual not found: 99"):
            allocation_service.allocate_manual(payment_id, 99, "10")


class TestAutoAllocate:
    """Tests for batch allocation."""

    def test_oldest_payment_first(self, temp_db, allocation_service, payment_service, fifo_accruals):
        later = _pay(payment_service, "300", paid_at=date(2025, 1, 25))
        earlier = _pay(payment_service, "100", paid_at=date(2025, 1, 10))
        unassigned = payment_service.create_payment(paid_at=date(2025, 1, 5), amount="50")

        result = allocation_service.auto_allocate()

        assert result.created_count == 3
        assert result.period_ids == (temp_db.get_accrual(fifo_accruals[0]).period_id,)
        first = temp_db.list_allocations()[0]
        assert (first.payment_id, first.accrual_id) == (earlier, fifo_accruals[0])
        assert allocation_service.get_payment_allocation_summary(later).unallocated == Decimal("50.00")
        assert allocation_service.get_payment_allocation_summary(unassigned).allocated == Decimal("0")

    def test_restrict_to_payment_ids(self, allocation_service, payment_service, fifo_accruals):
        wanted = _pay(payment_service, "100")
        other = _pay(payment_service, "100")

        result = allocation_service.auto_allocate(payment_ids=[wanted])

        assert result.created_count == 1
        assert allocation_service.list_allocations(payment_id=other) == []

    def test_restrict_to_period_dates(self, allocation_service, payment_service, sample_period, fifo_accruals):
        _pay(payment_service, "100", paid_at=date(2024, 12, 31))
        in_january = _pay(payment_service, "100", paid_at=date(2025, 1, 31))

        result = allocation_service.auto_allocate(period_id=sample_period.id)

        assert result.created_count == 1
        assert allocation_service.list_allocations()[0].payment_id == in_january

    def test_nothing_to_do(self, allocation_service):
        result = allocation_service.auto_allocate()
        assert result.created_count == 0
        assert result.period_ids == ()

    def test_unknown_payment_id(self, allocation_service):
        with pytest.raises(NotFoundError):
            allocation_service.auto_allocate(payment_ids=[12])


class TestUnapply:
    """Tests for removing allocations."""

    def test_unapply_allocation(self, temp_db, allocation_service, payment_service, fifo_accruals):
        payment_id = _pay(payment_service, "250")
        allocations = allocation_service.allocate_payment(payment_id)

        assert allocation_service.unapply_allocation(allocations[1].id) is True

        assert temp_db.get_accrual(fifo_accruals[1]).status is AccrualStatus.PENDING
        assert temp_db.get_accrual(fifo_accruals[0]).status is AccrualStatus.PAID
        _assert_allocation_bounds(temp_db)

    def test_unapply_missing_allocation(self, allocation_service):
        assert allocation_service.unapply_allocation(999) is False

    def test_unapply_payment(self, temp_db, allocation_service, payment_service, fifo_accruals):
        payment_id = _pay(payment_service, "250")
        allocation_service.allocate_payment(payment_id)

        assert allocation_service.unapply_payment(payment_id) == 2

        assert all(temp_db.get_accrual(a).status is AccrualStatus.PENDING for a in fifo_accruals)
        summary = allocation_service.get_payment_allocation_summary(payment_id)
        assert summary.status is PaymentAllocationStatus.UNALLOCATED

    def test_reallocate_after_unapply(self, allocation_service, payment_service, fifo_accruals):
        payment_id = _pay(payment_service, "250")
        first = allocation_service.allocate_payment(payment_id)
        allocation_service.unapply_payment(payment_id)

        second = allocation_service.allocate_payment(payment_id)

        assert [(a.accrual_id, a.amount) for a in second] == [(a.accrual_id, a.amount) for a in first]


def test_recalculate_statuses(temp_db, allocation_service, payment_service, fifo_accruals):
    allocation_service.allocate_payment(_pay(payment_service, "250"))
    # Corrupt the stored status behind the service's back
    temp_db.update_accrual(fifo_accruals[0], status=AccrualStatus.PENDING)

    changed = allocation_service.recalculate_statuses(plot_id="A-1")

    assert changed == 1
    assert temp_db.get_accrual(fifo_accruals[0]).status is AccrualStatus.PAID
    assert allocation_service.recalculate_statuses() == 0
