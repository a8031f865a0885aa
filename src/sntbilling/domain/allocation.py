"""Payment allocation domain service.

Payments are distributed onto a plot's accruals oldest charge first. Accrual
statuses are stored on the accrual but always follow from the allocation
totals, see accrual_status_for().
"""

import logging
from contextlib import nullcontext
from decimal import Decimal
from typing import Iterable, Optional

from sntbilling.database.base import Database
from sntbilling.domain import errors
from sntbilling.domain.entities import (
    Accrual,
    AccrualFilter,
    AccrualStatus,
    AllocationFilter,
    AutoAllocationResult,
    Payment,
    PaymentAllocation,
    PaymentAllocationStatus,
    PaymentAllocationSummary,
    PaymentFilter,
)
from sntbilling.domain.validation import positive_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def accrual_status_for(amount: Decimal, allocated: Decimal) -> AccrualStatus:
    """Derive an accrual status from its amount and allocated total."""
    if allocated <= 0:
        return AccrualStatus.PENDING
    if allocated >= amount:
        return AccrualStatus.PAID
    return AccrualStatus.PARTIAL


def payment_status_for(amount: Decimal, allocated: Decimal) -> PaymentAllocationStatus:
    """Derive how much of a payment has been distributed."""
    if allocated <= 0:
        return PaymentAllocationStatus.UNALLOCATED
    if allocated >= amount:
        return PaymentAllocationStatus.ALLOCATED
    return PaymentAllocationStatus.PARTIALLY_ALLOCATED


def sync_accrual_statuses(db: Database, accrual_ids: Iterable[int]) -> int:
    """Rewrite stored statuses of the given accruals from allocation sums.

    Accruals that no longer exist are skipped.

    Returns:
        Number of accruals whose status changed
    """
    ids = sorted(set(accrual_ids))
    if not ids:
        return 0
    allocated = db.get_allocated_by_accrual(ids)
    changed = 0
    for accrual_id in ids:
        accrual = db.get_accrual(accrual_id)
        if accrual is None:
            continue
        status = accrual_status_for(accrual.amount, allocated.get(accrual_id, ZERO))
        if status != accrual.status:
            db.update_accrual(accrual_id, status=status)
            logger.debug(f"Accrual {accrual_id} status {accrual.status.value} -> {status.value}")
            changed += 1
    return changed


class AllocationService:
    """Service for distributing payments onto accruals."""

    def __init__(self, db: Database):
        """Initialize allocation service.

        Args:
            db: Database instance
        """
        self.db = db

    def _require_payment(self, payment_id: int) -> Payment:
        payment = self.db.get_payment(payment_id)
        if payment is None:
            raise errors.NotFoundError(errors.payment_not_found(payment_id))
        return payment

    def _lock(self, plot_id: Optional[str]):
        if plot_id is None:
            return nullcontext()
        return self.db.plot_lock(plot_id)

    def _allocated_to_payment(self, payment_id: int) -> tuple[list[PaymentAllocation], Decimal]:
        allocations = self.db.list_allocations(AllocationFilter(payment_id=payment_id))
        return allocations, sum((a.amount for a in allocations), ZERO)

    def _outstanding_accruals(self, plot_id: str) -> list[tuple[Accrual, Decimal, Decimal]]:
        """Return (accrual, allocated, remaining) for unpaid accruals, oldest first."""
        accruals = self.db.list_accruals(AccrualFilter(plot_id=plot_id))
        if not accruals:
            return []
        allocated = self.db.get_allocated_by_accrual([a.id for a in accruals])

        outstanding = []
        for accrual in accruals:
            already = allocated.get(accrual.id, ZERO)
            remaining = accrual.amount - already
            if remaining > 0:
                outstanding.append((accrual, already, remaining))
        outstanding.sort(key=lambda item: (item[0].created_at, item[0].id))
        return outstanding

    def _set_status(self, accrual: Accrual, allocated: Decimal) -> None:
        status = accrual_status_for(accrual.amount, allocated)
        if status != accrual.status:
            self.db.update_accrual(accrual.id, status=status)

    def _allocate_fifo(self, payment: Payment) -> tuple[list[PaymentAllocation], list[PaymentAllocation]]:
        """Allocate the unallocated part of a payment. Caller holds the plot lock.

        Returns:
            Tuple of (existing allocations, newly created allocations)
        """
        existing, already = self._allocated_to_payment(payment.id)
        to_allocate = payment.amount - already
        if to_allocate <= 0:
            logger.debug(f"Payment {payment.id} is already fully allocated")
            return existing, []

        created = []
        for accrual, allocated, remaining in self._outstanding_accruals(payment.plot_id):
            if to_allocate <= 0:
                break
            share = min(to_allocate, remaining)
            allocation_id = self.db.create_allocation(
                payment_id=payment.id, accrual_id=accrual.id, amount=share
            )
            created.append(self.db.get_allocation(allocation_id))
            self._set_status(accrual, allocated + share)
            to_allocate -= share

        if created:
            logger.info(
                f"Allocated payment {payment.id} to {len(created)} accrual(s) on plot '{payment.plot_id}'"
            )
        if to_allocate > 0:
            logger.warning(
                f"Payment {payment.id} exceeds the debt of plot '{payment.plot_id}': "
                f"{to_allocate} left unallocated"
            )
        return existing, created

    def allocate_payment(self, payment_id: int) -> list[PaymentAllocation]:
        """Distribute a payment onto its plot's accruals, oldest charge first.

        Calling this again for a fully allocated payment changes nothing. Any
        amount exceeding the plot's outstanding accruals stays unallocated on
        the payment and shows up as plot credit.

        Args:
            payment_id: Payment ID

        Returns:
            Existing allocations of the payment followed by the new ones

        Raises:
            NotFoundError: If payment doesn't exist
            ValidationError: If the payment is not linked to a plot
        """
        payment = self._require_payment(payment_id)
        if not payment.plot_id:
            raise errors.ValidationError(errors.payment_without_plot(payment_id))

        with self.db.plot_lock(payment.plot_id):
            existing, created = self._allocate_fifo(payment)
        return existing + created

    def allocate_manual(self, payment_id: int, accrual_id: int, amount: Decimal) -> PaymentAllocation:
        """Allocate an explicit amount of a payment onto one accrual.

        Args:
            payment_id: Payment ID
            accrual_id: Accrual ID (must belong to the payment's plot)
            amount: Amount to allocate

        Returns:
            The created allocation

        Raises:
            NotFoundError: If payment or accrual doesn't exist
            ValidationError: If the amount is not positive, exceeds what is
                left on the payment or the accrual, or plots differ
        """
        payment = self._require_payment(payment_id)
        if not payment.plot_id:
            raise errors.ValidationError(errors.payment_without_plot(payment_id))
        accrual = self.db.get_accrual(accrual_id)
        if accrual is None:
            raise errors.NotFoundError(errors.accrual_not_found(accrual_id))
        if accrual.plot_id != payment.plot_id:
            raise errors.ValidationError(
                f"Accrual {accrual_id} belongs to plot '{accrual.plot_id}', "
                f"payment {payment_id} to plot '{payment.plot_id}'"
            )
        amount = positive_money(amount, "Allocation")

        with self.db.plot_lock(payment.plot_id):
            _, payment_allocated = self._allocated_to_payment(payment_id)
            accrual_allocated = self.db.get_allocated_by_accrual([accrual_id]).get(accrual_id, ZERO)
            if amount > payment.amount - payment_allocated or amount > accrual.amount - accrual_allocated:
                raise errors.ValidationError(errors.allocation_exceeds_remaining(amount))

            allocation_id = self.db.create_allocation(
                payment_id=payment_id, accrual_id=accrual_id, amount=amount
            )
            self._set_status(accrual, accrual_allocated + amount)

        logger.info(f"Manually allocated {amount} of payment {payment_id} to accrual {accrual_id}")
        return self.db.get_allocation(allocation_id)

    def auto_allocate(
        self,
        payment_ids: Optional[Iterable[int]] = None,
        period_id: Optional[int] = None,
    ) -> AutoAllocationResult:
        """Run FIFO allocation for every payment with money left to distribute.

        Payments without a plot are skipped. Oldest payment dates go first.

        Args:
            payment_ids: Only these payments
            period_id: Only payments paid within this period's month

        Returns:
            Number of allocations created and the periods they touched

        Raises:
            NotFoundError: If a given payment or the period doesn't exist
        """
        if period_id is not None:
            period = self.db.get_period(period_id)
            if period is None:
                raise errors.NotFoundError(errors.period_not_found(period_id))
            payments = self.db.list_payments(
                PaymentFilter(paid_from=period.start_date, paid_to=period.end_date)
            )
        else:
            payments = self.db.list_payments()

        if payment_ids is not None:
            wanted = set(payment_ids)
            for payment_id in sorted(wanted):
                self._require_payment(payment_id)
            payments = [p for p in payments if p.id in wanted]

        payments = sorted((p for p in payments if p.plot_id), key=lambda p: (p.paid_at, p.id))

        created_count = 0
        period_ids = set()
        for payment in payments:
            with self.db.plot_lock(payment.plot_id):
                _, created = self._allocate_fifo(payment)
            created_count += len(created)
            for allocation in created:
                accrual = self.db.get_accrual(allocation.accrual_id)
                if accrual is not None:
                    period_ids.add(accrual.period_id)

        logger.info(f"Auto allocation created {created_count} allocation(s)")
        return AutoAllocationResult(created_count=created_count, period_ids=tuple(sorted(period_ids)))

    def unapply_allocation(self, allocation_id: int) -> bool:
        """Delete one allocation and recompute its accrual's status.

        Args:
            allocation_id: Allocation ID

        Returns:
            True if deleted, False if the allocation didn't exist
        """
        allocation = self.db.get_allocation(allocation_id)
        if allocation is None:
            return False

        accrual = self.db.get_accrual(allocation.accrual_id)
        with self._lock(accrual.plot_id if accrual is not None else None):
            self.db.delete_allocation(allocation_id)
            sync_accrual_statuses(self.db, [allocation.accrual_id])

        logger.info(f"Unapplied allocation {allocation_id} ({allocation.amount})")
        return True

    def unapply_payment(self, payment_id: int) -> int:
        """Delete all allocations of a payment.

        Args:
            payment_id: Payment ID

        Returns:
            Number of allocations removed

        Raises:
            NotFoundError: If payment doesn't exist
        """
        payment = self._require_payment(payment_id)
        with self._lock(payment.plot_id):
            allocations, _ = self._allocated_to_payment(payment_id)
            removed = self.db.delete_allocations_for_payment(payment_id)
            sync_accrual_statuses(self.db, (a.accrual_id for a in allocations))

        logger.info(f"Unapplied {removed} allocation(s) of payment {payment_id}")
        return removed

    def list_allocations(
        self, payment_id: Optional[int] = None, accrual_id: Optional[int] = None
    ) -> list[PaymentAllocation]:
        """List allocations in creation order."""
        return self.db.list_allocations(AllocationFilter(payment_id=payment_id, accrual_id=accrual_id))

    def get_payment_allocation_summary(self, payment_id: int) -> PaymentAllocationSummary:
        """Report how much of a payment has been allocated.

        Raises:
            NotFoundError: If payment doesn't exist
        """
        payment = self._require_payment(payment_id)
        _, allocated = self._allocated_to_payment(payment_id)
        return PaymentAllocationSummary(
            payment_id=payment_id,
            amount=payment.amount,
            allocated=allocated,
            unallocated=max(ZERO, payment.amount - allocated),
            status=payment_status_for(payment.amount, allocated),
        )

    def recalculate_statuses(self, plot_id: Optional[str] = None) -> int:
        """Rewrite stored accrual statuses from allocation sums.

        Args:
            plot_id: Only accruals of this plot

        Returns:
            Number of accruals whose status changed
        """
        accruals = self.db.list_accruals(AccrualFilter(plot_id=plot_id))
        with self._lock(plot_id):
            changed = sync_accrual_statuses(self.db, (a.id for a in accruals))
        if changed:
            logger.info(f"Recalculated statuses: {changed} accrual(s) changed")
        return changed
