"""In-memory implementation of the billing store.

State lives in plain lists on the instance and is lost with it. Entities are
frozen dataclasses, so updates replace the stored object.
"""

import itertools
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

from sntbilling.database.base import Database
from sntbilling.domain import errors
from sntbilling.domain.entities import (
    Accrual,
    AccrualFilter,
    AccrualStatus,
    AllocationFilter,
    AppliesTo,
    Payment,
    PaymentAllocation,
    PaymentFilter,
    PaymentSource,
    PenaltyAccrual,
    PenaltyFilter,
    PenaltyStatus,
    Period,
    PeriodFilter,
    PeriodStatus,
    Recurrence,
    Tariff,
    TariffFilter,
    TariffStatus,
)
from sntbilling.utils.amount_parser import to_money
from sntbilling.utils.date_parser import ensure_utc


def _newest_first(items):
    return sorted(items, key=lambda item: (item.created_at, item.id), reverse=True)


class InMemoryDatabase(Database):
    """List-backed implementation of Database interface."""

    def __init__(self):
        super().__init__()
        self.periods: list[Period] = []
        self.tariffs: list[Tariff] = []
        self.accruals: list[Accrual] = []
        self.payments: list[Payment] = []
        self.allocations: list[PaymentAllocation] = []
        self.penalties: list[PenaltyAccrual] = []
        self._ids = {
            "period": itertools.count(1),
            "tariff": itertools.count(1),
            "accrual": itertools.count(1),
            "payment": itertools.count(1),
            "allocation": itertools.count(1),
            "penalty": itertools.count(1),
        }

    def _next_id(self, kind: str) -> int:
        return next(self._ids[kind])

    @staticmethod
    def _index_of(items: list, item_id: int) -> int:
        for index, item in enumerate(items):
            if item.id == item_id:
                return index
        return -1

    def connect(self) -> None:
        """Connect to the store."""
        pass

    def disconnect(self) -> None:
        """Disconnect from the store."""
        pass

    def initialize_schema(self) -> None:
        """Initialize store schema."""
        pass

    # Period operations
    def create_period(
        self,
        year: int,
        month: int,
        status: PeriodStatus = PeriodStatus.OPEN,
        created_at: Optional[datetime] = None,
    ) -> int:
        """Create a period. Returns period ID."""
        if self.get_period_by_month(year, month) is not None:
            raise errors.ConflictError(errors.duplicate_period(year, month))
        period = Period(
            id=self._next_id("period"),
            year=year,
            month=month,
            status=PeriodStatus(status),
            created_at=ensure_utc(created_at),
        )
        self.periods.append(period)
        return period.id

    def get_period(self, period_id: int) -> Optional[Period]:
        """Get period by ID."""
        index = self._index_of(self.periods, period_id)
        return self.periods[index] if index != -1 else None

    def get_period_by_month(self, year: int, month: int) -> Optional[Period]:
        """Get period by year and month."""
        for period in self.periods:
            if period.year == year and period.month == month:
                return period
        return None

    def list_periods(self, filters: Optional[PeriodFilter] = None) -> list[Period]:
        """List periods, newest first."""
        filters = filters or PeriodFilter()
        result = self.periods
        if filters.status is not None:
            result = [p for p in result if p.status == filters.status]
        if filters.year is not None:
            result = [p for p in result if p.year == filters.year]
        return _newest_first(result)

    def update_period_status(self, period_id: int, status: PeriodStatus) -> None:
        """Set period status."""
        index = self._index_of(self.periods, period_id)
        if index == -1:
            raise errors.NotFoundError(errors.period_not_found(period_id))
        self.periods[index] = replace(self.periods[index], status=PeriodStatus(status))

    def delete_period(self, period_id: int) -> None:
        """Delete a period."""
        index = self._index_of(self.periods, period_id)
        if index == -1:
            raise errors.NotFoundError(errors.period_not_found(period_id))
        del self.periods[index]

    # Tariff operations
    def create_tariff(
        self,
        code: str,
        title: str,
        type: str,
        amount: Decimal,
        applies_to: AppliesTo,
        recurrence: Recurrence,
        active_from: date,
        active_to: Optional[date] = None,
        status: TariffStatus = TariffStatus.ACTIVE,
    ) -> int:
        """Create a tariff. Returns tariff ID."""
        if self.get_tariff_by_code(code) is not None:
            raise errors.ConflictError(errors.duplicate_tariff_code(code))
        tariff = Tariff(
            id=self._next_id("tariff"),
            code=code,
            title=title,
            type=type,
            amount=to_money(amount),
            applies_to=AppliesTo(applies_to),
            recurrence=Recurrence(recurrence),
            active_from=active_from,
            active_to=active_to,
            status=TariffStatus(status),
            created_at=ensure_utc(None),
        )
        self.tariffs.append(tariff)
        return tariff.id

    def get_tariff(self, tariff_id: int) -> Optional[Tariff]:
        """Get tariff by ID."""
        index = self._index_of(self.tariffs, tariff_id)
        return self.tariffs[index] if index != -1 else None

    def get_tariff_by_code(self, code: str) -> Optional[Tariff]:
        """Get tariff by code."""
        for tariff in self.tariffs:
            if tariff.code == code:
                return tariff
        return None

    def list_tariffs(self, filters: Optional[TariffFilter] = None) -> list[Tariff]:
        """List tariffs, active first, then by code."""
        filters = filters or TariffFilter()
        result = self.tariffs
        if filters.status is not None:
            result = [t for t in result if t.status == filters.status]
        if filters.type is not None:
            result = [t for t in result if t.type == filters.type]
        if filters.active_on is not None:
            result = [t for t in result if t.is_active_on(filters.active_on)]
        return sorted(result, key=lambda t: (t.status != TariffStatus.ACTIVE, t.code))

    def update_tariff(
        self,
        tariff_id: int,
        code: Optional[str] = None,
        title: Optional[str] = None,
        amount: Optional[Decimal] = None,
        active_to: Optional[date] = None,
        status: Optional[TariffStatus] = None,
        clear_active_to: bool = False,
    ) -> None:
        """Update tariff fields."""
        index = self._index_of(self.tariffs, tariff_id)
        if index == -1:
            raise errors.NotFoundError(errors.tariff_not_found(tariff_id))

        changes = {}
        if code is not None:
            existing = self.get_tariff_by_code(code)
            if existing is not None and existing.id != tariff_id:
                raise errors.ConflictError(errors.duplicate_tariff_code(code))
            changes["code"] = code
        if title is not None:
            changes["title"] = title
        if amount is not None:
            changes["amount"] = to_money(amount)
        if clear_active_to:
            changes["active_to"] = None
        elif active_to is not None:
            changes["active_to"] = active_to
        if status is not None:
            changes["status"] = TariffStatus(status)
        self.tariffs[index] = replace(self.tariffs[index], **changes)

    def delete_tariff(self, tariff_id: int) -> None:
        """Delete a tariff."""
        index = self._index_of(self.tariffs, tariff_id)
        if index == -1:
            raise errors.NotFoundError(errors.tariff_not_found(tariff_id))
        del self.tariffs[index]

    # Accrual operations
    def create_accrual(
        self,
        period_id: int,
        plot_id: str,
        tariff_id: int,
        amount: Decimal,
        status: AccrualStatus = AccrualStatus.PENDING,
        created_at: Optional[datetime] = None,
    ) -> int:
        """Create an accrual. Returns accrual ID."""
        if self.find_accrual(period_id, plot_id, tariff_id) is not None:
            raise errors.ConflictError(errors.duplicate_accrual(period_id, plot_id, tariff_id))
        accrual = Accrual(
            id=self._next_id("accrual"),
            period_id=period_id,
            plot_id=plot_id,
            tariff_id=tariff_id,
            amount=to_money(amount),
            status=AccrualStatus(status),
            created_at=ensure_utc(created_at),
        )
        self.accruals.append(accrual)
        return accrual.id

    def get_accrual(self, accrual_id: int) -> Optional[Accrual]:
        """Get accrual by ID."""
        index = self._index_of(self.accruals, accrual_id)
        return self.accruals[index] if index != -1 else None

    def find_accrual(self, period_id: int, plot_id: str, tariff_id: int) -> Optional[Accrual]:
        """Get the accrual for a period/plot/tariff combination."""
        for accrual in self.accruals:
            if (
                accrual.period_id == period_id
                and accrual.plot_id == plot_id
                and accrual.tariff_id == tariff_id
            ):
                return accrual
        return None

    def list_accruals(self, filters: Optional[AccrualFilter] = None) -> list[Accrual]:
        """List accruals, newest first."""
        filters = filters or AccrualFilter()
        result = self.accruals
        if filters.period_id is not None:
            result = [a for a in result if a.period_id == filters.period_id]
        if filters.plot_id is not None:
            result = [a for a in result if a.plot_id == filters.plot_id]
        if filters.tariff_id is not None:
            result = [a for a in result if a.tariff_id == filters.tariff_id]
        if filters.status is not None:
            result = [a for a in result if a.status == filters.status]
        return _newest_first(result)

    def update_accrual(
        self,
        accrual_id: int,
        amount: Optional[Decimal] = None,
        status: Optional[AccrualStatus] = None,
    ) -> None:
        """Update accrual amount and/or status."""
        index = self._index_of(self.accruals, accrual_id)
        if index == -1:
            raise errors.NotFoundError(errors.accrual_not_found(accrual_id))
        changes = {}
        if amount is not None:
            changes["amount"] = to_money(amount)
        if status is not None:
            changes["status"] = AccrualStatus(status)
        self.accruals[index] = replace(self.accruals[index], **changes)

    def delete_accrual(self, accrual_id: int) -> None:
        """Delete an accrual."""
        index = self._index_of(self.accruals, accrual_id)
        if index == -1:
            raise errors.NotFoundError(errors.accrual_not_found(accrual_id))
        del self.accruals[index]

    # Payment operations
    def create_payment(
        self,
        paid_at: date,
        amount: Decimal,
        source: PaymentSource,
        plot_id: Optional[str] = None,
        external_id: Optional[str] = None,
        raw_row_hash: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> int:
        """Create a payment. Returns payment ID."""
        payment = Payment(
            id=self._next_id("payment"),
            plot_id=plot_id,
            paid_at=paid_at,
            amount=to_money(amount),
            source=PaymentSource(source),
            external_id=external_id,
            raw_row_hash=raw_row_hash,
            comment=comment,
            created_at=ensure_utc(None),
        )
        self.payments.append(payment)
        return payment.id

    def get_payment(self, payment_id: int) -> Optional[Payment]:
        """Get payment by ID."""
        index = self._index_of(self.payments, payment_id)
        return self.payments[index] if index != -1 else None

    def find_payment(
        self, external_id: Optional[str] = None, raw_row_hash: Optional[str] = None
    ) -> Optional[Payment]:
        """Get the first payment matching an external ID or a row hash."""
        if external_id is None and raw_row_hash is None:
            return None
        for payment in self.payments:
            if external_id is not None and payment.external_id == external_id:
                return payment
            if raw_row_hash is not None and payment.raw_row_hash == raw_row_hash:
                return payment
        return None

    def list_payments(self, filters: Optional[PaymentFilter] = None) -> list[Payment]:
        """List payments, newest first."""
        filters = filters or PaymentFilter()
        result = self.payments
        if filters.plot_id is not None:
            result = [p for p in result if p.plot_id == filters.plot_id]
        if filters.unassigned:
            result = [p for p in result if p.plot_id is None]
        if filters.source is not None:
            result = [p for p in result if p.source == filters.source]
        if filters.paid_from is not None:
            result = [p for p in result if p.paid_at >= filters.paid_from]
        if filters.paid_to is not None:
            result = [p for p in result if p.paid_at <= filters.paid_to]
        return _newest_first(result)

    def update_payment(
        self,
        payment_id: int,
        plot_id: Optional[str] = None,
        comment: Optional[str] = None,
        clear_plot: bool = False,
    ) -> None:
        """Update the mutable payment fields."""
        index = self._index_of(self.payments, payment_id)
        if index == -1:
            raise errors.NotFoundError(errors.payment_not_found(payment_id))
        changes = {}
        if clear_plot:
            changes["plot_id"] = None
        elif plot_id is not None:
            changes["plot_id"] = plot_id
        if comment is not None:
            changes["comment"] = comment
        self.payments[index] = replace(self.payments[index], **changes)

    def delete_payment(self, payment_id: int) -> None:
        """Delete a payment together with its allocations."""
        index = self._index_of(self.payments, payment_id)
        if index == -1:
            raise errors.NotFoundError(errors.payment_not_found(payment_id))
        del self.payments[index]
        self.delete_allocations_for_payment(payment_id)

    # Allocation operations
    def create_allocation(
        self,
        payment_id: int,
        accrual_id: int,
        amount: Decimal,
        created_at: Optional[datetime] = None,
    ) -> int:
        """Create a payment allocation. Returns allocation ID."""
        allocation = PaymentAllocation(
            id=self._next_id("allocation"),
            payment_id=payment_id,
            accrual_id=accrual_id,
            amount=to_money(amount),
            created_at=ensure_utc(created_at),
        )
        self.allocations.append(allocation)
        return allocation.id

    def get_allocation(self, allocation_id: int) -> Optional[PaymentAllocation]:
        """Get allocation by ID."""
        index = self._index_of(self.allocations, allocation_id)
        return self.allocations[index] if index != -1 else None

    def list_allocations(self, filters: Optional[AllocationFilter] = None) -> list[PaymentAllocation]:
        """List allocations in creation order."""
        filters = filters or AllocationFilter()
        result = self.allocations
        if filters.payment_id is not None:
            result = [a for a in result if a.payment_id == filters.payment_id]
        if filters.accrual_id is not None:
            result = [a for a in result if a.accrual_id == filters.accrual_id]
        return list(result)

    def delete_allocation(self, allocation_id: int) -> None:
        """Delete one allocation."""
        index = self._index_of(self.allocations, allocation_id)
        if index == -1:
            raise errors.NotFoundError(errors.allocation_not_found(allocation_id))
        del self.allocations[index]

    def delete_allocations_for_payment(self, payment_id: int) -> int:
        """Delete all allocations of a payment. Returns number removed."""
        initial_length = len(self.allocations)
        self.allocations[:] = [a for a in self.allocations if a.payment_id != payment_id]
        return initial_length - len(self.allocations)

    def get_allocated_by_accrual(
        self, accrual_ids: Optional[Iterable[int]] = None
    ) -> dict[int, Decimal]:
        """Sum allocations per accrual."""
        wanted = set(accrual_ids) if accrual_ids is not None else None
        totals: dict[int, Decimal] = {}
        for allocation in self.allocations:
            if wanted is not None and allocation.accrual_id not in wanted:
                continue
            totals[allocation.accrual_id] = (
                totals.get(allocation.accrual_id, Decimal("0")) + allocation.amount
            )
        return totals

    # Penalty operations
    def create_penalty(
        self,
        period_id: int,
        plot_id: str,
        amount: Decimal,
        as_of: date,
        rate: Decimal,
        base_debt: Decimal,
        days_overdue: int,
        created_at: Optional[datetime] = None,
    ) -> int:
        """Create an active penalty accrual. Returns penalty ID."""
        if self.find_penalty(period_id, plot_id) is not None:
            raise errors.ConflictError(errors.duplicate_penalty(period_id, plot_id))
        created_at = ensure_utc(created_at)
        penalty = PenaltyAccrual(
            id=self._next_id("penalty"),
            period_id=period_id,
            plot_id=plot_id,
            amount=to_money(amount),
            status=PenaltyStatus.ACTIVE,
            as_of=as_of,
            rate=Decimal(rate),
            base_debt=to_money(base_debt),
            days_overdue=days_overdue,
            void_reason=None,
            freeze_reason=None,
            created_at=created_at,
            updated_at=created_at,
        )
        self.penalties.append(penalty)
        return penalty.id

    def get_penalty(self, penalty_id: int) -> Optional[PenaltyAccrual]:
        """Get penalty accrual by ID."""
        index = self._index_of(self.penalties, penalty_id)
        return self.penalties[index] if index != -1 else None

    def find_penalty(self, period_id: int, plot_id: str) -> Optional[PenaltyAccrual]:
        """Get the active or frozen penalty of a plot in a period."""
        for penalty in self.penalties:
            if (
                penalty.period_id == period_id
                and penalty.plot_id == plot_id
                and penalty.status != PenaltyStatus.VOIDED
            ):
                return penalty
        return None

    def list_penalties(self, filters: Optional[PenaltyFilter] = None) -> list[PenaltyAccrual]:
        """List penalty accruals, newest first."""
        filters = filters or PenaltyFilter()
        result = self.penalties
        if filters.period_id is not None:
            result = [p for p in result if p.period_id == filters.period_id]
        if filters.plot_id is not None:
            result = [p for p in result if p.plot_id == filters.plot_id]
        if filters.status is not None:
            result = [p for p in result if p.status == filters.status]
        return _newest_first(result)

    def update_penalty(
        self,
        penalty_id: int,
        amount: Optional[Decimal] = None,
        status: Optional[PenaltyStatus] = None,
        as_of: Optional[date] = None,
        rate: Optional[Decimal] = None,
        base_debt: Optional[Decimal] = None,
        days_overdue: Optional[int] = None,
        void_reason: Optional[str] = None,
        freeze_reason: Optional[str] = None,
        clear_void_reason: bool = False,
    ) -> None:
        """Update penalty fields and touch updated_at."""
        index = self._index_of(self.penalties, penalty_id)
        if index == -1:
            raise errors.NotFoundError(errors.penalty_not_found(penalty_id))
        changes = {"updated_at": ensure_utc(None)}
        if amount is not None:
            changes["amount"] = to_money(amount)
        if status is not None:
            changes["status"] = PenaltyStatus(status)
        if as_of is not None:
            changes["as_of"] = as_of
        if rate is not None:
            changes["rate"] = Decimal(rate)
        if base_debt is not None:
            changes["base_debt"] = to_money(base_debt)
        if days_overdue is not None:
            changes["days_overdue"] = days_overdue
        if clear_void_reason:
            changes["void_reason"] = None
        elif void_reason is not None:
            changes["void_reason"] = void_reason
        if freeze_reason is not None:
            changes["freeze_reason"] = freeze_reason
        self.penalties[index] = replace(self.penalties[index], **changes)
