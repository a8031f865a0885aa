"""Abstract billing store interface."""

import threading
from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

# Import entities directly to avoid circular import through domain/__init__.py
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


class Database(ABC):
    """Abstract billing store.

    One instance holds the whole billing state. Services receive it through
    their constructor; nothing reads a module-level store.

    The store is single-writer: it does no locking of its own apart from the
    per-plot locks handed out by plot_lock(), which the allocation service
    holds around its read-modify-write cycles.
    """

    def __init__(self) -> None:
        self._plot_locks: dict[str, threading.RLock] = {}
        self._plot_locks_guard = threading.Lock()

    def plot_lock(self, plot_id: str) -> threading.RLock:
        """Return the lock serializing allocation work for one plot."""
        with self._plot_locks_guard:
            lock = self._plot_locks.get(plot_id)
            if lock is None:
                lock = threading.RLock()
                self._plot_locks[plot_id] = lock
            return lock

    @abstractmethod
    def connect(self) -> None:
        """Connect to the store."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the store."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize store schema (create tables)."""
        pass

    # Period operations
    @abstractmethod
    def create_period(
        self,
        year: int,
        month: int,
        status: PeriodStatus = PeriodStatus.OPEN,
        created_at: Optional[datetime] = None,
    ) -> int:
        """Create a period. Returns period ID.

        Raises:
            ConflictError: If a period for the same year and month exists
        """
        pass

    @abstractmethod
    def get_period(self, period_id: int) -> Optional[Period]:
        """Get period by ID."""
        pass

    @abstractmethod
    def get_period_by_month(self, year: int, month: int) -> Optional[Period]:
        """Get period by year and month."""
        pass

    @abstractmethod
    def list_periods(self, filters: Optional[PeriodFilter] = None) -> list[Period]:
        """List periods, newest first."""
        pass

    @abstractmethod
    def update_period_status(self, period_id: int, status: PeriodStatus) -> None:
        """Set period status."""
        pass

    @abstractmethod
    def delete_period(self, period_id: int) -> None:
        """Delete a period. Accruals of the period are left in place."""
        pass

    # Tariff operations
    @abstractmethod
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
        """Create a tariff. Returns tariff ID.

        Raises:
            ConflictError: If a tariff with the same code exists
        """
        pass

    @abstractmethod
    def get_tariff(self, tariff_id: int) -> Optional[Tariff]:
        """Get tariff by ID."""
        pass

    @abstractmethod
    def get_tariff_by_code(self, code: str) -> Optional[Tariff]:
        """Get tariff by code."""
        pass

    @abstractmethod
    def list_tariffs(self, filters: Optional[TariffFilter] = None) -> list[Tariff]:
        """List tariffs, active first, then by code."""
        pass

    @abstractmethod
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
        """Update tariff fields. None leaves a field unchanged.

        Raises:
            ConflictError: If the new code belongs to another tariff
        """
        pass

    @abstractmethod
    def delete_tariff(self, tariff_id: int) -> None:
        """Delete a tariff."""
        pass

    # Accrual operations
    @abstractmethod
    def create_accrual(
        self,
        period_id: int,
        plot_id: str,
        tariff_id: int,
        amount: Decimal,
        status: AccrualStatus = AccrualStatus.PENDING,
        created_at: Optional[datetime] = None,
    ) -> int:
        """Create an accrual. Returns accrual ID.

        Raises:
            ConflictError: If the period/plot/tariff combination exists
        """
        pass

    @abstractmethod
    def get_accrual(self, accrual_id: int) -> Optional[Accrual]:
        """Get accrual by ID."""
        pass

    @abstractmethod
    def find_accrual(self, period_id: int, plot_id: str, tariff_id: int) -> Optional[Accrual]:
        """Get the accrual for a period/plot/tariff combination."""
        pass

    @abstractmethod
    def list_accruals(self, filters: Optional[AccrualFilter] = None) -> list[Accrual]:
        """List accruals, newest first."""
        pass

    @abstractmethod
    def update_accrual(
        self,
        accrual_id: int,
        amount: Optional[Decimal] = None,
        status: Optional[AccrualStatus] = None,
    ) -> None:
        """Update accrual amount and/or status."""
        pass

    @abstractmethod
    def delete_accrual(self, accrual_id: int) -> None:
        """Delete an accrual."""
        pass

    # Payment operations
    @abstractmethod
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
        pass

    @abstractmethod
    def get_payment(self, payment_id: int) -> Optional[Payment]:
        """Get payment by ID."""
        pass

    @abstractmethod
    def find_payment(
        self, external_id: Optional[str] = None, raw_row_hash: Optional[str] = None
    ) -> Optional[Payment]:
        """Get the first payment matching an external ID or a row hash."""
        pass

    @abstractmethod
    def list_payments(self, filters: Optional[PaymentFilter] = None) -> list[Payment]:
        """List payments, newest first."""
        pass

    @abstractmethod
    def update_payment(
        self,
        payment_id: int,
        plot_id: Optional[str] = None,
        comment: Optional[str] = None,
        clear_plot: bool = False,
    ) -> None:
        """Update the mutable payment fields (plot link and comment)."""
        pass

    @abstractmethod
    def delete_payment(self, payment_id: int) -> None:
        """Delete a payment together with its allocations."""
        pass

    # Allocation operations
    @abstractmethod
    def create_allocation(
        self,
        payment_id: int,
        accrual_id: int,
        amount: Decimal,
        created_at: Optional[datetime] = None,
    ) -> int:
        """Create a payment allocation. Returns allocation ID."""
        pass

    @abstractmethod
    def get_allocation(self, allocation_id: int) -> Optional[PaymentAllocation]:
        """Get allocation by ID."""
        pass

    @abstractmethod
    def list_allocations(self, filters: Optional[AllocationFilter] = None) -> list[PaymentAllocation]:
        """List allocations in creation order."""
        pass

    @abstractmethod
    def delete_allocation(self, allocation_id: int) -> None:
        """Delete one allocation."""
        pass

    @abstractmethod
    def delete_allocations_for_payment(self, payment_id: int) -> int:
        """Delete all allocations of a payment. Returns number removed."""
        pass

    @abstractmethod
    def get_allocated_by_accrual(
        self, accrual_ids: Optional[Iterable[int]] = None
    ) -> dict[int, Decimal]:
        """Sum allocations per accrual.

        Args:
            accrual_ids: Optional accrual IDs to restrict the sums to

        Returns:
            Mapping of accrual ID to allocated total. Accruals without
            allocations are absent.
        """
        pass

    # Penalty operations
    @abstractmethod
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
        """Create an active penalty accrual. Returns penalty ID.

        Raises:
            ConflictError: If the plot already has an active or frozen
                penalty in the period
        """
        pass

    @abstractmethod
    def get_penalty(self, penalty_id: int) -> Optional[PenaltyAccrual]:
        """Get penalty accrual by ID."""
        pass

    @abstractmethod
    def find_penalty(self, period_id: int, plot_id: str) -> Optional[PenaltyAccrual]:
        """Get the active or frozen penalty of a plot in a period."""
        pass

    @abstractmethod
    def list_penalties(self, filters: Optional[PenaltyFilter] = None) -> list[PenaltyAccrual]:
        """List penalty accruals, newest first."""
        pass

    @abstractmethod
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
        """Update penalty fields and touch updated_at.

        Raises:
            NotFoundError: If penalty doesn't exist
        """
        pass
