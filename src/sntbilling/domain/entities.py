"""Domain model entities for sntbilling.

These are pure data classes representing billing concepts, independent of
the storage backend. Both the in-memory store and the SQLAlchemy store hand
these objects out, so services never see ORM rows.
"""

import calendar
from dataclasses import dataclass
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Optional


class PeriodStatus(str, Enum):
    """Billing period lifecycle state."""

    OPEN = "open"
    CLOSED = "closed"


class TariffStatus(str, Enum):
    """Whether a tariff is offered for new accruals."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class AppliesTo(str, Enum):
    """Charge basis of a tariff: flat per plot or per unit of plot area."""

    PLOT = "plot"
    AREA = "area"


class Recurrence(str, Enum):
    """How often a tariff is charged."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    ONE_TIME = "one-time"


class AccrualStatus(str, Enum):
    """Payment state of an accrual, derived from its allocations."""

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class PaymentSource(str, Enum):
    """Where a payment record came from."""

    IMPORT = "import"
    MANUAL = "manual"


class PenaltyStatus(str, Enum):
    """Lifecycle of a penalty accrual.

    Frozen penalties keep their amount when penalties are recalculated.
    Voided penalties are cancelled and no longer count.
    """

    ACTIVE = "active"
    FROZEN = "frozen"
    VOIDED = "voided"


class PaymentAllocationStatus(str, Enum):
    """How much of a payment has been distributed onto accruals."""

    UNALLOCATED = "unallocated"
    PARTIALLY_ALLOCATED = "partially_allocated"
    ALLOCATED = "allocated"


@dataclass(frozen=True)
class Period:
    """Billing period (calendar month)."""

    id: int
    year: int
    month: int
    status: PeriodStatus
    created_at: datetime

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def start_date(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end_date(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    @property
    def is_closed(self) -> bool:
        return self.status == PeriodStatus.CLOSED


@dataclass(frozen=True)
class Tariff:
    """Fee definition."""

    id: int
    code: str
    title: str
    type: str
    amount: Decimal
    applies_to: AppliesTo
    recurrence: Recurrence
    active_from: date
    active_to: Optional[date]
    status: TariffStatus
    created_at: datetime

    def is_active_on(self, day: date) -> bool:
        """Return True if the tariff window covers the given day."""
        if day < self.active_from:
            return False
        return self.active_to is None or day <= self.active_to


@dataclass(frozen=True)
class Accrual:
    """One charge of a tariff against a plot within a period."""

    id: int
    period_id: int
    plot_id: str
    tariff_id: int
    amount: Decimal
    status: AccrualStatus
    created_at: datetime


@dataclass(frozen=True)
class Payment:
    """Money received, possibly not yet linked to a plot."""

    id: int
    plot_id: Optional[str]
    paid_at: date
    amount: Decimal
    source: PaymentSource
    external_id: Optional[str]
    raw_row_hash: Optional[str]
    comment: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class PaymentAllocation:
    """Part of a payment applied to one accrual."""

    id: int
    payment_id: int
    accrual_id: int
    amount: Decimal
    created_at: datetime


@dataclass(frozen=True)
class PenaltyAccrual:
    """Late-payment penalty charged to a plot for the overdue debt of one period.

    as_of, rate, base_debt and days_overdue record how the amount was
    calculated. rate is the annual rate as a fraction (0.1 is 10%).
    """

    id: int
    period_id: int
    plot_id: str
    amount: Decimal
    status: PenaltyStatus
    as_of: date
    rate: Decimal
    base_debt: Decimal
    days_overdue: int
    void_reason: Optional[str]
    freeze_reason: Optional[str]
    created_at: datetime
    updated_at: datetime


# Filters. Every field is optional; None means "do not filter".


@dataclass(frozen=True)
class PeriodFilter:
    status: Optional[PeriodStatus] = None
    year: Optional[int] = None


@dataclass(frozen=True)
class TariffFilter:
    status: Optional[TariffStatus] = None
    type: Optional[str] = None
    active_on: Optional[date] = None


@dataclass(frozen=True)
class AccrualFilter:
    period_id: Optional[int] = None
    plot_id: Optional[str] = None
    tariff_id: Optional[int] = None
    status: Optional[AccrualStatus] = None


@dataclass(frozen=True)
class PaymentFilter:
    plot_id: Optional[str] = None
    source: Optional[PaymentSource] = None
    unassigned: bool = False
    paid_from: Optional[date] = None
    paid_to: Optional[date] = None


@dataclass(frozen=True)
class AllocationFilter:
    payment_id: Optional[int] = None
    accrual_id: Optional[int] = None


@dataclass(frozen=True)
class PenaltyFilter:
    period_id: Optional[int] = None
    plot_id: Optional[str] = None
    status: Optional[PenaltyStatus] = None


@dataclass(frozen=True)
class DebtFilter:
    period_id: Optional[int] = None
    plot_id: Optional[str] = None
    min_debt: Optional[Decimal] = None


# Aggregation results


@dataclass(frozen=True)
class PeriodSummary:
    """Totals for one billing period."""

    period_id: int
    total_accrued: Decimal
    total_paid: Decimal
    total_debt: Decimal


@dataclass(frozen=True)
class AccrualBreakdown:
    """Per-accrual line of a plot balance."""

    accrual_id: int
    period_id: int
    tariff_id: int
    amount: Decimal
    allocated: Decimal
    remaining: Decimal
    status: AccrualStatus


@dataclass(frozen=True)
class PlotBalance:
    """Totals and breakdown for one plot, optionally limited to a period."""

    plot_id: str
    period_id: Optional[int]
    total_accrued: Decimal
    total_paid: Decimal
    total_debt: Decimal
    credit: Decimal
    breakdown: tuple[AccrualBreakdown, ...]


@dataclass(frozen=True)
class PeriodDebt:
    period_id: int
    year: int
    month: int
    debt: Decimal


@dataclass(frozen=True)
class PlotDebt:
    """Outstanding balance of one plot in a debtors report."""

    plot_id: str
    total_accrued: Decimal
    total_paid: Decimal
    total_debt: Decimal
    periods: tuple[PeriodDebt, ...]


@dataclass(frozen=True)
class PaymentAllocationSummary:
    payment_id: int
    amount: Decimal
    allocated: Decimal
    unallocated: Decimal
    status: PaymentAllocationStatus


@dataclass(frozen=True)
class AutoAllocationResult:
    created_count: int
    period_ids: tuple[int, ...]


@dataclass(frozen=True)
class PenaltyPreviewRow:
    """Penalty owed on one overdue accrual."""

    accrual_id: int
    period_id: int
    plot_id: str
    accrued_on: date
    amount: Decimal
    remaining: Decimal
    days_overdue: int
    penalty: Decimal


@dataclass(frozen=True)
class PenaltyPreview:
    as_of: date
    rate: Decimal
    rows: tuple[PenaltyPreviewRow, ...]
    total_penalty: Decimal


@dataclass(frozen=True)
class PenaltyRecalcResult:
    """Outcome of recalculating the penalties of one period."""

    created: int = 0
    updated: int = 0
    skipped_frozen: int = 0
    skipped_voided: int = 0
    skipped_zero: int = 0


@dataclass(frozen=True)
class PenaltySummary:
    total: int
    active: int
    frozen: int
    voided: int
    total_amount: Decimal
    active_amount: Decimal
