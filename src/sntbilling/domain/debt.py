"""Debt reporting domain service.

Debt is computed per accrual as max(0, amount - allocated) and summed, so an
accrual never contributes negative debt. Money paid beyond a plot's accruals
is reported separately as credit.
"""

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Optional

from sntbilling.database.base import Database
from sntbilling.domain.allocation import ZERO, accrual_status_for
from sntbilling.domain.entities import (
    Accrual,
    AccrualBreakdown,
    AccrualFilter,
    AllocationFilter,
    DebtFilter,
    PaymentFilter,
    PeriodDebt,
    PeriodSummary,
    PlotBalance,
    PlotDebt,
)

logger = logging.getLogger(__name__)


class DebtService:
    """Service for debt and balance reports."""

    def __init__(self, db: Database):
        """Initialize debt service.

        Args:
            db: Database instance
        """
        self.db = db

    def _with_allocated(self, accruals: list[Accrual]) -> list[tuple[Accrual, Decimal]]:
        if not accruals:
            return []
        allocated = self.db.get_allocated_by_accrual([a.id for a in accruals])
        return [(a, allocated.get(a.id, ZERO)) for a in accruals]

    def compute_debts_by_plot(self, filters: Optional[DebtFilter] = None) -> list[PlotDebt]:
        """Compute outstanding debt for every plot with matching accruals.

        Args:
            filters: Optional period, plot and minimum debt restrictions.
                Plots are kept when their total debt is at least min_debt.

        Returns:
            Plot debts, largest debt first, then by plot ID
        """
        filters = filters or DebtFilter()
        accruals = self.db.list_accruals(
            AccrualFilter(period_id=filters.period_id, plot_id=filters.plot_id)
        )

        accrued = defaultdict(lambda: ZERO)
        paid = defaultdict(lambda: ZERO)
        debt = defaultdict(lambda: ZERO)
        period_debt = defaultdict(lambda: defaultdict(lambda: ZERO))
        for accrual, allocated in self._with_allocated(accruals):
            remaining = max(ZERO, accrual.amount - allocated)
            accrued[accrual.plot_id] += accrual.amount
            paid[accrual.plot_id] += allocated
            debt[accrual.plot_id] += remaining
            if remaining > 0:
                period_debt[accrual.plot_id][accrual.period_id] += remaining

        periods = {}
        for period_id in {pid for by_period in period_debt.values() for pid in by_period}:
            period = self.db.get_period(period_id)
            if period is None:
                logger.warning(f"Accruals reference missing period {period_id}")
                continue
            periods[period_id] = period

        results = []
        for plot_id in accrued:
            if filters.min_debt is not None and debt[plot_id] < filters.min_debt:
                continue
            breakdown = [
                PeriodDebt(period_id=pid, year=periods[pid].year, month=periods[pid].month, debt=amount)
                for pid, amount in period_debt[plot_id].items()
                if pid in periods
            ]
            breakdown.sort(key=lambda p: (p.year, p.month), reverse=True)
            results.append(
                PlotDebt(
                    plot_id=plot_id,
                    total_accrued=accrued[plot_id],
                    total_paid=paid[plot_id],
                    total_debt=debt[plot_id],
                    periods=tuple(breakdown),
                )
            )

        results.sort(key=lambda d: (-d.total_debt, d.plot_id))
        return results

    def get_period_summary(self, period_id: int) -> Optional[PeriodSummary]:
        """Sum accrued, paid and outstanding amounts of a period.

        Args:
            period_id: Period ID

        Returns:
            Period summary or None if the period doesn't exist
        """
        if self.db.get_period(period_id) is None:
            return None

        total_accrued = total_paid = total_debt = ZERO
        for accrual, allocated in self._with_allocated(
            self.db.list_accruals(AccrualFilter(period_id=period_id))
        ):
            total_accrued += accrual.amount
            total_paid += allocated
            total_debt += max(ZERO, accrual.amount - allocated)

        return PeriodSummary(
            period_id=period_id,
            total_accrued=total_accrued,
            total_paid=total_paid,
            total_debt=total_debt,
        )

    def get_plot_balance(self, plot_id: str, period_id: Optional[int] = None) -> Optional[PlotBalance]:
        """Report a plot's charges, payments and credit.

        Credit is the unallocated remainder of all of the plot's payments and
        is not limited by period_id.

        Args:
            plot_id: Plot identifier
            period_id: Only accruals of this period

        Returns:
            Plot balance, or None if period_id is given and doesn't exist
        """
        if period_id is not None and self.db.get_period(period_id) is None:
            return None

        accruals = self.db.list_accruals(AccrualFilter(period_id=period_id, plot_id=plot_id))
        rows = []
        total_accrued = total_paid = total_debt = ZERO
        for accrual, allocated in sorted(
            self._with_allocated(accruals), key=lambda item: (item[0].created_at, item[0].id)
        ):
            remaining = max(ZERO, accrual.amount - allocated)
            total_accrued += accrual.amount
            total_paid += allocated
            total_debt += remaining
            rows.append(
                AccrualBreakdown(
                    accrual_id=accrual.id,
                    period_id=accrual.period_id,
                    tariff_id=accrual.tariff_id,
                    amount=accrual.amount,
                    allocated=allocated,
                    remaining=remaining,
                    status=accrual_status_for(accrual.amount, allocated),
                )
            )

        credit = ZERO
        for payment in self.db.list_payments(PaymentFilter(plot_id=plot_id)):
            allocations = self.db.list_allocations(AllocationFilter(payment_id=payment.id))
            allocated = sum((a.amount for a in allocations), ZERO)
            credit += max(ZERO, payment.amount - allocated)

        return PlotBalance(
            plot_id=plot_id,
            period_id=period_id,
            total_accrued=total_accrued,
            total_paid=total_paid,
            total_debt=total_debt,
            credit=credit,
            breakdown=tuple(rows),
        )
