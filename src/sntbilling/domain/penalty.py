"""Late-payment penalty domain service.

A penalty is charged on the unpaid remainder of each accrual:

    remainder * annual rate * days overdue / 365

Days are counted from the date the accrual was created up to the as-of date.
Persisted penalties are kept per plot and period. Active ones are rewritten on
recalculation, frozen ones keep their amount and voided ones stay cancelled.
Penalties are reported on their own and do not change accrual debt.
"""

import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Union

from sntbilling.database.base import Database
from sntbilling.domain import errors
from sntbilling.domain.allocation import ZERO
from sntbilling.domain.entities import (
    AccrualFilter,
    PenaltyAccrual,
    PenaltyFilter,
    PenaltyPreview,
    PenaltyPreviewRow,
    PenaltyRecalcResult,
    PenaltyStatus,
    PenaltySummary,
)
from sntbilling.domain.validation import coerce_enum, positive_decimal
from sntbilling.utils.amount_parser import to_money

logger = logging.getLogger(__name__)

DAYS_IN_YEAR = 365


def calculate_penalty(remaining: Decimal, rate: Decimal, days_overdue: int) -> Decimal:
    """Return the penalty on an unpaid remainder, rounded to kopecks."""
    if remaining <= 0 or days_overdue <= 0:
        return to_money(ZERO)
    return to_money(remaining * rate * days_overdue / DAYS_IN_YEAR)


class PenaltyService:
    """Service for previewing and recording late-payment penalties."""

    def __init__(self, db: Database):
        """Initialize penalty service.

        Args:
            db: Database instance
        """
        self.db = db

    def _require_period(self, period_id: int) -> None:
        if self.db.get_period(period_id) is None:
            raise errors.NotFoundError(errors.period_not_found(period_id))

    def preview_penalty(
        self,
        as_of: date,
        rate: Union[Decimal, str],
        period_id: Optional[int] = None,
        plot_id: Optional[str] = None,
        min_penalty: Optional[Decimal] = None,
    ) -> PenaltyPreview:
        """Compute penalties on overdue accruals without storing anything.

        Args:
            as_of: Date the penalty is counted up to
            rate: Annual rate as a fraction (0.1 is 10%)
            period_id: Only accruals of this period
            plot_id: Only accruals of this plot
            min_penalty: Drop rows whose penalty is below this amount

        Returns:
            Preview rows ordered by plot, then accrual date, and their total

        Raises:
            ValidationError: If rate is not a positive number
            NotFoundError: If period_id is given and doesn't exist
        """
        rate = positive_decimal(rate, "Penalty rate")
        threshold = to_money(min_penalty) if min_penalty is not None else ZERO
        if period_id is not None:
            self._require_period(period_id)

        accruals = self.db.list_accruals(AccrualFilter(period_id=period_id, plot_id=plot_id))
        allocated = self.db.get_allocated_by_accrual([a.id for a in accruals]) if accruals else {}

        rows = []
        for accrual in sorted(accruals, key=lambda a: (a.plot_id, a.created_at, a.id)):
            remaining = max(ZERO, accrual.amount - allocated.get(accrual.id, ZERO))
            if remaining <= 0:
                continue
            accrued_on = accrual.created_at.date()
            days_overdue = max(0, (as_of - accrued_on).days)
            penalty = calculate_penalty(remaining, rate, days_overdue)
            if penalty <= 0 or penalty < threshold:
                continue
            rows.append(
                PenaltyPreviewRow(
                    accrual_id=accrual.id,
                    period_id=accrual.period_id,
                    plot_id=accrual.plot_id,
                    accrued_on=accrued_on,
                    amount=accrual.amount,
                    remaining=remaining,
                    days_overdue=days_overdue,
                    penalty=penalty,
                )
            )

        total = sum((row.penalty for row in rows), ZERO)
        return PenaltyPreview(as_of=as_of, rate=rate, rows=tuple(rows), total_penalty=total)

    def recalculate_period(
        self,
        period_id: int,
        as_of: date,
        rate: Union[Decimal, str],
        plot_ids: Optional[Iterable[str]] = None,
        include_voided: bool = False,
    ) -> PenaltyRecalcResult:
        """Store one penalty per plot for the overdue accruals of a period.

        Active penalties are updated in place. Frozen penalties are left alone.
        A plot whose latest penalty was voided is skipped unless include_voided
        is set, in which case a new active penalty is created.

        Args:
            period_id: Period ID
            as_of: Date the penalty is counted up to
            rate: Annual rate as a fraction
            plot_ids: Only these plots (default: every plot with accruals)
            include_voided: Re-create penalties for plots whose penalty was voided

        Returns:
            Counts of created, updated and skipped plots

        Raises:
            ValidationError: If rate is not a positive number
            NotFoundError: If the period doesn't exist
        """
        preview = self.preview_penalty(as_of, rate, period_id=period_id)
        wanted = set(plot_ids) if plot_ids is not None else None

        by_plot = defaultdict(list)
        for row in preview.rows:
            by_plot[row.plot_id].append(row)
        plots = {a.plot_id for a in self.db.list_accruals(AccrualFilter(period_id=period_id))}
        if wanted is not None:
            plots &= wanted

        counts = defaultdict(int)
        for plot_id in sorted(plots):
            rows = by_plot.get(plot_id, [])
            amount = sum((row.penalty for row in rows), ZERO)
            if amount <= 0:
                counts["skipped_zero"] += 1
                continue
            base_debt = sum((row.remaining for row in rows), ZERO)
            days_overdue = max(row.days_overdue for row in rows)

            with self.db.plot_lock(plot_id):
                existing = self.db.list_penalties(PenaltyFilter(period_id=period_id, plot_id=plot_id))
                latest = existing[0] if existing else None
                current = self.db.find_penalty(period_id, plot_id)
                if current is not None and current.status == PenaltyStatus.FROZEN:
                    counts["skipped_frozen"] += 1
                elif current is not None:
                    self.db.update_penalty(
                        current.id,
                        amount=amount,
                        as_of=as_of,
                        rate=preview.rate,
                        base_debt=base_debt,
                        days_overdue=days_overdue,
                    )
                    counts["updated"] += 1
                elif latest is not None and not include_voided:
                    counts["skipped_voided"] += 1
                else:
                    self.db.create_penalty(
                        period_id,
                        plot_id,
                        amount,
                        as_of=as_of,
                        rate=preview.rate,
                        base_debt=base_debt,
                        days_overdue=days_overdue,
                    )
                    counts["created"] += 1

        result = PenaltyRecalcResult(**counts)
        logger.info(
            f"Recalculated penalties of period {period_id} as of {as_of}: "
            f"{result.created} created, {result.updated} updated"
        )
        return result

    def get_penalty(self, penalty_id: int) -> Optional[PenaltyAccrual]:
        """Get penalty accrual by ID."""
        return self.db.get_penalty(penalty_id)

    def require_penalty(self, penalty_id: int) -> PenaltyAccrual:
        """Get penalty accrual by ID or raise NotFoundError."""
        penalty = self.db.get_penalty(penalty_id)
        if penalty is None:
            raise errors.NotFoundError(errors.penalty_not_found(penalty_id))
        return penalty

    def list_penalties(
        self,
        period_id: Optional[int] = None,
        plot_id: Optional[str] = None,
        status: Optional[Union[PenaltyStatus, str]] = None,
    ) -> list[PenaltyAccrual]:
        """List penalty accruals, newest first."""
        if status is not None:
            status = coerce_enum(PenaltyStatus, status, "penalty status")
        return self.db.list_penalties(
            PenaltyFilter(period_id=period_id, plot_id=plot_id, status=status)
        )

    def void_penalty(self, penalty_id: int, reason: str) -> PenaltyAccrual:
        """Cancel a penalty. Voided penalties are skipped by recalculation.

        Raises:
            NotFoundError: If the penalty doesn't exist
            ConflictError: If it is already voided
        """
        penalty = self.require_penalty(penalty_id)
        if penalty.status == PenaltyStatus.VOIDED:
            raise errors.ConflictError(f"Penalty {penalty_id} is already voided")
        self.db.update_penalty(penalty_id, status=PenaltyStatus.VOIDED, void_reason=reason)
        logger.info(f"Voided penalty {penalty_id} of plot '{penalty.plot_id}': {reason}")
        return self.require_penalty(penalty_id)

    def unvoid_penalty(self, penalty_id: int) -> PenaltyAccrual:
        """Make a voided penalty active again.

        Raises:
            NotFoundError: If the penalty doesn't exist
            ConflictError: If it is not voided, or the plot already has
                another active or frozen penalty in the period
        """
        penalty = self.require_penalty(penalty_id)
        if penalty.status != PenaltyStatus.VOIDED:
            raise errors.ConflictError(f"Penalty {penalty_id} is not voided")
        with self.db.plot_lock(penalty.plot_id):
            if self.db.find_penalty(penalty.period_id, penalty.plot_id) is not None:
                raise errors.ConflictError(
                    errors.duplicate_penalty(penalty.period_id, penalty.plot_id)
                )
            self.db.update_penalty(penalty_id, status=PenaltyStatus.ACTIVE, clear_void_reason=True)
        logger.info(f"Restored penalty {penalty_id} of plot '{penalty.plot_id}'")
        return self.require_penalty(penalty_id)

    def freeze_penalty(self, penalty_id: int, reason: str) -> PenaltyAccrual:
        """Fix a penalty's amount so recalculation leaves it alone.

        Raises:
            NotFoundError: If the penalty doesn't exist
            ConflictError: If it is voided or already frozen
        """
        penalty = self.require_penalty(penalty_id)
        if penalty.status != PenaltyStatus.ACTIVE:
            raise errors.ConflictError(
                f"Only active penalties can be frozen; penalty {penalty_id} is {penalty.status.value}"
            )
        self.db.update_penalty(penalty_id, status=PenaltyStatus.FROZEN, freeze_reason=reason)
        logger.info(f"Froze penalty {penalty_id} of plot '{penalty.plot_id}': {reason}")
        return self.require_penalty(penalty_id)

    def unfreeze_penalty(self, penalty_id: int) -> PenaltyAccrual:
        """Return a frozen penalty to active.

        Raises:
            NotFoundError: If the penalty doesn't exist
            ConflictError: If it is not frozen
        """
        penalty = self.require_penalty(penalty_id)
        if penalty.status != PenaltyStatus.FROZEN:
            raise errors.ConflictError(f"Penalty {penalty_id} is not frozen")
        self.db.update_penalty(penalty_id, status=PenaltyStatus.ACTIVE)
        logger.info(f"Unfroze penalty {penalty_id} of plot '{penalty.plot_id}'")
        return self.require_penalty(penalty_id)

    def get_penalty_summary(self, period_id: Optional[int] = None) -> PenaltySummary:
        """Count penalties by status and sum their amounts."""
        penalties = self.db.list_penalties(PenaltyFilter(period_id=period_id))
        by_status = defaultdict(int)
        for penalty in penalties:
            by_status[penalty.status] += 1
        return PenaltySummary(
            total=len(penalties),
            active=by_status[PenaltyStatus.ACTIVE],
            frozen=by_status[PenaltyStatus.FROZEN],
            voided=by_status[PenaltyStatus.VOIDED],
            total_amount=sum((p.amount for p in penalties), ZERO),
            active_amount=sum(
                (p.amount for p in penalties if p.status == PenaltyStatus.ACTIVE), ZERO
            ),
        )
