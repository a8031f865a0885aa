"""Accrual domain service."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from sntbilling.database.base import Database
from sntbilling.domain import errors
from sntbilling.domain.allocation import ZERO, accrual_status_for
from sntbilling.domain.entities import (
    Accrual as AccrualEntity,
    AccrualFilter,
    AccrualStatus,
    AllocationFilter,
    AppliesTo,
    Period,
    TariffStatus,
)
from sntbilling.domain.validation import coerce_enum, positive_decimal, positive_money

logger = logging.getLogger(__name__)


class AccrualService:
    """Service for managing accruals (charges against plots)."""

    def __init__(self, db: Database):
        """Initialize accrual service.

        Args:
            db: Database instance
        """
        self.db = db

    def _open_period(self, period_id: int) -> Period:
        period = self.db.get_period(period_id)
        if period is None:
            raise errors.NotFoundError(errors.period_not_found(period_id))
        if period.is_closed:
            raise errors.ClosedPeriodError(errors.period_closed(period_id))
        return period

    def create_accrual(
        self,
        period_id: int,
        plot_id: str,
        tariff_id: int,
        amount: Optional[Decimal] = None,
        area: Optional[Decimal] = None,
        created_at: Optional[datetime] = None,
    ) -> int:
        """Charge a tariff against a plot in a period.

        Args:
            period_id: Period ID (must be open)
            plot_id: Plot identifier
            tariff_id: Tariff ID
            amount: Charge amount. Defaults to the tariff amount, multiplied
                by area for area-based tariffs.
            area: Plot area, required for area tariffs when amount is omitted
            created_at: Creation time (defaults to now), orders FIFO allocation

        Returns:
            Accrual ID

        Raises:
            NotFoundError: If period or tariff doesn't exist
            ClosedPeriodError: If the period is closed
            ValidationError: If plot or amount is invalid
            ConflictError: If the plot already has this tariff in the period
        """
        period = self._open_period(period_id)
        tariff = self.db.get_tariff(tariff_id)
        if tariff is None:
            raise errors.NotFoundError(errors.tariff_not_found(tariff_id))
        plot_id = (plot_id or "").strip()
        if not plot_id:
            raise errors.ValidationError("Plot ID must not be empty")

        if amount is None:
            if tariff.applies_to == AppliesTo.AREA:
                if area is None:
                    raise errors.ValidationError(
                        f"Tariff '{tariff.code}' is charged per area, plot area is required"
                    )
                amount = tariff.amount * positive_decimal(area, "Plot area")
            else:
                amount = tariff.amount
        amount = positive_money(amount, "Accrual")

        if self.db.find_accrual(period_id, plot_id, tariff_id) is not None:
            raise errors.ConflictError(errors.duplicate_accrual(period_id, plot_id, tariff_id))

        if tariff.status != TariffStatus.ACTIVE or not tariff.is_active_on(period.start_date):
            logger.warning(f"Tariff '{tariff.code}' is not active for period {period.label}")

        accrual_id = self.db.create_accrual(
            period_id=period_id,
            plot_id=plot_id,
            tariff_id=tariff_id,
            amount=amount,
            created_at=created_at,
        )
        logger.info(
            f"Created accrual {accrual_id}: plot '{plot_id}', tariff '{tariff.code}', "
            f"period {period.label}, amount {amount}"
        )
        return accrual_id

    def get_accrual(self, accrual_id: int) -> Optional[AccrualEntity]:
        """Get accrual by ID.

        Args:
            accrual_id: Accrual ID

        Returns:
            Accrual entity or None if not found
        """
        return self.db.get_accrual(accrual_id)

    def require_accrual(self, accrual_id: int) -> AccrualEntity:
        accrual = self.db.get_accrual(accrual_id)
        if accrual is None:
            raise errors.NotFoundError(errors.accrual_not_found(accrual_id))
        return accrual

    def list_accruals(
        self,
        period_id: Optional[int] = None,
        plot_id: Optional[str] = None,
        tariff_id: Optional[int] = None,
        status: Optional[Union[AccrualStatus, str]] = None,
    ) -> list[AccrualEntity]:
        """List accruals, newest first.

        Args:
            period_id: Only accruals of this period
            plot_id: Only accruals of this plot
            tariff_id: Only accruals of this tariff
            status: Only accruals with this status

        Returns:
            List of accrual entities
        """
        if status is not None:
            status = coerce_enum(AccrualStatus, status, "accrual status")
        return self.db.list_accruals(
            AccrualFilter(period_id=period_id, plot_id=plot_id, tariff_id=tariff_id, status=status)
        )

    def update_amount(self, accrual_id: int, amount: Decimal) -> AccrualEntity:
        """Correct the amount of an accrual.

        The status is recomputed against the new amount.

        Args:
            accrual_id: Accrual ID
            amount: New amount

        Returns:
            The updated accrual

        Raises:
            NotFoundError: If accrual doesn't exist
            ClosedPeriodError: If the accrual's period is closed
            ValidationError: If amount is not positive or below what is
                already allocated
        """
        accrual = self.require_accrual(accrual_id)
        self._open_period(accrual.period_id)
        amount = positive_money(amount, "Accrual")

        with self.db.plot_lock(accrual.plot_id):
            allocated = self.db.get_allocated_by_accrual([accrual_id]).get(accrual_id, ZERO)
            if amount < allocated:
                raise errors.ValidationError(
                    f"Accrual {accrual_id} already has {allocated} allocated, "
                    f"amount cannot be lowered to {amount}"
                )
            self.db.update_accrual(accrual_id, amount=amount, status=accrual_status_for(amount, allocated))

        logger.info(f"Accrual {accrual_id} amount changed from {accrual.amount} to {amount}")
        return self.require_accrual(accrual_id)

    def delete_accrual(self, accrual_id: int) -> None:
        """Delete an accrual.

        Args:
            accrual_id: Accrual ID to delete

        Raises:
            NotFoundError: If accrual doesn't exist
            ClosedPeriodError: If the accrual's period is closed
            DependencyError: If payments are allocated to the accrual
        """
        accrual = self.require_accrual(accrual_id)
        self._open_period(accrual.period_id)

        allocation_count = len(self.db.list_allocations(AllocationFilter(accrual_id=accrual_id)))
        if allocation_count > 0:
            raise errors.DependencyError(errors.accrual_has_allocations(accrual_id, allocation_count))

        self.db.delete_accrual(accrual_id)
        logger.info(f"Deleted accrual {accrual_id} (plot '{accrual.plot_id}')")
