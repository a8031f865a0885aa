"""Period domain service."""

import logging
from datetime import datetime
from typing import Optional, Union

from sntbilling.database.base import Database
from sntbilling.domain import errors
from sntbilling.domain.entities import (
    AccrualFilter,
    Period as PeriodEntity,
    PeriodFilter,
    PeriodStatus,
)
from sntbilling.domain.validation import coerce_enum

logger = logging.getLogger(__name__)


class PeriodService:
    """Service for managing billing periods."""

    def __init__(self, db: Database):
        """Initialize period service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_period(
        self,
        year: int,
        month: int,
        status: Union[PeriodStatus, str] = PeriodStatus.OPEN,
        created_at: Optional[datetime] = None,
    ) -> int:
        """Create a billing period.

        Args:
            year: Calendar year
            month: Calendar month (1-12)
            status: Initial status, open by default
            created_at: Creation time (defaults to now)

        Returns:
            Period ID

        Raises:
            ValidationError: If month is out of range or status is unknown
            ConflictError: If a period for the same year and month exists
        """
        if not 1 <= month <= 12:
            raise errors.ValidationError(errors.invalid_month(month))
        if year < 1:
            raise errors.ValidationError(f"Year must be positive, got {year}")
        status = coerce_enum(PeriodStatus, status, "period status")

        if self.db.get_period_by_month(year, month) is not None:
            raise errors.ConflictError(errors.duplicate_period(year, month))

        period_id = self.db.create_period(year=year, month=month, status=status, created_at=created_at)
        logger.info(f"Created period {year:04d}-{month:02d} (id={period_id})")
        return period_id

    def get_period(self, period_id: int) -> Optional[PeriodEntity]:
        """Get period by ID.

        Args:
            period_id: Period ID

        Returns:
            Period entity or None if not found
        """
        return self.db.get_period(period_id)

    def get_period_by_month(self, year: int, month: int) -> Optional[PeriodEntity]:
        """Get period by year and month."""
        return self.db.get_period_by_month(year, month)

    def require_period(self, period_id: int) -> PeriodEntity:
        """Get period by ID, raising NotFoundError if it does not exist."""
        period = self.db.get_period(period_id)
        if period is None:
            raise errors.NotFoundError(errors.period_not_found(period_id))
        return period

    def list_periods(
        self,
        status: Optional[Union[PeriodStatus, str]] = None,
        year: Optional[int] = None,
    ) -> list[PeriodEntity]:
        """List periods, newest first.

        Args:
            status: Only periods with this status
            year: Only periods of this year

        Returns:
            List of period entities
        """
        if status is not None:
            status = coerce_enum(PeriodStatus, status, "period status")
        return self.db.list_periods(PeriodFilter(status=status, year=year))

    def close_period(self, period_id: int) -> PeriodEntity:
        """Close a period. Closing an already closed period does nothing.

        Args:
            period_id: Period ID

        Returns:
            The closed period

        Raises:
            NotFoundError: If period doesn't exist
        """
        period = self.require_period(period_id)
        if period.is_closed:
            logger.debug(f"Period {period.label} is already closed")
            return period

        self.db.update_period_status(period_id, PeriodStatus.CLOSED)
        logger.info(f"Closed period {period.label} (id={period_id})")
        return self.require_period(period_id)

    def delete_period(self, period_id: int) -> None:
        """Delete a period.

        Args:
            period_id: Period ID to delete

        Raises:
            NotFoundError: If period doesn't exist
            ClosedPeriodError: If the period is closed
            DependencyError: If the period still has accruals
        """
        period = self.require_period(period_id)
        if period.is_closed:
            raise errors.ClosedPeriodError(errors.period_closed(period_id))

        accrual_count = len(self.db.list_accruals(AccrualFilter(period_id=period_id)))
        if accrual_count > 0:
            raise errors.DependencyError(
                f"Cannot delete period {period.label}: it has "
                f"{accrual_count} accrual{'s' if accrual_count != 1 else ''}. "
                "Please delete them first."
            )

        self.db.delete_period(period_id)
        logger.info(f"Deleted period {period.label} (id={period_id})")
