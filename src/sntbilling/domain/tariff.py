"""Tariff domain service."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional, Union

from sntbilling.database.base import Database
from sntbilling.domain import errors
from sntbilling.domain.entities import (
    AccrualFilter,
    AppliesTo,
    Recurrence,
    Tariff as TariffEntity,
    TariffFilter,
    TariffStatus,
)
from sntbilling.domain.validation import coerce_enum, positive_money

logger = logging.getLogger(__name__)


class TariffService:
    """Service for managing fee tariffs."""

    def __init__(self, db: Database):
        """Initialize tariff service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_tariff(
        self,
        code: str,
        title: str,
        amount: Decimal,
        type: Optional[str] = None,
        applies_to: Union[AppliesTo, str] = AppliesTo.PLOT,
        recurrence: Union[Recurrence, str] = Recurrence.MONTHLY,
        active_from: Optional[date] = None,
        active_to: Optional[date] = None,
        status: Union[TariffStatus, str] = TariffStatus.ACTIVE,
    ) -> int:
        """Create a tariff.

        Args:
            code: Unique short code (e.g., "membership")
            title: Human readable name
            amount: Charge per plot, or per unit of area for area tariffs
            type: Fee category (defaults to the code)
            applies_to: Whether the charge is flat per plot or per area unit
            recurrence: How often the tariff is charged
            active_from: First day the tariff applies (defaults to today)
            active_to: Optional last day the tariff applies
            status: Initial status, active by default

        Returns:
            Tariff ID

        Raises:
            ValidationError: If inputs are invalid
            ConflictError: If a tariff with the same code exists
        """
        code = (code or "").strip()
        title = (title or "").strip()
        if not code:
            raise errors.ValidationError("Tariff code must not be empty")
        if not title:
            raise errors.ValidationError("Tariff title must not be empty")
        amount = positive_money(amount, "Tariff")
        applies_to = coerce_enum(AppliesTo, applies_to, "applies_to")
        recurrence = coerce_enum(Recurrence, recurrence, "recurrence")
        status = coerce_enum(TariffStatus, status, "tariff status")

        if active_from is None:
            active_from = date.today()
        if active_to is not None and active_to < active_from:
            raise errors.ValidationError(errors.inverted_tariff_window(active_from, active_to))

        if self.db.get_tariff_by_code(code) is not None:
            raise errors.ConflictError(errors.duplicate_tariff_code(code))

        tariff_id = self.db.create_tariff(
            code=code,
            title=title,
            type=type or code,
            amount=amount,
            applies_to=applies_to,
            recurrence=recurrence,
            active_from=active_from,
            active_to=active_to,
            status=status,
        )
        logger.info(f"Created tariff '{code}' (id={tariff_id}, amount={amount})")
        return tariff_id

    def get_tariff(self, tariff_id: int) -> Optional[TariffEntity]:
        """Get tariff by ID.

        Args:
            tariff_id: Tariff ID

        Returns:
            Tariff entity or None if not found
        """
        return self.db.get_tariff(tariff_id)

    def get_tariff_by_code(self, code: str) -> Optional[TariffEntity]:
        """Get tariff by code."""
        return self.db.get_tariff_by_code(code)

    def require_tariff(self, tariff_id: int) -> TariffEntity:
        """Get tariff by ID, raising NotFoundError if it does not exist."""
        tariff = self.db.get_tariff(tariff_id)
        if tariff is None:
            raise errors.NotFoundError(errors.tariff_not_found(tariff_id))
        return tariff

    def list_tariffs(
        self,
        status: Optional[Union[TariffStatus, str]] = None,
        type: Optional[str] = None,
        active_on: Optional[date] = None,
    ) -> list[TariffEntity]:
        """List tariffs, active first, then by code.

        Args:
            status: Only tariffs with this status
            type: Only tariffs of this fee category
            active_on: Only tariffs whose window covers this day

        Returns:
            List of tariff entities
        """
        if status is not None:
            status = coerce_enum(TariffStatus, status, "tariff status")
        return self.db.list_tariffs(TariffFilter(status=status, type=type, active_on=active_on))

    def update_tariff(
        self,
        tariff_id: int,
        code: Optional[str] = None,
        title: Optional[str] = None,
        amount: Optional[Decimal] = None,
        active_to: Optional[date] = None,
        clear_active_to: bool = False,
    ) -> None:
        """Update tariff fields. Existing accruals keep their amounts.

        Args:
            tariff_id: Tariff ID
            code: New unique code
            title: New title
            amount: New amount for future accruals
            active_to: New last active day
            clear_active_to: If True, remove the end of the active window

        Raises:
            NotFoundError: If tariff doesn't exist
            ValidationError: If inputs are invalid
            ConflictError: If the new code is taken by another tariff
        """
        tariff = self.require_tariff(tariff_id)

        if code is not None:
            code = code.strip()
            if not code:
                raise errors.ValidationError("Tariff code must not be empty")
            existing = self.db.get_tariff_by_code(code)
            if existing is not None and existing.id != tariff_id:
                raise errors.ConflictError(errors.duplicate_tariff_code(code))
        if title is not None and not title.strip():
            raise errors.ValidationError("Tariff title must not be empty")
        if amount is not None:
            amount = positive_money(amount, "Tariff")
        if active_to is not None and not clear_active_to and active_to < tariff.active_from:
            raise errors.ValidationError(errors.inverted_tariff_window(tariff.active_from, active_to))

        self.db.update_tariff(
            tariff_id,
            code=code,
            title=title.strip() if title is not None else None,
            amount=amount,
            active_to=active_to,
            clear_active_to=clear_active_to,
        )
        logger.info(f"Updated tariff {tariff_id}")

    def deactivate_tariff(self, tariff_id: int, active_to: Optional[date] = None) -> TariffEntity:
        """Mark a tariff inactive, optionally closing its active window.

        Args:
            tariff_id: Tariff ID
            active_to: Last day the tariff applied

        Returns:
            The updated tariff

        Raises:
            NotFoundError: If tariff doesn't exist
            ValidationError: If active_to precedes the tariff's active_from
        """
        tariff = self.require_tariff(tariff_id)
        if active_to is not None and active_to < tariff.active_from:
            raise errors.ValidationError(errors.inverted_tariff_window(tariff.active_from, active_to))

        self.db.update_tariff(tariff_id, active_to=active_to, status=TariffStatus.INACTIVE)
        logger.info(f"Deactivated tariff '{tariff.code}' (id={tariff_id})")
        return self.require_tariff(tariff_id)

    def delete_tariff(self, tariff_id: int) -> None:
        """Delete a tariff.

        Args:
            tariff_id: Tariff ID to delete

        Raises:
            NotFoundError: If tariff doesn't exist
            DependencyError: If accruals reference the tariff
        """
        tariff = self.require_tariff(tariff_id)

        accrual_count = len(self.db.list_accruals(AccrualFilter(tariff_id=tariff_id)))
        if accrual_count > 0:
            raise errors.DependencyError(
                f"Cannot delete tariff '{tariff.code}': it has "
                f"{accrual_count} accrual{'s' if accrual_count != 1 else ''}. "
                "Deactivate it instead."
            )

        self.db.delete_tariff(tariff_id)
        logger.info(f"Deleted tariff '{tariff.code}' (id={tariff_id})")
