"""Payment domain service."""

import hashlib
import logging
from contextlib import nullcontext
from datetime import date
from decimal import Decimal
from typing import Optional, Union

from sntbilling.database.base import Database
from sntbilling.domain import errors
from sntbilling.domain.allocation import sync_accrual_statuses
from sntbilling.domain.entities import (
    AllocationFilter,
    Payment as PaymentEntity,
    PaymentFilter,
    PaymentSource,
)
from sntbilling.domain.validation import coerce_enum, positive_money
from sntbilling.utils.amount_parser import to_money

logger = logging.getLogger(__name__)


def _normalize_text(value: Optional[str]) -> str:
    return " ".join((value or "").split()).lower()


class PaymentService:
    """Service for recording payments."""

    def __init__(self, db: Database):
        """Initialize payment service.

        Args:
            db: Database instance
        """
        self.db = db

    @staticmethod
    def row_hash(
        paid_at: date,
        amount: Decimal,
        payer: Optional[str] = None,
        purpose: Optional[str] = None,
        external_id: Optional[str] = None,
    ) -> str:
        """Fingerprint a bank statement row for replay protection.

        Text fields are compared case-insensitively with whitespace collapsed,
        and the amount is rounded to kopecks, so the same row read twice
        hashes the same.

        Returns:
            Hex SHA-256 digest
        """
        parts = [
            paid_at.isoformat(),
            str(to_money(amount)),
            _normalize_text(payer),
            _normalize_text(purpose),
            _normalize_text(external_id),
        ]
        return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()

    def create_payment(
        self,
        paid_at: date,
        amount: Decimal,
        source: Union[PaymentSource, str] = PaymentSource.MANUAL,
        plot_id: Optional[str] = None,
        external_id: Optional[str] = None,
        raw_row_hash: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> int:
        """Record a payment.

        Args:
            paid_at: Date the money was received
            amount: Payment amount
            source: Manual entry or bank import
            plot_id: Plot the payment is for, if known
            external_id: Bank document number or other external reference
            raw_row_hash: Fingerprint of the imported statement row
            comment: Optional free text

        Returns:
            Payment ID

        Raises:
            ValidationError: If amount is not positive or source is unknown
            ConflictError: If a payment with the same external_id or
                raw_row_hash was already recorded
        """
        amount = positive_money(amount, "Payment")
        source = coerce_enum(PaymentSource, source, "payment source")
        plot_id = plot_id.strip() if plot_id else None

        if external_id is not None and self.db.find_payment(external_id=external_id) is not None:
            raise errors.ConflictError(errors.duplicate_payment("external_id", external_id))
        if raw_row_hash is not None and self.db.find_payment(raw_row_hash=raw_row_hash) is not None:
            raise errors.ConflictError(errors.duplicate_payment("raw_row_hash", raw_row_hash))

        payment_id = self.db.create_payment(
            paid_at=paid_at,
            amount=amount,
            source=source,
            plot_id=plot_id or None,
            external_id=external_id,
            raw_row_hash=raw_row_hash,
            comment=comment,
        )
        logger.info(
            f"Recorded {source.value} payment {payment_id}: {amount} on {paid_at}"
            + (f" for plot '{plot_id}'" if plot_id else " (no plot)")
        )
        return payment_id

    def get_payment(self, payment_id: int) -> Optional[PaymentEntity]:
        """Get payment by ID.

        Args:
            payment_id: Payment ID

        Returns:
            Payment entity or None if not found
        """
        return self.db.get_payment(payment_id)

    def require_payment(self, payment_id: int) -> PaymentEntity:
        payment = self.db.get_payment(payment_id)
        if payment is None:
            raise errors.NotFoundError(errors.payment_not_found(payment_id))
        return payment

    def list_payments(
        self,
        plot_id: Optional[str] = None,
        source: Optional[Union[PaymentSource, str]] = None,
        unassigned: bool = False,
        paid_from: Optional[date] = None,
        paid_to: Optional[date] = None,
    ) -> list[PaymentEntity]:
        """List payments, newest first.

        Args:
            plot_id: Only payments of this plot
            source: Only payments from this source
            unassigned: Only payments not yet linked to a plot
            paid_from: Only payments received on or after this date
            paid_to: Only payments received on or before this date

        Returns:
            List of payment entities
        """
        if source is not None:
            source = coerce_enum(PaymentSource, source, "payment source")
        return self.db.list_payments(
            PaymentFilter(
                plot_id=plot_id,
                source=source,
                unassigned=unassigned,
                paid_from=paid_from,
                paid_to=paid_to,
            )
        )

    def assign_plot(self, payment_id: int, plot_id: Optional[str]) -> PaymentEntity:
        """Link a payment to a plot, or unlink it when plot_id is None.

        Args:
            payment_id: Payment ID
            plot_id: Plot identifier or None

        Returns:
            The updated payment

        Raises:
            NotFoundError: If payment doesn't exist
            DependencyError: If the payment is already allocated to another
                plot's accruals
        """
        payment = self.require_payment(payment_id)
        plot_id = plot_id.strip() if plot_id else None
        if plot_id == payment.plot_id:
            return payment

        allocation_count = len(self.db.list_allocations(AllocationFilter(payment_id=payment_id)))
        if allocation_count > 0:
            raise errors.DependencyError(
                f"Cannot change plot of payment {payment_id}: it has "
                f"{allocation_count} allocation{'s' if allocation_count != 1 else ''}. "
                "Please unapply them first."
            )

        self.db.update_payment(payment_id, plot_id=plot_id, clear_plot=plot_id is None)
        logger.info(f"Payment {payment_id} assigned to plot '{plot_id}'")
        return self.require_payment(payment_id)

    def update_comment(self, payment_id: int, comment: Optional[str]) -> None:
        """Update payment comment.

        Args:
            payment_id: Payment ID
            comment: Comment text

        Raises:
            NotFoundError: If payment doesn't exist
        """
        self.require_payment(payment_id)
        self.db.update_payment(payment_id, comment=comment or "")

    def delete_payment(self, payment_id: int) -> None:
        """Delete a payment and its allocations.

        Statuses of the accruals it was allocated to are recomputed.

        Args:
            payment_id: Payment ID to delete

        Raises:
            NotFoundError: If payment doesn't exist
        """
        payment = self.require_payment(payment_id)
        allocations = self.db.list_allocations(AllocationFilter(payment_id=payment_id))

        lock = self.db.plot_lock(payment.plot_id) if payment.plot_id else nullcontext()
        with lock:
            self.db.delete_payment(payment_id)
            sync_accrual_statuses(self.db, (a.accrual_id for a in allocations))

        logger.info(f"Deleted payment {payment_id} with {len(allocations)} allocation(s)")
