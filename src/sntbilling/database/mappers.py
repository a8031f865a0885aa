"""Mapper functions to convert SQLAlchemy models into domain entities.

String columns become enums here and naive UTC timestamps become aware ones,
so the SQL store hands out exactly what the in-memory store does.
"""

from datetime import datetime, UTC
from decimal import Decimal
from typing import Optional

from sntbilling.domain import entities as domain
from sntbilling.database.models import (
    Accrual as ORMAccrual,
    Payment as ORMPayment,
    PaymentAllocation as ORMPaymentAllocation,
    PenaltyAccrual as ORMPenaltyAccrual,
    Period as ORMPeriod,
    Tariff as ORMTariff,
)
from sntbilling.utils.amount_parser import to_money


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _money(value) -> Decimal:
    return to_money(value) if value is not None else Decimal("0.00")


def period_to_domain(orm_period: ORMPeriod) -> domain.Period:
    """Convert SQLAlchemy Period model to domain Period entity."""
    return domain.Period(
        id=orm_period.id,
        year=orm_period.year,
        month=orm_period.month,
        status=domain.PeriodStatus(orm_period.status),
        created_at=_aware(orm_period.created_at),
    )


def tariff_to_domain(orm_tariff: ORMTariff) -> domain.Tariff:
    """Convert SQLAlchemy Tariff model to domain Tariff entity."""
    return domain.Tariff(
        id=orm_tariff.id,
        code=orm_tariff.code,
        title=orm_tariff.title,
        type=orm_tariff.type,
        amount=_money(orm_tariff.amount),
        applies_to=domain.AppliesTo(orm_tariff.applies_to),
        recurrence=domain.Recurrence(orm_tariff.recurrence),
        active_from=orm_tariff.active_from,
        active_to=orm_tariff.active_to,
        status=domain.TariffStatus(orm_tariff.status),
        created_at=_aware(orm_tariff.created_at),
    )


def accrual_to_domain(orm_accrual: ORMAccrual) -> domain.Accrual:
    """Convert SQLAlchemy Accrual model to domain Accrual entity."""
    return domain.Accrual(
        id=orm_accrual.id,
        period_id=orm_accrual.period_id,
        plot_id=orm_accrual.plot_id,
        tariff_id=orm_accrual.tariff_id,
        amount=_money(orm_accrual.amount),
        status=domain.AccrualStatus(orm_accrual.status),
        created_at=_aware(orm_accrual.created_at),
    )


def payment_to_domain(orm_payment: ORMPayment) -> domain.Payment:
    """Convert SQLAlchemy Payment model to domain Payment entity."""
    return domain.Payment(
        id=orm_payment.id,
        plot_id=orm_payment.plot_id,
        paid_at=orm_payment.paid_at,
        amount=_money(orm_payment.amount),
        source=domain.PaymentSource(orm_payment.source),
        external_id=orm_payment.external_id,
        raw_row_hash=orm_payment.raw_row_hash,
        comment=orm_payment.comment,
        created_at=_aware(orm_payment.created_at),
    )


def allocation_to_domain(orm_allocation: ORMPaymentAllocation) -> domain.PaymentAllocation:
    """Convert SQLAlchemy PaymentAllocation model to domain entity."""
    return domain.PaymentAllocation(
        id=orm_allocation.id,
        payment_id=orm_allocation.payment_id,
        accrual_id=orm_allocation.accrual_id,
        amount=_money(orm_allocation.amount),
        created_at=_aware(orm_allocation.created_at),
    )


def penalty_to_domain(orm_penalty: ORMPenaltyAccrual) -> domain.PenaltyAccrual:
    """Convert SQLAlchemy PenaltyAccrual model to domain entity."""
    return domain.PenaltyAccrual(
        id=orm_penalty.id,
        period_id=orm_penalty.period_id,
        plot_id=orm_penalty.plot_id,
        amount=_money(orm_penalty.amount),
        status=domain.PenaltyStatus(orm_penalty.status),
        as_of=orm_penalty.as_of,
        rate=Decimal(str(orm_penalty.rate)).normalize(),
        base_debt=_money(orm_penalty.base_debt),
        days_overdue=orm_penalty.days_overdue,
        void_reason=orm_penalty.void_reason,
        freeze_reason=orm_penalty.freeze_reason,
        created_at=_aware(orm_penalty.created_at),
        updated_at=_aware(orm_penalty.updated_at),
    )
