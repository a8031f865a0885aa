"""SQLAlchemy models for the sntbilling database.

Period and tariff references on accruals, and payment/accrual references on
allocations, are plain integer columns: the billing store does not enforce
referential integrity between entities.
"""

from datetime import datetime, UTC
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Date,
    Numeric,
    UniqueConstraint,
    Index,
    create_engine,
)
from sqlalchemy.orm import declarative_base, sessionmaker, Session

Base = declarative_base()


def _utcnow() -> datetime:
    # SQLite has no timezone support; timestamps are stored as naive UTC
    return datetime.now(UTC).replace(tzinfo=None)


class Period(Base):
    """Billing period model."""

    __tablename__ = "periods"

    id = Column(Integer, primary_key=True)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default="open")
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("year", "month", name="uq_period_year_month"),)


class Tariff(Base):
    """Fee tariff model."""

    __tablename__ = "tariffs"

    id = Column(Integer, primary_key=True)
    code = Column(String, unique=True, nullable=False)
    title = Column(String, nullable=False)
    type = Column(String, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    applies_to = Column(String, nullable=False, default="plot")
    recurrence = Column(String, nullable=False, default="monthly")
    active_from = Column(Date, nullable=False)
    active_to = Column(Date, nullable=True)
    status = Column(String, nullable=False, default="active")
    created_at = Column(DateTime, default=_utcnow, nullable=False)


class Accrual(Base):
    """Accrual model: one charge of a tariff against a plot in a period."""

    __tablename__ = "accruals"

    id = Column(Integer, primary_key=True)
    period_id = Column(Integer, nullable=False)
    plot_id = Column(String, nullable=False)
    tariff_id = Column(Integer, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("period_id", "plot_id", "tariff_id", name="uq_accrual_period_plot_tariff"),
        Index("ix_accruals_plot_id", "plot_id"),
    )


class Payment(Base):
    """Payment model."""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    plot_id = Column(String, nullable=True, index=True)
    paid_at = Column(Date, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    source = Column(String, nullable=False)
    external_id = Column(String, nullable=True, index=True)
    raw_row_hash = Column(String, nullable=True, index=True)
    comment = Column(String, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)


class PaymentAllocation(Base):
    """Payment allocation model."""

    __tablename__ = "payment_allocations"

    id = Column(Integer, primary_key=True)
    payment_id = Column(Integer, nullable=False, index=True)
    accrual_id = Column(Integer, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)


class PenaltyAccrual(Base):
    """Penalty accrual model: late-payment penalty of a plot in a period."""

    __tablename__ = "penalty_accruals"

    id = Column(Integer, primary_key=True)
    period_id = Column(Integer, nullable=False)
    plot_id = Column(String, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String, nullable=False, default="active")
    as_of = Column(Date, nullable=False)
    rate = Column(Numeric(10, 6), nullable=False)
    base_debt = Column(Numeric(12, 2), nullable=False)
    days_overdue = Column(Integer, nullable=False)
    void_reason = Column(String, nullable=True)
    freeze_reason = Column(String, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (Index("ix_penalty_accruals_period_plot", "period_id", "plot_id"),)


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine = create_engine(database_url, echo=False)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
