"""Shared pytest fixtures for sntbilling tests."""

import os
import tempfile
from datetime import date

import pytest
from click.testing import CliRunner

from sntbilling.database.factories import create_memory_database, create_sqlite_database
from sntbilling.domain.accrual import AccrualService
from sntbilling.domain.allocation import AllocationService
from sntbilling.domain.debt import DebtService
from sntbilling.domain.payment import PaymentService
from sntbilling.domain.period import PeriodService
from sntbilling.domain.tariff import TariffService


def _sqlite_db():
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    db = create_sqlite_database(database_path=db_path)
    # Store the path for tests that need it
    db.database_path = db_path
    db.connect()
    db.initialize_schema()
    return db


@pytest.fixture(params=["memory", "sqlite"])
def temp_db(request):
    """Create an empty store, once per backend."""
    if request.param == "memory":
        db = create_memory_database()
        db.connect()
        db.initialize_schema()
        yield db
        db.disconnect()
        return

    db = _sqlite_db()
    yield db

    # Cleanup
    db.disconnect()
    if os.path.exists(db.database_path):
        os.unlink(db.database_path)


@pytest.fixture
def sqlite_db():
    """Create a temporary SQLite database file for CLI tests."""
    db = _sqlite_db()
    yield db
    db.disconnect()
    if os.path.exists(db.database_path):
        os.unlink(db.database_path)


@pytest.fixture
def period_service(temp_db):
    """Create a PeriodService with a temporary database."""
    return PeriodService(temp_db)


@pytest.fixture
def tariff_service(temp_db):
    """Create a TariffService with a temporary database."""
    return TariffService(temp_db)


@pytest.fixture
def accrual_service(temp_db):
    """Create an AccrualService with a temporary database."""
    return AccrualService(temp_db)


@pytest.fixture
def payment_service(temp_db):
    """Create a PaymentService with a temporary database."""
    return PaymentService(temp_db)


@pytest.fixture
def allocation_service(temp_db):
    """Create an AllocationService with a temporary database."""
    return AllocationService(temp_db)


@pytest.fixture
def debt_service(temp_db):
    """Create a DebtService with a temporary database."""
    return DebtService(temp_db)


@pytest.fixture
def sample_period(period_service):
    """Create an open period for January 2025."""
    period_id = period_service.create_period(year=2025, month=1)
    return period_service.get_period(period_id)


@pytest.fixture
def sample_tariff(tariff_service):
    """Create a flat monthly membership tariff of 1000."""
    tariff_id = tariff_service.create_tariff(
        code="membership",
        title="Membership fee",
        amount="1000",
        active_from=date(2024, 1, 1),
    )
    return tariff_service.get_tariff(tariff_id)


@pytest.fixture
def cli_runner():
    """Create a CLI runner for testing."""
    return CliRunner()
