"""Database factory functions for creating store instances."""

import os
from pathlib import Path
from typing import Optional

from sntbilling.database.memory import InMemoryDatabase
from sntbilling.database.sqlalchemy_db import SQLAlchemyDatabase


def create_memory_database() -> InMemoryDatabase:
    """Create an empty in-memory store."""
    return InMemoryDatabase()


def create_sqlite_database(database_path: Optional[str] = None) -> SQLAlchemyDatabase:
    """Create a SQLite database instance.

    Args:
        database_path: Path to SQLite database file, or ":memory:". If None,
            checks SNTBILLING_DB_PATH environment variable, then defaults to
            ~/.sntbilling/billing.db

    Returns:
        SQLAlchemyDatabase instance configured for SQLite
    """
    if database_path is None:
        # Check environment variable
        database_path = os.environ.get("SNTBILLING_DB_PATH")

    if database_path is None:
        # Default to ~/.sntbilling/billing.db
        home = Path.home()
        db_dir = home / ".sntbilling"
        db_dir.mkdir(exist_ok=True)
        database_path = str(db_dir / "billing.db")

    database_url = f"sqlite:///{database_path}"
    return SQLAlchemyDatabase(database_url)
