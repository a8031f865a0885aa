"""Storage layer for sntbilling."""

from sntbilling.database.base import Database
from sntbilling.database.factories import create_memory_database, create_sqlite_database

__all__ = ["Database", "create_memory_database", "create_sqlite_database"]
