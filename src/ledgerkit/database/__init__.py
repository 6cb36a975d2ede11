"""Database layer for ledgerkit."""

from ledgerkit.database.base import Database, ImportStore, LedgerStore, TransactionStore
from ledgerkit.database.factories import create_database, create_sqlite_database

__all__ = [
    "Database",
    "ImportStore",
    "LedgerStore",
    "TransactionStore",
    "create_database",
    "create_sqlite_database",
]
