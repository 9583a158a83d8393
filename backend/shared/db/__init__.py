"""SQLite database layer: connection management and the ledger repository."""

from shared.db.connection import Database
from shared.db.ledger_repository import SqliteLedgerRepository

__all__ = [
    "Database",
    "SqliteLedgerRepository",
]
