"""
Database migrations module.

Versioned, ordered migrations for the document store. Migrations are listed
in an explicit registry, applied in id order and tracked in the migrations
ledger.
"""

from .base import Migration, MigrationInfo
from .ledger import LedgerEntry, LedgerStatus, MigrationLedger
from .registry import get_all_migrations
from .runner import (
    MigrationResult,
    MigrationRunner,
    MigrationState,
    ResultStatus,
    RollbackSummary,
    RunSummary,
    StatusReport,
)

__all__ = [
    "LedgerEntry",
    "LedgerStatus",
    "Migration",
    "MigrationInfo",
    "MigrationLedger",
    "MigrationResult",
    "MigrationRunner",
    "MigrationState",
    "ResultStatus",
    "RollbackSummary",
    "RunSummary",
    "StatusReport",
    "get_all_migrations",
]
