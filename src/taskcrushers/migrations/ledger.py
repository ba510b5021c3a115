"""
Migration ledger.

Audit trail of migration attempts in the ``migrations`` table:
- One row is appended per execution attempt (completed or failed)
- A rollback updates the latest completed row for that id in place
- A migration is applied iff it has a row with status completed
- Application order is entry_id order; applied_at is informational only
"""

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ..document_store import DocumentStore

logger = logging.getLogger(__name__)


class LedgerStatus(str, Enum):
    """Status of a ledger entry."""

    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


@dataclass
class LedgerEntry:
    """Record of one migration attempt."""

    entry_id: int
    migration_id: str
    name: str
    description: str | None
    version: str | None
    status: LedgerStatus
    applied_at: str  # ISO timestamp
    rolled_back_at: str | None
    duration_ms: int
    rollback_duration_ms: int | None
    result: dict[str, Any] | None
    error: str | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "LedgerEntry":
        """Create from database row."""
        return cls(
            entry_id=row["entry_id"],
            migration_id=row["id"],
            name=row["name"],
            description=row["description"],
            version=row["version"],
            status=LedgerStatus(row["status"]),
            applied_at=row["applied_at"],
            rolled_back_at=row["rolled_back_at"],
            duration_ms=row["duration_ms"],
            rollback_duration_ms=row["rollback_duration_ms"],
            result=json.loads(row["result"]) if row["result"] else None,
            error=row["error"],
        )


class MigrationLedger:
    """Reads and writes migration ledger entries."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def _append(
        self,
        migration_id: str,
        name: str,
        description: str | None,
        version: str | None,
        status: LedgerStatus,
        duration_ms: int,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> int:
        with self.store.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO migrations
                (id, name, description, version, status, applied_at, duration_ms, result, error)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    migration_id,
                    name,
                    description,
                    version,
                    status.value,
                    _utc_now(),
                    duration_ms,
                    json.dumps(result, default=str) if result is not None else None,
                    error,
                ),
            )
            return cursor.lastrowid or 0

    def record_completed(
        self,
        migration_id: str,
        name: str,
        description: str | None,
        version: str | None,
        duration_ms: int,
        result: dict[str, Any] | None = None,
    ) -> int:
        """Append a completed entry. Returns the entry id."""
        entry_id = self._append(
            migration_id,
            name,
            description,
            version,
            LedgerStatus.COMPLETED,
            duration_ms,
            result=result,
        )
        logger.info(f"Recorded migration {migration_id} as completed (entry #{entry_id})")
        return entry_id

    def record_failed(
        self,
        migration_id: str,
        name: str,
        description: str | None,
        version: str | None,
        duration_ms: int,
        error: str,
    ) -> int:
        """Append a failed entry. Returns the entry id."""
        entry_id = self._append(
            migration_id,
            name,
            description,
            version,
            LedgerStatus.FAILED,
            duration_ms,
            error=error,
        )
        logger.info(f"Recorded migration {migration_id} as failed (entry #{entry_id})")
        return entry_id

    def mark_rolled_back(self, migration_id: str, rollback_duration_ms: int) -> bool:
        """
        Flip the latest completed entry for a migration to rolled_back.

        Returns:
            True if an entry was updated, False if none was completed
        """
        with self.store.transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE migrations
                SET status = ?, rolled_back_at = ?, rollback_duration_ms = ?
                WHERE entry_id = (
                    SELECT entry_id FROM migrations
                    WHERE id = ? AND status = ?
                    ORDER BY entry_id DESC
                    LIMIT 1
                )
            """,
                (
                    LedgerStatus.ROLLED_BACK.value,
                    _utc_now(),
                    rollback_duration_ms,
                    migration_id,
                    LedgerStatus.COMPLETED.value,
                ),
            )
            updated = cursor.rowcount > 0

        if not updated:
            logger.warning(f"No completed ledger entry to roll back for migration {migration_id}")
        return updated

    def is_applied(self, migration_id: str) -> bool:
        """Check whether a migration has a completed entry."""
        with self.store.transaction() as conn:
            row = conn.execute(
                "SELECT 1 FROM migrations WHERE id = ? AND status = ? LIMIT 1",
                (migration_id, LedgerStatus.COMPLETED.value),
            ).fetchone()
            return row is not None

    def completed_entries(self) -> list[LedgerEntry]:
        """Get completed entries, most recently applied first."""
        with self.store.transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM migrations WHERE status = ?
                ORDER BY entry_id DESC
            """,
                (LedgerStatus.COMPLETED.value,),
            ).fetchall()
        return [LedgerEntry.from_row(row) for row in rows]

    def history(self, migration_id: str | None = None) -> list[LedgerEntry]:
        """Get every entry (optionally for one migration) in insertion order."""
        with self.store.transaction() as conn:
            if migration_id is None:
                rows = conn.execute("SELECT * FROM migrations ORDER BY entry_id").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM migrations WHERE id = ? ORDER BY entry_id",
                    (migration_id,),
                ).fetchall()
        return [LedgerEntry.from_row(row) for row in rows]
