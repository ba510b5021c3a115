"""
Test fixtures for migration runner tests.

Provides:
- RecordingMigration: a migration that writes a marker document and records
  every upgrade/downgrade call, with switchable failures
- snapshot_state: a comparable dump of counters, ledger and marker documents
"""

from typing import Any

from taskcrushers.document_store import DocumentStore
from taskcrushers.migrations import Migration, MigrationInfo

MARKERS_COLLECTION = "markers"


class RecordingMigration(Migration):
    """Migration that leaves a marker document behind."""

    def __init__(
        self,
        migration_id: str,
        calls: list[tuple[str, str]] | None = None,
        fail_up: bool = False,
        fail_down: bool = False,
        interrupt_up: bool = False,
    ):
        self.info = MigrationInfo(
            id=migration_id,
            name=f"recording_{migration_id}",
            description=f"Test migration {migration_id}",
            version="1.0.0",
        )
        self.calls = calls if calls is not None else []
        self.fail_up = fail_up
        self.fail_down = fail_down
        self.interrupt_up = interrupt_up

    def upgrade(self, store: DocumentStore) -> dict[str, Any]:
        self.calls.append(("up", self.id))
        if self.interrupt_up:
            raise KeyboardInterrupt
        if self.fail_up:
            raise RuntimeError(f"upgrade of {self.id} exploded")
        store.collection(MARKERS_COLLECTION).insert_one({"_id": self.id, "applied": True})
        return {"marker": self.id}

    def downgrade(self, store: DocumentStore) -> dict[str, Any]:
        self.calls.append(("down", self.id))
        if self.fail_down:
            raise RuntimeError(f"downgrade of {self.id} exploded")
        removed = store.collection(MARKERS_COLLECTION).delete_many({"_id": self.id})
        return {"removed": removed}


def snapshot_state(store: DocumentStore) -> dict[str, Any]:
    """Dump counters, ledger rows and marker documents."""
    with store.transaction() as conn:
        counters = [tuple(row) for row in conn.execute("SELECT * FROM counters ORDER BY name")]
        ledger = [tuple(row) for row in conn.execute("SELECT * FROM migrations ORDER BY entry_id")]
    markers = store.collection(MARKERS_COLLECTION).find()
    return {"counters": counters, "ledger": ledger, "markers": markers}
