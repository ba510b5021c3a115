"""
Migration 001: Add recurring task fields and indexes.

Adds parentRecurringId to existing tasks (null = not an instance of a
recurring series) and the indexes used to look up recurrence instances.

Steps:
1. Backfill parentRecurringId on every task lacking it
2. Create indexes, each attempted independently
3. Validate that every task now has the field

Index failures are advisory unless ``strict_indexes`` is set: the backfill is
what makes the migration applied, and a failed index is reported in the result
payload for an operator to repair.

Downgrade removes only null parentRecurringId values, which are the ones the
backfill writes; tasks already linked to a recurring series keep their link.
"""

import logging
from dataclasses import dataclass
from typing import Any

from ..document_store import DocumentStore
from ..errors import (
    IndexExistsError,
    IndexNotFoundError,
    MigrationFailed,
    StoreError,
    ValidationFailed,
)
from .base import Migration, MigrationInfo

logger = logging.getLogger(__name__)

TASKS_COLLECTION = "tasks"
FIELD = "parentRecurringId"


@dataclass(frozen=True)
class IndexSpec:
    """A sparse index created by this migration."""

    name: str
    keys: tuple[str, ...]


INDEXES = (
    IndexSpec("parentRecurringId_1", ("parentRecurringId",)),
    IndexSpec("userId_parentRecurringId_1", ("userId", "parentRecurringId")),
    IndexSpec("repeatType_1", ("repeatType",)),
    IndexSpec("userId_repeatType_1", ("userId", "repeatType")),
    IndexSpec("parentRecurringId_dueDate_1", ("parentRecurringId", "dueDate")),
)


def _count_status(results: list[dict[str, Any]], status: str) -> int:
    return sum(1 for r in results if r["status"] == status)


class AddRecurringTaskFields(Migration):
    """Backfill parentRecurringId on tasks and index recurring lookups."""

    info = MigrationInfo(
        id="001",
        name="add_recurring_task_fields",
        description="Add parentRecurringId field and indexes for recurring task support",
        version="1.0.0",
    )

    def __init__(self, strict_indexes: bool = False):
        """
        Args:
            strict_indexes: Treat any failed index as a migration failure
        """
        self.strict_indexes = strict_indexes

    def upgrade(self, store: DocumentStore) -> dict[str, Any]:
        tasks = store.collection(TASKS_COLLECTION)

        logger.info(f"Step 1: Adding {FIELD} field to existing tasks")
        tasks_updated = tasks.update_many(
            {FIELD: {"$exists": False}}, set_fields={FIELD: None}
        )
        logger.info(f"Updated {tasks_updated} tasks with {FIELD} field")

        logger.info("Step 2: Creating indexes for recurring task lookups")
        index_results = self.create_indexes(store)

        logger.info("Step 3: Validating migration")
        total_tasks = tasks.count_documents()
        tasks_with_field = tasks.count_documents({FIELD: {"$exists": True}})
        validation = {
            "total_tasks": total_tasks,
            "tasks_with_parent_recurring_id": tasks_with_field,
            "migration_complete": total_tasks == tasks_with_field,
        }
        if not validation["migration_complete"]:
            raise ValidationFailed(
                self.info.id, f"{tasks_with_field}/{total_tasks} tasks have {FIELD} field"
            )

        indexes_failed = _count_status(index_results, "failed")
        if indexes_failed and self.strict_indexes:
            failed_names = [r["name"] for r in index_results if r["status"] == "failed"]
            raise MigrationFailed(
                self.info.id, f"Index creation failed: {', '.join(failed_names)}"
            )

        return {
            "tasks_updated": tasks_updated,
            "indexes_created": _count_status(index_results, "created"),
            "indexes_skipped": _count_status(index_results, "skipped"),
            "indexes_failed": indexes_failed,
            "validation": validation,
            "index_results": index_results,
        }

    def create_indexes(self, store: DocumentStore) -> list[dict[str, Any]]:
        """
        Create every index independently. An existing index counts as skipped.

        Returns:
            One result per index with status created, skipped or failed
        """
        tasks = store.collection(TASKS_COLLECTION)
        results: list[dict[str, Any]] = []

        for spec in INDEXES:
            try:
                if spec.name in tasks.index_names():
                    logger.warning(f"Index {spec.name} already exists, skipping")
                    results.append(
                        {"name": spec.name, "status": "skipped", "reason": "already exists"}
                    )
                    continue
                tasks.create_index(spec.name, spec.keys, sparse=True)
                logger.info(f"Created index: {spec.name}")
                results.append({"name": spec.name, "status": "created"})
            except IndexExistsError:
                # Created concurrently between the check and the create
                logger.warning(f"Index {spec.name} already exists, skipping")
                results.append(
                    {"name": spec.name, "status": "skipped", "reason": "already exists"}
                )
            except StoreError as e:
                logger.error(f"Failed to create index {spec.name}: {e}")
                results.append({"name": spec.name, "status": "failed", "error": str(e)})

        return results

    def downgrade(self, store: DocumentStore) -> dict[str, Any]:
        tasks = store.collection(TASKS_COLLECTION)

        logger.info(f"Step 1: Removing backfilled {FIELD} values from tasks")
        tasks_updated = tasks.update_many({FIELD: None}, unset_fields=[FIELD])
        logger.info(f"Removed {FIELD} field from {tasks_updated} tasks")

        logger.info("Step 2: Dropping created indexes")
        drop_results: list[dict[str, Any]] = []
        for spec in INDEXES:
            try:
                tasks.drop_index(spec.name)
                logger.info(f"Dropped index: {spec.name}")
                drop_results.append({"name": spec.name, "status": "dropped"})
            except IndexNotFoundError:
                logger.warning(f"Index {spec.name} not found, skipping")
                drop_results.append({"name": spec.name, "status": "not_found"})
            except StoreError as e:
                logger.error(f"Failed to drop index {spec.name}: {e}")
                drop_results.append({"name": spec.name, "status": "failed", "error": str(e)})

        return {
            "tasks_updated": tasks_updated,
            "indexes_dropped": _count_status(drop_results, "dropped"),
            "indexes_not_found": _count_status(drop_results, "not_found"),
            "indexes_failed_to_drop": _count_status(drop_results, "failed"),
            "drop_results": drop_results,
        }
