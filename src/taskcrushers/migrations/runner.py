"""
Migration runner for ordered, auditable schema and data changes.

Migrations come from the explicit registry (``registry.py``) and always run
in ascending id order, one at a time. Each migration moves through:

    PENDING -> (skipped if applied) -> RUNNING -> COMPLETED | FAILED
    COMPLETED -> RUNNING(rollback) -> ROLLED_BACK | ROLLBACK_FAILED

The runner captures per-migration failures into a summary; only store errors
outside a migration body (e.g. reading the ledger) propagate to the caller.
"""

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..document_store import DocumentStore
from ..errors import DescriptorNotFound, InvalidArgument, MigrationFailed, StoreError
from .base import Migration, elapsed_ms
from .ledger import MigrationLedger
from .registry import get_all_migrations

logger = logging.getLogger(__name__)


class ResultStatus(str, Enum):
    """Outcome of one migration within a run or rollback."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    DRY_RUN = "dry_run"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_FAILED = "rollback_failed"


@dataclass
class MigrationResult:
    """Result for one migration."""

    migration_id: str
    name: str | None
    status: ResultStatus
    reason: str | None = None
    error: str | None = None
    result: dict[str, Any] | None = None


@dataclass
class RunSummary:
    """Summary of a ``run_all`` call."""

    total_migrations: int
    migrations_run: int
    migrations_skipped: int
    migrations_failed: int
    duration_ms: int
    dry_run: bool
    results: list[MigrationResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.migrations_failed == 0


@dataclass
class RollbackSummary:
    """Summary of a ``rollback`` call."""

    migrations_rolled_back: int
    migrations_skipped: int
    migrations_failed: int
    duration_ms: int
    results: list[MigrationResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.migrations_failed == 0


@dataclass
class MigrationState:
    """Applied/pending state of one known migration."""

    id: str
    name: str
    description: str
    version: str
    applied: bool


@dataclass
class StatusReport:
    """Result of ``status``."""

    migrations: list[MigrationState]

    @property
    def total_migrations(self) -> int:
        return len(self.migrations)

    @property
    def applied_migrations(self) -> int:
        return sum(1 for m in self.migrations if m.applied)

    @property
    def pending_migrations(self) -> int:
        return sum(1 for m in self.migrations if not m.applied)


class MigrationRunner:
    """
    Runs migrations against a document store.

    Never runs migrations in parallel and never reorders them: id order is the
    only ordering guarantee. Concurrent runners in different processes are not
    coordinated; operators serialize them.
    """

    def __init__(
        self,
        store: DocumentStore,
        migrations: Sequence[Migration] | None = None,
    ):
        """
        Initialize with a document store handle.

        Args:
            store: Open document store (lifecycle owned by the caller)
            migrations: Migrations to manage; defaults to the registry
        """
        self.store = store
        self.ledger = MigrationLedger(store)
        self._provided = list(migrations) if migrations is not None else None
        self._migrations: list[Migration] | None = None

    @property
    def migrations(self) -> list[Migration]:
        return self.load_migrations()

    def load_migrations(self) -> list[Migration]:
        """
        Load migrations once, sorted by id.

        Raises:
            ValueError: If two migrations share an id
        """
        if self._migrations is not None:
            return self._migrations

        candidates = self._provided if self._provided is not None else get_all_migrations()

        seen: dict[str, Migration] = {}
        for migration in candidates:
            if migration.id in seen:
                raise ValueError(
                    f"Duplicate migration id {migration.id}: "
                    f"{seen[migration.id].name} and {migration.name}"
                )
            seen[migration.id] = migration

        self._migrations = sorted(candidates, key=lambda m: m.id)
        logger.info(
            f"Loaded {len(self._migrations)} migration(s): "
            f"{[m.id for m in self._migrations]}"
        )
        return self._migrations

    def find_migration(self, migration_id: str) -> Migration:
        """
        Get a loaded migration by id.

        Raises:
            DescriptorNotFound: If no loaded migration has this id
        """
        for migration in self.load_migrations():
            if migration.id == migration_id:
                return migration
        raise DescriptorNotFound(migration_id)

    def run_all(
        self,
        dry_run: bool = False,
        target_id: str | None = None,
        continue_on_error: bool = False,
    ) -> RunSummary:
        """
        Apply pending migrations in id order.

        Args:
            dry_run: Report what would run without calling ``up``
            target_id: Stop before this migration (exclusive upper bound)
            continue_on_error: Keep going after a failed migration

        Returns:
            RunSummary; ``success`` is False if any migration failed
        """
        started = time.monotonic()
        migrations = self.load_migrations()

        logger.info(
            f"Starting migration run (dry_run={dry_run}, target={target_id}, "
            f"continue_on_error={continue_on_error}, total={len(migrations)})"
        )
        if target_id is not None and target_id not in {m.id for m in migrations}:
            logger.warning(f"Target migration {target_id} is not registered; running all")

        results: list[MigrationResult] = []
        migrations_run = 0

        for migration in migrations:
            if target_id is not None and migration.id == target_id:
                logger.info(f"Reached target migration: {target_id}")
                break

            if migration.is_applied(self.store):
                logger.info(f"Migration {migration.id} already applied, skipping")
                results.append(
                    MigrationResult(
                        migration.id,
                        migration.name,
                        ResultStatus.SKIPPED,
                        reason="already applied",
                    )
                )
                continue

            if dry_run:
                logger.info(f"DRY RUN: Would run migration {migration.id}")
                results.append(
                    MigrationResult(
                        migration.id,
                        migration.name,
                        ResultStatus.DRY_RUN,
                        reason="dry run mode",
                    )
                )
                continue

            logger.info(f"Running migration {migration.id}: {migration.name}")
            attempt_started = time.monotonic()
            try:
                outcome = migration.up(self.store)
            except MigrationFailed as e:
                logger.error(f"Migration {migration.id} failed: {e}", exc_info=True)
                self._record_failure(migration, elapsed_ms(attempt_started), e)
                results.append(
                    MigrationResult(
                        migration.id,
                        migration.name,
                        ResultStatus.FAILED,
                        error=str(e),
                    )
                )
                if not continue_on_error:
                    break
                continue

            migrations_run += 1
            results.append(
                MigrationResult(
                    migration.id,
                    migration.name,
                    ResultStatus.COMPLETED,
                    result=outcome,
                )
            )
            logger.info(f"Migration {migration.id} completed successfully")

        summary = RunSummary(
            total_migrations=len(migrations),
            migrations_run=migrations_run,
            migrations_skipped=sum(1 for r in results if r.status == ResultStatus.SKIPPED),
            migrations_failed=sum(1 for r in results if r.status == ResultStatus.FAILED),
            duration_ms=elapsed_ms(started),
            dry_run=dry_run,
            results=results,
        )
        logger.info(
            f"Migration run finished: run={summary.migrations_run}, "
            f"skipped={summary.migrations_skipped}, failed={summary.migrations_failed}, "
            f"duration={summary.duration_ms}ms"
        )
        return summary

    def _record_failure(
        self, migration: Migration, duration_ms: int, error: MigrationFailed
    ) -> None:
        """Append a failed ledger entry; a ledger write error is logged, not raised."""
        try:
            self.ledger.record_failed(
                migration.info.id,
                migration.info.name,
                migration.info.description,
                migration.info.version,
                duration_ms,
                error=str(error),
            )
        except StoreError as record_error:
            logger.error(
                f"Failed to record failure of migration {migration.id}: {record_error}"
            )

    def rollback(self, steps: int = 1, target_id: str | None = None) -> RollbackSummary:
        """
        Revert applied migrations, most recently applied first.

        Args:
            steps: Number of migrations to revert when no target is given
            target_id: Revert everything applied after this migration
                (exclusive); overrides ``steps``

        Returns:
            RollbackSummary; stops at the first rollback failure
        """
        if isinstance(steps, bool) or not isinstance(steps, int) or steps < 1:
            raise InvalidArgument(f"steps must be a positive integer, got {steps!r}")

        started = time.monotonic()
        self.load_migrations()

        logger.warning(f"Starting migration rollback (steps={steps}, target={target_id})")

        results: list[MigrationResult] = []
        rolled_back = 0

        for entry in self.ledger.completed_entries():
            if target_id is None and rolled_back >= steps:
                break
            if target_id is not None and entry.migration_id == target_id:
                logger.info(f"Reached target migration: {target_id}")
                break

            try:
                migration = self.find_migration(entry.migration_id)
            except DescriptorNotFound as e:
                logger.warning(str(e))
                results.append(
                    MigrationResult(
                        entry.migration_id,
                        entry.name,
                        ResultStatus.SKIPPED,
                        reason="definition not found",
                    )
                )
                continue

            logger.warning(f"Rolling back migration {migration.id}")
            try:
                outcome = migration.down(self.store)
            except MigrationFailed as e:
                logger.error(f"Migration {migration.id} rollback failed: {e}", exc_info=True)
                results.append(
                    MigrationResult(
                        migration.id,
                        migration.name,
                        ResultStatus.ROLLBACK_FAILED,
                        error=str(e),
                    )
                )
                # Rollback never continues past a failure
                break

            rolled_back += 1
            results.append(
                MigrationResult(
                    migration.id,
                    migration.name,
                    ResultStatus.ROLLED_BACK,
                    result=outcome,
                )
            )
            logger.warning(f"Migration {migration.id} rolled back successfully")

        summary = RollbackSummary(
            migrations_rolled_back=rolled_back,
            migrations_skipped=sum(1 for r in results if r.status == ResultStatus.SKIPPED),
            migrations_failed=sum(
                1 for r in results if r.status == ResultStatus.ROLLBACK_FAILED
            ),
            duration_ms=elapsed_ms(started),
            results=results,
        )
        logger.warning(
            f"Migration rollback finished: rolled_back={summary.migrations_rolled_back}, "
            f"failed={summary.migrations_failed}, duration={summary.duration_ms}ms"
        )
        return summary

    def status(self) -> StatusReport:
        """Report applied/pending state of every known migration. Read-only."""
        states = [
            MigrationState(
                id=m.info.id,
                name=m.info.name,
                description=m.info.description,
                version=m.info.version,
                applied=m.is_applied(self.store),
            )
            for m in self.load_migrations()
        ]
        return StatusReport(migrations=states)
