"""
Base migration interface.

A migration owns one forward transformation and its inverse. Subclasses
implement ``upgrade``/``downgrade``; the base class handles timing and the
ledger so that:
- a completed entry is written only after ``upgrade`` (including its own
  validation) has returned
- ``is_applied`` is answered from the ledger, never from data shape
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from ..document_store import DocumentStore
from ..errors import MigrationFailed
from .ledger import MigrationLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MigrationInfo:
    """Static migration metadata."""

    id: str  # Zero-padded, sorts lexically, e.g. "001"
    name: str
    description: str
    version: str


def elapsed_ms(started: float) -> int:
    """Milliseconds since a ``time.monotonic()`` reading."""
    return int((time.monotonic() - started) * 1000)


class Migration(ABC):
    """
    Base class for all migrations.

    Subclasses set ``info`` and implement ``upgrade`` and ``downgrade``.
    """

    info: MigrationInfo

    @property
    def id(self) -> str:
        return self.info.id

    @property
    def name(self) -> str:
        return self.info.name

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.info.id}:{self.info.name}>"

    @abstractmethod
    def upgrade(self, store: DocumentStore) -> dict[str, Any]:
        """
        Apply the forward change and validate it.

        Must raise (e.g. ValidationFailed) rather than return if the resulting
        state does not hold.

        Returns:
            Result payload recorded in the ledger
        """
        pass

    @abstractmethod
    def downgrade(self, store: DocumentStore) -> dict[str, Any]:
        """
        Revert the forward change.

        Returns:
            Result payload describing what was reverted
        """
        pass

    def up(self, store: DocumentStore) -> dict[str, Any]:
        """
        Run ``upgrade`` and record a completed ledger entry.

        Raises:
            MigrationFailed: If upgrade or the ledger write failed. Nothing is
                written to the ledger in that case; the caller records the
                failure.
        """
        started = time.monotonic()
        logger.info(f"Starting migration {self.info.id}: {self.info.name}")

        try:
            result = self.upgrade(store)
            duration_ms = elapsed_ms(started)
            MigrationLedger(store).record_completed(
                self.info.id,
                self.info.name,
                self.info.description,
                self.info.version,
                duration_ms,
                result=result,
            )
        except MigrationFailed:
            raise
        except Exception as e:
            raise MigrationFailed(self.info.id, str(e)) from e

        logger.info(f"Migration {self.info.id} completed in {duration_ms}ms")
        return {**result, "duration_ms": duration_ms}

    def down(self, store: DocumentStore) -> dict[str, Any]:
        """
        Run ``downgrade`` and mark the ledger entry rolled back.

        Raises:
            MigrationFailed: If downgrade or the ledger update failed
        """
        started = time.monotonic()
        logger.warning(f"Starting rollback of migration {self.info.id}: {self.info.name}")

        try:
            result = self.downgrade(store)
            duration_ms = elapsed_ms(started)
            MigrationLedger(store).mark_rolled_back(self.info.id, duration_ms)
        except MigrationFailed:
            raise
        except Exception as e:
            raise MigrationFailed(self.info.id, str(e)) from e

        logger.warning(f"Migration {self.info.id} rolled back in {duration_ms}ms")
        return {**result, "duration_ms": duration_ms}

    def is_applied(self, store: DocumentStore) -> bool:
        """Check the ledger for a completed entry. Read-only."""
        return MigrationLedger(store).is_applied(self.info.id)
