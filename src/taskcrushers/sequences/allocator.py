"""
Atomic sequence allocator.

Hands out numeric ids that are unique and increasing per sequence name
(e.g. "users", "tasks"). Every operation is one SQL statement against the
``counters`` table, so concurrent callers in any number of threads or
processes never observe the same value. There is no in-process lock: the
store's single-statement atomicity is the only mutual-exclusion boundary.
"""

import logging
import sqlite3
from dataclasses import dataclass

from ..document_store import DocumentStore
from ..errors import InvalidArgument

logger = logging.getLogger(__name__)


@dataclass
class Counter:
    """A sequence counter row."""

    name: str
    value: int  # Last issued value; 0 means the next value is 1

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Counter":
        """Create from database row."""
        return cls(name=row["name"], value=row["value"])


def _validate_name(name: str) -> None:
    if not isinstance(name, str) or not name.strip():
        raise InvalidArgument("Sequence name is required and must be a non-empty string")


def _validate_int(value: int, label: str, minimum: int) -> None:
    # bool is an int subclass but never a meaningful sequence value
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise InvalidArgument(f"{label} must be an integer >= {minimum}, got {value!r}")


class SequenceAllocator:
    """
    Allocates ids from named sequences in the document store.

    Guarantees that no two ``next_value`` calls for the same name ever return
    the same value. It does not guarantee one value per committed entity: a
    caller that fails after allocating simply leaves a gap.
    """

    def __init__(self, store: DocumentStore):
        """
        Initialize with a document store handle.

        Args:
            store: Open document store (lifecycle owned by the caller)
        """
        self.store = store

    def next_value(self, name: str) -> int:
        """
        Increment the named sequence and return the new value.

        Creates the counter at 0 on first use, so a fresh sequence starts at 1.
        The upsert, increment and read happen in a single statement.

        Raises:
            InvalidArgument: If name is empty
            StoreUnavailable: If the store cannot be reached
        """
        _validate_name(name)

        with self.store.transaction() as conn:
            row = conn.execute(
                """
                INSERT INTO counters (name, value) VALUES (?, 1)
                ON CONFLICT(name) DO UPDATE SET value = value + 1
                RETURNING value
            """,
                (name,),
            ).fetchall()[0]

        value = row["value"]
        logger.debug(f"Allocated {name}={value}")
        return value

    def initialize(self, name: str, start: int = 1) -> bool:
        """
        Position a sequence so its next allocation returns ``start``.

        A missing counter is created at ``start - 1``. An existing counter is
        explicitly reset to ``start`` (its next allocation returns start + 1).

        Returns:
            True if the counter was created, False if it already existed

        Raises:
            InvalidArgument: If name is empty or start < 1
        """
        _validate_name(name)
        _validate_int(start, "Start value", 1)

        with self.store.transaction() as conn:
            row = conn.execute(
                """
                INSERT INTO counters (name, value) VALUES (?, ?)
                ON CONFLICT(name) DO UPDATE SET value = ?
                RETURNING value
            """,
                (name, start - 1, start),
            ).fetchall()[0]

        created = row["value"] == start - 1
        if created:
            logger.info(f"Initialized sequence {name}; next value is {start}")
        else:
            logger.warning(f"Sequence {name} already existed; reset to {start}")
        return created

    def current_value(self, name: str) -> int:
        """
        Get the last issued value without incrementing.

        Returns 0 for a sequence that has never been allocated.
        """
        _validate_name(name)

        with self.store.transaction() as conn:
            row = conn.execute("SELECT value FROM counters WHERE name = ?", (name,)).fetchone()
        return row["value"] if row else 0

    def reset(self, name: str, value: int) -> int:
        """
        Force a sequence to ``value``, bypassing monotonicity.

        WARNING: Lowering a sequence that has issued ids will make it issue
        them again. Intended for fixtures and operators only.

        Returns:
            The new counter value
        """
        _validate_name(name)
        _validate_int(value, "Counter value", 0)

        with self.store.transaction() as conn:
            row = conn.execute(
                """
                INSERT INTO counters (name, value) VALUES (?, ?)
                ON CONFLICT(name) DO UPDATE SET value = excluded.value
                RETURNING value
            """,
                (name, value),
            ).fetchall()[0]

        logger.warning(f"Reset sequence {name} to {value}")
        return row["value"]

    def all_counters(self) -> list[Counter]:
        """Get every sequence counter, ordered by name."""
        with self.store.transaction() as conn:
            rows = conn.execute("SELECT name, value FROM counters ORDER BY name").fetchall()
        return [Counter.from_row(row) for row in rows]
