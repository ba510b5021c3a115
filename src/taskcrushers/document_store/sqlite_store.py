"""
SQLite-based document store implementation.

System tables:
- counters: Sequence name → last issued value
- migrations: Migration ledger, one row per execution attempt

Document collections live in their own tables (``col_<name>``) holding one
JSON body per ``_id``; see ``collection.py``.
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ..errors import StoreUnavailable
from .collection import Collection

logger = logging.getLogger(__name__)

SQLITE_SCHEME = "sqlite"


def parse_database_url(url: str) -> Path:
    """
    Resolve a database connection string to a SQLite file path.

    Accepted forms:
    - sqlite:///relative/path.db
    - sqlite:////absolute/path.db
    - a bare filesystem path

    Raises:
        ValueError: If the URL is empty, in-memory, or uses another scheme
    """
    if not url or not url.strip():
        raise ValueError("Database URL is empty")

    url = url.strip()
    if "://" in url:
        scheme, _, rest = url.partition("://")
        if scheme.lower() != SQLITE_SCHEME:
            raise ValueError(f"Unsupported database URL scheme: {scheme}")
        if not rest.startswith("/") or len(rest) < 2:
            raise ValueError(f"Database URL has no path: {url}")
        path = rest[1:]
    else:
        path = url

    if path == ":memory:":
        # Every unit of work opens its own connection, which would see a fresh
        # empty database each time.
        raise ValueError("In-memory databases are not supported")

    return Path(path)


class DocumentStore:
    """
    SQLite-backed document store.

    Provides:
    - Scoped transactions on short-lived connections
    - The counters table used by the sequence allocator
    - The migrations ledger table
    - Named JSON document collections with secondary indexes

    Safe for concurrent callers across threads and processes: every unit of
    work opens its own connection, and SQLite serializes writers.
    """

    def __init__(self, url: str, timeout: float = 30.0):
        """
        Initialize the store handle. No connection is made until ``open()``.

        Args:
            url: Connection string (see ``parse_database_url``)
            timeout: Seconds to wait on a locked database before failing
        """
        self.url = url
        self.db_path = parse_database_url(url)
        self.timeout = timeout
        self._is_open = False

    @property
    def is_open(self) -> bool:
        return self._is_open

    def open(self) -> "DocumentStore":
        """Open the store and create system tables if missing."""
        if self._is_open:
            return self

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailable(
                f"Cannot create database directory {self.db_path.parent}: {e}"
            ) from e

        self._is_open = True
        try:
            self._init_db()
        except Exception:
            self._is_open = False
            raise

        logger.info(f"Opened document store at {self.db_path}")
        return self

    def close(self) -> None:
        """Release the store handle. Later operations raise StoreUnavailable."""
        if self._is_open:
            self._is_open = False
            logger.info(f"Closed document store at {self.db_path}")

    def __enter__(self) -> "DocumentStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        if not self._is_open:
            raise StoreUnavailable("Document store is not open")
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Cannot connect to {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for a unit of work.

        Commits on success and rolls back on any error. SQLite operational
        failures (locked, unreadable, I/O) surface as StoreUnavailable;
        integrity and programming errors propagate unchanged.
        """
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except (sqlite3.IntegrityError, sqlite3.ProgrammingError):
            conn.rollback()
            raise
        except sqlite3.DatabaseError as e:
            conn.rollback()
            raise StoreUnavailable(f"Document store operation failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize system tables."""
        with self.transaction() as conn:
            conn.execute("PRAGMA journal_mode=WAL")

            # Sequence counters
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS counters (
                    name TEXT PRIMARY KEY,
                    value INTEGER NOT NULL DEFAULT 0 CHECK (value >= 0)
                )
            """
            )

            # Migration ledger
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS migrations (
                    entry_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT,
                    version TEXT,
                    status TEXT NOT NULL,  -- completed, failed, rolled_back
                    applied_at TEXT NOT NULL,
                    rolled_back_at TEXT,
                    duration_ms INTEGER NOT NULL DEFAULT 0,
                    rollback_duration_ms INTEGER,
                    result TEXT,  -- JSON
                    error TEXT
                )
            """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_migrations_id_status ON migrations(id, status)"
            )

    def collection(self, name: str) -> Collection:
        """Get a handle on a named document collection."""
        return Collection(self, name)
