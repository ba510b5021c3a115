"""
Document Store (SQLite-based).

Shared persistent store for:
- Sequence counters (one row per sequence name)
- The migration ledger
- JSON document collections (tasks, users, ...)

All mutations are single-statement atomic operations.
"""

from .collection import Collection
from .sqlite_store import DocumentStore, parse_database_url

__all__ = [
    "Collection",
    "DocumentStore",
    "parse_database_url",
]
