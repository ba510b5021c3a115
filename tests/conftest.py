"""Test fixtures and utilities."""

from pathlib import Path

import pytest

from taskcrushers.document_store import DocumentStore
from taskcrushers.sequences import SequenceAllocator


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Temporary database path for testing."""
    return tmp_path / "test_store.db"


@pytest.fixture
def store(temp_db) -> DocumentStore:
    """Open document store, closed after the test."""
    document_store = DocumentStore(f"sqlite:///{temp_db}").open()
    yield document_store
    document_store.close()


@pytest.fixture
def allocator(store) -> SequenceAllocator:
    """Sequence allocator on the test store."""
    return SequenceAllocator(store)


@pytest.fixture
def sample_tasks() -> list[dict]:
    """Task documents as written before recurring task support."""
    return [
        {"_id": 1, "title": "Water plants", "userId": 10, "repeatType": "weekly"},
        {"_id": 2, "title": "File taxes", "userId": 10, "dueDate": "2024-04-15"},
        {"_id": 3, "title": "Standup", "userId": 11, "repeatType": "daily"},
        {"_id": 4, "title": "Standup (Tue)", "userId": 11, "parentRecurringId": 3},
    ]
