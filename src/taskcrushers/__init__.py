"""
Taskcrushers store core.

Atomic sequence allocation for document ids and an auditable, idempotent
migration engine for the Taskcrushers document store.
"""

__version__ = "0.1.0"
