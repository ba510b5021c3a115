"""
Error taxonomy shared by the store, the allocator and the migration engine.
"""


class TaskcrushersError(Exception):
    """Base exception for all store-core errors."""

    pass


class InvalidArgument(TaskcrushersError, ValueError):
    """Caller passed a bad argument; nothing was mutated."""

    pass


class StoreError(TaskcrushersError):
    """Base exception for document store errors."""

    pass


class StoreUnavailable(StoreError):
    """The document store could not be reached or failed an I/O operation."""

    pass


class IndexExistsError(StoreError):
    """An index with the requested name already exists."""

    pass


class IndexNotFoundError(StoreError):
    """The index to drop does not exist."""

    pass


class MigrationError(TaskcrushersError):
    """Base exception for migration errors."""

    pass


class MigrationFailed(MigrationError):
    """A migration's upgrade or downgrade raised."""

    def __init__(self, migration_id: str, message: str):
        self.migration_id = migration_id
        self.message = message
        super().__init__(f"Migration {migration_id} failed: {message}")


class ValidationFailed(MigrationFailed):
    """A migration's post-condition check did not hold."""

    def __init__(self, migration_id: str, message: str):
        self.migration_id = migration_id
        self.message = message
        MigrationError.__init__(self, f"Migration {migration_id} validation failed: {message}")


class DescriptorNotFound(MigrationError):
    """A ledger entry references a migration id with no loaded definition."""

    def __init__(self, migration_id: str):
        self.migration_id = migration_id
        super().__init__(f"Migration definition not found for {migration_id}")
