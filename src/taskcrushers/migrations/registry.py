"""
Migration registry.

Every migration is listed here explicitly, in id order. Adding a migration
means adding a module and one line below; nothing is discovered from the
filesystem at runtime.
"""

from .base import Migration
from .m001_recurring_task_fields import AddRecurringTaskFields


def get_all_migrations(strict_indexes: bool = False) -> list[Migration]:
    """
    Build the registered migrations, sorted by id.

    Args:
        strict_indexes: Make index creation failures fatal for migrations
            that create indexes
    """
    migrations: list[Migration] = [
        AddRecurringTaskFields(strict_indexes=strict_indexes),
    ]
    return sorted(migrations, key=lambda m: m.id)
