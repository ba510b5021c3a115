"""
CLI runner module.

Provides commands:
- migrate: Apply pending migrations
- rollback: Revert applied migrations
- status: Show applied/pending migrations
- counters: Show sequence counters
- init-config: Write a default config file
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
