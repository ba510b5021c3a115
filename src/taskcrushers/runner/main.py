"""
CLI main entry point.
"""

import argparse
import logging
import sys
from pathlib import Path

from ..config import Config, ConfigValidationError, create_default_config, load_config
from ..document_store import DocumentStore
from ..errors import StoreError, TaskcrushersError
from ..migrations import (
    MigrationRunner,
    ResultStatus,
    RollbackSummary,
    RunSummary,
    get_all_migrations,
)
from ..sequences import SequenceAllocator

logger = logging.getLogger(__name__)

STATUS_ICONS = {
    ResultStatus.COMPLETED: "✅",
    ResultStatus.SKIPPED: "⏭️ ",
    ResultStatus.DRY_RUN: "🔍",
    ResultStatus.FAILED: "❌",
    ResultStatus.ROLLED_BACK: "↩️ ",
    ResultStatus.ROLLBACK_FAILED: "❌",
}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="taskcrushers-migrate",
        description="Apply, revert and inspect Taskcrushers document store migrations",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # migrate command
    migrate_parser = subparsers.add_parser("migrate", help="Run pending migrations")
    migrate_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be migrated without applying changes",
    )
    migrate_parser.add_argument(
        "--target",
        type=str,
        default=None,
        help="Run migrations up to (not including) this migration id",
    )
    migrate_parser.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Continue running migrations even if one fails",
    )

    # rollback command
    rollback_parser = subparsers.add_parser("rollback", help="Roll back applied migrations")
    rollback_parser.add_argument(
        "--steps",
        type=int,
        default=None,
        help="Number of migrations to roll back (default: from config, usually 1)",
    )
    rollback_parser.add_argument(
        "--target",
        type=str,
        default=None,
        help="Roll back everything applied after this migration id",
    )

    # status command
    subparsers.add_parser("status", help="Show migration status")

    # counters command
    subparsers.add_parser("counters", help="Show sequence counters")

    # init-config command
    subparsers.add_parser("init-config", help="Write a default config file")

    return parser


def _print_results(summary: RunSummary | RollbackSummary) -> None:
    print("\n📋 Detailed Results:")
    for result in summary.results:
        icon = STATUS_ICONS.get(result.status, "❌")
        print(f"   {icon} {result.migration_id}: {result.name or 'Unknown'}")
        if result.reason:
            print(f"      Reason: {result.reason}")
        if result.error:
            print(f"      Error: {result.error}")
        if result.result and result.result.get("indexes_failed"):
            print(f"      ⚠️  {result.result['indexes_failed']} index(es) failed to build")


def cmd_migrate(
    store: DocumentStore,
    config: Config,
    dry_run: bool,
    target: str | None,
    continue_on_error: bool,
) -> int:
    """Run pending migrations."""
    runner = MigrationRunner(
        store, get_all_migrations(strict_indexes=config.migrations.strict_indexes)
    )
    summary = runner.run_all(
        dry_run=dry_run,
        target_id=target,
        continue_on_error=continue_on_error or config.migrations.continue_on_error,
    )

    print("\n📊 Migration Results")
    print("=" * 40)
    print(f"  Total migrations:       {summary.total_migrations}")
    print(f"  Migrations run:         {summary.migrations_run}")
    print(f"  Migrations skipped:     {summary.migrations_skipped}")
    print(f"  Migrations failed:      {summary.migrations_failed}")
    print(f"  Duration:               {summary.duration_ms}ms")
    print(f"  Dry run:                {'Yes' if summary.dry_run else 'No'}")
    _print_results(summary)

    if summary.success:
        print("\n✓ All migrations completed successfully")
        return 0
    print("\n⚠️  Some migrations failed. Please review the errors above.")
    return 1


def cmd_rollback(
    store: DocumentStore, config: Config, steps: int | None, target: str | None
) -> int:
    """Roll back applied migrations."""
    runner = MigrationRunner(
        store, get_all_migrations(strict_indexes=config.migrations.strict_indexes)
    )
    summary = runner.rollback(
        steps=steps if steps is not None else config.migrations.rollback_steps,
        target_id=target,
    )

    print("\n📊 Rollback Results")
    print("=" * 40)
    print(f"  Migrations rolled back: {summary.migrations_rolled_back}")
    print(f"  Migrations skipped:     {summary.migrations_skipped}")
    print(f"  Rollbacks failed:       {summary.migrations_failed}")
    print(f"  Duration:               {summary.duration_ms}ms")
    _print_results(summary)

    if summary.success:
        print("\n✓ All rollbacks completed successfully")
        return 0
    print("\n⚠️  Some rollbacks failed. Please review the errors above.")
    return 1


def cmd_status(store: DocumentStore) -> int:
    """Show migration status."""
    report = MigrationRunner(store, get_all_migrations()).status()

    print("\n📊 Migration Status")
    print("=" * 40)
    print(f"  Total migrations:       {report.total_migrations}")
    print(f"  Applied migrations:     {report.applied_migrations}")
    print(f"  Pending migrations:     {report.pending_migrations}")

    print("\n📋 Migration Details:")
    for migration in report.migrations:
        state = "✅ Applied" if migration.applied else "⏳ Pending"
        print(f"   {state} - {migration.id}: {migration.name}")
        print(f"      Description: {migration.description}")
        print(f"      Version: {migration.version}")

    if report.pending_migrations:
        print(f"\n⚠️  You have {report.pending_migrations} pending migration(s).")
        print("   Run 'taskcrushers-migrate migrate' to apply them.")
    else:
        print("\n✓ All migrations are up to date")
    print()

    return 0


def cmd_counters(store: DocumentStore) -> int:
    """Show sequence counters."""
    counters = SequenceAllocator(store).all_counters()

    print("\n🔢 Sequence Counters")
    print("=" * 40)
    if not counters:
        print("  No counters allocated yet")
    for counter in counters:
        print(f"  {counter.name:<24}{counter.value}")
    print()

    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init-config":
        create_default_config(parsed.config)
        print(f"✓ Wrote default config to {parsed.config}")
        return 0

    # Load config; a missing connection string is fatal before any command runs
    try:
        config = load_config(parsed.config)
        config.require_valid()
    except (ConfigValidationError, OSError, ValueError) as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    try:
        store = DocumentStore(config.database_url, timeout=config.busy_timeout_seconds)
    except ValueError as e:
        print(f"❌ Invalid database URL: {e}")
        return 1

    try:
        with store:
            if parsed.command == "migrate":
                return cmd_migrate(
                    store,
                    config,
                    dry_run=parsed.dry_run,
                    target=parsed.target,
                    continue_on_error=parsed.continue_on_error,
                )
            elif parsed.command == "rollback":
                return cmd_rollback(store, config, steps=parsed.steps, target=parsed.target)
            elif parsed.command == "status":
                return cmd_status(store)
            elif parsed.command == "counters":
                return cmd_counters(store)
            else:
                parser.print_help()
                return 1
    except StoreError as e:
        logger.error(f"Document store error: {e}", exc_info=parsed.verbose)
        print(f"❌ Document store unavailable: {e}")
        return 1
    except (TaskcrushersError, ValueError) as e:
        logger.error(f"{parsed.command} failed: {e}", exc_info=parsed.verbose)
        print(f"❌ {parsed.command.capitalize()} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
