"""Tests for CLI commands.

These tests verify that all CLI commands are properly registered and callable.
"""

import importlib

import pytest

from fixtures import RecordingMigration
from taskcrushers.config import DATABASE_URL_ENV
from taskcrushers.document_store import DocumentStore
from taskcrushers.migrations import MigrationLedger
from taskcrushers.runner.main import create_cli, main
from taskcrushers.sequences import SequenceAllocator

cli_module = importlib.import_module("taskcrushers.runner.main")


@pytest.fixture
def db_url(temp_db, monkeypatch):
    """Point the CLI at the temporary database via the environment."""
    url = f"sqlite:///{temp_db}"
    monkeypatch.setenv(DATABASE_URL_ENV, url)
    return url


@pytest.fixture
def no_config(tmp_path):
    """Config path that does not exist."""
    return ["-c", str(tmp_path / "missing.yaml")]


class TestCLICommandRegistry:
    """Tests for CLI command registration."""

    def test_all_commands_registered(self):
        """Verify all expected commands are registered."""
        parser = create_cli()

        subparsers_action = None
        for action in parser._actions:
            if action.dest == "command":
                subparsers_action = action
                break

        assert subparsers_action is not None
        commands = set(subparsers_action.choices.keys())
        assert commands == {"migrate", "rollback", "status", "counters", "init-config"}

    def test_migrate_options(self):
        """Migrate command should accept --dry-run, --target and --continue-on-error."""
        parser = create_cli()

        args = parser.parse_args(["migrate"])
        assert args.dry_run is False
        assert args.target is None
        assert args.continue_on_error is False

        args = parser.parse_args(["migrate", "--dry-run", "--target", "002", "--continue-on-error"])
        assert args.dry_run is True
        assert args.target == "002"
        assert args.continue_on_error is True

    def test_rollback_options(self):
        """Rollback --steps defaults to None so the config value applies."""
        parser = create_cli()

        args = parser.parse_args(["rollback"])
        assert args.steps is None
        assert args.target is None

        args = parser.parse_args(["rollback", "--steps", "3"])
        assert args.steps == 3


class TestMain:
    """Tests for the main entry point."""

    def test_no_command(self, no_config):
        assert main(no_config) == 1

    def test_missing_database_url(self, no_config, monkeypatch, capsys):
        monkeypatch.delenv(DATABASE_URL_ENV, raising=False)

        assert main([*no_config, "status"]) == 1
        assert "database_url is required" in capsys.readouterr().out

    def test_unsupported_url_scheme(self, no_config, monkeypatch, capsys):
        monkeypatch.setenv(DATABASE_URL_ENV, "mongodb://localhost:27017/taskcrushers")

        assert main([*no_config, "status"]) == 1
        assert "Invalid database URL" in capsys.readouterr().out

    def test_unusable_store(self, tmp_path, no_config, monkeypatch, capsys):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        monkeypatch.setenv(DATABASE_URL_ENV, f"sqlite:///{blocker}/store.db")

        assert main([*no_config, "status"]) == 1
        assert "Document store unavailable" in capsys.readouterr().out

    def test_init_config(self, tmp_path, capsys):
        path = tmp_path / "config.yaml"

        assert main(["-c", str(path), "init-config"]) == 0
        assert path.exists()
        assert "Wrote default config" in capsys.readouterr().out

    def test_migrate_status_rollback(self, db_url, temp_db, no_config, capsys):
        assert main([*no_config, "status"]) == 0
        assert "Pending migrations:     1" in capsys.readouterr().out

        assert main([*no_config, "migrate"]) == 0
        assert "Migrations run:         1" in capsys.readouterr().out

        assert main([*no_config, "status"]) == 0
        assert "All migrations are up to date" in capsys.readouterr().out

        assert main([*no_config, "rollback"]) == 0
        assert "Migrations rolled back: 1" in capsys.readouterr().out

        with DocumentStore(db_url) as store:
            assert not MigrationLedger(store).is_applied("001")

    def test_migrate_dry_run(self, db_url, no_config, capsys):
        assert main([*no_config, "migrate", "--dry-run"]) == 0
        out = capsys.readouterr().out
        assert "Dry run:                Yes" in out

        with DocumentStore(db_url) as store:
            assert MigrationLedger(store).history() == []

    def test_failed_migration_exit_code(self, db_url, no_config, monkeypatch, capsys):
        monkeypatch.setattr(
            cli_module,
            "get_all_migrations",
            lambda **kwargs: [RecordingMigration("001", fail_up=True)],
        )

        assert main([*no_config, "migrate"]) == 1
        out = capsys.readouterr().out
        assert "Some migrations failed" in out
        assert "upgrade of 001 exploded" in out

    def test_invalid_rollback_steps(self, db_url, no_config, capsys):
        assert main([*no_config, "rollback", "--steps", "0"]) == 1
        assert "Rollback failed" in capsys.readouterr().out

    def test_counters(self, db_url, no_config, capsys):
        with DocumentStore(db_url) as store:
            allocator = SequenceAllocator(store)
            allocator.initialize("users", 100)
            allocator.next_value("users")

        assert main([*no_config, "counters"]) == 0
        out = capsys.readouterr().out
        assert "users" in out
        assert "100" in out
