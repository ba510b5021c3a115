"""Tests for the migration ledger."""

from datetime import datetime

from taskcrushers.migrations import LedgerStatus, MigrationLedger
from taskcrushers.migrations import ledger as ledger_module


def _complete(ledger, migration_id, **kwargs):
    return ledger.record_completed(
        migration_id,
        f"migration_{migration_id}",
        f"Migration {migration_id}",
        "1.0.0",
        kwargs.pop("duration_ms", 5),
        **kwargs,
    )


class TestLedgerWrites:
    """Tests for appending and updating entries."""

    def test_record_completed(self, store):
        ledger = MigrationLedger(store)
        entry_id = _complete(ledger, "001", result={"tasks_updated": 3})

        entries = ledger.history()
        assert len(entries) == 1
        entry = entries[0]
        assert entry.entry_id == entry_id
        assert entry.migration_id == "001"
        assert entry.name == "migration_001"
        assert entry.version == "1.0.0"
        assert entry.status == LedgerStatus.COMPLETED
        assert entry.applied_at.endswith("Z")
        assert entry.duration_ms == 5
        assert entry.result == {"tasks_updated": 3}
        assert entry.error is None
        assert entry.rolled_back_at is None

    def test_record_failed(self, store):
        ledger = MigrationLedger(store)
        ledger.record_failed("001", "migration_001", "desc", "1.0.0", 12, error="boom")

        entry = ledger.history("001")[0]
        assert entry.status == LedgerStatus.FAILED
        assert entry.error == "boom"
        assert entry.result is None
        assert ledger.is_applied("001") is False

    def test_attempts_are_appended(self, store):
        """Each attempt gets its own entry."""
        ledger = MigrationLedger(store)
        ledger.record_failed("001", "migration_001", "desc", "1.0.0", 1, error="first try")
        _complete(ledger, "001")

        statuses = [e.status for e in ledger.history("001")]
        assert statuses == [LedgerStatus.FAILED, LedgerStatus.COMPLETED]
        assert ledger.is_applied("001") is True

    def test_mark_rolled_back_updates_in_place(self, store):
        ledger = MigrationLedger(store)
        entry_id = _complete(ledger, "001")

        assert ledger.mark_rolled_back("001", 7) is True

        entries = ledger.history("001")
        assert len(entries) == 1
        assert entries[0].entry_id == entry_id
        assert entries[0].status == LedgerStatus.ROLLED_BACK
        assert entries[0].rolled_back_at is not None
        assert entries[0].rollback_duration_ms == 7
        assert ledger.is_applied("001") is False

    def test_mark_rolled_back_targets_latest_completed(self, store):
        ledger = MigrationLedger(store)
        _complete(ledger, "001")
        ledger.mark_rolled_back("001", 1)
        latest = _complete(ledger, "001")

        ledger.mark_rolled_back("001", 2)

        entries = ledger.history("001")
        assert [e.status for e in entries] == [LedgerStatus.ROLLED_BACK] * 2
        assert entries[-1].entry_id == latest
        assert entries[-1].rollback_duration_ms == 2

    def test_mark_rolled_back_without_completed_entry(self, store):
        ledger = MigrationLedger(store)
        ledger.record_failed("001", "migration_001", "desc", "1.0.0", 1, error="boom")

        assert ledger.mark_rolled_back("001", 1) is False
        assert ledger.history("001")[0].status == LedgerStatus.FAILED


class TestLedgerReads:
    """Tests for queries."""

    def test_is_applied_unknown(self, store):
        assert MigrationLedger(store).is_applied("999") is False

    def test_completed_entries_newest_first(self, store):
        ledger = MigrationLedger(store)
        _complete(ledger, "002")
        _complete(ledger, "001")
        _complete(ledger, "003")
        ledger.mark_rolled_back("003", 1)

        assert [e.migration_id for e in ledger.completed_entries()] == ["001", "002"]

    def test_history_filters_by_id(self, store):
        ledger = MigrationLedger(store)
        _complete(ledger, "001")
        _complete(ledger, "002")

        assert [e.migration_id for e in ledger.history()] == ["001", "002"]
        assert [e.migration_id for e in ledger.history("002")] == ["002"]

    def test_completed_entries_follow_insertion_not_timestamp(self, store, monkeypatch):
        """A whole-second stamp or a clock step back does not reorder entries."""
        stamps = iter(
            [
                "2026-01-01T00:00:00.500000Z",
                "2026-01-01T00:00:00Z",
                "2025-12-31T23:59:59.000000Z",
            ]
        )
        monkeypatch.setattr(ledger_module, "_utc_now", lambda: next(stamps))
        ledger = MigrationLedger(store)
        _complete(ledger, "001")
        _complete(ledger, "002")
        _complete(ledger, "003")

        assert [e.migration_id for e in ledger.completed_entries()] == ["003", "002", "001"]

    def test_mark_rolled_back_picks_last_inserted(self, store, monkeypatch):
        stamps = iter(
            [
                "2026-01-01T00:00:00Z",
                "2026-01-01T00:00:00.500000Z",
                "2026-01-01T00:00:01.000000Z",
            ]
        )
        monkeypatch.setattr(ledger_module, "_utc_now", lambda: next(stamps))
        ledger = MigrationLedger(store)
        first = _complete(ledger, "001")
        latest = _complete(ledger, "001")

        assert ledger.mark_rolled_back("001", 1) is True

        entries = {e.entry_id: e.status for e in ledger.history("001")}
        assert entries == {first: LedgerStatus.COMPLETED, latest: LedgerStatus.ROLLED_BACK}


class TestUtcNow:
    """Tests for ledger timestamps."""

    def test_always_has_microseconds(self, monkeypatch):
        class WholeSecond(datetime):
            @classmethod
            def now(cls, tz=None):
                return datetime(2026, 1, 1, 0, 0, 0, tzinfo=tz)

        monkeypatch.setattr(ledger_module, "datetime", WholeSecond)

        assert ledger_module._utc_now() == "2026-01-01T00:00:00.000000Z"
