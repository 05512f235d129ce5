"""Tests for the ledger interface and its schema migrations."""

import sqlite3
from dataclasses import replace
from datetime import datetime, timedelta, UTC

import pytest

from upynab.database.factories import create_sqlite_ledger
from upynab.database.migrations import LATEST_VERSION
from upynab.domain import entities
from upynab.domain.entities import TransactionStatus
from upynab.domain.errors import ValidationError

from conftest import BUDGET_ID, NOW


def record(transaction_id, status=TransactionStatus.SYNCED, budget_id=BUDGET_ID, **overrides):
    values = dict(
        id=transaction_id,
        budget_id=budget_id,
        source_account_id="up-spending",
        source_account_name="Spending",
        source_amount=-2550,
        source_date=NOW - timedelta(hours=3),
        source_description="WOOLWORTHS",
        source_raw_json='{"id": "%s"}' % transaction_id,
        target_account_id="acct-x",
        target_transaction_id="ynab-1" if status is TransactionStatus.SYNCED else None,
        target_amount=-25500,
        sync_timestamp=NOW,
        status=status,
    )
    values.update(overrides)
    return entities.SyncedTransaction(**values)


def log_entry(budget_id=BUDGET_ID, sync_date=NOW, failed=0):
    return entities.SyncLogEntry(
        id=None,
        budget_id=budget_id,
        sync_date=sync_date,
        date_range_start=sync_date - timedelta(hours=24),
        date_range_end=sync_date,
        accounts_processed=1,
        transactions_processed=3,
        transactions_synced=3 - failed,
        transactions_skipped=0,
        transactions_failed=failed,
        errors=None,
        sync_duration_seconds=1.5,
    )


class TestSyncedTransactions:
    """Tests for per-transaction ledger records."""

    def test_upsert_and_get_returns_domain_model(self, temp_ledger):
        """Test that a stored record comes back as a domain entity with UTC times."""
        temp_ledger.upsert_synced_transaction(record("t-1"))

        stored = temp_ledger.get_synced_transaction("t-1", BUDGET_ID)

        assert isinstance(stored, entities.SyncedTransaction)
        assert stored == record("t-1")
        assert stored.source_date.tzinfo is not None

    def test_get_status_of_unknown_transaction_is_none(self, temp_ledger):
        assert temp_ledger.get_status("never-seen", BUDGET_ID) is None

    def test_upsert_replaces_existing_record(self, temp_ledger):
        """Test that writing the same key twice keeps one row with the latest values."""
        temp_ledger.upsert_synced_transaction(record("t-1", TransactionStatus.PENDING))
        temp_ledger.upsert_synced_transaction(record("t-1", TransactionStatus.SYNCED))

        assert temp_ledger.get_status("t-1", BUDGET_ID) is TransactionStatus.SYNCED
        assert temp_ledger.stats()["total_transactions"] == 1

    def test_records_are_keyed_by_budget(self, temp_ledger):
        temp_ledger.upsert_synced_transaction(record("t-1", TransactionStatus.SYNCED))
        temp_ledger.upsert_synced_transaction(record("t-1", TransactionStatus.FAILED, budget_id="other"))

        assert temp_ledger.get_status("t-1", BUDGET_ID) is TransactionStatus.SYNCED
        assert temp_ledger.get_status("t-1", "other") is TransactionStatus.FAILED

    def test_unrecognized_stored_status_reads_as_unknown(self, temp_ledger):
        temp_ledger.upsert_synced_transaction(record("t-1", TransactionStatus.UNKNOWN))

        assert temp_ledger.get_status("t-1", BUDGET_ID) is TransactionStatus.UNKNOWN

    def test_list_failed_most_recent_first(self, temp_ledger):
        temp_ledger.upsert_synced_transaction(record("old", TransactionStatus.FAILED, sync_timestamp=NOW - timedelta(hours=2)))
        temp_ledger.upsert_synced_transaction(record("new", TransactionStatus.FAILED))
        temp_ledger.upsert_synced_transaction(record("ok", TransactionStatus.SYNCED))
        temp_ledger.upsert_synced_transaction(record("elsewhere", TransactionStatus.FAILED, budget_id="other"))

        failed = temp_ledger.list_failed(budget_id=BUDGET_ID)

        assert [r.id for r in failed] == ["new", "old"]
        assert len(temp_ledger.list_failed()) == 3
        assert len(temp_ledger.list_failed(limit=1)) == 1

    def test_list_for_account(self, temp_ledger):
        temp_ledger.upsert_synced_transaction(record("t-1"))
        temp_ledger.upsert_synced_transaction(record("t-2", source_account_id="up-saver"))

        records = temp_ledger.list_for_account("up-spending", budget_id=BUDGET_ID)

        assert [r.id for r in records] == ["t-1"]

    def test_delete_failed_only_removes_failed(self, temp_ledger):
        temp_ledger.upsert_synced_transaction(record("failed", TransactionStatus.FAILED))
        temp_ledger.upsert_synced_transaction(record("synced", TransactionStatus.SYNCED))

        assert temp_ledger.delete_failed("failed", BUDGET_ID) is True
        assert temp_ledger.delete_failed("synced", BUDGET_ID) is False
        assert temp_ledger.get_status("failed", BUDGET_ID) is None
        assert temp_ledger.get_status("synced", BUDGET_ID) is TransactionStatus.SYNCED

    def test_cleanup_failed_scoped_by_budget(self, temp_ledger):
        temp_ledger.upsert_synced_transaction(record("a", TransactionStatus.FAILED))
        temp_ledger.upsert_synced_transaction(record("b", TransactionStatus.FAILED, budget_id="other"))

        assert temp_ledger.cleanup_failed(BUDGET_ID) == 1
        assert temp_ledger.get_status("b", "other") is TransactionStatus.FAILED

    def test_reset_stuck_pending(self, temp_ledger):
        """Test that pending records are demoted to failed with a reason."""
        temp_ledger.upsert_synced_transaction(record("p", TransactionStatus.PENDING))
        temp_ledger.upsert_synced_transaction(record("s", TransactionStatus.SYNCED))

        assert temp_ledger.reset_stuck_pending(BUDGET_ID) == 1

        stuck = temp_ledger.get_synced_transaction("p", BUDGET_ID)
        assert stuck.status is TransactionStatus.FAILED
        assert stuck.error_message == "Interrupted while pending"
        assert temp_ledger.get_status("s", BUDGET_ID) is TransactionStatus.SYNCED

    def test_repair_mismarked_synced(self, temp_ledger):
        temp_ledger.upsert_synced_transaction(record("bad", target_transaction_id=None))
        assert temp_ledger.check_integrity() is False

        assert temp_ledger.repair_mismarked_synced() == 1

        assert temp_ledger.get_status("bad", BUDGET_ID) is TransactionStatus.FAILED
        assert temp_ledger.check_integrity() is True

    def test_trim_keeps_pending_and_recent(self, temp_ledger):
        recent = datetime.now(UTC) - timedelta(days=1)
        temp_ledger.upsert_synced_transaction(record("old-synced", sync_timestamp=recent - timedelta(days=60)))
        temp_ledger.upsert_synced_transaction(
            record("old-pending", TransactionStatus.PENDING, sync_timestamp=recent - timedelta(days=60))
        )
        temp_ledger.upsert_synced_transaction(record("recent", sync_timestamp=recent))
        temp_ledger.insert_sync_log(log_entry(sync_date=recent - timedelta(days=60)))
        temp_ledger.insert_sync_log(log_entry(sync_date=recent))

        counts = temp_ledger.trim_older_than(30)

        assert counts == {"transactions": 1, "sync_logs": 1}
        assert temp_ledger.get_status("old-synced", BUDGET_ID) is None
        assert temp_ledger.get_status("old-pending", BUDGET_ID) is TransactionStatus.PENDING
        assert temp_ledger.get_status("recent", BUDGET_ID) is TransactionStatus.SYNCED

    def test_trim_rejects_zero_days(self, temp_ledger):
        with pytest.raises(ValueError):
            temp_ledger.trim_older_than(0)


class TestSyncLog:
    """Tests for the sync run history."""

    def test_insert_and_read_back(self, temp_ledger):
        log_id = temp_ledger.insert_sync_log(log_entry(failed=1))

        last = temp_ledger.last_sync_log(BUDGET_ID)

        assert last.id == log_id
        assert last.transactions_failed == 1
        assert last.sync_date == NOW
        assert last.date_range_start == NOW - timedelta(hours=24)

    def test_most_recent_first_and_scoped(self, temp_ledger):
        temp_ledger.insert_sync_log(log_entry(sync_date=NOW - timedelta(hours=1)))
        temp_ledger.insert_sync_log(log_entry(sync_date=NOW))
        temp_ledger.insert_sync_log(log_entry(budget_id="other", sync_date=NOW + timedelta(hours=1)))

        logs = temp_ledger.list_sync_logs(budget_id=BUDGET_ID)

        assert [log.sync_date for log in logs] == [NOW, NOW - timedelta(hours=1)]
        assert temp_ledger.last_sync_log().budget_id == "other"

    def test_no_history(self, temp_ledger):
        assert temp_ledger.last_sync_log() is None


class TestMerchantRules:
    """Tests for merchant rule storage."""

    def test_save_normalizes_pattern(self, temp_ledger):
        temp_ledger.save_merchant_rule(BUDGET_ID, " woolworths ", "cat-1", "Groceries", "Woolworths")

        rule = temp_ledger.get_merchant_rule(BUDGET_ID, "WOOLWORTHS")

        assert isinstance(rule, entities.MerchantRule)
        assert rule.category_id == "cat-1"
        assert rule.usage_count == 0
        assert rule.confidence == 1.0

    def test_save_replaces_rule_for_same_pattern(self, temp_ledger):
        first = temp_ledger.save_merchant_rule(BUDGET_ID, "COLES", "cat-1", "Groceries", "Coles")
        second = temp_ledger.save_merchant_rule(BUDGET_ID, "COLES", "cat-2", "Household", "Coles", 0.8)

        assert first == second
        rules = temp_ledger.list_merchant_rules(BUDGET_ID)
        assert len(rules) == 1
        assert rules[0].category_name == "Household"
        assert rules[0].confidence == 0.8

    def test_rules_are_scoped_by_budget(self, temp_ledger):
        temp_ledger.save_merchant_rule(BUDGET_ID, "COLES", "cat-1", "Groceries", "Coles")

        assert temp_ledger.get_merchant_rule("other", "COLES") is None
        assert temp_ledger.list_merchant_rules("other") == []

    def test_record_usage(self, temp_ledger):
        temp_ledger.save_merchant_rule(BUDGET_ID, "COLES", "cat-1", "Groceries", "Coles")

        temp_ledger.record_merchant_rule_usage(BUDGET_ID, "COLES")
        temp_ledger.record_merchant_rule_usage(BUDGET_ID, "COLES")

        rule = temp_ledger.get_merchant_rule(BUDGET_ID, "COLES")
        assert rule.usage_count == 2
        assert rule.last_used is not None

    def test_delete(self, temp_ledger):
        temp_ledger.save_merchant_rule(BUDGET_ID, "COLES", "cat-1", "Groceries", "Coles")

        assert temp_ledger.delete_merchant_rule(BUDGET_ID, "COLES") is True
        assert temp_ledger.delete_merchant_rule(BUDGET_ID, "COLES") is False

    def test_empty_pattern_is_rejected(self, temp_ledger):
        with pytest.raises(ValidationError):
            temp_ledger.save_merchant_rule(BUDGET_ID, "   ", "cat-1", "Groceries", "X")


class TestHealth:
    def test_stats(self, temp_ledger):
        temp_ledger.upsert_synced_transaction(record("s"))
        temp_ledger.upsert_synced_transaction(record("f", TransactionStatus.FAILED))
        temp_ledger.upsert_synced_transaction(record("p", TransactionStatus.PENDING))
        temp_ledger.upsert_synced_transaction(record("x", TransactionStatus.FAILED, budget_id="other"))
        temp_ledger.insert_sync_log(log_entry())
        temp_ledger.save_merchant_rule(BUDGET_ID, "COLES", "cat-1", "Groceries", "Coles")

        assert temp_ledger.stats(BUDGET_ID) == {
            "total_transactions": 3,
            "synced_transactions": 1,
            "pending_transactions": 1,
            "failed_transactions": 1,
            "sync_logs": 1,
            "merchant_rules": 1,
        }
        assert temp_ledger.stats()["failed_transactions"] == 2

    def test_fresh_ledger_is_at_latest_version(self, temp_ledger):
        assert temp_ledger.schema_version() == LATEST_VERSION
        assert temp_ledger.check_integrity() is True

    def test_initialize_schema_is_idempotent(self, temp_ledger):
        temp_ledger.upsert_synced_transaction(record("t-1"))

        temp_ledger.initialize_schema()

        assert temp_ledger.get_status("t-1", BUDGET_ID) is TransactionStatus.SYNCED


class TestMigrations:
    """Tests for upgrading ledgers written by the single-budget tool."""

    def write_legacy_ledger(self, path):
        conn = sqlite3.connect(path)
        conn.executescript(
            """
            CREATE TABLE synced_transactions (
                id TEXT PRIMARY KEY,
                up_account_id TEXT NOT NULL,
                up_account_name TEXT NOT NULL,
                up_amount REAL NOT NULL,
                up_date TEXT NOT NULL,
                up_description TEXT NOT NULL,
                up_raw_json TEXT NOT NULL,
                ynab_account_id TEXT NOT NULL,
                ynab_transaction_id TEXT,
                ynab_amount INTEGER NOT NULL,
                sync_timestamp TEXT NOT NULL,
                status TEXT NOT NULL
            );
            CREATE TABLE sync_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sync_date TEXT NOT NULL,
                date_range_start TEXT NOT NULL,
                date_range_end TEXT NOT NULL,
                accounts_processed INTEGER NOT NULL,
                transactions_processed INTEGER NOT NULL,
                transactions_synced INTEGER NOT NULL,
                transactions_skipped INTEGER NOT NULL,
                transactions_failed INTEGER NOT NULL,
                errors TEXT,
                sync_duration_seconds REAL NOT NULL
            );
            CREATE TABLE merchant_rules (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                merchant_pattern TEXT NOT NULL UNIQUE,
                category_id TEXT NOT NULL,
                category_name TEXT NOT NULL,
                payee_name TEXT NOT NULL,
                confidence REAL NOT NULL DEFAULT 1.0,
                usage_count INTEGER NOT NULL DEFAULT 0,
                last_used TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            INSERT INTO synced_transactions VALUES (
                'legacy-1', 'up-spending', 'Spending', -25.5, '2024-03-14T10:00:00Z',
                'WOOLWORTHS', '{}', 'acct-x', 'ynab-1', -25500, '2024-03-14T10:05:00Z', 'synced'
            );
            INSERT INTO sync_log VALUES (
                1, '2024-03-14T10:05:00Z', '2024-03-13T10:00:00Z', '2024-03-14T10:00:00Z',
                1, 1, 1, 0, 0, NULL, 2.5
            );
            INSERT INTO merchant_rules VALUES (
                1, 'WOOLWORTHS', 'cat-1', 'Groceries', 'Woolworths', 1.0, 4, NULL,
                '2024-01-01T00:00:00Z', '2024-01-01T00:00:00Z'
            );
            """
        )
        conn.commit()
        conn.close()

    def test_legacy_ledger_is_migrated(self, tmp_path):
        """Test that a single-budget ledger is scoped to the legacy budget and converted to cents."""
        db_path = tmp_path / "legacy.db"
        self.write_legacy_ledger(str(db_path))

        ledger = create_sqlite_ledger(database_path=str(db_path), legacy_budget_id="legacy-budget")
        try:
            assert ledger.schema_version() == 1
            ledger.initialize_schema()
            assert ledger.schema_version() == LATEST_VERSION

            migrated = ledger.get_synced_transaction("legacy-1", "legacy-budget")
            assert migrated.source_amount == -2550
            assert migrated.target_amount == -25500
            assert migrated.status is TransactionStatus.SYNCED
            assert migrated.source_date == datetime(2024, 3, 14, 10, 0, tzinfo=UTC)
            assert migrated.error_message is None

            log = ledger.last_sync_log("legacy-budget")
            assert log.transactions_synced == 1
            assert log.sync_date == datetime(2024, 3, 14, 10, 5, tzinfo=UTC)

            rule = ledger.get_merchant_rule("legacy-budget", "WOOLWORTHS")
            assert rule.usage_count == 4
            assert ledger.check_integrity() is True
        finally:
            ledger.disconnect()

    def test_migrated_ledger_accepts_new_records(self, tmp_path):
        db_path = tmp_path / "legacy.db"
        self.write_legacy_ledger(str(db_path))
        ledger = create_sqlite_ledger(database_path=str(db_path), legacy_budget_id="legacy-budget")
        try:
            ledger.initialize_schema()
            ledger.upsert_synced_transaction(
                replace(record("legacy-1", TransactionStatus.FAILED), error_message="boom")
            )

            assert ledger.get_status("legacy-1", BUDGET_ID) is TransactionStatus.FAILED
            assert ledger.get_status("legacy-1", "legacy-budget") is TransactionStatus.SYNCED
        finally:
            ledger.disconnect()

    def test_empty_file_reports_version_zero(self, tmp_path):
        ledger = create_sqlite_ledger(database_path=str(tmp_path / "empty.db"))
        try:
            assert ledger.schema_version() == 0
            ledger.initialize_schema()
            assert ledger.schema_version() == LATEST_VERSION
        finally:
            ledger.disconnect()
