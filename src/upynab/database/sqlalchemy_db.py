"""Generic SQLAlchemy ledger implementation."""

import logging
from datetime import datetime, timedelta, UTC
from typing import Any, Optional

from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from upynab.database.base import Ledger
from upynab.database.mappers import (
    merchant_rule_to_domain,
    sync_log_to_domain,
    synced_transaction_to_domain,
    synced_transaction_to_orm,
    to_storage,
)
from upynab.database.migrations import current_version, run_migrations
from upynab.database.models import (
    MerchantRule,
    SyncLog,
    SyncedTransaction,
    create_ledger_engine,
    create_session_factory,
)
from upynab.domain.entities import (
    MerchantRule as DomainMerchantRule,
    SyncedTransaction as DomainSyncedTransaction,
    SyncLogEntry as DomainSyncLogEntry,
    TransactionStatus,
)
from upynab.domain.errors import LedgerError, ValidationError

logger = logging.getLogger(__name__)


def _naive_utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class SQLAlchemyLedger(Ledger):
    """SQLAlchemy-based implementation of the Ledger interface."""

    def __init__(self, database_url: str, legacy_budget_id: str = ""):
        """Initialize SQLAlchemy ledger.

        Args:
            database_url: SQLAlchemy database URL (e.g., 'sqlite:///path/to.db')
            legacy_budget_id: Budget id given to rows migrated from a ledger
                written before records were scoped by budget
        """
        self.database_url = database_url
        self.legacy_budget_id = legacy_budget_id
        self.engine = create_ledger_engine(database_url)
        self.session_factory = create_session_factory(self.engine)
        self._session: Optional[Session] = None

    def _get_session(self) -> Session:
        """Get current session, creating one if needed."""
        if self._session is None:
            self._session = self.session_factory()
        return self._session

    def _commit(self, session: Session) -> None:
        try:
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise LedgerError(f"Ledger write failed: {e}") from e
        # Bulk updates and deletes bypass the identity map.
        session.expire_all()

    def connect(self) -> None:
        """Connect to the database."""
        # Connection is lazy, so this is a no-op
        pass

    def disconnect(self) -> None:
        """Disconnect from the database."""
        if self._session is not None:
            self._session.close()
            self._session = None
        self.engine.dispose()

    def initialize_schema(self) -> None:
        """Apply pending migrations."""
        try:
            applied = run_migrations(self.engine, legacy_budget_id=self.legacy_budget_id)
        except SQLAlchemyError as e:
            raise LedgerError(f"Could not migrate ledger schema: {e}") from e
        if applied:
            logger.info("Ledger schema migrated to version %d", applied[-1])

    def schema_version(self) -> int:
        try:
            return current_version(self.engine)
        except SQLAlchemyError as e:
            raise LedgerError(f"Could not read ledger schema version: {e}") from e

    # Synced transaction operations
    def upsert_synced_transaction(self, record: DomainSyncedTransaction) -> None:
        """Insert or replace a record keyed by (id, budget_id)."""
        session = self._get_session()
        session.merge(synced_transaction_to_orm(record))
        self._commit(session)

    def get_status(self, transaction_id: str, budget_id: str) -> Optional[TransactionStatus]:
        """Return the stored status, or None if the transaction was never attempted."""
        session = self._get_session()
        row = (
            session.query(SyncedTransaction.status)
            .filter(SyncedTransaction.id == transaction_id, SyncedTransaction.budget_id == budget_id)
            .first()
        )
        if row is None:
            return None
        return TransactionStatus.from_storage(row.status)

    def get_synced_transaction(
        self, transaction_id: str, budget_id: str
    ) -> Optional[DomainSyncedTransaction]:
        """Get a ledger record by key."""
        session = self._get_session()
        record = session.get(SyncedTransaction, (transaction_id, budget_id))
        if record is None:
            return None
        return synced_transaction_to_domain(record)

    def list_failed(
        self, limit: int = 50, budget_id: Optional[str] = None
    ) -> list[DomainSyncedTransaction]:
        """List failed records, most recent first."""
        session = self._get_session()
        query = session.query(SyncedTransaction).filter(
            SyncedTransaction.status == TransactionStatus.FAILED.value
        )
        if budget_id is not None:
            query = query.filter(SyncedTransaction.budget_id == budget_id)
        records = query.order_by(SyncedTransaction.sync_timestamp.desc()).limit(limit).all()
        return [synced_transaction_to_domain(r) for r in records]

    def list_for_account(
        self, source_account_id: str, limit: int = 100, budget_id: Optional[str] = None
    ) -> list[DomainSyncedTransaction]:
        """List records for one source account, most recent first."""
        session = self._get_session()
        query = session.query(SyncedTransaction).filter(
            SyncedTransaction.source_account_id == source_account_id
        )
        if budget_id is not None:
            query = query.filter(SyncedTransaction.budget_id == budget_id)
        records = query.order_by(SyncedTransaction.source_date.desc()).limit(limit).all()
        return [synced_transaction_to_domain(r) for r in records]

    def delete_failed(self, transaction_id: str, budget_id: str) -> bool:
        """Delete one failed record. Returns True if a row was removed."""
        session = self._get_session()
        deleted = (
            session.query(SyncedTransaction)
            .filter(
                SyncedTransaction.id == transaction_id,
                SyncedTransaction.budget_id == budget_id,
                SyncedTransaction.status == TransactionStatus.FAILED.value,
            )
            .delete(synchronize_session=False)
        )
        self._commit(session)
        return deleted > 0

    def cleanup_failed(self, budget_id: Optional[str] = None) -> int:
        """Delete all failed records. Returns the number removed."""
        session = self._get_session()
        query = session.query(SyncedTransaction).filter(
            SyncedTransaction.status == TransactionStatus.FAILED.value
        )
        if budget_id is not None:
            query = query.filter(SyncedTransaction.budget_id == budget_id)
        deleted = query.delete(synchronize_session=False)
        self._commit(session)
        return deleted

    def reset_stuck_pending(self, budget_id: Optional[str] = None) -> int:
        """Demote every pending record to failed. Returns the number changed."""
        session = self._get_session()
        query = session.query(SyncedTransaction).filter(
            SyncedTransaction.status == TransactionStatus.PENDING.value
        )
        if budget_id is not None:
            query = query.filter(SyncedTransaction.budget_id == budget_id)
        changed = query.update(
            {
                SyncedTransaction.status: TransactionStatus.FAILED.value,
                SyncedTransaction.error_message: "Interrupted while pending",
                SyncedTransaction.sync_timestamp: _naive_utcnow(),
            },
            synchronize_session=False,
        )
        self._commit(session)
        return changed

    def repair_mismarked_synced(self, budget_id: Optional[str] = None) -> int:
        """Demote synced records lacking a target id to failed."""
        session = self._get_session()
        query = session.query(SyncedTransaction).filter(
            SyncedTransaction.status == TransactionStatus.SYNCED.value,
            SyncedTransaction.target_transaction_id.is_(None),
        )
        if budget_id is not None:
            query = query.filter(SyncedTransaction.budget_id == budget_id)
        changed = query.update(
            {
                SyncedTransaction.status: TransactionStatus.FAILED.value,
                SyncedTransaction.error_message: "Marked synced without a target transaction id",
            },
            synchronize_session=False,
        )
        self._commit(session)
        return changed

    def trim_older_than(self, days: int) -> dict[str, int]:
        """Delete non-pending records and log entries older than ``days``."""
        if days < 1:
            raise ValueError("Retention must be at least one day")
        cutoff = _naive_utcnow() - timedelta(days=days)
        session = self._get_session()
        transactions = (
            session.query(SyncedTransaction)
            .filter(
                SyncedTransaction.sync_timestamp < cutoff,
                SyncedTransaction.status != TransactionStatus.PENDING.value,
            )
            .delete(synchronize_session=False)
        )
        sync_logs = (
            session.query(SyncLog)
            .filter(SyncLog.sync_date < cutoff)
            .delete(synchronize_session=False)
        )
        self._commit(session)
        return {"transactions": transactions, "sync_logs": sync_logs}

    # Sync log operations
    def insert_sync_log(self, entry: DomainSyncLogEntry) -> int:
        """Append a sync log entry. Returns its ID."""
        session = self._get_session()
        log = SyncLog(
            budget_id=entry.budget_id,
            sync_date=to_storage(entry.sync_date),
            date_range_start=to_storage(entry.date_range_start),
            date_range_end=to_storage(entry.date_range_end),
            accounts_processed=entry.accounts_processed,
            transactions_processed=entry.transactions_processed,
            transactions_synced=entry.transactions_synced,
            transactions_skipped=entry.transactions_skipped,
            transactions_failed=entry.transactions_failed,
            errors=entry.errors,
            sync_duration_seconds=entry.sync_duration_seconds,
        )
        session.add(log)
        self._commit(session)
        return log.id

    def last_sync_log(self, budget_id: Optional[str] = None) -> Optional[DomainSyncLogEntry]:
        """Most recent sync log entry."""
        logs = self.list_sync_logs(limit=1, budget_id=budget_id)
        return logs[0] if logs else None

    def list_sync_logs(
        self, limit: int = 10, budget_id: Optional[str] = None
    ) -> list[DomainSyncLogEntry]:
        """Most recent sync log entries first."""
        session = self._get_session()
        query = session.query(SyncLog)
        if budget_id is not None:
            query = query.filter(SyncLog.budget_id == budget_id)
        logs = query.order_by(SyncLog.sync_date.desc(), SyncLog.id.desc()).limit(limit).all()
        return [sync_log_to_domain(log) for log in logs]

    # Merchant rule operations
    def save_merchant_rule(
        self,
        budget_id: str,
        merchant_pattern: str,
        category_id: str,
        category_name: str,
        payee_name: str,
        confidence: float = 1.0,
    ) -> int:
        """Create or replace the rule for a pattern. Returns rule ID."""
        merchant_pattern = merchant_pattern.strip().upper()
        if not merchant_pattern:
            raise ValidationError("Merchant pattern cannot be empty")
        if not category_id:
            raise ValidationError("Category ID is required for a merchant rule")
        session = self._get_session()
        rule = (
            session.query(MerchantRule)
            .filter(MerchantRule.budget_id == budget_id, MerchantRule.merchant_pattern == merchant_pattern)
            .first()
        )
        if rule is None:
            rule = MerchantRule(budget_id=budget_id, merchant_pattern=merchant_pattern)
            session.add(rule)
        rule.category_id = category_id
        rule.category_name = category_name
        rule.payee_name = payee_name
        rule.confidence = confidence
        rule.updated_at = _naive_utcnow()
        self._commit(session)
        return rule.id

    def get_merchant_rule(self, budget_id: str, merchant_pattern: str) -> Optional[DomainMerchantRule]:
        """Get a rule by exact pattern."""
        session = self._get_session()
        rule = (
            session.query(MerchantRule)
            .filter(MerchantRule.budget_id == budget_id, MerchantRule.merchant_pattern == merchant_pattern)
            .first()
        )
        if rule is None:
            return None
        return merchant_rule_to_domain(rule)

    def list_merchant_rules(self, budget_id: str) -> list[DomainMerchantRule]:
        """List rules, most used first."""
        session = self._get_session()
        rules = (
            session.query(MerchantRule)
            .filter(MerchantRule.budget_id == budget_id)
            .order_by(MerchantRule.usage_count.desc(), MerchantRule.merchant_pattern)
            .all()
        )
        return [merchant_rule_to_domain(r) for r in rules]

    def delete_merchant_rule(self, budget_id: str, merchant_pattern: str) -> bool:
        """Delete a rule. Returns True if a row was removed."""
        session = self._get_session()
        deleted = (
            session.query(MerchantRule)
            .filter(MerchantRule.budget_id == budget_id, MerchantRule.merchant_pattern == merchant_pattern)
            .delete(synchronize_session=False)
        )
        self._commit(session)
        return deleted > 0

    def record_merchant_rule_usage(self, budget_id: str, merchant_pattern: str) -> None:
        """Increment usage count and stamp last use."""
        session = self._get_session()
        now = _naive_utcnow()
        session.query(MerchantRule).filter(
            MerchantRule.budget_id == budget_id, MerchantRule.merchant_pattern == merchant_pattern
        ).update(
            {
                MerchantRule.usage_count: MerchantRule.usage_count + 1,
                MerchantRule.last_used: now,
                MerchantRule.updated_at: now,
            },
            synchronize_session=False,
        )
        self._commit(session)

    # Health
    def stats(self, budget_id: Optional[str] = None) -> dict[str, Any]:
        """Row counts by table and status."""
        session = self._get_session()
        try:
            query = session.query(SyncedTransaction.status, func.count()).group_by(SyncedTransaction.status)
            logs = session.query(SyncLog)
            rules = session.query(MerchantRule)
            if budget_id is not None:
                query = query.filter(SyncedTransaction.budget_id == budget_id)
                logs = logs.filter(SyncLog.budget_id == budget_id)
                rules = rules.filter(MerchantRule.budget_id == budget_id)
            by_status = dict(query.all())
            sync_logs = logs.count()
            merchant_rules = rules.count()
        except SQLAlchemyError as e:
            session.rollback()
            raise LedgerError(f"Could not read ledger statistics: {e}") from e

        return {
            "total_transactions": sum(by_status.values()),
            "synced_transactions": by_status.get(TransactionStatus.SYNCED.value, 0),
            "pending_transactions": by_status.get(TransactionStatus.PENDING.value, 0),
            "failed_transactions": by_status.get(TransactionStatus.FAILED.value, 0),
            "sync_logs": sync_logs,
            "merchant_rules": merchant_rules,
        }

    def check_integrity(self) -> bool:
        """Run storage-level and invariant checks."""
        session = self._get_session()
        try:
            if self.engine.dialect.name == "sqlite":
                result = session.execute(text("PRAGMA integrity_check")).scalar()
                if result != "ok":
                    logger.warning("SQLite integrity check reported: %s", result)
                    return False
            mismarked = (
                session.query(SyncedTransaction)
                .filter(
                    SyncedTransaction.status == TransactionStatus.SYNCED.value,
                    SyncedTransaction.target_transaction_id.is_(None),
                )
                .count()
            )
        except SQLAlchemyError as e:
            logger.warning("Ledger integrity check failed: %s", e)
            return False
        finally:
            session.rollback()
        if mismarked:
            logger.warning("%d records are marked synced without a target transaction id", mismarked)
            return False
        return True
