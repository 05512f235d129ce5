"""Abstract ledger interface."""

from abc import ABC, abstractmethod
from typing import Any, Optional

# Import entities directly to avoid circular import through domain/__init__.py
from upynab.domain.entities import (
    MerchantRule,
    SyncedTransaction,
    SyncLogEntry,
    TransactionStatus,
)


class Ledger(ABC):
    """Durable store of per-transaction sync status and run history."""

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Bring the schema up to the latest version."""
        pass

    @abstractmethod
    def schema_version(self) -> int:
        """Return the currently applied schema version (0 for an empty file)."""
        pass

    # Synced transaction operations
    @abstractmethod
    def upsert_synced_transaction(self, record: SyncedTransaction) -> None:
        """Insert or replace a record keyed by (id, budget_id)."""
        pass

    @abstractmethod
    def get_status(self, transaction_id: str, budget_id: str) -> Optional[TransactionStatus]:
        """Return the stored status, or None if the transaction was never attempted."""
        pass

    @abstractmethod
    def get_synced_transaction(
        self, transaction_id: str, budget_id: str
    ) -> Optional[SyncedTransaction]:
        """Get a ledger record by key."""
        pass

    @abstractmethod
    def list_failed(
        self, limit: int = 50, budget_id: Optional[str] = None
    ) -> list[SyncedTransaction]:
        """List failed records, most recent first."""
        pass

    @abstractmethod
    def list_for_account(
        self, source_account_id: str, limit: int = 100, budget_id: Optional[str] = None
    ) -> list[SyncedTransaction]:
        """List records for one source account, most recent first."""
        pass

    @abstractmethod
    def delete_failed(self, transaction_id: str, budget_id: str) -> bool:
        """Delete one failed record. Returns True if a row was removed."""
        pass

    @abstractmethod
    def cleanup_failed(self, budget_id: Optional[str] = None) -> int:
        """Delete all failed records. Returns the number removed."""
        pass

    @abstractmethod
    def reset_stuck_pending(self, budget_id: Optional[str] = None) -> int:
        """Demote every pending record to failed. Returns the number changed."""
        pass

    @abstractmethod
    def repair_mismarked_synced(self, budget_id: Optional[str] = None) -> int:
        """Demote synced records lacking a target id to failed."""
        pass

    @abstractmethod
    def trim_older_than(self, days: int) -> dict[str, int]:
        """Delete non-pending records and log entries older than ``days``.

        Returns counts keyed by 'transactions' and 'sync_logs'.
        """
        pass

    # Sync log operations
    @abstractmethod
    def insert_sync_log(self, entry: SyncLogEntry) -> int:
        """Append a sync log entry. Returns its ID."""
        pass

    @abstractmethod
    def last_sync_log(self, budget_id: Optional[str] = None) -> Optional[SyncLogEntry]:
        """Most recent sync log entry."""
        pass

    @abstractmethod
    def list_sync_logs(
        self, limit: int = 10, budget_id: Optional[str] = None
    ) -> list[SyncLogEntry]:
        """Most recent sync log entries first."""
        pass

    # Merchant rule operations
    @abstractmethod
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
        pass

    @abstractmethod
    def get_merchant_rule(self, budget_id: str, merchant_pattern: str) -> Optional[MerchantRule]:
        """Get a rule by exact pattern."""
        pass

    @abstractmethod
    def list_merchant_rules(self, budget_id: str) -> list[MerchantRule]:
        """List rules, most used first."""
        pass

    @abstractmethod
    def delete_merchant_rule(self, budget_id: str, merchant_pattern: str) -> bool:
        """Delete a rule. Returns True if a row was removed."""
        pass

    @abstractmethod
    def record_merchant_rule_usage(self, budget_id: str, merchant_pattern: str) -> None:
        """Increment usage count and stamp last use."""
        pass

    # Health
    @abstractmethod
    def stats(self, budget_id: Optional[str] = None) -> dict[str, Any]:
        """Row counts by table and status.

        Returns a dict with keys total_transactions, synced_transactions,
        pending_transactions, failed_transactions, sync_logs, merchant_rules.
        """
        pass

    @abstractmethod
    def check_integrity(self) -> bool:
        """Run storage-level and invariant checks."""
        pass
