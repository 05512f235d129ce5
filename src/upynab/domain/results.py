"""Options and result types exchanged with the presentation layer."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Optional

from upynab.domain.entities import AccountMapping, BankTransaction, SyncLogEntry


class ResultStatus(str, Enum):
    """Outcome of one transaction within one run."""

    SYNCED = "synced"
    FAILED = "failed"
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"
    WOULD_SYNC = "would_sync"


class SyncErrorKind(str, Enum):
    AUTHENTICATION = "authentication"
    NETWORK = "network"
    API_ERROR = "api_error"
    RATE_LIMITED = "rate_limited"
    AMOUNT_CONVERSION = "amount_conversion"
    DUPLICATE_TRANSACTION = "duplicate_transaction"
    ACCOUNT_MAPPING = "account_mapping"
    DATABASE_ERROR = "database_error"
    CONFIGURATION_ERROR = "configuration_error"
    CATEGORIZATION = "categorization"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class DateWindow:
    """Half-open interval of transaction creation times to fetch."""

    start: datetime
    end: datetime

    @property
    def days(self) -> float:
        return (self.end - self.start).total_seconds() / 86400

    def describe(self) -> str:
        return f"{self.start.isoformat()} to {self.end.isoformat()}"


@dataclass(frozen=True)
class SyncOptions:
    """Caller-supplied knobs for one sync run.

    Attributes:
        full_sync: Ask the range chooser for a custom window
        date_range: Explicit window; wins over everything else
        days: Sync the last N days
        dry_run: Report what would be submitted without writing anything
        verbose: Log per-transaction detail
        enable_categorization: Consult the classifier for every candidate
        account_filter: Only process mappings for these source account ids
    """

    full_sync: bool = False
    date_range: Optional[DateWindow] = None
    days: Optional[int] = None
    dry_run: bool = False
    verbose: bool = False
    enable_categorization: bool = False
    account_filter: Optional[tuple[str, ...]] = None


@dataclass(frozen=True)
class SyncError:
    """One itemized problem encountered during a run."""

    kind: SyncErrorKind
    message: str
    account_id: Optional[str] = None
    transaction_id: Optional[str] = None
    is_critical: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def display_message(self) -> str:
        parts = []
        if self.is_critical:
            parts.append("CRITICAL")
        parts.append(f"[{self.kind.value}]")
        if self.account_id:
            parts.append(f"account={self.account_id}")
        if self.transaction_id:
            parts.append(f"transaction={self.transaction_id}")
        parts.append(self.message)
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "account_id": self.account_id,
            "transaction_id": self.transaction_id,
            "is_critical": self.is_critical,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class TransactionResult:
    """Per-transaction outcome."""

    transaction: BankTransaction
    status: ResultStatus
    target_transaction_id: Optional[str] = None
    target_amount: Optional[int] = None
    category_name: Optional[str] = None
    error: Optional[SyncError] = None
    amount_validated: bool = True


@dataclass(frozen=True)
class AccountSyncSummary:
    account_name: str
    transactions_fetched: int
    transactions_processed: int
    transactions_synced: int
    transactions_skipped: int
    transactions_failed: int
    transactions_duplicate: int
    transactions_would_sync: int
    amount_synced_minor_units: int
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class AccountSyncResult:
    mapping: AccountMapping
    results: tuple[TransactionResult, ...]
    summary: AccountSyncSummary
    errors: tuple[SyncError, ...] = ()


@dataclass(frozen=True)
class SyncSummary:
    total_accounts: int
    total_transactions: int
    synced_transactions: int
    skipped_transactions: int
    failed_transactions: int
    duplicate_transactions: int
    would_sync_transactions: int
    duration: float

    @property
    def success_rate(self) -> float:
        attempted = self.total_transactions - self.skipped_transactions
        if attempted <= 0:
            return 100.0
        return (self.synced_transactions + self.duplicate_transactions) / attempted * 100

    @property
    def display_summary(self) -> str:
        return (
            f"{self.total_accounts} accounts, {self.total_transactions} transactions: "
            f"{self.synced_transactions} synced, {self.skipped_transactions} skipped, "
            f"{self.failed_transactions} failed, {self.duplicate_transactions} duplicate "
            f"in {self.duration:.1f}s"
        )


@dataclass(frozen=True)
class SyncResult:
    """Aggregated outcome of one run, including every per-transaction error."""

    run_id: str
    profile_name: str
    budget_id: str
    window: DateWindow
    dry_run: bool
    account_results: tuple[AccountSyncResult, ...]
    summary: SyncSummary
    errors: tuple[SyncError, ...]
    recovered_pending: int = 0
    retried_failed: int = 0

    @property
    def critical_errors(self) -> list[SyncError]:
        return [e for e in self.errors if e.is_critical]

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


@dataclass(frozen=True)
class DatabaseHealth:
    is_accessible: bool
    total_records: int
    failed_transactions: int
    pending_transactions: int
    integrity_check: bool
    schema_version: int


@dataclass(frozen=True)
class AccountStatus:
    mapping: AccountMapping
    record_count: int
    recent_errors: tuple[SyncError, ...]
    source_balance: Optional[int] = None
    target_balance: Optional[int] = None

    @property
    def is_healthy(self) -> bool:
        return not self.recent_errors


@dataclass(frozen=True)
class SyncStatusReport:
    """Health snapshot for the status command."""

    is_configured: bool
    has_valid_tokens: bool
    profile_name: Optional[str]
    last_sync: Optional[SyncLogEntry]
    account_statuses: tuple[AccountStatus, ...]
    database_health: DatabaseHealth

    @property
    def last_sync_date(self) -> Optional[datetime]:
        return self.last_sync.sync_date if self.last_sync else None

    @property
    def last_sync_succeeded(self) -> Optional[bool]:
        if self.last_sync is None:
            return None
        return self.last_sync.transactions_failed == 0
