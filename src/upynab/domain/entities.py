"""Domain model entities for upynab.

These are pure data classes representing the two ledgers being reconciled and
the local sync bookkeeping, independent of the database schema and of the
wire format of either provider.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from enum import Enum
from typing import Any, Optional


class TransactionStatus(str, Enum):
    """Sync status of a single source transaction in the ledger."""

    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"
    UNKNOWN = "unknown"

    @classmethod
    def from_storage(cls, value: Optional[str]) -> Optional["TransactionStatus"]:
        """Map a stored status string to the enum.

        Returns None for a missing row value and UNKNOWN for strings this
        version does not recognize.
        """
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class BankAccount:
    """Account held at the source bank."""

    id: str
    display_name: str
    account_type: str
    balance_minor_units: int
    currency_code: str
    created_at: Optional[datetime] = None

    @property
    def is_transactional(self) -> bool:
        return self.account_type == "TRANSACTIONAL"

    @property
    def is_saver(self) -> bool:
        return self.account_type == "SAVER"


@dataclass(frozen=True)
class BankTransaction:
    """Transaction fetched from the source bank. Never mutated locally."""

    id: str
    account_id: str
    status: str
    amount_minor_units: int
    currency_code: str
    description: str
    created_at: datetime
    amount_value: Optional[str] = None
    raw_text: Optional[str] = None
    message: Optional[str] = None
    settled_at: Optional[datetime] = None
    category_id: Optional[str] = None
    parent_category_id: Optional[str] = None
    transfer_account_id: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_settled(self) -> bool:
        return self.status == "SETTLED"

    @property
    def display_description(self) -> str:
        if self.description:
            return self.description
        return self.raw_text or "Unknown transaction"

    @property
    def booking_date(self) -> date:
        """Date the transaction is booked under in the budget."""
        return (self.settled_at or self.created_at).date()


@dataclass(frozen=True)
class BudgetAccount:
    """Account inside a budget of the budgeting app."""

    id: str
    name: str
    type: str
    on_budget: bool
    closed: bool
    balance: int
    deleted: bool = False

    @property
    def is_active(self) -> bool:
        return not self.closed and not self.deleted


@dataclass(frozen=True)
class Budget:
    """Budget in the budgeting app."""

    id: str
    name: str
    last_modified_on: Optional[datetime] = None


@dataclass(frozen=True)
class BudgetCategory:
    """Spending category in a budget."""

    id: str
    name: str
    group_name: Optional[str] = None
    hidden: bool = False
    deleted: bool = False

    @property
    def display_name(self) -> str:
        if self.group_name:
            return f"{self.group_name}: {self.name}"
        return self.name


@dataclass(frozen=True)
class BudgetTransactionRequest:
    """Transaction to be created in the budgeting app."""

    account_id: str
    date: date
    amount: int
    payee_name: Optional[str]
    memo: Optional[str]
    import_id: Optional[str]
    category_id: Optional[str] = None
    cleared: str = "uncleared"
    approved: bool = True
    flag_color: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the budgeting app's JSON shape."""
        return {
            "account_id": self.account_id,
            "date": self.date.isoformat(),
            "amount": self.amount,
            "payee_name": self.payee_name,
            "category_id": self.category_id,
            "memo": self.memo,
            "cleared": self.cleared,
            "approved": self.approved,
            "flag_color": self.flag_color,
            "import_id": self.import_id,
        }


@dataclass(frozen=True)
class BudgetTransaction:
    """Transaction as stored by the budgeting app."""

    id: str
    account_id: str
    date: date
    amount: int
    payee_name: Optional[str] = None
    memo: Optional[str] = None
    category_id: Optional[str] = None
    import_id: Optional[str] = None
    cleared: str = "uncleared"
    approved: bool = False
    deleted: bool = False


@dataclass(frozen=True)
class SyncedTransaction:
    """Ledger record for one source transaction within one budget."""

    id: str
    budget_id: str
    source_account_id: str
    source_account_name: str
    source_amount: int
    source_date: datetime
    source_description: str
    source_raw_json: str
    target_account_id: str
    target_transaction_id: Optional[str]
    target_amount: int
    sync_timestamp: datetime
    status: TransactionStatus
    error_message: Optional[str] = None


@dataclass(frozen=True)
class SyncLogEntry:
    """Audit row describing one completed sync run."""

    id: Optional[int]
    budget_id: str
    sync_date: datetime
    date_range_start: datetime
    date_range_end: datetime
    accounts_processed: int
    transactions_processed: int
    transactions_synced: int
    transactions_skipped: int
    transactions_failed: int
    errors: Optional[str]
    sync_duration_seconds: float


@dataclass(frozen=True)
class MerchantRule:
    """Learned mapping from a merchant text pattern to a budget category."""

    id: Optional[int]
    budget_id: str
    merchant_pattern: str
    category_id: str
    category_name: str
    payee_name: str
    confidence: float
    usage_count: int
    last_used: Optional[datetime]
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class AccountMapping:
    """Pairs one source account with one budget account."""

    source_account_id: str
    source_account_name: str
    source_account_type: str
    target_account_id: str
    target_account_name: str
    enabled: bool = True

    @property
    def display_name(self) -> str:
        return f"{self.source_account_name} → {self.target_account_name}"


@dataclass(frozen=True)
class CategorizationSettings:
    """Per-profile settings for the merchant classifier."""

    enabled: bool = False
    auto_apply_during_sync: bool = False
    min_confidence_threshold: float = 0.7
    suggest_new_rules: bool = True


@dataclass(frozen=True)
class BudgetProfile:
    """Named, isolated set of account mappings for one target budget."""

    name: str
    budget_id: str
    budget_name: str
    account_mappings: tuple[AccountMapping, ...] = ()
    categorization: CategorizationSettings = field(default_factory=CategorizationSettings)
    created_at: Optional[datetime] = None

    @property
    def enabled_mappings(self) -> list[AccountMapping]:
        return [m for m in self.account_mappings if m.enabled]


@dataclass(frozen=True)
class Categorization:
    """Classifier verdict for one transaction."""

    category_id: str
    category_name: str
    payee_name: Optional[str]
    confidence: float
    merchant_pattern: str
