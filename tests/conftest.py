"""Shared pytest fixtures for upynab tests."""

import logging
from datetime import date, datetime, timedelta, UTC
from typing import Optional

import pytest

from upynab.clients.errors import DuplicateImportError
from upynab.config import ConfigStore, SyncSettings
from upynab.credentials import SOURCE_SERVICE, TARGET_SERVICE, InMemoryCredentialStore
from upynab.database.factories import create_sqlite_ledger
from upynab.domain.entities import (
    AccountMapping,
    BankAccount,
    BankTransaction,
    BudgetAccount,
    BudgetProfile,
    BudgetTransaction,
)
from upynab.domain.ports import Classifier, TransactionSink, TransactionSource
from upynab.domain.sync import SyncService

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=UTC)
BUDGET_ID = "budget-1"


def make_transaction(
    transaction_id: str,
    amount: int = -1000,
    description: str = "WOOLWORTHS",
    created_at: Optional[datetime] = None,
    account_id: str = "up-spending",
    message: Optional[str] = None,
    amount_value: Optional[str] = None,
    raw_text: Optional[str] = None,
    settled_at: Optional[datetime] = None,
) -> BankTransaction:
    """Build a source transaction with a consistent decimal amount."""
    if amount_value is None and isinstance(amount, int) and not isinstance(amount, bool):
        amount_value = f"{amount / 100:.2f}"
    return BankTransaction(
        id=transaction_id,
        account_id=account_id,
        status="SETTLED" if settled_at else "HELD",
        amount_minor_units=amount,
        currency_code="AUD",
        description=description,
        created_at=created_at or NOW - timedelta(hours=2),
        amount_value=amount_value,
        raw_text=raw_text,
        message=message,
        settled_at=settled_at,
        raw={"id": transaction_id},
    )


class FakeSource(TransactionSource):
    """In-memory transaction source keyed by account id."""

    def __init__(self, transactions: Optional[dict[str, list[BankTransaction]]] = None):
        self.transactions = transactions or {}
        self.calls: list[tuple] = []
        self.fail_accounts: dict[str, Exception] = {}
        self.balances: dict[str, int] = {}

    def test_connection(self) -> bool:
        return True

    def list_accounts(self) -> list[BankAccount]:
        return [
            BankAccount(
                id=account_id,
                display_name=account_id,
                account_type="TRANSACTIONAL",
                balance_minor_units=self.balances.get(account_id, 0),
                currency_code="AUD",
            )
            for account_id in self.transactions
        ]

    def list_active_accounts(self) -> list[BankAccount]:
        return self.list_accounts()

    def list_transactions(self, account_id, since=None, until=None, page_size=100):
        self.calls.append((account_id, since, until, page_size))
        if account_id in self.fail_accounts:
            raise self.fail_accounts[account_id]
        for transaction in self.transactions.get(account_id, []):
            if since is not None and transaction.created_at < since:
                continue
            if until is not None and transaction.created_at > until:
                continue
            yield transaction

    def get_account_balance(self, account_id: str) -> Optional[int]:
        return self.balances.get(account_id)


class FakeSink(TransactionSink):
    """In-memory budget that enforces import id uniqueness."""

    def __init__(self):
        self.created: list[tuple[str, object]] = []
        self.by_import_id: dict[str, BudgetTransaction] = {}
        self.fail_for: dict[str, Exception] = {}
        self.balances: dict[str, int] = {}
        self._next_id = 1

    def test_connection(self) -> bool:
        return True

    def list_accounts(self, budget_id: str) -> list[BudgetAccount]:
        return []

    def create_transaction(self, budget_id, request):
        if request.import_id in self.fail_for:
            raise self.fail_for[request.import_id]
        if request.import_id in self.by_import_id:
            raise DuplicateImportError([request.import_id], "YNAB")
        created = BudgetTransaction(
            id=f"ynab-{self._next_id}",
            account_id=request.account_id,
            date=request.date,
            amount=request.amount,
            payee_name=request.payee_name,
            memo=request.memo,
            category_id=request.category_id,
            import_id=request.import_id,
        )
        self._next_id += 1
        self.created.append((budget_id, request))
        self.by_import_id[request.import_id] = created
        return created

    def find_transaction_by_import_id(self, budget_id, account_id, import_id, since_date=None):
        found = self.by_import_id.get(import_id)
        if found is not None and found.account_id == account_id:
            return found
        return None

    def get_account_balance(self, budget_id: str, account_id: str) -> Optional[int]:
        return self.balances.get(account_id)

    def list_budgets(self):
        return []


class FakeClassifier(Classifier):
    def __init__(self, result=None, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.applied = []

    def classify(self, transaction, budget_id):
        if self.error is not None:
            raise self.error
        return self.result

    def record_applied(self, categorization, budget_id):
        self.applied.append((categorization, budget_id))


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers installed by CLI runs so later tests do not log to closed streams."""
    yield
    logger = logging.getLogger("upynab")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def temp_ledger(tmp_path):
    """Create a temporary ledger for testing."""
    db_path = tmp_path / "sync.db"
    ledger = create_sqlite_ledger(database_path=str(db_path))
    ledger.database_path = str(db_path)
    ledger.connect()
    ledger.initialize_schema()

    yield ledger

    ledger.disconnect()


@pytest.fixture
def config_store(tmp_path):
    """Create a config store with one active profile and one mapping."""
    store = ConfigStore(tmp_path / "config.json")
    store.save_profile(
        BudgetProfile(
            name="household",
            budget_id=BUDGET_ID,
            budget_name="Household",
            account_mappings=(
                AccountMapping(
                    source_account_id="up-spending",
                    source_account_name="Spending",
                    source_account_type="TRANSACTIONAL",
                    target_account_id="acct-x",
                    target_account_name="Up Spending",
                ),
            ),
        )
    )
    return store


@pytest.fixture
def credentials():
    return InMemoryCredentialStore({SOURCE_SERVICE: "up-token", TARGET_SERVICE: "ynab-token"})


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def fake_sink():
    return FakeSink()


@pytest.fixture
def sleeps():
    """Recorded sleep calls."""
    return []


@pytest.fixture
def sync_service(temp_ledger, fake_source, fake_sink, config_store, credentials, sleeps):
    """Create a SyncService wired to fakes and a temporary ledger."""
    return SyncService(
        ledger=temp_ledger,
        source=fake_source,
        sink=fake_sink,
        config_store=config_store,
        credentials=credentials,
        settings=SyncSettings(),
        sleep=sleeps.append,
        clock=lambda: NOW,
    )


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def cli_obj(temp_ledger, config_store, credentials, fake_source, fake_sink, tmp_path):
    """Pre-built collaborators handed to the CLI through ctx.obj."""
    return {
        "ledger": temp_ledger,
        "config": config_store,
        "credentials": credentials,
        "source": fake_source,
        "sink": fake_sink,
        "sleep": lambda seconds: None,
        "log_dir": tmp_path / "logs",
    }


@pytest.fixture
def today():
    return date(2024, 3, 15)
