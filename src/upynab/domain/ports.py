"""Narrow interfaces the sync engine depends on."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

from upynab.domain.entities import (
    BankAccount,
    BankTransaction,
    BudgetAccount,
    BudgetTransaction,
    BudgetTransactionRequest,
    Categorization,
)


class TransactionSource(ABC):
    """Where source transactions come from."""

    @abstractmethod
    def test_connection(self) -> bool:
        pass

    @abstractmethod
    def list_accounts(self) -> list[BankAccount]:
        pass

    @abstractmethod
    def list_transactions(
        self,
        account_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        page_size: int = 100,
    ) -> Iterable[BankTransaction]:
        """Yield transactions for one account inside the window.

        Each call starts a fresh, finite pagination.
        """
        pass

    def get_account_balance(self, account_id: str) -> Optional[int]:
        """Balance in minor units, if the source can report it."""
        return None


class TransactionSink(ABC):
    """Where converted transactions are submitted."""

    @abstractmethod
    def test_connection(self) -> bool:
        pass

    @abstractmethod
    def list_accounts(self, budget_id: str) -> list[BudgetAccount]:
        pass

    @abstractmethod
    def create_transaction(
        self, budget_id: str, request: BudgetTransactionRequest
    ) -> BudgetTransaction:
        """Create one transaction.

        Raises:
            DuplicateImportError: If the import id already exists in the budget
        """
        pass

    @abstractmethod
    def find_transaction_by_import_id(
        self,
        budget_id: str,
        account_id: str,
        import_id: str,
        since_date: Optional[datetime] = None,
    ) -> Optional[BudgetTransaction]:
        pass

    def get_account_balance(self, budget_id: str, account_id: str) -> Optional[int]:
        """Balance in milliunits, if the sink can report it."""
        return None


class Classifier(ABC):
    """Optional plug-in that suggests a category for a transaction."""

    @abstractmethod
    def classify(
        self, transaction: BankTransaction, budget_id: str
    ) -> Optional[Categorization]:
        pass

    def record_applied(self, categorization: Categorization, budget_id: str) -> None:
        """Called after a categorized transaction was submitted."""
        return None
