"""YNAB API client (transaction sink)."""

import logging
import time
from datetime import date, datetime
from typing import Any, Callable, Optional

import httpx
from dateutil.parser import isoparse

from upynab.clients.errors import ApiError, DecodeError, DuplicateImportError
from upynab.clients.http import ApiClient, RetryPolicy, DEFAULT_USER_AGENT
from upynab.domain.entities import (
    Budget,
    BudgetAccount,
    BudgetCategory,
    BudgetTransaction,
    BudgetTransactionRequest,
)
from upynab.domain.ports import TransactionSink

logger = logging.getLogger(__name__)

YNAB_BASE_URL = "https://api.ynab.com/v1"
SERVICE_NAME = "YNAB"


def parse_budget(item: dict[str, Any]) -> Budget:
    last_modified = item.get("last_modified_on")
    return Budget(
        id=item["id"],
        name=item["name"],
        last_modified_on=isoparse(last_modified) if last_modified else None,
    )


def parse_account(item: dict[str, Any]) -> BudgetAccount:
    return BudgetAccount(
        id=item["id"],
        name=item["name"],
        type=item.get("type", ""),
        on_budget=bool(item.get("on_budget", True)),
        closed=bool(item.get("closed", False)),
        balance=int(item.get("balance", 0)),
        deleted=bool(item.get("deleted", False)),
    )


def parse_transaction(item: dict[str, Any]) -> BudgetTransaction:
    return BudgetTransaction(
        id=item["id"],
        account_id=item["account_id"],
        date=date.fromisoformat(item["date"]),
        amount=int(item["amount"]),
        payee_name=item.get("payee_name"),
        memo=item.get("memo"),
        category_id=item.get("category_id"),
        import_id=item.get("import_id"),
        cleared=item.get("cleared", "uncleared"),
        approved=bool(item.get("approved", False)),
        deleted=bool(item.get("deleted", False)),
    )


def _parse_created(document: dict[str, Any]) -> tuple[list[BudgetTransaction], list[str]]:
    data = document["data"]
    created = data.get("transactions")
    if created is None:
        created = [data["transaction"]] if data.get("transaction") else []
    return [parse_transaction(t) for t in created], list(data.get("duplicate_import_ids") or [])


def _since_param(since_date: Optional[date | datetime]) -> Optional[str]:
    if since_date is None:
        return None
    if isinstance(since_date, datetime):
        since_date = since_date.date()
    return since_date.isoformat()


class YnabClient(TransactionSink):
    """Client for the budgets, accounts and transactions of YNAB."""

    def __init__(
        self,
        token_provider: Callable[[], str],
        base_url: str = YNAB_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self._api = ApiClient(
            base_url,
            token_provider,
            SERVICE_NAME,
            user_agent=user_agent,
            timeout=timeout,
            transport=transport,
            retry_policy=retry_policy,
            sleep=sleep,
        )

    def close(self) -> None:
        self._api.close()

    def test_connection(self) -> bool:
        """Fetch the current user. Returns False instead of raising on API failures."""
        try:
            self._api.get("/user", retry=False)
        except ApiError as e:
            logger.warning("YNAB connection test failed: %s", e)
            return False
        return True

    # Budgets
    def list_budgets(self) -> list[Budget]:
        return self._api.get(
            "/budgets", parse=lambda doc: [parse_budget(b) for b in doc["data"]["budgets"]]
        )

    def get_budget(self, budget_id: str) -> Budget:
        return self._api.get(
            f"/budgets/{budget_id}", parse=lambda doc: parse_budget(doc["data"]["budget"])
        )

    # Accounts
    def list_accounts(self, budget_id: str) -> list[BudgetAccount]:
        """Open accounts of the budget; closed and deleted ones are left out."""
        accounts = self._api.get(
            f"/budgets/{budget_id}/accounts",
            parse=lambda doc: [parse_account(a) for a in doc["data"]["accounts"]],
        )
        return [a for a in accounts if a.is_active]

    def get_account(self, budget_id: str, account_id: str) -> BudgetAccount:
        return self._api.get(
            f"/budgets/{budget_id}/accounts/{account_id}",
            parse=lambda doc: parse_account(doc["data"]["account"]),
        )

    def get_account_balance(self, budget_id: str, account_id: str) -> Optional[int]:
        return self.get_account(budget_id, account_id).balance

    # Categories
    def list_categories(self, budget_id: str) -> list[BudgetCategory]:
        def parse(doc):
            categories = []
            for group in doc["data"]["category_groups"]:
                if group.get("deleted"):
                    continue
                for c in group.get("categories", []):
                    categories.append(
                        BudgetCategory(
                            id=c["id"],
                            name=c["name"],
                            group_name=group.get("name"),
                            hidden=bool(c.get("hidden", False)),
                            deleted=bool(c.get("deleted", False)),
                        )
                    )
            return categories

        return [c for c in self._api.get(f"/budgets/{budget_id}/categories", parse=parse) if not c.deleted]

    # Transactions
    def list_transactions(
        self,
        budget_id: str,
        account_id: Optional[str] = None,
        since_date: Optional[date | datetime] = None,
    ) -> list[BudgetTransaction]:
        """List transactions, optionally for one account. Deleted ones are left out."""
        if account_id:
            path = f"/budgets/{budget_id}/accounts/{account_id}/transactions"
        else:
            path = f"/budgets/{budget_id}/transactions"
        params = {}
        since = _since_param(since_date)
        if since:
            params["since_date"] = since
        transactions = self._api.get(
            path,
            params=params or None,
            parse=lambda doc: [parse_transaction(t) for t in doc["data"]["transactions"]],
        )
        return [t for t in transactions if not t.deleted]

    def create_transaction(
        self, budget_id: str, request: BudgetTransactionRequest
    ) -> BudgetTransaction:
        """Create one transaction.

        Raises:
            DuplicateImportError: If YNAB already holds the import id
            DecodeError: If YNAB accepted the request but returned no transaction
        """
        created, duplicates = self._api.post(
            f"/budgets/{budget_id}/transactions",
            json={"transactions": [request.to_payload()]},
            parse=_parse_created,
        )
        if duplicates:
            logger.warning("Duplicate import ids reported by YNAB: %s", ", ".join(duplicates))
            raise DuplicateImportError(duplicates, SERVICE_NAME)
        if not created:
            raise DecodeError("no transaction in create response", SERVICE_NAME)
        logger.debug("Created YNAB transaction %s", created[0].id)
        return created[0]

    def create_transactions(
        self, budget_id: str, requests: list[BudgetTransactionRequest]
    ) -> tuple[list[BudgetTransaction], list[str]]:
        """Create several transactions in one call.

        Returns:
            Tuple of (created transactions, import ids YNAB reported as duplicates)
        """
        if not requests:
            return [], []
        created, duplicates = self._api.post(
            f"/budgets/{budget_id}/transactions",
            json={"transactions": [r.to_payload() for r in requests]},
            parse=_parse_created,
        )
        if duplicates:
            logger.warning("Duplicate import ids reported by YNAB: %s", ", ".join(duplicates))
        logger.info("Created %d YNAB transactions", len(created))
        return created, duplicates

    def find_transaction_by_import_id(
        self,
        budget_id: str,
        account_id: str,
        import_id: str,
        since_date: Optional[date | datetime] = None,
    ) -> Optional[BudgetTransaction]:
        for transaction in self.list_transactions(budget_id, account_id, since_date):
            if transaction.import_id == import_id:
                return transaction
        return None
