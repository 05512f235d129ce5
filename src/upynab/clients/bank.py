"""Up Banking API client (transaction source)."""

import logging
import time
from datetime import datetime, UTC
from typing import Any, Callable, Iterator, Optional

import httpx
from dateutil.parser import isoparse

from upynab.clients.http import ApiClient, RetryPolicy, DEFAULT_USER_AGENT
from upynab.clients.errors import ApiError
from upynab.domain.entities import BankAccount, BankTransaction
from upynab.domain.ports import TransactionSource

logger = logging.getLogger(__name__)

UP_BASE_URL = "https://api.up.com.au/api/v1"
SERVICE_NAME = "Up Banking"
MAX_PAGE_SIZE = 100


def _relationship_id(relationships: dict[str, Any], name: str) -> Optional[str]:
    data = (relationships.get(name) or {}).get("data")
    if isinstance(data, dict):
        return data.get("id")
    return None


def _optional_datetime(value: Optional[str]) -> Optional[datetime]:
    return isoparse(value) if value else None


def parse_account(item: dict[str, Any]) -> BankAccount:
    attributes = item["attributes"]
    balance = attributes["balance"]
    return BankAccount(
        id=item["id"],
        display_name=attributes["displayName"],
        account_type=attributes["accountType"],
        balance_minor_units=int(balance["valueInBaseUnits"]),
        currency_code=balance["currencyCode"],
        created_at=_optional_datetime(attributes.get("createdAt")),
    )


def parse_transaction(item: dict[str, Any]) -> BankTransaction:
    attributes = item["attributes"]
    relationships = item.get("relationships", {})
    amount = attributes["amount"]
    minor_units = amount["valueInBaseUnits"]
    if isinstance(minor_units, bool) or not isinstance(minor_units, int):
        raise TypeError(f"valueInBaseUnits must be an integer, got {minor_units!r}")
    return BankTransaction(
        id=item["id"],
        account_id=_relationship_id(relationships, "account") or "",
        status=attributes["status"],
        amount_minor_units=minor_units,
        currency_code=amount["currencyCode"],
        description=attributes.get("description") or "",
        created_at=isoparse(attributes["createdAt"]),
        amount_value=amount.get("value"),
        raw_text=attributes.get("rawText"),
        message=attributes.get("message"),
        settled_at=_optional_datetime(attributes.get("settledAt")),
        category_id=_relationship_id(relationships, "category"),
        parent_category_id=_relationship_id(relationships, "parentCategory"),
        transfer_account_id=_relationship_id(relationships, "transferAccount"),
        raw=item,
    )


def _parse_page(parse_item: Callable[[dict[str, Any]], Any]):
    def parse(document: dict[str, Any]) -> tuple[list, Optional[str]]:
        items = [parse_item(item) for item in document["data"]]
        links = document.get("links") or {}
        return items, links.get("next")

    return parse


def format_timestamp(value: datetime) -> str:
    """RFC 3339 timestamp; naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


class UpBankingClient(TransactionSource):
    """Read-only client for accounts and transactions at Up."""

    def __init__(
        self,
        token_provider: Callable[[], str],
        base_url: str = UP_BASE_URL,
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
        """Ping the API. Returns False instead of raising on API failures."""
        try:
            self._api.get("/util/ping", retry=False)
        except ApiError as e:
            logger.warning("Up Banking connection test failed: %s", e)
            return False
        return True

    def list_accounts(self) -> list[BankAccount]:
        accounts = []
        url: Optional[str] = "/accounts"
        params: Optional[dict[str, Any]] = {"page[size]": MAX_PAGE_SIZE}
        while url:
            page, url = self._api.get(url, params=params, parse=_parse_page(parse_account))
            params = None
            accounts.extend(page)
        return accounts

    def list_active_accounts(self) -> list[BankAccount]:
        """Transactional and saver accounts."""
        return [a for a in self.list_accounts() if a.is_transactional or a.is_saver]

    def get_account(self, account_id: str) -> BankAccount:
        return self._api.get(f"/accounts/{account_id}", parse=lambda doc: parse_account(doc["data"]))

    def get_account_balance(self, account_id: str) -> Optional[int]:
        return self.get_account(account_id).balance_minor_units

    def list_transactions(
        self,
        account_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        page_size: int = MAX_PAGE_SIZE,
    ) -> Iterator[BankTransaction]:
        """Yield the account's transactions inside the window, newest first.

        Pages are fetched lazily. A page shorter than ``page_size`` or one
        without a next link ends the sequence.
        """
        page_size = max(1, min(page_size, MAX_PAGE_SIZE))
        params: Optional[dict[str, Any]] = {"page[size]": page_size}
        if since is not None:
            params["filter[since]"] = format_timestamp(since)
        if until is not None:
            params["filter[until]"] = format_timestamp(until)

        url: Optional[str] = f"/accounts/{account_id}/transactions"
        page_number = 0
        while url:
            page, next_url = self._api.get(url, params=params, parse=_parse_page(parse_transaction))
            page_number += 1
            logger.debug(
                "Fetched page %d with %d transactions for account %s",
                page_number,
                len(page),
                account_id,
            )
            yield from page
            if len(page) < page_size:
                break
            # The next link already carries the query string.
            url, params = next_url, None
