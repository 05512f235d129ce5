"""HTTP clients for the bank and the budgeting app."""

from upynab.clients.bank import UpBankingClient
from upynab.clients.budget import YnabClient
from upynab.clients.errors import (
    ApiError,
    DecodeError,
    DuplicateImportError,
    ForbiddenError,
    NetworkError,
    NotFoundApiError,
    RateLimitedError,
    RequestFailedError,
    ServerError,
    UnauthorizedError,
)
from upynab.clients.http import ApiClient, RetryPolicy, with_retry

__all__ = [
    "ApiClient",
    "ApiError",
    "DecodeError",
    "DuplicateImportError",
    "ForbiddenError",
    "NetworkError",
    "NotFoundApiError",
    "RateLimitedError",
    "RequestFailedError",
    "RetryPolicy",
    "ServerError",
    "UnauthorizedError",
    "UpBankingClient",
    "YnabClient",
    "with_retry",
]
