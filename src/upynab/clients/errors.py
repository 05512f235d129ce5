"""HTTP client error types.

``retryable`` marks the failures ``with_retry`` may attempt again. Auth,
not-found, decode and duplicate-import failures can never succeed on a
second attempt.
"""

from typing import Optional


class ApiError(Exception):
    """Base class for provider API failures."""

    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None, service: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.service = service

    def __str__(self) -> str:
        if self.service:
            return f"{self.service}: {self.message}"
        return self.message


class UnauthorizedError(ApiError):
    def __init__(self, service: Optional[str] = None):
        super().__init__("Unauthorized. Check your API token.", 401, service)


class ForbiddenError(ApiError):
    def __init__(self, service: Optional[str] = None):
        super().__init__("Forbidden. The API token lacks the required permissions.", 403, service)


class NotFoundApiError(ApiError):
    def __init__(self, service: Optional[str] = None):
        super().__init__("Resource not found", 404, service)


class RateLimitedError(ApiError):
    retryable = True

    def __init__(self, retry_after: Optional[float] = None, service: Optional[str] = None):
        if retry_after is not None:
            message = f"Rate limited. Retry after {retry_after:g} seconds."
        else:
            message = "Rate limited. Try again later."
        super().__init__(message, 429, service)
        self.retry_after = retry_after


class ServerError(ApiError):
    retryable = True

    def __init__(self, status_code: int, service: Optional[str] = None):
        super().__init__(f"Server error: {status_code}", status_code, service)


class RequestFailedError(ApiError):
    """Any other non-2xx answer, or an error reported inside a 2xx envelope."""

    retryable = True

    def __init__(self, status_code: int, body: Optional[str] = None, service: Optional[str] = None):
        super().__init__(
            f"Request failed with status {status_code}: {body or 'Unknown error'}",
            status_code,
            service,
        )
        self.body = body


class DecodeError(ApiError):
    def __init__(self, detail: str, service: Optional[str] = None):
        super().__init__(f"Failed to decode response: {detail}", None, service)


class NetworkError(ApiError):
    retryable = True

    def __init__(self, detail: str, service: Optional[str] = None):
        super().__init__(f"Network error: {detail}", None, service)


class DuplicateImportError(ApiError):
    """The budget app already holds a transaction with this import id."""

    def __init__(self, import_ids: list[str], service: Optional[str] = None):
        super().__init__(f"Duplicate import ids: {', '.join(import_ids)}", None, service)
        self.import_ids = import_ids
