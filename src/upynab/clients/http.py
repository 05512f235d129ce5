"""Blocking HTTP plumbing shared by the provider clients."""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

import httpx

from upynab.clients.errors import (
    ApiError,
    DecodeError,
    ForbiddenError,
    NetworkError,
    NotFoundApiError,
    RateLimitedError,
    RequestFailedError,
    ServerError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_USER_AGENT = "upynab/0.1"
_DECODE_FAILURES = (KeyError, TypeError, ValueError, AttributeError, IndexError)


@dataclass(frozen=True)
class RetryPolicy:
    """How ``with_retry`` spaces out attempts.

    Attributes:
        max_retries: Attempts after the first one
        delay: Seconds before the first retry
        backoff_multiplier: Factor applied to the delay per retry (1.0 = fixed)
        max_delay: Upper bound for any single wait, Retry-After included
    """

    max_retries: int = 1
    delay: float = 2.0
    backoff_multiplier: float = 1.0
    max_delay: float = 60.0

    def delay_for(self, attempt: int, error: Optional[ApiError] = None) -> float:
        """Seconds to wait before retry number ``attempt + 1``."""
        if isinstance(error, RateLimitedError) and error.retry_after is not None:
            wait = error.retry_after
        else:
            wait = self.delay * (self.backoff_multiplier ** attempt)
        return max(0.0, min(wait, self.max_delay))

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.max_retries,
            delay=settings.retry_delay_seconds,
            backoff_multiplier=settings.backoff_multiplier,
            max_delay=settings.max_retry_delay_seconds,
        )


def with_retry(
    operation: Callable[[], T],
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``operation``, retrying retryable API failures per ``policy``.

    Raises:
        ApiError: The last failure, once it is not retryable or attempts run out
    """
    policy = policy or RetryPolicy()
    attempt = 0
    while True:
        try:
            return operation()
        except ApiError as e:
            if not e.retryable or attempt >= policy.max_retries:
                raise
            wait = policy.delay_for(attempt, e)
            logger.warning(
                "%s, retrying in %.1f seconds (attempt %d/%d)",
                e,
                wait,
                attempt + 1,
                policy.max_retries + 1,
            )
            sleep(wait)
            attempt += 1


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After as seconds. HTTP-date values are not supported."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def error_text(error: Any) -> Optional[str]:
    """Pull a human-readable message out of a provider error payload.

    Handles the budget app's ``{"id", "name", "detail"}`` object and the
    bank's JSON:API list of ``{"title", "detail"}`` objects.
    """
    if error is None:
        return None
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        return error.get("detail") or error.get("title") or error.get("name") or str(error)
    if isinstance(error, list):
        parts = [error_text(item) for item in error]
        return ", ".join(p for p in parts if p) or None
    return str(error)


def decode_payload(
    data: Any,
    parse: Optional[Callable[[Any], T]],
    status_code: int = 200,
    service: Optional[str] = None,
) -> T:
    """Decode a JSON document tolerantly.

    Tries ``parse`` on the document itself, then on the ``data`` member of a
    ``{data, error, errors}`` envelope. An envelope carrying an error is
    surfaced as a request failure with the provider's text.
    """
    if parse is None:
        return data

    try:
        return parse(data)
    except _DECODE_FAILURES as first_error:
        if isinstance(data, dict) and ({"data", "error", "errors"} & data.keys()):
            if data.get("data") is not None:
                try:
                    return parse(data["data"])
                except _DECODE_FAILURES:
                    pass
            message = error_text(data.get("error")) or error_text(data.get("errors"))
            if message:
                raise RequestFailedError(status_code, message, service) from first_error
        raise DecodeError(f"{type(first_error).__name__}: {first_error}", service) from first_error


class ApiClient:
    """Bearer-authenticated JSON client for one provider."""

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], str],
        service_name: str,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_name = service_name
        self.retry_policy = retry_policy or RetryPolicy()
        self._token_provider = token_provider
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "User-Agent": user_agent,
            },
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[Any] = None,
        parse: Optional[Callable[[Any], T]] = None,
        retry: bool = True,
    ) -> T:
        """Send a request and decode the answer.

        Args:
            method: HTTP method
            path: Path relative to the base URL, or an absolute URL
            params: Query parameters
            json: JSON body
            parse: Callable turning the decoded document into the result
            retry: Wrap the request in ``with_retry``

        Raises:
            ApiError: On transport failures and non-2xx answers
        """
        def send():
            return self._send(method, path, params, json, parse)

        if not retry:
            return send()
        return with_retry(send, self.retry_policy, self._sleep)

    def get(self, path: str, params: Optional[dict[str, Any]] = None, parse=None, retry: bool = True):
        return self.request("GET", path, params=params, parse=parse, retry=retry)

    def post(self, path: str, json: Any, parse=None, retry: bool = True):
        return self.request("POST", path, json=json, parse=parse, retry=retry)

    def _send(self, method, path, params, json, parse):
        headers = {"Authorization": f"Bearer {self._token_provider()}"}
        logger.debug("%s %s %s", self.service_name, method, path)
        started = time.monotonic()
        try:
            response = self._client.request(method, path, params=params, json=json, headers=headers)
        except httpx.TimeoutException as e:
            raise NetworkError(f"timed out: {e}", self.service_name) from e
        except httpx.TransportError as e:
            raise NetworkError(str(e) or type(e).__name__, self.service_name) from e
        logger.debug(
            "%s responded %d in %.2fs",
            self.service_name,
            response.status_code,
            time.monotonic() - started,
        )

        self._raise_for_status(response)

        if not response.content:
            raise DecodeError("empty response body", self.service_name)
        try:
            data = response.json()
        except ValueError as e:
            raise DecodeError(f"invalid JSON: {e}", self.service_name) from e
        return decode_payload(data, parse, response.status_code, self.service_name)

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        if status == 401:
            raise UnauthorizedError(self.service_name)
        if status == 403:
            raise ForbiddenError(self.service_name)
        if status == 404:
            raise NotFoundApiError(self.service_name)
        if status == 429:
            raise RateLimitedError(parse_retry_after(response.headers.get("Retry-After")), self.service_name)
        if 500 <= status < 600:
            raise ServerError(status, self.service_name)
        raise RequestFailedError(status, self._body_text(response), self.service_name)

    def _body_text(self, response: httpx.Response) -> Optional[str]:
        if not response.content:
            return None
        try:
            data = response.json()
        except ValueError:
            return response.text[:500]
        if isinstance(data, dict):
            message = error_text(data.get("error")) or error_text(data.get("errors"))
            if message:
                return message
        return response.text[:500]
