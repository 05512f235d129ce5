"""Tests for the shared HTTP client and retry helper."""

import httpx
import pytest

from upynab.clients.errors import (
    DecodeError,
    NetworkError,
    NotFoundApiError,
    RateLimitedError,
    RequestFailedError,
    ServerError,
    UnauthorizedError,
)
from upynab.clients.http import ApiClient, RetryPolicy, decode_payload, parse_retry_after, with_retry


def make_client(handler, sleeps, max_retries=1):
    return ApiClient(
        "https://api.example.test/v1",
        token_provider=lambda: "secret",
        service_name="Test",
        transport=httpx.MockTransport(handler),
        retry_policy=RetryPolicy(max_retries=max_retries, delay=2.0),
        sleep=sleeps.append,
    )


class TestApiClient:
    def test_sends_bearer_token_and_decodes(self, sleeps):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"data": {"id": "abc"}})

        client = make_client(handler, sleeps)
        result = client.get("/things/abc", parse=lambda d: d["data"]["id"])

        assert result == "abc"
        assert seen[0].headers["Authorization"] == "Bearer secret"
        assert seen[0].url.path == "/v1/things/abc"
        assert sleeps == []

    def test_retries_server_error_once(self, sleeps):
        responses = iter([httpx.Response(500), httpx.Response(200, json={"ok": True})])

        client = make_client(lambda request: next(responses), sleeps)
        result = client.get("/ping", parse=lambda d: d["ok"])

        assert result is True
        assert sleeps == [2.0]

    def test_gives_up_after_max_retries(self, sleeps):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        client = make_client(handler, sleeps, max_retries=2)

        with pytest.raises(ServerError) as exc_info:
            client.get("/ping")

        assert exc_info.value.status_code == 503
        assert len(calls) == 3
        assert len(sleeps) == 2

    def test_rate_limit_honours_retry_after(self, sleeps):
        responses = iter(
            [
                httpx.Response(429, headers={"Retry-After": "7"}),
                httpx.Response(200, json={"ok": True}),
            ]
        )

        client = make_client(lambda request: next(responses), sleeps)
        client.get("/ping")

        assert sleeps == [7.0]

    @pytest.mark.parametrize(
        "status,error_type",
        [(401, UnauthorizedError), (404, NotFoundApiError)],
    )
    def test_non_retryable_statuses_fail_immediately(self, sleeps, status, error_type):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(status)

        client = make_client(handler, sleeps)

        with pytest.raises(error_type):
            client.get("/ping")

        assert len(calls) == 1
        assert sleeps == []

    def test_invalid_json_is_a_decode_error(self, sleeps):
        client = make_client(lambda request: httpx.Response(200, content=b"not json"), sleeps)

        with pytest.raises(DecodeError):
            client.get("/ping")

        assert sleeps == []

    def test_empty_body_is_a_decode_error(self, sleeps):
        client = make_client(lambda request: httpx.Response(200), sleeps)

        with pytest.raises(DecodeError, match="empty response body"):
            client.get("/ping")

    def test_client_error_carries_provider_detail(self, sleeps):
        body = {"error": {"id": "400", "name": "bad_request", "detail": "account_id is invalid"}}
        client = make_client(lambda request: httpx.Response(400, json=body), sleeps, max_retries=0)

        with pytest.raises(RequestFailedError, match="account_id is invalid"):
            client.post("/transactions", json={})

    def test_transport_failure_is_a_network_error(self, sleeps):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler, sleeps, max_retries=0)

        with pytest.raises(NetworkError, match="connection refused"):
            client.get("/ping")


class TestDecodePayload:
    def test_falls_back_to_envelope_data(self):
        assert decode_payload({"data": {"id": "x"}}, lambda d: d["id"]) == "x"

    def test_envelope_error_is_surfaced(self):
        payload = {"errors": [{"title": "Invalid filter", "detail": "filter[since] is malformed"}]}

        with pytest.raises(RequestFailedError, match="filter\\[since\\] is malformed"):
            decode_payload(payload, lambda d: d["id"])

    def test_undecodable_document(self):
        with pytest.raises(DecodeError):
            decode_payload([1, 2, 3], lambda d: d["id"])


class TestWithRetry:
    def test_retryable_error_is_retried(self):
        attempts = []
        sleeps = []

        def operation():
            attempts.append(1)
            if len(attempts) < 3:
                raise ServerError(502)
            return "done"

        policy = RetryPolicy(max_retries=3, delay=1.0, backoff_multiplier=2.0)

        assert with_retry(operation, policy, sleeps.append) == "done"
        assert sleeps == [1.0, 2.0]

    def test_non_retryable_error_propagates(self):
        sleeps = []

        def operation():
            raise UnauthorizedError("Test")

        with pytest.raises(UnauthorizedError):
            with_retry(operation, RetryPolicy(max_retries=5), sleeps.append)

        assert sleeps == []

    def test_delay_is_capped(self):
        policy = RetryPolicy(delay=10.0, max_delay=15.0)

        assert policy.delay_for(0, RateLimitedError(retry_after=120)) == 15.0


@pytest.mark.parametrize("value,expected", [("5", 5.0), ("0.5", 0.5), (None, None), ("soon", None), ("-1", None)])
def test_parse_retry_after(value, expected):
    assert parse_retry_after(value) == expected
