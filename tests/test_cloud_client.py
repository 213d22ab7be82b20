"""Tests for keysmith.client.cloud_client using httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from keysmith.client import CloudClient
from keysmith.deadline import Deadline
from keysmith.exit_codes import EXIT_REQUEST_REJECTED
from keysmith.exceptions import (
    AuthError,
    ConflictError,
    ConnectionError_,
    NotFoundError,
    OperationTimeoutError,
    RequestError,
    ServerError,
)
from keysmith.models import ApiKeySpec, Profile, RequestConfig


def _spec() -> ApiKeySpec:
    return ApiKeySpec(
        owner_id="sa-1",
        owner_type="OWNER_TYPE_SERVICE_ACCOUNT",
        display_name="ci-key",
        expiry_time="2030-01-01T00:00:00Z",
    )


def _client(profile: Profile, handler) -> CloudClient:
    return CloudClient(profile, api_key="test-api-key", transport=httpx.MockTransport(handler))


@pytest.fixture
def no_sleep(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record retry backoff delays instead of sleeping."""
    delays: list[float] = []
    monkeypatch.setattr(Deadline, "sleep", lambda self, seconds, what="": delays.append(seconds))
    return delays


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class TestRequests:
    def test_default_headers(self, profile: Profile) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"asyncOperation": {"id": "op-1", "state": "STATE_PENDING"}})

        with _client(profile, handler) as client:
            client.get_async_operation("op-1")

        headers = seen[0].headers
        assert headers["Authorization"] == "Bearer test-api-key"
        assert headers["X-Api-Version"] == "2024-10-01-00"
        assert headers["Accept"] == "application/json"
        assert headers["User-Agent"].startswith("keysmith/")

    def test_custom_auth_header_without_scheme(self, profile: Profile) -> None:
        profile.auth.header = "X-Key"
        profile.auth.scheme = ""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"asyncOperation": {"id": "op-1"}})

        with _client(profile, handler) as client:
            client.get_async_operation("op-1")
        assert seen[0].headers["X-Key"] == "test-api-key"

    def test_credential_resolved_from_environment(
        self, profile: Profile, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("KEYSMITH_API_KEY", "from-env")
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"asyncOperation": {"id": "op-1"}})

        with CloudClient(profile, transport=httpx.MockTransport(handler)) as client:
            client.get_async_operation("op-1")
        assert seen[0].headers["Authorization"] == "Bearer from-env"

    def test_create_sends_spec_and_idempotency_token(self, profile: Profile) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "keyId": "key-1",
                    "token": "secret",
                    "asyncOperation": {"id": "tok-1", "state": "STATE_PENDING"},
                },
            )

        with _client(profile, handler) as client:
            response = client.create_api_key(_spec(), "tok-1")

        assert seen[0].method == "POST"
        assert seen[0].url.path == "/cloud/api-keys"
        body = json.loads(seen[0].content)
        assert body["asyncOperationId"] == "tok-1"
        assert body["spec"]["ownerType"] == "OWNER_TYPE_SERVICE_ACCOUNT"
        assert "description" not in body["spec"]
        assert response.key_id == "key-1"
        assert response.token == "secret"

    def test_update_sends_resource_version(self, profile: Profile) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"asyncOperation": {"id": "tok-2"}})

        with _client(profile, handler) as client:
            op = client.update_api_key("key-1", _spec(), "7", "tok-2")

        body = json.loads(seen[0].content)
        assert seen[0].url.path == "/cloud/api-keys/key-1"
        assert body["resourceVersion"] == "7"
        assert body["asyncOperationId"] == "tok-2"
        assert op is not None and op.id == "tok-2"

    def test_delete_sends_query_parameters(self, profile: Profile) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"asyncOperation": {"id": "tok-3"}})

        with _client(profile, handler) as client:
            client.delete_api_key("key-1", "7", "tok-3")

        assert seen[0].method == "DELETE"
        assert seen[0].url.params["resourceVersion"] == "7"
        assert seen[0].url.params["asyncOperationId"] == "tok-3"

    def test_get_api_key_parses_envelope(self, profile: Profile) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={"apiKey": {"id": "key-1", "resourceVersion": "3", "state": "RESOURCE_STATE_ACTIVE"}},
            )

        with _client(profile, handler) as client:
            key = client.get_api_key("key-1")
        assert key.id == "key-1"
        assert key.resource_version == "3"

    def test_update_without_operation_returns_none(self, profile: Profile) -> None:
        with _client(profile, lambda r: httpx.Response(200, json={})) as client:
            assert client.update_api_key("key-1", _spec(), "1", "tok") is None


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestErrorMapping:
    @pytest.mark.parametrize(
        "status, exc_type",
        [
            (400, RequestError),
            (401, AuthError),
            (403, AuthError),
            (404, NotFoundError),
            (409, ConflictError),
            (412, ConflictError),
            (422, RequestError),
            (500, ServerError),
            (503, ServerError),
        ],
    )
    def test_status_codes(self, profile: Profile, status: int, exc_type: type) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json={"message": "boom"})

        with _client(profile, handler) as client:
            with pytest.raises(exc_type, match=f"get_api_key: HTTP {status}: boom"):
                client.get_api_key("key-1")

    def test_rejected_request_is_not_a_server_error(self, profile: Profile) -> None:
        with _client(profile, lambda r: httpx.Response(400, json={"message": "bad owner"})) as client:
            with pytest.raises(RequestError) as info:
                client.get_api_key("key-1")
        assert not isinstance(info.value, ServerError)
        assert info.value.exit_code == EXIT_REQUEST_REJECTED

    def test_non_json_error_body(self, profile: Profile) -> None:
        with _client(profile, lambda r: httpx.Response(502, text="bad gateway")) as client:
            with pytest.raises(ServerError, match="bad gateway"):
                client.get_api_key("key-1")

    def test_non_json_success_body(self, profile: Profile) -> None:
        with _client(profile, lambda r: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(ServerError, match="not JSON"):
                client.get_api_key("key-1")

    def test_missing_envelope(self, profile: Profile) -> None:
        with _client(profile, lambda r: httpx.Response(200, json={"other": 1})) as client:
            with pytest.raises(ServerError, match="empty response body"):
                client.get_api_key("key-1")

    def test_malformed_operation(self, profile: Profile) -> None:
        with _client(profile, lambda r: httpx.Response(200, json={"asyncOperation": {"state": 5}})) as client:
            with pytest.raises(ServerError, match="malformed response"):
                client.get_async_operation("op-1")

    def test_operation_missing(self, profile: Profile) -> None:
        with _client(profile, lambda r: httpx.Response(200, json={})) as client:
            with pytest.raises(ServerError, match="no asyncOperation"):
                client.get_async_operation("op-1")


# ---------------------------------------------------------------------------
# Retry and deadline
# ---------------------------------------------------------------------------


class TestRetry:
    @pytest.fixture
    def retrying(self, profile: Profile) -> Profile:
        profile.request = RequestConfig(timeout=5, max_retries=2)
        return profile

    def test_retries_server_errors(self, retrying: Profile, no_sleep: list[float]) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(503, json={"message": "unavailable"})
            return httpx.Response(200, json={"asyncOperation": {"id": "op-1"}})

        with _client(retrying, handler) as client:
            op = client.get_async_operation("op-1", Deadline(10))
        assert op.id == "op-1"
        assert len(attempts) == 3
        assert no_sleep == [1, 2]

    def test_gives_up_after_max_retries(self, retrying: Profile, no_sleep: list[float]) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(500, json={"message": "down"})

        with _client(retrying, handler) as client:
            with pytest.raises(ServerError, match="HTTP 500"):
                client.get_api_key("key-1", Deadline(10))
        assert len(attempts) == 3

    def test_does_not_retry_client_errors(self, retrying: Profile, no_sleep: list[float]) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(409, json={"message": "stale"})

        with _client(retrying, handler) as client:
            with pytest.raises(ConflictError):
                client.delete_api_key("key-1", "1", "tok", Deadline(10))
        assert len(attempts) == 1

    @pytest.mark.parametrize(
        "call",
        [
            lambda c, d: c.create_api_key(_spec(), "tok-9", d),
            lambda c, d: c.update_api_key("key-1", _spec(), "7", "tok-9", d),
            lambda c, d: c.delete_api_key("key-1", "7", "tok-9", d),
        ],
        ids=["create", "update", "delete"],
    )
    def test_mutating_calls_are_not_retried(
        self, retrying: Profile, no_sleep: list[float], call
    ) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(503, json={"message": "unavailable"})

        with _client(retrying, handler) as client:
            with pytest.raises(ServerError, match="HTTP 503: unavailable"):
                call(client, Deadline(10))
        assert len(attempts) == 1
        assert no_sleep == []

    def test_mutating_call_connection_error_not_retried(
        self, retrying: Profile, no_sleep: list[float]
    ) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ConnectError("refused", request=request)

        with _client(retrying, handler) as client:
            with pytest.raises(ConnectionError_, match="after 1 attempts"):
                client.create_api_key(_spec(), "tok-9", Deadline(10))
        assert len(attempts) == 1

    def test_connection_error_retried_then_raised(
        self, retrying: Profile, no_sleep: list[float]
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with _client(retrying, handler) as client:
            with pytest.raises(ConnectionError_, match="after 3 attempts"):
                client.get_api_key("key-1", Deadline(10))
        assert no_sleep == [1, 2]

    def test_expired_deadline_makes_no_request(self, profile: Profile) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(200, json={})

        deadline = Deadline(0)
        with _client(profile, handler) as client:
            with pytest.raises(OperationTimeoutError):
                client.get_api_key("key-1", deadline)
        assert attempts == []

    def test_backoff_bounded_by_deadline(self, retrying: Profile) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, json={})

        with _client(retrying, handler) as client:
            with pytest.raises(OperationTimeoutError):
                client.get_api_key("key-1", Deadline(0.05))
