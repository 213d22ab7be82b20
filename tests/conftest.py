"""Shared test fixtures for keysmith.

Provides an in-memory fake control plane served through
:class:`httpx.MockTransport`, isolated config directories, and output
state management. These fixtures are automatically discovered by pytest.
"""

from __future__ import annotations

import itertools
import json
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import parse_qs

import httpx
import pytest

from keysmith.client import CloudClient
from keysmith.models import ApiKeyModel, PollConfig, Profile, RequestConfig, TimeoutsConfig
from keysmith.output import OutputFormat, OutputManager, reset_output, set_output
from keysmith.resource import ApiKeyResource


# ---------------------------------------------------------------------------
# Fake control plane
# ---------------------------------------------------------------------------


class FakeControlPlane:
    """Minimal stateful stand-in for the API key and operations endpoints.

    Mutations are recorded immediately but only take effect (key becomes
    active, is updated, or disappears) once their async operation is
    polled to completion. ``polls_to_complete`` controls how many status
    queries an operation needs; ``outcome`` is the terminal state it ends
    in, or ``None`` to never finish.
    """

    def __init__(self) -> None:
        self.keys: dict[str, dict[str, Any]] = {}
        self.operations: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.polls_to_complete = 1
        self.outcome: Optional[str] = "STATE_FULFILLED"
        self.failure_reason = ""
        self.injected: list[tuple[str, str, int]] = []
        self.injected_after: list[tuple[str, str, int]] = []
        self.before_mutation: Optional[Callable[[str], None]] = None
        self._ids = itertools.count(1)
        self._versions = itertools.count(1)
        self._creates_by_token: dict[str, dict[str, Any]] = {}
        self._pending: dict[str, Callable[[], None]] = {}
        self._polls: dict[str, int] = {}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    # -- test helpers ------------------------------------------------------

    def fail(self, method: str, path_prefix: str, status: int) -> None:
        """Respond to the next matching request with *status*."""
        self.injected.append((method, path_prefix, status))

    def fail_after(self, method: str, path_prefix: str, status: int) -> None:
        """Apply the next matching request, then respond with *status* anyway."""
        self.injected_after.append((method, path_prefix, status))

    def seed_key(self, **spec: Any) -> str:
        """Insert an active key directly; returns its id."""
        key_id = f"key-{next(self._ids)}"
        self.keys[key_id] = {
            "id": key_id,
            "resourceVersion": str(next(self._versions)),
            "state": "RESOURCE_STATE_ACTIVE",
            "spec": {
                "ownerId": "sa-1",
                "ownerType": "OWNER_TYPE_SERVICE_ACCOUNT",
                "displayName": "seeded",
                "expiryTime": "2030-01-01T00:00:00Z",
                **spec,
            },
        }
        return key_id

    def bump_version(self, key_id: str) -> None:
        self.keys[key_id]["resourceVersion"] = str(next(self._versions))

    def calls(self, method: str, prefix: str = "") -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path.startswith(prefix)]

    # -- transport ---------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        for i, (method, prefix, status) in enumerate(self.injected):
            if request.method == method and path.startswith(prefix):
                del self.injected[i]
                return httpx.Response(status, json={"code": status, "message": "injected"})

        response = self._route(request)
        for i, (method, prefix, status) in enumerate(self.injected_after):
            if request.method == method and path.startswith(prefix):
                del self.injected_after[i]
                return httpx.Response(status, json={"code": status, "message": "injected"})
        return response

    def _route(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/cloud/api-keys" and request.method == "POST":
            return self._create(json.loads(request.content))
        if path.startswith("/cloud/api-keys/"):
            key_id = path.rsplit("/", 1)[1]
            if request.method == "GET":
                return self._get(key_id)
            if request.method == "POST":
                return self._update(key_id, json.loads(request.content))
            if request.method == "DELETE":
                query = {k: v[0] for k, v in parse_qs(request.url.query.decode()).items()}
                return self._delete(key_id, query)
        if path.startswith("/cloud/operations/") and request.method == "GET":
            return self._poll(path.rsplit("/", 1)[1])
        return httpx.Response(404, json={"message": f"no route {request.method} {path}"})

    def _operation(self, op_id: str, kind: str, on_complete: Callable[[], None]) -> dict[str, Any]:
        op = {"id": op_id, "state": "STATE_PENDING", "operationType": kind}
        self.operations[op_id] = op
        self._pending[op_id] = on_complete
        self._polls[op_id] = 0
        return op

    def _create(self, body: dict[str, Any]) -> httpx.Response:
        token = body["asyncOperationId"]
        if token in self._creates_by_token:
            return httpx.Response(200, json=self._creates_by_token[token])
        if self.before_mutation:
            self.before_mutation("create")
        key_id = f"key-{next(self._ids)}"
        self.keys[key_id] = {
            "id": key_id,
            "resourceVersion": str(next(self._versions)),
            "state": "RESOURCE_STATE_ACTIVATING",
            "spec": body["spec"],
            "asyncOperationId": token,
        }

        def complete() -> None:
            self.keys[key_id]["state"] = "RESOURCE_STATE_ACTIVE"

        payload = {
            "keyId": key_id,
            "token": f"secret-{key_id}",
            "asyncOperation": self._operation(token, "create-api-key", complete),
        }
        self._creates_by_token[token] = payload
        return httpx.Response(200, json=payload)

    def _get(self, key_id: str) -> httpx.Response:
        if key_id not in self.keys:
            return httpx.Response(404, json={"code": 5, "message": f"api key {key_id} not found"})
        return httpx.Response(200, json={"apiKey": self.keys[key_id]})

    def _check_version(self, key_id: str, version: Optional[str]) -> Optional[httpx.Response]:
        if key_id not in self.keys:
            return httpx.Response(404, json={"message": f"api key {key_id} not found"})
        if version != self.keys[key_id]["resourceVersion"]:
            return httpx.Response(409, json={"message": "resource version mismatch"})
        return None

    def _update(self, key_id: str, body: dict[str, Any]) -> httpx.Response:
        if self.before_mutation:
            self.before_mutation("update")
        rejected = self._check_version(key_id, body.get("resourceVersion"))
        if rejected is not None:
            return rejected
        key = self.keys[key_id]
        key["resourceVersion"] = str(next(self._versions))
        key["state"] = "RESOURCE_STATE_UPDATING"

        def complete() -> None:
            key["spec"] = body["spec"]
            key["state"] = "RESOURCE_STATE_ACTIVE"

        op = self._operation(body["asyncOperationId"], "update-api-key", complete)
        return httpx.Response(200, json={"asyncOperation": op})

    def _delete(self, key_id: str, query: dict[str, str]) -> httpx.Response:
        if self.before_mutation:
            self.before_mutation("delete")
        rejected = self._check_version(key_id, query.get("resourceVersion"))
        if rejected is not None:
            return rejected
        self.keys[key_id]["state"] = "RESOURCE_STATE_DELETING"

        def complete() -> None:
            self.keys.pop(key_id, None)

        op = self._operation(query["asyncOperationId"], "delete-api-key", complete)
        return httpx.Response(200, json={"asyncOperation": op})

    def _poll(self, op_id: str) -> httpx.Response:
        if op_id not in self.operations:
            return httpx.Response(404, json={"message": f"operation {op_id} not found"})
        op = self.operations[op_id]
        if op["state"] not in ("STATE_PENDING", "STATE_IN_PROGRESS"):
            return httpx.Response(200, json={"asyncOperation": op})
        self._polls[op_id] += 1
        if op["state"] == "STATE_PENDING":
            op["state"] = "STATE_IN_PROGRESS"
        if self.outcome is not None and self._polls[op_id] >= self.polls_to_complete:
            op["state"] = self.outcome
            if self.outcome == "STATE_FULFILLED":
                self._pending.pop(op_id)()
            elif self.failure_reason:
                op["failureReason"] = self.failure_reason
        return httpx.Response(200, json={"asyncOperation": op})


# ---------------------------------------------------------------------------
# Output state
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Install a quiet plain OutputManager for each test and reset it afterwards."""
    set_output(OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True))
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Control-plane fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake() -> FakeControlPlane:
    return FakeControlPlane()


@pytest.fixture
def profile() -> Profile:
    return Profile(
        name="test",
        base_url="https://cloud.example.com",
        request=RequestConfig(timeout=5, max_retries=0),
        poll=PollConfig(interval=0.001, max_interval=0.005),
        timeouts=TimeoutsConfig(create=5, read=5, update=5, delete=5),
    )


@pytest.fixture
def client(profile: Profile, fake: FakeControlPlane) -> CloudClient:
    with CloudClient(profile, api_key="test-api-key", transport=fake.transport) as c:
        yield c


@pytest.fixture
def resource(client: CloudClient, profile: Profile) -> ApiKeyResource:
    return ApiKeyResource(client, timeouts=profile.timeouts, poll=profile.poll)


@pytest.fixture
def ci_key() -> ApiKeyModel:
    """The example key from the service-account CI scenario."""
    return ApiKeyModel(
        owner_type="service-account",
        owner_id="sa-1",
        display_name="ci-key",
        expiry_time="2030-01-01T00:00:00Z",
    )


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_CONFIG_HOME and XDG_DATA_HOME at subdirectories of
    tmp_path, clears KEYSMITH_* variables, and changes the working
    directory to tmp_path.
    """
    monkeypatch.setattr("keysmith.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in ["KEYSMITH_PROFILE", "KEYSMITH_BASE_URL", "KEYSMITH_STATE_FILE", "KEYSMITH_API_KEY"]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def cli_runner():
    from typer.testing import CliRunner

    return CliRunner()
