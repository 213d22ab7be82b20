"""Synchronous control-plane client with auth, deadlines, and retry.

This module provides :class:`CloudClient`, which wraps :class:`httpx.Client`
and exposes one method per remote call used by the API key resource:

- ``create_api_key`` -- ``POST /cloud/api-keys``
- ``get_api_key`` -- ``GET /cloud/api-keys/{keyId}``
- ``update_api_key`` -- ``POST /cloud/api-keys/{keyId}``
- ``delete_api_key`` -- ``DELETE /cloud/api-keys/{keyId}``
- ``get_async_operation`` -- ``GET /cloud/operations/{asyncOperationId}``

Every method takes a :class:`~keysmith.deadline.Deadline`; each HTTP
attempt's timeout is bounded by the time the deadline has left, and retry
backoff sleeps on the deadline so cancellation interrupts it. Only the two
GET calls are retried; a failed create, update or delete is raised as-is.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from keysmith import __version__
from keysmith.config import resolve_credential
from keysmith.deadline import Deadline
from keysmith.exceptions import (
    AuthError,
    ConflictError,
    ConnectionError_,
    NotFoundError,
    RequestError,
    ServerError,
)
from keysmith.models import (
    ApiKey,
    ApiKeySpec,
    AsyncOperation,
    CreateApiKeyResponse,
    Profile,
)
API_VERSION_HEADER = "X-Api-Version"

logger = logging.getLogger(__name__)


class CloudClient:
    """Client for the control-plane API key and async-operation endpoints.

    Must be used as a context manager so that the underlying transport is
    properly opened and closed.

    Args:
        profile: Connection profile (base URL, API version, auth source,
            request settings).
        api_key: The caller's control-plane credential. When ``None`` it is
            resolved from ``profile.auth.source`` on entry.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`.

    Example::

        with CloudClient(profile) as client:
            op = client.get_async_operation("op-1", Deadline(30))
    """

    def __init__(
        self,
        profile: Profile,
        api_key: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._profile = profile
        self._api_key = api_key
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> CloudClient:
        config = self._profile.request
        if self._api_key is None:
            self._api_key = resolve_credential(self._profile.auth.source)
        self._client = httpx.Client(
            base_url=self._profile.base_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            headers=self._default_headers(),
            transport=self._transport,
        )
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------ #
    # API key calls
    # ------------------------------------------------------------------ #

    def create_api_key(
        self,
        spec: ApiKeySpec,
        async_operation_id: str,
        deadline: Optional[Deadline] = None,
    ) -> CreateApiKeyResponse:
        """Create an API key. The returned ``token`` is never exposed again."""
        response = self._call(
            "create_api_key",
            "POST",
            "/cloud/api-keys",
            deadline,
            json_body={"spec": spec.to_wire(), "asyncOperationId": async_operation_id},
        )
        body = self._json("create_api_key", response)
        return self._parse("create_api_key", CreateApiKeyResponse, body)

    def get_api_key(self, key_id: str, deadline: Optional[Deadline] = None) -> ApiKey:
        """Fetch an API key.

        Raises:
            NotFoundError: The key does not exist.
        """
        response = self._call("get_api_key", "GET", f"/cloud/api-keys/{key_id}", deadline)
        body = self._json("get_api_key", response)
        raw = body.get("apiKey") if isinstance(body, dict) else None
        return self._parse("get_api_key", ApiKey, raw)

    def update_api_key(
        self,
        key_id: str,
        spec: ApiKeySpec,
        resource_version: str,
        async_operation_id: str,
        deadline: Optional[Deadline] = None,
    ) -> Optional[AsyncOperation]:
        """Replace an API key's spec.

        Raises:
            ConflictError: ``resource_version`` is stale.
        """
        response = self._call(
            "update_api_key",
            "POST",
            f"/cloud/api-keys/{key_id}",
            deadline,
            json_body={
                "spec": spec.to_wire(),
                "resourceVersion": resource_version,
                "asyncOperationId": async_operation_id,
            },
        )
        return self._operation_from("update_api_key", response)

    def delete_api_key(
        self,
        key_id: str,
        resource_version: str,
        async_operation_id: str,
        deadline: Optional[Deadline] = None,
    ) -> Optional[AsyncOperation]:
        """Delete an API key.

        Raises:
            NotFoundError: The key is already gone.
            ConflictError: ``resource_version`` is stale.
        """
        response = self._call(
            "delete_api_key",
            "DELETE",
            f"/cloud/api-keys/{key_id}",
            deadline,
            params={"resourceVersion": resource_version, "asyncOperationId": async_operation_id},
        )
        return self._operation_from("delete_api_key", response)

    def get_async_operation(
        self, async_operation_id: str, deadline: Optional[Deadline] = None
    ) -> AsyncOperation:
        """Fetch the current status of an async operation."""
        response = self._call(
            "get_async_operation",
            "GET",
            f"/cloud/operations/{async_operation_id}",
            deadline,
        )
        operation = self._operation_from("get_async_operation", response)
        if operation is None:
            raise ServerError("get_async_operation: response carried no asyncOperation")
        return operation

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _default_headers(self) -> dict[str, str]:
        auth = self._profile.auth
        value = f"{auth.scheme} {self._api_key}" if auth.scheme else str(self._api_key)
        headers = {
            "Accept": "application/json",
            "User-Agent": f"keysmith/{__version__}",
            auth.header: value,
        }
        if self._profile.api_version:
            headers[API_VERSION_HEADER] = self._profile.api_version
        return headers

    def _call(
        self,
        name: str,
        method: str,
        path: str,
        deadline: Optional[Deadline],
        params: Optional[dict[str, Any]] = None,
        json_body: Optional[Any] = None,
    ) -> httpx.Response:
        """Execute one remote call with retry, then map error statuses."""
        deadline = deadline or Deadline()
        response = self._execute_with_retry(name, method, path, deadline, params, json_body)
        self._map_response_error(name, response)
        return response

    def _execute_with_retry(
        self,
        name: str,
        method: str,
        path: str,
        deadline: Deadline,
        params: Optional[dict[str, Any]],
        json_body: Optional[Any],
    ) -> httpx.Response:
        """Execute the HTTP request with exponential-backoff retry.

        GET requests are retried on 5xx status codes and connection / timeout
        errors up to ``max_retries`` times; mutating requests get a single
        attempt. The delay doubles each attempt (1 s, 2 s, 4 s, ...) and is
        cut short by the deadline.
        """
        assert self._client is not None, "Client not initialised -- use as context manager"

        max_retries = self._profile.request.max_retries if method == "GET" else 0
        for attempt in range(max_retries + 1):
            deadline.check(name)
            kwargs: dict[str, Any] = {
                "method": method,
                "url": path,
                "timeout": deadline.request_timeout(self._profile.request.timeout),
            }
            if params is not None:
                kwargs["params"] = params
            if json_body is not None:
                kwargs["json"] = json_body

            try:
                response = self._client.request(**kwargs)
            except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
                deadline.check(name)
                if attempt < max_retries:
                    delay = 2 ** attempt
                    logger.debug(
                        "%s: connection error: %s, retrying in %ss (attempt %d/%d)",
                        name, exc, delay, attempt + 1, max_retries,
                    )
                    deadline.sleep(delay, name)
                    continue
                raise ConnectionError_(
                    f"{name}: connection failed after {max_retries + 1} attempts: {exc}"
                ) from exc

            if response.status_code >= 500 and attempt < max_retries:
                delay = 2 ** attempt
                logger.debug(
                    "%s: server error %d, retrying in %ss (attempt %d/%d)",
                    name, response.status_code, delay, attempt + 1, max_retries,
                )
                deadline.sleep(delay, name)
                continue

            return response

        raise ServerError(f"{name}: request failed after all retries")  # pragma: no cover

    def _map_response_error(self, name: str, response: httpx.Response) -> None:
        """Raise a typed exception for error HTTP status codes."""
        status = response.status_code
        if status < 400:
            return

        try:
            detail = response.json()
            if isinstance(detail, dict):
                msg = detail.get("message") or detail.get("error") or detail.get("detail") or ""
            else:
                msg = str(detail)
        except ValueError:
            msg = response.text[:200] if response.text else ""

        prefix = f"{name}: HTTP {status}"
        full_msg = f"{prefix}: {msg}" if msg else prefix

        if status in (401, 403):
            raise AuthError(full_msg)
        if status == 404:
            raise NotFoundError(full_msg)
        if status in (409, 412):
            raise ConflictError(full_msg)
        if status >= 500:
            raise ServerError(full_msg)
        raise RequestError(full_msg)

    def _operation_from(self, name: str, response: httpx.Response) -> Optional[AsyncOperation]:
        body = self._json(name, response)
        raw = body.get("asyncOperation") if isinstance(body, dict) else None
        if raw is None:
            return None
        return self._parse(name, AsyncOperation, raw)

    @staticmethod
    def _json(name: str, response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise ServerError(f"{name}: response is not JSON: {exc}") from exc

    @staticmethod
    def _parse(name: str, model: Any, data: Any) -> Any:
        if data is None:
            raise ServerError(f"{name}: empty response body")
        try:
            return model.model_validate(data)
        except PydanticValidationError as exc:
            raise ServerError(f"{name}: malformed response: {exc}") from exc
