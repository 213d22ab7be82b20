"""The API key resource controller.

:class:`ApiKeyResource` implements the four lifecycle calls for a single
API key and the explicit two-way mapping between the declarative
:class:`~keysmith.models.ApiKeyModel` and the wire
:class:`~keysmith.models.ApiKeySpec` / :class:`~keysmith.models.ApiKey`.

Lifecycle::

    Unknown -> Creating -> Present -> Deleting -> Absent

Every mutating call supplies a fresh idempotency token, awaits the returned
async operation, and re-fetches the key so the returned model reflects the
control plane's canonical view. Update and delete also send the key's
current resource version so that concurrent modifications are rejected by
the control plane.

Methods never mutate the model they are given; they return a new one. A
call that fails part-way therefore leaves the caller's tracked state as it
was.
"""

from __future__ import annotations

import contextlib
import logging
import threading
import uuid
from typing import Callable, Iterator, Optional

from keysmith.deadline import Deadline
from keysmith.enums import from_owner_type, from_resource_state, to_owner_type
from keysmith.exceptions import (
    InvalidExpiryTimeError,
    KeysmithError,
    NotFoundError,
    ValidationError,
)
from keysmith.models import (
    ApiKey,
    ApiKeyModel,
    ApiKeySpec,
    PollConfig,
    TimeoutsConfig,
    format_rfc3339,
    parse_rfc3339,
)
from keysmith.operations import await_async_operation

logger = logging.getLogger(__name__)


def new_idempotency_token() -> str:
    return str(uuid.uuid4())


@contextlib.contextmanager
def _failing(context: str) -> Iterator[None]:
    """Re-raise keysmith errors with *context* prefixed, keeping their type."""
    try:
        yield
    except KeysmithError as exc:
        raise type(exc)(f"{context}: {exc}") from exc


class ApiKeyResource:
    """Create, read, update, and delete API keys.

    Args:
        client: An entered :class:`~keysmith.client.CloudClient`.
        timeouts: Default deadlines per lifecycle call; a model's own
            ``timeouts`` block overrides create / update / delete.
        poll: Polling schedule for the async-operation waiter.
        token_factory: Produces idempotency tokens; a fresh UUID4 per call
            by default.
    """

    def __init__(
        self,
        client,
        timeouts: Optional[TimeoutsConfig] = None,
        poll: Optional[PollConfig] = None,
        token_factory: Callable[[], str] = new_idempotency_token,
    ) -> None:
        self._client = client
        self._timeouts = timeouts or TimeoutsConfig()
        self._poll = poll or PollConfig()
        self._token_factory = token_factory

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def create(
        self, plan: ApiKeyModel, cancel_event: Optional[threading.Event] = None
    ) -> ApiKeyModel:
        """Create the key described by *plan*.

        Returns:
            The canonical model, including ``id``, ``state`` and the
            one-time ``token``.
        """
        spec = self.to_spec(plan)
        deadline = Deadline(self._timeout(plan, "create"), cancel_event)

        with _failing("Failed to create API key"):
            response = self._client.create_api_key(spec, self._token_factory(), deadline)
            await_async_operation(self._client, response.async_operation, deadline, self._poll)

        with _failing("Failed to get API key after creation"):
            api_key = self._client.get_api_key(response.key_id, deadline)

        result = self.apply_remote(plan, api_key)
        result.token = response.token
        logger.info("Created API key %s", result.id)
        return result

    def read(
        self, state: ApiKeyModel, cancel_event: Optional[threading.Event] = None
    ) -> Optional[ApiKeyModel]:
        """Refresh *state* from the control plane.

        Returns:
            The refreshed model, or ``None`` when the key no longer exists
            and should be dropped from tracking.
        """
        key_id = self._require_id(state)
        deadline = Deadline(self._timeouts.read, cancel_event)
        try:
            api_key = self._client.get_api_key(key_id, deadline)
        except NotFoundError:
            logger.warning("API key %s not found, removing from state", key_id)
            return None
        except KeysmithError as exc:
            raise type(exc)(f"Failed to get API key: {exc}") from exc
        return self.apply_remote(state, api_key)

    def get(
        self, key_id: str, cancel_event: Optional[threading.Event] = None
    ) -> Optional[ApiKeyModel]:
        """Look up a key by id without any tracked state; ``None`` if absent."""
        deadline = Deadline(self._timeouts.read, cancel_event)
        try:
            api_key = self._client.get_api_key(key_id, deadline)
        except NotFoundError:
            return None
        except KeysmithError as exc:
            raise type(exc)(f"Failed to get API key: {exc}") from exc
        return self.from_remote(api_key)

    def update(
        self, plan: ApiKeyModel, cancel_event: Optional[threading.Event] = None
    ) -> ApiKeyModel:
        """Apply the mutable fields of *plan* to an existing key.

        Only ``display_name``, ``description`` and ``disabled`` are meant to
        change here; a changed owner is rejected since it requires replacing
        the key.

        Raises:
            NotFoundError: The key no longer exists.
            ConflictError: The key was modified concurrently.
        """
        key_id = self._require_id(plan)
        spec = self.to_spec(plan)
        deadline = Deadline(self._timeout(plan, "update"), cancel_event)

        with _failing("Failed to get current API key status"):
            current = self._client.get_api_key(key_id, deadline)
        if (current.spec.owner_id, current.spec.owner_type) != (spec.owner_id, spec.owner_type):
            raise ValidationError(
                f"API key {key_id}: owner_type and owner_id cannot change in place; "
                "the key must be replaced"
            )

        with _failing("Failed to update API key"):
            operation = self._client.update_api_key(
                key_id, spec, current.resource_version, self._token_factory(), deadline
            )
            await_async_operation(self._client, operation, deadline, self._poll)

        with _failing("Failed to get API key after update"):
            api_key = self._client.get_api_key(key_id, deadline)

        logger.info("Updated API key %s", key_id)
        return self.apply_remote(plan, api_key)

    def delete(
        self, state: ApiKeyModel, cancel_event: Optional[threading.Event] = None
    ) -> None:
        """Delete the key tracked by *state*; an already-absent key is a success."""
        key_id = self._require_id(state)
        deadline = Deadline(self._timeout(state, "delete"), cancel_event)

        try:
            current = self._client.get_api_key(key_id, deadline)
        except NotFoundError:
            logger.warning("API key %s not found, removing from state", key_id)
            return
        except KeysmithError as exc:
            raise type(exc)(f"Failed to get current API key status: {exc}") from exc

        try:
            operation = self._client.delete_api_key(
                key_id, current.resource_version, self._token_factory(), deadline
            )
        except NotFoundError:
            logger.warning("API key %s not found, removing from state", key_id)
            return
        except KeysmithError as exc:
            raise type(exc)(f"Failed to delete API key: {exc}") from exc

        with _failing("Failed to delete API key"):
            await_async_operation(self._client, operation, deadline, self._poll)
        logger.info("Deleted API key %s", key_id)

    # ------------------------------------------------------------------ #
    # Mapping
    # ------------------------------------------------------------------ #

    @staticmethod
    def validate(model: ApiKeyModel) -> None:
        """Check a model's inputs without contacting the control plane.

        Raises:
            InvalidExpiryTimeError: ``expiry_time`` is not RFC 3339.
            EnumTranslationError: ``owner_type`` is unknown.
            ValidationError: ``display_name`` or ``owner_id`` is empty.
        """
        ApiKeyResource.to_spec(model)

    @staticmethod
    def to_spec(model: ApiKeyModel) -> ApiKeySpec:
        """Build the outbound wire spec for *model*.

        An empty description and ``disabled=False`` are left unset.
        """
        if not model.display_name:
            raise ValidationError("display_name must not be empty")
        if not model.owner_id:
            raise ValidationError("owner_id must not be empty")
        try:
            expiry = parse_rfc3339(model.expiry_time)
        except ValueError as exc:
            raise InvalidExpiryTimeError(
                f"Invalid expiry_time: could not parse {model.expiry_time!r}: {exc}"
            ) from None

        return ApiKeySpec(
            owner_id=model.owner_id,
            owner_type=to_owner_type(model.owner_type),
            display_name=model.display_name,
            description=model.description or None,
            expiry_time=format_rfc3339(expiry),
            disabled=True if model.disabled else None,
        )

    @staticmethod
    def from_remote(api_key: ApiKey) -> ApiKeyModel:
        """Build a fresh model from the canonical *api_key* (no token)."""
        spec = api_key.spec
        expiry = ""
        if spec.expiry_time:
            try:
                expiry = format_rfc3339(parse_rfc3339(spec.expiry_time))
            except ValueError as exc:
                raise InvalidExpiryTimeError(
                    f"Unparseable expiryTime from API: {spec.expiry_time!r}"
                ) from exc
        return ApiKeyModel(
            id=api_key.id,
            state=from_resource_state(api_key.state),
            owner_type=from_owner_type(spec.owner_type),
            owner_id=spec.owner_id,
            display_name=spec.display_name,
            description=spec.description or None,
            expiry_time=expiry,
            disabled=bool(spec.disabled),
        )

    @staticmethod
    def apply_remote(model: ApiKeyModel, api_key: ApiKey) -> ApiKeyModel:
        """Return a copy of *model* updated from the canonical *api_key*.

        ``token`` and ``timeouts`` are carried over from *model*. An empty
        remote description leaves the model's description untouched.
        """
        remote = ApiKeyResource.from_remote(api_key)
        update = remote.model_dump(exclude={"token", "timeouts", "description"})
        if not remote.expiry_time:
            update.pop("expiry_time")
        if remote.description:
            update["description"] = remote.description
        return model.model_copy(update=update, deep=True)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _timeout(self, model: ApiKeyModel, kind: str) -> float:
        override = getattr(model.timeouts, kind, None) if model.timeouts else None
        return override if override is not None else getattr(self._timeouts, kind)

    @staticmethod
    def _require_id(model: ApiKeyModel) -> str:
        if not model.id:
            raise ValidationError("API key has no id; it has not been created yet")
        return model.id
