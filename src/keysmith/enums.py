"""Translation tables between control-plane enum values and local values.

The control plane speaks protobuf-style enum names (``OWNER_TYPE_USER``,
``RESOURCE_STATE_ACTIVE``, ``STATE_FULFILLED``); the declarative model uses
short lowercase names (``user``, ``active``). Every table is a closed set
and every lookup is strict: an unrecognised value on either side raises
:class:`~keysmith.exceptions.EnumTranslationError` and is never defaulted.
``*_UNSPECIFIED`` wire values are deliberately absent from the tables.
"""

from __future__ import annotations

import enum

from keysmith.exceptions import EnumTranslationError


class OwnerType(str, enum.Enum):
    """Kinds of principal that can own an API key."""

    USER = "user"
    SERVICE_ACCOUNT = "service-account"


class ResourceState(str, enum.Enum):
    """Lifecycle state of a control-plane resource, as exposed locally."""

    ACTIVATING = "activating"
    ACTIVATION_FAILED = "activationfailed"
    ACTIVE = "active"
    UPDATING = "updating"
    UPDATE_FAILED = "updatefailed"
    DELETING = "deleting"
    DELETE_FAILED = "deletefailed"
    DELETED = "deleted"
    SUSPENDED = "suspended"
    EXPIRED = "expired"


class AsyncOperationState(str, enum.Enum):
    """Wire states of an async operation."""

    PENDING = "STATE_PENDING"
    IN_PROGRESS = "STATE_IN_PROGRESS"
    FAILED = "STATE_FAILED"
    CANCELLED = "STATE_CANCELLED"
    FULFILLED = "STATE_FULFILLED"
    REJECTED = "STATE_REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self not in (AsyncOperationState.PENDING, AsyncOperationState.IN_PROGRESS)


OWNER_TYPE_TO_WIRE: dict[OwnerType, str] = {
    OwnerType.USER: "OWNER_TYPE_USER",
    OwnerType.SERVICE_ACCOUNT: "OWNER_TYPE_SERVICE_ACCOUNT",
}
OWNER_TYPE_FROM_WIRE: dict[str, OwnerType] = {v: k for k, v in OWNER_TYPE_TO_WIRE.items()}

RESOURCE_STATE_TO_WIRE: dict[ResourceState, str] = {
    ResourceState.ACTIVATING: "RESOURCE_STATE_ACTIVATING",
    ResourceState.ACTIVATION_FAILED: "RESOURCE_STATE_ACTIVATION_FAILED",
    ResourceState.ACTIVE: "RESOURCE_STATE_ACTIVE",
    ResourceState.UPDATING: "RESOURCE_STATE_UPDATING",
    ResourceState.UPDATE_FAILED: "RESOURCE_STATE_UPDATE_FAILED",
    ResourceState.DELETING: "RESOURCE_STATE_DELETING",
    ResourceState.DELETE_FAILED: "RESOURCE_STATE_DELETE_FAILED",
    ResourceState.DELETED: "RESOURCE_STATE_DELETED",
    ResourceState.SUSPENDED: "RESOURCE_STATE_SUSPENDED",
    ResourceState.EXPIRED: "RESOURCE_STATE_EXPIRED",
}
RESOURCE_STATE_FROM_WIRE: dict[str, ResourceState] = {
    v: k for k, v in RESOURCE_STATE_TO_WIRE.items()
}


def to_owner_type(value: str) -> str:
    """Translate a local owner type (``service-account``) to its wire name.

    Raises:
        EnumTranslationError: If *value* is not a known owner type.
    """
    try:
        return OWNER_TYPE_TO_WIRE[OwnerType(value)]
    except ValueError:
        raise EnumTranslationError(
            f"Invalid owner type: {value!r} (expected one of: "
            f"{', '.join(o.value for o in OwnerType)})"
        ) from None


def from_owner_type(value: str) -> str:
    """Translate a wire owner type (``OWNER_TYPE_USER``) to its local name."""
    try:
        return OWNER_TYPE_FROM_WIRE[value].value
    except KeyError:
        raise EnumTranslationError(f"Unrecognized owner type from API: {value!r}") from None


def to_resource_state(value: str) -> str:
    """Translate a local resource state (``active``) to its wire name."""
    try:
        return RESOURCE_STATE_TO_WIRE[ResourceState(value)]
    except ValueError:
        raise EnumTranslationError(f"Invalid resource state: {value!r}") from None


def from_resource_state(value: str) -> str:
    """Translate a wire resource state (``RESOURCE_STATE_ACTIVE``) to its local name."""
    try:
        return RESOURCE_STATE_FROM_WIRE[value].value
    except KeyError:
        raise EnumTranslationError(
            f"Unrecognized resource state from API: {value!r}"
        ) from None


def parse_operation_state(value: str) -> AsyncOperationState:
    """Parse a wire async-operation state.

    Raises:
        EnumTranslationError: If the control plane reported a state this
            client does not know how to interpret.
    """
    try:
        return AsyncOperationState(value)
    except ValueError:
        raise EnumTranslationError(
            f"Unrecognized async operation state: {value!r}"
        ) from None
