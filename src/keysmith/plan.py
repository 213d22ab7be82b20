"""Reconcile a desired-keys file against local state.

This module plays the part of a declarative host for
:class:`~keysmith.resource.ApiKeyResource`:

1. :func:`load_desired` reads the desired keys from a YAML or JSON file.
2. :func:`refresh` reads every tracked key and drops the ones that no
   longer exist remotely.
3. :func:`compute_plan` diffs desired against tracked and yields one
   :class:`PlannedChange` per resource name.
4. :func:`apply_plan` executes the changes, saving state after each one.

Changing a replace-only field (``owner_type``, ``owner_id``,
``expiry_time``) plans a *replace*: the old key is deleted and a new one
created. Changing ``display_name``, ``description`` or ``disabled`` plans an
in-place *update*.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from keysmith.exceptions import InvalidUsageError
from keysmith.models import ApiKeyModel, ResourceTimeouts, format_rfc3339, parse_rfc3339
from keysmith.resource import ApiKeyResource
from keysmith.state import State, StateStore

REPLACE_ONLY_FIELDS = ("owner_type", "owner_id", "expiry_time")
MUTABLE_FIELDS = ("display_name", "description", "disabled")


class Action(str, enum.Enum):
    """What :func:`apply_plan` will do with a resource."""

    NOOP = "noop"
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"


# Deletes first so that a replaced key's display name is free before creates.
_APPLY_ORDER = {Action.DELETE: 0, Action.REPLACE: 1, Action.UPDATE: 2, Action.CREATE: 3, Action.NOOP: 4}


class ApiKeyConfig(BaseModel):
    """One entry under ``api_keys:`` in the desired-keys file."""

    model_config = ConfigDict(extra="forbid")

    owner_type: str
    owner_id: str
    display_name: str
    expiry_time: str
    description: Optional[str] = None
    disabled: bool = False
    timeouts: Optional[ResourceTimeouts] = None

    def to_model(self) -> ApiKeyModel:
        return ApiKeyModel(**self.model_dump())


class DesiredConfig(BaseModel):
    """Top-level shape of the desired-keys file."""

    model_config = ConfigDict(extra="forbid")

    api_keys: dict[str, ApiKeyConfig] = Field(default_factory=dict)


@dataclass
class PlannedChange:
    """A single resource's planned action.

    ``before`` is the tracked model (``None`` for creates); ``after`` is the
    model to send (``None`` for deletes).
    """

    name: str
    action: Action
    before: Optional[ApiKeyModel] = None
    after: Optional[ApiKeyModel] = None
    changed_fields: list[str] = field(default_factory=list)


@dataclass
class ApplyResult:
    """Counts of what :func:`apply_plan` did."""

    created: int = 0
    updated: int = 0
    replaced: int = 0
    deleted: int = 0

    @property
    def total(self) -> int:
        return self.created + self.updated + self.replaced + self.deleted


def load_desired(path: str | Path) -> dict[str, ApiKeyModel]:
    """Load and validate the desired-keys file.

    Every entry is also checked with :meth:`ApiKeyResource.validate` so that
    a malformed ``expiry_time`` or unknown ``owner_type`` fails before any
    remote call.

    Raises:
        InvalidUsageError: The file is missing, unparseable, or invalid.
    """
    path = Path(path)
    if not path.is_file():
        raise InvalidUsageError(f"Desired-keys file not found: {path}")
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise InvalidUsageError(f"Cannot parse {path}: {exc}") from exc
    try:
        desired = DesiredConfig.model_validate(raw)
    except PydanticValidationError as exc:
        raise InvalidUsageError(f"Invalid desired-keys file {path}: {exc}") from exc

    models = {name: entry.to_model() for name, entry in desired.api_keys.items()}
    for name, model in models.items():
        try:
            ApiKeyResource.validate(model)
        except InvalidUsageError as exc:
            raise type(exc)(f"api_keys.{name}: {exc}") from exc
    return models


def refresh(resource: ApiKeyResource, state: State) -> list[str]:
    """Refresh every tracked key in place; return the names that were dropped."""
    dropped: list[str] = []
    for name in sorted(state.resources):
        refreshed = resource.read(state.resources[name])
        if refreshed is None:
            state.remove(name)
            dropped.append(name)
        else:
            state.put(name, refreshed)
    return dropped


def compute_plan(desired: dict[str, ApiKeyModel], state: State) -> list[PlannedChange]:
    """Diff *desired* against *state*, returning changes in apply order."""
    changes: list[PlannedChange] = []
    for name in sorted(set(desired) | set(state.resources)):
        want = desired.get(name)
        have = state.get(name)
        if want is None:
            changes.append(PlannedChange(name, Action.DELETE, before=have))
        elif have is None:
            changes.append(PlannedChange(name, Action.CREATE, after=want))
        else:
            changes.append(_diff(name, want, have))
    changes.sort(key=lambda c: (_APPLY_ORDER[c.action], c.name))
    return changes


def _diff(name: str, want: ApiKeyModel, have: ApiKeyModel) -> PlannedChange:
    replace = [f for f in REPLACE_ONLY_FIELDS if _value(want, f) != _value(have, f)]
    mutable = [f for f in MUTABLE_FIELDS if _value(want, f) != _value(have, f)]

    if replace:
        return PlannedChange(name, Action.REPLACE, have, want, replace + mutable)
    if mutable:
        after = have.model_copy(deep=True)
        for f in MUTABLE_FIELDS:
            setattr(after, f, getattr(want, f))
        after.timeouts = want.timeouts
        return PlannedChange(name, Action.UPDATE, have, after, mutable)

    # Timeout overrides are local-only and never need a remote call.
    have.timeouts = want.timeouts
    return PlannedChange(name, Action.NOOP, have, have)


def _value(model: ApiKeyModel, name: str) -> Any:
    value = getattr(model, name)
    if name == "description":
        return value or None
    if name == "expiry_time":
        try:
            return format_rfc3339(parse_rfc3339(value))
        except ValueError:
            return value
    return value


def apply_plan(
    resource: ApiKeyResource,
    store: StateStore,
    state: State,
    changes: list[PlannedChange],
    on_change: Optional[Callable[[PlannedChange], None]] = None,
) -> ApplyResult:
    """Execute *changes*, saving state after each completed one.

    A failure stops the apply: changes already completed stay recorded, the
    failed change is not recorded, and the exception propagates.

    Args:
        on_change: Called after each completed non-noop change.
    """
    result = ApplyResult()
    for change in changes:
        if change.action == Action.NOOP:
            continue

        if change.action == Action.DELETE:
            assert change.before is not None
            resource.delete(change.before)
            state.remove(change.name)
            result.deleted += 1
        elif change.action == Action.REPLACE:
            assert change.before is not None and change.after is not None
            resource.delete(change.before)
            state.remove(change.name)
            store.save(state)
            state.put(change.name, resource.create(change.after))
            result.replaced += 1
        elif change.action == Action.UPDATE:
            assert change.after is not None
            state.put(change.name, resource.update(change.after))
            result.updated += 1
        else:
            assert change.after is not None
            state.put(change.name, resource.create(change.after))
            result.created += 1

        store.save(state)
        if on_change is not None:
            on_change(change)
    return result
