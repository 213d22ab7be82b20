"""Local tracking of managed API keys.

The state file records, per resource name, the last canonical
:class:`~keysmith.models.ApiKeyModel` returned by the controller, including
the one-time ``token`` captured at creation. Because it holds secrets it is
always written with mode ``0600``, atomically via
:func:`~keysmith.config.atomic_write`.

File layout::

    {
      "version": 1,
      "resources": {
        "ci-key": {"id": "...", "state": "active", "owner_type": "...", ...}
      }
    }
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from keysmith.config import atomic_write
from keysmith.exceptions import ConfigError
from keysmith.models import ApiKeyModel

STATE_VERSION = 1


class State(BaseModel):
    """In-memory view of the state file."""

    version: int = STATE_VERSION
    resources: dict[str, ApiKeyModel] = Field(default_factory=dict)

    def get(self, name: str) -> Optional[ApiKeyModel]:
        return self.resources.get(name)

    def put(self, name: str, model: ApiKeyModel) -> None:
        self.resources[name] = model

    def remove(self, name: str) -> Optional[ApiKeyModel]:
        return self.resources.pop(name, None)


class StateStore:
    """Load and save :class:`State` at a fixed path.

    Args:
        path: Location of the state file. It need not exist yet.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> State:
        """Read the state file, returning an empty :class:`State` if it is missing.

        Raises:
            ConfigError: The file is not valid JSON, fails validation, or was
                written by a newer state version.
        """
        if not self._path.is_file():
            return State()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            state = State.model_validate(data)
        except (json.JSONDecodeError, ValueError) as exc:
            raise ConfigError(f"Invalid state file at {self._path}: {exc}") from exc
        if state.version > STATE_VERSION:
            raise ConfigError(
                f"State file {self._path} has version {state.version}; "
                f"this keysmith supports up to {STATE_VERSION}"
            )
        return state

    def save(self, state: State) -> None:
        """Persist *state* atomically with owner-only permissions."""
        data = state.model_dump(mode="json", exclude_none=True)
        atomic_write(self._path, json.dumps(data, indent=2, sort_keys=True) + "\n", mode=0o600)
