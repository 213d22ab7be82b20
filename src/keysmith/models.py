"""Canonical Pydantic models shared across all keysmith modules.

This is the single source of truth for data shapes in the project. The
models fall into three groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`AuthConfig`, :class:`RequestConfig`, :class:`PollConfig`,
    :class:`TimeoutsConfig`, :class:`OutputConfig`, :class:`GlobalConfig`,
    and :class:`Profile`.

**Wire models** -- request/response bodies of the control-plane API. Field
names are snake_case in Python and camelCase on the wire:
    :class:`ApiKeySpec`, :class:`ApiKey`, :class:`AsyncOperation`,
    :class:`CreateApiKeyResponse`.

**Resource model** -- the declarative record tracked in local state:
    :class:`ApiKeyModel` and its :class:`ResourceTimeouts` block.

Translation between the wire and resource models lives in
:mod:`keysmith.resource`; enum translation lives in :mod:`keysmith.enums`.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# --- Durations and timestamps ---

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0, None: 1.0}

_RFC3339_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}[Tt]\d{2}:\d{2}:\d{2}(\.\d+)?([Zz]|[+-]\d{2}:\d{2})$"
)
_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_duration(value: Any) -> Optional[float]:
    """Parse a duration into seconds.

    Accepts a number of seconds or a string such as ``"90s"``, ``"10m"``,
    ``"1h"``, or ``"500ms"``. ``None`` passes through unchanged.

    Raises:
        ValueError: If the value is negative or cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        match = _DURATION_RE.match(str(value))
        if match is None:
            raise ValueError(f"Invalid duration: {value!r}")
        seconds = float(match.group(1)) * _DURATION_UNITS[match.group(2)]
    if seconds < 0:
        raise ValueError(f"Duration must not be negative: {value!r}")
    return seconds


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC 3339 date-time string into an aware :class:`datetime`.

    Seconds and a timezone designator (``Z`` or ``+HH:MM``) are mandatory.
    Fractional seconds are padded or truncated to microsecond precision.

    Raises:
        ValueError: If *value* is not an RFC 3339 date-time.
    """
    text = value.strip() if isinstance(value, str) else ""
    if not _RFC3339_RE.match(text):
        raise ValueError(f"not an RFC 3339 date-time: {value!r}")
    if text[-1] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValueError(f"not an RFC 3339 date-time: {value!r}") from None
    return parsed


def format_rfc3339(value: datetime) -> str:
    """Format an aware datetime as a second-precision UTC RFC 3339 string."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# --- Configuration models ---


class AuthConfig(BaseModel):
    """How the client authenticates with the control plane.

    The API key itself is resolved from ``source`` at request time (see
    :func:`~keysmith.config.resolve_credential`) and sent as
    ``<header>: <scheme> <key>``.
    """

    source: str = Field(
        default="env:KEYSMITH_API_KEY",
        description="Credential source: env:VAR, file:/path, prompt",
    )
    header: str = Field(default="Authorization", description="Header carrying the key")
    scheme: str = Field(default="Bearer", description="Prefix placed before the key")


class RequestConfig(BaseModel):
    """Default HTTP request settings applied to every API call in a profile."""

    timeout: float = Field(default=30, description="Per-request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_retries: int = Field(default=3, description="Max retry attempts")


class PollConfig(BaseModel):
    """Polling schedule used while awaiting an async operation.

    The first status check happens after ``interval`` seconds; each later
    check waits ``backoff`` times longer than the previous one, capped at
    ``max_interval``.
    """

    interval: float = Field(default=1.0, gt=0, description="Initial poll interval in seconds")
    backoff: float = Field(default=1.0, ge=1.0, description="Interval multiplier per poll")
    max_interval: float = Field(default=10.0, gt=0, description="Upper bound for the interval")


class TimeoutsConfig(BaseModel):
    """Default deadlines (in seconds) for each lifecycle call."""

    create: float = 300.0
    read: float = 60.0
    update: float = 300.0
    delete: float = 300.0

    @field_validator("create", "read", "update", "delete", mode="before")
    @classmethod
    def _parse(cls, value: Any) -> Optional[float]:
        return parse_duration(value)


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: Literal["auto", "json", "plain", "rich"] = Field(
        default="auto",
        description="Data format when neither --json nor --plain is given",
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/keysmith/config.json``.

    Loaded and saved by :func:`~keysmith.config.load_global_config` and
    :func:`~keysmith.config.save_global_config`. Fields here have the
    lowest precedence and can be overridden by project config, environment
    variables, or CLI flags. See :func:`~keysmith.config.resolve_config`
    for the full precedence chain.
    """

    default_profile: Optional[str] = None
    auto_select_single_profile: bool = True
    state_file: str = Field(
        default="keysmith.state.json", description="Default local state file path"
    )
    output: OutputConfig = Field(default_factory=OutputConfig)


class Profile(BaseModel):
    """Per-account connection profile stored under the ``profiles/`` config directory.

    Bundles the control-plane endpoint, API version, authentication, and
    the request / polling / timeout settings used by every lifecycle call.

    See Also:
        :func:`~keysmith.config.load_profile`: Deserialise a profile by name.
        :func:`~keysmith.config.save_profile`: Persist a profile to disk.
    """

    model_config = ConfigDict(extra="allow")

    name: str
    base_url: str = Field(
        default="https://saas-api.tmprl.cloud", description="Control-plane base URL"
    )
    api_version: Optional[str] = Field(
        default="2024-10-01-00", description="Value of the X-Api-Version header"
    )
    auth: AuthConfig = Field(default_factory=AuthConfig)
    request: RequestConfig = Field(default_factory=RequestConfig)
    poll: PollConfig = Field(default_factory=PollConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)


# --- Wire models ---


class WireModel(BaseModel):
    """Base for control-plane payloads: camelCase on the wire, unknown keys ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        """Serialise with camelCase keys, dropping unset optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ApiKeySpec(WireModel):
    """Mutable and immutable inputs of an API key as the control plane sees them."""

    owner_id: str = ""
    owner_type: str = ""
    display_name: str = ""
    description: Optional[str] = None
    expiry_time: Optional[str] = None
    disabled: Optional[bool] = None


class ApiKey(WireModel):
    """An API key as returned by ``GET /cloud/api-keys/{keyId}``."""

    id: str
    resource_version: str = ""
    spec: ApiKeySpec = Field(default_factory=ApiKeySpec)
    state: str = ""
    async_operation_id: str = ""
    created_time: Optional[str] = None
    last_modified_time: Optional[str] = None


class AsyncOperation(WireModel):
    """A server-side unit of work that outlives the request that started it."""

    id: str
    state: str = ""
    check_duration: Optional[str] = None
    operation_type: str = ""
    failure_reason: str = ""
    started_time: Optional[str] = None
    finished_time: Optional[str] = None


class CreateApiKeyResponse(WireModel):
    """Response of ``POST /cloud/api-keys``; ``token`` is only ever returned here."""

    key_id: str
    token: str = ""
    async_operation: Optional[AsyncOperation] = None


# --- Resource model ---


class ResourceTimeouts(BaseModel):
    """Per-resource deadline overrides; unset entries fall back to the profile."""

    create: Optional[float] = None
    update: Optional[float] = None
    delete: Optional[float] = None

    @field_validator("create", "update", "delete", mode="before")
    @classmethod
    def _parse(cls, value: Any) -> Optional[float]:
        return parse_duration(value)


class ApiKeyModel(BaseModel):
    """The declarative API key record.

    ``id``, ``state`` and ``token`` are outputs. ``owner_type``,
    ``owner_id`` and ``expiry_time`` are replace-only inputs: changing any
    of them requires destroying and recreating the key. ``display_name``,
    ``description`` and ``disabled`` can be updated in place.

    ``token`` is only populated by a create call and is hidden from the
    model's repr.
    """

    model_config = ConfigDict(extra="forbid")

    id: Optional[str] = None
    state: Optional[str] = None
    owner_type: str
    owner_id: str
    display_name: str
    token: Optional[str] = Field(default=None, repr=False)
    description: Optional[str] = None
    expiry_time: str
    disabled: bool = False
    timeouts: Optional[ResourceTimeouts] = None

    def public_dump(self) -> dict[str, Any]:
        """Dump the model for display, with the token redacted."""
        data = self.model_dump(mode="json", exclude={"timeouts"})
        if data.get("token"):
            data["token"] = "(sensitive)"
        return data
