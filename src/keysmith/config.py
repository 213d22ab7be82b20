"""Where keysmith keeps its settings, and how they combine.

Three files feed the effective configuration:

* ``<config_dir>/config.json`` -- user-wide :class:`~keysmith.models.GlobalConfig`
  (default profile, state-file location, output format).
* ``<config_dir>/profiles/<name>.json`` -- one :class:`~keysmith.models.Profile`
  per control-plane account.
* ``./keysmith.json`` -- per-repository pins for ``default_profile`` and
  ``state_file``, written by ``keysmith init``.

:func:`resolve_config` layers them under environment variables and CLI
flags. ``<config_dir>`` follows XDG on Linux/BSD and is ``~/.keysmith``
elsewhere.
"""

from __future__ import annotations

import contextlib
import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional

from keysmith.exceptions import ConfigError
from keysmith.models import GlobalConfig, Profile

PROJECT_CONFIG_FILENAME = "keysmith.json"

# kind -> (XDG variable, default under $HOME, subdirectory of ~/.keysmith)
_DIRS = {
    "config": ("XDG_CONFIG_HOME", (".config",), ()),
    "data": ("XDG_DATA_HOME", (".local", "share"), ("logs",)),
}


def _is_xdg_platform() -> bool:
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def _app_dir(kind: str) -> Path:
    env_var, xdg_default, fallback = _DIRS[kind]
    if _is_xdg_platform():
        root = os.environ.get(env_var) or Path.home().joinpath(*xdg_default)
        path = Path(root) / "keysmith"
    else:
        path = Path.home().joinpath(".keysmith", *fallback)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    """Directory holding ``config.json`` and ``profiles/``."""
    return _app_dir("config")


def get_data_dir() -> Path:
    """Directory for crash logs."""
    return _app_dir("data")


def get_profiles_dir() -> Path:
    path = get_config_dir() / "profiles"
    path.mkdir(exist_ok=True)
    return path


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Replace *path* with *data* via a sibling temp file and ``os.replace``.

    With *mode* set, permissions are applied to the temp file before the
    rename, so the state file is never readable by others even briefly.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        if mode is not None:
            os.chmod(tmp_name, mode)
        with os.fdopen(fd, "w", encoding="utf-8") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise


def _read_json(path: Path, what: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Invalid {what} at {path}: {exc}") from exc


def _write_json(path: Path, data: Any) -> None:
    atomic_write(path, json.dumps(data, indent=2) + "\n")


# --- global config ---


def load_global_config() -> GlobalConfig:
    """Load ``config.json``; defaults when it does not exist yet.

    Raises:
        ConfigError: The file is not valid JSON or fails validation.
    """
    path = get_config_dir() / "config.json"
    if not path.is_file():
        return GlobalConfig()
    data = _read_json(path, "global config")
    try:
        return GlobalConfig.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    _write_json(get_config_dir() / "config.json", config.model_dump(mode="json"))


# --- profiles ---


def _profile_path(name: str) -> Path:
    return get_profiles_dir() / f"{name}.json"


def profile_exists(name: str) -> bool:
    return _profile_path(name).is_file()


def list_profiles() -> list[str]:
    return sorted(p.stem for p in get_profiles_dir().glob("*.json") if p.is_file())


def load_profile(name: str) -> Profile:
    """Load the profile called *name*.

    Raises:
        ConfigError: The profile does not exist or is invalid.
    """
    path = _profile_path(name)
    if not path.is_file():
        raise ConfigError(f"Profile '{name}' not found at {path}")
    data = _read_json(path, f"profile '{name}'")
    try:
        return Profile.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid profile '{name}' at {path}: {exc}") from exc


def save_profile(profile: Profile) -> None:
    _write_json(_profile_path(profile.name), profile.model_dump(mode="json"))


# --- project pins ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Read ``./keysmith.json``, or ``None`` when the directory has none.

    Raises:
        ConfigError: The file exists but is not a JSON object.
    """
    path = Path.cwd() / PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    data = _read_json(path, "project config")
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid project config at {path}: expected a JSON object")
    return data


def update_project_config(**pins: Optional[str]) -> Path:
    """Merge *pins* into ``./keysmith.json`` and return its path.

    Keys whose value is ``None`` keep whatever the file already holds.
    """
    merged = load_project_config() or {}
    merged.update({k: v for k, v in pins.items() if v is not None})
    path = Path.cwd() / PROJECT_CONFIG_FILENAME
    _write_json(path, merged)
    return path


# --- precedence ---


def _first(*candidates: Optional[str]) -> Optional[str]:
    return next((c for c in candidates if c), None)


def resolve_config(
    cli_profile: Optional[str] = None,
    cli_base_url: Optional[str] = None,
    cli_state_file: Optional[str] = None,
) -> tuple[GlobalConfig, Optional[Profile]]:
    """Combine every configuration layer into ``(global_config, profile)``.

    Each setting takes the first value found in: CLI flag, ``KEYSMITH_*``
    environment variable, ``./keysmith.json``, ``config.json``. When no
    profile is named anywhere and exactly one exists, it is used unless
    ``auto_select_single_profile`` is off. The returned profile is
    ``None`` when none applies.

    Raises:
        ConfigError: A named profile is missing or any layer is invalid.
    """
    global_cfg = load_global_config()
    project = load_project_config() or {}
    env = os.environ

    profile_name = _first(
        cli_profile,
        env.get("KEYSMITH_PROFILE"),
        project.get("default_profile"),
        global_cfg.default_profile,
    )
    if profile_name is None and global_cfg.auto_select_single_profile:
        names = list_profiles()
        if len(names) == 1:
            profile_name = names[0]

    profile = load_profile(profile_name) if profile_name else None
    if profile is not None:
        base_url = _first(cli_base_url, env.get("KEYSMITH_BASE_URL"))
        if base_url:
            profile.base_url = base_url

    global_cfg.state_file = _first(
        cli_state_file,
        env.get("KEYSMITH_STATE_FILE"),
        project.get("state_file"),
        global_cfg.state_file,
    )
    return global_cfg, profile


# --- credentials ---


def resolve_credential(source: str) -> str:
    """Return the control-plane API key named by *source*.

    ``env:VAR`` reads an environment variable, ``file:PATH`` reads a file
    (surrounding whitespace stripped) and ``prompt`` asks on the terminal.

    Raises:
        ConfigError: The source is unknown or yields nothing.
    """
    kind, _, target = source.partition(":")
    if kind == "env" and target:
        value = os.environ.get(target)
        if value is None:
            raise ConfigError(f"Environment variable '{target}' is not set (source: {source})")
        return value
    if kind == "file" and target:
        path = Path(target).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc
    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigError("Cannot prompt for the API key: stdin is not a TTY (source: prompt)")
        return getpass.getpass("Control-plane API key: ")
    raise ConfigError(f"Unknown credential source format: {source}")
