"""``keysmith config`` -- the user-wide settings file and connection profiles.

``show``, ``set`` and ``reset`` work on ``config.json`` (default profile,
state-file location, output format); ``profiles`` and ``profile`` list and
print the saved control-plane accounts.
"""

from __future__ import annotations

from typing import Optional

import typer

from keysmith.commands import handle_errors, resolve
from keysmith.output import info, print_record, print_table, success, warning


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    effective: bool = typer.Option(
        False,
        "--effective",
        help="Apply ./keysmith.json, KEYSMITH_* variables and root flags first.",
    ),
) -> None:
    """Print the global settings, or with ``--effective`` the ones a command would use."""
    from keysmith.config import get_config_dir, load_global_config

    with handle_errors():
        if effective:
            global_cfg, profile = resolve(ctx)
            record = global_cfg.model_dump(mode="json")
            record["profile"] = profile.name if profile else None
        else:
            record = load_global_config().model_dump(mode="json")
    info(f"Config directory: {get_config_dir()}")
    print_record(record)


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Setting name; nested settings use dots, e.g. output.format."),
    value: str = typer.Argument(help="New value."),
) -> None:
    """Change one global setting.

    Example::

        keysmith config set default_profile prod
        keysmith config set output.format json
    """
    from keysmith.config import load_global_config, profile_exists, save_global_config
    from keysmith.exceptions import InvalidUsageError
    from keysmith.models import GlobalConfig

    with handle_errors():
        data = load_global_config().model_dump(mode="json")
        *parents, leaf = key.split(".")
        section = data
        for part in parents:
            section = section.get(part) if isinstance(section, dict) else None
        if not isinstance(section, dict) or leaf not in section:
            raise InvalidUsageError(f"Unknown config key: {key}")
        section[leaf] = value
        try:
            config = GlobalConfig.model_validate(data)
        except ValueError as exc:
            raise InvalidUsageError(f"Invalid value for {key}: {exc}") from None
        save_global_config(config)

    if key == "default_profile" and not profile_exists(value):
        warning(f'No profile named "{value}" yet. Create it with: keysmith init {value}')
    success(f"Set {key} = {value}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Restore every global setting to its default. Asks first unless ``--force``."""
    from keysmith.config import save_global_config
    from keysmith.models import GlobalConfig

    if not (ctx.obj or {}).get("force") and not typer.confirm("Reset all global settings?"):
        info("Cancelled.")
        raise typer.Exit()
    save_global_config(GlobalConfig())
    success("Global settings reset to defaults.")


@config_app.command("profiles")
def config_profiles() -> None:
    """List saved connection profiles."""
    from keysmith.config import list_profiles, load_profile

    with handle_errors():
        profiles = [load_profile(name) for name in list_profiles()]
    print_table(
        ["NAME", "BASE URL", "API KEY SOURCE"],
        [[p.name, p.base_url, p.auth.source] for p in profiles],
        title="Profiles",
    )


@config_app.command("profile")
def config_profile(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Profile name (default: the active one)."),
) -> None:
    """Print one profile's settings."""
    from keysmith.config import load_profile
    from keysmith.exceptions import InvalidUsageError

    with handle_errors():
        profile = load_profile(name) if name else resolve(ctx)[1]
        if profile is None:
            raise InvalidUsageError("No active profile. Create one with: keysmith init <name>")
    print_record(profile.model_dump(mode="json"))
