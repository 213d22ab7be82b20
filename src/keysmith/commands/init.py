"""Init command -- create a connection profile.

Implements the ``keysmith init`` top-level command: it writes a
:class:`~keysmith.models.Profile` for a control-plane account and a
project-local ``keysmith.json`` that pins it as the default profile.
Other pins already in that file, such as ``state_file``, are kept.
"""

from __future__ import annotations

from typing import Optional

import typer

from keysmith.output import info, success, suggest


def init_command(
    name: str = typer.Argument(help="Profile name."),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="Control-plane base URL."
    ),
    api_key_source: str = typer.Option(
        "env:KEYSMITH_API_KEY",
        "--api-key-source",
        help="Where to read the control-plane API key: env:VAR, file:/path, prompt.",
    ),
    api_version: Optional[str] = typer.Option(
        None, "--api-version", help="Value for the X-Api-Version header."
    ),
    state_file: Optional[str] = typer.Option(
        None, "--state-file", help="State file to pin in ./keysmith.json."
    ),
) -> None:
    """Create a connection profile and pin it in ``./keysmith.json``.

    Example::

        keysmith init prod --api-key-source env:TEMPORAL_CLOUD_API_KEY
    """
    from keysmith.commands import handle_errors
    from keysmith.config import profile_exists, save_profile, update_project_config
    from keysmith.models import AuthConfig, Profile

    if profile_exists(name):
        info(f'Profile "{name}" already exists and will be overwritten.')

    fields: dict = {"name": name, "auth": AuthConfig(source=api_key_source)}
    if base_url:
        fields["base_url"] = base_url
    if api_version:
        fields["api_version"] = api_version
    save_profile(Profile(**fields))

    with handle_errors():
        pinned = update_project_config(default_profile=name, state_file=state_file)
    info(f'Pinned profile "{name}" in {pinned}')

    success(f'Profile "{name}" created.')
    suggest("Preview changes: keysmith plan -f keys.yaml")
