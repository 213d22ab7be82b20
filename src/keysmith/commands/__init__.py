"""CLI sub-command groups for keysmith.

Each sub-module defines a Typer sub-app or commands that are registered
on the root application in :func:`keysmith.app.main`. This module holds
the helpers they share for resolving the active profile and opening a
:class:`~keysmith.resource.ApiKeyResource` against it.
"""

from __future__ import annotations

import contextlib
from typing import Iterator, Optional

import typer

from keysmith.client import CloudClient
from keysmith.models import GlobalConfig, Profile
from keysmith.output import error
from keysmith.resource import ApiKeyResource


def resolve(ctx: typer.Context) -> tuple[GlobalConfig, Optional[Profile]]:
    """Resolve global config and profile from the root callback's options."""
    from keysmith.config import resolve_config

    obj = ctx.obj or {}
    return resolve_config(
        cli_profile=obj.get("profile"),
        cli_base_url=obj.get("base_url"),
        cli_state_file=obj.get("state_file"),
    )


def make_client(profile: Profile) -> CloudClient:
    """Build the control-plane client for *profile*."""
    return CloudClient(profile)


@contextlib.contextmanager
def open_resource(ctx: typer.Context) -> Iterator[tuple[ApiKeyResource, GlobalConfig]]:
    """Yield an :class:`ApiKeyResource` bound to the active profile.

    Raises:
        typer.Exit: With code 2 when no profile can be resolved.
    """
    global_cfg, profile = resolve(ctx)
    if profile is None:
        error("No active profile. Create one with: keysmith init <name>")
        raise typer.Exit(code=2)

    with make_client(profile) as client:
        yield ApiKeyResource(client, timeouts=profile.timeouts, poll=profile.poll), global_cfg


@contextlib.contextmanager
def handle_errors() -> Iterator[None]:
    """Report :class:`~keysmith.exceptions.KeysmithError` and exit with its code."""
    from keysmith.exceptions import KeysmithError

    try:
        yield
    except KeysmithError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
