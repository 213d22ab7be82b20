"""API key commands -- one-off lifecycle calls by key id.

Provides the ``keysmith apikey`` sub-command group. These commands act on
a single key directly and, unless ``--track`` is given, do not touch the
local state file; use ``keysmith plan`` / ``keysmith apply`` for
declarative management.
"""

from __future__ import annotations

from typing import Optional

import typer

from keysmith.commands import handle_errors, open_resource
from keysmith.output import error, print_record, success, warning


apikey_app = typer.Typer(no_args_is_help=True)


@apikey_app.command("create")
def apikey_create(
    ctx: typer.Context,
    owner_type: str = typer.Option(..., "--owner-type", help="user or service-account."),
    owner_id: str = typer.Option(..., "--owner-id", help="ID of the owning user or service account."),
    display_name: str = typer.Option(..., "--display-name", help="Display name for the key."),
    expiry_time: str = typer.Option(
        ..., "--expiry-time", help="Expiry as RFC 3339, e.g. 2030-01-01T00:00:00Z."
    ),
    description: Optional[str] = typer.Option(None, "--description", help="Optional description."),
    disabled: bool = typer.Option(False, "--disabled", help="Create the key disabled."),
    track: Optional[str] = typer.Option(
        None, "--track", help="Record the new key in the state file under this name."
    ),
    show_token: bool = typer.Option(
        True, "--show-token/--hide-token", help="Include the one-time token in the output."
    ),
) -> None:
    """Create an API key. The token is shown once and cannot be retrieved later.

    Example::

        keysmith apikey create --owner-type service-account --owner-id sa-1 \\
            --display-name ci-key --expiry-time 2030-01-01T00:00:00Z
    """
    from keysmith.models import ApiKeyModel
    from keysmith.state import StateStore

    with handle_errors():
        plan = ApiKeyModel(
            owner_type=owner_type,
            owner_id=owner_id,
            display_name=display_name,
            expiry_time=expiry_time,
            description=description,
            disabled=disabled,
        )
        with open_resource(ctx) as (resource, global_cfg):
            resource.validate(plan)
            created = resource.create(plan)

        if track:
            store = StateStore(global_cfg.state_file)
            state = store.load()
            state.put(track, created)
            store.save(state)

    data = created.public_dump()
    if show_token:
        data["token"] = created.token
    else:
        warning("The token is not shown and cannot be retrieved again.")
    print_record(data)
    success(f"Created API key {created.id}")


@apikey_app.command("get")
def apikey_get(
    ctx: typer.Context,
    key_id: str = typer.Argument(help="API key id."),
) -> None:
    """Show an API key. The token is never returned after creation."""
    with handle_errors():
        with open_resource(ctx) as (resource, _):
            model = resource.get(key_id)
    if model is None:
        error(f"API key {key_id} not found")
        raise typer.Exit(code=4)
    print_record(model.public_dump())


@apikey_app.command("update")
def apikey_update(
    ctx: typer.Context,
    key_id: str = typer.Argument(help="API key id."),
    display_name: Optional[str] = typer.Option(None, "--display-name", help="New display name."),
    description: Optional[str] = typer.Option(None, "--description", help="New description."),
    disabled: Optional[bool] = typer.Option(
        None, "--disabled/--enabled", help="Disable or re-enable the key."
    ),
) -> None:
    """Change a key's display name, description, or disabled flag in place."""
    with handle_errors():
        with open_resource(ctx) as (resource, _):
            current = resource.get(key_id)
            if current is None:
                error(f"API key {key_id} not found")
                raise typer.Exit(code=4)
            plan = current.model_copy()
            if display_name is not None:
                plan.display_name = display_name
            if description is not None:
                plan.description = description
            if disabled is not None:
                plan.disabled = disabled
            updated = resource.update(plan)
    print_record(updated.public_dump())
    success(f"Updated API key {key_id}")


@apikey_app.command("delete")
def apikey_delete(
    ctx: typer.Context,
    key_id: str = typer.Argument(help="API key id."),
) -> None:
    """Delete an API key. Deleting a key that is already gone succeeds."""
    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force and not typer.confirm(f"Delete API key {key_id}?"):
        raise typer.Exit()

    with handle_errors():
        with open_resource(ctx) as (resource, _):
            current = resource.get(key_id)
            if current is None:
                warning(f"API key {key_id} does not exist; nothing to delete")
                return
            resource.delete(current)
    success(f"Deleted API key {key_id}")
