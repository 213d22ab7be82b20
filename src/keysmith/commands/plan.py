"""Declarative commands -- ``keysmith plan``, ``apply`` and ``destroy``.

All three refresh the tracked keys first (dropping any that were deleted
out of band), then diff the desired-keys file against state. ``plan`` only
reports; the refreshed state is written by ``apply`` and ``destroy``.
"""

from __future__ import annotations

from typing import Optional

import typer

from keysmith.commands import handle_errors, open_resource
from keysmith.output import get_output, info, print_table, success, warning


def _render(changes) -> None:  # noqa: ANN001
    from keysmith.plan import Action

    rows = [
        [c.action.value, c.name, ", ".join(c.changed_fields)]
        for c in changes
        if c.action != Action.NOOP
    ]
    if not rows:
        info("No changes. Tracked API keys match the desired configuration.")
        return
    print_table(["ACTION", "NAME", "CHANGED"], rows, title="Plan")


def _run(
    ctx: typer.Context,
    file: Optional[str],
    execute: bool,
    destroy: bool,
) -> None:
    from keysmith.plan import Action, apply_plan, compute_plan, load_desired, refresh
    from keysmith.state import StateStore

    force = ctx.obj.get("force", False) if ctx.obj else False

    with handle_errors():
        desired = {} if destroy else load_desired(file or "keys.yaml")
        with open_resource(ctx) as (resource, global_cfg):
            store = StateStore(global_cfg.state_file)
            state = store.load()

            dropped = "removed from state" if execute else "apply will remove it from state"
            for name in refresh(resource, state):
                warning(f"{name}: API key no longer exists remotely; {dropped}")

            changes = compute_plan(desired, state)
            _render(changes)
            if not execute:
                return
            store.save(state)
            if all(c.action == Action.NOOP for c in changes):
                return

            if not force and not typer.confirm("Apply these changes?"):
                info("Cancelled.")
                raise typer.Exit()

            result = apply_plan(
                resource,
                store,
                state,
                changes,
                on_change=lambda c: get_output().info(f"{c.name}: {c.action.value} complete"),
            )
    success(
        f"Apply complete: {result.created} created, {result.updated} updated, "
        f"{result.replaced} replaced, {result.deleted} deleted."
    )


def plan_command(
    ctx: typer.Context,
    file: Optional[str] = typer.Option(None, "--file", "-f", help="Desired-keys file (YAML or JSON)."),
) -> None:
    """Show what ``apply`` would change."""
    _run(ctx, file, execute=False, destroy=False)


def apply_command(
    ctx: typer.Context,
    file: Optional[str] = typer.Option(None, "--file", "-f", help="Desired-keys file (YAML or JSON)."),
) -> None:
    """Create, update, replace, and delete keys to match the desired-keys file."""
    _run(ctx, file, execute=True, destroy=False)


def destroy_command(ctx: typer.Context) -> None:
    """Delete every tracked API key."""
    _run(ctx, None, execute=True, destroy=True)
