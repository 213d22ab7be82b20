"""State commands -- inspect and edit the local state file."""

from __future__ import annotations

import typer

from keysmith.commands import handle_errors, resolve
from keysmith.output import error, print_record, print_table, success


state_app = typer.Typer(no_args_is_help=True)


def _store(ctx: typer.Context):  # noqa: ANN202
    from keysmith.state import StateStore

    global_cfg, _ = resolve(ctx)
    return StateStore(global_cfg.state_file)


@state_app.command("list")
def state_list(ctx: typer.Context) -> None:
    """List tracked API keys."""
    with handle_errors():
        state = _store(ctx).load()
    rows = [
        [name, m.id or "", m.state or "", m.display_name, m.expiry_time]
        for name, m in sorted(state.resources.items())
    ]
    print_table(["NAME", "ID", "STATE", "DISPLAY NAME", "EXPIRES"], rows, title="Tracked API keys")


@state_app.command("show")
def state_show(
    ctx: typer.Context,
    name: str = typer.Argument(help="Tracked resource name."),
    show_token: bool = typer.Option(False, "--show-token", help="Reveal the stored token."),
) -> None:
    """Show one tracked API key."""
    with handle_errors():
        model = _store(ctx).load().get(name)
    if model is None:
        error(f"No tracked API key named {name!r}")
        raise typer.Exit(code=4)
    data = model.public_dump()
    if show_token:
        data["token"] = model.token
    print_record(data)


@state_app.command("rm")
def state_rm(
    ctx: typer.Context,
    name: str = typer.Argument(help="Tracked resource name."),
) -> None:
    """Stop tracking an API key without deleting it remotely."""
    with handle_errors():
        store = _store(ctx)
        state = store.load()
        if state.remove(name) is None:
            error(f"No tracked API key named {name!r}")
            raise typer.Exit(code=4)
        store.save(state)
    success(f"Removed {name} from state")
