"""Lock diagnostics and cleanup commands."""

import typer
from rich.table import Table

from ..models import Liveness
from ..output import get_output_context
from .common import format_age, get_coordinator

locks_app = typer.Typer(help="Lock diagnostics and cleanup commands")

_LIVENESS_STYLES = {
    Liveness.ACTIVE: "green",
    Liveness.REMOTE: "cyan",
    Liveness.POPULATING: "yellow",
    Liveness.DEAD: "red",
    Liveness.EXPIRED: "red",
    Liveness.INCOMPLETE: "red",
}


@locks_app.command("list")
def locks_list() -> None:
    """List current locks with holder and liveness."""
    ctx = get_output_context()
    store = get_coordinator().lock_store
    locks = store.list_locks()

    if ctx.json_mode:
        ctx.print_json([info.model_dump(mode="json") for info in locks])
        return

    if not locks:
        ctx.print("No locks held")
        return

    table = Table(title="Current locks")
    table.add_column("Lock Name")
    table.add_column("PID", justify="right")
    table.add_column("Host")
    table.add_column("Age", justify="right")
    table.add_column("Status")
    table.add_column("Resource")
    for info in locks:
        style = _LIVENESS_STYLES[info.liveness]
        table.add_row(
            info.name,
            str(info.pid) if info.pid is not None else "N/A",
            info.host or "unknown",
            format_age(info.age),
            f"[{style}]{info.liveness.value}[/{style}]",
            info.resource,
        )
    ctx.console.print(table)

    stale = sum(1 for info in locks if info.liveness.is_stale)
    ctx.console.print(
        f"Total locks: {len(locks)}  Active: {len(locks) - stale}  Stale: {stale}"
    )


@locks_app.command("clean")
def locks_clean(
    age: float | None = typer.Option(
        None,
        "--age",
        "-a",
        help="Treat locks older than this many seconds as stale",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Remove locks regardless of age or holder status",
    ),
    name: str | None = typer.Option(
        None,
        "--name",
        "-n",
        help="Only clean the named lock",
    ),
) -> None:
    """Remove stale locks, or all locks with --force."""
    ctx = get_output_context()
    store = get_coordinator().lock_store

    try:
        if force:
            removed = store.force_clear(name)
        elif name is not None:
            info = store.inspect(name, stale_age=age)
            stale = info is not None and info.liveness.is_stale
            removed = [name] if stale and store.reclaim(name, stale_age=age) else []
        else:
            removed = store.sweep(max_age=age)
    except ValueError as e:
        ctx.error(str(e))
        raise typer.Exit(1) from None

    if removed:
        ctx.success(f"Removed {len(removed)} lock(s): {', '.join(removed)}", {"removed": removed})
    else:
        ctx.result({"removed": []}, "No stale locks found")
