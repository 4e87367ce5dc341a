"""Execution ledger inspection commands."""

import typer
from pydantic import ValidationError
from rich.table import Table

from ..models import ExecutionRecord, ExecutionStatus, TriggerKey
from ..output import get_output_context
from .common import get_coordinator

history_app = typer.Typer(help="Execution history commands")

_STATUS_STYLES = {
    ExecutionStatus.PENDING: "dim",
    ExecutionStatus.IN_PROGRESS: "yellow",
    ExecutionStatus.COMPLETED: "green",
    ExecutionStatus.FAILED: "red",
}


def _records_table(records: list[ExecutionRecord]) -> Table:
    table = Table(title="Execution history")
    table.add_column("Repository")
    table.add_column("#", justify="right")
    table.add_column("Kind")
    table.add_column("Status")
    table.add_column("Retries", justify="right")
    table.add_column("Updated")
    table.add_column("Details")
    for record in records:
        style = _STATUS_STYLES[record.status]
        table.add_row(
            record.repo,
            str(record.issue_number),
            record.kind,
            f"[{style}]{record.status.value}[/{style}]",
            str(record.retry_count),
            record.updated_at.strftime("%Y-%m-%d %H:%M:%S"),
            record.details,
        )
    return table


@history_app.command("list")
def history_list(
    status: ExecutionStatus | None = typer.Option(
        None,
        "--status",
        "-s",
        help="Only show records with this status",
    ),
) -> None:
    """List execution records."""
    ctx = get_output_context()
    records = get_coordinator().ledger.records(status)

    if ctx.json_mode:
        ctx.print_json([r.model_dump(mode="json") for r in records])
        return

    if not records:
        ctx.print("No execution history")
        return
    ctx.console.print(_records_table(records))


@history_app.command("show")
def history_show(
    repo: str = typer.Argument(..., help="Repository full name (owner/name)"),
    number: int = typer.Argument(..., help="Issue or PR number"),
    kind: str = typer.Option("issue", "--kind", "-k", help="Trigger kind (issue or pr)"),
) -> None:
    """Show the execution record for one trigger."""
    ctx = get_output_context()
    coordinator = get_coordinator()
    try:
        key = TriggerKey(repo=repo, number=number, kind=kind)
    except ValidationError as e:
        ctx.error(f"Invalid trigger: {e.errors()[0]['msg']}")
        raise typer.Exit(2) from None
    record = coordinator.ledger.find(key)

    if record is None:
        ctx.error(f"No execution record for {key}")
        raise typer.Exit(1)

    if ctx.json_mode:
        ctx.print_json(record.model_dump(mode="json"))
        return

    ctx.console.print(_records_table([record]))
    if record.is_exhausted(coordinator.max_retries):
        ctx.print("[red]Retries exhausted; this trigger will not be retried[/red]")
