"""Status command for capacity and ledger overview."""

from collections import Counter

from ..models import ExecutionStatus
from ..output import get_output_context
from .common import format_age, get_coordinator


def status() -> None:
    """Show active jobs against the concurrency limit and ledger totals."""
    ctx = get_output_context()
    coordinator = get_coordinator()
    governor = coordinator.governor
    active = governor.active_jobs() if governor is not None else []
    counts = Counter(record.status for record in coordinator.ledger.records())

    if ctx.json_mode:
        ctx.print_json(
            {
                "active_jobs": [info.name for info in active],
                "max_concurrent": coordinator.max_concurrent,
                "records": {s.value: counts.get(s, 0) for s in ExecutionStatus},
            }
        )
        return

    style = "red" if len(active) >= coordinator.max_concurrent else "green"
    ctx.console.print(
        f"[bold]Active jobs:[/bold] [{style}]{len(active)}/{coordinator.max_concurrent}[/{style}]"
    )
    for info in active:
        ctx.console.print(f"  {info.name} ({info.holder}, {format_age(info.age)})")

    ctx.console.print("[bold]Execution history:[/bold]")
    for s in ExecutionStatus:
        ctx.console.print(f"  {s.value}: {counts.get(s, 0)}")
