"""Run command: handle one trigger with an external command."""

import os
import signal
import subprocess
from types import FrameType

import typer
from pydantic import ValidationError

from ..constants import EXIT_DEFERRED, PROCESS_TIMEOUT
from ..core import ProcessingCallback
from ..models import Outcome, TriggerKey
from ..output import get_output_context
from .common import get_coordinator


class GracefulExit(BaseException):
    """Raised when the process is asked to stop via SIGINT or SIGTERM.

    Like KeyboardInterrupt it is not an Exception, so handlers for processing
    failures let it through and the trigger stays in progress.
    """


def _handle_signal(signum: int, frame: FrameType | None) -> None:
    """Turn termination signals into an exception so locks get released."""
    raise GracefulExit(f"Interrupted by {signal.Signals(signum).name}")


def _make_callback(command: list[str], timeout: float | None) -> ProcessingCallback:
    """Build a processing callback running ``command`` for a trigger.

    The trigger is passed to the command through ISSUEGATE_REPO,
    ISSUEGATE_NUMBER and ISSUEGATE_KIND environment variables.
    """

    def _process(key: TriggerKey) -> bool:
        env = {
            **os.environ,
            "ISSUEGATE_REPO": key.repo,
            "ISSUEGATE_NUMBER": str(key.number),
            "ISSUEGATE_KIND": key.kind,
        }
        result = subprocess.run(command, env=env, timeout=timeout, check=False)
        return result.returncode == 0

    return _process


def exit_code_for(outcome: Outcome) -> int:
    """Map a handling outcome to a process exit code."""
    if outcome.is_deferred:
        return EXIT_DEFERRED
    if outcome.is_failure:
        return 1
    return 0


def run(
    repo: str = typer.Argument(..., help="Repository full name (owner/name)"),
    number: int = typer.Argument(..., help="Issue or PR number"),
    command: list[str] = typer.Argument(..., help="Command performing the work"),
    kind: str = typer.Option("issue", "--kind", "-k", help="Trigger kind (issue or pr)"),
    timeout: float | None = typer.Option(
        PROCESS_TIMEOUT,
        "--timeout",
        "-t",
        help="Seconds before the command is killed",
    ),
) -> None:
    """Process a trigger at most once by running COMMAND under its lock.

    Example: issuegate run org/repo 42 -- ./process-issue.sh
    """
    ctx = get_output_context()
    coordinator = get_coordinator()
    try:
        key = TriggerKey(repo=repo, number=number, kind=kind)
    except ValidationError as e:
        ctx.error(f"Invalid trigger: {e.errors()[0]['msg']}")
        raise typer.Exit(2) from None

    original_handlers = {
        sig: signal.signal(sig, _handle_signal) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        result = coordinator.handle(key, _make_callback(command, timeout))
    except GracefulExit as e:
        ctx.error(f"{key}: {e}")
        raise typer.Exit(130) from None
    finally:
        for sig, handler in original_handlers.items():
            signal.signal(sig, handler)

    data = {
        "trigger": str(key),
        "outcome": result.outcome.value,
        "retry_count": result.record.retry_count if result.record else None,
    }
    if result.outcome.is_failure:
        ctx.error(result.message, data)
    elif result.outcome.is_deferred or result.outcome.is_skipped:
        ctx.result(data, f"[yellow]{result.message}[/yellow]")
    else:
        ctx.success(result.message, data)
    raise typer.Exit(exit_code_for(result.outcome))
