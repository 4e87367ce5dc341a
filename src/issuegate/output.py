"""Output for the issuegate CLI: rich text for people, JSON with --json."""

import json
from dataclasses import dataclass
from typing import Any

from rich.console import Console


@dataclass
class OutputContext:
    """Routes command output to the console or to stdout as JSON.

    Human-readable text goes to ``console`` (stderr, alongside logs); JSON
    goes to stdout so it can be piped.
    """

    console: Console
    json_mode: bool = False

    def print(self, message: str, style: str | None = None) -> None:
        """Print a human-readable line; suppressed in JSON mode."""
        if not self.json_mode:
            self.console.print(message, style=style)

    def print_json(self, data: Any) -> None:
        """Print data as JSON; suppressed in human mode."""
        if self.json_mode:
            print(json.dumps(data, indent=2, default=str))

    def result(self, data: Any, message: str = "") -> None:
        """Report a command result as ``data`` in JSON mode, else ``message``."""
        if self.json_mode:
            self.print_json(data)
        elif message:
            self.console.print(message)

    def _status(self, field: str, message: str, data: dict[str, Any] | None, markup: str) -> None:
        if self.json_mode:
            self.print_json({field: message, **(data or {})})
        else:
            self.console.print(markup)

    def error(self, message: str, data: dict[str, Any] | None = None) -> None:
        self._status("error", message, data, f"[red]Error: {message}[/red]")

    def success(self, message: str, data: dict[str, Any] | None = None) -> None:
        self._status("success", message, data, f"[green]{message}[/green]")


# Set by the cli.py main callback
_ctx: OutputContext | None = None


def get_output_context() -> OutputContext:
    """Get the current output context, or a plain console one outside the CLI."""
    if _ctx is None:
        return OutputContext(Console(stderr=True))
    return _ctx


def set_output_context(ctx: OutputContext | None) -> None:
    global _ctx
    _ctx = ctx
