"""issuegate CLI: at-most-once processing of externally triggered jobs."""

from pathlib import Path

import typer

from issuegate import __version__

from .commands import history_app, init, locks_app, run, status
from .commands.common import set_home
from .constants import HOME_ENV_VAR
from .logging import configure_logging
from .output import OutputContext, set_output_context


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"issuegate {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="issuegate",
    help="Lock, ledger and retry coordination for externally triggered jobs",
    no_args_is_help=True,
)

app.add_typer(locks_app, name="locks")
app.add_typer(history_app, name="history")


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    home: Path | None = typer.Option(
        None,
        "--home",
        envvar=HOME_ENV_VAR,
        help="Directory holding locks, ledger and config (default: ./.issuegate)",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v, -vv)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress non-error output",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in JSON format for automation",
    ),
    no_color: bool = typer.Option(
        False,
        "--no-color",
        help="Disable colored output",
    ),
) -> None:
    """issuegate - execution coordination for externally triggered jobs."""
    console = configure_logging(
        verbosity=verbose,
        quiet=quiet,
        no_color=no_color,
    )
    set_output_context(OutputContext(console=console, json_mode=json_output))
    set_home(home)


app.command()(init)
app.command()(status)
app.command()(run)


if __name__ == "__main__":
    app()
