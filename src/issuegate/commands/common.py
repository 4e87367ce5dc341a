"""Shared helpers for issuegate commands."""

from pathlib import Path

import typer
from pydantic import ValidationError

from ..config import IssuegateConfig, get_home_dir, load_config
from ..core import Coordinator
from ..output import get_output_context

# Home directory override (set by cli.py main callback)
_home: Path | None = None


def set_home(home: Path | None) -> None:
    """Set the home directory override. Called by CLI main callback."""
    global _home
    _home = home


def get_home() -> Path:
    """Get the effective issuegate home directory."""
    return get_home_dir(_home)


def load_settings(home: Path) -> IssuegateConfig:
    """Load configuration, exiting with a readable error if invalid."""
    try:
        return load_config(home)
    except (ValidationError, ValueError) as e:
        get_output_context().error(f"Invalid configuration in {home}: {e}")
        raise typer.Exit(2) from None


def get_coordinator() -> Coordinator:
    """Build a coordinator for the effective home directory."""
    home = get_home()
    return Coordinator.from_config(home, load_settings(home))


def format_age(seconds: float) -> str:
    """Format an age in seconds as a compact string (e.g. 1h02m, 45s)."""
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes:02d}m"
    if minutes:
        return f"{minutes}m{secs:02d}s"
    return f"{secs}s"
