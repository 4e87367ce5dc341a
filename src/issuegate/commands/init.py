"""Init command implementation."""

from ..config import get_locks_dir, write_config_template
from ..constants import CONFIG_FILENAME
from ..output import get_output_context
from .common import get_home


def init() -> None:
    """Initialize the issuegate home directory."""
    ctx = get_output_context()
    home = get_home()

    home.mkdir(parents=True, exist_ok=True)
    get_locks_dir(home).mkdir(exist_ok=True)

    config_path = home / CONFIG_FILENAME
    if not config_path.exists():
        write_config_template(home)
        ctx.print(f"[green]Created config template:[/green] {config_path}")
    else:
        ctx.print(f"[yellow]Config already exists:[/yellow] {config_path}")

    ctx.success(
        f"Initialized issuegate in {home}",
        {"home": str(home), "config": str(config_path)},
    )
