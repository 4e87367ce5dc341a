"""CLI command implementations for issuegate.

This package contains the implementation of each CLI command,
separated from the CLI framework setup in cli.py.
"""

from .history import history_app, history_list, history_show
from .init import init
from .locks import locks_app, locks_clean, locks_list
from .run import run
from .status import status

__all__ = [
    "history_app",
    "history_list",
    "history_show",
    "init",
    "locks_app",
    "locks_clean",
    "locks_list",
    "run",
    "status",
]
