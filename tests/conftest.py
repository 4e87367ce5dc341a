"""Shared test fixtures for issuegate tests."""

import os
import subprocess
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

from issuegate.core import ConcurrencyGovernor, Coordinator, ExecutionLedger, LockStore

# Short timings so contention tests finish quickly
POLL_INTERVAL = 0.02
INCOMPLETE_GRACE = 1.0
STALE_LOCK_AGE = 900.0


@pytest.fixture
def runner() -> CliRunner:
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """Create temporary issuegate home directory."""
    d = tmp_path / ".issuegate"
    d.mkdir()
    return d


@pytest.fixture
def lock_store(home: Path) -> LockStore:
    """Lock store with fast polling over a temporary directory."""
    return LockStore(
        home / "locks",
        stale_lock_age=STALE_LOCK_AGE,
        incomplete_grace=INCOMPLETE_GRACE,
        poll_interval=POLL_INTERVAL,
    )


@pytest.fixture
def ledger(home: Path, lock_store: LockStore) -> ExecutionLedger:
    """Execution ledger sharing the temporary lock store."""
    return ExecutionLedger(home / "execution_history.json", lock_store, lock_timeout=5.0)


@pytest.fixture
def coordinator(lock_store: LockStore, ledger: ExecutionLedger) -> Coordinator:
    """Coordinator that defers immediately when a trigger is busy."""
    return Coordinator(
        lock_store,
        ledger,
        ConcurrencyGovernor(lock_store),
        max_retries=2,
        max_concurrent=3,
        lock_timeout=0,
    )


@pytest.fixture
def dead_pid() -> int:
    """PID of a process that has already exited."""
    proc = subprocess.Popen([sys.executable, "-c", "pass"])
    proc.wait()
    return proc.pid


def write_lock(
    root: Path,
    name: str,
    *,
    pid: int | None = None,
    timestamp: float | None = None,
    host: str | None = None,
    owner: str | None = None,
    resource: str = "",
) -> Path:
    """Create a lock container by hand, as another holder would."""
    root.mkdir(parents=True, exist_ok=True)
    path = root / f"{name}.lock"
    path.mkdir()
    if owner is not None:
        (path / "owner").write_text(owner)
    if host is not None:
        (path / "host").write_text(host)
    if resource:
        (path / "resource").write_text(resource)
    if pid is not None:
        (path / "pid").write_text(str(pid))
    if timestamp is not None:
        (path / "timestamp").write_text(f"{timestamp:.6f}")
    return path


def backdate(path: Path, seconds: float) -> None:
    """Move a container's modification time into the past."""
    stat = path.stat()
    os.utime(path, (stat.st_atime - seconds, stat.st_mtime - seconds))
