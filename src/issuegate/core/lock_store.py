"""Lock store for cross-process execution control.

Provides named mutexes over a shared filesystem. A lock is a directory
``<root>/<name>.lock``; ``mkdir`` either creates it or fails, which makes it
the compare-and-swap step. The holder then fills in small field files
(pid, timestamp, host, resource, owner). The directory's existence stays
authoritative while those fields are being written.

Stale locks (dead local holder, expired age, or metadata still incomplete
after a grace period) are reclaimed by renaming the container to a unique
tombstone before deleting it, so two reclaimers never both succeed.
"""

import contextlib
import logging
import os
import shutil
import socket
import time
import uuid
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from ..constants import (
    HOST_FIELD,
    INCOMPLETE_GRACE,
    LOCK_SUFFIX,
    LOCK_TIMEOUT,
    MAX_RECLAIM_RETRIES,
    OWNER_FIELD,
    PID_FIELD,
    POLL_INTERVAL,
    RESOURCE_FIELD,
    STALE_LOCK_AGE,
    TIMESTAMP_FIELD,
    TOMBSTONE_MARKER,
)
from ..errors import InvalidLockName, LockError, LockOwnershipMismatch, LockTimeout
from ..models import Liveness, LockInfo

logger = logging.getLogger(__name__)


def _is_pid_running(pid: int) -> bool:
    """Check if a process with given PID is running on this host."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)  # Signal 0 doesn't kill, just checks
        return True
    except PermissionError:
        # Exists, but belongs to another user
        return True
    except OSError:
        return False


def _read_field(path: Path, field: str) -> str | None:
    """Read one metadata field, returning None if absent or empty."""
    try:
        value = (path / field).read_text().strip()
    except OSError:
        return None
    return value or None


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _parse_timestamp(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


@dataclass
class LockHandle:
    """A lock acquired by this process.

    The owner token distinguishes acquisitions made by different tasks of the
    same process, which share a pid.
    """

    name: str
    path: Path
    owner: str
    pid: int
    host: str
    acquired_at: datetime
    resource: str = ""


class LockStore:
    """Named filesystem mutexes rooted at a single directory.

    Args:
        root: Directory holding the lock containers
        stale_lock_age: Seconds after which any lock is considered expired
        incomplete_grace: Seconds a lock may lack pid/timestamp before it is
            treated as orphaned
        poll_interval: Seconds between acquire attempts
        hostname: Identity of this host (defaults to socket.gethostname())
    """

    def __init__(
        self,
        root: Path,
        stale_lock_age: float = STALE_LOCK_AGE,
        incomplete_grace: float = INCOMPLETE_GRACE,
        poll_interval: float = POLL_INTERVAL,
        hostname: str | None = None,
    ) -> None:
        self.root = Path(root)
        self.stale_lock_age = stale_lock_age
        self.incomplete_grace = incomplete_grace
        self.poll_interval = poll_interval
        self.hostname = hostname or socket.gethostname()

    def _path(self, name: str) -> Path:
        """Get path to the lock container for a resource name."""
        if not name or "/" in name or "\x00" in name or name.startswith("."):
            raise InvalidLockName(f"Invalid lock name: {name!r}")
        return self.root / f"{name}{LOCK_SUFFIX}"

    def _tombstone_path(self, name: str) -> Path:
        return self.root / f"{name}{LOCK_SUFFIX}{TOMBSTONE_MARKER}{uuid.uuid4().hex}"

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def _classify(
        self,
        pid: int | None,
        host: str | None,
        timestamp: float | None,
        age: float,
        stale_age: float,
    ) -> Liveness:
        if pid is None or timestamp is None:
            if age <= self.incomplete_grace:
                return Liveness.POPULATING
            return Liveness.INCOMPLETE

        # Locks written without a host field are assumed local
        is_local = host is None or host == self.hostname
        if is_local and not _is_pid_running(pid):
            return Liveness.DEAD

        if age > stale_age:
            return Liveness.EXPIRED

        return Liveness.ACTIVE if is_local else Liveness.REMOTE

    def inspect(self, name: str, stale_age: float | None = None) -> LockInfo | None:
        """Read a lock's metadata and classify its holder.

        Args:
            name: Lock resource name
            stale_age: Override for the expiry threshold

        Returns:
            LockInfo if the lock exists, None otherwise
        """
        path = self._path(name)
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None

        pid = _parse_int(_read_field(path, PID_FIELD))
        timestamp = _parse_timestamp(_read_field(path, TIMESTAMP_FIELD))
        host = _read_field(path, HOST_FIELD)

        now = time.time()
        # Without a timestamp, measure age from the container itself
        age = max(0.0, now - (timestamp if timestamp is not None else stat.st_mtime))

        return LockInfo(
            name=name,
            pid=pid,
            host=host,
            acquired_at=datetime.fromtimestamp(timestamp, UTC) if timestamp is not None else None,
            resource=_read_field(path, RESOURCE_FIELD) or "",
            owner=_read_field(path, OWNER_FIELD),
            age=age,
            liveness=self._classify(
                pid,
                host,
                timestamp,
                age,
                self.stale_lock_age if stale_age is None else stale_age,
            ),
        )

    def is_stale(self, name: str) -> bool:
        """Check if a lock exists and may be reclaimed.

        True when the local holder process is gone, the lock is older than
        the stale age, or its metadata is still incomplete past the grace
        period.
        """
        info = self.inspect(name)
        return info is not None and info.liveness.is_stale

    def is_held(self, name: str) -> bool:
        """Check if a lock exists and is not stale."""
        info = self.inspect(name)
        return info is not None and not info.liveness.is_stale

    def names(self) -> list[str]:
        """List resource names of all lock containers, sorted."""
        if not self.root.is_dir():
            return []
        return sorted(
            entry.name[: -len(LOCK_SUFFIX)]
            for entry in self.root.glob(f"*{LOCK_SUFFIX}")
            if entry.is_dir()
        )

    def list_locks(self, stale_age: float | None = None) -> list[LockInfo]:
        """Describe every lock for diagnostics.

        Args:
            stale_age: Override for the expiry threshold

        Returns:
            LockInfo for each lock still present, sorted by name
        """
        locks = []
        for name in self.names():
            info = self.inspect(name, stale_age=stale_age)
            if info is not None:
                locks.append(info)
        return locks

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    def _write_field(self, path: Path, field: str, value: str) -> None:
        tmp = path / f".{field}.tmp"
        tmp.write_text(value)
        os.replace(tmp, path / field)

    def _try_create(self, name: str, label: str) -> LockHandle | None:
        """Attempt atomic lock creation.

        Returns:
            LockHandle if the container was created and populated, None if
            it already exists or vanished while metadata was being written
        """
        path = self._path(name)
        try:
            path.mkdir()
        except FileExistsError:
            return None

        handle = LockHandle(
            name=name,
            path=path,
            owner=uuid.uuid4().hex,
            pid=os.getpid(),
            host=self.hostname,
            acquired_at=datetime.now(UTC),
            resource=label,
        )
        try:
            # pid and timestamp last: their presence marks the lock complete
            self._write_field(path, OWNER_FIELD, handle.owner)
            self._write_field(path, HOST_FIELD, handle.host)
            self._write_field(path, RESOURCE_FIELD, label)
            self._write_field(path, PID_FIELD, str(handle.pid))
            self._write_field(path, TIMESTAMP_FIELD, f"{handle.acquired_at.timestamp():.6f}")
        except FileNotFoundError:
            logger.warning(f"Lock {name} was reclaimed while being populated")
            return None
        except OSError as e:
            with contextlib.suppress(OSError):
                self._remove(name)
            raise LockError(f"Failed to write metadata for lock {name}: {e}") from e
        return handle

    def acquire(self, name: str, timeout: float = LOCK_TIMEOUT, label: str = "") -> LockHandle:
        """Acquire a named lock, waiting up to ``timeout`` seconds.

        On contention the existing lock is checked for staleness; a stale
        lock is reclaimed and acquisition retried at once, otherwise this
        sleeps for the poll interval and tries again.

        Args:
            name: Lock resource name
            timeout: Maximum seconds to wait
            label: Free-text description of the guarded resource

        Returns:
            LockHandle for the acquired lock

        Raises:
            LockTimeout: If the lock is still held when the timeout elapses
        """
        self.root.mkdir(parents=True, exist_ok=True)
        deadline = time.monotonic() + timeout

        while True:
            for _ in range(MAX_RECLAIM_RETRIES):
                handle = self._try_create(name, label)
                if handle is not None:
                    logger.debug(f"Acquired lock: {name}")
                    return handle
                if not self.reclaim(name):
                    break

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.debug(f"Failed to acquire lock: {name} (timeout)")
                raise LockTimeout(name, timeout)
            time.sleep(min(self.poll_interval, remaining))

    @contextlib.contextmanager
    def hold(
        self, name: str, timeout: float = LOCK_TIMEOUT, label: str = ""
    ) -> Iterator[LockHandle]:
        """Hold a lock for the duration of a ``with`` block.

        The lock is released on every exit path, including exceptions raised
        by signal handlers. If the lock was taken over by another holder in
        the meantime it is left in place and a warning is logged.

        Raises:
            LockTimeout: If the lock could not be acquired
        """
        handle = self.acquire(name, timeout=timeout, label=label)
        try:
            yield handle
        finally:
            try:
                self.release(handle)
            except LockOwnershipMismatch as e:
                logger.warning(f"{e}; leaving it in place")

    # ------------------------------------------------------------------
    # Release and reclamation
    # ------------------------------------------------------------------

    def _remove(self, name: str) -> bool:
        """Atomically detach a lock container and delete it.

        Returns:
            True if this call removed the lock, False if it was already gone
        """
        tombstone = self._tombstone_path(name)
        try:
            os.rename(self._path(name), tombstone)
        except FileNotFoundError:
            return False
        shutil.rmtree(tombstone, ignore_errors=True)
        return True

    def _owns(self, lock: LockHandle | str, info: LockInfo) -> bool:
        if isinstance(lock, LockHandle):
            return info.owner == lock.owner
        return info.pid == os.getpid() and info.host in (None, self.hostname)

    def release(self, lock: LockHandle | str, *, force: bool = False) -> None:
        """Release a lock.

        Releasing a lock that no longer exists is a no-op. A handle must
        match the recorded owner token; a bare name must match this
        process's pid and host.

        Args:
            lock: Handle returned by acquire, or a resource name
            force: Remove the lock even if another holder is recorded

        Raises:
            LockOwnershipMismatch: If another holder is recorded and force
                is not set
        """
        name = lock.name if isinstance(lock, LockHandle) else lock
        info = self.inspect(name)
        if info is None:
            logger.debug(f"Lock already released: {name}")
            return

        if not self._owns(lock, info):
            if not force:
                raise LockOwnershipMismatch(name, info.holder)
            logger.warning(f"Force-releasing lock {name} held by {info.holder}")

        if self._remove(name):
            logger.debug(f"Released lock: {name}")

    def reclaim(self, name: str, stale_age: float | None = None) -> bool:
        """Remove a lock if it is stale.

        Tolerates another process removing the lock first. If the container
        detached turns out to belong to a newer holder than the one judged
        stale, it is moved back.

        Args:
            name: Lock resource name
            stale_age: Override for the expiry threshold

        Returns:
            True if the lock is gone, False if it is live or could not be
            removed
        """
        info = self.inspect(name, stale_age=stale_age)
        if info is None:
            return True
        if not info.liveness.is_stale:
            return False

        path = self._path(name)
        tombstone = self._tombstone_path(name)
        try:
            os.rename(path, tombstone)
        except FileNotFoundError:
            logger.debug(f"Stale lock {name} already removed by another process")
            return True
        except OSError as e:
            logger.error(f"Failed to reclaim lock {name}: {e}")
            return False

        detached_owner = _read_field(tombstone, OWNER_FIELD)
        if detached_owner != info.owner and not os.path.lexists(path):
            # Re-acquired between inspection and rename
            try:
                os.rename(tombstone, path)
            except OSError as e:
                logger.error(f"Detached a live lock {name} and could not restore it: {e}")
            else:
                logger.warning(f"Lock {name} changed hands during reclaim; restored")
                return False

        shutil.rmtree(tombstone, ignore_errors=True)
        logger.warning(
            f"Removed stale lock: {name} ({info.liveness.value}, {info.holder}, age {info.age:.0f}s)"
        )
        return True

    def _purge_tombstones(self) -> None:
        """Delete tombstones left behind by interrupted removals.

        A tombstone keeps the mtime of the container it detached, and reclaim
        may still move a live lock back from it. Only tombstones older than
        the stale age, which no live lock can be, are deleted.
        """
        if not self.root.is_dir():
            return
        cutoff = time.time() - self.stale_lock_age
        for entry in self.root.glob(f"*{LOCK_SUFFIX}{TOMBSTONE_MARKER}*"):
            with contextlib.suppress(OSError):
                if entry.stat().st_mtime < cutoff:
                    shutil.rmtree(entry, ignore_errors=True)

    def sweep(self, max_age: float | None = None, limit: int | None = None) -> list[str]:
        """Reclaim stale locks.

        Args:
            max_age: Override for the expiry threshold
            limit: Maximum number of locks to inspect

        Returns:
            Names of the locks removed
        """
        removed = []
        for name in self.names()[:limit]:
            info = self.inspect(name, stale_age=max_age)
            if info is None or not info.liveness.is_stale:
                continue
            if self.reclaim(name, stale_age=max_age):
                removed.append(name)
        self._purge_tombstones()
        if removed:
            logger.info(f"Cleanup completed: {len(removed)} stale locks removed")
        return removed

    def force_clear(self, name: str | None = None) -> list[str]:
        """Unconditionally remove one lock, or all locks when name is None.

        Returns:
            Names of the locks removed
        """
        names = [name] if name is not None else self.names()
        removed = []
        for lock_name in names:
            if self._remove(lock_name):
                logger.warning(f"Force removed lock: {lock_name}")
                removed.append(lock_name)
        return removed
