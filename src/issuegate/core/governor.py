"""Concurrency governor: advisory cap on simultaneously active jobs."""

import logging

from ..constants import LEDGER_LOCK_NAME
from ..models import Liveness, LockInfo
from .lock_store import LockStore

logger = logging.getLogger(__name__)

# Lock states counted as a running job. Remote holders cannot be probed and
# are counted as active; locks still being populated belong to a job that has
# just started.
_ACTIVE_STATES = (Liveness.ACTIVE, Liveness.REMOTE, Liveness.POPULATING)


class ConcurrencyGovernor:
    """Admission check over the lock store.

    The check is not atomic with a subsequent acquire, so concurrency may
    briefly exceed the cap. Its purpose is shedding load early.

    Args:
        lock_store: Store whose locks represent running jobs
        exclude: Lock names that do not represent jobs
    """

    def __init__(
        self, lock_store: LockStore, exclude: tuple[str, ...] = (LEDGER_LOCK_NAME,)
    ) -> None:
        self.lock_store = lock_store
        self.exclude = frozenset(exclude)

    def active_jobs(self) -> list[LockInfo]:
        """List job locks whose holders count as running."""
        return [
            info
            for info in self.lock_store.list_locks()
            if info.name not in self.exclude and info.liveness in _ACTIVE_STATES
        ]

    def active_count(self) -> int:
        return len(self.active_jobs())

    def check(self, max_concurrent: int) -> bool:
        """Return True if another job may start.

        Args:
            max_concurrent: Maximum simultaneously active jobs
        """
        active = self.active_count()
        if active >= max_concurrent:
            logger.info(f"Concurrency limit reached: {active}/{max_concurrent} active jobs")
            return False
        return True
