"""Coordinator: the per-trigger decision procedure.

For each trigger the coordinator consults the ledger, sweeps stale locks,
asks the governor for capacity, takes the trigger's lock, records the
attempt, runs the processing callback and records its result. The lock is
released on every exit path. No single trigger's fault escapes ``handle``.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable, Iterable
from pathlib import Path

from ..config import IssuegateConfig, get_ledger_path, get_locks_dir
from ..constants import LOCK_TIMEOUT, MAX_CONCURRENT, MAX_RETRIES, SWEEP_LIMIT
from ..errors import (
    IssuegateError,
    LedgerWriteFailure,
    LockTimeout,
    ProcessingFailure,
    RetriesExhausted,
)
from ..models import ExecutionRecord, ExecutionStatus, HandleResult, Outcome, TriggerKey
from .governor import ConcurrencyGovernor
from .ledger import ExecutionLedger
from .lock_store import LockStore

logger = logging.getLogger(__name__)

# Performs the actual work for a trigger; returns True on success
ProcessingCallback = Callable[[TriggerKey], bool]


class Coordinator:
    """Guarantees at most one processing attempt per trigger at a time.

    Args:
        lock_store: Store for per-trigger locks
        ledger: Execution ledger
        governor: Admission check, or None to disable the capacity cap
        max_retries: Retries allowed after the first failed attempt
        max_concurrent: Maximum simultaneously active jobs
        lock_timeout: Seconds to wait for a trigger's lock
        sweep_limit: Locks inspected per opportunistic sweep (0 disables)
    """

    def __init__(
        self,
        lock_store: LockStore,
        ledger: ExecutionLedger,
        governor: ConcurrencyGovernor | None = None,
        *,
        max_retries: int = MAX_RETRIES,
        max_concurrent: int = MAX_CONCURRENT,
        lock_timeout: float = LOCK_TIMEOUT,
        sweep_limit: int = SWEEP_LIMIT,
    ) -> None:
        self.lock_store = lock_store
        self.ledger = ledger
        self.governor = governor
        self.max_retries = max_retries
        self.max_concurrent = max_concurrent
        self.lock_timeout = lock_timeout
        self.sweep_limit = sweep_limit

    @classmethod
    def from_config(cls, home: Path, config: IssuegateConfig) -> "Coordinator":
        """Build a coordinator over the lock tree and ledger under ``home``."""
        lock_store = LockStore(
            get_locks_dir(home),
            stale_lock_age=config.locks.stale_lock_age,
            incomplete_grace=config.locks.incomplete_grace,
            poll_interval=config.locks.poll_interval,
        )
        ledger = ExecutionLedger(
            get_ledger_path(home),
            lock_store,
            lock_timeout=config.locks.history_lock_timeout,
            max_write_attempts=config.ledger.max_write_attempts,
        )
        return cls(
            lock_store,
            ledger,
            ConcurrencyGovernor(lock_store),
            max_retries=config.execution.max_retries,
            max_concurrent=config.execution.max_concurrent,
            lock_timeout=config.locks.lock_timeout,
            sweep_limit=config.locks.sweep_limit,
        )

    def _skip_outcome(self, key: TriggerKey, record: ExecutionRecord | None) -> Outcome | None:
        """Decide from the ledger alone whether a trigger needs no attempt."""
        if record is None:
            return None

        if record.status == ExecutionStatus.COMPLETED:
            logger.info(f"{key} has already been processed")
            return Outcome.SKIPPED_COMPLETED

        if record.status == ExecutionStatus.IN_PROGRESS:
            if self.lock_store.is_held(key.lock_name):
                logger.info(f"{key} is currently being processed")
                return Outcome.SKIPPED_IN_PROGRESS
            # Holder is gone; recovered once we own the lock
            logger.warning(f"{key} is marked in progress but its lock is not held")
            return None

        if record.is_exhausted(self.max_retries):
            logger.debug(f"{key} has reached maximum retry attempts")
            return Outcome.SKIPPED_EXHAUSTED

        if record.status == ExecutionStatus.FAILED:
            logger.info(f"Retrying {key} (attempt {record.retry_count + 1})")
        return None

    def handle(self, key: TriggerKey, callback: ProcessingCallback) -> HandleResult:
        """Process one trigger at most once concurrently.

        Args:
            key: Trigger identity
            callback: Performs the work; returns True on success, False or
                raises on failure

        Returns:
            HandleResult describing what happened
        """
        try:
            return self._handle(key, callback)
        except (IssuegateError, OSError) as e:
            logger.error(f"Could not coordinate {key}: {e}")
            return HandleResult(key=key, outcome=Outcome.ERROR, error=e)

    def _handle(self, key: TriggerKey, callback: ProcessingCallback) -> HandleResult:
        record = self.ledger.find(key)
        skip = self._skip_outcome(key, record)
        if skip is not None:
            return HandleResult(key=key, outcome=skip, record=record)

        if self.sweep_limit:
            self.lock_store.sweep(limit=self.sweep_limit)

        if self.governor is not None and not self.governor.check(self.max_concurrent):
            logger.info(f"Deferring {key}: at capacity")
            return HandleResult(key=key, outcome=Outcome.DEFERRED_CAPACITY, record=record)

        with contextlib.ExitStack() as stack:
            try:
                stack.enter_context(
                    self.lock_store.hold(key.lock_name, timeout=self.lock_timeout, label=str(key))
                )
            except LockTimeout:
                logger.info(f"Deferring {key}: lock held by another process")
                return HandleResult(key=key, outcome=Outcome.DEFERRED_BUSY, record=record)
            return self._run_locked(key, callback)

    def _exhausted(self, key: TriggerKey, record: ExecutionRecord, invoked: bool) -> HandleResult:
        logger.warning(f"{key} has reached maximum retry attempts ({record.retry_count} failures)")
        return HandleResult(
            key=key,
            outcome=Outcome.RETRIES_EXHAUSTED,
            record=record,
            error=RetriesExhausted(f"{key} failed {record.retry_count} times"),
            invoked=invoked,
        )

    def _run_locked(self, key: TriggerKey, callback: ProcessingCallback) -> HandleResult:
        # Another process may have finished while we waited for the lock
        record = self.ledger.find(key)
        if record is not None:
            if record.status == ExecutionStatus.COMPLETED:
                logger.info(f"{key} has already been processed")
                return HandleResult(key=key, outcome=Outcome.SKIPPED_COMPLETED, record=record)

            if record.status == ExecutionStatus.IN_PROGRESS:
                # We own the trigger's lock, so whoever set this is gone
                record = self.ledger.upsert(
                    key, ExecutionStatus.FAILED, "Abandoned: holder exited before finishing"
                )
                if record.is_exhausted(self.max_retries):
                    return self._exhausted(key, record, invoked=False)
            elif record.is_exhausted(self.max_retries):
                return HandleResult(key=key, outcome=Outcome.SKIPPED_EXHAUSTED, record=record)

        self.ledger.upsert(key, ExecutionStatus.IN_PROGRESS, "Processing started")

        error: ProcessingFailure | None = None
        try:
            if not callback(key):
                error = ProcessingFailure(f"Processing reported failure for {key}")
        except Exception as e:
            logger.exception(f"Processing raised for {key}")
            error = ProcessingFailure(f"Processing raised for {key}: {e}")
            error.__cause__ = e

        try:
            if error is None:
                record = self.ledger.upsert(key, ExecutionStatus.COMPLETED, "Successfully processed")
                logger.info(f"{key} processed successfully")
                return HandleResult(
                    key=key, outcome=Outcome.COMPLETED, record=record, invoked=True
                )

            record = self.ledger.upsert(key, ExecutionStatus.FAILED, str(error))
        except LedgerWriteFailure as e:
            logger.error(f"Could not record result for {key}: {e}")
            return HandleResult(key=key, outcome=Outcome.ERROR, error=e, invoked=True)

        if record.is_exhausted(self.max_retries):
            return self._exhausted(key, record, invoked=True)
        logger.warning(f"{key} failed (attempt {record.retry_count})")
        return HandleResult(
            key=key, outcome=Outcome.FAILED, record=record, error=error, invoked=True
        )

    async def handle_many(
        self,
        keys: Iterable[TriggerKey],
        callback: ProcessingCallback,
        limit: int | None = None,
    ) -> list[HandleResult]:
        """Handle several triggers concurrently within this process.

        Each trigger runs ``handle`` in a worker thread; coordination still
        goes through the filesystem, so results match running them from
        separate processes.

        Args:
            keys: Triggers to handle
            callback: Processing callback shared by all triggers
            limit: Maximum triggers in flight (defaults to max_concurrent)

        Returns:
            One HandleResult per key, in input order
        """
        semaphore = asyncio.Semaphore(limit or self.max_concurrent)

        async def _one(key: TriggerKey) -> HandleResult:
            async with semaphore:
                return await asyncio.to_thread(self.handle, key, callback)

        return list(await asyncio.gather(*(_one(key) for key in keys)))
