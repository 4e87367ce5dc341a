"""Execution ledger: durable per-trigger status records.

The ledger is one JSON document holding every ExecutionRecord. Writers are
serialized by a dedicated lock from the LockStore; each write goes to a
uniquely named temporary file, is read back and validated, and only then
replaces the canonical document with ``os.replace``. Readers take no lock and
validate the document themselves, so they see either the previous or the new
document.
"""

import contextlib
import logging
import os
import uuid
from datetime import UTC, datetime
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from ..constants import HISTORY_LOCK_TIMEOUT, LEDGER_LOCK_NAME, MAX_WRITE_ATTEMPTS
from ..errors import LedgerCorruption, LedgerWriteFailure, LockTimeout
from ..models import ExecutionRecord, ExecutionStatus, TriggerKey
from .lock_store import LockStore

logger = logging.getLogger(__name__)

_document = TypeAdapter(list[ExecutionRecord])


def parse_document(content: str | bytes) -> list[ExecutionRecord]:
    """Parse and validate a ledger document.

    Raises:
        LedgerCorruption: If the content is not a valid record list
    """
    try:
        return _document.validate_json(content)
    except ValidationError as e:
        raise LedgerCorruption(f"Invalid ledger document: {e.error_count()} errors") from e


def apply_transition(
    records: list[ExecutionRecord],
    key: TriggerKey,
    status: ExecutionStatus,
    details: str,
    now: datetime,
) -> tuple[list[ExecutionRecord], ExecutionRecord]:
    """Compute the document that results from one status update.

    A transition into failed increments retry_count; any other transition
    leaves it unchanged. updated_at never moves backwards.

    Returns:
        Tuple of (new record list, updated record)
    """
    updated: list[ExecutionRecord] = []
    result: ExecutionRecord | None = None
    for record in records:
        if result is None and record.matches(key):
            retry_count = record.retry_count + (1 if status == ExecutionStatus.FAILED else 0)
            result = record.model_copy(
                update={
                    "status": status,
                    "updated_at": max(now, record.updated_at),
                    "retry_count": retry_count,
                    "details": details,
                }
            )
            updated.append(result)
        elif record.matches(key):
            # Drop duplicates left by foreign writers
            logger.warning(f"Dropping duplicate ledger record for {key}")
        else:
            updated.append(record)

    if result is None:
        result = ExecutionRecord(
            repo=key.repo,
            issue_number=key.number,
            kind=key.kind,
            status=status,
            created_at=now,
            updated_at=now,
            retry_count=1 if status == ExecutionStatus.FAILED else 0,
            details=details,
        )
        updated.append(result)

    return updated, result


class ExecutionLedger:
    """Durable, atomically replaced collection of execution records.

    Args:
        path: Location of the ledger document
        lock_store: Store providing the writer lock
        lock_timeout: Seconds to wait for the writer lock
        max_write_attempts: Compute-and-write attempts before giving up
    """

    def __init__(
        self,
        path: Path,
        lock_store: LockStore,
        lock_timeout: float = HISTORY_LOCK_TIMEOUT,
        max_write_attempts: int = MAX_WRITE_ATTEMPTS,
    ) -> None:
        self.path = Path(path)
        self.lock_store = lock_store
        self.lock_timeout = lock_timeout
        self.max_write_attempts = max_write_attempts

    def _read(self) -> list[ExecutionRecord]:
        """Read and validate the canonical document.

        Raises:
            FileNotFoundError: If no document exists yet
            LedgerCorruption: If the document does not parse
        """
        return parse_document(self.path.read_bytes())

    def records(self, status: ExecutionStatus | None = None) -> list[ExecutionRecord]:
        """List all records, optionally filtered by status.

        Lock-free; a missing or corrupt document reads as empty.
        """
        try:
            records = self._read()
        except FileNotFoundError:
            return []
        except LedgerCorruption as e:
            logger.warning(f"Ignoring unreadable ledger {self.path}: {e}")
            return []
        if status is None:
            return records
        return [r for r in records if r.status == status]

    def find(self, key: TriggerKey) -> ExecutionRecord | None:
        """Find the record for a trigger without taking the writer lock.

        Args:
            key: Trigger to look up

        Returns:
            The record, or None if absent or the document is unreadable
        """
        for record in self.records():
            if record.matches(key):
                return record
        return None

    def _load_for_write(self) -> list[ExecutionRecord]:
        """Load the document under the writer lock, resetting it if corrupt."""
        try:
            return self._read()
        except FileNotFoundError:
            return []
        except LedgerCorruption as e:
            logger.error(f"Ledger {self.path} is corrupt, resetting to empty: {e}")
            return []

    def _write(self, records: list[ExecutionRecord]) -> None:
        """Write a document via a verified temporary file.

        Raises:
            OSError: If writing or replacing fails
            LedgerCorruption: If the temporary file does not read back
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(f".{self.path.name}.{os.getpid()}.{uuid.uuid4().hex}.tmp")
        try:
            with open(tmp, "wb") as f:
                f.write(_document.dump_json(records, indent=2))
                f.flush()
                os.fsync(f.fileno())
            written = parse_document(tmp.read_bytes())
            if len(written) != len(records):
                raise LedgerCorruption(
                    f"Temporary ledger has {len(written)} records, expected {len(records)}"
                )
            os.replace(tmp, self.path)
        finally:
            with contextlib.suppress(FileNotFoundError):
                tmp.unlink()

    def upsert(
        self, key: TriggerKey, status: ExecutionStatus, details: str = ""
    ) -> ExecutionRecord:
        """Create or update the record for a trigger.

        Args:
            key: Trigger to update
            status: New status
            details: Free-text note about the transition

        Returns:
            The record as written

        Raises:
            LedgerWriteFailure: If the writer lock could not be taken or every
                write attempt failed; the canonical document is unchanged
        """
        try:
            with self.lock_store.hold(
                LEDGER_LOCK_NAME, timeout=self.lock_timeout, label=str(self.path)
            ):
                return self._upsert_locked(key, status, details)
        except LockTimeout as e:
            raise LedgerWriteFailure(f"Could not lock ledger for {key}: {e}") from e

    def _upsert_locked(
        self, key: TriggerKey, status: ExecutionStatus, details: str
    ) -> ExecutionRecord:
        last_error: Exception | None = None
        for attempt in range(1, self.max_write_attempts + 1):
            records = self._load_for_write()
            updated, record = apply_transition(
                records, key, status, details, datetime.now(UTC)
            )
            try:
                self._write(updated)
            except (OSError, LedgerCorruption) as e:
                last_error = e
                logger.warning(
                    f"Ledger write attempt {attempt}/{self.max_write_attempts} failed: {e}"
                )
                continue
            logger.debug(f"Ledger: {key} -> {status.value} (retries: {record.retry_count})")
            return record

        raise LedgerWriteFailure(
            f"Failed to update ledger for {key} after {self.max_write_attempts} attempts"
        ) from last_error
