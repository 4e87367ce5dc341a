"""Outcome of handling a single trigger."""

from dataclasses import dataclass
from enum import Enum

from .record import ExecutionRecord, TriggerKey


class Outcome(str, Enum):
    """What the coordinator decided or observed for a trigger."""

    COMPLETED = "completed"
    FAILED = "failed"
    RETRIES_EXHAUSTED = "retries_exhausted"
    SKIPPED_COMPLETED = "skipped_completed"
    SKIPPED_IN_PROGRESS = "skipped_in_progress"
    SKIPPED_EXHAUSTED = "skipped_exhausted"
    DEFERRED_CAPACITY = "deferred_capacity"
    DEFERRED_BUSY = "deferred_busy"
    ERROR = "error"

    @property
    def is_deferred(self) -> bool:
        """True if the trigger should be retried on the next cycle."""
        return self in (Outcome.DEFERRED_CAPACITY, Outcome.DEFERRED_BUSY)

    @property
    def is_skipped(self) -> bool:
        return self in (
            Outcome.SKIPPED_COMPLETED,
            Outcome.SKIPPED_IN_PROGRESS,
            Outcome.SKIPPED_EXHAUSTED,
        )

    @property
    def is_failure(self) -> bool:
        """True for outcomes worth notifying about."""
        return self in (Outcome.FAILED, Outcome.RETRIES_EXHAUSTED, Outcome.ERROR)


@dataclass
class HandleResult:
    """Result of Coordinator.handle for one trigger."""

    key: TriggerKey
    outcome: Outcome
    record: ExecutionRecord | None = None
    error: Exception | None = None
    invoked: bool = False  # Whether the processing callback ran

    @property
    def message(self) -> str:
        """One-line summary for logs and CLI output."""
        text = f"{self.key}: {self.outcome.value}"
        if self.error is not None:
            text += f" ({self.error})"
        return text
