"""Execution record models for the durable ledger."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ExecutionStatus(str, Enum):
    """Processing status of a trigger."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TriggerKey(BaseModel):
    """Identity under which work is deduplicated (repository + number).

    Attributes:
        repo: Repository full name, e.g. "org/repo".
        number: Issue or pull request number.
        kind: Trigger kind ("issue" or "pr").
    """

    model_config = ConfigDict(frozen=True)

    repo: str = Field(min_length=1, description="Repository full name")
    number: int = Field(ge=0, description="Issue or PR number")
    kind: str = Field(default="issue", pattern=r"^[A-Za-z0-9_-]+$", description="Trigger kind")

    @property
    def lock_name(self) -> str:
        """Lock name scoped to this trigger, e.g. org_repo_issue_42."""
        return f"{self.repo.replace('/', '_')}_{self.kind}_{self.number}"

    def __str__(self) -> str:
        prefix = "#" if self.kind == "issue" else f"{self.kind} #"
        return f"{self.repo} {prefix}{self.number}"


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ExecutionRecord(BaseModel):
    """Per-trigger processing status stored in the ledger.

    Attributes:
        repo: Repository full name.
        issue_number: Issue or PR number.
        kind: Trigger kind.
        status: Current processing status.
        created_at: When the first attempt was recorded.
        updated_at: Last transition time, never moves backwards.
        retry_count: Number of transitions into failed.
        details: Free-text note about the last transition.
    """

    repo: str
    issue_number: int
    kind: str = "issue"
    status: ExecutionStatus
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
    retry_count: int = Field(default=0, ge=0)
    details: str = ""

    @property
    def key(self) -> TriggerKey:
        return TriggerKey(repo=self.repo, number=self.issue_number, kind=self.kind)

    def matches(self, key: TriggerKey) -> bool:
        return (
            self.repo == key.repo and self.issue_number == key.number and self.kind == key.kind
        )

    def is_exhausted(self, max_retries: int) -> bool:
        """True if a failed trigger has used up its retry budget.

        A trigger gets one initial attempt plus ``max_retries`` retries, so
        the budget is spent once failures exceed ``max_retries``.
        """
        return self.status == ExecutionStatus.FAILED and self.retry_count > max_retries
