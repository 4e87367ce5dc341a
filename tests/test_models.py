"""Tests for issuegate data models."""

import pytest
from pydantic import ValidationError

from issuegate.models import (
    ExecutionRecord,
    ExecutionStatus,
    HandleResult,
    Liveness,
    Outcome,
    TriggerKey,
)


@pytest.mark.unit
class TestTriggerKey:
    """Tests for TriggerKey."""

    def test_lock_name_matches_shell_naming(self) -> None:
        assert TriggerKey(repo="org/repo", number=42).lock_name == "org_repo_issue_42"
        assert TriggerKey(repo="org/repo", number=7, kind="pr").lock_name == "org_repo_pr_7"

    def test_str(self) -> None:
        assert str(TriggerKey(repo="org/repo", number=42)) == "org/repo #42"
        assert str(TriggerKey(repo="org/repo", number=7, kind="pr")) == "org/repo pr #7"

    def test_hashable_and_frozen(self) -> None:
        key = TriggerKey(repo="org/repo", number=42)
        assert {key, TriggerKey(repo="org/repo", number=42)} == {key}
        with pytest.raises(ValidationError):
            key.number = 43

    def test_empty_repo_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TriggerKey(repo="", number=1)

    @pytest.mark.parametrize("kind", ["pull/request", "", ".pr", "a b"])
    def test_kind_must_be_a_lock_name_segment(self, kind: str) -> None:
        with pytest.raises(ValidationError):
            TriggerKey(repo="org/repo", number=7, kind=kind)


@pytest.mark.unit
class TestExecutionRecord:
    """Tests for ExecutionRecord."""

    def make(self, status: ExecutionStatus, retry_count: int = 0) -> ExecutionRecord:
        return ExecutionRecord(
            repo="org/repo", issue_number=42, status=status, retry_count=retry_count
        )

    def test_key_round_trip(self) -> None:
        record = self.make(ExecutionStatus.PENDING)
        assert record.key == TriggerKey(repo="org/repo", number=42)
        assert record.matches(record.key)
        assert not record.matches(TriggerKey(repo="org/repo", number=42, kind="pr"))

    @pytest.mark.parametrize(
        ("status", "retry_count", "exhausted"),
        [
            (ExecutionStatus.FAILED, 2, False),
            (ExecutionStatus.FAILED, 3, True),
            (ExecutionStatus.COMPLETED, 9, False),
            (ExecutionStatus.IN_PROGRESS, 9, False),
        ],
    )
    def test_is_exhausted(
        self, status: ExecutionStatus, retry_count: int, exhausted: bool
    ) -> None:
        assert self.make(status, retry_count).is_exhausted(max_retries=2) is exhausted

    def test_negative_retry_count_rejected(self) -> None:
        with pytest.raises(ValidationError):
            self.make(ExecutionStatus.FAILED, -1)


@pytest.mark.unit
class TestOutcome:
    """Tests for Liveness and Outcome helpers."""

    def test_stale_states(self) -> None:
        stale = {state for state in Liveness if state.is_stale}
        assert stale == {Liveness.DEAD, Liveness.EXPIRED, Liveness.INCOMPLETE}

    def test_outcome_groups_are_disjoint(self) -> None:
        for outcome in Outcome:
            groups = [outcome.is_deferred, outcome.is_skipped, outcome.is_failure]
            assert sum(groups) <= 1
        assert not Outcome.COMPLETED.is_failure

    def test_message(self) -> None:
        result = HandleResult(
            key=TriggerKey(repo="org/repo", number=42),
            outcome=Outcome.FAILED,
            error=RuntimeError("boom"),
        )
        assert result.message == "org/repo #42: failed (boom)"
