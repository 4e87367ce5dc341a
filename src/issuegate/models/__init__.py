"""Pydantic data models for issuegate.

This package defines the data structures shared by the coordination core:
- Lock container metadata (LockInfo, Liveness)
- Trigger identity and ledger records (TriggerKey, ExecutionRecord)
- Per-trigger decisions (Outcome, HandleResult)

Example:
    >>> from issuegate.models import TriggerKey
    >>> TriggerKey(repo="org/repo", number=42).lock_name
    'org_repo_issue_42'
"""

from .lock import Liveness, LockInfo
from .outcome import HandleResult, Outcome
from .record import ExecutionRecord, ExecutionStatus, TriggerKey

__all__ = [
    "ExecutionRecord",
    "ExecutionStatus",
    "HandleResult",
    "Liveness",
    "LockInfo",
    "Outcome",
    "TriggerKey",
]
