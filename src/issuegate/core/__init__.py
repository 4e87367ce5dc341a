"""Coordination core for issuegate.

This package contains the execution-coordination logic:
- lock_store: Named filesystem mutexes with stale-lock reclamation
- ledger: Durable, atomically replaced per-trigger status records
- governor: Advisory cap on simultaneously active jobs
- coordinator: Per-trigger decision procedure combining the three
"""

from .coordinator import Coordinator, ProcessingCallback
from .governor import ConcurrencyGovernor
from .ledger import ExecutionLedger, apply_transition, parse_document
from .lock_store import LockHandle, LockStore

__all__ = [
    "ConcurrencyGovernor",
    "Coordinator",
    "ExecutionLedger",
    "LockHandle",
    "LockStore",
    "ProcessingCallback",
    "apply_transition",
    "parse_document",
]
