"""Error taxonomy for issuegate.

Lock and ledger faults are handled and logged close to where they occur.
Only processing failures and exhausted retry budgets are reported to callers
as outcomes; nothing here is meant to stop a polling loop.
"""


class IssuegateError(Exception):
    """Base exception for issuegate."""


class LockError(IssuegateError):
    """Error acquiring or managing a lock."""


class InvalidLockName(LockError, ValueError):
    """Raised when a lock name could escape the lock root."""


class LockTimeout(LockError):
    """Raised when a lock could not be acquired before the timeout.

    Transient: the caller should defer to the next cycle.
    """

    def __init__(self, name: str, timeout: float) -> None:
        super().__init__(f"Timed out after {timeout:g}s waiting for lock: {name}")
        self.name = name
        self.timeout = timeout


class LockOwnershipMismatch(LockError):
    """Raised when releasing a lock recorded under another holder."""

    def __init__(self, name: str, holder: str) -> None:
        super().__init__(f"Lock {name} is held by {holder}, not by this caller")
        self.name = name
        self.holder = holder


class LedgerError(IssuegateError):
    """Error reading or writing the execution ledger."""


class LedgerCorruption(LedgerError):
    """Raised internally when the ledger document fails to parse."""


class LedgerWriteFailure(LedgerError):
    """Raised when a ledger update could not be committed."""


class ProcessingFailure(IssuegateError):
    """The processing callback reported failure or raised."""


class RetriesExhausted(IssuegateError):
    """A trigger failed and has no retries left."""
