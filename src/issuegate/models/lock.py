"""Lock metadata model for filesystem mutexes.

A lock is a directory under the lock root; its existence alone means "held".
The holder fills in small field files after the directory is created, so the
metadata read back here may be partial.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class Liveness(str, Enum):
    """Observed state of a lock holder."""

    ACTIVE = "active"  # Local holder running, within age budget
    REMOTE = "remote"  # Held from another host, liveness unknown
    DEAD = "dead"  # Local holder process no longer exists
    EXPIRED = "expired"  # Older than the stale age threshold
    POPULATING = "populating"  # Metadata incomplete, still inside grace period
    INCOMPLETE = "incomplete"  # Metadata incomplete past the grace period

    @property
    def is_stale(self) -> bool:
        """True if a lock in this state may be reclaimed."""
        return self in (Liveness.DEAD, Liveness.EXPIRED, Liveness.INCOMPLETE)


class LockInfo(BaseModel):
    """Snapshot of a lock container and its holder metadata.

    Attributes:
        name: Resource name the lock guards.
        pid: Holder process ID, if recorded.
        host: Holder host name, if recorded.
        acquired_at: Acquisition time, if recorded.
        resource: Free-text label describing the guarded resource.
        owner: Per-acquisition token of the holder.
        age: Seconds since acquisition (or since the container was last
            touched, when no timestamp was recorded).
        liveness: Classification used for staleness and capacity checks.
    """

    name: str = Field(description="Lock resource name")
    pid: int | None = Field(default=None, description="Holder process ID")
    host: str | None = Field(default=None, description="Holder host name")
    acquired_at: datetime | None = Field(default=None, description="Acquisition time")
    resource: str = Field(default="", description="Resource label")
    owner: str | None = Field(default=None, description="Holder token")
    age: float = Field(default=0.0, description="Age in seconds")
    liveness: Liveness = Field(description="Holder liveness classification")

    @property
    def is_complete(self) -> bool:
        """True if both pid and timestamp were recorded."""
        return self.pid is not None and self.acquired_at is not None

    @property
    def holder(self) -> str:
        """Human-readable holder description."""
        return f"pid {self.pid if self.pid is not None else '?'} on {self.host or '?'}"
