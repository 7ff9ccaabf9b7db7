"""Result types returned by the coordination layer."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from src.store import MergeOutcome, PublishStatus


class AcquireStatus(str, Enum):
    ACQUIRED = "acquired"
    ALREADY_HELD = "already_held"
    REJECTED = "rejected"


class ReleaseStatus(str, Enum):
    RELEASED = "released"
    NOT_HOLDER = "not_holder"
    REJECTED = "rejected"
    NOTHING_TO_COMMIT = "nothing_to_commit"


class RejectReason(str, Enum):
    """Why a proposal was not published."""
    LOST_RACE = "lost_race"  # another actor published first
    TRANSIENT = "transient"  # network, auth or local store failure


class SyncStatus(str, Enum):
    UP_TO_DATE = "up_to_date"
    MERGED = "merged"
    FAILED = "failed"


class SyncFailure(str, Enum):
    MERGE_CONFLICT = "merge_conflict"
    NETWORK = "network"
    AUTH = "auth"
    COMMAND = "command"


@dataclass
class AcquireResult:
    """Result of an acquire attempt."""
    status: AcquireStatus
    holder: str | None = None
    reason: RejectReason | None = None
    error: str | None = None
    commit: str | None = None
    publish_status: PublishStatus | None = None
    
    @property
    def acquired(self) -> bool:
        return self.status == AcquireStatus.ACQUIRED


@dataclass
class ReleaseResult:
    """Result of a release attempt."""
    status: ReleaseStatus
    holder: str | None = None
    reason: RejectReason | None = None
    error: str | None = None
    commit: str | None = None
    publish_status: PublishStatus | None = None
    
    @property
    def released(self) -> bool:
        return self.status == ReleaseStatus.RELEASED


@dataclass
class LockStatus:
    """Who holds the lock according to the local replica."""
    holder: str | None = None
    acquired_at: datetime | None = None
    commit: str | None = None
    
    @property
    def locked(self) -> bool:
        return self.holder is not None


@dataclass
class SyncResult:
    """Result of bringing the replica up to date."""
    status: SyncStatus
    outcome: MergeOutcome | None = None
    reason: SyncFailure | None = None
    error: str | None = None
    
    @property
    def ok(self) -> bool:
        return self.status != SyncStatus.FAILED


class SyncFailedError(RuntimeError):
    """Raised when a coordination step needs a synchronized replica and sync failed."""
    
    def __init__(self, result: SyncResult):
        super().__init__(result.error or f"Synchronization failed: {result.reason}")
        self.result = result
