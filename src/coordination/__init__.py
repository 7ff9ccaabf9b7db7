"""Coordination layer - lock token, replica sync and the acquire/release protocol."""

from .lock_coordinator import LockCoordinator
from .models import (
    AcquireResult,
    AcquireStatus,
    LockStatus,
    RejectReason,
    ReleaseResult,
    ReleaseStatus,
    SyncFailedError,
    SyncFailure,
    SyncResult,
    SyncStatus,
)
from .synchronizer import ReplicaSynchronizer
from .token import LockToken

__all__ = [
    "AcquireResult",
    "AcquireStatus",
    "LockCoordinator",
    "LockStatus",
    "LockToken",
    "RejectReason",
    "ReleaseResult",
    "ReleaseStatus",
    "ReplicaSynchronizer",
    "SyncFailedError",
    "SyncFailure",
    "SyncResult",
    "SyncStatus",
]
