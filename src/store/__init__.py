"""Versioned store - replicated history with compare-and-swap publish."""

from .base import (
    CommitInfo,
    MergeOutcome,
    PublishOutcome,
    PublishStatus,
    ResetMode,
    StoreError,
    StoreErrorKind,
    VersionedStore,
)
from .git import GitStore

__all__ = [
    "CommitInfo",
    "GitStore",
    "MergeOutcome",
    "PublishOutcome",
    "PublishStatus",
    "ResetMode",
    "StoreError",
    "StoreErrorKind",
    "VersionedStore",
]
