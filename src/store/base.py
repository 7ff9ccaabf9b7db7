"""Versioned store abstraction - the replicated commit log the lock lives in."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Protocol, Sequence


class PublishStatus(str, Enum):
    """Outcome tag of a compare-and-swap publish."""
    SUCCESS = "success"
    REJECTED_DIVERGENT = "rejected_divergent"
    REJECTED_AUTH = "rejected_auth"
    REJECTED_NETWORK = "rejected_network"


class MergeOutcome(str, Enum):
    """Outcome of bringing the local branch up to the remote tip."""
    UP_TO_DATE = "up_to_date"
    FAST_FORWARD = "fast_forward"
    MERGED = "merged"
    CONFLICT = "conflict"


class ResetMode(str, Enum):
    """How far a reset reaches into the replica."""
    HARD = "hard"  # branch, index and working tree
    MIXED = "mixed"  # branch and index, working tree untouched


class StoreErrorKind(str, Enum):
    AUTH = "auth"
    NETWORK = "network"
    COMMAND = "command"


class StoreError(RuntimeError):
    """A store operation failed."""
    
    def __init__(
        self,
        message: str,
        kind: StoreErrorKind = StoreErrorKind.COMMAND,
        args: Sequence[str] = (),
        stderr: str = "",
    ):
        super().__init__(message)
        self.kind = kind
        self.git_args = list(args)
        self.stderr = stderr


@dataclass
class PublishOutcome:
    """Typed result of a publish attempt."""
    status: PublishStatus
    commit: str | None = None  # published tip, when the store reports it
    detail: str | None = None
    
    @property
    def ok(self) -> bool:
        return self.status == PublishStatus.SUCCESS


@dataclass
class CommitInfo:
    """Metadata of a single commit."""
    id: str
    author: str
    committed_at: datetime


class VersionedStore(Protocol):
    """Replica of a remote append-only history with a CAS publish primitive.
    
    The working tree lives at ``workdir``. All paths passed to the store are
    relative to it.
    """
    
    workdir: Path
    
    async def fetch(self) -> str | None:
        """Fetch the remote branch without touching the local one; return its tip."""
        ...
    
    async def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        ...
    
    async def sync_to_latest(self, author: str) -> MergeOutcome:
        """Fetch the remote branch and fast-forward or merge onto it."""
        ...
    
    async def head(self) -> str:
        """Return the id of the local branch tip."""
        ...
    
    async def remote_tip(self) -> str | None:
        """Return the remote branch tip as of the last fetch or publish, if any."""
        ...
    
    async def stage(self, *paths: str) -> None:
        ...
    
    async def stage_all(self) -> None:
        ...
    
    async def remove(self, path: str) -> None:
        """Remove a path from both the index and the working tree."""
        ...
    
    async def commit(self, message: str, author: str) -> str | None:
        """Commit the index. Returns None when the index matches HEAD."""
        ...
    
    async def publish(self, expected_tip: str) -> PublishOutcome:
        """Push the local tip only if the remote tip equals ``expected_tip``."""
        ...
    
    async def reset_to(self, commit_id: str, mode: ResetMode = ResetMode.HARD) -> None:
        ...
    
    async def read_at(self, commit_id: str, path: str) -> str | None:
        """Read a file as of a commit. Returns None if absent there."""
        ...
    
    async def last_change(self, path: str) -> CommitInfo | None:
        """Return the most recent commit that touched ``path``."""
        ...
