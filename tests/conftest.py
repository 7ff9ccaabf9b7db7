"""Shared fixtures - an in-memory remote history with any number of replicas."""

import asyncio
import itertools
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Set test environment variables before imports that might trigger Settings
os.environ.setdefault("GITHUB_TOKEN", "test")
os.environ.setdefault("SAVE_FOLDER_PATH", "/tmp/shared-save-lock-tests")

from src.store import (
    CommitInfo,
    MergeOutcome,
    PublishOutcome,
    PublishStatus,
    ResetMode,
    StoreError,
)


@dataclass
class FakeCommit:
    id: str
    parent: str | None
    tree: dict[str, bytes]
    author: str
    message: str
    committed_at: datetime


class FakeRemote:
    """Remote branch whose tip only moves through a CAS publish."""

    def __init__(self, files: dict[str, bytes] | None = None):
        self._ids = itertools.count(1)
        root = FakeCommit(
            id="c0",
            parent=None,
            tree=dict(files or {}),
            author="owner",
            message="Initial commit",
            committed_at=datetime.now(timezone.utc),
        )
        self.commits: dict[str, FakeCommit] = {root.id: root}
        self.tip = root.id
        self.publish_failure: PublishStatus | None = None
        self.fetch_error: StoreError | None = None

    def new_id(self) -> str:
        return f"c{next(self._ids)}"

    @property
    def tree(self) -> dict[str, bytes]:
        return self.commits[self.tip].tree

    def commit_external(
        self,
        files: dict[str, bytes] | None = None,
        removed: tuple[str, ...] = (),
        author: str = "someone",
    ) -> str:
        """Publish a commit made outside any replica (manual intervention)."""
        tree = dict(self.tree)
        tree.update(files or {})
        for path in removed:
            tree.pop(path, None)
        commit = FakeCommit(
            id=self.new_id(),
            parent=self.tip,
            tree=tree,
            author=author,
            message="External change",
            committed_at=datetime.now(timezone.utc),
        )
        self.commits[commit.id] = commit
        self.tip = commit.id
        return commit.id


class FakeStore:
    """VersionedStore replica over a real working directory and in-memory history.

    Every method yields to the event loop first so concurrent actors interleave.
    """

    def __init__(self, remote: FakeRemote, workdir: Path):
        self.remote = remote
        self.workdir = workdir
        self.workdir.mkdir(parents=True, exist_ok=True)
        self.commits = dict(remote.commits)
        self._head = remote.tip
        self._remote_tip: str | None = remote.tip
        self.index = dict(self._tree(self._head))
        self._apply({}, self.index)
        self.publish_attempts = 0

    def _tree(self, commit_id: str) -> dict[str, bytes]:
        return self.commits[commit_id].tree

    def worktree(self) -> dict[str, bytes]:
        return {
            path.relative_to(self.workdir).as_posix(): path.read_bytes()
            for path in self.workdir.rglob("*")
            if path.is_file()
        }

    def _apply(self, old: dict[str, bytes], new: dict[str, bytes], paths=None) -> None:
        """Write the paths that differ between two trees into the working directory."""
        for path in paths if paths is not None else set(old) | set(new):
            target = self.workdir / path
            if path in new:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(new[path])
            else:
                target.unlink(missing_ok=True)

    async def fetch(self) -> str | None:
        await asyncio.sleep(0)
        if self.remote.fetch_error is not None:
            raise self.remote.fetch_error
        self.commits.update(self.remote.commits)
        self._remote_tip = self.remote.tip
        return self._remote_tip

    async def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        current: str | None = descendant
        while current is not None:
            if current == ancestor:
                return True
            current = self.commits[current].parent
        return False

    async def sync_to_latest(self, author: str) -> MergeOutcome:
        remote = await self.fetch()
        if self._head == remote or await self.is_ancestor(remote, self._head):
            return MergeOutcome.UP_TO_DATE
        if not await self.is_ancestor(self._head, remote):
            return MergeOutcome.CONFLICT

        old, new = self._tree(self._head), self._tree(remote)
        incoming = {p for p in set(old) | set(new) if old.get(p) != new.get(p)}
        worktree = self.worktree()
        dirty = {p for p in set(old) | set(worktree) if old.get(p) != worktree.get(p)}
        if incoming & dirty:
            return MergeOutcome.CONFLICT

        self._apply(old, new, incoming)
        self._head = remote
        self.index = dict(new)
        return MergeOutcome.FAST_FORWARD

    async def head(self) -> str:
        await asyncio.sleep(0)
        return self._head

    async def remote_tip(self) -> str | None:
        return self._remote_tip

    async def stage(self, *paths: str) -> None:
        await asyncio.sleep(0)
        for path in paths:
            target = self.workdir / path
            if target.is_file():
                self.index[path] = target.read_bytes()
            else:
                self.index.pop(path, None)

    async def stage_all(self) -> None:
        await asyncio.sleep(0)
        self.index = self.worktree()

    async def remove(self, path: str) -> None:
        await asyncio.sleep(0)
        self.index.pop(path, None)
        (self.workdir / path).unlink(missing_ok=True)

    async def commit(self, message: str, author: str) -> str | None:
        await asyncio.sleep(0)
        if self.index == self._tree(self._head):
            return None
        commit = FakeCommit(
            id=self.remote.new_id(),
            parent=self._head,
            tree=dict(self.index),
            author=author,
            message=message,
            committed_at=datetime.now(timezone.utc),
        )
        self.commits[commit.id] = commit
        self._head = commit.id
        return commit.id

    async def publish(self, expected_tip: str) -> PublishOutcome:
        await asyncio.sleep(0)
        self.publish_attempts += 1
        if self.remote.publish_failure is not None:
            return PublishOutcome(status=self.remote.publish_failure, detail="injected failure")
        if self.remote.tip != expected_tip:
            return PublishOutcome(status=PublishStatus.REJECTED_DIVERGENT, detail="stale info")
        self.remote.commits.update(self.commits)
        self.remote.tip = self._head
        self._remote_tip = self._head
        return PublishOutcome(status=PublishStatus.SUCCESS, commit=self._head)

    async def reset_to(self, commit_id: str, mode: ResetMode = ResetMode.HARD) -> None:
        await asyncio.sleep(0)
        target = self._tree(commit_id)
        if mode == ResetMode.HARD:
            touched = set(self._tree(self._head)) | set(self.index) | set(target)
            self._apply({}, target, touched)
        self._head = commit_id
        self.index = dict(target)

    async def read_at(self, commit_id: str, path: str) -> str | None:
        data = self._tree(commit_id).get(path)
        return data.decode("utf-8") if data is not None else None

    async def last_change(self, path: str) -> CommitInfo | None:
        current: str | None = self._head
        while current is not None:
            commit = self.commits[current]
            before = self._tree(commit.parent).get(path) if commit.parent else None
            if commit.tree.get(path) != before:
                return CommitInfo(id=commit.id, author=commit.author, committed_at=commit.committed_at)
            current = commit.parent
        return None


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote({"save.dat": b"v0"})


@pytest.fixture
def make_replica(tmp_path, remote):
    """Factory for replicas cloned from ``remote`` at its current tip."""
    def _make(name: str) -> FakeStore:
        return FakeStore(remote, tmp_path / name)
    return _make
