"""Git-backed versioned store - drives the git executable against one replica."""

import asyncio
import base64
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import structlog

from .base import (
    CommitInfo,
    MergeOutcome,
    PublishOutcome,
    PublishStatus,
    ResetMode,
    StoreError,
    StoreErrorKind,
)

logger = structlog.get_logger()

AUTH_MARKERS = (
    "authentication failed",
    "could not read username",
    "invalid username or password",
    "permission denied",
    "repository not found",
    "the requested url returned error: 403",
    "the requested url returned error: 401",
)

NETWORK_MARKERS = (
    "could not resolve host",
    "unable to access",
    "failed to connect",
    "connection refused",
    "connection timed out",
    "network is unreachable",
    "could not read from remote repository",
    "early eof",
    "the remote end hung up",
)


def classify_failure(stderr: str) -> StoreErrorKind:
    """Map git's stderr to a failure kind."""
    text = stderr.lower()
    if any(marker in text for marker in AUTH_MARKERS):
        return StoreErrorKind.AUTH
    if any(marker in text for marker in NETWORK_MARKERS):
        return StoreErrorKind.NETWORK
    return StoreErrorKind.COMMAND


def parse_push_porcelain(stdout: str, ref: str) -> tuple[str, str] | None:
    """Find the (flag, summary) status line for ``ref`` in `git push --porcelain` output."""
    for line in stdout.splitlines():
        parts = line.split("\t")
        if len(parts) < 3 or len(parts[0]) != 1:
            continue
        flag, refs, summary = parts[0], parts[1], parts[2]
        if refs.endswith(f":{ref}"):
            return flag, summary
    return None


@dataclass
class GitResult:
    """Completed git invocation."""
    returncode: int
    stdout: str
    stderr: str


class GitStore:
    """VersionedStore backed by a git working copy.
    
    Publishing uses ``--force-with-lease`` pinned to the expected parent, so
    the push lands only while the remote tip is exactly that commit.
    """
    
    def __init__(
        self,
        workdir: Path,
        remote: str = "origin",
        branch: str = "main",
        token: str | None = None,
        host: str = "github.com",
        git_executable: str = "git",
    ):
        self.workdir = Path(workdir)
        self.remote = remote
        self.branch = branch
        self.token = token
        self.host = host
        self.git_executable = git_executable
    
    @property
    def branch_ref(self) -> str:
        return f"refs/heads/{self.branch}"
    
    @property
    def remote_ref(self) -> str:
        return f"refs/remotes/{self.remote}/{self.branch}"
    
    def _env(self, author: str | None = None) -> dict[str, str]:
        """Build the subprocess environment.
        
        Credentials travel as an extra HTTP header through GIT_CONFIG_*
        entries so the token never shows up in argv.
        """
        env = dict(os.environ)
        env["GIT_TERMINAL_PROMPT"] = "0"
        if self.token:
            basic = base64.b64encode(f"x-access-token:{self.token}".encode()).decode()
            env["GIT_CONFIG_COUNT"] = "1"
            env["GIT_CONFIG_KEY_0"] = f"http.https://{self.host}/.extraheader"
            env["GIT_CONFIG_VALUE_0"] = f"AUTHORIZATION: basic {basic}"
        if author:
            email = f"{author}@noreply.github.com"
            env["GIT_AUTHOR_NAME"] = author
            env["GIT_AUTHOR_EMAIL"] = email
            env["GIT_COMMITTER_NAME"] = author
            env["GIT_COMMITTER_EMAIL"] = email
        return env
    
    async def _git(
        self,
        *args: str,
        check: bool = True,
        author: str | None = None,
        cwd: Path | None = None,
    ) -> GitResult:
        """Run a git command inside the working copy."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self.git_executable,
                *args,
                cwd=str(cwd or self.workdir),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._env(author),
            )
        except FileNotFoundError as e:
            raise StoreError(f"Cannot run {self.git_executable}: {e}", args=args) from e
        
        stdout, stderr = await proc.communicate()
        result = GitResult(
            returncode=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        
        if check and result.returncode != 0:
            raise StoreError(
                f"git {args[0]} failed: {result.stderr.strip()}",
                kind=classify_failure(result.stderr),
                args=args,
                stderr=result.stderr,
            )
        return result
    
    async def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        result = await self._git("merge-base", "--is-ancestor", ancestor, descendant, check=False)
        if result.returncode not in (0, 1):
            raise StoreError(
                f"git merge-base failed: {result.stderr.strip()}",
                args=("merge-base", ancestor, descendant),
                stderr=result.stderr,
            )
        return result.returncode == 0
    
    # === Replica state ===
    
    def is_repository(self) -> bool:
        return (self.workdir / ".git").exists()
    
    async def head(self) -> str:
        result = await self._git("rev-parse", "--verify", "HEAD")
        return result.stdout.strip()
    
    async def remote_tip(self) -> str | None:
        result = await self._git(
            "rev-parse", "--verify", "--quiet", f"{self.remote_ref}^{{commit}}", check=False
        )
        if result.returncode != 0:
            return None
        return result.stdout.strip()
    
    async def read_at(self, commit_id: str, path: str) -> str | None:
        blob = f"{commit_id}:{path}"
        exists = await self._git("cat-file", "-e", blob, check=False)
        if exists.returncode != 0:
            return None
        result = await self._git("show", blob)
        return result.stdout
    
    async def last_change(self, path: str) -> CommitInfo | None:
        result = await self._git("log", "-1", "--format=%H%x00%an%x00%ct", "--", path)
        line = result.stdout.strip()
        if not line:
            return None
        commit_id, author, timestamp = line.split("\x00")
        return CommitInfo(
            id=commit_id,
            author=author,
            committed_at=datetime.fromtimestamp(int(timestamp), tz=timezone.utc),
        )
    
    # === Synchronization ===
    
    async def fetch(self) -> str | None:
        """Fetch the remote branch and return its tip."""
        await self._git(
            "fetch",
            "--quiet",
            self.remote,
            f"+{self.branch_ref}:{self.remote_ref}",
        )
        return await self.remote_tip()
    
    async def sync_to_latest(self, author: str) -> MergeOutcome:
        remote = await self.fetch()
        if remote is None:
            raise StoreError(f"Remote branch {self.branch} not found on {self.remote}")
        
        local = await self.head()
        if local == remote or await self.is_ancestor(remote, local):
            return MergeOutcome.UP_TO_DATE
        
        if await self.is_ancestor(local, remote):
            result = await self._git("merge", "--ff-only", "--quiet", self.remote_ref, check=False)
            if result.returncode != 0:
                # Local edits would be overwritten by the incoming commits
                logger.warning("Fast-forward refused", stderr=result.stderr.strip())
                return MergeOutcome.CONFLICT
            return MergeOutcome.FAST_FORWARD
        
        result = await self._git(
            "merge", "--no-edit", "--quiet", self.remote_ref, check=False, author=author
        )
        if result.returncode != 0:
            await self._git("merge", "--abort", check=False)
            logger.warning("Merge aborted", stderr=result.stderr.strip())
            return MergeOutcome.CONFLICT
        return MergeOutcome.MERGED
    
    # === Proposals ===
    
    async def stage(self, *paths: str) -> None:
        await self._git("add", "--", *paths)
    
    async def stage_all(self) -> None:
        await self._git("add", "-A")
    
    async def remove(self, path: str) -> None:
        await self._git("rm", "-q", "--cached", "--ignore-unmatch", "--", path)
        (self.workdir / path).unlink(missing_ok=True)
    
    async def commit(self, message: str, author: str, allow_empty: bool = False) -> str | None:
        if not allow_empty:
            diff = await self._git("diff", "--cached", "--quiet", check=False)
            if diff.returncode == 0:
                return None
        args = ["commit", "-q", "-m", message]
        if allow_empty:
            args.append("--allow-empty")
        await self._git(*args, author=author)
        return await self.head()
    
    async def publish(self, expected_tip: str) -> PublishOutcome:
        result = await self._git(
            "push",
            "--porcelain",
            f"--force-with-lease={self.branch_ref}:{expected_tip}",
            self.remote,
            f"HEAD:{self.branch_ref}",
            check=False,
        )
        
        status_line = parse_push_porcelain(result.stdout, self.branch_ref)
        if status_line is not None and status_line[0] == "!":
            summary = status_line[1]
            if "remote rejected" in summary:
                return PublishOutcome(status=PublishStatus.REJECTED_AUTH, detail=summary)
            return PublishOutcome(status=PublishStatus.REJECTED_DIVERGENT, detail=summary)
        
        if result.returncode == 0:
            # The push has landed; nothing after this point may fail
            return PublishOutcome(
                status=PublishStatus.SUCCESS,
                detail=status_line[1] if status_line else None,
            )
        
        detail = result.stderr.strip() or result.stdout.strip()
        if classify_failure(result.stderr) == StoreErrorKind.AUTH:
            return PublishOutcome(status=PublishStatus.REJECTED_AUTH, detail=detail)
        return PublishOutcome(status=PublishStatus.REJECTED_NETWORK, detail=detail)
    
    async def reset_to(self, commit_id: str, mode: ResetMode = ResetMode.HARD) -> None:
        await self._git("reset", f"--{mode.value}", "-q", commit_id)
    
    # === Bootstrap ===
    
    async def init_repository(self) -> None:
        self.workdir.mkdir(parents=True, exist_ok=True)
        await self._git("init", "-q", "-b", self.branch)
    
    async def add_remote(self, url: str) -> None:
        await self._git("remote", "add", self.remote, url)
    
    async def push_upstream(self) -> None:
        """Push the local branch and set it as upstream."""
        await self._git("push", "-q", "-u", self.remote, f"HEAD:{self.branch_ref}")
    
    async def clone(self, url: str) -> None:
        """Clone ``url`` into the (empty) working directory."""
        self.workdir.mkdir(parents=True, exist_ok=True)
        await self._git(
            "clone", "-q", "--origin", self.remote, "--branch", self.branch, url, "."
        )
