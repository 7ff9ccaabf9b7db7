"""Lock coordinator - exclusive access through commit-and-push against a shared branch."""

import structlog

from src.orchestrator.state_machine import Session, SessionStateMachine
from src.store import (
    CommitInfo,
    PublishOutcome,
    PublishStatus,
    ResetMode,
    StoreError,
    VersionedStore,
)

from .models import (
    AcquireResult,
    AcquireStatus,
    LockStatus,
    RejectReason,
    ReleaseResult,
    ReleaseStatus,
)
from .token import LockToken

logger = structlog.get_logger()

START_RUN_MESSAGE = "Start run"
END_RUN_MESSAGE = "End run"
STALE_REPLICA_ERROR = "Local history is not built on the last synchronized remote tip; sync first"


def reject_reason(outcome: PublishOutcome) -> RejectReason:
    """A divergent tip means someone else published first."""
    if outcome.status == PublishStatus.REJECTED_DIVERGENT:
        return RejectReason.LOST_RACE
    return RejectReason.TRANSIENT


class LockCoordinator:
    """Acquires and releases the shared lock.
    
    Every proposal is a single local commit published with the remote tip
    observed by the last sync as the compare-and-swap precondition. A
    proposal that is not published is rolled back to its parent before
    returning, and a lost race is never retried here.
    
    The replica must have been synchronized before acquire and release;
    see ReplicaSynchronizer.
    """
    
    def __init__(
        self,
        store: VersionedStore,
        token: LockToken,
        sessions: SessionStateMachine | None = None,
    ):
        self.store = store
        self.token = token
        self.sessions = sessions or SessionStateMachine()
    
    async def _committed_holder(self, commit_id: str) -> str | None:
        return await self.store.read_at(commit_id, self.token.name)
    
    async def _observed_tip(self, parent: str) -> str | None:
        """The synchronized remote tip, provided the local branch contains it."""
        tip = await self.store.remote_tip()
        if tip is None or not await self.store.is_ancestor(tip, parent):
            return None
        return tip
    
    async def _token_change(self) -> CommitInfo | None:
        try:
            return await self.store.last_change(self.token.name)
        except StoreError as e:
            logger.warning("Could not read lock history", error=str(e))
            return None
    
    async def status(self) -> LockStatus:
        """Report who holds the lock in the current replica."""
        holder = self.token.read()
        if holder is None:
            return LockStatus()
        
        info = await self.store.last_change(self.token.name)
        return LockStatus(
            holder=holder,
            acquired_at=info.committed_at if info else None,
            commit=info.id if info else None,
        )
    
    async def acquire(self, identity: str) -> AcquireResult:
        """Propose and publish a "Start run" commit holding the token."""
        parent = await self.store.head()
        holder = await self._committed_holder(parent) or self.token.read()
        self.sessions.observe(holder, identity)
        if holder is not None:
            logger.info("Lock already held", holder=holder, requested_by=identity)
            return AcquireResult(status=AcquireStatus.ALREADY_HELD, holder=holder)
        
        expected = await self._observed_tip(parent)
        if expected is None:
            logger.warning("Replica not synchronized", identity=identity, head=parent)
            return AcquireResult(
                status=AcquireStatus.REJECTED,
                reason=RejectReason.TRANSIENT,
                error=STALE_REPLICA_ERROR,
            )
        
        self.token.write(identity)
        
        try:
            await self.store.stage(self.token.name)
            commit = await self.store.commit(START_RUN_MESSAGE, author=identity)
            if commit is None:
                raise StoreError("Lock proposal produced no commit")
            
            logger.info("Publishing lock proposal", identity=identity, parent=parent, expected=expected)
            outcome = await self.store.publish(expected_tip=expected)
        except StoreError as e:
            await self._rollback_acquire(parent)
            logger.error("Acquire failed", identity=identity, error=str(e))
            return AcquireResult(
                status=AcquireStatus.REJECTED,
                reason=RejectReason.TRANSIENT,
                error=str(e),
            )
        
        if not outcome.ok:
            await self._rollback_acquire(parent)
            reason = reject_reason(outcome)
            logger.warning(
                "Lock proposal rejected",
                identity=identity,
                reason=reason,
                publish_status=outcome.status,
                detail=outcome.detail,
            )
            return AcquireResult(
                status=AcquireStatus.REJECTED,
                reason=reason,
                error=outcome.detail,
                publish_status=outcome.status,
            )
        
        info = await self._token_change()
        self.sessions.start(
            Session(
                holder=identity,
                acquired_at=info.committed_at if info else None,
                base_commit=expected,
                token_commit=commit,
            )
        )
        logger.info("Acquired lock", holder=identity, commit=commit)
        return AcquireResult(status=AcquireStatus.ACQUIRED, holder=identity, commit=commit)
    
    async def release(self, identity: str) -> ReleaseResult:
        """Publish the accumulated work together with removal of the token."""
        holder = self.token.read()
        self.sessions.observe(holder, identity)
        if holder != identity:
            logger.info("Release refused, not the holder", holder=holder, requested_by=identity)
            return ReleaseResult(status=ReleaseStatus.NOT_HOLDER, holder=holder)
        
        parent = await self.store.head()
        expected = await self._observed_tip(parent)
        if expected is None:
            logger.warning("Replica not synchronized", identity=identity, head=parent)
            return ReleaseResult(
                status=ReleaseStatus.REJECTED,
                holder=identity,
                reason=RejectReason.TRANSIENT,
                error=STALE_REPLICA_ERROR,
            )
        
        try:
            await self.store.stage_all()
            await self.store.remove(self.token.name)
            commit = await self.store.commit(END_RUN_MESSAGE, author=identity)
            if commit is None:
                self.token.write(identity)
                logger.info("Nothing to commit", identity=identity)
                return ReleaseResult(status=ReleaseStatus.NOTHING_TO_COMMIT, holder=identity)
            
            logger.info("Publishing release", identity=identity, parent=parent, expected=expected)
            outcome = await self.store.publish(expected_tip=expected)
        except StoreError as e:
            await self._rollback_release(parent, identity)
            logger.error("Release failed", identity=identity, error=str(e))
            return ReleaseResult(
                status=ReleaseStatus.REJECTED,
                holder=identity,
                reason=RejectReason.TRANSIENT,
                error=str(e),
            )
        
        if not outcome.ok:
            await self._rollback_release(parent, identity)
            reason = reject_reason(outcome)
            logger.warning(
                "Release rejected",
                identity=identity,
                reason=reason,
                publish_status=outcome.status,
                detail=outcome.detail,
            )
            return ReleaseResult(
                status=ReleaseStatus.REJECTED,
                holder=identity,
                reason=reason,
                error=outcome.detail,
                publish_status=outcome.status,
            )
        
        self.token.discard()
        self.sessions.end()
        logger.info("Released lock", holder=identity, commit=commit)
        return ReleaseResult(status=ReleaseStatus.RELEASED, holder=identity, commit=commit)
    
    async def _rollback_acquire(self, parent: str) -> None:
        """Drop the "Start run" proposal and its token."""
        await self.store.reset_to(parent, ResetMode.HARD)
        self.token.discard()
    
    async def _rollback_release(self, parent: str, identity: str) -> None:
        """Drop the "End run" proposal but keep the work product in the working tree."""
        await self.store.reset_to(parent, ResetMode.MIXED)
        self.token.write(identity)
