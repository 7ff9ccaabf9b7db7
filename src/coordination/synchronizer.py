"""Replica synchronizer - pulls the published history before every coordination step."""

import structlog

from src.store import MergeOutcome, ResetMode, StoreError, StoreErrorKind, VersionedStore

from .models import SyncFailedError, SyncFailure, SyncResult, SyncStatus
from .token import LockToken

logger = structlog.get_logger()

FAILURE_BY_KIND = {
    StoreErrorKind.AUTH: SyncFailure.AUTH,
    StoreErrorKind.NETWORK: SyncFailure.NETWORK,
    StoreErrorKind.COMMAND: SyncFailure.COMMAND,
}


class ReplicaSynchronizer:
    """Keeps the local replica at the latest published remote history.
    
    Failures are classified rather than raised, so callers can tell a merge
    conflict or a network outage apart from lock contention.
    """
    
    def __init__(self, store: VersionedStore, author: str):
        self.store = store
        self.author = author
    
    def _failed(self, error: StoreError) -> SyncResult:
        reason = FAILURE_BY_KIND.get(error.kind, SyncFailure.COMMAND)
        logger.error("Synchronization failed", reason=reason, error=str(error))
        return SyncResult(status=SyncStatus.FAILED, reason=reason, error=str(error))
    
    async def sync(self) -> SyncResult:
        """Fetch remote history and fast-forward or merge the local branch."""
        logger.debug("Synchronizing replica", workdir=str(self.store.workdir))
        
        try:
            outcome = await self.store.sync_to_latest(self.author)
        except StoreError as e:
            return self._failed(e)
        
        if outcome == MergeOutcome.CONFLICT:
            logger.error("Synchronization needs manual conflict resolution")
            return SyncResult(
                status=SyncStatus.FAILED,
                outcome=outcome,
                reason=SyncFailure.MERGE_CONFLICT,
                error="Remote history conflicts with local changes; resolve it manually",
            )
        
        if outcome == MergeOutcome.UP_TO_DATE:
            logger.debug("Replica up to date")
            return SyncResult(status=SyncStatus.UP_TO_DATE, outcome=outcome)
        
        logger.info("Replica synchronized", outcome=outcome)
        return SyncResult(status=SyncStatus.MERGED, outcome=outcome)
    
    async def ensure_synced(self) -> SyncResult:
        """Sync, raising SyncFailedError when the replica could not be brought up to date."""
        result = await self.sync()
        if not result.ok:
            raise SyncFailedError(result)
        return result
    
    async def recover(self, token: LockToken) -> SyncResult:
        """Re-derive the replica from the remote tip after an interrupted run.
        
        Unpublished local commits are dropped with a mixed reset, keeping the
        working tree content, and the lock token is restored to exactly what
        the remote tip holds.
        """
        try:
            remote = await self.store.fetch()
            if remote is None:
                raise StoreError("Remote branch not found")
            
            local = await self.store.head()
            if await self.store.is_ancestor(local, remote):
                # Nothing unpublished; a plain sync is enough
                return await self.sync()
            
            logger.warning(
                "Discarding unpublished local commits",
                local=local,
                remote=remote,
            )
            await self.store.reset_to(remote, ResetMode.MIXED)
            holder = await self.store.read_at(remote, token.name)
        except StoreError as e:
            return self._failed(e)
        
        if holder is None:
            token.discard()
        else:
            token.write(holder)
        
        logger.info("Replica recovered from remote", remote=remote, holder=holder)
        return SyncResult(status=SyncStatus.MERGED)
