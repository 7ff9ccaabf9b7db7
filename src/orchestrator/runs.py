"""Run manager - syncs the replica, then starts or ends a run."""

from typing import Protocol

import structlog

from src.coordination import (
    AcquireResult,
    LockCoordinator,
    LockStatus,
    LockToken,
    ReleaseResult,
    ReplicaSynchronizer,
    SyncResult,
)
from src.store import VersionedStore

from .config import Settings

logger = structlog.get_logger()


class IdentityProvider(Protocol):
    async def current_identity(self) -> str:
        """Resolve the calling actor's identity."""
        ...


class RunManager:
    """Front door for the three lock operations plus sync and recovery.
    
    Every acquire, release and status call runs the synchronizer first and
    stops with SyncFailedError if the replica could not be brought up to date.
    """
    
    def __init__(
        self,
        settings: Settings,
        store: VersionedStore,
        identity_provider: IdentityProvider,
    ):
        self.settings = settings
        self.store = store
        self.identity_provider = identity_provider
        self.token = LockToken(store.workdir, settings.lock_file_name)
        self.coordinator = LockCoordinator(store, self.token)
        self._synchronizer: ReplicaSynchronizer | None = None
    
    async def _get_synchronizer(self) -> ReplicaSynchronizer:
        """Lazy synchronizer, authored by the current actor."""
        if self._synchronizer is None:
            identity = await self.identity_provider.current_identity()
            self._synchronizer = ReplicaSynchronizer(self.store, author=identity)
        return self._synchronizer
    
    async def sync(self) -> SyncResult:
        synchronizer = await self._get_synchronizer()
        return await synchronizer.sync()
    
    async def recover(self) -> SyncResult:
        synchronizer = await self._get_synchronizer()
        return await synchronizer.recover(self.token)
    
    async def start_run(self) -> AcquireResult:
        identity = await self.identity_provider.current_identity()
        synchronizer = await self._get_synchronizer()
        await synchronizer.ensure_synced()
        
        result = await self.coordinator.acquire(identity)
        logger.info("Start run", identity=identity, status=result.status)
        return result
    
    async def end_run(self) -> ReleaseResult:
        identity = await self.identity_provider.current_identity()
        synchronizer = await self._get_synchronizer()
        await synchronizer.ensure_synced()
        
        result = await self.coordinator.release(identity)
        logger.info("End run", identity=identity, status=result.status)
        return result
    
    async def status(self) -> LockStatus:
        synchronizer = await self._get_synchronizer()
        await synchronizer.ensure_synced()
        return await self.coordinator.status()
