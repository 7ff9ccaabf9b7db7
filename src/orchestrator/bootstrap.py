"""Repository bootstrap - turns the save folder into a replica of the shared repository."""

import shutil
from enum import Enum
from pathlib import Path

import structlog

from src.github_app import GitHubClient
from src.store import GitStore

from .config import Settings
from .runs import IdentityProvider

logger = structlog.get_logger()

INITIAL_COMMIT_MESSAGE = "Initial commit"


class SetupError(RuntimeError):
    """The replica cannot be set up without user intervention."""


class SetupOutcome(str, Enum):
    EXISTING = "existing"  # folder already a repository
    CREATED = "created"  # new remote repository published from the folder
    CLONED = "cloned"  # folder replaced by a clone of the remote


def clear_directory(path: Path) -> None:
    """Delete everything inside ``path``, keeping the directory itself."""
    for child in path.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


class RepositoryBootstrapper:
    """Creates or clones the shared repository into the save folder."""
    
    def __init__(
        self,
        settings: Settings,
        store: GitStore,
        github: GitHubClient,
        identity_provider: IdentityProvider,
    ):
        self.settings = settings
        self.store = store
        self.github = github
        self.identity_provider = identity_provider
    
    async def setup(self, replace: bool = False) -> SetupOutcome:
        """Make the save folder a replica.
        
        An owner without a remote repository publishes the folder as a new
        private repository. Anyone else gets a clone, which replaces the
        folder contents only when ``replace`` is set.
        """
        if self.store.is_repository():
            logger.info("Save folder is already a repository", path=str(self.store.workdir))
            return SetupOutcome.EXISTING
        
        identity = await self.identity_provider.current_identity()
        owner = self.settings.repository_owner or identity
        name = self.settings.repository_name
        
        if owner != identity and await self.github.get_user(owner) is None:
            raise SetupError(f"No GitHub user named {owner}; check REPOSITORY_OWNER.")
        
        repository = await self.github.get_repository(owner, name)
        if repository is None:
            if owner != identity:
                raise SetupError(
                    f"No repository {owner}/{name} was found. Make sure you've "
                    "been invited as a collaborator and try again."
                )
            await self._publish_new(identity, name)
            return SetupOutcome.CREATED
        
        workdir = self.store.workdir
        if workdir.exists() and any(workdir.iterdir()):
            if not replace:
                raise SetupError(
                    f"{workdir} is not empty. Its contents will be replaced with "
                    f"those of {owner}/{name}; back them up and re-run with --replace."
                )
            logger.info("Deleting local files", path=str(workdir))
            clear_directory(workdir)
        
        await self.store.clone(repository["clone_url"])
        logger.info("Cloned repository", repo=f"{owner}/{name}", path=str(workdir))
        return SetupOutcome.CLONED
    
    async def _publish_new(self, identity: str, name: str) -> None:
        await self.store.init_repository()
        await self.store.stage_all()
        await self.store.commit(INITIAL_COMMIT_MESSAGE, author=identity, allow_empty=True)
        
        repository = await self.github.create_repository(name, private=True)
        await self.store.add_remote(repository["clone_url"])
        await self.store.push_upstream()
        logger.info(
            "Created repository",
            repo=repository.get("full_name"),
            url=repository.get("html_url"),
        )
