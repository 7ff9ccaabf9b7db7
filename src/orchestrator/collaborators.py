"""Collaborators - who else may take turns on the shared repository."""

import structlog

from src.github_app import GitHubClient

from .config import Settings
from .runs import IdentityProvider

logger = structlog.get_logger()


class CollaboratorError(RuntimeError):
    """A collaborator change was refused."""


class CollaboratorManager:
    """Lists, invites and removes collaborators. Owner only."""
    
    def __init__(
        self,
        settings: Settings,
        github: GitHubClient,
        identity_provider: IdentityProvider,
    ):
        self.settings = settings
        self.github = github
        self.identity_provider = identity_provider
    
    async def _owner(self) -> tuple[str, str]:
        identity = await self.identity_provider.current_identity()
        owner = self.settings.repository_owner or identity
        if owner != identity:
            raise CollaboratorError(
                f"Only {owner} can manage collaborators of {owner}/{self.settings.repository_name}."
            )
        return owner, identity
    
    async def list_all(self) -> list[str]:
        """Collaborator logins, excluding the owner."""
        owner, identity = await self._owner()
        logins = await self.github.list_collaborators(owner, self.settings.repository_name)
        return [login for login in logins if login != identity]
    
    async def add(self, login: str) -> None:
        owner, identity = await self._owner()
        if login == identity:
            raise CollaboratorError(
                f"You can't add yourself as a collaborator to {owner}/{self.settings.repository_name}."
            )
        await self.github.add_collaborator(owner, self.settings.repository_name, login)
    
    async def remove(self, login_or_number: str) -> str:
        """Remove by login or by 1-based position in ``list_all()``. Returns the login."""
        owner, _ = await self._owner()
        collaborators = await self.list_all()
        
        if login_or_number.isdigit():
            position = int(login_or_number)
            if not 1 <= position <= len(collaborators):
                raise CollaboratorError(f"No collaborator number {position}.")
            login = collaborators[position - 1]
        elif login_or_number in collaborators:
            login = login_or_number
        else:
            raise CollaboratorError("No such collaborator was found.")
        
        await self.github.remove_collaborator(owner, self.settings.repository_name, login)
        return login
