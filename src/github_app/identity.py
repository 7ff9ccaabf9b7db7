"""Identity provider - resolves the calling actor from the GitHub token."""

import httpx
import structlog

from .client import GitHubClient

logger = structlog.get_logger()


class UnauthenticatedError(RuntimeError):
    """The configured credentials were rejected."""


class GitHubIdentityProvider:
    """Resolves the actor identity as the login of the token's owner."""
    
    def __init__(self, client: GitHubClient):
        self.client = client
        self._identity: str | None = None
    
    async def current_identity(self) -> str:
        """Return the actor's login, asking GitHub once per instance."""
        if self._identity is not None:
            return self._identity
        
        try:
            user = await self.client.get_authenticated_user()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 401:
                raise UnauthenticatedError(
                    "GitHub rejected the token; check GITHUB_TOKEN"
                ) from e
            raise
        
        self._identity = user["login"]
        logger.debug("Authenticated", identity=self._identity)
        return self._identity
