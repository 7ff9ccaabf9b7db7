"""GitHub API client - users, the shared repository and its collaborators."""

from typing import Any

import httpx
import structlog

from src.orchestrator.config import Settings

logger = structlog.get_logger()


class GitHubClient:
    """GitHub REST client authenticated with a personal access token."""
    
    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings
        self.transport = transport
    
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.github_token}",
            "Accept": "application/vnd.github+json",
        }
    
    async def _request(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> Any:
        """Make authenticated request to GitHub API."""
        async with httpx.AsyncClient(transport=self.transport) as client:
            resp = await client.request(
                method,
                f"{self.settings.github_api_url}{path}",
                headers=self._headers(),
                **kwargs,
            )
            resp.raise_for_status()
            return resp.json() if resp.content else {}
    
    async def _get_or_none(self, path: str) -> dict[str, Any] | None:
        try:
            return await self._request("GET", path)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
    
    # === Users ===
    
    async def get_authenticated_user(self) -> dict[str, Any]:
        """Get the user owning the token."""
        return await self._request("GET", "/user")
    
    async def get_user(self, login: str) -> dict[str, Any] | None:
        """Get a user by login, or None if there is no such user."""
        return await self._get_or_none(f"/users/{login}")
    
    # === Repositories ===
    
    async def get_repository(self, owner: str, name: str) -> dict[str, Any] | None:
        """Get a repository, or None if it doesn't exist or isn't visible."""
        return await self._get_or_none(f"/repos/{owner}/{name}")
    
    async def create_repository(
        self,
        name: str,
        private: bool = True,
    ) -> dict[str, Any]:
        """Create a repository for the authenticated user."""
        result = await self._request(
            "POST",
            "/user/repos",
            json={"name": name, "private": private},
        )
        logger.info("Created repository", repo=result.get("full_name"))
        return result
    
    # === Collaborators ===
    
    async def list_collaborators(self, owner: str, name: str) -> list[str]:
        """List collaborator logins of a repository."""
        result = await self._request(
            "GET",
            f"/repos/{owner}/{name}/collaborators",
            params={"per_page": 100},
        )
        return [user["login"] for user in result]
    
    async def add_collaborator(self, owner: str, name: str, login: str) -> dict[str, Any]:
        """Invite a user as collaborator."""
        result = await self._request(
            "PUT",
            f"/repos/{owner}/{name}/collaborators/{login}",
        )
        logger.info("Added collaborator", repo=f"{owner}/{name}", login=login)
        return result
    
    async def remove_collaborator(self, owner: str, name: str, login: str) -> None:
        """Remove a collaborator."""
        await self._request(
            "DELETE",
            f"/repos/{owner}/{name}/collaborators/{login}",
        )
        logger.info("Removed collaborator", repo=f"{owner}/{name}", login=login)
