"""GitHub integration."""

from .client import GitHubClient
from .identity import GitHubIdentityProvider, UnauthenticatedError

__all__ = [
    "GitHubClient",
    "GitHubIdentityProvider",
    "UnauthenticatedError",
]
