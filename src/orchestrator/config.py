"""Configuration management."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings from environment."""
    
    # GitHub
    github_token: str
    github_api_url: str = "https://api.github.com"
    github_host: str = "github.com"
    
    # Shared repository
    repository_owner: str | None = None  # defaults to the authenticated user
    repository_name: str = "DarkestDungeon2Sync"
    branch: str = "main"
    remote: str = "origin"
    
    # Replica
    save_folder_path: Path
    lock_file_name: str = "lockfile"
    git_executable: str = "git"
    
    # Logging
    log_level: str = "INFO"
    
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
