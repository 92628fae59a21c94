"""Settings model for prompt registry.

Contract:
- Inputs: Environment variables, YAML files
- Outputs: Validated settings objects
- Side Effects: None (read-only)
"""

from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict

from .. import __version__


class RegistrySettings(BaseSettings):
    """Configuration for the prompt registry.

    Attributes:
        home: Root directory for registry state (default: .prompt-registry)
        repository_root: Repository that receives repository-scope installs
        workspace_root: Directory that receives workspace-scope installs
        user_root: Directory that receives user-scope installs
        log_level: Logging level (default: info)
        cache_ttl_seconds: Lifetime of cached source catalogs
        github_token: Token sent with GitHub API requests
        generator_version: Version written into lockfile generatedBy
        default_commit_mode: Commit mode for repository-scope installs

    Example:
        >>> settings = RegistrySettings()
        >>> assert settings.cache_ttl_seconds == 300
    """

    model_config = SettingsConfigDict(
        env_prefix="PROMPT_REGISTRY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    home: str = ".prompt-registry"
    repository_root: str | None = None
    workspace_root: str | None = None
    user_root: str | None = None
    log_level: str = "info"
    cache_ttl_seconds: int = 300
    github_token: str | None = None
    generator_version: str = __version__
    default_commit_mode: Literal["commit", "local-only"] = "commit"

    @field_validator("home", "repository_root", "workspace_root", "user_root")
    @classmethod
    def expand_and_resolve_path(cls, v: str | None) -> str | None:
        """Expand ~ and resolve to absolute path.

        Args:
            v: Path string (may contain ~ or be relative)

        Returns:
            Absolute path as string, or None when unset
        """
        if v is None:
            return None
        return str(Path(v).expanduser().resolve())

    def get_user_root(self) -> Path:
        """Directory for user-scope installs (defaults to <home>/user)."""
        if self.user_root:
            return Path(self.user_root)
        return Path(self.home) / "user"
