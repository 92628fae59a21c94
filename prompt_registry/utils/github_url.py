"""GitHub URL parsing utilities.

Shared by the GitHub-backed source adapters and hub references.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..errors import ConfigurationError

GITHUB_URL_PATTERN = re.compile(r"github\.com[/:]([^/]+)/([^/]+?)(?:\.git)?/?$")
GITHUB_LOCATION_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")


@dataclass
class ParsedGitHubUrl:
    """Owner and repository of a GitHub URL.

    Attributes:
        owner: User or organization
        repo: Repository name without .git suffix
    """

    owner: str
    repo: str

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def clone_url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}.git"


def parse_github_url(url: str) -> ParsedGitHubUrl:
    """Parse https, ssh or scp-style GitHub URLs.

    Examples:
        >>> parse_github_url("https://github.com/github/awesome-copilot")
        ParsedGitHubUrl(owner='github', repo='awesome-copilot')

        >>> parse_github_url("git@github.com:org/repo.git")
        ParsedGitHubUrl(owner='org', repo='repo')

    Raises:
        ConfigurationError: If the URL does not point at a GitHub repository
    """
    match = GITHUB_URL_PATTERN.search(url.strip())
    if not match:
        raise ConfigurationError(f"Invalid GitHub URL: {url}")
    return ParsedGitHubUrl(owner=match.group(1), repo=match.group(2))


def is_github_location(location: str) -> bool:
    """Whether a hub location has the owner/name shape."""
    return bool(GITHUB_LOCATION_PATTERN.match(location))
