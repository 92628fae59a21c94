"""Read-only content trees behind the catalog adapters.

A catalog adapter (awesome-copilot, skills, apm) reads the same repository
layout whether it sits on local disk or on GitHub. The tree hides that
difference: paths are always forward-slash and relative to the tree root.
"""

from __future__ import annotations

import logging
from abc import ABC
from abc import abstractmethod
from dataclasses import dataclass
from pathlib import Path

from ..utils.fetch import fetch_bytes
from ..utils.fetch import fetch_json
from ..utils.fetch import github_api_url
from ..utils.fetch import github_headers
from ..utils.fetch import github_raw_url

logger = logging.getLogger(__name__)


@dataclass
class TreeEntry:
    name: str
    path: str
    is_dir: bool


def _join(*parts: str) -> str:
    return "/".join(part.strip("/") for part in parts if part and part.strip("/"))


class ContentTree(ABC):
    @abstractmethod
    async def list_dir(self, path: str) -> list[TreeEntry]:
        """List a directory.

        Raises:
            FileNotFoundError: If the directory does not exist
        """

    @abstractmethod
    async def read_bytes(self, path: str) -> bytes:
        """Read a file's content."""

    @abstractmethod
    async def is_dir(self, path: str) -> bool:
        """Whether the directory exists."""

    @abstractmethod
    def url_for(self, path: str) -> str:
        """Stable URL for a path inside the tree."""

    @abstractmethod
    def describe(self, path: str) -> str:
        """Human readable location, used in error messages."""

    async def read_text(self, path: str) -> str:
        return (await self.read_bytes(path)).decode("utf-8")

    async def walk_files(self, path: str) -> list[str]:
        """All file paths below a directory, sorted."""
        files: list[str] = []
        for entry in await self.list_dir(path):
            if entry.is_dir:
                files.extend(await self.walk_files(entry.path))
            else:
                files.append(entry.path)
        return sorted(files)


class LocalTree(ContentTree):
    def __init__(self, root: Path) -> None:
        self.root = root

    def _resolve(self, path: str) -> Path:
        return self.root / path if path else self.root

    async def list_dir(self, path: str) -> list[TreeEntry]:
        directory = self._resolve(path)
        if not directory.is_dir():
            raise FileNotFoundError(f"Directory does not exist: {directory}")
        return [
            TreeEntry(name=child.name, path=_join(path, child.name), is_dir=child.is_dir())
            for child in sorted(directory.iterdir())
        ]

    async def read_bytes(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()

    async def is_dir(self, path: str) -> bool:
        return self._resolve(path).is_dir()

    def url_for(self, path: str) -> str:
        return self._resolve(path).absolute().as_uri()

    def describe(self, path: str) -> str:
        return str(self._resolve(path))


class GitHubTree(ContentTree):
    """GitHub repository at a branch, read through the contents API and raw URLs."""

    def __init__(self, owner: str, repo: str, branch: str = "main", token: str | None = None) -> None:
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.headers = github_headers(token)

    async def list_dir(self, path: str) -> list[TreeEntry]:
        listing = await fetch_json(github_api_url(self.owner, self.repo, path, self.branch), self.headers)
        if not isinstance(listing, list):
            raise FileNotFoundError(f"Not a directory: {self.describe(path)}")
        return [
            TreeEntry(name=item["name"], path=item["path"], is_dir=item.get("type") == "dir")
            for item in sorted(listing, key=lambda item: item["name"])
        ]

    async def read_bytes(self, path: str) -> bytes:
        return await fetch_bytes(self.url_for(path), self.headers)

    async def is_dir(self, path: str) -> bool:
        try:
            await self.list_dir(path)
        except FileNotFoundError:
            return False
        return True

    def url_for(self, path: str) -> str:
        return github_raw_url(self.owner, self.repo, self.branch, path)

    def describe(self, path: str) -> str:
        return f"{self.owner}/{self.repo}@{self.branch}:{path}"
