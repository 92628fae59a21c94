"""GitHub releases adapter.

Every release carrying a `deployment-manifest.yml` asset and a `.zip`
archive asset is one version of the repository's bundle. Releases are
listed newest first, so the first bundle seen for the id is the latest.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from ..errors import AdapterError
from ..models import Bundle
from ..models import BundleArchive
from ..models import RegistrySource
from ..models import SourceMetadata
from ..models import SourceValidationResult
from ..utils.fetch import GITHUB_API_URL
from ..utils.fetch import fetch_bytes
from ..utils.fetch import fetch_json
from ..utils.fetch import github_headers
from ..utils.github_url import parse_github_url
from ..utils.versions import strip_version_prefix
from .base import DEFAULT_CACHE_TTL
from .base import DEPLOYMENT_MANIFEST
from .base import SourceAdapter
from .base import format_size
from .base import infer_environments
from .base import validation_failure

logger = logging.getLogger(__name__)

MANIFEST_ASSET_NAMES = (DEPLOYMENT_MANIFEST, "deployment-manifest.yaml")


def _body_field(body: str, field: str) -> list[str]:
    match = re.search(rf"^\s*{field}\s*:\s*(.+)$", body, re.IGNORECASE | re.MULTILINE)
    if not match:
        return []
    return [value.strip() for value in match.group(1).split(",") if value.strip()]


def _body_description(body: str) -> str:
    for line in body.splitlines():
        line = line.strip().lstrip("#").strip()
        if line and ":" not in line:
            return line
    return ""


class GitHubAdapter(SourceAdapter):
    type = "github"

    def __init__(self, source: RegistrySource, cache_ttl: float = DEFAULT_CACHE_TTL) -> None:
        super().__init__(source, cache_ttl)
        parsed = parse_github_url(source.url)
        self.owner = parsed.owner
        self.repo = parsed.repo
        self.headers = github_headers(source.token)

    @property
    def bundle_id(self) -> str:
        return f"{self.owner}-{self.repo}"

    def _api(self, suffix: str = "") -> str:
        return f"{GITHUB_API_URL}/repos/{self.owner}/{self.repo}{suffix}"

    async def _releases(self) -> list[dict[str, Any]]:
        releases = await fetch_json(self._api("/releases"), self.headers)
        return releases if isinstance(releases, list) else []

    def _release_to_bundle(self, release: dict[str, Any]) -> Bundle | None:
        assets = release.get("assets") or []
        manifest_asset = next((a for a in assets if a.get("name") in MANIFEST_ASSET_NAMES), None)
        archive_asset = next((a for a in assets if str(a.get("name", "")).endswith((".zip", ".tar.gz"))), None)
        if manifest_asset is None or archive_asset is None:
            return None

        tag = str(release.get("tag_name", ""))
        body = release.get("body") or ""
        tags = _body_field(body, "tags")
        environments = _body_field(body, "environments") or infer_environments(tags)
        return Bundle(
            id=self.bundle_id,
            name=release.get("name") or f"{self.repo} {tag}",
            version=strip_version_prefix(tag),
            description=_body_description(body),
            author=self.owner,
            source_id=self.source.id,
            environments=environments,
            tags=tags,
            last_updated=release.get("published_at") or "",
            size=format_size(int(archive_asset.get("size") or 0)),
            license="Unknown",
            manifest_url=manifest_asset["browser_download_url"],
            download_url=archive_asset["browser_download_url"],
            repository=self.source.url,
        )

    async def fetch_bundles(self) -> list[Bundle]:
        cached = self._get_cached()
        if cached is not None:
            return cached

        try:
            releases = await self._releases()
        except Exception as e:
            raise AdapterError(f"Failed to fetch bundles from GitHub: {e}") from e

        bundles = [bundle for bundle in map(self._release_to_bundle, releases) if bundle is not None]
        logger.debug(f"Found {len(bundles)} bundle releases in {self.owner}/{self.repo}")
        self._set_cached(bundles)
        return bundles

    async def fetch_metadata(self) -> SourceMetadata:
        try:
            repo_data = await fetch_json(self._api(), self.headers)
            releases = await self._releases()
        except Exception as e:
            raise AdapterError(f"Failed to fetch metadata from GitHub: {e}") from e

        return SourceMetadata(
            name=repo_data.get("name") or self.repo,
            description=repo_data.get("description") or "",
            bundle_count=len(releases),
            last_updated=repo_data.get("updated_at") or "",
        )

    async def validate(self) -> SourceValidationResult:
        try:
            await fetch_json(self._api(), self.headers)
            releases = await self._releases()
        except Exception as e:
            return validation_failure(f"GitHub validation failed: {e}")

        warnings = [] if releases else ["No releases found in repository"]
        return SourceValidationResult(valid=True, warnings=warnings, bundles_found=len(releases))

    def _release_asset_url(self, asset: str, version: str | None) -> str:
        if version:
            tag = f"v{strip_version_prefix(version)}"
            return f"https://github.com/{self.owner}/{self.repo}/releases/download/{tag}/{asset}"
        return f"https://github.com/{self.owner}/{self.repo}/releases/latest/download/{asset}"

    def get_manifest_url(self, bundle_id: str, version: str | None = None) -> str:
        return self._release_asset_url(DEPLOYMENT_MANIFEST, version)

    def get_download_url(self, bundle_id: str, version: str | None = None) -> str:
        return self._release_asset_url("bundle.zip", version)

    async def download_bundle(self, bundle: Bundle) -> BundleArchive:
        url = bundle.download_url or self.get_download_url(bundle.id, bundle.version)
        try:
            return BundleArchive.from_zip(await fetch_bytes(url, self.headers))
        except Exception as e:
            raise AdapterError(f"Failed to download bundle {bundle.id}: {e}") from e
