"""Generic HTTP registry adapter.

The source URL points at a directory (or directly at a JSON file) serving an
`index.json`:

    {"name": "...", "description": "...", "bundles": [{"id": ..., "version": ...,
     "downloadUrl": "team-prompts/1.0.0/bundle.zip", ...}]}

Relative bundle URLs resolve against the index location.
"""

from __future__ import annotations

import logging
import urllib.parse
from typing import Any

from ..errors import AdapterError
from ..errors import ConfigurationError
from ..models import Bundle
from ..models import BundleArchive
from ..models import BundleDependency
from ..models import RegistrySource
from ..models import SourceMetadata
from ..models import SourceValidationResult
from ..models import utc_now_iso
from ..utils.fetch import fetch_bytes
from ..utils.fetch import fetch_json
from .base import DEFAULT_CACHE_TTL
from .base import SourceAdapter
from .base import validation_failure

logger = logging.getLogger(__name__)


class HttpAdapter(SourceAdapter):
    type = "http"

    def __init__(self, source: RegistrySource, cache_ttl: float = DEFAULT_CACHE_TTL) -> None:
        super().__init__(source, cache_ttl)
        if not source.url.startswith(("http://", "https://")):
            raise ConfigurationError(f"Invalid HTTP URL: {source.url}")
        self.headers = {"Authorization": f"Bearer {source.token}"} if source.token else None

    @property
    def base_url(self) -> str:
        return self.source.url.rstrip("/")

    @property
    def index_url(self) -> str:
        if self.base_url.endswith(".json"):
            return self.base_url
        return f"{self.base_url}/index.json"

    def resolve_url(self, url: str) -> str:
        """Absolute URL for a possibly relative index entry."""
        if url.startswith(("http://", "https://")):
            return url
        return urllib.parse.urljoin(self.index_url, url.lstrip("/"))

    async def _index(self) -> dict[str, Any]:
        index = await fetch_json(self.index_url, self.headers)
        if not isinstance(index, dict):
            raise ValueError(f"Registry index must be a JSON object: {self.index_url}")
        return index

    def _entry_to_bundle(self, entry: dict[str, Any]) -> Bundle:
        bundle_id = str(entry["id"])
        version = str(entry.get("version") or "1.0.0")
        return Bundle(
            id=bundle_id,
            name=str(entry.get("name") or bundle_id),
            version=version,
            description=str(entry.get("description") or ""),
            author=str(entry.get("author") or ""),
            source_id=self.source.id,
            environments=list(entry.get("environments") or []),
            tags=list(entry.get("tags") or []),
            last_updated=str(entry.get("lastUpdated") or ""),
            size=str(entry.get("size") or ""),
            dependencies=[
                BundleDependency(
                    bundle_id=str(dep["id"]),
                    version_range=str(dep.get("version", "*")),
                    optional=bool(dep.get("optional", False)),
                )
                for dep in entry.get("dependencies") or []
            ],
            license=str(entry.get("license") or ""),
            download_url=self.resolve_url(entry.get("downloadUrl") or self.get_download_url(bundle_id, version)),
            manifest_url=self.resolve_url(entry.get("manifestUrl") or self.get_manifest_url(bundle_id, version)),
        )

    async def fetch_metadata(self) -> SourceMetadata:
        try:
            index = await self._index()
        except Exception as e:
            raise AdapterError(f"Failed to fetch HTTP registry metadata: {e}") from e

        return SourceMetadata(
            name=index.get("name") or "HTTP Registry",
            description=index.get("description") or "",
            bundle_count=len(index.get("bundles") or []),
            last_updated=utc_now_iso(),
            version=index.get("version") or "1.0.0",
        )

    async def fetch_bundles(self) -> list[Bundle]:
        cached = self._get_cached()
        if cached is not None:
            return cached

        try:
            index = await self._index()
        except Exception as e:
            raise AdapterError(f"Failed to fetch bundles from HTTP registry: {e}") from e

        entries = index.get("bundles")
        bundles: list[Bundle] = []
        for entry in entries if isinstance(entries, list) else []:
            try:
                bundles.append(self._entry_to_bundle(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid registry entry {entry!r}: {e}")

        self._set_cached(bundles)
        return bundles

    async def validate(self) -> SourceValidationResult:
        try:
            index = await self._index()
        except Exception as e:
            return validation_failure(f"HTTP registry validation failed: {e}")

        bundles = index.get("bundles")
        if not isinstance(bundles, list):
            return validation_failure(f"Registry index has no bundles list: {self.index_url}")
        return SourceValidationResult(valid=True, bundles_found=len(bundles))

    def get_manifest_url(self, bundle_id: str, version: str | None = None) -> str:
        return f"{self.base_url}/{bundle_id}/{version or 'latest'}/deployment-manifest.yml"

    def get_download_url(self, bundle_id: str, version: str | None = None) -> str:
        return f"{self.base_url}/{bundle_id}/{version or 'latest'}/bundle.zip"

    async def download_bundle(self, bundle: Bundle) -> BundleArchive:
        url = bundle.download_url or self.get_download_url(bundle.id, bundle.version)
        try:
            return BundleArchive.from_zip(await fetch_bytes(url, self.headers))
        except Exception as e:
            raise AdapterError(f"Failed to download bundle {bundle.id}: {e}") from e
