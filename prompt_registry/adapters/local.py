"""Local directory adapter.

Each sub-directory of the source path that holds a `deployment-manifest.yml`
is one bundle; the directory is the bundle payload. An optional
`registry.json` at the root supplies the source name and description.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC
from datetime import datetime
from pathlib import Path

import yaml

from ..errors import AdapterError
from ..models import Bundle
from ..models import BundleArchive
from ..models import BundleDependency
from ..models import RegistrySource
from ..models import SourceMetadata
from ..models import SourceValidationResult
from .base import DEFAULT_CACHE_TTL
from .base import DEPLOYMENT_MANIFEST
from .base import SourceAdapter
from .base import format_size
from .base import resolve_local_path
from .base import to_file_url
from .base import validation_failure

logger = logging.getLogger(__name__)

REGISTRY_METADATA_FILE = "registry.json"


def _mtime_iso(path: Path) -> str:
    return datetime.fromtimestamp(path.stat().st_mtime, UTC).isoformat().replace("+00:00", "Z")


def _directory_size(directory: Path) -> int:
    return sum(path.stat().st_size for path in directory.rglob("*") if path.is_file())


class LocalAdapter(SourceAdapter):
    type = "local"

    def __init__(self, source: RegistrySource, cache_ttl: float = DEFAULT_CACHE_TTL) -> None:
        super().__init__(source, cache_ttl)
        self.root = resolve_local_path(source.url)

    def _require_root(self) -> None:
        if not self.root.is_dir():
            raise FileNotFoundError(f"Directory does not exist: {self.root}")

    def _bundle_directories(self) -> list[Path]:
        self._require_root()
        return [
            child for child in sorted(self.root.iterdir()) if child.is_dir() and (child / DEPLOYMENT_MANIFEST).is_file()
        ]

    def _load_bundle(self, bundle_dir: Path) -> Bundle:
        manifest = yaml.safe_load((bundle_dir / DEPLOYMENT_MANIFEST).read_text(encoding="utf-8"))
        if not isinstance(manifest, dict):
            raise ValueError(f"Deployment manifest must be a mapping: {bundle_dir / DEPLOYMENT_MANIFEST}")

        url = to_file_url(bundle_dir)
        return Bundle(
            id=str(manifest.get("id") or bundle_dir.name),
            name=str(manifest.get("name") or bundle_dir.name),
            version=str(manifest.get("version") or "1.0.0"),
            description=str(manifest.get("description") or ""),
            author=str(manifest.get("author") or ""),
            source_id=self.source.id,
            environments=[str(env) for env in manifest.get("environments") or []],
            tags=[str(tag) for tag in manifest.get("tags") or []],
            last_updated=_mtime_iso(bundle_dir),
            size=str(manifest.get("size") or format_size(_directory_size(bundle_dir))),
            dependencies=[
                BundleDependency(
                    bundle_id=str(dep.get("id")),
                    version_range=str(dep.get("version", "*")),
                    optional=bool(dep.get("optional", False)),
                )
                for dep in manifest.get("dependencies") or []
                if isinstance(dep, dict) and dep.get("id")
            ],
            license=str(manifest.get("license") or ""),
            download_url=url,
            manifest_url=url,
            repository=manifest.get("repository"),
            manifest_file=bundle_dir.name,
        )

    async def fetch_metadata(self) -> SourceMetadata:
        try:
            bundle_dirs = self._bundle_directories()
        except OSError as e:
            raise AdapterError(f"Failed to fetch local registry metadata: {e}") from e

        name = self.root.name
        description = "Local bundle registry"
        version = "1.0.0"
        registry_file = self.root / REGISTRY_METADATA_FILE
        if registry_file.is_file():
            try:
                registry_data = json.loads(registry_file.read_text(encoding="utf-8"))
                name = registry_data.get("name") or name
                description = registry_data.get("description") or description
                version = registry_data.get("version") or version
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Ignoring unreadable {registry_file}: {e}")

        return SourceMetadata(
            name=name,
            description=description,
            bundle_count=len(bundle_dirs),
            last_updated=_mtime_iso(self.root),
            version=version,
        )

    async def fetch_bundles(self) -> list[Bundle]:
        cached = self._get_cached()
        if cached is not None:
            return cached

        try:
            bundle_dirs = self._bundle_directories()
        except OSError as e:
            raise AdapterError(f"Failed to read local directory: {e}") from e

        bundles: list[Bundle] = []
        for bundle_dir in bundle_dirs:
            try:
                bundles.append(self._load_bundle(bundle_dir))
            except (OSError, ValueError, yaml.YAMLError) as e:
                logger.warning(f"Skipping bundle directory {bundle_dir}: {e}")

        logger.debug(f"Discovered {len(bundles)} bundles in {self.root}")
        self._set_cached(bundles)
        return bundles

    async def validate(self) -> SourceValidationResult:
        try:
            bundle_dirs = self._bundle_directories()
        except OSError as e:
            return validation_failure(str(e))

        warnings = [] if bundle_dirs else [f"No bundles with {DEPLOYMENT_MANIFEST} found in {self.root}"]
        return SourceValidationResult(valid=True, errors=[], warnings=warnings, bundles_found=len(bundle_dirs))

    def get_download_url(self, bundle_id: str, version: str | None = None) -> str:
        return to_file_url(self.root / bundle_id)

    def get_manifest_url(self, bundle_id: str, version: str | None = None) -> str:
        return self.get_download_url(bundle_id, version)

    def _find_bundle_dir(self, bundle: Bundle) -> Path:
        candidates = [self.root / bundle.manifest_file] if bundle.manifest_file else []
        candidates.append(self.root / bundle.id)
        for candidate in candidates:
            if (candidate / DEPLOYMENT_MANIFEST).is_file():
                return candidate
        for bundle_dir in self._bundle_directories():
            if self._load_bundle(bundle_dir).id == bundle.id:
                return bundle_dir
        raise FileNotFoundError(f"Bundle directory not found for {bundle.id} in {self.root}")

    async def download_bundle(self, bundle: Bundle) -> BundleArchive:
        try:
            bundle_dir = self._find_bundle_dir(bundle)
            archive = BundleArchive()
            archive.add(DEPLOYMENT_MANIFEST, (bundle_dir / DEPLOYMENT_MANIFEST).read_bytes())
            for path in sorted(bundle_dir.rglob("*")):
                relative = path.relative_to(bundle_dir).as_posix()
                if path.is_file() and relative != DEPLOYMENT_MANIFEST:
                    archive.add(relative, path.read_bytes())
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise AdapterError(f"Failed to download bundle {bundle.id}: {e}") from e
        return archive
