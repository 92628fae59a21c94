"""Shared machinery for repository-layout catalog adapters.

A catalog adapter reads a known directory layout (collections, skills, apm
packages) either from a local directory or from a GitHub repository. The
remote and local variant of each catalog differ only in their ContentTree.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from pathlib import PurePosixPath
from typing import Any
from typing import ClassVar

import yaml

from ..errors import AdapterError
from ..models import Bundle
from ..models import BundleArchive
from ..models import RegistrySource
from ..models import SourceMetadata
from ..models import SourceValidationResult
from ..models import utc_now_iso
from ..utils.file_types import determine_file_type
from ..utils.file_types import strip_type_extension
from ..utils.github_url import parse_github_url
from .base import DEFAULT_CACHE_TTL
from .base import DEPLOYMENT_MANIFEST
from .base import SourceAdapter
from .base import build_deployment_manifest
from .base import resolve_local_path
from .base import title_case
from .base import validation_failure
from .trees import ContentTree
from .trees import GitHubTree
from .trees import LocalTree

logger = logging.getLogger(__name__)

LOCAL_AUTHOR = "Local Developer"


class CatalogAdapter(SourceAdapter):
    """Base for adapters that discover bundles from manifests in a content tree.

    Subclasses set:
        local: Read from a local directory instead of GitHub
        label: Source kind used in messages ("local awesome-copilot")
        noun: What the catalog holds ("collections")
        root_config_key / default_root: config key and default for the catalog sub-path
        root_description: Name of the catalog directory in messages
    """

    local: ClassVar[bool] = False
    label: ClassVar[str]
    noun: ClassVar[str]
    root_config_key: ClassVar[str]
    default_root: ClassVar[str]
    root_description: ClassVar[str]

    def __init__(self, source: RegistrySource, cache_ttl: float = DEFAULT_CACHE_TTL) -> None:
        super().__init__(source, cache_ttl)
        self.branch = str(self.config.get("branch") or "main")
        self.catalog_path = str(self.config.get(self.root_config_key, self.default_root) or "").strip("/")
        self.tree: ContentTree
        if self.local:
            self.root = resolve_local_path(source.url)
            self.owner = None
            self.repo = None
            self.tree = LocalTree(self.root)
        else:
            parsed = parse_github_url(source.url)
            self.owner = parsed.owner
            self.repo = parsed.repo
            self.tree = GitHubTree(parsed.owner, parsed.repo, self.branch, source.token)
        logger.info(f"{type(self).__name__} initialized for: {source.url}")

    @property
    def default_author(self) -> str:
        return LOCAL_AUTHOR if self.local else str(self.owner)

    def _cache_key(self) -> str:
        return self.source.url if self.local else f"{self.source.url}-{self.branch}"

    def _path(self, *parts: str) -> str:
        return "/".join(part.strip("/") for part in (self.catalog_path, *parts) if part and part.strip("/"))

    async def _ensure_catalog_root(self) -> None:
        if not await self.tree.is_dir(self.catalog_path):
            raise FileNotFoundError(
                f"{self.root_description} does not exist: {self.tree.describe(self.catalog_path)}"
            )

    @abstractmethod
    async def _list_manifests(self) -> list[str]:
        """Tree paths of every manifest in the catalog."""

    @abstractmethod
    def _manifest_path_for(self, bundle_id: str) -> str:
        """Manifest path for a bundle id, used when a bundle carries no cached pointer."""

    @abstractmethod
    async def _load_bundle(self, manifest_path: str) -> Bundle:
        """Parse one manifest into a catalog bundle."""

    @abstractmethod
    async def _collect_items(self, manifest_path: str, archive: BundleArchive) -> tuple[Bundle, list[dict[str, Any]]]:
        """Add item files to the archive; return the bundle and its manifest prompt entries."""

    async def fetch_bundles(self) -> list[Bundle]:
        cached = self._get_cached()
        if cached is not None:
            return cached

        try:
            await self._ensure_catalog_root()
            manifests = await self._list_manifests()
        except Exception as e:
            logger.error(f"Failed to list {self.label} {self.noun}: {e}")
            raise AdapterError(f"Failed to list {self.label} {self.noun}: {e}") from e

        logger.debug(f"Found {len(manifests)} {self.noun} in {self.tree.describe(self.catalog_path)}")
        bundles: list[Bundle] = []
        for manifest_path in manifests:
            try:
                bundles.append(await self._load_bundle(manifest_path))
            except (OSError, ValueError, KeyError, yaml.YAMLError) as e:
                logger.warning(f"Skipping unparsable manifest {manifest_path}: {e}")

        self._set_cached(bundles)
        return bundles

    async def fetch_metadata(self) -> SourceMetadata:
        try:
            await self._ensure_catalog_root()
            manifests = await self._list_manifests()
        except Exception as e:
            raise AdapterError(f"Failed to fetch {self.label} metadata: {e}") from e

        name = self.root.name if self.local else f"{self.owner}/{self.repo}"
        return SourceMetadata(
            name=name,
            description=f"{title_case(self.label)} {self.noun} from {self.source.url}",
            bundle_count=len(manifests),
            last_updated=utc_now_iso(),
        )

    async def validate(self) -> SourceValidationResult:
        try:
            await self._ensure_catalog_root()
            manifests = await self._list_manifests()
        except FileNotFoundError as e:
            return validation_failure(str(e))
        except Exception as e:
            return validation_failure(f"Failed to validate {self.label} source: {e}")

        if not manifests:
            return validation_failure(f"No {self.noun} found in {self.tree.describe(self.catalog_path)}")
        return SourceValidationResult(valid=True, bundles_found=len(manifests))

    def get_manifest_url(self, bundle_id: str, version: str | None = None) -> str:
        return self.tree.url_for(self._manifest_path_for(bundle_id))

    def get_download_url(self, bundle_id: str, version: str | None = None) -> str:
        # Payload is packaged on the fly from the manifest
        return self.get_manifest_url(bundle_id, version)

    async def download_bundle(self, bundle: Bundle) -> BundleArchive:
        manifest_path = bundle.manifest_file or self._manifest_path_for(bundle.id)
        logger.debug(f"Downloading bundle {bundle.id} from {manifest_path}")

        items = BundleArchive()
        try:
            resolved, prompts = await self._collect_items(manifest_path, items)
        except Exception as e:
            logger.error(f"Failed to download bundle {bundle.id}: {e}")
            raise AdapterError(f"Failed to download bundle {bundle.id}: {e}") from e

        archive = BundleArchive()
        archive.add(DEPLOYMENT_MANIFEST, build_deployment_manifest(resolved, prompts))
        archive.entries.extend(items.entries)
        logger.debug(f"Archive for {bundle.id} holds {len(archive)} entries")
        return archive

    # --- Archive helpers ---

    async def _add_file(
        self, archive: BundleArchive, path: str, origin: str, tags: list[str], file_type: str | None = None
    ) -> dict[str, Any]:
        filename = PurePosixPath(path).name
        archive.add(f"prompts/{filename}", await self.tree.read_bytes(path))
        item_id = strip_type_extension(filename)
        return {
            "id": item_id,
            "name": title_case(item_id),
            "description": f"From {origin}",
            "file": f"prompts/{filename}",
            "type": file_type or determine_file_type(filename, tags),
            "tags": list(tags),
        }

    async def _add_skill(self, archive: BundleArchive, skill_dir: str, origin: str, tags: list[str]) -> dict[str, Any]:
        skill_name = PurePosixPath(skill_dir).name
        for file_path in await self.tree.walk_files(skill_dir):
            relative = file_path[len(skill_dir) :].lstrip("/")
            archive.add(f"skills/{skill_name}/{relative}", await self.tree.read_bytes(file_path))
        return {
            "id": skill_name,
            "name": title_case(skill_name),
            "description": f"From {origin}",
            "file": f"skills/{skill_name}/SKILL.md",
            "type": "skill",
            "tags": list(tags),
        }


def parse_front_matter(text: str) -> dict[str, Any]:
    """YAML front matter of a markdown document, or {} when absent."""
    if not text.startswith("---"):
        return {}
    parts = text.split("---", 2)
    if len(parts) < 3:
        return {}
    data = yaml.safe_load(parts[1])
    return data if isinstance(data, dict) else {}
