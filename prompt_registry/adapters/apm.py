"""APM package adapters.

An APM catalog keeps one package per directory under `packages/`
(configurable through `config.packagesPath`). A package is a directory with
an `apm.yml` manifest; its content lives under `.apm/` when present,
otherwise anywhere in the package directory.

    name: python-review
    version: 1.2.0
    description: Review prompts for Python services
    author: Platform Team
    tags: [python, backend]
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Any

import yaml

from ..models import Bundle
from ..models import BundleArchive
from ..models import utc_now_iso
from ..utils.file_types import BREAKDOWN_KEYS
from ..utils.file_types import FILE_EXTENSIONS
from ..utils.file_types import SKILL_FILE_NAME
from ..utils.file_types import determine_file_type
from .base import infer_environments
from .catalog import CatalogAdapter

logger = logging.getLogger(__name__)

APM_MANIFEST = "apm.yml"
APM_CONTENT_DIR = ".apm"

_CONTENT_SUFFIXES = tuple(ext for ext in FILE_EXTENSIONS.values() if ext)


class ApmAdapter(CatalogAdapter):
    type = "apm"
    label = "apm"
    noun = "packages"
    root_config_key = "packagesPath"
    default_root = "packages"
    root_description = "Packages directory"

    async def _list_manifests(self) -> list[str]:
        manifests: list[str] = []
        for entry in await self.tree.list_dir(self.catalog_path):
            if not entry.is_dir:
                continue
            children = await self.tree.list_dir(entry.path)
            if any(not child.is_dir and child.name == APM_MANIFEST for child in children):
                manifests.append(f"{entry.path}/{APM_MANIFEST}")
        return manifests

    def _manifest_path_for(self, bundle_id: str) -> str:
        return self._path(bundle_id, APM_MANIFEST)

    async def _content_files(self, package_dir: str) -> list[str]:
        content_dir = f"{package_dir}/{APM_CONTENT_DIR}"
        root = content_dir if await self.tree.is_dir(content_dir) else package_dir
        return [
            path
            for path in await self.tree.walk_files(root)
            if path.endswith(_CONTENT_SUFFIXES) or PurePosixPath(path).name == SKILL_FILE_NAME
        ]

    async def _load_bundle(self, manifest_path: str) -> Bundle:
        package_dir = PurePosixPath(manifest_path).parent
        manifest = yaml.safe_load(await self.tree.read_text(manifest_path)) or {}
        if not isinstance(manifest, dict):
            raise ValueError(f"APM manifest must be a mapping: {manifest_path}")

        files = await self._content_files(str(package_dir))
        tags = [str(tag) for tag in manifest.get("tags") or []]
        url = self.tree.url_for(manifest_path)
        breakdown: dict[str, int] = {}
        for path in files:
            key = BREAKDOWN_KEYS[determine_file_type(path)]
            breakdown[key] = breakdown.get(key, 0) + 1

        return Bundle(
            id=package_dir.name,
            name=str(manifest.get("name") or package_dir.name),
            version=str(manifest.get("version") or "1.0.0"),
            description=str(manifest.get("description") or ""),
            author=str(manifest.get("author") or self.default_author),
            repository=self.source.url,
            tags=tags,
            environments=infer_environments(tags),
            source_id=self.source.id,
            manifest_url=url,
            download_url=url,
            last_updated=utc_now_iso(),
            size=f"{len(files)} items",
            license=str(manifest.get("license") or ""),
            breakdown=breakdown,
            manifest_file=manifest_path,
        )

    async def _collect_items(self, manifest_path: str, archive: BundleArchive) -> tuple[Bundle, list[dict[str, Any]]]:
        bundle = await self._load_bundle(manifest_path)
        package_dir = str(PurePosixPath(manifest_path).parent)

        files = await self._content_files(package_dir)
        skill_dirs = [str(PurePosixPath(path).parent) for path in files if PurePosixPath(path).name == SKILL_FILE_NAME]

        prompts: list[dict[str, Any]] = []
        for skill_dir in skill_dirs:
            prompts.append(await self._add_skill(archive, skill_dir, bundle.name, bundle.tags))
        for path in files:
            if not any(path.startswith(f"{skill_dir}/") for skill_dir in skill_dirs):
                prompts.append(await self._add_file(archive, path, bundle.name, bundle.tags))
        return bundle, prompts


class LocalApmAdapter(ApmAdapter):
    type = "local-apm"
    label = "local apm"
    local = True
