"""Awesome Copilot collection adapters.

Collections are YAML manifests under `collections/` (configurable through
`config.collectionsPath`) named `<id>.collection.yml`:

    id: azure-cloud
    name: Azure Cloud Development
    description: Prompts for Azure work
    tags: [azure, cloud]
    items:
      - path: prompts/azure-review.prompt.md
        kind: prompt
      - path: instructions/bicep.instructions.md
        kind: instruction
      - path: skills/deploy/SKILL.md
        kind: skill

The remote adapter reads a GitHub repository (`config.branch`, default
`main`); the local adapter reads an absolute path or file:// URL.
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
from ..utils.file_types import map_kind_to_type
from .base import infer_environments
from .catalog import CatalogAdapter

logger = logging.getLogger(__name__)

COLLECTION_SUFFIX = ".collection.yml"


def calculate_breakdown(items: list[dict[str, Any]]) -> dict[str, int]:
    """Count collection items per content type."""
    breakdown = dict.fromkeys(BREAKDOWN_KEYS.values(), 0)
    for item in items:
        breakdown[BREAKDOWN_KEYS[map_kind_to_type(str(item.get("kind", "prompt")))]] += 1
    return breakdown


class AwesomeCopilotAdapter(CatalogAdapter):
    """Collections from a GitHub-hosted awesome-copilot style repository."""

    type = "awesome-copilot"
    label = "awesome-copilot"
    noun = "collections"
    root_config_key = "collectionsPath"
    default_root = "collections"
    root_description = "Collections directory"

    async def _list_manifests(self) -> list[str]:
        entries = await self.tree.list_dir(self.catalog_path)
        return [entry.path for entry in entries if not entry.is_dir and entry.name.endswith(COLLECTION_SUFFIX)]

    def _manifest_path_for(self, bundle_id: str) -> str:
        return self._path(f"{bundle_id}{COLLECTION_SUFFIX}")

    async def load_collection(self, manifest_path: str) -> dict[str, Any]:
        """Read and minimally validate one collection manifest.

        Raises:
            ValueError: If the document has no id or its items are not a list
        """
        collection = yaml.safe_load(await self.tree.read_text(manifest_path))
        if not isinstance(collection, dict) or not collection.get("id"):
            raise ValueError(f"Collection manifest has no id: {manifest_path}")
        items = collection.get("items") or []
        if not isinstance(items, list):
            raise ValueError(f"Collection items must be a list: {manifest_path}")
        collection["items"] = [item for item in items if isinstance(item, dict) and item.get("path")]
        return collection

    def _collection_to_bundle(self, collection: dict[str, Any], manifest_path: str) -> Bundle:
        tags = [str(tag) for tag in collection.get("tags") or []]
        items = collection["items"]
        url = self.tree.url_for(manifest_path)
        return Bundle(
            id=str(collection["id"]),
            name=str(collection.get("name") or collection["id"]),
            version=str(collection.get("version") or "1.0.0"),
            description=str(collection.get("description") or ""),
            author=str(collection.get("author") or self.default_author),
            repository=self.source.url,
            tags=tags,
            environments=infer_environments(tags),
            source_id=self.source.id,
            manifest_url=url,
            download_url=url,
            last_updated=utc_now_iso(),
            size=f"{len(items)} items",
            license=str(collection.get("license") or "MIT"),
            breakdown=calculate_breakdown(items),
            manifest_file=manifest_path,
        )

    async def _load_bundle(self, manifest_path: str) -> Bundle:
        return self._collection_to_bundle(await self.load_collection(manifest_path), manifest_path)

    async def resolve_collection_item_paths(self, collection: dict[str, Any]) -> list[str]:
        """Every file a collection pulls in.

        A skill item expands to all files under its containing directory.
        """
        paths: list[str] = []
        for item in collection.get("items") or []:
            item_path = str(item["path"]).lstrip("/")
            if map_kind_to_type(str(item.get("kind", "prompt"))) == "skill":
                resolved = await self.tree.walk_files(str(PurePosixPath(item_path).parent))
            else:
                resolved = [item_path]
            paths.extend(path for path in resolved if path not in paths)
        return paths

    async def _collect_items(self, manifest_path: str, archive: BundleArchive) -> tuple[Bundle, list[dict[str, Any]]]:
        collection = await self.load_collection(manifest_path)
        bundle = self._collection_to_bundle(collection, manifest_path)

        prompts: list[dict[str, Any]] = []
        for item in collection["items"]:
            item_path = str(item["path"]).lstrip("/")
            file_type = map_kind_to_type(str(item.get("kind", "prompt")))
            if file_type == "skill":
                skill_dir = str(PurePosixPath(item_path).parent)
                prompts.append(await self._add_skill(archive, skill_dir, bundle.name, bundle.tags))
            else:
                prompts.append(await self._add_file(archive, item_path, bundle.name, bundle.tags, file_type))
        return bundle, prompts


class LocalAwesomeCopilotAdapter(AwesomeCopilotAdapter):
    """Collections from a local awesome-copilot style checkout."""

    type = "local-awesome-copilot"
    label = "local awesome-copilot"
    local = True
