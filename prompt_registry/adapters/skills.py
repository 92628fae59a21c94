"""Skill catalog adapters.

A skills repository holds one directory per skill under `skills/`
(configurable through `config.skillsPath`). Each directory carries a
`SKILL.md` whose YAML front matter names the skill; every file in the
directory ships with it. One skill is one bundle.
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Any

from ..models import Bundle
from ..models import BundleArchive
from ..models import utc_now_iso
from ..utils.file_types import SKILL_FILE_NAME
from .base import infer_environments
from .base import title_case
from .catalog import CatalogAdapter
from .catalog import parse_front_matter

logger = logging.getLogger(__name__)


class SkillsAdapter(CatalogAdapter):
    type = "skills"
    label = "skills"
    noun = "skills"
    root_config_key = "skillsPath"
    default_root = "skills"
    root_description = "Skills directory"

    async def _list_manifests(self) -> list[str]:
        manifests: list[str] = []
        for entry in await self.tree.list_dir(self.catalog_path):
            if not entry.is_dir:
                continue
            children = await self.tree.list_dir(entry.path)
            if any(not child.is_dir and child.name == SKILL_FILE_NAME for child in children):
                manifests.append(f"{entry.path}/{SKILL_FILE_NAME}")
        return manifests

    def _manifest_path_for(self, bundle_id: str) -> str:
        return self._path(bundle_id, SKILL_FILE_NAME)

    async def _load_bundle(self, manifest_path: str) -> Bundle:
        skill_dir = PurePosixPath(manifest_path).parent
        front_matter = parse_front_matter(await self.tree.read_text(manifest_path))
        files = await self.tree.walk_files(str(skill_dir))

        tags = [str(tag) for tag in front_matter.get("tags") or []]
        url = self.tree.url_for(manifest_path)
        return Bundle(
            id=skill_dir.name,
            name=str(front_matter.get("name") or title_case(skill_dir.name)),
            version=str(front_matter.get("version") or "1.0.0"),
            description=str(front_matter.get("description") or ""),
            author=str(front_matter.get("author") or self.default_author),
            repository=self.source.url,
            tags=tags,
            environments=infer_environments(tags),
            source_id=self.source.id,
            manifest_url=url,
            download_url=url,
            last_updated=utc_now_iso(),
            size=f"{len(files)} files",
            license=str(front_matter.get("license") or ""),
            breakdown={"skills": 1},
            manifest_file=manifest_path,
        )

    async def _collect_items(self, manifest_path: str, archive: BundleArchive) -> tuple[Bundle, list[dict[str, Any]]]:
        bundle = await self._load_bundle(manifest_path)
        skill_dir = str(PurePosixPath(manifest_path).parent)
        prompt = await self._add_skill(archive, skill_dir, bundle.name, bundle.tags)
        prompt["description"] = bundle.description or prompt["description"]
        return bundle, [prompt]


class LocalSkillsAdapter(SkillsAdapter):
    type = "local-skills"
    label = "local skills"
    local = True
