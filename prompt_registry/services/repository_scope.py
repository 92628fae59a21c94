"""Repository scope file placement.

Contract:
- Inputs: Bundle archives (with a deployment manifest), commit mode
- Outputs: Repository-relative paths of the files written
- Side Effects: Writes under <root>/.github/, edits .git/info/exclude for
  local-only installs, prunes directories left empty on removal

Content lands in the directory its type maps to (prompts and chat modes share
.github/prompts/). Skills keep their whole directory under .github/skills/.
"""

from __future__ import annotations

import logging
from pathlib import Path
from pathlib import PurePosixPath
from typing import Any

import yaml

from ..adapters.base import DEPLOYMENT_MANIFEST
from ..models import BundleArchive
from ..models import CommitMode
from ..utils.file_integrity import ensure_directory
from ..utils.file_integrity import normalize_relative_path
from ..utils.file_types import determine_file_type
from ..utils.file_types import get_repository_target_directory
from ..utils.file_types import get_target_file_name
from ..utils.file_types import strip_type_extension

logger = logging.getLogger(__name__)

GIT_EXCLUDE_SECTION_HEADER = "# Prompt Registry (local)"


def _manifest_prompts(archive: BundleArchive) -> list[dict[str, Any]] | None:
    content = archive.get(DEPLOYMENT_MANIFEST)
    if content is None:
        return None
    try:
        manifest = yaml.safe_load(content.decode("utf-8"))
    except (UnicodeDecodeError, yaml.YAMLError) as e:
        logger.warning(f"Unreadable deployment manifest, placing files by name: {e}")
        return None
    if not isinstance(manifest, dict) or not isinstance(manifest.get("prompts"), list):
        return None
    return [item for item in manifest["prompts"] if isinstance(item, dict) and item.get("file")]


class RepositoryScopeService:
    """Places bundle files in a repository and keeps .git/info/exclude in step."""

    def __init__(self, repository_root: Path | str) -> None:
        self.repository_root = Path(repository_root)

    @property
    def git_exclude_path(self) -> Path:
        return self.repository_root / ".git" / "info" / "exclude"

    def _has_git_directory(self) -> bool:
        return (self.repository_root / ".git").exists()

    def get_target_path(self, file_type: str, file_name: str) -> Path:
        """Absolute target path for an item id of the given type."""
        relative_dir = get_repository_target_directory(file_type)
        return self.repository_root / relative_dir / get_target_file_name(file_name, file_type)

    def plan_files(self, archive: BundleArchive) -> list[tuple[str, bytes]]:
        """Repository-relative destination and content for every payload file.

        Uses the archive's deployment manifest when present; otherwise every
        non-manifest entry is typed by its name.
        """
        planned: dict[str, bytes] = {}
        prompts = _manifest_prompts(archive)

        if prompts is None:
            for entry in archive.entries:
                if entry.path == DEPLOYMENT_MANIFEST:
                    continue
                name = PurePosixPath(entry.path).name
                file_type = determine_file_type(name)
                if file_type == "skill":
                    skill_name = PurePosixPath(entry.path).parent.name
                    target = f"{get_repository_target_directory('skill')}{skill_name}/{name}"
                else:
                    target = f"{get_repository_target_directory(file_type)}{name}"
                planned[normalize_relative_path(target)] = entry.content
            return list(planned.items())

        for item in prompts:
            file_path = str(item["file"]).replace("\\", "/")
            file_type = item.get("type") or determine_file_type(file_path, item.get("tags"))

            if file_type == "skill":
                skill_dir = str(PurePosixPath(file_path).parent)
                skill_name = PurePosixPath(skill_dir).name
                prefix = f"{skill_dir}/"
                for entry in archive.entries:
                    if entry.path.startswith(prefix):
                        relative = entry.path[len(prefix) :]
                        target = f"{get_repository_target_directory('skill')}{skill_name}/{relative}"
                        planned[normalize_relative_path(target)] = entry.content
                continue

            content = archive.get(file_path)
            if content is None:
                logger.warning(f"Source file not found in archive: {file_path}")
                continue
            item_id = item.get("id") or strip_type_extension(file_path)
            target = get_repository_target_directory(file_type) + get_target_file_name(item_id, file_type)
            planned[normalize_relative_path(target)] = content

        return list(planned.items())

    async def sync_bundle(
        self, bundle_id: str, archive: BundleArchive, commit_mode: CommitMode = "commit"
    ) -> list[str]:
        """Write a bundle's files into the repository.

        Files already written are removed again if a later write fails.

        Returns:
            Repository-relative paths written, in write order
        """
        written: list[str] = []
        try:
            for relative_path, content in self.plan_files(archive):
                target = self.repository_root / relative_path
                ensure_directory(target.parent)
                target.write_bytes(content)
                written.append(relative_path)
                logger.debug(f"Wrote {relative_path}")
        except Exception:
            logger.error(f"Writing bundle {bundle_id} failed, removing {len(written)} written files")
            for relative_path in written:
                (self.repository_root / relative_path).unlink(missing_ok=True)
            self._prune_empty_dirs(written)
            raise

        if commit_mode == "local-only" and written:
            self.add_to_git_exclude(written)

        logger.info(f"Synced {len(written)} files for bundle {bundle_id}")
        return written

    async def unsync_bundle(self, paths: list[str]) -> list[str]:
        """Remove previously written files and their exclude entries.

        Returns:
            Paths that existed and were removed
        """
        removed: list[str] = []
        for relative_path in paths:
            target = self.repository_root / relative_path
            if target.is_file():
                target.unlink()
                removed.append(relative_path)
                logger.debug(f"Removed {relative_path}")

        self._prune_empty_dirs(paths)
        self.remove_from_git_exclude(paths)
        return removed

    async def switch_commit_mode(self, paths: list[str], commit_mode: CommitMode) -> None:
        if commit_mode == "local-only":
            self.add_to_git_exclude(paths)
        else:
            self.remove_from_git_exclude(paths)

    def _prune_empty_dirs(self, paths: list[str]) -> None:
        root = self.repository_root.resolve()
        for relative_path in paths:
            directory = (self.repository_root / relative_path).parent.resolve()
            while directory != root and root in directory.parents:
                if not directory.is_dir() or any(directory.iterdir()):
                    break
                directory.rmdir()
                directory = directory.parent

    # --- Git exclude ---

    def _read_exclude_sections(self) -> tuple[str, list[str], str]:
        """Split the exclude file into (text before, managed entries, text after).

        The managed section is the header line plus the non-blank,
        non-comment lines that follow it. Text outside it is returned as is.
        """
        if not self.git_exclude_path.exists():
            return "", [], ""
        lines = self.git_exclude_path.read_text(encoding="utf-8").splitlines(keepends=True)
        start = next(
            (index for index, line in enumerate(lines) if line.rstrip("\r\n") == GIT_EXCLUDE_SECTION_HEADER), None
        )
        if start is None:
            return "".join(lines), [], ""

        end = start + 1
        while end < len(lines) and lines[end].strip() and not lines[end].startswith("#"):
            end += 1
        entries = [line.strip() for line in lines[start + 1 : end]]
        return "".join(lines[:start]), entries, "".join(lines[end:])

    def _write_exclude(self, before: str, entries: list[str], after: str) -> None:
        section = ""
        if entries:
            if before and not before.endswith("\n"):
                before += "\n"
            section = "\n".join([GIT_EXCLUDE_SECTION_HEADER, *entries]) + "\n"
        ensure_directory(self.git_exclude_path.parent)
        self.git_exclude_path.write_text(before + section + after, encoding="utf-8")

    def get_git_exclude_entries(self) -> list[str]:
        return self._read_exclude_sections()[1]

    def add_to_git_exclude(self, paths: list[str]) -> None:
        if not self._has_git_directory():
            logger.warning("No .git directory found, skipping git exclude")
            return
        before, entries, after = self._read_exclude_sections()
        for path in paths:
            if path not in entries:
                entries.append(path)
        self._write_exclude(before, entries, after)
        logger.debug(f"Added {len(paths)} paths to git exclude")

    def remove_from_git_exclude(self, paths: list[str]) -> None:
        if not self._has_git_directory() or not self.git_exclude_path.exists():
            return
        before, entries, after = self._read_exclude_sections()
        if not entries:
            return
        to_remove = set(paths)
        self._write_exclude(before, [entry for entry in entries if entry not in to_remove], after)
        logger.debug(f"Removed {len(paths)} paths from git exclude")
