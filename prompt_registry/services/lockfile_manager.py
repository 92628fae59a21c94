"""Lockfile management.

Owns `prompt-registry.lock.json` at a repository root: the ledger of bundles
installed at repository scope, the sources they came from, and optional hub
and profile associations.

Contract:
- Inputs: Bundle install/remove events from the registry manager
- Outputs: Lockfile models, validation results, drift reports
- Side Effects: Writes the lockfile atomically (temp file then rename),
  deletes it when the last bundle is removed, notifies listeners

Mutations are serialized by an asyncio.Lock held across the whole
read-modify-write, so concurrent updates for different bundles all land.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from typing import ClassVar

from pydantic import ValidationError

from .. import __version__
from ..errors import ConfigurationError
from ..models import COMMIT_MODES
from ..models import LOCKFILE_NAME
from ..models import LOCKFILE_SCHEMA_URL
from ..models import LOCKFILE_VERSION
from ..models import CommitMode
from ..models import Lockfile
from ..models import LockfileBundleEntry
from ..models import LockfileFileEntry
from ..models import LockfileHubEntry
from ..models import LockfileProfileEntry
from ..models import LockfileSourceEntry
from ..models import LockfileValidationResult
from ..models import ModifiedFileInfo
from ..models import utc_now_iso
from ..storage.json_store import load_json
from ..storage.json_store import save_json
from ..utils.file_integrity import calculate_file_checksum

logger = logging.getLogger(__name__)

LockfileListener = Callable[[Lockfile | None], None]

REQUIRED_TOP_LEVEL_FIELDS = ("version", "generatedAt", "generatedBy", "bundles", "sources")
REQUIRED_BUNDLE_FIELDS = ("version", "sourceId", "sourceType", "installedAt", "commitMode", "files")


@dataclass
class LockfileUpdate:
    """Everything create_or_update needs to record one bundle.

    Attributes:
        bundle_id: Bundle being recorded
        version: Installed version
        source_id: Source the bundle came from
        source_type: Adapter type of that source
        commit_mode: "commit" or "local-only"
        files: Installed files with checksums
        source: Source entry to upsert under source_id
        hub: Optional (hub_id, entry) association
        profile: Optional (profile_id, entry) association
        checksum: Optional aggregate checksum
    """

    bundle_id: str
    version: str
    source_id: str
    source_type: str
    commit_mode: CommitMode
    files: list[LockfileFileEntry]
    source: LockfileSourceEntry
    hub: tuple[str, LockfileHubEntry] | None = None
    profile: tuple[str, LockfileProfileEntry] | None = None
    checksum: str | None = None

    def validate(self) -> None:
        """Check required fields.

        Raises:
            ConfigurationError: Naming the first offending field
        """

        def blank(value: Any) -> bool:
            return not isinstance(value, str) or not value.strip()

        if blank(self.bundle_id):
            raise ConfigurationError("bundleId is required and must be a non-empty string")
        if blank(self.version):
            raise ConfigurationError("version is required and must be a non-empty string")
        if blank(self.source_id):
            raise ConfigurationError("sourceId is required and must be a non-empty string")
        if not isinstance(self.source_type, str) or not self.source_type:
            raise ConfigurationError("sourceType is required and must be a string")
        if not isinstance(self.files, list):
            raise ConfigurationError("files must be an array")
        if self.source is None:
            raise ConfigurationError("source is required and must be an object")
        if not self.source.type or not self.source.url:
            raise ConfigurationError("source must have type and url properties")
        if self.commit_mode not in COMMIT_MODES:
            raise ConfigurationError('commitMode must be either "commit" or "local-only"')


class LockfileManager:
    """Reads and writes the lockfile of one repository.

    Use get_instance() to share one manager per repository root, or construct
    directly where the caller owns the lifetime.
    """

    _instances: ClassVar[dict[str, LockfileManager]] = {}

    def __init__(self, repository_path: Path | str, generator_version: str | None = None) -> None:
        self.repository_path = Path(os.path.normpath(repository_path))
        self.lockfile_path = self.repository_path / LOCKFILE_NAME
        self.generated_by = f"prompt-registry@{generator_version or __version__}"
        self._write_lock = asyncio.Lock()
        self._listeners: list[LockfileListener] = []

    # --- Instance registry ---

    @classmethod
    def get_instance(
        cls, repository_path: Path | str | None = None, generator_version: str | None = None
    ) -> LockfileManager:
        """Shared manager for a repository root.

        generator_version only applies when the instance is first created.

        Raises:
            ConfigurationError: If no repository path is given
        """
        if not repository_path:
            raise ConfigurationError("Repository path required for LockfileManager.get_instance()")
        key = os.path.normpath(repository_path)
        if key not in cls._instances:
            cls._instances[key] = cls(key, generator_version)
        return cls._instances[key]

    @classmethod
    def reset_instance(cls, repository_path: Path | str | None = None) -> None:
        """Drop the shared manager for one root, or all of them."""
        if repository_path is None:
            for instance in cls._instances.values():
                instance.dispose()
            cls._instances.clear()
            return
        instance = cls._instances.pop(os.path.normpath(repository_path), None)
        if instance is not None:
            instance.dispose()

    def dispose(self) -> None:
        self._listeners.clear()

    # --- Listeners ---

    def on_lockfile_updated(self, listener: LockfileListener) -> Callable[[], None]:
        """Subscribe to lockfile changes.

        The listener receives the new lockfile, or None when the file was
        deleted. Returns a callable that unsubscribes.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, lockfile: Lockfile | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(lockfile)
            except Exception as e:
                logger.error(f"Lockfile listener failed: {e}")

    # --- Reading ---

    def get_lockfile_path(self) -> Path:
        return self.lockfile_path

    async def read(self) -> Lockfile | None:
        """Parsed lockfile, or None when it is absent or unparsable."""
        data = load_json(self.lockfile_path)
        if data is None:
            return None
        try:
            return Lockfile.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed lockfile {self.lockfile_path}: {e}")
            return None

    async def get_bundles(self) -> dict[str, LockfileBundleEntry]:
        lockfile = await self.read()
        return dict(lockfile.bundles) if lockfile else {}

    async def is_bundle_in_lockfile(self, bundle_id: str) -> bool:
        return bundle_id in await self.get_bundles()

    async def validate(self) -> LockfileValidationResult:
        """Structural check of the lockfile on disk; never raises."""
        if not self.lockfile_path.exists():
            return LockfileValidationResult(valid=False, errors=["Lockfile does not exist"])

        data = load_json(self.lockfile_path)
        if not isinstance(data, dict):
            return LockfileValidationResult(valid=False, errors=["Lockfile is not a valid JSON object"])

        errors: list[str] = []
        warnings: list[str] = []

        if "$schema" not in data:
            warnings.append("Missing $schema reference")
        elif data["$schema"] != LOCKFILE_SCHEMA_URL:
            warnings.append(f"Unexpected $schema: {data['$schema']}")

        for field in REQUIRED_TOP_LEVEL_FIELDS:
            if field not in data:
                errors.append(f"Missing required field: {field}")

        sources = data.get("sources") if isinstance(data.get("sources"), dict) else {}
        for source_id, source in sources.items():
            if not isinstance(source, dict) or not source.get("type") or not source.get("url"):
                errors.append(f"Source '{source_id}' must have type and url properties")

        bundles = data.get("bundles")
        if "bundles" in data and not isinstance(bundles, dict):
            errors.append("bundles must be an object")
            bundles = {}
        for bundle_id, entry in (bundles or {}).items():
            if not isinstance(entry, dict):
                errors.append(f"Bundle '{bundle_id}' must be an object")
                continue
            for field in REQUIRED_BUNDLE_FIELDS:
                if field not in entry:
                    errors.append(f"Bundle '{bundle_id}' is missing required field: {field}")
            if "commitMode" in entry and entry["commitMode"] not in COMMIT_MODES:
                errors.append(f"Bundle '{bundle_id}' has invalid commitMode: {entry['commitMode']}")
            source_id = entry.get("sourceId")
            if source_id and source_id not in sources:
                errors.append(f"Bundle '{bundle_id}' references unknown source '{source_id}'")
            for file_entry in entry.get("files") or []:
                path = file_entry.get("path", "") if isinstance(file_entry, dict) else ""
                if not path or not file_entry.get("checksum"):
                    errors.append(f"Bundle '{bundle_id}' has a file entry without path or checksum")
                elif path.startswith("/") or ".." in path.replace("\\", "/").split("/"):
                    errors.append(f"Bundle '{bundle_id}' file path must be repository-relative: {path}")

        return LockfileValidationResult(
            valid=not errors,
            errors=errors,
            warnings=warnings,
            schema_version=data.get("version"),
        )

    async def detect_modified_files(self, bundle_id: str) -> list[ModifiedFileInfo]:
        """Files of a bundle whose on-disk checksum no longer matches the lockfile.

        Unknown bundles yield an empty list.
        """
        lockfile = await self.read()
        entry = lockfile.bundles.get(bundle_id) if lockfile else None
        if entry is None:
            return []

        modified: list[ModifiedFileInfo] = []
        for file_entry in entry.files:
            file_path = self.repository_path / file_entry.path
            if not file_path.is_file():
                modified.append(
                    ModifiedFileInfo(
                        path=file_entry.path,
                        original_checksum=file_entry.checksum,
                        current_checksum="",
                        modification_type="missing",
                    )
                )
                continue

            current = calculate_file_checksum(file_path)
            if current != file_entry.checksum:
                modified.append(
                    ModifiedFileInfo(
                        path=file_entry.path,
                        original_checksum=file_entry.checksum,
                        current_checksum=current,
                        modification_type="modified",
                    )
                )

        if modified:
            logger.info(f"Detected {len(modified)} modified files for bundle {bundle_id}")
        return modified

    # --- Mutations ---

    def _create_empty(self) -> Lockfile:
        return Lockfile(
            schema_url=LOCKFILE_SCHEMA_URL,
            version=LOCKFILE_VERSION,
            generated_at=utc_now_iso(),
            generated_by=self.generated_by,
        )

    def _write(self, lockfile: Lockfile) -> None:
        save_json(self.lockfile_path, lockfile.to_dict())
        logger.debug(f"Wrote lockfile {self.lockfile_path} ({len(lockfile.bundles)} bundles)")

    def _delete(self) -> None:
        if self.lockfile_path.exists():
            self.lockfile_path.unlink()
            logger.info(f"Deleted empty lockfile {self.lockfile_path}")

    async def create_or_update(self, update: LockfileUpdate) -> Lockfile:
        """Upsert a bundle entry and its source entry.

        Raises:
            ConfigurationError: If a required field is missing or invalid
        """
        update.validate()

        async with self._write_lock:
            lockfile = await self.read() or self._create_empty()

            lockfile.bundles[update.bundle_id] = LockfileBundleEntry(
                version=update.version,
                source_id=update.source_id,
                source_type=update.source_type,
                installed_at=utc_now_iso(),
                commit_mode=update.commit_mode,
                checksum=update.checksum,
                files=list(update.files),
            )
            lockfile.sources[update.source_id] = update.source

            if update.hub is not None:
                hub_id, hub_entry = update.hub
                lockfile.hubs = {**(lockfile.hubs or {}), hub_id: hub_entry}
            if update.profile is not None:
                profile_id, profile_entry = update.profile
                lockfile.profiles = {**(lockfile.profiles or {}), profile_id: profile_entry}

            lockfile.generated_at = utc_now_iso()
            lockfile.generated_by = self.generated_by
            self._write(lockfile)

        logger.info(f"Recorded bundle {update.bundle_id}@{update.version} in {self.lockfile_path.name}")
        self._notify(lockfile)
        return lockfile

    async def remove(self, bundle_id: str) -> None:
        """Remove a bundle entry, pruning orphaned sources.

        Deletes the lockfile when no bundles remain.
        """
        async with self._write_lock:
            lockfile = await self.read()
            if lockfile is None:
                logger.debug(f"Lockfile does not exist, nothing to remove for bundle {bundle_id}")
                return

            entry = lockfile.bundles.pop(bundle_id, None)
            if entry is None:
                logger.debug(f"Bundle {bundle_id} not in lockfile")
                return

            if not any(other.source_id == entry.source_id for other in lockfile.bundles.values()):
                lockfile.sources.pop(entry.source_id, None)

            if lockfile.profiles:
                for profile_entry in lockfile.profiles.values():
                    if bundle_id in profile_entry.bundle_ids:
                        profile_entry.bundle_ids.remove(bundle_id)

            if not lockfile.bundles:
                self._delete()
                result: Lockfile | None = None
            else:
                lockfile.generated_at = utc_now_iso()
                self._write(lockfile)
                result = lockfile

        logger.info(f"Removed bundle {bundle_id} from lockfile")
        self._notify(result)

    async def update_commit_mode(self, bundle_id: str, commit_mode: CommitMode) -> Lockfile | None:
        """Switch a recorded bundle between commit and local-only.

        Returns:
            Updated lockfile, or None when the bundle is not recorded
        """
        if commit_mode not in COMMIT_MODES:
            raise ConfigurationError('commitMode must be either "commit" or "local-only"')

        async with self._write_lock:
            lockfile = await self.read()
            if lockfile is None or bundle_id not in lockfile.bundles:
                return None
            lockfile.bundles[bundle_id].commit_mode = commit_mode
            lockfile.generated_at = utc_now_iso()
            self._write(lockfile)

        self._notify(lockfile)
        return lockfile
