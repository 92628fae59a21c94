"""Hub manager: hub documents and profile activation.

Contract:
- Inputs: Hub references (github owner/name, https URL, local path)
- Outputs: Stored hubs, profile projections, activation results
- Side Effects: Hub storage writes; bundle installs and uninstalls through
  the registry manager when one is attached; sync history entries

A hub has at most one active profile. Activating a profile while another
one in the same hub is active deactivates the other first.
"""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import uuid
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from pathlib import PurePosixPath
from typing import Any

import yaml
from git import Repo
from pydantic import ValidationError

from ..errors import AdapterError
from ..errors import ConfigurationError
from ..errors import HubValidationError
from ..errors import NotFoundError
from ..errors import ProfileNotActiveError
from ..errors import PromptRegistryError
from ..models import HubConfig
from ..models import HubInfo
from ..models import HubInfoMetadata
from ..models import HubProfile
from ..models import HubProfileWithHub
from ..models import HubReference
from ..models import HubStorageMetadata
from ..models import HubSummary
from ..models import HubValidationResult
from ..models import LockfileHubEntry
from ..models import LockfileProfileEntry
from ..models import PreviousState
from ..models import ProfileActivationResult
from ..models import ProfileActivationState
from ..models import ProfileBundle
from ..models import ProfileChanges
from ..models import ProfileDeactivationResult
from ..models import UpdatedBundle
from ..models import utc_now_iso
from ..storage import HubStorage
from ..storage import get_git_cache_dir
from ..storage import validate_hub_id
from ..utils.fetch import fetch_text
from ..utils.github_url import is_github_location
from ..utils.versions import is_valid_semver
from .registry_manager import RegistryManager
from .registry_manager import hub_source_id
from .sync_history import SyncHistory

logger = logging.getLogger(__name__)

HUB_CONFIG_FILE = "hub-config.yml"
DEFAULT_HUB_REF = "main"
CHECKSUM_PATTERN = re.compile(r"^(sha256:[a-fA-F0-9]{64}|sha512:[a-fA-F0-9]{128})$")


@dataclass
class AppliedChanges:
    """What apply_changes did: installed versions, failed installs, removed ids."""

    versions: dict[str, str] = field(default_factory=dict)
    failed: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)


def validate_hub_reference(reference: HubReference | dict[str, Any]) -> HubReference:
    """Check a hub reference's shape.

    Raises:
        ConfigurationError: Naming the offending field
    """
    if isinstance(reference, dict):
        if not reference.get("type"):
            raise ConfigurationError("Reference type is required")
        if "location" not in reference or reference["location"] is None:
            raise ConfigurationError("Reference location is required")
        try:
            reference = HubReference.model_validate(reference)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid hub reference: {e}") from e

    location = reference.location.strip()
    if not location:
        raise ConfigurationError("Location cannot be empty")

    if reference.type == "github" and not is_github_location(location):
        raise ConfigurationError(f"Invalid GitHub location format: {location} (expected owner/name)")
    if reference.type == "url" and not location.lower().startswith("https://"):
        raise ConfigurationError(f"Only HTTPS URLs are allowed: {location}")
    if reference.type == "local" and ".." in PurePosixPath(location.replace("\\", "/")).parts:
        raise ConfigurationError(f"Path traversal detected: {location}")
    return reference


def validate_hub_config(data: Any) -> HubValidationResult:
    """Structural validation of a hub document; never raises."""
    if not isinstance(data, dict):
        return HubValidationResult(valid=False, errors=["Hub document must be a mapping"])

    errors: list[str] = []
    warnings: list[str] = []

    version = data.get("version")
    if not version:
        errors.append("version is required")
    elif not is_valid_semver(str(version)):
        errors.append(f"version must be a semantic version: {version}")

    metadata = data.get("metadata")
    if not isinstance(metadata, dict):
        errors.append("metadata is required")
    else:
        for field in ("name", "description"):
            if not metadata.get(field):
                errors.append(f"metadata.{field} is required")
        checksum = metadata.get("checksum")
        if checksum and not CHECKSUM_PATTERN.match(str(checksum)):
            errors.append("metadata.checksum must be sha256:<hex> or sha512:<hex>")

    sources = data.get("sources")
    source_ids: set[str] = set()
    if not isinstance(sources, list):
        errors.append("sources is required and must be a list")
    else:
        for index, source in enumerate(sources):
            if not isinstance(source, dict):
                errors.append(f"sources[{index}] must be a mapping")
                continue
            for field in ("id", "type", "url"):
                if not source.get(field):
                    errors.append(f"sources[{index}].{field} is required")
            if source.get("id"):
                source_ids.add(source["id"])

    profiles = data.get("profiles", [])
    if not isinstance(profiles, list):
        errors.append("profiles must be a list")
        profiles = []
    if not profiles:
        warnings.append("Hub declares no profiles")
    for profile in profiles:
        if not isinstance(profile, dict) or not profile.get("id") or not profile.get("name"):
            errors.append("Every profile needs an id and a name")
            continue
        for bundle in profile.get("bundles") or []:
            if not isinstance(bundle, dict) or not bundle.get("id") or not bundle.get("source"):
                errors.append(f"Profile '{profile['id']}' has a bundle without id or source")
            elif bundle["source"] not in source_ids:
                errors.append(
                    f"Profile '{profile['id']}' bundle '{bundle['id']}' references unknown source '{bundle['source']}'"
                )

    return HubValidationResult(valid=not errors, errors=errors, warnings=warnings)


def _slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


class HubManager:
    """Imports hubs and activates their profiles.

    Without a registry manager, activation only tracks state; with one,
    profile bundles are installed and removed as well.
    """

    def __init__(
        self,
        storage: HubStorage,
        registry_manager: RegistryManager | None = None,
        git_cache_dir: Path | None = None,
    ) -> None:
        if storage is None:
            raise ConfigurationError("Hub storage is required")
        self.storage = storage
        self.registry_manager = registry_manager
        self._git_cache_dir = git_cache_dir
        self.history = SyncHistory(self)
        self._hub_locks: dict[str, asyncio.Lock] = {}

    def _lock(self, hub_id: str) -> asyncio.Lock:
        if hub_id not in self._hub_locks:
            self._hub_locks[hub_id] = asyncio.Lock()
        return self._hub_locks[hub_id]

    # --- Fetching ---

    def _clone_hub_document(self, reference: HubReference) -> str:
        git_cache_dir = self._git_cache_dir or get_git_cache_dir()
        temp_dir = git_cache_dir / f"hub_{uuid.uuid4().hex[:8]}"
        repo_url = f"https://github.com/{reference.location}.git"
        ref = reference.ref or DEFAULT_HUB_REF
        try:
            logger.info(f"Cloning hub {repo_url} ref={ref}")
            Repo.clone_from(repo_url, temp_dir, branch=ref, depth=1)
            config_path = temp_dir / HUB_CONFIG_FILE
            if not config_path.is_file():
                raise NotFoundError(f"File not found: {HUB_CONFIG_FILE} in {reference.location}@{ref}")
            return config_path.read_text(encoding="utf-8")
        finally:
            if temp_dir.exists():
                shutil.rmtree(temp_dir, ignore_errors=True)

    async def _fetch_hub_document(self, reference: HubReference) -> Any:
        """Raw hub document for a reference.

        Raises:
            NotFoundError: Local file missing
            AdapterError: Remote fetch failed
        """
        location = reference.location.strip()
        if reference.type == "local":
            path = Path(location.removeprefix("file://")).expanduser()
            if not path.is_file():
                raise NotFoundError(f"File not found: {path}")
            text = path.read_text(encoding="utf-8")
        elif reference.type == "url":
            try:
                text = await fetch_text(location)
            except Exception as e:
                raise AdapterError(f"Failed to fetch hub from {location}: {e}") from e
        else:
            try:
                text = await asyncio.to_thread(self._clone_hub_document, reference)
            except NotFoundError:
                raise
            except Exception as e:
                raise AdapterError(f"Failed to fetch hub from github {location}: {e}") from e

        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise HubValidationError("Hub validation failed", [f"Invalid YAML: {e}"]) from e

    @staticmethod
    def _parse_config(data: Any, message: str) -> HubConfig:
        result = validate_hub_config(data)
        if not result.valid:
            raise HubValidationError(message, result.errors)
        try:
            return HubConfig.model_validate(data)
        except ValidationError as e:
            raise HubValidationError(message, [str(e)]) from e

    def _generate_hub_id(self, config: HubConfig) -> str:
        base = _slugify(config.metadata.name) or "hub"
        existing = set(self.storage.list_hubs())
        candidate, suffix = base, 2
        while candidate in existing:
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate

    # --- Hubs ---

    async def _register_sources(self, hub_id: str, config: HubConfig) -> None:
        if self.registry_manager is not None:
            await self.registry_manager.register_hub_sources(hub_id, list(config.sources))

    async def validate_hub(self, data: Any) -> HubValidationResult:
        return validate_hub_config(data)

    async def import_hub(self, reference: HubReference | dict[str, Any], hub_id: str | None = None) -> str:
        """Fetch, validate and store a hub.

        Args:
            reference: Where the hub document lives
            hub_id: Storage id (default: derived from the hub's name)

        Returns:
            The hub id

        Raises:
            ConfigurationError: Bad reference or hub id
            HubValidationError: The document is not a valid hub
        """
        reference = validate_hub_reference(reference)
        if hub_id is not None:
            validate_hub_id(hub_id)

        data = await self._fetch_hub_document(reference)
        config = self._parse_config(data, "Hub validation failed")
        hub_id = hub_id or self._generate_hub_id(config)

        self.storage.save_hub(hub_id, config, reference)
        await self._register_sources(hub_id, config)
        logger.info(f"Imported hub '{hub_id}' ({config.metadata.name}) from {reference.type}:{reference.location}")
        return hub_id

    async def load_hub(self, hub_id: str) -> tuple[HubConfig, HubStorageMetadata]:
        """Stored hub, re-validated.

        Raises:
            NotFoundError: Unknown hub
            HubValidationError: Stored document no longer validates
        """
        config, metadata = self.storage.load_hub(hub_id)
        result = validate_hub_config(config.to_dict())
        if not result.valid:
            raise HubValidationError("Hub validation failed", result.errors)
        return config, metadata

    async def sync_hub(self, hub_id: str) -> HubConfig:
        """Refetch a hub from its stored reference.

        Profile active flags follow the stored activation states. An invalid
        refreshed document leaves the stored hub untouched.
        """
        _, metadata = self.storage.load_hub(hub_id)
        data = await self._fetch_hub_document(metadata.reference)
        config = self._parse_config(data, "Hub validation failed after sync")

        active = self.storage.get_active_profile_for_hub(hub_id)
        for profile in config.profiles:
            profile.active = active is not None and profile.id == active.profile_id

        self.storage.save_hub(hub_id, config, metadata.reference)
        await self._register_sources(hub_id, config)
        logger.info(f"Synced hub '{hub_id}'")
        return config

    async def list_hubs(self) -> list[HubSummary]:
        hubs: list[HubSummary] = []
        for hub_id in self.storage.list_hubs():
            try:
                config, metadata = self.storage.load_hub(hub_id)
            except PromptRegistryError as e:
                logger.warning(f"Skipping unreadable hub {hub_id}: {e}")
                continue
            hubs.append(
                HubSummary(
                    id=hub_id,
                    name=config.metadata.name,
                    description=config.metadata.description,
                    reference=metadata.reference,
                )
            )
        return hubs

    async def get_hub_info(self, hub_id: str) -> HubInfo:
        config, metadata = self.storage.load_hub(hub_id)
        return HubInfo(
            id=hub_id,
            config=config,
            reference=metadata.reference,
            metadata=HubInfoMetadata(
                name=config.metadata.name,
                description=config.metadata.description,
                last_modified=metadata.last_modified,
                size=metadata.size,
            ),
        )

    async def delete_hub(self, hub_id: str) -> None:
        """Remove a hub, its state and the registry sources it contributed."""
        self.storage.delete_hub(hub_id)
        if self.registry_manager is not None:
            await self.registry_manager.remove_hub_sources(hub_id)
        logger.info(f"Deleted hub '{hub_id}'")

    # --- Profiles ---

    async def list_profiles_from_hub(self, hub_id: str) -> list[HubProfile]:
        config, _ = self.storage.load_hub(hub_id)
        return list(config.profiles)

    @staticmethod
    def _find_profile(config: HubConfig, hub_id: str, profile_id: str) -> HubProfile:
        for profile in config.profiles:
            if profile.id == profile_id:
                return profile
        raise NotFoundError(f"Profile not found: {profile_id} in hub {hub_id}")

    async def get_hub_profile(self, hub_id: str, profile_id: str) -> HubProfile:
        config, _ = self.storage.load_hub(hub_id)
        return self._find_profile(config, hub_id, profile_id)

    async def list_all_hub_profiles(self) -> list[HubProfileWithHub]:
        profiles: list[HubProfileWithHub] = []
        for hub_id in self.storage.list_hubs():
            try:
                config, _ = self.storage.load_hub(hub_id)
            except PromptRegistryError as e:
                logger.warning(f"Skipping unreadable hub {hub_id}: {e}")
                continue
            profiles.extend(
                HubProfileWithHub(hub_id=hub_id, hub_name=config.metadata.name, profile=profile)
                for profile in config.profiles
            )
        return profiles

    async def get_active_profile(self, hub_id: str) -> ProfileActivationState | None:
        return self.storage.get_active_profile_for_hub(hub_id)

    async def list_all_active_profiles(self) -> list[ProfileActivationState]:
        return self.storage.list_activation_states()

    def _set_active_flag(self, hub_id: str, profile_id: str | None) -> None:
        config, metadata = self.storage.load_hub(hub_id)
        for profile in config.profiles:
            profile.active = profile.id == profile_id
        self.storage.save_hub(hub_id, config, metadata.reference)

    # --- Bundle application ---

    async def apply_changes(
        self,
        hub_id: str,
        profile_id: str,
        install: list[ProfileBundle],
        remove: list[str],
    ) -> AppliedChanges:
        """Install and uninstall bundles through the registry manager.

        Each bundle installs from the hub source its reference names. Removal
        is best-effort: failures are logged and the bundle is left out of
        AppliedChanges.removed. A bundle that is already not installed counts
        as removed.
        """
        if self.registry_manager is None:
            return AppliedChanges(versions={bundle.id: bundle.version for bundle in install}, removed=list(remove))

        applied = AppliedChanges()
        config, metadata = self.storage.load_hub(hub_id)
        profile = self._find_profile(config, hub_id, profile_id)
        hub_entry = (hub_id, LockfileHubEntry(name=config.metadata.name, url=metadata.reference.location))
        profile_entry = (
            profile_id,
            LockfileProfileEntry(name=profile.name, bundle_ids=[bundle.id for bundle in profile.bundles]),
        )

        for bundle_id in remove:
            try:
                await self.registry_manager.uninstall_bundle(bundle_id)
            except NotFoundError:
                logger.debug(f"Bundle {bundle_id} of profile {profile_id} was not installed")
            except PromptRegistryError as e:
                logger.warning(f"Failed to remove bundle {bundle_id} from profile {profile_id}: {e}")
                continue
            applied.removed.append(bundle_id)

        for bundle in install:
            try:
                installed = await self.registry_manager.install_bundle(
                    bundle.id,
                    version=None if bundle.version == "latest" else bundle.version,
                    hub=hub_entry,
                    profile=profile_entry,
                    source_id=hub_source_id(hub_id, bundle.source) if bundle.source else None,
                )
                applied.versions[bundle.id] = installed.version
            except PromptRegistryError as e:
                logger.warning(f"Failed to install bundle {bundle.id} for profile {profile_id}: {e}")
                applied.failed.append(bundle.id)
        return applied

    # --- Activation ---

    async def activate_profile(
        self, hub_id: str, profile_id: str, install_bundles: bool = True
    ) -> ProfileActivationResult:
        """Make a profile the hub's active profile.

        Unknown hubs and profiles are reported in the result, not raised.
        """
        try:
            config, _ = self.storage.load_hub(hub_id)
            profile = self._find_profile(config, hub_id, profile_id)
        except PromptRegistryError as e:
            return ProfileActivationResult(success=False, hub_id=hub_id, profile_id=profile_id, error=str(e))

        async with self._lock(hub_id):
            current = self.storage.get_active_profile_for_hub(hub_id)
            if current is not None and current.profile_id != profile_id:
                logger.info(f"Switching hub '{hub_id}' from profile {current.profile_id} to {profile_id}")
                await self._deactivate(hub_id, current.profile_id, uninstall_bundles=install_bundles)

            if install_bundles:
                applied = await self.apply_changes(hub_id, profile_id, list(profile.bundles), [])
                versions, failed = applied.versions, applied.failed
            else:
                versions, failed = {bundle.id: bundle.version for bundle in profile.bundles}, []

            state = ProfileActivationState(
                hub_id=hub_id,
                profile_id=profile_id,
                activated_at=utc_now_iso(),
                synced_bundles=[bundle.id for bundle in profile.bundles if bundle.id not in failed],
                synced_bundle_versions=versions,
            )
            self.storage.save_activation_state(state)
            self._set_active_flag(hub_id, profile_id)

        required_failures = [bundle.id for bundle in profile.bundles if bundle.required and bundle.id in failed]
        logger.info(f"Activated profile {profile_id} in hub '{hub_id}' ({len(state.synced_bundles)} bundles)")
        return ProfileActivationResult(
            success=not required_failures,
            hub_id=hub_id,
            profile_id=profile_id,
            resolved_bundles=[bundle for bundle in profile.bundles if bundle.id not in failed],
            failed_bundles=failed,
            error=f"Failed to install required bundles: {', '.join(required_failures)}" if required_failures else None,
        )

    async def _deactivate(self, hub_id: str, profile_id: str, uninstall_bundles: bool) -> list[str]:
        state = self.storage.get_activation_state(hub_id, profile_id)
        if state is None:
            return []
        removed = list(state.synced_bundles)
        if uninstall_bundles:
            removed = (await self.apply_changes(hub_id, profile_id, [], removed)).removed
        self.storage.delete_activation_state(hub_id, profile_id)
        self._set_active_flag(hub_id, None)
        return removed

    async def deactivate_profile(
        self, hub_id: str, profile_id: str, uninstall_bundles: bool = True
    ) -> ProfileDeactivationResult:
        """Drop a profile's activation state; a no-op success when inactive.

        removed_bundles lists the bundles that left the active set. A bundle
        whose uninstall failed is left out.
        """
        try:
            config, _ = self.storage.load_hub(hub_id)
            profile = self._find_profile(config, hub_id, profile_id)
        except PromptRegistryError as e:
            return ProfileDeactivationResult(success=False, hub_id=hub_id, profile_id=profile_id, error=str(e))

        async with self._lock(hub_id):
            removed = await self._deactivate(hub_id, profile_id, uninstall_bundles)
            if profile.active:
                self._set_active_flag(hub_id, None)

        logger.info(f"Deactivated profile {profile_id} in hub '{hub_id}'")
        return ProfileDeactivationResult(success=True, hub_id=hub_id, profile_id=profile_id, removed_bundles=removed)

    # --- Desired vs synced state ---

    def snapshot(self, state: ProfileActivationState, profile: HubProfile | None) -> PreviousState:
        """Synced bundles of an activation state as profile bundle references."""
        declared = {bundle.id: bundle for bundle in profile.bundles} if profile else {}
        bundles = []
        for bundle_id in state.synced_bundles:
            reference = declared.get(bundle_id)
            bundles.append(
                ProfileBundle(
                    id=bundle_id,
                    version=state.synced_bundle_versions.get(bundle_id, reference.version if reference else "latest"),
                    source=reference.source if reference else "",
                    required=reference.required if reference else True,
                )
            )
        return PreviousState(bundles=bundles, activated_at=state.activated_at)

    async def get_profile_changes(self, hub_id: str, profile_id: str) -> ProfileChanges:
        """Diff the profile's declared bundles against its synced state.

        Raises:
            ProfileNotActiveError: The profile has no activation state
        """
        profile = await self.get_hub_profile(hub_id, profile_id)
        state = self.storage.get_activation_state(hub_id, profile_id)
        if state is None:
            raise ProfileNotActiveError(hub_id, profile_id)

        synced = set(state.synced_bundles)
        declared_ids = {bundle.id for bundle in profile.bundles}
        updated: list[UpdatedBundle] = []
        for bundle in profile.bundles:
            old_version = state.synced_bundle_versions.get(bundle.id)
            if bundle.id in synced and old_version and bundle.version not in ("latest", old_version):
                updated.append(UpdatedBundle(id=bundle.id, old_version=old_version, new_version=bundle.version))

        return ProfileChanges(
            added=[bundle for bundle in profile.bundles if bundle.id not in synced],
            updated=updated,
            removed=[bundle_id for bundle_id in state.synced_bundles if bundle_id not in declared_ids],
            metadata_changed=bool(profile.updated_at and profile.updated_at > state.activated_at),
        )

    async def sync_profile_now(
        self, hub_id: str, profile_id: str, install_bundles: bool = True, refresh_hub: bool = True
    ) -> ProfileChanges:
        """Refresh the hub, apply the profile's pending changes, record history.

        Raises:
            ProfileNotActiveError: The profile has no activation state
        """
        if self.storage.get_activation_state(hub_id, profile_id) is None:
            raise ProfileNotActiveError(hub_id, profile_id)
        if refresh_hub:
            await self.sync_hub(hub_id)

        changes = await self.get_profile_changes(hub_id, profile_id)
        profile = await self.get_hub_profile(hub_id, profile_id)

        async with self._lock(hub_id):
            state = self.storage.get_activation_state(hub_id, profile_id)
            if state is None:
                raise ProfileNotActiveError(hub_id, profile_id)
            previous = self.snapshot(state, profile)

            updated_ids = {update.id for update in changes.updated}
            to_install = list(changes.added) + [bundle for bundle in profile.bundles if bundle.id in updated_ids]
            if install_bundles:
                applied = await self.apply_changes(hub_id, profile_id, to_install, changes.removed)
                versions, failed = applied.versions, applied.failed
            else:
                versions, failed = {bundle.id: bundle.version for bundle in to_install}, []

            kept_versions = {
                bundle_id: version
                for bundle_id, version in state.synced_bundle_versions.items()
                if bundle_id not in changes.removed
            }
            self.storage.save_activation_state(
                ProfileActivationState(
                    hub_id=hub_id,
                    profile_id=profile_id,
                    activated_at=utc_now_iso(),
                    synced_bundles=[bundle.id for bundle in profile.bundles if bundle.id not in failed],
                    synced_bundle_versions={**kept_versions, **versions},
                )
            )

        error = f"Failed to install bundles: {', '.join(failed)}" if failed else None
        await self.history.record_sync(
            hub_id, profile_id, changes, previous, status="failure" if failed else "success", error=error
        )
        logger.info(f"Synced profile {profile_id} in hub '{hub_id}': {changes.total} changes")
        return changes
