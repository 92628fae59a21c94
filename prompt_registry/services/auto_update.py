"""Auto-update: apply available updates to bundles opted into them.

Contract:
- Inputs: Per-bundle auto-update preferences, update check results
- Outputs: AutoUpdateSummary (updated, failed, skipped bundle ids)
- Side Effects: Reinstalls bundles through the registry manager; a failed
  update reinstalls the previous version at the same scope

Updates run in batches of BATCH_SIZE. A bundle is never updated twice at once.
"""

from __future__ import annotations

import asyncio
import logging

from ..errors import ConfigurationError
from ..errors import LocalModificationsError
from ..errors import PromptRegistryError
from ..models import AutoUpdateSummary
from ..models import BundleUpdate
from ..models import InstallationScope
from .registry_manager import RegistryManager

logger = logging.getLogger(__name__)

BATCH_SIZE = 3


class AutoUpdateService:
    def __init__(self, registry_manager: RegistryManager) -> None:
        self.registry_manager = registry_manager
        self._active_updates: set[str] = set()

    # --- Preferences ---

    async def set_auto_update(self, bundle_id: str, enabled: bool) -> None:
        await self.registry_manager.set_auto_update(bundle_id, enabled)

    async def is_auto_update_enabled(self, bundle_id: str) -> bool:
        return self.registry_manager.storage.get_update_preference(bundle_id)

    async def get_all_auto_update_preferences(self) -> dict[str, bool]:
        preferences = self.registry_manager.storage.get_settings().update_preferences
        return {bundle_id: preference.auto_update for bundle_id, preference in preferences.items()}

    def is_update_in_progress(self, bundle_id: str) -> bool:
        return bundle_id in self._active_updates

    # --- Updates ---

    async def _sync_bundle_source(self, bundle_id: str, source_id: str | None) -> None:
        """Refresh a GitHub release source before updating from it; failures only log."""
        try:
            if source_id is None:
                source_id = (await self.registry_manager.get_bundle_details(bundle_id)).source_id
            source = self.registry_manager.storage.get_source(source_id)
            if source is not None and source.type == "github":
                await self.registry_manager.sync_source(source.id)
        except PromptRegistryError as e:
            logger.warning(f"Could not sync source for bundle '{bundle_id}', using cached catalog: {e}")

    def _installed_version(self, bundle_id: str) -> str | None:
        for installed in self.registry_manager.storage.get_installed_bundles():
            if installed.bundle_id == bundle_id:
                return installed.version
        return None

    async def auto_update_bundle(self, bundle_id: str, target_version: str) -> None:
        """Update one bundle, reinstalling the previous version if the update fails.

        Raises:
            ConfigurationError: Empty arguments, or an update of this bundle is running
            PromptRegistryError: The update failed (after any rollback)
        """
        if not bundle_id.strip():
            raise ConfigurationError("Bundle ID is required and cannot be empty")
        if not target_version.strip():
            raise ConfigurationError("Target version is required and cannot be empty")
        if self.is_update_in_progress(bundle_id):
            raise ConfigurationError(f"Update already in progress for bundle '{bundle_id}'")

        self._active_updates.add(bundle_id)
        try:
            previous = self.registry_manager.find_installed(bundle_id)
            logger.info(f"Starting auto-update for bundle '{bundle_id}' to version {target_version}")
            await self._sync_bundle_source(bundle_id, previous.source_id if previous else None)
            try:
                await self.registry_manager.update_bundle(bundle_id, target_version)
                if self._installed_version(bundle_id) != target_version:
                    raise PromptRegistryError(f"Update verification failed for bundle '{bundle_id}'")
            except LocalModificationsError:
                raise
            except PromptRegistryError as e:
                logger.error(f"Auto-update failed for bundle '{bundle_id}': {e}")
                if previous is not None and self._installed_version(bundle_id) != previous.version:
                    await self._rollback(bundle_id, previous.version, previous.scope, previous.source_id)
                raise
            logger.info(f"Auto-update completed for bundle '{bundle_id}'")
        finally:
            self._active_updates.discard(bundle_id)

    async def _rollback(self, bundle_id: str, version: str, scope: InstallationScope, source_id: str) -> None:
        logger.info(f"Rolling back bundle '{bundle_id}' to version {version}")
        try:
            await self.registry_manager.install_bundle(
                bundle_id,
                scope=scope,
                version=version,
                source_id=source_id if self.registry_manager.storage.get_source(source_id) else None,
            )
        except PromptRegistryError as e:
            logger.error(f"Rollback failed for bundle '{bundle_id}', reinstall it manually: {e}")

    async def auto_update_bundles(self, updates: list[BundleUpdate]) -> AutoUpdateSummary:
        """Apply the updates of bundles with auto-update enabled."""
        summary = AutoUpdateSummary(skipped=[update.bundle_id for update in updates if not update.auto_update_enabled])
        to_update = [update for update in updates if update.auto_update_enabled]
        for skipped in summary.skipped:
            logger.debug(f"Skipping bundle '{skipped}': auto-update not enabled")

        for start in range(0, len(to_update), BATCH_SIZE):
            batch = to_update[start : start + BATCH_SIZE]
            results = await asyncio.gather(
                *(self.auto_update_bundle(update.bundle_id, update.latest_version) for update in batch),
                return_exceptions=True,
            )
            for update, result in zip(batch, results):
                if isinstance(result, PromptRegistryError):
                    summary.failed[update.bundle_id] = str(result)
                elif isinstance(result, BaseException):
                    raise result
                else:
                    summary.updated.append(update.bundle_id)

        logger.info(f"Auto-update finished: {len(summary.updated)} updated, {len(summary.failed)} failed")
        return summary

    async def run(self) -> AutoUpdateSummary:
        """Check for updates and apply the ones opted into auto-update."""
        return await self.auto_update_bundles(await self.registry_manager.check_updates())
