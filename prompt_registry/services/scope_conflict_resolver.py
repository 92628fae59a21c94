"""Scope exclusivity: a bundle lives in at most one installation scope."""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from collections.abc import Callable

from ..models import ALL_SCOPES
from ..models import InstallationScope
from ..models import InstalledBundle
from ..models import MigrationResult
from ..models import ScopeConflict
from ..storage import RegistryStorage

logger = logging.getLogger(__name__)

UninstallCallback = Callable[[InstalledBundle], Awaitable[None]]
InstallCallback = Callable[[InstalledBundle, InstallationScope], Awaitable[None]]


class ScopeConflictResolver:
    """Detects and migrates bundles installed at a conflicting scope.

    Reinstalling at the scope that already holds the bundle is not a conflict.
    """

    def __init__(self, storage: RegistryStorage) -> None:
        self.storage = storage

    async def check_conflict(self, bundle_id: str, target_scope: InstallationScope) -> ScopeConflict | None:
        """First scope other than target_scope holding a record for bundle_id."""
        logger.debug(f"Checking conflict for bundle {bundle_id} at scope {target_scope}")

        for scope in ALL_SCOPES:
            if scope == target_scope:
                continue
            installed = self.storage.get_installed_bundle(bundle_id, scope)
            if installed is not None:
                logger.info(f"Conflict detected: bundle {bundle_id} exists at {scope}, target is {target_scope}")
                return ScopeConflict(
                    bundle_id=bundle_id,
                    existing_scope=scope,
                    target_scope=target_scope,
                    existing_version=installed.version,
                    installed_bundle=installed,
                )

        return None

    async def has_conflict(self, bundle_id: str, target_scope: InstallationScope) -> bool:
        return await self.check_conflict(bundle_id, target_scope) is not None

    async def get_conflicting_scopes(self, bundle_id: str) -> list[InstallationScope]:
        """Every scope that currently holds a record for bundle_id."""
        return [scope for scope in ALL_SCOPES if self.storage.get_installed_bundle(bundle_id, scope) is not None]

    async def migrate_bundle(
        self,
        bundle_id: str,
        from_scope: InstallationScope,
        to_scope: InstallationScope,
        uninstall: UninstallCallback,
        install: InstallCallback,
    ) -> MigrationResult:
        """Move a bundle between scopes: uninstall, then install.

        Failures are reported in the result, never raised. When the install
        step fails after the uninstall step succeeded, the bundle is left
        installed nowhere and the result says so; nothing is retried.
        """
        logger.info(f"Migrating bundle {bundle_id} from {from_scope} to {to_scope}")
        result = MigrationResult(success=False, bundle_id=bundle_id, from_scope=from_scope, to_scope=to_scope)

        installed = self.storage.get_installed_bundle(bundle_id, from_scope)
        if installed is None:
            result.error = f"Bundle {bundle_id} is not installed at {from_scope} scope"
            logger.warning(result.error)
            return result

        try:
            await uninstall(installed)
        except Exception as e:
            result.error = f"Failed to uninstall from {from_scope}: {e}"
            logger.error(result.error)
            return result

        try:
            await install(installed, to_scope)
        except Exception as e:
            result.error = f"Failed to install at {to_scope}: {e}"
            result.installed_nowhere = True
            logger.error(f"{result.error} (bundle {bundle_id} is no longer installed at any scope)")
            return result

        result.success = True
        logger.info(f"Migrated bundle {bundle_id} from {from_scope} to {to_scope}")
        return result
