"""Registry manager: sources, catalog and bundle installation.

Contract:
- Inputs: Source records, install/uninstall/update requests
- Outputs: Merged bundle catalog, installed bundle records
- Side Effects: Writes bundle files under the scope roots, records
  installations, updates the repository lockfile, emits events

Catalog merge: when several enabled sources expose the same bundle id, the
source with the higher priority wins; ties keep the first source in list
order. The merged catalog is cached until a sync or any source change.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
from collections.abc import Callable
from functools import cmp_to_key
from pathlib import Path
from typing import Any
from typing import Literal

from pydantic import ValidationError

from ..adapters import SourceAdapter
from ..adapters import resolve_adapter
from ..config import RegistrySettings
from ..errors import ConfigurationError
from ..errors import LocalModificationsError
from ..errors import NotFoundError
from ..errors import PromptRegistryError
from ..errors import ScopeConflictError
from ..models import ALL_SCOPES
from ..models import Bundle
from ..models import BundleArchive
from ..models import BundleUpdate
from ..models import CommitMode
from ..models import InstallationScope
from ..models import InstalledBundle
from ..models import LockfileFileEntry
from ..models import LockfileHubEntry
from ..models import LockfileProfileEntry
from ..models import LockfileSourceEntry
from ..models import MigrationResult
from ..models import RegistryConfig
from ..models import RegistrySource
from ..models import SearchQuery
from ..models import SettingsExport
from ..models import SourceValidationResult
from ..models import is_valid_bundle_id
from ..models import utc_now_iso
from ..storage import RegistryStorage
from ..utils.file_integrity import calculate_aggregate_checksum
from ..utils.file_integrity import calculate_file_checksum
from ..utils.versions import compare_versions
from .lockfile_manager import LockfileManager
from .lockfile_manager import LockfileUpdate
from .repository_scope import RepositoryScopeService
from .scope_conflict_resolver import ScopeConflictResolver

logger = logging.getLogger(__name__)

EVENT_KINDS = (
    "bundle_installed",
    "bundle_uninstalled",
    "bundle_updated",
    "source_added",
    "source_removed",
    "source_synced",
)

Listener = Callable[[Any], None]
ImportStrategy = Literal["merge", "replace"]


def hub_source_id(hub_id: str, source_id: str) -> str:
    """Registry id of a source declared by a hub."""
    return f"hub-{hub_id}-{source_id}"


def validate_bundle_id(bundle_id: str) -> str:
    """Raises ConfigurationError unless the id is a single safe path segment."""
    if not bundle_id or not is_valid_bundle_id(bundle_id):
        raise ConfigurationError(f"Invalid bundle id: {bundle_id!r}")
    return bundle_id


def ensure_within(root: Path, path: Path) -> Path:
    """Raises ConfigurationError unless path resolves below root."""
    if root.resolve() not in path.resolve().parents:
        raise ConfigurationError(f"Path traversal detected: {path} is outside {root}")
    return path


class RegistryManager:
    """Orchestrates adapters, the scope conflict resolver and the lockfile.

    Construct one per set of scope roots; tests build fresh instances
    against temporary directories.
    """

    def __init__(
        self,
        storage: RegistryStorage,
        settings: RegistrySettings | None = None,
        lockfile_manager: LockfileManager | None = None,
    ) -> None:
        self.storage = storage
        self.settings = settings or RegistrySettings()
        self.resolver = ScopeConflictResolver(storage)
        self._lockfile_manager = lockfile_manager
        self._adapters: dict[str, SourceAdapter] = {}
        self._bundle_cache: dict[str, list[Bundle]] = {}
        self._listeners: dict[str, list[Listener]] = {kind: [] for kind in EVENT_KINDS}

    # --- Events ---

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """Subscribe to an event kind; returns a callable that unsubscribes."""
        if event not in self._listeners:
            raise ConfigurationError(f"Unknown event: {event}")
        self._listeners[event].append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners[event]:
                self._listeners[event].remove(listener)

        return unsubscribe

    def _emit(self, event: str, payload: Any) -> None:
        for listener in list(self._listeners[event]):
            try:
                listener(payload)
            except Exception as e:
                logger.error(f"{event} listener failed: {e}")

    # --- Scope roots ---

    @property
    def repository_root(self) -> Path:
        if not self.settings.repository_root:
            raise ConfigurationError("Repository root is not configured (set PROMPT_REGISTRY_REPOSITORY_ROOT)")
        return Path(self.settings.repository_root)

    @property
    def lockfile_manager(self) -> LockfileManager:
        if self._lockfile_manager is None:
            self._lockfile_manager = LockfileManager.get_instance(self.repository_root, self.settings.generator_version)
        return self._lockfile_manager

    @property
    def repository_scope(self) -> RepositoryScopeService:
        return RepositoryScopeService(self.repository_root)

    def get_scope_root(self, scope: InstallationScope) -> Path:
        """Directory a scope installs into.

        Raises:
            ConfigurationError: When the scope's root is not configured
        """
        if scope == "repository":
            return self.repository_root
        if scope == "workspace":
            if not self.settings.workspace_root:
                raise ConfigurationError("Workspace root is not configured (set PROMPT_REGISTRY_WORKSPACE_ROOT)")
            return Path(self.settings.workspace_root) / "bundles"
        if scope == "user":
            return self.settings.get_user_root() / "bundles"
        raise ConfigurationError(f"Unknown scope: {scope}")

    # --- Sources ---

    def _create_adapter(self, source: RegistrySource) -> SourceAdapter:
        if source.token is None and self.settings.github_token and source.type != "http":
            source = source.model_copy(update={"token": self.settings.github_token})
        return resolve_adapter(source, cache_ttl=self.settings.cache_ttl_seconds)

    def _get_adapter(self, source: RegistrySource) -> SourceAdapter:
        if source.id not in self._adapters:
            self._adapters[source.id] = self._create_adapter(source)
        return self._adapters[source.id]

    def _get_source(self, source_id: str) -> RegistrySource:
        source = self.storage.get_source(source_id)
        if source is None:
            raise NotFoundError(f"Source '{source_id}' not found")
        return source

    def _invalidate_catalog(self) -> None:
        self._bundle_cache.clear()

    async def add_source(self, source: RegistrySource) -> None:
        """Validate and persist a new source.

        Raises:
            ConfigurationError: Duplicate id, bad location or failed validation
        """
        logger.info(f"Adding source: {source.id}")
        if self.storage.get_source(source.id) is not None:
            raise ConfigurationError(f"Source '{source.id}' already exists")

        adapter = self._create_adapter(source)
        validation = await adapter.validate()
        if not validation.valid:
            raise ConfigurationError(f"Source validation failed: {', '.join(validation.errors)}")

        self.storage.add_source(source)
        self._adapters[source.id] = adapter
        self._invalidate_catalog()
        self._emit("source_added", source)
        logger.info(f"Source '{source.id}' added ({validation.bundles_found} bundles)")

    async def remove_source(self, source_id: str) -> None:
        self.storage.remove_source(source_id)
        self._adapters.pop(source_id, None)
        self._invalidate_catalog()
        self._emit("source_removed", source_id)
        logger.info(f"Source '{source_id}' removed")

    async def update_source(self, source_id: str, **updates: Any) -> RegistrySource:
        source = self._get_source(source_id)
        updated = RegistrySource.model_validate({**source.model_dump(), **updates, "id": source_id})
        self.storage.update_source(source_id, updated)
        self._adapters.pop(source_id, None)
        self._invalidate_catalog()
        logger.info(f"Source '{source_id}' updated")
        return updated

    async def list_sources(self) -> list[RegistrySource]:
        return self.storage.get_sources()

    async def validate_source(self, source: RegistrySource) -> SourceValidationResult:
        return await self._create_adapter(source).validate()

    async def sync_source(self, source_id: str) -> list[Bundle]:
        """Refetch one source's catalog, bypassing every cache."""
        source = self._get_source(source_id)
        adapter = self._get_adapter(source)
        adapter.invalidate_cache()
        bundles = await adapter.fetch_bundles()
        self._bundle_cache[source_id] = bundles
        self._emit("source_synced", {"sourceId": source_id, "bundleCount": len(bundles)})
        logger.info(f"Source '{source_id}' synced. Found {len(bundles)} bundles.")
        return bundles

    async def sync_all_sources(self) -> dict[str, int]:
        """Sync every enabled source; failures are logged and skipped.

        Returns:
            Bundle count per successfully synced source id
        """
        counts: dict[str, int] = {}
        for source in self.storage.get_sources():
            if not source.enabled:
                continue
            try:
                counts[source.id] = len(await self.sync_source(source.id))
            except PromptRegistryError as e:
                logger.error(f"Failed to sync source '{source.id}': {e}")
        return counts

    async def register_hub_sources(self, hub_id: str, sources: list[RegistrySource]) -> list[RegistrySource]:
        """Add or refresh the sources a hub declares, dropping ones it no longer declares.

        Hub sources are stored under hub_source_id() and are not validated
        here; an unreachable one surfaces when a bundle is installed from it.
        """
        registered: list[RegistrySource] = []
        for declared in sources:
            source = declared.model_copy(update={"id": hub_source_id(hub_id, declared.id), "hub_id": hub_id})
            if self.storage.get_source(source.id) is None:
                self.storage.add_source(source)
                self._emit("source_added", source)
            else:
                self.storage.update_source(source.id, source)
            self._adapters.pop(source.id, None)
            registered.append(source)

        declared_ids = {source.id for source in registered}
        for stale in self.storage.get_sources():
            if stale.hub_id == hub_id and stale.id not in declared_ids:
                await self.remove_source(stale.id)

        self._invalidate_catalog()
        logger.info(f"Registered {len(registered)} sources from hub '{hub_id}'")
        return registered

    async def remove_hub_sources(self, hub_id: str) -> list[str]:
        removed = [source.id for source in self.storage.get_sources() if source.hub_id == hub_id]
        for source_id in removed:
            await self.remove_source(source_id)
        return removed

    # --- Catalog ---

    async def _source_bundles(self, source: RegistrySource) -> list[Bundle]:
        if source.id in self._bundle_cache:
            return self._bundle_cache[source.id]
        bundles = await self._get_adapter(source).fetch_bundles()
        self._bundle_cache[source.id] = bundles
        return bundles

    async def get_all_bundles(self, source_id: str | None = None) -> list[Bundle]:
        """Merged catalog across enabled sources (or just source_id)."""
        sources = [
            source
            for source in self.storage.get_sources()
            if (source.id == source_id if source_id else source.enabled)
        ]
        results = await asyncio.gather(*(self._source_bundles(source) for source in sources), return_exceptions=True)

        merged: dict[str, tuple[int, Bundle]] = {}
        for source, result in zip(sources, results):
            if isinstance(result, BaseException):
                logger.error(f"Failed to fetch bundles from source '{source.id}': {result}")
                continue
            for bundle in result:
                current = merged.get(bundle.id)
                if current is None or source.priority > current[0]:
                    merged[bundle.id] = (source.priority, bundle)
        return [bundle for _, bundle in merged.values()]

    async def search_bundles(self, query: SearchQuery | None = None) -> list[Bundle]:
        query = query or SearchQuery()
        results = await self.get_all_bundles(query.source_id)

        if query.text:
            text = query.text.lower()
            results = [
                bundle
                for bundle in results
                if text in bundle.name.lower() or text in bundle.description.lower() or text in bundle.id.lower()
            ]
        if query.tags:
            results = [bundle for bundle in results if any(tag in bundle.tags for tag in query.tags)]
        if query.author:
            results = [bundle for bundle in results if bundle.author == query.author]
        if query.environment:
            results = [bundle for bundle in results if query.environment in bundle.environments]

        if query.sort_by == "name":
            results.sort(key=lambda bundle: bundle.name.lower())
        elif query.sort_by == "recent":
            results.sort(key=lambda bundle: bundle.last_updated, reverse=True)
        elif query.sort_by == "version":
            results.sort(key=cmp_to_key(lambda a, b: compare_versions(b.version, a.version)))

        if query.offset is not None or query.limit is not None:
            offset = query.offset or 0
            results = results[offset : offset + (query.limit or 50)]
        return results

    async def get_bundle_details(self, bundle_id: str, source_id: str | None = None) -> Bundle:
        """Catalog entry for a bundle, from the merged catalog or from one source."""
        if source_id is not None:
            self._get_source(source_id)
        for bundle in await self.get_all_bundles(source_id):
            if bundle.id == bundle_id:
                return bundle
        if source_id is not None:
            raise NotFoundError(f"Bundle '{bundle_id}' not found in source '{source_id}'")
        raise NotFoundError(f"Bundle '{bundle_id}' not found")

    # --- Installation ---

    async def install_bundle(
        self,
        bundle_id: str,
        scope: InstallationScope | None = None,
        version: str | None = None,
        commit_mode: CommitMode | None = None,
        migrate: bool = False,
        hub: tuple[str, LockfileHubEntry] | None = None,
        profile: tuple[str, LockfileProfileEntry] | None = None,
        source_id: str | None = None,
    ) -> InstalledBundle:
        """Install a bundle at a scope.

        The id check and the scope conflict check run before anything is
        downloaded or written. Reinstalling at the scope that already holds the
        bundle replaces its files.

        Args:
            bundle_id: Catalog bundle id
            scope: Target scope (default: the stored default scope)
            version: Version to install (default: catalog version)
            commit_mode: Repository scope only (default: settings)
            migrate: Move the bundle from a conflicting scope instead of failing
            hub: Hub association recorded in the lockfile
            profile: Profile association recorded in the lockfile
            source_id: Install from this source instead of the merged catalog

        Raises:
            ConfigurationError: Invalid bundle id
            ScopeConflictError: Bundle installed at another scope and migrate is False
            NotFoundError: Unknown bundle or source
        """
        validate_bundle_id(bundle_id)
        scope = scope or self.storage.get_settings().default_scope
        logger.info(f"Installing bundle: {bundle_id} (scope={scope}, version={version or 'latest'})")

        conflict = await self.resolver.check_conflict(bundle_id, scope)
        if conflict is not None:
            if not migrate:
                raise ScopeConflictError(conflict)
            installed: list[InstalledBundle] = []

            async def install_at(_: InstalledBundle, to_scope: InstallationScope) -> None:
                record = await self._install(bundle_id, to_scope, version, commit_mode, hub, profile, source_id)
                installed.append(record)

            result = await self.resolver.migrate_bundle(
                bundle_id, conflict.existing_scope, scope, self._uninstall_record, install_at
            )
            if not result.success:
                raise PromptRegistryError(result.error or f"Migration of {bundle_id} failed")
            record = installed[0]
        else:
            record = await self._install(bundle_id, scope, version, commit_mode, hub, profile, source_id)

        self._emit("bundle_installed", record)
        logger.info(f"Bundle '{bundle_id}' installed at {scope} scope")
        return record

    async def _resolve_download(
        self, bundle_id: str, version: str | None, source_id: str | None = None
    ) -> tuple[Bundle, RegistrySource, BundleArchive]:
        bundle = await self.get_bundle_details(bundle_id, source_id)
        source = self._get_source(bundle.source_id)
        adapter = self._get_adapter(source)
        if version and version != bundle.version:
            bundle = bundle.model_copy(
                update={
                    "version": version,
                    "download_url": adapter.get_download_url(bundle_id, version),
                    "manifest_url": adapter.get_manifest_url(bundle_id, version),
                }
            )
        archive = await adapter.download_bundle(bundle)
        logger.debug(f"Downloaded bundle {bundle_id}@{bundle.version}: {len(archive)} files")
        return bundle, source, archive

    async def _install(
        self,
        bundle_id: str,
        scope: InstallationScope,
        version: str | None,
        commit_mode: CommitMode | None,
        hub: tuple[str, LockfileHubEntry] | None,
        profile: tuple[str, LockfileProfileEntry] | None,
        source_id: str | None = None,
    ) -> InstalledBundle:
        validate_bundle_id(bundle_id)
        install_root = self.get_scope_root(scope)
        if scope != "repository":
            ensure_within(install_root, install_root / bundle_id)
        bundle, source, archive = await self._resolve_download(bundle_id, version, source_id)

        existing = self.storage.get_installed_bundle(bundle_id, scope)
        if existing is not None:
            await self._remove_files(existing, keep_lockfile_entry=True)

        if scope == "repository":
            mode = commit_mode or self.settings.default_commit_mode
            files = await self.repository_scope.sync_bundle(bundle_id, archive, mode)
            file_entries = [
                LockfileFileEntry(path=path, checksum=calculate_file_checksum(install_root / path)) for path in files
            ]
            await self.lockfile_manager.create_or_update(
                LockfileUpdate(
                    bundle_id=bundle_id,
                    version=bundle.version,
                    source_id=source.id,
                    source_type=source.type,
                    commit_mode=mode,
                    files=file_entries,
                    source=LockfileSourceEntry(type=source.type, url=source.url, branch=source.config.get("branch")),
                    hub=hub,
                    profile=profile,
                    checksum=calculate_aggregate_checksum((entry.path, entry.checksum) for entry in file_entries),
                )
            )
        else:
            mode = None
            install_root = install_root / bundle_id
            files = _extract_archive(archive, install_root)

        record = InstalledBundle(
            bundle_id=bundle_id,
            version=bundle.version,
            source_id=source.id,
            source_type=source.type,
            installed_at=utc_now_iso(),
            scope=scope,
            install_path=str(install_root),
            files=files,
            commit_mode=mode,
        )
        self.storage.record_installation(record)
        return record

    async def _remove_files(self, installed: InstalledBundle, keep_lockfile_entry: bool = False) -> None:
        if installed.scope == "repository":
            await RepositoryScopeService(installed.install_path).unsync_bundle(installed.files)
            if not keep_lockfile_entry:
                await self.lockfile_manager.remove(installed.bundle_id)
        else:
            install_path = ensure_within(self.get_scope_root(installed.scope), Path(installed.install_path))
            if install_path.is_dir():
                shutil.rmtree(install_path)

    async def _uninstall_record(self, installed: InstalledBundle) -> None:
        await self._remove_files(installed)
        self.storage.remove_installation(installed.bundle_id, installed.scope)

    async def uninstall_bundle(self, bundle_id: str, scope: InstallationScope | None = None) -> None:
        """Remove a bundle's files, lockfile entry and installation record.

        Without a scope, the scope currently holding the bundle is used.

        Raises:
            NotFoundError: If the bundle is not installed (at that scope)
        """
        if scope is None:
            scopes = await self.resolver.get_conflicting_scopes(bundle_id)
            if not scopes:
                raise NotFoundError(f"Bundle '{bundle_id}' is not installed")
            scope = scopes[0]

        installed = self.storage.get_installed_bundle(bundle_id, scope)
        if installed is None:
            raise NotFoundError(f"Bundle '{bundle_id}' is not installed in {scope} scope")

        await self._uninstall_record(installed)
        self._emit("bundle_uninstalled", bundle_id)
        logger.info(f"Bundle '{bundle_id}' uninstalled from {scope} scope")

    async def migrate_bundle(
        self,
        bundle_id: str,
        from_scope: InstallationScope,
        to_scope: InstallationScope,
        commit_mode: CommitMode | None = None,
    ) -> MigrationResult:
        """Move an installed bundle to another scope, keeping its version."""

        async def install_at(installed: InstalledBundle, target: InstallationScope) -> None:
            source_id = installed.source_id if self.storage.get_source(installed.source_id) else None
            await self._install(bundle_id, target, installed.version, commit_mode, None, None, source_id)

        return await self.resolver.migrate_bundle(bundle_id, from_scope, to_scope, self._uninstall_record, install_at)

    def find_installed(self, bundle_id: str) -> InstalledBundle | None:
        for scope in ALL_SCOPES:
            installed = self.storage.get_installed_bundle(bundle_id, scope)
            if installed is not None:
                return installed
        return None

    async def update_bundle(
        self, bundle_id: str, version: str | None = None, force: bool = False
    ) -> InstalledBundle | None:
        """Reinstall a bundle at its current scope with another version.

        The bundle is resolved from the source it was installed from while
        that source is still configured. At repository scope, files changed
        since install block the update unless force is set.

        Returns:
            The new record, or None when already at the requested version

        Raises:
            NotFoundError: The bundle is not installed
            LocalModificationsError: Repository files were modified and force is False
        """
        current = self.find_installed(bundle_id)
        if current is None:
            raise NotFoundError(f"Bundle '{bundle_id}' is not installed")

        source_id = current.source_id if self.storage.get_source(current.source_id) else None
        target = version or (await self.get_bundle_details(bundle_id, source_id)).version
        if current.version == target:
            logger.info(f"Bundle '{bundle_id}' is already at version {target}")
            return None

        if current.scope == "repository":
            modified = await self.lockfile_manager.detect_modified_files(bundle_id)
            if modified and not force:
                raise LocalModificationsError(bundle_id, modified)
            if modified:
                logger.warning(f"Overriding {len(modified)} locally modified files of bundle '{bundle_id}'")

        updated = await self._install(bundle_id, current.scope, target, current.commit_mode, None, None, source_id)
        self._emit("bundle_updated", updated)
        logger.info(f"Bundle '{bundle_id}' updated from v{current.version} to v{updated.version}")
        return updated

    async def list_installed_bundles(self, scope: InstallationScope | None = None) -> list[InstalledBundle]:
        return self.storage.get_installed_bundles(scope)

    async def check_updates(self) -> list[BundleUpdate]:
        """Installed bundles whose source offers a newer version.

        Each bundle is compared against its own source when that source is
        still configured, otherwise against the merged catalog.
        """
        updates: list[BundleUpdate] = []
        catalogs: dict[str | None, dict[str, Bundle]] = {}
        for installed in self.storage.get_installed_bundles():
            source_id = installed.source_id if self.storage.get_source(installed.source_id) else None
            if source_id not in catalogs:
                catalogs[source_id] = {bundle.id: bundle for bundle in await self.get_all_bundles(source_id)}
            latest = catalogs[source_id].get(installed.bundle_id)
            if latest is None:
                logger.debug(f"No catalog entry for installed bundle {installed.bundle_id}")
                continue
            if compare_versions(latest.version, installed.version) > 0:
                updates.append(
                    BundleUpdate(
                        bundle_id=installed.bundle_id,
                        current_version=installed.version,
                        latest_version=latest.version,
                        scope=installed.scope,
                        auto_update_enabled=self.storage.get_update_preference(installed.bundle_id),
                    )
                )
        logger.info(f"Found {len(updates)} bundle updates")
        return updates

    async def set_auto_update(self, bundle_id: str, enabled: bool) -> None:
        self.storage.set_update_preference(bundle_id, enabled)
        logger.info(f"Auto-update for bundle '{bundle_id}' {'enabled' if enabled else 'disabled'}")

    # --- Settings export/import ---

    async def export_settings(self) -> str:
        config = self.storage.load_config()
        export = SettingsExport(exported_at=utc_now_iso(), sources=config.sources, settings=config.settings)
        return json.dumps(export.to_dict(), indent=2)

    async def import_settings(self, data: str, strategy: ImportStrategy = "merge") -> RegistryConfig:
        """Restore sources and preferences from an export_settings document.

        merge keeps existing sources and adds the imported ones with new ids;
        replace discards the current configuration.

        Raises:
            ConfigurationError: Invalid JSON, document or strategy
        """
        if strategy not in ("merge", "replace"):
            raise ConfigurationError(f"Unknown import strategy: {strategy}")
        try:
            imported = SettingsExport.model_validate(json.loads(data))
        except (json.JSONDecodeError, ValidationError) as e:
            raise ConfigurationError(f"Invalid settings document: {e}") from e

        if strategy == "replace":
            config = RegistryConfig(sources=imported.sources, settings=imported.settings)
        else:
            config = self.storage.load_config()
            known = {source.id for source in config.sources}
            config.sources.extend(source for source in imported.sources if source.id not in known)
            preferences = {**config.settings.update_preferences, **imported.settings.update_preferences}
            config.settings = imported.settings.model_copy(update={"update_preferences": preferences})

        self.storage.save_config(config)
        self._adapters.clear()
        self._invalidate_catalog()
        logger.info(f"Imported settings ({strategy}): {len(config.sources)} sources")
        return config


def _extract_archive(archive: BundleArchive, target_dir: Path) -> list[str]:
    target_dir.mkdir(parents=True, exist_ok=True)
    for entry in archive.entries:
        path = target_dir / entry.path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(entry.content)
    return archive.paths()
