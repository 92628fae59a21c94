"""Unit tests for RegistryManager: sources, catalog, installs and settings."""

import json
from pathlib import Path

import pytest

from prompt_registry.config import RegistrySettings
from prompt_registry.errors import ConfigurationError
from prompt_registry.errors import LocalModificationsError
from prompt_registry.errors import NotFoundError
from prompt_registry.errors import ScopeConflictError
from prompt_registry.models import LOCKFILE_NAME
from prompt_registry.models import InstalledBundle
from prompt_registry.models import RegistrySource
from prompt_registry.models import SearchQuery
from prompt_registry.services import LockfileManager
from prompt_registry.services import RegistryManager
from prompt_registry.storage import RegistryStorage

REPOSITORY_FILES = [
    ".github/prompts/test-prompt.prompt.md",
    ".github/instructions/test-instructions.instructions.md",
]


@pytest.mark.unit
class TestSources:
    """Test source management."""

    @pytest.mark.asyncio
    async def test_add_source_persists(self, registry_manager: RegistryManager) -> None:
        sources = await registry_manager.list_sources()

        assert [source.id for source in sources] == ["test-local-awesome"]

    @pytest.mark.asyncio
    async def test_duplicate_source_rejected(
        self, registry_manager: RegistryManager, local_awesome_source: RegistrySource
    ) -> None:
        with pytest.raises(ConfigurationError, match="already exists"):
            await registry_manager.add_source(local_awesome_source)

    @pytest.mark.asyncio
    async def test_invalid_source_rejected(self, registry_manager: RegistryManager, tmp_path: Path) -> None:
        source = RegistrySource(id="broken", name="Broken", type="local-awesome-copilot", url=str(tmp_path / "nowhere"))

        with pytest.raises(ConfigurationError, match="Source validation failed"):
            await registry_manager.add_source(source)

    @pytest.mark.asyncio
    async def test_remove_source_emits_event(self, registry_manager: RegistryManager) -> None:
        removed = []
        registry_manager.on("source_removed", removed.append)

        await registry_manager.remove_source("test-local-awesome")

        assert removed == ["test-local-awesome"]
        assert await registry_manager.get_all_bundles() == []

    @pytest.mark.asyncio
    async def test_sync_source_counts_bundles(self, registry_manager: RegistryManager) -> None:
        synced = []
        registry_manager.on("source_synced", synced.append)

        bundles = await registry_manager.sync_source("test-local-awesome")

        assert len(bundles) == 2
        assert synced == [{"sourceId": "test-local-awesome", "bundleCount": 2}]

    @pytest.mark.asyncio
    async def test_sync_unknown_source(self, registry_manager: RegistryManager) -> None:
        with pytest.raises(NotFoundError):
            await registry_manager.sync_source("missing")

    def test_unknown_event_rejected(self, registry_storage: RegistryStorage, settings: RegistrySettings) -> None:
        manager = RegistryManager(registry_storage, settings)

        with pytest.raises(ConfigurationError, match="Unknown event"):
            manager.on("bundle_exploded", print)


@pytest.mark.unit
class TestCatalog:
    """Test catalog merge and search."""

    @pytest.mark.asyncio
    async def test_higher_priority_source_wins(
        self, registry_manager: RegistryManager, local_collections_dir: Path
    ) -> None:
        mirror = RegistrySource(
            id="mirror", name="Mirror", type="local-awesome-copilot", url=str(local_collections_dir), priority=5
        )
        await registry_manager.add_source(mirror)

        bundle = await registry_manager.get_bundle_details("test-collection")

        assert bundle.source_id == "mirror"
        assert len(await registry_manager.get_all_bundles()) == 2

    @pytest.mark.asyncio
    async def test_search_by_text(self, registry_manager: RegistryManager) -> None:
        results = await registry_manager.search_bundles(SearchQuery(text="python"))

        assert [bundle.id for bundle in results] == ["python-dev"]

    @pytest.mark.asyncio
    async def test_search_by_tag(self, registry_manager: RegistryManager) -> None:
        results = await registry_manager.search_bundles(SearchQuery(tags=["azure"]))

        assert [bundle.id for bundle in results] == ["test-collection"]

    @pytest.mark.asyncio
    async def test_sort_by_version(self, registry_manager: RegistryManager) -> None:
        results = await registry_manager.search_bundles(SearchQuery(sort_by="version"))

        assert [bundle.version for bundle in results] == ["1.2.0", "1.0.0"]

    @pytest.mark.asyncio
    async def test_pagination(self, registry_manager: RegistryManager) -> None:
        results = await registry_manager.search_bundles(SearchQuery(sort_by="name", offset=1, limit=1))

        assert [bundle.id for bundle in results] == ["test-collection"]

    @pytest.mark.asyncio
    async def test_unknown_bundle(self, registry_manager: RegistryManager) -> None:
        with pytest.raises(NotFoundError, match="not found"):
            await registry_manager.get_bundle_details("missing")


@pytest.mark.unit
class TestInstallation:
    """Test install, uninstall and scope exclusivity."""

    @pytest.mark.asyncio
    async def test_user_install_extracts_archive(
        self, registry_manager: RegistryManager, settings: RegistrySettings
    ) -> None:
        installed = await registry_manager.install_bundle("test-collection", scope="user")

        install_path = settings.get_user_root() / "bundles" / "test-collection"
        assert installed.install_path == str(install_path)
        assert (install_path / "deployment-manifest.yml").is_file()
        assert (install_path / "prompts" / "test-prompt.prompt.md").is_file()
        assert installed.commit_mode is None

    @pytest.mark.asyncio
    async def test_repository_install_writes_files_and_lockfile(
        self, registry_manager: RegistryManager, repo_root: Path
    ) -> None:
        installed = await registry_manager.install_bundle("test-collection", scope="repository")

        assert installed.files == REPOSITORY_FILES
        for path in REPOSITORY_FILES:
            assert (repo_root / path).is_file()

        lockfile = json.loads((repo_root / LOCKFILE_NAME).read_text())
        entry = lockfile["bundles"]["test-collection"]
        assert entry["version"] == "1.0.0"
        assert entry["sourceId"] == "test-local-awesome"
        assert entry["commitMode"] == "commit"
        assert [file["path"] for file in entry["files"]] == REPOSITORY_FILES
        assert lockfile["sources"]["test-local-awesome"]["type"] == "local-awesome-copilot"

    @pytest.mark.asyncio
    async def test_lockfile_manager_is_shared_instance(self, registry_manager: RegistryManager) -> None:
        manager = registry_manager.lockfile_manager

        assert manager is LockfileManager.get_instance(registry_manager.repository_root)
        assert manager.generated_by == f"prompt-registry@{registry_manager.settings.generator_version}"

    @pytest.mark.asyncio
    async def test_local_only_install_updates_git_exclude(
        self, registry_manager: RegistryManager, repo_root: Path
    ) -> None:
        await registry_manager.install_bundle("test-collection", scope="repository", commit_mode="local-only")

        exclude = (repo_root / ".git" / "info" / "exclude").read_text()
        for path in REPOSITORY_FILES:
            assert path in exclude

    @pytest.mark.asyncio
    async def test_repository_uninstall_removes_lockfile(
        self, registry_manager: RegistryManager, repo_root: Path
    ) -> None:
        await registry_manager.install_bundle("test-collection", scope="repository")

        await registry_manager.uninstall_bundle("test-collection")

        assert not (repo_root / LOCKFILE_NAME).exists()
        assert not (repo_root / ".github").exists()
        assert await registry_manager.list_installed_bundles() == []

    @pytest.mark.asyncio
    async def test_conflict_raised_before_any_write(
        self, registry_manager: RegistryManager, repo_root: Path
    ) -> None:
        await registry_manager.install_bundle("test-collection", scope="user")

        with pytest.raises(ScopeConflictError) as exc_info:
            await registry_manager.install_bundle("test-collection", scope="repository")

        assert exc_info.value.conflict.existing_scope == "user"
        assert not (repo_root / ".github").exists()
        assert not (repo_root / LOCKFILE_NAME).exists()

    @pytest.mark.asyncio
    async def test_reinstall_at_same_scope(self, registry_manager: RegistryManager) -> None:
        await registry_manager.install_bundle("test-collection", scope="workspace")

        installed = await registry_manager.install_bundle("test-collection", scope="workspace")

        assert installed.scope == "workspace"
        assert len(await registry_manager.list_installed_bundles()) == 1

    @pytest.mark.asyncio
    async def test_install_with_migrate(
        self, registry_manager: RegistryManager, settings: RegistrySettings, repo_root: Path
    ) -> None:
        await registry_manager.install_bundle("test-collection", scope="user")

        installed = await registry_manager.install_bundle("test-collection", scope="repository", migrate=True)

        assert installed.scope == "repository"
        assert not (settings.get_user_root() / "bundles" / "test-collection").exists()
        assert (repo_root / LOCKFILE_NAME).exists()
        assert await registry_manager.resolver.get_conflicting_scopes("test-collection") == ["repository"]

    @pytest.mark.asyncio
    async def test_migrate_bundle_keeps_version(self, registry_manager: RegistryManager) -> None:
        await registry_manager.install_bundle("python-dev", scope="workspace")

        result = await registry_manager.migrate_bundle("python-dev", "workspace", "user")

        assert result.success
        installed = await registry_manager.list_installed_bundles("user")
        assert [(record.bundle_id, record.version) for record in installed] == [("python-dev", "1.2.0")]

    @pytest.mark.asyncio
    async def test_uninstall_not_installed(self, registry_manager: RegistryManager) -> None:
        with pytest.raises(NotFoundError, match="is not installed"):
            await registry_manager.uninstall_bundle("test-collection")

    @pytest.mark.asyncio
    async def test_install_emits_event(self, registry_manager: RegistryManager) -> None:
        events = []
        unsubscribe = registry_manager.on("bundle_installed", events.append)

        await registry_manager.install_bundle("test-collection", scope="user")
        unsubscribe()
        await registry_manager.install_bundle("python-dev", scope="user")

        assert [record.bundle_id for record in events] == ["test-collection"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bundle_id", ["../../escaped", "nested/kit", ".hidden", ""])
    async def test_path_like_bundle_id_rejected(
        self, registry_manager: RegistryManager, settings: RegistrySettings, tmp_path: Path, bundle_id: str
    ) -> None:
        with pytest.raises(ConfigurationError, match="Invalid bundle id"):
            await registry_manager.install_bundle(bundle_id, scope="user")

        assert not (tmp_path / "escaped").exists()
        assert not (settings.get_user_root() / "bundles").exists()
        assert await registry_manager.list_installed_bundles() == []

    @pytest.mark.asyncio
    async def test_uninstall_refuses_path_outside_scope_root(
        self, registry_manager: RegistryManager, tmp_path: Path
    ) -> None:
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "keep.txt").write_text("keep")
        registry_manager.storage.record_installation(
            InstalledBundle(
                bundle_id="test-collection",
                version="1.0.0",
                source_id="test-local-awesome",
                installed_at="2024-01-01T00:00:00.000Z",
                scope="user",
                install_path=str(outside),
            )
        )

        with pytest.raises(ConfigurationError, match="Path traversal detected"):
            await registry_manager.uninstall_bundle("test-collection")

        assert (outside / "keep.txt").read_text() == "keep"


@pytest.mark.unit
class TestUpdates:
    """Test update detection and application."""

    @pytest.mark.asyncio
    async def test_check_and_apply_update(self, registry_manager: RegistryManager) -> None:
        await registry_manager.install_bundle("test-collection", scope="user", version="0.9.0")
        updated_events = []
        registry_manager.on("bundle_updated", updated_events.append)

        updates = await registry_manager.check_updates()

        assert [(u.bundle_id, u.current_version, u.latest_version) for u in updates] == [
            ("test-collection", "0.9.0", "1.0.0")
        ]

        updated = await registry_manager.update_bundle("test-collection")

        assert updated.version == "1.0.0"
        assert len(updated_events) == 1
        assert await registry_manager.check_updates() == []

    @pytest.mark.asyncio
    async def test_update_when_current(self, registry_manager: RegistryManager) -> None:
        await registry_manager.install_bundle("test-collection", scope="user")

        assert await registry_manager.update_bundle("test-collection") is None


    @pytest.mark.asyncio
    async def test_modified_repository_files_block_update(
        self, registry_manager: RegistryManager, repo_root: Path
    ) -> None:
        await registry_manager.install_bundle("test-collection", scope="repository")
        (repo_root / REPOSITORY_FILES[0]).write_text("edited by hand")

        with pytest.raises(LocalModificationsError) as exc_info:
            await registry_manager.update_bundle("test-collection", version="1.1.0")

        assert [info.path for info in exc_info.value.modified_files] == [REPOSITORY_FILES[0]]
        assert (repo_root / REPOSITORY_FILES[0]).read_text() == "edited by hand"
        assert registry_manager.find_installed("test-collection").version == "1.0.0"

    @pytest.mark.asyncio
    async def test_force_overrides_modified_files(self, registry_manager: RegistryManager, repo_root: Path) -> None:
        await registry_manager.install_bundle("test-collection", scope="repository")
        (repo_root / REPOSITORY_FILES[0]).write_text("edited by hand")

        updated = await registry_manager.update_bundle("test-collection", version="1.1.0", force=True)

        assert updated.version == "1.1.0"
        assert (repo_root / REPOSITORY_FILES[0]).read_text() != "edited by hand"

    @pytest.mark.asyncio
    async def test_check_updates_reports_auto_update_preference(self, registry_manager: RegistryManager) -> None:
        await registry_manager.install_bundle("test-collection", scope="user", version="0.9.0")
        await registry_manager.install_bundle("python-dev", scope="user", version="1.0.0")
        await registry_manager.set_auto_update("python-dev", True)

        updates = await registry_manager.check_updates()

        assert {update.bundle_id: update.auto_update_enabled for update in updates} == {
            "python-dev": True,
            "test-collection": False,
        }

@pytest.mark.unit
class TestSettingsExport:
    """Test settings export and import."""

    @pytest.mark.asyncio
    async def test_export_then_import_into_fresh_registry(
        self, registry_manager: RegistryManager, settings: RegistrySettings, tmp_path: Path
    ) -> None:
        registry_manager.storage.set_update_preference("test-collection", True)
        exported = await registry_manager.export_settings()

        fresh = RegistryManager(RegistryStorage(tmp_path / "fresh"), settings)
        config = await fresh.import_settings(exported)

        assert [source.id for source in config.sources] == ["test-local-awesome"]
        assert fresh.storage.get_update_preference("test-collection")
        assert len(await fresh.get_all_bundles()) == 2

    @pytest.mark.asyncio
    async def test_replace_discards_existing_sources(
        self, registry_manager: RegistryManager, settings: RegistrySettings, tmp_path: Path
    ) -> None:
        other = RegistryManager(RegistryStorage(tmp_path / "other"), settings)
        exported = await other.export_settings()

        config = await registry_manager.import_settings(exported, strategy="replace")

        assert config.sources == []
        assert await registry_manager.list_sources() == []

    @pytest.mark.asyncio
    async def test_invalid_document(self, registry_manager: RegistryManager) -> None:
        with pytest.raises(ConfigurationError, match="Invalid settings document"):
            await registry_manager.import_settings("{not json")

    @pytest.mark.asyncio
    async def test_unknown_strategy(self, registry_manager: RegistryManager) -> None:
        with pytest.raises(ConfigurationError, match="Unknown import strategy"):
            await registry_manager.import_settings("{}", strategy="overwrite")
