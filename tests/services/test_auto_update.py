"""Unit tests for AutoUpdateService: opt-in updates, verification and rollback."""

from pathlib import Path

import pytest

from prompt_registry.errors import AdapterError
from prompt_registry.errors import ConfigurationError
from prompt_registry.models import BundleUpdate
from prompt_registry.services import AutoUpdateService
from prompt_registry.services import RegistryManager


@pytest.fixture
def auto_update(registry_manager: RegistryManager) -> AutoUpdateService:
    return AutoUpdateService(registry_manager)


@pytest.mark.unit
class TestAutoUpdatePreferences:
    """Test per-bundle opt-in."""

    @pytest.mark.asyncio
    async def test_preferences_round_trip(self, auto_update: AutoUpdateService) -> None:
        assert not await auto_update.is_auto_update_enabled("test-collection")

        await auto_update.set_auto_update("test-collection", True)
        await auto_update.set_auto_update("python-dev", False)

        assert await auto_update.is_auto_update_enabled("test-collection")
        assert await auto_update.get_all_auto_update_preferences() == {"test-collection": True, "python-dev": False}


@pytest.mark.unit
class TestAutoUpdateRun:
    """Test the update pass."""

    @pytest.mark.asyncio
    async def test_only_opted_in_bundles_update(
        self, auto_update: AutoUpdateService, registry_manager: RegistryManager
    ) -> None:
        await registry_manager.install_bundle("test-collection", scope="user", version="0.9.0")
        await registry_manager.install_bundle("python-dev", scope="user", version="1.0.0")
        await auto_update.set_auto_update("test-collection", True)

        summary = await auto_update.run()

        assert summary.updated == ["test-collection"]
        assert summary.skipped == ["python-dev"]
        assert summary.failed == {}
        installed = {record.bundle_id: record.version for record in await registry_manager.list_installed_bundles()}
        assert installed == {"test-collection": "1.0.0", "python-dev": "1.0.0"}

    @pytest.mark.asyncio
    async def test_failed_update_rolls_back(
        self, auto_update: AutoUpdateService, registry_manager: RegistryManager, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        await registry_manager.install_bundle("test-collection", scope="user", version="0.9.0")
        await auto_update.set_auto_update("test-collection", True)

        async def update_bundle(bundle_id: str, version: str | None = None, force: bool = False) -> None:
            await registry_manager.uninstall_bundle(bundle_id)
            raise AdapterError("Failed to download bundle test-collection")

        monkeypatch.setattr(registry_manager, "update_bundle", update_bundle)

        summary = await auto_update.run()

        assert summary.updated == []
        assert summary.failed == {"test-collection": "Failed to download bundle test-collection"}
        restored = registry_manager.find_installed("test-collection")
        assert (restored.version, restored.scope) == ("0.9.0", "user")
        assert not auto_update.is_update_in_progress("test-collection")

    @pytest.mark.asyncio
    async def test_unverified_update_is_reported(
        self, auto_update: AutoUpdateService, registry_manager: RegistryManager, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        await registry_manager.install_bundle("test-collection", scope="user", version="0.9.0")

        async def update_bundle(bundle_id: str, version: str | None = None, force: bool = False) -> None:
            return None

        monkeypatch.setattr(registry_manager, "update_bundle", update_bundle)

        summary = await auto_update.auto_update_bundles(
            [
                BundleUpdate(
                    bundle_id="test-collection",
                    current_version="0.9.0",
                    latest_version="1.0.0",
                    scope="user",
                    auto_update_enabled=True,
                )
            ]
        )

        assert "Update verification failed" in summary.failed["test-collection"]
        assert registry_manager.find_installed("test-collection").version == "0.9.0"

    @pytest.mark.asyncio
    async def test_local_modifications_are_not_overridden(
        self, auto_update: AutoUpdateService, registry_manager: RegistryManager, repo_root: Path
    ) -> None:
        await registry_manager.install_bundle("test-collection", scope="repository")
        edited = repo_root / ".github" / "prompts" / "test-prompt.prompt.md"
        edited.write_text("edited by hand")
        update = BundleUpdate(
            bundle_id="test-collection",
            current_version="1.0.0",
            latest_version="1.1.0",
            scope="repository",
            auto_update_enabled=True,
        )

        summary = await auto_update.auto_update_bundles([update])

        assert "locally modified" in summary.failed["test-collection"]
        assert edited.read_text() == "edited by hand"
        assert registry_manager.find_installed("test-collection").version == "1.0.0"

    @pytest.mark.asyncio
    async def test_concurrent_update_of_same_bundle_rejected(self, auto_update: AutoUpdateService) -> None:
        auto_update._active_updates.add("test-collection")

        with pytest.raises(ConfigurationError, match="Update already in progress"):
            await auto_update.auto_update_bundle("test-collection", "1.0.0")

    @pytest.mark.asyncio
    async def test_empty_arguments_rejected(self, auto_update: AutoUpdateService) -> None:
        with pytest.raises(ConfigurationError, match="Bundle ID is required"):
            await auto_update.auto_update_bundle(" ", "1.0.0")
        with pytest.raises(ConfigurationError, match="Target version is required"):
            await auto_update.auto_update_bundle("test-collection", "")
