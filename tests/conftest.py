"""
Shared pytest fixtures for the prompt registry test suite.

Provides fixtures for:
- Isolated PROMPT_REGISTRY_HOME storage
- Repository, workspace and user scope roots under tmp_path
- Registry and hub managers wired to the local test catalogs
"""

import shutil
from collections.abc import Generator
from pathlib import Path

import pytest
import pytest_asyncio

from prompt_registry.config import RegistrySettings
from prompt_registry.models import RegistrySource
from prompt_registry.services import HubManager
from prompt_registry.services import LockfileManager
from prompt_registry.services import RegistryManager
from prompt_registry.storage import HubStorage
from prompt_registry.storage import RegistryStorage

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def mock_storage_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point PROMPT_REGISTRY_HOME at a temporary directory.

    Per-directory overrides are cleared so every path resolves below the
    temporary home.

    Returns:
        Path to the temporary home directory
    """
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("PROMPT_REGISTRY_HOME", str(home))
    for name in ("CONFIG_DIR", "STATE_DIR", "CACHE_DIR", "REPOSITORY_ROOT", "WORKSPACE_ROOT", "USER_ROOT"):
        monkeypatch.delenv(f"PROMPT_REGISTRY_{name}", raising=False)
    return home


@pytest.fixture
def repo_root(tmp_path: Path) -> Path:
    """A repository root with a .git directory."""
    root = tmp_path / "repo"
    (root / ".git" / "info").mkdir(parents=True)
    return root


@pytest.fixture
def settings(tmp_path: Path, repo_root: Path) -> RegistrySettings:
    return RegistrySettings(
        home=str(tmp_path / "home"),
        repository_root=str(repo_root),
        workspace_root=str(tmp_path / "workspace"),
        user_root=str(tmp_path / "user"),
    )


@pytest.fixture
def registry_storage(tmp_path: Path) -> RegistryStorage:
    return RegistryStorage(tmp_path / "state")


@pytest.fixture
def local_collections_dir(tmp_path: Path) -> Path:
    """Copy of the local awesome-copilot fixture, safe to modify."""
    target = tmp_path / "local-awesome-collections"
    shutil.copytree(FIXTURES_DIR / "local-awesome-collections", target)
    return target


@pytest.fixture
def local_awesome_source(local_collections_dir: Path) -> RegistrySource:
    return RegistrySource(
        id="test-local-awesome",
        name="Test Local Awesome",
        type="local-awesome-copilot",
        url=str(local_collections_dir),
    )


@pytest.fixture(autouse=True)
def reset_lockfile_instances() -> Generator[None, None, None]:
    """Drop shared lockfile managers so no test sees another test's instance."""
    yield
    LockfileManager.reset_instance()


@pytest.fixture
def lockfile_manager(repo_root: Path) -> LockfileManager:
    return LockfileManager.get_instance(repo_root)


@pytest_asyncio.fixture
async def registry_manager(
    registry_storage: RegistryStorage, settings: RegistrySettings, local_awesome_source: RegistrySource
) -> RegistryManager:
    """Registry manager with the local awesome-copilot source added."""
    manager = RegistryManager(registry_storage, settings)
    await manager.add_source(local_awesome_source)
    return manager


@pytest.fixture
def hub_storage(tmp_path: Path) -> HubStorage:
    return HubStorage(tmp_path / "hubs")


@pytest.fixture
def hub_manager(hub_storage: HubStorage) -> HubManager:
    """Hub manager without a registry manager: activation tracks state only."""
    return HubManager(hub_storage)


@pytest.fixture
def hub_config_path(fixtures_dir: Path) -> Path:
    return fixtures_dir / "hubs" / "valid-hub-config.yml"
