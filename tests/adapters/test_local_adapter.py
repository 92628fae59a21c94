"""Unit tests for the local directory adapter."""

import shutil
from pathlib import Path

import pytest

from prompt_registry.adapters import LocalAdapter
from prompt_registry.models import RegistrySource


@pytest.fixture
def bundles_dir(tmp_path: Path, fixtures_dir: Path) -> Path:
    target = tmp_path / "local-bundles"
    shutil.copytree(fixtures_dir / "local-bundles", target)
    return target


@pytest.fixture
def adapter(bundles_dir: Path) -> LocalAdapter:
    return LocalAdapter(RegistrySource(id="team", type="local", url=str(bundles_dir)))


@pytest.mark.unit
class TestLocalAdapter:
    """Test bundle discovery from deployment manifests."""

    @pytest.mark.asyncio
    async def test_only_manifest_directories_are_bundles(self, adapter: LocalAdapter) -> None:
        bundles = await adapter.fetch_bundles()

        assert [bundle.id for bundle in bundles] == ["review-kit"]
        assert bundles[0].version == "0.3.0"
        assert bundles[0].tags == ["review"]

    @pytest.mark.asyncio
    async def test_metadata_from_registry_json(self, adapter: LocalAdapter) -> None:
        metadata = await adapter.fetch_metadata()

        assert metadata.name == "Team Bundles"
        assert metadata.version == "2.0.0"
        assert metadata.bundle_count == 1

    @pytest.mark.asyncio
    async def test_download_bundle(self, adapter: LocalAdapter) -> None:
        bundle = (await adapter.fetch_bundles())[0]

        archive = await adapter.download_bundle(bundle)

        assert archive.paths() == ["deployment-manifest.yml", "prompts/code-review.prompt.md"]

    def test_download_url_is_bundle_directory(self, adapter: LocalAdapter, bundles_dir: Path) -> None:
        expected = (bundles_dir / "review-kit").absolute().as_uri()

        assert adapter.get_download_url("review-kit") == expected
        assert adapter.get_manifest_url("review-kit") == expected

    @pytest.mark.asyncio
    async def test_validate_empty_directory_warns(self, tmp_path: Path) -> None:
        result = await LocalAdapter(RegistrySource(id="e", type="local", url=str(tmp_path))).validate()

        assert result.valid
        assert result.bundles_found == 0
        assert result.warnings

    @pytest.mark.asyncio
    async def test_validate_missing_directory(self, tmp_path: Path) -> None:
        result = await LocalAdapter(RegistrySource(id="m", type="local", url=str(tmp_path / "missing"))).validate()

        assert not result.valid
        assert "Directory does not exist" in result.errors[0]
