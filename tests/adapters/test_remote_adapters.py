"""Unit tests for the GitHub releases and HTTP index adapters.

Network access is replaced by patching the fetch helpers each adapter imports.
"""

from typing import Any

import pytest

from prompt_registry.adapters import GitHubAdapter
from prompt_registry.adapters import HttpAdapter
from prompt_registry.adapters import github as github_module
from prompt_registry.adapters import http as http_module
from prompt_registry.errors import AdapterError
from prompt_registry.errors import ConfigurationError
from prompt_registry.models import BundleArchive
from prompt_registry.models import RegistrySource

RELEASES = [
    {
        "tag_name": "v2.0.0",
        "name": "Team Prompts 2.0",
        "body": "Second release\ntags: azure, testing\n",
        "published_at": "2024-03-01T00:00:00Z",
        "assets": [
            {"name": "deployment-manifest.yml", "browser_download_url": "https://example.test/v2/manifest"},
            {"name": "bundle.zip", "size": 2048, "browser_download_url": "https://example.test/v2/bundle.zip"},
        ],
    },
    {
        "tag_name": "v1.0.0",
        "body": "",
        "assets": [
            {"name": "deployment-manifest.yml", "browser_download_url": "https://example.test/v1/manifest"},
            {"name": "bundle.zip", "size": 10, "browser_download_url": "https://example.test/v1/bundle.zip"},
        ],
    },
    {"tag_name": "v0.9.0", "assets": [{"name": "notes.txt"}]},
]


def _fake_fetch_json(responses: dict[str, Any]):
    async def fetch_json(url: str, headers: dict[str, str] | None = None) -> Any:
        if url not in responses:
            raise FileNotFoundError(url)
        return responses[url]

    return fetch_json


@pytest.mark.unit
class TestGitHubAdapter:
    """Test release discovery."""

    @pytest.fixture
    def adapter(self, monkeypatch: pytest.MonkeyPatch) -> GitHubAdapter:
        monkeypatch.setattr(
            github_module,
            "fetch_json",
            _fake_fetch_json(
                {
                    "https://api.github.com/repos/acme/team-prompts": {"name": "team-prompts", "description": "Ours"},
                    "https://api.github.com/repos/acme/team-prompts/releases": RELEASES,
                }
            ),
        )
        return GitHubAdapter(RegistrySource(id="gh", type="github", url="https://github.com/acme/team-prompts"))

    def test_rejects_non_github_url(self) -> None:
        with pytest.raises(ConfigurationError):
            GitHubAdapter(RegistrySource(id="gh", type="github", url="https://example.com/acme/team-prompts"))

    @pytest.mark.asyncio
    async def test_releases_with_assets_become_versions(self, adapter: GitHubAdapter) -> None:
        bundles = await adapter.fetch_bundles()

        assert [bundle.version for bundle in bundles] == ["2.0.0", "1.0.0"]
        assert {bundle.id for bundle in bundles} == {"acme-team-prompts"}
        assert bundles[0].tags == ["azure", "testing"]
        assert bundles[0].environments == ["cloud", "testing"]
        assert bundles[0].description == "Second release"
        assert bundles[0].size == "2.00 KB"
        assert bundles[0].download_url == "https://example.test/v2/bundle.zip"
        assert bundles[1].name == "team-prompts v1.0.0"

    @pytest.mark.asyncio
    async def test_validate(self, adapter: GitHubAdapter) -> None:
        result = await adapter.validate()

        assert result.valid
        assert result.bundles_found == 3

    @pytest.mark.asyncio
    async def test_validate_unreachable_repository(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(github_module, "fetch_json", _fake_fetch_json({}))
        adapter = GitHubAdapter(RegistrySource(id="gh", type="github", url="https://github.com/acme/missing"))

        result = await adapter.validate()

        assert not result.valid
        assert result.errors[0].startswith("GitHub validation failed")

    def test_release_urls(self, adapter: GitHubAdapter) -> None:
        assert adapter.get_download_url("acme-team-prompts", "1.0.0") == (
            "https://github.com/acme/team-prompts/releases/download/v1.0.0/bundle.zip"
        )
        assert adapter.get_manifest_url("acme-team-prompts") == (
            "https://github.com/acme/team-prompts/releases/latest/download/deployment-manifest.yml"
        )

    @pytest.mark.asyncio
    async def test_download_unpacks_zip(self, adapter: GitHubAdapter, monkeypatch: pytest.MonkeyPatch) -> None:
        payload = BundleArchive()
        payload.add("deployment-manifest.yml", "id: acme-team-prompts\n")
        payload.add("prompts/a.prompt.md", "A")

        async def fetch_bytes(url: str, headers: dict[str, str] | None = None) -> bytes:
            assert url == "https://example.test/v2/bundle.zip"
            return payload.to_zip()

        monkeypatch.setattr(github_module, "fetch_bytes", fetch_bytes)
        bundle = (await adapter.fetch_bundles())[0]

        archive = await adapter.download_bundle(bundle)

        assert archive.get("prompts/a.prompt.md") == b"A"


@pytest.mark.unit
class TestHttpAdapter:
    """Test index.json registries."""

    INDEX = {
        "name": "Team Registry",
        "bundles": [
            {"id": "team-prompts", "version": "1.1.0", "downloadUrl": "team-prompts/1.1.0/bundle.zip"},
            {"id": "absolute", "downloadUrl": "https://cdn.example.test/absolute.zip"},
        ],
    }

    @pytest.fixture
    def adapter(self, monkeypatch: pytest.MonkeyPatch) -> HttpAdapter:
        monkeypatch.setattr(
            http_module, "fetch_json", _fake_fetch_json({"https://registry.example.test/index.json": self.INDEX})
        )
        return HttpAdapter(RegistrySource(id="web", type="http", url="https://registry.example.test/"))

    def test_rejects_non_http_url(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid HTTP URL"):
            HttpAdapter(RegistrySource(id="web", type="http", url="/srv/registry"))

    @pytest.mark.asyncio
    async def test_relative_urls_resolve_against_index(self, adapter: HttpAdapter) -> None:
        bundles = await adapter.fetch_bundles()

        assert bundles[0].download_url == "https://registry.example.test/team-prompts/1.1.0/bundle.zip"
        assert bundles[1].download_url == "https://cdn.example.test/absolute.zip"
        assert bundles[1].version == "1.0.0"

    @pytest.mark.asyncio
    async def test_entries_with_unsafe_ids_are_skipped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        index = {"bundles": [{"id": "../../escaped"}, {"id": "nested/kit"}, {"name": "no id"}, {"id": "kept"}]}
        monkeypatch.setattr(
            http_module, "fetch_json", _fake_fetch_json({"https://registry.example.test/index.json": index})
        )
        adapter = HttpAdapter(RegistrySource(id="web", type="http", url="https://registry.example.test/"))

        assert [bundle.id for bundle in await adapter.fetch_bundles()] == ["kept"]

    @pytest.mark.asyncio
    async def test_metadata(self, adapter: HttpAdapter) -> None:
        metadata = await adapter.fetch_metadata()

        assert metadata.name == "Team Registry"
        assert metadata.bundle_count == 2

    @pytest.mark.asyncio
    async def test_unreachable_index(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(http_module, "fetch_json", _fake_fetch_json({}))
        adapter = HttpAdapter(RegistrySource(id="web", type="http", url="https://down.example.test"))

        assert not (await adapter.validate()).valid
        with pytest.raises(AdapterError, match="Failed to fetch bundles from HTTP registry"):
            await adapter.fetch_bundles()
