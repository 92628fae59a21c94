"""Unit tests for the skills and APM catalog adapters."""

from pathlib import Path

import pytest

from prompt_registry.adapters import LocalApmAdapter
from prompt_registry.adapters import LocalSkillsAdapter
from prompt_registry.models import RegistrySource


@pytest.fixture
def skills_repo(tmp_path: Path) -> Path:
    root = tmp_path / "skills-repo"
    skill = root / "skills" / "db-migrations"
    (skill / "scripts").mkdir(parents=True)
    (skill / "SKILL.md").write_text(
        "---\nname: Database Migrations\ndescription: Plan schema changes\ntags: [database]\n---\n\nSteps.\n"
    )
    (skill / "scripts" / "check.sh").write_text("echo ok\n")
    (root / "skills" / "no-skill-file").mkdir()
    return root


@pytest.fixture
def apm_repo(tmp_path: Path) -> Path:
    root = tmp_path / "apm-repo"
    package = root / "packages" / "python-review"
    (package / ".apm" / "prompts").mkdir(parents=True)
    (package / ".apm" / "instructions").mkdir()
    (package / "apm.yml").write_text(
        "name: Python Review\nversion: 1.2.0\ndescription: Review prompts\nauthor: Platform Team\ntags: [backend]\n"
    )
    (package / ".apm" / "prompts" / "review.prompt.md").write_text("Review it.\n")
    (package / ".apm" / "instructions" / "style.instructions.md").write_text("Style.\n")
    (package / "README.md").write_text("Not content.\n")
    return root


@pytest.mark.unit
class TestLocalSkillsAdapter:
    """Test skill directory discovery."""

    @pytest.mark.asyncio
    async def test_one_bundle_per_skill_directory(self, skills_repo: Path) -> None:
        adapter = LocalSkillsAdapter(RegistrySource(id="sk", type="local-skills", url=str(skills_repo)))

        bundles = await adapter.fetch_bundles()

        assert [bundle.id for bundle in bundles] == ["db-migrations"]
        assert bundles[0].name == "Database Migrations"
        assert bundles[0].environments == ["data"]
        assert bundles[0].size == "2 files"

    @pytest.mark.asyncio
    async def test_archive_keeps_skill_directory(self, skills_repo: Path) -> None:
        adapter = LocalSkillsAdapter(RegistrySource(id="sk", type="local-skills", url=str(skills_repo)))
        bundle = (await adapter.fetch_bundles())[0]

        archive = await adapter.download_bundle(bundle)

        assert archive.paths() == [
            "deployment-manifest.yml",
            "skills/db-migrations/SKILL.md",
            "skills/db-migrations/scripts/check.sh",
        ]

    @pytest.mark.asyncio
    async def test_custom_skills_path(self, skills_repo: Path) -> None:
        (skills_repo / "skills").rename(skills_repo / "custom")
        source = RegistrySource(
            id="sk", type="local-skills", url=str(skills_repo), config={"skillsPath": "custom"}
        )

        result = await LocalSkillsAdapter(source).validate()

        assert result.valid
        assert result.bundles_found == 1


@pytest.mark.unit
class TestLocalApmAdapter:
    """Test APM package discovery."""

    @pytest.mark.asyncio
    async def test_package_bundle(self, apm_repo: Path) -> None:
        adapter = LocalApmAdapter(RegistrySource(id="apm", type="local-apm", url=str(apm_repo)))

        bundles = await adapter.fetch_bundles()

        assert [bundle.id for bundle in bundles] == ["python-review"]
        assert bundles[0].version == "1.2.0"
        assert bundles[0].breakdown == {"instructions": 1, "prompts": 1}

    @pytest.mark.asyncio
    async def test_archive_holds_only_content_files(self, apm_repo: Path) -> None:
        adapter = LocalApmAdapter(RegistrySource(id="apm", type="local-apm", url=str(apm_repo)))
        bundle = (await adapter.fetch_bundles())[0]

        archive = await adapter.download_bundle(bundle)

        assert sorted(archive.paths()) == [
            "deployment-manifest.yml",
            "prompts/review.prompt.md",
            "prompts/style.instructions.md",
        ]

    @pytest.mark.asyncio
    async def test_validate_without_packages(self, tmp_path: Path) -> None:
        (tmp_path / "packages").mkdir()
        adapter = LocalApmAdapter(RegistrySource(id="apm", type="local-apm", url=str(tmp_path)))

        result = await adapter.validate()

        assert not result.valid
        assert "No packages found" in result.errors[0]
