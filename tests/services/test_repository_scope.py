"""Unit tests for repository scope file placement and git exclude handling."""

from pathlib import Path

import pytest
import yaml

from prompt_registry.models import BundleArchive
from prompt_registry.services import RepositoryScopeService
from prompt_registry.services.repository_scope import GIT_EXCLUDE_SECTION_HEADER


def make_archive() -> BundleArchive:
    manifest = {
        "id": "kit",
        "prompts": [
            {"id": "review", "file": "prompts/review.prompt.md", "type": "prompt"},
            {"id": "style", "file": "prompts/style.instructions.md", "type": "instructions"},
            {"id": "architect", "file": "prompts/architect.chatmode.md", "type": "chatmode"},
            {"id": "deploy", "file": "skills/deploy/SKILL.md", "type": "skill"},
        ],
    }
    archive = BundleArchive()
    archive.add("deployment-manifest.yml", yaml.safe_dump(manifest))
    archive.add("prompts/review.prompt.md", "review")
    archive.add("prompts/style.instructions.md", "style")
    archive.add("prompts/architect.chatmode.md", "architect")
    archive.add("skills/deploy/SKILL.md", "skill")
    archive.add("skills/deploy/scripts/run.sh", "run")
    return archive


@pytest.fixture
def service(repo_root: Path) -> RepositoryScopeService:
    return RepositoryScopeService(repo_root)


@pytest.mark.unit
class TestPlacement:
    """Test where content lands."""

    def test_plan_follows_manifest_types(self, service: RepositoryScopeService) -> None:
        planned = [path for path, _ in service.plan_files(make_archive())]

        assert planned == [
            ".github/prompts/review.prompt.md",
            ".github/instructions/style.instructions.md",
            ".github/prompts/architect.chatmode.md",
            ".github/skills/deploy/SKILL.md",
            ".github/skills/deploy/scripts/run.sh",
        ]

    def test_plan_without_manifest_uses_file_names(self, service: RepositoryScopeService) -> None:
        archive = BundleArchive()
        archive.add("anything/team.instructions.md", "x")
        archive.add("docs/planner.agent.md", "y")

        planned = [path for path, _ in service.plan_files(archive)]

        assert planned == [".github/instructions/team.instructions.md", ".github/agents/planner.agent.md"]

    def test_get_target_path(self, service: RepositoryScopeService, repo_root: Path) -> None:
        assert service.get_target_path("agent", "planner") == repo_root / ".github/agents/planner.agent.md"
        assert service.get_target_path("skill", "deploy") == repo_root / ".github/skills/SKILL.md"

    @pytest.mark.asyncio
    async def test_sync_writes_files(self, service: RepositoryScopeService, repo_root: Path) -> None:
        written = await service.sync_bundle("kit", make_archive())

        assert len(written) == 5
        assert (repo_root / ".github/prompts/review.prompt.md").read_text() == "review"
        assert (repo_root / ".github/skills/deploy/scripts/run.sh").read_text() == "run"
        assert service.get_git_exclude_entries() == []

    @pytest.mark.asyncio
    async def test_unsync_removes_files_and_empty_dirs(self, service: RepositoryScopeService, repo_root: Path) -> None:
        written = await service.sync_bundle("kit", make_archive())
        (repo_root / ".github" / "workflows").mkdir()

        removed = await service.unsync_bundle(written)

        assert sorted(removed) == sorted(written)
        assert not (repo_root / ".github" / "prompts").exists()
        assert not (repo_root / ".github" / "skills").exists()
        assert (repo_root / ".github" / "workflows").is_dir()


@pytest.mark.unit
class TestGitExclude:
    """Test the managed section of .git/info/exclude."""

    @pytest.mark.asyncio
    async def test_local_only_install_adds_section(self, service: RepositoryScopeService) -> None:
        written = await service.sync_bundle("kit", make_archive(), commit_mode="local-only")

        content = service.git_exclude_path.read_text()
        assert GIT_EXCLUDE_SECTION_HEADER in content
        assert service.get_git_exclude_entries() == written

    def test_preserves_user_lines(self, service: RepositoryScopeService) -> None:
        service.git_exclude_path.write_text("# my rules\n*.log\n")

        service.add_to_git_exclude([".github/prompts/a.prompt.md"])

        lines = service.git_exclude_path.read_text().splitlines()
        assert lines[:2] == ["# my rules", "*.log"]
        assert lines[-2:] == [GIT_EXCLUDE_SECTION_HEADER, ".github/prompts/a.prompt.md"]

    def test_entries_are_deduplicated(self, service: RepositoryScopeService) -> None:
        service.add_to_git_exclude(["a.md", "b.md"])
        service.add_to_git_exclude(["b.md", "c.md"])

        assert service.get_git_exclude_entries() == ["a.md", "b.md", "c.md"]
        assert service.git_exclude_path.read_text().count(GIT_EXCLUDE_SECTION_HEADER) == 1

    def test_section_removed_when_empty(self, service: RepositoryScopeService) -> None:
        service.git_exclude_path.write_text("*.log\n")
        service.add_to_git_exclude(["a.md"])

        service.remove_from_git_exclude(["a.md"])

        assert service.git_exclude_path.read_text() == "*.log\n"

    def test_surrounding_text_kept_verbatim(self, service: RepositoryScopeService) -> None:
        original = "\n# user rules\n*.log\n\n"
        service.git_exclude_path.write_text(original)

        service.add_to_git_exclude([".github/prompts/a.prompt.md"])
        assert service.git_exclude_path.read_text().startswith(original)

        service.remove_from_git_exclude([".github/prompts/a.prompt.md"])
        assert service.git_exclude_path.read_text() == original

    def test_text_after_section_kept_verbatim(self, service: RepositoryScopeService) -> None:
        trailer = "\n\n# other tool\nbuild/"
        service.git_exclude_path.write_text(f"*.log\n{GIT_EXCLUDE_SECTION_HEADER}\na.md\nb.md\n{trailer}")

        service.remove_from_git_exclude(["a.md"])

        assert service.git_exclude_path.read_text() == f"*.log\n{GIT_EXCLUDE_SECTION_HEADER}\nb.md\n{trailer}"

    def test_section_ends_at_next_comment(self, service: RepositoryScopeService) -> None:
        service.git_exclude_path.write_text(f"{GIT_EXCLUDE_SECTION_HEADER}\na.md\n# other tool\nbuild/\n")

        service.remove_from_git_exclude(["a.md"])

        assert service.git_exclude_path.read_text() == "# other tool\nbuild/\n"

    @pytest.mark.asyncio
    async def test_switch_commit_mode(self, service: RepositoryScopeService) -> None:
        written = await service.sync_bundle("kit", make_archive())

        await service.switch_commit_mode(written, "local-only")
        assert service.get_git_exclude_entries() == written

        await service.switch_commit_mode(written, "commit")
        assert service.get_git_exclude_entries() == []

    @pytest.mark.asyncio
    async def test_skipped_without_git_directory(self, tmp_path: Path) -> None:
        service = RepositoryScopeService(tmp_path / "plain")

        await service.sync_bundle("kit", make_archive(), commit_mode="local-only")

        assert not service.git_exclude_path.exists()
        assert (tmp_path / "plain" / ".github/prompts/review.prompt.md").exists()
