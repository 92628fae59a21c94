"""CLI tests driving the click commands against a temporary registry home."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from prompt_registry.cli import cli
from prompt_registry.models import LOCKFILE_NAME


@pytest.fixture
def cli_env(
    mock_storage_env: Path, repo_root: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Path:
    monkeypatch.setenv("PROMPT_REGISTRY_REPOSITORY_ROOT", str(repo_root))
    monkeypatch.setenv("PROMPT_REGISTRY_WORKSPACE_ROOT", str(tmp_path / "workspace"))
    monkeypatch.setenv("PROMPT_REGISTRY_USER_ROOT", str(tmp_path / "user"))
    monkeypatch.setenv("PROMPT_REGISTRY_LOG_LEVEL", "error")
    return repo_root


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def invoke(runner: CliRunner, *args: str):
    return runner.invoke(cli, list(args), catch_exceptions=False)


@pytest.fixture
def with_source(runner: CliRunner, cli_env: Path, local_collections_dir: Path) -> Path:
    result = invoke(runner, "source", "add", "local", str(local_collections_dir), "--type", "local-awesome-copilot")
    assert result.exit_code == 0, result.output
    return cli_env


@pytest.mark.unit
class TestSourceCommands:
    """Test source add, list and sync."""

    def test_add_and_list(self, runner: CliRunner, with_source: Path, local_collections_dir: Path) -> None:
        result = invoke(runner, "source", "list")

        assert result.exit_code == 0
        assert f"local\tlocal-awesome-copilot\t{local_collections_dir}" in result.output

    def test_sync(self, runner: CliRunner, with_source: Path) -> None:
        result = invoke(runner, "source", "sync", "local")

        assert "Source 'local' synced: 2 bundles" in result.output

    def test_add_invalid_source(self, runner: CliRunner, cli_env: Path, tmp_path: Path) -> None:
        result = invoke(runner, "source", "add", "bad", str(tmp_path / "absent"), "--type", "local-awesome-copilot")

        assert result.exit_code == 1
        assert "Error: Source validation failed" in result.output


@pytest.mark.unit
class TestBundleCommands:
    """Test search, install and lockfile inspection."""

    def test_search(self, runner: CliRunner, with_source: Path) -> None:
        result = invoke(runner, "bundle", "search", "python")

        assert result.output.startswith("python-dev\t1.2.0\tPython Development\t[local]")

    def test_repository_install_and_lockfile(self, runner: CliRunner, with_source: Path) -> None:
        result = invoke(runner, "bundle", "install", "test-collection", "--scope", "repository")
        assert "Installed test-collection@1.0.0 at repository scope" in result.output
        assert (with_source / LOCKFILE_NAME).is_file()

        shown = invoke(runner, "lockfile", "show")
        assert "test-collection" in json.loads(shown.output)["bundles"]

        validated = invoke(runner, "lockfile", "validate")
        assert validated.exit_code == 0
        assert "Lockfile is valid (version 1.0.0)" in validated.output

        assert "No drift detected" in invoke(runner, "lockfile", "drift").output

        (with_source / ".github" / "prompts" / "test-prompt.prompt.md").write_text("edited locally\n")
        drift = invoke(runner, "lockfile", "drift", "test-collection")
        assert "test-collection\tmodified\t.github/prompts/test-prompt.prompt.md" in drift.output

    def test_scope_conflict_reported(self, runner: CliRunner, with_source: Path) -> None:
        invoke(runner, "bundle", "install", "test-collection", "--scope", "user")

        result = invoke(runner, "bundle", "install", "test-collection", "--scope", "repository")

        assert result.exit_code == 1
        assert "Error: Bundle test-collection is already installed at user scope" in result.output
        assert not (with_source / LOCKFILE_NAME).exists()

    def test_install_list_uninstall(self, runner: CliRunner, with_source: Path) -> None:
        invoke(runner, "bundle", "install", "python-dev", "--scope", "workspace")

        assert "python-dev\t1.2.0\tworkspace\tlocal" in invoke(runner, "bundle", "list").output

        result = invoke(runner, "bundle", "uninstall", "python-dev")
        assert "Uninstalled python-dev" in result.output
        assert invoke(runner, "bundle", "list").output == ""

    def test_updates_when_current(self, runner: CliRunner, with_source: Path) -> None:
        invoke(runner, "bundle", "install", "python-dev", "--scope", "user")

        assert "All bundles are up to date" in invoke(runner, "bundle", "updates").output

    def test_auto_update_opt_in_and_run(self, runner: CliRunner, with_source: Path) -> None:
        invoke(runner, "bundle", "install", "test-collection", "--scope", "user", "--version", "0.9.0")
        invoke(runner, "bundle", "install", "python-dev", "--scope", "user", "--version", "1.0.0")

        enabled = invoke(runner, "bundle", "auto-update", "test-collection")
        assert "Auto-update enabled for test-collection" in enabled.output
        assert "(user)\tauto" in invoke(runner, "bundle", "updates").output

        result = invoke(runner, "bundle", "auto-update-run")

        assert result.exit_code == 0, result.output
        assert "updated\ttest-collection" in result.output
        listed = invoke(runner, "bundle", "list").output
        assert "test-collection\t1.0.0\tuser" in listed
        assert "python-dev\t1.0.0\tuser" in listed

    def test_updates_apply_respects_local_modifications(
        self, runner: CliRunner, with_source: Path, repo_root: Path
    ) -> None:
        invoke(runner, "bundle", "install", "test-collection", "--scope", "repository", "--version", "0.9.0")
        (repo_root / ".github" / "prompts" / "test-prompt.prompt.md").write_text("edited by hand")

        refused = invoke(runner, "bundle", "updates", "--apply")
        assert refused.exit_code == 1
        assert "test-collection\t0.9.0\trepository" in invoke(runner, "bundle", "list").output

        forced = invoke(runner, "bundle", "updates", "--apply", "--force")
        assert forced.exit_code == 0, forced.output
        assert "test-collection\t1.0.0\trepository" in invoke(runner, "bundle", "list").output

    def test_lockfile_missing(self, runner: CliRunner, cli_env: Path) -> None:
        assert invoke(runner, "lockfile", "show").output.strip() == "No lockfile"
        assert invoke(runner, "lockfile", "validate").exit_code == 1


@pytest.mark.unit
class TestHubCommands:
    """Test hub import, profile activation and history."""

    def test_import_and_activate(self, runner: CliRunner, cli_env: Path, hub_config_path: Path) -> None:
        imported = invoke(runner, "hub", "import", str(hub_config_path), "--type", "local")
        assert "Imported hub 'test-hub'" in imported.output

        activated = invoke(runner, "profile", "activate", "test-hub", "backend", "--no-install")
        assert activated.exit_code == 0
        assert "Activated test-hub/backend (2 bundles)" in activated.output

        profiles = invoke(runner, "hub", "profiles", "test-hub").output
        assert "* backend\tBackend Developer\t2 bundles" in profiles
        assert "  frontend\tFrontend Developer\t1 bundles" in profiles

        assert "test-hub/backend" in invoke(runner, "profile", "active").output

        deactivated = invoke(runner, "profile", "deactivate", "test-hub", "backend")
        assert "removed 2 bundles" in deactivated.output

    def test_unknown_hub(self, runner: CliRunner, cli_env: Path) -> None:
        result = invoke(runner, "hub", "delete", "nope")

        assert result.exit_code == 1
        assert "Error: Hub not found: nope" in result.output

    def test_history_empty(self, runner: CliRunner, cli_env: Path) -> None:
        assert invoke(runner, "history", "show", "test-hub", "backend").output.strip() == "No history"

    def test_history_clear_needs_both_ids(self, runner: CliRunner, cli_env: Path) -> None:
        assert invoke(runner, "history", "clear", "test-hub").exit_code == 1
        assert "History cleared" in invoke(runner, "history", "clear").output


@pytest.mark.unit
class TestSettingsCommands:
    """Test settings export and import."""

    def test_export_and_import(self, runner: CliRunner, with_source: Path, tmp_path: Path) -> None:
        export_path = tmp_path / "settings.json"

        invoke(runner, "settings", "export", str(export_path))
        exported = json.loads(export_path.read_text())
        assert [source["id"] for source in exported["sources"]] == ["local"]

        invoke(runner, "source", "remove", "local")
        result = invoke(runner, "settings", "import", str(export_path))

        assert "Imported settings: 1 sources" in result.output
        assert "local\t" in invoke(runner, "source", "list").output
