"""Unit tests for GitHub URL parsing."""

import pytest

from prompt_registry.errors import ConfigurationError
from prompt_registry.utils.github_url import is_github_location
from prompt_registry.utils.github_url import parse_github_url


@pytest.mark.unit
class TestParseGitHubUrl:
    """Test supported URL shapes."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://github.com/github/awesome-copilot",
            "https://github.com/github/awesome-copilot/",
            "https://github.com/github/awesome-copilot.git",
            "git@github.com:github/awesome-copilot.git",
        ],
    )
    def test_owner_and_repo(self, url: str) -> None:
        parsed = parse_github_url(url)
        assert parsed.owner == "github"
        assert parsed.repo == "awesome-copilot"
        assert parsed.slug == "github/awesome-copilot"
        assert parsed.clone_url == "https://github.com/github/awesome-copilot.git"

    def test_rejects_other_hosts(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid GitHub URL"):
            parse_github_url("https://gitlab.com/org/repo")


@pytest.mark.unit
def test_is_github_location() -> None:
    assert is_github_location("org/hub-repo")
    assert not is_github_location("org")
    assert not is_github_location("https://github.com/org/repo")
