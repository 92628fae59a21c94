"""Path resolution for prompt registry storage locations.

This module provides path resolution based on the PROMPT_REGISTRY_HOME
environment variable, following an XDG-like directory structure within that root.

Contract:
- Inputs: Environment variables (PROMPT_REGISTRY_HOME and per-directory overrides)
- Outputs: Resolved Path objects
- Side Effects: Creates directories if they don't exist
"""

import os
from pathlib import Path


def get_home_dir() -> Path:
    """Get PROMPT_REGISTRY_HOME from environment.

    Returns:
        Path to root directory (default: .prompt-registry)
    """
    root = os.environ.get("PROMPT_REGISTRY_HOME", ".prompt-registry")
    return Path(root).expanduser().resolve()


def _resolve_dir(default: Path, env_var: str) -> Path:
    directory = default
    env_override: str | None = os.environ.get(env_var)
    if env_override is not None:
        directory = Path(env_override).expanduser().resolve()

    directory.mkdir(parents=True, exist_ok=True)
    return directory


def get_config_dir() -> Path:
    """Get configuration directory.

    Returns:
        Path to config directory ($PROMPT_REGISTRY_HOME/config)
    """
    return _resolve_dir(get_home_dir() / "config", "PROMPT_REGISTRY_CONFIG_DIR")


def get_state_dir() -> Path:
    """Get state directory (sources, installed records, hubs).

    Returns:
        Path to state directory ($PROMPT_REGISTRY_HOME/state)

    Environment Variables:
        PROMPT_REGISTRY_STATE_DIR: Override state directory location
    """
    return _resolve_dir(get_home_dir() / "state", "PROMPT_REGISTRY_STATE_DIR")


def get_cache_dir() -> Path:
    """Get cache directory.

    Returns:
        Path to cache directory ($PROMPT_REGISTRY_HOME/cache)
    """
    return _resolve_dir(get_home_dir() / "cache", "PROMPT_REGISTRY_CACHE_DIR")


def get_git_cache_dir() -> Path:
    """Get git checkout cache directory.

    Returns:
        Path to git cache ($PROMPT_REGISTRY_HOME/cache/git)
    """
    git_cache_dir = get_cache_dir() / "git"
    git_cache_dir.mkdir(parents=True, exist_ok=True)
    return git_cache_dir


def get_hubs_dir() -> Path:
    """Get hub storage directory.

    Returns:
        Path to hub storage ($PROMPT_REGISTRY_HOME/state/hubs)
    """
    hubs_dir = get_state_dir() / "hubs"
    hubs_dir.mkdir(parents=True, exist_ok=True)
    return hubs_dir
