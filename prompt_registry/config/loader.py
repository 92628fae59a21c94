"""Configuration loading for prompt registry.

This module handles loading registry configuration from YAML files
and environment variables.

Contract:
- Inputs: Config file paths, environment variables
- Outputs: RegistrySettings objects
- Side Effects: Creates default config file if missing
"""

import logging
import os
from pathlib import Path

import yaml

from ..storage.paths import get_config_dir
from .settings import RegistrySettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = """# prompt registry configuration
# Every key can be overridden with a PROMPT_REGISTRY_<KEY> environment variable

log_level: "info"

# Lifetime of cached source catalogs, in seconds
cache_ttl_seconds: 300

# Commit mode for repository-scope installs: "commit" or "local-only"
default_commit_mode: "commit"

# Repository receiving repository-scope installs (lockfile lives at its root)
# repository_root: "."

# Directory receiving workspace-scope installs
# workspace_root: "."

# Token for GitHub API requests (higher rate limits, private repositories)
# github_token: ""
"""


def get_config_path() -> Path:
    """Get path to config file.

    Returns:
        Path to registry.yaml in config directory
    """
    return get_config_dir() / "registry.yaml"


def create_default_config() -> None:
    """Create default config file if it doesn't exist."""
    config_path = get_config_path()

    if config_path.exists():
        logger.debug(f"Config file already exists: {config_path}")
        return

    config_path.write_text(DEFAULT_CONFIG, encoding="utf-8")
    logger.info(f"Created default config: {config_path}")


def load_config(config_path: Path | None = None) -> RegistrySettings:
    """Load registry configuration from YAML and environment.

    Environment variables take precedence over YAML settings.
    Variables should be prefixed with PROMPT_REGISTRY_ (e.g., PROMPT_REGISTRY_LOG_LEVEL).

    Args:
        config_path: Optional config file path (default: registry.yaml in config dir)

    Returns:
        Validated registry settings

    Example:
        >>> settings = load_config()
        >>> assert isinstance(settings, RegistrySettings)
    """
    if config_path is None:
        config_path = get_config_path()
        if not config_path.exists():
            create_default_config()

    yaml_settings = {}
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                yaml_settings = yaml.safe_load(f) or {}
            logger.debug(f"Loaded config from {config_path}")
        except Exception as e:
            logger.warning(f"Failed to load config from {config_path}: {e}")
            logger.info("Using default settings and environment variables")

    # defaults < YAML < env vars
    filtered_yaml = {}
    for key, value in yaml_settings.items():
        env_key = f"PROMPT_REGISTRY_{key.upper()}"
        if env_key not in os.environ:
            filtered_yaml[key] = value

    settings = RegistrySettings(**filtered_yaml)

    logger.info(
        f"Registry configuration loaded: home={settings.home}, repository_root={settings.repository_root}, "
        f"log_level={settings.log_level}"
    )

    return settings
