"""Registry state persistence.

Storage structure:
    <storage_dir>/
        config.json                     # Sources and preferences
        installed/
            user/{bundle_id}.json       # Installed bundle records, one store per scope
            workspace/{bundle_id}.json
            repository/{bundle_id}.json
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from pydantic import ValidationError

from ..errors import ConfigurationError
from ..errors import NotFoundError
from ..models import ALL_SCOPES
from ..models import InstallationScope
from ..models import InstalledBundle
from ..models import RegistryConfig
from ..models import RegistryPreferences
from ..models import RegistrySource
from ..models import UpdatePreference
from .json_store import load_json
from .json_store import save_json

logger = logging.getLogger(__name__)

_DISALLOWED_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
MAX_FILENAME_LENGTH = 200


def sanitize_filename(identifier: str) -> str:
    """Make an id safe to use as a file name.

    Raises:
        ConfigurationError: If the id is empty
    """
    if not identifier:
        raise ConfigurationError("ID cannot be empty")
    sanitized = _DISALLOWED_FILENAME_CHARS.sub("_", identifier)
    if sanitized in (".", ".."):
        sanitized = sanitized.replace(".", "_")
    return sanitized[:MAX_FILENAME_LENGTH]


class RegistryStorage:
    """JSON-backed store for sources, preferences and installed bundle records."""

    def __init__(self, storage_dir: Path) -> None:
        self.storage_dir = Path(storage_dir)
        self.config_path = self.storage_dir / "config.json"
        self.installed_dir = self.storage_dir / "installed"
        for scope in ALL_SCOPES:
            (self.installed_dir / scope).mkdir(parents=True, exist_ok=True)

    # --- Config ---

    def load_config(self) -> RegistryConfig:
        data = load_json(self.config_path)
        if data is None:
            return RegistryConfig()
        try:
            return RegistryConfig.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed registry config {self.config_path}: {e}")
            return RegistryConfig()

    def save_config(self, config: RegistryConfig) -> None:
        save_json(self.config_path, config.to_dict())

    # --- Sources ---

    def get_sources(self) -> list[RegistrySource]:
        return list(self.load_config().sources)

    def get_source(self, source_id: str) -> RegistrySource | None:
        return next((source for source in self.get_sources() if source.id == source_id), None)

    def add_source(self, source: RegistrySource) -> None:
        """Raises ConfigurationError if a source with the same id exists."""
        config = self.load_config()
        if any(existing.id == source.id for existing in config.sources):
            raise ConfigurationError(f"Source '{source.id}' already exists")
        config.sources.append(source)
        self.save_config(config)

    def update_source(self, source_id: str, source: RegistrySource) -> None:
        config = self.load_config()
        for index, existing in enumerate(config.sources):
            if existing.id == source_id:
                config.sources[index] = source
                self.save_config(config)
                return
        raise NotFoundError(f"Source '{source_id}' not found")

    def remove_source(self, source_id: str) -> None:
        config = self.load_config()
        remaining = [source for source in config.sources if source.id != source_id]
        if len(remaining) == len(config.sources):
            raise NotFoundError(f"Source '{source_id}' not found")
        config.sources = remaining
        self.save_config(config)

    # --- Preferences ---

    def get_settings(self) -> RegistryPreferences:
        return self.load_config().settings

    def update_settings(self, **updates: object) -> RegistryPreferences:
        config = self.load_config()
        config.settings = config.settings.model_copy(update=updates)
        self.save_config(config)
        return config.settings

    def set_update_preference(self, bundle_id: str, auto_update: bool) -> None:
        config = self.load_config()
        preference = config.settings.update_preferences.get(bundle_id, UpdatePreference())
        preference.auto_update = auto_update
        config.settings.update_preferences[bundle_id] = preference
        self.save_config(config)

    def get_update_preference(self, bundle_id: str) -> bool:
        preference = self.get_settings().update_preferences.get(bundle_id)
        return preference.auto_update if preference else False

    # --- Installed bundles ---

    def _installed_path(self, bundle_id: str, scope: InstallationScope) -> Path:
        if scope not in ALL_SCOPES:
            raise ConfigurationError(f"Unknown scope: {scope}")
        return self.installed_dir / scope / f"{sanitize_filename(bundle_id)}.json"

    def record_installation(self, installed: InstalledBundle) -> None:
        save_json(self._installed_path(installed.bundle_id, installed.scope), installed.to_dict())
        logger.debug(f"Recorded installation of {installed.bundle_id} at {installed.scope} scope")

    def remove_installation(self, bundle_id: str, scope: InstallationScope) -> None:
        path = self._installed_path(bundle_id, scope)
        if path.exists():
            path.unlink()
            logger.debug(f"Removed installation record of {bundle_id} at {scope} scope")

    def get_installed_bundle(self, bundle_id: str, scope: InstallationScope) -> InstalledBundle | None:
        data = load_json(self._installed_path(bundle_id, scope))
        if data is None:
            return None
        try:
            return InstalledBundle.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed installation record for {bundle_id} ({scope}): {e}")
            return None

    def get_installed_bundles(self, scope: InstallationScope | None = None) -> list[InstalledBundle]:
        scopes = [scope] if scope else list(ALL_SCOPES)
        installed: list[InstalledBundle] = []
        for current in scopes:
            for path in sorted((self.installed_dir / current).glob("*.json")):
                data = load_json(path)
                if data is None:
                    continue
                try:
                    installed.append(InstalledBundle.model_validate(data))
                except ValidationError as e:
                    logger.warning(f"Ignoring malformed installation record {path}: {e}")
        return installed
