"""Hub persistence.

Storage structure:
    <storage_path>/
        {hub_id}.yml                        # Hub document
        {hub_id}.meta.json                  # Reference, last modified, size
        activations/{hub_id}/{profile}.json # Profile activation states
        history/{hub_id}/{profile}.json     # Sync history, newest first
"""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path

from pydantic import ValidationError

from ..errors import ConfigurationError
from ..errors import NotFoundError
from ..models import HubConfig
from ..models import HubReference
from ..models import HubStorageMetadata
from ..models import ProfileActivationState
from ..models import SyncHistoryEntry
from ..models import utc_now_iso
from .json_store import load_json
from .json_store import load_yaml
from .json_store import save_json
from .json_store import save_yaml
from .registry_storage import sanitize_filename

logger = logging.getLogger(__name__)

HUB_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def validate_hub_id(hub_id: str) -> str:
    """Raises ConfigurationError unless the id is a safe file stem."""
    if not hub_id or not HUB_ID_PATTERN.match(hub_id):
        raise ConfigurationError(f"Invalid hub ID: {hub_id!r}")
    return hub_id


class HubStorage:
    """File-backed store for hub documents and their per-profile state."""

    def __init__(self, storage_path: Path | str) -> None:
        if not storage_path or not str(storage_path).strip():
            raise ConfigurationError("Invalid storage path")
        self.storage_path = Path(storage_path)
        self.activations_dir = self.storage_path / "activations"
        self.history_dir = self.storage_path / "history"
        self.storage_path.mkdir(parents=True, exist_ok=True)

    def _hub_path(self, hub_id: str) -> Path:
        return self.storage_path / f"{validate_hub_id(hub_id)}.yml"

    def _meta_path(self, hub_id: str) -> Path:
        return self.storage_path / f"{validate_hub_id(hub_id)}.meta.json"

    # --- Hubs ---

    def save_hub(self, hub_id: str, config: HubConfig, reference: HubReference) -> HubStorageMetadata:
        hub_path = self._hub_path(hub_id)
        save_yaml(hub_path, config.to_dict())
        metadata = HubStorageMetadata(
            reference=reference,
            last_modified=utc_now_iso(),
            size=hub_path.stat().st_size,
        )
        save_json(self._meta_path(hub_id), metadata.to_dict())
        logger.debug(f"Saved hub {hub_id} to {hub_path}")
        return metadata

    def hub_exists(self, hub_id: str) -> bool:
        return self._hub_path(hub_id).exists()

    def load_hub(self, hub_id: str) -> tuple[HubConfig, HubStorageMetadata]:
        """Load a stored hub document and its sidecar metadata.

        Raises:
            NotFoundError: If the hub is not stored
            ConfigurationError: If the stored files cannot be parsed
        """
        hub_path = self._hub_path(hub_id)
        if not hub_path.exists():
            raise NotFoundError(f"Hub not found: {hub_id}")

        data = load_yaml(hub_path)
        meta = load_json(self._meta_path(hub_id))
        if not isinstance(data, dict) or not isinstance(meta, dict):
            raise ConfigurationError(f"Stored hub {hub_id} is corrupt")
        try:
            return HubConfig.model_validate(data), HubStorageMetadata.model_validate(meta)
        except ValidationError as e:
            raise ConfigurationError(f"Stored hub {hub_id} is corrupt: {e}") from e

    def list_hubs(self) -> list[str]:
        return sorted(
            path.stem
            for path in self.storage_path.glob("*.yml")
            if HUB_ID_PATTERN.match(path.stem)
        )

    def delete_hub(self, hub_id: str) -> None:
        """Remove a hub with its activation states and history.

        Raises:
            NotFoundError: If the hub is not stored
        """
        hub_path = self._hub_path(hub_id)
        if not hub_path.exists():
            raise NotFoundError(f"Hub not found: {hub_id}")
        hub_path.unlink()
        self._meta_path(hub_id).unlink(missing_ok=True)
        shutil.rmtree(self.activations_dir / hub_id, ignore_errors=True)
        shutil.rmtree(self.history_dir / hub_id, ignore_errors=True)
        logger.debug(f"Deleted hub {hub_id}")

    # --- Activation states ---

    def _activation_path(self, hub_id: str, profile_id: str) -> Path:
        return self.activations_dir / validate_hub_id(hub_id) / f"{sanitize_filename(profile_id)}.json"

    def save_activation_state(self, state: ProfileActivationState) -> None:
        save_json(self._activation_path(state.hub_id, state.profile_id), state.to_dict())

    def get_activation_state(self, hub_id: str, profile_id: str) -> ProfileActivationState | None:
        data = load_json(self._activation_path(hub_id, profile_id))
        if data is None:
            return None
        try:
            return ProfileActivationState.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed activation state for {hub_id}/{profile_id}: {e}")
            return None

    def delete_activation_state(self, hub_id: str, profile_id: str) -> bool:
        """Returns True when a state existed."""
        path = self._activation_path(hub_id, profile_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def list_activation_states(self, hub_id: str | None = None) -> list[ProfileActivationState]:
        if hub_id:
            hub_ids = [validate_hub_id(hub_id)]
        elif self.activations_dir.is_dir():
            hub_ids = sorted(path.name for path in self.activations_dir.iterdir() if path.is_dir())
        else:
            hub_ids = []
        states: list[ProfileActivationState] = []
        for current in hub_ids:
            directory = self.activations_dir / current
            if not directory.is_dir():
                continue
            for path in sorted(directory.glob("*.json")):
                data = load_json(path)
                if data is None:
                    continue
                try:
                    states.append(ProfileActivationState.model_validate(data))
                except ValidationError as e:
                    logger.warning(f"Ignoring malformed activation state {path}: {e}")
        return states

    def get_active_profile_for_hub(self, hub_id: str) -> ProfileActivationState | None:
        """Activation state of the hub's active profile, if any."""
        states = self.list_activation_states(hub_id)
        return states[0] if states else None

    # --- Sync history ---

    def _history_path(self, hub_id: str, profile_id: str) -> Path:
        return self.history_dir / validate_hub_id(hub_id) / f"{sanitize_filename(profile_id)}.json"

    def load_history(self, hub_id: str, profile_id: str) -> list[SyncHistoryEntry]:
        data = load_json(self._history_path(hub_id, profile_id))
        if not isinstance(data, list):
            return []
        entries: list[SyncHistoryEntry] = []
        for item in data:
            try:
                entries.append(SyncHistoryEntry.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping malformed history entry for {hub_id}/{profile_id}: {e}")
        return entries

    def save_history(self, hub_id: str, profile_id: str, entries: list[SyncHistoryEntry]) -> None:
        save_json(self._history_path(hub_id, profile_id), [entry.to_dict() for entry in entries])

    def delete_history(self, hub_id: str, profile_id: str) -> None:
        self._history_path(hub_id, profile_id).unlink(missing_ok=True)

    def delete_all_history(self) -> None:
        shutil.rmtree(self.history_dir, ignore_errors=True)
