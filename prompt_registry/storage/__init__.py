"""Storage module for prompt_registry.

Provides JSON/YAML persistence with atomic writes.

Public Interface:
    - save_json / load_json: Atomic JSON write, tolerant read
    - save_yaml / load_yaml: Atomic YAML write, tolerant read
    - RegistryStorage: Sources, preferences, per-scope installed records
    - HubStorage: Hub documents, activation states, sync history
    - get_home_dir: Get PROMPT_REGISTRY_HOME
    - get_config_dir / get_state_dir / get_cache_dir / get_hubs_dir
"""

from .hub_storage import HubStorage
from .hub_storage import validate_hub_id
from .json_store import load_json
from .json_store import load_yaml
from .json_store import save_json
from .json_store import save_yaml
from .paths import get_cache_dir
from .paths import get_config_dir
from .paths import get_git_cache_dir
from .paths import get_home_dir
from .paths import get_hubs_dir
from .paths import get_state_dir
from .registry_storage import RegistryStorage
from .registry_storage import sanitize_filename

__all__ = [
    "HubStorage",
    "RegistryStorage",
    "get_cache_dir",
    "get_config_dir",
    "get_git_cache_dir",
    "get_home_dir",
    "get_hubs_dir",
    "get_state_dir",
    "load_json",
    "load_yaml",
    "sanitize_filename",
    "save_json",
    "save_yaml",
    "validate_hub_id",
]
