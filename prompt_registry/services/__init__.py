"""Services for prompt_registry.

Public Interface:
    - LockfileManager: Repository lockfile ledger
    - ScopeConflictResolver: One-scope-per-bundle enforcement and migration
    - RepositoryScopeService: Repository file placement and git exclude
    - RegistryManager: Sources, catalog and install orchestration
    - HubManager: Hub import/sync and profile activation
    - SyncHistory: Hub profile sync and rollback ledger
    - AutoUpdateService: Applies updates to bundles opted into auto-update
"""

from .auto_update import AutoUpdateService
from .hub_manager import HubManager
from .lockfile_manager import LockfileManager
from .lockfile_manager import LockfileUpdate
from .registry_manager import RegistryManager
from .repository_scope import RepositoryScopeService
from .scope_conflict_resolver import ScopeConflictResolver
from .sync_history import SyncHistory

__all__ = [
    "AutoUpdateService",
    "HubManager",
    "LockfileManager",
    "LockfileUpdate",
    "RegistryManager",
    "RepositoryScopeService",
    "ScopeConflictResolver",
    "SyncHistory",
]
