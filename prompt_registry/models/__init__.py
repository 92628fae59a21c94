"""Models for prompt registry."""

from .base import CamelCaseModel
from .base import utc_now_iso
from .bundles import BUNDLE_ID_PATTERN
from .bundles import SOURCE_TYPES
from .bundles import ArchiveEntry
from .bundles import Bundle
from .bundles import BundleArchive
from .bundles import BundleDependency
from .bundles import RegistrySource
from .bundles import SourceMetadata
from .bundles import SourceType
from .bundles import SourceValidationResult
from .bundles import is_valid_bundle_id
from .history import HistoryQuickPickItem
from .history import PreviousState
from .history import ProfileChanges
from .history import SyncHistoryEntry
from .history import SyncStatus
from .history import UpdatedBundle
from .hubs import HubConfig
from .hubs import HubInfo
from .hubs import HubInfoMetadata
from .hubs import HubMetadata
from .hubs import HubProfile
from .hubs import HubProfileWithHub
from .hubs import HubReference
from .hubs import HubStorageMetadata
from .hubs import HubSummary
from .hubs import HubValidationResult
from .hubs import ProfileActivationResult
from .hubs import ProfileActivationState
from .hubs import ProfileBundle
from .hubs import ProfileDeactivationResult
from .installed import ALL_SCOPES
from .installed import InstallationScope
from .installed import InstalledBundle
from .installed import MigrationResult
from .installed import ScopeConflict
from .lockfile import COMMIT_MODES
from .lockfile import LOCKFILE_NAME
from .lockfile import LOCKFILE_SCHEMA_URL
from .lockfile import LOCKFILE_VERSION
from .lockfile import CommitMode
from .lockfile import Lockfile
from .lockfile import LockfileBundleEntry
from .lockfile import LockfileFileEntry
from .lockfile import LockfileHubEntry
from .lockfile import LockfileProfileEntry
from .lockfile import LockfileSourceEntry
from .lockfile import LockfileValidationResult
from .lockfile import ModifiedFileInfo
from .registry import REGISTRY_CONFIG_VERSION
from .registry import AutoUpdateSummary
from .registry import BundleUpdate
from .registry import RegistryConfig
from .registry import RegistryPreferences
from .registry import SearchQuery
from .registry import SettingsExport
from .registry import UpdatePreference

__all__ = [
    "ALL_SCOPES",
    "BUNDLE_ID_PATTERN",
    "COMMIT_MODES",
    "LOCKFILE_NAME",
    "LOCKFILE_SCHEMA_URL",
    "LOCKFILE_VERSION",
    "REGISTRY_CONFIG_VERSION",
    "SOURCE_TYPES",
    "ArchiveEntry",
    "AutoUpdateSummary",
    "Bundle",
    "BundleArchive",
    "BundleDependency",
    "BundleUpdate",
    "CamelCaseModel",
    "CommitMode",
    "HistoryQuickPickItem",
    "HubConfig",
    "HubInfo",
    "HubInfoMetadata",
    "HubMetadata",
    "HubProfile",
    "HubProfileWithHub",
    "HubReference",
    "HubStorageMetadata",
    "HubSummary",
    "HubValidationResult",
    "InstallationScope",
    "InstalledBundle",
    "Lockfile",
    "LockfileBundleEntry",
    "LockfileFileEntry",
    "LockfileHubEntry",
    "LockfileProfileEntry",
    "LockfileSourceEntry",
    "LockfileValidationResult",
    "MigrationResult",
    "ModifiedFileInfo",
    "PreviousState",
    "ProfileActivationResult",
    "ProfileActivationState",
    "ProfileBundle",
    "ProfileChanges",
    "ProfileDeactivationResult",
    "RegistryConfig",
    "RegistryPreferences",
    "RegistrySource",
    "ScopeConflict",
    "SearchQuery",
    "SettingsExport",
    "SourceMetadata",
    "SourceType",
    "SourceValidationResult",
    "SyncHistoryEntry",
    "SyncStatus",
    "UpdatePreference",
    "UpdatedBundle",
    "is_valid_bundle_id",
    "utc_now_iso",
]
