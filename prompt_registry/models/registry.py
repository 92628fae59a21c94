"""Persisted registry configuration: sources plus user preferences."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from .base import CamelCaseModel
from .bundles import RegistrySource
from .installed import InstallationScope
from .lockfile import CommitMode

REGISTRY_CONFIG_VERSION = "1.0.0"


class UpdatePreference(CamelCaseModel):
    auto_update: bool = False
    last_checked: str | None = None


class RegistryPreferences(CamelCaseModel):
    default_scope: InstallationScope = "user"
    default_commit_mode: CommitMode = "commit"
    auto_check_updates: bool = True
    update_preferences: dict[str, UpdatePreference] = Field(default_factory=dict)


class RegistryConfig(CamelCaseModel):
    version: str = REGISTRY_CONFIG_VERSION
    sources: list[RegistrySource] = Field(default_factory=list)
    settings: RegistryPreferences = Field(default_factory=RegistryPreferences)


class SettingsExport(CamelCaseModel):
    """Versioned document produced by export_settings."""

    version: str = REGISTRY_CONFIG_VERSION
    exported_at: str
    sources: list[RegistrySource] = Field(default_factory=list)
    settings: RegistryPreferences = Field(default_factory=RegistryPreferences)


SortField = Literal["name", "version", "relevance", "recent"]


class SearchQuery(CamelCaseModel):
    """Filters for RegistryManager.search_bundles; unset fields match everything."""

    text: str | None = None
    tags: list[str] = Field(default_factory=list)
    author: str | None = None
    environment: str | None = None
    source_id: str | None = None
    sort_by: SortField | None = None
    offset: int | None = None
    limit: int | None = None


class BundleUpdate(CamelCaseModel):
    bundle_id: str
    current_version: str
    latest_version: str
    scope: InstallationScope
    auto_update_enabled: bool = False


class AutoUpdateSummary(CamelCaseModel):
    """Outcome of one auto-update pass."""

    updated: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict, description="Error message per bundle id")
    skipped: list[str] = Field(default_factory=list, description="Updates for bundles not opted in")
