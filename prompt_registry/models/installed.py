"""Installed bundle records and scope conflict results."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from .base import CamelCaseModel
from .lockfile import CommitMode

InstallationScope = Literal["user", "workspace", "repository"]
ALL_SCOPES: tuple[InstallationScope, ...] = ("user", "workspace", "repository")


class InstalledBundle(CamelCaseModel):
    """Record of a bundle installed at one scope.

    There is at most one record per (bundle_id, scope) pair.
    """

    bundle_id: str
    version: str
    source_id: str
    source_type: str = ""
    installed_at: str
    scope: InstallationScope
    install_path: str = Field(default="", description="Root the bundle files were written under")
    files: list[str] = Field(default_factory=list, description="Installed file paths relative to install_path")
    commit_mode: CommitMode | None = None


class ScopeConflict(CamelCaseModel):
    bundle_id: str
    existing_scope: InstallationScope
    target_scope: InstallationScope
    existing_version: str
    installed_bundle: InstalledBundle


class MigrationResult(CamelCaseModel):
    """Outcome of moving a bundle between scopes.

    `installed_nowhere` is set when the uninstall step succeeded but the
    install step failed.
    """

    success: bool
    bundle_id: str
    from_scope: InstallationScope
    to_scope: InstallationScope
    error: str | None = None
    installed_nowhere: bool = False
