"""Lockfile models.

The lockfile (prompt-registry.lock.json) is the ledger of bundles installed at
repository scope. Keys serialize in camelCase except the `$schema` marker.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from .base import CamelCaseModel

LOCKFILE_NAME = "prompt-registry.lock.json"
LOCKFILE_SCHEMA_URL = "https://github.com/AmadeusITGroup/prompt-registry/schemas/lockfile.schema.json"
LOCKFILE_VERSION = "1.0.0"

CommitMode = Literal["commit", "local-only"]
COMMIT_MODES: tuple[str, ...] = ("commit", "local-only")


class LockfileFileEntry(CamelCaseModel):
    """A file installed by a bundle, repository-root-relative with forward slashes."""

    path: str
    checksum: str


class LockfileBundleEntry(CamelCaseModel):
    version: str
    source_id: str
    source_type: str
    installed_at: str
    commit_mode: CommitMode = "commit"
    checksum: str | None = None
    files: list[LockfileFileEntry] = Field(default_factory=list)


class LockfileSourceEntry(CamelCaseModel):
    type: str
    url: str
    branch: str | None = None


class LockfileHubEntry(CamelCaseModel):
    name: str
    url: str


class LockfileProfileEntry(CamelCaseModel):
    name: str
    bundle_ids: list[str] = Field(default_factory=list)


class Lockfile(CamelCaseModel):
    schema_url: str = Field(default=LOCKFILE_SCHEMA_URL, alias="$schema")
    version: str = LOCKFILE_VERSION
    generated_at: str
    generated_by: str
    bundles: dict[str, LockfileBundleEntry] = Field(default_factory=dict)
    sources: dict[str, LockfileSourceEntry] = Field(default_factory=dict)
    hubs: dict[str, LockfileHubEntry] | None = None
    profiles: dict[str, LockfileProfileEntry] | None = None


class ModifiedFileInfo(CamelCaseModel):
    """One drifted file of an installed bundle."""

    path: str
    original_checksum: str
    current_checksum: str = Field(description="Empty string when the file is missing")
    modification_type: Literal["modified", "missing", "new"]


class LockfileValidationResult(CamelCaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    schema_version: str | None = None
