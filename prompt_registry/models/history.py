"""Profile change sets and sync history entries."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from .base import CamelCaseModel
from .hubs import ProfileBundle

SyncStatus = Literal["success", "failure", "rollback"]


class UpdatedBundle(CamelCaseModel):
    id: str
    old_version: str
    new_version: str


class ProfileChanges(CamelCaseModel):
    """Difference between a profile's declared bundles and its synced state."""

    added: list[ProfileBundle] = Field(default_factory=list)
    updated: list[UpdatedBundle] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    metadata_changed: bool = False

    @property
    def total(self) -> int:
        return len(self.added) + len(self.updated) + len(self.removed)

    @property
    def has_changes(self) -> bool:
        return self.total > 0 or self.metadata_changed


class PreviousState(CamelCaseModel):
    bundles: list[ProfileBundle] = Field(default_factory=list)
    activated_at: str | None = None


class SyncHistoryEntry(CamelCaseModel):
    hub_id: str
    profile_id: str
    timestamp: str
    status: SyncStatus
    changes: ProfileChanges = Field(default_factory=ProfileChanges)
    previous_state: PreviousState = Field(default_factory=PreviousState)
    error: str | None = None


class HistoryQuickPickItem(CamelCaseModel):
    label: str
    description: str
    detail: str
    entry: SyncHistoryEntry
