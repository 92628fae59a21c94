"""Sync history: append-only ledger of profile syncs and rollbacks.

Entries are stored newest first per hub and profile, capped at
MAX_HISTORY_ENTRIES. A rollback never edits earlier entries; it appends a new
entry with status "rollback".
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from ..errors import ProfileNotActiveError
from ..models import HistoryQuickPickItem
from ..models import PreviousState
from ..models import ProfileActivationState
from ..models import ProfileChanges
from ..models import SyncHistoryEntry
from ..models import SyncStatus
from ..models import UpdatedBundle
from ..models import utc_now_iso

if TYPE_CHECKING:
    from .hub_manager import HubManager

logger = logging.getLogger(__name__)

MAX_HISTORY_ENTRIES = 50


def _parse_timestamp(timestamp: str) -> datetime:
    return datetime.fromisoformat(timestamp.replace("Z", "+00:00"))


class SyncHistory:
    """History of sync operations per hub profile, with rollback."""

    def __init__(self, hub_manager: HubManager) -> None:
        self.hub_manager = hub_manager

    @property
    def storage(self):
        return self.hub_manager.storage

    async def record_sync(
        self,
        hub_id: str,
        profile_id: str,
        changes: ProfileChanges,
        previous_state: PreviousState,
        status: SyncStatus = "success",
        error: str | None = None,
    ) -> SyncHistoryEntry:
        entry = SyncHistoryEntry(
            hub_id=hub_id,
            profile_id=profile_id,
            timestamp=utc_now_iso(),
            status=status,
            changes=changes,
            previous_state=previous_state,
            error=error,
        )
        history = self.storage.load_history(hub_id, profile_id)
        history.insert(0, entry)
        self.storage.save_history(hub_id, profile_id, history[:MAX_HISTORY_ENTRIES])
        logger.debug(f"Recorded {status} sync for {hub_id}/{profile_id} ({changes.total} changes)")
        return entry

    async def get_history(self, hub_id: str, profile_id: str, limit: int | None = None) -> list[SyncHistoryEntry]:
        """Entries newest first, optionally capped at limit."""
        history = self.storage.load_history(hub_id, profile_id)
        if limit is not None and limit > 0:
            return history[:limit]
        return history

    def format_history_entry(self, entry: SyncHistoryEntry) -> str:
        """Multi-line, human-readable summary of one entry."""
        changes = entry.changes
        lines = [
            f"Synced at: {_parse_timestamp(entry.timestamp).astimezone().strftime('%Y-%m-%d %H:%M:%S')}",
            f"Status: {entry.status}",
        ]
        if entry.error:
            lines.append(f"Error: {entry.error}")

        lines.extend(["", "Changes:"])
        if changes.metadata_changed:
            lines.append("  Metadata: Changed")
        if changes.added:
            lines.extend(["", "  Added:"])
            lines.extend(f"    {bundle.id} ({bundle.version}) — Added [NEW]" for bundle in changes.added)
        if changes.updated:
            lines.extend(["", "  Updated:"])
            for update in changes.updated:
                lines.append(f"    {update.id} — Updated ({update.old_version} → {update.new_version})")
        if changes.removed:
            lines.extend(["", "  Removed:"])
            lines.extend(f"    {bundle_id} — Removed [DELETED]" for bundle_id in changes.removed)
        if not changes.has_changes:
            lines.append("  No changes")

        return "\n".join(lines)

    def create_history_quick_pick_items(self, entries: list[SyncHistoryEntry]) -> list[HistoryQuickPickItem]:
        items = []
        for entry in entries:
            changes = entry.changes
            timestamp = _parse_timestamp(entry.timestamp)
            when = f"{timestamp.date().isoformat()} {timestamp.astimezone().strftime('%H:%M:%S')}"
            total = changes.total + (1 if changes.metadata_changed else 0)

            parts = []
            if changes.added:
                parts.append(f"{len(changes.added)} added")
            if changes.updated:
                parts.append(f"{len(changes.updated)} updated")
            if changes.removed:
                parts.append(f"{len(changes.removed)} removed")
            if changes.metadata_changed:
                parts.append("metadata changed")

            if total == 0:
                label = f"{when} — No changes"
            else:
                label = f"{when} — {total} change{'s' if total != 1 else ''}"

            items.append(
                HistoryQuickPickItem(
                    label=label,
                    description=", ".join(parts) if parts else "No changes",
                    detail=f"Status: {entry.status}",
                    entry=entry,
                )
            )
        return items

    async def rollback_to_entry(
        self, hub_id: str, profile_id: str, entry: SyncHistoryEntry, install_bundles: bool = False
    ) -> SyncHistoryEntry:
        """Restore the bundle set an entry captured before its sync.

        Raises:
            ProfileNotActiveError: The profile is not the hub's active profile
        """
        active = await self.hub_manager.get_active_profile(hub_id)
        if active is None or active.profile_id != profile_id:
            raise ProfileNotActiveError(hub_id, profile_id)

        profile = await self.hub_manager.get_hub_profile(hub_id, profile_id)
        current = self.hub_manager.snapshot(active, profile)
        current_versions = {bundle.id: bundle.version for bundle in current.bundles}
        target_ids = {bundle.id for bundle in entry.previous_state.bundles}

        changes = ProfileChanges(
            added=[bundle for bundle in entry.previous_state.bundles if bundle.id not in current_versions],
            updated=[
                UpdatedBundle(id=bundle.id, old_version=current_versions[bundle.id], new_version=bundle.version)
                for bundle in entry.previous_state.bundles
                if bundle.id in current_versions and current_versions[bundle.id] != bundle.version
            ],
            removed=[bundle.id for bundle in current.bundles if bundle.id not in target_ids],
        )

        versions = {bundle.id: bundle.version for bundle in entry.previous_state.bundles}
        failed: list[str] = []
        if install_bundles:
            updated_ids = {update.id for update in changes.updated}
            to_install = [
                bundle
                for bundle in entry.previous_state.bundles
                if bundle.id not in current_versions or bundle.id in updated_ids
            ]
            applied = await self.hub_manager.apply_changes(hub_id, profile_id, to_install, changes.removed)
            failed = applied.failed
            versions.update(applied.versions)

        self.storage.save_activation_state(
            ProfileActivationState(
                hub_id=hub_id,
                profile_id=profile_id,
                activated_at=utc_now_iso(),
                synced_bundles=[bundle.id for bundle in entry.previous_state.bundles if bundle.id not in failed],
                synced_bundle_versions={key: value for key, value in versions.items() if key not in failed},
            )
        )

        logger.info(f"Rolled back profile {profile_id} in hub '{hub_id}' to state of {entry.timestamp}")
        return await self.record_sync(
            hub_id,
            profile_id,
            changes,
            current,
            status="rollback",
            error=f"Failed to install bundles: {', '.join(failed)}" if failed else None,
        )

    async def clear_history(self, hub_id: str, profile_id: str) -> None:
        self.storage.delete_history(hub_id, profile_id)

    async def clear_all_history(self) -> None:
        self.storage.delete_all_history()
