"""
Change detection and application for incremental key synchronization.

A SyncManager keeps one State Snapshot per side (name -> checksum) and
diffs them into Create/Update/Delete changes. Changes can then be folded
into a record set with apply_changes().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from keysync.sync.record import (
    ZERO_TIME,
    KeyRecord,
    format_timestamp,
    index_by_name,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

# Party identifier used for the remote side's snapshot
REMOTE_PARTY_ID = "remote"


class ChangeType(str, Enum):
    """Kinds of change a sync can produce."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Change:
    """
    A single Create/Update/Delete event.

    Attributes:
        change_type: Kind of change
        record: Full record for create/update; name-only record for delete
        timestamp: When the change was detected
        device_id: Party that produced the change
        checksum: Checksum of the record (empty for deletes)
    """

    change_type: ChangeType
    record: KeyRecord
    timestamp: datetime
    device_id: str
    checksum: str = ""

    @property
    def name(self) -> str:
        """Name of the record this change concerns."""
        return self.record.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize the change for the history file."""
        return {
            "type": self.change_type.value,
            "key": self.record.to_dict(),
            "timestamp": format_timestamp(self.timestamp),
            "device_id": self.device_id,
            "checksum": self.checksum,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Change:
        """Deserialize a change read from the history file."""
        return cls(
            change_type=ChangeType(data.get("type", ChangeType.UPDATE.value)),
            record=KeyRecord.from_dict(data.get("key") or {}),
            timestamp=parse_timestamp(data.get("timestamp")) or ZERO_TIME,
            device_id=data.get("device_id", ""),
            checksum=data.get("checksum", ""),
        )


@dataclass
class SyncState:
    """
    One party's snapshot of its record set.

    Attributes:
        device_id: Party that owns the snapshot
        checksums: Record name -> checksum, exactly the names known at
                   snapshot time
        last_sync_time: When the snapshot was taken
        changes: Changes accumulated during this session
    """

    device_id: str = ""
    checksums: dict[str, str] = field(default_factory=dict)
    last_sync_time: Optional[datetime] = None
    changes: list[Change] = field(default_factory=list)

    @classmethod
    def from_records(cls, device_id: str, records: list[KeyRecord]) -> SyncState:
        """Build a snapshot by checksumming every record."""
        state = cls(device_id=device_id)
        state.rebuild(records)
        return state

    def rebuild(self, records: list[KeyRecord]) -> None:
        """Replace the checksum mapping with one entry per record."""
        self.checksums = {record.name: record.checksum() for record in records}
        self.last_sync_time = datetime.now(timezone.utc)


class SyncManager:
    """
    Detects and applies changes between a local and a remote snapshot.

    Usage:
        manager = SyncManager("laptop")
        manager.update_local_state(local_records)
        manager.update_remote_state(cached_remote_state)

        changes = manager.detect_changes(local_records)
        new_remote = manager.apply_changes(remote_records, changes)

    Attributes:
        device_id: Identifier of the local party
        local_state: Snapshot of the local record set
        remote_state: Snapshot of the remote record set
    """

    def __init__(self, device_id: str):
        """
        Initialize the sync manager with empty snapshots.

        Args:
            device_id: Identifier of the local party
        """
        self.device_id = device_id
        self.local_state = SyncState(device_id=device_id)
        self.remote_state = SyncState(device_id=REMOTE_PARTY_ID)

    def update_local_state(self, records: list[KeyRecord]) -> None:
        """
        Rebuild the local snapshot from the full local record set.

        This is a full rebuild: every checksum is recomputed and the
        snapshot timestamp is set to now.
        """
        self.local_state.rebuild(records)
        logger.debug(
            f"Local snapshot rebuilt for {self.device_id}: "
            f"{len(self.local_state.checksums)} record(s)"
        )

    def update_remote_state(self, state: SyncState) -> None:
        """Replace the remote snapshot (e.g. from cache or a fresh fetch)."""
        self.remote_state = state

    def update_remote_records(self, records: list[KeyRecord]) -> None:
        """Rebuild the remote snapshot from a fetched remote record set."""
        self.remote_state = SyncState.from_records(
            self.remote_state.device_id or REMOTE_PARTY_ID, records
        )

    def detect_changes(self, local_records: list[KeyRecord]) -> list[Change]:
        """
        Diff the local snapshot against the remote snapshot.

        Names only in the local snapshot produce Create changes, names in
        both with differing checksums produce Update changes, and names only
        in the remote snapshot produce Delete changes. Creates and updates
        come first, deletes last. An empty result means both sides are
        already in sync.

        Args:
            local_records: Live local records, used to recover full payloads

        Returns:
            List of changes that would bring the remote side in line
        """
        now = datetime.now(timezone.utc)
        local_map = index_by_name(local_records)
        local_checksums = self.local_state.checksums
        remote_checksums = self.remote_state.checksums
        changes: list[Change] = []

        for name, local_checksum in local_checksums.items():
            remote_checksum = remote_checksums.get(name)
            if remote_checksum is None:
                change_type = ChangeType.CREATE
            elif remote_checksum != local_checksum:
                change_type = ChangeType.UPDATE
            else:
                continue

            changes.append(
                Change(
                    change_type=change_type,
                    record=local_map.get(name, KeyRecord(name=name)),
                    timestamp=now,
                    device_id=self.device_id,
                    checksum=local_checksum,
                )
            )

        for name in remote_checksums:
            if name not in local_checksums:
                changes.append(
                    Change(
                        change_type=ChangeType.DELETE,
                        record=KeyRecord(name=name),
                        timestamp=now,
                        device_id=self.device_id,
                    )
                )

        logger.debug(f"Detected {len(changes)} change(s)")
        return changes

    def apply_changes(
        self, records: list[KeyRecord], changes: list[Change]
    ) -> list[KeyRecord]:
        """Fold changes into a record set. See apply_changes()."""
        return apply_changes(records, changes)

    def get_changelog(self, changes: list[Change]) -> list[str]:
        """Return one human-readable line per change."""
        return get_changelog(changes)

    def __repr__(self) -> str:
        """Return a readable string representation."""
        return (
            f"SyncManager(device_id={self.device_id!r}, "
            f"local={len(self.local_state.checksums)}, "
            f"remote={len(self.remote_state.checksums)})"
        )


def apply_changes(records: list[KeyRecord], changes: list[Change]) -> list[KeyRecord]:
    """
    Apply a list of changes to a record set.

    Creates and updates upsert the change's record under its name; deletes
    remove the name if present. Deleting an absent record is a no-op, so
    applying the same list twice gives the same result as applying it once.

    Args:
        records: Current record set
        changes: Changes to apply, in order

    Returns:
        The resulting record set (unique names, order not significant)
    """
    working = index_by_name(records)

    for change in changes:
        if change.change_type in (ChangeType.CREATE, ChangeType.UPDATE):
            working[change.name] = change.record
        elif change.change_type == ChangeType.DELETE:
            working.pop(change.name, None)

    return list(working.values())


CHANGELOG_LABELS = {
    ChangeType.CREATE: "Created",
    ChangeType.UPDATE: "Updated",
    ChangeType.DELETE: "Deleted",
}


def get_changelog(changes: list[Change]) -> list[str]:
    """Render changes as 'Created: name' style lines."""
    return [f"{CHANGELOG_LABELS[change.change_type]}: {change.name}" for change in changes]
