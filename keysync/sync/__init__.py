"""
keysync.sync - Change detection, conflict resolution and the sync engine.
"""

from keysync.sync.changes import (
    Change,
    ChangeType,
    SyncManager,
    SyncState,
    apply_changes,
    get_changelog,
)
from keysync.sync.conflict import (
    ConflictResolution,
    ConflictResolver,
    ConflictStrategy,
    Deferred,
    Resolved,
)
from keysync.sync.record import KeyRecord, KeyType, compute_checksum

__all__ = [
    "Change",
    "ChangeType",
    "ConflictResolution",
    "ConflictResolver",
    "ConflictStrategy",
    "Deferred",
    "KeyRecord",
    "KeyType",
    "Resolved",
    "SyncManager",
    "SyncState",
    "apply_changes",
    "compute_checksum",
    "get_changelog",
]
