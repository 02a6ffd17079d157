"""
keysync.storage - Persistence for history, snapshots and record sets.
"""

from keysync.storage.db import SnapshotDatabase
from keysync.storage.errors import PersistenceError
from keysync.storage.history import (
    HistoryFilter,
    SyncDirection,
    SyncHistory,
    SyncHistoryEntry,
    SyncStats,
    format_history,
    format_stats,
)
from keysync.storage.keystore import RecordStore

__all__ = [
    "HistoryFilter",
    "PersistenceError",
    "RecordStore",
    "SnapshotDatabase",
    "SyncDirection",
    "SyncHistory",
    "SyncHistoryEntry",
    "SyncStats",
    "format_history",
    "format_stats",
]
