"""
Sync history ledger.

Keeps a bounded, persisted log of reconciliation attempts (one entry per
sync operation) with query, statistics and text formatting helpers.

History file format (sync-history.json):

    [
        {
            "id": "sync-1718000000000000000-1",
            "timestamp": "2024-06-10T08:00:00+00:00",
            "device_id": "laptop",
            "direction": "push",
            "changes_applied": 2,
            "conflicts_found": 0,
            "success": true,
            "changes": [...],
            "duration": 0.42
        }
    ]

Notes:
    - Entries are stored newest first
    - Only the newest max_entries entries are retained
    - The file is replaced atomically on every save
"""

from __future__ import annotations

import itertools
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from keysync.storage.errors import PersistenceError
from keysync.storage.files import atomic_write_text
from keysync.sync.changes import Change, ChangeType
from keysync.sync.record import ZERO_TIME, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

# Default history file name inside the config directory
DEFAULT_HISTORY_FILE = "sync-history.json"

# Default number of retained entries
DEFAULT_MAX_ENTRIES = 100

_id_counter = itertools.count(1)


def generate_entry_id() -> str:
    """Return a process-unique, monotonically increasing entry id."""
    return f"sync-{time.time_ns()}-{next(_id_counter)}"


class SyncDirection(str, Enum):
    """Sync operation direction."""

    PUSH = "push"
    PULL = "pull"


@dataclass
class SyncHistoryEntry:
    """
    Record of one reconciliation attempt.

    Attributes:
        id: Unique entry id (assigned on add if empty)
        timestamp: When the sync ran (assigned on add if None)
        device_id: Party that ran the sync
        direction: push or pull
        changes_applied: Number of changes applied
        conflicts_found: Number of conflicts detected
        success: Whether the sync completed
        error: Error text for failed syncs
        changes: The changes that were applied
        duration: How long the sync took
    """

    device_id: str = ""
    direction: SyncDirection = SyncDirection.PULL
    changes_applied: int = 0
    conflicts_found: int = 0
    success: bool = True
    error: Optional[str] = None
    changes: list[Change] = field(default_factory=list)
    duration: timedelta = field(default_factory=timedelta)
    id: str = ""
    timestamp: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize the entry for the history file."""
        data: dict[str, Any] = {
            "id": self.id,
            "timestamp": format_timestamp(self.timestamp),
            "device_id": self.device_id,
            "direction": self.direction.value,
            "changes_applied": self.changes_applied,
            "conflicts_found": self.conflicts_found,
            "success": self.success,
            "changes": [change.to_dict() for change in self.changes],
            "duration": self.duration.total_seconds(),
        }
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncHistoryEntry:
        """Deserialize an entry; only success and timestamp are expected."""
        direction = data.get("direction") or SyncDirection.PULL.value
        return cls(
            id=data.get("id", ""),
            timestamp=parse_timestamp(data.get("timestamp")) or ZERO_TIME,
            device_id=data.get("device_id", ""),
            direction=SyncDirection(direction),
            changes_applied=int(data.get("changes_applied", 0)),
            conflicts_found=int(data.get("conflicts_found", 0)),
            success=bool(data.get("success", False)),
            error=data.get("error") or None,
            changes=[Change.from_dict(c) for c in data.get("changes") or []],
            duration=timedelta(seconds=float(data.get("duration") or 0)),
        )


@dataclass
class SyncStats:
    """Aggregate statistics over the retained history."""

    total_syncs: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    total_changes: int = 0
    total_conflicts: int = 0
    push_count: int = 0
    pull_count: int = 0
    last_sync_time: datetime = ZERO_TIME

    @property
    def has_synced(self) -> bool:
        """True if at least one sync is recorded."""
        return self.last_sync_time != ZERO_TIME


@dataclass
class HistoryFilter:
    """
    Criteria for querying the ledger. Unset fields match everything.

    Time bounds are inclusive.
    """

    device_id: Optional[str] = None
    direction: Optional[SyncDirection] = None
    success: Optional[bool] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def matches(self, entry: SyncHistoryEntry) -> bool:
        """Check whether an entry satisfies every set criterion."""
        if self.device_id is not None and entry.device_id != self.device_id:
            return False
        if self.direction is not None and entry.direction != self.direction:
            return False
        if self.success is not None and entry.success != self.success:
            return False
        timestamp = parse_timestamp(entry.timestamp) or ZERO_TIME
        start = parse_timestamp(self.start)
        end = parse_timestamp(self.end)
        if start is not None and timestamp < start:
            return False
        if end is not None and timestamp > end:
            return False
        return True


def _newest_first(entries: list[SyncHistoryEntry]) -> list[SyncHistoryEntry]:
    return sorted(entries, key=lambda e: e.timestamp or ZERO_TIME, reverse=True)


class SyncHistory:
    """
    Append-only, size-bounded log of sync operations.

    Every add() or clear() rewrites the whole history file. Saves go
    through a temporary file and an atomic rename, so a crashed or
    concurrent writer never leaves a truncated file behind. There is no
    cross-process lock: two concurrent syncs can still drop each other's
    entries (last writer wins).

    Usage:
        history = SyncHistory(config_dir / "sync-history.json", max_entries=100)
        history.load()

        history.add(SyncHistoryEntry(device_id="laptop", changes_applied=3))
        recent = history.get_recent(10)
        print(format_history(recent))

    Attributes:
        history_file: Path of the JSON history file
        max_entries: Maximum number of retained entries
    """

    def __init__(self, history_file: Path, max_entries: int = DEFAULT_MAX_ENTRIES):
        """
        Initialize an empty ledger. Call load() to read existing history.

        Args:
            history_file: Path of the JSON history file
            max_entries: Maximum number of entries kept on save
        """
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.history_file = Path(history_file).expanduser()
        self.max_entries = max_entries
        self._entries: list[SyncHistoryEntry] = []

    @classmethod
    def open(
        cls, config_dir: Path, max_entries: int = DEFAULT_MAX_ENTRIES
    ) -> SyncHistory:
        """
        Create a ledger in config_dir and load existing entries.

        Raises:
            PersistenceError: If an existing history file cannot be read
        """
        history = cls(Path(config_dir) / DEFAULT_HISTORY_FILE, max_entries)
        history.load()
        return history

    @property
    def entries(self) -> list[SyncHistoryEntry]:
        """Copy of the in-memory entries."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def load(self) -> None:
        """
        Load history from disk.

        A missing file means empty history.

        Raises:
            PersistenceError: If the file cannot be read or parsed
        """
        if not self.history_file.exists():
            logger.debug(f"No history file at {self.history_file}")
            self._entries = []
            return

        try:
            with open(self.history_file, encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise PersistenceError(
                f"Failed to read history file {self.history_file}: {e}",
                self.history_file,
            ) from e
        except json.JSONDecodeError as e:
            raise PersistenceError(
                f"Failed to parse history file {self.history_file}: {e}",
                self.history_file,
            ) from e

        if data is None:
            data = []
        if not isinstance(data, list):
            raise PersistenceError(
                f"History file must contain a JSON list, got {type(data).__name__}",
                self.history_file,
            )

        try:
            self._entries = [SyncHistoryEntry.from_dict(item) for item in data]
        except (TypeError, ValueError, AttributeError) as e:
            raise PersistenceError(
                f"Invalid entry in history file {self.history_file}: {e}",
                self.history_file,
            ) from e
        logger.debug(f"Loaded {len(self._entries)} history entries")

    def save(self) -> None:
        """
        Persist the ledger, newest first, truncated to max_entries.

        Raises:
            PersistenceError: If the history file cannot be written
        """
        self._entries = _newest_first(self._entries)[: self.max_entries]
        content = json.dumps(
            [entry.to_dict() for entry in self._entries], indent=2, ensure_ascii=False
        )
        try:
            atomic_write_text(self.history_file, content)
        except PersistenceError as e:
            logger.error(f"Could not save sync history: {e}")
            raise

    def add(self, entry: SyncHistoryEntry) -> SyncHistoryEntry:
        """
        Append an entry and persist the ledger.

        Assigns a timestamp and an id when unset; a naive timestamp is read
        as UTC. The entry stays in memory even if saving fails, so save() can be retried without re-adding.

        Returns:
            The added entry

        Raises:
            PersistenceError: If the history file cannot be written
        """
        if entry.timestamp is None:
            entry.timestamp = datetime.now(timezone.utc)
        else:
            entry.timestamp = parse_timestamp(entry.timestamp)
        if not entry.id:
            entry.id = generate_entry_id()

        self._entries.append(entry)
        self.save()
        return entry

    def get_recent(self, n: int) -> list[SyncHistoryEntry]:
        """Return up to n entries, newest first. n <= 0 returns []."""
        if n <= 0:
            return []
        return _newest_first(self._entries)[:n]

    def get_by_id(self, entry_id: str) -> Optional[SyncHistoryEntry]:
        """Return the entry with the given id, or None."""
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def get_by_date_range(
        self, start: datetime, end: datetime
    ) -> list[SyncHistoryEntry]:
        """
        Return entries strictly between start and end, newest first.

        Naive bounds are read as UTC.
        """
        start, end = parse_timestamp(start), parse_timestamp(end)
        return _newest_first(
            [
                entry
                for entry in self._entries
                if entry.timestamp is not None and start < entry.timestamp < end
            ]
        )

    def get_by_device(self, device_id: str) -> list[SyncHistoryEntry]:
        """Return entries recorded by a device, newest first."""
        return self.query(HistoryFilter(device_id=device_id))

    def get_by_direction(self, direction: SyncDirection) -> list[SyncHistoryEntry]:
        """Return push or pull entries, newest first."""
        return self.query(HistoryFilter(direction=direction))

    def get_failures(self) -> list[SyncHistoryEntry]:
        """Return failed syncs, newest first."""
        return self.query(HistoryFilter(success=False))

    def query(self, history_filter: HistoryFilter) -> list[SyncHistoryEntry]:
        """Return entries matching a filter, newest first."""
        return _newest_first([e for e in self._entries if history_filter.matches(e)])

    def get_stats(self) -> SyncStats:
        """Compute statistics over all retained entries."""
        stats = SyncStats(total_syncs=len(self._entries))

        for entry in self._entries:
            if entry.success:
                stats.successful_syncs += 1
            else:
                stats.failed_syncs += 1

            stats.total_changes += entry.changes_applied
            stats.total_conflicts += entry.conflicts_found

            if entry.direction == SyncDirection.PUSH:
                stats.push_count += 1
            elif entry.direction == SyncDirection.PULL:
                stats.pull_count += 1

            if entry.timestamp is not None and entry.timestamp > stats.last_sync_time:
                stats.last_sync_time = entry.timestamp

        return stats

    def clear(self) -> None:
        """
        Remove all entries and persist the empty ledger.

        Raises:
            PersistenceError: If the history file cannot be written
        """
        self._entries = []
        self.save()
        logger.info("Sync history cleared")

    def format(self, entries: Optional[list[SyncHistoryEntry]] = None) -> str:
        """Format the given entries (default: all, newest first)."""
        if entries is None:
            entries = _newest_first(self._entries)
        return format_history(entries)

    def __repr__(self) -> str:
        """Return a readable string representation."""
        return (
            f"SyncHistory(history_file={str(self.history_file)!r}, "
            f"entries={len(self._entries)}, max_entries={self.max_entries})"
        )


TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

CHANGE_SYMBOLS = {
    ChangeType.CREATE: "+",
    ChangeType.UPDATE: "~",
    ChangeType.DELETE: "-",
}


def format_duration(duration: timedelta) -> str:
    """Render a duration as seconds, e.g. '1.25s'."""
    return f"{duration.total_seconds():.2f}s"


def format_history(entries: list[SyncHistoryEntry]) -> str:
    """
    Render entries as a multi-line report.

    Entries are rendered in the order given. The input is not modified.
    """
    if not entries:
        return "No sync history found."

    lines = ["Sync History:", "=" * 61, ""]

    for i, entry in enumerate(entries):
        status = "✓" if entry.success else "✗"
        timestamp = (entry.timestamp or ZERO_TIME).strftime(TIMESTAMP_FORMAT)
        lines.append(
            f"{status} [{timestamp}] {entry.direction.value} - {entry.device_id}"
        )
        lines.append(
            f"   Changes: {entry.changes_applied}, "
            f"Conflicts: {entry.conflicts_found}, "
            f"Duration: {format_duration(entry.duration)}"
        )

        if entry.error:
            lines.append(f"   Error: {entry.error}")

        if entry.changes:
            lines.append("   Changes:")
            for change in entry.changes:
                lines.append(f"     {CHANGE_SYMBOLS[change.change_type]} {change.name}")

        if i < len(entries) - 1:
            lines.append("")

    return "\n".join(lines)


def format_stats(stats: SyncStats) -> str:
    """Render statistics as text."""
    lines = [
        "Statistics:",
        f"   Total syncs: {stats.total_syncs}",
        f"   Successful: {stats.successful_syncs}",
        f"   Failed: {stats.failed_syncs}",
        f"   Total changes: {stats.total_changes}",
        f"   Total conflicts: {stats.total_conflicts}",
        f"   Push: {stats.push_count}, Pull: {stats.pull_count}",
    ]
    if stats.has_synced:
        lines.append(f"   Last sync: {stats.last_sync_time.strftime(TIMESTAMP_FORMAT)}")
    return "\n".join(lines)
