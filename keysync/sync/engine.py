"""
Sync engine for two-party key synchronization.

Orchestrates one reconciliation pass between a local and a remote record
set: snapshot, change detection, conflict resolution, change application
and history recording.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from keysync.storage.db import SnapshotDatabase
from keysync.storage.history import SyncDirection, SyncHistory, SyncHistoryEntry
from keysync.storage.keystore import RecordStore
from keysync.sync.changes import (
    REMOTE_PARTY_ID,
    Change,
    ChangeType,
    SyncManager,
    SyncState,
    apply_changes,
)
from keysync.sync.conflict import (
    ConflictResolution,
    ConflictResolver,
    ConflictStrategy,
    Deferred,
)
from keysync.sync.record import KeyRecord, index_by_name

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """
    Outcome of one reconciliation pass.

    Attributes:
        direction: push (local -> remote) or pull (remote -> local)
        changes: Changes applied to the target side
        conflicts: Every conflict found, resolved or deferred
        deferred: Conflicts awaiting a manual decision
        records: The target side's record set after applying changes
        dry_run: True if nothing was persisted
        duration: Wall-clock time of the pass
    """

    direction: SyncDirection
    changes: list[Change] = field(default_factory=list)
    conflicts: list[ConflictResolution] = field(default_factory=list)
    deferred: list[ConflictResolution] = field(default_factory=list)
    records: list[KeyRecord] = field(default_factory=list)
    dry_run: bool = False
    duration: timedelta = field(default_factory=timedelta)

    def has_changes(self) -> bool:
        """Check if there are any changes to apply."""
        return bool(self.changes)

    def count(self, change_type: ChangeType) -> int:
        """Number of changes of one kind."""
        return sum(1 for change in self.changes if change.change_type == change_type)

    def summary(self) -> str:
        """Generate a human-readable summary of the pass."""
        target = "remote" if self.direction == SyncDirection.PUSH else "local"
        lines = [
            f"Sync Summary ({self.direction.value}):",
            f"  Created in {target}: {self.count(ChangeType.CREATE)}",
            f"  Updated in {target}: {self.count(ChangeType.UPDATE)}",
            f"  Deleted in {target}: {self.count(ChangeType.DELETE)}",
            f"  Conflicts found: {len(self.conflicts)}",
        ]
        if self.deferred:
            lines.append(f"  Awaiting manual resolution: {len(self.deferred)}")
        return "\n".join(lines)


class SyncEngine:
    """
    Runs reconciliation passes and records them in the history ledger.

    Usage:
        engine = SyncEngine("laptop", ConflictStrategy.NEWER_WINS, history=history)
        result = engine.sync(
            local_records, remote_records, SyncDirection.PULL, target_store=store
        )

    Attributes:
        device_id: Identifier of the local party
        resolver: Conflict resolver for the configured strategy
        history: Ledger to record passes in (optional)
        snapshot_db: Cache for the remote snapshot (optional)
    """

    def __init__(
        self,
        device_id: str,
        strategy: ConflictStrategy = ConflictStrategy.NEWER_WINS,
        history: Optional[SyncHistory] = None,
        snapshot_db: Optional[SnapshotDatabase] = None,
    ):
        """
        Initialize the sync engine.

        Args:
            device_id: Identifier of the local party
            strategy: Validated conflict resolution strategy
            history: Ledger to record passes in
            snapshot_db: Cache to store the remote snapshot in after a pass
        """
        self.device_id = device_id
        self.resolver = ConflictResolver(strategy)
        self.history = history
        self.snapshot_db = snapshot_db

    @property
    def strategy(self) -> ConflictStrategy:
        """The configured conflict strategy."""
        return self.resolver.strategy

    def plan(
        self,
        local_records: list[KeyRecord],
        remote_records: list[KeyRecord],
        direction: SyncDirection,
    ) -> SyncResult:
        """
        Compute the changes a pass would apply, without side effects.

        For a push, local is the source and remote the target; for a pull,
        the reverse. Updates for conflicting keys carry the resolved record;
        updates for deferred (manual) conflicts are withheld.
        """
        is_push = direction == SyncDirection.PUSH
        source, target = (
            (local_records, remote_records)
            if is_push
            else (remote_records, local_records)
        )

        manager = SyncManager(self.device_id)
        manager.update_local_state(source)
        manager.update_remote_state(
            SyncState.from_records(REMOTE_PARTY_ID, target)
        )
        detected = manager.detect_changes(source)

        conflicts = self.resolver.detect_conflicts(local_records, remote_records)
        outcomes = {c.name: self.resolver.resolve(c) for c in conflicts}
        target_map = index_by_name(target)

        changes: list[Change] = []
        deferred: list[ConflictResolution] = []
        for change in detected:
            outcome = outcomes.get(change.name)
            if change.change_type != ChangeType.UPDATE or outcome is None:
                changes.append(change)
                continue

            if isinstance(outcome, Deferred):
                deferred.append(outcome.conflict)
                continue

            resolved = outcome.record
            existing = target_map.get(change.name)
            if existing is not None and existing.checksum() == resolved.checksum():
                # Target side already holds the winning version
                continue
            changes.append(
                Change(
                    change_type=ChangeType.UPDATE,
                    record=resolved,
                    timestamp=change.timestamp,
                    device_id=change.device_id,
                    checksum=resolved.checksum(),
                )
            )

        return SyncResult(
            direction=direction,
            changes=changes,
            conflicts=conflicts,
            deferred=deferred,
            records=apply_changes(target, changes),
        )

    def sync(
        self,
        local_records: list[KeyRecord],
        remote_records: list[KeyRecord],
        direction: SyncDirection,
        dry_run: bool = False,
        target_store: Optional[RecordStore] = None,
    ) -> SyncResult:
        """
        Run one reconciliation pass.

        Non-dry runs write the new target record set to target_store (when
        given and something changed), cache the resulting remote snapshot
        and record the pass in the history ledger. A pass that fails at any
        of these steps is recorded as failed, leaves the snapshot cache
        untouched, and the error is re-raised.

        Args:
            local_records: Current local record set
            remote_records: Current remote record set
            direction: push or pull
            dry_run: Compute the result without writing or recording anything
            target_store: Store receiving result.records (remote for a push,
                local for a pull)

        Returns:
            SyncResult; result.records is the new target record set

        Raises:
            PersistenceError: If the target, history or snapshot write fails
        """
        started = time.monotonic()
        try:
            result = self.plan(local_records, remote_records, direction)
            result.dry_run = dry_run
            if not dry_run:
                self._commit(result, remote_records, target_store)
        except Exception as e:
            duration = timedelta(seconds=time.monotonic() - started)
            logger.error(f"Sync {direction.value} failed: {e}")
            if not dry_run:
                self._record(direction, [], 0, duration, error=str(e))
            raise

        result.duration = timedelta(seconds=time.monotonic() - started)

        if dry_run:
            logger.debug("Dry run: nothing recorded")
            return result

        self._record(
            direction, result.changes, len(result.conflicts), result.duration
        )
        logger.info(
            f"Sync {direction.value} completed: {len(result.changes)} change(s), "
            f"{len(result.conflicts)} conflict(s), {len(result.deferred)} deferred"
        )
        return result

    def _commit(
        self,
        result: SyncResult,
        remote_records: list[KeyRecord],
        target_store: Optional[RecordStore],
    ) -> None:
        # Target first: the cached snapshot must never describe an unwritten push
        if target_store is not None and result.has_changes():
            target_store.save(result.records)
            logger.info(f"Wrote {len(result.records)} key(s) to {target_store.path}")

        if self.snapshot_db is not None:
            remote_after = (
                result.records
                if result.direction == SyncDirection.PUSH
                else remote_records
            )
            self.snapshot_db.save_state(
                SyncState.from_records(REMOTE_PARTY_ID, remote_after)
            )

    def record_failure(
        self, direction: SyncDirection, error: str, duration: timedelta = timedelta()
    ) -> None:
        """Record a pass that failed before it could start (e.g. fetch error)."""
        self._record(direction, [], 0, duration, error=error)

    def _record(
        self,
        direction: SyncDirection,
        changes: list[Change],
        conflicts_found: int,
        duration: timedelta,
        error: Optional[str] = None,
    ) -> None:
        if self.history is None:
            return

        self.history.add(
            SyncHistoryEntry(
                device_id=self.device_id,
                direction=direction,
                changes_applied=len(changes),
                conflicts_found=conflicts_found,
                success=error is None,
                error=error,
                changes=list(changes),
                duration=duration,
            )
        )

    def __repr__(self) -> str:
        """Return a readable string representation."""
        return (
            f"SyncEngine(device_id={self.device_id!r}, "
            f"strategy={self.strategy.value})"
        )
