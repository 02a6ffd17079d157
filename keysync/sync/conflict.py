"""
Conflict detection and resolution for two-party key synchronization.

Provides strategies for resolving conflicts when the same key has been
modified on both the local and the remote side.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from keysync.sync.record import KeyRecord, index_by_name

logger = logging.getLogger(__name__)

# Missing timestamps compare as the Unix epoch
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class ConflictStrategy(str, Enum):
    """Available conflict resolution strategies."""

    LOCAL_WINS = "local"
    REMOTE_WINS = "remote"
    NEWER_WINS = "newer"
    MANUAL = "manual"

    @classmethod
    def from_string(cls, value: str) -> ConflictStrategy:
        """
        Parse a strategy name.

        Raises:
            ValueError: If the name is not a known strategy
        """
        normalized = (value or "").strip().lower()
        for strategy in cls:
            if strategy.value == normalized:
                return strategy
        raise ValueError(
            f"Invalid strategy '{value}'. "
            f"Must be one of: {', '.join(s.value for s in cls)}"
        )


VALID_STRATEGIES = tuple(strategy.value for strategy in ConflictStrategy)


@dataclass
class ConflictResolution:
    """
    A key that differs between the local and the remote record sets.

    Attributes:
        name: Key name present on both sides
        local_record: The local version
        remote_record: The remote version
        strategy: Strategy in effect when the conflict was detected
        resolved_record: Set once by the resolver
        deferred: True when the strategy is manual; resolved_record is then
                  only a provisional placeholder
        reason: Human-readable explanation of the resolution
    """

    name: str
    local_record: KeyRecord
    remote_record: KeyRecord
    strategy: ConflictStrategy
    resolved_record: Optional[KeyRecord] = None
    deferred: bool = False
    reason: str = ""

    @property
    def is_resolved(self) -> bool:
        """True when an authoritative resolution has been made."""
        return self.resolved_record is not None and not self.deferred


@dataclass(frozen=True)
class Resolved:
    """Authoritative outcome of a conflict resolution."""

    conflict: ConflictResolution
    record: KeyRecord


@dataclass(frozen=True)
class Deferred:
    """A conflict that needs a human decision."""

    conflict: ConflictResolution


Outcome = Union[Resolved, Deferred]


def _as_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ConflictResolver:
    """
    Detects and resolves conflicts between local and remote key records.

    Usage:
        resolver = ConflictResolver(ConflictStrategy.NEWER_WINS)

        for conflict in resolver.detect_conflicts(local_keys, remote_keys):
            outcome = resolver.resolve(conflict)
            if isinstance(outcome, Deferred):
                # surface to the user
                ...

    Attributes:
        strategy: The conflict resolution strategy to use
    """

    def __init__(self, strategy: ConflictStrategy = ConflictStrategy.NEWER_WINS):
        """
        Initialize the conflict resolver.

        Args:
            strategy: The conflict resolution strategy to use
        """
        self.strategy = strategy

    def detect_conflicts(
        self, local_records: list[KeyRecord], remote_records: list[KeyRecord]
    ) -> list[ConflictResolution]:
        """
        Find keys present on both sides whose checksums differ.

        Keys present on only one side are not conflicts; they are creates
        or deletes and are handled by change detection.

        Args:
            local_records: Full local record set
            remote_records: Full remote record set

        Returns:
            One unresolved ConflictResolution per conflicting key
        """
        remote_map = index_by_name(remote_records)
        conflicts: list[ConflictResolution] = []

        for name, local_record in index_by_name(local_records).items():
            remote_record = remote_map.get(name)
            if remote_record is None:
                continue
            if local_record.checksum() == remote_record.checksum():
                continue
            conflicts.append(
                ConflictResolution(
                    name=name,
                    local_record=local_record,
                    remote_record=remote_record,
                    strategy=self.strategy,
                )
            )

        logger.debug(f"Detected {len(conflicts)} conflict(s)")
        return conflicts

    def resolve_conflict(self, conflict: ConflictResolution) -> KeyRecord:
        """
        Resolve a conflict using the conflict's strategy.

        The result is also stored in conflict.resolved_record.

        - local: the local record wins
        - remote: the remote record wins
        - newer: the record with the strictly later updated_at wins; equal
          timestamps go to the local record
        - manual: NOT an authoritative resolution. The local record is
          returned only as a provisional placeholder and conflict.deferred
          is set to True. Callers must route the conflict to a human and
          must not persist or push the returned value as if it had won.
          Use resolve() to receive an explicit Deferred outcome instead.

        Args:
            conflict: The conflict to resolve

        Returns:
            The winning record (provisional for the manual strategy)
        """
        strategy = conflict.strategy

        if strategy == ConflictStrategy.LOCAL_WINS:
            conflict.resolved_record = conflict.local_record
            conflict.reason = "Local always wins (configured strategy)"
        elif strategy == ConflictStrategy.REMOTE_WINS:
            conflict.resolved_record = conflict.remote_record
            conflict.reason = "Remote always wins (configured strategy)"
        elif strategy == ConflictStrategy.NEWER_WINS:
            self._resolve_newer_wins(conflict)
        else:
            conflict.resolved_record = conflict.local_record
            conflict.deferred = True
            conflict.reason = "Manual resolution required"

        logger.debug(f"Conflict on {conflict.name}: {conflict.reason}")
        return conflict.resolved_record

    def resolve(self, conflict: ConflictResolution) -> Outcome:
        """
        Resolve a conflict, making deferred decisions explicit.

        Returns:
            Resolved(record) for automatic strategies, Deferred for manual
        """
        record = self.resolve_conflict(conflict)
        if conflict.deferred:
            return Deferred(conflict)
        return Resolved(conflict, record)

    def resolve_all(self, conflicts: list[ConflictResolution]) -> list[Outcome]:
        """Resolve every conflict in order."""
        return [self.resolve(conflict) for conflict in conflicts]

    def _resolve_newer_wins(self, conflict: ConflictResolution) -> None:
        local_time = _as_utc(conflict.local_record.updated_at)
        remote_time = _as_utc(conflict.remote_record.updated_at)

        if remote_time > local_time:
            conflict.resolved_record = conflict.remote_record
            conflict.reason = (
                f"Remote has newer modification time ({remote_time} > {local_time})"
            )
        elif local_time > remote_time:
            conflict.resolved_record = conflict.local_record
            conflict.reason = (
                f"Local has newer modification time ({local_time} > {remote_time})"
            )
        else:
            conflict.resolved_record = conflict.local_record
            conflict.reason = f"Equal timestamps ({local_time}), defaulting to local"

    def __repr__(self) -> str:
        """Return a readable string representation."""
        return f"ConflictResolver(strategy={self.strategy.value})"
