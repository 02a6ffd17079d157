"""
Tests for conflict detection and resolution.

Tests ConflictStrategy parsing, ConflictResolver.detect_conflicts and every
resolution strategy, including the deferred manual outcome.
"""

from datetime import datetime, timedelta, timezone

import pytest

from keysync.sync.conflict import (
    VALID_STRATEGIES,
    ConflictResolution,
    ConflictResolver,
    ConflictStrategy,
    Deferred,
    Resolved,
)
from keysync.sync.record import KeyRecord

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def key(name: str, fingerprint: str, updated_at=None) -> KeyRecord:
    return KeyRecord(
        name=name, key_type="ed25519", fingerprint=fingerprint, updated_at=updated_at
    )


def make_conflict(
    strategy: ConflictStrategy, local_updated=None, remote_updated=None
) -> ConflictResolution:
    return ConflictResolution(
        name="work",
        local_record=key("work", "SHA256:local", local_updated),
        remote_record=key("work", "SHA256:remote", remote_updated),
        strategy=strategy,
    )


class TestConflictStrategy:
    """Tests for ConflictStrategy."""

    def test_values(self):
        """Test the strategy names."""
        assert VALID_STRATEGIES == ("local", "remote", "newer", "manual")

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("local", ConflictStrategy.LOCAL_WINS),
            ("remote", ConflictStrategy.REMOTE_WINS),
            ("newer", ConflictStrategy.NEWER_WINS),
            ("manual", ConflictStrategy.MANUAL),
        ],
    )
    def test_from_string(self, value, expected):
        """Test parsing valid strategy names."""
        assert ConflictStrategy.from_string(value) == expected

    def test_from_string_rejects_unknown(self):
        """Test that unknown names raise ValueError listing valid names."""
        with pytest.raises(ValueError, match="Must be one of: local, remote"):
            ConflictStrategy.from_string("bogus")


class TestDetectConflicts:
    """Tests for ConflictResolver.detect_conflicts."""

    def test_differing_keys_conflict(self):
        """Test that a key differing on both sides is a conflict."""
        resolver = ConflictResolver(ConflictStrategy.LOCAL_WINS)
        conflicts = resolver.detect_conflicts(
            [key("work", "SHA256:a")], [key("work", "SHA256:b")]
        )

        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.name == "work"
        assert conflict.local_record.fingerprint == "SHA256:a"
        assert conflict.remote_record.fingerprint == "SHA256:b"
        assert conflict.strategy == ConflictStrategy.LOCAL_WINS
        assert conflict.resolved_record is None

    def test_one_sided_keys_are_not_conflicts(self):
        """Test that keys on only one side are ignored."""
        resolver = ConflictResolver()
        conflicts = resolver.detect_conflicts(
            [key("local-only", "x")], [key("remote-only", "y")]
        )
        assert conflicts == []

    def test_identical_keys_are_not_conflicts(self):
        """Test that identical checksums are not conflicts."""
        resolver = ConflictResolver()
        records = [key("work", "SHA256:a")]
        assert resolver.detect_conflicts(records, list(records)) == []

    def test_only_updated_at_differs(self):
        """Test that a different modification time alone is not a conflict."""
        resolver = ConflictResolver()
        conflicts = resolver.detect_conflicts(
            [key("work", "SHA256:a", T0)], [key("work", "SHA256:a", T0 + timedelta(1))]
        )
        assert conflicts == []


class TestResolveConflict:
    """Tests for each resolution strategy."""

    def test_local_wins(self):
        """Test that local always wins under the local strategy."""
        conflict = make_conflict(ConflictStrategy.LOCAL_WINS, T0, T0 + timedelta(1))
        result = ConflictResolver().resolve_conflict(conflict)

        assert result.fingerprint == "SHA256:local"
        assert conflict.resolved_record is result
        assert conflict.is_resolved

    def test_remote_wins(self):
        """Test that remote always wins under the remote strategy."""
        conflict = make_conflict(ConflictStrategy.REMOTE_WINS, T0 + timedelta(1), T0)
        result = ConflictResolver().resolve_conflict(conflict)
        assert result.fingerprint == "SHA256:remote"

    def test_newer_wins_remote(self):
        """Test that a strictly newer remote wins."""
        conflict = make_conflict(ConflictStrategy.NEWER_WINS, T0, T0 + timedelta(1))
        result = ConflictResolver().resolve_conflict(conflict)
        assert result.fingerprint == "SHA256:remote"
        assert "Remote has newer" in conflict.reason

    def test_newer_wins_local(self):
        """Test that a strictly newer local wins."""
        conflict = make_conflict(ConflictStrategy.NEWER_WINS, T0 + timedelta(1), T0)
        result = ConflictResolver().resolve_conflict(conflict)
        assert result.fingerprint == "SHA256:local"

    def test_newer_wins_tie_goes_to_local(self):
        """Test that equal timestamps resolve to local."""
        conflict = make_conflict(ConflictStrategy.NEWER_WINS, T0, T0)
        result = ConflictResolver().resolve_conflict(conflict)
        assert result.fingerprint == "SHA256:local"
        assert "defaulting to local" in conflict.reason

    def test_newer_wins_missing_timestamp_is_oldest(self):
        """Test that a missing timestamp loses to any real one."""
        conflict = make_conflict(ConflictStrategy.NEWER_WINS, None, T0)
        assert ConflictResolver().resolve_conflict(conflict).fingerprint == (
            "SHA256:remote"
        )

        conflict = make_conflict(ConflictStrategy.NEWER_WINS, None, None)
        assert ConflictResolver().resolve_conflict(conflict).fingerprint == (
            "SHA256:local"
        )

    def test_newer_wins_naive_timestamp_is_utc(self):
        """Test comparing naive and aware timestamps."""
        naive_later = datetime(2024, 1, 2)
        conflict = make_conflict(ConflictStrategy.NEWER_WINS, naive_later, T0)
        assert ConflictResolver().resolve_conflict(conflict).fingerprint == (
            "SHA256:local"
        )

    def test_strategy_comes_from_conflict(self):
        """Test that the conflict's strategy is used, not the resolver's."""
        resolver = ConflictResolver(ConflictStrategy.LOCAL_WINS)
        conflict = make_conflict(ConflictStrategy.REMOTE_WINS)
        assert resolver.resolve_conflict(conflict).fingerprint == "SHA256:remote"

    def test_manual_is_provisional(self):
        """Test that manual returns local but marks the conflict deferred."""
        conflict = make_conflict(ConflictStrategy.MANUAL)
        result = ConflictResolver().resolve_conflict(conflict)

        assert result.fingerprint == "SHA256:local"
        assert conflict.deferred
        assert not conflict.is_resolved


class TestResolveOutcome:
    """Tests for ConflictResolver.resolve."""

    def test_automatic_strategy_returns_resolved(self):
        """Test that automatic strategies yield Resolved."""
        conflict = make_conflict(ConflictStrategy.REMOTE_WINS)
        outcome = ConflictResolver().resolve(conflict)

        assert isinstance(outcome, Resolved)
        assert outcome.conflict is conflict
        assert outcome.record.fingerprint == "SHA256:remote"

    def test_manual_returns_deferred(self):
        """Test that manual yields Deferred."""
        conflict = make_conflict(ConflictStrategy.MANUAL)
        outcome = ConflictResolver().resolve(conflict)

        assert isinstance(outcome, Deferred)
        assert outcome.conflict is conflict

    def test_resolve_all(self):
        """Test resolving several conflicts at once."""
        conflicts = [
            make_conflict(ConflictStrategy.LOCAL_WINS),
            make_conflict(ConflictStrategy.MANUAL),
        ]
        outcomes = ConflictResolver().resolve_all(conflicts)
        assert [type(o) for o in outcomes] == [Resolved, Deferred]

    def test_repr(self):
        """Test the readable representation."""
        assert repr(ConflictResolver()) == "ConflictResolver(strategy=newer)"
