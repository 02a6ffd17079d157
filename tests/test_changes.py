"""
Tests for change detection and application.

Tests SyncState snapshots, SyncManager.detect_changes, apply_changes and
changelog rendering.
"""

from datetime import datetime, timezone

from keysync.sync.changes import (
    REMOTE_PARTY_ID,
    Change,
    ChangeType,
    SyncManager,
    SyncState,
    apply_changes,
    get_changelog,
)
from keysync.sync.record import ZERO_TIME, KeyRecord

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def key(name: str, fingerprint: str = "SHA256:one", **kwargs) -> KeyRecord:
    """Build a minimal record."""
    return KeyRecord(name=name, key_type="ed25519", fingerprint=fingerprint, **kwargs)


def detect(local: list[KeyRecord], remote: list[KeyRecord]) -> list[Change]:
    """Run change detection between two record sets."""
    manager = SyncManager("laptop")
    manager.update_local_state(local)
    manager.update_remote_records(remote)
    return manager.detect_changes(local)


def by_name(records: list[KeyRecord]) -> dict[str, KeyRecord]:
    return {r.name: r for r in records}


class TestSyncState:
    """Tests for SyncState snapshots."""

    def test_from_records_builds_checksums(self):
        """Test that every record gets a checksum entry."""
        records = [key("a"), key("b")]
        state = SyncState.from_records("laptop", records)

        assert state.device_id == "laptop"
        assert state.checksums == {r.name: r.checksum() for r in records}
        assert state.last_sync_time is not None

    def test_rebuild_replaces_previous_names(self):
        """Test that a rebuild drops names no longer present."""
        state = SyncState.from_records("laptop", [key("a"), key("b")])
        state.rebuild([key("c")])
        assert set(state.checksums) == {"c"}

    def test_empty_record_set(self):
        """Test that an empty record set gives an empty snapshot."""
        state = SyncState.from_records("laptop", [])
        assert state.checksums == {}


class TestSyncManager:
    """Tests for SyncManager state handling."""

    def test_initial_states_are_empty(self):
        """Test that a new manager has empty snapshots."""
        manager = SyncManager("laptop")
        assert manager.local_state.device_id == "laptop"
        assert manager.remote_state.device_id == REMOTE_PARTY_ID
        assert manager.local_state.checksums == {}
        assert manager.remote_state.checksums == {}

    def test_update_remote_state_replaces_snapshot(self):
        """Test that a cached snapshot can be installed directly."""
        manager = SyncManager("laptop")
        cached = SyncState(device_id=REMOTE_PARTY_ID, checksums={"a": "x"})
        manager.update_remote_state(cached)
        assert manager.remote_state is cached

    def test_repr(self):
        """Test the readable representation."""
        manager = SyncManager("laptop")
        manager.update_local_state([key("a")])
        assert repr(manager) == "SyncManager(device_id='laptop', local=1, remote=0)"


class TestDetectChanges:
    """Tests for SyncManager.detect_changes."""

    def test_create_when_only_local(self):
        """Test that a local-only key produces a create."""
        changes = detect([key("work")], [])

        assert len(changes) == 1
        change = changes[0]
        assert change.change_type == ChangeType.CREATE
        assert change.name == "work"
        assert change.device_id == "laptop"
        assert change.checksum == key("work").checksum()
        assert change.record == key("work")

    def test_update_when_checksums_differ(self):
        """Test that a changed key produces an update with the local payload."""
        changes = detect([key("work", "SHA256:new")], [key("work", "SHA256:old")])

        assert [c.change_type for c in changes] == [ChangeType.UPDATE]
        assert changes[0].record.fingerprint == "SHA256:new"

    def test_delete_when_only_remote(self):
        """Test that a remote-only key produces a name-only delete."""
        changes = detect([], [key("old")])

        assert len(changes) == 1
        assert changes[0].change_type == ChangeType.DELETE
        assert changes[0].name == "old"
        assert changes[0].checksum == ""

    def test_no_changes_when_in_sync(self):
        """Test that identical sets produce no changes."""
        records = [key("a"), key("b")]
        assert detect(records, list(records)) == []

    def test_updated_at_alone_is_not_a_change(self):
        """Test that a bumped modification time alone is not a change."""
        local = [key("a", updated_at=NOW)]
        remote = [key("a")]
        assert detect(local, remote) == []

    def test_deletes_come_last(self):
        """Test that creates and updates precede deletes."""
        local = [key("new"), key("same", "SHA256:changed")]
        remote = [key("same"), key("gone")]

        changes = detect(local, remote)
        types = [c.change_type for c in changes]

        assert types[-1] == ChangeType.DELETE
        assert set(types[:-1]) == {ChangeType.CREATE, ChangeType.UPDATE}

    def test_missing_payload_falls_back_to_name_only(self):
        """Test a snapshot name with no live record still yields a change."""
        manager = SyncManager("laptop")
        manager.update_local_state([key("ghost")])

        changes = manager.detect_changes([])

        assert changes[0].change_type == ChangeType.CREATE
        assert changes[0].record == KeyRecord(name="ghost")


class TestApplyChanges:
    """Tests for apply_changes."""

    def make_change(self, change_type: ChangeType, record: KeyRecord) -> Change:
        return Change(change_type, record, NOW, "laptop", record.checksum())

    def test_create_update_delete(self):
        """Test that each change kind is applied."""
        records = [key("keep"), key("edit", "SHA256:old"), key("drop")]
        changes = [
            self.make_change(ChangeType.CREATE, key("add")),
            self.make_change(ChangeType.UPDATE, key("edit", "SHA256:new")),
            self.make_change(ChangeType.DELETE, KeyRecord(name="drop")),
        ]

        result = by_name(apply_changes(records, changes))

        assert set(result) == {"keep", "edit", "add"}
        assert result["edit"].fingerprint == "SHA256:new"

    def test_delete_of_absent_record_is_noop(self):
        """Test that deleting an unknown name changes nothing."""
        records = [key("a")]
        change = self.make_change(ChangeType.DELETE, KeyRecord(name="missing"))
        assert apply_changes(records, [change]) == records

    def test_create_of_existing_name_overwrites(self):
        """Test that a create never produces duplicate names."""
        records = [key("a", "SHA256:old")]
        change = self.make_change(ChangeType.CREATE, key("a", "SHA256:new"))

        result = apply_changes(records, [change])

        assert len(result) == 1
        assert result[0].fingerprint == "SHA256:new"

    def test_apply_is_idempotent(self):
        """Test that applying the same changes twice equals applying once."""
        records = [key("a"), key("b")]
        changes = [
            self.make_change(ChangeType.CREATE, key("c")),
            self.make_change(ChangeType.DELETE, KeyRecord(name="a")),
        ]

        once = apply_changes(records, changes)
        twice = apply_changes(once, changes)

        assert by_name(once) == by_name(twice)

    def test_input_is_not_modified(self):
        """Test that the input record list is left untouched."""
        records = [key("a")]
        apply_changes(records, [self.make_change(ChangeType.CREATE, key("b"))])
        assert [r.name for r in records] == ["a"]

    def test_detected_changes_reach_fixed_point(self):
        """Test that applying detected changes makes the remote match local."""
        local = [key("a", "SHA256:new"), key("b"), key("c")]
        remote = [key("a", "SHA256:old"), key("d")]

        manager = SyncManager("laptop")
        manager.update_local_state(local)
        manager.update_remote_records(remote)
        changes = manager.detect_changes(local)
        new_remote = manager.apply_changes(remote, changes)

        assert by_name(new_remote) == by_name(local)
        assert detect(local, new_remote) == []


class TestChangeSerialization:
    """Tests for Change.to_dict / from_dict."""

    def test_round_trip(self):
        """Test that a change survives serialization."""
        change = Change(ChangeType.UPDATE, key("a"), NOW, "laptop", "abc")
        data = change.to_dict()

        assert data["type"] == "update"
        assert data["key"]["name"] == "a"
        assert Change.from_dict(data) == change

    def test_missing_timestamp_loads_as_zero_time(self):
        """Test that a stored change without a timestamp is not given one."""
        change = Change.from_dict({"type": "create", "key": {"name": "a"}})

        assert change.change_type == ChangeType.CREATE
        assert change.timestamp == ZERO_TIME


class TestGetChangelog:
    """Tests for changelog rendering."""

    def test_one_line_per_change(self):
        """Test the label used for each change kind."""
        changes = [
            Change(ChangeType.CREATE, key("a"), NOW, "laptop"),
            Change(ChangeType.UPDATE, key("b"), NOW, "laptop"),
            Change(ChangeType.DELETE, KeyRecord(name="c"), NOW, "laptop"),
        ]

        assert get_changelog(changes) == ["Created: a", "Updated: b", "Deleted: c"]

    def test_manager_delegates(self):
        """Test SyncManager.get_changelog matches the module function."""
        changes = [Change(ChangeType.CREATE, key("a"), NOW, "laptop")]
        assert SyncManager("laptop").get_changelog(changes) == ["Created: a"]

    def test_empty(self):
        """Test that no changes produce no lines."""
        assert get_changelog([]) == []
