"""
Unit tests for the storage module.

Tests the SnapshotDatabase snapshot cache and the atomic file writer.
"""

import os
import stat
from datetime import datetime, timezone

import pytest

from keysync.storage.db import SnapshotDatabase
from keysync.storage.errors import PersistenceError
from keysync.storage.files import atomic_write_text
from keysync.sync.changes import SyncState

SNAPSHOT_TIME = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    """An initialized in-memory snapshot database."""
    database = SnapshotDatabase(":memory:")
    database.initialize()
    return database


def make_state(party_id: str = "remote", **checksums) -> SyncState:
    return SyncState(
        device_id=party_id, checksums=checksums, last_sync_time=SNAPSHOT_TIME
    )


class TestSnapshotDatabaseInitialization:
    """Tests for database initialization."""

    def test_initialize_creates_tables(self, db):
        """Test that initialize creates the required tables."""
        with db.connection() as conn:
            for table in ("sync_state", "record_checksums"):
                cursor = conn.execute(
                    "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
                    (table,),
                )
                assert cursor.fetchone() is not None

    def test_initialize_creates_indexes(self, db):
        """Test that initialize creates the required indexes."""
        with db.connection() as conn:
            for index in ("idx_sync_state_party", "idx_record_checksums_party"):
                cursor = conn.execute(
                    "SELECT name FROM sqlite_master WHERE type='index' AND name=?",
                    (index,),
                )
                assert cursor.fetchone() is not None

    def test_initialize_is_idempotent(self, db):
        """Test that initialize can be called multiple times safely."""
        db.initialize()
        assert db.list_parties() == []

    def test_file_database(self, tmp_path):
        """Test that a file database persists across instances."""
        path = str(tmp_path / "snapshots.db")
        first = SnapshotDatabase(path)
        first.initialize()
        first.save_state(make_state(a="1"))

        second = SnapshotDatabase(path)
        second.initialize()
        assert second.load_state("remote").checksums == {"a": "1"}


class TestSnapshotStorage:
    """Tests for saving and loading snapshots."""

    def test_save_and_load(self, db):
        """Test that a stored snapshot is returned unchanged."""
        db.save_state(make_state(a="1", b="2"))

        state = db.load_state("remote")

        assert state.device_id == "remote"
        assert state.checksums == {"a": "1", "b": "2"}
        assert state.last_sync_time == SNAPSHOT_TIME

    def test_load_unknown_party(self, db):
        """Test that an unknown party returns None."""
        assert db.load_state("nobody") is None

    def test_save_replaces_previous_snapshot(self, db):
        """Test that names absent from the new snapshot are dropped."""
        db.save_state(make_state(a="1", b="2"))
        db.save_state(make_state(c="3"))

        assert db.load_state("remote").checksums == {"c": "3"}

    def test_empty_snapshot_is_stored(self, db):
        """Test that an empty snapshot differs from no snapshot."""
        db.save_state(make_state())

        state = db.load_state("remote")
        assert state is not None
        assert state.checksums == {}

    def test_missing_timestamp_uses_now(self, db):
        """Test that an unset snapshot time is stored as now."""
        db.save_state(SyncState(device_id="remote", checksums={"a": "1"}))
        assert db.load_state("remote").last_sync_time is not None

    def test_parties_are_independent(self, db):
        """Test that snapshots are kept per party."""
        db.save_state(make_state("remote", a="1"))
        db.save_state(make_state("laptop", b="2"))

        assert db.list_parties() == ["laptop", "remote"]
        assert db.load_state("laptop").checksums == {"b": "2"}

    def test_clear_state(self, db):
        """Test removing one party's snapshot."""
        db.save_state(make_state("remote", a="1"))
        db.save_state(make_state("laptop", b="2"))

        assert db.clear_state("remote") is True
        assert db.clear_state("remote") is False
        assert db.load_state("remote") is None
        assert db.list_parties() == ["laptop"]

    def test_clear_all_state(self, db):
        """Test removing every snapshot."""
        db.save_state(make_state("remote", a="1"))
        db.save_state(make_state("laptop", b="2"))

        db.clear_all_state()

        assert db.list_parties() == []


class TestConnectionContextManager:
    """Tests for the connection context manager."""

    def test_sqlite_errors_become_persistence_errors(self, db):
        """Test that sqlite3 errors are wrapped."""
        with pytest.raises(PersistenceError, match="Snapshot database error"):
            with db.connection() as conn:
                conn.execute("SELECT * FROM no_such_table")

    def test_rollback_on_error(self, db):
        """Test that failed operations are rolled back."""
        with pytest.raises(ValueError):
            with db.connection() as conn:
                conn.execute(
                    "INSERT INTO sync_state (party_id, last_snapshot_at) "
                    "VALUES (?, ?)",
                    ("remote", None),
                )
                raise ValueError("abort")

        assert db.load_state("remote") is None

    def test_unopenable_database(self, tmp_path):
        """Test that an unopenable file raises PersistenceError."""
        db = SnapshotDatabase(str(tmp_path / "missing" / "dir" / "snapshots.db"))
        with pytest.raises(PersistenceError):
            db.initialize()


class TestAtomicWriteText:
    """Tests for atomic_write_text."""

    def test_writes_content(self, tmp_path):
        """Test writing a new file."""
        path = tmp_path / "out.txt"
        atomic_write_text(path, "hello")
        assert path.read_text() == "hello"

    def test_replaces_existing_file(self, tmp_path):
        """Test replacing an existing file."""
        path = tmp_path / "out.txt"
        path.write_text("old")
        atomic_write_text(path, "new")
        assert path.read_text() == "new"

    def test_creates_private_parent_directories(self, tmp_path):
        """Test that missing parents are created with mode 0700."""
        path = tmp_path / "nested" / "out.txt"
        atomic_write_text(path, "x")

        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert stat.S_IMODE(path.parent.stat().st_mode) == 0o700

    def test_no_temp_files_left(self, tmp_path):
        """Test that only the target file remains."""
        atomic_write_text(tmp_path / "out.txt", "x")
        assert os.listdir(tmp_path) == ["out.txt"]

    def test_failure_raises_persistence_error(self, tmp_path):
        """Test that an unwritable location raises PersistenceError."""
        blocker = tmp_path / "blocker"
        blocker.write_text("x")

        with pytest.raises(PersistenceError) as exc_info:
            atomic_write_text(blocker / "out.txt", "x")

        assert exc_info.value.path == blocker / "out.txt"
