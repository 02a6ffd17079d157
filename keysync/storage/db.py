"""
SQLite database module for snapshot caching.

Provides persistent storage for each party's last State Snapshot
(record name -> checksum) so pending changes can be computed without
fetching the remote record set again.
"""

import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from keysync.storage.errors import PersistenceError
from keysync.sync.changes import SyncState
from keysync.sync.record import format_timestamp, parse_timestamp

# SQL Schema for snapshot tables
SCHEMA = """
CREATE TABLE IF NOT EXISTS sync_state (
    id INTEGER PRIMARY KEY,
    party_id TEXT NOT NULL,
    last_snapshot_at TEXT,
    UNIQUE(party_id)
);

CREATE TABLE IF NOT EXISTS record_checksums (
    id INTEGER PRIMARY KEY,
    party_id TEXT NOT NULL,
    name TEXT NOT NULL,
    checksum TEXT NOT NULL,
    UNIQUE(party_id, name)
);

CREATE INDEX IF NOT EXISTS idx_sync_state_party ON sync_state(party_id);
CREATE INDEX IF NOT EXISTS idx_record_checksums_party ON record_checksums(party_id);
"""


class SnapshotDatabase:
    """
    SQLite database manager for cached state snapshots.

    Usage:
        db = SnapshotDatabase('/path/to/snapshots.db')
        db.initialize()
        db.save_state(remote_state)
        cached = db.load_state("remote")

        # Or use in-memory for testing:
        db = SnapshotDatabase(':memory:')
        db.initialize()
    """

    def __init__(self, db_path: str):
        """
        Initialize the database manager.

        Args:
            db_path: Path to SQLite database file, or ':memory:' for in-memory database
        """
        self.db_path = db_path
        self._shared_connection: Optional[sqlite3.Connection] = None

    def _get_connection(self) -> sqlite3.Connection:
        """
        Get a database connection.

        For in-memory databases, returns a shared connection to ensure
        schema persists across operations. For file databases, creates
        a new connection each time.
        """
        if self.db_path == ":memory:":
            if self._shared_connection is None:
                self._shared_connection = sqlite3.connect(":memory:")
                self._shared_connection.row_factory = sqlite3.Row
            return self._shared_connection

        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Commits on success and rolls back on error. sqlite3 errors are
        re-raised as PersistenceError.

        Yields:
            sqlite3.Connection: Database connection
        """
        try:
            conn = self._get_connection()
        except sqlite3.Error as e:
            raise PersistenceError(
                f"Failed to open snapshot database {self.db_path}: {e}", self.db_path
            ) from e

        is_shared = self.db_path == ":memory:"
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(
                f"Snapshot database error ({self.db_path}): {e}", self.db_path
            ) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            if not is_shared:
                conn.close()

    def initialize(self) -> None:
        """Create the snapshot tables if they don't exist."""
        with self.connection() as conn:
            conn.executescript(SCHEMA)

    def save_state(self, state: SyncState) -> None:
        """
        Replace the stored snapshot for state.device_id.

        Args:
            state: Snapshot to store; its device_id is the party key
        """
        snapshot_at = state.last_sync_time or datetime.now(timezone.utc)

        with self.connection() as conn:
            conn.execute(
                """
                INSERT INTO sync_state (party_id, last_snapshot_at)
                VALUES (?, ?)
                ON CONFLICT(party_id) DO UPDATE SET
                    last_snapshot_at = excluded.last_snapshot_at
                """,
                (state.device_id, format_timestamp(snapshot_at)),
            )
            conn.execute(
                "DELETE FROM record_checksums WHERE party_id = ?", (state.device_id,)
            )
            conn.executemany(
                "INSERT INTO record_checksums (party_id, name, checksum) "
                "VALUES (?, ?, ?)",
                [
                    (state.device_id, name, checksum)
                    for name, checksum in state.checksums.items()
                ],
            )

    def load_state(self, party_id: str) -> Optional[SyncState]:
        """
        Load the stored snapshot for a party.

        Returns:
            SyncState, or None if the party has never been stored
        """
        with self.connection() as conn:
            row = conn.execute(
                "SELECT last_snapshot_at FROM sync_state WHERE party_id = ?",
                (party_id,),
            ).fetchone()
            if row is None:
                return None

            cursor = conn.execute(
                "SELECT name, checksum FROM record_checksums WHERE party_id = ?",
                (party_id,),
            )
            checksums = {r["name"]: r["checksum"] for r in cursor.fetchall()}

        return SyncState(
            device_id=party_id,
            checksums=checksums,
            last_sync_time=parse_timestamp(row["last_snapshot_at"]),
        )

    def list_parties(self) -> list[str]:
        """Return the ids of all stored parties, sorted."""
        with self.connection() as conn:
            cursor = conn.execute("SELECT party_id FROM sync_state ORDER BY party_id")
            return [row["party_id"] for row in cursor.fetchall()]

    def clear_state(self, party_id: str) -> bool:
        """
        Delete a party's snapshot.

        Returns:
            True if a snapshot was deleted, False if none existed
        """
        with self.connection() as conn:
            conn.execute("DELETE FROM record_checksums WHERE party_id = ?", (party_id,))
            cursor = conn.execute(
                "DELETE FROM sync_state WHERE party_id = ?", (party_id,)
            )
            return cursor.rowcount > 0

    def clear_all_state(self) -> None:
        """Delete every stored snapshot."""
        with self.connection() as conn:
            conn.execute("DELETE FROM record_checksums")
            conn.execute("DELETE FROM sync_state")
