"""
Tests for the YAML record store.
"""

from datetime import datetime, timezone

import pytest
import yaml

from keysync.storage.errors import PersistenceError
from keysync.storage.keystore import RecordStore
from keysync.sync.record import KeyRecord

CREATED = datetime(2024, 1, 20, 10, 30, tzinfo=timezone.utc)


class TestRecordStoreLoad:
    """Tests for RecordStore.load."""

    def test_missing_file_is_empty(self, tmp_path):
        """Test that a missing file yields no records."""
        store = RecordStore(tmp_path / "keys.yaml")
        assert not store.exists()
        assert store.load() == []

    def test_empty_file_is_empty(self, tmp_path):
        """Test that an empty file yields no records."""
        path = tmp_path / "keys.yaml"
        path.write_text("")
        assert RecordStore(path).load() == []

    def test_loads_keys_document(self, tmp_path):
        """Test loading the standard {keys: [...]} layout."""
        path = tmp_path / "keys.yaml"
        path.write_text(
            "keys:\n"
            "  - name: work\n"
            "    type: ed25519\n"
            "    path: ~/.ssh/work\n"
            "    tags: [work, github]\n"
            '    created_at: "2024-01-20T10:30:00Z"\n'
        )

        records = RecordStore(path).load()

        assert len(records) == 1
        record = records[0]
        assert record.name == "work"
        assert record.key_type == "ed25519"
        assert record.tags == ["work", "github"]
        assert record.created_at == CREATED

    def test_loads_bare_list(self, tmp_path):
        """Test that a top-level list is accepted."""
        path = tmp_path / "keys.yaml"
        path.write_text("- name: a\n- name: b\n")
        assert [r.name for r in RecordStore(path).load()] == ["a", "b"]

    def test_unquoted_yaml_timestamp(self, tmp_path):
        """Test that YAML-native timestamps are accepted."""
        path = tmp_path / "keys.yaml"
        path.write_text("keys:\n  - name: a\n    created_at: 2024-01-20 10:30:00\n")
        assert RecordStore(path).load()[0].created_at == CREATED

    def test_malformed_yaml_raises(self, tmp_path):
        """Test that invalid YAML raises PersistenceError."""
        path = tmp_path / "keys.yaml"
        path.write_text("keys: [unclosed\n")

        with pytest.raises(PersistenceError, match="Failed to parse") as exc_info:
            RecordStore(path).load()
        assert exc_info.value.path == path

    def test_entry_without_name_raises(self, tmp_path):
        """Test that every entry needs a name."""
        path = tmp_path / "keys.yaml"
        path.write_text("keys:\n  - type: rsa\n")

        with pytest.raises(PersistenceError, match="Invalid key entry"):
            RecordStore(path).load()

    def test_scalar_document_raises(self, tmp_path):
        """Test that a scalar document is rejected."""
        path = tmp_path / "keys.yaml"
        path.write_text("just a string\n")

        with pytest.raises(PersistenceError, match="list of keys"):
            RecordStore(path).load()


class TestRecordStoreSave:
    """Tests for RecordStore.save."""

    def test_save_then_load(self, tmp_path):
        """Test that saved records load back unchanged."""
        store = RecordStore(tmp_path / "keys.yaml")
        records = [
            KeyRecord(name="b", key_type="rsa", rsa_bits=4096, created_at=CREATED),
            KeyRecord(name="a", key_type="ed25519", tags=["x"]),
        ]

        store.save(records)

        loaded = store.load()
        assert [r.name for r in loaded] == ["a", "b"]
        assert loaded[1] == records[0]
        assert loaded[0] == records[1]

    def test_file_layout(self, tmp_path):
        """Test the written YAML document shape."""
        store = RecordStore(tmp_path / "keys.yaml")
        store.save([KeyRecord(name="a", key_type="ed25519")])

        data = yaml.safe_load(store.path.read_text())
        assert list(data) == ["keys"]
        assert data["keys"][0]["name"] == "a"
        assert data["keys"][0]["type"] == "ed25519"

    def test_save_empty(self, tmp_path):
        """Test saving an empty record set."""
        store = RecordStore(tmp_path / "keys.yaml")
        store.save([])
        assert store.exists()
        assert store.load() == []

    def test_save_failure_raises(self, tmp_path):
        """Test that an unwritable location raises PersistenceError."""
        blocker = tmp_path / "blocker"
        blocker.write_text("x")

        with pytest.raises(PersistenceError):
            RecordStore(blocker / "keys.yaml").save([KeyRecord(name="a")])

    def test_repr(self, tmp_path):
        """Test the readable representation."""
        store = RecordStore(tmp_path / "keys.yaml")
        assert repr(store) == f"RecordStore(path={str(tmp_path / 'keys.yaml')!r})"
