"""
YAML-backed record store.

Holds a set of KeyRecords in a single YAML document. Used for the local
keystore and for file-based remote record sets.

File format (keys.yaml):

    keys:
      - name: work
        type: ed25519
        path: ~/.ssh/work
        tags: [work]
        created_at: "2024-01-20T10:30:00+00:00"
        updated_at: "2024-01-20T10:30:00+00:00"
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from keysync.storage.errors import PersistenceError
from keysync.storage.files import atomic_write_text
from keysync.sync.record import KeyRecord

logger = logging.getLogger(__name__)


class RecordStore:
    """
    Loads and saves a record set from a YAML file.

    Usage:
        store = RecordStore(config_dir / "keys.yaml")
        records = store.load()
        store.save(records)

    Attributes:
        path: Location of the YAML file
    """

    def __init__(self, path: Path | str):
        """
        Initialize the store.

        Args:
            path: Location of the YAML file
        """
        self.path = Path(path).expanduser()

    def exists(self) -> bool:
        """Check whether the backing file exists."""
        return self.path.exists()

    def load(self) -> list[KeyRecord]:
        """
        Load all records.

        A missing or empty file yields an empty list.

        Raises:
            PersistenceError: If the file cannot be read or is malformed
        """
        if not self.path.exists():
            logger.debug(f"Record file not found: {self.path}")
            return []

        try:
            with open(self.path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise PersistenceError(
                f"Failed to parse record file {self.path}: {e}", self.path
            ) from e
        except OSError as e:
            raise PersistenceError(
                f"Failed to read record file {self.path}: {e}", self.path
            ) from e

        if data is None:
            return []

        # Accept either {"keys": [...]} or a bare list
        if isinstance(data, dict):
            data = data.get("keys") or []
        if not isinstance(data, list):
            raise PersistenceError(
                f"Record file must contain a list of keys, got {type(data).__name__}",
                self.path,
            )

        records = []
        for item in data:
            if not isinstance(item, dict) or not item.get("name"):
                raise PersistenceError(
                    f"Invalid key entry in {self.path}: {item!r}", self.path
                )
            records.append(KeyRecord.from_dict(item))

        logger.debug(f"Loaded {len(records)} record(s) from {self.path}")
        return records

    def save(self, records: list[KeyRecord]) -> None:
        """
        Replace the file with the given records, sorted by name.

        Raises:
            PersistenceError: If the file cannot be written
        """
        ordered = sorted(records, key=lambda r: r.name)
        content = yaml.safe_dump(
            {"keys": [record.to_dict() for record in ordered]},
            sort_keys=False,
            allow_unicode=True,
        )
        atomic_write_text(self.path, content)
        logger.debug(f"Saved {len(ordered)} record(s) to {self.path}")

    def __repr__(self) -> str:
        """Return a readable string representation."""
        return f"RecordStore(path={str(self.path)!r})"
