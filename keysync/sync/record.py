"""
Key record data model for credential metadata synchronization.

Provides a normalized KeyRecord representation with methods for:
- Converting to/from plain dictionaries (YAML/JSON storage)
- Computing checksums for change detection
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

# Stand-in for a timestamp that was never recorded
ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)


class KeyType(str, Enum):
    """Supported SSH key algorithms."""

    ED25519 = "ed25519"
    RSA = "rsa"
    ECDSA = "ecdsa"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a stored timestamp into a timezone-aware datetime.

    Accepts datetime objects (naive values are assumed UTC) and ISO-8601
    strings, including a trailing 'Z'. Unparseable values yield None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except (ValueError, TypeError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Render a timestamp as an ISO-8601 UTC string (None stays None)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


@dataclass
class KeyRecord:
    """
    Metadata for a single managed SSH key.

    Attributes:
        name: Unique key name (the record identifier)
        key_type: Key algorithm (ed25519, rsa, ecdsa)
        path: Private key path
        pub_path: Public key path
        tags: Free-form tags
        comment: Key comment
        created_at: Creation timestamp
        updated_at: Last modification timestamp
        fingerprint: SHA256 fingerprint of the public key
        installed: Whether the key is installed to ~/.ssh on this machine
        rsa_bits: Key size (RSA only)
        has_passphrase: Whether the private key is passphrase protected
        last_rotated_at: When the key was last rotated
        rotation_due_at: When the key should next be rotated
        rotated_from: Name of the key this one replaced

    Usage:
        record = KeyRecord.from_dict(stored)
        if record.checksum() != cached_checksum:
            ...
    """

    name: str
    key_type: str = ""
    path: str = ""
    pub_path: str = ""
    tags: list[str] = field(default_factory=list)
    comment: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    fingerprint: str = ""

    # Local, machine-specific state; never part of the checksum
    installed: bool = False

    rsa_bits: int = 0
    has_passphrase: bool = False
    last_rotated_at: Optional[datetime] = None
    rotation_due_at: Optional[datetime] = None
    rotated_from: str = ""

    def checksum(self) -> str:
        """
        Generate a checksum of the record's semantic content.

        The checksum covers name, key type, fingerprint, path, comment,
        tags and creation time. It excludes:
            - installed (differs per machine)
            - pub_path (derived from path)
            - updated_at (metadata, not content)
            - rotation bookkeeping, rsa_bits and has_passphrase

        Returns:
            SHA-256 hex digest of the canonical JSON form

        Note:
            Tags are sorted before hashing; their order is not significant.
        """
        canonical = {
            "name": self.name,
            "type": str(self.key_type or ""),
            "fingerprint": self.fingerprint or "",
            "path": self.path or "",
            "comment": self.comment or "",
            "tags": sorted(self.tags or []),
            "created_at": format_timestamp(self.created_at),
        }
        content_string = json.dumps(
            canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False
        )
        return hashlib.sha256(content_string.encode("utf-8")).hexdigest()

    def to_dict(self) -> dict[str, Any]:
        """Serialize the record to a plain dictionary for storage."""
        data: dict[str, Any] = {
            "name": self.name,
            "type": str(self.key_type or ""),
            "path": self.path,
            "pub_path": self.pub_path,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
            "installed": self.installed,
            "has_passphrase": self.has_passphrase,
        }
        # Optional fields are omitted when empty
        if self.tags:
            data["tags"] = list(self.tags)
        if self.comment:
            data["comment"] = self.comment
        if self.fingerprint:
            data["fingerprint"] = self.fingerprint
        if self.rsa_bits:
            data["rsa_bits"] = self.rsa_bits
        if self.last_rotated_at is not None:
            data["last_rotated_at"] = format_timestamp(self.last_rotated_at)
        if self.rotation_due_at is not None:
            data["rotation_due_at"] = format_timestamp(self.rotation_due_at)
        if self.rotated_from:
            data["rotated_from"] = self.rotated_from
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KeyRecord:
        """
        Create a KeyRecord from a stored dictionary.

        Missing optional fields fall back to their defaults. Both "type"
        and "key_type" are accepted for the algorithm.
        """
        key_type = data.get("type", data.get("key_type")) or ""
        if isinstance(key_type, KeyType):
            key_type = key_type.value

        return cls(
            name=str(data.get("name", "")),
            key_type=str(key_type),
            path=data.get("path") or "",
            pub_path=data.get("pub_path") or "",
            tags=list(data.get("tags") or []),
            comment=data.get("comment") or "",
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
            fingerprint=data.get("fingerprint") or "",
            installed=bool(data.get("installed", False)),
            rsa_bits=int(data.get("rsa_bits") or 0),
            has_passphrase=bool(data.get("has_passphrase", False)),
            last_rotated_at=parse_timestamp(data.get("last_rotated_at")),
            rotation_due_at=parse_timestamp(data.get("rotation_due_at")),
            rotated_from=data.get("rotated_from") or "",
        )

    def __repr__(self) -> str:
        """Return a readable string representation."""
        return (
            f"KeyRecord(name={self.name!r}, key_type={self.key_type!r}, "
            f"fingerprint={self.fingerprint!r})"
        )


def compute_checksum(record: KeyRecord) -> str:
    """Module-level alias for KeyRecord.checksum()."""
    return record.checksum()


def index_by_name(records: list[KeyRecord]) -> dict[str, KeyRecord]:
    """Build a name-keyed mapping; later records win on duplicate names."""
    return {record.name: record for record in records}
