"""Errors raised by the storage layer."""

from __future__ import annotations

from pathlib import Path


class PersistenceError(Exception):
    """
    Raised when a backing store cannot be read or written.

    The in-memory state of the caller is left usable, so the operation can
    be retried.

    Attributes:
        path: Location of the backing store
    """

    def __init__(self, message: str, path: Path | str | None = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None
