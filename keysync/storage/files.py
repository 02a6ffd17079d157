"""
File helpers for whole-file persistence.

Writes go to a temporary sibling file that is renamed over the target,
so readers never observe a half-written file and a failed write leaves
the previous contents in place.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from keysync.storage.errors import PersistenceError


def atomic_write_text(
    path: Path, content: str, file_mode: int = 0o600, dir_mode: int = 0o700
) -> None:
    """
    Atomically replace path with content.

    Args:
        path: Destination file
        content: Text to write (UTF-8)
        file_mode: Permissions of the written file
        dir_mode: Permissions used when creating missing parent directories

    Raises:
        PersistenceError: If the directory or file cannot be written
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, mode=dir_mode, exist_ok=True)
    except OSError as e:
        raise PersistenceError(
            f"Failed to create directory {path.parent}: {e}", path
        ) from e

    tmp_name = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp_name, file_mode)
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise PersistenceError(f"Failed to write {path}: {e}", path) from e
