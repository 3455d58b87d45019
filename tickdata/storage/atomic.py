"""Single-surface atomic file writing utilities."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
import tempfile
from typing import Any

from tickdata.errors import PersistConflict


def write_bytes_atomic(path: Path | str, data: bytes, *, replace: bool = True) -> dict[str, Any]:
    """Write ``data`` through a temp file in the target directory, then rename it into place.

    Readers never observe a partially written file. With ``replace=False`` an existing
    destination raises :class:`PersistConflict` instead of being overwritten.
    """

    destination = Path(path)
    if not replace and destination.exists():
        raise PersistConflict(f"{destination} already exists", path=str(destination))
    destination.parent.mkdir(parents=True, exist_ok=True)

    handle, tmp_name = tempfile.mkstemp(dir=destination.parent, prefix=destination.name + ".", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(handle, "wb") as stream:
            stream.write(data)
        os.replace(tmp_path, destination)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    return {"path": str(destination), "file_hash": _sha256_bytes(data), "bytes_written": len(data)}


def touch_marker(path: Path | str) -> Path:
    """Create (or truncate) a zero-length marker file."""

    marker = Path(path)
    marker.parent.mkdir(parents=True, exist_ok=True)
    marker.write_bytes(b"")
    return marker


def remove_file(path: Path | str) -> bool:
    target = Path(path)
    if target.is_file():
        target.unlink()
        return True
    return False


def remove_dir_if_empty(path: Path | str) -> bool:
    """Remove ``path`` when it is an empty directory; return whether it was removed."""

    directory = Path(path)
    if not directory.is_dir():
        return False
    if any(directory.iterdir()):
        return False
    directory.rmdir()
    return True


def _sha256_bytes(data: bytes) -> str:
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


__all__ = ["remove_dir_if_empty", "remove_file", "touch_marker", "write_bytes_atomic"]
