"""
Crash-safe writes for the per-user installed-apps snapshot.

The snapshot is replaced with write-to-temp-then-rename, so a reader sees
either the previous snapshot or the new one. Files are created 0600.
"""

from __future__ import annotations

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Union

SNAPSHOT_MODE = 0o600


def _fsync_dir(directory: Path) -> None:
    try:
        fd = os.open(str(directory), os.O_RDONLY | os.O_DIRECTORY)
    except (OSError, AttributeError):
        # O_DIRECTORY is POSIX only
        return
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def atomic_write_json(path: Union[str, Path], data: Any, indent: int = 2) -> None:
    """
    Serialize ``data`` and atomically replace ``path`` with it.

    Serialization happens before anything touches the disk, so an
    unserializable value leaves the old file in place.

    Raises:
        TypeError: if ``data`` is not JSON-serializable
        OSError: if the directory or file cannot be written
    """
    path = Path(path)
    payload = json.dumps(data, indent=indent, ensure_ascii=False) + "\n"

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, SNAPSHOT_MODE)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise

    _fsync_dir(path.parent)


def safe_backup(path: Union[str, Path], backup_suffix: str = ".bak") -> Path:
    """
    Copy ``path`` to ``<path><backup_suffix>`` if it exists.

    Returns:
        The backup path, whether or not a copy was made.
    """
    path = Path(path)
    backup_path = path.with_suffix(path.suffix + backup_suffix)
    if path.exists():
        shutil.copy2(path, backup_path)
    return backup_path
