"""
Sibling-file backups taken before a file is modified.

A backup lives next to the original as ``<original path><suffix>``. It is
created at most once: an existing backup is never overwritten, so the first
backup always holds the pre-edit bytes. Restoring copies the backup back over
the original.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Optional

from .config import DEFAULT_BACKUP_SUFFIX
from .errors import BackupError


def backup_path_for(path: Path | str, suffix: str = DEFAULT_BACKUP_SUFFIX) -> Path:
    return Path(str(path) + suffix)


def ensure_backup(path: Path | str, suffix: str = DEFAULT_BACKUP_SUFFIX) -> Optional[Path]:
    """Copy `path` to its backup location unless a backup already exists.

    Returns the backup path when one was created, None when it was already
    there. Copy errors propagate.
    """
    target = backup_path_for(path, suffix)
    if target.exists():
        return None
    shutil.copy2(path, target)
    return target


def original_path_for(backup: Path | str, suffix: str = DEFAULT_BACKUP_SUFFIX) -> Path:
    text = str(backup)
    if not suffix or not text.endswith(suffix) or len(text) == len(suffix):
        raise BackupError(f"Not a backup file (expected suffix {suffix!r}): {backup}")
    return Path(text[: -len(suffix)])


def restore_backup(backup: Path | str, suffix: str = DEFAULT_BACKUP_SUFFIX) -> Path:
    """Copy a backup over its original and return the original's path."""
    original = original_path_for(backup, suffix)
    if not Path(backup).is_file():
        raise BackupError(f"Backup not found: {backup}")
    try:
        shutil.copy2(backup, original)
    except OSError as e:
        raise BackupError(f"Restore failed for {original}: {e}") from e
    return original
