"""
Backups and Atomic Writes
=========================

Every repair that rewrites an existing file first copies it byte for byte
to ``<storage_dir>/backups/<timestamp>-<file>``, then writes the new
content atomically. A failed write restores the original from the backup.
"""

import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from aws_doctor.errors import AutoRepairError

logger = logging.getLogger(__name__)

BACKUP_TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S%fZ"


def atomic_write(path: Path, content: Union[str, bytes], mode: Optional[int] = None) -> None:
    """Write content to file atomically using temp file + rename.

    Either the complete new content is written or the original file is
    preserved. The temp file lives beside the target so the rename stays
    on one filesystem.

    Args:
        path: Target file path (must be in an existing directory)
        content: Text or bytes to write
        mode: Permission bits applied before the rename

    Raises:
        OSError: If the temp file cannot be written or renamed
    """
    temp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        if isinstance(content, bytes):
            temp_path.write_bytes(content)
        else:
            temp_path.write_text(content, encoding="utf-8")
        if mode is not None:
            os.chmod(temp_path, mode)
        os.replace(temp_path, path)
    except OSError as e:
        logger.warning(f"Atomic write failed for {path}: {e}")
        if temp_path.exists():
            logger.debug(f"Cleaning up temp file: {temp_path}")
            temp_path.unlink()
        raise


def backup_timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(timezone.utc)).strftime(BACKUP_TIMESTAMP_FORMAT)


def backup_file(source: Path, backup_dir: Path, now: Optional[datetime] = None) -> Path:
    """Copy ``source`` into ``backup_dir`` and return the backup path.

    The copy is byte-identical. Backups are private (0600) since they can
    hold credentials.

    Raises:
        OSError: If the source cannot be read or the backup written
    """
    backup_dir.mkdir(parents=True, exist_ok=True)
    stamp = backup_timestamp(now)
    backup_path = backup_dir / f"{stamp}-{source.name}"
    counter = 1
    while backup_path.exists():
        backup_path = backup_dir / f"{stamp}-{counter}-{source.name}"
        counter += 1

    shutil.copyfile(source, backup_path)
    os.chmod(backup_path, 0o600)
    logger.debug(f"Backed up {source} to {backup_path}")
    return backup_path


def restore_backup(backup_path: Path, target: Path) -> None:
    """Restore ``target`` from ``backup_path`` atomically.

    The target keeps its current permission bits when it exists, otherwise
    it is created private.

    Raises:
        FileNotFoundError: If the backup does not exist
        OSError: If the target cannot be written
    """
    content = backup_path.read_bytes()
    mode = (target.stat().st_mode & 0o777) if target.exists() else 0o600
    target.parent.mkdir(parents=True, exist_ok=True)
    atomic_write(target, content, mode=mode)
    logger.debug(f"Restored {target} from {backup_path}")


def write_with_backup(
    path: Path,
    content: str,
    backup_dir: Path,
    mode: Optional[int] = None,
    operation: Optional[str] = None,
) -> Optional[Path]:
    """Back up ``path`` (if it exists) and atomically replace its content.

    Returns:
        The backup path, or None when the file did not exist before.

    Raises:
        AutoRepairError: If the backup or the write fails. When the write
            fails after a backup was taken, the original is restored first
            and the error carries the backup path.
    """
    backup_path = None
    if path.exists():
        try:
            backup_path = backup_file(path, backup_dir)
        except OSError as e:
            raise AutoRepairError(
                f"Could not back up {path}: {e}", operation=operation
            ) from e
        if mode is None:
            mode = path.stat().st_mode & 0o777
    else:
        path.parent.mkdir(parents=True, exist_ok=True)

    try:
        atomic_write(path, content, mode=mode)
    except OSError as e:
        if backup_path is not None:
            try:
                restore_backup(backup_path, path)
            except OSError as restore_error:
                logger.warning(f"Rollback of {path} failed: {restore_error}")
        raise AutoRepairError(
            f"Failed to write {path}: {e}",
            operation=operation,
            backup_path=str(backup_path) if backup_path else None,
        ) from e

    return backup_path
