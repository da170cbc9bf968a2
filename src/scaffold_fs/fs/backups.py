"""Snapshots of paths taken before they are overwritten or removed.

Backups live in a ``.backups`` directory next to the original and are named
``<basename>.<timestamp>.<shorthash>``. The timestamp is ISO 8601 basic
format in UTC; the short hash digests the original path, the timestamp and a
random nonce so concurrent snapshots of the same path never collide.
"""

import hashlib
import os
import re
import shutil
import uuid
from datetime import UTC, datetime
from pathlib import Path

import anyio.to_thread
import structlog

from scaffold_fs.core.constants import (
    BACKUP_DIR_NAME,
    BACKUP_HASH_LENGTH,
    BACKUP_TIMESTAMP_FORMAT,
)
from scaffold_fs.core.errors import OperationFailedError, wrap_os_error

logger = structlog.get_logger(__name__)


def backup_dir_for(path: Path) -> Path:
    """Directory that holds snapshots of ``path``."""
    return path.parent / BACKUP_DIR_NAME


def get_backup_path(original_path: Path, now: datetime | None = None) -> Path:
    """Generate a unique backup path for ``original_path``.

    Args:
        original_path: Path that needs to be backed up
        now: Timestamp to embed (defaults to the current UTC time)

    Returns:
        Path for the backup inside the sibling ``.backups`` directory
    """
    now = now or datetime.now(UTC)
    timestamp = now.strftime(BACKUP_TIMESTAMP_FORMAT)
    digest = hashlib.sha256(
        f"{original_path}|{timestamp}|{uuid.uuid4().hex}".encode()
    ).hexdigest()[:BACKUP_HASH_LENGTH]
    return backup_dir_for(original_path) / f"{original_path.name}.{timestamp}.{digest}"


def _backup_name_pattern(name: str) -> re.Pattern[str]:
    return re.compile(
        rf"^{re.escape(name)}\.(\d{{8}}T\d{{6}}\.\d{{6}}Z)\.([0-9a-f]{{{BACKUP_HASH_LENGTH}}})$"
    )


def delete_path(path: Path) -> None:
    """Delete a file, symlink or directory tree."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def _snapshot(source: Path, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    if source.is_symlink():
        os.symlink(os.readlink(source), destination)
    elif source.is_dir():
        shutil.copytree(source, destination, symlinks=True)
    else:
        shutil.copy2(source, destination)


def _put_back(backup_path: Path, original: Path) -> None:
    if original.exists() or original.is_symlink():
        delete_path(original)
    original.parent.mkdir(parents=True, exist_ok=True)
    os.replace(backup_path, original)

    backup_dir = backup_path.parent
    if backup_dir.is_dir() and not any(backup_dir.iterdir()):
        backup_dir.rmdir()


class BackupVault:
    """Takes and restores snapshots, remembering the latest one per path."""

    def __init__(self) -> None:
        self._backups: dict[Path, Path] = {}

    @property
    def backups(self) -> dict[Path, Path]:
        """Mapping of original path to its most recent snapshot."""
        return dict(self._backups)

    def get_backup(self, path: Path) -> Path | None:
        return self._backups.get(path)

    async def create_backup(self, path: Path) -> Path | None:
        """Snapshot ``path`` (file, symlink or directory tree).

        Returns:
            The backup path, or None if nothing exists at ``path``

        Raises:
            OperationFailedError: If the snapshot could not be written
        """
        if not (path.exists() or path.is_symlink()):
            return None

        backup_path = get_backup_path(path)
        try:
            await anyio.to_thread.run_sync(_snapshot, path, backup_path)
        except OSError as e:
            raise wrap_os_error("backup", path, e) from e

        self._backups[path] = backup_path
        logger.debug("fs.backup.created", path=str(path), backup=str(backup_path))
        return backup_path

    async def restore_backup(self, path: Path, backup_path: Path | None = None) -> Path:
        """Move a snapshot back onto ``path``, replacing what is there.

        Args:
            path: Original location to restore
            backup_path: Specific snapshot; defaults to the recorded one

        Returns:
            The restored path

        Raises:
            OperationFailedError: If no snapshot exists or the move fails
        """
        if backup_path is None:
            backup_path = self._backups.get(path)
        if backup_path is None:
            raise OperationFailedError(
                "restore",
                path,
                message=f"No backup recorded for '{path}'",
                suggestion="list snapshots with 'scaffold-fs backups list'",
            )
        if not (backup_path.exists() or backup_path.is_symlink()):
            raise OperationFailedError(
                "restore",
                path,
                FileNotFoundError(str(backup_path)),
                suggestion="the snapshot was pruned or moved",
            )

        try:
            await anyio.to_thread.run_sync(_put_back, backup_path, path)
        except OSError as e:
            raise wrap_os_error("restore", path, e) from e

        if self._backups.get(path) == backup_path:
            del self._backups[path]
        logger.info("fs.backup.restored", path=str(path), backup=str(backup_path))
        return path

    def find_backups(self, path: Path) -> list[Path]:
        """Snapshots of ``path`` found on disk, oldest first.

        Works without in-memory state, so it can recover after the process
        that took the snapshots has exited.
        """
        backup_dir = backup_dir_for(path)
        if not backup_dir.is_dir():
            return []

        pattern = _backup_name_pattern(path.name)
        found: list[tuple[str, Path]] = []
        for entry in backup_dir.iterdir():
            match = pattern.match(entry.name)
            if match:
                found.append((match.group(1), entry))
        return [entry for _, entry in sorted(found)]
