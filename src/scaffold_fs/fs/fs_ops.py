"""Transactional filesystem operations for generated output.

``FileOpsEngine`` is the single entry point code generators use to put files
on disk. Every primitive validates its paths, optionally probes free space,
snapshots anything it is about to overwrite or remove, mutates storage
immediately and, inside a transaction, journals what it did so the whole
group can be undone. Commit is only a bookkeeping boundary.
"""

from __future__ import annotations

import contextlib
import errno
import os
import shutil
import stat
import subprocess
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from functools import partial
from pathlib import Path
from typing import Any

import anyio
import anyio.to_thread
import structlog

from scaffold_fs.core.config import FileOpsOptions, resolve_root
from scaffold_fs.core.errors import (
    CleanupError,
    OperationFailedError,
    RollbackError,
    ScaffoldFsError,
    TransactionError,
    wrap_os_error,
)
from scaffold_fs.fs.backups import BackupVault, delete_path
from scaffold_fs.fs.disk_space import DiskSpaceProbe
from scaffold_fs.fs.journal import (
    OperationKind,
    OperationRecord,
    Transaction,
    TransactionState,
)
from scaffold_fs.fs.locks import LockTable
from scaffold_fs.fs.paths import (
    PathGuard,
    missing_ancestors,
    nearest_existing,
    path_depth,
    temp_path_for,
)

EventCallback = Callable[[dict[str, Any]], None]

_WINDOWS = os.name == "nt"


# ============================================================================
# Blocking helpers (run in worker threads)
# ============================================================================


def _rename(source: Path, destination: Path) -> None:
    os.rename(source, destination)


def _exists(path: Path) -> bool:
    return path.exists() or path.is_symlink()


def _atomic_replace(
    target: Path, fill: Callable[[Path], None], mode: int | None = None
) -> None:
    """Produce ``target`` by filling a sibling temp file and renaming it.

    The rename is the only step that makes new content visible; the temp file
    is removed if anything before it fails.
    """
    temp = temp_path_for(target)
    try:
        fill(temp)
        if mode is not None:
            os.chmod(temp, mode)
        os.replace(temp, target)
    except BaseException:
        temp.unlink(missing_ok=True)
        raise


def _bytes_filler(data: bytes) -> Callable[[Path], None]:
    def fill(temp: Path) -> None:
        with open(temp, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())

    return fill


def _copy_filler(source: Path, preserve_metadata: bool) -> Callable[[Path], None]:
    def fill(temp: Path) -> None:
        shutil.copyfile(source, temp)
        with open(temp, "ab") as handle:
            os.fsync(handle.fileno())
        if preserve_metadata:
            shutil.copystat(source, temp)

    return fill


def _write_in_place(target: Path, data: bytes, mode: int | None) -> None:
    with open(target, "wb") as handle:
        handle.write(data)
        handle.flush()
        os.fsync(handle.fileno())
    if mode is not None:
        os.chmod(target, mode)


def _tree_size(path: Path) -> int:
    """Bytes a copy of ``path`` will need (symlinks count as zero)."""
    if path.is_symlink():
        return 0
    if not path.is_dir():
        return path.stat().st_size

    total = 0
    for dirpath, _dirnames, filenames in os.walk(path):
        for name in filenames:
            entry = Path(dirpath) / name
            if not entry.is_symlink():
                total += entry.stat().st_size
    return total


def _list_dir(path: Path) -> list[Path]:
    return sorted(path.iterdir())


def _create_junction(target: Path, link: Path) -> None:
    """Windows directory junction, usable without symlink privileges."""
    result = subprocess.run(
        ["cmd", "/c", "mklink", "/J", str(link), str(target)],
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        raise OSError(errno.EPERM, result.stderr.strip() or "mklink /J failed", str(link))


def _make_link(target: str, link: Path) -> None:
    if _exists(link):
        delete_path(link)

    target_path = Path(target)
    if not target_path.is_absolute():
        target_path = link.parent / target_path
    is_dir = target_path.is_dir()

    try:
        os.symlink(target, link, target_is_directory=is_dir)
    except OSError:
        # Symlinks need a privilege on Windows; junctions only cover directories.
        if _WINDOWS and is_dir:
            _create_junction(target_path.resolve(), link)
        else:
            raise


def _permission_targets(path: Path, recursive: bool) -> list[Path]:
    """Paths to chmod, deepest first with ``path`` itself last.

    Parents keep their search bit until everything beneath them is done.
    """
    if not recursive or not path.is_dir():
        return [path]

    targets: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(path, topdown=False):
        for name in filenames + dirnames:
            entry = Path(dirpath) / name
            if not entry.is_symlink():
                targets.append(entry)
    targets.append(path)
    return targets


def _apply_modes(paths: list[Path], mode: int) -> tuple[tuple[Path, int], ...]:
    """chmod every path, returning the previous modes.

    Paths already changed are reverted if a later chmod fails.
    """
    previous: list[tuple[Path, int]] = []
    try:
        for path in paths:
            old_mode = stat.S_IMODE(path.stat().st_mode)
            os.chmod(path, mode)
            previous.append((path, old_mode))
    except OSError:
        _restore_modes(tuple(previous))
        raise
    return tuple(previous)


def _restore_modes(previous: tuple[tuple[Path, int], ...]) -> None:
    for path, old_mode in reversed(previous):
        if path.exists():
            os.chmod(path, old_mode)


# ============================================================================
# Engine
# ============================================================================


class FileOpsEngine:
    """Transactional, dry-run capable filesystem mutation manager.

    Args:
        root: Directory all write targets must stay within (defaults to
            ``SCAFFOLD_FS_ROOT``; unrestricted when neither is set)
        options: Instance-level defaults merged under per-call overrides
            (read from ``SCAFFOLD_FS_*`` variables when omitted)
        disk_probe: Free-space checker (platform backend chosen if omitted)
        lock_table: Lock-file manager
        backup_vault: Snapshot store
        logger: Optional structlog logger
        on_event: Callback receiving one dict per applied, simulated or
            failed operation
    """

    def __init__(
        self,
        root: str | Path | None = None,
        options: FileOpsOptions | None = None,
        *,
        disk_probe: DiskSpaceProbe | None = None,
        lock_table: LockTable | None = None,
        backup_vault: BackupVault | None = None,
        logger: Any = None,
        on_event: EventCallback | None = None,
    ) -> None:
        self.options = options or FileOpsOptions.from_env()
        self.guard = PathGuard(resolve_root(root))
        self.disk = disk_probe or DiskSpaceProbe(margin=self.options.disk_space_margin)
        self.locks = lock_table or LockTable()
        self.vault = backup_vault or BackupVault()
        self._logger = logger or structlog.get_logger(__name__)
        self._on_event = on_event
        self._transaction: Transaction | None = None
        self._created: set[Path] = set()

    @property
    def root(self) -> Path | None:
        return self.guard.root

    @property
    def tracked_paths(self) -> set[Path]:
        """Paths this engine created and that cleanup() would remove."""
        return set(self._created)

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _resolve_options(self, overrides: dict[str, Any]) -> FileOpsOptions:
        return self.options.merged(**overrides)

    def _require_backups(
        self, opts: FileOpsOptions, kind: OperationKind, path: Path
    ) -> None:
        if self._transaction is not None and not opts.backup:
            raise TransactionError(
                f"{kind.value} on '{path}' with backups disabled inside "
                f"transaction {self._transaction.id}",
                suggestion="keep backups enabled so rollback can restore the path",
            )

    def _emit(
        self, kind: OperationKind, path: Path, status: str, **fields: Any
    ) -> None:
        entry: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(),
            "op": kind.value,
            "path": str(path),
            "status": status,
        }
        if self._transaction is not None:
            entry["transaction_id"] = self._transaction.id
        for key, value in fields.items():
            if value is not None:
                entry[key] = str(value) if isinstance(value, Path) else value

        log_fields = {k: v for k, v in entry.items() if k not in ("ts", "op")}
        if status == "failed":
            self._logger.error(f"fs.{kind.value}", **log_fields)
        else:
            self._logger.info(f"fs.{kind.value}", **log_fields)

        if self._on_event is not None:
            self._on_event(entry)

    def _failure(
        self, kind: OperationKind, path: Path, exc: OSError
    ) -> OperationFailedError:
        error = wrap_os_error(kind.value, path, exc)
        self._emit(kind, path, "failed", reason=str(exc), suggestion=error.suggestion)
        return error

    def _record(self, kind: OperationKind, primary: Path, **fields: Any) -> None:
        if self._transaction is None:
            return
        self._transaction.journal.append(
            OperationRecord(
                kind=kind,
                primary_path=primary,
                transaction_id=self._transaction.id,
                **fields,
            )
        )

    def _forget(self, path: Path) -> None:
        """Drop ``path`` and everything tracked beneath it."""
        for tracked in list(self._created):
            if tracked == path or path in tracked.parents:
                self._created.discard(tracked)

    def _retarget(self, source: Path, destination: Path) -> None:
        """Follow tracked paths that moved from ``source`` to ``destination``."""
        for tracked in list(self._created):
            if tracked == source or source in tracked.parents:
                self._created.discard(tracked)
                self._created.add(destination / tracked.relative_to(source))

    @staticmethod
    def _check_parent(kind: OperationKind, target: Path) -> None:
        anchor = nearest_existing(target.parent)
        if not anchor.is_dir():
            raise OperationFailedError(
                kind.value,
                target,
                NotADirectoryError(errno.ENOTDIR, "Not a directory", str(anchor)),
                suggestion=f"'{anchor}' is a file, not a directory",
            )

    @staticmethod
    def _check_source(kind: OperationKind, source: Path) -> None:
        if not _exists(source):
            raise OperationFailedError(
                kind.value,
                source,
                FileNotFoundError(errno.ENOENT, "No such file or directory", str(source)),
                suggestion="check that the path exists",
            )

    @staticmethod
    def _check_overwrite(
        kind: OperationKind, target: Path, existed: bool, opts: FileOpsOptions
    ) -> None:
        if existed and not opts.overwrite:
            raise OperationFailedError(
                kind.value,
                target,
                FileExistsError(errno.EEXIST, "File exists", str(target)),
                suggestion="enable overwrite or remove the existing path",
            )

    async def _snapshot(self, path: Path, opts: FileOpsOptions) -> Path | None:
        if not opts.backup:
            return None
        return await self.vault.create_backup(path)

    async def _ensure_parent(self, target: Path, overrides: dict[str, Any]) -> None:
        if not target.parent.is_dir():
            await self.create_directory(target.parent, **overrides)

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    async def create_directory(self, path: str | Path, **overrides: Any) -> Path:
        """Create ``path`` and any missing ancestors.

        Existing directories are fine. A concurrent creator racing on the
        same ancestors surfaces as ``FileExistsError``, which is retried with
        linear backoff.

        Returns:
            The resolved directory path

        Raises:
            PathSecurityError: If the path escapes the root
            DiskSpaceError: If the volume is below the safety margin
            OperationFailedError: If a file occupies the path or creation fails
        """
        opts = self._resolve_options(overrides)
        kind = OperationKind.CREATE_DIR
        target = self.guard.resolve(path)

        if _exists(target) and not target.is_dir():
            raise OperationFailedError(
                kind.value,
                target,
                FileExistsError(errno.EEXIST, "File exists", str(target)),
                suggestion="a file occupies this path",
            )
        self._check_parent(kind, target)

        if opts.dry_run:
            self._emit(kind, target, "dry_run")
            return target

        if target.is_dir():
            return target

        if opts.check_disk_space:
            await self.disk.check(target, 0, margin=opts.disk_space_margin)

        missing = missing_ancestors(target)
        for attempt in range(1, opts.retries + 1):
            try:
                await anyio.to_thread.run_sync(
                    partial(os.makedirs, target, mode=opts.dir_mode, exist_ok=True)
                )
                break
            except FileExistsError as e:
                if target.is_dir():
                    break
                if attempt >= opts.retries:
                    raise self._failure(kind, target, e) from e
                self._logger.debug(
                    "fs.create_dir.retry", path=str(target), attempt=attempt
                )
                await anyio.sleep(opts.retry_delay * attempt)
            except OSError as e:
                raise self._failure(kind, target, e) from e

        created = tuple(p for p in missing if p.is_dir())
        self._created.update(created)
        self._record(kind, target, created_paths=created)
        self._emit(kind, target, "applied", created=len(created))
        return target

    async def write_file(
        self, path: str | Path, content: str | bytes, **overrides: Any
    ) -> Path:
        """Write ``content`` to ``path`` atomically.

        The parent directory is created as needed. An existing file is
        snapshotted first when backups are enabled. The bytes land in a
        sibling temp file that is fsynced and renamed over the target, so
        readers see either the old file or the complete new one.

        Returns:
            The resolved file path

        Raises:
            PathSecurityError: If the path escapes the root
            DiskSpaceError: If the content plus margin does not fit
            TransactionError: If backups are disabled inside a transaction
            OperationFailedError: If the write fails (temp file removed)
        """
        opts = self._resolve_options(overrides)
        kind = OperationKind.WRITE_FILE
        target = self.guard.resolve(path)
        data = content.encode(opts.encoding) if isinstance(content, str) else bytes(content)

        existed = _exists(target)
        if target.is_dir():
            raise OperationFailedError(
                kind.value,
                target,
                IsADirectoryError(errno.EISDIR, "Is a directory", str(target)),
                suggestion="remove the directory or pick another file name",
            )
        self._check_overwrite(kind, target, existed, opts)
        self._check_parent(kind, target)
        self._require_backups(opts, kind, target)

        if opts.check_disk_space:
            await self.disk.check(target, len(data), margin=opts.disk_space_margin)

        if opts.dry_run:
            self._emit(kind, target, "dry_run", bytes=len(data), overwrite=existed)
            return target

        await self._ensure_parent(target, overrides)
        backup_path = await self._snapshot(target, opts) if existed else None

        try:
            mode = opts.file_mode
            if mode is None and existed and target.exists():
                # the replacement keeps the permissions of the file it replaces
                mode = stat.S_IMODE(target.stat().st_mode)
            if opts.atomic:
                await anyio.to_thread.run_sync(
                    _atomic_replace, target, _bytes_filler(data), mode
                )
            else:
                await anyio.to_thread.run_sync(_write_in_place, target, data, mode)
        except OSError as e:
            raise self._failure(kind, target, e) from e

        if not existed:
            self._created.add(target)
        self._record(kind, target, backup_path=backup_path)
        self._emit(kind, target, "applied", bytes=len(data), backup_path=backup_path)
        return target

    async def copy(
        self, source: str | Path, destination: str | Path, **overrides: Any
    ) -> Path:
        """Copy a file, symlink or directory tree to ``destination``.

        The source may live outside the root (templates) but the destination
        may not. Directories are copied depth-first; files go through the
        atomic-write path and symlinks are recreated from their targets.

        Returns:
            The resolved destination path
        """
        opts = self._resolve_options(overrides)
        kind = OperationKind.COPY
        src = self.guard.normalize(source)
        dst = self.guard.resolve(destination, follow_symlinks=False)

        self._check_source(kind, src)
        if dst == src or src in dst.parents:
            raise OperationFailedError(
                kind.value, dst, message=f"Cannot copy '{src}' into itself"
            )
        existed = _exists(dst)
        self._check_overwrite(kind, dst, existed, opts)
        self._check_parent(kind, dst)
        self._require_backups(opts, kind, dst)

        try:
            size = await anyio.to_thread.run_sync(_tree_size, src)
        except OSError as e:
            raise self._failure(kind, src, e) from e
        if opts.check_disk_space:
            await self.disk.check(dst, size, margin=opts.disk_space_margin)

        if opts.dry_run:
            self._emit(kind, src, "dry_run", dst=dst, bytes=size)
            return dst

        await self._ensure_parent(dst, overrides)
        backup_path = await self._snapshot(dst, opts) if existed else None

        src_is_dir = src.is_dir() and not src.is_symlink()
        dst_is_dir = dst.is_dir() and not dst.is_symlink()
        try:
            # Directories merge and files are replaced atomically; a file
            # and a directory cannot replace each other in place.
            if existed and src_is_dir != dst_is_dir:
                await anyio.to_thread.run_sync(delete_path, dst)
            await self._copy_path(src, dst, opts)
        except OSError as e:
            error = self._failure(kind, dst, e)
            with anyio.CancelScope(shield=True):
                if backup_path is not None:
                    await self.vault.restore_backup(dst, backup_path)
                elif not existed and _exists(dst):
                    await anyio.to_thread.run_sync(delete_path, dst)
            raise error from e

        if not existed:
            self._created.add(dst)
        self._record(kind, src, secondary_path=dst, backup_path=backup_path)
        self._emit(kind, src, "applied", dst=dst, bytes=size, backup_path=backup_path)
        return dst

    async def _copy_path(self, src: Path, dst: Path, opts: FileOpsOptions) -> None:
        if src.is_symlink():
            target = await anyio.to_thread.run_sync(os.readlink, src)
            await anyio.to_thread.run_sync(_make_link, target, dst)
        elif src.is_dir():
            await anyio.to_thread.run_sync(
                partial(os.makedirs, dst, mode=opts.dir_mode, exist_ok=True)
            )
            for entry in await anyio.to_thread.run_sync(_list_dir, src):
                await self._copy_path(entry, dst / entry.name, opts)
            if opts.preserve_metadata:
                await anyio.to_thread.run_sync(shutil.copystat, src, dst)
        else:
            await anyio.to_thread.run_sync(
                _atomic_replace, dst, _copy_filler(src, opts.preserve_metadata)
            )

    async def move(
        self, source: str | Path, destination: str | Path, **overrides: Any
    ) -> Path:
        """Move ``source`` to ``destination``.

        A direct rename is tried first. When the paths are on different
        volumes the data is copied, and only then is the source removed, so
        at every instant at least one complete copy exists.

        Returns:
            The resolved destination path
        """
        opts = self._resolve_options(overrides)
        kind = OperationKind.MOVE
        src = self.guard.resolve(source, follow_symlinks=False)
        dst = self.guard.resolve(destination, follow_symlinks=False)

        self._check_source(kind, src)
        if dst == src:
            return dst
        if src in dst.parents:
            raise OperationFailedError(
                kind.value, dst, message=f"Cannot move '{src}' into itself"
            )
        existed = _exists(dst)
        self._check_overwrite(kind, dst, existed, opts)
        self._check_parent(kind, dst)
        self._require_backups(opts, kind, dst)

        if opts.dry_run:
            self._emit(kind, src, "dry_run", dst=dst, overwrite=existed)
            return dst

        await self._ensure_parent(dst, overrides)

        backup_path: Path | None = None
        cleared = False
        if existed:
            backup_path = await self._snapshot(dst, opts)
            if dst.is_dir() and not dst.is_symlink():
                # rename() cannot replace a non-empty directory
                try:
                    await anyio.to_thread.run_sync(delete_path, dst)
                except OSError as e:
                    raise self._failure(kind, dst, e) from e
                cleared = True

        try:
            method = await self._relocate(src, dst, opts)
        except BaseException:
            if cleared and backup_path is not None:
                with anyio.CancelScope(shield=True):
                    await self.vault.restore_backup(dst, backup_path)
            raise

        self._retarget(src, dst)
        self._record(kind, src, secondary_path=dst, backup_path=backup_path)
        self._emit(kind, src, "applied", dst=dst, method=method, backup_path=backup_path)
        return dst

    async def _relocate(self, src: Path, dst: Path, opts: FileOpsOptions) -> str:
        """Rename, falling back to copy-then-remove across volumes."""
        kind = OperationKind.MOVE
        try:
            await anyio.to_thread.run_sync(_rename, src, dst)
            return "rename"
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise self._failure(kind, src, e) from e

        self._logger.info("fs.move.cross_device", src=str(src), dst=str(dst))
        try:
            size = await anyio.to_thread.run_sync(_tree_size, src)
        except OSError as e:
            raise self._failure(kind, src, e) from e
        if opts.check_disk_space:
            await self.disk.check(dst, size, margin=opts.disk_space_margin)

        try:
            await self._copy_path(src, dst, opts)
        except OSError as e:
            # Never leave a partial copy behind; the source is still intact.
            if _exists(dst):
                await anyio.to_thread.run_sync(delete_path, dst)
            raise self._failure(kind, dst, e) from e

        try:
            await anyio.to_thread.run_sync(delete_path, src)
        except OSError as e:
            raise self._failure(kind, src, e) from e
        return "copy"

    async def remove(self, path: str | Path, **overrides: Any) -> bool:
        """Delete a file, symlink or directory tree.

        Returns:
            True if something was removed, False if nothing existed
        """
        opts = self._resolve_options(overrides)
        kind = OperationKind.REMOVE
        target = self.guard.resolve(path, follow_symlinks=False)

        if not _exists(target):
            return False
        self._require_backups(opts, kind, target)

        if opts.dry_run:
            self._emit(kind, target, "dry_run")
            return True

        backup_path = await self._snapshot(target, opts)
        try:
            await anyio.to_thread.run_sync(delete_path, target)
        except OSError as e:
            raise self._failure(kind, target, e) from e

        self._forget(target)
        self._record(kind, target, backup_path=backup_path)
        self._emit(kind, target, "applied", backup_path=backup_path)
        return True

    async def create_symlink(
        self, target: str | Path, link_path: str | Path, **overrides: Any
    ) -> Path:
        """Create ``link_path`` pointing at ``target``.

        ``target`` is stored verbatim, so relative targets stay relative to
        the link's directory. On Windows, a directory target falls back to a
        junction when symlink creation is refused.

        Returns:
            The resolved link path
        """
        opts = self._resolve_options(overrides)
        kind = OperationKind.SYMLINK
        link = self.guard.resolve(link_path, follow_symlinks=False)

        existed = _exists(link)
        self._check_overwrite(kind, link, existed, opts)
        self._check_parent(kind, link)
        self._require_backups(opts, kind, link)

        if opts.dry_run:
            self._emit(kind, link, "dry_run", target=str(target))
            return link

        await self._ensure_parent(link, overrides)
        backup_path = await self._snapshot(link, opts) if existed else None

        try:
            await anyio.to_thread.run_sync(_make_link, str(target), link)
        except OSError as e:
            raise self._failure(kind, link, e) from e

        if not existed:
            self._created.add(link)
        self._record(kind, link, backup_path=backup_path)
        self._emit(kind, link, "applied", target=str(target), backup_path=backup_path)
        return link

    async def set_permissions(
        self, path: str | Path, mode: int, **overrides: Any
    ) -> Path:
        """Apply ``mode`` to ``path`` (and its tree when ``recursive``)."""
        opts = self._resolve_options(overrides)
        kind = OperationKind.SET_PERMISSIONS
        target = self.guard.resolve(path)

        if not 0 <= mode <= 0o7777:
            raise ValueError(f"permission bits out of range: {oct(mode)}")
        self._check_source(kind, target)

        paths = await anyio.to_thread.run_sync(
            _permission_targets, target, opts.recursive
        )

        if opts.dry_run:
            self._emit(kind, target, "dry_run", mode=oct(mode), count=len(paths))
            return target

        try:
            previous = await anyio.to_thread.run_sync(_apply_modes, paths, mode)
        except OSError as e:
            raise self._failure(kind, target, e) from e

        self._record(kind, target, previous_modes=previous)
        self._emit(kind, target, "applied", mode=oct(mode), count=len(paths))
        return target

    async def lock_file(self, path: str | Path, timeout: float | None = None) -> str:
        """Acquire the advisory lock on ``path``; returns the release token."""
        target = self.guard.resolve(path)
        if timeout is None:
            timeout = self.options.lock_timeout
        return await self.locks.acquire(target, timeout)

    async def unlock_file(self, path: str | Path, token: str) -> None:
        """Release the lock on ``path`` held under ``token``."""
        await self.locks.release(self.guard.resolve(path), token)

    async def restore_backup(self, path: str | Path) -> Path:
        """Put the most recent snapshot of ``path`` back in place.

        Available after commit, until cleanup or a later restore consumes it.
        """
        target = self.guard.resolve(path, follow_symlinks=False)
        return await self.vault.restore_backup(target)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @property
    def transaction(self) -> Transaction | None:
        return self._transaction

    def begin_transaction(self) -> str:
        """Start a transaction; returns its id.

        Raises:
            TransactionError: If one is already active, or backups are off
        """
        if self._transaction is not None:
            raise TransactionError(
                f"Transaction {self._transaction.id} is already active; "
                "nested transactions are not supported"
            )
        if not self.options.backup:
            raise TransactionError(
                "Transactions require backups to be enabled",
                suggestion="construct the engine with backup=True",
            )

        self._transaction = Transaction()
        self._logger.info("fs.transaction.begin", transaction_id=self._transaction.id)
        return self._transaction.id

    def _require_transaction(self, action: str) -> Transaction:
        if self._transaction is None:
            raise TransactionError(f"Cannot {action}: no active transaction")
        return self._transaction

    def commit_transaction(self) -> Transaction:
        """Close the active transaction, discarding its journal.

        Every primitive already mutated storage, so nothing is written here.
        """
        txn = self._require_transaction("commit")
        operations = len(txn.journal)

        txn.journal.clear()
        txn.state = TransactionState.COMMITTED
        self._transaction = None

        self._logger.info(
            "fs.transaction.commit", transaction_id=txn.id, operations=operations
        )
        return txn

    async def rollback_transaction(self) -> Transaction:
        """Undo the active transaction's operations, newest first.

        Undo is best-effort: every record is attempted and failures are
        gathered into a single ``RollbackError`` raised at the end. The engine
        is idle afterwards either way.
        """
        txn = self._require_transaction("roll back")
        log = self._logger.bind(transaction_id=txn.id)
        failures: list[tuple[Path, BaseException]] = []

        for record in txn.journal.reversed():
            try:
                await self._undo(record)
            except (OSError, ScaffoldFsError) as e:
                failures.append((record.target, e))
                log.error(
                    "fs.rollback.failed",
                    op=record.kind.value,
                    path=str(record.target),
                    error=str(e),
                )

        operations = len(txn.journal)
        txn.journal.clear()
        txn.state = TransactionState.ROLLED_BACK
        self._transaction = None

        log.info(
            "fs.transaction.rollback", operations=operations, failures=len(failures)
        )
        if failures:
            raise RollbackError(failures)
        return txn

    async def _undo(self, record: OperationRecord) -> None:
        kind = record.kind

        if kind is OperationKind.CREATE_DIR:
            for directory in reversed(record.created_paths):
                if not directory.is_dir():
                    continue
                if any(directory.iterdir()):
                    self._logger.warning(
                        "fs.rollback.dir_in_use", path=str(directory)
                    )
                    continue
                await anyio.to_thread.run_sync(directory.rmdir)
                self._created.discard(directory)

        elif kind in (
            OperationKind.WRITE_FILE,
            OperationKind.COPY,
            OperationKind.SYMLINK,
        ):
            target = record.target
            if _exists(target):
                await anyio.to_thread.run_sync(delete_path, target)
                self._forget(target)
            if record.backup_path is not None:
                await self.vault.restore_backup(target, record.backup_path)

        elif kind is OperationKind.MOVE:
            src = record.primary_path
            dst = record.target
            if _exists(dst):
                await self._relocate(
                    dst, src, self.options.merged(check_disk_space=False)
                )
                self._retarget(dst, src)
            else:
                backup = self.vault.get_backup(src)
                if backup is None:
                    raise OperationFailedError(
                        "rollback",
                        src,
                        message=f"Moved data for '{src}' is gone and no backup exists",
                    )
                await self.vault.restore_backup(src, backup)
            if record.backup_path is not None:
                await self.vault.restore_backup(dst, record.backup_path)

        elif kind is OperationKind.REMOVE:
            if record.backup_path is None:
                raise OperationFailedError(
                    "rollback",
                    record.primary_path,
                    message=f"No backup of removed path '{record.primary_path}'",
                )
            await self.vault.restore_backup(record.primary_path, record.backup_path)

        elif kind is OperationKind.SET_PERMISSIONS:
            await anyio.to_thread.run_sync(_restore_modes, record.previous_modes)

    @contextlib.asynccontextmanager
    async def transactional(self) -> AsyncIterator[Transaction]:
        """Run a block inside a transaction.

        Commits when the block finishes; rolls back and re-raises when it
        raises (or is cancelled).
        """
        self.begin_transaction()
        txn = self._require_transaction("enter")
        try:
            yield txn
        except BaseException:
            with anyio.CancelScope(shield=True):
                await self.rollback_transaction()
            raise
        else:
            self.commit_transaction()

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    async def cleanup(self) -> list[Path]:
        """Remove every path this engine created, deepest first.

        Returns:
            Removed paths in removal order

        Raises:
            CleanupError: After the sweep, if any path could not be removed
        """
        removed: list[Path] = []
        failures: list[tuple[Path, BaseException]] = []

        ordered = sorted(
            self._created, key=lambda p: (path_depth(p), str(p)), reverse=True
        )
        for path in ordered:
            if not _exists(path):
                self._created.discard(path)
                continue
            try:
                await anyio.to_thread.run_sync(delete_path, path)
            except OSError as e:
                failures.append((path, e))
                self._logger.error("fs.cleanup.failed", path=str(path), error=str(e))
                continue
            removed.append(path)
            self._created.discard(path)

        self._logger.info("fs.cleanup", removed=len(removed), failures=len(failures))
        if failures:
            raise CleanupError(failures)
        return removed
