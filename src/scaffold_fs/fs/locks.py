"""Advisory lock files for cross-process coordination.

A lock on ``path`` is the file ``<path>.lock`` whose only content is the
holder's token. Acquirers poll for its absence and create it exclusively;
releasing requires presenting the same token. Lock files left behind by a
crashed process are never overridden here: they surface as
``LockTimeoutError`` for a human to resolve.
"""

from __future__ import annotations

import contextlib
import os
import secrets
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

import anyio
import anyio.to_thread
import structlog

from scaffold_fs.core.constants import DEFAULT_LOCK_POLL_INTERVAL
from scaffold_fs.core.errors import LockOwnershipError, LockTimeoutError
from scaffold_fs.fs.paths import lock_path_for

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Lock:
    """A lock held by this process."""

    path: Path
    token: str
    acquired_at: datetime


def _create_lock_file(lock_path: Path, token: str) -> None:
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(token)
            handle.flush()
            os.fsync(handle.fileno())
    except BaseException:
        lock_path.unlink(missing_ok=True)
        raise


def read_lock_token(lock_path: Path) -> str:
    """Return the token stored in a lock file."""
    return lock_path.read_text(encoding="utf-8").strip()


class LockTable:
    """Grants named, exclusive, advisory locks with a timeout."""

    def __init__(self, poll_interval: float = DEFAULT_LOCK_POLL_INTERVAL) -> None:
        self.poll_interval = poll_interval
        self._held: dict[Path, Lock] = {}

    @property
    def held(self) -> dict[Path, Lock]:
        """Locks currently held through this table."""
        return dict(self._held)

    def is_locked(self, path: Path) -> bool:
        """True if any process holds the lock on ``path``."""
        return lock_path_for(path).exists()

    async def acquire(self, path: Path, timeout: float) -> str:
        """Wait for and take the lock on ``path``.

        Args:
            path: Path to lock
            timeout: Seconds to keep polling; 0 tries exactly once

        Returns:
            Token required to release the lock

        Raises:
            LockTimeoutError: If the lock stayed taken for ``timeout`` seconds
        """
        lock_path = lock_path_for(path)
        start = time.monotonic()

        while True:
            if not lock_path.exists():
                token = secrets.token_hex(16)
                try:
                    await anyio.to_thread.run_sync(
                        _create_lock_file, lock_path, token
                    )
                except FileExistsError:
                    # Another acquirer created it between the poll and ours.
                    logger.debug("fs.lock.race_lost", path=str(path))
                else:
                    self._held[path] = Lock(
                        path=path, token=token, acquired_at=datetime.now(UTC)
                    )
                    logger.debug(
                        "fs.lock.acquired",
                        path=str(path),
                        waited=round(time.monotonic() - start, 3),
                    )
                    return token

            elapsed = time.monotonic() - start
            if elapsed >= timeout:
                logger.warning("fs.lock.timeout", path=str(path), elapsed=elapsed)
                raise LockTimeoutError(path, elapsed)

            await anyio.sleep(min(self.poll_interval, timeout - elapsed))

    async def release(self, path: Path, token: str) -> None:
        """Release the lock on ``path`` held under ``token``.

        Raises:
            LockOwnershipError: If no lock exists or ``token`` is not the holder's
        """
        lock_path = lock_path_for(path)
        try:
            current = await anyio.to_thread.run_sync(read_lock_token, lock_path)
        except FileNotFoundError as e:
            raise LockOwnershipError(path, "lock is not held") from e

        if not secrets.compare_digest(current, token):
            raise LockOwnershipError(path, "token does not match the current holder")

        await anyio.to_thread.run_sync(lock_path.unlink)
        self._held.pop(path, None)
        logger.debug("fs.lock.released", path=str(path))

    @contextlib.asynccontextmanager
    async def locked(self, path: Path, timeout: float) -> AsyncIterator[str]:
        """Hold the lock on ``path`` for the duration of the block."""
        token = await self.acquire(path, timeout)
        try:
            yield token
        finally:
            await self.release(path, token)
