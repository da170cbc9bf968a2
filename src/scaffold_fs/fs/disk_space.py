"""Disk space probing for the volume that will receive a write.

The platform-specific query is hidden behind ``DiskSpaceBackend``; one
backend is selected when the probe is built and every check goes through it.
"""

import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import anyio.to_thread
import structlog

from scaffold_fs.core.constants import DEFAULT_DISK_SPACE_MARGIN
from scaffold_fs.core.errors import DiskSpaceError, format_bytes
from scaffold_fs.fs.paths import nearest_existing

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DiskUsage:
    """Byte counts for one volume.

    Attributes:
        total: Size of the volume
        free: Free bytes, including blocks reserved for root
        available: Free bytes usable by the current user
    """

    total: int
    free: int
    available: int

    def describe(self) -> str:
        return (
            f"{format_bytes(self.available)} available of "
            f"{format_bytes(self.total)}"
        )


class DiskSpaceBackend(Protocol):
    def usage(self, path: Path) -> DiskUsage: ...


class StatvfsBackend:
    """POSIX backend reading ``statvfs`` so reserved blocks are accounted for."""

    def usage(self, path: Path) -> DiskUsage:
        stats = os.statvfs(path)
        return DiskUsage(
            total=stats.f_blocks * stats.f_frsize,
            free=stats.f_bfree * stats.f_frsize,
            available=stats.f_bavail * stats.f_frsize,
        )


class DiskUsageBackend:
    """Portable backend for platforms without ``statvfs`` (Windows)."""

    def usage(self, path: Path) -> DiskUsage:
        total, _used, free = shutil.disk_usage(path)
        return DiskUsage(total=total, free=free, available=free)


def select_backend() -> DiskSpaceBackend:
    """Pick the disk space backend for the running platform."""
    if hasattr(os, "statvfs"):
        return StatvfsBackend()
    return DiskUsageBackend()


class DiskSpaceProbe:
    """Checks that a volume can take a write plus a safety margin."""

    def __init__(
        self,
        margin: int = DEFAULT_DISK_SPACE_MARGIN,
        backend: DiskSpaceBackend | None = None,
    ) -> None:
        self.margin = margin
        self.backend = backend or select_backend()

    async def usage(self, path: Path) -> DiskUsage:
        """Query the volume containing ``path`` (which may not exist yet)."""
        target = nearest_existing(path)
        return await anyio.to_thread.run_sync(self.backend.usage, target)

    async def check(
        self, path: Path, required_bytes: int, margin: int | None = None
    ) -> DiskUsage:
        """Ensure ``required_bytes`` plus the margin fit on the volume.

        Args:
            path: Path about to be written
            required_bytes: Size of the pending write
            margin: Override for the configured safety margin

        Returns:
            The usage that was measured

        Raises:
            DiskSpaceError: If available space is below the requirement
        """
        margin = self.margin if margin is None else margin
        usage = await self.usage(path)
        required = required_bytes + margin

        if usage.available < required:
            logger.warning(
                "fs.disk_space.insufficient",
                path=str(path),
                required=required,
                available=usage.available,
            )
            raise DiskSpaceError(path, required, usage.available)

        return usage
