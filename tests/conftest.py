"""Pytest configuration and fixtures for scaffold-fs tests."""

import os
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from scaffold_fs.fs.disk_space import DiskSpaceProbe, DiskUsage
from scaffold_fs.fs.fs_ops import FileOpsEngine

GIB = 1024**3


class FakeDiskBackend:
    """Disk space backend reporting whatever the test sets."""

    def __init__(self, available: int = 50 * GIB, total: int = 100 * GIB) -> None:
        self.available = available
        self.total = total
        self.calls: list[Path] = []

    def usage(self, path: Path) -> DiskUsage:
        self.calls.append(path)
        return DiskUsage(total=self.total, free=self.available, available=self.available)


@pytest.fixture(autouse=True)
def _clear_scaffold_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep SCAFFOLD_FS_* variables from the developer's shell out of tests."""
    for key in list(os.environ):
        if key.startswith("SCAFFOLD_FS_"):
            monkeypatch.delenv(key)


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    """CLI invocations configure structlog against a captured stream."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def disk_backend() -> FakeDiskBackend:
    return FakeDiskBackend()


@pytest.fixture
def events() -> list[dict]:
    return []


@pytest.fixture
def engine(
    tmp_path: Path, disk_backend: FakeDiskBackend, events: list[dict]
) -> FileOpsEngine:
    """Engine rooted at tmp_path with a roomy fake disk."""
    return FileOpsEngine(
        root=tmp_path,
        disk_probe=DiskSpaceProbe(backend=disk_backend),
        on_event=events.append,
    )
