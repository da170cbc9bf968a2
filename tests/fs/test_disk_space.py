"""Tests for disk space probing."""

import os
from pathlib import Path

import pytest

from scaffold_fs.core.errors import DiskSpaceError
from scaffold_fs.fs.disk_space import (
    DiskSpaceProbe,
    DiskUsage,
    DiskUsageBackend,
    StatvfsBackend,
    select_backend,
)

MIB = 1024 * 1024


class TestDiskSpaceProbe:
    @pytest.mark.asyncio
    async def test_passes_with_room(self, tmp_path: Path, disk_backend) -> None:
        probe = DiskSpaceProbe(margin=MIB, backend=disk_backend)

        usage = await probe.check(tmp_path / "file", 1024)

        assert usage.available == disk_backend.available

    @pytest.mark.asyncio
    async def test_raises_below_requirement_plus_margin(
        self, tmp_path: Path, disk_backend
    ) -> None:
        disk_backend.available = 5 * MIB
        probe = DiskSpaceProbe(margin=4 * MIB, backend=disk_backend)

        with pytest.raises(DiskSpaceError) as exc_info:
            await probe.check(tmp_path / "file", 2 * MIB)

        error = exc_info.value
        assert error.required == 6 * MIB
        assert error.available == 5 * MIB
        assert "6.0 MiB" in str(error)
        assert "5.0 MiB" in str(error)
        assert error.to_dict()["required"] == 6 * MIB

    @pytest.mark.asyncio
    async def test_margin_override(self, tmp_path: Path, disk_backend) -> None:
        disk_backend.available = 5 * MIB
        probe = DiskSpaceProbe(margin=100 * MIB, backend=disk_backend)

        await probe.check(tmp_path / "file", MIB, margin=0)

    @pytest.mark.asyncio
    async def test_queries_nearest_existing_ancestor(
        self, tmp_path: Path, disk_backend
    ) -> None:
        probe = DiskSpaceProbe(backend=disk_backend)

        await probe.usage(tmp_path / "not" / "yet" / "there.txt")

        assert disk_backend.calls == [tmp_path]


class TestBackends:
    def test_selects_statvfs_when_available(self) -> None:
        expected = StatvfsBackend if hasattr(os, "statvfs") else DiskUsageBackend

        assert isinstance(select_backend(), expected)

    def test_falls_back_without_statvfs(self, monkeypatch) -> None:
        monkeypatch.delattr(os, "statvfs", raising=False)

        assert isinstance(select_backend(), DiskUsageBackend)

    @pytest.mark.skipif(not hasattr(os, "statvfs"), reason="requires statvfs")
    def test_statvfs_reports_real_volume(self, tmp_path: Path) -> None:
        usage = StatvfsBackend().usage(tmp_path)

        assert usage.total > 0
        assert 0 <= usage.available <= usage.free <= usage.total

    def test_disk_usage_reports_real_volume(self, tmp_path: Path) -> None:
        usage = DiskUsageBackend().usage(tmp_path)

        assert usage.total > 0
        assert usage.available == usage.free

    def test_describe(self) -> None:
        usage = DiskUsage(total=10 * MIB, free=MIB, available=MIB)

        assert usage.describe() == "1.0 MiB available of 10.0 MiB"
