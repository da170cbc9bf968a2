"""Tests for path snapshots."""

import os
import re
import time
from datetime import UTC, datetime
from pathlib import Path

import pytest

from scaffold_fs.core.errors import OperationFailedError
from scaffold_fs.fs.backups import BackupVault, backup_dir_for, get_backup_path


class TestBackupNaming:
    def test_backup_lives_in_sibling_directory(self, tmp_path: Path) -> None:
        original = tmp_path / "src" / "index.ts"
        now = datetime(2024, 3, 5, 14, 7, 9, 123456, tzinfo=UTC)

        backup = get_backup_path(original, now=now)

        assert backup.parent == tmp_path / "src" / ".backups"
        assert re.fullmatch(r"index\.ts\.20240305T140709\.123456Z\.[0-9a-f]{8}", backup.name)

    def test_same_instant_never_collides(self, tmp_path: Path) -> None:
        now = datetime.now(UTC)
        names = {get_backup_path(tmp_path / "a.txt", now=now) for _ in range(50)}

        assert len(names) == 50

    def test_backup_dir_for(self, tmp_path: Path) -> None:
        assert backup_dir_for(tmp_path / "x") == tmp_path / ".backups"


class TestCreateBackup:
    @pytest.mark.asyncio
    async def test_file_snapshot_preserves_content_and_mtime(
        self, tmp_path: Path
    ) -> None:
        vault = BackupVault()
        original = tmp_path / "README.md"
        original.write_text("# readme")
        old = time.time() - 86400
        os.utime(original, (old, old))

        backup = await vault.create_backup(original)

        assert backup is not None
        assert backup.read_text() == "# readme"
        assert abs(backup.stat().st_mtime - old) < 1
        assert vault.get_backup(original) == backup
        assert original.exists()

    @pytest.mark.asyncio
    async def test_directory_snapshot(self, tmp_path: Path) -> None:
        vault = BackupVault()
        tree = tmp_path / "components"
        (tree / "ui").mkdir(parents=True)
        (tree / "ui" / "Button.tsx").write_text("button")

        backup = await vault.create_backup(tree)

        assert backup is not None
        assert (backup / "ui" / "Button.tsx").read_text() == "button"

    @pytest.mark.asyncio
    async def test_missing_path_has_nothing_to_snapshot(self, tmp_path: Path) -> None:
        vault = BackupVault()

        assert await vault.create_backup(tmp_path / "ghost") is None
        assert vault.backups == {}

    @pytest.mark.asyncio
    async def test_latest_snapshot_wins(self, tmp_path: Path) -> None:
        vault = BackupVault()
        original = tmp_path / "a.txt"
        original.write_text("1")
        first = await vault.create_backup(original)
        original.write_text("2")

        second = await vault.create_backup(original)

        assert first != second
        assert vault.get_backup(original) == second
        assert vault.find_backups(original)[-1] in {first, second}
        assert len(vault.find_backups(original)) == 2


class TestRestoreBackup:
    @pytest.mark.asyncio
    async def test_restore_replaces_current_state(self, tmp_path: Path) -> None:
        vault = BackupVault()
        original = tmp_path / "config.yml"
        original.write_text("good: true")
        await vault.create_backup(original)
        original.write_text("good: false")

        restored = await vault.restore_backup(original)

        assert restored == original
        assert original.read_text() == "good: true"
        assert vault.get_backup(original) is None
        assert not (tmp_path / ".backups").exists()

    @pytest.mark.asyncio
    async def test_restore_recreates_deleted_directory(self, tmp_path: Path) -> None:
        vault = BackupVault()
        tree = tmp_path / "pkg"
        tree.mkdir()
        (tree / "mod.py").write_text("x = 1")
        await vault.create_backup(tree)
        (tree / "mod.py").unlink()
        tree.rmdir()

        await vault.restore_backup(tree)

        assert (tree / "mod.py").read_text() == "x = 1"

    @pytest.mark.asyncio
    async def test_restore_without_snapshot_fails(self, tmp_path: Path) -> None:
        with pytest.raises(OperationFailedError, match="No backup recorded"):
            await BackupVault().restore_backup(tmp_path / "never-backed-up")

    @pytest.mark.asyncio
    async def test_restore_of_pruned_snapshot_fails(self, tmp_path: Path) -> None:
        vault = BackupVault()
        original = tmp_path / "a.txt"
        original.write_text("a")
        backup = await vault.create_backup(original)
        backup.unlink()

        with pytest.raises(OperationFailedError):
            await vault.restore_backup(original)

        assert original.read_text() == "a"


class TestFindBackups:
    def test_orders_oldest_first_and_ignores_strangers(self, tmp_path: Path) -> None:
        original = tmp_path / "api.ts"
        older = get_backup_path(original, now=datetime(2023, 1, 1, tzinfo=UTC))
        newer = get_backup_path(original, now=datetime(2024, 1, 1, tzinfo=UTC))
        older.parent.mkdir()
        newer.write_text("new")
        older.write_text("old")
        (older.parent / "api.ts.notes").write_text("unrelated")
        (older.parent / "other.ts.20240101T000000.000000Z.abcdef01").write_text("x")

        found = BackupVault().find_backups(original)

        assert found == [older, newer]

    def test_no_backup_directory(self, tmp_path: Path) -> None:
        assert BackupVault().find_backups(tmp_path / "a.txt") == []
