"""Tests for FileOpsOptions and root resolution."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from scaffold_fs.core.config import FileOpsOptions, resolve_root
from scaffold_fs.core.constants import DEFAULT_DISK_SPACE_MARGIN


class TestFileOpsOptions:
    def test_defaults(self) -> None:
        opts = FileOpsOptions()

        assert opts.dry_run is False
        assert opts.backup is True
        assert opts.atomic is True
        assert opts.overwrite is True
        assert opts.check_disk_space is True
        assert opts.disk_space_margin == DEFAULT_DISK_SPACE_MARGIN == 100 * 1024 * 1024
        assert opts.dir_mode == 0o755
        assert opts.file_mode is None

    def test_merged_overrides_without_mutating(self) -> None:
        base = FileOpsOptions()

        merged = base.merged(dry_run=True, disk_space_margin=0)

        assert merged.dry_run is True
        assert merged.disk_space_margin == 0
        assert base.dry_run is False

    def test_merged_without_overrides_is_identity(self) -> None:
        base = FileOpsOptions()

        assert base.merged() is base

    def test_unknown_option_rejected(self) -> None:
        with pytest.raises(ValidationError):
            FileOpsOptions().merged(dryrun=True)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"disk_space_margin": -1},
            {"retries": 0},
            {"concurrency": 0},
            {"file_mode": 0o10000},
        ],
    )
    def test_invalid_values_rejected(self, overrides: dict) -> None:
        with pytest.raises(ValidationError):
            FileOpsOptions(**overrides)

    def test_frozen(self) -> None:
        with pytest.raises(ValidationError):
            FileOpsOptions().dry_run = True  # type: ignore[misc]


class TestFromEnv:
    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SCAFFOLD_FS_DRY_RUN", "yes")
        monkeypatch.setenv("SCAFFOLD_FS_BACKUP", "0")
        monkeypatch.setenv("SCAFFOLD_FS_DISK_MARGIN", "2048")
        monkeypatch.setenv("SCAFFOLD_FS_LOCK_TIMEOUT", "2.5")
        monkeypatch.setenv("SCAFFOLD_FS_CONCURRENCY", "4")

        opts = FileOpsOptions.from_env()

        assert opts.dry_run is True
        assert opts.backup is False
        assert opts.disk_space_margin == 2048
        assert opts.lock_timeout == 2.5
        assert opts.concurrency == 4

    def test_explicit_overrides_win(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SCAFFOLD_FS_DRY_RUN", "true")

        assert FileOpsOptions.from_env(dry_run=False).dry_run is False

    def test_empty_environment_gives_defaults(self) -> None:
        assert FileOpsOptions.from_env() == FileOpsOptions()


class TestResolveRoot:
    def test_explicit_root(self, tmp_path: Path) -> None:
        assert resolve_root(tmp_path / "a" / "..") == tmp_path

    def test_env_root(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SCAFFOLD_FS_ROOT", str(tmp_path))

        assert resolve_root() == tmp_path

    def test_unrestricted_when_unset(self) -> None:
        assert resolve_root() is None
