"""Tests for logging setup.

Debug events are hidden unless SCAFFOLD_FS_DEBUG is set or debug is forced.
"""

import pytest
import structlog

from scaffold_fs.utils.log import configure_logging, debug_enabled


@pytest.mark.parametrize("value", ["1", "true", "TRUE", "yes"])
def test_debug_enabled_truthy(monkeypatch: pytest.MonkeyPatch, value: str) -> None:
    monkeypatch.setenv("SCAFFOLD_FS_DEBUG", value)

    assert debug_enabled() is True


@pytest.mark.parametrize("value", ["", "0", "false", "no", "random"])
def test_debug_enabled_falsy(monkeypatch: pytest.MonkeyPatch, value: str) -> None:
    monkeypatch.setenv("SCAFFOLD_FS_DEBUG", value)

    assert debug_enabled() is False


def test_debug_hidden_by_default(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging()
    logger = structlog.get_logger("scaffold_fs.test")

    logger.debug("fs.lock.acquired", path="/x")
    logger.info("fs.write_file", path="/y")

    err = capsys.readouterr().err
    assert "fs.lock.acquired" not in err
    assert "fs.write_file" in err


def test_debug_forced_on(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(debug=True)

    structlog.get_logger("scaffold_fs.test").debug("fs.lock.acquired", path="/x")

    assert "fs.lock.acquired" in capsys.readouterr().err


def test_env_var_enables_debug(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("SCAFFOLD_FS_DEBUG", "1")
    configure_logging()

    structlog.get_logger("scaffold_fs.test").debug("fs.backup.created")

    assert "fs.backup.created" in capsys.readouterr().err
