"""Options for filesystem operations.

Instance-level defaults live in a ``FileOpsOptions`` model held by the engine;
every primitive merges per-call overrides over those defaults. Values can be
seeded from ``SCAFFOLD_FS_*`` environment variables so the command-line
surface of a generator only has to export them.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from scaffold_fs.core.constants import (
    DEFAULT_CONCURRENCY,
    DEFAULT_DIR_MODE,
    DEFAULT_DISK_SPACE_MARGIN,
    DEFAULT_LOCK_TIMEOUT,
    DEFAULT_RETRIES,
    DEFAULT_RETRY_DELAY,
    ENV_BACKUP,
    ENV_CONCURRENCY,
    ENV_DISK_MARGIN,
    ENV_DRY_RUN,
    ENV_LOCK_TIMEOUT,
    ENV_OVERWRITE,
    ENV_ROOT,
    TRUTHY_VALUES,
)

__all__ = ["FileOpsOptions", "resolve_root"]


class FileOpsOptions(BaseModel):
    """Behavioral switches shared by every filesystem primitive.

    Attributes:
        dry_run: Validate and report without mutating storage
        backup: Snapshot paths before overwriting or removing them
        atomic: Write through a sibling temp file and rename
        overwrite: Allow replacing an existing destination
        check_disk_space: Probe free space before writes of known size
        disk_space_margin: Bytes that must stay free after a write
        file_mode: Permission bits for newly written files (None keeps umask)
        dir_mode: Permission bits for newly created directories
        recursive: Recurse into directory trees for set_permissions
        preserve_metadata: Keep timestamps and mode bits when copying
        encoding: Encoding used when content is given as text
        retries: Attempts for directory creation races
        retry_delay: Base delay for linear backoff, in seconds
        lock_timeout: Default seconds to wait for a lock
        concurrency: Maximum concurrent writes for batched generation
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    dry_run: bool = False
    backup: bool = True
    atomic: bool = True
    overwrite: bool = True
    check_disk_space: bool = True
    disk_space_margin: int = Field(default=DEFAULT_DISK_SPACE_MARGIN, ge=0)
    file_mode: int | None = None
    dir_mode: int = DEFAULT_DIR_MODE
    recursive: bool = False
    preserve_metadata: bool = True
    encoding: str = "utf-8"
    retries: int = Field(default=DEFAULT_RETRIES, ge=1)
    retry_delay: float = Field(default=DEFAULT_RETRY_DELAY, ge=0)
    lock_timeout: float = Field(default=DEFAULT_LOCK_TIMEOUT, ge=0)
    concurrency: int = Field(default=DEFAULT_CONCURRENCY, ge=1)

    @field_validator("file_mode", "dir_mode")
    @classmethod
    def validate_mode(cls, value: int | None) -> int | None:
        if value is not None and not 0 <= value <= 0o7777:
            raise ValueError(f"permission bits out of range: {oct(value)}")
        return value

    def merged(self, **overrides: Any) -> FileOpsOptions:
        """Return a validated copy with ``overrides`` applied.

        Raises:
            pydantic.ValidationError: On unknown option names or bad values
        """
        if not overrides:
            return self
        return FileOpsOptions.model_validate({**self.model_dump(), **overrides})

    @classmethod
    def from_env(cls, **overrides: Any) -> FileOpsOptions:
        """Build options from ``SCAFFOLD_FS_*`` environment variables.

        Explicit ``overrides`` win over the environment.
        """
        values: dict[str, Any] = {}

        for env_var, field in (
            (ENV_DRY_RUN, "dry_run"),
            (ENV_BACKUP, "backup"),
            (ENV_OVERWRITE, "overwrite"),
        ):
            raw = os.getenv(env_var)
            if raw is not None:
                values[field] = raw.strip().lower() in TRUTHY_VALUES

        margin = os.getenv(ENV_DISK_MARGIN)
        if margin:
            values["disk_space_margin"] = int(margin)

        lock_timeout = os.getenv(ENV_LOCK_TIMEOUT)
        if lock_timeout:
            values["lock_timeout"] = float(lock_timeout)

        concurrency = os.getenv(ENV_CONCURRENCY)
        if concurrency:
            values["concurrency"] = int(concurrency)

        values.update(overrides)
        return cls.model_validate(values)


def resolve_root(root: str | Path | None = None) -> Path | None:
    """Resolve the directory every write target must stay within.

    Args:
        root: Optional explicit root; falls back to ``SCAFFOLD_FS_ROOT``

    Returns:
        Absolute root path, or None when writes are unrestricted
    """

    chosen: str | Path | None = root
    env_root = os.getenv(ENV_ROOT)
    if chosen is None and env_root:
        chosen = env_root
    if chosen is None:
        return None

    return Path(chosen).expanduser().resolve()
