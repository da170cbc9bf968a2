"""Core constants for scaffold-fs.

This module defines constants used throughout the package:
- On-disk layout for backups, locks and temporary files
- Default safety margins, retry and polling values
- Environment variable names read by the configuration layer
"""

# ============================================================================
# On-disk layout
# ============================================================================

#: Sibling directory that holds snapshots of overwritten or removed paths
BACKUP_DIR_NAME: str = ".backups"

#: Suffix appended to a path to form its lock file
LOCK_SUFFIX: str = ".lock"

#: Suffix of the sibling temporary file used by atomic writes
TEMP_SUFFIX: str = ".tmp"

#: Length of the short hash embedded in backup names
BACKUP_HASH_LENGTH: int = 8

#: strftime pattern for backup timestamps (ISO 8601 basic format, UTC)
BACKUP_TIMESTAMP_FORMAT: str = "%Y%m%dT%H%M%S.%fZ"

# ============================================================================
# Defaults
# ============================================================================

#: Free space that must remain on a volume after a write (100 MiB)
DEFAULT_DISK_SPACE_MARGIN: int = 100 * 1024 * 1024

DEFAULT_RETRIES: int = 3

#: Base delay for linear backoff between retries, in seconds
DEFAULT_RETRY_DELAY: float = 0.05

DEFAULT_LOCK_TIMEOUT: float = 30.0

#: Interval between lock-file polls, in seconds
DEFAULT_LOCK_POLL_INTERVAL: float = 0.05

#: Maximum concurrent writes for batched generation
DEFAULT_CONCURRENCY: int = 8

DEFAULT_DIR_MODE: int = 0o755

# ============================================================================
# Environment
# ============================================================================

ENV_ROOT: str = "SCAFFOLD_FS_ROOT"
ENV_DRY_RUN: str = "SCAFFOLD_FS_DRY_RUN"
ENV_BACKUP: str = "SCAFFOLD_FS_BACKUP"
ENV_OVERWRITE: str = "SCAFFOLD_FS_OVERWRITE"
ENV_DISK_MARGIN: str = "SCAFFOLD_FS_DISK_MARGIN"
ENV_LOCK_TIMEOUT: str = "SCAFFOLD_FS_LOCK_TIMEOUT"
ENV_CONCURRENCY: str = "SCAFFOLD_FS_CONCURRENCY"
ENV_DEBUG: str = "SCAFFOLD_FS_DEBUG"

#: Values accepted as "true" for boolean environment variables
TRUTHY_VALUES: tuple[str, ...] = ("1", "true", "yes")
