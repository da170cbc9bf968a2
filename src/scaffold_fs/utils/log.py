"""Logging setup for scaffold-fs.

Every module logs through ``structlog.get_logger(__name__)``. This module
configures structlog once for command-line use; library callers that already
configure structlog can skip it.

Environment:
    SCAFFOLD_FS_DEBUG: Set to '1', 'true', 'yes' (case-insensitive) to enable
                       debug events. Any other value or unset hides them.

Example:
    $ SCAFFOLD_FS_DEBUG=1 scaffold-fs backups list out/api.ts
"""

import logging
import os
import sys

import structlog

from scaffold_fs.core.constants import ENV_DEBUG, TRUTHY_VALUES


def debug_enabled() -> bool:
    """Return True if SCAFFOLD_FS_DEBUG asks for debug output."""
    return os.environ.get(ENV_DEBUG, "").lower() in TRUTHY_VALUES


def configure_logging(debug: bool | None = None) -> None:
    """Configure structlog for console output on stderr.

    Args:
        debug: Force debug level on or off; None reads SCAFFOLD_FS_DEBUG
    """
    if debug is None:
        debug = debug_enabled()

    level = logging.DEBUG if debug else logging.INFO
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
