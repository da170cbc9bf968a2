"""Custom exceptions for scaffold-fs.

This module defines the typed exceptions raised by the filesystem mutation
manager. Every error carries an optional human-actionable ``suggestion`` and
can be rendered to a dictionary for structured logs and CLI output.
"""

import errno
from pathlib import Path
from typing import Any


class ScaffoldFsError(Exception):
    """Base exception for all scaffold-fs errors.

    All custom exceptions should inherit from this base class to allow
    for broad exception handling when needed.

    Attributes:
        suggestion: Optional hint telling a human how to resolve the error
    """

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        self.suggestion = suggestion
        if suggestion:
            message = f"{message} ({suggestion})"
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for structured output."""
        result: dict[str, Any] = {
            "error": type(self).__name__,
            "message": str(self),
        }
        if self.suggestion is not None:
            result["suggestion"] = self.suggestion
        return result


class PathSecurityError(ScaffoldFsError):
    """Raised when a path resolves outside the allowed root.

    Attributes:
        path: The offending path as given by the caller
        root: The root the path was required to stay within
    """

    def __init__(self, path: str | Path, root: Path | None, reason: str) -> None:
        self.path = str(path)
        self.root = root
        self.reason = reason

        message = f"Rejected path '{path}': {reason}"
        if root is not None:
            message += f" (root: {root})"

        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["path"] = self.path
        result["root"] = str(self.root) if self.root is not None else None
        return result

    def __repr__(self) -> str:
        return f"PathSecurityError(path={self.path!r}, root={self.root!r})"


class DiskSpaceError(ScaffoldFsError):
    """Raised when the target volume lacks room for an operation.

    Attributes:
        path: Path whose volume was checked
        required: Bytes required, safety margin included
        available: Bytes available to unprivileged users
    """

    def __init__(self, path: Path, required: int, available: int) -> None:
        self.path = path
        self.required = required
        self.available = available

        super().__init__(
            f"Insufficient disk space for '{path}': required "
            f"{format_bytes(required)}, available {format_bytes(available)}",
            suggestion="free disk space or choose another output location",
        )

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result.update(
            {
                "path": str(self.path),
                "required": self.required,
                "available": self.available,
            }
        )
        return result

    def __repr__(self) -> str:
        return (
            f"DiskSpaceError(path={str(self.path)!r}, "
            f"required={self.required}, available={self.available})"
        )


class LockTimeoutError(ScaffoldFsError):
    """Raised when a lock could not be acquired within the timeout.

    A lock file left behind by a crashed process looks exactly like a live
    one, so this is never resolved automatically.

    Attributes:
        path: The contended path
        elapsed: Seconds spent waiting
    """

    def __init__(self, path: Path, elapsed: float) -> None:
        self.path = path
        self.elapsed = elapsed

        super().__init__(
            f"Timed out after {elapsed:.2f}s waiting for lock on '{path}'",
            suggestion=(
                f"if no other process is running, delete '{path}.lock' "
                "(scaffold-fs locks clear)"
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["path"] = str(self.path)
        result["elapsed"] = round(self.elapsed, 3)
        return result

    def __repr__(self) -> str:
        return f"LockTimeoutError(path={str(self.path)!r}, elapsed={self.elapsed:.3f})"


class LockOwnershipError(ScaffoldFsError):
    """Raised when releasing a lock with a token that does not own it."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot release lock on '{path}': {reason}")

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["path"] = str(self.path)
        return result


class OperationFailedError(ScaffoldFsError):
    """Raised when a filesystem primitive fails mid-operation.

    Attributes:
        kind: Operation kind that failed (e.g. 'write_file')
        path: Path the operation was acting on
        cause: Underlying exception, if any
    """

    def __init__(
        self,
        kind: str,
        path: Path,
        cause: BaseException | None = None,
        suggestion: str | None = None,
        message: str | None = None,
    ) -> None:
        self.kind = kind
        self.path = path
        self.cause = cause

        if message is None:
            message = f"{kind} failed for '{path}'"
            if cause is not None:
                message += f": {cause}"

        super().__init__(message, suggestion=suggestion)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["kind"] = self.kind
        result["path"] = str(self.path)
        if self.cause is not None:
            result["cause"] = repr(self.cause)
        return result

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind!r}, "
            f"path={str(self.path)!r}, cause={self.cause!r})"
        )


class FsPermissionError(OperationFailedError):
    """Raised when the OS denies access to a path."""

    pass


class TransactionError(ScaffoldFsError):
    """Raised when transaction control is used out of order."""

    pass


class RollbackError(ScaffoldFsError):
    """Aggregate raised when one or more undo steps failed.

    Attributes:
        failures: (path, error) pairs for every path needing manual attention
    """

    def __init__(self, failures: list[tuple[Path, BaseException]]) -> None:
        self.failures = failures
        paths = ", ".join(str(path) for path, _ in failures)
        super().__init__(
            f"Rollback could not restore {len(failures)} path(s): {paths}",
            suggestion="inspect these paths and their .backups snapshots manually",
        )

    @property
    def paths(self) -> list[Path]:
        return [path for path, _ in self.failures]

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["failures"] = [
            {"path": str(path), "error": str(err)} for path, err in self.failures
        ]
        return result


class CleanupError(ScaffoldFsError):
    """Aggregate raised when the cleanup sweep could not remove some paths."""

    def __init__(self, failures: list[tuple[Path, BaseException]]) -> None:
        self.failures = failures
        paths = ", ".join(str(path) for path, _ in failures)
        super().__init__(f"Cleanup could not remove {len(failures)} path(s): {paths}")

    @property
    def paths(self) -> list[Path]:
        return [path for path, _ in self.failures]


_SUGGESTIONS: dict[int, str] = {
    errno.EACCES: "check permissions or elevate privileges",
    errno.EPERM: "check permissions or elevate privileges",
    errno.ENOSPC: "free disk space",
    errno.ENAMETOOLONG: "use a shorter output path",
    errno.EBUSY: "close programs holding the file and retry",
    errno.EMFILE: "lower the concurrency limit for batched writes",
    errno.ELOOP: "check for symbolic link loops",
    errno.EROFS: "choose a writable output location",
    errno.EXDEV: "source and destination are on different volumes",
    errno.ENOENT: "check that the path exists",
}


def suggestion_for(exc: BaseException) -> str | None:
    """Return a human-actionable hint for a recognizable OS error."""
    if isinstance(exc, OSError) and exc.errno is not None:
        return _SUGGESTIONS.get(exc.errno)
    return None


def wrap_os_error(kind: str, path: Path, exc: OSError) -> OperationFailedError:
    """Convert an OSError into a typed error with a suggestion.

    Args:
        kind: Operation kind that failed
        path: Path the operation was acting on
        exc: The original error

    Returns:
        FsPermissionError for access denials, OperationFailedError otherwise
    """
    suggestion = suggestion_for(exc)
    if isinstance(exc, PermissionError) or exc.errno in (errno.EACCES, errno.EPERM):
        return FsPermissionError(
            kind,
            path,
            exc,
            suggestion=suggestion or "check permissions or elevate privileges",
        )
    return OperationFailedError(kind, path, exc, suggestion=suggestion)


def format_bytes(size: int) -> str:
    """Render a byte count the way ``df -h`` would."""
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB", "TiB"):
        if abs(value) < 1024 or unit == "TiB":
            if unit == "B":
                return f"{int(value)} B"
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TiB"
