"""Path utilities for filesystem operations.

This module provides path normalization, root containment checks and the
naming helpers for the sibling files (temporaries, locks) that the engine
creates next to its targets.
"""

import os
import unicodedata
import uuid
from pathlib import Path

from scaffold_fs.core.constants import LOCK_SUFFIX, TEMP_SUFFIX
from scaffold_fs.core.errors import PathSecurityError


def normalize_path(
    path: str | Path,
    root: Path | None = None,
    *,
    follow_symlinks: bool = True,
) -> Path:
    """Normalize a path for consistent handling.

    Args:
        path: Path to normalize
        root: Optional root directory for relative paths
        follow_symlinks: If False, the final component is kept as-is so a
            symlink is addressed rather than its target

    Returns:
        Normalized absolute path
    """
    if not isinstance(path, Path):
        path = Path(path)

    path = path.expanduser()
    if not path.is_absolute():
        base = root if root is not None else Path.cwd()
        path = base / path

    if follow_symlinks or path.name in ("", ".", ".."):
        path = path.resolve()
    else:
        path = path.parent.resolve() / path.name

    # Normalize Unicode (NFC on macOS, NFD handling)
    if os.name == "posix":
        path = Path(unicodedata.normalize("NFC", str(path)))

    return path


def path_depth(path: Path) -> int:
    """Number of segments in a path, used to order deepest-first sweeps."""
    return len(path.parts)


def lock_path_for(path: Path) -> Path:
    """Lock file guarding ``path``."""
    return path.with_name(path.name + LOCK_SUFFIX)


def temp_path_for(path: Path) -> Path:
    """Unique hidden sibling used as the staging file for an atomic write."""
    return path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}{TEMP_SUFFIX}")


def missing_ancestors(path: Path) -> list[Path]:
    """Return ``path`` and its ancestors that do not exist, shallowest first."""
    missing: list[Path] = []
    current = path
    while not current.exists() and not current.is_symlink():
        missing.append(current)
        if current.parent == current:
            break
        current = current.parent
    return list(reversed(missing))


def nearest_existing(path: Path) -> Path:
    """Closest existing ancestor of ``path`` (``path`` itself if present)."""
    current = path
    while not current.exists():
        if current.parent == current:
            break
        current = current.parent
    return current


class PathGuard:
    """Normalizes paths and keeps write targets inside a root directory.

    With no root configured every path is accepted after normalization;
    malformed paths (null bytes, empty strings) are always rejected.
    """

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = normalize_path(root) if root is not None else None

    def resolve(self, path: str | Path, *, follow_symlinks: bool = True) -> Path:
        """Normalize ``path`` and check it stays within the root.

        Relative paths are taken relative to the root when one is set.

        Raises:
            PathSecurityError: If the path is malformed or escapes the root
        """
        raw = str(path)
        if not raw:
            raise PathSecurityError(raw, self.root, "empty path")
        if "\0" in raw:
            raise PathSecurityError(raw, self.root, "path contains a null byte")

        resolved = normalize_path(path, self.root, follow_symlinks=follow_symlinks)

        if self.root is not None and not self.contains(resolved):
            raise PathSecurityError(raw, self.root, "resolves outside the root")

        return resolved

    def normalize(self, path: str | Path) -> Path:
        """Normalize a read-only path (e.g. a template source) without the
        root containment check."""
        raw = str(path)
        if not raw or "\0" in raw:
            raise PathSecurityError(raw, self.root, "malformed path")
        return normalize_path(path, self.root)

    def contains(self, path: Path) -> bool:
        if self.root is None:
            return True
        return path == self.root or self.root in path.parents

    def join(self, *parts: str) -> Path:
        """Resolve untrusted relative segments under the root.

        Used for template override names and generated file names, which must
        never be absolute or climb out with ``..``.

        Raises:
            PathSecurityError: On absolute segments or escapes
        """
        if self.root is None:
            raise PathSecurityError("/".join(parts), None, "no root configured")

        for part in parts:
            if Path(part).is_absolute() or Path(part).drive:
                raise PathSecurityError(part, self.root, "absolute segment")

        return self.resolve(self.root.joinpath(*parts))
