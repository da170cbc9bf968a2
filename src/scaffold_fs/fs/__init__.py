"""Filesystem operations for materializing generated output.

This module provides the transactional file-operation engine together with
its collaborators: path guarding, disk space probing, advisory locks,
backups and the rollback journal.
"""

from scaffold_fs.fs.backups import BackupVault
from scaffold_fs.fs.disk_space import DiskSpaceProbe, DiskUsage, select_backend
from scaffold_fs.fs.fs_ops import FileOpsEngine
from scaffold_fs.fs.journal import (
    OperationJournal,
    OperationKind,
    OperationRecord,
    Transaction,
    TransactionState,
)
from scaffold_fs.fs.locks import Lock, LockTable
from scaffold_fs.fs.paths import PathGuard, normalize_path

__all__ = [
    "BackupVault",
    "DiskSpaceProbe",
    "DiskUsage",
    "FileOpsEngine",
    "Lock",
    "LockTable",
    "OperationJournal",
    "OperationKind",
    "OperationRecord",
    "PathGuard",
    "Transaction",
    "TransactionState",
    "normalize_path",
    "select_backend",
]
