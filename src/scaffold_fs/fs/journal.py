"""In-memory operation journal backing transaction rollback.

Each mutating primitive issued while a transaction is active appends one
immutable ``OperationRecord`` carrying what rollback needs to undo it. The
journal lives only as long as its transaction and is never written to disk,
so it does not survive a process restart.
"""

import uuid
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any


class OperationKind(str, Enum):
    """Mutating primitives that can be journaled."""

    CREATE_DIR = "create_dir"
    WRITE_FILE = "write_file"
    COPY = "copy"
    MOVE = "move"
    REMOVE = "remove"
    SYMLINK = "symlink"
    SET_PERMISSIONS = "set_permissions"


class TransactionState(str, Enum):
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class OperationRecord:
    """One journaled mutation.

    Attributes:
        kind: Which primitive ran
        primary_path: Path created, written, removed, or the move/copy source
        secondary_path: Copy/move destination or symlink location
        transaction_id: Owning transaction
        timestamp: When the mutation completed (UTC)
        backup_path: Snapshot of what the operation overwrote or removed
        created_paths: Directories created by create_dir, shallowest first
        previous_modes: Mode bits before set_permissions, per path
    """

    kind: OperationKind
    primary_path: Path
    transaction_id: str
    secondary_path: Path | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    backup_path: Path | None = None
    created_paths: tuple[Path, ...] = ()
    previous_modes: tuple[tuple[Path, int], ...] = ()

    @property
    def target(self) -> Path:
        """Path whose state the operation changed."""
        return self.secondary_path or self.primary_path

    def to_dict(self) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "ts": self.timestamp.isoformat(),
            "op": self.kind.value,
            "path": str(self.primary_path),
            "transaction_id": self.transaction_id,
        }
        if self.secondary_path is not None:
            entry["dst"] = str(self.secondary_path)
        if self.backup_path is not None:
            entry["backup_path"] = str(self.backup_path)
        if self.created_paths:
            entry["created"] = [str(p) for p in self.created_paths]
        if self.previous_modes:
            entry["previous_modes"] = {str(p): oct(m) for p, m in self.previous_modes}
        return entry


class OperationJournal:
    """Append-only, ordered log of a transaction's operations."""

    def __init__(self) -> None:
        self._records: list[OperationRecord] = []

    def append(self, record: OperationRecord) -> None:
        self._records.append(record)

    @property
    def records(self) -> tuple[OperationRecord, ...]:
        return tuple(self._records)

    def reversed(self) -> Iterator[OperationRecord]:
        """Records newest first, the order rollback undoes them in."""
        return reversed(list(self._records))

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


@dataclass
class Transaction:
    """A bounded group of operations that can be undone as a unit."""

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    journal: OperationJournal = field(default_factory=OperationJournal)
    state: TransactionState = TransactionState.ACTIVE
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def operations(self) -> tuple[OperationRecord, ...]:
        return self.journal.records
