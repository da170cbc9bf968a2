"""Tests for the operation journal."""

from pathlib import Path

from scaffold_fs.fs.journal import (
    OperationJournal,
    OperationKind,
    OperationRecord,
    Transaction,
    TransactionState,
)


def _record(kind: OperationKind, path: str, **fields) -> OperationRecord:
    return OperationRecord(
        kind=kind, primary_path=Path(path), transaction_id="t1", **fields
    )


def test_reversed_yields_newest_first() -> None:
    journal = OperationJournal()
    first = _record(OperationKind.CREATE_DIR, "/out")
    second = _record(OperationKind.WRITE_FILE, "/out/a.json")
    journal.append(first)
    journal.append(second)

    assert list(journal.reversed()) == [second, first]
    assert journal.records == (first, second)
    assert len(journal) == 2


def test_clear_empties_journal() -> None:
    journal = OperationJournal()
    journal.append(_record(OperationKind.REMOVE, "/x"))

    journal.clear()

    assert len(journal) == 0


def test_target_prefers_secondary_path() -> None:
    move = _record(OperationKind.MOVE, "/a", secondary_path=Path("/b"))
    write = _record(OperationKind.WRITE_FILE, "/c")

    assert move.target == Path("/b")
    assert write.target == Path("/c")


def test_to_dict_includes_only_populated_fields() -> None:
    record = _record(
        OperationKind.COPY,
        "/src",
        secondary_path=Path("/dst"),
        backup_path=Path("/.backups/dst.20240101T000000.000000Z.abcdef01"),
    )

    entry = record.to_dict()

    assert entry["op"] == "copy"
    assert entry["dst"] == "/dst"
    assert entry["transaction_id"] == "t1"
    assert "backup_path" in entry
    assert "created" not in entry
    assert "previous_modes" not in entry


def test_new_transaction_is_active_and_unique() -> None:
    a, b = Transaction(), Transaction()

    assert a.state is TransactionState.ACTIVE
    assert a.id != b.id
    assert a.operations == ()
