"""CLI commands for listing and restoring backups on disk."""

from __future__ import annotations

import asyncio
import importlib
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

if TYPE_CHECKING:  # pragma: no cover - typing only
    import typer
    from typer import Typer as TyperType
else:  # pragma: no cover - runtime fallback for typing
    typer = importlib.import_module("typer")
    TyperType = Any

from scaffold_fs.core.errors import ScaffoldFsError
from scaffold_fs.fs.backups import BackupVault, backup_dir_for
from scaffold_fs.fs.paths import normalize_path

app: TyperType = typer.Typer(help="List and restore snapshots in .backups directories.")

PathArgument = Annotated[
    Path,
    typer.Argument(help="Original path whose snapshots to use."),
]
BackupOption = Annotated[
    Path | None,
    typer.Option(
        "--backup",
        help="Snapshot to restore (name inside .backups or a full path). "
        "Defaults to the newest.",
    ),
]


def list_backups(path: PathArgument) -> None:
    """List snapshots of PATH, oldest first."""

    target = normalize_path(path, follow_symlinks=False)
    found = BackupVault().find_backups(target)
    if not found:
        typer.echo(f"No backups found for {target}")
        return

    for entry in found:
        typer.echo(str(entry))


def restore(path: PathArgument, backup: BackupOption = None) -> None:
    """Move a snapshot back onto PATH, replacing what is there."""

    target = normalize_path(path, follow_symlinks=False)
    vault = BackupVault()

    if backup is None:
        found = vault.find_backups(target)
        if not found:
            typer.secho(f"No backups found for {target}", err=True, fg=typer.colors.RED)
            raise typer.Exit(code=1)
        chosen = found[-1]
    elif backup.is_absolute():
        chosen = backup
    else:
        chosen = backup_dir_for(target) / backup

    try:
        asyncio.run(vault.restore_backup(target, chosen))
    except ScaffoldFsError as exc:
        typer.secho(f"Restore failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc

    typer.secho(f"Restored {target} from {chosen}", fg=typer.colors.GREEN)


app.command("list")(list_backups)
app.command("restore")(restore)
