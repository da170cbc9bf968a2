"""CLI commands for inspecting and clearing advisory locks."""

from __future__ import annotations

import importlib
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

if TYPE_CHECKING:  # pragma: no cover - typing only
    import typer
    from typer import Typer as TyperType
else:  # pragma: no cover - runtime fallback for typing
    typer = importlib.import_module("typer")
    TyperType = Any

from scaffold_fs.fs.locks import read_lock_token
from scaffold_fs.fs.paths import lock_path_for, normalize_path

app: TyperType = typer.Typer(help="Inspect and clear advisory lock files.")

PathArgument = Annotated[
    Path,
    typer.Argument(help="Path guarded by the lock (not the .lock file itself)."),
]
YesFlag = Annotated[
    bool,
    typer.Option("--yes", "-y", help="Delete without asking for confirmation."),
]


def status(path: PathArgument) -> None:
    """Show whether PATH is locked and by which token."""

    lock_path = lock_path_for(normalize_path(path))
    if not lock_path.exists():
        typer.echo(f"Not locked: {path}")
        return

    token = read_lock_token(lock_path)
    since = datetime.fromtimestamp(lock_path.stat().st_mtime, tz=UTC)
    typer.secho(
        f"Locked: {lock_path} (token {token[:8]}, since {since.isoformat()})",
        fg=typer.colors.YELLOW,
    )


def clear(path: PathArgument, yes: YesFlag = False) -> None:
    """Delete a stale lock file left behind by a crashed process."""

    lock_path = lock_path_for(normalize_path(path))
    if not lock_path.exists():
        typer.secho(f"No lock file at {lock_path}", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)

    if not yes:
        typer.confirm(
            f"Delete {lock_path}? Only do this if no other process holds it.",
            abort=True,
        )

    lock_path.unlink()
    typer.secho(f"Removed stale lock {lock_path}", fg=typer.colors.GREEN)


app.command("status")(status)
app.command("clear")(clear)
