"""Root command for the scaffold-fs recovery CLI."""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING, Annotated, Any

if TYPE_CHECKING:  # pragma: no cover - typing only
    import typer
    from typer import Typer as TyperType
else:  # pragma: no cover - runtime fallback for typing
    typer = importlib.import_module("typer")
    TyperType = Any

from scaffold_fs.cli.backups import app as backups_app
from scaffold_fs.cli.locks import app as locks_app
from scaffold_fs.utils.log import configure_logging

app: TyperType = typer.Typer(
    help="Recover from interrupted generation runs: stale locks and backups."
)

DebugFlag = Annotated[
    bool,
    typer.Option("--debug", help="Show debug log events."),
]


def main(debug: DebugFlag = False) -> None:
    """Configure logging before any subcommand runs."""

    configure_logging(debug=True if debug else None)


app.callback()(main)
app.add_typer(locks_app, name="locks")
app.add_typer(backups_app, name="backups")
