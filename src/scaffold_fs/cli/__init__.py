"""CLI entrypoints for scaffold-fs."""

from scaffold_fs.cli.backups import app as backups_app
from scaffold_fs.cli.locks import app as locks_app
from scaffold_fs.cli.main import app

__all__ = ["app", "backups_app", "locks_app"]
