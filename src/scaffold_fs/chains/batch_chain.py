"""Batch writer for generated files.

This module provides the BatchWriteChain class that writes a whole set of
generated files through a FileOpsEngine with bounded concurrency, optional
all-or-nothing semantics, structured logging and Rich console output.
"""

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import anyio
import structlog
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
)

from scaffold_fs.core.errors import RollbackError, ScaffoldFsError
from scaffold_fs.fs.fs_ops import FileOpsEngine

Mode = Literal["transactional", "continue_on_error", "dry_run"]


@dataclass
class BatchOptions:
    """Options for batch writes.

    Attributes:
        mode: transactional (roll everything back on the first failure),
            continue_on_error, or dry_run
        concurrency: Maximum writes in flight (engine default if None)
        verbose: Print one line per file
    """

    mode: Mode = "transactional"
    concurrency: int | None = None
    verbose: bool = False


@dataclass
class WriteOutcome:
    """Result of writing one file."""

    path: Path
    status: Literal["written", "skipped", "failed", "noop"]
    reason: str | None = None


@dataclass
class BatchReport:
    """Summary report of a batch write."""

    total_items: int
    written_count: int
    skipped_count: int
    failed_count: int
    report_id: str
    rolled_back: bool = False
    outcomes: list[WriteOutcome] = field(default_factory=list)
    errors: list[str] | None = None


class BatchWriteChain:
    """Writes many generated files concurrently through one engine."""

    def __init__(
        self,
        engine: FileOpsEngine,
        logger: Any = None,
        ui: Console | None = None,
    ) -> None:
        """Initialize batch chain.

        Args:
            engine: Engine performing the writes
            logger: Optional structlog logger instance
            ui: Optional Rich console for output
        """
        self._engine = engine
        self._logger = logger or structlog.get_logger(__name__)
        self._ui = ui or Console()

    async def write_all(
        self,
        files: Mapping[str | Path, str | bytes],
        opts: BatchOptions | None = None,
    ) -> BatchReport:
        """Write every ``path -> content`` pair in ``files``.

        In transactional mode a failed write stops new writes from starting
        and every completed write is rolled back once in-flight ones finish.

        Returns:
            BatchReport with operation summary
        """
        opts = opts or BatchOptions()
        report_id = str(uuid.uuid4())
        concurrency = opts.concurrency or self._engine.options.concurrency
        overrides = {"dry_run": True} if opts.mode == "dry_run" else {}
        transactional = opts.mode == "transactional"

        bound_logger = self._logger.bind(
            report_id=report_id,
            mode=opts.mode,
            root=str(self._engine.root) if self._engine.root else None,
            concurrency=concurrency,
        )

        limiter = anyio.CapacityLimiter(concurrency)
        outcomes: list[WriteOutcome] = []
        failed = False

        if transactional:
            self._engine.begin_transaction()

        with self._create_progress() as progress:
            task = progress.add_task(f"Write — {opts.mode}", total=len(files))

            async def write_one(path: str | Path, content: str | bytes) -> None:
                nonlocal failed
                async with limiter:
                    if transactional and failed:
                        outcome = WriteOutcome(Path(path), "skipped", "batch aborted")
                    else:
                        try:
                            resolved = await self._engine.write_file(
                                path, content, **overrides
                            )
                        except ScaffoldFsError as e:
                            failed = True
                            outcome = WriteOutcome(Path(path), "failed", str(e))
                        else:
                            status = "noop" if opts.mode == "dry_run" else "written"
                            outcome = WriteOutcome(resolved, status)

                outcomes.append(outcome)
                progress.advance(task)
                if opts.verbose or outcome.status == "failed":
                    self._show_item_result(outcome)

            try:
                async with anyio.create_task_group() as tg:
                    for path, content in files.items():
                        tg.start_soon(write_one, path, content)
            except BaseException:
                if transactional:
                    with anyio.CancelScope(shield=True):
                        await self._engine.rollback_transaction()
                raise

        errors = [f"{o.path}: {o.reason}" for o in outcomes if o.status == "failed"]
        rolled_back = False

        if transactional:
            if failed:
                self._ui.print("🔄 [yellow]Rolling back...[/yellow]")
                try:
                    await self._engine.rollback_transaction()
                except RollbackError as e:
                    errors.extend(f"rollback: {path}: {err}" for path, err in e.failures)
                    self._ui.print(f"❌ [red]Rollback incomplete[/red] ({e})")
                else:
                    self._ui.print("✅ [green]Rollback completed[/green]")
                rolled_back = True
            else:
                self._engine.commit_transaction()

        report = BatchReport(
            total_items=len(files),
            written_count=sum(1 for o in outcomes if o.status in ("written", "noop")),
            skipped_count=sum(1 for o in outcomes if o.status == "skipped"),
            failed_count=sum(1 for o in outcomes if o.status == "failed"),
            report_id=report_id,
            rolled_back=rolled_back,
            outcomes=outcomes,
            errors=errors if errors else None,
        )

        bound_logger.info(
            "batch.summary",
            total_items=report.total_items,
            written_count=report.written_count,
            skipped_count=report.skipped_count,
            failed_count=report.failed_count,
            rolled_back=report.rolled_back,
        )
        return report

    def _create_progress(self) -> Progress:
        """Create Rich progress display."""
        return Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=self._ui,
            transient=False,
        )

    def _show_item_result(self, outcome: WriteOutcome) -> None:
        """Show Rich output for item result."""
        if outcome.status == "written":
            self._ui.print(f"✅ [green]WROTE[/green] {outcome.path}")
        elif outcome.status == "skipped":
            self._ui.print(f"⚠️ [yellow]SKIPPED[/yellow] {outcome.path}")
        elif outcome.status == "failed":
            self._ui.print(f"❌ [red]FAILED[/red] {outcome.path} ({outcome.reason})")
        elif outcome.status == "noop":
            self._ui.print(f"🔍 [blue]NOOP[/blue] {outcome.path} (dry run)")
