"""Progress and error reporting for the upload pipeline.

The orchestrator and retry controller only talk to a :class:`ProgressSink`.
:class:`ConsoleReporter` is the Rich implementation used by the CLI: one
line per notable event, plus an optional pipeline progress bar.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

if TYPE_CHECKING:
    from junit_uploader.models import BatchResult, Payload

ICON_FAILED = "❌"
ICON_SUCCESS = "✅"
ICON_WARNING = "⚠️"


class ProgressSink(Protocol):
    """Append-only receiver of upload events."""

    def command_info(
        self, base_paths: Sequence[str], service: str, concurrency: int, dry_run: bool
    ) -> None: ...

    def invalid_file(self, path: str, message: str) -> None: ...

    def uploading(self, payload: Payload) -> None: ...

    def dry_run_upload(self, payload: Payload) -> None: ...

    def retried_upload(self, payload: Payload, message: str, attempt: int) -> None: ...

    def failed_upload(self, payload: Payload, message: str) -> None: ...

    def file_uploaded(self, payload: Payload) -> None: ...

    def batch_summary(self, result: BatchResult) -> None: ...


def _path_label(path: str) -> str:
    return f"\\[[bold dim]{escape(path)}[/bold dim]]"


class ConsoleReporter:
    """Rich console implementation of :class:`ProgressSink`.

    Usage::

        reporter = ConsoleReporter(Console())
        reporter.command_info(["reports/"], "my-service", 20, False)
        reporter.start(total=len(payloads))
        try:
            result = await orchestrator.run(payloads)
        finally:
            reporter.stop()

    Args:
        console: Rich console to write to.
        show_progress: Draw a pipeline progress bar between start and stop.
    """

    def __init__(self, console: Console | None = None, show_progress: bool = True) -> None:
        self._console = console or Console()
        self._show_progress = show_progress
        self._progress: Progress | None = None
        self._task: TaskID | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, total: int) -> None:
        """Start the pipeline progress bar (no-op when disabled or empty)."""
        if not self._show_progress or total == 0:
            return
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self._console,
            transient=True,
        )
        self._progress.start()
        self._task = self._progress.add_task("[green]Uploading", total=total)

    def stop(self) -> None:
        if self._progress is not None:
            self._progress.stop()
        self._progress = None
        self._task = None

    def _advance(self) -> None:
        if self._progress is not None and self._task is not None:
            self._progress.advance(self._task, 1)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def command_info(
        self, base_paths: Sequence[str], service: str, concurrency: int, dry_run: bool
    ) -> None:
        if dry_run:
            self._console.print(
                f"[yellow]{ICON_WARNING} DRY-RUN MODE ENABLED. WILL NOT UPLOAD JUNIT XML[/yellow]"
            )
        self._console.print(f"[green]Starting upload with concurrency {concurrency}.[/green]")
        joined = escape(", ".join(base_paths))
        if len(base_paths) == 1 and base_paths[0].endswith(".xml"):
            self._console.print(f"[green]Will upload jUnit XML file {joined}[/green]")
        else:
            self._console.print(f"[green]Will look for jUnit XML files in {joined}[/green]")
        self._console.print(f"[green]service: {escape(service)}[/green]")

    def invalid_file(self, path: str, message: str) -> None:
        self._console.print(
            f"[red]{ICON_FAILED} Invalid jUnitXML file {_path_label(path)}: "
            f"{escape(message)}[/red]"
        )

    def uploading(self, payload: Payload) -> None:
        self._console.print(
            f"Uploading jUnit XML test report file in {escape(payload.source_path)}"
        )

    def dry_run_upload(self, payload: Payload) -> None:
        self._console.print(
            f"\\[DRYRUN] Uploading jUnit XML test report file in {escape(payload.source_path)}"
        )
        self._advance()

    def retried_upload(self, payload: Payload, message: str, attempt: int) -> None:
        self._console.print(
            f"[yellow]\\[attempt {attempt}] Retrying jUnitXML upload "
            f"{_path_label(payload.source_path)}: {escape(message)}[/yellow]"
        )

    def failed_upload(self, payload: Payload, message: str) -> None:
        self._console.print(
            f"[red]{ICON_FAILED} Failed upload jUnitXML for "
            f"{_path_label(payload.source_path)}: {escape(message)}[/red]"
        )
        self._advance()

    def file_uploaded(self, payload: Payload) -> None:
        self._console.print(
            f"[green]{ICON_SUCCESS} Uploaded {_path_label(payload.source_path)}[/green]"
        )
        self._advance()

    def batch_summary(self, result: BatchResult) -> None:
        self._console.print(
            f"[green]{ICON_SUCCESS} Uploaded {result.uploaded_count} files in "
            f"{result.elapsed_seconds:.3f} seconds.[/green]"
        )
        if result.skipped_count or result.invalid_files:
            self._console.print(
                f"[yellow]{ICON_WARNING} Skipped {result.skipped_count} failed "
                f"and {len(result.invalid_files)} invalid files.[/yellow]"
            )
