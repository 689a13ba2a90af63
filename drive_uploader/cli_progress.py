"""Console rendering and progress helpers for the drive-up CLI."""
from __future__ import annotations

import time
from typing import Any, Dict, Optional

from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn, TimeElapsedColumn
from rich.prompt import Prompt
from rich.table import Table

from .models import ConflictAction, ConflictDecision, PendingUpload, UploadPhase

console = Console()


def _echo(message: str) -> None:
    console.print(message)


def _human_size(value: int) -> str:
    size = float(max(value, 0))
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_idx = 0
    while size >= 1024.0 and unit_idx < len(units) - 1:
        size /= 1024.0
        unit_idx += 1
    if unit_idx == 0:
        return f"{int(size)} {units[unit_idx]}"
    return f"{size:.2f} {units[unit_idx]}"


def render_configuration_summary(config: Dict[str, Any]) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]drive-up[/bold green]",
        subtitle="[dim]drive uploader CLI[/dim]",
        border_style="blue",
    )
    console.print(panel)


def render_listing(path: str, listing: Dict[str, Any]) -> None:
    """Render the destination folder contents returned by the backend."""
    table = Table(title=f"Contents of {path}", title_justify="left")
    table.add_column("Type", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Size", justify="right")

    for folder in listing.get("folders") or []:
        table.add_row("folder", str(folder.get("name", "?")), "-")
    for item in listing.get("files") or []:
        size = item.get("size")
        table.add_row(
            "file",
            str(item.get("fileName", "?")),
            _human_size(int(size)) if size is not None else "-",
        )
    console.print(table)


def prompt_conflict_action(decision: ConflictDecision) -> Optional[ConflictAction]:
    """Ask how to handle an existing folder; None means cancel."""
    _echo(f"[yellow]Folder[/yellow] [bold]{decision.folder_name}[/bold] [yellow]already exists.[/yellow]")
    _echo("  [cyan]merge[/cyan]    add new files to existing folder")
    _echo("  [cyan]replace[/cyan]  delete existing and upload new")
    _echo("  [cyan]rename[/cyan]   upload with different name")
    choice = Prompt.ask(
        "Action",
        choices=[a.value for a in ConflictAction] + ["cancel"],
        default="merge",
        console=console,
    )
    if choice == "cancel":
        return None
    return ConflictAction(choice)


def prompt_folder_name(decision: ConflictDecision) -> str:
    if decision.message:
        _echo(f"[red]{decision.message}[/red]")
    return Prompt.ask("New folder name", console=console)


class UploadProgressDisplay:
    """Event-based console display for one upload run."""

    def __init__(self):
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.fields[label]}", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            expand=False,
            console=console,
        )
        self._task_id: Optional[TaskID] = None
        self._started_at: Optional[float] = None

    def on_select(self, pending: PendingUpload) -> None:
        _echo(f"[cyan]Selected:[/cyan] {len(pending)} file(s), {_human_size(pending.total_bytes)}")

    def on_phase_change(self, phase: UploadPhase) -> None:
        if phase == UploadPhase.UPLOADING:
            self._start()
        elif phase in (UploadPhase.SUCCESS, UploadPhase.ERROR, UploadPhase.IDLE):
            self._stop()

    def on_progress(self, percent: int) -> None:
        if self._task_id is not None:
            self._progress.update(self._task_id, completed=percent)

    def on_rename_rejected(self, name: str, reason: str) -> None:
        _echo(f"[red]Cannot use '{name}':[/red] {reason}")

    def on_complete(self, pending: PendingUpload) -> None:
        if self._task_id is not None:
            self._progress.update(self._task_id, completed=100)
        self._stop()
        elapsed = time.monotonic() - self._started_at if self._started_at else 0.0
        _echo(
            f"[green]Upload complete![/green] {len(pending)} file(s), "
            f"{_human_size(pending.total_bytes)} in {elapsed:.1f}s"
        )

    def on_error(self, error: BaseException) -> None:
        self._stop()
        _echo(f"[red]Upload failed:[/red] {error}")

    def on_cancel(self) -> None:
        self._stop()
        _echo("[yellow]Upload cancelled.[/yellow]")

    def _start(self) -> None:
        if self._task_id is not None:
            return
        self._started_at = time.monotonic()
        self._progress.start()
        self._task_id = self._progress.add_task("upload", label="Uploading", total=100)

    def _stop(self) -> None:
        if self._task_id is None:
            return
        self._progress.stop()
        self._task_id = None
