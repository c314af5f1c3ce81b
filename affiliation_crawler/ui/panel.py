"""Console status panel and record preview rendering."""

from __future__ import annotations

from typing import Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from ..messages import DiagnosticNote, StatusUpdate, UiMessage
from ..records import Record

STATUS_COMPLETED = "Completed"
STATUS_NEXT = "Next"
STATUS_PENDING = "Pending"


def record_status(record: Record, position: int, current_index: int) -> str:
    if record.has_affiliation:
        return STATUS_COMPLETED
    if position == current_index:
        return STATUS_NEXT
    return STATUS_PENDING


def status_line(update: StatusUpdate) -> str:
    line = f"Loaded {len(update.records)} entries. {update.remaining} remaining."
    if update.is_running:
        line += " Scraping in progress..."
    return line


def render_records_table(
    records: Sequence[Record], current_index: int, limit: int | None = None
) -> Table:
    shown = list(records if limit is None else records[:limit])
    title = f"记录预览 · 共 {len(records)} 条"
    if len(shown) < len(records):
        title += f"（显示前 {len(shown)} 条）"
    table = Table(title=title, box=box.SIMPLE_HEAD, show_lines=False)
    table.add_column("Index", style="dim", justify="right", no_wrap=True)
    table.add_column("Author", style="cyan")
    table.add_column("Title", overflow="fold")
    table.add_column("Affiliation", style="green", overflow="fold")
    table.add_column("Status", style="magenta", no_wrap=True)
    for position, record in enumerate(shown):
        table.add_row(
            str(position + 1),
            record.author,
            record.title,
            record.affiliation or "-",
            record_status(record, position, current_index),
        )
    return table


class StatusPanel:
    """Render status updates and diagnostic notes pushed by the orchestrator."""

    def __init__(self, console: Console | None = None, enabled: bool = True) -> None:
        self.console = console or Console()
        self.enabled = enabled
        self.last_status: StatusUpdate | None = None
        self.last_note: str | None = None

    def publish(self, message: UiMessage) -> None:
        if isinstance(message, StatusUpdate):
            changed = self.last_status is None or (
                self.last_status.is_running != message.is_running
                or self.last_status.current_index != message.current_index
            )
            self.last_status = message
            if self.enabled and changed:
                style = "green" if message.is_running else "yellow"
                self.console.print(status_line(message), style=style)
        elif isinstance(message, DiagnosticNote):
            self.last_note = message.content
            if self.enabled:
                self.console.print(message.content, style="dim", markup=False, highlight=False)
        else:
            raise TypeError(f"Unsupported UI message: {message!r}")


__all__ = [
    "STATUS_COMPLETED",
    "STATUS_NEXT",
    "STATUS_PENDING",
    "StatusPanel",
    "record_status",
    "render_records_table",
    "status_line",
]
