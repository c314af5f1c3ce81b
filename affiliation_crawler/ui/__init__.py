"""User interaction helpers."""

from .panel import StatusPanel, render_records_table, status_line

__all__ = ["StatusPanel", "render_records_table", "status_line"]
