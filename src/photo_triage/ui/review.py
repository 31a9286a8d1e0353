"""
Terminal rendering of duplicate groups and triage sessions.

Provides tables for detection results and month summaries, and a panel for
the photo currently under review.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from photo_triage.core.detector import DuplicateGroup
from photo_triage.core.index import Fingerprint
from photo_triage.core.triage import SwipeAsset, TriageSession, TriageState
from photo_triage.core.workflow import DetectionReport, MonthSummary

logger = logging.getLogger(__name__)

BYTE_UNITS = ["B", "KB", "MB", "GB", "TB"]


def format_bytes(size: int) -> str:
    """Human-readable file size using decimal units."""
    if size <= 0:
        return "0 B"
    value = float(size)
    for unit in BYTE_UNITS:
        if value < 1000 or unit == BYTE_UNITS[-1]:
            break
        value /= 1000
    if unit == "B":
        return f"{int(value)} B"
    return f"{value:.1f} {unit}"


def _asset_name(identifier: str) -> str:
    return Path(identifier).name or identifier


def _format_time(timestamp: Optional[float]) -> str:
    if timestamp is None:
        return "N/A"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


def _format_date(asset: SwipeAsset) -> str:
    if asset.creation_date is None:
        return "Unknown date"
    return asset.creation_date.strftime("%Y-%m-%d %H:%M")


class ReviewUI:
    """Terminal-based rendering using Rich."""

    def __init__(self, console: Optional[Console] = None):
        """
        Initialize review UI.

        Args:
            console: Rich console instance (creates new one if None)
        """
        self.console = console or Console()

    def show_detection_report(self, report: DetectionReport, limit: int = 10) -> None:
        """Show the summary and the first groups of a detection run."""
        summary = Table(title="Duplicate Detection Summary", box=box.ROUNDED)
        summary.add_column("Metric", style="cyan")
        summary.add_column("Value", style="green")

        summary.add_row("Duplicate Groups", str(len(report.groups)))
        summary.add_row(
            "Total Duplicates", str(sum(len(g.duplicates) for g in report.groups))
        )
        summary.add_row(
            "Potential Space Savings", format_bytes(report.total_estimated_bytes)
        )

        self.console.print(summary)
        self.console.print()

        for number, group in enumerate(report.groups[:limit], 1):
            self.show_group(group, number, len(report.groups))
            self.console.print()

        if len(report.groups) > limit:
            self.console.print(
                f"[dim]... and {len(report.groups) - limit} more groups[/dim]\n"
            )

    def show_group(self, group: DuplicateGroup, number: int, total: int) -> None:
        table = Table(
            title=f"Duplicate Group {number}/{total}",
            box=box.DOUBLE,
            show_header=True,
            header_style="bold magenta",
        )
        table.add_column("#", style="dim", width=3)
        table.add_column("File", style="cyan")
        table.add_column("Resolution", justify="right")
        table.add_column("Created", justify="right")
        table.add_column("Reclaimable", justify="right")
        table.add_column("Action", justify="center")

        self._add_member_row(table, "0", group.representative, None, keep=True)
        for idx, dup in enumerate(group.duplicates, 1):
            size = group.per_asset_estimates.get(dup.local_identifier)
            self._add_member_row(table, str(idx), dup, size, keep=False)

        self.console.print(table)

    def _add_member_row(
        self,
        table: Table,
        label: str,
        fingerprint: Fingerprint,
        size: Optional[int],
        keep: bool,
    ) -> None:
        action = "[green]KEEP ✓[/green]" if keep else "[red]DELETE ✗[/red]"
        table.add_row(
            label,
            _asset_name(fingerprint.local_identifier),
            f"{fingerprint.width}x{fingerprint.height}",
            _format_time(fingerprint.creation_time),
            format_bytes(size) if size is not None else "-",
            action,
        )

    def show_months(self, months: Sequence[MonthSummary]) -> None:
        table = Table(title="Photos by Month", box=box.ROUNDED)
        table.add_column("Month ID", style="dim")
        table.add_column("Month", style="cyan")
        table.add_column("Photos", justify="right")
        table.add_column("Marked for Deletion", justify="right", style="red")

        for month in months:
            table.add_row(
                month.id,
                month.title,
                str(month.total_count),
                str(month.pending_deletion_count) if month.pending_deletion_count else "",
            )

        self.console.print(table)

    def show_session(self, session: TriageSession) -> None:
        """Render the photo under review together with the upcoming ones."""
        month = session.month
        header = (
            f"[bold]{month.title}[/bold]  "
            f"{session.decided_count}/{session.total_count} reviewed, "
            f"[red]{session.pending_deletion_count} marked for deletion[/red]"
        )

        if session.state is TriageState.EXHAUSTED:
            body = "[green]All photos in this month have been reviewed.[/green]"
        elif session.current_asset is None:
            body = "[dim]Nothing to review.[/dim]"
        else:
            asset = session.current_asset
            lines: List[str] = [
                f"[bold cyan]{_asset_name(asset.id)}[/bold cyan]",
                f"[dim]{asset.id}[/dim]",
                _format_date(asset),
            ]
            upcoming = session.preview
            if upcoming:
                lines.append("")
                lines.append("[dim]Up next: " + ", ".join(_asset_name(a.id) for a in upcoming) + "[/dim]")
            body = "\n".join(lines)

        self.console.print(Panel(body, title=header, box=box.ROUNDED))
        if session.status_message:
            self.console.print(f"[yellow]{session.status_message}[/yellow]")

    def show_final_confirmation(self, to_delete: Sequence[str], reclaimable: int) -> None:
        """Summarise a pending deletion before the user confirms it."""
        panel = Panel(
            f"[bold red]Delete {len(to_delete)} files[/bold red]\n\n"
            f"[yellow]Space to recover: {format_bytes(reclaimable)}[/yellow]",
            title="Final Confirmation",
            box=box.DOUBLE,
        )
        self.console.print(panel)

        self.console.print("\n[red]Files to delete (sample):[/red]")
        for i, identifier in enumerate(to_delete[:10], 1):
            self.console.print(f"  {i}. {identifier}")

        if len(to_delete) > 10:
            self.console.print(f"  ... and {len(to_delete) - 10} more")
