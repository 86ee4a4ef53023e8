"""Rich Formatting Utilities for CLI Output"""

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

STATUS_STYLES = {
    "pending": "yellow",
    "processing": "blue",
    "completed": "green",
    "failed": "red",
    "dead_letter": "bold red",
}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def format_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def create_jobs_table(
    jobs: list[dict[str, Any]], title: str = "Jobs", show_payloads: bool = False
) -> Table:
    """Create a formatted table for a jobs list"""
    table = Table(title=title, box=box.ROUNDED)

    table.add_column("ID", justify="right", style="cyan", no_wrap=True)
    table.add_column("Type", justify="left", style="magenta")
    table.add_column("Status", justify="center")
    table.add_column("Attempts", justify="center", style="yellow")
    table.add_column("Priority", justify="center")
    table.add_column("Scheduled For", justify="left", style="white")
    table.add_column("Last Error", justify="left", style="red")
    if show_payloads:
        table.add_column("Payload", justify="left", style="dim")

    for job in jobs:
        last_error = job.get("last_error") or "—"
        row = [
            str(job.get("id", "")),
            job.get("type", ""),
            format_status(job.get("status", "")),
            f"{job.get('attempts', 0)}/{job.get('max_attempts', 0)}",
            str(job.get("priority", 0)),
            job.get("scheduled_for", "—"),
            last_error[:60] + "..." if len(last_error) > 60 else last_error,
        ]
        if show_payloads:
            row.append(json.dumps(job.get("payload", {})))
        table.add_row(*row)

    return table


def create_stats_panel(stats: dict[str, Any]) -> Panel:
    """Create formatted panel for queue statistics"""
    by_status = stats.get("by_status", {})
    metrics = stats.get("metrics", {})

    status_lines = "\n".join(
        f"• {format_status(status)}: [cyan]{count}[/cyan]"
        for status, count in by_status.items()
    )
    scheduled = stats.get("scheduled_jobs")

    content = f"""
📊 [bold blue]Queue[/bold blue]

• Total Jobs: [cyan]{stats.get("total_jobs", 0)}[/cyan]
• Queue Depth: [yellow]{stats.get("queue_depth", 0)}[/yellow]
• Scheduled Timers: [magenta]{scheduled if scheduled is not None else "—"}[/magenta]

{status_lines}

⚙️ [bold blue]Processing (since restart)[/bold blue]

• Processed: [green]{metrics.get("processed", 0)}[/green]
• Failed: [red]{metrics.get("failed", 0)}[/red]
• Retried: [yellow]{metrics.get("retried", 0)}[/yellow]
• Dead Lettered: [red]{metrics.get("dead_lettered", 0)}[/red]
• Avg Processing Time: [cyan]{metrics.get("avg_processing_ms", 0)}ms[/cyan]
• Last Processed: [white]{metrics.get("last_processed_at") or "never"}[/white]
"""

    return Panel(content, title="Job Statistics", border_style="green")


def create_type_table(by_type: dict[str, int]) -> Table:
    """Create formatted table for job counts per type"""
    table = Table(title="Jobs by Type", box=box.SIMPLE)
    table.add_column("Type", style="magenta")
    table.add_column("Count", justify="right", style="cyan")

    for job_type, count in sorted(by_type.items(), key=lambda kv: -kv[1]):
        table.add_row(job_type, str(count))

    return table


def create_events_table(events: dict[str, list[str]]) -> Table:
    """Create formatted table for the event table"""
    table = Table(title="Events", box=box.ROUNDED)
    table.add_column("Event", style="cyan")
    table.add_column("Job Types", style="magenta")

    for event, job_types in events.items():
        table.add_row(event, "\n".join(job_types))

    return table
