"""Helpdesk Jobs CLI - Main Entry Point"""

from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

# Import command modules
from .commands import config, jobs
from .utils.formatting import print_error, print_info
from .utils.config_manager import config as config_manager
from .client.endpoints import HelpdeskClient, HelpdeskError

console = Console()

# Create main Typer app
app = typer.Typer(
    name="helpdesk-jobs",
    help="⚙️ Helpdesk Jobs - background job engine CLI",
    rich_markup_mode="rich",
)

# Add command subapps
app.add_typer(jobs.app, name="jobs")
app.add_typer(config.app, name="config")


@app.command()
def status():
    """📊 Check system status and connectivity"""
    base_url = config_manager.get("api.base_url")
    print_info(f"Checking connection to: {base_url}")

    try:
        with HelpdeskClient(base_url) as client:
            health = client.health_check()

    except HelpdeskError as e:
        print_error(f"Failed to connect: {e}")
        console.print(Panel(
            f"🚫 [red]Connection Failed[/red]\n\n"
            f"Make sure the Helpdesk API is running at:\n"
            f"[blue]{base_url}[/blue]\n\n"
            f"You can update the API URL with:\n"
            f"[cyan]helpdesk-jobs config set api.base_url <url>[/cyan]",
            title="Connection Error",
            border_style="red"
        ))
        raise typer.Exit(1) from None

    jobs_health = health.get("jobs") or {}
    console.print(Panel(
        f"🚀 [green]Connected Successfully![/green]\n\n"
        f"• Version: [cyan]{health.get('version', 'unknown')}[/cyan]\n"
        f"• Environment: [yellow]{health.get('environment', 'unknown')}[/yellow]\n"
        f"• Processor Running: [cyan]{jobs_health.get('processor_running', 'unknown')}[/cyan]\n"
        f"• Queue Depth: [cyan]{jobs_health.get('queue_depth', 'unknown')}[/cyan]\n"
        f"• Dead Letter: [red]{jobs_health.get('dead_letter_count', 'unknown')}[/red]\n"
        f"• API URL: [blue]{base_url}[/blue]",
        title="System Status",
        border_style="green"
    ))


@app.command()
def version():
    """📎 Show CLI version information"""
    from . import __version__

    console.print(Panel(
        f"⚙️ [bold cyan]Helpdesk Jobs CLI[/bold cyan]\n\n"
        f"• Version: [green]{__version__}[/green]\n"
        f"• Type: [yellow]Command Line Interface[/yellow]",
        title="Version Info",
        border_style="cyan"
    ))


def _version_callback(value: bool):
    if value:
        from . import __version__
        console.print(f"Helpdesk Jobs CLI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """
    ⚙️ Helpdesk Jobs CLI

    Inspect the job queue, enqueue jobs, trigger events and retry
    dead-lettered work through the job management API.
    """


if __name__ == "__main__":
    app()
