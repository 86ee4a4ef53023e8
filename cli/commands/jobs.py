"""Jobs Commands - Queue monitoring and management"""

import json

import typer
from rich.console import Console
from rich.panel import Panel

from ..client.endpoints import HelpdeskClient, HelpdeskError
from ..utils.config_manager import config
from ..utils.formatting import (
    create_events_table,
    create_jobs_table,
    create_stats_panel,
    create_type_table,
    print_error,
    print_info,
    print_success,
    print_warning,
)

console = Console()
app = typer.Typer(name="jobs", help="Background job monitoring and management")


def _parse_json(value: str | None, name: str) -> dict:
    if not value:
        return {}
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        print_error(f"{name} must be valid JSON: {e}")
        raise typer.Exit(1) from None
    if not isinstance(parsed, dict):
        print_error(f"{name} must be a JSON object")
        raise typer.Exit(1)
    return parsed


@app.command("stats")
def stats():
    """📊 Show queue statistics and processing metrics"""
    base_url = config.get("api.base_url")

    try:
        with HelpdeskClient(base_url) as client:
            stats_data = client.get_job_stats()

            console.print(create_stats_panel(stats_data))
            if stats_data.get("by_type"):
                console.print(create_type_table(stats_data["by_type"]))

    except HelpdeskError as e:
        print_error(f"Failed to get job stats: {e}")
        raise typer.Exit(1) from None


@app.command("list")
def list_jobs(
    status: list[str] | None = typer.Option(
        None, "--status", "-s", help="Filter by status (repeatable)"
    ),
    type: str | None = typer.Option(None, "--type", "-t", help="Filter by job type"),
    limit: int = typer.Option(20, "--limit", "-l", help="Number of jobs to show"),
    offset: int = typer.Option(0, "--offset", "-o", help="Skip first N jobs"),
):
    """📋 List jobs"""
    base_url = config.get("api.base_url")

    try:
        with HelpdeskClient(base_url) as client:
            jobs_data = client.list_jobs(
                status=status, type=type, limit=limit, offset=offset
            )

            jobs = jobs_data.get("jobs", [])
            total = jobs_data.get("total", len(jobs))

            if not jobs:
                console.print(
                    Panel(
                        "📭 [yellow]No jobs found![/yellow]\n\n"
                        f"Filters applied:\n"
                        f"• Status: {', '.join(status) if status else 'any'}\n"
                        f"• Type: {type or 'any'}",
                        title="Empty Results",
                        border_style="yellow",
                    )
                )
                return

            console.print(
                create_jobs_table(
                    jobs, show_payloads=bool(config.get("display.show_payloads"))
                )
            )
            console.print(
                f"\n📊 Showing [cyan]{len(jobs)}[/cyan] of [yellow]{total}[/yellow] jobs"
            )

            if offset + limit < total:
                console.print(f"💡 Use [cyan]--offset {offset + limit}[/cyan] to see more")

    except HelpdeskError as e:
        print_error(f"Failed to list jobs: {e}")
        raise typer.Exit(1) from None


@app.command("show")
def show_job(job_id: int = typer.Argument(..., help="Job ID to show")):
    """🔍 Show a single job"""
    base_url = config.get("api.base_url")

    try:
        with HelpdeskClient(base_url) as client:
            job = client.get_job(job_id)
            console.print(create_jobs_table([job], title=f"Job {job_id}", show_payloads=True))

    except HelpdeskError as e:
        print_error(f"Failed to get job: {e}")
        raise typer.Exit(1) from None


@app.command("enqueue")
def enqueue(
    job_type: str = typer.Argument(..., help="Job type, e.g. cleanup_old_jobs"),
    payload: str | None = typer.Option(
        None, "--payload", "-p", help="Job payload as a JSON object"
    ),
    priority: int = typer.Option(0, "--priority", help="Higher runs sooner"),
    at: str | None = typer.Option(
        None, "--at", help="ISO 8601 time before which the job is not run"
    ),
):
    """➕ Enqueue a job"""
    payload_data = _parse_json(payload, "Payload")
    base_url = config.get("api.base_url")

    try:
        with HelpdeskClient(base_url) as client:
            result = client.enqueue_job(
                job_type, payload_data, priority=priority, scheduled_for=at
            )
            print_success(f"Enqueued job {result['job_id']} ({result['type']})")
            print_info(f"Scheduled for {result['scheduled_for']}")

    except HelpdeskError as e:
        print_error(f"Failed to enqueue job: {e}")
        raise typer.Exit(1) from None


@app.command("trigger")
def trigger(
    event: str = typer.Argument(..., help="Event name, e.g. reports/daily"),
    data: str | None = typer.Option(
        None, "--data", "-d", help="Event data as a JSON object"
    ),
    delay: float = typer.Option(
        0, "--delay", help="Seconds before the jobs become eligible"
    ),
):
    """⚡ Trigger an application event"""
    event_data = _parse_json(data, "Data")
    base_url = config.get("api.base_url")

    try:
        with HelpdeskClient(base_url) as client:
            result = client.trigger_event(event, event_data, delay)
            job_ids = result.get("job_ids", [])
            print_success(f"Event {event} enqueued {len(job_ids)} job(s)")
            for job_id, job_type in zip(job_ids, result.get("job_types", [])):
                console.print(f"  • [cyan]{job_id}[/cyan] {job_type}")

    except HelpdeskError as e:
        print_error(f"Failed to trigger event: {e}")
        raise typer.Exit(1) from None


@app.command("events")
def events():
    """📚 List known events and the jobs they enqueue"""
    base_url = config.get("api.base_url")

    try:
        with HelpdeskClient(base_url) as client:
            console.print(create_events_table(client.list_events()))

    except HelpdeskError as e:
        print_error(f"Failed to list events: {e}")
        raise typer.Exit(1) from None


@app.command("dead-letter")
def dead_letter(
    limit: int = typer.Option(50, "--limit", "-l", help="Number of jobs to show"),
):
    """☠️ List dead-lettered jobs"""
    base_url = config.get("api.base_url")

    try:
        with HelpdeskClient(base_url) as client:
            jobs = client.get_dead_letter_jobs(limit)

            if not jobs:
                print_success("Dead letter queue is empty")
                return

            console.print(create_jobs_table(jobs, title="Dead Letter Queue"))
            console.print(
                "💡 Retry with [cyan]helpdesk-jobs jobs retry <id> [<id> ...][/cyan]"
            )

    except HelpdeskError as e:
        print_error(f"Failed to list dead letter jobs: {e}")
        raise typer.Exit(1) from None


@app.command("retry")
def retry(
    job_ids: list[int] = typer.Argument(..., help="Dead-lettered job IDs to retry"),
):
    """🔁 Retry dead-lettered jobs"""
    base_url = config.get("api.base_url")

    try:
        with HelpdeskClient(base_url) as client:
            if len(job_ids) == 1:
                client.retry_job(job_ids[0])
                print_success(f"Job {job_ids[0]} moved back to pending")
                return

            result = client.retry_jobs(job_ids)
            for job_id in result.get("success_ids", []):
                print_success(f"Job {job_id} moved back to pending")
            for job_id, error in result.get("errors", {}).items():
                print_warning(f"Job {job_id}: {error}")

            if result.get("failed_ids"):
                raise typer.Exit(1)

    except HelpdeskError as e:
        print_error(f"Failed to retry jobs: {e}")
        raise typer.Exit(1) from None


@app.command("cleanup")
def cleanup(
    older_than_hours: int | None = typer.Option(
        None, "--older-than-hours", help="Retention of completed jobs in hours"
    ),
):
    """🧹 Delete completed and dead-lettered jobs past their retention"""
    base_url = config.get("api.base_url")

    try:
        with HelpdeskClient(base_url) as client:
            result = client.cleanup_jobs(older_than_hours)
            print_success(
                f"Deleted {result.get('completed_deleted', 0)} completed and "
                f"{result.get('dead_letter_deleted', 0)} dead-lettered jobs"
            )

    except HelpdeskError as e:
        print_error(f"Failed to clean up jobs: {e}")
        raise typer.Exit(1) from None
