"""Command line interface for inspecting the process audit trail."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import typer

from proctrail.activities import ActivityNotRegisteredError, build_activity_registry
from proctrail.config import load_config
from proctrail.constants import REQUIRED_ACTIVITIES
from proctrail.models import Status
from proctrail.service import ProcessQuery, get_audit_service

app = typer.Typer(help="CLI for the proctrail audit trail")

# Command groups
process_app = typer.Typer(help="Commands for inspecting processes")
activity_app = typer.Typer(help="Commands for inspecting worker activities")

app.add_typer(process_app, name="process")
app.add_typer(activity_app, name="activity")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, help="Logging level (defaults to the configured log_level)"
    ),
) -> None:
    """proctrail CLI entry point."""
    level = (log_level or load_config().log_level).upper()
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


@process_app.command("list")
def process_list(
    org_id: Optional[int] = typer.Option(None, help="Only this organization"),
    status: Optional[Status] = typer.Option(None, help="Only this status"),
    process_type: Optional[str] = typer.Option(
        None, "--type", help="Only this process type"
    ),
    resource_id: Optional[str] = typer.Option(None, help="Only this resource"),
    parent_id: Optional[str] = typer.Option(
        None, help="Only child processes of this process"
    ),
) -> None:
    """
    List recorded processes.

    Prints one tab-separated line per process: id, type, status and resource.
    Processes left running by cancelled workflows show up with status running.

    Example:
        proctrail process list --org-id 7 --status running
        proctrail process list --parent-id cluster-upgrade-42
    """
    service = get_audit_service()
    query = ProcessQuery(
        org_id=org_id,
        status=status,
        type=process_type,
        resource_id=resource_id,
        parent_id=parent_id,
    )
    processes = asyncio.run(service.list_processes(query))
    if not processes:
        typer.echo("No processes found")
        return
    for process in processes:
        typer.echo(
            f"{process.id}\t{process.type}\t{process.status.value}\t{process.resource_id}"
        )


@process_app.command("show")
def process_show(process_id: str) -> None:
    """
    Show a process and its events.

    Example:
        proctrail process show cluster-upgrade-42
        # Output: Process cluster-upgrade-42 (cluster-upgrade): finished
        #         Organization: 7  Resource: cluster-42
        #         Started: 2024-01-01 10:00:00+00:00  Finished: 2024-01-01 10:05:00+00:00
        #         - 2024-01-01 10:00:01+00:00 create-worker-pool: running
        #         - 2024-01-01 10:04:59+00:00 create-worker-pool: finished
    """
    service = get_audit_service()
    process = asyncio.run(service.get_process(process_id))
    if process is None:
        typer.echo("Process not found")
        raise typer.Exit(code=1)
    typer.echo(f"Process {process.id} ({process.type}): {process.status.value}")
    if process.parent_id:
        typer.echo(f"Parent: {process.parent_id}")
    typer.echo(f"Organization: {process.org_id}  Resource: {process.resource_id}")
    typer.echo(
        f"Started: {process.started_at}"
        + (f"  Finished: {process.finished_at}" if process.finished_at else "")
    )
    if process.log:
        typer.echo(f"Log: {process.log}")
    for event in process.events:
        typer.echo(
            f"- {event.timestamp} {event.type}: {event.status.value}"
            + (f" ({event.log})" if event.log else "")
        )


@activity_app.command("list")
def activity_list() -> None:
    """List the activities a worker registers, validating the registry first."""
    try:
        registry = build_activity_registry(get_audit_service())
    except ActivityNotRegisteredError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    for name in registry.names():
        marker = " (required)" if name in REQUIRED_ACTIVITIES else ""
        typer.echo(f"{name}{marker}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
