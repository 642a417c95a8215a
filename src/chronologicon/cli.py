#!/usr/bin/env python3
"""
Chronologicon CLI - Command-line entry point.

Every command opens the configured database through a ChronologiconEngine,
runs one operation and prints its result as JSON on stdout. Logs go to
stderr. Chronologicon errors exit non-zero with their message.
"""

from __future__ import annotations

import asyncio
import functools
import json
import os
from dataclasses import replace
from pathlib import Path
from typing import Any

import click

from chronologicon import __version__
from chronologicon.config import (
    ensure_directory_structure,
    get_incoming_dir,
    is_in_memory,
    load_settings,
)
from chronologicon.constants import (
    DEFAULT_JOB_LIST_LIMIT,
    DEFAULT_JOB_RETENTION_DAYS,
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT_BY,
    DEFAULT_SORT_ORDER,
    ENV_DATABASE,
    ENV_DEV_MODE,
    JOB_POLL_INTERVAL_SECONDS,
    MAX_SAMPLE_LINES,
    SORTABLE_FIELDS,
)
from chronologicon.engine import ChronologiconEngine
from chronologicon.errors import ChronologiconError, NotFoundError, ValidationError
from chronologicon.logger import get_logger, set_level
from chronologicon.models import JobStatus, SearchFilters
from chronologicon.validation import (
    event_from_payload,
    parse_time_range,
    parse_timestamp,
    patch_from_payload,
)

cli_logger = get_logger("chronologicon.cli")


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def handle_errors(func):
    """Turn Chronologicon errors into a non-zero exit with the message."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ValidationError as e:
            detail = "".join(
                f"\n  - {item.get('field')}: {item.get('message')}" for item in e.details
            )
            raise click.ClickException(f"{e.message}{detail}") from e
        except ChronologiconError as e:
            raise click.ClickException(str(e)) from e

    return wrapper


def _parse_metadata(raw: str | None) -> dict[str, Any] | None:
    if raw is None:
        return None
    try:
        metadata = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid metadata JSON: {e}") from None
    if not isinstance(metadata, dict):
        raise ValidationError("Metadata must be a JSON object")
    return metadata


def _engine(ctx: click.Context) -> ChronologiconEngine:
    return ChronologiconEngine(ctx.obj)


@click.group()
@click.option(
    "--database",
    envvar=ENV_DATABASE,
    default=None,
    help="DuckDB file path or ':memory:' (default: <data dir>/database/chronologicon.duckdb)",
)
@click.option(
    "--dev-mode", is_flag=True, help="Force development mode (use .chronologicon in repo root)"
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.version_option(__version__, prog_name="chronologicon")
@click.pass_context
def main(ctx: click.Context, database: str | None, dev_mode: bool, verbose: bool):
    """
    Chronologicon - historical event store, ingestion and temporal analysis.

    Examples:
        chronologicon ingest events.txt
        chronologicon timeline 2f1c...-...
        chronologicon overlaps --start 2023-01-01T00:00:00Z --end 2023-12-31T00:00:00Z
    """
    if dev_mode:
        os.environ[ENV_DEV_MODE] = "1"
    settings = load_settings()
    set_level("DEBUG" if verbose else settings.log_level)
    if database:
        settings = replace(settings, database_path=database)
    ctx.obj = settings


# ----------------------------------------------------------------------
# Database and ingestion
# ----------------------------------------------------------------------


@main.command("init-db")
@click.pass_context
@handle_errors
def init_db(ctx: click.Context):
    """Create the data directories and the database schema."""
    if not is_in_memory(ctx.obj.database_path):
        ensure_directory_structure()
    with _engine(ctx) as engine:
        echo_json({"database": engine.db_manager.database_path, "events": engine.store.count()})


@main.command()
@click.argument("file_path", type=click.Path(path_type=Path))
@click.pass_context
@handle_errors
def ingest(ctx: click.Context, file_path: Path):
    """Ingest a canonical (.txt/.psv) or CSV file and wait for the job to finish."""

    async def run(engine: ChronologiconEngine) -> dict[str, Any]:
        job_id = await engine.pipeline.submit(file_path)
        cli_logger.ingest(f"Submitted job {job_id}")
        while True:
            status = engine.pipeline.get_job_status(job_id)
            if status and JobStatus(status["status"]).is_terminal:
                return status
            await asyncio.sleep(JOB_POLL_INTERVAL_SECONDS)

    with _engine(ctx) as engine:
        status = asyncio.run(run(engine))

    echo_json(status)
    if status["status"] == JobStatus.FAILED.value:
        ctx.exit(1)


@main.command()
@click.argument("file_path", type=click.Path(path_type=Path))
@click.option("--sample-lines", default=MAX_SAMPLE_LINES, show_default=True, type=int)
@click.pass_context
@handle_errors
def validate(ctx: click.Context, file_path: Path, sample_lines: int):
    """Check the first lines of a file without storing anything."""
    with _engine(ctx) as engine:
        result = engine.pipeline.validate_file(file_path, sample_lines)
    echo_json(result)
    if not result["isValid"]:
        ctx.exit(1)


@main.command("job-status")
@click.argument("job_id")
@click.pass_context
@handle_errors
def job_status(ctx: click.Context, job_id: str):
    """Show the status of an ingestion job."""
    with _engine(ctx) as engine:
        status = engine.pipeline.get_job_status(job_id)
    if status is None:
        raise NotFoundError(f"Job not found: {job_id}")
    echo_json(status)


@main.command()
@click.option("--status", "status_filter", type=click.Choice([s.value for s in JobStatus]))
@click.option("--limit", default=DEFAULT_JOB_LIST_LIMIT, show_default=True, type=int)
@click.option("--offset", default=0, type=int)
@click.pass_context
@handle_errors
def jobs(ctx: click.Context, status_filter: str | None, limit: int, offset: int):
    """List ingestion jobs, most recent first."""
    with _engine(ctx) as engine:
        listed = engine.jobs.list_jobs(status_filter, limit, offset)
    echo_json([job.to_status_dict() for job in listed])


@main.command("purge-jobs")
@click.option("--days", default=DEFAULT_JOB_RETENTION_DAYS, show_default=True, type=int)
@click.pass_context
@handle_errors
def purge_jobs(ctx: click.Context, days: int):
    """Delete finished jobs older than DAYS days."""
    with _engine(ctx) as engine:
        removed = engine.jobs.delete_finished_before(days)
    echo_json({"deletedJobs": removed})


@main.command()
@click.option("--incoming", type=click.Path(file_okay=False, path_type=Path), default=None)
@click.pass_context
@handle_errors
def watch(ctx: click.Context, incoming: Path | None):
    """Watch the incoming directory and ingest files dropped into it."""
    incoming_dir = incoming or get_incoming_dir()
    click.echo(f"Watching {incoming_dir} (Ctrl+C to stop)", err=True)

    async def run(engine: ChronologiconEngine) -> None:
        watcher = engine.create_watcher(incoming_dir)
        try:
            await watcher.start()
        finally:
            await watcher.stop()
            await engine.pipeline.shutdown()

    with _engine(ctx) as engine:
        try:
            asyncio.run(run(engine))
        except KeyboardInterrupt:
            click.echo("Shutting down...", err=True)


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------


@main.command()
@click.option("--name", "event_name", required=True)
@click.option("--start", "start_date", required=True, help="ISO-8601 start")
@click.option("--end", "end_date", required=True, help="ISO-8601 end")
@click.option("--description")
@click.option("--parent", "parent_event_id")
@click.option("--id", "event_id", help="UUID (generated when omitted)")
@click.option("--metadata", help="JSON object")
@click.pass_context
@handle_errors
def create(ctx: click.Context, **options):
    """Create a single event."""
    payload = {key: value for key, value in options.items() if value is not None}
    if "metadata" in payload:
        payload["metadata"] = _parse_metadata(payload["metadata"])
    event = event_from_payload(payload)
    with _engine(ctx) as engine:
        stored = engine.store.create(event)
    echo_json(stored.to_dict())


@main.command()
@click.argument("event_id")
@click.pass_context
@handle_errors
def get(ctx: click.Context, event_id: str):
    """Show one event."""
    with _engine(ctx) as engine:
        event = engine.store.require(event_id)
    echo_json(event.to_dict())


@main.command()
@click.argument("event_id")
@click.option("--name", "event_name")
@click.option("--start", "start_date")
@click.option("--end", "end_date")
@click.option("--description")
@click.option("--parent", "parent_event_id")
@click.option("--detach", is_flag=True, help="Make the event a root")
@click.option("--metadata", help="JSON object replacing the stored metadata")
@click.pass_context
@handle_errors
def update(ctx: click.Context, event_id: str, detach: bool, **options):
    """Update fields of an event."""
    payload = {key: value for key, value in options.items() if value is not None}
    if detach:
        if "parent_event_id" in payload:
            raise ValidationError("--parent and --detach are mutually exclusive")
        payload["parent_event_id"] = None
    if "metadata" in payload:
        payload["metadata"] = _parse_metadata(payload["metadata"])
    patch = patch_from_payload(payload)
    with _engine(ctx) as engine:
        updated = engine.store.update(event_id, patch)
    echo_json(updated.to_dict())


@main.command()
@click.argument("event_id")
@click.pass_context
@handle_errors
def delete(ctx: click.Context, event_id: str):
    """Delete an event and all its descendants."""
    with _engine(ctx) as engine:
        removed = engine.store.delete(event_id)
    echo_json({"deleted": removed})


@main.command()
@click.option("--name", help="Case-insensitive substring of the event name")
@click.option("--start-after", help="Only events starting at or after this instant")
@click.option("--end-before", help="Only events ending at or before this instant")
@click.option(
    "--sort-by", type=click.Choice(sorted(SORTABLE_FIELDS)), default=DEFAULT_SORT_BY, show_default=True
)
@click.option(
    "--sort-order", type=click.Choice(["asc", "desc"]), default=DEFAULT_SORT_ORDER, show_default=True
)
@click.option("--page", default=1, show_default=True, type=int)
@click.option("--limit", default=DEFAULT_PAGE_SIZE, show_default=True, type=int)
@click.pass_context
@handle_errors
def search(
    ctx: click.Context,
    name: str | None,
    start_after: str | None,
    end_before: str | None,
    sort_by: str,
    sort_order: str,
    page: int,
    limit: int,
):
    """Search events with sorting and pagination."""
    filters = SearchFilters(
        name=name,
        start_date_after=parse_timestamp(start_after, "start_date_after") if start_after else None,
        end_date_before=parse_timestamp(end_before, "end_date_before") if end_before else None,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    with _engine(ctx) as engine:
        result = engine.store.search(filters)
    echo_json(result.to_dict())


# ----------------------------------------------------------------------
# Analysis
# ----------------------------------------------------------------------


def range_options(func):
    func = click.option("--end", "end_date", required=True, help="ISO-8601 window end")(func)
    return click.option("--start", "start_date", required=True, help="ISO-8601 window start")(func)


@main.command()
@click.argument("root_id")
@click.pass_context
@handle_errors
def timeline(ctx: click.Context, root_id: str):
    """Show an event with all its descendants as a tree."""
    with _engine(ctx) as engine:
        tree = engine.analyzer.get_timeline(root_id)
    echo_json(tree)


@main.command()
@range_options
@click.pass_context
@handle_errors
def overlaps(ctx: click.Context, start_date: str, end_date: str):
    """List overlapping event pairs inside a window."""
    time_range = parse_time_range(start_date, end_date)
    with _engine(ctx) as engine:
        result = engine.analyzer.find_overlaps(time_range)
    echo_json(result)


@main.command()
@range_options
@click.pass_context
@handle_errors
def gap(ctx: click.Context, start_date: str, end_date: str):
    """Find the largest gap between consecutive events inside a window."""
    time_range = parse_time_range(start_date, end_date)
    with _engine(ctx) as engine:
        result = engine.analyzer.find_temporal_gap(time_range)
    if result is None:
        echo_json({"largestGap": None, "message": "No significant temporal gaps found"})
    else:
        echo_json({"largestGap": result})


@main.command()
@click.argument("source_id")
@click.argument("target_id")
@click.option("--max-hops", type=int, default=None, help="Maximum parent/child links to follow")
@click.pass_context
@handle_errors
def influence(ctx: click.Context, source_id: str, target_id: str, max_hops: int | None):
    """Find the shortest parent/child path between two events."""
    with _engine(ctx) as engine:
        result = engine.analyzer.find_influence_path(source_id, target_id, max_hops)
    if result is None:
        echo_json(
            {
                "sourceEventId": source_id,
                "targetEventId": target_id,
                "shortestPath": [],
                "totalDurationMinutes": 0,
                "message": "No path found between the events",
            }
        )
    else:
        echo_json(result)


@main.command()
@range_options
@click.pass_context
@handle_errors
def stats(ctx: click.Context, start_date: str, end_date: str):
    """Aggregate statistics for events inside a window."""
    time_range = parse_time_range(start_date, end_date)
    with _engine(ctx) as engine:
        result = engine.analyzer.get_statistics(time_range)
    echo_json(result)


@main.command()
@click.argument("root_id")
@click.pass_context
@handle_errors
def hierarchy(ctx: click.Context, root_id: str):
    """Depth and duration profile of an event tree."""
    with _engine(ctx) as engine:
        result = engine.analyzer.hierarchy_analysis(root_id)
    echo_json(result)


if __name__ == "__main__":
    main()
