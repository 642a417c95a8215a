#!/usr/bin/env python3
"""
Ingestion Pipeline - Asynchronous bulk loading of historical events.

A submitted file becomes an IngestionJob processed by a background asyncio
task: the source is streamed line by line, each line parsed on its own,
valid events accumulated into bounded batches and committed to the event
store. Line and record failures are recorded against the job; an unreadable
source, an unreachable store or any unexpected error fails it.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from chronologicon.constants import (
    DEFAULT_BATCH_SIZE,
    MAX_BATCH_SIZE,
    MAX_SAMPLE_LINES,
    MIN_BATCH_SIZE,
)
from chronologicon.errors import (
    NotFoundError,
    SourceUnavailableError,
    StoreError,
    StoreUnavailableError,
    ValidationError,
)
from chronologicon.ingestion.csv_adapter import CsvAdapter
from chronologicon.ingestion.line_parser import (
    count_lines,
    is_record_line,
    parse_line,
)
from chronologicon.ingestion.line_parser import validate_file as validate_canonical_file
from chronologicon.logger import get_logger
from chronologicon.models import HistoricalEvent, IngestionJob
from chronologicon.storage.event_store import EventStore
from chronologicon.storage.job_repository import JobRepository
from chronologicon.utils.paths import converted_output_path, is_csv_source, is_readable_file

pipeline_logger = get_logger("chronologicon.pipeline")

# Record-level failures; the batch falls back to single inserts
_RECORD_ERRORS = (StoreError, ValidationError, NotFoundError)


def clamp_batch_size(batch_size: int) -> int:
    """Bound batch_size to [MIN_BATCH_SIZE, MAX_BATCH_SIZE]."""
    clamped = min(max(int(batch_size), MIN_BATCH_SIZE), MAX_BATCH_SIZE)
    if clamped != batch_size:
        pipeline_logger.warning(
            f"Batch size {batch_size} out of range "
            f"[{MIN_BATCH_SIZE}, {MAX_BATCH_SIZE}], using {clamped}"
        )
    return clamped


def parents_first(batch: list[HistoricalEvent]) -> list[HistoricalEvent]:
    """Stable reorder so in-batch parents precede their children."""
    first_index: dict[str, int] = {}
    for index, event in enumerate(batch):
        first_index.setdefault(event.event_id, index)

    ordered: list[HistoricalEvent] = []
    placed: set[int] = set()
    for index in range(len(batch)):
        chain: list[int] = []
        current: int | None = index
        while current is not None and current not in placed and current not in chain:
            chain.append(current)
            parent_id = batch[current].parent_event_id
            current = first_index.get(parent_id) if parent_id else None
        for position in reversed(chain):
            placed.add(position)
            ordered.append(batch[position])
    return ordered


@dataclass
class ActiveJob:
    """In-memory handle of a running job, used for cancellation lookups."""

    job: IngestionJob
    task: asyncio.Task | None = None
    cancel_requested: bool = False


class IngestionPipeline:
    """
    Job lifecycle, streaming parse and batched commit.

    Each job runs as an independent asyncio task. The persisted job record is
    authoritative; the active registry only maps job ids to their task and
    cancellation flag.
    """

    def __init__(
        self,
        store: EventStore,
        jobs: JobRepository,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        count_lines_upfront: bool = True,
        csv_adapter: CsvAdapter | None = None,
    ):
        self.store = store
        self.jobs = jobs
        self.batch_size = clamp_batch_size(batch_size)
        self.count_lines_upfront = count_lines_upfront
        self.csv_adapter = csv_adapter or CsvAdapter()

        self._active: dict[str, ActiveJob] = {}

        pipeline_logger.status(
            f"Ingestion pipeline initialized (batch_size={self.batch_size}, "
            f"count_lines_upfront={self.count_lines_upfront})"
        )

    # ------------------------------------------------------------------
    # Submission and control
    # ------------------------------------------------------------------

    async def submit(self, file_path: str | Path) -> str:
        """
        Create a job for a source file and start processing it in the background.

        Returns:
            The job id; processing has not necessarily started yet

        Raises:
            SourceUnavailableError: the file does not exist or is not readable
            ValidationError: a CSV source is missing required header columns
        """
        source = Path(file_path).expanduser()
        if not is_readable_file(source):
            msg = f"Source file not found or not readable: {source}"
            raise SourceUnavailableError(msg)

        if is_csv_source(source):
            missing = self.csv_adapter.check_header(source)
            if missing:
                raise ValidationError(
                    f"Invalid CSV header in {source.name}: {'; '.join(missing)}",
                    [{"field": "header", "message": message} for message in missing],
                )

        job = IngestionJob.new(str(source.resolve()))
        self.jobs.save(job)

        active = ActiveJob(job=job)
        self._active[job.job_id] = active
        active.task = asyncio.create_task(self._run(active), name=job.job_id)

        pipeline_logger.ingest(f"Submitted {source.name} as job {job.job_id}")
        return job.job_id

    def cancel_job(self, job_id: str) -> bool:
        """
        Request cooperative cancellation.

        The flag is observed before processing starts and at batch boundaries;
        batches already committed stay committed.

        Returns:
            False when the job is unknown or already finished
        """
        active = self._active.get(job_id)
        if active is None or active.job.is_terminal:
            return False
        active.cancel_requested = True
        pipeline_logger.status(f"Cancellation requested for job {job_id}")
        return True

    def get_job_status(self, job_id: str) -> dict[str, Any] | None:
        """Job read model from the persisted record, or None when unknown."""
        job = self.jobs.get(job_id)
        if job is None:
            active = self._active.get(job_id)
            job = active.job if active else None
        return job.to_status_dict() if job else None

    def list_active_jobs(self) -> list[str]:
        return [job_id for job_id, active in self._active.items() if not active.job.is_terminal]

    async def wait_for_job(
        self, job_id: str, timeout: float | None = None
    ) -> dict[str, Any] | None:
        """Wait until the job reaches a terminal state; returns its status."""
        active = self._active.get(job_id)
        if active is not None and active.task is not None:
            await asyncio.wait_for(asyncio.shield(active.task), timeout)
        return self.get_job_status(job_id)

    async def shutdown(self) -> None:
        """Cancel running jobs and wait for their tasks to finish."""
        tasks = [active.task for active in self._active.values() if active.task]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            pipeline_logger.status(f"Stopped {len(tasks)} running jobs")

    def validate_file(
        self, file_path: str | Path, max_sample_lines: int = MAX_SAMPLE_LINES
    ) -> dict[str, Any]:
        """Sample a source without storing anything; never raises."""
        source = Path(file_path)
        if is_csv_source(source):
            errors = self.csv_adapter.validate_format(source, max_sample_lines)
            return {"isValid": not errors, "errors": errors, "format": "csv"}

        result = validate_canonical_file(source, max_sample_lines)
        result["format"] = "canonical"
        return result

    # ------------------------------------------------------------------
    # Background processing
    # ------------------------------------------------------------------

    async def _run(self, active: ActiveJob) -> None:
        job = active.job
        started = time.perf_counter()

        try:
            if active.cancel_requested:
                job.cancel()
            else:
                job.start()
                self._checkpoint(job)
                await self._process(active)
                if active.cancel_requested:
                    job.cancel()
                else:
                    job.complete()
        except asyncio.CancelledError:
            if not job.is_terminal:
                job.cancel()
            raise
        except OSError as e:
            job.fail(f"Source unavailable: {e}")
        except StoreUnavailableError as e:
            job.fail(f"Store unavailable: {e}")
        except StoreError as e:
            job.fail(f"Store error: {e}")
        except ValidationError as e:
            job.fail(e.message)
        except Exception as e:
            pipeline_logger.error(f"Job {job.job_id} aborted by unexpected error: {e!r}")
            if not job.is_terminal:
                job.fail(f"Processing failed: {e}")
        finally:
            self._active.pop(job.job_id, None)
            self._final_checkpoint(job)
            pipeline_logger.timing(
                f"Job {job.job_id} {job.status.value}: {job.processed_lines} processed, "
                f"{job.error_lines} errors in {time.perf_counter() - started:.2f}s"
            )

    async def _process(self, active: ActiveJob) -> None:
        job = active.job
        source = Path(job.file_path)
        if not is_readable_file(source):
            msg = f"Source file not found or not readable: {source}"
            raise SourceUnavailableError(msg)

        if is_csv_source(source):
            conversion = await asyncio.to_thread(
                self.csv_adapter.convert, source, converted_output_path(source, job.job_id)
            )
            for message in conversion.errors:
                job.add_error(message)
            job.total_lines += conversion.error_rows
            source = conversion.output_path

        if self.count_lines_upfront:
            job.total_lines += await asyncio.to_thread(count_lines, source)
            self._checkpoint(job)

        pipeline_logger.ingest(f"Processing {source.name} for job {job.job_id}")

        batch: list[HistoricalEvent] = []
        with open(source, encoding="utf-8", errors="replace") as f:
            for line_number, line in enumerate(f, start=1):
                if not is_record_line(line):
                    continue
                if not self.count_lines_upfront:
                    job.total_lines += 1

                try:
                    event = parse_line(line, line_number, source_file=job.file_path)
                except ValidationError as e:
                    job.add_error(f"Line {line_number}: {e.message}")
                    continue

                batch.append(event)
                if len(batch) >= self.batch_size:
                    await self.flush_batch(job, batch)
                    batch = []
                    if active.cancel_requested:
                        pipeline_logger.status(f"Job {job.job_id} cancelled at batch boundary")
                        return

        if batch and not active.cancel_requested:
            await self.flush_batch(job, batch)

    async def flush_batch(self, job: IngestionJob, batch: list[HistoricalEvent]) -> None:
        """
        Commit a batch; fall back to one-by-one inserts on a data-level failure.

        Raises:
            StoreUnavailableError: the store cannot be reached
        """
        try:
            self.store.batch_create(batch)
            job.processed_lines += len(batch)
        except StoreUnavailableError:
            raise
        except _RECORD_ERRORS as e:
            pipeline_logger.warning(
                f"Batch insert failed for job {job.job_id} ({e}); "
                f"retrying {len(batch)} events individually"
            )
            for event in parents_first(batch):
                try:
                    self.store.create(event)
                    job.processed_lines += 1
                except StoreUnavailableError:
                    raise
                except _RECORD_ERRORS as err:
                    job.add_error(f"Event {event.event_id}: {err}")

        self._checkpoint(job)
        pipeline_logger.tracking(
            f"Job {job.job_id}: {job.processed_lines}/{job.total_lines} processed"
        )
        await asyncio.sleep(0)

    def _checkpoint(self, job: IngestionJob) -> None:
        self.jobs.update(job)

    def _final_checkpoint(self, job: IngestionJob) -> None:
        try:
            self.jobs.update(job)
        except StoreError as e:
            pipeline_logger.error(
                f"Could not persist final state {job.status.value} of job {job.job_id}: {e}"
            )
