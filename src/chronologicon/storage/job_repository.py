"""
Job Repository - Persisted ingestion job records.

The persisted record is the source of truth for job status; the pipeline
checkpoints into it after every flushed batch and at every transition.
"""

from __future__ import annotations

import json
from datetime import timedelta
from typing import Any

from chronologicon.constants import DEFAULT_JOB_LIST_LIMIT
from chronologicon.errors import ValidationError
from chronologicon.logger import get_logger
from chronologicon.models import IngestionJob, JobStatus, utc_now
from chronologicon.storage.duckdb_manager import DuckDBManager
from chronologicon.storage.event_store import from_db_timestamp, to_db_timestamp

job_logger = get_logger("chronologicon.jobs")

JOB_COLUMNS = (
    "job_id",
    "status",
    "file_path",
    "total_lines",
    "processed_lines",
    "error_lines",
    "errors",
    "start_time",
    "end_time",
    "created_at",
    "updated_at",
)
_SELECT_COLUMNS = ", ".join(JOB_COLUMNS)


def row_to_job(row: dict[str, Any]) -> IngestionJob:
    return IngestionJob(
        job_id=row["job_id"],
        file_path=row["file_path"],
        status=JobStatus(row["status"]),
        total_lines=row["total_lines"],
        processed_lines=row["processed_lines"],
        error_lines=row["error_lines"],
        errors=json.loads(row["errors"]) if row["errors"] else [],
        start_time=from_db_timestamp(row["start_time"]),
        end_time=from_db_timestamp(row["end_time"]),
        created_at=from_db_timestamp(row["created_at"]),
    )


class JobRepository:
    """CRUD over the ingestion_jobs table."""

    def __init__(self, db: DuckDBManager):
        self.db = db

    def save(self, job: IngestionJob) -> None:
        """Insert or overwrite the job record."""
        now = utc_now()
        if job.created_at is None:
            job.created_at = now

        self.db.execute(
            f"""
            INSERT OR REPLACE INTO ingestion_jobs ({_SELECT_COLUMNS})
            VALUES ({", ".join("?" for _ in JOB_COLUMNS)})
            """,
            [
                job.job_id,
                job.status.value,
                job.file_path,
                job.total_lines,
                job.processed_lines,
                job.error_lines,
                json.dumps(job.errors),
                to_db_timestamp(job.start_time),
                to_db_timestamp(job.end_time),
                to_db_timestamp(job.created_at),
                to_db_timestamp(now),
            ],
        )

    # Checkpoints overwrite the whole record
    update = save

    def get(self, job_id: str) -> IngestionJob | None:
        rows = self.db.execute_query(
            f"SELECT {_SELECT_COLUMNS} FROM ingestion_jobs WHERE job_id = ?",
            [job_id],
        )
        return row_to_job(rows[0]) if rows else None

    def list_jobs(
        self,
        status: JobStatus | str | None = None,
        limit: int = DEFAULT_JOB_LIST_LIMIT,
        offset: int = 0,
    ) -> list[IngestionJob]:
        """Most recent first, optionally filtered by status."""
        parameters: list[Any] = []
        where_sql = ""
        if status is not None:
            try:
                status_value = JobStatus(status).value
            except ValueError:
                raise ValidationError(
                    f"Invalid job status: {status}",
                    [{"field": "status", "message": "unknown status"}],
                ) from None
            where_sql = " WHERE status = ?"
            parameters.append(status_value)

        rows = self.db.execute_query(
            f"SELECT {_SELECT_COLUMNS} FROM ingestion_jobs{where_sql} "
            "ORDER BY created_at DESC, job_id DESC LIMIT ? OFFSET ?",
            [*parameters, max(1, int(limit)), max(0, int(offset))],
        )
        return [row_to_job(row) for row in rows]

    def delete_finished_before(self, days: int) -> int:
        """Remove terminal jobs created more than `days` days ago."""
        if days < 0:
            raise ValidationError("days must not be negative")

        cutoff = to_db_timestamp(utc_now() - timedelta(days=days))
        terminal = [
            JobStatus.COMPLETED.value,
            JobStatus.FAILED.value,
            JobStatus.CANCELLED.value,
        ]
        rows = self.db.execute_query(
            "SELECT COUNT(*) AS count FROM ingestion_jobs "
            "WHERE created_at < ? AND status IN (?, ?, ?)",
            [cutoff, *terminal],
        )
        count = rows[0]["count"] if rows else 0
        if count:
            self.db.execute(
                "DELETE FROM ingestion_jobs WHERE created_at < ? AND status IN (?, ?, ?)",
                [cutoff, *terminal],
            )
        job_logger.status(f"Purged {count} finished jobs older than {days} days")
        return count
