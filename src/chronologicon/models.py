"""
Data model for Chronologicon.

HistoricalEvent and IngestionJob records, the explicit EventPatch type, and the
value objects used by search and temporal analysis.
"""

from __future__ import annotations

import math
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Final

from chronologicon.constants import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT_BY,
    DEFAULT_SORT_ORDER,
    JOB_ID_PREFIX,
    JOB_ID_SUFFIX_LENGTH,
    MAX_PAGE_SIZE,
    SECONDS_PER_MINUTE,
    SORTABLE_FIELDS,
)
from chronologicon.errors import JobStateError, ValidationError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end; half a minute rounds up."""
    return math.floor((end - start).total_seconds() / SECONDS_PER_MINUTE + 0.5)


@dataclass
class HistoricalEvent:
    """A named occurrence with a start/end instant and an optional parent."""

    event_id: str
    event_name: str
    start_date: datetime
    end_date: datetime
    description: str | None = None
    parent_event_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def duration_minutes(self) -> int:
        return minutes_between(self.start_date, self.end_date)

    @property
    def is_root(self) -> bool:
        return self.parent_event_id is None

    def overlaps(self, other: HistoricalEvent) -> bool:
        return self.start_date < other.end_date and other.start_date < self.end_date

    def summary(self) -> dict[str, Any]:
        """Compact representation used inside analysis results."""
        return {
            "event_id": self.event_id,
            "event_name": self.event_name,
            "start_date": isoformat(self.start_date),
            "end_date": isoformat(self.end_date),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_name": self.event_name,
            "description": self.description,
            "start_date": isoformat(self.start_date),
            "end_date": isoformat(self.end_date),
            "duration_minutes": self.duration_minutes,
            "parent_event_id": self.parent_event_id,
            "metadata": dict(self.metadata),
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }


class _Unset:
    """Marker for patch fields that were not supplied."""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Final = _Unset()


@dataclass
class EventPatch:
    """
    Partial update of a HistoricalEvent.

    Only the fields listed here are mutable. A field left as UNSET is not
    touched; an explicit None parent detaches the event into a root.
    """

    event_name: str | _Unset = UNSET
    description: str | None | _Unset = UNSET
    start_date: datetime | _Unset = UNSET
    end_date: datetime | _Unset = UNSET
    parent_event_id: str | None | _Unset = UNSET
    metadata: dict[str, Any] | _Unset = UNSET

    FIELDS: ClassVar[tuple[str, ...]] = (
        "event_name",
        "description",
        "start_date",
        "end_date",
        "parent_event_id",
        "metadata",
    )

    def changes(self) -> dict[str, Any]:
        """Supplied fields only."""
        return {
            name: getattr(self, name)
            for name in self.FIELDS
            if getattr(self, name) is not UNSET
        }

    @property
    def is_empty(self) -> bool:
        return not self.changes()

    def touches_parent(self) -> bool:
        return self.parent_event_id is not UNSET

    def apply_to(self, event: HistoricalEvent) -> HistoricalEvent:
        """Return a copy of event with the supplied fields replaced."""
        values = event.__dict__.copy()
        values.update(self.changes())
        return HistoricalEvent(**values)


class JobStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: Final[frozenset[JobStatus]] = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)

_ALLOWED_TRANSITIONS: Final[dict[JobStatus, frozenset[JobStatus]]] = {
    JobStatus.PENDING: frozenset(
        {JobStatus.PROCESSING, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
    JobStatus.PROCESSING: TERMINAL_STATUSES,
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


def generate_job_id() -> str:
    return (
        f"{JOB_ID_PREFIX}-{int(time.time() * 1000)}-"
        f"{uuid.uuid4().hex[:JOB_ID_SUFFIX_LENGTH]}"
    )


@dataclass
class IngestionJob:
    """
    Tracked unit of asynchronous work parsing and committing one source file.

    Mutated only by the ingestion pipeline; every transition goes through
    _transition so a job reaches exactly one terminal state.
    """

    job_id: str
    file_path: str
    status: JobStatus = JobStatus.PENDING
    total_lines: int = 0
    processed_lines: int = 0
    error_lines: int = 0
    errors: list[str] = field(default_factory=list)
    start_time: datetime | None = None
    end_time: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def new(cls, file_path: str) -> IngestionJob:
        return cls(job_id=generate_job_id(), file_path=file_path, created_at=utc_now())

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def _transition(self, new_status: JobStatus) -> None:
        if new_status not in _ALLOWED_TRANSITIONS[self.status]:
            msg = f"Job {self.job_id}: illegal transition {self.status.value} -> {new_status.value}"
            raise JobStateError(msg)
        self.status = new_status

    def start(self) -> None:
        self._transition(JobStatus.PROCESSING)
        self.start_time = utc_now()

    def complete(self) -> None:
        self._transition(JobStatus.COMPLETED)
        self.end_time = utc_now()

    def cancel(self) -> None:
        self._transition(JobStatus.CANCELLED)
        self.end_time = utc_now()

    def fail(self, message: str | None = None) -> None:
        self._transition(JobStatus.FAILED)
        if message:
            self.errors.append(message)
        self.end_time = utc_now()

    def add_error(self, message: str) -> None:
        """Record a line-level failure."""
        self.errors.append(message)
        self.error_lines += 1

    def to_status_dict(self) -> dict[str, Any]:
        """Job-status read model."""
        return {
            "jobId": self.job_id,
            "status": self.status.value,
            "processedLines": self.processed_lines,
            "errorLines": self.error_lines,
            "totalLines": self.total_lines,
            "errors": list(self.errors),
            "startTime": isoformat(self.start_time),
            "endTime": isoformat(self.end_time),
        }


@dataclass(frozen=True)
class TimeRange:
    """Closed analysis window; an event is inside when fully contained."""

    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValidationError("Time range bounds must be timezone-aware")
        if self.end <= self.start:
            raise ValidationError(
                "endDate must be after startDate",
                [{"field": "endDate", "message": "must be after startDate"}],
            )

    def contains(self, event: HistoricalEvent) -> bool:
        return event.start_date >= self.start and event.end_date <= self.end

    def to_dict(self) -> dict[str, str | None]:
        return {"startDate": isoformat(self.start), "endDate": isoformat(self.end)}


@dataclass
class SearchFilters:
    """Search criteria, sort and pagination; normalized on construction."""

    name: str | None = None
    start_date_after: datetime | None = None
    end_date_before: datetime | None = None
    sort_by: str = DEFAULT_SORT_BY
    sort_order: str = DEFAULT_SORT_ORDER
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

    def __post_init__(self):
        if self.sort_by not in SORTABLE_FIELDS:
            raise ValidationError(
                f"Invalid sort field: {self.sort_by}",
                [
                    {
                        "field": "sortBy",
                        "message": f"must be one of {sorted(SORTABLE_FIELDS)}",
                    }
                ],
            )
        self.sort_order = (self.sort_order or DEFAULT_SORT_ORDER).lower()
        if self.sort_order not in ("asc", "desc"):
            raise ValidationError(
                f"Invalid sort order: {self.sort_order}",
                [{"field": "sortOrder", "message": "must be 'asc' or 'desc'"}],
            )
        self.page = max(1, int(self.page))
        self.limit = min(max(1, int(self.limit)), MAX_PAGE_SIZE)
        if self.name is not None and not self.name.strip():
            self.name = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class SearchResult:
    events: list[HistoricalEvent]
    total_events: int
    page: int
    limit: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "events": [event.to_dict() for event in self.events],
            "totalEvents": self.total_events,
            "page": self.page,
            "limit": self.limit,
        }
