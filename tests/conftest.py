from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from chronologicon.analysis.temporal_analyzer import TemporalAnalyzer
from chronologicon.ingestion.pipeline import IngestionPipeline
from chronologicon.models import HistoricalEvent
from chronologicon.storage.duckdb_manager import DuckDBManager
from chronologicon.storage.event_store import EventStore
from chronologicon.storage.job_repository import JobRepository
from chronologicon.validation import build_event
from helpers import uid


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path) -> None:
    """Keep tests away from the user's data directory and settings"""
    for name in (
        "CHRONOLOGICON_DATABASE",
        "CHRONOLOGICON_DEV_MODE",
        "CHRONOLOGICON_BATCH_SIZE",
        "CHRONOLOGICON_MAX_PATH_HOPS",
        "CHRONOLOGICON_COUNT_LINES",
        "CHRONOLOGICON_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CHRONOLOGICON_DATA_DIR", str(tmp_path / ".chronologicon"))


@pytest.fixture
def db() -> Generator[DuckDBManager, None, None]:
    """Initialized in-memory DuckDB database"""
    manager = DuckDBManager(":memory:")
    manager.initialize_database()
    try:
        yield manager
    finally:
        manager.close()


@pytest.fixture
def store(db: DuckDBManager) -> EventStore:
    return EventStore(db)


@pytest.fixture
def jobs(db: DuckDBManager) -> JobRepository:
    return JobRepository(db)


@pytest.fixture
def pipeline(store: EventStore, jobs: JobRepository) -> IngestionPipeline:
    return IngestionPipeline(store, jobs, batch_size=10)


@pytest.fixture
def analyzer(store: EventStore) -> TemporalAnalyzer:
    return TemporalAnalyzer(store)


@pytest.fixture
def make_event() -> Callable[..., HistoricalEvent]:
    """Factory for validated events with readable defaults"""

    def _make(
        n: int,
        start: str,
        end: str,
        parent: int | None = None,
        name: str | None = None,
        description: str | None = None,
    ) -> HistoricalEvent:
        return build_event(
            event_id=uid(n),
            event_name=name or f"Event {n}",
            start_date=start,
            end_date=end,
            parent_event_id=uid(parent) if parent is not None else None,
            description=description,
        )

    return _make


@pytest.fixture
def write_source(tmp_path) -> Callable[[str, list[str]], Path]:
    """Write lines to a source file under tmp_path"""

    def _write(name: str, lines: list[str]) -> Path:
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write
