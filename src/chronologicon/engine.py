#!/usr/bin/env python3
"""
Chronologicon Engine - Component wiring and lifecycle management.

Builds the database manager, event store, job repository, ingestion pipeline
and temporal analyzer once, in dependency order, and tears them down in
reverse. There is no process-wide instance; callers own the engine.
"""

from __future__ import annotations

from pathlib import Path

from chronologicon.analysis.temporal_analyzer import TemporalAnalyzer
from chronologicon.config import Settings, get_incoming_dir, load_settings
from chronologicon.errors import ChronologiconError
from chronologicon.ingestion.file_watcher import IncomingWatcher
from chronologicon.ingestion.pipeline import IngestionPipeline
from chronologicon.logger import get_logger
from chronologicon.storage.duckdb_manager import DuckDBManager
from chronologicon.storage.event_store import EventStore
from chronologicon.storage.job_repository import JobRepository

engine_logger = get_logger("chronologicon.engine")


class ChronologiconEngine:
    """
    Owns every component for one database.

    Usage:
        with ChronologiconEngine.from_settings() as engine:
            engine.store.create(...)
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.running = False

        self.db_manager: DuckDBManager | None = None
        self.store: EventStore | None = None
        self.jobs: JobRepository | None = None
        self.pipeline: IngestionPipeline | None = None
        self.analyzer: TemporalAnalyzer | None = None

        engine_logger.config(f"Database: {settings.database_path}")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ChronologiconEngine:
        return cls(settings or load_settings())

    def start(self) -> None:
        """Start all components in dependency order."""
        if self.running:
            engine_logger.warning("Engine already running")
            return

        engine_logger.startup("Starting Chronologicon components...")

        try:
            self.db_manager = DuckDBManager(self.settings.database_path)
            self.db_manager.initialize_database()

            self.store = EventStore(self.db_manager)
            self.jobs = JobRepository(self.db_manager)
            self.pipeline = IngestionPipeline(
                self.store,
                self.jobs,
                batch_size=self.settings.batch_size,
                count_lines_upfront=self.settings.count_lines_upfront,
            )
            self.analyzer = TemporalAnalyzer(self.store, self.settings.max_path_hops)
        except (ChronologiconError, OSError) as e:
            engine_logger.error(f"Failed to start components: {e}")
            self.stop()
            raise

        self.running = True
        engine_logger.success("All components started")

    def stop(self) -> None:
        """Release the database connection; running jobs are not awaited."""
        if self.db_manager:
            self.db_manager.close()
        self.db_manager = None
        self.store = None
        self.jobs = None
        self.pipeline = None
        self.analyzer = None
        if self.running:
            self.running = False
            engine_logger.success("All components stopped")

    async def shutdown(self) -> None:
        """Cancel running ingestion jobs, then stop."""
        if self.pipeline:
            await self.pipeline.shutdown()
        self.stop()

    def create_watcher(self, incoming_dir: Path | None = None) -> IncomingWatcher:
        if not self.pipeline:
            msg = "Engine must be started before creating a watcher"
            raise RuntimeError(msg)
        return IncomingWatcher(incoming_dir or get_incoming_dir(), self.pipeline)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
