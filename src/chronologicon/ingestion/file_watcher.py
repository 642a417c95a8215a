#!/usr/bin/env python3
"""
File Watcher - Submits files dropped into the incoming directory.

Uses watchdog to monitor the incoming directory for new and modified source
files (.txt, .psv, .csv). Events arrive on the observer thread and are
debounced into a pending set; an asyncio background loop drains the set and
submits each file to the ingestion pipeline.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from threading import Lock

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from chronologicon.constants import WATCHER_DEBOUNCE_SECONDS, WATCHER_POLL_INTERVAL_SECONDS
from chronologicon.errors import SourceUnavailableError, StoreUnavailableError, ValidationError
from chronologicon.ingestion.pipeline import IngestionPipeline
from chronologicon.logger import get_logger
from chronologicon.utils.paths import is_ingestible

watcher_logger = get_logger("chronologicon.watcher")


class IncomingFileHandler(FileSystemEventHandler):
    """
    File system event handler for ingestion sources.

    Queues created and modified source files, debouncing bursts of
    modification events while a file is still being written.
    """

    def __init__(self, debounce_delay: float = WATCHER_DEBOUNCE_SECONDS):
        super().__init__()
        self._pending_files: set[Path] = set()
        self._processing_lock = Lock()
        self._last_seen: dict[Path, float] = {}
        self._debounce_delay = debounce_delay

    def on_created(self, event):
        if not event.is_directory and is_ingestible(event.src_path):
            file_path = Path(event.src_path)
            watcher_logger.tracking(f"New source file detected: {file_path.name}")
            self._queue(file_path)

    def on_modified(self, event):
        if event.is_directory or not is_ingestible(event.src_path):
            return

        self._queue(Path(event.src_path))

    def _queue(self, file_path: Path) -> None:
        with self._processing_lock:
            self._pending_files.add(file_path)
            self._last_seen[file_path] = time.monotonic()

    def get_ready_files(self) -> set[Path]:
        """Pop files whose last event is older than the debounce delay."""
        now = time.monotonic()
        with self._processing_lock:
            ready = {
                path
                for path in self._pending_files
                if now - self._last_seen.get(path, 0.0) >= self._debounce_delay
            }
            self._pending_files -= ready
            return ready

    def pending_count(self) -> int:
        with self._processing_lock:
            return len(self._pending_files)


class IncomingWatcher:
    """
    Watches the incoming directory and feeds the ingestion pipeline.

    A file is submitted again only when its modification time changed since
    the last submission.
    """

    def __init__(
        self,
        incoming_dir: Path,
        pipeline: IngestionPipeline,
        *,
        debounce_delay: float = WATCHER_DEBOUNCE_SECONDS,
        poll_interval: float = WATCHER_POLL_INTERVAL_SECONDS,
    ):
        self.incoming_dir = Path(incoming_dir).resolve()
        self.pipeline = pipeline
        self.poll_interval = poll_interval

        self.observer = Observer()
        self.handler = IncomingFileHandler(debounce_delay)
        self.running = False

        self._processing_task: asyncio.Task | None = None
        self._submitted: dict[Path, float] = {}
        self.submitted_jobs: list[str] = []

        watcher_logger.status("Incoming watcher initialized")
        watcher_logger.config(f"Incoming directory: {self.incoming_dir}")

    async def start(self) -> None:
        """
        Start watching; returns once stop() is called.

        Raises:
            StoreUnavailableError: a submission failed because the store is gone;
                the watcher is stopped before the error propagates
        """
        if self.running:
            watcher_logger.warning("Incoming watcher already running")
            return

        watcher_logger.startup("Starting incoming watcher...")
        self.incoming_dir.mkdir(parents=True, exist_ok=True)

        self.observer.schedule(self.handler, str(self.incoming_dir), recursive=False)
        self.observer.start()
        self.running = True

        try:
            await self._submit_existing_files()
            self._processing_task = asyncio.create_task(self._background_processor())
            watcher_logger.success("Incoming watcher started")

            while self.running:
                done, _ = await asyncio.wait({self._processing_task}, timeout=self.poll_interval)
                if done and not self._processing_task.cancelled():
                    self._processing_task.result()
        except BaseException:
            await self.stop()
            raise

    async def stop(self) -> None:
        if not self.running:
            return

        watcher_logger.status("Stopping incoming watcher...")
        self.running = False

        if self.observer.is_alive():
            self.observer.stop()
            self.observer.join()

        if self._processing_task and not self._processing_task.done():
            self._processing_task.cancel()
            try:
                await self._processing_task
            except asyncio.CancelledError:
                pass

        watcher_logger.success("Incoming watcher stopped")

    async def _submit_existing_files(self) -> None:
        existing = sorted(p for p in self.incoming_dir.iterdir() if p.is_file() and is_ingestible(p))
        if not existing:
            watcher_logger.info("No existing source files found")
            return
        for file_path in existing:
            await self.submit_file(file_path)

    async def _background_processor(self) -> None:
        while self.running:
            await self.submit_ready_files()
            await asyncio.sleep(self.poll_interval)

    async def submit_ready_files(self) -> list[str]:
        """Submit every debounced file; returns the new job ids."""
        job_ids = []
        for file_path in sorted(self.handler.get_ready_files()):
            job_id = await self.submit_file(file_path)
            if job_id:
                job_ids.append(job_id)
        return job_ids

    async def submit_file(self, file_path: Path) -> str | None:
        """
        Submit one file unless it is unchanged since its last submission.

        Rejected files are logged and skipped; an unreachable store propagates.
        """
        if not file_path.exists():
            watcher_logger.warning(f"File no longer exists: {file_path}")
            return None

        mtime = file_path.stat().st_mtime
        if self._submitted.get(file_path) == mtime:
            watcher_logger.tracking(f"Skipping unchanged file: {file_path.name}")
            return None

        try:
            job_id = await self.pipeline.submit(file_path)
        except StoreUnavailableError:
            raise
        except (SourceUnavailableError, ValidationError) as e:
            watcher_logger.error(f"Rejected {file_path.name}: {e}")
            return None

        self._submitted[file_path] = mtime
        self.submitted_jobs.append(job_id)
        watcher_logger.file_op(f"Submitted {file_path.name} as job {job_id}")
        return job_id
