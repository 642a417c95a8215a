"""
Chronologicon storage layer.

DuckDB-backed persistence for historical events and ingestion jobs.
"""

from chronologicon.storage.duckdb_manager import DuckDBManager, translate_error
from chronologicon.storage.event_store import EventStore
from chronologicon.storage.job_repository import JobRepository

__all__ = [
    "DuckDBManager",
    "EventStore",
    "JobRepository",
    "translate_error",
]
