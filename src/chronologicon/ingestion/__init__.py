"""
Chronologicon ingestion pipeline.

Parses canonical pipe-delimited files (and CSV exports through the CSV
adapter) into historical events, committing them in batches under tracked
ingestion jobs.
"""

from chronologicon.ingestion.csv_adapter import CsvAdapter, CsvConversionResult
from chronologicon.ingestion.file_watcher import IncomingFileHandler, IncomingWatcher
from chronologicon.ingestion.line_parser import count_lines, parse_line, validate_file
from chronologicon.ingestion.pipeline import IngestionPipeline, clamp_batch_size

__all__ = [
    "CsvAdapter",
    "CsvConversionResult",
    "IncomingFileHandler",
    "IncomingWatcher",
    "IngestionPipeline",
    "clamp_batch_size",
    "count_lines",
    "parse_line",
    "validate_file",
]
