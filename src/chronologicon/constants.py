#!/usr/bin/env python3
"""
Constants and configuration values for Chronologicon.

Consolidates limits, defaults, status values and format markers used across
the store, the ingestion pipeline and the temporal analyzer.
"""

import re
from typing import Final

# ========================================
# Event Validation Limits
# ========================================

UUID_REGEX: Final[re.Pattern[str]] = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
MAX_EVENT_NAME_LENGTH: Final[int] = 255
MAX_DESCRIPTION_LENGTH: Final[int] = 2000
SECONDS_PER_MINUTE: Final[int] = 60

# ========================================
# Ingestion
# ========================================

LINE_DELIMITER: Final[str] = "|"
EXPECTED_FIELDS_COUNT: Final[int] = 6
NULL_PARENT_TOKEN: Final[str] = "NULL"
COMMENT_PREFIX: Final[str] = "#"

DEFAULT_BATCH_SIZE: Final[int] = 100
MIN_BATCH_SIZE: Final[int] = 10
MAX_BATCH_SIZE: Final[int] = 1000

MAX_SAMPLE_LINES: Final[int] = 10
CSV_MAX_SAMPLE_LINES: Final[int] = 5
JOB_ID_PREFIX: Final[str] = "ingest-job"
JOB_ID_SUFFIX_LENGTH: Final[int] = 8

# Supported source files for ingestion and the incoming watcher
CANONICAL_EXTENSIONS: Final[tuple[str, ...]] = (".txt", ".psv")
CSV_EXTENSION: Final[str] = ".csv"
CONVERTED_SUFFIX: Final[str] = "_converted.txt"

# Required CSV header columns (case-insensitive substring match)
CSV_REQUIRED_COLUMNS: Final[tuple[str, ...]] = (
    "eventId",
    "eventName",
    "startDate",
    "endDate",
    "parentId",
)
CSV_DESCRIPTION_COLUMN: Final[str] = "description"
CSV_RESEARCH_VALUE_COLUMN: Final[str] = "researchValue"

# ========================================
# Job Housekeeping
# ========================================

DEFAULT_JOB_LIST_LIMIT: Final[int] = 50
DEFAULT_JOB_RETENTION_DAYS: Final[int] = 30

# ========================================
# Search and Pagination
# ========================================

DEFAULT_PAGE_SIZE: Final[int] = 10
MAX_PAGE_SIZE: Final[int] = 100
DEFAULT_SORT_BY: Final[str] = "start_date"
DEFAULT_SORT_ORDER: Final[str] = "asc"
SORTABLE_FIELDS: Final[frozenset[str]] = frozenset(
    {"start_date", "end_date", "event_name", "duration_minutes"}
)

# ========================================
# Temporal Analysis
# ========================================

# Upper bound on edges walked when searching for an influence path
DEFAULT_MAX_PATH_HOPS: Final[int] = 20

# ========================================
# File and Directory Constants
# ========================================

DATA_DIR_NAME: Final[str] = ".chronologicon"
DATABASE_DIR_NAME: Final[str] = "database"
INCOMING_DIR_NAME: Final[str] = "incoming"
DATABASE_FILE_NAME: Final[str] = "chronologicon.duckdb"
IN_MEMORY_DATABASE: Final[str] = ":memory:"

# ========================================
# Environment Variables
# ========================================

ENV_DATA_DIR: Final[str] = "CHRONOLOGICON_DATA_DIR"
ENV_DEV_MODE: Final[str] = "CHRONOLOGICON_DEV_MODE"
ENV_DATABASE: Final[str] = "CHRONOLOGICON_DATABASE"
ENV_BATCH_SIZE: Final[str] = "CHRONOLOGICON_BATCH_SIZE"
ENV_MAX_PATH_HOPS: Final[str] = "CHRONOLOGICON_MAX_PATH_HOPS"
ENV_COUNT_LINES: Final[str] = "CHRONOLOGICON_COUNT_LINES"
ENV_LOG_LEVEL: Final[str] = "CHRONOLOGICON_LOG_LEVEL"

TRUTHY_VALUES: Final[tuple[str, ...]] = ("1", "true", "yes", "on")

# ========================================
# Incoming Watcher
# ========================================

WATCHER_DEBOUNCE_SECONDS: Final[float] = 1.0
WATCHER_POLL_INTERVAL_SECONDS: Final[float] = 1.0
JOB_POLL_INTERVAL_SECONDS: Final[float] = 0.5
