"""
Path utilities for database locations and ingestion sources.
"""

from __future__ import annotations

import os
from pathlib import Path

from chronologicon.constants import (
    CANONICAL_EXTENSIONS,
    CONVERTED_SUFFIX,
    CSV_EXTENSION,
    IN_MEMORY_DATABASE,
)


def normalize_database_path(path: str | Path | None) -> str:
    """
    Normalize a database path.

    Args:
        path: Database path (':memory:' or a file path)

    Returns:
        str: ':memory:' or an absolute path
    """
    if path is None or str(path) == IN_MEMORY_DATABASE:
        return IN_MEMORY_DATABASE
    return str(Path(path).expanduser().resolve())


def is_readable_file(path: str | Path) -> bool:
    """True when path names an existing regular file we can open for reading."""
    candidate = Path(path)
    return candidate.is_file() and os.access(candidate, os.R_OK)


def is_csv_source(path: str | Path) -> bool:
    return Path(path).suffix.lower() == CSV_EXTENSION


def converted_output_path(csv_path: str | Path, tag: str | None = None) -> Path:
    """Side file written by the CSV adapter next to its source.

    A tag (the ingestion job id) keeps concurrent conversions of one source apart.
    """
    source = Path(csv_path)
    stem = f"{source.stem}_{tag}" if tag else source.stem
    return source.with_name(f"{stem}{CONVERTED_SUFFIX}")


def is_ingestible(path: str | Path) -> bool:
    """Whether the incoming watcher should submit this file."""
    name = Path(path).name
    if name.startswith(".") or name.endswith(CONVERTED_SUFFIX):
        return False
    suffix = Path(path).suffix.lower()
    return suffix in CANONICAL_EXTENSIONS or suffix == CSV_EXTENSION
