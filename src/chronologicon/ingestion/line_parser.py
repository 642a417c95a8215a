"""
Line Parser - Canonical pipe-delimited record format.

    event_id|event_name|start_date|end_date|parent_id-or-NULL|description

Blank lines and lines starting with '#' carry no record.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from chronologicon.constants import (
    COMMENT_PREFIX,
    EXPECTED_FIELDS_COUNT,
    LINE_DELIMITER,
    MAX_SAMPLE_LINES,
)
from chronologicon.errors import ValidationError
from chronologicon.models import HistoricalEvent, isoformat, utc_now
from chronologicon.validation import build_event


def is_record_line(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and not stripped.startswith(COMMENT_PREFIX)


def parse_line(
    line: str, line_number: int, source_file: str | None = None
) -> HistoricalEvent | None:
    """
    Parse one canonical line into a HistoricalEvent.

    Returns:
        None for blank and comment lines

    Raises:
        ValidationError: wrong field count or a field failing validation
    """
    if not is_record_line(line):
        return None

    parts = line.rstrip("\r\n").split(LINE_DELIMITER)
    if len(parts) != EXPECTED_FIELDS_COUNT:
        msg = f"Expected {EXPECTED_FIELDS_COUNT} fields, got {len(parts)}"
        raise ValidationError(msg)

    event_id, event_name, start_date, end_date, parent_id, description = parts

    metadata: dict[str, Any] = {
        "source_line": line_number,
        "ingested_at": isoformat(utc_now()),
    }
    if source_file:
        metadata["source_file"] = source_file

    return build_event(
        event_id=event_id,
        event_name=event_name,
        start_date=start_date,
        end_date=end_date,
        parent_event_id=parent_id,
        description=description,
        metadata=metadata,
    )


def count_lines(path: str | Path) -> int:
    """Number of record lines in a canonical file."""
    with open(path, encoding="utf-8", errors="replace") as f:
        return sum(1 for line in f if is_record_line(line))


def validate_file(
    path: str | Path, max_sample_lines: int = MAX_SAMPLE_LINES
) -> dict[str, Any]:
    """
    Parse the first lines of a file without storing anything.

    Returns:
        {isValid, errors, sampledLines}; read failures are reported, not raised
    """
    errors: list[str] = []
    sampled = 0

    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            for line_number, line in enumerate(f, start=1):
                if line_number > max_sample_lines:
                    break
                sampled = line_number
                try:
                    parse_line(line, line_number)
                except ValidationError as e:
                    errors.append(f"Line {line_number}: {e.message}")
    except OSError as e:
        return {
            "isValid": False,
            "errors": [f"File read error: {e}"],
            "sampledLines": 0,
        }

    return {"isValid": not errors, "errors": errors, "sampledLines": sampled}
