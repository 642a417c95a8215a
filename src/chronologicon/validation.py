#!/usr/bin/env python3
"""
Validation - Field rules shared by direct requests and file ingestion.

Request payloads are checked against the JSON schemas in schemas/json before
the field rules run. The same field rules back the ingestion line parser,
where a failure is recorded against the job instead of being raised to a
caller.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any

import jsonschema

from chronologicon.constants import (
    MAX_DESCRIPTION_LENGTH,
    MAX_EVENT_NAME_LENGTH,
    NULL_PARENT_TOKEN,
    UUID_REGEX,
)
from chronologicon.errors import ValidationError
from chronologicon.logger import get_logger
from chronologicon.models import EventPatch, HistoricalEvent, TimeRange

validation_logger = get_logger("chronologicon.validation")

SCHEMA_DIR = Path(__file__).resolve().parent / "schemas" / "json"
EVENT_SCHEMA = "historical_event_schema.json"
PATCH_SCHEMA = "event_patch_schema.json"


@lru_cache(maxsize=None)
def load_schema(schema_filename: str) -> dict[str, Any]:
    """Load a JSON schema from schemas/json."""
    schema_path = SCHEMA_DIR / schema_filename
    with open(schema_path, encoding="utf-8") as f:
        schema = json.load(f)
    validation_logger.debug(f"Loaded schema: {schema_filename}")
    return schema


def validate_against_schema(payload: Any, schema_filename: str) -> None:
    """
    Validate a payload against a JSON schema.

    Raises:
        ValidationError: with one detail entry per schema violation
    """
    validator = jsonschema.Draft7Validator(load_schema(schema_filename))
    violations = sorted(validator.iter_errors(payload), key=lambda e: list(e.path))
    if not violations:
        return

    details = []
    for violation in violations:
        field = ".".join(str(p) for p in violation.path) or "$"
        details.append({"field": field, "message": violation.message})

    summary = "; ".join(f"{d['field']}: {d['message']}" for d in details)
    raise ValidationError(f"Validation failed: {summary}", details)


def parse_timestamp(value: str | datetime | None, field_name: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    A trailing 'Z' means UTC; a value without zone information is taken as UTC.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(
            f"Missing required field: {field_name}",
            [{"field": field_name, "message": "is required"}],
        )

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(
                f"Invalid date format for {field_name}: {value}",
                [{"field": field_name, "message": "must be an ISO-8601 timestamp"}],
            ) from None
    else:
        raise ValidationError(
            f"Invalid date format for {field_name}: {value!r}",
            [{"field": field_name, "message": "must be an ISO-8601 timestamp"}],
        )

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def validate_event_id(value: str | None, field_name: str = "event_id") -> str:
    if value is None or not str(value).strip():
        raise ValidationError(
            f"Missing required field: {field_name}",
            [{"field": field_name, "message": "is required"}],
        )
    candidate = str(value).strip()
    if not UUID_REGEX.match(candidate):
        raise ValidationError(
            f"Invalid UUID format for {field_name}: {candidate}",
            [{"field": field_name, "message": "must be a UUID"}],
        )
    return candidate.lower()


def validate_parent_id(value: str | None) -> str | None:
    """NULL token, empty and None all mean 'no parent'."""
    if value is None:
        return None
    candidate = str(value).strip()
    if not candidate or candidate.upper() == NULL_PARENT_TOKEN:
        return None
    return validate_event_id(candidate, "parent_event_id")


def validate_event_name(name: str | None) -> str:
    if name is None or not str(name).strip():
        raise ValidationError(
            "Missing required field: event_name",
            [{"field": "event_name", "message": "must not be empty"}],
        )
    trimmed = str(name).strip()
    if len(trimmed) > MAX_EVENT_NAME_LENGTH:
        raise ValidationError(
            f"Event name too long (max {MAX_EVENT_NAME_LENGTH} characters)",
            [{"field": "event_name", "message": "too long"}],
        )
    return trimmed


def validate_description(description: str | None) -> str | None:
    if description is None:
        return None
    trimmed = str(description).strip()
    if len(trimmed) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Description too long (max {MAX_DESCRIPTION_LENGTH} characters)",
            [{"field": "description", "message": "too long"}],
        )
    return trimmed or None


def ensure_date_order(start: datetime, end: datetime) -> None:
    if end <= start:
        raise ValidationError(
            "End date must be after start date",
            [{"field": "end_date", "message": "must be after start_date"}],
        )


def build_event(
    *,
    event_name: str | None,
    start_date: str | datetime | None,
    end_date: str | datetime | None,
    event_id: str | None = None,
    description: str | None = None,
    parent_event_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> HistoricalEvent:
    """Validate and normalize raw fields into a HistoricalEvent."""
    start = parse_timestamp(start_date, "start_date")
    end = parse_timestamp(end_date, "end_date")
    ensure_date_order(start, end)

    return HistoricalEvent(
        event_id=(
            validate_event_id(event_id) if event_id is not None else str(uuid.uuid4())
        ),
        event_name=validate_event_name(event_name),
        description=validate_description(description),
        start_date=start,
        end_date=end,
        parent_event_id=validate_parent_id(parent_event_id),
        metadata=dict(metadata or {}),
    )


def event_from_payload(payload: dict[str, Any]) -> HistoricalEvent:
    """Build an event from a creation request payload."""
    validate_against_schema(payload, EVENT_SCHEMA)
    return build_event(
        event_id=payload.get("event_id"),
        event_name=payload.get("event_name"),
        description=payload.get("description"),
        start_date=payload.get("start_date"),
        end_date=payload.get("end_date"),
        parent_event_id=payload.get("parent_event_id"),
        metadata=payload.get("metadata"),
    )


def patch_from_payload(payload: dict[str, Any]) -> EventPatch:
    """
    Build an EventPatch from an update request payload.

    Unknown fields are rejected by the patch schema.
    """
    validate_against_schema(payload, PATCH_SCHEMA)

    patch = EventPatch()
    if "event_name" in payload:
        patch.event_name = validate_event_name(payload["event_name"])
    if "description" in payload:
        patch.description = validate_description(payload["description"])
    if "start_date" in payload:
        patch.start_date = parse_timestamp(payload["start_date"], "start_date")
    if "end_date" in payload:
        patch.end_date = parse_timestamp(payload["end_date"], "end_date")
    if "parent_event_id" in payload:
        patch.parent_event_id = validate_parent_id(payload["parent_event_id"])
    if "metadata" in payload:
        patch.metadata = dict(payload["metadata"])
    return patch


def parse_time_range(start: str | datetime, end: str | datetime) -> TimeRange:
    return TimeRange(parse_timestamp(start, "startDate"), parse_timestamp(end, "endDate"))
