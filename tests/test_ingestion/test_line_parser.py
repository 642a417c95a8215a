#!/usr/bin/env python3
"""
Tests for the canonical line parser, file sampling and line counting.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from chronologicon.errors import ValidationError
from chronologicon.ingestion.line_parser import count_lines, parse_line, validate_file
from helpers import canonical_line, uid


class TestParseLine:
    """parse_line field handling"""

    def test_valid_root_line(self):
        line = canonical_line(1, "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z", description="First")

        event = parse_line(line + "\n", 7, source_file="/data/events.txt")

        assert event.event_id == uid(1)
        assert event.event_name == "Event 1"
        assert event.parent_event_id is None
        assert event.description == "First"
        assert event.duration_minutes == 60
        assert event.metadata["source_line"] == 7
        assert event.metadata["source_file"] == "/data/events.txt"
        assert "ingested_at" in event.metadata

    def test_child_line(self):
        line = canonical_line(2, "2023-01-01T10:00:00Z", "2023-01-01T10:30:00Z", parent=1)

        assert parse_line(line, 1).parent_event_id == uid(1)

    def test_empty_description_becomes_none(self):
        line = canonical_line(1, "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z")

        assert parse_line(line, 1).description is None

    def test_naive_timestamp_is_utc(self):
        line = canonical_line(1, "2023-01-01T10:00:00", "2023-01-01T11:00:00")

        event = parse_line(line, 1)

        assert event.start_date == datetime(2023, 1, 1, 10, tzinfo=timezone.utc)

    def test_offset_timestamp_normalized_to_utc(self):
        line = canonical_line(1, "2023-01-01T12:00:00+02:00", "2023-01-01T13:00:00+02:00")

        assert parse_line(line, 1).start_date == datetime(2023, 1, 1, 10, tzinfo=timezone.utc)

    @pytest.mark.parametrize("line", ["", "   ", "# comment line", "  # indented comment"])
    def test_blank_and_comment_lines_skipped(self, line):
        assert parse_line(line, 1) is None

    def test_wrong_field_count(self):
        with pytest.raises(ValidationError, match="Expected 6 fields, got 4"):
            parse_line(f"{uid(1)}|Name|2023-01-01T10:00:00Z|2023-01-01T11:00:00Z", 1)

    def test_invalid_uuid(self):
        with pytest.raises(ValidationError, match="Invalid UUID"):
            parse_line("not-a-uuid|Name|2023-01-01T10:00:00Z|2023-01-01T11:00:00Z|NULL|", 1)

    def test_invalid_parent_uuid(self):
        with pytest.raises(ValidationError, match="parent_event_id"):
            parse_line(f"{uid(1)}|Name|2023-01-01T10:00:00Z|2023-01-01T11:00:00Z|oops|", 1)

    def test_invalid_date(self):
        with pytest.raises(ValidationError, match="Invalid date format"):
            parse_line(canonical_line(1, "yesterday", "2023-01-01T11:00:00Z"), 1)

    def test_end_before_start(self):
        with pytest.raises(ValidationError, match="End date must be after start date"):
            parse_line(canonical_line(1, "2023-01-01T11:00:00Z", "2023-01-01T10:00:00Z"), 1)

    def test_equal_start_and_end_rejected(self):
        with pytest.raises(ValidationError):
            parse_line(canonical_line(1, "2023-01-01T10:00:00Z", "2023-01-01T10:00:00Z"), 1)

    def test_empty_name(self):
        with pytest.raises(ValidationError, match="event_name"):
            parse_line(f"{uid(1)}|   |2023-01-01T10:00:00Z|2023-01-01T11:00:00Z|NULL|", 1)


class TestFileHelpers:
    """count_lines and validate_file"""

    def test_count_lines_skips_blank_and_comment(self, write_source):
        path = write_source(
            "events.txt",
            [
                "# header comment",
                canonical_line(1, "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z"),
                "",
                canonical_line(2, "2023-01-02T10:00:00Z", "2023-01-02T11:00:00Z"),
            ],
        )

        assert count_lines(path) == 2

    def test_validate_file_reports_bad_sample_lines(self, write_source):
        lines = [
            canonical_line(n, "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z") for n in range(1, 13)
        ]
        lines[2] = "broken|line"
        path = write_source("events.txt", lines)

        result = validate_file(path)

        assert result["isValid"] is False
        assert result["errors"] == ["Line 3: Expected 6 fields, got 2"]
        assert result["sampledLines"] == 10

    def test_validate_file_clean(self, write_source):
        path = write_source(
            "events.txt", [canonical_line(1, "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z")]
        )

        assert validate_file(path) == {"isValid": True, "errors": [], "sampledLines": 1}

    def test_validate_missing_file(self, tmp_path):
        result = validate_file(tmp_path / "missing.txt")

        assert result["isValid"] is False
        assert result["errors"][0].startswith("File read error:")
        assert result["sampledLines"] == 0
