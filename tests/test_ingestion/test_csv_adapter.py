#!/usr/bin/env python3
"""
Tests for CsvAdapter - header checks, row normalization and side-file output.
"""

from __future__ import annotations

import pytest

from chronologicon.errors import ValidationError
from chronologicon.ingestion.csv_adapter import CsvAdapter
from helpers import uid

HEADER = "eventId,eventName,startDate,endDate,parentId,researchValue,description"


@pytest.fixture
def adapter() -> CsvAdapter:
    return CsvAdapter()


class TestHeaderChecks:
    """Required column detection"""

    def test_complete_header(self, adapter, write_source):
        path = write_source("events.csv", [HEADER])

        assert adapter.check_header(path) == []

    def test_missing_columns_reported(self, adapter, write_source):
        path = write_source("events.csv", ["eventId,eventName,startDate"])

        assert adapter.check_header(path) == [
            "Missing expected header: endDate",
            "Missing expected header: parentId",
        ]

    def test_header_match_is_case_insensitive_substring(self, adapter, write_source):
        path = write_source(
            "events.csv", ["EVENTID,Event_EventName,startdate,EndDate (UTC),parentid"]
        )

        assert adapter.check_header(path) == []


class TestConvertRow:
    """Single row normalization"""

    @pytest.fixture
    def columns(self, adapter):
        return adapter._column_map(HEADER.split(","))

    def test_appends_utc_marker(self, adapter, columns):
        row = [uid(1), "Launch", "2023-01-01T10:00:00", "2023-01-01T11:00:00", "", "", "Desc"]

        line = adapter.convert_row(row, columns)

        assert line == f"{uid(1)}|Launch|2023-01-01T10:00:00Z|2023-01-01T11:00:00Z|NULL|Desc"

    def test_keeps_existing_zone(self, adapter, columns):
        row = [uid(1), "Launch", "2023-01-01T10:00:00+02:00", "2023-01-01T11:00:00Z", "null", "", ""]

        line = adapter.convert_row(row, columns)

        assert line == f"{uid(1)}|Launch|2023-01-01T10:00:00+02:00|2023-01-01T11:00:00Z|NULL|"

    def test_research_value_folded_into_description(self, adapter, columns):
        row = [uid(2), "Lander", "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z", uid(1), "8.5", "Notes"]

        line = adapter.convert_row(row, columns)

        assert line.endswith(f"|{uid(1)}|Notes (Research Value: 8.5)")

    def test_research_value_without_description(self, adapter, columns):
        row = [uid(2), "Lander", "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z", "", "3", ""]

        assert adapter.convert_row(row, columns).endswith("|NULL|Research Value: 3")

    def test_slash_dates_rejected(self, adapter, columns):
        row = [uid(1), "Launch", "01/01/2023", "2023-01-01T11:00:00Z", "", "", ""]

        with pytest.raises(ValidationError, match="use ISO 8601"):
            adapter.convert_row(row, columns)

    def test_pipe_in_field_rejected(self, adapter, columns):
        row = [uid(1), "Launch | Dock", "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z", "", "", ""]

        with pytest.raises(ValidationError, match="delimiter"):
            adapter.convert_row(row, columns)

    def test_missing_required_field(self, adapter, columns):
        row = [uid(1), "", "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z", "", "", ""]

        with pytest.raises(ValidationError, match="Missing required fields"):
            adapter.convert_row(row, columns)

    def test_empty_row_skipped(self, adapter, columns):
        assert adapter.convert_row(["", "", ""], columns) is None


class TestConvertFile:
    """Streaming conversion and sampling"""

    def test_convert_writes_side_file(self, adapter, write_source):
        path = write_source(
            "events.csv",
            [
                HEADER,
                f'{uid(1)},"Launch, phase one",2023-01-01T10:00:00,2023-01-01T11:00:00,,,',
                f"{uid(2)},Bad,2023/01/01,2023-01-01T11:00:00,,,",
                f"{uid(3)},Dock,2023-01-01T10:10:00Z,2023-01-01T10:20:00Z,{uid(1)},2,Docked",
            ],
        )

        result = adapter.convert(path)

        assert result.output_path == path.with_name("events_converted.txt")
        assert result.converted_rows == 2
        assert result.errors == [
            "Line 3: Invalid date format (use ISO 8601): 2023/01/01",
        ]
        assert result.output_path.read_text().splitlines() == [
            f"{uid(1)}|Launch, phase one|2023-01-01T10:00:00Z|2023-01-01T11:00:00Z|NULL|",
            f"{uid(3)}|Dock|2023-01-01T10:10:00Z|2023-01-01T10:20:00Z|{uid(1)}|Docked (Research Value: 2)",
        ]

    def test_convert_rejects_bad_header(self, adapter, write_source):
        path = write_source("events.csv", ["id,name"])

        with pytest.raises(ValidationError, match="Missing expected header"):
            adapter.convert(path)

    def test_validate_format_samples_rows(self, adapter, write_source):
        rows = [
            f"{uid(n)},Event {n},2023-01-01T10:00:00Z,2023-01-01T11:00:00Z,,," for n in range(1, 9)
        ]
        rows[6] = f"{uid(7)},Late,bad-date,2023-01-01T11:00:00Z,,,"
        rows[1] = f"{uid(2)},Early,2023-01-01T12:00:00Z,2023-01-01T11:00:00Z,,,"
        path = write_source("events.csv", [HEADER, *rows])

        errors = adapter.validate_format(path)

        assert errors == ["Line 3: End date must be after start date"]

    def test_validate_format_missing_file(self, adapter, tmp_path):
        errors = adapter.validate_format(tmp_path / "missing.csv")

        assert len(errors) == 1
        assert errors[0].startswith("File read error:")

    def test_convert_rejects_untokenizable_row(self, adapter, write_source):
        path = write_source(
            "events.csv",
            [
                HEADER,
                f"{uid(1)},Launch,2023-01-01T10:00:00Z,2023-01-01T11:00:00Z,,,",
                f'{uid(2)},Dock,2023-01-01T10:10:00Z,2023-01-01T10:20:00Z,,,"{"x" * 200_000}"',
            ],
        )

        with pytest.raises(ValidationError, match=r"^Line 3: Unreadable CSV row: field larger"):
            adapter.convert(path)

    def test_convert_to_explicit_output(self, adapter, write_source, tmp_path):
        path = write_source(
            "events.csv", [HEADER, f"{uid(1)},Launch,2023-01-01T10:00:00Z,2023-01-01T11:00:00Z,,,"]
        )
        target = tmp_path / "events_job-1_converted.txt"

        result = adapter.convert(path, target)

        assert result.output_path == target
        assert target.read_text().startswith(f"{uid(1)}|Launch|")
        assert not path.with_name("events_converted.txt").exists()
