#!/usr/bin/env python3
"""
CSV Adapter - Normalizes CSV exports into the canonical line format.

Columns are located by case-insensitive header match, so exports with extra
or reordered columns convert as long as the required ones are present. Each
valid row becomes one canonical line in a `<stem>_converted.txt` side file;
invalid rows are collected as errors and skipped.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from chronologicon.constants import (
    CSV_DESCRIPTION_COLUMN,
    CSV_MAX_SAMPLE_LINES,
    CSV_REQUIRED_COLUMNS,
    CSV_RESEARCH_VALUE_COLUMN,
    LINE_DELIMITER,
    NULL_PARENT_TOKEN,
)
from chronologicon.errors import ValidationError
from chronologicon.logger import get_logger
from chronologicon.utils.paths import converted_output_path
from chronologicon.validation import (
    ensure_date_order,
    parse_timestamp,
    validate_description,
    validate_event_id,
    validate_event_name,
    validate_parent_id,
)

csv_logger = get_logger("chronologicon.csv")


@dataclass
class CsvConversionResult:
    output_path: Path
    converted_rows: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def error_rows(self) -> int:
        return len(self.errors)


def _find_column(headers: list[str], wanted: str) -> int | None:
    """Exact (case-insensitive) match first, then substring match."""
    lowered = [header.strip().lower() for header in headers]
    target = wanted.lower()
    if target in lowered:
        return lowered.index(target)
    for index, header in enumerate(lowered):
        if target in header:
            return index
    return None


def _normalize_date(raw: str, field_name: str) -> str:
    text = raw.strip()
    if "/" in text:
        msg = f"Invalid date format (use ISO 8601): {text}"
        raise ValidationError(msg, [{"field": field_name, "message": "not ISO 8601"}])

    candidate = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        has_zone = datetime.fromisoformat(candidate).tzinfo is not None
    except ValueError:
        msg = f"Invalid date format: {text}"
        raise ValidationError(msg, [{"field": field_name, "message": "not ISO 8601"}]) from None

    return text if has_zone else f"{text}Z"


class CsvAdapter:
    """
    Converts CSV files into canonical pipe-delimited lines.

    Required columns: eventId, eventName, startDate, endDate, parentId.
    Optional: a description column and a numeric research value column, which
    is folded into the description.
    """

    def __init__(
        self,
        required_columns: tuple[str, ...] = CSV_REQUIRED_COLUMNS,
        description_column: str = CSV_DESCRIPTION_COLUMN,
        research_value_column: str = CSV_RESEARCH_VALUE_COLUMN,
    ):
        self.required_columns = required_columns
        self.description_column = description_column
        self.research_value_column = research_value_column

    # ------------------------------------------------------------------
    # Header handling
    # ------------------------------------------------------------------

    def _read_header(self, path: str | Path) -> list[str]:
        with open(path, encoding="utf-8-sig", errors="replace", newline="") as f:
            return next(csv.reader(f), [])

    def _missing_columns(self, headers: list[str]) -> list[str]:
        return [
            f"Missing expected header: {column}"
            for column in self.required_columns
            if _find_column(headers, column) is None
        ]

    def check_header(self, path: str | Path) -> list[str]:
        """Missing-column errors for the file's header row (empty when valid)."""
        return self._missing_columns(self._read_header(path))

    def _column_map(self, headers: list[str]) -> dict[str, int | None]:
        columns = {column: _find_column(headers, column) for column in self.required_columns}
        columns[self.description_column] = _find_column(headers, self.description_column)
        columns[self.research_value_column] = _find_column(
            headers, self.research_value_column
        )
        return columns

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    def convert_row(self, row: list[str], columns: dict[str, int | None]) -> str | None:
        """
        Convert one CSV row into a canonical line.

        Returns:
            None for an empty row

        Raises:
            ValidationError: the row cannot be converted
        """
        if not any(value.strip() for value in row):
            return None

        for value in row:
            if LINE_DELIMITER in value:
                msg = f"Field contains the '{LINE_DELIMITER}' delimiter: {value.strip()}"
                raise ValidationError(msg)

        def cell(column: str) -> str:
            index = columns.get(column)
            if index is None or index >= len(row):
                return ""
            return row[index].strip()

        event_id_col, name_col, start_col, end_col, parent_col = self.required_columns

        if not (cell(event_id_col) and cell(name_col) and cell(start_col) and cell(end_col)):
            msg = f"Missing required fields ({', '.join(self.required_columns[:4])})"
            raise ValidationError(msg)

        event_id = validate_event_id(cell(event_id_col))
        event_name = validate_event_name(cell(name_col))

        start_text = _normalize_date(cell(start_col), "startDate")
        end_text = _normalize_date(cell(end_col), "endDate")
        ensure_date_order(
            parse_timestamp(start_text, "startDate"),
            parse_timestamp(end_text, "endDate"),
        )

        parent_id = validate_parent_id(cell(parent_col)) or NULL_PARENT_TOKEN

        description = cell(self.description_column)
        research_value = cell(self.research_value_column)
        if research_value:
            if description:
                description = f"{description} (Research Value: {research_value})"
            else:
                description = f"Research Value: {research_value}"
        description = validate_description(description) or ""

        return LINE_DELIMITER.join(
            [event_id, event_name, start_text, end_text, parent_id, description]
        )

    # ------------------------------------------------------------------
    # File operations
    # ------------------------------------------------------------------

    def validate_format(
        self, path: str | Path, max_sample_lines: int = CSV_MAX_SAMPLE_LINES
    ) -> list[str]:
        """Header check plus conversion of the first data rows; never raises."""
        try:
            with open(path, encoding="utf-8-sig", errors="replace", newline="") as f:
                reader = csv.reader(f)
                headers = next(reader, [])
                errors = self._missing_columns(headers)
                if errors:
                    return errors

                columns = self._column_map(headers)
                for sampled, row in enumerate(reader, start=1):
                    if sampled > max_sample_lines:
                        break
                    try:
                        self.convert_row(row, columns)
                    except ValidationError as e:
                        errors.append(f"Line {reader.line_num}: {e.message}")
        except (OSError, csv.Error) as e:
            return [f"File read error: {e}"]

        return errors

    def convert(
        self, path: str | Path, output_path: str | Path | None = None
    ) -> CsvConversionResult:
        """
        Stream a CSV file into a canonical side file.

        Raises:
            ValidationError: required header columns are missing or a row cannot
                be tokenized
            OSError: the source cannot be read or the output cannot be written
        """
        source = Path(path)
        target = Path(output_path) if output_path else converted_output_path(source)
        result = CsvConversionResult(output_path=target)

        csv_logger.file_op(f"Converting CSV file: {source} -> {target}")

        with open(source, encoding="utf-8-sig", errors="replace", newline="") as src, open(
            target, "w", encoding="utf-8"
        ) as out:
            reader = csv.reader(src)
            headers = next(reader, [])
            missing = self._missing_columns(headers)
            if missing:
                raise ValidationError(
                    f"Invalid CSV header in {source.name}: {'; '.join(missing)}",
                    [{"field": "header", "message": message} for message in missing],
                )

            columns = self._column_map(headers)
            try:
                for row in reader:
                    try:
                        line = self.convert_row(row, columns)
                    except ValidationError as e:
                        result.errors.append(f"Line {reader.line_num}: {e.message}")
                        continue
                    if line is not None:
                        out.write(line + "\n")
                        result.converted_rows += 1
            except csv.Error as e:
                raise ValidationError(f"Line {reader.line_num}: Unreadable CSV row: {e}") from e

        csv_logger.success(
            f"Conversion completed: {result.converted_rows} rows converted, "
            f"{result.error_rows} errors"
        )
        return result
