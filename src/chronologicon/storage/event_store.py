#!/usr/bin/env python3
"""
Event Store - Data access for historical events and hierarchy assembly.

Wraps the historical_events table. Parent existence and acyclicity are
checked here before any write reaches DuckDB; descendant lookups use a
recursive CTE.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from chronologicon.errors import HierarchyCycleError, NotFoundError
from chronologicon.logger import get_logger
from chronologicon.models import (
    EventPatch,
    HistoricalEvent,
    SearchFilters,
    SearchResult,
    TimeRange,
    utc_now,
)
from chronologicon.storage.duckdb_manager import DuckDBManager
from chronologicon.validation import ensure_date_order

store_logger = get_logger("chronologicon.event_store")

EVENT_COLUMNS = (
    "event_id",
    "event_name",
    "description",
    "start_date",
    "end_date",
    "parent_event_id",
    "metadata",
    "created_at",
    "updated_at",
)
_SELECT_COLUMNS = ", ".join(EVENT_COLUMNS)
_ROW_PLACEHOLDERS = "(" + ", ".join("?" for _ in EVENT_COLUMNS) + ")"

# Sort whitelist -> SQL expression
_SORT_EXPRESSIONS = {
    "start_date": "start_date",
    "end_date": "end_date",
    "event_name": "event_name",
    "duration_minutes": "date_diff('second', start_date, end_date)",
}


def to_db_timestamp(value: datetime | None) -> datetime | None:
    """Aware datetime -> naive UTC for a DuckDB TIMESTAMP column."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def from_db_timestamp(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


def row_to_event(row: dict[str, Any]) -> HistoricalEvent:
    metadata = row.get("metadata")
    return HistoricalEvent(
        event_id=row["event_id"],
        event_name=row["event_name"],
        description=row.get("description"),
        start_date=from_db_timestamp(row["start_date"]),
        end_date=from_db_timestamp(row["end_date"]),
        parent_event_id=row.get("parent_event_id"),
        metadata=json.loads(metadata) if metadata else {},
        created_at=from_db_timestamp(row.get("created_at")),
        updated_at=from_db_timestamp(row.get("updated_at")),
    )


def _event_params(event: HistoricalEvent) -> list[Any]:
    return [
        event.event_id,
        event.event_name,
        event.description,
        to_db_timestamp(event.start_date),
        to_db_timestamp(event.end_date),
        event.parent_event_id,
        json.dumps(event.metadata, default=str),
        to_db_timestamp(event.created_at),
        to_db_timestamp(event.updated_at),
    ]


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


def _key(event_id: str) -> str:
    return event_id.strip().lower()


class EventStore:
    """
    Historical event persistence on top of a DuckDBManager.

    Every method either completes or raises; DuckDB failures surface as
    StoreError subclasses translated by the manager.
    """

    def __init__(self, db: DuckDBManager):
        self.db = db

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, event: HistoricalEvent) -> HistoricalEvent:
        """
        Persist a single event.

        Raises:
            HierarchyCycleError: if the event names itself as parent
            NotFoundError: if the parent does not exist
            ConstraintViolationError: on a duplicate event_id
        """
        if event.parent_event_id is not None:
            if event.parent_event_id == event.event_id:
                raise HierarchyCycleError(
                    f"Event {event.event_id} cannot be its own parent",
                    [{"field": "parent_event_id", "message": "self reference"}],
                )
            if not self.exists(event.parent_event_id):
                raise NotFoundError(
                    f"Parent event not found: {event.parent_event_id}"
                )

        now = utc_now()
        stored = replace(event, created_at=now, updated_at=now)
        self.db.execute(
            f"INSERT INTO historical_events ({_SELECT_COLUMNS}) VALUES {_ROW_PLACEHOLDERS}",
            _event_params(stored),
        )
        store_logger.tracking(f"Created event {stored.event_id}")
        return stored

    def batch_create(self, events: Sequence[HistoricalEvent]) -> list[HistoricalEvent]:
        """
        Persist events in one transaction with a single multi-row insert.

        Parents may be existing rows or members of the same batch. Any failure
        rolls back the whole batch and is raised.
        """
        if not events:
            return []

        self._check_batch_hierarchy(events)

        now = utc_now()
        stored = [replace(event, created_at=now, updated_at=now) for event in events]
        values_sql = ", ".join(_ROW_PLACEHOLDERS for _ in stored)
        parameters: list[Any] = []
        for event in stored:
            parameters.extend(_event_params(event))

        with self.db.transaction():
            self.db.execute(
                f"INSERT INTO historical_events ({_SELECT_COLUMNS}) VALUES {values_sql}",
                parameters,
            )

        store_logger.tracking(f"Batch inserted {len(stored)} events")
        return stored

    def _check_batch_hierarchy(self, events: Sequence[HistoricalEvent]) -> None:
        batch_parents = {event.event_id: event.parent_event_id for event in events}

        for event in events:
            if event.parent_event_id == event.event_id:
                raise HierarchyCycleError(
                    f"Event {event.event_id} cannot be its own parent"
                )

        # Existing rows never point at new ids, so any cycle lies inside the batch
        for start_id in batch_parents:
            seen = {start_id}
            current = batch_parents[start_id]
            while current is not None and current in batch_parents:
                if current in seen:
                    raise HierarchyCycleError(
                        f"Parent chain of event {start_id} forms a cycle"
                    )
                seen.add(current)
                current = batch_parents[current]

        external = {
            parent
            for parent in batch_parents.values()
            if parent is not None and parent not in batch_parents
        }
        missing = external - self.existing_ids(external)
        if missing:
            raise NotFoundError(f"Parent event not found: {sorted(missing)[0]}")

    def update(self, event_id: str, patch: EventPatch) -> HistoricalEvent:
        """
        Apply a partial update.

        Raises:
            NotFoundError: unknown event or unknown new parent
            ValidationError: merged end_date not after start_date
            HierarchyCycleError: new parent is the event or one of its descendants
        """
        current = self.require(event_id)
        if patch.is_empty:
            return current

        merged = patch.apply_to(current)
        ensure_date_order(merged.start_date, merged.end_date)

        if patch.touches_parent() and merged.parent_event_id is not None:
            new_parent = merged.parent_event_id
            if new_parent == current.event_id:
                raise HierarchyCycleError(
                    f"Event {current.event_id} cannot be its own parent",
                    [{"field": "parent_event_id", "message": "self reference"}],
                )
            if not self.exists(new_parent):
                raise NotFoundError(f"Parent event not found: {new_parent}")
            descendants = {event.event_id for event in self.get_subtree(current.event_id)}
            if new_parent in descendants:
                raise HierarchyCycleError(
                    f"Event {new_parent} is a descendant of {current.event_id}",
                    [{"field": "parent_event_id", "message": "would create a cycle"}],
                )

        merged.updated_at = utc_now()
        self.db.execute(
            """
            UPDATE historical_events
            SET event_name = ?, description = ?, start_date = ?, end_date = ?,
                parent_event_id = ?, metadata = ?, updated_at = ?
            WHERE event_id = ?
            """,
            [
                merged.event_name,
                merged.description,
                to_db_timestamp(merged.start_date),
                to_db_timestamp(merged.end_date),
                merged.parent_event_id,
                json.dumps(merged.metadata, default=str),
                to_db_timestamp(merged.updated_at),
                current.event_id,
            ],
        )
        store_logger.tracking(f"Updated event {current.event_id}")
        return merged

    def delete(self, event_id: str) -> list[str]:
        """Delete an event and its whole subtree; returns the removed ids."""
        self.require(event_id)
        removed = [event.event_id for event in self.get_subtree(event_id)]

        with self.db.transaction():
            self.db.execute(
                f"DELETE FROM historical_events WHERE event_id IN ({_placeholders(len(removed))})",
                removed,
            )

        store_logger.status(f"Deleted event {removed[0]} and {len(removed) - 1} descendants")
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, event_id: str) -> HistoricalEvent | None:
        rows = self.db.execute_query(
            f"SELECT {_SELECT_COLUMNS} FROM historical_events WHERE event_id = ?",
            [_key(event_id)],
        )
        return row_to_event(rows[0]) if rows else None

    def require(self, event_id: str) -> HistoricalEvent:
        event = self.get(event_id)
        if event is None:
            raise NotFoundError(f"Event not found: {event_id}")
        return event

    def exists(self, event_id: str) -> bool:
        return bool(self.existing_ids([event_id]))

    def existing_ids(self, event_ids: Iterable[str]) -> set[str]:
        keys = sorted({_key(event_id) for event_id in event_ids})
        if not keys:
            return set()
        rows = self.db.execute_query(
            f"SELECT event_id FROM historical_events WHERE event_id IN ({_placeholders(len(keys))})",
            keys,
        )
        return {row["event_id"] for row in rows}

    def get_many(self, event_ids: Iterable[str]) -> dict[str, HistoricalEvent]:
        keys = sorted({_key(event_id) for event_id in event_ids})
        if not keys:
            return {}
        rows = self.db.execute_query(
            f"SELECT {_SELECT_COLUMNS} FROM historical_events "
            f"WHERE event_id IN ({_placeholders(len(keys))})",
            keys,
        )
        return {row["event_id"]: row_to_event(row) for row in rows}

    def get_subtree(self, root_id: str) -> list[HistoricalEvent]:
        """Root plus all transitive descendants, ordered by level then start."""
        rows = self.db.execute_query(
            f"""
            WITH RECURSIVE subtree(event_id, level) AS (
                SELECT event_id, 0 FROM historical_events WHERE event_id = ?
                UNION ALL
                SELECT e.event_id, s.level + 1
                FROM historical_events e
                JOIN subtree s ON e.parent_event_id = s.event_id
            )
            SELECT {", ".join(f"h.{column}" for column in EVENT_COLUMNS)}
            FROM subtree s
            JOIN historical_events h ON h.event_id = s.event_id
            ORDER BY s.level, h.start_date, h.event_id
            """,
            [_key(root_id)],
        )
        return [row_to_event(row) for row in rows]

    def get_children(self, event_id: str) -> list[HistoricalEvent]:
        rows = self.db.execute_query(
            f"SELECT {_SELECT_COLUMNS} FROM historical_events "
            "WHERE parent_event_id = ? ORDER BY start_date, event_id",
            [_key(event_id)],
        )
        return [row_to_event(row) for row in rows]

    def get_parent_map(self) -> dict[str, str | None]:
        """event_id -> parent_event_id for every stored event."""
        rows = self.db.execute_query(
            "SELECT event_id, parent_event_id FROM historical_events"
        )
        return {row["event_id"]: row["parent_event_id"] for row in rows}

    def list_in_range(self, time_range: TimeRange) -> list[HistoricalEvent]:
        """Events fully contained in the range, ordered by start then id."""
        rows = self.db.execute_query(
            f"SELECT {_SELECT_COLUMNS} FROM historical_events "
            "WHERE start_date >= ? AND end_date <= ? "
            "ORDER BY start_date, event_id",
            [to_db_timestamp(time_range.start), to_db_timestamp(time_range.end)],
        )
        return [row_to_event(row) for row in rows]

    def count(self) -> int:
        return self.db.get_table_count("historical_events")

    def search(self, filters: SearchFilters) -> SearchResult:
        """Filtered, sorted, paginated listing with the total match count."""
        clauses: list[str] = []
        parameters: list[Any] = []

        if filters.name:
            clauses.append("contains(lower(event_name), lower(?))")
            parameters.append(filters.name.strip())
        if filters.start_date_after is not None:
            clauses.append("start_date >= ?")
            parameters.append(to_db_timestamp(filters.start_date_after))
        if filters.end_date_before is not None:
            clauses.append("end_date <= ?")
            parameters.append(to_db_timestamp(filters.end_date_before))

        where_sql = f" WHERE {' AND '.join(clauses)}" if clauses else ""

        total_rows = self.db.execute_query(
            f"SELECT COUNT(*) AS total FROM historical_events{where_sql}",
            list(parameters),
        )
        total = total_rows[0]["total"] if total_rows else 0

        order_sql = (
            f"{_SORT_EXPRESSIONS[filters.sort_by]} {filters.sort_order.upper()}, event_id ASC"
        )
        rows = self.db.execute_query(
            f"SELECT {_SELECT_COLUMNS} FROM historical_events{where_sql} "
            f"ORDER BY {order_sql} LIMIT ? OFFSET ?",
            [*parameters, filters.limit, filters.offset],
        )

        return SearchResult(
            events=[row_to_event(row) for row in rows],
            total_events=total,
            page=filters.page,
            limit=filters.limit,
        )

    # ------------------------------------------------------------------
    # Hierarchy assembly
    # ------------------------------------------------------------------

    @staticmethod
    def build_hierarchy(
        events: Iterable[HistoricalEvent], root_id: str
    ) -> dict[str, Any] | None:
        """
        Assemble a nested tree from a flat event list.

        Two passes: index every event as a node, then attach each node to its
        parent's children. Nodes keep the input order among siblings. Returns
        the root node, or None when root_id is not among the events.
        """
        nodes: dict[str, dict[str, Any]] = {}
        order: list[HistoricalEvent] = []
        for event in events:
            node = event.to_dict()
            node["children"] = []
            nodes[event.event_id] = node
            order.append(event)

        for event in order:
            if event.event_id == root_id or event.parent_event_id is None:
                continue
            parent = nodes.get(event.parent_event_id)
            if parent is not None:
                parent["children"].append(nodes[event.event_id])

        return nodes.get(root_id)
