#!/usr/bin/env python3
"""
Temporal Analyzer - Read-only analysis over the stored event graph.

Timelines, pairwise overlaps, the largest gap in a window, the shortest
relational path between two events and aggregate statistics. Results are
deterministic for a given store state.
"""

from __future__ import annotations

from collections import Counter, deque
from itertools import pairwise
from typing import Any

from chronologicon.constants import DEFAULT_MAX_PATH_HOPS
from chronologicon.errors import NotFoundError, ValidationError
from chronologicon.logger import get_logger
from chronologicon.models import HistoricalEvent, TimeRange, isoformat, minutes_between
from chronologicon.storage.event_store import EventStore

analyzer_logger = get_logger("chronologicon.analyzer")


def _ordered(events: list[HistoricalEvent]) -> list[HistoricalEvent]:
    return sorted(events, key=lambda e: (e.start_date, e.event_id))


class TemporalAnalyzer:
    """
    Analysis queries over an EventStore.

    Features:
    - Hierarchical timeline of a root event
    - Overlapping pairs in a window (sorted-interval sweep)
    - Largest gap between consecutive events in a window
    - Shortest undirected parent/child path with a hop bound
    - Window statistics and per-tree hierarchy analysis
    """

    def __init__(self, store: EventStore, max_path_hops: int = DEFAULT_MAX_PATH_HOPS):
        if max_path_hops < 1:
            raise ValidationError("max_path_hops must be at least 1")
        self.store = store
        self.max_path_hops = max_path_hops

    def get_timeline(self, root_id: str) -> dict[str, Any]:
        """Nested tree of the root event and all its descendants."""
        subtree = self.store.get_subtree(root_id)
        if not subtree:
            raise NotFoundError(f"Event not found: {root_id}")
        return EventStore.build_hierarchy(subtree, subtree[0].event_id)

    def find_overlaps(self, time_range: TimeRange) -> list[dict[str, Any]]:
        """
        Every pair of events inside the range whose intervals intersect.

        Pairs are reported once as event summaries, ordered by id inside the
        pair, sorted by overlap duration descending then by ids.
        """
        active: list[HistoricalEvent] = []
        overlaps: list[tuple[int, HistoricalEvent, HistoricalEvent]] = []

        for event in _ordered(self.store.list_in_range(time_range)):
            active = [other for other in active if other.end_date > event.start_date]
            for other in active:
                first, second = sorted((other, event), key=lambda item: item.event_id)
                minutes = minutes_between(
                    max(other.start_date, event.start_date),
                    min(other.end_date, event.end_date),
                )
                overlaps.append((minutes, first, second))
            active.append(event)

        overlaps.sort(key=lambda item: (-item[0], item[1].event_id, item[2].event_id))
        analyzer_logger.tracking(f"Found {len(overlaps)} overlapping pairs in {time_range.to_dict()}")

        return [
            {
                "overlappingEventPairs": [first.summary(), second.summary()],
                "overlap_duration_minutes": minutes,
            }
            for minutes, first, second in overlaps
        ]

    def find_temporal_gap(self, time_range: TimeRange) -> dict[str, Any] | None:
        """
        Largest positive gap between consecutive events (by start) in the range.

        Returns:
            None with fewer than two events or when no positive gap exists
        """
        events = _ordered(self.store.list_in_range(time_range))
        best: tuple[HistoricalEvent, HistoricalEvent] | None = None
        best_seconds = 0.0

        for current, following in pairwise(events):
            seconds = (following.start_date - current.end_date).total_seconds()
            if seconds > best_seconds:
                best, best_seconds = (current, following), seconds

        if best is None:
            return None

        preceding, succeeding = best
        return {
            "startOfGap": isoformat(preceding.end_date),
            "endOfGap": isoformat(succeeding.start_date),
            "durationMinutes": minutes_between(preceding.end_date, succeeding.start_date),
            "precedingEvent": preceding.summary(),
            "succeedingEvent": succeeding.summary(),
        }

    def find_influence_path(
        self, source_id: str, target_id: str, max_hops: int | None = None
    ) -> dict[str, Any] | None:
        """
        Shortest chain of parent/child links from source to target.

        Edges are undirected; the path may hold at most `max_hops` edges.
        The total duration sums every event on the path.

        Raises:
            NotFoundError: either endpoint does not exist
        """
        hops = self.max_path_hops if max_hops is None else max_hops
        if hops < 0:
            raise ValidationError("max_hops must not be negative")

        source = self.store.require(source_id)
        target = self.store.require(target_id)

        path_ids = self._shortest_path(source.event_id, target.event_id, hops)
        if path_ids is None:
            analyzer_logger.tracking(
                f"No path from {source.event_id} to {target.event_id} within {hops} hops"
            )
            return None

        events = self.store.get_many(path_ids)
        path = [
            {
                "event_id": event_id,
                "event_name": events[event_id].event_name,
                "duration_minutes": events[event_id].duration_minutes,
            }
            for event_id in path_ids
        ]
        return {
            "sourceEventId": source.event_id,
            "targetEventId": target.event_id,
            "shortestPath": path,
            "totalDurationMinutes": sum(step["duration_minutes"] for step in path),
        }

    def _shortest_path(self, source_id: str, target_id: str, max_hops: int) -> list[str] | None:
        if source_id == target_id:
            return [source_id]

        adjacency: dict[str, list[str]] = {}
        for child, parent in self.store.get_parent_map().items():
            if parent is None:
                continue
            adjacency.setdefault(child, []).append(parent)
            adjacency.setdefault(parent, []).append(child)
        for neighbours in adjacency.values():
            neighbours.sort()

        previous: dict[str, str | None] = {source_id: None}
        queue = deque([(source_id, 0)])
        while queue:
            current, depth = queue.popleft()
            if depth >= max_hops:
                continue
            for neighbour in adjacency.get(current, ()):
                if neighbour in previous:
                    continue
                previous[neighbour] = current
                if neighbour == target_id:
                    path = [neighbour]
                    while previous[path[-1]] is not None:
                        path.append(previous[path[-1]])
                    return path[::-1]
                queue.append((neighbour, depth + 1))
        return None

    def get_statistics(self, time_range: TimeRange) -> dict[str, Any]:
        """Aggregates over the events fully inside the range."""
        events = self.store.list_in_range(time_range)
        if not events:
            return {
                "totalEvents": 0,
                "rootEvents": 0,
                "childEvents": 0,
                "averageDurationMinutes": 0,
                "minDurationMinutes": 0,
                "maxDurationMinutes": 0,
                "maxHierarchyDepth": 0,
                "averageHierarchyDepth": 0,
                "timeSpanMinutes": 0,
                "earliestEvent": None,
                "latestEvent": None,
            }

        depths = self._depths(self.store.get_parent_map())
        durations = [event.duration_minutes for event in events]
        event_depths = [depths.get(event.event_id, 0) for event in events]
        roots = sum(1 for event in events if event.is_root)
        earliest = min(event.start_date for event in events)
        latest = max(event.end_date for event in events)

        return {
            "totalEvents": len(events),
            "rootEvents": roots,
            "childEvents": len(events) - roots,
            "averageDurationMinutes": round(sum(durations) / len(durations)),
            "minDurationMinutes": min(durations),
            "maxDurationMinutes": max(durations),
            "maxHierarchyDepth": max(event_depths),
            "averageHierarchyDepth": round(sum(event_depths) / len(event_depths)),
            "timeSpanMinutes": minutes_between(earliest, latest),
            "earliestEvent": isoformat(earliest),
            "latestEvent": isoformat(latest),
        }

    @staticmethod
    def _depths(parent_map: dict[str, str | None]) -> dict[str, int]:
        """Distance of every event to the root of its tree."""
        depths: dict[str, int] = {}
        for event_id in parent_map:
            chain = []
            current: str | None = event_id
            while current is not None and current not in depths:
                chain.append(current)
                current = parent_map.get(current)
            base = depths[current] + 1 if current is not None else 0
            for offset, node in enumerate(reversed(chain)):
                depths[node] = base + offset
        return depths

    def hierarchy_analysis(self, root_id: str) -> dict[str, Any]:
        """Size, depth and duration profile of one event tree."""
        subtree = self.store.get_subtree(root_id)
        if not subtree:
            raise NotFoundError(f"Event not found: {root_id}")

        root = subtree[0]
        depth_of = {root.event_id: 0}
        for event in subtree[1:]:
            depth_of[event.event_id] = depth_of[event.parent_event_id] + 1

        durations = [event.duration_minutes for event in subtree]
        distribution = Counter(depth_of.values())

        return {
            "rootEventId": root.event_id,
            "rootEventName": root.event_name,
            "totalEvents": len(subtree),
            "maxDepth": max(distribution),
            "averageDurationMinutes": round(sum(durations) / len(durations)),
            "totalDurationMinutes": sum(durations),
            "depthDistribution": {str(depth): distribution[depth] for depth in sorted(distribution)},
        }
