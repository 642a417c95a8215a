#!/usr/bin/env python3
"""
Tests for EventStore - writes, hierarchy rules, subtree reads, search and
hierarchy assembly.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from chronologicon.errors import (
    ConstraintViolationError,
    HierarchyCycleError,
    NotFoundError,
    ValidationError,
)
from chronologicon.models import EventPatch, SearchFilters
from chronologicon.storage.event_store import EventStore
from chronologicon.validation import parse_time_range
from helpers import uid


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestCreate:
    """Single inserts"""

    def test_create_and_get_roundtrip(self, store, make_event):
        event = make_event(1, "2023-01-01T10:00:00Z", "2023-01-01T11:30:00Z", description="d")

        stored = store.create(event)
        loaded = store.get(uid(1))

        assert stored.created_at is not None
        assert loaded.event_name == "Event 1"
        assert loaded.description == "d"
        assert loaded.start_date == utc(2023, 1, 1, 10, 0)
        assert loaded.end_date == utc(2023, 1, 1, 11, 30)
        assert loaded.duration_minutes == 90
        assert loaded.start_date.tzinfo is not None

    def test_get_is_case_insensitive(self, store, make_event):
        store.create(make_event(1, "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z"))

        assert store.get(uid(1).upper()) is not None

    def test_get_missing_returns_none(self, store):
        assert store.get(uid(99)) is None

    def test_require_missing_raises(self, store):
        with pytest.raises(NotFoundError):
            store.require(uid(99))

    def test_duplicate_id_rejected(self, store, make_event):
        store.create(make_event(1, "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z"))

        with pytest.raises(ConstraintViolationError):
            store.create(make_event(1, "2023-02-01T10:00:00Z", "2023-02-01T11:00:00Z"))

    def test_self_parent_rejected(self, store, make_event):
        with pytest.raises(HierarchyCycleError):
            store.create(make_event(1, "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z", parent=1))

    def test_unknown_parent_rejected(self, store, make_event):
        with pytest.raises(NotFoundError):
            store.create(make_event(2, "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z", parent=1))

        assert store.count() == 0

    def test_metadata_roundtrip(self, store, make_event):
        event = make_event(1, "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z")
        event.metadata = {"source_line": 3, "tags": ["a"]}

        store.create(event)

        assert store.get(uid(1)).metadata == {"source_line": 3, "tags": ["a"]}


class TestBatchCreate:
    """Multi-row inserts in one transaction"""

    def test_batch_with_in_batch_parent(self, store, make_event):
        batch = [
            make_event(2, "2023-01-01T10:10:00Z", "2023-01-01T10:20:00Z", parent=1),
            make_event(1, "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z"),
        ]

        stored = store.batch_create(batch)

        assert len(stored) == 2
        assert store.count() == 2
        assert store.get(uid(2)).parent_event_id == uid(1)

    def test_batch_with_existing_parent(self, store, make_event):
        store.create(make_event(1, "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z"))

        store.batch_create([make_event(2, "2023-01-01T10:10:00Z", "2023-01-01T10:20:00Z", parent=1)])

        assert store.count() == 2

    def test_empty_batch(self, store):
        assert store.batch_create([]) == []

    def test_duplicate_rolls_back_whole_batch(self, store, make_event):
        store.create(make_event(1, "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z"))
        batch = [
            make_event(2, "2023-01-02T10:00:00Z", "2023-01-02T11:00:00Z"),
            make_event(1, "2023-01-03T10:00:00Z", "2023-01-03T11:00:00Z"),
        ]

        with pytest.raises(ConstraintViolationError):
            store.batch_create(batch)

        assert store.count() == 1
        assert store.get(uid(2)) is None

    def test_in_batch_cycle_rejected(self, store, make_event):
        batch = [
            make_event(1, "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z", parent=2),
            make_event(2, "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z", parent=1),
        ]

        with pytest.raises(HierarchyCycleError):
            store.batch_create(batch)

        assert store.count() == 0

    def test_missing_external_parent_rejected(self, store, make_event):
        with pytest.raises(NotFoundError):
            store.batch_create(
                [make_event(2, "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z", parent=7)]
            )


class TestUpdate:
    """Partial updates through EventPatch"""

    @pytest.fixture
    def family(self, store, make_event):
        store.batch_create(
            [
                make_event(1, "2023-01-01T10:00:00Z", "2023-01-01T12:00:00Z"),
                make_event(2, "2023-01-01T10:00:00Z", "2023-01-01T11:00:00Z", parent=1),
                make_event(3, "2023-01-01T10:15:00Z", "2023-01-01T10:45:00Z", parent=2),
                make_event(4, "2023-02-01T10:00:00Z", "2023-02-01T11:00:00Z"),
            ]
        )

    def test_rename(self, store, family):
        updated = store.update(uid(1), EventPatch(event_name="Renamed"))

        assert updated.event_name == "Renamed"
        assert store.get(uid(1)).event_name == "Renamed"
        assert store.get(uid(1)).updated_at >= store.get(uid(1)).created_at

    def test_empty_patch_returns_current(self, store, family):
        assert store.update(uid(1), EventPatch()).event_name == "Event 1"

    def test_merged_dates_must_stay_ordered(self, store, family):
        with pytest.raises(ValidationError):
            store.update(uid(1), EventPatch(end_date=utc(2023, 1, 1, 9, 0)))

    def test_reparent(self, store, family):
        store.update(uid(4), EventPatch(parent_event_id=uid(1)))

        assert store.get(uid(4)).parent_event_id == uid(1)

    def test_detach_to_root(self, store, family):
        store.update(uid(2), EventPatch(parent_event_id=None))

        assert store.get(uid(2)).parent_event_id is None

    def test_parent_to_self_rejected(self, store, family):
        with pytest.raises(HierarchyCycleError):
            store.update(uid(1), EventPatch(parent_event_id=uid(1)))

    def test_parent_to_descendant_rejected(self, store, family):
        with pytest.raises(HierarchyCycleError):
            store.update(uid(1), EventPatch(parent_event_id=uid(3)))

        assert store.get(uid(1)).parent_event_id is None

    def test_unknown_parent_rejected(self, store, family):
        with pytest.raises(NotFoundError):
            store.update(uid(1), EventPatch(parent_event_id=uid(42)))

    def test_unknown_event_rejected(self, store, family):
        with pytest.raises(NotFoundError):
            store.update(uid(42), EventPatch(event_name="x"))


class TestDeleteAndSubtree:
    """Cascading delete and recursive subtree reads"""

    @pytest.fixture
    def tree(self, store, make_event):
        store.batch_create(
            [
                make_event(1, "2023-01-01T08:00:00Z", "2023-01-01T18:00:00Z"),
                make_event(2, "2023-01-01T12:00:00Z", "2023-01-01T13:00:00Z", parent=1),
                make_event(3, "2023-01-01T09:00:00Z", "2023-01-01T10:00:00Z", parent=1),
                make_event(4, "2023-01-01T09:10:00Z", "2023-01-01T09:20:00Z", parent=3),
                make_event(5, "2023-03-01T09:00:00Z", "2023-03-01T10:00:00Z"),
            ]
        )

    def test_subtree_ordered_by_level_then_start(self, store, tree):
        ids = [event.event_id for event in store.get_subtree(uid(1))]

        assert ids == [uid(1), uid(3), uid(2), uid(4)]

    def test_subtree_of_missing_root_is_empty(self, store, tree):
        assert store.get_subtree(uid(42)) == []

    def test_children(self, store, tree):
        assert [e.event_id for e in store.get_children(uid(1))] == [uid(3), uid(2)]

    def test_delete_cascades(self, store, tree):
        removed = store.delete(uid(3))

        assert sorted(removed) == [uid(3), uid(4)]
        assert store.count() == 3
        assert store.get(uid(4)) is None

    def test_delete_root_removes_tree(self, store, tree):
        removed = store.delete(uid(1))

        assert len(removed) == 4
        assert store.count() == 1

    def test_delete_missing_raises(self, store, tree):
        with pytest.raises(NotFoundError):
            store.delete(uid(42))

    def test_parent_map(self, store, tree):
        parent_map = store.get_parent_map()

        assert parent_map[uid(4)] == uid(3)
        assert parent_map[uid(1)] is None
        assert len(parent_map) == 5

    def test_list_in_range_requires_full_containment(self, store, tree):
        window = parse_time_range("2023-01-01T08:30:00Z", "2023-01-01T23:00:00Z")

        ids = [event.event_id for event in store.list_in_range(window)]

        assert ids == [uid(3), uid(4), uid(2)]


class TestSearch:
    """Filtering, sorting and pagination"""

    @pytest.fixture
    def catalog(self, store, make_event):
        store.batch_create(
            [
                make_event(1, "2023-01-01T10:00:00Z", "2023-01-01T10:30:00Z", name="Moon Landing"),
                make_event(2, "2023-02-01T10:00:00Z", "2023-02-01T14:00:00Z", name="Harvest Moon"),
                make_event(3, "2023-03-01T10:00:00Z", "2023-03-01T11:00:00Z", name="Solar Eclipse"),
                make_event(4, "2023-04-01T10:00:00Z", "2023-04-01T10:10:00Z", name="moonrise"),
            ]
        )

    def test_name_filter_is_case_insensitive(self, store, catalog):
        result = store.search(SearchFilters(name="MOON"))

        assert result.total_events == 3
        assert [e.event_id for e in result.events] == [uid(1), uid(2), uid(4)]

    def test_date_filters(self, store, catalog):
        result = store.search(
            SearchFilters(
                start_date_after=utc(2023, 2, 1),
                end_date_before=utc(2023, 3, 31),
            )
        )

        assert [e.event_id for e in result.events] == [uid(2), uid(3)]

    def test_sort_by_duration_desc(self, store, catalog):
        result = store.search(SearchFilters(sort_by="duration_minutes", sort_order="desc"))

        assert [e.event_id for e in result.events] == [uid(2), uid(3), uid(1), uid(4)]

    def test_pagination(self, store, catalog):
        result = store.search(SearchFilters(page=2, limit=3))

        assert result.total_events == 4
        assert [e.event_id for e in result.events] == [uid(4)]
        assert result.to_dict()["page"] == 2
        assert result.to_dict()["limit"] == 3

    def test_invalid_sort_field_rejected(self):
        with pytest.raises(ValidationError):
            SearchFilters(sort_by="metadata")

    def test_limit_and_page_clamped(self):
        filters = SearchFilters(page=0, limit=500)

        assert filters.page == 1
        assert filters.limit == 100


class TestBuildHierarchy:
    """Two-pass tree assembly"""

    def test_every_event_yields_one_node(self, make_event):
        events = [
            make_event(1, "2023-01-01T08:00:00Z", "2023-01-01T18:00:00Z"),
            make_event(2, "2023-01-01T09:00:00Z", "2023-01-01T10:00:00Z", parent=1),
            make_event(3, "2023-01-01T11:00:00Z", "2023-01-01T12:00:00Z", parent=1),
            make_event(4, "2023-01-01T09:10:00Z", "2023-01-01T09:20:00Z", parent=2),
        ]

        root = EventStore.build_hierarchy(events, uid(1))

        def count(node):
            return 1 + sum(count(child) for child in node["children"])

        assert count(root) == len(events)
        assert [c["event_id"] for c in root["children"]] == [uid(2), uid(3)]
        assert root["children"][0]["children"][0]["event_id"] == uid(4)

    def test_missing_root_returns_none(self, make_event):
        events = [make_event(1, "2023-01-01T08:00:00Z", "2023-01-01T18:00:00Z")]

        assert EventStore.build_hierarchy(events, uid(2)) is None
