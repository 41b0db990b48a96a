from datetime import datetime, timezone

import pytest

from lms_calendar.db import SQLiteStore
from lms_calendar.models import EVENTS
from lms_calendar.store import Filter, InMemoryStore, Ordering, eq, gte, lte


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "sqlite":
        return SQLiteStore(str(tmp_path / "calendar.db"))
    return InMemoryStore()


def seed(store):
    rows = [
        {"title": "B", "start_date": "2025-09-10T09:00:00+00:00", "visibility": "private"},
        {"title": "A", "start_date": "2025-09-02T09:00:00+00:00", "visibility": "public"},
        {"title": "C", "start_date": "2025-10-01T09:00:00+00:00", "visibility": "public"},
        {"title": "D", "start_date": None, "visibility": "public"},
        {"title": "E", "start_date": "garbage", "visibility": "public"},
    ]
    return [store.insert(EVENTS, r) for r in rows]


class TestStoreCRUD:
    def test_insert_assigns_id_and_timestamps(self, store):
        created = store.insert(EVENTS, {"title": "Lecture", "start_date": datetime(2025, 9, 1, 9, tzinfo=timezone.utc)})
        assert isinstance(created["id"], int)
        assert created["start_date"] == "2025-09-01T09:00:00+00:00"
        assert "created_at" in created and "updated_at" in created

    def test_update_merges_fields(self, store):
        created = store.insert(EVENTS, {"title": "Lecture", "description": "x"})
        updated = store.update(EVENTS, created["id"], {"title": "Lab"})
        assert updated["title"] == "Lab"
        assert updated["description"] == "x"
        assert updated["id"] == created["id"]

    def test_update_missing_returns_none(self, store):
        assert store.update(EVENTS, 9999, {"title": "Nope"}) is None

    def test_delete(self, store):
        created = store.insert(EVENTS, {"title": "Gone"})
        assert store.delete(EVENTS, created["id"]) is True
        assert store.delete(EVENTS, created["id"]) is False
        assert store.query(EVENTS) == []

    def test_collections_are_separate(self, store):
        store.insert(EVENTS, {"title": "Event"})
        assert store.query("student_tasks") == []


class TestStoreQuery:
    def test_range_filter_on_instants(self, store):
        seed(store)
        rows = store.query(
            EVENTS,
            [
                gte("start_date", datetime(2025, 9, 1, tzinfo=timezone.utc)),
                lte("start_date", datetime(2025, 9, 30, 23, 59, tzinfo=timezone.utc)),
            ],
            Ordering("start_date"),
        )
        assert [r["title"] for r in rows] == ["A", "B"]

    def test_equality_filter(self, store):
        seed(store)
        rows = store.query(EVENTS, [eq("visibility", "private")])
        assert [r["title"] for r in rows] == ["B"]

    def test_ordering_descending_keeps_missing_last(self, store):
        seed(store)
        titles = [r["title"] for r in store.query(EVENTS, ordering=Ordering("start_date", ascending=False))]
        assert [t for t in titles if t in {"A", "B", "C"}] == ["C", "B", "A"]
        assert titles[-1] == "D"

    def test_limit_and_offset(self, store):
        seed(store)
        rows = store.query(EVENTS, ordering=Ordering("title"), limit=2, offset=1)
        assert [r["title"] for r in rows] == ["B", "C"]

    def test_query_returns_copies(self, store):
        seed(store)
        rows = store.query(EVENTS)
        rows[0]["title"] = "mutated"
        assert all(r["title"] != "mutated" for r in store.query(EVENTS))

    def test_unknown_op_rejected(self):
        with pytest.raises(ValueError):
            Filter("start_date", "like", "2025")
