import os
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

# Ensure we default to memory backend and UTC for tests to avoid filesystem and host-zone dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")
os.environ.setdefault("CALENDAR_TIMEZONE", "UTC")

from lms_calendar.errors import StoreError  # noqa: E402
from lms_calendar.main import app  # noqa: E402
from lms_calendar.models import EVENTS, TASKS  # noqa: E402
from lms_calendar.routers.calendar import _get_store, get_clock  # noqa: E402
from lms_calendar.store import InMemoryStore  # noqa: E402

NOW = datetime(2025, 8, 15, 12, 0, tzinfo=timezone.utc)

client = TestClient(app)


class BrokenStore(InMemoryStore):
    def query(self, collection, filters=(), ordering=None, limit=None, offset=0):
        raise StoreError("connection refused")


@pytest.fixture
def store():
    s = InMemoryStore()
    s.insert(EVENTS, {"title": "Office hours", "start_date": "2025-09-10T09:00:00+00:00", "end_date": "2025-09-10T10:00:00+00:00", "course_id": 7})
    s.insert(TASKS, {"title": "Daily reading", "start_date": "2025-09-01", "due_date": "2025-09-01", "recurrence_type": "daily"})
    s.insert(TASKS, {"title": "Old essay", "due_date": "2025-08-10", "status": "pending", "recurrence_type": "weekdays"})
    app.dependency_overrides[_get_store] = lambda: s
    app.dependency_overrides[get_clock] = lambda: (lambda: NOW)
    yield s
    app.dependency_overrides.clear()


def event_payload(title="Review session", **extra):
    payload = {"title": title, "start_date": "2025-09-12T14:00:00"}
    payload.update(extra)
    return payload


def assert_event_shape(event: dict):
    for key in ["id", "title", "event_type", "start_date", "end_date", "all_day", "visibility", "course_id"]:
        assert key in event
    assert isinstance(event["id"], int)
    datetime.fromisoformat(event["start_date"].replace("Z", "+00:00"))


class TestHealth:
    def test_health_check(self):
        res = client.get("/")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert data["backend"] in ("memory", "sqlite")
        assert "timezone" in data


class TestCalendarWindow:
    def test_month_window(self, store):
        res = client.get("/api/v1/calendar?date=2025-09-15")
        assert res.status_code == 200
        data = res.json()
        assert data["window"] == {"start": "2025-08-31", "end": "2025-10-04", "view": "month"}
        assert data["today"] == "2025-08-15"
        assert data["prev_date"] == "2025-08-15"
        assert data["next_date"] == "2025-10-15"
        assert len(data["days"]) == 35

    def test_day_buckets(self, store):
        data = client.get("/api/v1/calendar?date=2025-09-15").json()
        by_day = {d["day"]: d for d in data["days"]}
        assert by_day["2025-09-10"]["event_count"] == 1
        assert by_day["2025-09-11"]["event_count"] == 0
        # daily reading every day from Sep 1; the old essay is due outside the fetched range
        assert by_day["2025-09-10"]["task_count"] == 1
        assert by_day["2025-09-06"]["task_count"] == 1
        assert by_day["2025-08-31"]["task_count"] == 0
        assert not any(d["has_overdue"] for d in data["days"])

    def test_overdue_task_in_current_month(self, store):
        data = client.get("/api/v1/calendar").json()
        by_day = {d["day"]: d for d in data["days"]}
        assert by_day["2025-08-18"]["task_count"] == 1
        assert by_day["2025-08-18"]["has_overdue"] is True
        assert by_day["2025-08-16"]["task_count"] == 0
        assert by_day["2025-09-01"]["task_count"] == 2

    def test_agenda_for_selected_day(self, store):
        data = client.get("/api/v1/calendar?date=2025-09-15&selected=2025-09-10").json()
        assert data["selected_date"] == "2025-09-10"
        assert [item["kind"] for item in data["agenda"]] == ["event", "task"]
        assert data["agenda"][0]["event"]["title"] == "Office hours"
        assert data["agenda"][0]["event"]["course_id"] == "7"

    def test_week_view(self, store):
        data = client.get("/api/v1/calendar?date=2025-09-10&view=week").json()
        assert data["window"] == {"start": "2025-09-07", "end": "2025-09-13", "view": "week"}
        assert len(data["days"]) == 7
        assert data["next_date"] == "2025-09-17"

    def test_defaults_to_today(self, store):
        data = client.get("/api/v1/calendar").json()
        assert data["reference_date"] == "2025-08-15"
        assert data["selected_date"] == "2025-08-15"
        today = [d for d in data["days"] if d["is_today"]]
        assert [d["day"] for d in today] == ["2025-08-15"]

    def test_course_and_search_filters(self, store):
        data = client.get("/api/v1/calendar?date=2025-09-15&course=private").json()
        assert all(d["event_count"] == 0 for d in data["days"])
        data = client.get("/api/v1/calendar?q=essay").json()
        assert {o["title"] for o in data["upcoming"]} == {"Old essay"}
        assert all(o["is_overdue"] for o in data["upcoming"])

    def test_occurrence_shape(self, store):
        data = client.get("/api/v1/calendar?date=2025-09-15").json()
        occ = data["upcoming"][0]
        for key in ["task_id", "title", "occurrence_date", "is_overdue", "recurrence_type", "recurrence_days"]:
            assert key in occ
        assert len(data["upcoming"]) == 6

    def test_invalid_view(self, store):
        res = client.get("/api/v1/calendar?view=year")
        assert res.status_code == 422
        assert res.json()["error"] == "ValidationError"

    def test_store_failure_is_bad_gateway(self):
        app.dependency_overrides[_get_store] = lambda: BrokenStore()
        try:
            res = client.get("/api/v1/calendar?date=2025-09-15")
        finally:
            app.dependency_overrides.clear()
        assert res.status_code == 502
        assert res.json() == {"error": "StoreError", "message": "connection refused"}


class TestEventMutations:
    def test_create_event(self, store):
        res = client.post("/api/v1/calendar/events", json=event_payload(), headers={"X-User-Id": "instructor-9"})
        assert res.status_code == 201
        event = res.json()
        assert_event_shape(event)
        assert event["title"] == "Review session"
        assert event["event_type"] == "reminder"
        assert event["course_id"] == "private"
        assert event["created_by"] == "instructor-9"
        assert event["start_date"].startswith("2025-09-12T14:00:00")
        assert event["end_date"] == event["start_date"]

    def test_created_event_shows_in_window(self, store):
        client.post("/api/v1/calendar/events", json=event_payload(course_id="7"))
        data = client.get("/api/v1/calendar?date=2025-09-15&course=7").json()
        by_day = {d["day"]: d for d in data["days"]}
        assert by_day["2025-09-12"]["event_count"] == 1

    def test_unknown_event_type_defaults_to_reminder(self, store):
        res = client.post("/api/v1/calendar/events", json=event_payload(event_type="party"))
        assert res.status_code == 201
        assert res.json()["event_type"] == "reminder"

    def test_create_validation_error_title_empty(self, store):
        res = client.post("/api/v1/calendar/events", json={"title": "   "})
        assert res.status_code == 422
        body = res.json()
        assert body.get("error") == "ValidationError"
        assert body.get("message") == "Request validation failed"
        assert isinstance(body.get("detail"), list)
        assert len(store.query(EVENTS)) == 1

    def test_patch_event(self, store):
        eid = client.post("/api/v1/calendar/events", json=event_payload(description="Bring notes")).json()["id"]
        res = client.patch(f"/api/v1/calendar/events/{eid}", json={"title": "Moved review", "event_type": "exam"})
        assert res.status_code == 200
        patched = res.json()
        assert patched["id"] == eid
        assert patched["title"] == "Moved review"
        assert patched["event_type"] == "exam"
        assert patched["description"] == "Bring notes"

    def test_patch_not_found(self, store):
        res = client.patch("/api/v1/calendar/events/424242", json={"title": "Nope"})
        assert res.status_code == 404
        assert res.json() == {"error": "StoreError", "message": "Event not found"}

    def test_patch_validation_error_bad_date(self, store):
        eid = client.post("/api/v1/calendar/events", json=event_payload()).json()["id"]
        res = client.patch(f"/api/v1/calendar/events/{eid}", json={"start_date": "not-a-date"})
        assert res.status_code == 422
        assert res.json().get("message") == "Request validation failed"

    def test_delete_event(self, store):
        eid = client.post("/api/v1/calendar/events", json=event_payload(title="ToDelete")).json()["id"]
        res_del = client.delete(f"/api/v1/calendar/events/{eid}")
        assert res_del.status_code == 204
        assert res_del.text == ""
        res_again = client.delete(f"/api/v1/calendar/events/{eid}")
        assert res_again.status_code == 404
