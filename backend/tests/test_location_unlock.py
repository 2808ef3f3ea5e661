"""Tests for the exact-location reveal — host unlock and scheduled unlock."""
from datetime import timedelta

from sqlalchemy.exc import OperationalError

from app.models.event import Event
from app.models.location_unlock_log import LocationUnlockLog, UnlockAction
from app.models.notification import NotificationKind
from app.services import location_service
from tests.conftest import ALICE_ID, BOB_ID, HOST_ID, add_attendee, auth_headers, create_event, queue_items


def _unlock(client, user_id, event_id):
    return client.post("/api/events/unlock-location", json={"eventId": event_id}, headers=auth_headers(user_id))


def _unlock_logs(db):
    db.expire_all()
    return db.query(LocationUnlockLog).all()


class TestUnlockLocation:
    """POST /api/events/unlock-location."""

    def test_host_unlocks_location(self, client, db):
        """First unlock flips the flag and reports the attendee count."""
        event = create_event(db)
        add_attendee(db, event.event_id, ALICE_ID)
        add_attendee(db, event.event_id, BOB_ID)

        resp = _unlock(client, HOST_ID, event.event_id)
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["success"] is True
        assert body["alreadyUnlocked"] is False
        assert body["attendeeCount"] == 2

        db.expire_all()
        assert db.get(Event, event.event_id).exact_location_visible is True

    def test_unlock_enqueues_location_unlocked(self, client, db):
        """A fresh unlock queues exactly one location_unlocked job."""
        event = create_event(db)
        _unlock(client, HOST_ID, event.event_id)
        items = queue_items(db, NotificationKind.location_unlocked)
        assert len(items) == 1
        assert items[0].event_id == event.event_id

    def test_second_unlock_is_idempotent(self, client, db):
        """Second call → alreadyUnlocked true and no extra job."""
        event = create_event(db)
        assert _unlock(client, HOST_ID, event.event_id).json()["alreadyUnlocked"] is False
        resp = _unlock(client, HOST_ID, event.event_id)
        assert resp.status_code == 200
        assert resp.json()["alreadyUnlocked"] is True
        assert len(queue_items(db)) == 1
        db.expire_all()
        assert db.get(Event, event.event_id).exact_location_visible is True

    def test_host_unlock_is_logged_once(self, client, db):
        """Fresh unlock writes one audit row; the idempotent repeat writes none."""
        event = create_event(db, title="Rooftop Jazz")
        _unlock(client, HOST_ID, event.event_id)
        _unlock(client, HOST_ID, event.event_id)
        logs = _unlock_logs(db)
        assert len(logs) == 1
        assert logs[0].event_id == event.event_id
        assert logs[0].event_title == "Rooftop Jazz"
        assert logs[0].action == UnlockAction.unlocked
        assert logs[0].details == "Unlocked by host"

    def test_non_host_is_forbidden(self, client, db):
        """Attendees cannot reveal the location."""
        event = create_event(db)
        resp = _unlock(client, ALICE_ID, event.event_id)
        assert resp.status_code == 403
        db.expire_all()
        assert db.get(Event, event.event_id).exact_location_visible is False

    def test_missing_event_id_is_400(self, client):
        """Body without eventId → 400 MISSING_EVENT_ID."""
        resp = client.post("/api/events/unlock-location", json={}, headers=auth_headers(HOST_ID))
        assert resp.status_code == 400
        assert resp.json()["code"] == "MISSING_EVENT_ID"

    def test_unknown_event_is_404(self, client):
        """Unknown event → 404."""
        assert _unlock(client, HOST_ID, "nope").status_code == 404

    def test_unauthenticated_is_401(self, client, db):
        """No bearer token → 401."""
        event = create_event(db)
        resp = client.post("/api/events/unlock-location", json={"eventId": event.event_id})
        assert resp.status_code == 401

    def test_requires_exact_location(self, client, db):
        """Nothing to reveal → 400 NO_EXACT_LOCATION."""
        event = create_event(db, place_exact=None)
        resp = _unlock(client, HOST_ID, event.event_id)
        assert resp.status_code == 400
        assert resp.json()["code"] == "NO_EXACT_LOCATION"


class TestScheduledUnlock:
    """Automatic reveal shortly before the start."""

    def test_unlocks_events_inside_the_lead_window(self, db):
        """Starting in 30 minutes → unlocked; in 3 hours or already started → untouched."""
        soon = create_event(db, starts_in=timedelta(minutes=30))
        later = create_event(db, starts_in=timedelta(hours=3))
        started = create_event(db, starts_in=-timedelta(minutes=10))
        no_place = create_event(db, starts_in=timedelta(minutes=20), place_exact=None)

        summary = location_service.unlock_due_events(db, lead_minutes=60)
        assert summary.unlocked == [soon.event_id]
        assert summary.processed == 3
        assert summary.skipped == 2
        assert summary.errors == 0

        db.expire_all()
        assert db.get(Event, soon.event_id).exact_location_visible is True
        for event_id in (later.event_id, started.event_id, no_place.event_id):
            assert db.get(Event, event_id).exact_location_visible is False
        assert len(queue_items(db, NotificationKind.location_unlocked)) == 1

    def test_every_candidate_is_logged(self, db):
        """One audit row per processed event: unlocked or skipped with a reason."""
        soon = create_event(db, title="Rooftop Jazz", starts_in=timedelta(minutes=30))
        later = create_event(db, starts_in=timedelta(hours=3))

        location_service.unlock_due_events(db, lead_minutes=60)
        logs = {log.event_id: log for log in _unlock_logs(db)}
        assert set(logs) == {soon.event_id, later.event_id}
        assert logs[soon.event_id].action == UnlockAction.unlocked
        assert logs[soon.event_id].event_title == "Rooftop Jazz"
        assert logs[soon.event_id].details == "Auto-unlocked 60 minutes before start"
        assert logs[later.event_id].action == UnlockAction.skipped
        assert logs[later.event_id].details == "Not in 60-minute unlock window"

    def test_old_events_are_not_considered(self, db):
        """Hidden events dated before yesterday are filtered out by the query."""
        create_event(db, starts_in=-timedelta(days=3))
        create_event(db, starts_in=-timedelta(days=30))

        summary = location_service.unlock_due_events(db, lead_minutes=60)
        assert summary.processed == 0
        assert _unlock_logs(db) == []

    def test_update_failure_is_logged_and_run_continues(self, db, monkeypatch):
        """A database error on one event → error row; the next event is still unlocked."""
        broken = create_event(db, starts_in=timedelta(minutes=20))
        healthy = create_event(db, starts_in=timedelta(minutes=40))
        mark_visible = location_service._mark_visible

        def flaky_mark_visible(session, event_id):
            if event_id == broken.event_id:
                raise OperationalError("UPDATE events", {}, Exception("database is locked"))
            return mark_visible(session, event_id)

        monkeypatch.setattr(location_service, "_mark_visible", flaky_mark_visible)
        summary = location_service.unlock_due_events(db, lead_minutes=60)
        assert summary.errors == 1
        assert summary.unlocked == [healthy.event_id]

        logs = {log.event_id: log for log in _unlock_logs(db)}
        assert logs[broken.event_id].action == UnlockAction.error
        assert "database is locked" in logs[broken.event_id].details
        assert logs[healthy.event_id].action == UnlockAction.unlocked

    def test_log_write_failure_does_not_block_unlock(self, db, db_engine):
        """Missing audit table → unlock and notification still happen."""
        LocationUnlockLog.__table__.drop(db_engine)
        soon = create_event(db, starts_in=timedelta(minutes=30))

        summary = location_service.unlock_due_events(db, lead_minutes=60)
        assert summary.unlocked == [soon.event_id]
        db.expire_all()
        assert db.get(Event, soon.event_id).exact_location_visible is True
        assert len(queue_items(db, NotificationKind.location_unlocked)) == 1

    def test_already_visible_events_are_skipped(self, db):
        """No second job for an event the host already unlocked."""
        create_event(db, starts_in=timedelta(minutes=30), exact_location_visible=True)
        summary = location_service.unlock_due_events(db, lead_minutes=60)
        assert summary.unlocked == []
        assert summary.processed == 0
        assert queue_items(db) == []

    def test_endpoint_requires_cron_secret(self, client, test_settings, monkeypatch):
        """Configured cron secret must match the header."""
        monkeypatch.setattr(test_settings, "CRON_SECRET", "tick")
        assert client.post("/api/events/unlock-due").status_code == 401
        resp = client.post("/api/events/unlock-due", headers={"x-cron-secret": "tick"})
        assert resp.status_code == 200
        assert resp.json()["unlocked"] == 0

    def test_endpoint_reports_summary(self, client, db):
        """Response carries processed, unlocked, ids, skipped and errors."""
        soon = create_event(db, starts_in=timedelta(minutes=30))
        create_event(db, starts_in=timedelta(hours=3))
        resp = client.post("/api/events/unlock-due")
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["processed"] == 2
        assert body["unlocked"] == 1
        assert body["ids"] == [soon.event_id]
        assert body["skipped"] == 1
        assert body["errors"] == 0
