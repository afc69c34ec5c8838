"""Unit tests for the live feed event log."""
from datetime import datetime, timedelta

from models import EventType, LiveFeedEvent
from database import SessionLocal
from core.event_log import EventLog

BASE = datetime(2024, 5, 1, 8, 0, 0)


def _append(event_log, minutes, event_type=EventType.ROOM_UPDATE, room="007"):
    return event_log.append(
        event_type,
        {"room_number": room, "status": "in_progress"},
        room_number=room,
        meta={"actor": "alice"},
        ts=BASE + timedelta(minutes=minutes),
    )


class TestAppend:
    def test_append_stores_payload_verbatim(self, event_log, db):
        event_id = event_log.append(
            EventType.DND_UPDATE, {"room_number": "101", "dnd_status": True},
            room_number="101", meta={"actor": "bob"}
        )

        event = db.query(LiveFeedEvent).filter_by(id=event_id).one()
        assert event.type == "dnd_update"
        assert event.payload == {"room_number": "101", "dnd_status": True}
        assert event.meta == {"actor": "bob"}

    def test_persistence_toggle_disables_writes(self, db):
        event_log = EventLog(SessionLocal, persist=False)

        assert event_log.append(EventType.SYSTEM, {"action": "clear_logs"}) is None
        assert db.query(LiveFeedEvent).count() == 0

    def test_append_failure_is_swallowed(self, db):
        class BrokenSession:
            def add(self, _):
                raise RuntimeError("database unavailable")

            def rollback(self):
                pass

            def close(self):
                pass

        event_log = EventLog(lambda: BrokenSession(), persist=True)

        assert event_log.append(EventType.SYSTEM, {"action": "clear_logs"}) is None


class TestQueries:
    def test_window_is_newest_first_and_half_open(self, event_log, db):
        for minutes in (0, 10, 20, 30):
            _append(event_log, minutes)

        events = EventLog.query_by_window(
            db, start=BASE + timedelta(minutes=10), end=BASE + timedelta(minutes=30)
        )

        assert [e.ts for e in events] == [BASE + timedelta(minutes=20), BASE + timedelta(minutes=10)]

    def test_window_filters_by_type_and_room(self, event_log, db):
        _append(event_log, 0, EventType.ROOM_UPDATE, "007")
        _append(event_log, 1, EventType.DND_UPDATE, "007")
        _append(event_log, 2, EventType.ROOM_UPDATE, "101")

        events = EventLog.query_by_window(db, types=["room_update"], room_number="007")

        assert len(events) == 1
        assert events[0].type == "room_update"
        assert events[0].room_number == "007"

    def test_query_by_room_respects_limit(self, event_log, db):
        for minutes in range(5):
            _append(event_log, minutes, room="007")
        _append(event_log, 10, room="101")

        events = EventLog.query_by_room(db, "007", limit=3)

        assert len(events) == 3
        assert all(e.room_number == "007" for e in events)
        assert events[0].ts == BASE + timedelta(minutes=4)


class TestRetention:
    def test_purge_removes_only_expired(self, db):
        event_log = EventLog(SessionLocal, persist=True, ttl_days=7)
        now = BASE + timedelta(days=10)
        _append(event_log, 0)
        _append(event_log, 60 * 24 * 5)

        assert event_log.purge_expired(now=now) == 1
        assert db.query(LiveFeedEvent).count() == 1

    def test_zero_ttl_disables_expiry(self, db):
        event_log = EventLog(SessionLocal, persist=True, ttl_days=0)
        _append(event_log, 0)

        assert event_log.purge_expired(now=BASE + timedelta(days=3650)) == 0
        assert db.query(LiveFeedEvent).count() == 1
