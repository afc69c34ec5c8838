"""Integration tests for the action processor: store, event log and broadcast together."""
from datetime import datetime, timedelta
import threading

import pytest

from models import CleaningLog, LiveFeedEvent, RoomDND, RoomPriority
from database import SessionLocal
from core.action_processor import (
    ActionProcessor,
    CheckRoom,
    ClearAll,
    FinishCleaning,
    ResetCleaning,
    SetDnd,
    SetInspectionItem,
    SetNote,
    SetPriority,
    StartCleaning,
    SubmitInspection,
)
from core.event_log import EventLog
from core.exceptions import (
    ActionConflict,
    HousekeepingException,
    MissingActor,
    RecordNotFound,
    UnknownRoom,
)
from core.rooms import all_room_numbers

from conftest import TZ, RecordingBroadcaster, RecordingPush


def _feed(db):
    return db.query(LiveFeedEvent).order_by(LiveFeedEvent.id).all()


class TestCleaningLifecycle:
    def test_start_then_finish(self, processor, broadcaster, push, db):
        start = datetime(2024, 5, 1, 9, 0)
        processor.dispatch(db, StartCleaning("007", "alice", start_time=start))
        result = processor.dispatch(db, FinishCleaning("007", "alice", finish_time=start + timedelta(minutes=25)))

        assert result.duration_minutes == 25
        assert [event for event, _ in broadcaster.sent] == ["room_update", "room_update"]

        started, finished = (data for _, data in broadcaster.sent)
        assert started["status"] == "in_progress"
        assert started["previous_status"] == "available"
        assert started["started_by"] == "alice"
        assert finished["status"] == "finished"
        assert finished["finished_by"] == "alice"
        assert finished["duration_minutes"] == 25

        assert [p["tag"] for p in push.payloads] == ["room-007-started", "room-007-finished"]
        assert "25 minutes" in push.payloads[1]["body"]

    def test_double_start_emits_once(self, processor, broadcaster, db):
        processor.dispatch(db, StartCleaning("007", "alice"))

        with pytest.raises(ActionConflict):
            processor.dispatch(db, StartCleaning("007", "bob"))

        assert len(broadcaster.sent) == 1
        assert len(_feed(db)) == 1
        assert db.query(CleaningLog).one().started_by == "alice"

    def test_full_cycle_then_reset(self, processor, broadcaster, db):
        processor.dispatch(db, StartCleaning("007", "alice"))
        processor.dispatch(db, FinishCleaning("007", "alice"))
        processor.dispatch(db, CheckRoom("007", "sup"))
        result = processor.dispatch(db, ResetCleaning("007", "sup"))

        assert result.record.status == "available"
        assert result.record.started_by is None
        assert result.record.checked_by is None
        assert [event for event, _ in broadcaster.sent] == [
            "room_update", "room_update", "room_checked", "room_update"
        ]
        reset = broadcaster.sent[-1][1]
        assert reset == {"room_number": "007", "status": "available",
                         "previous_status": "checked", "reset": True}

    def test_room_number_is_padded(self, processor, broadcaster, db):
        processor.dispatch(db, StartCleaning("7", "alice"))

        assert broadcaster.sent[0][1]["room_number"] == "007"
        assert db.query(CleaningLog).one().room_number == "007"

    def test_check_before_finish_is_conflict(self, processor, broadcaster, db):
        processor.dispatch(db, StartCleaning("007", "alice"))

        with pytest.raises(ActionConflict):
            processor.dispatch(db, CheckRoom("007", "sup"))
        assert len(broadcaster.sent) == 1

    def test_finish_without_record_is_not_found(self, processor, broadcaster, db):
        with pytest.raises(RecordNotFound):
            processor.dispatch(db, FinishCleaning("007", "alice"))
        assert broadcaster.sent == []


class TestValidation:
    @pytest.mark.parametrize("command", [
        StartCleaning("999", "alice"),
        FinishCleaning("abc", "alice"),
        SetDnd("206", True, "alice"),
    ])
    def test_unknown_room_is_rejected(self, processor, broadcaster, push, db, command):
        with pytest.raises(UnknownRoom):
            processor.dispatch(db, command)

        assert broadcaster.sent == []
        assert push.payloads == []
        assert _feed(db) == []

    @pytest.mark.parametrize("command", [
        StartCleaning("007", None),
        StartCleaning("007", "   "),
        CheckRoom("007", ""),
        SetDnd("007", True, None),
        SetNote("007", {"note": "x"}, None),
    ])
    def test_missing_actor_is_rejected(self, processor, broadcaster, db, command):
        with pytest.raises(MissingActor):
            processor.dispatch(db, command)

        assert broadcaster.sent == []
        assert db.query(CleaningLog).count() == 0

    def test_unknown_command(self, processor, db):
        with pytest.raises(TypeError):
            processor.dispatch(db, object())


class TestRoomState:
    def test_priority_events_follow_write_order(self, processor, broadcaster, db):
        processor.dispatch(db, SetPriority("101", "urgent", "14:00", "alice"))
        processor.dispatch(db, SetPriority("101", "default", actor="bob"))

        assert [data["priority"] for _, data in broadcaster.sent] == ["urgent", "default"]
        assert db.query(RoomPriority).one().priority == "default"

    def test_empty_priority_means_default(self, processor, db):
        command = SetPriority("101", "")
        state = processor.dispatch(db, command)

        assert state.priority == "default"
        assert command.priority == ""

    def test_dnd_event_and_push(self, processor, broadcaster, push, db):
        processor.dispatch(db, SetDnd("101", True, "alice"))

        event, data = broadcaster.sent[0]
        assert event == "dnd_update"
        assert data["room_number"] == "101"
        assert data["dnd_status"] is True
        assert data["dnd_set_by"] == "alice"
        assert push.payloads[0]["title"] == "Do Not Disturb ON"

    def test_note_event_carries_merged_note(self, processor, broadcaster, db):
        processor.dispatch(db, SetNote("101", {"tags": ["vip"], "note": "towels"}, "alice"))
        processor.dispatch(db, SetNote("101", {"after_time": "15:00"}, "bob"))

        event, data = broadcaster.sent[-1]
        assert event == "note_update"
        assert data["notes"]["tags"] == ["vip"]
        assert data["notes"]["note"] == "towels"
        assert data["notes"]["after_time"] == "15:00"
        assert data["notes"]["last_updated_by"] == "bob"

    def test_inspection_events(self, processor, broadcaster, db):
        processor.dispatch(db, SetInspectionItem("101", "bed", "ok", "sup"))
        processor.dispatch(db, SubmitInspection("101", {"bed": "ok", "floor": "ok"}, 9.0, "sup"))

        item, submitted = (data for _, data in broadcaster.sent)
        assert item["action"] == "item"
        assert submitted["action"] == "submitted"
        assert submitted["log"]["items"] == {"bed": "ok", "floor": "ok"}
        assert submitted["overall_score"] == 9.0


class TestClearAll:
    def test_clear_all_emits_reset_sequence_once(self, processor, broadcaster, db):
        processor.dispatch(db, StartCleaning("007", "alice"))
        processor.dispatch(db, SetDnd("007", True, "alice"))
        processor.dispatch(db, SetPriority("007", "urgent"))
        broadcaster.sent.clear()

        result = processor.dispatch(db, ClearAll("manager"))

        rooms = all_room_numbers()
        assert result.cleaning_deleted == 1
        assert len(broadcaster.sent) == 5 + len(rooms)
        assert broadcaster.sent[:5] == [
            ("system", {"action": "clear_logs"}),
            ("dnd_update", {"room_number": "all", "dnd_status": False}),
            ("priority_update", {"room_number": "all", "priority": "default"}),
            ("system", {"action": "reset_checked_rooms"}),
            ("inspection", {"action": "cleared", "room_number": "all"}),
        ]
        resets = broadcaster.sent[5:]
        assert [data["room_number"] for _, data in resets] == list(rooms)
        assert all(event == "room_update" and data["reset"] for event, data in resets)

        assert all(not state.dnd_status for state in db.query(RoomDND).all())
        assert all(state.priority == "default" for state in db.query(RoomPriority).all())


class TestFanOutIsolation:
    def test_stored_payload_equals_broadcast(self, processor, broadcaster, db):
        processor.dispatch(db, StartCleaning("007", "alice"))
        processor.dispatch(db, SetDnd("007", True, "alice"))

        stored = [(e.type, e.payload) for e in _feed(db)]
        assert stored == broadcaster.sent

    def test_event_log_failure_still_broadcasts(self, broadcaster, db):
        class BrokenSession:
            def add(self, _):
                raise RuntimeError("database unavailable")

            def rollback(self):
                pass

            def close(self):
                pass

        processor = ActionProcessor(EventLog(lambda: BrokenSession()), broadcaster, tz_name=TZ)

        result = processor.dispatch(db, StartCleaning("007", "alice"))

        assert result.record.status == "in_progress"
        assert [event for event, _ in broadcaster.sent] == ["room_update"]

    def test_push_failure_is_isolated(self, event_log, broadcaster, db):
        processor = ActionProcessor(event_log, broadcaster, push=RecordingPush(fail=True), tz_name=TZ)

        result = processor.dispatch(db, StartCleaning("007", "alice"))

        assert result.record.status == "in_progress"
        assert len(broadcaster.sent) == 1
        assert len(_feed(db)) == 1


class TestConcurrency:
    def test_concurrent_finish_has_one_winner(self, event_log, db):
        broadcaster = RecordingBroadcaster()
        processor = ActionProcessor(event_log, broadcaster, tz_name=TZ)
        processor.dispatch(db, StartCleaning("007", "alice"))

        barrier = threading.Barrier(2)
        outcomes = []
        lock = threading.Lock()

        def finish(actor):
            session = SessionLocal()
            try:
                barrier.wait()
                processor.dispatch(session, FinishCleaning("007", actor))
                outcome = "ok"
            except HousekeepingException as e:
                outcome = type(e).__name__
            finally:
                session.close()
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=finish, args=(actor,)) for actor in ("alice", "bob")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert sorted(outcomes) == ["RecordNotFound", "ok"]
        finishes = [e for e in _feed(db) if e.payload.get("status") == "finished"]
        assert len(finishes) == 1
        assert db.query(CleaningLog).one().status == "finished"
