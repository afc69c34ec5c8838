"""
Snapshot service: full current-day state for a (re)connecting client

A client that just connected asks for one snapshot instead of replaying the
event history. Rooms without a record for the day are seeded first, so the
snapshot always covers every room.
"""
from datetime import date, timedelta
from typing import Any, Dict

from sqlalchemy.orm import Session

from models import DEFAULT_PRIORITY
from schemas import InspectionRecordResponse, RoomNoteResponse
from core.clock import day_bounds
from core.rooms import all_room_numbers
from core.state_machine import derive_status
from core.state_store import StateStore


def build_snapshot(db: Session, day: date, tz_name: str) -> Dict[str, Any]:
    """
    Returns:
        {
            "day": "YYYY-MM-DD",
            "cleaning_status": {room: status},
            "dnd_status": {room: "dnd" | "available"},
            "priorities": {room: priority},
            "inspection_logs": [inspection record, ...],
            "room_notes": {room: note},
        }

    DND is reported as "dnd" only when it was switched on during ``day``;
    notes are those edited during ``day``.
    """
    rooms = all_room_numbers()
    StateStore.seed_missing_records(db, day, rooms)
    day_start, day_end = day_bounds(day, tz_name)

    cleaning_status = {room: "available" for room in rooms}
    for record in StateStore.list_cleaning_records(db, start_day=day, end_day=day + timedelta(days=1)):
        cleaning_status[record.room_number] = derive_status(record).value

    dnd_status = {room: "available" for room in rooms}
    for state in StateStore.get_dnd_states(db):
        set_today = state.dnd_set_at is not None and day_start <= state.dnd_set_at < day_end
        if state.dnd_status and set_today:
            dnd_status[state.room_number] = "dnd"

    priorities = {room: DEFAULT_PRIORITY for room in rooms}
    for state in StateStore.get_priorities(db):
        priorities[state.room_number] = state.priority

    inspection_logs = [
        InspectionRecordResponse.model_validate(record).model_dump(mode="json")
        for record in StateStore.get_inspections(db, day=day)
    ]

    room_notes = {
        note.room_number: RoomNoteResponse.model_validate(note).model_dump(mode="json")
        for note in StateStore.get_notes(db, updated_since=day_start, updated_before=day_end)
    }

    return {
        "day": day.isoformat(),
        "cleaning_status": cleaning_status,
        "dnd_status": dnd_status,
        "priorities": priorities,
        "inspection_logs": inspection_logs,
        "room_notes": room_notes,
    }
