"""
Status service: composite status of every room

Builds the all-rooms view used by the room board. For each room the newest
record in the requested window is reported; rooms without one are reported
as "available".
"""
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from schemas import CleaningRecordResponse
from core.clock import date_filter_window
from core.rooms import all_room_numbers
from core.state_machine import derive_status
from core.state_store import StateStore


def _latest_per_room(db: Session, date_filter: Optional[str], tz_name: str):
    window = date_filter_window(date_filter, tz_name)
    start_day, end_day = window if window else (None, None)

    latest = {}
    # newest first, so the first record seen for a room wins
    for record in StateStore.list_cleaning_records(db, start_day=start_day, end_day=end_day):
        latest.setdefault(record.room_number, record)
    return latest


def get_room_statuses(db: Session, tz_name: str, status: Optional[str] = None,
                      date_filter: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    One entry per registered room, in registry order.

    Parameters:
        status: keep only rooms with this composite status ("all"/None keeps all)
        date_filter: today | yesterday | this_week | this_month | all/None

    Raises:
        ValueError: unknown date_filter
    """
    latest = _latest_per_room(db, date_filter, tz_name)

    rooms = []
    for room_number in all_room_numbers():
        record = latest.get(room_number)
        if record is None:
            entry = CleaningRecordResponse(
                room_number=room_number, status="available"
            ).model_dump(mode="json")
        else:
            entry = CleaningRecordResponse.model_validate(record).model_dump(mode="json")
            entry["status"] = derive_status(record).value
        rooms.append(entry)

    if status and status != "all":
        rooms = [room for room in rooms if room["status"] == status]
    return rooms


def get_status_map(db: Session, tz_name: str, date_filter: Optional[str] = None) -> Dict[str, str]:
    """room_number -> composite status, for rooms that have a record."""
    latest = _latest_per_room(db, date_filter, tz_name)
    return {room: derive_status(record).value for room, record in sorted(latest.items())}
