"""
Concurrency helpers

Row-level locks (SELECT ... FOR UPDATE) for the read-modify-write sections
of the state store. Guarded lifecycle transitions do not need them: those
are single conditional UPDATE statements.

On SQLite FOR UPDATE is ignored; the database-wide write lock taken by the
first write in the transaction serialises writers instead.
"""
from datetime import date

from sqlalchemy.orm import Session, Query

from models import CleaningLog, InspectionLog


def with_latest_cleaning_lock(room_number: str, db: Session) -> Query:
    """
    Lock the newest cleaning record of a room.

    Used by reset, which clears whatever the room's current record holds.

    Example:
        record = with_latest_cleaning_lock("007", db).first()
        if not record:
            raise RecordNotFound("007")

    Returns:
        Query object (call .first())
    """
    return db.query(CleaningLog).filter(
        CleaningLog.room_number == room_number
    ).order_by(
        CleaningLog.day.desc(), CleaningLog.id.desc()
    ).with_for_update(nowait=False)


def with_inspection_lock(room_number: str, day: date, db: Session) -> Query:
    """
    Lock one room's inspection record for a day.

    Item updates merge into the JSON ``items`` map, so two concurrent item
    updates must not both read the old map.
    """
    return db.query(InspectionLog).filter(
        InspectionLog.room_number == room_number,
        InspectionLog.day == day
    ).with_for_update(nowait=False)
