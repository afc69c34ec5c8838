"""
State Store: durable per-room housekeeping state

Responsibilities:
1. Cleaning records (one per room per day) and their guarded transitions
2. DND, priority and note state (one per room, overwritten in place)
3. Inspection checklists (one per room per day)
4. Bulk clear in a single transaction

Concurrency:
- Every lifecycle guard is applied by one conditional UPDATE
  (``UPDATE ... WHERE <guard>``). Zero affected rows means the guard failed,
  so two racing calls can never both win.
- Upserts rely on the unique constraints; losing an insert race falls back
  to reading the winner's row.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional
import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from models import (
    CleaningLog,
    CleaningStatus,
    DEFAULT_PRIORITY,
    InspectionLog,
    RoomDND,
    RoomNote,
    RoomPriority,
)
from core.clock import utc_now
from core.exceptions import ActionConflict, RecordNotFound, StoreError
from core.locks import with_inspection_lock, with_latest_cleaning_lock
from core.state_machine import (
    CHECK,
    FINISH,
    RESET,
    START,
    can_transition,
    derive_status,
    target_status,
)
from database import transactional

logger = logging.getLogger(__name__)

NOTE_FIELDS = ("tags", "note", "after_time")


@dataclass
class TransitionResult:
    """Outcome of a cleaning lifecycle transition"""
    record: CleaningLog
    previous_status: CleaningStatus
    duration_minutes: Optional[int] = None


@dataclass
class ClearResult:
    cleaning_deleted: int
    inspections_deleted: int
    dnd_reset: int
    priorities_reset: int


def elapsed_minutes(start: Optional[datetime], finish: Optional[datetime]) -> Optional[int]:
    """Whole minutes from start to finish; None when either end is missing."""
    if start is None or finish is None:
        return None
    return int((finish - start).total_seconds() // 60)


def _get_or_create(db: Session, model, defaults: Optional[dict] = None, **keys):
    """
    Return the row matching ``keys``, inserting it with ``defaults`` if absent.

    Must run before any other pending change in the transaction: losing the
    insert race rolls the transaction back and re-reads the winner's row.
    """
    instance = db.query(model).filter_by(**keys).first()
    if instance:
        return instance

    instance = model(**keys, **(defaults or {}))
    db.add(instance)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        instance = db.query(model).filter_by(**keys).first()
        if instance is None:
            raise StoreError(f"Could not create {model.__tablename__} row for {keys}")
        logger.debug(f"Concurrent insert on {model.__tablename__} {keys}, using existing row")
    return instance


def _reload(db: Session, record_id: int) -> CleaningLog:
    return db.query(CleaningLog).filter(
        CleaningLog.id == record_id
    ).populate_existing().one()


class StateStore:
    """Per-room state persistence and guarded transitions"""

    # ============ Cleaning records ============

    @staticmethod
    @transactional
    def get_or_create_cleaning_record(db: Session, room_number: str, day: date) -> CleaningLog:
        """
        Return the room's record for ``day``, creating an "available" one if absent.

        Safe to retry and to call concurrently: the (room_number, day) unique
        constraint guarantees a single row.
        """
        return _get_or_create(
            db, CleaningLog,
            defaults={"status": CleaningStatus.AVAILABLE.value},
            room_number=room_number, day=day
        )

    @staticmethod
    @transactional
    def apply_start(db: Session, room_number: str, day: date, actor: str,
                    start_time: Optional[datetime] = None) -> TransitionResult:
        """
        Start cleaning a room (-> in_progress).

        Guard:
            the day's record must not have an open start (start set, finish unset).
            A finished or checked record is restarted: finish and check are cleared.

        Raises:
            ActionConflict: the room is already being cleaned
        """
        record = _get_or_create(
            db, CleaningLog,
            defaults={"status": CleaningStatus.AVAILABLE.value},
            room_number=room_number, day=day
        )
        previous = derive_status(record)

        if not can_transition(previous, START):
            raise ActionConflict(room_number, f"Room {room_number} is already being cleaned")

        updated = db.query(CleaningLog).filter(
            CleaningLog.id == record.id,
            or_(CleaningLog.start_time.is_(None), CleaningLog.finish_time.isnot(None))
        ).update({
            CleaningLog.start_time: start_time or utc_now(),
            CleaningLog.started_by: actor,
            CleaningLog.finish_time: None,
            CleaningLog.finished_by: None,
            CleaningLog.checked_time: None,
            CleaningLog.checked_by: None,
            CleaningLog.status: target_status(START).value,
        }, synchronize_session=False)

        if updated == 0:
            raise ActionConflict(room_number, f"Room {room_number} is already being cleaned")

        logger.info(f"Room {room_number} started by {actor} ({previous.value} -> in_progress)")
        return TransitionResult(record=_reload(db, record.id), previous_status=previous)

    @staticmethod
    @transactional
    def apply_finish(db: Session, room_number: str, actor: str,
                     finish_time: Optional[datetime] = None) -> TransitionResult:
        """
        Finish cleaning a room (-> finished).

        Targets the room's open cleaning: the newest started record without a
        finish time, even when a later day was already seeded. Only when no
        started record is open is the newest unstarted one finished, with a
        duration of None.

        Raises:
            RecordNotFound: no unfinished record, or a concurrent finish won
        """
        candidate = db.query(CleaningLog).filter(
            CleaningLog.room_number == room_number,
            CleaningLog.finish_time.is_(None)
        ).order_by(
            CleaningLog.start_time.is_(None), CleaningLog.day.desc(), CleaningLog.id.desc()
        ).first()

        if candidate is None:
            raise RecordNotFound(room_number, f"Room {room_number} has no unfinished cleaning record")

        previous = derive_status(candidate)

        updated = db.query(CleaningLog).filter(
            CleaningLog.id == candidate.id,
            CleaningLog.finish_time.is_(None)
        ).update({
            CleaningLog.finish_time: finish_time or utc_now(),
            CleaningLog.finished_by: actor,
            CleaningLog.status: target_status(FINISH).value,
        }, synchronize_session=False)

        if updated == 0:
            raise RecordNotFound(room_number, f"Room {room_number} was already finished")

        record = _reload(db, candidate.id)
        duration = elapsed_minutes(record.start_time, record.finish_time)
        logger.info(f"Room {room_number} finished by {actor} (duration={duration})")
        return TransitionResult(record=record, previous_status=previous, duration_minutes=duration)

    @staticmethod
    @transactional
    def apply_check(db: Session, room_number: str, actor: str,
                    checked_time: Optional[datetime] = None) -> TransitionResult:
        """
        Mark the room's newest record as checked (finished -> checked).

        Raises:
            RecordNotFound: the room has no record at all
            ActionConflict: the record is not finished, or is already checked
        """
        latest = db.query(CleaningLog).filter(
            CleaningLog.room_number == room_number
        ).order_by(CleaningLog.day.desc(), CleaningLog.id.desc()).first()

        if latest is None:
            raise RecordNotFound(room_number, f"Room {room_number} has no cleaning record")

        previous = derive_status(latest)

        if not can_transition(previous, CHECK):
            raise ActionConflict(room_number, f"Room {room_number} is not finished or already checked")

        updated = db.query(CleaningLog).filter(
            CleaningLog.id == latest.id,
            CleaningLog.finish_time.isnot(None),
            CleaningLog.checked_time.is_(None)
        ).update({
            CleaningLog.checked_time: checked_time or utc_now(),
            CleaningLog.checked_by: actor,
            CleaningLog.status: target_status(CHECK).value,
        }, synchronize_session=False)

        if updated == 0:
            raise ActionConflict(room_number, f"Room {room_number} is not finished or already checked")

        logger.info(f"Room {room_number} checked by {actor}")
        return TransitionResult(record=_reload(db, latest.id), previous_status=previous)

    @staticmethod
    @transactional
    def reset_cleaning(db: Session, room_number: str) -> TransitionResult:
        """
        Reset the room's newest record back to "available".

        Clears start/finish/check times and their actors. DND is left alone.

        Raises:
            RecordNotFound: the room has no record at all
        """
        record = with_latest_cleaning_lock(room_number, db).first()
        if record is None:
            raise RecordNotFound(room_number, f"Room {room_number} not found in logs")

        previous = derive_status(record)
        record.start_time = None
        record.started_by = None
        record.finish_time = None
        record.finished_by = None
        record.checked_time = None
        record.checked_by = None
        record.status = target_status(RESET).value

        logger.info(f"Room {room_number} reset ({previous.value} -> available)")
        return TransitionResult(record=record, previous_status=previous)

    @staticmethod
    @transactional
    def seed_missing_records(db: Session, day: date, room_numbers: Iterable[str]) -> List[str]:
        """
        Create default "available" records for rooms without one on ``day``.

        Returns the room numbers that were created by this call.
        """
        room_numbers = list(room_numbers)
        existing = {
            row.room_number for row in db.query(CleaningLog.room_number).filter(
                CleaningLog.day == day
            ).all()
        }
        missing = [room for room in room_numbers if room not in existing]
        if not missing:
            return []

        db.add_all([
            CleaningLog(room_number=room, day=day, status=CleaningStatus.AVAILABLE.value)
            for room in missing
        ])
        try:
            db.flush()
        except IntegrityError:
            # Some rooms were created concurrently: insert the rest one row at a time
            db.rollback()
            created = []
            for room in missing:
                db.add(CleaningLog(room_number=room, day=day, status=CleaningStatus.AVAILABLE.value))
                try:
                    db.commit()
                    created.append(room)
                except IntegrityError:
                    db.rollback()
            missing = created

        logger.info(f"Seeded {len(missing)} cleaning records for {day}")
        return missing

    @staticmethod
    def list_cleaning_records(db: Session, start_day: Optional[date] = None,
                              end_day: Optional[date] = None) -> List[CleaningLog]:
        """Records in [start_day, end_day), newest first."""
        query = db.query(CleaningLog)
        if start_day is not None:
            query = query.filter(CleaningLog.day >= start_day)
        if end_day is not None:
            query = query.filter(CleaningLog.day < end_day)
        return query.order_by(CleaningLog.day.desc(), CleaningLog.id.desc()).all()

    # ============ DND / priority / notes ============

    @staticmethod
    @transactional
    def set_dnd(db: Session, room_number: str, dnd_status: bool, actor: str) -> RoomDND:
        """
        Upsert the room's DND flag.

        dnd_set_at is stamped when turning on and cleared when turning off.
        """
        state = _get_or_create(db, RoomDND, defaults={"dnd_status": False}, room_number=room_number)
        state.dnd_status = bool(dnd_status)
        state.dnd_set_by = actor
        state.dnd_set_at = utc_now() if dnd_status else None
        logger.info(f"Room {room_number} DND {'on' if dnd_status else 'off'} by {actor}")
        return state

    @staticmethod
    def get_dnd_states(db: Session) -> List[RoomDND]:
        return db.query(RoomDND).order_by(RoomDND.room_number).all()

    @staticmethod
    @transactional
    def set_priority(db: Session, room_number: str, priority: str,
                     allow_cleaning_time: Optional[str] = None) -> RoomPriority:
        """Upsert the room's priority (last write wins)."""
        state = _get_or_create(db, RoomPriority, defaults={"priority": DEFAULT_PRIORITY},
                               room_number=room_number)
        state.priority = priority
        state.allow_cleaning_time = allow_cleaning_time or None
        logger.info(f"Room {room_number} priority -> {priority}")
        return state

    @staticmethod
    def get_priorities(db: Session) -> List[RoomPriority]:
        return db.query(RoomPriority).order_by(RoomPriority.room_number).all()

    @staticmethod
    @transactional
    def set_note(db: Session, room_number: str, fields: Dict, actor: str) -> RoomNote:
        """
        Upsert the room's note with merge semantics.

        Only fields present in ``fields`` (tags, note, after_time) overwrite;
        the editor is always recorded.
        """
        note = _get_or_create(db, RoomNote, defaults={"tags": [], "last_updated_by": actor},
                              room_number=room_number)
        for name in NOTE_FIELDS:
            if name in fields:
                value = fields[name]
                if name == "tags":
                    value = list(value or [])
                setattr(note, name, value)
        note.last_updated_by = actor
        note.updated_at = utc_now()
        return note

    @staticmethod
    def get_notes(db: Session, updated_since: Optional[datetime] = None,
                  updated_before: Optional[datetime] = None) -> List[RoomNote]:
        query = db.query(RoomNote)
        if updated_since is not None:
            query = query.filter(RoomNote.updated_at >= updated_since)
        if updated_before is not None:
            query = query.filter(RoomNote.updated_at < updated_before)
        return query.order_by(RoomNote.room_number).all()

    # ============ Inspection ============

    @staticmethod
    @transactional
    def set_inspection_item(db: Session, room_number: str, day: date, item: str,
                            status: str, actor: str) -> InspectionLog:
        """Upsert a single checklist entry of the room's inspection for ``day``."""
        _get_or_create(db, InspectionLog, defaults={"items": {}},
                       room_number=room_number, day=day)
        record = with_inspection_lock(room_number, day, db).populate_existing().one()

        items = dict(record.items or {})
        items[item] = status
        record.items = items
        record.updated_by = actor
        record.updated_at = utc_now()
        return record

    @staticmethod
    @transactional
    def submit_inspection(db: Session, room_number: str, day: date, results: Dict[str, str],
                          overall_score: Optional[float], actor: str,
                          submitted_at: Optional[datetime] = None) -> InspectionLog:
        """Replace the room's checklist for ``day`` wholesale."""
        record = _get_or_create(db, InspectionLog, defaults={"items": {}},
                                room_number=room_number, day=day)
        record.items = dict(results)
        record.overall_score = overall_score
        record.updated_by = actor
        record.updated_at = submitted_at or utc_now()
        logger.info(f"Inspection submitted for room {room_number} by {actor} (score={overall_score})")
        return record

    @staticmethod
    def get_inspections(db: Session, day: Optional[date] = None) -> List[InspectionLog]:
        query = db.query(InspectionLog)
        if day is not None:
            query = query.filter(InspectionLog.day == day)
        return query.order_by(InspectionLog.day.desc(), InspectionLog.room_number).all()

    @staticmethod
    def get_inspection(db: Session, room_number: str, day: Optional[date] = None) -> InspectionLog:
        """
        Raises:
            RecordNotFound: no inspection for the room (on ``day`` if given)
        """
        query = db.query(InspectionLog).filter(InspectionLog.room_number == room_number)
        if day is not None:
            query = query.filter(InspectionLog.day == day)
        record = query.order_by(InspectionLog.day.desc()).first()
        if record is None:
            raise RecordNotFound(room_number, f"Inspection log not found for room {room_number}")
        return record

    # ============ Bulk ============

    @staticmethod
    @transactional
    def _clear_all(db: Session) -> ClearResult:
        cleaning_deleted = db.query(CleaningLog).delete(synchronize_session=False)
        inspections_deleted = db.query(InspectionLog).delete(synchronize_session=False)
        dnd_reset = db.query(RoomDND).update({
            RoomDND.dnd_status: False,
            RoomDND.dnd_set_at: None,
        }, synchronize_session=False)
        priorities_reset = db.query(RoomPriority).update({
            RoomPriority.priority: DEFAULT_PRIORITY,
        }, synchronize_session=False)
        return ClearResult(
            cleaning_deleted=cleaning_deleted,
            inspections_deleted=inspections_deleted,
            dnd_reset=dnd_reset,
            priorities_reset=priorities_reset,
        )

    @staticmethod
    def clear_all(db: Session) -> ClearResult:
        """
        Delete every cleaning and inspection record, switch every DND off and
        set every priority back to default, all in one transaction.

        Raises:
            StoreError: the transaction could not commit (nothing was applied)
        """
        try:
            result = StateStore._clear_all(db)
        except SQLAlchemyError as e:
            raise StoreError(f"Bulk clear failed: {e}") from e
        logger.warning(
            f"Cleared all state: {result.cleaning_deleted} cleaning, "
            f"{result.inspections_deleted} inspection, {result.dnd_reset} DND, "
            f"{result.priorities_reset} priorities"
        )
        return result
