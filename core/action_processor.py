"""
Action Processor: the only writer of room state

Every state-changing action is an explicit command object dispatched here.
A successful action runs, in order:

    1. validate (room in registry, actor present)   -> InvalidInput
    2. mutate the State Store (guarded, atomic)     -> RecordNotFound / ActionConflict
    3. append the mirrored event to the Event Log   (best-effort)
    4. broadcast the same payload to live clients   (fire-and-forget)
    5. trigger a push notification                  (best-effort)

A rejected action stops at 1 or 2: no event, no broadcast, no push.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from models import CleaningStatus, DEFAULT_PRIORITY, EventType
from schemas import (
    CleaningRecordResponse,
    DndStateResponse,
    InspectionRecordResponse,
    PriorityStateResponse,
    RoomNoteResponse,
)
from core.broadcaster import Broadcaster
from core.clock import current_day, isoformat_utc, to_storage
from core.event_log import EventLog
from core.exceptions import MissingActor
from core.rooms import all_room_numbers, normalize_room_number
from core.state_store import ClearResult, StateStore, TransitionResult

logger = logging.getLogger(__name__)


# ============ Commands ============

@dataclass
class StartCleaning:
    room_number: str
    actor: Optional[str]
    start_time: Optional[datetime] = None


@dataclass
class FinishCleaning:
    room_number: str
    actor: Optional[str]
    finish_time: Optional[datetime] = None


@dataclass
class CheckRoom:
    room_number: str
    actor: Optional[str]


@dataclass
class ResetCleaning:
    room_number: str
    actor: Optional[str] = None


@dataclass
class SetDnd:
    room_number: str
    dnd_status: bool
    actor: Optional[str]


@dataclass
class SetPriority:
    room_number: str
    priority: str
    allow_cleaning_time: Optional[str] = None
    actor: Optional[str] = None


@dataclass
class SetNote:
    room_number: str
    fields: Dict[str, Any]
    actor: Optional[str]


@dataclass
class SetInspectionItem:
    room_number: str
    item: str
    status: str
    actor: Optional[str]


@dataclass
class SubmitInspection:
    room_number: str
    results: Dict[str, str]
    overall_score: Optional[float]
    actor: Optional[str]
    submitted_at: Optional[datetime] = None


@dataclass
class ClearAll:
    actor: Optional[str] = None


@dataclass
class Emitted:
    """One event produced by an action (what was stored and broadcast)"""
    type: EventType
    payload: Dict[str, Any]
    room_number: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)


def _record(schema, row) -> Dict[str, Any]:
    return schema.model_validate(row).model_dump(mode="json")


class ActionProcessor:
    """Validates and applies actions, then fans out the resulting events"""

    def __init__(self, event_log: EventLog, broadcaster: Broadcaster,
                 push=None, tz_name: str = "Asia/Phnom_Penh"):
        self.event_log = event_log
        self.broadcaster = broadcaster
        self.push = push
        self.tz_name = tz_name
        self._handlers = {
            StartCleaning: self.start_cleaning,
            FinishCleaning: self.finish_cleaning,
            CheckRoom: self.check_room,
            ResetCleaning: self.reset_cleaning,
            SetDnd: self.set_dnd,
            SetPriority: self.set_priority,
            SetNote: self.set_note,
            SetInspectionItem: self.set_inspection_item,
            SubmitInspection: self.submit_inspection,
            ClearAll: self.clear_all,
        }

    def dispatch(self, db: Session, command):
        handler = self._handlers.get(type(command))
        if handler is None:
            raise TypeError(f"Unknown command {type(command).__name__}")
        return handler(db, command)

    # ============ Fan-out ============

    def emit(self, event: Emitted) -> None:
        """
        Store then broadcast one event.

        The payload is normalised to JSON types once, so the stored copy and
        the broadcast copy are identical.
        """
        payload = jsonable_encoder(event.payload)
        self.event_log.append(event.type, payload, room_number=event.room_number, meta=event.meta)
        try:
            self.broadcaster.notify(event.type.value, payload)
        except Exception as e:
            logger.error(f"[livefeed] broadcast error for {event.type.value}: {e}", exc_info=True)

    def _push(self, title: str, body: str, tag: str, data: Dict[str, Any]) -> None:
        if self.push is None:
            return
        try:
            self.push.dispatch({"title": title, "body": body, "tag": tag, "data": data})
        except Exception as e:
            logger.error(f"[push] dispatch error for {tag}: {e}", exc_info=True)

    # ============ Validation ============

    @staticmethod
    def _require_actor(actor: Optional[str], action: str) -> str:
        if actor is None or not str(actor).strip():
            raise MissingActor(action)
        return str(actor).strip()

    def _storage_time(self, value: Optional[datetime]) -> Optional[datetime]:
        return to_storage(value, self.tz_name) if value is not None else None

    def today(self):
        return current_day(self.tz_name)

    # ============ Cleaning lifecycle ============

    def start_cleaning(self, db: Session, command: StartCleaning) -> TransitionResult:
        room = normalize_room_number(command.room_number)
        actor = self._require_actor(command.actor, "start")

        result = StateStore.apply_start(
            db, room, self.today(), actor, self._storage_time(command.start_time)
        )

        self.emit(Emitted(
            type=EventType.ROOM_UPDATE,
            room_number=room,
            payload={
                "room_number": room,
                "status": CleaningStatus.IN_PROGRESS.value,
                "previous_status": result.previous_status.value,
                "started_by": actor,
                "start_time": isoformat_utc(result.record.start_time),
            },
            meta={"actor": actor, "action": "start"},
        ))
        self._push(
            "Cleaning Started",
            f"Room {room} started by {actor}",
            f"room-{room}-started",
            {"room_number": room},
        )
        return result

    def finish_cleaning(self, db: Session, command: FinishCleaning) -> TransitionResult:
        room = normalize_room_number(command.room_number)
        actor = self._require_actor(command.actor, "finish")

        result = StateStore.apply_finish(db, room, actor, self._storage_time(command.finish_time))

        self.emit(Emitted(
            type=EventType.ROOM_UPDATE,
            room_number=room,
            payload={
                "room_number": room,
                "status": CleaningStatus.FINISHED.value,
                "previous_status": result.previous_status.value,
                "finished_by": actor,
                "finish_time": isoformat_utc(result.record.finish_time),
                "duration_minutes": result.duration_minutes,
            },
            meta={"actor": actor, "action": "finish"},
        ))
        duration = f" ({result.duration_minutes} minutes)" if result.duration_minutes is not None else ""
        self._push(
            "Cleaning Finished",
            f"Room {room} finished by {actor}{duration}",
            f"room-{room}-finished",
            {"room_number": room},
        )
        return result

    def check_room(self, db: Session, command: CheckRoom) -> TransitionResult:
        room = normalize_room_number(command.room_number)
        actor = self._require_actor(command.actor, "check")

        result = StateStore.apply_check(db, room, actor)

        self.emit(Emitted(
            type=EventType.ROOM_CHECKED,
            room_number=room,
            payload={
                "room_number": room,
                "status": CleaningStatus.CHECKED.value,
                "checked_by": actor,
                "checked_time": isoformat_utc(result.record.checked_time),
            },
            meta={"actor": actor, "action": "check"},
        ))
        return result

    def reset_cleaning(self, db: Session, command: ResetCleaning) -> TransitionResult:
        room = normalize_room_number(command.room_number)

        result = StateStore.reset_cleaning(db, room)

        self.emit(Emitted(
            type=EventType.ROOM_UPDATE,
            room_number=room,
            payload={
                "room_number": room,
                "status": CleaningStatus.AVAILABLE.value,
                "previous_status": result.previous_status.value,
                "reset": True,
            },
            meta={"actor": command.actor, "action": "reset"},
        ))
        return result

    # ============ Orthogonal room state ============

    def set_dnd(self, db: Session, command: SetDnd):
        room = normalize_room_number(command.room_number)
        actor = self._require_actor(command.actor, "dnd")

        state = StateStore.set_dnd(db, room, command.dnd_status, actor)
        payload = _record(DndStateResponse, state)

        self.emit(Emitted(
            type=EventType.DND_UPDATE,
            room_number=room,
            payload=payload,
            meta={"actor": actor},
        ))
        self._push(
            "Do Not Disturb ON" if state.dnd_status else "Do Not Disturb OFF",
            f"Room {room} • by {actor}",
            f"room-{room}-dnd",
            {"room_number": room, "dnd_status": state.dnd_status},
        )
        return state

    def set_priority(self, db: Session, command: SetPriority):
        room = normalize_room_number(command.room_number)
        priority = command.priority or DEFAULT_PRIORITY

        state = StateStore.set_priority(db, room, priority, command.allow_cleaning_time)

        self.emit(Emitted(
            type=EventType.PRIORITY_UPDATE,
            room_number=room,
            payload=_record(PriorityStateResponse, state),
            meta={"actor": command.actor},
        ))
        return state

    def set_note(self, db: Session, command: SetNote):
        room = normalize_room_number(command.room_number)
        actor = self._require_actor(command.actor, "note")

        note = StateStore.set_note(db, room, command.fields, actor)

        self.emit(Emitted(
            type=EventType.NOTE_UPDATE,
            room_number=room,
            payload={"room_number": room, "notes": _record(RoomNoteResponse, note)},
            meta={"actor": actor},
        ))
        return note

    def set_inspection_item(self, db: Session, command: SetInspectionItem):
        room = normalize_room_number(command.room_number)
        actor = self._require_actor(command.actor, "inspection")

        record = StateStore.set_inspection_item(
            db, room, self.today(), command.item, command.status, actor
        )

        self.emit(Emitted(
            type=EventType.INSPECTION,
            room_number=room,
            payload={
                "action": "item",
                "room_number": room,
                "item": command.item,
                "status": command.status,
                "updated_by": actor,
            },
            meta={"actor": actor},
        ))
        return record

    def submit_inspection(self, db: Session, command: SubmitInspection):
        room = normalize_room_number(command.room_number)
        actor = self._require_actor(command.actor, "inspection")

        record = StateStore.submit_inspection(
            db, room, self.today(), command.results, command.overall_score, actor,
            self._storage_time(command.submitted_at)
        )

        self.emit(Emitted(
            type=EventType.INSPECTION,
            room_number=room,
            payload={
                "action": "submitted",
                "room_number": room,
                "overall_score": command.overall_score,
                "updated_by": actor,
                "log": _record(InspectionRecordResponse, record),
            },
            meta={"actor": actor},
        ))
        return record

    # ============ Bulk ============

    def clear_all_events(self) -> List[Emitted]:
        """The reset broadcasts a bulk clear produces, in emission order."""
        events = [
            Emitted(EventType.SYSTEM, {"action": "clear_logs"}),
            Emitted(EventType.DND_UPDATE, {"room_number": "all", "dnd_status": False}),
            Emitted(EventType.PRIORITY_UPDATE, {"room_number": "all", "priority": DEFAULT_PRIORITY}),
            Emitted(EventType.SYSTEM, {"action": "reset_checked_rooms"}),
            Emitted(EventType.INSPECTION, {"action": "cleared", "room_number": "all"}),
        ]
        events.extend(
            Emitted(
                EventType.ROOM_UPDATE,
                {"room_number": room, "status": CleaningStatus.AVAILABLE.value, "reset": True},
                room_number=room,
            )
            for room in all_room_numbers()
        )
        return events

    def clear_all(self, db: Session, command: ClearAll) -> ClearResult:
        """
        Bulk clear. Broadcasts happen only after the transaction committed;
        a failed commit raises StoreError and emits nothing.
        """
        result = StateStore.clear_all(db)

        for event in self.clear_all_events():
            event.meta = {"actor": command.actor, "action": "clear_all"}
            self.emit(event)
        return result
