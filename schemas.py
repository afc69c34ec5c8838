"""
Request / response models

Record schemas are built from ORM rows (from_attributes) and are also used
to render snapshot and live-feed payloads, so a record looks the same
whichever way a client receives it.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from core.clock import isoformat_utc
from core.rooms import pad_room_number


class _RoomRequest(BaseModel):
    """Base for requests addressing one room; numeric input is padded"""
    room_number: str

    @field_validator("room_number", mode="before")
    @classmethod
    def pad_room(cls, value):
        if value is None:
            return value
        return pad_room_number(value)


# ============ Requests ============

class StartRequest(_RoomRequest):
    username: Optional[str] = None
    start_time: Optional[datetime] = None


class FinishRequest(_RoomRequest):
    username: Optional[str] = None
    finish_time: Optional[datetime] = None


class CheckRequest(_RoomRequest):
    username: Optional[str] = None


class ResetRequest(_RoomRequest):
    username: Optional[str] = None


class DndRequest(_RoomRequest):
    dnd_status: bool
    username: Optional[str] = None


class PriorityRequest(_RoomRequest):
    priority: str = Field(min_length=1)
    allow_cleaning_time: Optional[str] = None
    username: Optional[str] = None


class NoteFields(BaseModel):
    tags: Optional[List[str]] = None
    note: Optional[str] = None
    after_time: Optional[str] = None


class NoteRequest(_RoomRequest):
    notes: NoteFields
    username: Optional[str] = None


class InspectionItemRequest(_RoomRequest):
    item: str = Field(min_length=1)
    status: str
    username: Optional[str] = None


class InspectionSubmitRequest(_RoomRequest):
    inspection_results: Dict[str, str]
    overall_score: Optional[float] = None
    timestamp: Optional[datetime] = None
    username: Optional[str] = None


class ClearRequest(BaseModel):
    username: Optional[str] = None


class PushKeys(BaseModel):
    p256dh: Optional[str] = None
    auth: Optional[str] = None


class PushSubscriptionInfo(BaseModel):
    endpoint: str = Field(min_length=1)
    keys: PushKeys = PushKeys()


class PushSubscribeRequest(BaseModel):
    subscription: PushSubscriptionInfo
    username: Optional[str] = None


# ============ Records ============

class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class CleaningRecordResponse(_Record):
    room_number: str
    day: Optional[date] = None
    start_time: Optional[datetime] = None
    started_by: Optional[str] = None
    finish_time: Optional[datetime] = None
    finished_by: Optional[str] = None
    checked_time: Optional[datetime] = None
    checked_by: Optional[str] = None
    status: str

    @field_serializer("start_time", "finish_time", "checked_time")
    def serialize_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return isoformat_utc(dt)


class DndStateResponse(_Record):
    room_number: str
    dnd_status: bool
    dnd_set_by: Optional[str] = None
    dnd_set_at: Optional[datetime] = None

    @field_serializer("dnd_set_at")
    def serialize_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return isoformat_utc(dt)


class PriorityStateResponse(_Record):
    room_number: str
    priority: str
    allow_cleaning_time: Optional[str] = None


class RoomNoteResponse(_Record):
    room_number: str
    tags: List[str] = []
    note: Optional[str] = None
    after_time: Optional[str] = None
    last_updated_by: str
    updated_at: Optional[datetime] = None

    @field_serializer("updated_at")
    def serialize_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return isoformat_utc(dt)


class InspectionRecordResponse(_Record):
    room_number: str
    day: date
    items: Dict[str, str] = {}
    overall_score: Optional[float] = None
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    @field_serializer("updated_at")
    def serialize_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return isoformat_utc(dt)


class LiveFeedEventResponse(_Record):
    id: int
    ts: datetime
    type: str
    room_number: Optional[str] = None
    payload: Dict[str, Any] = {}
    meta: Dict[str, Any] = {}

    @field_serializer("ts")
    def serialize_datetime(self, dt: datetime) -> str:
        return isoformat_utc(dt)


# ============ Action results ============

class MessageResponse(BaseModel):
    message: str


class FinishResponse(BaseModel):
    message: str
    duration_minutes: Optional[int] = None
    record: CleaningRecordResponse


class CleaningActionResponse(BaseModel):
    message: str
    record: CleaningRecordResponse


class ClearResponse(BaseModel):
    message: str
    cleaning_deleted: int
    inspections_deleted: int
    dnd_reset: int
    priorities_reset: int


class PublicKeyResponse(BaseModel):
    public_key: str
