"""
Database models

All tables, in the shape the state store and event log
read and write.
"""
import enum

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)

from core.clock import utc_now
from database import Base


class CleaningStatus(str, enum.Enum):
    AVAILABLE = "available"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"
    CHECKED = "checked"


class EventType(str, enum.Enum):
    """Live channel names; also the ``type`` column of the event log"""
    ROOM_UPDATE = "room_update"
    ROOM_CHECKED = "room_checked"
    DND_UPDATE = "dnd_update"
    PRIORITY_UPDATE = "priority_update"
    NOTE_UPDATE = "note_update"
    INSPECTION = "inspection"
    SYSTEM = "system"


DEFAULT_PRIORITY = "default"


class CleaningLog(Base):
    """One cleaning record per room per local day"""
    __tablename__ = "cleaning_logs"

    id = Column(Integer, primary_key=True, index=True)
    room_number = Column(String(3), nullable=False, index=True)
    day = Column(Date, nullable=False, index=True)

    start_time = Column(DateTime, nullable=True)
    started_by = Column(String(100), nullable=True)
    finish_time = Column(DateTime, nullable=True)
    finished_by = Column(String(100), nullable=True)
    checked_time = Column(DateTime, nullable=True)
    checked_by = Column(String(100), nullable=True)

    status = Column(String(20), nullable=False, default=CleaningStatus.AVAILABLE.value)

    __table_args__ = (
        UniqueConstraint("room_number", "day", name="uq_cleaning_logs_room_day"),
        Index("idx_cleaning_logs_room_day", "room_number", "day"),
    )


class RoomDND(Base):
    __tablename__ = "room_dnd"

    id = Column(Integer, primary_key=True, index=True)
    room_number = Column(String(3), nullable=False, unique=True)
    dnd_status = Column(Boolean, nullable=False, default=False)
    dnd_set_by = Column(String(100), nullable=True)
    dnd_set_at = Column(DateTime, nullable=True)


class RoomPriority(Base):
    __tablename__ = "room_priorities"

    id = Column(Integer, primary_key=True, index=True)
    room_number = Column(String(3), nullable=False, unique=True)
    priority = Column(String(50), nullable=False, default=DEFAULT_PRIORITY)
    allow_cleaning_time = Column(String(50), nullable=True)


class RoomNote(Base):
    __tablename__ = "room_notes"

    id = Column(Integer, primary_key=True, index=True)
    room_number = Column(String(3), nullable=False, unique=True)
    tags = Column(JSON, nullable=False, default=list)
    note = Column(Text, nullable=True)
    after_time = Column(String(50), nullable=True)
    last_updated_by = Column(String(100), nullable=False)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)


class InspectionLog(Base):
    """Inspection checklist, one per room per local day"""
    __tablename__ = "inspection_logs"

    id = Column(Integer, primary_key=True, index=True)
    room_number = Column(String(3), nullable=False, index=True)
    day = Column(Date, nullable=False, index=True)
    items = Column(JSON, nullable=False, default=dict)
    overall_score = Column(Float, nullable=True)
    updated_by = Column(String(100), nullable=True)
    updated_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("room_number", "day", name="uq_inspection_logs_room_day"),
    )


class LiveFeedEvent(Base):
    """
    Append-only mirror of every live broadcast.

    ``payload`` is exactly what clients received on the channel named by
    ``type``, so history can be replayed as it was seen live.
    """
    __tablename__ = "live_feed_events"

    id = Column(Integer, primary_key=True, index=True)
    ts = Column(DateTime, nullable=False, default=utc_now)
    type = Column(String(32), nullable=False)
    room_number = Column(String(3), nullable=True)
    payload = Column(JSON, nullable=False, default=dict)
    meta = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("idx_live_feed_events_ts", "ts"),
        Index("idx_live_feed_events_type_room_ts", "type", "room_number", "ts"),
    )


class PushSubscription(Base):
    __tablename__ = "push_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    endpoint = Column(String(1000), nullable=False, unique=True)
    p256dh = Column(String(255), nullable=True)
    auth = Column(String(255), nullable=True)
    username = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
