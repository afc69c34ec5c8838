"""
Live feed history endpoints

Read-only access to the event log: a time window (newest first) or the
recent history of one room.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
import logging

from database import get_db, get_settings
from models import EventType
from schemas import LiveFeedEventResponse
from core.clock import to_storage
from core.event_log import EventLog
from core.exceptions import HousekeepingException
from core.rooms import normalize_room_number
from api.deps import to_http_exception

router = APIRouter(prefix="/api/live-feed", tags=["live-feed"])
logger = logging.getLogger(__name__)


@router.get("", response_model=List[LiveFeedEventResponse])
def query_window(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    types: Optional[List[EventType]] = Query(None),
    room_number: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db)
):
    """
    Events with start <= ts < end, newest first.

    Naive datetimes are read as local time in the configured zone.
    """
    tz_name = get_settings().timezone
    try:
        room = normalize_room_number(room_number) if room_number else None
        return EventLog.query_by_window(
            db,
            start=to_storage(start, tz_name) if start else None,
            end=to_storage(end, tz_name) if end else None,
            types=types,
            room_number=room,
            limit=limit
        )
    except HousekeepingException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to query live feed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/rooms/{room_number}", response_model=List[LiveFeedEventResponse])
def query_room(
    room_number: str,
    limit: int = Query(50, ge=1, le=1000),
    db: Session = Depends(get_db)
):
    """Latest events of one room, newest first"""
    try:
        return EventLog.query_by_room(db, normalize_room_number(room_number), limit=limit)
    except HousekeepingException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to query room history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
