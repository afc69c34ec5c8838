"""
Cleaning lifecycle endpoints

Responsibilities:
1. Start / finish / check / reset a room
2. Query the composite status of every room
3. Bulk clear (privileged)

All mutations go through the ActionProcessor, which stores, logs and
broadcasts the change.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
import logging

from database import get_db, get_settings
from schemas import (
    CheckRequest,
    CleaningActionResponse,
    CleaningRecordResponse,
    ClearRequest,
    ClearResponse,
    FinishRequest,
    FinishResponse,
    ResetRequest,
    StartRequest,
)
from core.action_processor import (
    ActionProcessor,
    CheckRoom,
    ClearAll,
    FinishCleaning,
    ResetCleaning,
    StartCleaning,
)
from core.exceptions import HousekeepingException
from services.status_service import get_room_statuses, get_status_map
from api.deps import get_processor, to_http_exception

router = APIRouter(prefix="/api/logs", tags=["logs"])
logger = logging.getLogger(__name__)


@router.get("")
def list_room_statuses(
    status: Optional[str] = Query(None),
    date_filter: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """
    All rooms with their newest record in the window.

    Parameters:
        status: available | in_progress | finished | checked | all
        date_filter: today | yesterday | this_week | this_month | all
    """
    try:
        return get_room_statuses(db, get_settings().timezone, status=status, date_filter=date_filter)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to list room statuses: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/status")
def room_status_map(db: Session = Depends(get_db)):
    """room_number -> composite status"""
    try:
        return get_status_map(db, get_settings().timezone)
    except Exception as e:
        logger.error(f"Failed to fetch room status: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/start", response_model=CleaningActionResponse, status_code=201)
def start_cleaning(
    data: StartRequest,
    db: Session = Depends(get_db),
    processor: ActionProcessor = Depends(get_processor)
):
    """
    Start cleaning (available -> in_progress)

    Errors:
        400 unknown room / missing username
        409 room already being cleaned
    """
    try:
        result = processor.dispatch(db, StartCleaning(
            room_number=data.room_number,
            actor=data.username,
            start_time=data.start_time
        ))
        return CleaningActionResponse(
            message=f"Room {result.record.room_number} started by {result.record.started_by}",
            record=CleaningRecordResponse.model_validate(result.record)
        )
    except HousekeepingException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to start cleaning: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/finish", response_model=FinishResponse)
def finish_cleaning(
    data: FinishRequest,
    db: Session = Depends(get_db),
    processor: ActionProcessor = Depends(get_processor)
):
    """
    Finish cleaning (in_progress -> finished)

    Errors:
        404 no unfinished record for the room
    """
    try:
        result = processor.dispatch(db, FinishCleaning(
            room_number=data.room_number,
            actor=data.username,
            finish_time=data.finish_time
        ))
        return FinishResponse(
            message=f"Room {result.record.room_number} finished by {result.record.finished_by}",
            duration_minutes=result.duration_minutes,
            record=CleaningRecordResponse.model_validate(result.record)
        )
    except HousekeepingException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to finish cleaning: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/check", response_model=CleaningActionResponse)
def check_room(
    data: CheckRequest,
    db: Session = Depends(get_db),
    processor: ActionProcessor = Depends(get_processor)
):
    """
    Inspect a finished room (finished -> checked)

    Errors:
        404 room has no record
        409 not finished or already checked
    """
    try:
        result = processor.dispatch(db, CheckRoom(room_number=data.room_number, actor=data.username))
        return CleaningActionResponse(
            message=f"Room {result.record.room_number} checked by {result.record.checked_by}",
            record=CleaningRecordResponse.model_validate(result.record)
        )
    except HousekeepingException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to check room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/reset-cleaning", response_model=CleaningActionResponse)
def reset_cleaning(
    data: ResetRequest,
    db: Session = Depends(get_db),
    processor: ActionProcessor = Depends(get_processor)
):
    """Reset a room back to available (DND is kept)"""
    try:
        result = processor.dispatch(db, ResetCleaning(room_number=data.room_number, actor=data.username))
        return CleaningActionResponse(
            message=f"Cleaning status reset for room {result.record.room_number}",
            record=CleaningRecordResponse.model_validate(result.record)
        )
    except HousekeepingException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to reset cleaning: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/clear", response_model=ClearResponse)
def clear_all(
    data: Optional[ClearRequest] = None,
    db: Session = Depends(get_db),
    processor: ActionProcessor = Depends(get_processor)
):
    """
    Clear every cleaning and inspection record, all DND flags and priorities.

    All-or-nothing: on failure nothing is cleared and nothing is broadcast.
    """
    actor = data.username if data else None
    try:
        result = processor.dispatch(db, ClearAll(actor=actor))
        return ClearResponse(
            message="All logs, DND, priorities, checked statuses and inspection logs cleared",
            cleaning_deleted=result.cleaning_deleted,
            inspections_deleted=result.inspections_deleted,
            dnd_reset=result.dnd_reset,
            priorities_reset=result.priorities_reset
        )
    except HousekeepingException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to clear logs: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
