"""
Per-room state endpoints: DND, priority, notes, inspection

These states are orthogonal to the cleaning lifecycle: no guards between
them, last write wins.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import (
    DndRequest,
    DndStateResponse,
    InspectionItemRequest,
    InspectionRecordResponse,
    InspectionSubmitRequest,
    NoteRequest,
    PriorityRequest,
    PriorityStateResponse,
    RoomNoteResponse,
)
from core.action_processor import (
    ActionProcessor,
    SetDnd,
    SetInspectionItem,
    SetNote,
    SetPriority,
    SubmitInspection,
)
from core.exceptions import HousekeepingException
from core.rooms import normalize_room_number
from core.state_store import StateStore
from api.deps import get_processor, to_http_exception

router = APIRouter(prefix="/api", tags=["rooms"])
logger = logging.getLogger(__name__)


# ============ DND ============

@router.get("/logs/dnd", response_model=List[DndStateResponse])
def list_dnd(db: Session = Depends(get_db)):
    try:
        return StateStore.get_dnd_states(db)
    except Exception as e:
        logger.error(f"Failed to fetch DND statuses: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/logs/dnd", response_model=DndStateResponse)
def set_dnd(
    data: DndRequest,
    db: Session = Depends(get_db),
    processor: ActionProcessor = Depends(get_processor)
):
    """Switch DND on/off for a room"""
    try:
        return processor.dispatch(db, SetDnd(
            room_number=data.room_number,
            dnd_status=data.dnd_status,
            actor=data.username
        ))
    except HousekeepingException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to update DND status: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


# ============ Priority ============

@router.get("/logs/priority", response_model=List[PriorityStateResponse])
def list_priorities(db: Session = Depends(get_db)):
    try:
        return StateStore.get_priorities(db)
    except Exception as e:
        logger.error(f"Failed to fetch priorities: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/logs/priority", response_model=PriorityStateResponse)
def set_priority(
    data: PriorityRequest,
    db: Session = Depends(get_db),
    processor: ActionProcessor = Depends(get_processor)
):
    """Set a room's priority label and optional 'allow cleaning after' time"""
    try:
        return processor.dispatch(db, SetPriority(
            room_number=data.room_number,
            priority=data.priority,
            allow_cleaning_time=data.allow_cleaning_time,
            actor=data.username
        ))
    except HousekeepingException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to update priority: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


# ============ Notes ============

@router.get("/logs/notes", response_model=List[RoomNoteResponse])
def list_notes(db: Session = Depends(get_db)):
    try:
        return StateStore.get_notes(db)
    except Exception as e:
        logger.error(f"Failed to fetch room notes: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/logs/notes", response_model=RoomNoteResponse)
def set_note(
    data: NoteRequest,
    db: Session = Depends(get_db),
    processor: ActionProcessor = Depends(get_processor)
):
    """Merge the supplied note fields into the room's note"""
    try:
        return processor.dispatch(db, SetNote(
            room_number=data.room_number,
            fields=data.notes.model_dump(exclude_unset=True),
            actor=data.username
        ))
    except HousekeepingException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to update room note: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


# ============ Inspection ============

@router.get("/logs/inspection", response_model=List[InspectionRecordResponse])
def list_inspections(db: Session = Depends(get_db)):
    try:
        return StateStore.get_inspections(db)
    except Exception as e:
        logger.error(f"Failed to fetch inspection logs: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/logs/inspection/{room_number}", response_model=InspectionRecordResponse)
def get_inspection(room_number: str, db: Session = Depends(get_db)):
    """Newest inspection record of one room"""
    try:
        return StateStore.get_inspection(db, normalize_room_number(room_number))
    except HousekeepingException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to fetch inspection log: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/logs/inspection", response_model=InspectionRecordResponse)
def set_inspection_item(
    data: InspectionItemRequest,
    db: Session = Depends(get_db),
    processor: ActionProcessor = Depends(get_processor)
):
    """Update one checklist item of today's inspection"""
    try:
        return processor.dispatch(db, SetInspectionItem(
            room_number=data.room_number,
            item=data.item,
            status=data.status,
            actor=data.username
        ))
    except HousekeepingException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to update inspection: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/inspection/submit", response_model=InspectionRecordResponse)
def submit_inspection(
    data: InspectionSubmitRequest,
    db: Session = Depends(get_db),
    processor: ActionProcessor = Depends(get_processor)
):
    """Replace today's checklist wholesale with the submitted results"""
    try:
        return processor.dispatch(db, SubmitInspection(
            room_number=data.room_number,
            results=data.inspection_results,
            overall_score=data.overall_score,
            actor=data.username,
            submitted_at=data.timestamp
        ))
    except HousekeepingException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to submit inspection: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
