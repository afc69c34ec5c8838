"""
Web Push subscription endpoints
"""
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import MessageResponse, PublicKeyResponse, PushSubscribeRequest
from services.push_service import PushService

router = APIRouter(prefix="/api/push", tags=["push"])
logger = logging.getLogger(__name__)


def get_push_service(request: Request) -> PushService:
    return request.app.state.push


@router.get("/public-key", response_model=PublicKeyResponse)
def public_key(push: PushService = Depends(get_push_service)):
    """VAPID public key for the browser (empty when push is disabled)"""
    return PublicKeyResponse(public_key=push.public_key)


@router.post("/subscribe", response_model=MessageResponse)
def subscribe(data: PushSubscribeRequest, db: Session = Depends(get_db)):
    try:
        PushService.subscribe(
            db,
            endpoint=data.subscription.endpoint,
            p256dh=data.subscription.keys.p256dh,
            auth=data.subscription.keys.auth,
            username=data.username
        )
        return MessageResponse(message="Subscription saved")
    except Exception as e:
        logger.error(f"Failed to save push subscription: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to save subscription")
