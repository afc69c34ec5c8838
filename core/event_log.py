"""
Event Log: append-only live feed history

Every live broadcast is mirrored here with the exact payload clients saw,
so a client can page history or rebuild what happened to a room.

Writes are best-effort: a failed append is logged and swallowed, it never
fails the action that produced the event and never stops the broadcast.
Retention is time based and enforced by a background sweep.
"""
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional
import asyncio
import logging

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from models import EventType, LiveFeedEvent
from core.clock import utc_now

logger = logging.getLogger(__name__)


class EventLog:
    """Live feed persistence"""

    def __init__(self, session_factory: Callable[[], Session], persist: bool = True,
                 ttl_days: int = 30):
        """
        Parameters:
            session_factory: creates a Session independent of the caller's,
                so a failed append cannot roll back the action's own write
            persist: False disables writes entirely (broadcast is unaffected)
            ttl_days: retention; 0 or negative keeps events forever
        """
        self.session_factory = session_factory
        self.persist = persist
        self.ttl_days = ttl_days

    def append(self, event_type: EventType, payload: Dict[str, Any],
               room_number: Optional[str] = None, meta: Optional[Dict[str, Any]] = None,
               ts: Optional[datetime] = None) -> Optional[int]:
        """
        Write one immutable event.

        Returns:
            the new event id, or None when persistence is off or the write failed
        """
        if not self.persist:
            return None

        db = self.session_factory()
        try:
            event = LiveFeedEvent(
                ts=ts or utc_now(),
                type=EventType(event_type).value,
                room_number=room_number,
                payload=payload,
                meta=meta or {},
            )
            db.add(event)
            db.commit()
            return event.id
        except Exception as e:
            logger.error(f"[livefeed] persist error for {event_type}: {e}", exc_info=True)
            db.rollback()
            return None
        finally:
            db.close()

    @staticmethod
    def query_by_window(db: Session, start: Optional[datetime] = None,
                        end: Optional[datetime] = None,
                        types: Optional[Iterable[str]] = None,
                        room_number: Optional[str] = None,
                        limit: int = 200) -> List[LiveFeedEvent]:
        """
        Events with start <= ts < end, newest first.

        Either bound may be omitted. ``types`` and ``room_number`` narrow the
        result further.
        """
        query = db.query(LiveFeedEvent)
        if start is not None:
            query = query.filter(LiveFeedEvent.ts >= start)
        if end is not None:
            query = query.filter(LiveFeedEvent.ts < end)
        if types:
            query = query.filter(LiveFeedEvent.type.in_([EventType(t).value for t in types]))
        if room_number is not None:
            query = query.filter(LiveFeedEvent.room_number == room_number)
        return query.order_by(
            LiveFeedEvent.ts.desc(), LiveFeedEvent.id.desc()
        ).limit(limit).all()

    @staticmethod
    def query_by_room(db: Session, room_number: str, limit: int = 50) -> List[LiveFeedEvent]:
        """Latest ``limit`` events of one room, newest first."""
        return db.query(LiveFeedEvent).filter(
            LiveFeedEvent.room_number == room_number
        ).order_by(
            LiveFeedEvent.ts.desc(), LiveFeedEvent.id.desc()
        ).limit(limit).all()

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """
        Delete events older than the retention window.

        Returns:
            number of deleted events (0 when expiry is disabled)
        """
        if self.ttl_days <= 0:
            return 0

        cutoff = (now or utc_now()) - timedelta(days=self.ttl_days)
        db = self.session_factory()
        try:
            deleted = db.query(LiveFeedEvent).filter(
                LiveFeedEvent.ts < cutoff
            ).delete(synchronize_session=False)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        if deleted:
            logger.info(f"[livefeed] expired {deleted} events older than {cutoff.isoformat()}")
        return deleted

    async def run_expiry(self, interval_seconds: float) -> None:
        """
        Background sweep; runs until cancelled.

        A failed sweep is logged and retried on the next tick.
        """
        if self.ttl_days <= 0:
            logger.info("[livefeed] TTL disabled, expiry sweep not started")
            return

        logger.info(f"[livefeed] expiry sweep every {interval_seconds}s, ttl={self.ttl_days}d")
        while True:
            try:
                await run_in_threadpool(self.purge_expired)
            except Exception as e:
                logger.error(f"[livefeed] expiry sweep failed: {e}", exc_info=True)
            await asyncio.sleep(interval_seconds)
