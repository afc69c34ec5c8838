"""
Web Push notifications (VAPID)

Best-effort: push is sent from a worker thread after the live broadcast,
failures are logged, subscriptions the push service reports as gone
(404/410) are deleted.
"""
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional, Tuple
import json
import logging

from pywebpush import WebPushException, webpush
from sqlalchemy.orm import Session

from models import PushSubscription

logger = logging.getLogger(__name__)

GONE_STATUS_CODES = (404, 410)


class PushService:
    """Stores subscriptions and sends notifications to all of them"""

    def __init__(self, session_factory: Callable[[], Session], public_key: str = "",
                 private_key: str = "", subject: str = "mailto:admin@localhost",
                 timeout: float = 10.0, max_workers: int = 2):
        self.session_factory = session_factory
        self.public_key = (public_key or "").strip()
        self.private_key = (private_key or "").strip()
        self.subject = (subject or "").strip()
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="push")

        if not self.enabled:
            logger.warning("[push] Web Push disabled: missing VAPID keys")
        else:
            logger.info("[push] Web Push enabled")

    @property
    def enabled(self) -> bool:
        return bool(self.public_key and self.private_key)

    @staticmethod
    def subscribe(db: Session, endpoint: str, p256dh: Optional[str], auth: Optional[str],
                  username: Optional[str] = None) -> PushSubscription:
        """Upsert a subscription by endpoint."""
        subscription = db.query(PushSubscription).filter(
            PushSubscription.endpoint == endpoint
        ).first()
        if subscription is None:
            subscription = PushSubscription(endpoint=endpoint)
            db.add(subscription)
        subscription.p256dh = p256dh
        subscription.auth = auth
        subscription.username = username
        db.commit()
        logger.info(f"[push] subscription saved for {username or 'anonymous'}")
        return subscription

    def send_to_all(self, payload: Dict[str, Any]) -> Tuple[int, int]:
        """
        Send one notification to every subscription.

        Returns:
            (sent, failed)
        """
        if not self.enabled:
            return 0, 0

        db = self.session_factory()
        sent = failed = 0
        try:
            subscriptions = db.query(PushSubscription).all()
            data = json.dumps(payload)
            for subscription in subscriptions:
                try:
                    webpush(
                        subscription_info={
                            "endpoint": subscription.endpoint,
                            "keys": {"p256dh": subscription.p256dh, "auth": subscription.auth},
                        },
                        data=data,
                        vapid_private_key=self.private_key,
                        vapid_claims={"sub": self.subject},
                        timeout=self.timeout,
                    )
                    sent += 1
                except WebPushException as e:
                    failed += 1
                    status_code = e.response.status_code if e.response is not None else None
                    if status_code in GONE_STATUS_CODES:
                        logger.info(f"[push] removing stale subscription ({status_code})")
                        db.delete(subscription)
                    else:
                        logger.error(f"[push] send error: {status_code} {e}")
            db.commit()
        finally:
            db.close()

        logger.info(f"[push] send complete: sent={sent} failed={failed}")
        return sent, failed

    def dispatch(self, payload: Dict[str, Any]) -> Optional[Future]:
        """Send in the background; never raises into the caller."""
        if not self.enabled:
            return None
        future = self._executor.submit(self.send_to_all, payload)
        future.add_done_callback(self._log_failure)
        return future

    @staticmethod
    def _log_failure(future: Future) -> None:
        error = future.exception()
        if error is not None:
            logger.error(f"[push] background send failed: {error}", exc_info=error)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)
