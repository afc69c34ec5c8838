"""
Fan-out Broadcaster

Owns the set of connected WebSocket clients. join/leave are explicit;
notify() is fire-and-forget and may be called from any thread (the sync
endpoints run on the threadpool).

Delivery model:
- each subscriber has a bounded queue drained by its own task, so events
  reach a client in the order they were emitted
- a send that exceeds the timeout, or a full queue, drops that client only;
  it resynchronises with a snapshot when it reconnects
- fan-out is a scatter: one slow client never delays the others
"""
from typing import Any, Dict, List, Optional
import asyncio
import logging
import threading
import uuid

logger = logging.getLogger(__name__)

_CLOSE = object()


class Subscriber:
    """One connected client"""

    def __init__(self, websocket, loop: asyncio.AbstractEventLoop, queue_size: int = 256):
        self.id = uuid.uuid4().hex[:12]
        self.websocket = websocket
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.closed = False

    def deliver(self, message) -> None:
        """Hand a message to the subscriber's loop; safe from any thread."""
        if self.closed:
            return
        try:
            self.loop.call_soon_threadsafe(self._offer, message)
        except RuntimeError:
            # Event loop already closed
            logger.warning(f"Subscriber {self.id}: loop closed, dropping client")
            self.closed = True

    def _offer(self, message) -> None:
        if self.closed and message is not _CLOSE:
            return
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(f"Subscriber {self.id}: queue full, dropping client")
            self.closed = True
            # Wake the pump so it exits
            self.queue.get_nowait()
            self.queue.put_nowait(_CLOSE)

    async def pump(self, send_timeout: float) -> None:
        """Send queued messages until closed, a send fails or a send times out."""
        try:
            while True:
                message = await self.queue.get()
                if message is _CLOSE:
                    break
                try:
                    await asyncio.wait_for(self.websocket.send_json(message), send_timeout)
                except asyncio.TimeoutError:
                    logger.warning(f"Subscriber {self.id}: send timed out after {send_timeout}s")
                    break
                except Exception as e:
                    logger.info(f"Subscriber {self.id}: send failed ({e}), client gone")
                    break
        finally:
            self.closed = True

    def close(self) -> None:
        self.deliver(_CLOSE)
        self.closed = True


class Broadcaster:
    """Registry of live subscribers"""

    def __init__(self, send_timeout: float = 5.0, queue_size: int = 256):
        self.send_timeout = send_timeout
        self.queue_size = queue_size
        self._subscribers: Dict[str, Subscriber] = {}
        self._lock = threading.Lock()

    @staticmethod
    def message(event: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return {"event": event, "data": data if data is not None else {}}

    def join(self, websocket) -> Subscriber:
        """Register a client; must be called from the event loop."""
        subscriber = Subscriber(websocket, asyncio.get_running_loop(), self.queue_size)
        with self._lock:
            self._subscribers[subscriber.id] = subscriber
        logger.info(f"Subscriber {subscriber.id} joined ({self.count} connected)")
        return subscriber

    def leave(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.pop(subscriber.id, None)
        subscriber.close()
        logger.info(f"Subscriber {subscriber.id} left ({self.count} connected)")

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribers(self) -> List[Subscriber]:
        with self._lock:
            return list(self._subscribers.values())

    def notify(self, event: str, data: Optional[Dict[str, Any]] = None) -> int:
        """
        Deliver one event to every connected client.

        Returns:
            number of clients the event was handed to
        """
        message = self.message(event, data)
        delivered = 0
        for subscriber in self.subscribers():
            if subscriber.closed:
                continue
            subscriber.deliver(message)
            delivered += 1
        logger.debug(f"Broadcast {event} to {delivered} clients")
        return delivered

    def send_to(self, subscriber: Subscriber, event: str,
                data: Optional[Dict[str, Any]] = None) -> None:
        """Queue a message for one client, behind whatever it already has queued."""
        subscriber.deliver(self.message(event, data))
