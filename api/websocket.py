"""
Live channel (WebSocket)

Protocol, all messages are {"event": <name>, "data": <payload>}:

    client -> server   request_initial_data      ask for today's snapshot
    server -> client   initial_data              the snapshot
    server -> client   initial_data_error        snapshot could not be built
    client -> server   ping                      keep-alive, answered with pong
    server -> client   room_update, room_checked, dnd_update, priority_update,
                       note_update, inspection, system   live events

The client is registered before the snapshot is read, so any event produced
while the snapshot is being built is queued for it and nothing is missed.
A client the broadcaster drops (slow or broken) is closed with code 1011 so it
reconnects and resynchronises from a fresh snapshot.
"""
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool
import asyncio
import logging

from database import get_settings
from core.clock import current_day
from services.snapshot_service import build_snapshot

router = APIRouter(tags=["websocket"])
logger = logging.getLogger(__name__)


def _load_snapshot(session_factory, tz_name: str):
    db = session_factory()
    try:
        return build_snapshot(db, current_day(tz_name), tz_name)
    finally:
        db.close()


async def _receive_loop(websocket: WebSocket, broadcaster, subscriber, session_factory,
                        tz_name: str) -> None:
    """Answer client requests until the client disconnects."""
    while True:
        try:
            message = await websocket.receive_json()
        except WebSocketDisconnect:
            logger.info(f"Subscriber {subscriber.id} disconnected")
            return
        except ValueError:
            logger.warning(f"Subscriber {subscriber.id}: ignoring malformed message")
            continue

        event = message.get("event") if isinstance(message, dict) else None

        if event == "request_initial_data":
            try:
                snapshot = await run_in_threadpool(_load_snapshot, session_factory, tz_name)
                broadcaster.send_to(subscriber, "initial_data", snapshot)
            except Exception as e:
                logger.error(f"Failed to build snapshot for {subscriber.id}: {e}", exc_info=True)
                broadcaster.send_to(subscriber, "initial_data_error",
                                    {"message": "Failed to fetch initial data."})
        elif event == "ping":
            broadcaster.send_to(subscriber, "pong")
        else:
            logger.debug(f"Subscriber {subscriber.id}: unknown event {event!r}")


@router.websocket("/ws")
async def live_channel(websocket: WebSocket):
    await websocket.accept()

    broadcaster = websocket.app.state.broadcaster
    session_factory = websocket.app.state.session_factory
    tz_name = get_settings().timezone

    subscriber = broadcaster.join(websocket)
    pump = asyncio.create_task(subscriber.pump(broadcaster.send_timeout))
    receiver = asyncio.create_task(
        _receive_loop(websocket, broadcaster, subscriber, session_factory, tz_name)
    )

    try:
        done, _ = await asyncio.wait({receiver, pump}, return_when=asyncio.FIRST_COMPLETED)
        if receiver in done:
            receiver.result()
        else:
            # Dropped by the broadcaster (slow or broken): the client must reconnect
            logger.warning(f"Subscriber {subscriber.id} dropped, closing connection")
            receiver.cancel()
            await asyncio.gather(receiver, return_exceptions=True)
            try:
                await asyncio.wait_for(websocket.close(code=1011), broadcaster.send_timeout)
            except Exception as e:
                logger.info(f"Subscriber {subscriber.id}: close failed ({e!r})")
    finally:
        broadcaster.leave(subscriber)
        if not receiver.done():
            receiver.cancel()
        try:
            await asyncio.wait_for(pump, broadcaster.send_timeout)
        except asyncio.TimeoutError:
            pump.cancel()
