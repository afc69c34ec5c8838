from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import asyncio
import logging

import models  # noqa: F401  registers the tables on Base.metadata
from database import Base, SessionLocal, engine, get_settings
from core.action_processor import ActionProcessor
from core.broadcaster import Broadcaster
from core.event_log import EventLog
from services.push_service import PushService
from api import live_feed, logs, push, rooms, websocket

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create tables and wire the live state components
    Base.metadata.create_all(bind=engine)

    event_log = EventLog(
        SessionLocal,
        persist=settings.live_feed_persist,
        ttl_days=settings.live_feed_ttl_days
    )
    broadcaster = Broadcaster(
        send_timeout=settings.broadcast_timeout_seconds,
        queue_size=settings.broadcast_queue_size
    )
    push_service = PushService(
        SessionLocal,
        public_key=settings.vapid_public_key,
        private_key=settings.vapid_private_key,
        subject=settings.push_subject,
        timeout=settings.push_timeout_seconds
    )

    app.state.session_factory = SessionLocal
    app.state.event_log = event_log
    app.state.broadcaster = broadcaster
    app.state.push = push_service
    app.state.processor = ActionProcessor(
        event_log, broadcaster, push=push_service, tz_name=settings.timezone
    )

    expiry = asyncio.create_task(
        event_log.run_expiry(settings.live_feed_expiry_interval_seconds)
    )
    logger.info(
        f"Housekeeping API started (tz={settings.timezone}, "
        f"live_feed_persist={settings.live_feed_persist}, ttl_days={settings.live_feed_ttl_days})"
    )
    yield
    # Shutdown
    expiry.cancel()
    try:
        await expiry
    except asyncio.CancelledError:
        pass
    push_service.shutdown()


app = FastAPI(
    title="Housekeeping Live API",
    description="Real-time housekeeping state for hotel rooms with a live event feed",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(logs.router)
app.include_router(rooms.router)
app.include_router(live_feed.router)
app.include_router(push.router)
app.include_router(websocket.router)


@app.get("/")
def root():
    return {"message": "Housekeeping Live API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy", "connected_clients": app.state.broadcaster.count}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
