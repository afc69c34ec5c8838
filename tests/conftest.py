"""Shared fixtures: a throwaway SQLite database and recording collaborators."""
import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="housekeeping-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["TIMEZONE"] = "Asia/Phnom_Penh"
os.environ["LIVE_FEED_PERSIST"] = "true"
os.environ["LIVE_FEED_TTL_DAYS"] = "30"
os.environ["VAPID_PUBLIC_KEY"] = ""
os.environ["VAPID_PRIVATE_KEY"] = ""

import pytest
from fastapi.testclient import TestClient

import models  # noqa: F401
from database import Base, SessionLocal, engine
from core.action_processor import ActionProcessor
from core.broadcaster import Broadcaster
from core.event_log import EventLog

TZ = "Asia/Phnom_Penh"


class RecordingBroadcaster(Broadcaster):
    """Broadcaster that remembers every notify() instead of needing sockets"""

    def __init__(self):
        super().__init__()
        self.sent = []

    def notify(self, event, data=None):
        self.sent.append((event, data))
        return super().notify(event, data)


class RecordingPush:
    def __init__(self, fail=False):
        self.fail = fail
        self.payloads = []

    def dispatch(self, payload):
        if self.fail:
            raise RuntimeError("push service unreachable")
        self.payloads.append(payload)


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def event_log():
    return EventLog(SessionLocal, persist=True, ttl_days=30)


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def push():
    return RecordingPush()


@pytest.fixture
def processor(event_log, broadcaster, push):
    return ActionProcessor(event_log, broadcaster, push=push, tz_name=TZ)


@pytest.fixture
def client():
    from main import app
    with TestClient(app) as test_client:
        yield test_client
