from sqlalchemy import create_engine
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from pydantic_settings import BaseSettings
from functools import lru_cache, wraps
import logging

from core.exceptions import HousekeepingException

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    database_url: str = "sqlite:///./housekeeping.db"
    timezone: str = "Asia/Phnom_Penh"

    # Live feed (event log)
    live_feed_persist: bool = True
    live_feed_ttl_days: int = 30
    live_feed_expiry_interval_seconds: float = 3600.0

    # Bounded waits (store: SQLite busy timeout, PostgreSQL lock_timeout, MySQL lock wait)
    store_timeout_seconds: float = 5.0
    broadcast_timeout_seconds: float = 5.0
    broadcast_queue_size: int = 256

    cors_origins: str = "*"
    log_level: str = "INFO"

    # Web Push (VAPID)
    vapid_public_key: str = ""
    vapid_private_key: str = ""
    push_subject: str = "mailto:admin@localhost"
    push_timeout_seconds: float = 10.0

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings():
    return Settings()


settings = get_settings()


def connect_args_for(database_url: str, timeout_seconds: float) -> dict:
    """
    Driver arguments that bound how long a statement waits on a lock.

    - SQLite: busy timeout; check_same_thread=False lets the threadpool share connections
    - PostgreSQL: lock_timeout (milliseconds)
    - MySQL: innodb_lock_wait_timeout (whole seconds, at least 1)

    Other backends keep their server defaults.
    """
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": timeout_seconds}
    if database_url.startswith("postgresql"):
        return {"options": f"-c lock_timeout={int(timeout_seconds * 1000)}"}
    if database_url.startswith("mysql"):
        return {"init_command": f"SET SESSION innodb_lock_wait_timeout={max(1, int(timeout_seconds))}"}
    logger.warning(f"No lock timeout configured for {database_url.split(':', 1)[0]}")
    return {}


engine = create_engine(
    settings.database_url,
    connect_args=connect_args_for(settings.database_url, settings.store_timeout_seconds),
    pool_pre_ping=True
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    FastAPI dependency: one Session per request.

    The session is always closed when the request finishes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def transactional(func):
    """
    Transaction decorator: run the wrapped function as one atomic unit.

    Usage:
        @transactional
        def some_store_operation(db: Session, ...):
            record = CleaningLog(...)
            db.add(record)
            # no manual commit, the decorator commits

    If the function raises:
        - the session is rolled back
        - the exception is re-raised for the caller to translate

    Notes:
        - the first argument (or the ``db`` keyword) must be the Session
        - do not commit inside the function
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        db = None
        if args and isinstance(args[0], Session):
            db = args[0]
        elif 'db' in kwargs:
            db = kwargs['db']

        if db is None:
            raise ValueError(
                f"@transactional requires 'db: Session' as first argument, "
                f"but got args={args}, kwargs={kwargs}"
            )

        try:
            result = func(*args, **kwargs)
            db.commit()
            return result
        except HousekeepingException as e:
            # Rejected action: nothing to report beyond the rejection itself
            logger.info(f"Transaction rejected in {func.__name__}: {e}")
            db.rollback()
            raise
        except Exception as e:
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise

    return wrapper
