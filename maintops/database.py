"""Database configuration, session management and the atomic unit-of-work runner."""
import logging
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from maintops import config
from maintops.services.errors import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Configure engine based on database type
if config.IS_SQLITE:
    engine = create_engine(
        config.DATABASE_URL,
        connect_args={"check_same_thread": False}
    )
else:
    engine = create_engine(
        config.DATABASE_URL,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=5,
        max_overflow=10
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for FastAPI endpoints to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


_RETRYABLE_MESSAGES = ("database is locked", "deadlock", "could not serialize", "lock timeout")


def is_retryable(exc: BaseException) -> bool:
    """True for write-write conflicts that a fresh re-read can resolve."""
    if isinstance(exc, (ConflictError, IntegrityError, StaleDataError)):
        return True
    if isinstance(exc, OperationalError):
        message = str(exc).lower()
        return any(marker in message for marker in _RETRYABLE_MESSAGES)
    return False


def run_atomic(
    session: Session,
    operation: Callable[[], T],
    name: str = "unit_of_work",
    max_retries: Optional[int] = None,
    retry_delay: Optional[float] = None,
) -> T:
    """
    Run ``operation`` and commit it as one atomic unit.

    The whole operation is re-executed on a write conflict, so it must read
    everything it depends on through ``session``. Any failure rolls the unit
    back completely. Conflicts that persist past ``max_retries`` surface as
    ConflictError; every other exception propagates unchanged.
    """
    retries = config.MAX_RETRIES if max_retries is None else max_retries
    delay = config.RETRY_DELAY if retry_delay is None else retry_delay
    attempt = 0

    while True:
        try:
            result = operation()
            session.commit()
            return result
        except Exception as exc:
            session.rollback()
            if not is_retryable(exc):
                raise
            if attempt >= retries:
                logger.error("Giving up on %s after %d retries: %s", name, retries, exc)
                raise ConflictError(
                    f"{name} kept conflicting with concurrent writers; retry the request"
                ) from exc
            attempt += 1
            logger.warning("Write conflict in %s, retrying (attempt %d/%d)", name, attempt, retries)
            if delay:
                time.sleep(min(delay * (2 ** (attempt - 1)), 1.0))
