import logging
import os
import time
from contextlib import contextmanager
from typing import Callable, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import DATABASE_URL, DB_RETRY_ATTEMPTS, DB_RETRY_BACKOFF

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Get environment-specific pool settings
POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "30"))
POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
STATEMENT_TIMEOUT_MS = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "15000"))
ENABLE_QUERY_LOGGING = os.getenv("DB_LOG_SLOW_QUERIES", "true").lower() == "true"
SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))


def _build_engine(url: str):
    if url.startswith("sqlite"):
        # Local development and tests: single shared connection, no pool tuning
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )

    connect_args = {}
    if url.startswith("postgresql"):
        # No store call may block indefinitely
        connect_args["options"] = f"-c statement_timeout={STATEMENT_TIMEOUT_MS}"

    return create_engine(
        url,
        pool_pre_ping=True,  # Test connections before using
        pool_recycle=POOL_RECYCLE,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        connect_args=connect_args,
        echo=False,
    )


try:
    engine = _build_engine(DATABASE_URL)
    logger.info("✅ Database engine created successfully")
except Exception as e:
    logger.error(f"❌ Failed to create database engine: {e}")
    raise

# Slow query logging for performance monitoring
if ENABLE_QUERY_LOGGING:

    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        conn.info.setdefault("query_start_time", []).append(time.time())

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        total = time.time() - conn.info["query_start_time"].pop(-1)
        if total > SLOW_QUERY_THRESHOLD:
            logger.warning(f"🐌 Slow query ({total:.2f}s): {statement[:200]}...")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session):
    """
    Run a unit of work as one transaction.

    Commits when the block exits cleanly, rolls back on any exception and
    re-raises it, so callers never observe a partially applied change.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def with_retry(
    operation: Callable[[], T],
    attempts: int = DB_RETRY_ATTEMPTS,
    backoff: float = DB_RETRY_BACKOFF,
    db: Session = None,
) -> T:
    """
    Retry an idempotent store operation on transient errors with exponential backoff.

    Only reads and insert-if-absent writes may go through here. Plain status
    updates are never retried, a retried transition could be applied twice.
    """
    for attempt in range(attempts):
        try:
            return operation()
        except OperationalError as e:
            if db is not None:
                db.rollback()
            if attempt == attempts - 1:
                logger.error(f"❌ Store operation failed after {attempts} attempts: {e}")
                raise
            logger.warning(f"🔄 Transient store error, retry {attempt + 1}/{attempts}: {e}")
            time.sleep(backoff * (2**attempt))
