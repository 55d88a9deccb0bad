from __future__ import annotations

import logging
import time
from collections.abc import Callable
from contextlib import contextmanager
from typing import Iterator, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from core.config import get_settings
from core.models import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")

_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        url = get_settings().database_url
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        _engine = create_engine(url, pool_pre_ping=True, connect_args=connect_args)
        if url.startswith("sqlite"):

            @event.listens_for(_engine, "connect")
            def _enable_foreign_keys(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

    return _engine


def get_session_factory() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, expire_on_commit=False)
    return _SessionLocal


def reset_engine() -> None:
    """Drop the cached engine and session factory (settings changed, tests)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def create_schema() -> None:
    Base.metadata.create_all(bind=get_engine())


@contextmanager
def session_scope() -> Iterator[Session]:
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def retry_db_operation(
    operation: Callable[[], T],
    max_retries: int = 3,
    base_delay: float = 1.0,
    session: Session | None = None,
) -> T:
    """Run ``operation`` retrying transient connection errors with exponential backoff.

    When ``session`` is given it is rolled back before each retry so the next
    attempt starts from a clean transaction.
    """
    for attempt in range(1, max_retries + 1):
        try:
            return operation()
        except OperationalError as exc:
            if attempt == max_retries:
                logger.error("db_operation_failed", extra={"attempts": attempt, "error": str(exc)})
                raise
            if session is not None:
                session.rollback()
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning("db_operation_retry", extra={"attempt": attempt, "delay_s": delay})
            time.sleep(delay)
    raise RuntimeError("unreachable")  # pragma: no cover
