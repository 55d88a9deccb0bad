from __future__ import annotations

from collections.abc import Generator
from math import ceil

from fastapi import Query
from sqlalchemy.orm import Session

from core.config import get_settings
from core.db import get_session_factory
from core.validators import PaginationInput


def get_db() -> Generator[Session, None, None]:
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_pagination(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
) -> PaginationInput:
    settings = get_settings()
    size = min(limit or settings.default_page_size, settings.max_page_size)
    return PaginationInput(page=page, limit=size)


def page_count(total: int, limit: int) -> int:
    return ceil(total / limit) if limit else 0
