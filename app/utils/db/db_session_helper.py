"""Session helper for code running outside a request (Celery tasks)."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

from app.db import db_manager


@contextmanager
def db_session() -> Iterator[Session]:
    """Yield a session, rolling back on error and always closing it."""
    db = db_manager.new_session()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
