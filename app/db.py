"""Database engine, session factory and FastAPI dependency."""

from __future__ import annotations

from typing import Iterator, Optional

from sqlalchemy import JSON, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.config import get_settings

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class DatabaseManager:
    """Lazily builds the engine and session factory from settings."""

    def __init__(self) -> None:
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            settings = get_settings()
            url = settings.database_url_obj
            kwargs = {"pool_pre_ping": True}
            if url.get_backend_name() != "sqlite":
                kwargs["pool_size"] = settings.database_pool_size
                kwargs["max_overflow"] = settings.database_max_overflow
            self._engine = create_engine(url, **kwargs)
        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine, autoflush=False, expire_on_commit=False
            )
        return self._session_factory

    def configure(self, engine: Engine) -> None:
        """Point the manager at an existing engine (tests, scripts)."""
        self._engine = engine
        self._session_factory = sessionmaker(
            bind=engine, autoflush=False, expire_on_commit=False
        )

    def new_session(self) -> Session:
        return self.session_factory()


db_manager = DatabaseManager()


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding a request-scoped session."""
    db = db_manager.new_session()
    try:
        yield db
    finally:
        db.close()
