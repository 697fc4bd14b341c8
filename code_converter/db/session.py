from __future__ import annotations

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from code_converter.settings import settings


def build_engine(database_url: str) -> Engine:
    """
    Create the process-wide engine.

    The engine (and its connection pool) is shared by every request handler
    and by the history writer thread. SQLAlchemy engines are thread-safe;
    Sessions are not, so each unit of work opens its own Session from
    SessionLocal and never hands it to a concurrent caller.
    """
    if database_url.startswith("sqlite"):
        # SQLite connections are used from the writer thread and from
        # anyio worker threads.
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            future=True,
        )
    return create_engine(
        database_url,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
        future=True,
    )


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(
    bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True
)


def get_db_session() -> Generator[Session, None, None]:
    """Provide a SQLAlchemy session for FastAPI dependencies."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


__all__ = ["SessionLocal", "build_engine", "engine", "get_db_session"]
