from sqlmodel import SQLModel, create_engine, Session
from contextlib import contextmanager
from typing import Generator
import os
from sqlalchemy import event
from sqlalchemy.pool import NullPool

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./quiz.db")
_ECHO = os.getenv("DB_ECHO", "").strip().lower() in ("1", "true", "yes", "on")

if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        DATABASE_URL,
        echo=_ECHO,
        connect_args={"check_same_thread": False},
        poolclass=NullPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_conn, _record):
        # answers reference sessions, questions and options; SQLite ignores FKs unless asked
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
else:
    # Postgres/MySQL: honours SELECT ... FOR UPDATE used when recording answers
    engine = create_engine(
        DATABASE_URL,
        echo=_ECHO,
        pool_size=5,
        max_overflow=10,
        pool_recycle=3600,
        pool_timeout=30,
        pool_pre_ping=True,
    )


def create_db_and_tables():
    # models must be imported so their tables are registered on the metadata
    from quiz_server import models  # noqa: F401
    SQLModel.metadata.create_all(engine)


def drop_db_and_tables():
    """Drop every quiz table. Used by the test suite between cases."""
    from quiz_server import models  # noqa: F401
    SQLModel.metadata.drop_all(engine)


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Yield a DB session that is always properly closed.

    Objects stay usable after commit so payloads can be built from them.
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
    finally:
        session.close()
