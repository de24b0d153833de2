from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import DATABASE_ECHO, DATABASE_URL

logger = logging.getLogger(__name__)


def make_engine(url: str, echo: bool = DATABASE_ECHO) -> Engine:
    """
    Build the engine for `url`.
    SQLite needs foreign keys switched on per connection, otherwise the
    ON DELETE CASCADE of the schema is ignored.
    """
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    new_engine = create_engine(url, echo=echo, future=True, connect_args=connect_args)

    if new_engine.dialect.name == "sqlite":
        @event.listens_for(new_engine, "connect")
        def _sqlite_pragmas(dbapi_connection, connection_record) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
    expire_on_commit=False
)


class Base(DeclarativeBase):
    """ORM base for every model."""
    pass


def use_database(url: str) -> Engine:
    """Point the module-level engine and SessionLocal to another database (tests, CLI --db)."""
    global engine
    engine = make_engine(url)
    SessionLocal.configure(bind=engine)
    logger.info(f"Database bound to {engine.url.render_as_string(hide_password=True)}")
    return engine


@contextmanager
def db_session() -> Iterator[Session]:
    """
    Context manager handling the session properly:
    - commit when everything went fine
    - rollback on exceptions
    - always close
    """
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
