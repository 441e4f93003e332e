"""Database connection, initialization and transaction helpers."""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, sessionmaker

from reviewscope.config.settings import settings
from reviewscope.data.models import Base

logger = logging.getLogger(__name__)

_TX_DEPTH_KEY = "tx_depth"


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the database server defaults."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _configure_sqlite(engine: Engine, wal: bool) -> None:
    """Make pysqlite honour BEGIN/SAVEPOINT and enforce foreign keys."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Disable pysqlite's own BEGIN handling; we emit BEGIN ourselves
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if wal:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def get_engine(url: Optional[str] = None) -> Engine:
    """Create SQLAlchemy engine for SQLite (default) or PostgreSQL."""
    url = url or settings.sqlalchemy_url
    parsed = make_url(url)

    if parsed.get_backend_name() == "sqlite":
        in_memory = parsed.database in (None, "", ":memory:")
        if not in_memory:
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(url, echo=False)
        _configure_sqlite(engine, wal=not in_memory)
        return engine

    return create_engine(url, echo=False, pool_pre_ping=True)


def get_session_factory(engine=None) -> sessionmaker:
    """Create session factory."""
    if engine is None:
        engine = get_engine()
    return sessionmaker(bind=engine)


@contextmanager
def get_session(engine=None) -> Generator[Session, None, None]:
    """Get a database session as a context manager."""
    SessionFactory = get_session_factory(engine)
    session = SessionFactory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def transaction(session: Session) -> Generator[Session, None, None]:
    """Run a block atomically, nesting as a SAVEPOINT when already inside one.

    The outermost call commits on success and rolls back on error. Inner
    calls open a savepoint that is released or rolled back on its own, so
    the outer transaction can continue after an inner failure is handled.
    The original exception is always re-raised.
    """
    depth = session.info.get(_TX_DEPTH_KEY, 0)
    session.info[_TX_DEPTH_KEY] = depth + 1
    try:
        if depth == 0:
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
        else:
            with session.begin_nested():
                yield session
    finally:
        session.info[_TX_DEPTH_KEY] = depth


def dialect_name(session: Session) -> str:
    """Dialect name of the engine the session is bound to."""
    return session.get_bind().dialect.name


def insert_for(session: Session, table):
    """Dialect-specific INSERT construct supporting ``on_conflict_do_update``."""
    if dialect_name(session) == "postgresql":
        return postgresql.insert(table)
    return sqlite.insert(table)


def init_database(engine=None) -> None:
    """Initialize the database with all tables."""
    if engine is None:
        engine = get_engine()
    Base.metadata.create_all(engine)


def reset_database(engine=None) -> None:
    """Drop all tables and recreate them."""
    if engine is None:
        engine = get_engine()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    logger.info("Database reset complete")


if __name__ == "__main__":
    # When run directly, initialize the database
    print(f"Initializing database at: {settings.sqlalchemy_url}")
    init_database(get_engine())
    print("Done!")
