from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import create_engine, event, make_url
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from coachsync.config.settings import settings


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy own BEGIN on pysqlite so SAVEPOINTs behave.

    The ingestion pipeline relies on a SAVEPOINT around each insert; the stock
    pysqlite driver defers BEGIN and breaks nested transactions.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_db_engine(database_url: str, **kwargs) -> Engine:
    """Create an engine with the connection args this project expects."""
    is_sqlite = database_url.lower().startswith("sqlite")
    connect_args = {"check_same_thread": False} if is_sqlite else {"connect_timeout": 10, "application_name": "coachsync"}

    engine = create_engine(
        database_url,
        connect_args=connect_args,
        echo=False,
        pool_pre_ping=not is_sqlite,
        **kwargs,
    )
    if is_sqlite:
        _enable_sqlite_savepoints(engine)
    return engine


# Lazy initialization to avoid import-time database connections
_engine: Engine | None = None
_SessionLocal: sessionmaker[Session] | None = None


def _get_engine() -> Engine:
    """Get or create the database engine (lazy initialization)."""
    global _engine
    if _engine is None:
        logger.info(f"[DB] Creating engine for {make_url(settings.database_url).render_as_string(hide_password=True)}")
        _engine = create_db_engine(settings.database_url, pool_recycle=3600)
        logger.debug("[DB] Engine ready")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Shared sessionmaker; objects stay usable after commit (expire_on_commit=False)."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=_get_engine())
        logger.debug("[DB] Session factory ready")
    return _SessionLocal


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Session scope for tasks and scripts: commit on success, rollback on error."""
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception as e:
        logger.warning(f"[DB] Rolling back session after {type(e).__name__}: {e}")
        session.rollback()
        raise
    finally:
        session.close()

