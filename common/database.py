"""Engine, session factory and the transaction boundary used by booking mutations."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator, Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import get_settings
from .errors import TransactionError

logger = logging.getLogger(__name__)
settings = get_settings()


class Base(DeclarativeBase):
    pass


def build_engine(database_url: str, timeout_seconds: float) -> Engine:
    """Create an engine whose transactions serialise writers and never wait unbounded."""

    connect_args: Dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": timeout_seconds}
    db_engine = create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)

    if db_engine.dialect.name == "sqlite":
        # pysqlite defers BEGIN until the first write, which would let two
        # requests read the same free slot; take the write lock up front.
        @event.listens_for(db_engine, "connect")
        def _disable_pysqlite_begin(dbapi_connection, _connection_record):  # type: ignore[no-untyped-def]
            dbapi_connection.isolation_level = None

        @event.listens_for(db_engine, "begin")
        def _begin_immediate(conn):  # type: ignore[no-untyped-def]
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return db_engine


engine = build_engine(settings.database_url, settings.transaction_timeout_seconds)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _apply_timeouts(db: Session) -> None:
    if db.get_bind().dialect.name != "postgresql":
        return
    timeout_ms = int(get_settings().transaction_timeout_seconds * 1000)
    db.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))
    db.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Run one unit of work: commit on success, roll back on any failure.

    Storage failures (lock timeouts, dropped connections, constraint races)
    are re-raised as ``TransactionError`` so callers know nothing was
    committed and the whole operation may be retried.
    """

    try:
        _apply_timeouts(db)
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Transaction aborted: %s", exc.__class__.__name__)
        raise TransactionError("Storage transaction aborted, please retry") from exc
    except Exception:
        db.rollback()
        raise


def dispose_engine() -> None:
    engine.dispose()
