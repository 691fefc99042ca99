# app/core/db.py
from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings
from app.core.errors import StorageFailure


def install_sqlite_savepoints(engine: Engine) -> None:
    """
    pysqlite starts transactions lazily and breaks SAVEPOINT handling.
    Take over BEGIN ourselves so begin_nested() behaves like on Postgres.
    """

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def make_engine(url: str, **kwargs) -> Engine:
    eng = create_engine(url, future=True, **kwargs)
    if eng.dialect.name == "sqlite":
        install_sqlite_savepoints(eng)
    return eng


engine = make_engine(settings.database_url, pool_pre_ping=True)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Re-raise driver/ORM errors as StorageFailure. Domain errors pass through."""
    try:
        yield
    except SQLAlchemyError as e:
        raise StorageFailure(operation=operation) from e


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
