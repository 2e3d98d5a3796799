from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from app.config import settings
from app.errors import from_integrity_error

SQLITE_IMMEDIATE = "sqlite_begin_immediate"


class Base(DeclarativeBase):
    pass


def configure_sqlite(engine: Engine) -> Engine:
    """Make SQLite enforce foreign keys and let writers take the lock up front.

    pysqlite defers BEGIN until the first DML statement, so a read-then-write
    transaction is not atomic against a concurrent one. Connections opened by
    :func:`transaction` carry the ``sqlite_begin_immediate`` option and start
    with BEGIN IMMEDIATE; everything else starts a plain deferred BEGIN, so
    reads do not hold the write lock.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn) -> None:
        if conn.get_execution_options().get(SQLITE_IMMEDIATE):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")

    return engine


def make_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        engine = create_engine(database_url, connect_args={"check_same_thread": False})
        return configure_sqlite(engine)
    return create_engine(database_url, pool_pre_ping=True)


engine = make_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def _begin_write(db: Session) -> None:
    if db.get_bind().dialect.name != "sqlite":
        return
    if db.in_transaction():
        if db.new or db.dirty or db.deleted:
            return
        # a read-only transaction left open by earlier reads cannot be upgraded
        db.commit()
    db.connection(execution_options={SQLITE_IMMEDIATE: True})


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Run a read-evaluate-write sequence as one unit.

    Commits on success. Any failure rolls back everything done inside the
    block; integrity violations are translated into domain errors.
    """
    _begin_write(db)
    try:
        yield db
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise from_integrity_error(exc) from exc
    except Exception:
        db.rollback()
        raise
