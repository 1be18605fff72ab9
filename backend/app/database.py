"""
Database configuration and session management for the Store Ratings API.

The engine (and its connection pool) is owned by a ``Database`` handle that the
application creates at startup and keeps on ``app.state``. Requests get a
scoped ``Session`` from it through the ``get_db`` dependency.
"""

import os
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.pool import StaticPool

# Base class for declarative models
Base = declarative_base()

_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enable_sqlite_transactions(engine) -> None:
    """
    Make pysqlite honour SAVEPOINT and foreign keys.

    pysqlite issues its own BEGIN lazily, which breaks nested transactions,
    so the driver is switched to autocommit and SQLAlchemy emits BEGIN itself.
    """

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


class Database:
    """Owns the engine, the connection pool and the session factory."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        connect_args = {}
        engine_kwargs = {}

        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            if url in _MEMORY_URLS:
                # One shared connection, otherwise every checkout sees an empty db
                engine_kwargs["poolclass"] = StaticPool
            else:
                # Create database directory if it doesn't exist
                db_dir = os.path.dirname(url.replace("sqlite:///", ""))
                if db_dir and not os.path.exists(db_dir):
                    os.makedirs(db_dir, exist_ok=True)

        self.engine = create_engine(
            url, echo=echo, connect_args=connect_args, **engine_kwargs
        )
        if self.engine.dialect.name == "sqlite":
            _enable_sqlite_transactions(self.engine)

        self.session_factory = sessionmaker(
            autoflush=False, bind=self.engine
        )

    def create_all(self) -> None:
        """Create all tables."""
        # Import models to ensure they're registered
        from app.models import user, store, rating  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        from app.models import user, store, rating  # noqa: F401

        Base.metadata.drop_all(bind=self.engine)

    def ping(self) -> None:
        """Raise if the database cannot be reached."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Context manager for database session.
        Use for non-FastAPI contexts (scripts, jobs).
        """
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Dependency for getting database session.
    Use in FastAPI route dependencies.
    """
    db = request.app.state.database.session_factory()
    try:
        yield db
    finally:
        db.close()
