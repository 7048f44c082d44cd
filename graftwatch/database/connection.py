"""
SQLAlchemy engine and session handling for the SQL document store.
PostgreSQL in production; SQLite (file or in-memory) for local runs and tests.
"""

import logging
import threading
from contextlib import contextmanager, nullcontext
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from graftwatch.core.config import settings
from .models import Base

logger = logging.getLogger(__name__)

DEFAULT_SQLITE_URL = "sqlite:///graftwatch.db"


def _engine_options(url: str, pool_size: int, max_overflow: int) -> Dict[str, Any]:
    if not url.startswith("sqlite"):
        return {"pool_size": pool_size, "max_overflow": max_overflow, "pool_pre_ping": True}

    options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if url == "sqlite://" or ":memory:" in url:
        # A private in-memory database exists per connection; pin one
        options["poolclass"] = StaticPool
    return options


def _begin_immediate(engine) -> None:
    """
    Make every SQLite transaction take the write lock when it begins, so a
    read-modify-write cannot interleave with another writer, including
    writers in other processes.
    """

    @event.listens_for(engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(connection):
        connection.exec_driver_sql("BEGIN IMMEDIATE")


class DatabaseConnection:
    """
    Owns the engine and session factory for one database.

    Args:
        database_url: SQLAlchemy URL (settings, then a local SQLite file)
        pool_size: Pooled connections kept open (server databases only)
        max_overflow: Extra connections allowed under load
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        pool_size: int = 5,
        max_overflow: int = 10
    ):
        self.database_url = database_url or settings.database_url or DEFAULT_SQLITE_URL
        self.engine = create_engine(
            self.database_url,
            echo=settings.db_echo,
            **_engine_options(self.database_url, pool_size, max_overflow),
        )
        self._sessions = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        self.is_sqlite = self.engine.dialect.name == "sqlite"
        # SQLite has no row locks; one session at a time per process
        self._lock = threading.RLock() if self.is_sqlite else nullcontext()
        if self.is_sqlite:
            _begin_immediate(self.engine)
        logger.info(f"Database engine ready: {self.safe_url}")

    @property
    def safe_url(self) -> str:
        """URL with the password hidden, for logs."""
        return make_url(self.database_url).render_as_string(hide_password=True)

    def create_tables(self) -> None:
        """Create the documents table if missing (migrations do this in production)."""
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            logger.error(f"Could not create tables on {self.safe_url}: {e}")
            raise

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        """One short transaction: commit on success, roll back on error."""
        with self._lock:
            session = self._sessions()
            try:
                yield session
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise
            finally:
                session.close()

    def close(self) -> None:
        self.engine.dispose()
        logger.debug(f"Disposed engine for {self.safe_url}")
