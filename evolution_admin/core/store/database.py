"""Database engine and session scoping shared by the SQL stores."""
from __future__ import annotations
import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .tables import Base

logger = logging.getLogger(__name__)

IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create the engine for ``database_url``.

    An in-memory SQLite URL shares one connection across threads, so every
    session sees the same database.
    """
    if database_url in IN_MEMORY_URLS:
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, connect_args={"check_same_thread": False})
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


class Database:
    """
    Engine plus the session scope used by every store on it.

    Calls outside ``transaction()`` each run in a short session that commits
    on exit. Inside ``transaction()`` all calls on the same thread share one
    session and commit together. A re-entrant lock serializes sessions from
    this process so a count and the write it guards cannot interleave.

    Usage:
        db = Database.from_url("postgresql+psycopg://admin:***@db/evolution")
        db.create_tables()
        users, locales = SqlUserStore(db), SqlLocalStore(db)
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)
        self._lock = threading.RLock()
        self._local = threading.local()

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "Database":
        return cls(create_db_engine(database_url, echo=echo))

    @property
    def url(self) -> str:
        return self.engine.url.render_as_string(hide_password=True)

    def create_tables(self) -> None:
        """Create all tables (idempotent). Existing tables and rows are left untouched."""
        Base.metadata.create_all(self.engine)
        logger.info("Database schema is up to date (%s)", self.url)

    @contextmanager
    def session(self) -> Iterator[Session]:
        current = getattr(self._local, "session", None)
        if current is not None:
            yield current
            return
        with self._lock, self._sessions.begin() as session:
            yield session

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if getattr(self._local, "session", None) is not None:
            yield
            return
        with self._lock, self._sessions.begin() as session:
            self._local.session = session
            try:
                yield
            finally:
                self._local.session = None
