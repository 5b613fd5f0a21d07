import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from securevault.core.config import Settings

logger = logging.getLogger(__name__)

# Base class for all database models
# All models inherit from this to get SQLAlchemy ORM functionality
Base = declarative_base()


def _engine_options(settings: Settings) -> dict:
    """Build create_engine() keyword arguments for the configured backend"""
    url = settings.DATABASE_URL
    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        # In-memory databases live inside one connection, so every checkout
        # must hand back that same connection
        if url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return options

    return {
        # Hard cap on concurrent connections - no overflow beyond pool_size
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": 0,
        # Fail fast instead of queuing indefinitely for a free connection
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        # Evict connections that have been held longer than this
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_pre_ping": True,
        "connect_args": {"connect_timeout": settings.DB_CONNECT_TIMEOUT},
    }


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Owned connection pool plus session factory.

    Created once at application startup and disposed at shutdown. Components
    that need storage receive sessions from this object instead of reaching
    for a module-level engine.
    """

    def __init__(self, settings: Settings):
        self.url = settings.DATABASE_URL
        self.engine: Engine = create_engine(self.url, **_engine_options(settings))
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        # Create session factory - each request gets a new session
        # autoflush=False: Don't auto-flush before queries (better performance)
        self.SessionLocal = sessionmaker(autoflush=False, bind=self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Scoped session: the connection goes back to the pool on every exit path"""
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def ping(self) -> bool:
        """Return True when a connection can be acquired and used"""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"Database ping failed: {e}")
            return False

    def table_names(self) -> list[str]:
        return sorted(inspect(self.engine).get_table_names())

    def dispose(self) -> None:
        """Close every pooled connection. Called once at process shutdown."""
        self.engine.dispose()


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_db(request: Request):
    """
    Dependency for getting database session.

    This is a FastAPI dependency that provides a database session to route handlers.
    The session is automatically closed after the request completes (via finally block).
    Using yield makes this a generator dependency - FastAPI handles the cleanup.
    """
    with get_database(request).session() as db:
        yield db
