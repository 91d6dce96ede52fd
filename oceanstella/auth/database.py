"""
Ocean Stella - Database Configuration

SQLModel database setup with connection pooling.
Supports PostgreSQL (production) and SQLite (development).

The engine is owned by an explicitly constructed Database object that is
created once per process, stored on app.state and passed to the services
that need it. The engine itself is created lazily on first use.

Usage:
    from oceanstella.auth.database import Database

    database = Database(settings.DATABASE_URL)
    database.init_db()  # Creates tables
    with database.session() as db:
        ...
"""

import logging
import threading
from typing import Generator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the persistence layer fails."""
    pass


class DuplicateKeyError(StorageError):
    """Raised when a write violates a unique constraint."""
    pass


def build_engine(url: str, echo: bool = False) -> Engine:
    """
    Create SQLAlchemy engine with appropriate configuration.

    Args:
        url: Database URL
        echo: Log SQL statements

    Returns:
        SQLAlchemy Engine
    """
    if url.startswith("sqlite"):
        # SQLite configuration
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    # PostgreSQL configuration with connection pooling
    return create_engine(
        url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


class Database:
    """
    Lazily-connected database handle.

    The engine is built on first access and reused afterwards. Concurrent
    first accesses are serialized so only one engine (one pool) is created.
    """

    def __init__(self, url: str, echo: bool = False, engine: Optional[Engine] = None):
        self.url = url
        self.echo = echo
        self._engine = engine
        self._lock = threading.Lock()

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            with self._lock:
                if self._engine is None:
                    self._engine = build_engine(self.url, echo=self.echo)
                    logger.info("Database engine created for %s", self.url.split("://")[0])
        return self._engine

    def init_db(self) -> None:
        """
        Initialize database tables.

        Safe to call multiple times (uses CREATE IF NOT EXISTS).
        """
        # Import models to register them with SQLModel
        from oceanstella.auth.models import User, AuthSession  # noqa: F401

        SQLModel.metadata.create_all(self.engine)

    def session(self) -> Session:
        """
        Open a new database session (use as a context manager).

        Objects stay readable after commit/close so services can hand
        them back to route handlers.
        """
        return Session(self.engine, expire_on_commit=False)

    def session_scope(self) -> Generator[Session, None, None]:
        """
        Dependency for getting database sessions.

        Yields:
            Database session (auto-closed after use)
        """
        with Session(self.engine, expire_on_commit=False) as session:
            yield session

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
