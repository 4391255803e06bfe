"""
Lab Inventory Session Management
================================
Database connection, session management, and initialization utilities.

Supports SQLite (default for local development and tests) and PostgreSQL or
MySQL for deployments. Set DATABASE_URL or pass the URL to init_db().
"""

from typing import Optional, Generator
from contextlib import contextmanager
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool, QueuePool

from labinventory.config import get_database_url
from labinventory.immutability import register_immutability_listeners
from labinventory.models import Base


class DatabaseManager:
    """
    Manages database connections and sessions.

    Usage:
        db = DatabaseManager("sqlite:///:memory:")

        with db.session() as session:
            chemicals = session.query(Chemical).all()
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        echo: bool = False,
        create_tables: bool = True
    ):
        """
        Initialize the database manager.

        Args:
            database_url: Database connection URL. If None, checks DATABASE_URL env var,
                         then falls back to SQLite in the package folder.
            echo: If True, SQLAlchemy will log all SQL statements.
            create_tables: If True, creates all tables on initialization.
        """
        if database_url is None:
            database_url = get_database_url()

        self.database_url = database_url
        self._is_sqlite = database_url.startswith("sqlite")

        if self._is_sqlite:
            self._engine = create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool if ":memory:" in database_url else None
            )

            @event.listens_for(self._engine, "connect")
            def set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.execute("PRAGMA busy_timeout=5000")
                cursor.close()
        else:
            self._engine = create_engine(
                database_url,
                echo=echo,
                poolclass=QueuePool,
                pool_size=10,
                max_overflow=20,
                pool_pre_ping=True,
                pool_recycle=3600,
            )

        self._session_factory = sessionmaker(
            bind=self._engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

        register_immutability_listeners()

        if create_tables:
            self.create_all()

    def create_all(self):
        """Create all database tables."""
        Base.metadata.create_all(self._engine)

    def drop_all(self):
        """Drop all database tables. Use with caution!"""
        Base.metadata.drop_all(self._engine)

    def dispose(self):
        """Dispose of the connection pool."""
        self._engine.dispose()

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.

        Commits on success, rolls back on error.
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def health_check(self) -> bool:
        """
        Check if the database connection is healthy.

        Returns:
            True if connection is healthy, False otherwise.
        """
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            return False


# Global database instance (lazy initialization)
_db_manager: Optional[DatabaseManager] = None


def init_db(
    database_url: Optional[str] = None,
    echo: bool = False,
    create_tables: bool = True
) -> DatabaseManager:
    """
    Initialize the global database manager, replacing any existing one.

    Returns:
        The DatabaseManager instance.
    """
    global _db_manager
    if _db_manager is not None:
        _db_manager.dispose()
    _db_manager = DatabaseManager(
        database_url=database_url,
        echo=echo,
        create_tables=create_tables
    )
    return _db_manager


def get_db() -> DatabaseManager:
    """
    Get the global database manager instance.

    Initializes with default settings if not already initialized.
    """
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """
    Convenience function to get a database session.

    Usage:
        with get_session() as session:
            chemicals = session.query(Chemical).all()
    """
    db = get_db()
    with db.session() as session:
        yield session


def close_db():
    """Close the global database connection."""
    global _db_manager
    if _db_manager is not None:
        _db_manager.dispose()
        _db_manager = None
