"""Database connection management for the shipment status store.

Provides synchronous database access using SQLAlchemy. Every status
mutation runs in its own transaction against the shared store; there is no
in-process locking.

Usage:
    from shipstatus.db.connection import get_db_context, init_db

    init_db()  # Create tables
    with get_db_context() as db:
        ...  # use db session
"""

import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from shipstatus.db.models import Base


# Configuration
def get_database_url() -> str:
    """Get database URL from environment or use default SQLite.

    Precedence:
    1. DATABASE_URL (canonical)
    2. SHIPSTATUS_DB_PATH (compat fallback, converted to sqlite URL)
    3. sqlite:///<platform data dir>/shipstatus.db
    """
    database_url = os.environ.get("DATABASE_URL", "").strip()
    if database_url:
        return database_url

    db_path = os.environ.get("SHIPSTATUS_DB_PATH", "").strip()
    if db_path:
        if db_path.startswith("sqlite:"):
            return db_path
        return f"sqlite:///{db_path}"

    from shipstatus.utils.paths import ensure_dirs_exist, get_default_db_path
    ensure_dirs_exist()
    return f"sqlite:///{get_default_db_path()}"


def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Configure SQLite pragmas for correctness and concurrency.

    Enables:
    - foreign_keys=ON: Referential integrity (disabled by default in SQLite).
    - journal_mode=WAL: Concurrent readers while the scheduler thread writes.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.close()


def _create_engine(url: str, echo: bool) -> Engine:
    is_sqlite = url.startswith("sqlite")
    new_engine = create_engine(
        url,
        connect_args={"check_same_thread": False} if is_sqlite else {},
        echo=echo,
    )
    if is_sqlite:
        event.listen(new_engine, "connect", set_sqlite_pragma)
    return new_engine


# Engine creation
DATABASE_URL = get_database_url()

engine = _create_engine(
    DATABASE_URL, echo=os.environ.get("SQL_ECHO", "").lower() == "true"
)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def configure_database(url: str | None = None, echo: bool = False) -> str:
    """Rebind the engine and session factory, e.g. from the config file.

    Args:
        url: Database URL. Empty/None re-resolves from the environment.
        echo: Log emitted SQL.

    Returns:
        The database URL now in use.
    """
    global DATABASE_URL, engine

    new_url = url or get_database_url()
    if new_url == DATABASE_URL and echo == engine.echo:
        return DATABASE_URL

    engine.dispose()
    DATABASE_URL = new_url
    engine = _create_engine(new_url, echo=echo)
    SessionLocal.configure(bind=engine)
    return DATABASE_URL


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Context manager for database sessions outside of a request scope.

    Status services open their own transactions on the session, so this
    only guarantees the session is closed (and any stray work rolled back).

    Usage:
        with get_db_context() as db:
            ShipmentStatusService(db).recalculate(shipment_id, "cli")
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """Create all database tables synchronously.

    Safe to call multiple times - will not recreate existing tables.
    """
    Base.metadata.create_all(bind=engine)


def close_db() -> None:
    """Close the engine and dispose of the connection pool."""
    engine.dispose()
