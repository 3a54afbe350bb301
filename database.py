"""
Database connection and session management for MedAssist

The webhook and the periodic jobs write from the same process, so SQLite
runs in WAL mode with a busy timeout; PostgreSQL gets a pre-pinged pool.
"""

import logging
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from contextlib import contextmanager
from typing import Dict, Generator

from config import settings


logger = logging.getLogger(__name__)

SQLITE_BUSY_TIMEOUT_MS = 5000


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """
    Engine for the store at `url`

    SQLite connections get foreign keys, WAL journaling (file databases
    only) and a busy timeout applied on connect.
    """
    if not url.startswith("sqlite"):
        return create_engine(
            url,
            echo=echo,
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True
        )

    in_memory = ":memory:" in url or url.rstrip("/") == "sqlite:"
    sqlite_engine = create_engine(
        url,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=echo
    )

    @event.listens_for(sqlite_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
        if not in_memory:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return sqlite_engine


engine = create_db_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)

# Objects stay readable after commit; services hand them to the engines
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine
)

# Base class for ORM models
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for FastAPI routes to get database session.
    Automatically closes session after request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database session.
    Used by the services when the caller (a periodic job) has no session.

    Usage:
        with get_db_context() as db:
            db.query(Medication).all()
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind: Engine = None) -> None:
    """
    Create the medication, adherence, caregiver, appointment and
    health log tables if they do not exist.
    """
    import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info(f"Database initialized at: {settings.DATABASE_URL if bind is None else bind.url}")


class DatabaseHealthCheck:
    """Database health check utilities"""

    @staticmethod
    def is_connected() -> bool:
        """Check if database is connected"""
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            return False

    @staticmethod
    def get_row_counts(db: Session) -> Dict[str, int]:
        """Rows per table, for the health endpoint"""
        import models

        return {
            model.__tablename__: db.query(model).count()
            for model in (
                models.Medication,
                models.AdherenceLog,
                models.Caregiver,
                models.Appointment,
                models.HealthLog,
            )
        }


__all__ = [
    "engine",
    "create_db_engine",
    "SessionLocal",
    "Base",
    "get_db",
    "get_db_context",
    "init_db",
    "DatabaseHealthCheck"
]
