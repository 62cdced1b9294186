"""Database connection and session management."""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from medilocker.config import Settings, get_settings
from medilocker.core.exceptions import MedilockerError
from medilocker.models.base import Base


def build_engine(settings: Optional[Settings] = None) -> Engine:
    """Create the engine for the configured database."""
    settings = settings or get_settings()
    echo = settings.debug and settings.environment == "development"

    if settings.is_sqlite:
        # SQLite doesn't support the pool settings; in-memory databases
        # must share a single connection across threads
        connect_args = {"check_same_thread": False, "timeout": 30}
        if ":memory:" in settings.database_url or settings.database_url in (
            "sqlite://",
            "sqlite:///",
        ):
            return create_engine(
                settings.database_url,
                echo=echo,
                connect_args=connect_args,
                poolclass=StaticPool,
            )
        return create_engine(settings.database_url, echo=echo, connect_args=connect_args)

    return create_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=echo,
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    """Create the session factory every unit of work is opened from."""
    return sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        expire_on_commit=False,
    )


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """Run one unit of work: commit on success, roll back on failure."""
    session = factory()
    try:
        yield session
        session.commit()
    except (SQLAlchemyError, MedilockerError):
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    """Initialize database with tables."""
    # Importing the package registers every model on Base.metadata
    import medilocker.models  # noqa: F401  pylint: disable=import-outside-toplevel

    Base.metadata.create_all(bind=engine)


def drop_db(engine: Engine) -> None:
    """Drop all database tables (use with caution)."""
    Base.metadata.drop_all(bind=engine)
