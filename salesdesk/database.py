"""Database configuration for the sales desk web application."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

DEFAULT_SQLITE_PATH = Path("data/salesdesk.db")
DEFAULT_SQLITE_PATH.parent.mkdir(parents=True, exist_ok=True)

DATABASE_URL = os.getenv("SALESDESK_DATABASE_URL", f"sqlite:///{DEFAULT_SQLITE_PATH}")


def _create_engine(url: str):
    """Create a SQLAlchemy engine for the given URL, handling sqlite connect args."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, future=True)


# On local development environments an unreachable database (commonly
# PostgreSQL) falls back to the SQLite file. Other environments re-raise.
try:
    engine = _create_engine(DATABASE_URL)
    with engine.connect() as _conn:  # type: ignore[var-annotated]
        pass
except SQLAlchemyError as e:  # pragma: no cover - environment dependent
    env = os.getenv("ENVIRONMENT", "development").lower()
    logger.warning("Could not connect to database at %r: %s", DATABASE_URL, e)
    if env == "development":
        fallback = f"sqlite:///{DEFAULT_SQLITE_PATH}"
        logger.warning("Falling back to SQLite for local development at %s", fallback)
        DATABASE_URL = fallback
        engine = _create_engine(DATABASE_URL)
    else:
        raise

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

Base = declarative_base()


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a database session."""

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def init_db() -> None:
    """Ensure database tables exist and create the default admin user if needed."""

    from salesdesk import models  # noqa: F401  (import ensures model metadata is registered)
    from salesdesk.auth import User

    Base.metadata.create_all(bind=engine, checkfirst=True)

    session = SessionLocal()
    try:
        admin_count = session.query(User).filter(User.username == "admin").count()
        if admin_count == 0:
            password = os.getenv("SALESDESK_ADMIN_PASSWORD", "admin")
            session.add(User.create_user("admin", password, role="admin"))
            session.commit()
            logger.info("Created default admin user (username: admin)")
        else:
            logger.debug("Admin user already exists, skipping creation")
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Could not seed the default admin user")
        raise
    finally:
        session.close()
