# ==============================================================================
# utils/database.py - Database utilities
# ==============================================================================

import logging
from typing import Iterator

from sqlalchemy.orm import Session

from ..database import Base, engine, SessionLocal
from .. import models  # noqa: F401  registers the tables on Base.metadata

logger = logging.getLogger(__name__)


def init_database(bind=None) -> None:
    """Initialize database tables with error handling"""
    try:
        Base.metadata.create_all(bind=bind or engine)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Error creating database tables: {e}")
        raise


def get_db() -> Iterator[Session]:
    """Database dependency for FastAPI"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def reset_database(bind=None) -> None:
    """Reset the database (drop and recreate all tables)"""
    try:
        Base.metadata.drop_all(bind=bind or engine)
        Base.metadata.create_all(bind=bind or engine)
        logger.info("Database reset successfully")
    except Exception as e:
        logger.error(f"Error resetting database: {e}")
        raise
