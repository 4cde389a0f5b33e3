"""
Database Configuration
SQLAlchemy engine and session management.
Supports both SQLite (local dev) and PostgreSQL (production).
"""

import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from studio.core.config import settings

logger = logging.getLogger(__name__)


def make_engine(url: str):
    """Create an engine with the pool settings appropriate for the backend."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},  # Needed for SQLite
        )
    # PostgreSQL settings
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


engine = make_engine(settings.DATABASE_URL)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


def init_db(bind=None):
    """Initialize database tables."""
    try:
        from studio.models import (  # noqa
            CreditAccount, CreditTransaction, Job, SubjectModel,
            GenerationBatch, BatchRow, VideoGeneration,
        )
        Base.metadata.create_all(bind=bind or engine)
    except Exception as e:
        # In production, tables may already exist or filesystem may be read-only
        logger.warning(f"Could not create database tables: {e}")
        logger.info("Continuing with existing database...")
