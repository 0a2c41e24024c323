# database.py
"""
SQLAlchemy database connection and session management.

This module provides:
- Database engine configuration (Azure SQL via pymssql by default, any
  SQLAlchemy URL through DATABASE_URL)
- Session factory for dependency injection
- Connection utilities

Usage:
     from database import get_session, engine

     # In FastAPI routes:
     @app.get("/items")
     def get_items(db: Session = Depends(get_session)):
          return db.query(Item).all()
     """
import logging
import os
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from config import build_database_url

logger = logging.getLogger(__name__)


def build_engine(url: str) -> Engine:
     """
     Create the SQLAlchemy engine for ``url``.

     SQLite (used for local runs and tests) does not take pool sizing
     arguments; every other backend gets the pooled configuration.
     """
     echo = os.getenv("SQL_ECHO", "false").lower() == "true"  # Log SQL if SQL_ECHO=true
     if url.startswith("sqlite"):
          return create_engine(url, echo=echo, connect_args={"check_same_thread": False})
     return create_engine(
          url,
          poolclass=QueuePool,
          pool_size=5,
          max_overflow=10,
          pool_timeout=30,
          pool_recycle=1800,  # Recycle connections after 30 minutes
          echo=echo,
     )


DATABASE_URL = build_database_url()

# Create SQLAlchemy engine
engine = build_engine(DATABASE_URL)

# Session factory
SessionLocal = sessionmaker(
     bind=engine,
     autocommit=False,
     autoflush=False,
     expire_on_commit=False,
)


def get_session() -> Generator[Session, None, None]:
     """
     FastAPI dependency that provides a database session.

     Yields:
          Session: SQLAlchemy database session
     """
     session = SessionLocal()
     try:
          yield session
          session.commit()
     except Exception:
          session.rollback()
          raise
     finally:
          session.close()


def init_db(bind: Engine = None) -> None:
     """
     Initialize database tables.

     Creates all tables defined in the models if they don't exist.
     For production, use Alembic migrations instead.
     """
     from models import Base
     Base.metadata.create_all(bind=bind or engine)


def check_connection() -> bool:
     """
     Test database connectivity.

     Returns:
          bool: True if connection successful, False otherwise
     """
     try:
          with engine.connect() as conn:
               conn.execute(text("SELECT 1"))
          return True
     except Exception as e:
          logger.error(f"Database connection failed: {e}")
          return False
