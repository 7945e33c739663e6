"""
Database connection and session management
Engine and session factory are built from Settings by create_app()
and kept on app.state; nothing here is a module-level connection.
"""

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

# Base class for declarative models
Base = declarative_base()


def build_engine(database_url: str) -> Engine:
    """Create the engine for a database URL (SQLite URLs get a shared in-process pool)."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(request: Request):
    """
    Database session dependency for FastAPI
    Yields a database session and ensures it's closed after use
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
