"""Database connection and session management."""
from sqlalchemy import create_engine, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator

from pricelab.config import get_settings

settings = get_settings()

# SQLite needs this to share connections with the threadpool
connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}

# Create database engine
engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    pool_pre_ping=True,
    echo=settings.debug
)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.

    Usage:
        @app.get("/experiments")
        def list_experiments(db: Session = Depends(get_db)):
            return db.query(Experiment).all()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
